# src/examlens/pipeline/extract.py
from __future__ import annotations
import json
import re
from typing import Any, Dict, Type, TypeVar
from pydantic import BaseModel, ValidationError as PydanticValidationError

from ..errors import ParseError

M = TypeVar("M", bound=BaseModel)

_CODEFENCE_RE = re.compile(r"^```(?:\w+)?\s*|\s*```$", re.S)


def extract_json_object(text: str) -> Dict[str, Any]:
    """
    Pull the JSON object out of a free-text model answer.
    Takes everything from the first '{' to the last '}' and parses it.
    """
    s = text or ""
    start = s.find("{")
    end = s.rfind("}")
    if start == -1 or end <= start:
        raise ParseError("response holds no JSON object")
    try:
        data = json.loads(s[start : end + 1])
    except json.JSONDecodeError as e:
        raise ParseError(f"response JSON is malformed: {e}") from e
    if not isinstance(data, dict):
        raise ParseError(f"expected a JSON object, got {type(data).__name__}")
    return data


def parse_model(text: str, model: Type[M]) -> M:
    """
    Extract the JSON object from text and validate it against a pydantic model.
    """
    data = extract_json_object(text)
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ParseError(
            f"response does not match {model.__name__}: {e.error_count()} error(s); {e.errors()[0]['msg']}"
        ) from e


def clean_text(text: str) -> str:
    """
    Normalize a free-text answer: strip a wrapping code fence and outer whitespace.
    An empty answer is a parse failure.
    """
    s = (text or "").strip()
    if s.startswith("```") and s.endswith("```") and s.count("```") == 2:
        s = _CODEFENCE_RE.sub("", s).strip()
    if not s:
        raise ParseError("response is empty")
    return s
