import json

import pytest

from examlens.errors import ParseError
from examlens.models.schema import GradingResult
from examlens.pipeline.extract import clean_text, extract_json_object, parse_model

OBJ = {"total_score": 9, "nested": {"a": [1, 2, {"b": "}"}]}, "s": "{not a brace}"}


@pytest.mark.parametrize(
    "wrap",
    [
        "{}",
        "Here is the result: {} Thanks!",
        "```json\n{}\n```",
        "Result:\n\n{}\n\nLet me know if you need anything else.",
    ],
)
def test_extract_embedded_object_matches_isolated_parse(wrap):
    body = json.dumps(OBJ, ensure_ascii=False)
    assert extract_json_object(wrap.replace("{}", body)) == json.loads(body)


@pytest.mark.parametrize("text", ["", "no json here", "} backwards {", "only { open"])
def test_extract_without_object_is_parse_error(text):
    with pytest.raises(ParseError):
        extract_json_object(text)


def test_extract_malformed_object_is_parse_error():
    with pytest.raises(ParseError):
        extract_json_object('Result: {"total_score": 9,, } done')


def test_extract_top_level_array_is_rejected():
    # first '{' to last '}' of an array of objects is not a single object
    with pytest.raises(ParseError):
        extract_json_object('[{"a": 1}, {"b": 2}]')


def test_parse_model_reports_schema_mismatch():
    with pytest.raises(ParseError) as excinfo:
        parse_model('{"total_score": 1}', GradingResult)
    assert "GradingResult" in str(excinfo.value)


def test_clean_text_strips_single_fence():
    assert clean_text("```markdown\n| a | b |\n```") == "| a | b |"


def test_clean_text_keeps_inner_fences():
    text = "```python\nx = 1\n```\nthen\n```python\ny = 2\n```"
    assert clean_text(text) == text


def test_clean_text_empty_is_parse_error():
    with pytest.raises(ParseError):
        clean_text("  \n ")
