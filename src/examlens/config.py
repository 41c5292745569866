# src/examlens/config.py
from __future__ import annotations
from dataclasses import dataclass, asdict, field, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class Provider(str, Enum):
    GEMINI = "gemini"
    QWEN = "qwen"


class Task(str, Enum):
    GRADE = "grade"
    OCR = "ocr"
    TABLE = "table"
    HOMEWORK = "homework"
    ESSAY = "essay"
    TUTOR = "tutor"


# Both providers speak the OpenAI chat-completions dialect on these endpoints
BASE_URLS: Dict[Provider, str] = {
    Provider.GEMINI: "https://generativelanguage.googleapis.com/v1beta/openai/",
    Provider.QWEN: "https://dashscope.aliyuncs.com/compatible-mode/v1",
}

_GEMINI_REASONING = ("gemini-1.5-pro-002", "gemini-1.5-flash-001", "gemini-1.5-pro")
_GEMINI_READING = ("gemini-1.5-flash-001", "gemini-1.5-pro-002", "gemini-1.5-pro")
_QWEN_VISION = ("qwen-vl-max", "qwen-vl-plus")
_QWEN_TEXT = ("qwen-max", "qwen-plus")

DEFAULT_CHAINS: Dict[Provider, Dict[Task, Tuple[str, ...]]] = {
    Provider.GEMINI: {
        Task.GRADE: _GEMINI_REASONING,
        Task.OCR: _GEMINI_READING,
        Task.TABLE: _GEMINI_READING,
        Task.HOMEWORK: _GEMINI_REASONING,
        Task.ESSAY: _GEMINI_REASONING,
        Task.TUTOR: ("gemini-1.5-flash",),
    },
    Provider.QWEN: {
        Task.GRADE: _QWEN_VISION,
        Task.OCR: _QWEN_VISION,
        Task.TABLE: _QWEN_VISION,
        Task.HOMEWORK: _QWEN_VISION,
        Task.ESSAY: _QWEN_VISION,
        Task.TUTOR: _QWEN_TEXT,
    },
}


@dataclass(frozen=True)
class ModelChain:
    """
    Prioritized list of model identifiers tried in order for one task.
    """

    task: Task
    models: Tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.models:
            raise ValueError(f"model chain for {self.task.value} is empty")


@dataclass(frozen=True)
class ProviderConfig:
    """
    Which backend to talk to, with what credential, and which models to try per task.
    Immutable: reconfiguring means building a new one.
    """

    provider: Provider = Provider.GEMINI
    credential: Optional[str] = None
    base_url: Optional[str] = None
    timeout: Optional[float] = None  # None -> SDK default
    temperature: float = 0.2
    max_tokens: int = 8192
    chains: Dict[str, Tuple[str, ...]] = field(default_factory=dict)  # task -> models override

    def endpoint(self) -> str:
        """
        Resolve the OpenAI-compatible base URL for this provider.
        """
        return self.base_url or BASE_URLS[self.provider]

    def chain(self, task: Task) -> ModelChain:
        """
        Resolve the model chain for a task, overrides first.
        """
        override = self.chains.get(task.value)
        models = tuple(override) if override else DEFAULT_CHAINS[self.provider][task]
        return ModelChain(task=task, models=models)

    def with_credential(self, credential: str, provider: Provider | str) -> "ProviderConfig":
        """
        Return a copy bound to another provider/credential.
        Per-task overrides and base URL only make sense for the old provider, so they are dropped on switch.
        """
        provider = Provider(provider)
        if provider == self.provider:
            return replace(self, credential=credential)
        return replace(
            self, provider=provider, credential=credential, base_url=None, chains={}
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the configuration to a JSON-friendly dictionary.
        """
        d = asdict(self)
        d["provider"] = self.provider.value
        d["chains"] = {k: list(v) for k, v in self.chains.items()}
        return d

    def redacted(self) -> Dict[str, Any]:
        """
        Same as to_dict() but with the credential masked, for display.
        """
        d = self.to_dict()
        cred = d.get("credential")
        if cred:
            d["credential"] = cred[:4] + "..." + cred[-2:] if len(cred) > 8 else "****"
        return d
