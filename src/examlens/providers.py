# src/examlens/providers.py
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

import openai
from openai import AsyncOpenAI

from .config import ProviderConfig
from .errors import (
    CredentialError,
    ExamLensError,
    NetworkError,
    ParseError,
    ProviderError,
)
from .pipeline.images import PreparedImage

logger = logging.getLogger(__name__)


class ChatTransport(Protocol):
    """
    One model call: prompt + images in, raw response text out.
    Implementations raise only ExamLensError subclasses.
    """

    async def complete(
        self,
        model: str,
        prompt: str,
        images: Sequence[PreparedImage] = (),
        *,
        system: Optional[str] = None,
    ) -> str: ...


def build_messages(
    prompt: str,
    images: Sequence[PreparedImage] = (),
    system: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Build chat messages. Images ride along as data-URL image_url parts after the text.
    """
    messages: List[Dict[str, Any]] = []
    if system:
        messages.append({"role": "system", "content": system})

    if not images:
        messages.append({"role": "user", "content": prompt})
        return messages

    content: List[Dict[str, Any]] = [{"type": "text", "text": prompt}]
    for idx, img in enumerate(images, start=1):
        if len(images) > 1:
            content.append({"type": "text", "text": f"Image {idx}:"})
        content.append({"type": "image_url", "image_url": {"url": img.data_url()}})
    messages.append({"role": "user", "content": content})
    return messages


def _body_reasons(body: Any) -> List[str]:
    """
    Collect google.rpc ErrorInfo 'reason' fields from an error body.
    Gemini reports a bad key as HTTP 400 with reason API_KEY_INVALID.
    """
    out: List[str] = []
    if isinstance(body, list):
        for item in body:
            out.extend(_body_reasons(item))
    elif isinstance(body, dict):
        reason = body.get("reason")
        if isinstance(reason, str):
            out.append(reason)
        for key in ("error", "details"):
            if key in body:
                out.extend(_body_reasons(body[key]))
    return out


def classify_exception(exc: BaseException) -> ExamLensError:
    """
    Map an SDK exception onto the error taxonomy by type and status, never by message text.
    """
    if isinstance(exc, ExamLensError):
        return exc
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return CredentialError(f"credential rejected by provider ({exc.status_code})")
    # APITimeoutError subclasses APIConnectionError
    if isinstance(exc, openai.APITimeoutError):
        return NetworkError("request to provider timed out")
    if isinstance(exc, openai.APIConnectionError):
        return NetworkError("could not reach provider")
    if isinstance(exc, openai.APIStatusError):
        if "API_KEY_INVALID" in _body_reasons(exc.body):
            return CredentialError(f"credential rejected by provider ({exc.status_code})")
        return ProviderError(
            f"provider returned HTTP {exc.status_code}: {exc.message}",
            status_code=exc.status_code,
        )
    if isinstance(exc, openai.APIResponseValidationError):
        return ParseError(f"provider response could not be decoded: {exc.message}")
    return ProviderError(f"{type(exc).__name__}: {exc}")


class OpenAICompatibleTransport:
    """
    Talks to a provider's OpenAI-compatible chat-completions endpoint.
    The AsyncOpenAI handle is created on first use and kept for the life of this object.
    """

    def __init__(self, cfg: ProviderConfig) -> None:
        if not cfg.credential:
            raise CredentialError(
                f"no API key configured for provider '{cfg.provider.value}'"
            )
        self.cfg = cfg
        self._client: AsyncOpenAI | None = None

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            kwargs: Dict[str, Any] = {
                "api_key": self.cfg.credential,
                "base_url": self.cfg.endpoint(),
                "max_retries": 0,  # one call per model attempt; fallback is the retry
            }
            if self.cfg.timeout is not None:
                kwargs["timeout"] = self.cfg.timeout
            self._client = AsyncOpenAI(**kwargs)
        return self._client

    async def complete(
        self,
        model: str,
        prompt: str,
        images: Sequence[PreparedImage] = (),
        *,
        system: Optional[str] = None,
    ) -> str:
        messages = build_messages(prompt, images, system)
        try:
            resp = await self.client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=self.cfg.temperature,
                max_tokens=self.cfg.max_tokens,
            )
        except Exception as e:
            raise classify_exception(e) from e

        if not resp.choices:
            raise ParseError(f"{model} returned no choices")
        raw = resp.choices[0].message.content
        if not raw:
            raise ParseError(f"{model} returned an empty response")

        usage = getattr(resp, "usage", None)
        if usage is not None and getattr(usage, "total_tokens", None):
            logger.debug("%s used %s tokens", model, usage.total_tokens)
        return raw

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
