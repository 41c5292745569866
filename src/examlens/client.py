# src/examlens/client.py
from __future__ import annotations
import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

from pydantic import ValidationError as PydanticValidationError

from .config import ModelChain, Provider, ProviderConfig, Task
from .errors import (
    CredentialError,
    ExamLensError,
    ParseError,
    ProviderError,
    ValidationError,
)
from .models.schema import EssayExamples, EssayRequest, GradingResult
from .pipeline import prompts
from .pipeline.extract import clean_text, parse_model
from .pipeline.images import (
    ESSAY_MAX_EDGE,
    UPLOAD_MAX_EDGE,
    ImageInput,
    PreparedImage,
    prepare_image,
)
from .providers import ChatTransport, OpenAICompatibleTransport, classify_exception

logger = logging.getLogger(__name__)

T = TypeVar("T")

TransportFactory = Callable[[ProviderConfig], ChatTransport]

MIN_MAX_SCORE = 1
MAX_MAX_SCORE = 1000


async def first_success(
    chain: ModelChain,
    attempt: Callable[[str], Awaitable[T]],
    *,
    label: str,
) -> T:
    """
    Try each model of the chain in order, one call each, and return the first success.

    Failures are logged and swallowed. When the whole chain fails, the last failure
    is raised wrapped in a ProviderError, except a rejected credential which stays a
    CredentialError so the caller can ask for a new key.
    """
    last_error: Optional[ExamLensError] = None
    for model in chain.models:
        logger.info("Attempting %s with model: %s", label, model)
        try:
            return await attempt(model)
        except Exception as e:
            last_error = classify_exception(e)
            logger.warning(
                "Model %s failed (%s): %s", model, type(last_error).__name__, last_error
            )

    msg = f"All models failed to {label}. Last error: {last_error}"
    if isinstance(last_error, CredentialError):
        raise CredentialError(msg) from last_error
    raise ProviderError(msg, last_error=last_error) from last_error


def _check_source(source: Optional[ImageInput], what: str) -> None:
    if source is None:
        raise ValidationError(f"no {what} supplied")
    if isinstance(source, bytes):
        if not source:
            raise ValidationError(f"{what} is empty")
    elif not Path(source).is_file():
        raise ValidationError(f"{what} not found: {source}")


async def _prepare(source: Optional[ImageInput], max_edge: int, what: str = "image") -> PreparedImage:
    """
    Validate a source, then decode and compress it in a worker thread.
    """
    _check_source(source, what)
    return await asyncio.to_thread(prepare_image, source, max_edge=max_edge)


class ExamClient:
    """
    Orchestrates grading, OCR, homework and essay tasks against one provider.

    The client is bound to an immutable ProviderConfig. configure() hands back a new
    client, so calls already in flight keep the configuration they started with.
    """

    def __init__(
        self,
        config: ProviderConfig,
        transport_factory: TransportFactory = OpenAICompatibleTransport,
    ) -> None:
        self.config = config
        self._transport_factory = transport_factory
        self._transport: Optional[ChatTransport] = None

    def configure(self, credential: str, provider: Provider | str) -> "ExamClient":
        """
        Return a client bound to a new credential/provider. Nothing is shared with this one.
        """
        try:
            cfg = self.config.with_credential(credential, provider)
        except ValueError as e:
            raise ValidationError(f"unknown provider: {provider}") from e
        return ExamClient(cfg, self._transport_factory)

    @property
    def transport(self) -> ChatTransport:
        if self._transport is None:
            if not self.config.credential:
                raise CredentialError(
                    f"no API key configured for provider '{self.config.provider.value}'"
                )
            self._transport = self._transport_factory(self.config)
        return self._transport

    async def aclose(self) -> None:
        close = getattr(self._transport, "close", None)
        if close is not None:
            await close()
        self._transport = None

    async def __aenter__(self) -> "ExamClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    # ---------------------------
    # Generic task runners
    # ---------------------------
    async def _run_text(
        self,
        task: Task,
        prompt: str,
        images: Sequence[PreparedImage],
        label: str,
    ) -> str:
        transport = self.transport

        async def attempt(model: str) -> str:
            return clean_text(await transport.complete(model, prompt, images))

        return await first_success(self.config.chain(task), attempt, label=label)

    # ---------------------------
    # Grading
    # ---------------------------
    async def grade_exam(
        self, images: Sequence[ImageInput], total_max_score: float = 100
    ) -> GradingResult:
        """
        Grade an exam given as one image per page.
        The result carries one page per image, in upload order.
        """
        if not images:
            raise ValidationError("select at least one exam image to grade")
        if isinstance(total_max_score, bool) or not isinstance(total_max_score, (int, float)):
            raise ValidationError(f"total max score must be a number, got {total_max_score!r}")
        if not MIN_MAX_SCORE <= total_max_score <= MAX_MAX_SCORE:
            raise ValidationError(
                f"total max score must be within {MIN_MAX_SCORE}-{MAX_MAX_SCORE}, got {total_max_score}"
            )

        for n, img in enumerate(images, start=1):
            _check_source(img, f"exam page {n}")
        prepared = list(
            await asyncio.gather(
                *(_prepare(img, UPLOAD_MAX_EDGE) for img in images)
            )
        )
        transport = self.transport
        prompt = prompts.grading_prompt(total_max_score, len(prepared))

        async def attempt(model: str) -> GradingResult:
            text = await transport.complete(
                model, prompt, prepared, system=prompts.GRADING_SYSTEM_PROMPT
            )
            result = parse_model(text, GradingResult)
            if len(result.pages) != len(prepared):
                raise ParseError(
                    f"{model} graded {len(result.pages)} page(s) for {len(prepared)} image(s)"
                )
            return result.model_copy(update={"total_max_score": float(total_max_score)})

        return await first_success(
            self.config.chain(Task.GRADE), attempt, label="grade exam"
        )

    # ---------------------------
    # OCR
    # ---------------------------
    async def recognize_text(self, image: ImageInput) -> str:
        prepared = await _prepare(image, UPLOAD_MAX_EDGE)
        return await self._run_text(Task.OCR, prompts.OCR_PROMPT, [prepared], "recognize text")

    async def recognize_text_batch(self, images: Sequence[ImageInput]) -> List[str]:
        """
        OCR several images concurrently. Output order matches input order.
        """
        if not images:
            raise ValidationError("select at least one image to recognize")
        for n, img in enumerate(images, start=1):
            _check_source(img, f"image {n}")
        return list(await asyncio.gather(*(self.recognize_text(img) for img in images)))

    async def recognize_table(self, image: ImageInput) -> str:
        """
        Markdown table text exactly as the model produced it.
        """
        prepared = await _prepare(image, UPLOAD_MAX_EDGE)
        return await self._run_text(Task.TABLE, prompts.TABLE_PROMPT, [prepared], "recognize table")

    # ---------------------------
    # Tutoring
    # ---------------------------
    async def solve_homework(self, image: ImageInput, instruction: Optional[str] = None) -> str:
        prepared = await _prepare(image, UPLOAD_MAX_EDGE, what="homework image")
        return await self._run_text(
            Task.HOMEWORK, prompts.homework_prompt(instruction), [prepared], "solve homework"
        )

    async def socratic_tutor(self, question: str, student_answer: Optional[str] = None) -> str:
        """
        Text-only Socratic hinting for a typed-in problem.
        """
        if not question or not question.strip():
            raise ValidationError("enter the question to be tutored")
        answer = student_answer.strip() if student_answer else None
        return await self._run_text(
            Task.TUTOR, prompts.tutor_prompt(question.strip(), answer), [], "tutor"
        )

    # ---------------------------
    # Essays
    # ---------------------------
    async def generate_essay(self, request: Optional[EssayRequest] = None, **params) -> str:
        """
        Write a model essay. Accepts an EssayRequest or its fields as keyword arguments.
        """
        if request is None:
            try:
                request = EssayRequest(**params)
            except PydanticValidationError as e:
                raise ValidationError(f"invalid essay request: {e.errors()[0]['msg']}") from e

        if request.topic and request.image is not None:
            raise ValidationError("give either an essay topic or a topic image, not both")
        if not request.topic and request.image is None:
            raise ValidationError("enter an essay topic or upload a topic image")

        images: List[PreparedImage] = []
        if request.image is not None:
            images.append(await _prepare(request.image, ESSAY_MAX_EDGE, what="topic image"))

        prompt = prompts.essay_prompt(
            grade=request.grade,
            essay_type=request.essay_type,
            topic=request.topic,
            word_count=request.word_count,
            language=request.language,
        )
        return await self._run_text(Task.ESSAY, prompt, images, "generate essay")

    async def generate_essay_examples(self, topic: str) -> EssayExamples:
        if not topic or not topic.strip():
            raise ValidationError("enter an essay topic")
        transport = self.transport
        prompt = prompts.essay_examples_prompt(topic.strip())

        async def attempt(model: str) -> EssayExamples:
            return parse_model(await transport.complete(model, prompt), EssayExamples)

        return await first_success(
            self.config.chain(Task.ESSAY), attempt, label="generate essay examples"
        )

