# src/examlens/errors.py
from __future__ import annotations
from typing import Optional


class ExamLensError(Exception):
    """
    Base class for every error surfaced to callers of the client.
    """


class ValidationError(ExamLensError):
    """
    Bad caller input. Always raised before any network call.
    """


class CredentialError(ExamLensError):
    """
    Missing or rejected API credential. Callers should re-prompt for configuration.
    """


class NetworkError(ExamLensError):
    """
    Transport-level failure (connection refused, DNS, timeout).
    """


class ParseError(ExamLensError):
    """
    The provider answered, but the text did not hold the expected payload.
    """


class ProviderError(ExamLensError):
    """
    Generic provider failure, and the error raised when a whole fallback chain is exhausted.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        last_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.last_error = last_error
