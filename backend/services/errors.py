from __future__ import annotations

from typing import Iterable, Optional


class ProcessSynthesisError(Exception):
    pass


class InputError(ProcessSynthesisError):
    """Caller supplied an unusable description, title or industry."""


class ValidationError(ProcessSynthesisError):
    def __init__(self, message: str, missing: Iterable[str] = ()):
        super().__init__(message)
        self.missing = list(missing)


class StructuralAssessmentError(ProcessSynthesisError):
    pass


class GenerationCancelled(ProcessSynthesisError):
    pass


class GeneratorError(Exception):
    """Base class for failures reported by an external generator."""

    retryable = False


class RateLimited(GeneratorError):
    retryable = True

    def __init__(self, message: str = "rate limited", retry_after_s: Optional[float] = None):
        super().__init__(message)
        self.retry_after_s = retry_after_s


class QuotaExceeded(GeneratorError):
    pass


class TransientError(GeneratorError):
    pass


__all__ = [
    "GenerationCancelled",
    "GeneratorError",
    "InputError",
    "ProcessSynthesisError",
    "QuotaExceeded",
    "RateLimited",
    "StructuralAssessmentError",
    "TransientError",
    "ValidationError",
]
