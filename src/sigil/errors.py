# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa

"""Exception hierarchy shared by every sigil component."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any


class SigilError(Exception):
    """Base error carrying optional context and the error that caused it."""

    def __init__(
        self,
        message: str | None = None,
        *,
        context: Mapping[str, Any] | None = None,
        original_error: BaseException | None = None,
    ):
        self.context = dict(context or {})
        self.original_error = original_error
        self.raw_message = message or type(self).__name__
        super().__init__(self._build_message())

    def _build_message(self) -> str:
        parts = [self.raw_message]
        if self.context:
            parts.append("(" + ", ".join(f"{k}: {v}" for k, v in self.context.items()) + ")")
        if self.original_error is not None and str(self.original_error) not in self.raw_message:
            parts.append(f"caused by {type(self.original_error).__name__}: {self.original_error}")
        return " ".join(parts)


class ConfigurationError(SigilError):
    pass


# Signatures


class SignatureError(SigilError):
    pass


class MalformedSignatureError(SignatureError):
    pass


class MissingInputsError(SignatureError):
    def __init__(self, missing: Sequence[str], **kwargs: Any):
        self.missing = tuple(missing)
        super().__init__(f"Missing required inputs: {', '.join(self.missing)}", **kwargs)


class CoercionError(SignatureError):
    def __init__(self, field: str, value: Any, reason: str, **kwargs: Any):
        self.field = field
        self.value = value
        super().__init__(f"Cannot coerce {field}={value!r}: {reason}", **kwargs)


class ValidationError(SignatureError):
    pass


# Execution


class ModuleError(SigilError):
    def __init__(self, message: str | None = None, *, missing: Sequence[str] = (), **kwargs: Any):
        self.missing = tuple(missing)
        super().__init__(message, **kwargs)


class ProgramError(SigilError):
    pass


class AssertionFailedError(SigilError):
    """Raised by ``assert_``; module calls retry these before giving up."""

    retriable = True


# Optimization


class OptimizerError(SigilError):
    pass


class InsufficientDataError(OptimizerError):
    pass


# Model capability


class ModelError(SigilError):
    pass


class AuthenticationError(ModelError):
    pass


class InvalidRequestError(ModelError):
    pass


class RateLimitError(ModelError):
    def __init__(self, message: str | None = None, *, retry_after: float | None = None, **kwargs: Any):
        self.retry_after = retry_after
        super().__init__(message, **kwargs)


class APIError(ModelError):
    pass


class ModelTimeoutError(ModelError):
    pass
