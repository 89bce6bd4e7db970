# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from sigil.errors import (
    APIError,
    AuthenticationError,
    InvalidRequestError,
    ModelError,
    ModelTimeoutError,
    RateLimitError,
)
from sigil.models.base import BaseLanguageModel, ChatMessage, Completion, Prompt, Usage, prepare_messages


def _token_count(usage: Any, name: str) -> int:
    if usage is None:
        return 0
    value = usage.get(name) if isinstance(usage, dict) else getattr(usage, name, 0)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return int(value)


def _usage(response: Any) -> Usage:
    usage = getattr(response, "usage", None)
    prompt_tokens = _token_count(usage, "prompt_tokens")
    completion_tokens = _token_count(usage, "completion_tokens")
    total = _token_count(usage, "total_tokens") or prompt_tokens + completion_tokens
    return {"prompt_tokens": prompt_tokens, "completion_tokens": completion_tokens, "total_tokens": total}


class LiteLLMModel(BaseLanguageModel):
    """
    Model capability backed by ``litellm.completion``.

    ``model`` is any litellm model string, e.g. ``"openai/gpt-4.1-mini"``.
    Provider errors are mapped onto the sigil model error kinds so retry
    policies can tell transient failures apart.
    """

    def __init__(self, model: str, **kwargs: Any):
        super().__init__(model=model, **kwargs)
        import litellm

        self.litellm = litellm

    def _translate_error(self, error: Exception) -> ModelError:
        litellm = self.litellm
        message = f"{self.model}: {error}"
        if isinstance(error, litellm.AuthenticationError):
            return AuthenticationError(message, original_error=error)
        if isinstance(error, litellm.RateLimitError):
            return RateLimitError(message, retry_after=getattr(error, "retry_after", None), original_error=error)
        if isinstance(error, litellm.Timeout):
            return ModelTimeoutError(message, original_error=error)
        if isinstance(error, litellm.BadRequestError):
            return InvalidRequestError(message, original_error=error)
        return APIError(message, original_error=error)

    def _complete(self, messages: list[ChatMessage], options: dict[str, Any]) -> Completion:
        try:
            response = self.litellm.completion(model=self.model, messages=messages, **options)
        except Exception as e:
            raise self._translate_error(e) from e

        content = response.choices[0].message.content or ""
        model = getattr(response, "model", None)
        return {
            "content": content,
            "usage": _usage(response),
            "raw": response,
            "model": model if isinstance(model, str) else self.model,
        }

    def stream_complete(self, messages: Prompt, **options: Any) -> Iterator[str]:
        merged = {**self.default_options, **{k: v for k, v in options.items() if v is not None}}
        try:
            stream = self.litellm.completion(
                model=self.model, messages=prepare_messages(messages), stream=True, **merged
            )
            for chunk in stream:
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        except Exception as e:
            raise self._translate_error(e) from e
        self._record_usage(0)
