# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping, Sequence
from typing import Any, Protocol, TypedDict, runtime_checkable

from sigil.config import get_settings
from sigil.retry import RetryPolicy


class ChatMessage(TypedDict):
    role: str
    content: str


class Usage(TypedDict):
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class Completion(TypedDict):
    content: str
    usage: Usage
    raw: Any
    model: str | None


Prompt = str | Mapping[str, str] | Sequence[ChatMessage]


@runtime_checkable
class LanguageModel(Protocol):
    """The model capability modules call into."""

    def complete(self, messages: Prompt, **options: Any) -> Completion: ...


def prepare_messages(prompt: Prompt) -> list[ChatMessage]:
    """Normalise a prompt into chat messages.

    Accepts a plain string (one user turn), a mapping with ``system`` and
    ``user``/``content`` keys, or an existing message list.
    """
    if isinstance(prompt, str):
        return [{"role": "user", "content": prompt}]
    if isinstance(prompt, Mapping):
        messages: list[ChatMessage] = []
        if prompt.get("system"):
            messages.append({"role": "system", "content": prompt["system"]})
        user = prompt.get("user") or prompt.get("content")
        if user:
            messages.append({"role": "user", "content": user})
        return messages
    return [{"role": m["role"], "content": m["content"]} for m in prompt]


def empty_usage() -> Usage:
    return {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}


class BaseLanguageModel(ABC):
    """
    Shared plumbing for concrete model adapters: default options, message
    normalisation, bounded retries and usage accounting.

    ``max_retries`` defaults to a single attempt because ``Module.call``
    already retries transient failures.
    """

    def __init__(
        self,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
        max_retries: int = 1,
        **extra_options: Any,
    ):
        settings = get_settings()
        self.model = model
        self.default_options: dict[str, Any] = {
            "temperature": settings.temperature if temperature is None else temperature,
            "max_tokens": settings.max_tokens if max_tokens is None else max_tokens,
            "timeout": settings.model_timeout if timeout is None else timeout,
            **extra_options,
        }
        self.retry_policy = RetryPolicy(max_attempts=max_retries)
        self._stats_lock = threading.Lock()
        self._request_count = 0
        self._token_count = 0

    def complete(self, messages: Prompt, **options: Any) -> Completion:
        prepared = prepare_messages(messages)
        merged = {**self.default_options, **{k: v for k, v in options.items() if v is not None}}
        completion = self.retry_policy.run(
            lambda: self._complete(prepared, merged), description=f"{type(self).__name__}.complete"
        )
        self._record_usage(completion["usage"]["total_tokens"])
        return completion

    @abstractmethod
    def _complete(self, messages: list[ChatMessage], options: dict[str, Any]) -> Completion: ...

    def stream_complete(self, messages: Prompt, **options: Any) -> Iterator[str]:
        raise NotImplementedError(f"Streaming not supported by {type(self).__name__}")

    def _record_usage(self, tokens: int) -> None:
        with self._stats_lock:
            self._request_count += 1
            self._token_count += tokens

    def stats(self) -> dict[str, Any]:
        with self._stats_lock:
            return {"request_count": self._request_count, "token_count": self._token_count, "model": self.model}

    def reset_stats(self) -> None:
        with self._stats_lock:
            self._request_count = 0
            self._token_count = 0

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.model!r})"
