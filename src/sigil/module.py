# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa

"""
Base class for every computation unit bound to a signature.

Subclasses implement ``forward(**inputs)`` and return a mapping of output
field values. ``call`` wraps ``forward`` with input validation and coercion,
bounded retries for transient failures, output validation, and tracing.
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import asdict, dataclass
from typing import Any

from sigil.config import build_config, get_settings
from sigil.core.example import Example
from sigil.core.trace import TraceContext, get_trace_context
from sigil.errors import ConfigurationError, MissingInputsError, ModuleError, ValidationError
from sigil.retry import RetryPolicy
from sigil.signature import Signature

logger = logging.getLogger(__name__)

DemoSelector = Callable[["Module", Mapping[str, Any]], Sequence[Example]]


@dataclass(slots=True)
class ModuleConfig:
    temperature: float | None = None
    max_tokens: int | None = None
    # Passed through to the model; enforcement is the model's job
    timeout: float | None = None
    max_retries: int | None = None
    retry_on_failure: bool = True

    def model_options(self) -> dict[str, Any]:
        settings = get_settings()
        return {
            "temperature": self.temperature if self.temperature is not None else settings.temperature,
            "max_tokens": self.max_tokens if self.max_tokens is not None else settings.max_tokens,
            "timeout": self.timeout if self.timeout is not None else settings.model_timeout,
        }


class ModuleResult(Mapping[str, Any]):
    """Outputs of a module call plus call-level metadata."""

    def __init__(self, outputs: Mapping[str, Any], metadata: Mapping[str, Any] | None = None):
        self.outputs = dict(outputs)
        self.metadata = dict(metadata or {})

    def __getitem__(self, key: str) -> Any:
        return self.outputs[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.outputs)

    def __len__(self) -> int:
        return len(self.outputs)

    def __getattr__(self, name: str) -> Any:
        outputs = self.__dict__.get("outputs", {})
        if name in outputs:
            return outputs[name]
        raise AttributeError(name)

    def to_dict(self) -> dict[str, Any]:
        return dict(self.outputs)

    def __repr__(self) -> str:
        return f"ModuleResult({self.outputs!r})"


class Module:
    def __init__(
        self,
        signature: str | Signature,
        model: Any = None,
        config: ModuleConfig | Mapping[str, Any] | None = None,
        demos: Sequence[Example | Mapping[str, Any]] | None = None,
        metadata: Mapping[str, Any] | None = None,
        trace_context: TraceContext | None = None,
    ):
        if not isinstance(signature, (str, Signature)):
            raise ModuleError("Signature must be a string or Signature instance")
        self.signature = Signature.wrap(signature)
        self.model = model if model is not None else get_settings().default_model
        if self.model is not None and not callable(getattr(self.model, "complete", None)):
            raise ConfigurationError("Model must implement complete(messages, **options)")
        self.config: ModuleConfig = build_config(ModuleConfig, config)
        self.demos: list[Example] = [Example.from_value(d) for d in demos or []]
        self.metadata = dict(metadata or {})
        self.trace_context = trace_context
        self.demo_selector: DemoSelector | None = None
        self.call_count = 0
        self._count_lock = threading.Lock()
        self._trace_enabled = True

    # Tracing toggles, per instance

    @property
    def trace_enabled(self) -> bool:
        return self._trace_enabled

    def enable_trace(self) -> None:
        self._trace_enabled = True

    def disable_trace(self) -> None:
        self._trace_enabled = False

    def active_trace_context(self) -> TraceContext:
        return self.trace_context or get_trace_context()

    @property
    def name(self) -> str:
        return type(self).__name__ or "AnonymousModule"

    # Execution

    def forward(self, **inputs: Any) -> Mapping[str, Any]:
        raise NotImplementedError("Subclasses must implement forward()")

    def call(self, inputs: Mapping[str, Any] | None = None, **kwargs: Any) -> ModuleResult:
        provided = {**(inputs or {}), **kwargs}

        try:
            self.signature.validate_inputs(provided)
        except MissingInputsError as e:
            raise ModuleError(str(e), missing=e.missing) from e
        coerced = self.signature.coerce_inputs(provided)
        declared = {name: coerced[name] for name in self.signature.input_fields if name in coerced}
        with self._count_lock:
            self.call_count += 1
            call_number = self.call_count

        context = self.active_trace_context()
        if not self._trace_enabled:
            return self._run(declared, call_number)

        context.start_trace(self.name, self.signature, declared)
        try:
            result = self._run(declared, call_number)
        except Exception as e:
            logger.debug(f"{self.name} call failed: {e}")
            context.record_error(e)
            raise
        context.end_trace(result.outputs, result.metadata)
        return result

    __call__ = call

    def _run(self, inputs: dict[str, Any], call_number: int) -> ModuleResult:
        kwargs = {name: inputs.get(name) for name in self.signature.input_fields}
        policy = self._retry_policy()
        raw = policy.run(lambda: self.forward(**kwargs), description=self.name)

        extra_metadata: dict[str, Any] = {}
        if isinstance(raw, ModuleResult):
            extra_metadata = raw.metadata
            raw = raw.outputs
        if not isinstance(raw, Mapping):
            raise ValidationError(f"{self.name}.forward must return a mapping, got {type(raw).__name__}")

        self.signature.validate_outputs(raw)
        outputs = self.signature.coerce_outputs(raw)
        metadata = {
            "module": self.name,
            "call_count": call_number,
            "demos_used": len(self.demos),
            "timestamp": time.time(),
            **extra_metadata,
        }
        return ModuleResult(outputs, metadata)

    def _retry_policy(self) -> RetryPolicy:
        if not self.config.retry_on_failure:
            return RetryPolicy(max_attempts=1, max_assertion_attempts=1)
        return RetryPolicy(max_attempts=self.config.max_retries)

    # Demonstrations

    def active_demos(self, inputs: Mapping[str, Any]) -> list[Example]:
        """Demonstrations for this call; the selector hook wins over static demos."""
        if self.demo_selector is not None:
            return list(self.demo_selector(self, inputs))
        return list(self.demos)

    def with_demos(self, demos: Sequence[Example | Mapping[str, Any]]) -> Module:
        clone = copy.copy(self)
        clone._count_lock = threading.Lock()
        clone.demos = [Example.from_value(d) for d in demos]
        clone.metadata = dict(self.metadata)
        return clone

    def reset(self) -> None:
        self.demos = []
        self.call_count = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "class": self.name,
            "signature": self.signature.to_dict(),
            "config": asdict(self.config),
            "demos_count": len(self.demos),
            "call_count": self.call_count,
            "metadata": dict(self.metadata),
        }

    def __repr__(self) -> str:
        return f"{self.name}({str(self.signature)!r})"
