# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa

"""
Execution tracing.

A ``TraceContext`` keeps a per-thread stack of in-flight frames. Ending a
frame (successfully or with an error) produces an immutable ``Trace`` that is
handed to the context's ``TraceCollector``. One collector may be shared by
many threads; appends are serialised with a lock.

The process-wide default context is created lazily. Scoped isolation uses
``use_collector``; worker threads receive the context explicitly (for example
through ``Module(trace_context=...)`` or ``contextvars.copy_context().run``).
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, TypeVar

from sigil.core.example import Example

T = TypeVar("T")

TraceFilter = Callable[["Trace"], bool]


def _freeze(mapping: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


def _signature_text(signature: Any) -> str | None:
    if signature is None:
        return None
    return str(signature)


@dataclass(frozen=True)
class Trace:
    """Immutable record of one completed or failed module invocation."""

    module_name: str
    signature: str | None = None
    inputs: Mapping[str, Any] = field(default_factory=dict)
    outputs: Mapping[str, Any] = field(default_factory=dict)
    metadata: Mapping[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self):
        object.__setattr__(self, "signature", _signature_text(self.signature))
        object.__setattr__(self, "inputs", _freeze(self.inputs))
        object.__setattr__(self, "outputs", _freeze(self.outputs))
        object.__setattr__(self, "metadata", _freeze(self.metadata))

    @property
    def success(self) -> bool:
        return self.metadata.get("success") is not False

    @property
    def error(self) -> str | None:
        return self.metadata.get("error")

    @property
    def error_kind(self) -> str | None:
        return self.metadata.get("error_kind")

    @property
    def duration(self) -> float | None:
        return self.metadata.get("duration")

    @property
    def duration_ms(self) -> float:
        duration = self.duration
        return 0.0 if duration is None else float(duration) * 1000.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "module_name": self.module_name,
            "signature": self.signature,
            "inputs": dict(self.inputs),
            "outputs": dict(self.outputs),
            "metadata": dict(self.metadata),
            "timestamp": self.timestamp,
        }

    def to_example(self) -> Example:
        return Example({**self.inputs, **self.outputs})


class TraceCollector:
    """Append-only, thread-safe store of traces with derived views."""

    def __init__(self, enabled: bool = True):
        self._traces: list[Trace] = []
        self._filters: list[TraceFilter] = []
        self._lock = threading.Lock()
        self.enabled = enabled

    def collect(self, trace: Trace) -> None:
        if not self.enabled or not isinstance(trace, Trace):
            return
        if any(not accept(trace) for accept in self._filters):
            return
        with self._lock:
            self._traces.append(trace)

    # Configuration

    def add_filter(self, predicate: TraceFilter) -> None:
        self._filters.append(predicate)

    def clear_filters(self) -> None:
        self._filters.clear()

    def enable(self) -> None:
        self.enabled = True

    def disable(self) -> None:
        self.enabled = False

    def clear(self) -> None:
        with self._lock:
            self._traces.clear()

    # Views

    @property
    def traces(self) -> list[Trace]:
        with self._lock:
            return list(self._traces)

    def __len__(self) -> int:
        return len(self._traces)

    def __iter__(self) -> Iterator[Trace]:
        return iter(self.traces)

    @property
    def empty(self) -> bool:
        return not self._traces

    def recent(self, count: int = 10) -> list[Trace]:
        if count <= 0:
            return []
        return self.traces[-count:]

    def by_module(self, module_name: str) -> list[Trace]:
        return [t for t in self.traces if t.module_name == module_name]

    filter_by_module = by_module

    def filter_by_success(self, success: bool = True) -> list[Trace]:
        return [t for t in self.traces if t.success == bool(success)]

    def filter_by_time_range(self, start: float, end: float) -> list[Trace]:
        return [t for t in self.traces if start <= t.timestamp <= end]

    def successful(self) -> list[Trace]:
        return self.filter_by_success(True)

    def failed(self) -> list[Trace]:
        return self.filter_by_success(False)

    def to_examples(self) -> list[Example]:
        return [t.to_example() for t in self.traces]

    def export(self) -> list[dict[str, Any]]:
        return [t.to_dict() for t in self.traces]

    def statistics(self) -> dict[str, Any]:
        """Aggregate counts and durations, recomputed from the current traces."""
        traces = self.traces
        if not traces:
            return {"total_traces": 0, "success_rate": 0.0, "average_duration_ms": 0.0, "by_module": {}}

        total = len(traces)
        successful = sum(1 for t in traces if t.success)

        grouped: dict[str, list[Trace]] = {}
        for t in traces:
            grouped.setdefault(t.module_name, []).append(t)

        by_module = {}
        for name, module_traces in grouped.items():
            durations = [t.duration_ms for t in module_traces]
            by_module[name] = {
                "count": len(module_traces),
                "avg_duration_ms": sum(durations) / len(durations),
            }

        durations = [t.duration_ms for t in traces]
        return {
            "total_traces": total,
            "success_rate": successful / total,
            "average_duration_ms": sum(durations) / len(durations),
            "by_module": by_module,
        }


@dataclass
class _Frame:
    module_name: str
    signature: Any
    inputs: dict[str, Any]
    start: float
    metadata: dict[str, Any] = field(default_factory=dict)


class TraceContext:
    """Per-thread stack of in-flight frames bound to a collector."""

    def __init__(self, collector: TraceCollector | None = None):
        self.collector = collector if collector is not None else TraceCollector()
        self._local = threading.local()

    def _stack(self) -> list[_Frame]:
        stack = getattr(self._local, "stack", None)
        if stack is None:
            stack = self._local.stack = []
        return stack

    @property
    def depth(self) -> int:
        return len(self._stack())

    def start_trace(self, module_name: str, signature: Any = None, inputs: Mapping[str, Any] | None = None) -> None:
        self._stack().append(
            _Frame(module_name=module_name, signature=signature, inputs=dict(inputs or {}), start=time.perf_counter())
        )

    def add_metadata(self, metadata: Mapping[str, Any]) -> None:
        stack = self._stack()
        if stack:
            stack[-1].metadata.update(metadata)

    def end_trace(
        self, outputs: Mapping[str, Any] | None = None, metadata: Mapping[str, Any] | None = None
    ) -> Trace | None:
        return self._finish(outputs, metadata, {"success": True})

    def record_error(
        self,
        error: BaseException,
        outputs: Mapping[str, Any] | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> Trace | None:
        return self._finish(
            outputs, metadata, {"success": False, "error": str(error), "error_kind": type(error).__name__}
        )

    def _finish(
        self, outputs: Mapping[str, Any] | None, metadata: Mapping[str, Any] | None, status: dict[str, Any]
    ) -> Trace | None:
        stack = self._stack()
        if not stack:
            return None
        frame = stack.pop()
        combined = {**frame.metadata, **(metadata or {}), "duration": time.perf_counter() - frame.start, **status}
        trace = Trace(
            module_name=frame.module_name,
            signature=frame.signature,
            inputs=frame.inputs,
            outputs=outputs or {},
            metadata=combined,
        )
        self.collector.collect(trace)
        return trace

    def with_trace(
        self,
        module_name: str,
        signature: Any,
        inputs: Mapping[str, Any] | None,
        fn: Callable[[], T],
    ) -> T:
        self.start_trace(module_name, signature, inputs)
        try:
            outputs = fn()
        except Exception as e:
            self.record_error(e)
            raise
        self.end_trace(outputs if isinstance(outputs, Mapping) else {"result": outputs})
        return outputs


# Process-wide default, plus a context-local override for scoped collection.

_default_lock = threading.Lock()
_default_context: TraceContext | None = None
_scoped_context: ContextVar[TraceContext | None] = ContextVar("sigil_trace_context", default=None)


def init_tracing(collector: TraceCollector | None = None) -> TraceContext:
    """Install a fresh process-wide context, optionally around ``collector``."""
    global _default_context
    with _default_lock:
        _default_context = TraceContext(collector)
        return _default_context


def reset_tracing() -> TraceContext:
    return init_tracing()


def _default() -> TraceContext:
    global _default_context
    if _default_context is None:
        with _default_lock:
            if _default_context is None:
                _default_context = TraceContext()
    return _default_context


def get_trace_context() -> TraceContext:
    scoped = _scoped_context.get()
    return scoped if scoped is not None else _default()


def get_trace_collector() -> TraceCollector:
    return get_trace_context().collector


@contextmanager
def use_collector(collector: TraceCollector) -> Iterator[TraceContext]:
    """Route traces recorded in this block (on this thread/task) to ``collector``."""
    context = TraceContext(collector)
    token = _scoped_context.set(context)
    try:
        yield context
    finally:
        _scoped_context.reset(token)
