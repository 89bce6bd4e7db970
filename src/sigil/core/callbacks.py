# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa

"""Callback protocol for observing compilation runs.

Callbacks are synchronous and observational. A failing callback is logged
and never interrupts compilation.

Example usage:

    class PrintCallback:
        def on_compile_start(self, program, training_set_size):
            print(f"Compiling {program.name} on {training_set_size} examples")

        def on_compile_end(self, result):
            print(f"Done: success={result.success}")

    Compiler(callbacks=[PrintCallback()]).compile(program, trainset)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from sigil.core.result import CompilationResult
    from sigil.module import Module
    from sigil.program import Program

logger = logging.getLogger(__name__)


@runtime_checkable
class CompilationCallback(Protocol):
    """Protocol for compilation callbacks. All methods are optional."""

    def on_compile_start(self, program: Program, training_set_size: int) -> None:
        """Called after tracing is enabled and before the optimizer runs."""
        ...

    def on_module_compiled(self, name: str, module: Module) -> None:
        """Called for each module of the compiled program."""
        ...

    def on_compile_end(self, result: CompilationResult) -> None:
        """Called with the final result, successful or not."""
        ...

    def on_error(self, error: Exception) -> None:
        """Called when compilation fails, before the failed result is built."""
        ...


class CompositeCallback:
    """A callback that delegates to multiple child callbacks."""

    def __init__(self, callbacks: list[Any] | None = None):
        self.callbacks = callbacks or []

    def add(self, callback: Any) -> None:
        self.callbacks.append(callback)

    def _notify(self, method_name: str, **kwargs: Any) -> None:
        notify_callbacks(self.callbacks, method_name, **kwargs)

    def on_compile_start(self, **kwargs: Any) -> None:
        self._notify("on_compile_start", **kwargs)

    def on_module_compiled(self, **kwargs: Any) -> None:
        self._notify("on_module_compiled", **kwargs)

    def on_compile_end(self, **kwargs: Any) -> None:
        self._notify("on_compile_end", **kwargs)

    def on_error(self, **kwargs: Any) -> None:
        self._notify("on_error", **kwargs)


def notify_callbacks(callbacks: list[Any] | None, method_name: str, **kwargs: Any) -> None:
    """Invoke ``method_name`` on every callback that defines it, logging failures."""
    if callbacks is None:
        return

    for callback in callbacks:
        method = getattr(callback, method_name, None)
        if method is not None:
            try:
                method(**kwargs)
            except Exception as e:
                logger.warning(f"Callback {callback} failed on {method_name}: {e}")
