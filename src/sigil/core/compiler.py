# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa

from __future__ import annotations

import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from sigil.config import build_config
from sigil.core.callbacks import notify_callbacks
from sigil.core.data_loader import DataLoader, ExampleLike, load_examples
from sigil.core.example import Example
from sigil.core.result import CompilationResult
from sigil.core.trace import TraceCollector, get_trace_collector, use_collector
from sigil.errors import ConfigurationError, OptimizerError
from sigil.logging.logger import LoggerProtocol, StdOutLogger
from sigil.logging.utils import log_compilation_summary
from sigil.module import Module
from sigil.program import Program

logger = logging.getLogger(__name__)


@runtime_checkable
class CompilingOptimizer(Protocol):
    """What the compiler needs from an optimizer: a single ``compile`` entry point."""

    def compile(self, program: Program, trainset: Any, valset: Any = None) -> Program: ...


@dataclass(slots=True)
class CompilerConfig:
    clear_traces: bool = True
    restore_trace_state: bool = True
    max_demos: int = 5
    evaluate_metrics: bool = True


class Compiler:
    """
    Turns a program plus a training set into an optimized program.

    ``compile`` never raises: failures come back as an unsuccessful
    ``CompilationResult`` carrying the original program and the error.
    Modules have tracing forced on for the run and their previous flags
    restored afterwards.
    """

    def __init__(
        self,
        optimizer: CompilingOptimizer | None = None,
        trace_collector: TraceCollector | None = None,
        config: CompilerConfig | Mapping[str, Any] | None = None,
        callbacks: list[Any] | None = None,
        logger: LoggerProtocol | None = None,
    ):
        if optimizer is not None and not isinstance(optimizer, CompilingOptimizer):
            raise ConfigurationError(
                f"Optimizer {type(optimizer).__name__} must implement compile(program, trainset, valset)"
            )
        self.optimizer = optimizer
        self.trace_collector = trace_collector if trace_collector is not None else get_trace_collector()
        self.config: CompilerConfig = build_config(CompilerConfig, config)
        self.callbacks = callbacks
        self.logger: LoggerProtocol = logger or StdOutLogger()
        self._compilation_stack: list[dict[str, Any]] = []

    def compile(
        self,
        program: Program,
        training_set: Sequence[ExampleLike] | DataLoader | None = None,
        valset: Sequence[ExampleLike] | DataLoader | None = None,
    ) -> CompilationResult:
        self._compilation_stack.append({"program": program, "start": time.perf_counter()})
        prior_flags = {name: module.trace_enabled for name, module in getattr(program, "modules", {}).items()}
        optimized: Program | None = None
        metrics: dict[str, Any] = {}

        try:
            with use_collector(self.trace_collector):
                examples = load_examples(training_set)
                metrics["training_set_size"] = len(examples)
                if self.config.clear_traces:
                    self.trace_collector.clear()

                for module in program.modules.values():
                    module.enable_trace()
                notify_callbacks(
                    self.callbacks, "on_compile_start", program=program, training_set_size=len(examples)
                )

                if self.optimizer is not None:
                    optimized = self.optimizer.compile(program, examples, valset)
                    if not isinstance(optimized, Program):
                        raise OptimizerError(
                            f"{type(self.optimizer).__name__}.compile returned {type(optimized).__name__}, "
                            "expected a Program"
                        )
                else:
                    optimized = self._compile_without_optimizer(program, examples)

                for name, module in optimized.modules.items():
                    notify_callbacks(self.callbacks, "on_module_compiled", name=name, module=module)

                metrics = self._collect_metrics(program, optimized, examples)
            result_program, metadata = optimized, {
                "success": True,
                "optimizer": type(self.optimizer).__name__ if self.optimizer is not None else None,
            }
        except Exception as e:
            logger.error(f"Compilation failed: {e}")
            notify_callbacks(self.callbacks, "on_error", error=e)
            result_program, metadata = program, {
                "success": False,
                "error": str(e),
                "error_kind": type(e).__name__,
            }
        finally:
            if self.config.restore_trace_state:
                self._restore_trace_flags(program, prior_flags)
                if optimized is not None and optimized is not program:
                    self._restore_trace_flags(optimized, prior_flags)

        frame = self._compilation_stack.pop()
        metrics["compilation_duration"] = time.perf_counter() - frame["start"]
        result = CompilationResult(
            program=result_program,
            metrics=metrics,
            traces=tuple(self.trace_collector.traces),
            metadata=metadata,
        )
        notify_callbacks(self.callbacks, "on_compile_end", result=result)
        try:
            log_compilation_summary(self.logger, result)
        except Exception as e:
            logger.warning(f"Compilation summary logger failed: {e}")
        return result

    def compile_module(self, module: Module, examples: Sequence[ExampleLike] | DataLoader | None = None) -> Module:
        """Attach up to ``max_demos`` examples as demonstrations; no examples means no change."""
        demos = load_examples(examples)
        if not demos:
            return module
        return module.with_demos(demos[: self.config.max_demos])

    def _compile_without_optimizer(self, program: Program, examples: list[Example]) -> Program:
        if not examples:
            return program
        compiled = program.clone()
        for name, module in list(compiled.modules.items()):
            input_names = set(module.signature.input_fields)
            relevant = [ex for ex in examples if input_names.intersection(ex.inputs)]
            compiled.update_module(name, self.compile_module(module, relevant))
        return compiled

    def _collect_metrics(self, original: Program, optimized: Program, examples: list[Example]) -> dict[str, Any]:
        if not self.config.evaluate_metrics:
            return {}
        total = len(self.trace_collector)
        metrics: dict[str, Any] = {
            "training_set_size": len(examples),
            "traces_collected": total,
            "original_modules_count": len(original.modules),
            "optimized_modules_count": len(optimized.modules),
        }
        if total > 0:
            success_rate = len(self.trace_collector.successful()) / total
            metrics["success_rate"] = success_rate
            metrics["optimization_score"] = success_rate
        return metrics

    @staticmethod
    def _restore_trace_flags(program: Program, flags: Mapping[str, bool]) -> None:
        for name, module in getattr(program, "modules", {}).items():
            if name not in flags:
                continue
            if flags[name]:
                module.enable_trace()
            else:
                module.disable_trace()


class CompilerBuilder:
    """Fluent construction: ``CompilerBuilder().with_optimizer(opt).with_config(max_demos=3).build()``."""

    def __init__(self):
        self._optimizer: CompilingOptimizer | None = None
        self._trace_collector: TraceCollector | None = None
        self._config: dict[str, Any] = {}
        self._callbacks: list[Any] = []
        self._logger: LoggerProtocol | None = None

    def with_optimizer(self, optimizer: CompilingOptimizer) -> CompilerBuilder:
        self._optimizer = optimizer
        return self

    def with_trace_collector(self, collector: TraceCollector) -> CompilerBuilder:
        self._trace_collector = collector
        return self

    def with_config(self, config: Mapping[str, Any] | None = None, **overrides: Any) -> CompilerBuilder:
        self._config.update(config or {})
        self._config.update(overrides)
        return self

    def with_callback(self, callback: Any) -> CompilerBuilder:
        self._callbacks.append(callback)
        return self

    def with_logger(self, logger: LoggerProtocol) -> CompilerBuilder:
        self._logger = logger
        return self

    def build(self) -> Compiler:
        return Compiler(
            optimizer=self._optimizer,
            trace_collector=self._trace_collector,
            config=self._config,
            callbacks=self._callbacks or None,
            logger=self._logger,
        )
