# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa

from __future__ import annotations

import copy
import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

from sigil.config import build_config
from sigil.errors import ProgramError
from sigil.module import Module, ModuleResult

if TYPE_CHECKING:
    from sigil.core.example import Example
    from sigil.core.result import CompilationResult

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ProgramConfig:
    max_iterations: int = 10
    early_stopping: bool = True
    # Record each run_module call in the result metadata
    trace_execution: bool = True


class ProgramResult(ModuleResult):
    @property
    def trace(self) -> list[dict[str, Any]]:
        return self.metadata.get("trace", [])

    @property
    def execution_time(self) -> float | None:
        return self.metadata.get("execution_time")

    def __repr__(self) -> str:
        return f"ProgramResult({self.outputs!r})"


class Program:
    """
    A pipeline of named modules.

    Subclasses register modules (in ``__init__`` or by overriding
    ``setup_modules``) and implement ``forward(**inputs)``, usually calling
    ``run_module`` for each step:

        class QA(Program):
            def setup_modules(self):
                self.add_module("answer", Predict("question -> answer", model=lm))

            def forward(self, question):
                return self.run_module("answer", question=question)
    """

    def __init__(
        self,
        modules: Mapping[str, Module] | None = None,
        config: ProgramConfig | Mapping[str, Any] | None = None,
        metadata: Mapping[str, Any] | None = None,
    ):
        self.modules: dict[str, Module] = {}
        self.config: ProgramConfig = build_config(ProgramConfig, config)
        self.metadata = dict(metadata or {})
        self._execution_trace: list[dict[str, Any]] = []
        for name, module in (modules or {}).items():
            self.add_module(name, module)
        self.setup_modules()

    def setup_modules(self) -> None:
        pass

    @property
    def name(self) -> str:
        return type(self).__name__

    # Module registry

    def add_module(self, name: str, module: Module) -> Program:
        if not isinstance(module, Module):
            raise ProgramError(f"Module {name!r} must be a Module instance, got {type(module).__name__}")
        self.modules[name] = module
        return self

    def update_module(self, name: str, module: Module) -> Program:
        if name not in self.modules:
            raise ProgramError(f"Unknown module: {name}")
        return self.add_module(name, module)

    def run_module(self, name: str, inputs: Mapping[str, Any] | None = None, **kwargs: Any) -> ModuleResult:
        if name not in self.modules:
            raise ProgramError(f"Unknown module: {name}")
        provided = {**(inputs or {}), **kwargs}
        result = self.modules[name].call(provided)
        if self.config.trace_execution:
            self._execution_trace.append(
                {"module": name, "inputs": provided, "outputs": result.to_dict(), "timestamp": time.time()}
            )
        return result

    # Execution

    def forward(self, **inputs: Any) -> Mapping[str, Any]:
        raise NotImplementedError("Subclasses must implement forward()")

    def call(self, inputs: Mapping[str, Any] | None = None, **kwargs: Any) -> ProgramResult:
        self._execution_trace = []
        start = time.perf_counter()
        try:
            outputs = self.forward(**{**(inputs or {}), **kwargs})
        except Exception as e:
            logger.error(f"Program execution failed: {e}")
            raise ProgramError(f"Program execution failed: {e}", original_error=e) from e

        if not isinstance(outputs, Mapping):
            outputs = {"result": outputs}
        return ProgramResult(
            outputs,
            metadata={
                "execution_time": time.perf_counter() - start,
                "trace": list(self._execution_trace),
                "program_name": self.name,
            },
        )

    __call__ = call

    # Lifecycle

    def clone(self) -> Program:
        """Copy with independent modules (demos, counters); models are shared."""
        clone = copy.copy(self)
        clone.modules = {name: module.with_demos(module.demos) for name, module in self.modules.items()}
        clone.config = copy.copy(self.config)
        clone.metadata = dict(self.metadata)
        clone._execution_trace = []
        return clone

    def reset(self) -> None:
        for module in self.modules.values():
            module.reset()
        self._execution_trace = []

    def optimize(
        self,
        optimizer: Any,
        trainset: Sequence[Example | Mapping[str, Any]],
        valset: Sequence[Example | Mapping[str, Any]] | None = None,
    ) -> Program | CompilationResult:
        return optimizer.compile(self, trainset, valset)

    def to_dict(self) -> dict[str, Any]:
        return {
            "class": self.name,
            "modules": {name: module.to_dict() for name, module in self.modules.items()},
            "config": asdict(self.config),
            "metadata": dict(self.metadata),
        }

    def __repr__(self) -> str:
        return f"{self.name}(modules={list(self.modules)})"
