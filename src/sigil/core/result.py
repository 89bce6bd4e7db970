# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sigil.core.trace import Trace
    from sigil.program import Program


@dataclass(frozen=True)
class CompilationResult:
    """
    Immutable snapshot of one ``Compiler.compile`` run.

    - program: the optimized program, or the original one when compilation failed
    - metrics: training_set_size, traces_collected, original_modules_count,
      optimized_modules_count, success_rate/optimization_score (when traces
      exist) and compilation_duration
    - traces: traces recorded during the run
    - metadata: ``success`` plus ``optimizer`` on success, or ``error`` and
      ``error_kind`` on failure
    """

    program: Program
    metrics: dict[str, Any] = field(default_factory=dict)
    traces: tuple[Trace, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.metadata.get("success") is not False

    @property
    def optimization_score(self) -> float:
        return float(self.metrics.get("optimization_score", 0.0))

    @property
    def error(self) -> str | None:
        return self.metadata.get("error")

    def to_dict(self) -> dict[str, Any]:
        to_dict = getattr(self.program, "to_dict", None)
        return {
            "program": to_dict() if callable(to_dict) else repr(self.program),
            "metrics": dict(self.metrics),
            "traces_count": len(self.traces),
            "metadata": dict(self.metadata),
        }
