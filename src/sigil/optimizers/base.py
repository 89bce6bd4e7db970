# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Any

from tqdm import tqdm

from sigil.config import build_config, checked_overrides
from sigil.core.data_loader import DataLoader, ExampleLike, load_examples
from sigil.core.example import Example
from sigil.errors import InsufficientDataError, OptimizerError
from sigil.logging.logger import LoggerProtocol, StdOutLogger
from sigil.module import Module
from sigil.optimizers.metrics import Metric, resolve_metric
from sigil.program import Program

logger = logging.getLogger(__name__)

# Keys treated as ground truth and hidden from the program during evaluation
ANSWER_KEYS = frozenset({"answer", "output"})

Dataset = Sequence[ExampleLike] | DataLoader


@dataclass(slots=True)
class OptimizerConfig:
    max_bootstrapped_demos: int = 3
    max_labeled_demos: int = 16
    max_errors: int = 5
    num_candidates: int = 1
    stop_at_score: float = 1.0
    # Minimum metric score for a bootstrapped prediction to become a demo
    score_threshold: float = 0.5
    failure_score: float = 0.0
    display_progress_bar: bool = False


def input_view(example: ExampleLike) -> dict[str, Any]:
    """Inputs of an example with answer/output keys removed."""
    return {k: v for k, v in Example.from_value(example).inputs.items() if k not in ANSWER_KEYS}


class Optimizer(ABC):
    """
    Base class for demonstration-selection strategies.

    Subclasses implement ``compile`` (whole program) and ``optimize_module``
    (single module). ``metric`` is a registered metric name or any callable
    ``(prediction, ground_truth) -> float``; names are resolved on first use.
    """

    def __init__(
        self,
        metric: str | Metric = "exact_match",
        config: OptimizerConfig | Mapping[str, Any] | None = None,
        logger: LoggerProtocol | None = None,
        **overrides: Any,
    ):
        if not isinstance(metric, str) and not callable(metric):
            raise OptimizerError("Metric must be a metric name or a callable")
        self.metric = metric
        self.config: OptimizerConfig = build_config(OptimizerConfig, config)
        if overrides:
            self.config = replace(self.config, **checked_overrides(OptimizerConfig, overrides))
        self.logger: LoggerProtocol = logger or StdOutLogger()
        self.optimization_trace: list[dict[str, Any]] = []

    @abstractmethod
    def compile(self, program: Program, trainset: Dataset, valset: Dataset | None = None) -> Program: ...

    @abstractmethod
    def optimize_module(self, module: Module, examples: Dataset) -> Module: ...

    def score_prediction(self, prediction: Any, ground_truth: Any) -> float:
        return float(resolve_metric(self.metric)(prediction, ground_truth))

    def evaluate(self, program: Program | Module, dataset: Dataset) -> dict[str, Any]:
        examples = load_examples(dataset)
        if not examples:
            raise InsufficientDataError("Cannot evaluate on an empty dataset")

        scores: list[float] = []
        for example in tqdm(
            examples, desc="Evaluating", disable=not self.config.display_progress_bar, total=len(examples)
        ):
            try:
                prediction = program.call(input_view(example))
            except Exception as e:
                logger.warning(f"Evaluation failed for {example!r}: {e}")
                scores.append(self.config.failure_score)
                continue
            scores.append(self.score_prediction(prediction, example))

        return {"average_score": sum(scores) / len(scores), "scores": scores, "total": len(scores)}

    def trace_optimization(self, step: str, details: Mapping[str, Any] | None = None) -> None:
        details = dict(details or {})
        self.optimization_trace.append({"step": step, "timestamp": time.time(), "details": details})
        self.logger.log(f"[{type(self).__name__}] {step}: {details}")
