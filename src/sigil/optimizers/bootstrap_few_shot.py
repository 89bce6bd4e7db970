# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sigil.core.data_loader import load_examples
from sigil.core.example import Example
from sigil.module import Module
from sigil.optimizers.base import ANSWER_KEYS, Dataset, Optimizer, input_view
from sigil.optimizers.metrics import tokenize
from sigil.program import Program

logger = logging.getLogger(__name__)

SIMILARITY_CUTOFF = 0.8


@dataclass
class Demo:
    example: Example
    score: float
    text: str


def jaccard(a: str, b: str) -> float:
    tokens_a = set(tokenize(a))
    tokens_b = set(tokenize(b))
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / len(tokens_a | tokens_b)


def _input_text(inputs: dict[str, Any]) -> str:
    return "\n".join(f"{k}: {v}" for k, v in inputs.items())


class BootstrapFewShot(Optimizer):
    """
    Runs each module over the training set and keeps the predictions that
    score at least ``score_threshold`` as demonstrations, topped up with
    labeled training examples. Near-duplicate inputs (token Jaccard above
    0.8) are dropped so the selected demos stay diverse.
    """

    def compile(self, program: Program, trainset: Dataset, valset: Dataset | None = None) -> Program:
        examples = load_examples(trainset)
        validation = load_examples(valset) if valset is not None else []
        self.trace_optimization(
            "Starting optimization", {"trainset_size": len(examples), "valset_size": len(validation)}
        )

        optimized = program.clone()
        for name, module in list(optimized.modules.items()):
            self.trace_optimization("Processing module", {"name": name})
            optimized.update_module(name, self.optimize_module(module, examples))

        if validation:
            result = self.evaluate(optimized, validation)
            self.trace_optimization("Final validation score", {"average_score": result["average_score"]})
        return optimized

    def optimize_module(self, module: Module, examples: Dataset) -> Module:
        examples = load_examples(examples)
        self.trace_optimization(
            "Optimizing module", {"module": module.name, "examples_available": len(examples)}
        )
        bootstrapped = self.bootstrap_demonstrations(module, examples)
        return module.with_demos(self.select_demonstrations(module, bootstrapped, examples))

    def bootstrap_demonstrations(self, module: Module, examples: list[Example]) -> list[Demo]:
        demos: list[Demo] = []
        errors = 0
        for example in examples:
            if len(demos) >= self.config.max_bootstrapped_demos or errors >= self.config.max_errors:
                break
            inputs = input_view(example)
            try:
                prediction = module.call(inputs)
            except Exception as e:
                logger.warning(f"Bootstrap call failed for {module.name}: {e}")
                self.trace_optimization("Error during bootstrap", {"error": str(e)})
                errors += 1
                continue

            score = self.score_prediction(prediction, example)
            if score >= self.config.score_threshold:
                declared = {k: v for k, v in inputs.items() if k in module.signature.input_fields}
                demos.append(Demo(Example({**declared, **prediction}), score, _input_text(declared)))
            else:
                errors += 1
        return demos

    def select_demonstrations(
        self, module: Module, bootstrapped: list[Demo], examples: list[Example]
    ) -> list[Example]:
        labeled = [
            ex for ex in examples if any(ex.get(k) is not None for k in ANSWER_KEYS) or ex.labels
        ][: self.config.max_labeled_demos]
        candidates = bootstrapped + [Demo(ex, 1.0, _input_text(input_view(ex))) for ex in labeled]

        remaining = sorted(candidates, key=lambda d: -d.score)
        selected: list[Demo] = []
        while remaining and len(selected) < self.config.max_bootstrapped_demos:
            best = remaining.pop(0)
            selected.append(best)
            remaining = [d for d in remaining if jaccard(d.text, best.text) <= SIMILARITY_CUTOFF]
        return [d.example for d in selected]
