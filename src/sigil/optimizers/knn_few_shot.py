# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa

from __future__ import annotations

import zlib
from collections.abc import Mapping, Sequence
from typing import Any

import numpy as np

from sigil.core.data_loader import load_examples
from sigil.core.example import Example
from sigil.errors import OptimizerError
from sigil.module import Module
from sigil.optimizers.base import Dataset, Optimizer, input_view
from sigil.optimizers.metrics import Metric, tokenize
from sigil.program import Program

SIMILARITY_METRICS = ("cosine", "euclidean")


def _input_text(inputs: Mapping[str, Any]) -> str:
    return "\n".join(f"{k}: {v}" for k, v in inputs.items())


class HashedEmbedder:
    """Bag-of-words vectors via the hashing trick, L2-normalised."""

    def __init__(self, dimensions: int = 128):
        self.dimensions = dimensions

    def __call__(self, text: str) -> np.ndarray:
        vector = np.zeros(self.dimensions, dtype=np.float64)
        for token in tokenize(text):
            vector[zlib.crc32(token.encode("utf-8")) % self.dimensions] += 1.0
        norm = np.linalg.norm(vector)
        return vector / (norm + 1e-10)


class KNNIndex:
    def __init__(self, examples: Sequence[Example], embedder: HashedEmbedder, k: int, similarity_metric: str):
        self.examples = list(examples)
        self.embedder = embedder
        self.k = k
        self.similarity_metric = similarity_metric
        if self.examples:
            self.matrix = np.vstack([embedder(_input_text(input_view(ex))) for ex in self.examples])
        else:
            self.matrix = np.zeros((0, embedder.dimensions))

    def nearest(self, inputs: Mapping[str, Any]) -> list[Example]:
        if not self.examples:
            return []
        query = self.embedder(_input_text(inputs))
        if self.similarity_metric == "cosine":
            distances = 1.0 - self.matrix @ query
        else:
            distances = np.linalg.norm(self.matrix - query, axis=1)
        order = np.argsort(distances, kind="stable")[: self.k]
        return [self.examples[i] for i in order]

    def select(self, module: Module, inputs: Mapping[str, Any]) -> list[Example]:
        declared = {k: v for k, v in inputs.items() if k in module.signature.input_fields}
        return self.nearest(declared)


class KNNFewShot(Optimizer):
    """
    Picks demonstrations per call: the ``k`` training examples whose inputs
    are closest to the current inputs are injected through the module's
    ``demo_selector`` hook.
    """

    def __init__(
        self,
        k: int = 3,
        similarity_metric: str = "cosine",
        dimensions: int = 128,
        metric: str | Metric = "exact_match",
        **kwargs: Any,
    ):
        super().__init__(metric, **kwargs)
        if similarity_metric not in SIMILARITY_METRICS:
            raise OptimizerError(f"Unknown similarity metric: {similarity_metric}")
        if k < 1:
            raise OptimizerError("k must be >= 1")
        self.k = k
        self.similarity_metric = similarity_metric
        self.embedder = HashedEmbedder(dimensions)

    def build_index(self, examples: Dataset) -> KNNIndex:
        return KNNIndex(load_examples(examples), self.embedder, self.k, self.similarity_metric)

    def optimize_module(self, module: Module, examples: Dataset) -> Module:
        return self._attach(module, self.build_index(examples))

    def _attach(self, module: Module, index: KNNIndex) -> Module:
        optimized = module.with_demos(module.demos)
        optimized.demo_selector = index.select
        return optimized

    def compile(self, program: Program, trainset: Dataset, valset: Dataset | None = None) -> Program:
        index = self.build_index(trainset)
        self.trace_optimization("Built example index", {"examples": len(index.examples), "k": self.k})

        optimized = program.clone()
        for name, module in list(optimized.modules.items()):
            optimized.update_module(name, self._attach(module, index))

        if valset is not None and load_examples(valset):
            result = self.evaluate(optimized, valset)
            self.trace_optimization("Final validation score", {"average_score": result["average_score"]})
        return optimized
