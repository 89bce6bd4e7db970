# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa

"""
Scoring functions ``(prediction, ground_truth) -> float``.

``confidence`` and ``consistency`` are placeholder heuristics that blend
exact match with a fixed floor; they are not probabilities.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Callable, Mapping
from typing import Any

from sigil.core.example import Example
from sigil.errors import OptimizerError

Metric = Callable[[Any, Any], float]

ANSWER_KEYS = ("answer", "output", "result")


def extract_answer(data: Any) -> Any:
    """Pick the answer out of a result: ``answer``, ``output``, ``result``, else the first value."""
    if isinstance(data, Example):
        labels = data.labels
        for key in ANSWER_KEYS:
            value = data.get(key)
            if value is None:
                value = labels.get(key)
            if value is not None:
                return value
        return next(iter(data.values()), None)
    if isinstance(data, Mapping) or (hasattr(data, "get") and hasattr(data, "values")):
        for key in ANSWER_KEYS:
            value = data.get(key)
            if value is not None:
                return value
        return next(iter(data.values()), None)
    return data


def tokenize(text: Any) -> list[str]:
    return [token for token in re.split(r"\W+", str(text).lower()) if token]


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip().lower()


def exact_match(prediction: Any, ground_truth: Any) -> float:
    return 1.0 if _text(extract_answer(prediction)) == _text(extract_answer(ground_truth)) else 0.0


def accuracy(prediction: Any, ground_truth: Any) -> float:
    return exact_match(prediction, ground_truth)


def f1(prediction: Any, ground_truth: Any) -> float:
    predicted = tokenize(extract_answer(prediction))
    expected = tokenize(extract_answer(ground_truth))
    if not predicted or not expected:
        return 0.0
    overlap = sum((Counter(predicted) & Counter(expected)).values())
    if overlap == 0:
        return 0.0
    precision = overlap / len(predicted)
    recall = overlap / len(expected)
    return 2 * precision * recall / (precision + recall)


def confidence(prediction: Any, ground_truth: Any) -> float:
    return exact_match(prediction, ground_truth) * 0.9 + 0.1


def consistency(prediction: Any, ground_truth: Any) -> float:
    return exact_match(prediction, ground_truth) * 0.8 + 0.2


METRICS: dict[str, Metric] = {
    "exact_match": exact_match,
    "f1": f1,
    "accuracy": accuracy,
    "confidence": confidence,
    "consistency": consistency,
}


def resolve_metric(metric: str | Metric) -> Metric:
    if callable(metric):
        return metric
    try:
        return METRICS[metric]
    except KeyError:
        raise OptimizerError(f"Unknown metric: {metric}") from None
