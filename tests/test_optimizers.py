# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa

from unittest.mock import Mock

import numpy as np
import pytest

from sigil.core.data_loader import ListDataLoader
from sigil.core.example import Example
from sigil.errors import ConfigurationError, InsufficientDataError, OptimizerError
from sigil.module import Module
from sigil.optimizers.base import OptimizerConfig, input_view
from sigil.optimizers.bootstrap_few_shot import BootstrapFewShot, jaccard
from sigil.optimizers.knn_few_shot import HashedEmbedder, KNNFewShot
from sigil.program import Program


class Capital(Module):
    """Knows a few capitals; fails loudly on unknown countries."""

    KNOWN = {"france": "Paris", "italy": "Rome", "spain": "Madrid", "japan": "Tokyo"}

    def forward(self, question):
        for country, capital in self.KNOWN.items():
            if country in question.lower():
                return {"answer": capital}
        raise LookupError(f"no idea about {question}")


class QA(Program):
    def setup_modules(self):
        self.add_module("qa", Capital("question -> answer"))

    def forward(self, question):
        return self.run_module("qa", question=question)


TRAINSET = [
    {"question": "What is the capital of France?", "answer": "Paris"},
    {"question": "What is the capital of Italy?", "answer": "Rome"},
    {"question": "Capital city of Spain?", "answer": "Barcelona"},
    {"question": "What is the capital of Peru?", "answer": "Lima"},
]


def quiet(**overrides):
    return {"logger": Mock(), **overrides}


class TestOptimizerBase:
    def test_config_overrides(self):
        optimizer = BootstrapFewShot(max_bootstrapped_demos=2, **quiet())
        assert optimizer.config.max_bootstrapped_demos == 2
        assert optimizer.config.max_labeled_demos == OptimizerConfig().max_labeled_demos

    def test_unknown_override(self):
        with pytest.raises(ConfigurationError):
            BootstrapFewShot(max_demos=2, **quiet())

    def test_invalid_metric(self):
        with pytest.raises(OptimizerError):
            BootstrapFewShot(metric=42, **quiet())

    def test_unknown_metric_fails_on_use(self):
        optimizer = BootstrapFewShot(metric="bleu", **quiet())
        with pytest.raises(OptimizerError):
            optimizer.score_prediction({"answer": "a"}, {"answer": "a"})

    def test_evaluate(self):
        result = BootstrapFewShot(**quiet()).evaluate(QA(), TRAINSET)
        # Paris and Rome match, Barcelona is wrong, Peru raises
        assert result["scores"] == [1.0, 1.0, 0.0, 0.0]
        assert result["average_score"] == 0.5
        assert result["total"] == 4

    def test_evaluate_hides_answers_from_program(self):
        module = Mock()
        module.call.return_value = {"answer": "x"}
        BootstrapFewShot(**quiet()).evaluate(module, [{"question": "q", "answer": "x"}])
        module.call.assert_called_once_with({"question": "q"})

    def test_evaluate_empty_dataset(self):
        with pytest.raises(InsufficientDataError):
            BootstrapFewShot(**quiet()).evaluate(QA(), [])

    def test_trace_optimization_logs(self):
        logger = Mock()
        optimizer = BootstrapFewShot(logger=logger)
        optimizer.trace_optimization("Step", {"n": 1})
        logger.log.assert_called_once_with("[BootstrapFewShot] Step: {'n': 1}")
        assert optimizer.optimization_trace[0]["step"] == "Step"

    def test_input_view_drops_answers(self):
        assert input_view({"question": "q", "answer": "a", "output": "o"}) == {"question": "q"}


class TestBootstrapFewShot:
    def test_bootstraps_only_passing_predictions(self):
        optimizer = BootstrapFewShot(max_labeled_demos=0, **quiet())
        demos = optimizer.bootstrap_demonstrations(Capital("question -> answer"), [Example(t) for t in TRAINSET])
        assert [d.example["answer"] for d in demos] == ["Paris", "Rome"]
        assert all(set(d.example.keys()) == {"question", "answer"} for d in demos)

    def test_stops_after_max_errors(self):
        module = Capital("question -> answer")
        failing = [Example(question=f"Where is nowhere {i}?", answer="?") for i in range(10)]
        optimizer = BootstrapFewShot(max_errors=3, **quiet())
        with pytest.MonkeyPatch.context() as mp:
            calls = []
            original = module.call
            mp.setattr(module, "call", lambda inputs: calls.append(inputs) or original(inputs))
            assert optimizer.bootstrap_demonstrations(module, failing) == []
        assert len(calls) == 3

    def test_compile_attaches_demos_to_a_clone(self):
        program = QA()
        optimizer = BootstrapFewShot(max_bootstrapped_demos=2, max_labeled_demos=0, **quiet())
        optimized = optimizer.compile(program, TRAINSET)

        assert optimized is not program
        assert program.modules["qa"].demos == []
        assert [d["answer"] for d in optimized.modules["qa"].demos] == ["Paris", "Rome"]

    def test_diversity_filter_drops_near_duplicates(self):
        examples = [
            Example(question="What is the capital of France?", answer="Paris"),
            Example(question="What is the capital of France ?", answer="Paris"),
            Example(question="Name the largest ocean", answer="Pacific"),
        ]
        optimizer = BootstrapFewShot(max_bootstrapped_demos=3, **quiet())
        selected = optimizer.select_demonstrations(Capital("question -> answer"), [], examples)
        assert [d["answer"] for d in selected] == ["Paris", "Pacific"]

    def test_labeled_examples_fill_remaining_slots(self):
        optimizer = BootstrapFewShot(max_bootstrapped_demos=3, **quiet())
        module = optimizer.optimize_module(Capital("question -> answer"), TRAINSET)
        answers = [d["answer"] for d in module.demos]
        assert len(answers) == 3
        assert answers[:2] == ["Paris", "Rome"]

    def test_jaccard(self):
        assert jaccard("a b c", "a b c") == 1.0
        assert jaccard("a b", "c d") == 0.0
        assert jaccard("", "a") == 0.0

    def test_accepts_data_loader(self):
        optimizer = BootstrapFewShot(max_labeled_demos=0, **quiet())
        module = optimizer.optimize_module(Capital("question -> answer"), ListDataLoader(TRAINSET))
        assert len(module.demos) == 2


class TestKNNFewShot:
    def test_embedder_is_normalised(self):
        vector = HashedEmbedder(dimensions=32)("the quick brown fox")
        assert vector.shape == (32,)
        assert np.linalg.norm(vector) == pytest.approx(1.0)

    def test_nearest_examples(self):
        optimizer = KNNFewShot(k=1, dimensions=4096, **quiet())
        index = optimizer.build_index(TRAINSET)
        nearest = index.nearest({"question": "Tell me the capital of Italy"})
        assert nearest[0]["answer"] == "Rome"

    def test_queries_leave_no_state_on_the_embedder(self):
        optimizer = KNNFewShot(k=1, dimensions=64, **quiet())
        index = optimizer.build_index(TRAINSET)
        for i in range(200):
            index.nearest({"question": f"distinct question {i}"})
        assert vars(optimizer.embedder) == {"dimensions": 64}
        assert index.matrix.shape == (len(TRAINSET), 64)

    def test_euclidean(self):
        optimizer = KNNFewShot(k=2, similarity_metric="euclidean", dimensions=4096, **quiet())
        nearest = optimizer.build_index(TRAINSET).nearest({"question": "capital of France"})
        assert len(nearest) == 2
        assert nearest[0]["answer"] == "Paris"

    def test_demos_are_selected_per_call(self):
        seen = []

        class Spy(Module):
            def forward(self, question):
                seen.append(self.active_demos({"question": question})[0]["answer"])
                return {"answer": "x"}

        module = KNNFewShot(k=1, dimensions=4096, **quiet()).optimize_module(Spy("question -> answer"), TRAINSET)
        module.call(question="capital of Spain please")
        module.call(question="capital of France please")
        assert seen == ["Barcelona", "Paris"]

    def test_compile_clones_program(self):
        program = QA()
        optimized = KNNFewShot(k=2, **quiet()).compile(program, TRAINSET)
        assert optimized is not program
        assert program.modules["qa"].demo_selector is None
        assert optimized.modules["qa"].demo_selector is not None

    def test_empty_index(self):
        assert KNNFewShot(**quiet()).build_index([]).nearest({"question": "x"}) == []

    def test_invalid_parameters(self):
        with pytest.raises(OptimizerError):
            KNNFewShot(similarity_metric="manhattan", **quiet())
        with pytest.raises(OptimizerError):
            KNNFewShot(k=0, **quiet())
