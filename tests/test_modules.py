# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa

import pytest

from sigil.config import configure
from sigil.core.example import Example
from sigil.errors import ConfigurationError, RateLimitError
from sigil.modules.chain_of_thought import ChainOfThought
from sigil.modules.predict import Predict
from sigil.modules.react import ReAct, Tool, format_trajectory, normalize_tools, parse_tool_args


class TestPredict:
    def test_parses_typed_outputs(self, scripted_model):
        model = scripted_model("answer: Paris\nconfidence: 0.9\ntags: capital, europe")
        predict = Predict("question -> answer, confidence: float, tags: list[str]", model=model)
        result = predict.call(question="Capital of France?")

        assert result["answer"] == "Paris"
        assert result["confidence"] == 0.9
        assert result["tags"] == ["capital", "europe"]

    def test_multiline_values(self, scripted_model):
        model = scripted_model("summary: line one\nline two\nanswer: yes")
        result = Predict("text -> summary, answer", model=model).call(text="t")
        assert result["summary"] == "line one\nline two"
        assert result["answer"] == "yes"

    def test_prompt_layout(self, scripted_model):
        model = scripted_model("answer: 4")
        predict = Predict(
            'question: string "A math question" -> answer: string',
            model=model,
            demos=[Example(question="1+1", answer="2")],
        )
        predict.call(question="2+2")

        messages = model.calls[0]["messages"]
        assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
        assert "question: string \"A math question\" -> answer: string" in messages[0]["content"]
        assert "- question: A math question" in messages[0]["content"]
        assert "question: 1+1" in messages[1]["content"]
        assert messages[2]["content"] == "answer: 2"
        assert "question: 2+2" in messages[3]["content"]
        assert messages[3]["content"].endswith("answer:")

    def test_labelled_demos_use_output_suffix(self, scripted_model):
        model = scripted_model("answer: 4")
        predict = Predict(model=model, demos=[Example(question_input="1+1", answer_output="2")])
        predict.call(question="2+2")
        assert model.calls[0]["messages"][2]["content"] == "answer: 2"

    def test_model_options(self, scripted_model):
        model = scripted_model()
        Predict(model=model, config={"temperature": 0.1}).call(question="q")
        assert model.calls[0]["options"] == {"temperature": 0.1, "max_tokens": 1000, "timeout": 30.0}

    def test_usage_recorded_on_trace(self, scripted_model, collector):
        Predict(model=scripted_model()).call(question="q")
        trace = collector.traces[0]
        assert trace.module_name == "Predict"
        assert trace.metadata["usage"]["total_tokens"] == 5
        assert trace.metadata["model"] == "scripted"

    def test_transient_model_errors_are_retried(self, scripted_model):
        model = scripted_model([RateLimitError("429 too many requests"), "answer: ok"])
        assert Predict(model=model).call(question="q")["answer"] == "ok"
        assert len(model.calls) == 2

    def test_requires_a_model(self):
        with pytest.raises(ConfigurationError):
            Predict()

    def test_uses_default_model(self, scripted_model):
        model = scripted_model("answer: default")
        configure(default_model=model)
        assert Predict().call(question="q")["answer"] == "default"


class TestChainOfThought:
    def test_reasoning_comes_first(self, scripted_model):
        model = scripted_model("reasoning: France's capital is Paris.\nanswer: Paris")
        cot = ChainOfThought("question -> answer", model=model)
        result = cot.call(question="Capital of France?")

        assert cot.signature.output_names == ["reasoning", "answer"]
        assert str(cot.original_signature) == "question: string -> answer: string"
        assert result["reasoning"] == "France's capital is Paris."
        assert result["answer"] == "Paris"
        assert "step by step" in model.calls[0]["messages"][0]["content"]

    def test_reasoning_is_optional(self, scripted_model):
        result = ChainOfThought(model=scripted_model("answer: 42")).call(question="q")
        assert result["answer"] == "42"
        assert result.get("reasoning") is None


def search(query):
    """Look up a fact."""
    return {"France": "Paris is the capital of France"}.get(query, "nothing found")


class TestReAct:
    def test_tool_loop(self, scripted_model, collector):
        model = scripted_model(
            [
                'next_thought: I should search\nnext_tool_name: search\nnext_tool_args: {"query": "France"}',
                "next_thought: I know it\nnext_tool_name: finish",
                "reasoning: found it\nanswer: Paris",
            ]
        )
        react = ReAct("question -> answer", tools=[search], model=model)
        result = react.call(question="Capital of France?")

        assert result["answer"] == "Paris"
        trajectory = result.metadata["trajectory"]
        assert result.metadata["iterations"] == 2
        assert trajectory[0]["tool"] == "search"
        assert trajectory[0]["args"] == {"query": "France"}
        assert trajectory[0]["observation"] == "Paris is the capital of France"
        assert trajectory[1]["tool"] == "finish"
        assert "Observation: Paris is the capital of France" in model.calls[1]["messages"][-1]["content"]
        assert [t.module_name for t in collector][-1] == "ReAct"

    def test_tool_errors_become_observations(self, scripted_model):
        def broken(**kwargs):
            raise RuntimeError("service down")

        model = scripted_model(
            [
                "next_thought: try it\nnext_tool_name: broken",
                "next_thought: try again\nnext_tool_name: missing_tool",
                "next_thought: give up\nnext_tool_name: finish",
                "answer: unknown",
            ]
        )
        result = ReAct("question -> answer", tools=[("broken", broken)], model=model).call(question="q")
        trajectory = result.metadata["trajectory"]
        assert trajectory[0]["observation"] == "Error: service down"
        assert trajectory[1]["observation"] == "Error: Unknown tool: missing_tool"
        assert result["answer"] == "unknown"

    def test_iterations_are_bounded(self, scripted_model):
        model = scripted_model(
            ["next_thought: again\nnext_tool_name: search\nnext_tool_args: query: Peru"] * 3 + ["answer: none"]
        )
        result = ReAct("question -> answer", tools=[search], max_iterations=3, model=model).call(question="q")
        assert result.metadata["iterations"] == 3
        assert len(model.calls) == 4
        assert result.metadata["trajectory"][0]["observation"] == "nothing found"

    def test_finish_tool_is_always_available(self, scripted_model):
        react = ReAct("question -> answer", model=scripted_model())
        assert list(react.tools) == ["finish"]
        assert "'finish'" in str(react.react_module.signature)

    def test_invalid_configuration(self, scripted_model):
        with pytest.raises(ConfigurationError):
            ReAct("question -> answer")
        with pytest.raises(ConfigurationError):
            ReAct("question -> answer", model=scripted_model(), max_iterations=0)
        with pytest.raises(ConfigurationError):
            ReAct("question -> answer", tools=[42], model=scripted_model())


class TestReActHelpers:
    def test_tool_argument_shapes(self):
        tool = Tool("add", lambda a=0, b=0: a + b)
        assert tool({"a": 1, "b": 2}) == 3
        assert tool([4, 5]) == 9
        assert tool(None) == 0
        assert Tool("echo", lambda x: x)("raw") == "raw"

    def test_normalize_tools(self):
        tools = normalize_tools([search, {"name": "calc", "function": eval, "description": "math"}])
        assert list(tools) == ["search", "calc", "finish"]
        assert tools["search"].description == "Look up a fact."

    def test_parse_tool_args(self):
        assert parse_tool_args('{"a": 1}') == {"a": 1}
        assert parse_tool_args("a: 1, b = true, c: 'x'") == {"a": 1, "b": True, "c": "x"}
        assert parse_tool_args("just text") == "just text"
        assert parse_tool_args("") == {}
        assert parse_tool_args(None) == {}

    def test_format_trajectory(self):
        assert format_trajectory([]) == "No actions taken yet."
        text = format_trajectory([{"thought": "t", "tool": "search", "args": {"q": 1}, "observation": "o"}])
        assert text == 'Step 1:\nThought: t\nTool: search\nArgs: {"q": 1}\nObservation: o'
