# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa

import threading

import pytest

from sigil.assertions import assert_
from sigil.config import configure
from sigil.core.example import Example
from sigil.errors import (
    AssertionFailedError,
    CoercionError,
    ConfigurationError,
    ModuleError,
    RateLimitError,
    ValidationError,
)
from sigil.module import Module, ModuleConfig, ModuleResult


class EchoModule(Module):
    def forward(self, question):
        return {"answer": question}


class FailingModule(Module):
    def forward(self, question):
        raise ValueError("forward exploded")


class FlakyModule(Module):
    """Fails with the queued errors before succeeding."""

    def __init__(self, *args, errors=(), **kwargs):
        super().__init__(*args, **kwargs)
        self.errors = list(errors)
        self.attempts = 0

    def forward(self, question):
        self.attempts += 1
        if self.errors:
            raise self.errors.pop(0)
        return {"answer": question}


SIG = "question: string -> answer: string"


def test_traced_call_records_one_success(collector):
    module = EchoModule(SIG)
    result = module.call(question="hi")

    assert result["answer"] == "hi"
    assert result.answer == "hi"
    assert len(collector) == 1
    trace = collector.traces[0]
    assert trace.module_name == "EchoModule"
    assert dict(trace.inputs) == {"question": "hi"}
    assert trace.metadata["success"] is True
    assert trace.signature == SIG


def test_failed_call_records_error_trace(collector):
    module = FailingModule(SIG)
    with pytest.raises(ValueError, match="forward exploded"):
        module.call(question="hi")

    assert len(collector) == 1
    trace = collector.traces[0]
    assert trace.metadata["success"] is False
    assert trace.metadata["error"] == "forward exploded"


def test_missing_inputs_are_named(collector):
    module = EchoModule("question: string, context: string -> answer: string")
    with pytest.raises(ModuleError) as excinfo:
        module.call()
    assert excinfo.value.missing == ("question", "context")
    assert "question, context" in str(excinfo.value)
    assert collector.empty
    assert module.call_count == 0


def test_call_count_is_exact_across_threads(collector):
    module = EchoModule(SIG)

    def worker():
        for i in range(100):
            module.call(question=str(i))

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert module.call_count == 400
    counts = sorted(trace.metadata["call_count"] for trace in collector.traces)
    assert counts == list(range(1, 401))


def test_inputs_are_coerced_and_filtered():
    seen = {}

    class Recorder(Module):
        def forward(self, n, hint):
            seen.update(n=n, hint=hint)
            return {"out": str(n)}

    result = Recorder("n: int, hint?: string -> out: string").call(n="3", extra="ignored")
    assert seen == {"n": 3, "hint": None}
    assert result["out"] == "3"


def test_bad_input_type_raises_coercion_error():
    module = EchoModule("question: int -> answer: string")
    with pytest.raises(CoercionError):
        module.call(question="not a number")


def test_missing_output_is_a_validation_error():
    class Silent(Module):
        def forward(self, question):
            return {}

    with pytest.raises(ValidationError):
        Silent(SIG).call(question="hi")


def test_non_mapping_output_is_rejected():
    class Scalar(Module):
        def forward(self, question):
            return "just text"

    with pytest.raises(ValidationError):
        Scalar(SIG).call(question="hi")


def test_forward_may_return_module_result_with_metadata():
    class WithMeta(Module):
        def forward(self, question):
            return ModuleResult({"answer": question}, {"steps": 2})

    result = WithMeta(SIG).call(question="hi")
    assert result.metadata["steps"] == 2
    assert result.metadata["module"] == "WithMeta"


def test_tracing_can_be_disabled(collector):
    module = EchoModule(SIG)
    module.disable_trace()
    module.call(question="hi")
    assert collector.empty
    module.enable_trace()
    module.call(question="hi")
    assert len(collector) == 1


def test_transient_errors_are_retried(isolated_state):
    module = FlakyModule(SIG, errors=[RateLimitError("slow down"), TimeoutError("timed out")])
    assert module.call(question="hi")["answer"] == "hi"
    assert module.attempts == 3
    assert isolated_state.call_count == 2


def test_retries_are_bounded():
    module = FlakyModule(SIG, config={"max_retries": 2}, errors=[RateLimitError("a"), RateLimitError("b")])
    with pytest.raises(RateLimitError, match="b"):
        module.call(question="hi")
    assert module.attempts == 2


def test_non_transient_errors_are_not_retried():
    module = FlakyModule(SIG, errors=[KeyError("nope")])
    with pytest.raises(KeyError):
        module.call(question="hi")
    assert module.attempts == 1


def test_retry_can_be_turned_off():
    module = FlakyModule(SIG, config=ModuleConfig(retry_on_failure=False), errors=[RateLimitError("x")])
    with pytest.raises(RateLimitError):
        module.call(question="hi")
    assert module.attempts == 1


def test_failed_assertions_are_retried(collector):
    class Checked(Module):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            self.attempts = 0

        def forward(self, question):
            self.attempts += 1
            assert_(self.attempts >= 2, "answer not ready")
            return {"answer": question}

    module = Checked(SIG)
    assert module.call(question="hi")["answer"] == "hi"
    assert module.attempts == 2
    assert len(collector) == 1


def test_assertion_budget_is_bounded():
    configure(max_assertion_retries=2)

    class NeverOk(Module):
        def forward(self, question):
            assert_(False, "never")

    with pytest.raises(AssertionFailedError):
        NeverOk(SIG).call(question="hi")


def test_with_demos_returns_independent_copy():
    module = EchoModule(SIG, demos=[{"question": "a", "answer": "b"}])
    copy = module.with_demos([Example(question="c", answer="d")])
    assert len(module.demos) == 1
    assert module.demos[0]["question"] == "a"
    assert copy.demos[0]["question"] == "c"
    assert copy.signature is module.signature


def test_demo_selector_overrides_static_demos():
    module = EchoModule(SIG, demos=[{"question": "static"}])
    module.demo_selector = lambda mod, inputs: [Example(question=inputs["question"])]
    assert module.active_demos({"question": "dynamic"})[0]["question"] == "dynamic"


def test_reset_and_to_dict():
    module = EchoModule(SIG, demos=[{"question": "a"}])
    module.call(question="hi")
    data = module.to_dict()
    assert data["class"] == "EchoModule"
    assert data["call_count"] == 1
    assert data["demos_count"] == 1
    module.reset()
    assert module.call_count == 0
    assert module.demos == []


def test_invalid_signature_type():
    with pytest.raises(ModuleError):
        EchoModule(123)


def test_model_must_be_capable():
    with pytest.raises(ConfigurationError):
        EchoModule(SIG, model=object())


def test_default_model_comes_from_settings(scripted_model):
    model = scripted_model()
    configure(default_model=model)
    assert EchoModule(SIG).model is model


def test_unknown_config_key():
    with pytest.raises(ConfigurationError):
        EchoModule(SIG, config={"temprature": 0.1})


def test_model_options_fill_from_settings():
    configure(temperature=0.2)
    options = ModuleConfig(max_tokens=50).model_options()
    assert options == {"temperature": 0.2, "max_tokens": 50, "timeout": 30.0}
