# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa

from unittest.mock import patch

import pytest

from sigil.config import reset_settings
from sigil.core.trace import TraceCollector, init_tracing, reset_tracing
from sigil.module import Module


class ScriptedModel:
    """Fake language model returning canned responses in order.

    ``responses`` may hold strings or exceptions; the last response repeats
    once the script runs out. A callable receives the message list instead.
    """

    def __init__(self, responses="answer: ok"):
        if isinstance(responses, str) or callable(responses):
            responses = [responses]
        self.responses = list(responses)
        self.calls = []

    def complete(self, messages, **options):
        self.calls.append({"messages": messages, "options": options})
        index = min(len(self.calls) - 1, len(self.responses) - 1)
        response = self.responses[index]
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            response = response(messages)
        return {
            "content": response,
            "usage": {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5},
            "raw": None,
            "model": "scripted",
        }


class EchoModule(Module):
    def forward(self, question):
        return {"answer": question}


@pytest.fixture(autouse=True)
def isolated_state():
    reset_settings()
    reset_tracing()
    with patch("sigil.retry.time.sleep") as sleep:
        yield sleep
    reset_settings()
    reset_tracing()


@pytest.fixture
def collector():
    collector = TraceCollector()
    init_tracing(collector)
    return collector


@pytest.fixture
def scripted_model():
    return ScriptedModel


@pytest.fixture
def echo_module():
    return EchoModule("question: string -> answer: string")
