# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa

import sigil
from sigil.logging.logger import StdOutLogger


def test_quickstart_flow(scripted_model):
    model = scripted_model("answer: Paris")

    class QA(sigil.Program):
        def setup_modules(self):
            self.add_module("qa", sigil.Predict("question -> answer", model=model))

        def forward(self, question):
            return self.run_module("qa", question=question)

    collector = sigil.TraceCollector()
    compiler = sigil.CompilerBuilder().with_trace_collector(collector).with_logger(StdOutLogger())
    result = compiler.build().compile(QA(), [{"question": "Capital of France?", "answer": "Paris"}])

    assert isinstance(result, sigil.CompilationResult)
    assert result.success
    assert result.program.call(question="Capital of Spain?")["answer"] == "Paris"
    assert len(result.program.modules["qa"].demos) == 1
