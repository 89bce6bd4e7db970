# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa

from __future__ import annotations

from typing import Any

from sigil.field import Field
from sigil.modules.predict import DEFAULT_SIGNATURE, Predict
from sigil.signature import Signature

REASONING_FIELD = Field(
    name="reasoning",
    optional=True,
    description="Step-by-step thought process leading to the answer",
)


class ChainOfThought(Predict):
    """Predict with a leading ``reasoning`` output the model fills in first."""

    def __init__(self, signature: str | Signature = DEFAULT_SIGNATURE, model: Any = None, **kwargs: Any):
        self.original_signature = Signature.wrap(signature)
        super().__init__(self.original_signature.with_prepended_outputs(REASONING_FIELD), model=model, **kwargs)

    def system_prompt(self) -> str:
        return (
            "You are a helpful AI assistant that thinks step by step. You will be given inputs and must "
            "produce outputs according to the following specification:\n\n"
            f"{self.original_signature}\n\n"
            "Before providing the final answer, show your reasoning process.\n"
            "Format your response as:\n"
            "reasoning: <your step-by-step thought process>\n"
            "<output field>: <value>\n"
            f"{self.format_descriptions()}"
        )
