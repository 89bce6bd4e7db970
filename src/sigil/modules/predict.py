# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from typing import Any

from sigil.core.example import Example
from sigil.errors import CoercionError, ConfigurationError
from sigil.field import Field, FieldType
from sigil.models.base import ChatMessage
from sigil.module import Module
from sigil.signature import Signature

logger = logging.getLogger(__name__)

DEFAULT_SIGNATURE = "question: string -> answer: string"


def format_value(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value)
    return str(value)


class Predict(Module):
    """
    Direct prediction: one model call per invocation.

    The prompt lists the signature and field descriptions, replays each
    demonstration as a user/assistant exchange, then asks for the outputs as
    ``field: value`` lines, which are parsed back into typed values.
    """

    def __init__(self, signature: str | Signature = DEFAULT_SIGNATURE, model: Any = None, **kwargs: Any):
        super().__init__(signature, model=model, **kwargs)
        if self.model is None:
            raise ConfigurationError(f"{self.name} needs a model; pass model= or configure(default_model=...)")

    def forward(self, **inputs: Any) -> Mapping[str, Any]:
        messages = self.build_messages(inputs)
        completion = self.model.complete(messages, **self.config.model_options())
        if self.trace_enabled:
            self.active_trace_context().add_metadata(
                {"usage": dict(completion.get("usage") or {}), "model": completion.get("model")}
            )
        content = completion.get("content") or ""
        logger.debug(f"{self.name} response: {content}")
        return self.parse_response(content)

    # Prompt construction

    def build_messages(self, inputs: Mapping[str, Any]) -> list[ChatMessage]:
        messages: list[ChatMessage] = [{"role": "system", "content": self.system_prompt()}]
        for demo in self.active_demos(inputs):
            pair = self._demo_pair(demo)
            if pair is None:
                continue
            demo_inputs, demo_outputs = pair
            messages.append({"role": "user", "content": self.user_prompt(demo_inputs)})
            messages.append({"role": "assistant", "content": self.format_outputs(demo_outputs)})
        messages.append({"role": "user", "content": self.user_prompt(inputs)})
        return messages

    def system_prompt(self) -> str:
        return (
            "You are a helpful AI assistant. You will be given inputs and must produce outputs "
            "according to the following specification:\n\n"
            f"{self.signature}\n\n"
            "Format your response with each output field on its own line using the pattern:\n"
            "field_name: value\n"
            f"{self.format_descriptions()}"
        )

    def user_prompt(self, inputs: Mapping[str, Any]) -> str:
        lines = ["Given the following inputs:"]
        lines.extend(f"{key}: {format_value(value)}" for key, value in inputs.items() if value is not None)
        lines.append("")
        lines.append("Provide the following outputs:")
        lines.extend(f"{name}:" for name in self.signature.output_fields)
        return "\n".join(lines)

    def format_outputs(self, outputs: Mapping[str, Any]) -> str:
        return "\n".join(f"{name}: {format_value(value)}" for name, value in outputs.items())

    def format_descriptions(self) -> str:
        fields = [*self.signature.input_fields.values(), *self.signature.output_fields.values()]
        lines = [f"- {f.name}: {f.description}" for f in fields if f.description]
        if not lines:
            return ""
        return "\nField descriptions:\n" + "\n".join(lines)

    def _demo_pair(self, demo: Example) -> tuple[dict[str, Any], dict[str, Any]] | None:
        raw = demo.to_dict()
        inputs = demo.inputs
        labels = demo.labels
        demo_inputs = {name: inputs[name] for name in self.signature.input_fields if name in inputs}
        demo_outputs = {}
        for name in self.signature.output_fields:
            if name in labels:
                demo_outputs[name] = labels[name]
            elif name in raw:
                demo_outputs[name] = raw[name]
        if not demo_inputs or not demo_outputs:
            return None
        return demo_inputs, demo_outputs

    # Response parsing

    def parse_response(self, content: str) -> dict[str, Any]:
        names = "|".join(re.escape(name) for name in self.signature.output_fields)
        result: dict[str, Any] = {}
        for name, field in self.signature.output_fields.items():
            pattern = rf"^[ \t*]*{re.escape(name)}[ \t*]*:[ \t]*(.*?)(?=^[ \t*]*(?:{names})[ \t*]*:|\Z)"
            match = re.search(pattern, content, re.IGNORECASE | re.MULTILINE | re.DOTALL)
            if match:
                result[name] = self.parse_field_value(field, match.group(1).strip())
        return result

    def parse_field_value(self, field: Field, text: str) -> Any:
        try:
            return field.coerce(text)
        except CoercionError:
            if field.type is FieldType.LIST:
                parts = [part.strip() for part in text.split(",") if part.strip()]
                return field.coerce(parts)
            raise
