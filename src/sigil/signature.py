# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa

"""
Signatures: the typed input/output contract of a module.

    sig = Signature("question: string, context?: list[str] -> answer: string \"short answer\"")
    sig.input_fields["question"].type      # FieldType.STRING
    sig.validate_inputs({"question": "hi"})
    sig.coerce_inputs({"question": "hi"})
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, create_model
from pydantic import Field as ModelField

from sigil.errors import MalformedSignatureError, MissingInputsError, ValidationError
from sigil.field import Field, iter_top_level, split_top_level


def _find_arrows(text: str) -> list[int]:
    positions = []
    top = list(iter_top_level(text))
    for (i, ch), nxt in zip(top, top[1:], strict=False):
        if ch == "-" and nxt == (i + 1, ">"):
            positions.append(i)
    return positions


def _parse_side(text: str, side: str) -> dict[str, Field]:
    chunks = split_top_level(text)
    if not any(chunks):
        raise MalformedSignatureError(f"Signature needs at least one {side} field")
    fields: dict[str, Field] = {}
    for chunk in chunks:
        if not chunk:
            raise MalformedSignatureError(f"Empty field in {side}: {text!r}")
        field = Field.parse(chunk)
        if field.name in fields:
            raise MalformedSignatureError(f"Duplicate {side} field: {field.name}")
        fields[field.name] = field
    return fields


class Signature:
    """Parsed, immutable ``inputs -> outputs`` contract. Safe to share across threads."""

    __slots__ = ("_inputs", "_outputs", "raw")

    def __init__(self, raw: str, descriptions: Mapping[str, str] | None = None):
        if not isinstance(raw, str):
            raise MalformedSignatureError(f"Signature must be a string, got {type(raw).__name__}")
        arrows = _find_arrows(raw)
        if len(arrows) != 1:
            raise MalformedSignatureError(
                f"Signature must contain exactly one '->', found {len(arrows)}", context={"signature": raw}
            )
        inputs = _parse_side(raw[: arrows[0]], "input")
        outputs = _parse_side(raw[arrows[0] + 2 :], "output")

        if descriptions:
            inputs = _describe(inputs, descriptions)
            outputs = _describe(outputs, descriptions)

        object.__setattr__(self, "raw", raw)
        object.__setattr__(self, "_inputs", MappingProxyType(inputs))
        object.__setattr__(self, "_outputs", MappingProxyType(outputs))

    def __setattr__(self, name, value):
        raise AttributeError("Signature is immutable")

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self

    @classmethod
    def wrap(cls, value: str | Signature) -> Signature:
        if isinstance(value, Signature):
            return value
        return cls(value)

    @classmethod
    def from_fields(cls, inputs: list[Field], outputs: list[Field]) -> Signature:
        rendered = ", ".join(f.render() for f in inputs) + " -> " + ", ".join(f.render() for f in outputs)
        return cls(rendered)

    @property
    def input_fields(self) -> Mapping[str, Field]:
        return self._inputs

    @property
    def output_fields(self) -> Mapping[str, Field]:
        return self._outputs

    @property
    def input_names(self) -> list[str]:
        return list(self._inputs)

    @property
    def output_names(self) -> list[str]:
        return list(self._outputs)

    # Validation and coercion

    def validate_inputs(self, inputs: Mapping[str, Any]) -> None:
        missing = [name for name, f in self._inputs.items() if not f.optional and inputs.get(name) is None]
        if missing:
            raise MissingInputsError(missing)

    def coerce_inputs(self, inputs: Mapping[str, Any]) -> dict[str, Any]:
        """Coerce declared fields; undeclared keys pass through untouched."""
        return _coerce(self._inputs, inputs)

    def validate_outputs(self, outputs: Mapping[str, Any]) -> None:
        missing = [name for name, f in self._outputs.items() if not f.optional and outputs.get(name) is None]
        if missing:
            raise ValidationError(f"Missing required outputs: {', '.join(missing)}", context={"signature": str(self)})

    def coerce_outputs(self, outputs: Mapping[str, Any]) -> dict[str, Any]:
        return _coerce(self._outputs, outputs)

    # Derived signatures

    def with_prepended_outputs(self, *fields: Field) -> Signature:
        existing = [f for f in self._outputs.values() if f.name not in {new.name for new in fields}]
        return Signature.from_fields(list(self._inputs.values()), [*fields, *existing])

    # Typed models

    def input_model(self) -> type[BaseModel]:
        return _build_model("Inputs", self._inputs)

    def output_model(self) -> type[BaseModel]:
        return _build_model("Outputs", self._outputs)

    def json_schema(self) -> dict[str, Any]:
        return {
            "input": self.input_model().model_json_schema(),
            "output": self.output_model().model_json_schema(),
        }

    # Introspection

    def to_dict(self) -> dict[str, Any]:
        return {
            "signature": str(self),
            "input_fields": {name: f.to_dict() for name, f in self._inputs.items()},
            "output_fields": {name: f.to_dict() for name, f in self._outputs.items()},
        }

    def __str__(self) -> str:
        return (
            ", ".join(f.render() for f in self._inputs.values())
            + " -> "
            + ", ".join(f.render() for f in self._outputs.values())
        )

    def __repr__(self) -> str:
        return f"Signature({str(self)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Signature):
            return NotImplemented
        return dict(self._inputs) == dict(other._inputs) and dict(self._outputs) == dict(other._outputs)

    def __hash__(self) -> int:
        return hash(str(self))


def _describe(fields: dict[str, Field], descriptions: Mapping[str, str]) -> dict[str, Field]:
    out = {}
    for name, f in fields.items():
        if f.description is None and name in descriptions:
            f = Field(name=f.name, spec=f.spec, optional=f.optional, description=descriptions[name])
        out[name] = f
    return out


def _coerce(fields: Mapping[str, Field], values: Mapping[str, Any]) -> dict[str, Any]:
    coerced = dict(values)
    for name, f in fields.items():
        if name in values:
            coerced[name] = f.coerce(values[name])
    return coerced


def _build_model(suffix: str, fields: Mapping[str, Field]) -> type[BaseModel]:
    definitions: dict[str, Any] = {}
    for name, f in fields.items():
        annotation = f.spec.python_type()
        if f.optional:
            definitions[name] = (annotation | None, ModelField(None, description=f.description))
        else:
            definitions[name] = (annotation, ModelField(..., description=f.description))
    return create_model(f"Signature{suffix}", **definitions)
