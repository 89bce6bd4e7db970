# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa

"""
Typed fields and the type-expression grammar used inside signatures.

Type expressions:

    string | str | text
    int | integer
    float | number | double
    bool | boolean
    Literal["a", "b", ...]
    list | list[T]
    dict | dict[K, V]
"""

from __future__ import annotations

import ast
import enum
import json
import math
import re
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, Literal

from sigil.errors import CoercionError, MalformedSignatureError

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_INT_TEXT = re.compile(r"[+-]?\d+")
_TRUE_TEXT = frozenset({"true", "t", "yes", "y", "1"})
_FALSE_TEXT = frozenset({"false", "f", "no", "n", "0"})


class FieldType(str, enum.Enum):
    STRING = "string"
    INT = "int"
    FLOAT = "float"
    BOOL = "bool"
    LITERAL = "literal"
    LIST = "list"
    DICT = "dict"


_SCALAR_ALIASES = {
    "str": FieldType.STRING,
    "string": FieldType.STRING,
    "text": FieldType.STRING,
    "int": FieldType.INT,
    "integer": FieldType.INT,
    "float": FieldType.FLOAT,
    "number": FieldType.FLOAT,
    "double": FieldType.FLOAT,
    "bool": FieldType.BOOL,
    "boolean": FieldType.BOOL,
    "list": FieldType.LIST,
    "array": FieldType.LIST,
    "dict": FieldType.DICT,
    "dictionary": FieldType.DICT,
    "hash": FieldType.DICT,
}


def iter_top_level(text: str) -> Iterator[tuple[int, str]]:
    """Yield ``(index, char)`` for characters outside brackets and quotes."""
    depth = 0
    quote: str | None = None
    escaped = False
    for i, ch in enumerate(text):
        if quote is not None:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote:
                quote = None
            continue
        if ch in "\"'":
            quote = ch
        elif ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
        elif depth == 0:
            yield i, ch


def split_top_level(text: str, sep: str = ",") -> list[str]:
    parts: list[str] = []
    start = 0
    for i, ch in iter_top_level(text):
        if ch == sep:
            parts.append(text[start:i].strip())
            start = i + 1
    parts.append(text[start:].strip())
    return parts


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        try:
            decoded = ast.literal_eval(value)
        except (ValueError, SyntaxError):
            return value[1:-1]
        return decoded if isinstance(decoded, str) else value[1:-1]
    return value


@dataclass(frozen=True)
class TypeSpec:
    """A parsed type expression. Element/key/value specs are set for typed containers."""

    kind: FieldType
    literal_values: tuple[str, ...] = ()
    element: TypeSpec | None = None
    key: TypeSpec | None = None
    value: TypeSpec | None = None

    @classmethod
    def parse(cls, expr: str) -> TypeSpec:
        expr = expr.strip()
        if not expr:
            raise MalformedSignatureError("Empty type expression")

        bracket = expr.find("[")
        if bracket != -1:
            if not expr.endswith("]"):
                raise MalformedSignatureError(f"Unbalanced brackets in type: {expr}")
            head = expr[:bracket].strip().lower()
            inner = expr[bracket + 1 : -1].strip()
            if head == "literal":
                values = tuple(_unquote(v) for v in split_top_level(inner) if v)
                if not values:
                    raise MalformedSignatureError(f"Literal type needs at least one value: {expr}")
                return cls(FieldType.LITERAL, literal_values=values)
            if _SCALAR_ALIASES.get(head) is FieldType.LIST:
                if not inner:
                    raise MalformedSignatureError(f"Missing element type: {expr}")
                return cls(FieldType.LIST, element=cls.parse(inner))
            if _SCALAR_ALIASES.get(head) is FieldType.DICT:
                parts = split_top_level(inner)
                if len(parts) != 2 or not all(parts):
                    raise MalformedSignatureError(f"dict type needs key and value types: {expr}")
                return cls(FieldType.DICT, key=cls.parse(parts[0]), value=cls.parse(parts[1]))
            raise MalformedSignatureError(f"Unknown parameterised type: {expr}")

        kind = _SCALAR_ALIASES.get(expr.lower())
        if kind is None:
            raise MalformedSignatureError(f"Unknown type: {expr}")
        return cls(kind)

    def render(self) -> str:
        if self.kind is FieldType.LITERAL:
            return "Literal[" + ", ".join(json.dumps(v, ensure_ascii=False) for v in self.literal_values) + "]"
        if self.kind is FieldType.LIST and self.element is not None:
            return f"list[{self.element.render()}]"
        if self.kind is FieldType.DICT and self.key is not None and self.value is not None:
            return f"dict[{self.key.render()}, {self.value.render()}]"
        return self.kind.value

    def python_type(self) -> Any:
        if self.kind is FieldType.STRING:
            return str
        if self.kind is FieldType.INT:
            return int
        if self.kind is FieldType.FLOAT:
            return float
        if self.kind is FieldType.BOOL:
            return bool
        if self.kind is FieldType.LITERAL:
            return Literal[self.literal_values]
        if self.kind is FieldType.LIST:
            return list[self.element.python_type()] if self.element else list
        if self.key is not None and self.value is not None:
            return dict[self.key.python_type(), self.value.python_type()]
        return dict

    def coerce(self, value: Any, name: str) -> Any:
        """Convert ``value`` to this type without losing information, or raise."""
        kind = self.kind

        if kind is FieldType.STRING:
            if isinstance(value, str):
                return value
            if isinstance(value, (bool, int, float)):
                return str(value)
            raise CoercionError(name, value, "expected a string")

        if kind is FieldType.INT:
            if isinstance(value, bool):
                raise CoercionError(name, value, "booleans are not integers")
            if isinstance(value, int):
                return value
            if isinstance(value, float):
                if value.is_integer():
                    return int(value)
                raise CoercionError(name, value, "float has a fractional part")
            if isinstance(value, str):
                text = value.strip()
                if _INT_TEXT.fullmatch(text):
                    return int(text)
                try:
                    as_float = float(text)
                except ValueError:
                    raise CoercionError(name, value, "not an integer") from None
                if math.isfinite(as_float) and as_float.is_integer():
                    return int(as_float)
                raise CoercionError(name, value, "not an integer")
            raise CoercionError(name, value, "expected an integer")

        if kind is FieldType.FLOAT:
            if isinstance(value, bool):
                raise CoercionError(name, value, "booleans are not numbers")
            if isinstance(value, float):
                return value
            if isinstance(value, int):
                try:
                    return float(value)
                except OverflowError:
                    raise CoercionError(name, value, "out of float range") from None
            if isinstance(value, str):
                try:
                    return float(value.strip())
                except ValueError:
                    raise CoercionError(name, value, "not a number") from None
            raise CoercionError(name, value, "expected a number")

        if kind is FieldType.BOOL:
            if isinstance(value, bool):
                return value
            if isinstance(value, int) and value in (0, 1):
                return bool(value)
            if isinstance(value, str):
                text = value.strip().lower()
                if text in _TRUE_TEXT:
                    return True
                if text in _FALSE_TEXT:
                    return False
            raise CoercionError(name, value, "expected a boolean")

        if kind is FieldType.LITERAL:
            if isinstance(value, str) and value in self.literal_values:
                return value
            if isinstance(value, (str, int, float)) and not isinstance(value, bool):
                text = str(value).strip()
                if text in self.literal_values:
                    return text
            raise CoercionError(name, value, f"must be one of: {', '.join(self.literal_values)}")

        if kind is FieldType.LIST:
            if isinstance(value, str):
                value = _load_json(value, list, name)
            if isinstance(value, tuple):
                value = list(value)
            if not isinstance(value, list):
                raise CoercionError(name, value, "expected a list")
            if self.element is None:
                return value
            return [self.element.coerce(item, f"{name}[{i}]") for i, item in enumerate(value)]

        if isinstance(value, str):
            value = _load_json(value, dict, name)
        if not isinstance(value, dict):
            raise CoercionError(name, value, "expected a dict")
        if self.key is None or self.value is None:
            return value
        return {
            self.key.coerce(k, f"{name}.key"): self.value.coerce(v, f"{name}[{k!r}]") for k, v in value.items()
        }

    def accepts(self, value: Any) -> bool:
        """Strict type check, no conversion."""
        try:
            return self.coerce(value, "_") == value and type(self.coerce(value, "_")) is type(value)
        except CoercionError:
            return False


def _load_json(text: str, expected: type, name: str) -> Any:
    try:
        loaded = json.loads(text)
    except json.JSONDecodeError:
        raise CoercionError(name, text, f"expected a JSON {expected.__name__}") from None
    if not isinstance(loaded, expected):
        raise CoercionError(name, text, f"expected a JSON {expected.__name__}")
    return loaded


@dataclass(frozen=True)
class Field:
    name: str
    spec: TypeSpec = TypeSpec(FieldType.STRING)
    optional: bool = False
    description: str | None = None

    def __post_init__(self):
        if not _IDENTIFIER.fullmatch(self.name):
            raise MalformedSignatureError(f"Invalid field name: {self.name!r}")

    @property
    def type(self) -> FieldType:
        return self.spec.kind

    @property
    def element_type(self) -> TypeSpec | tuple[TypeSpec, TypeSpec] | None:
        if self.spec.kind is FieldType.LIST:
            return self.spec.element
        if self.spec.kind is FieldType.DICT and self.spec.key is not None and self.spec.value is not None:
            return (self.spec.key, self.spec.value)
        return None

    @property
    def literal_values(self) -> tuple[str, ...]:
        return self.spec.literal_values

    @classmethod
    def parse(cls, chunk: str) -> Field:
        """Parse ``name[?]: type ["description"]``; a bare name is a string field."""
        text = chunk.strip()
        if not text:
            raise MalformedSignatureError("Empty field declaration")

        description = None
        match = re.match(r'^(?P<body>.*?)\s*"(?P<desc>[^"]*)"\s*$', text, re.DOTALL)
        if match and _balanced(match.group("body")):
            text = match.group("body").strip()
            description = match.group("desc")

        colon = next((i for i, ch in iter_top_level(text) if ch == ":"), None)
        if colon is None:
            name_part, type_part = text, "string"
        else:
            name_part, type_part = text[:colon], text[colon + 1 :]

        name_part = name_part.strip()
        type_part = type_part.strip()
        optional = name_part.endswith("?")
        if optional:
            name_part = name_part[:-1].strip()
        if type_part.endswith("?"):
            optional = True
            type_part = type_part[:-1].strip()

        return cls(name=name_part, spec=TypeSpec.parse(type_part or "string"), optional=optional, description=description)

    def render(self) -> str:
        out = f"{self.name}{'?' if self.optional else ''}: {self.spec.render()}"
        if self.description:
            description = self.description.replace('"', "'")
            out += f' "{description}"'
        return out

    def coerce(self, value: Any) -> Any:
        if value is None:
            if self.optional:
                return None
            raise CoercionError(self.name, value, "required field is None")
        return self.spec.coerce(value, self.name)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "name": self.name,
            "type": self.spec.kind.value,
            "type_expression": self.spec.render(),
            "optional": self.optional,
        }
        if self.description is not None:
            out["description"] = self.description
        if self.spec.literal_values:
            out["literal_values"] = list(self.spec.literal_values)
        if self.spec.element is not None:
            out["element_type"] = self.spec.element.render()
        if self.spec.key is not None and self.spec.value is not None:
            out["key_type"] = self.spec.key.render()
            out["value_type"] = self.spec.value.render()
        return out


def _balanced(text: str) -> bool:
    depth = 0
    quote: str | None = None
    for i, ch in enumerate(text):
        if quote is not None:
            if ch == quote and text[i - 1] != "\\":
                quote = None
        elif ch in "\"'":
            quote = ch
        elif ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
    return depth == 0 and quote is None
