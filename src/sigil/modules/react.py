# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from sigil.errors import ConfigurationError
from sigil.field import Field
from sigil.module import Module, ModuleResult
from sigil.modules.chain_of_thought import ChainOfThought
from sigil.signature import Signature

logger = logging.getLogger(__name__)

FINISH = "finish"


@dataclass(frozen=True)
class Tool:
    name: str
    fn: Callable[..., Any]
    description: str = ""

    def __call__(self, args: Any) -> Any:
        if isinstance(args, Mapping):
            return self.fn(**args)
        if isinstance(args, (list, tuple)):
            return self.fn(*args)
        if args is None or args == "":
            return self.fn()
        return self.fn(args)


def _finish() -> str:
    return "Task completed"


def normalize_tools(tools: Iterable[Any]) -> dict[str, Tool]:
    """Accepts Tool objects, ``(name, fn)`` pairs, ``{"name", "function"}`` mappings or named callables."""
    normalized: dict[str, Tool] = {}
    for tool in tools:
        if isinstance(tool, Tool):
            pass
        elif isinstance(tool, Mapping):
            tool = Tool(tool["name"], tool["function"], tool.get("description", ""))
        elif isinstance(tool, tuple) and len(tool) == 2:
            tool = Tool(tool[0], tool[1], (getattr(tool[1], "__doc__", None) or "").strip())
        elif callable(tool):
            name = getattr(tool, "__name__", None) or f"tool_{len(normalized)}"
            tool = Tool(name, tool, (tool.__doc__ or "").strip())
        else:
            raise ConfigurationError(f"Unsupported tool: {tool!r}")
        normalized[tool.name] = tool
    normalized[FINISH] = Tool(FINISH, _finish, "Mark the task as complete when you have enough information")
    return normalized


def parse_tool_args(text: Any) -> Any:
    if text is None:
        return {}
    if not isinstance(text, str):
        return text
    text = text.strip()
    if not text:
        return {}
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    pairs = re.findall(r"(\w+)\s*[:=]\s*([^,]+)", text)
    if not pairs:
        return text
    return {key: _scalar(value.strip().strip("\"'")) for key, value in pairs}


def _scalar(value: str) -> Any:
    lowered = value.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if re.fullmatch(r"-?\d+", value):
        return int(value)
    if re.fullmatch(r"-?\d+\.\d+", value):
        return float(value)
    return value


def format_trajectory(trajectory: list[dict[str, Any]]) -> str:
    if not trajectory:
        return "No actions taken yet."
    steps = []
    for i, step in enumerate(trajectory, start=1):
        parts = [f"Step {i}:"]
        if step.get("thought"):
            parts.append(f"Thought: {step['thought']}")
        if step.get("tool"):
            parts.append(f"Tool: {step['tool']}")
        if step.get("args"):
            parts.append(f"Args: {json.dumps(step['args'], default=str)}")
        if "observation" in step:
            parts.append(f"Observation: {step['observation']}")
        steps.append("\n".join(parts))
    return "\n\n".join(steps)


class ReAct(Module):
    """
    Reason-and-act loop over a set of tools.

    Each iteration asks the model for a thought, a tool name and tool
    arguments; the tool's result (or its error) becomes an observation in the
    trajectory. The loop ends on the ``finish`` tool or after
    ``max_iterations``, and a final extraction step maps the trajectory onto
    the signature's outputs.
    """

    def __init__(
        self,
        signature: str | Signature,
        tools: Iterable[Any] = (),
        max_iterations: int = 5,
        model: Any = None,
        **kwargs: Any,
    ):
        super().__init__(signature, model=model, **kwargs)
        if self.model is None:
            raise ConfigurationError("ReAct needs a model; pass model= or configure(default_model=...)")
        if max_iterations < 1:
            raise ConfigurationError("max_iterations must be >= 1")
        self.tools = normalize_tools(tools)
        self.max_iterations = max_iterations

        trajectory = Field("trajectory", description="Thoughts, tool calls and observations so far")
        inputs = [*self.signature.input_fields.values(), trajectory]
        step_signature = Signature.from_fields(
            inputs,
            [
                Field("next_thought", description=self._step_instructions()),
                Field("next_tool_name", description=f"One of: {', '.join(self.tools)}"),
                Field("next_tool_args", optional=True, description="JSON object of arguments for the tool"),
            ],
        )
        extract_signature = Signature.from_fields(inputs, list(self.signature.output_fields.values()))

        sub_options = {"model": self.model, "config": self.config, "trace_context": self.trace_context}
        self.react_module = ChainOfThought(step_signature, **sub_options)
        self.extract_module = ChainOfThought(extract_signature, **sub_options)

    def _step_instructions(self) -> str:
        tool_lines = "; ".join(f"{name}: {tool.description or 'no description'}" for name, tool in self.tools.items())
        return (
            f"Reason about what to do next. Available tools: {tool_lines}. "
            f"Use the '{FINISH}' tool once you have enough information."
        )

    def execute_tool(self, name: str, args: Any) -> Any:
        tool = self.tools.get(name)
        if tool is None:
            raise ValueError(f"Unknown tool: {name}")
        return tool(args)

    def forward(self, **inputs: Any) -> ModuleResult:
        trajectory: list[dict[str, Any]] = []
        for _ in range(self.max_iterations):
            step = self.react_module.call({**inputs, "trajectory": format_trajectory(trajectory)})
            tool_name = str(step.get("next_tool_name") or "").strip()
            entry: dict[str, Any] = {
                "thought": step.get("next_thought"),
                "tool": tool_name,
                "args": parse_tool_args(step.get("next_tool_args")),
            }
            trajectory.append(entry)
            if tool_name == FINISH:
                break
            try:
                entry["observation"] = self.execute_tool(tool_name, entry["args"])
            except Exception as e:
                logger.warning(f"Tool {tool_name!r} failed: {e}")
                entry["observation"] = f"Error: {e}"

        final = self.extract_module.call({**inputs, "trajectory": format_trajectory(trajectory)})
        outputs = {name: final[name] for name in self.signature.output_fields if name in final}
        return ModuleResult(outputs, {"trajectory": trajectory, "iterations": len(trajectory)})
