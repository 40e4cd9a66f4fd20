"""Tool registry and dispatch.

Implements:
- ToolSpec: name, description, pydantic input model, async handler
- ToolInvoker.invoke(): validate arguments, dispatch, and turn every
  failure into an error ToolResult so nothing escapes to the transport
"""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)


class ToolError(Exception):
    """Handler-level failure; the message is shown to the caller as-is."""


class UnknownToolError(ToolError):
    pass


class ToolResult:
    """Text for the model, optional structured payload, and an error flag."""

    def __init__(
        self,
        text: str,
        structured: Optional[Dict[str, Any]] = None,
        is_error: bool = False,
    ) -> None:
        self.text = text
        self.structured = structured
        self.is_error = is_error

    @classmethod
    def error(cls, message: str) -> "ToolResult":
        return cls(message, is_error=True)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], text: Optional[str] = None) -> "ToolResult":
        """Structured result whose text defaults to the pretty-printed payload."""
        if text is None:
            text = json.dumps(payload, indent=2, default=str)
        return cls(text, structured=payload)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "structured": self.structured,
            "is_error": self.is_error,
        }

    def __repr__(self) -> str:
        return "ToolResult(is_error={}, text={!r})".format(self.is_error, self.text[:80])


Handler = Callable[[Any, Any], Awaitable[ToolResult]]


class ToolSpec:
    def __init__(
        self,
        name: str,
        description: str,
        input_model: Type[BaseModel],
        handler: Handler,
    ) -> None:
        self.name = name
        self.description = description
        self.input_model = input_model
        self.handler = handler

    def input_schema(self) -> Dict[str, Any]:
        return self.input_model.model_json_schema(by_alias=True)


def _format_validation_error(e: ValidationError) -> str:
    parts = []  # type: List[str]
    for err in e.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "arguments"
        parts.append("{}: {}".format(loc, err.get("msg", "invalid")))
    return "; ".join(parts)


class ToolInvoker:
    """Holds the tool table and the context handed to every handler."""

    def __init__(self, context: Any) -> None:
        self.context = context
        self._tools = {}  # type: Dict[str, ToolSpec]

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ValueError("Tool already registered: {}".format(spec.name))
        self._tools[spec.name] = spec

    def get(self, name: str) -> ToolSpec:
        spec = self._tools.get(name)
        if spec is None:
            raise UnknownToolError("Unknown tool: {}".format(name))
        return spec

    @property
    def specs(self) -> List[ToolSpec]:
        return list(self._tools.values())

    def names(self) -> List[str]:
        return list(self._tools)

    async def invoke(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> ToolResult:
        try:
            spec = self.get(name)
        except UnknownToolError as e:
            logger.warning("%s", e)
            return ToolResult.error(str(e))

        try:
            args = spec.input_model.model_validate(arguments or {})
        except ValidationError as e:
            logger.warning("Tool %s rejected arguments: %s", name, _format_validation_error(e))
            return ToolResult.error("Invalid arguments for {}: {}".format(name, _format_validation_error(e)))

        try:
            return await spec.handler(self.context, args)
        except ToolError as e:
            logger.warning("Tool %s failed: %s", name, e)
            return ToolResult.error(str(e))
        except Exception as e:
            logger.warning("Tool %s raised %s: %s", name, type(e).__name__, e)
            return ToolResult.error("{} failed: {}".format(name, e))
