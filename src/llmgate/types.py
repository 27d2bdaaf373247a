"""Core types for llmgate.

Messages, tool calls and per-call options are frozen msgspec structs so
that a conversation handed to the gateway can be appended to but never
edited in place.  Wire-level payload shapes live in :mod:`llmgate.wire`.
"""

from __future__ import annotations

import enum
import json
from collections.abc import AsyncIterator, Callable
from typing import TYPE_CHECKING, Any, Literal

import msgspec

if TYPE_CHECKING:
    from .cancellation import CancellationToken


Role = Literal["system", "user", "assistant", "tool"]


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


class ToolCall(msgspec.Struct, frozen=True):
    """A tool invocation request emitted by the provider."""

    id: str
    name: str
    arguments: str  # raw text, usually JSON

    def parsed_arguments(self) -> dict[str, Any]:
        """Decode :attr:`arguments`, returning ``{}`` when it is not a JSON object."""
        try:
            value = json.loads(self.arguments) if self.arguments else {}
        except json.JSONDecodeError:
            return {}
        return value if isinstance(value, dict) else {}


class Message(msgspec.Struct, frozen=True, omit_defaults=True):
    """One entry of a conversation, oldest first."""

    role: Role
    content: str = ""
    tool_calls: tuple[ToolCall, ...] | None = None
    tool_call_id: str | None = None
    name: str | None = None


# History is an ordered list of messages
History = list[Message]


def system(content: str) -> Message:
    """Create a system message."""
    return Message(role="system", content=content)


def user(content: str) -> Message:
    """Create a user message."""
    return Message(role="user", content=content)


def assistant(content: str = "", tool_calls: list[ToolCall] | None = None) -> Message:
    """Create an assistant message, optionally carrying tool calls.

    Example::

        assistant("", [ToolCall(id="tc_1", name="$web_search", arguments="{}")])
    """
    return Message(
        role="assistant",
        content=content,
        tool_calls=tuple(tool_calls) if tool_calls else None,
    )


def tool(tool_call_id: str, content: str, name: str | None = None) -> Message:
    """Create a tool result message answering *tool_call_id*."""
    return Message(role="tool", content=content, tool_call_id=tool_call_id, name=name)


# ---------------------------------------------------------------------------
# Request options
# ---------------------------------------------------------------------------

FragmentCallback = Callable[[str], None]
"""Invoked with every content fragment, in arrival order."""


class RequestDefaults(msgspec.Struct, frozen=True):
    """Values merged into a :class:`RequestConfig` when the caller leaves them unset."""

    temperature: float = 0.7
    max_tokens: int = 1000
    stream: bool = True


class RequestConfig(msgspec.Struct, frozen=True):
    """Per-call options.

    ``None`` means "use the default".  ``flags`` holds provider-specific
    switches: ``web_search`` turns on the provider's built-in search tool,
    anything else is merged verbatim into the request body.
    """

    temperature: float | None = None
    max_tokens: int | None = None
    stream: bool | None = None
    system_message: str | None = None
    on_fragment: FragmentCallback | None = None
    cancellation: CancellationToken | None = None
    tools: tuple[dict[str, Any], ...] | None = None
    flags: dict[str, Any] = msgspec.field(default_factory=dict)

    def with_defaults(self, defaults: RequestDefaults) -> RequestConfig:
        """Return a copy with every unset option filled from *defaults*."""
        return msgspec.structs.replace(
            self,
            temperature=defaults.temperature if self.temperature is None else self.temperature,
            max_tokens=defaults.max_tokens if self.max_tokens is None else self.max_tokens,
            stream=defaults.stream if self.stream is None else self.stream,
        )

    def replace(self, **changes: Any) -> RequestConfig:
        return msgspec.structs.replace(self, **changes)

    @property
    def wants_web_search(self) -> bool:
        return bool(self.flags.get("web_search"))


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class CallOutcome(str, enum.Enum):
    """How a logical call ended."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"
    # Cancelled before a single byte of the response was read.
    CANCELLED_EMPTY = "cancelled_empty"
    ROUND_LIMIT = "round_limit"


class Turn(msgspec.Struct, frozen=True):
    """The outcome of a single request/response round trip."""

    text: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    finish_reason: str | None = None
    cancelled: bool = False

    @property
    def wants_tools(self) -> bool:
        return bool(self.tool_calls)


class CallResult(msgspec.Struct, frozen=True):
    """The accumulated text of one logical call, after the tool loop."""

    text: str
    outcome: CallOutcome
    provider: str
    model_id: str
    rounds: int = 0

    @property
    def cancelled(self) -> bool:
        return self.outcome in (CallOutcome.CANCELLED, CallOutcome.CANCELLED_EMPTY)


# ---------------------------------------------------------------------------
# Type alias for the stream return
# ---------------------------------------------------------------------------

Store = dict
"""Mutable dict populated after the stream is exhausted.

Expected keys:
    ``"result"`` – :class:`CallResult`
"""

StreamResult = tuple[AsyncIterator[str], Store]
"""Return type of :meth:`llmgate.Gateway.stream`."""
