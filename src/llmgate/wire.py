"""Typed shapes of the OpenAI-compatible chat-completion wire format.

Unknown fields are ignored, every field the gateway does not strictly need
is optional, so provider-specific extras never make a payload invalid.
"""

from __future__ import annotations

import msgspec


# ---------------------------------------------------------------------------
# One-shot responses
# ---------------------------------------------------------------------------


class WireFunction(msgspec.Struct):
    name: str = ""
    arguments: str = ""


class WireToolCall(msgspec.Struct):
    id: str = ""
    type: str = "function"
    function: WireFunction = msgspec.field(default_factory=WireFunction)


class CompletionMessage(msgspec.Struct):
    role: str = "assistant"
    content: str | None = None
    tool_calls: list[WireToolCall] | None = None


class CompletionChoice(msgspec.Struct):
    index: int = 0
    message: CompletionMessage = msgspec.field(default_factory=CompletionMessage)
    finish_reason: str | None = None


class ChatCompletion(msgspec.Struct):
    choices: list[CompletionChoice] = []
    id: str | None = None
    model: str | None = None


# ---------------------------------------------------------------------------
# Stream frames
# ---------------------------------------------------------------------------


class FunctionDelta(msgspec.Struct):
    name: str | None = None
    arguments: str | None = None


class ToolCallDelta(msgspec.Struct):
    index: int = 0
    id: str | None = None
    function: FunctionDelta | None = None


class ChunkDelta(msgspec.Struct):
    role: str | None = None
    content: str | None = None
    tool_calls: list[ToolCallDelta] | None = None


class ChunkChoice(msgspec.Struct):
    index: int = 0
    delta: ChunkDelta = msgspec.field(default_factory=ChunkDelta)
    finish_reason: str | None = None


class ChatChunk(msgspec.Struct):
    choices: list[ChunkChoice] = []
    id: str | None = None
    model: str | None = None


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ErrorDetail(msgspec.Struct):
    message: str = ""
    type: str | None = None


class ErrorBody(msgspec.Struct):
    error: ErrorDetail


TOOL_CALLS_FINISH = "tool_calls"
"""``finish_reason`` value announcing that the provider wants tools run."""
