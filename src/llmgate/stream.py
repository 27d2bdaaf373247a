"""Incremental decoding of ``data:`` event streams.

The decoder turns a raw byte feed into a lazy, single-pass sequence of
content fragments.  Upstream services sporadically emit partial or
malformed frames, so every frame is parsed on its own and a bad one is
skipped rather than ending the stream.
"""

from __future__ import annotations

import codecs
import contextlib
import logging
from collections.abc import AsyncIterator, Callable
from typing import Any

import msgspec

from .cancellation import CancellationController
from .errors import MalformedFrame
from .types import ToolCall
from .wire import TOOL_CALLS_FINISH, ToolCallDelta

logger = logging.getLogger(__name__)

FRAME_MARKER = "data:"
DONE_SENTINEL = "[DONE]"


class StreamEvent(msgspec.Struct, frozen=True):
    """What one parsed frame contributes to the response."""

    text: str | None = None
    tool_call_deltas: tuple[ToolCallDelta, ...] = ()
    finish_reason: str | None = None


EventDecoder = Callable[[Any], StreamEvent]
"""Maps a parsed frame to a :class:`StreamEvent`; raises :class:`MalformedFrame`."""


class StreamDecoder:
    """Decode one response body into content fragments.

    Usage::

        decoder = StreamDecoder(provider.decode_stream_event)
        async for fragment in decoder.decode(response.aiter_bytes()):
            ...
        decoder.tool_calls  # assembled after the loop

    After decoding:

    - ``tool_calls`` – tool calls assembled from streamed deltas
    - ``tool_call_requested`` – a frame finished with ``tool_calls``
    - ``terminated`` – the ``[DONE]`` sentinel was seen
    - ``cancelled`` – decoding stopped because of the controller
    - ``frames`` / ``skipped`` – parsed and discarded frame counts
    """

    def __init__(
        self,
        decode_event: EventDecoder,
        *,
        cancellation: CancellationController | None = None,
    ) -> None:
        self._decode_event = decode_event
        self._cancellation = cancellation or CancellationController()
        self._started = False
        self._tool_calls_acc: dict[int, dict[str, str]] = {}

        self.finish_reason: str | None = None
        self.tool_call_requested = False
        self.terminated = False
        self.cancelled = False
        self.frames = 0
        self.skipped = 0

    @property
    def tool_calls(self) -> tuple[ToolCall, ...]:
        return tuple(
            ToolCall(id=acc["id"], name=acc["name"], arguments=acc["arguments"])
            for _idx, acc in sorted(self._tool_calls_acc.items())
        )

    async def decode(self, body: AsyncIterator[bytes]) -> AsyncIterator[str]:
        """Yield content fragments from *body* in arrival order.

        *body* is closed on every exit path, including early termination
        and cancellation.
        """
        if self._started:
            raise RuntimeError("StreamDecoder instances are single-use")
        self._started = True

        text_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        buffer = ""

        async with contextlib.aclosing(body) as chunks:
            while True:
                if self._check_cancelled():
                    return
                try:
                    chunk = await anext(chunks)
                except StopAsyncIteration:
                    break
                self._cancellation.note_bytes(len(chunk))

                buffer += text_decoder.decode(chunk)
                *lines, buffer = buffer.split("\n")
                for line in lines:
                    if self._check_cancelled():
                        return
                    fragment = self._handle_line(line)
                    if self.terminated:
                        return
                    if fragment:
                        yield fragment

            # Trailing line without a newline
            buffer += text_decoder.decode(b"", final=True)
            if buffer and not self._check_cancelled():
                fragment = self._handle_line(buffer)
                if fragment:
                    yield fragment

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_cancelled(self) -> bool:
        if self._cancellation.cancelled:
            self.cancelled = True
        return self.cancelled

    def _handle_line(self, line: str) -> str | None:
        line = line.strip()
        if not line.startswith(FRAME_MARKER):
            return None
        data = line[len(FRAME_MARKER):].strip()
        if not data:
            return None
        if data == DONE_SENTINEL:
            self.terminated = True
            return None

        try:
            parsed = msgspec.json.decode(data)
            event = self._decode_event(parsed)
        except (msgspec.DecodeError, MalformedFrame) as exc:
            self.skipped += 1
            logger.debug("Skipping malformed frame: %s (%r)", exc, data[:200])
            return None
        self.frames += 1

        for delta in event.tool_call_deltas:
            self._accumulate(delta)
        if event.finish_reason:
            self.finish_reason = event.finish_reason
        if event.finish_reason == TOOL_CALLS_FINISH:
            # The provider switched to requesting an action; keep reading
            # but emit nothing for this frame.
            self.tool_call_requested = True
            return None
        return event.text or None

    def _accumulate(self, delta: ToolCallDelta) -> None:
        acc = self._tool_calls_acc.setdefault(
            delta.index, {"id": "", "name": "", "arguments": ""}
        )
        if delta.id:
            acc["id"] = delta.id
        if delta.function is not None:
            if delta.function.name:
                acc["name"] = delta.function.name
            if delta.function.arguments:
                acc["arguments"] += delta.function.arguments
