"""ToolCallOrchestrator -- the bounded request/tool/follow-up loop.

One logical call runs through::

    SENDING -> AWAITING_RESPONSE -> COMPLETED | TOOL_PENDING | CANCELLED | FAILED
    TOOL_PENDING -> SENDING   (at most ``max_rounds`` requests in total)

The conversation handed in by the caller is copied and only ever appended
to.  Hitting the round limit is a warning, never an error.
"""

from __future__ import annotations

import enum
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping

from .cancellation import CancellationController
from .provider import Provider
from .providers.kimi import WEB_SEARCH_TOOL
from .types import (
    CallOutcome,
    CallResult,
    Message,
    RequestConfig,
    ToolCall,
    assistant,
    tool,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROUNDS = 5

ToolResolver = Callable[[ToolCall], str | Awaitable[str]]
"""Produces the result text for one tool call."""


class LoopState(str, enum.Enum):
    SENDING = "sending"
    AWAITING_RESPONSE = "awaiting_response"
    COMPLETED = "completed"
    TOOL_PENDING = "tool_pending"
    CANCELLED = "cancelled"
    FAILED = "failed"


def echo_arguments(call: ToolCall) -> str:
    """Moonshot's built-in search: hand the arguments back unchanged."""
    return call.arguments


DEFAULT_RESOLVERS: dict[str, ToolResolver] = {
    WEB_SEARCH_TOOL: echo_arguments,
}


class ToolCallOrchestrator:
    """Drives request -> response -> tool results -> follow-up request."""

    def __init__(
        self,
        resolvers: Mapping[str, ToolResolver] | None = None,
        *,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
    ) -> None:
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        self.resolvers: dict[str, ToolResolver] = {**DEFAULT_RESOLVERS, **(resolvers or {})}
        self.max_rounds = max_rounds

    async def run(
        self,
        provider: Provider,
        model_id: str,
        messages: list[Message],
        config: RequestConfig,
        cancellation: CancellationController | None = None,
    ) -> CallResult:
        cancellation = cancellation or CancellationController(config.cancellation)
        conversation = list(messages)
        round_config, deliver_whole = self._round_config(provider, config)

        texts: list[str] = []
        rounds = 0
        state = LoopState.SENDING

        def finish(outcome: CallOutcome) -> CallResult:
            return CallResult(
                text="".join(texts),
                outcome=outcome,
                provider=provider.name,
                model_id=model_id,
                rounds=rounds,
            )

        while True:
            if cancellation.cancelled:
                state = self._transition(state, LoopState.CANCELLED)
                return finish(cancellation.outcome())

            state = self._transition(state, LoopState.AWAITING_RESPONSE)
            try:
                turn = await provider.complete(conversation, round_config, cancellation)
            except Exception:
                self._transition(state, LoopState.FAILED)
                raise
            rounds += 1

            if turn.text:
                texts.append(turn.text)
                if deliver_whole:
                    config.on_fragment(turn.text)

            if turn.cancelled:
                state = self._transition(state, LoopState.CANCELLED)
                return finish(cancellation.outcome())

            if not turn.wants_tools:
                state = self._transition(state, LoopState.COMPLETED)
                return finish(CallOutcome.COMPLETED)

            state = self._transition(state, LoopState.TOOL_PENDING)
            if rounds >= self.max_rounds:
                logger.warning(
                    "%s: tool loop stopped after %d rounds without a final answer",
                    provider.name,
                    rounds,
                )
                return finish(CallOutcome.ROUND_LIMIT)

            conversation.append(assistant(turn.text, list(turn.tool_calls)))
            for call in turn.tool_calls:
                conversation.append(await self._resolve(call))
            state = self._transition(state, LoopState.SENDING)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _round_config(provider: Provider, config: RequestConfig) -> tuple[RequestConfig, bool]:
        """Per-round config, and whether text must be delivered as one fragment.

        Providers that cannot stream while tools are active get
        non-streamed rounds; a caller that asked for streaming still sees
        each round's text through ``on_fragment``.
        """
        wants_stream = config.with_defaults(provider.defaults).stream
        if wants_stream and not provider.can_stream(config):
            logger.info("%s cannot stream with tools; using non-streamed rounds", provider.name)
            return config.replace(stream=False), config.on_fragment is not None
        return config, False

    async def _resolve(self, call: ToolCall) -> Message:
        if not call.id:
            logger.warning("Tool call %r arrived without an id", call.name)
        resolver = self.resolvers.get(call.name)
        if resolver is None:
            logger.info("No resolver for tool %r", call.name)
            return tool(call.id, f"Unsupported tool: {call.name}", name=call.name)
        try:
            result = resolver(call)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            logger.warning("Tool %r failed: %s", call.name, exc, exc_info=True)
            return tool(call.id, f"Tool {call.name} failed: {exc}", name=call.name)
        return tool(call.id, str(result), name=call.name)

    @staticmethod
    def _transition(current: LoopState, new: LoopState) -> LoopState:
        logger.debug("tool loop: %s -> %s", current.value, new.value)
        return new
