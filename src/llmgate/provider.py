"""Provider -- the shared call protocol over one remote chat-completion service.

A provider combines a static :class:`ProviderConfig` (endpoint, default
model, headers, capabilities and optional shape transforms) with the
request/response protocol every OpenAI-compatible backend shares.  The
concrete variants in :mod:`llmgate.providers` only bind a config; the
:meth:`Provider.complete` protocol is the same for all of them.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable
from typing import Any

import httpx
import msgspec

from .cancellation import CancellationController
from .credentials import CredentialStore
from .errors import MalformedFrame, MissingCredential, ProviderCallFailed
from .stream import StreamDecoder, StreamEvent
from .types import Message, RequestConfig, RequestDefaults, ToolCall, Turn
from .wire import TOOL_CALLS_FINISH, ChatChunk, ChatCompletion, ErrorBody

logger = logging.getLogger(__name__)

RequestTransform = Callable[[list[dict[str, Any]], RequestConfig], dict[str, Any]]
ResponseTransform = Callable[[Any], str | None]
FragmentTransform = Callable[[Any], str | None]


class ProviderConfig(msgspec.Struct, frozen=True):
    """Static description of one remote service.

    A ``request_transform`` replaces the default body shaping entirely; it
    receives the wire-format messages and the merged request config.  The
    two response transforms replace the default text extraction.
    """

    kind: str
    name: str
    endpoint: str
    default_model: str
    default_headers: dict[str, str] = msgspec.field(default_factory=dict)
    request_transform: RequestTransform | None = None
    response_transform: ResponseTransform | None = None
    stream_fragment_transform: FragmentTransform | None = None
    supports_tools: bool = True
    supports_streaming_with_tools: bool = True
    search_tool: dict[str, Any] | None = None
    timeout: float = 60.0


class Provider:
    """Builds requests for, and decodes responses from, one remote service.

    Holds no per-call state: everything a call needs travels through the
    arguments of :meth:`complete`.
    """

    default_config: ProviderConfig

    def __init__(
        self,
        credentials: CredentialStore,
        http_client: httpx.AsyncClient,
        *,
        config: ProviderConfig | None = None,
        defaults: RequestDefaults | None = None,
    ) -> None:
        self.config = config or self.default_config
        self.defaults = defaults or RequestDefaults()
        self._credentials = credentials
        self._http = http_client

    @property
    def name(self) -> str:
        """Vendor name, also the credential and usage key (e.g. ``"Moonshot"``)."""
        return self.config.name

    @property
    def kind(self) -> str:
        return self.config.kind

    @property
    def model(self) -> str:
        return self.config.default_model

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, model={self.model!r})"

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    def active_tools(self, config: RequestConfig) -> list[dict[str, Any]]:
        """Tool definitions that will be sent with *config*."""
        if not self.config.supports_tools:
            return []
        tools = self._convert_tools(list(config.tools or ()))
        if config.wants_web_search:
            if self.config.search_tool is not None:
                tools.append(self.config.search_tool)
            else:
                logger.warning("%s has no built-in search tool; ignoring web_search", self.name)
        return tools

    def can_stream(self, config: RequestConfig) -> bool:
        """Whether a round with *config* may be streamed."""
        if self.config.supports_streaming_with_tools:
            return True
        return not self.active_tools(config)

    # ------------------------------------------------------------------
    # Credentials & headers
    # ------------------------------------------------------------------

    def credential(self) -> str:
        secret = self._credentials.get_credential(self.name)
        if not secret:
            raise MissingCredential(self.name)
        return secret

    def auth_headers(self, secret: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {secret}"}

    def build_headers(self, secret: str) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            **self.config.default_headers,
            **self.auth_headers(secret),
        }

    # ------------------------------------------------------------------
    # Request body
    # ------------------------------------------------------------------

    @staticmethod
    def _convert_messages(messages: list[Message]) -> list[dict[str, Any]]:
        """Convert :class:`Message` structs to the chat-completion format."""
        result: list[dict[str, Any]] = []
        for msg in messages:
            entry: dict[str, Any] = {"role": msg.role, "content": msg.content}
            if msg.tool_calls:
                entry["tool_calls"] = [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {"name": tc.name, "arguments": tc.arguments},
                    }
                    for tc in msg.tool_calls
                ]
            if msg.tool_call_id is not None:
                entry["tool_call_id"] = msg.tool_call_id
            if msg.name is not None:
                entry["name"] = msg.name
            result.append(entry)
        return result

    @staticmethod
    def _convert_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Wrap bare ``{"name", "description", "parameters"}`` dicts in function format.

        Dicts that already carry a ``type`` (``function``, ``builtin_function``)
        pass through untouched.
        """
        result: list[dict[str, Any]] = []
        for t in tools:
            if "type" in t:
                result.append(t)
            else:
                result.append(
                    {
                        "type": "function",
                        "function": {
                            "name": t["name"],
                            "description": t.get("description", ""),
                            "parameters": t.get("parameters", {}),
                        },
                    }
                )
        return result

    def build_request_body(
        self, messages: list[Message], config: RequestConfig
    ) -> dict[str, Any]:
        config = config.with_defaults(self.defaults)
        if config.system_message and not (messages and messages[0].role == "system"):
            messages = [Message(role="system", content=config.system_message), *messages]
        api_messages = self._convert_messages(messages)

        if self.config.request_transform is not None:
            return self.config.request_transform(api_messages, config)

        body: dict[str, Any] = {
            "model": self.config.default_model,
            "messages": api_messages,
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
            "stream": config.stream,
        }
        tools = self.active_tools(config)
        if tools:
            body["tools"] = tools
        for key, value in config.flags.items():
            if key != "web_search":
                body[key] = value
        return body

    # ------------------------------------------------------------------
    # Response decoding
    # ------------------------------------------------------------------

    def decode_non_streaming_response(self, payload: Any) -> str | None:
        """Assistant text of a one-shot response.

        ``None`` when the response asks for a tool invocation instead of
        answering; the orchestrator acts on :meth:`decode_tool_calls`.
        """
        if self.config.response_transform is not None:
            return _transformed(self.config.response_transform, payload)
        completion = self._as_completion(payload)
        if not completion.choices:
            return None
        choice = completion.choices[0]
        if choice.finish_reason == TOOL_CALLS_FINISH or choice.message.tool_calls:
            return None
        return choice.message.content

    def decode_tool_calls(self, payload: Any) -> tuple[ToolCall, ...]:
        try:
            completion = self._as_completion(payload)
        except MalformedFrame:
            return ()
        if not completion.choices or not completion.choices[0].message.tool_calls:
            return ()
        return tuple(
            ToolCall(id=tc.id, name=tc.function.name, arguments=tc.function.arguments)
            for tc in completion.choices[0].message.tool_calls
        )

    def decode_stream_fragment(self, event: Any) -> str | None:
        """Content of one stream frame, or ``None``."""
        return self.decode_stream_event(event).text

    def decode_stream_event(self, event: Any) -> StreamEvent:
        if self.config.stream_fragment_transform is not None:
            return StreamEvent(text=_transformed(self.config.stream_fragment_transform, event))
        chunk = self._as_chunk(event)
        if not chunk.choices:
            return StreamEvent()
        choice = chunk.choices[0]
        return StreamEvent(
            text=choice.delta.content or None,
            tool_call_deltas=tuple(choice.delta.tool_calls or ()),
            finish_reason=choice.finish_reason,
        )

    @staticmethod
    def _as_chunk(event: Any) -> ChatChunk:
        try:
            return msgspec.convert(event, type=ChatChunk)
        except msgspec.ValidationError as exc:
            raise MalformedFrame(str(exc)) from exc

    @staticmethod
    def _as_completion(payload: Any) -> ChatCompletion:
        try:
            return msgspec.convert(payload, type=ChatCompletion)
        except msgspec.ValidationError as exc:
            raise MalformedFrame(str(exc)) from exc

    # ------------------------------------------------------------------
    # Call protocol
    # ------------------------------------------------------------------

    async def complete(
        self,
        messages: list[Message],
        config: RequestConfig,
        cancellation: CancellationController | None = None,
    ) -> Turn:
        """Run one request/response round trip.

        Credential lookup happens before any network access.  A
        cancellation observed before or during the read resolves with the
        content received so far.
        """
        cancellation = cancellation or CancellationController(config.cancellation)
        secret = self.credential()
        config = config.with_defaults(self.defaults)
        body = self.build_request_body(messages, config)
        headers = self.build_headers(secret)

        if cancellation.cancelled:
            return Turn(cancelled=True)

        logger.debug(
            "POST %s model=%s messages=%d stream=%s",
            self.config.endpoint,
            body.get("model"),
            len(messages),
            config.stream,
        )
        try:
            async with self._http.stream(
                "POST",
                self.config.endpoint,
                headers=headers,
                content=msgspec.json.encode(body),
                timeout=self.config.timeout,
            ) as response:
                if not response.is_success:
                    await response.aread()
                    raise self._call_failed(response)
                if config.stream:
                    return await self._read_stream(response, config, cancellation)
                return await self._read_payload(response, cancellation)
        except httpx.TransportError as exc:
            raise ProviderCallFailed(self.name, None, str(exc)) from exc

    async def call(self, messages: list[Message], config: RequestConfig | None = None) -> str:
        """Single round convenience wrapper returning only the text."""
        turn = await self.complete(messages, config or RequestConfig())
        return turn.text

    async def _read_stream(
        self,
        response: httpx.Response,
        config: RequestConfig,
        cancellation: CancellationController,
    ) -> Turn:
        decoder = StreamDecoder(self.decode_stream_event, cancellation=cancellation)
        parts: list[str] = []
        async with contextlib.aclosing(decoder.decode(response.aiter_bytes())) as fragments:
            async for fragment in fragments:
                parts.append(fragment)
                if config.on_fragment is not None:
                    config.on_fragment(fragment)
        if decoder.skipped:
            logger.debug("%s: skipped %d malformed frames", self.name, decoder.skipped)
        return Turn(
            text="".join(parts),
            tool_calls=decoder.tool_calls,
            finish_reason=decoder.finish_reason,
            cancelled=decoder.cancelled,
        )

    async def _read_payload(
        self,
        response: httpx.Response,
        cancellation: CancellationController,
    ) -> Turn:
        if cancellation.cancelled:
            return Turn(cancelled=True)
        raw = await response.aread()
        cancellation.note_bytes(len(raw))
        try:
            payload = msgspec.json.decode(raw)
            text = self.decode_non_streaming_response(payload)
        except (msgspec.DecodeError, MalformedFrame) as exc:
            raise ProviderCallFailed(
                self.name, response.status_code, f"invalid response body: {exc}"
            ) from exc
        tool_calls = self.decode_tool_calls(payload)
        return Turn(
            text=text or "",
            tool_calls=tool_calls,
            finish_reason=TOOL_CALLS_FINISH if tool_calls else "stop",
        )

    def _call_failed(self, response: httpx.Response) -> ProviderCallFailed:
        message = ""
        try:
            message = msgspec.json.decode(response.content, type=ErrorBody).error.message
        except (msgspec.DecodeError, msgspec.ValidationError):
            message = response.reason_phrase
        return ProviderCallFailed(self.name, response.status_code, message)


def _transformed(transform: Callable[[Any], str | None], value: Any) -> str | None:
    """Run a user-supplied shape transform; its failures mark the payload as malformed."""
    try:
        return transform(value)
    except Exception as exc:
        raise MalformedFrame(f"transform failed: {exc!r}") from exc
