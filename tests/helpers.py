"""Shared fakes for the llmgate tests."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable

import httpx

from llmgate import ProviderRegistry, StaticCredentialStore

KEYS = {"Moonshot": "sk-moonshot", "DeepSeek": "sk-deepseek"}


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------


def content_chunk(text: str | None = None, *, finish_reason: str | None = None) -> dict:
    return {
        "id": "chatcmpl-1",
        "choices": [{"index": 0, "delta": {"content": text}, "finish_reason": finish_reason}],
    }


def tool_call_chunk(
    index: int,
    *,
    id: str | None = None,
    name: str | None = None,
    arguments: str | None = None,
) -> dict:
    function: dict = {}
    if name is not None:
        function["name"] = name
    if arguments is not None:
        function["arguments"] = arguments
    delta = {"index": index, "function": function}
    if id is not None:
        delta["id"] = id
    return {"choices": [{"index": 0, "delta": {"tool_calls": [delta]}, "finish_reason": None}]}


def sse_frame(payload: dict | str) -> str:
    data = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
    return f"data: {data}\n\n"


def sse_body(*payloads: dict | str, done: bool = True) -> bytes:
    text = "".join(sse_frame(p) for p in payloads)
    if done:
        text += "data: [DONE]\n\n"
    return text.encode()


def completion(content: str | None = None, tool_calls: list[dict] | None = None) -> dict:
    message: dict = {"role": "assistant", "content": content}
    if tool_calls:
        message["tool_calls"] = tool_calls
    return {
        "id": "chatcmpl-1",
        "choices": [
            {
                "index": 0,
                "message": message,
                "finish_reason": "tool_calls" if tool_calls else "stop",
            }
        ],
    }


def wire_tool_call(id: str, name: str, arguments: str) -> dict:
    return {"id": id, "type": "function", "function": {"name": name, "arguments": arguments}}


# ---------------------------------------------------------------------------
# Byte feeds
# ---------------------------------------------------------------------------


class ChunkedBody:
    """Async byte feed that remembers whether it was closed."""

    def __init__(self, chunks: list[bytes], *, pause: bool = False) -> None:
        self._chunks = list(chunks)
        self._pause = pause
        self.reads = 0
        self.closed = False

    def __aiter__(self) -> ChunkedBody:
        return self

    async def __anext__(self) -> bytes:
        if self._pause:
            await asyncio.sleep(0)
        if not self._chunks:
            raise StopAsyncIteration
        self.reads += 1
        return self._chunks.pop(0)

    async def aclose(self) -> None:
        self.closed = True


def split_bytes(data: bytes, size: int) -> list[bytes]:
    return [data[i : i + size] for i in range(0, len(data), size)]


# ---------------------------------------------------------------------------
# HTTP fake
# ---------------------------------------------------------------------------


class FakeAPI:
    """Scripted chat-completion endpoint backed by ``httpx.MockTransport``.

    Each queued response is used once, in order; the last one repeats.
    """

    def __init__(self, *responses: httpx.Response | Callable[[], httpx.Response]) -> None:
        self._responses = list(responses)
        self.requests: list[httpx.Request] = []
        self.client = httpx.AsyncClient(transport=httpx.MockTransport(self._handle))

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if len(self._responses) > 1:
            response = self._responses.pop(0)
        else:
            response = self._responses[0]
        return response() if callable(response) else response

    def bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]

    def registry(self, keys: dict[str, str] | None = None, **kwargs) -> ProviderRegistry:
        return ProviderRegistry(
            StaticCredentialStore(KEYS if keys is None else keys),
            http_client=self.client,
            **kwargs,
        )


def json_response(payload: dict, status_code: int = 200) -> Callable[[], httpx.Response]:
    return lambda: httpx.Response(status_code, json=payload)


def stream_response(body: bytes | list[bytes], *, pause: bool = False) -> Callable[[], httpx.Response]:
    def build() -> httpx.Response:
        if isinstance(body, bytes):
            return httpx.Response(200, content=body)

        async def chunks():
            for chunk in body:
                if pause:
                    await asyncio.sleep(0)
                yield chunk

        return httpx.Response(200, content=chunks())

    return build
