"""Tests for llmgate.gateway."""

import contextlib
import json
import logging

import pytest

from llmgate import (
    CallOutcome,
    CancellationToken,
    Gateway,
    MissingCredential,
    ProviderCallFailed,
    ProviderRegistry,
    RequestConfig,
    StaticCredentialStore,
    UnsupportedModel,
    user,
)

from helpers import FakeAPI, completion, content_chunk, json_response, sse_body, sse_frame, stream_response


class RecordingHook:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, str, str]] = []

    def record(self, provider_name, model_id, input_text, output_text):
        self.calls.append((provider_name, model_id, input_text, output_text))


# ---------------------------------------------------------------------------
# call()
# ---------------------------------------------------------------------------


class TestCall:
    @pytest.mark.asyncio
    async def test_end_to_end_non_streaming(self):
        api = FakeAPI(json_response(completion("4")))
        hook = RecordingHook()
        gateway = Gateway(api.registry(), usage_hook=hook)

        text = await gateway.call("kimi", [user("2+2?")], RequestConfig(stream=False))

        assert text == "4"
        assert len(hook.calls) == 1
        provider_name, model_id, input_text, output_text = hook.calls[0]
        assert (provider_name, model_id, output_text) == ("Moonshot", "kimi", "4")
        assert json.loads(input_text) == [{"role": "user", "content": "2+2?"}]

    @pytest.mark.asyncio
    async def test_streaming_fragments_match_result(self):
        parts = ["The ", "answer ", "is ", "4."]
        api = FakeAPI(stream_response(sse_body(*(content_chunk(p) for p in parts))))
        gateway = Gateway(api.registry())
        received: list[str] = []

        text = await gateway.call(
            "deepseek-v3.1", [user("2+2?")], RequestConfig(on_fragment=received.append)
        )

        assert received == parts
        assert text == "".join(parts)

    @pytest.mark.asyncio
    async def test_missing_credential_issues_no_request(self):
        api = FakeAPI(json_response(completion("x")))
        hook = RecordingHook()
        gateway = Gateway(api.registry(keys={"DeepSeek": "sk-1"}), usage_hook=hook)

        with pytest.raises(MissingCredential):
            await gateway.call("kimi", [user("Hi")])

        assert api.requests == []
        assert hook.calls == []

    @pytest.mark.asyncio
    async def test_unsupported_model(self):
        gateway = Gateway(FakeAPI(json_response(completion("x"))).registry())
        with pytest.raises(UnsupportedModel):
            await gateway.call("gpt-4o", [user("Hi")])

    @pytest.mark.asyncio
    async def test_provider_failure_propagates(self):
        api = FakeAPI(json_response({"error": {"message": "quota exceeded"}}, 402))
        hook = RecordingHook()
        gateway = Gateway(api.registry(), usage_hook=hook)

        with pytest.raises(ProviderCallFailed) as exc_info:
            await gateway.call("kimi", [user("Hi")])

        assert exc_info.value.status_code == 402
        assert exc_info.value.message == "quota exceeded"
        assert hook.calls == []


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_after_k_fragments(self):
        parts = ["a", "b", "c", "d", "e"]
        api = FakeAPI(stream_response(sse_body(*(content_chunk(p) for p in parts))))
        hook = RecordingHook()
        gateway = Gateway(api.registry(), usage_hook=hook)
        token = CancellationToken()
        received: list[str] = []

        def on_fragment(fragment: str) -> None:
            received.append(fragment)
            if len(received) == 3:
                token.cancel()

        result = await gateway.call_detailed(
            "deepseek-v3.1",
            [user("letters")],
            RequestConfig(on_fragment=on_fragment, cancellation=token),
        )

        assert result.text == "abc"
        assert received == ["a", "b", "c"]
        assert result.outcome is CallOutcome.CANCELLED
        # Partial output still counts as delivered
        assert hook.calls[0][3] == "abc"

    @pytest.mark.asyncio
    async def test_cancel_before_any_bytes(self):
        api = FakeAPI(json_response(completion("x")))
        hook = RecordingHook()
        gateway = Gateway(api.registry(), usage_hook=hook)
        token = CancellationToken()
        token.cancel()

        result = await gateway.call_detailed(
            "kimi", [user("Hi")], RequestConfig(cancellation=token)
        )

        assert result.text == ""
        assert result.outcome is CallOutcome.CANCELLED_EMPTY
        assert api.requests == []
        assert hook.calls == []

    @pytest.mark.asyncio
    async def test_empty_answer_is_not_a_cancellation(self):
        api = FakeAPI(json_response(completion("")))
        gateway = Gateway(api.registry())

        result = await gateway.call_detailed("kimi", [user("Hi")], RequestConfig(stream=False))

        assert result.text == ""
        assert result.outcome is CallOutcome.COMPLETED


class TestUsageHook:
    @pytest.mark.asyncio
    async def test_hook_failure_is_swallowed(self, caplog):
        class BrokenHook:
            def record(self, *args):
                raise RuntimeError("ledger offline")

        api = FakeAPI(json_response(completion("fine")))
        gateway = Gateway(api.registry(), usage_hook=BrokenHook())

        with caplog.at_level(logging.WARNING, logger="llmgate.gateway"):
            text = await gateway.call("kimi", [user("Hi")], RequestConfig(stream=False))

        assert text == "fine"
        assert "Usage hook failed" in caplog.text

    @pytest.mark.asyncio
    async def test_async_hook_is_awaited(self):
        seen = []

        class AsyncHook:
            async def record(self, provider_name, model_id, input_text, output_text):
                seen.append(output_text)

        api = FakeAPI(json_response(completion("async")))
        gateway = Gateway(api.registry(), usage_hook=AsyncHook())

        await gateway.call("kimi", [user("Hi")], RequestConfig(stream=False))
        assert seen == ["async"]


# ---------------------------------------------------------------------------
# stream()
# ---------------------------------------------------------------------------


class TestStream:
    @pytest.mark.asyncio
    async def test_stream_yields_fragments_then_result(self):
        api = FakeAPI(stream_response(sse_body(content_chunk("Hello"), content_chunk(" world"))))
        gateway = Gateway(api.registry())

        stream, store = await gateway.stream("deepseek-v3.1", [user("Hi")])
        collected = [fragment async for fragment in stream]

        assert collected == ["Hello", " world"]
        assert store["result"].text == "Hello world"
        assert store["result"].outcome is CallOutcome.COMPLETED

    @pytest.mark.asyncio
    async def test_stream_forces_streaming_and_forwards_callback(self):
        api = FakeAPI(stream_response(sse_body(content_chunk("x"))))
        gateway = Gateway(api.registry())
        forwarded: list[str] = []

        stream, store = await gateway.stream(
            "deepseek-v3.1", [user("Hi")], RequestConfig(stream=False, on_fragment=forwarded.append)
        )
        collected = [fragment async for fragment in stream]

        assert collected == forwarded == ["x"]
        assert api.bodies()[0]["stream"] is True

    @pytest.mark.asyncio
    async def test_leaving_stream_early_cancels_call(self):
        chunks = [sse_frame(content_chunk(p)).encode() for p in ["first", "second", "third"]]
        api = FakeAPI(stream_response(chunks, pause=True))
        gateway = Gateway(api.registry())

        stream, store = await gateway.stream("deepseek-v3.1", [user("Hi")])
        async with contextlib.aclosing(stream):
            async for fragment in stream:
                assert fragment == "first"
                break

        assert store["result"].outcome is CallOutcome.CANCELLED
        assert store["result"].text == "first"

    @pytest.mark.asyncio
    async def test_stream_propagates_errors(self):
        api = FakeAPI(json_response({"error": {"message": "boom"}}, 500))
        gateway = Gateway(api.registry())

        stream, store = await gateway.stream("kimi", [user("Hi")])
        with pytest.raises(ProviderCallFailed):
            async for _ in stream:
                pass
        assert "result" not in store


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_context_manager_closes_owned_client(self):
        async with Gateway(ProviderRegistry(StaticCredentialStore())) as gateway:
            client = gateway.registry.http_client
        assert client.is_closed

    @pytest.mark.asyncio
    async def test_context_manager_leaves_injected_client_open(self):
        api = FakeAPI(json_response(completion("x")))
        async with Gateway(api.registry()):
            pass
        assert not api.client.is_closed
