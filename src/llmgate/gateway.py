"""Gateway -- user-facing entry point."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import AsyncIterator

import httpx
import msgspec

from .cancellation import CancellationController, CancellationToken
from .config import GatewaySettings
from .orchestrator import ToolCallOrchestrator, ToolResolver
from .provider import Provider
from .registry import ProviderRegistry
from .types import (
    CallOutcome,
    CallResult,
    Message,
    RequestConfig,
    Store,
    StreamResult,
)
from .usage import UsageHook

logger = logging.getLogger(__name__)


class Gateway:
    """Unified chat-completion gateway.

    Wraps a :class:`ProviderRegistry`, a :class:`ToolCallOrchestrator` and
    an optional usage hook.  :meth:`call` returns the assembled text;
    :meth:`stream` exposes the same call as an async iterator of fragments.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        usage_hook: UsageHook | None = None,
        orchestrator: ToolCallOrchestrator | None = None,
    ) -> None:
        self.registry = registry
        self.usage_hook = usage_hook
        self.orchestrator = orchestrator or ToolCallOrchestrator()

    @classmethod
    def from_settings(
        cls,
        settings: GatewaySettings,
        *,
        usage_hook: UsageHook | None = None,
        resolvers: dict[str, ToolResolver] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> Gateway:
        registry = ProviderRegistry(
            settings.credential_store(),
            http_client=http_client,
            routes=settings.routes(),
            config_overrides=settings.provider_configs(),
            defaults=settings.defaults,
        )
        orchestrator = ToolCallOrchestrator(resolvers, max_rounds=settings.max_tool_rounds)
        return cls(registry, usage_hook=usage_hook, orchestrator=orchestrator)

    async def __aenter__(self) -> Gateway:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.registry.aclose()

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    async def call(
        self,
        model_id: str,
        messages: list[Message],
        config: RequestConfig | None = None,
    ) -> str:
        """Run one logical call and return the assembled response text.

        ``config.on_fragment`` is invoked with every fragment, in order,
        before this returns.  A cancelled call returns the partial text.
        """
        result = await self.call_detailed(model_id, messages, config)
        return result.text

    async def call_detailed(
        self,
        model_id: str,
        messages: list[Message],
        config: RequestConfig | None = None,
    ) -> CallResult:
        """Like :meth:`call`, but return the whole :class:`CallResult`."""
        config = config or RequestConfig()
        provider = self.registry.resolve(model_id)
        # Fail before any network access when the key is missing.
        provider.credential()

        cancellation = CancellationController(config.cancellation)
        result = await self.orchestrator.run(provider, model_id, messages, config, cancellation)

        if result.outcome is not CallOutcome.CANCELLED_EMPTY:
            await self._record_usage(provider, model_id, messages, result.text)
        return result

    async def stream(
        self,
        model_id: str,
        messages: list[Message],
        config: RequestConfig | None = None,
    ) -> StreamResult:
        """Start a streaming call.

        After the returned async iterator is fully consumed the *store*
        dict will contain:

        - ``"result"`` – :class:`CallResult`

        Leaving the iterator early cancels the call cooperatively.
        """
        config = config or RequestConfig()
        token = config.cancellation or CancellationToken()
        queue: asyncio.Queue[str | None] = asyncio.Queue()
        forward = config.on_fragment

        def on_fragment(fragment: str) -> None:
            queue.put_nowait(fragment)
            if forward is not None:
                forward(fragment)

        store: Store = {}
        task = asyncio.create_task(
            self.call_detailed(
                model_id,
                messages,
                config.replace(stream=True, on_fragment=on_fragment, cancellation=token),
            )
        )
        task.add_done_callback(lambda _: queue.put_nowait(None))

        iterator = self._wrap_iterator(task, queue, token, store)
        return iterator, store

    async def _wrap_iterator(
        self,
        task: asyncio.Task[CallResult],
        queue: asyncio.Queue[str | None],
        token: CancellationToken,
        store: Store,
    ) -> AsyncIterator[str]:
        """Yield fragments as they arrive, then publish the result."""
        try:
            while (fragment := await queue.get()) is not None:
                yield fragment
        finally:
            if not task.done():
                token.cancel()
            store["result"] = await task

    # ------------------------------------------------------------------
    # Usage accounting
    # ------------------------------------------------------------------

    async def _record_usage(
        self,
        provider: Provider,
        model_id: str,
        messages: list[Message],
        output_text: str,
    ) -> None:
        if self.usage_hook is None:
            return
        try:
            input_text = msgspec.json.encode(messages).decode()
            result = self.usage_hook.record(provider.name, model_id, input_text, output_text)
            if inspect.isawaitable(result):
                await result
        except Exception:
            # Accounting must never break chat delivery.
            logger.warning("Usage hook failed for %s/%s", provider.name, model_id, exc_info=True)
