"""ProviderRegistry -- model id to memoized provider instance."""

from __future__ import annotations

import logging

import httpx
import msgspec

from .credentials import CredentialStore, EnvCredentialStore
from .errors import UnsupportedModel
from .provider import Provider, ProviderConfig
from .providers import PROVIDER_KINDS
from .types import RequestDefaults

logger = logging.getLogger(__name__)


class Route(msgspec.Struct, frozen=True):
    """Where a model id goes: a provider kind plus an optional model override."""

    kind: str
    model: str | None = None


DEFAULT_ROUTES: dict[str, Route] = {
    "kimi": Route("kimi"),
    "deepseek-v3.1": Route("deepseek"),
}


class ProviderRegistry:
    """Maps caller-facing model ids onto cached :class:`Provider` instances.

    Providers are created on first :meth:`resolve` and live until
    :meth:`clear_cache`.  All of them share one ``httpx.AsyncClient``,
    created lazily unless one is injected; the registry closes it in
    :meth:`aclose` only if it created it.
    """

    def __init__(
        self,
        credentials: CredentialStore | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        routes: dict[str, Route] | None = None,
        config_overrides: dict[str, ProviderConfig] | None = None,
        defaults: RequestDefaults | None = None,
    ) -> None:
        self.credentials = credentials or EnvCredentialStore()
        self.defaults = defaults or RequestDefaults()
        self._routes: dict[str, Route] = dict(DEFAULT_ROUTES if routes is None else routes)
        self._config_overrides = dict(config_overrides or {})
        self._http = http_client
        self._owns_http = http_client is None
        self._cache: dict[str, Provider] = {}

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    def register(self, model_id: str, kind: str, *, model: str | None = None) -> None:
        """Route *model_id* to the provider *kind*, optionally with another model name."""
        if kind not in PROVIDER_KINDS:
            raise ValueError(
                f"Unknown provider kind: {kind}. Available: {', '.join(PROVIDER_KINDS)}"
            )
        self._routes[model_id] = Route(kind, model)
        # A stale instance would keep the old route.
        self._cache.pop(model_id, None)

    def model_ids(self) -> list[str]:
        return list(self._routes)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, model_id: str) -> Provider:
        """Return the cached provider for *model_id*, creating it on first use."""
        provider = self._cache.get(model_id)
        if provider is None:
            provider = self._create(model_id)
            self._cache[model_id] = provider
        return provider

    def clear_cache(self) -> None:
        """Discard every cached provider (credential rotation, tests)."""
        logger.debug("Clearing %d cached providers", len(self._cache))
        self._cache.clear()

    def _create(self, model_id: str) -> Provider:
        route = self._routes.get(model_id)
        if route is None:
            raise UnsupportedModel(model_id, self.model_ids())

        provider_cls = PROVIDER_KINDS[route.kind]
        config = self._config_overrides.get(route.kind, provider_cls.default_config)
        if route.model is not None:
            config = msgspec.structs.replace(config, default_model=route.model)

        logger.debug("Creating %s for model id %r", provider_cls.__name__, model_id)
        return provider_cls(
            self.credentials,
            self.http_client,
            config=config,
            defaults=self.defaults,
        )

    # ------------------------------------------------------------------
    # HTTP client lifetime
    # ------------------------------------------------------------------

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient()
        return self._http

    async def aclose(self) -> None:
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None
