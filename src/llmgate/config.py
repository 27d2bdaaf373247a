"""GatewaySettings -- YAML configuration for the gateway.

Example file::

    max_tool_rounds: 5
    defaults:
      temperature: 0.7
      max_tokens: 1000
      stream: true
    providers:
      kimi:
        default_model: moonshot-v1-32k
        timeout: 120
    models:
      kimi-32k: {kind: kimi, model: moonshot-v1-32k}
    credentials:
      DeepSeek: sk-...

The file path defaults to ``$LLMGATE_CONFIG``; with neither a path nor
the variable, built-in defaults apply.  Keys absent from ``credentials``
are read from the environment (``MOONSHOT_API_KEY``, ``DEEPSEEK_API_KEY``).
"""

from __future__ import annotations

import os
from pathlib import Path

import msgspec
import yaml

from .credentials import ChainedCredentialStore, EnvCredentialStore, StaticCredentialStore
from .errors import ConfigError
from .orchestrator import DEFAULT_MAX_ROUNDS
from .provider import ProviderConfig
from .providers import PROVIDER_KINDS
from .registry import DEFAULT_ROUTES, Route
from .types import RequestDefaults

CONFIG_ENV_VAR = "LLMGATE_CONFIG"


class ProviderOverride(msgspec.Struct, frozen=True, forbid_unknown_fields=True):
    """Per-kind changes to a built-in :class:`ProviderConfig`."""

    endpoint: str | None = None
    default_model: str | None = None
    timeout: float | None = None
    headers: dict[str, str] = {}

    def apply(self, config: ProviderConfig) -> ProviderConfig:
        changes: dict = {}
        if self.endpoint is not None:
            changes["endpoint"] = self.endpoint
        if self.default_model is not None:
            changes["default_model"] = self.default_model
        if self.timeout is not None:
            changes["timeout"] = self.timeout
        if self.headers:
            changes["default_headers"] = {**config.default_headers, **self.headers}
        return msgspec.structs.replace(config, **changes)


class GatewaySettings(msgspec.Struct, frozen=True, forbid_unknown_fields=True):
    max_tool_rounds: int = DEFAULT_MAX_ROUNDS
    defaults: RequestDefaults = msgspec.field(default_factory=RequestDefaults)
    providers: dict[str, ProviderOverride] = {}
    models: dict[str, Route] = {}
    credentials: dict[str, str] = {}

    # ------------------------------------------------------------------
    # Derived objects
    # ------------------------------------------------------------------

    def routes(self) -> dict[str, Route]:
        return {**DEFAULT_ROUTES, **self.models}

    def provider_configs(self) -> dict[str, ProviderConfig]:
        return {
            kind: override.apply(PROVIDER_KINDS[kind].default_config)
            for kind, override in self.providers.items()
        }

    def credential_store(self) -> ChainedCredentialStore:
        return ChainedCredentialStore(
            StaticCredentialStore(self.credentials),
            EnvCredentialStore(),
        )


# ------------------------------------------------------------------
# Loading
# ------------------------------------------------------------------


def load_settings(path: str | Path | None = None) -> GatewaySettings:
    """Load settings from *path*, ``$LLMGATE_CONFIG`` or built-in defaults."""
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR) or None
    if path is None:
        return GatewaySettings()

    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot read settings from {path}: {exc}") from exc

    return settings_from_dict(data or {}, source=str(path))


def settings_from_dict(data: dict, *, source: str = "<dict>") -> GatewaySettings:
    try:
        settings = msgspec.convert(data, type=GatewaySettings)
    except msgspec.ValidationError as exc:
        raise ConfigError(f"Invalid settings in {source}: {exc}") from exc

    unknown = set(settings.providers) - set(PROVIDER_KINDS)
    unknown |= {route.kind for route in settings.models.values()} - set(PROVIDER_KINDS)
    if unknown:
        raise ConfigError(
            f"Unknown provider kind(s) in {source}: {', '.join(sorted(unknown))}"
        )
    if settings.max_tool_rounds < 1:
        raise ConfigError(f"max_tool_rounds must be at least 1 in {source}")
    return settings
