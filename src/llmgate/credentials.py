"""Credential stores -- where providers look up their API keys."""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Protocol

# Provider name -> environment variable holding its key
DEFAULT_ENV_VARS: dict[str, str] = {
    "Moonshot": "MOONSHOT_API_KEY",
    "DeepSeek": "DEEPSEEK_API_KEY",
}


class CredentialStore(Protocol):
    """Anything that can hand out a secret for a provider name."""

    def get_credential(self, provider_name: str) -> str | None:
        """Return the secret for *provider_name*, or ``None`` if none is configured."""
        ...


class StaticCredentialStore:
    """In-memory keys, e.g. loaded from settings or set at runtime."""

    def __init__(self, keys: Mapping[str, str] | None = None) -> None:
        self._keys: dict[str, str] = dict(keys or {})

    def get_credential(self, provider_name: str) -> str | None:
        return self._keys.get(provider_name) or None

    def set_credential(self, provider_name: str, key: str) -> None:
        """Add or replace a key.

        Cached providers read the store on every call, so no cache
        invalidation is needed for a rotation to take effect.
        """
        self._keys[provider_name] = key


class EnvCredentialStore:
    """Keys read from environment variables at lookup time."""

    def __init__(
        self,
        env_vars: Mapping[str, str] | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._env_vars = dict(DEFAULT_ENV_VARS if env_vars is None else env_vars)
        self._environ = os.environ if environ is None else environ

    def get_credential(self, provider_name: str) -> str | None:
        var = self._env_vars.get(provider_name)
        if var is None:
            var = f"{provider_name.upper()}_API_KEY"
        return self._environ.get(var) or None


class ChainedCredentialStore:
    """First store that knows a key wins."""

    def __init__(self, *stores: CredentialStore) -> None:
        self._stores = stores

    def get_credential(self, provider_name: str) -> str | None:
        for store in self._stores:
            secret = store.get_credential(provider_name)
            if secret:
                return secret
        return None
