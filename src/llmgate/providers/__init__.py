"""Built-in providers.

The set of provider kinds is closed: model ids are routed onto one of
these by :class:`llmgate.registry.ProviderRegistry`.
"""

from ..provider import Provider
from .deepseek import DEEPSEEK_CONFIG, DeepSeekProvider
from .kimi import KIMI_CONFIG, WEB_SEARCH_TOOL, KimiProvider

PROVIDER_KINDS: dict[str, type[Provider]] = {
    "kimi": KimiProvider,
    "deepseek": DeepSeekProvider,
}

__all__ = [
    "PROVIDER_KINDS",
    "KimiProvider",
    "DeepSeekProvider",
    "KIMI_CONFIG",
    "DEEPSEEK_CONFIG",
    "WEB_SEARCH_TOOL",
]
