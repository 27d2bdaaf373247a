"""Moonshot (Kimi) provider."""

from __future__ import annotations

from ..provider import Provider, ProviderConfig

WEB_SEARCH_TOOL = "$web_search"

KIMI_CONFIG = ProviderConfig(
    kind="kimi",
    name="Moonshot",
    endpoint="https://api.moonshot.cn/v1/chat/completions",
    default_model="moonshot-v1-8k",
    # Built-in tools are answered with non-streamed rounds only.
    supports_streaming_with_tools=False,
    search_tool={"type": "builtin_function", "function": {"name": WEB_SEARCH_TOOL}},
)


class KimiProvider(Provider):
    """Moonshot's OpenAI-compatible chat completions, with built-in web search."""

    default_config = KIMI_CONFIG
