"""DeepSeek provider."""

from __future__ import annotations

from ..provider import Provider, ProviderConfig

DEEPSEEK_CONFIG = ProviderConfig(
    kind="deepseek",
    name="DeepSeek",
    endpoint="https://api.deepseek.com/v1/chat/completions",
    default_model="deepseek-chat",
)


class DeepSeekProvider(Provider):
    """DeepSeek's OpenAI-compatible chat completions."""

    default_config = DEEPSEEK_CONFIG
