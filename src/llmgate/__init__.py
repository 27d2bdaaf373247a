"""llmgate -- one chat-completion interface over several AI providers.

Public API re-exports for convenient access::

    import llmgate

    gateway = llmgate.Gateway(llmgate.ProviderRegistry())
    messages = [
        llmgate.system("You are helpful."),
        llmgate.user("What is 2+2?"),
    ]
    text = await gateway.call(
        "kimi",
        messages,
        llmgate.RequestConfig(on_fragment=print),
    )
"""

from .cancellation import CancellationController, CancellationToken
from .config import GatewaySettings, load_settings
from .credentials import (
    ChainedCredentialStore,
    CredentialStore,
    EnvCredentialStore,
    StaticCredentialStore,
)
from .errors import (
    ConfigError,
    GatewayError,
    MalformedFrame,
    MissingCredential,
    ProviderCallFailed,
    UnsupportedModel,
)
from .gateway import Gateway
from .orchestrator import LoopState, ToolCallOrchestrator, ToolResolver
from .provider import Provider, ProviderConfig
from .registry import ProviderRegistry, Route
from .stream import StreamDecoder, StreamEvent
from .types import (
    CallOutcome,
    CallResult,
    History,
    Message,
    RequestConfig,
    RequestDefaults,
    Store,
    StreamResult,
    ToolCall,
    Turn,
    # Helper functions for constructing messages
    assistant,
    system,
    tool,
    user,
)
from .usage import UsageHook, UsageRecord, UsageTracker, estimate_tokens

from . import providers

__all__ = [
    # Gateway
    "Gateway",
    "GatewaySettings",
    "load_settings",
    # Providers
    "Provider",
    "ProviderConfig",
    "ProviderRegistry",
    "Route",
    "providers",
    # Credentials
    "CredentialStore",
    "StaticCredentialStore",
    "EnvCredentialStore",
    "ChainedCredentialStore",
    # Streaming & cancellation
    "StreamDecoder",
    "StreamEvent",
    "CancellationToken",
    "CancellationController",
    # Tool loop
    "ToolCallOrchestrator",
    "ToolResolver",
    "LoopState",
    # Messages & results
    "Message",
    "History",
    "ToolCall",
    "RequestConfig",
    "RequestDefaults",
    "Turn",
    "CallOutcome",
    "CallResult",
    "Store",
    "StreamResult",
    "system",
    "user",
    "assistant",
    "tool",
    # Usage
    "UsageHook",
    "UsageRecord",
    "UsageTracker",
    "estimate_tokens",
    # Errors
    "GatewayError",
    "MissingCredential",
    "UnsupportedModel",
    "ProviderCallFailed",
    "MalformedFrame",
    "ConfigError",
]
