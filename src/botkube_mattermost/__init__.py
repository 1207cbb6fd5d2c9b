from .bootstrap import BootstrapError, Session, bootstrap
from .bridge import BridgeConfig, BridgeState, HandleResult, MattermostBridge, handle_event
from .client import MattermostApiError, MattermostClient
from .config import BridgeSettings, ConfigError, ReconnectPolicy, load_settings
from .events import InboundEvent, MalformedEventError, Post
from .executor import Executor, KubectlExecutor
from .listener import iter_events, websocket_url
from .responder import SendResult, send_response

__version__ = "0.1.0"

__all__ = [
    "BootstrapError",
    "BridgeConfig",
    "BridgeSettings",
    "BridgeState",
    "ConfigError",
    "Executor",
    "HandleResult",
    "InboundEvent",
    "KubectlExecutor",
    "MalformedEventError",
    "MattermostApiError",
    "MattermostBridge",
    "MattermostClient",
    "Post",
    "ReconnectPolicy",
    "SendResult",
    "Session",
    "bootstrap",
    "handle_event",
    "iter_events",
    "load_settings",
    "send_response",
    "websocket_url",
]
