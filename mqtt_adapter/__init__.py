__version__ = "1.0.0"
from .engine import EngineInitError, EngineLibrary
from .subscriptions import MessageCallback, SubscriptionTable
from .transport import MQTTTransport

__all__ = [
    "EngineInitError",
    "EngineLibrary",
    "MessageCallback",
    "MQTTTransport",
    "SubscriptionTable",
]
