"""Async Python client for the Drone CI server API."""

from ._http import HTTPClient, TimeoutConfig
from ._stream import (
    CloseReason,
    StreamSubscriber,
    Subscription,
    SubscriptionOptions,
    SubscriptionState,
)
from .client import DroneClient, encode_query_string
from .config import DroneConfig, load_dotenv_for_sdk
from .exceptions import (
    ConnectionError,
    DroneError,
    HTTPError,
    MessageDecodeError,
    ResponseDecodeError,
    StreamError,
)

__all__ = [
    "CloseReason",
    "ConnectionError",
    "DroneClient",
    "DroneConfig",
    "DroneError",
    "HTTPClient",
    "HTTPError",
    "MessageDecodeError",
    "ResponseDecodeError",
    "StreamError",
    "StreamSubscriber",
    "Subscription",
    "SubscriptionOptions",
    "SubscriptionState",
    "TimeoutConfig",
    "encode_query_string",
    "load_dotenv_for_sdk",
]
