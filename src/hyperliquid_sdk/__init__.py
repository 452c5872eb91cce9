"""
Hyperliquid SDK: asynchronous REST, signing and streaming client.
"""

from .client import HyperliquidClient
from .config import (
    ClientConfig,
    LoggingConfig,
    Network,
    NETWORK_PRESETS,
    RetryPolicy,
    load_config,
    setup_logging,
)
from .exceptions import (
    DecodeError,
    ExchangeAPIError,
    HyperliquidError,
    InvalidCredentialError,
    RequestCancelledError,
    StreamClosedError,
    TransportError,
    WebSocketConnectionError,
    WebSocketError,
)
from .models import (
    CancelRequest,
    CancelByCloidRequest,
    LimitOrderType,
    ModifyRequest,
    OrderRequest,
    OrderType,
    TriggerOrderType,
)
from .security import NonceManager, RequestSigner, SignedRequest
from .websocket import ConnectionState, SubscriptionManager

__version__ = "0.1.0"

__all__ = [
    'HyperliquidClient',
    'ClientConfig',
    'LoggingConfig',
    'Network',
    'NETWORK_PRESETS',
    'RetryPolicy',
    'load_config',
    'setup_logging',
    'DecodeError',
    'ExchangeAPIError',
    'HyperliquidError',
    'InvalidCredentialError',
    'RequestCancelledError',
    'StreamClosedError',
    'TransportError',
    'WebSocketConnectionError',
    'WebSocketError',
    'CancelRequest',
    'CancelByCloidRequest',
    'LimitOrderType',
    'ModifyRequest',
    'OrderRequest',
    'OrderType',
    'TriggerOrderType',
    'NonceManager',
    'RequestSigner',
    'SignedRequest',
    'ConnectionState',
    'SubscriptionManager',
]
