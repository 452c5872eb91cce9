"""Streaming market and account data over WebSocket."""

from .subscription_manager import (
    ConnectionState,
    Subscription,
    SubscriptionManager,
    message_topic,
    subscription_topic,
)

__all__ = [
    'ConnectionState',
    'Subscription',
    'SubscriptionManager',
    'message_topic',
    'subscription_topic',
]
