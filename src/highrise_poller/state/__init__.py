"""
State management for the Highrise poller.

This package provides the subscription model and pluggable persistence
backends for poll metadata.
"""

from .manager import (
    EndpointMeta,
    InMemorySubscriptionStore,
    JsonFileSubscriptionStore,
    Subscription,
    SubscriptionState,
    SubscriptionStore,
    SubscriptionStoreFactory,
)

__all__ = [
    "EndpointMeta",
    "InMemorySubscriptionStore",
    "JsonFileSubscriptionStore",
    "Subscription",
    "SubscriptionState",
    "SubscriptionStore",
    "SubscriptionStoreFactory",
]
