"""
Highrise Poller

Incrementally polls the Highrise API for a subscription, classifies changed
records as new or modified, and raises one event per record.
"""

__version__ = "0.1.0"
__author__ = "Highrise Poller"
__email__ = "support@example.com"

from .config import Settings
from .exceptions import HighrisePollerError
from .highrise_client import HighriseClient
from .polling import PollOrchestrator, PollOutcome
from .state import Subscription, SubscriptionState

__all__ = [
    "Settings",
    "HighriseClient",
    "HighrisePollerError",
    "PollOrchestrator",
    "PollOutcome",
    "Subscription",
    "SubscriptionState",
]
