"""
Custom exceptions for the Highrise poller.

This module defines the error taxonomy used by the polling engine. Gating
errors deny a cycle; fetch and dispatch errors are contained within a cycle.
"""

from datetime import datetime
from typing import Any


class HighrisePollerError(Exception):
    """Base exception for Highrise poller errors."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code or "HIGHRISE_POLLER_ERROR"
        self.context = context or {}


class PollDeniedError(HighrisePollerError):
    """Base exception for a cycle refused at the gate."""


class RateLimitExceeded(PollDeniedError):
    """Exception for a cycle attempted before the minimum interval elapsed."""

    def __init__(
        self,
        message: str,
        retry_at: datetime | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, "RATE_LIMIT_EXCEEDED", context)
        self.retry_at = retry_at


class AuthorizationRequired(PollDeniedError):
    """Exception for a subscription that needs a credential but has none."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, "AUTHORIZATION_REQUIRED", context)


class FetchError(HighrisePollerError):
    """Exception for an endpoint whose data could not be fetched."""

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, "FETCH_ERROR", context)
        self.endpoint = endpoint
        self.status_code = status_code


class DispatchError(HighrisePollerError):
    """Exception for an event that did not reach the sink."""

    def __init__(
        self,
        message: str,
        event_name: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, "DISPATCH_ERROR", context)
        self.event_name = event_name


class ConfigurationError(HighrisePollerError):
    """Exception for configuration related errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, "CONFIGURATION_ERROR", context)


class StateStoreError(HighrisePollerError):
    """Exception for subscription store read/write failures."""

    def __init__(
        self,
        message: str,
        subscription_id: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, "STATE_STORE_ERROR", context)
        self.subscription_id = subscription_id
