"""
Service-layer exceptions for the analytics engine.
"""

from __future__ import annotations


class AnalyticsError(Exception):
    """Base exception for analytics failures."""


class StoreReadError(AnalyticsError):
    """Raised when a single read against the issue store fails or times out."""


class SubscriptionError(AnalyticsError):
    """Raised when the issue change feed cannot be opened."""
