"""Shared building blocks for the devlink services."""

from .subscriptions import RepeatingTimer, Subscription

__all__ = ["RepeatingTimer", "Subscription"]
