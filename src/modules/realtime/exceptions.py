"""Real-time channel exceptions."""

from __future__ import annotations


class RealtimeError(Exception):
    """Base class for push-channel errors."""


class InvalidSubscription(RealtimeError):
    """A subscription request does not match the subscriber's role."""


class DeliveryFailed(RealtimeError):
    """A message could not be handed to one subscriber's connection.

    Raised by connections and absorbed by the fan-out; it never reaches
    the code that mutated the order.
    """
