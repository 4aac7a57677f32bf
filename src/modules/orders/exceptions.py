"""Order domain exceptions.

Raised by the Service Layer when business rules are violated.
The API layer (Views) catches these and translates them into
appropriate HTTP responses.  Every rejected mutation leaves the
Order Store unchanged.
"""

from __future__ import annotations


class OrderError(Exception):
    """Base class for every caller-recoverable order error."""


class InvalidOrderData(OrderError):
    """Malformed create/update request (no items, missing address, bad value)."""


class InvalidLineItem(InvalidOrderData):
    """A line item has a negative price or a non-positive quantity."""


class InvalidTransition(OrderError):
    """The requested change is not an edge of the order state machine."""


class TransitionNotPermitted(InvalidTransition):
    """The edge exists but the acting role may not take it."""


class ItemsLocked(InvalidTransition):
    """Line items can only change while the order is pending."""


class OrderNotFound(OrderError):
    """The requested order does not exist."""


class StoreUnavailable(OrderError):
    """The persistence backend failed; the caller may retry."""
