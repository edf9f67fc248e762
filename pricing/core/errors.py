"""
Domain errors raised by the pricing core.

Both are ValueError subclasses so callers can treat them like any other
bad-input failure.
"""

from __future__ import annotations


class InvalidPricingRequest(ValueError):
    """A pricing request violates a precondition (non-positive price or duration, bad time)."""


class NoApplicablePrice(ValueError):
    """No guest pricing tier accommodates the requested guest count."""

    def __init__(self, guest_count: int) -> None:
        super().__init__(f"No price available for {guest_count} guests")
        self.guest_count = guest_count
