# Overview: Shared exception taxonomy for the POS core.

"""
Error taxonomy

- ValidationError: bad input or a business rule that blocks the operation
  (empty cart, missing customer for debt, insufficient stock, non-positive
  ledger amount). Raised before any mutation. Routes answer 400.
- NotFoundError: a referenced record disappeared (product removed since it
  was added to the cart, pending transaction already resumed). Routes
  answer 404.

Every service raises its own subclass so callers can catch narrowly while
routes map on the taxonomy base class.
"""

from __future__ import annotations


class KasirError(Exception):
    """Base class for POS core errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(KasirError):
    pass


class NotFoundError(KasirError):
    pass


class InsufficientStockError(ValidationError):
    """Requested quantity exceeds tracked stock."""
    def __init__(self, message: str, available: int | None = None, details: dict | None = None):
        details = dict(details or {})
        details.setdefault("available", available)
        super().__init__(message, details)
        self.available = available
