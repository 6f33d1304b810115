# Overview: Typed failures raised by the ledger engine and mapped to HTTP responses by routes.

"""
Error taxonomy (authoritative)

Every engine failure is an EngineError carrying:
- message: human-readable summary
- details: structured context (ids, amounts in cents) for the UI
- code: the class name, stable across releases
- status_code: HTTP status used by the routes layer

Families:
- input errors (400): caller sent something invalid, do not retry as-is
- not found (404): referenced row does not exist
- state errors (409): refresh state before retrying
- business rejections (409): e.g. insufficient stock
- infrastructure: PersistenceConflict (409, already retried internally),
  PersistenceTimeout (503, never retried automatically)
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for every failure the engine reports on purpose."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


# =============================================================================
# INPUT ERRORS
# =============================================================================

class ValidationError(EngineError):
    """400-level input problem."""


class InvalidAmount(ValidationError):
    pass


class InvalidQuantity(ValidationError):
    pass


class InvalidDiscount(ValidationError):
    pass


class InsufficientPayment(ValidationError):
    pass


class InvalidPaymentMethod(ValidationError):
    pass


class InvalidMovementType(ValidationError):
    pass


class InvalidTransactionType(ValidationError):
    pass


class EmptyCart(ValidationError):
    pass


class InvalidDescription(ValidationError):
    pass


# =============================================================================
# NOT FOUND
# =============================================================================

class NotFoundError(EngineError):
    status_code = 404


class ProductNotFound(NotFoundError):
    pass


class CategoryNotFound(NotFoundError):
    pass


class SessionNotFound(NotFoundError):
    pass


class SaleNotFound(NotFoundError):
    pass


class EmployeeNotFound(NotFoundError):
    pass


# =============================================================================
# STATE / BUSINESS RULES
# =============================================================================

class StateError(EngineError):
    """409-level conflict with current state."""

    status_code = 409


class SessionNotOpen(StateError):
    pass


class SessionAlreadyOpen(StateError):
    pass


class OpeningBalanceExists(StateError):
    pass


class DuplicateRecord(StateError):
    pass


class InsufficientStock(StateError):
    """Raised when an out movement would drive on-hand stock below zero."""

    def __init__(
        self,
        product_id: int,
        requested: int,
        available: int,
        product_name: str | None = None,
    ):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        self.shortfall = requested - available
        label = product_name or f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label}: requested {requested}, available {available}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "requested": requested,
                "available": available,
                "shortfall": self.shortfall,
            },
        )


# =============================================================================
# INFRASTRUCTURE
# =============================================================================

class PersistenceConflict(StateError):
    """Optimistic-lock conflict that survived the internal retry budget."""


class PersistenceTimeout(EngineError):
    """Lock or connection wait expired; the operation may be retried by the caller."""

    status_code = 503
