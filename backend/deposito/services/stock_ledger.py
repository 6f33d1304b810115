# Overview: Service-layer operations for the stock ledger; every quantity change is one movement row.

from __future__ import annotations

import logging

from sqlalchemy import case, func

from ..errors import (
    InvalidMovementType,
    InvalidQuantity,
    InsufficientStock,
    OpeningBalanceExists,
    ProductNotFound,
    ValidationError,
)
from ..extensions import db
from ..models import Product, StockMovement
from ..time_utils import utcnow
from .concurrency import begin_write, lock_for_update, run_with_retry
"""
Stock Ledger Invariants (authoritative)

- StockMovement rows are append-only; corrections are offsetting movements.
- Product.stock_quantity == SUM(+quantity for 'in', -quantity for 'out')
  over the product's movements, at every commit.
- The movement insert and the projection update happen in the same DB
  transaction, under the product row lock and its version_id.
- An 'out' movement that would make stock negative is rejected before
  anything is written.
- Opening balance is only allowed while the product has no movements.
"""


logger = logging.getLogger(__name__)

MOVEMENT_IN = "in"
MOVEMENT_OUT = "out"
MOVEMENT_TYPES = (MOVEMENT_IN, MOVEMENT_OUT)

OPENING_BALANCE_REASON = "initial stock"

REFERENCE_MANUAL = "manual"
REFERENCE_OPENING_BALANCE = "opening_balance"
REFERENCE_SALE = "sale"


def validate_quantity(quantity, *, allow_zero: bool = False) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantity("quantity must be an integer", details={"quantity": repr(quantity)})
    if quantity < 0 or (quantity == 0 and not allow_zero):
        bound = ">= 0" if allow_zero else "> 0"
        raise InvalidQuantity(f"quantity must be {bound}", details={"quantity": quantity})
    return quantity


def _validate_movement_type(movement_type: str) -> str:
    if movement_type not in MOVEMENT_TYPES:
        raise InvalidMovementType(
            f"movement type must be one of {', '.join(MOVEMENT_TYPES)}",
            details={"type": movement_type},
        )
    return movement_type


def _validate_reason(reason: str | None) -> str:
    if reason is not None and not isinstance(reason, str):
        raise ValidationError("reason must be a string", details={"type": type(reason).__name__})
    cleaned = (reason or "").strip()
    if not cleaned:
        raise ValidationError("reason is required")
    if len(cleaned) > 255:
        raise ValidationError("reason exceeds max length 255")
    return cleaned


def load_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise ProductNotFound("Product not found", details={"product_id": product_id})
    return product


def apply_movement(
    product: Product,
    *,
    movement_type: str,
    quantity: int,
    reason: str,
    employee_id: str,
    reference_id: str | None = None,
    reference_type: str | None = None,
) -> StockMovement:
    """
    Append one movement and move the cached projection with it.

    Core logic without locking, retry, or commit: the caller owns the
    transaction and must already hold the product row lock. Shared by
    record_movement() and the sale builder.
    """
    if movement_type == MOVEMENT_OUT:
        if product.stock_quantity < quantity:
            raise InsufficientStock(
                product_id=product.id,
                requested=quantity,
                available=product.stock_quantity,
                product_name=product.name,
            )
        product.stock_quantity -= quantity
    else:
        product.stock_quantity += quantity

    movement = StockMovement(
        product_id=product.id,
        type=movement_type,
        quantity=quantity,
        reason=reason,
        reference_id=reference_id,
        reference_type=reference_type,
        employee_id=employee_id,
        created_at=utcnow(),
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def record_movement(
    *,
    product_id: int,
    movement_type: str,
    quantity: int,
    reason: str,
    employee_id: str,
    reference_id: str | None = None,
    reference_type: str | None = REFERENCE_MANUAL,
) -> StockMovement:
    """
    Record a stock-in or stock-out as one atomic step.

    Raises:
        InvalidMovementType, InvalidQuantity, ValidationError: bad input
        ProductNotFound: unknown product
        InsufficientStock: out movement larger than current stock
    """
    _validate_movement_type(movement_type)
    validate_quantity(quantity)
    reason = _validate_reason(reason)

    def _op():
        begin_write()
        product = load_product(product_id, lock=True)
        movement = apply_movement(
            product,
            movement_type=movement_type,
            quantity=quantity,
            reason=reason,
            employee_id=employee_id,
            reference_id=reference_id,
            reference_type=reference_type,
        )
        remaining = product.stock_quantity
        db.session.commit()
        logger.info(
            "Stock %s of %s for product %s by %s (now %s)",
            movement_type, quantity, product_id, employee_id, remaining,
        )
        return movement

    return run_with_retry(_op)


def apply_opening_balance(product: Product, quantity: int, employee_id: str) -> StockMovement | None:
    """Core opening-balance logic; caller owns the transaction."""
    has_movements = db.session.query(
        db.session.query(StockMovement).filter_by(product_id=product.id).exists()
    ).scalar()
    if has_movements:
        raise OpeningBalanceExists(
            "Opening balance can only be set before any stock movement",
            details={"product_id": product.id},
        )

    # An empty ledger already sums to zero
    if quantity == 0:
        return None

    return apply_movement(
        product,
        movement_type=MOVEMENT_IN,
        quantity=quantity,
        reason=OPENING_BALANCE_REASON,
        employee_id=employee_id,
        reference_type=REFERENCE_OPENING_BALANCE,
    )


def set_opening_balance(*, product_id: int, quantity: int, employee_id: str) -> StockMovement | None:
    """
    Record the initial stock of a product as an 'in' movement.

    Returns None for a zero balance (nothing to record).

    Raises:
        InvalidQuantity: negative or non-integer quantity
        ProductNotFound: unknown product
        OpeningBalanceExists: the product already has movements
    """
    validate_quantity(quantity, allow_zero=True)

    def _op():
        begin_write()
        product = load_product(product_id, lock=True)
        movement = apply_opening_balance(product, quantity, employee_id)
        db.session.commit()
        return movement

    return run_with_retry(_op)


def current_stock(product_id: int) -> int:
    """Cached projection (Product.stock_quantity)."""
    return load_product(product_id).stock_quantity


def replay_stock(product_id: int) -> int:
    """Recompute stock from the ledger: SUM(signed quantity)."""
    load_product(product_id)
    signed = case(
        (StockMovement.type == MOVEMENT_IN, StockMovement.quantity),
        else_=-StockMovement.quantity,
    )
    total = db.session.query(func.coalesce(func.sum(signed), 0)).filter(
        StockMovement.product_id == product_id
    ).scalar()
    return int(total or 0)


def list_movements(
    *,
    product_id: int | None = None,
    movement_type: str | None = None,
    limit: int = 200,
) -> list[StockMovement]:
    """Movement history, newest first."""
    query = db.session.query(StockMovement)
    if product_id is not None:
        load_product(product_id)
        query = query.filter(StockMovement.product_id == product_id)
    if movement_type is not None:
        query = query.filter(StockMovement.type == _validate_movement_type(movement_type))

    return query.order_by(
        StockMovement.created_at.desc(),
        StockMovement.id.desc(),
    ).limit(limit).all()
