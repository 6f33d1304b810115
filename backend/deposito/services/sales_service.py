"""
Sales Service - atomic checkout

WHY: A sale touches three aggregates (sale rows, product stock, till
totals). They are written in ONE database transaction so a failure at any
step leaves no stock decremented without a sale, and no sale without its
stock movements and till credit.

ORDER OF CHECKS (nothing is written until all pass):
1. cart non-empty, quantities > 0, payment method known
2. products exist and are active
3. 0 <= discount <= total
4. cash: amount received covers the final amount
5. till session open
6. stock available for every product (first offender in cart order)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from ..errors import (
    EmptyCart,
    InsufficientPayment,
    InsufficientStock,
    InvalidDiscount,
    InvalidPaymentMethod,
    InvalidQuantity,
    ProductNotFound,
    SaleNotFound,
    ValidationError,
)
from ..extensions import db
from ..models import Product, Sale, SaleItem
from ..money import Money, require_non_negative
from ..time_utils import utcnow
from . import register_service, stock_ledger
from .concurrency import begin_write, run_with_retry


logger = logging.getLogger(__name__)

PAYMENT_CASH = "cash"
PAYMENT_PIX = "pix"
PAYMENT_CARD = "card"
PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_PIX, PAYMENT_CARD)

SALE_MOVEMENT_REASON = "sale"


@dataclass(frozen=True)
class CartLine:
    """One checkout line as submitted by the UI."""
    product_id: int
    quantity: int
    unit_price_override: Money | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "CartLine":
        if not isinstance(data, dict):
            raise ValidationError("cart lines must be objects")
        product_id = data.get("product_id")
        if isinstance(product_id, bool) or not isinstance(product_id, int):
            raise ValidationError("product_id must be an integer", details={"product_id": product_id})

        override = data.get("unit_price_override_cents")
        return cls(
            product_id=product_id,
            quantity=data.get("quantity"),
            unit_price_override=Money(override) if override is not None else None,
        )


def _validate_cart(cart) -> list[CartLine]:
    lines = list(cart or [])
    if not lines:
        raise EmptyCart("Cannot commit a sale with an empty cart")

    for index, line in enumerate(lines):
        quantity = line.quantity
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidQuantity(
                "quantity must be an integer > 0",
                details={"line": index, "product_id": line.product_id, "quantity": repr(quantity)},
            )
        if line.unit_price_override is not None:
            require_non_negative(line.unit_price_override, "unit_price_override")
    return lines


def _load_cart_products(lines: list[CartLine]) -> dict[int, Product]:
    products: dict[int, Product] = {}
    for line in lines:
        if line.product_id in products:
            continue
        product = stock_ledger.load_product(line.product_id, lock=True)
        if not product.is_active:
            raise ProductNotFound(
                "Product is inactive and cannot be sold",
                details={"product_id": product.id, "inactive": True},
            )
        products[product.id] = product
    return products


def _check_stock(lines: list[CartLine], products: dict[int, Product]) -> None:
    requested: dict[int, int] = {}
    for line in lines:
        requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity

    # dicts keep insertion order, so this is cart order
    for product_id, quantity in requested.items():
        product = products[product_id]
        if product.stock_quantity < quantity:
            raise InsufficientStock(
                product_id=product_id,
                requested=quantity,
                available=product.stock_quantity,
                product_name=product.name,
            )


def _find_by_idempotency_key(key: str) -> Sale | None:
    return db.session.query(Sale).filter_by(idempotency_key=key).first()


def commit_sale(
    *,
    cart,
    discount: Money,
    payment_method: str,
    employee_id: str,
    session_id: int,
    amount_received: Money | None = None,
    idempotency_key: str | None = None,
) -> Sale:
    """
    Commit a checkout: sale + items + stock-out movements + till credit.

    Args:
        cart: iterable of CartLine
        discount: absolute discount on the whole sale
        payment_method: cash, pix, or card
        employee_id: cashier identity from the identity provider
        session_id: till session that receives the sale
        amount_received: cash handed over (required for cash)
        idempotency_key: client-generated id; a replay returns the first sale

    Raises:
        EmptyCart, InvalidQuantity, InvalidPaymentMethod, InvalidAmount,
        ProductNotFound, InvalidDiscount, InsufficientPayment,
        SessionNotOpen, InsufficientStock, PersistenceConflict,
        PersistenceTimeout
    """
    lines = _validate_cart(cart)
    if payment_method not in PAYMENT_METHODS:
        raise InvalidPaymentMethod(
            f"payment method must be one of {', '.join(PAYMENT_METHODS)}",
            details={"payment_method": payment_method},
        )
    if discount.is_negative:
        raise InvalidDiscount("Discount cannot be negative", details={"discount_cents": discount.cents})
    if amount_received is not None:
        require_non_negative(amount_received, "amount_received")

    def _op():
        begin_write()

        if idempotency_key:
            existing = _find_by_idempotency_key(idempotency_key)
            if existing is not None:
                db.session.commit()
                logger.info("Sale replay for idempotency key %s -> sale %s", idempotency_key, existing.id)
                return existing

        products = _load_cart_products(lines)

        priced = []
        for line in lines:
            product = products[line.product_id]
            unit_price = line.unit_price_override if line.unit_price_override is not None else product.price
            priced.append((line, product, unit_price, unit_price * line.quantity))

        total = Money.sum(line_total for _, _, _, line_total in priced)
        if discount > total:
            raise InvalidDiscount(
                "Discount cannot exceed the sale total",
                details={"discount_cents": discount.cents, "total_cents": total.cents},
            )
        final = total - discount

        change = None
        received = None
        if payment_method == PAYMENT_CASH:
            if amount_received is None or amount_received < final:
                raise InsufficientPayment(
                    "Amount received does not cover the sale",
                    details={
                        "final_amount_cents": final.cents,
                        "amount_received_cents": amount_received.cents if amount_received is not None else None,
                    },
                )
            received = amount_received
            change = amount_received - final

        session = register_service.load_open_session(session_id)
        _check_stock(lines, products)

        sale = Sale(
            idempotency_key=idempotency_key,
            total_amount_cents=total.cents,
            discount_cents=discount.cents,
            final_amount_cents=final.cents,
            payment_method=payment_method,
            amount_received_cents=received.cents if received is not None else None,
            change_amount_cents=change.cents if change is not None else None,
            cash_register_id=session.id,
            employee_id=employee_id,
            created_at=utcnow(),
        )
        db.session.add(sale)
        db.session.flush()

        for line, product, unit_price, line_total in priced:
            movement = stock_ledger.apply_movement(
                product,
                movement_type=stock_ledger.MOVEMENT_OUT,
                quantity=line.quantity,
                reason=SALE_MOVEMENT_REASON,
                employee_id=employee_id,
                reference_id=str(sale.id),
                reference_type=stock_ledger.REFERENCE_SALE,
            )
            db.session.add(SaleItem(
                sale_id=sale.id,
                product_id=product.id,
                product_name=product.name,
                quantity=line.quantity,
                unit_price_cents=unit_price.cents,
                total_price_cents=line_total.cents,
                stock_movement_id=movement.id,
                created_at=sale.created_at,
            ))

        register_service.apply_sale(session, final)

        db.session.commit()
        logger.info(
            "Sale %s committed on session %s by %s: %s (%s)",
            sale.id, session_id, employee_id, final, payment_method,
        )
        return sale

    try:
        return run_with_retry(_op)
    except IntegrityError:
        # Two checkouts with the same key raced; the loser returns the winner's sale
        if idempotency_key:
            existing = _find_by_idempotency_key(idempotency_key)
            if existing is not None:
                return existing
        raise


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise SaleNotFound("Sale not found", details={"sale_id": sale_id})
    return sale


def list_sales(*, session_id: int | None = None, limit: int = 100) -> list[Sale]:
    query = db.session.query(Sale)
    if session_id is not None:
        query = query.filter_by(cash_register_id=session_id)
    return query.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit).all()
