# Overview: Read-only reconciliation and reporting queries over the till and stock ledgers.

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import case, func

from ..errors import ValidationError
from ..extensions import db
from ..models import Product, Sale, SaleItem, StockMovement
from ..money import Money
from ..time_utils import parse_period_bound, to_utc_z
from . import register_service, stock_ledger
from .sales_service import PAYMENT_METHODS


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CashSummary:
    session_id: int
    status: str
    initial_amount: Money
    sales_total: Money
    cash_in_total: Money
    cash_out_total: Money
    expected_amount: Money
    final_amount: Money | None = None
    variance: Money | None = None

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "status": self.status,
            "initial_amount_cents": self.initial_amount.cents,
            "sales_total_cents": self.sales_total.cents,
            "cash_in_total_cents": self.cash_in_total.cents,
            "cash_out_total_cents": self.cash_out_total.cents,
            "expected_amount_cents": self.expected_amount.cents,
            "final_amount_cents": self.final_amount.cents if self.final_amount is not None else None,
            "variance_cents": self.variance.cents if self.variance is not None else None,
        }


@dataclass(frozen=True)
class StockAudit:
    product_id: int
    cached_quantity: int
    replayed_quantity: int

    @property
    def consistent(self) -> bool:
        return self.cached_quantity == self.replayed_quantity

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "cached_quantity": self.cached_quantity,
            "replayed_quantity": self.replayed_quantity,
            "difference": self.cached_quantity - self.replayed_quantity,
            "consistent": self.consistent,
        }


def cash_summary(session_id: int) -> CashSummary:
    """Till totals; final amount and variance only once the session is closed."""
    session = register_service.get_session(session_id)
    return CashSummary(
        session_id=session.id,
        status=session.status,
        initial_amount=session.initial_amount,
        sales_total=session.sales_total,
        cash_in_total=session.cash_in_total,
        cash_out_total=session.cash_out_total,
        expected_amount=session.expected_amount,
        final_amount=None if session.is_open else session.final_amount,
        variance=session.variance,
    )


def low_stock_products(*, threshold: int | None = None) -> list[Product]:
    """
    Active products at or below their minimum stock.

    threshold overrides every product's min_stock_quantity when given.
    Most critical first: ascending (stock - minimum), then name.
    """
    query = db.session.query(Product).filter(Product.is_active.is_(True))

    if threshold is None:
        limit_expr = Product.min_stock_quantity
    else:
        if isinstance(threshold, bool) or not isinstance(threshold, int) or threshold < 0:
            raise ValidationError("threshold must be an integer >= 0", details={"threshold": threshold})
        limit_expr = threshold

    gap = Product.stock_quantity - limit_expr
    return query.filter(Product.stock_quantity <= limit_expr).order_by(
        gap.asc(),
        Product.name.asc(),
        Product.id.asc(),
    ).all()


def stock_audit(product_id: int) -> StockAudit:
    """
    Compare the cached projection with a full replay of the ledger.

    A mismatch is a stock ledger bug: it is logged and reported, never
    silently corrected.
    """
    audit = StockAudit(
        product_id=product_id,
        cached_quantity=stock_ledger.current_stock(product_id),
        replayed_quantity=stock_ledger.replay_stock(product_id),
    )
    if not audit.consistent:
        logger.warning(
            "Stock mismatch for product %s: cached %s, replayed %s",
            product_id, audit.cached_quantity, audit.replayed_quantity,
        )
    return audit


def stock_audit_all() -> list[StockAudit]:
    """Every product whose cached stock disagrees with its ledger (one grouped query)."""
    signed = case(
        (StockMovement.type == stock_ledger.MOVEMENT_IN, StockMovement.quantity),
        else_=-StockMovement.quantity,
    )
    replayed = dict(
        db.session.query(StockMovement.product_id, func.sum(signed))
        .group_by(StockMovement.product_id)
        .all()
    )

    mismatches = []
    for product in db.session.query(Product).order_by(Product.id).all():
        audit = StockAudit(
            product_id=product.id,
            cached_quantity=product.stock_quantity,
            replayed_quantity=int(replayed.get(product.id) or 0),
        )
        if not audit.consistent:
            logger.warning(
                "Stock mismatch for product %s: cached %s, replayed %s",
                product.id, audit.cached_quantity, audit.replayed_quantity,
            )
            mismatches.append(audit)
    return mismatches


def _parse_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = parse_period_bound(start)
        end_dt = parse_period_bound(end, end=True)
    except ValueError:
        raise ValidationError("start/end must be ISO-8601 datetimes")
    if start_dt and end_dt and start_dt > end_dt:
        raise ValidationError("start must be before end")
    return start_dt, end_dt


def _filter_range(query, column, start_dt, end_dt):
    if start_dt:
        query = query.filter(column >= start_dt)
    if end_dt:
        query = query.filter(column <= end_dt)
    return query


def sales_summary(*, start: str | None = None, end: str | None = None) -> dict:
    """Sales count and totals for a period, with a per-payment-method breakdown."""
    start_dt, end_dt = _parse_range(start, end)

    query = db.session.query(
        Sale.payment_method.label("payment_method"),
        func.count(Sale.id).label("sales_count"),
        func.coalesce(func.sum(Sale.total_amount_cents), 0).label("gross_cents"),
        func.coalesce(func.sum(Sale.discount_cents), 0).label("discount_cents"),
        func.coalesce(func.sum(Sale.final_amount_cents), 0).label("net_cents"),
    )
    query = _filter_range(query, Sale.created_at, start_dt, end_dt)
    rows = {row.payment_method: row for row in query.group_by(Sale.payment_method).all()}

    by_method = []
    for method in PAYMENT_METHODS:
        row = rows.get(method)
        by_method.append({
            "payment_method": method,
            "sales_count": int(row.sales_count) if row else 0,
            "net_cents": int(row.net_cents) if row else 0,
        })

    return {
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "sales_count": sum(int(r.sales_count) for r in rows.values()),
        "gross_cents": sum(int(r.gross_cents) for r in rows.values()),
        "discount_cents": sum(int(r.discount_cents) for r in rows.values()),
        "net_cents": sum(int(r.net_cents) for r in rows.values()),
        "by_payment_method": by_method,
    }


def top_products(*, start: str | None = None, end: str | None = None, limit: int = 10) -> list[dict]:
    """Best sellers by quantity for a period."""
    start_dt, end_dt = _parse_range(start, end)

    quantity = func.sum(SaleItem.quantity).label("quantity_sold")
    query = db.session.query(
        SaleItem.product_id,
        func.max(SaleItem.product_name).label("product_name"),
        quantity,
        func.sum(SaleItem.total_price_cents).label("revenue_cents"),
    ).join(Sale, Sale.id == SaleItem.sale_id)
    query = _filter_range(query, Sale.created_at, start_dt, end_dt)

    rows = query.group_by(SaleItem.product_id).order_by(
        quantity.desc(),
        SaleItem.product_id.asc(),
    ).limit(limit).all()

    return [
        {
            "product_id": row.product_id,
            "product_name": row.product_name,
            "quantity_sold": int(row.quantity_sold or 0),
            "revenue_cents": int(row.revenue_cents or 0),
        }
        for row in rows
    ]
