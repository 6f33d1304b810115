from __future__ import annotations

from ..extensions import db
from ..money import Money, optional_money
from ..time_utils import to_utc_z, utcnow


class CashRegisterSession(db.Model):
    """
    Till session tracking.

    WHY: Cash accountability. Each session has an opening float, running
    totals for sales / cash-in / cash-out, and a counted amount at close.

    LIFECYCLE:
    - open: session is active, can take sales and cash transactions
    - closed: cash counted, totals frozen

    SINGLE OPEN SESSION: the partial unique index on status='open' makes a
    second open row impossible even if two writers race past the service
    check.

    Expected amount and variance are always computed from the stored
    totals; neither is persisted.
    """
    __tablename__ = "cash_register_sessions"
    __table_args__ = (
        db.Index(
            "uq_cash_register_sessions_single_open",
            "status",
            unique=True,
            sqlite_where=db.text("status = 'open'"),
            postgresql_where=db.text("status = 'open'"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    status = db.Column(db.String(16), nullable=False, default="open", index=True)  # open, closed

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Cash tracking (all amounts in cents)
    initial_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    sales_total_cents = db.Column(db.Integer, nullable=False, default=0)
    cash_in_total_cents = db.Column(db.Integer, nullable=False, default=0)
    cash_out_total_cents = db.Column(db.Integer, nullable=False, default=0)
    final_amount_cents = db.Column(db.Integer, nullable=True)  # counted at close

    employee_id = db.Column(db.String(64), nullable=False, index=True)
    closed_by_employee_id = db.Column(db.String(64), nullable=True)
    closing_notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.status == "open"

    @property
    def initial_amount(self) -> Money:
        return Money(self.initial_amount_cents)

    @property
    def sales_total(self) -> Money:
        return Money(self.sales_total_cents)

    @property
    def cash_in_total(self) -> Money:
        return Money(self.cash_in_total_cents)

    @property
    def cash_out_total(self) -> Money:
        return Money(self.cash_out_total_cents)

    @property
    def final_amount(self) -> Money | None:
        return optional_money(self.final_amount_cents)

    @property
    def expected_amount(self) -> Money:
        return self.initial_amount + self.sales_total + self.cash_in_total - self.cash_out_total

    @property
    def variance(self) -> Money | None:
        """counted - expected; only meaningful once closed."""
        if self.is_open or self.final_amount_cents is None:
            return None
        return self.final_amount - self.expected_amount

    def to_dict(self) -> dict:
        variance = self.variance
        return {
            "id": self.id,
            "status": self.status,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "initial_amount_cents": self.initial_amount_cents,
            "sales_total_cents": self.sales_total_cents,
            "cash_in_total_cents": self.cash_in_total_cents,
            "cash_out_total_cents": self.cash_out_total_cents,
            "expected_amount_cents": self.expected_amount.cents,
            "final_amount_cents": self.final_amount_cents,
            "variance_cents": variance.cents if variance is not None else None,
            "employee_id": self.employee_id,
            "closed_by_employee_id": self.closed_by_employee_id,
            "closing_notes": self.closing_notes,
            "version_id": self.version_id,
        }


class CashTransaction(db.Model):
    """
    Manual cash-in / cash-out on an open till (change float top-up,
    supplier paid from the drawer, etc.).

    IMMUTABLE: created together with the matching session total update.
    """
    __tablename__ = "cash_transactions"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_cash_transactions_amount_positive"),
        db.CheckConstraint("type IN ('cash_in', 'cash_out')", name="ck_cash_transactions_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cash_register_id = db.Column(
        db.Integer, db.ForeignKey("cash_register_sessions.id"), nullable=False, index=True
    )

    type = db.Column(db.String(16), nullable=False)  # cash_in, cash_out
    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=False)
    employee_id = db.Column(db.String(64), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    cash_register = db.relationship(
        "CashRegisterSession", backref=db.backref("transactions", lazy=True, order_by="CashTransaction.id")
    )

    @property
    def amount(self) -> Money:
        return Money(self.amount_cents)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cash_register_id": self.cash_register_id,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "employee_id": self.employee_id,
            "created_at": to_utc_z(self.created_at),
        }
