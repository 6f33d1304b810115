from __future__ import annotations

from ..extensions import db
from ..money import Money, optional_money
from ..time_utils import to_utc_z, utcnow


class Sale(db.Model):
    """
    Committed sale.

    Written exactly once, in the same DB transaction as its items, one
    stock "out" movement per item, and the credit to the till session's
    sales total. There is no draft state.

    idempotency_key is client supplied; replaying a checkout with the
    same key returns the original sale instead of selling twice.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_register_created", "cash_register_id", "created_at"),
        db.CheckConstraint("discount_cents >= 0", name="ck_sales_discount_non_negative"),
        db.CheckConstraint("final_amount_cents >= 0", name="ck_sales_final_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    idempotency_key = db.Column(db.String(64), nullable=True, unique=True)

    total_amount_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    final_amount_cents = db.Column(db.Integer, nullable=False)

    payment_method = db.Column(db.String(16), nullable=False, index=True)  # cash, pix, card
    amount_received_cents = db.Column(db.Integer, nullable=True)  # cash only
    change_amount_cents = db.Column(db.Integer, nullable=True)  # cash only

    cash_register_id = db.Column(
        db.Integer, db.ForeignKey("cash_register_sessions.id"), nullable=False, index=True
    )
    employee_id = db.Column(db.String(64), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    cash_register = db.relationship("CashRegisterSession", backref=db.backref("sales", lazy=True))

    @property
    def total_amount(self) -> Money:
        return Money(self.total_amount_cents)

    @property
    def discount(self) -> Money:
        return Money(self.discount_cents)

    @property
    def final_amount(self) -> Money:
        return Money(self.final_amount_cents)

    @property
    def change_amount(self) -> Money | None:
        return optional_money(self.change_amount_cents)

    @property
    def amount_received(self) -> Money | None:
        return optional_money(self.amount_received_cents)

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "idempotency_key": self.idempotency_key,
            "total_amount_cents": self.total_amount_cents,
            "discount_cents": self.discount_cents,
            "final_amount_cents": self.final_amount_cents,
            "payment_method": self.payment_method,
            "amount_received_cents": self.amount_received_cents,
            "change_amount_cents": self.change_amount_cents,
            "cash_register_id": self.cash_register_id,
            "employee_id": self.employee_id,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """Line item with product name and unit price snapshotted at sale time."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    # The out movement this line produced
    stock_movement_id = db.Column(db.Integer, db.ForeignKey("stock_movements.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    sale = db.relationship("Sale", backref=db.backref("items", lazy=True, order_by="SaleItem.id"))
    product = db.relationship("Product")

    @property
    def unit_price(self) -> Money:
        return Money(self.unit_price_cents)

    @property
    def total_price(self) -> Money:
        return Money(self.total_price_cents)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "stock_movement_id": self.stock_movement_id,
            "created_at": to_utc_z(self.created_at),
        }
