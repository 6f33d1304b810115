import logging

import pytest
from sqlalchemy import update

from deposito.errors import SessionNotFound, ValidationError
from deposito.models import Product
from deposito.money import Money
from deposito.services import catalog_service, reconciliation_service, register_service, sales_service
from deposito.services.register_service import CASH_IN, CASH_OUT
from deposito.services.sales_service import CartLine, PAYMENT_CARD, PAYMENT_CASH, PAYMENT_PIX

from conftest import EMPLOYEE


def _sell(session_id, product_id, quantity, method=PAYMENT_CARD, discount=0, received=None):
    return sales_service.commit_sale(
        cart=[CartLine(product_id, quantity)],
        discount=Money(discount),
        payment_method=method,
        employee_id=EMPLOYEE,
        session_id=session_id,
        amount_received=Money(received) if received is not None else None,
    )


class TestCashSummary:
    def test_open_session_has_no_final_or_variance(self, open_session, make_product):
        product = make_product(price_cents=2500, stock=10)
        session = open_session(10000)
        _sell(session.id, product.id, 2, method=PAYMENT_CASH, received=5000)
        register_service.record_transaction(
            session_id=session.id, transaction_type=CASH_IN, amount=Money(1000),
            description="troco", employee_id=EMPLOYEE,
        )
        register_service.record_transaction(
            session_id=session.id, transaction_type=CASH_OUT, amount=Money(3000),
            description="sangria", employee_id=EMPLOYEE,
        )

        summary = reconciliation_service.cash_summary(session.id)

        assert summary.initial_amount == Money(10000)
        assert summary.sales_total == Money(5000)
        assert summary.cash_in_total == Money(1000)
        assert summary.cash_out_total == Money(3000)
        assert summary.expected_amount == Money(13000)
        assert summary.final_amount is None
        assert summary.variance is None

    def test_closed_session_reports_variance(self, open_session):
        session = open_session(10000)
        register_service.record_sale(session_id=session.id, amount=Money(5000))
        register_service.close_session(session_id=session.id, counted_amount=Money(14850))

        data = reconciliation_service.cash_summary(session.id).to_dict()

        assert data["expected_amount_cents"] == 15000
        assert data["final_amount_cents"] == 14850
        assert data["variance_cents"] == -150
        assert data["status"] == "closed"

    def test_unknown_session(self, db_session):
        with pytest.raises(SessionNotFound):
            reconciliation_service.cash_summary(31337)


class TestLowStock:
    def test_most_critical_first_then_name(self, make_product):
        make_product(name="Água", stock=10, min_stock=5)
        coca = make_product(name="Coca-Cola 2L", stock=2, min_stock=6)
        brahma = make_product(name="Brahma", stock=0, min_stock=4)
        antartica = make_product(name="Antarctica", stock=1, min_stock=5)
        skol = make_product(name="Skol", stock=3, min_stock=3)

        result = reconciliation_service.low_stock_products()

        assert [p.id for p in result] == [antartica.id, brahma.id, coca.id, skol.id]

    def test_inactive_products_are_ignored(self, make_product):
        product = make_product(stock=0, min_stock=5)
        catalog_service.deactivate_product(product.id)
        assert reconciliation_service.low_stock_products() == []

    def test_threshold_override(self, make_product):
        a = make_product(name="A", stock=3, min_stock=0)
        make_product(name="B", stock=9, min_stock=0)

        assert [p.id for p in reconciliation_service.low_stock_products(threshold=5)] == [a.id]
        with pytest.raises(ValidationError):
            reconciliation_service.low_stock_products(threshold=-1)


class TestStockAudit:
    def test_consistent_after_sales_and_movements(self, make_product, open_session):
        product = make_product(stock=20)
        session = open_session()
        _sell(session.id, product.id, 4)

        audit = reconciliation_service.stock_audit(product.id)
        assert audit.consistent
        assert audit.cached_quantity == audit.replayed_quantity == 16
        assert reconciliation_service.stock_audit_all() == []

    def test_tampered_projection_is_reported_not_fixed(self, make_product, db_session, caplog):
        product = make_product(stock=10)
        db_session.execute(update(Product).where(Product.id == product.id).values(stock_quantity=7))
        db_session.commit()
        db_session.expire_all()

        with caplog.at_level(logging.WARNING, logger="deposito.services.reconciliation_service"):
            audit = reconciliation_service.stock_audit(product.id)

        assert not audit.consistent
        assert audit.to_dict()["difference"] == -3
        assert "Stock mismatch" in caplog.text

        mismatches = reconciliation_service.stock_audit_all()
        assert [m.product_id for m in mismatches] == [product.id]
        assert db_session.get(Product, product.id).stock_quantity == 7


class TestSalesReports:
    def test_sales_summary_by_payment_method(self, make_product, open_session):
        product = make_product(price_cents=1000, stock=50)
        session = open_session()
        _sell(session.id, product.id, 2, method=PAYMENT_CASH, received=2000)
        _sell(session.id, product.id, 1, method=PAYMENT_PIX, discount=100)
        _sell(session.id, product.id, 3, method=PAYMENT_CARD)

        summary = reconciliation_service.sales_summary()

        assert summary["sales_count"] == 3
        assert summary["gross_cents"] == 6000
        assert summary["discount_cents"] == 100
        assert summary["net_cents"] == 5900
        by_method = {row["payment_method"]: row for row in summary["by_payment_method"]}
        assert by_method["cash"]["net_cents"] == 2000
        assert by_method["pix"]["net_cents"] == 900
        assert by_method["card"]["sales_count"] == 1

    def test_empty_period(self, db_session):
        summary = reconciliation_service.sales_summary(start="2000-01-01T00:00:00Z", end="2000-01-02T00:00:00Z")
        assert summary["sales_count"] == 0
        assert all(row["sales_count"] == 0 for row in summary["by_payment_method"])

    def test_bare_date_end_covers_whole_day(self, make_product, open_session):
        product = make_product(price_cents=1000, stock=5)
        session = open_session()
        sale = _sell(session.id, product.id, 1)
        day = sale.created_at.date().isoformat()

        summary = reconciliation_service.sales_summary(start=day, end=day)

        assert summary["sales_count"] == 1
        assert summary["end"] == f"{day}T23:59:59Z"

    def test_bad_range(self, db_session):
        with pytest.raises(ValidationError):
            reconciliation_service.sales_summary(start="yesterday")
        with pytest.raises(ValidationError):
            reconciliation_service.sales_summary(start="2024-02-01", end="2024-01-01")

    def test_top_products(self, make_product, open_session):
        beer = make_product(name="Cerveja", price_cents=500, stock=50)
        water = make_product(name="Água", price_cents=300, stock=50)
        session = open_session()
        _sell(session.id, beer.id, 6)
        _sell(session.id, water.id, 2)
        _sell(session.id, beer.id, 1)

        top = reconciliation_service.top_products(limit=1)

        assert top == [{
            "product_id": beer.id,
            "product_name": "Cerveja",
            "quantity_sold": 7,
            "revenue_cents": 3500,
        }]
