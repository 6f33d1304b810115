# Overview: Thread-based concurrency tests against a file-backed SQLite database.

"""
Scripted concurrency tests for the ledger engine.

In-memory SQLite shares one connection, so these tests use a real file
database where every thread gets its own connection and writers contend
for the lock.
"""
import os
import tempfile
import threading
import unittest

from deposito import create_app
from deposito.errors import InsufficientStock, SessionAlreadyOpen
from deposito.extensions import db
from deposito.models import CashRegisterSession, Sale
from deposito.money import Money
from deposito.services import catalog_service, reconciliation_service, register_service, sales_service
from deposito.services.sales_service import CartLine, PAYMENT_CARD


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "PERSISTENCE_TIMEOUT_SECONDS": 15,
            "LEDGER_RETRY_BACKOFF_SECONDS": 0.01,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_threads(self, target, count):
        results = []
        errors = []
        lock = threading.Lock()
        barrier = threading.Barrier(count)

        def worker(index):
            with self.app.app_context():
                try:
                    barrier.wait()
                    result = target(index)
                    with lock:
                        results.append(result)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results, errors

    def test_concurrent_open_allows_exactly_one_session(self):
        def open_till(index):
            session = register_service.open_session(
                initial_amount=Money(10000),
                employee_id=f"func-{index}",
            )
            return session.id

        results, errors = self._run_threads(open_till, 8)

        self.assertEqual(len(results), 1)
        self.assertEqual(len(errors), 7)
        self.assertTrue(all(isinstance(e, SessionAlreadyOpen) for e in errors), errors)

        with self.app.app_context():
            self.assertEqual(db.session.query(CashRegisterSession).filter_by(status="open").count(), 1)

    def test_concurrent_sales_never_oversell(self):
        with self.app.app_context():
            product = catalog_service.create_product(
                name="Concurrent Beer",
                price=Money(500),
                cost=Money(300),
                employee_id="setup",
                initial_stock=10,
            )
            session = register_service.open_session(initial_amount=Money(0), employee_id="setup")
            product_id = product.id
            session_id = session.id

        def sell(index):
            sale = sales_service.commit_sale(
                cart=[CartLine(product_id, 3)],
                discount=Money(0),
                payment_method=PAYMENT_CARD,
                employee_id=f"func-{index}",
                session_id=session_id,
            )
            return sale.id

        results, errors = self._run_threads(sell, 4)

        self.assertEqual(len(results), 3)
        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], InsufficientStock)

        with self.app.app_context():
            audit = reconciliation_service.stock_audit(product_id)
            self.assertTrue(audit.consistent)
            self.assertEqual(audit.cached_quantity, 1)
            self.assertEqual(db.session.query(Sale).count(), 3)
            self.assertEqual(register_service.expected_amount(session_id), Money(4500))

    def test_concurrent_idempotent_checkout_commits_once(self):
        with self.app.app_context():
            product = catalog_service.create_product(
                name="Idempotent Water",
                price=Money(300),
                cost=Money(100),
                employee_id="setup",
                initial_stock=10,
            )
            session = register_service.open_session(initial_amount=Money(0), employee_id="setup")
            product_id = product.id
            session_id = session.id

        def sell(index):
            sale = sales_service.commit_sale(
                cart=[CartLine(product_id, 1)],
                discount=Money(0),
                payment_method=PAYMENT_CARD,
                employee_id="func-1",
                session_id=session_id,
                idempotency_key="checkout-42",
            )
            return sale.id

        results, errors = self._run_threads(sell, 5)

        self.assertFalse(errors)
        self.assertEqual(len(set(results)), 1)
        with self.app.app_context():
            self.assertEqual(db.session.query(Sale).count(), 1)
            self.assertEqual(catalog_service.get_product(product_id).stock_quantity, 9)


if __name__ == "__main__":
    unittest.main()
