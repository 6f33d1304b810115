"""HTTP surface: identity, cents-only amounts, error mapping, and the checkout flow."""

from deposito.errors import PersistenceTimeout
from deposito.services import sales_service


def _create_product(client, manager_headers, **overrides):
    payload = {"name": "Heineken 350ml", "price_cents": 699, "initial_stock": 10}
    payload.update(overrides)
    response = client.post("/api/products", json=payload, headers=manager_headers)
    assert response.status_code == 201, response.get_json()
    return response.get_json()["product"]


def _open_till(client, headers, cents=10000):
    response = client.post("/api/registers/sessions", json={"initial_amount_cents": cents}, headers=headers)
    assert response.status_code == 201, response.get_json()
    return response.get_json()["session"]


def test_health(client, db_session):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.get_json()["checks"]["database"]["status"] == "healthy"


def test_identity_header_is_required(client, db_session):
    assert client.get("/api/products").status_code == 401
    assert client.get("/api/products", headers={"X-Employee-Id": "  "}).status_code == 401


def test_manager_only_routes(client, db_session, employee_headers):
    response = client.post("/api/products", json={"name": "X", "price_cents": 1}, headers=employee_headers)
    assert response.status_code == 403
    assert response.get_json()["code"] == "PermissionDenied"


def test_full_checkout_flow(client, db_session, employee_headers, manager_headers):
    product = _create_product(client, manager_headers)
    assert product["stock_quantity"] == 10

    session = _open_till(client, employee_headers)

    response = client.post("/api/sales", json={
        "session_id": session["id"],
        "items": [{"product_id": product["id"], "quantity": 2}],
        "payment_method": "cash",
        "amount_received_cents": 2000,
    }, headers=employee_headers)
    assert response.status_code == 201, response.get_json()
    sale = response.get_json()["sale"]
    assert sale["final_amount_cents"] == 1398
    assert sale["change_amount_cents"] == 602
    assert sale["employee_id"] == "func-001"
    assert len(sale["items"]) == 1

    stock = client.get(f"/api/stock/{product['id']}", headers=employee_headers).get_json()
    assert stock["stock_quantity"] == 8

    current = client.get("/api/registers/current", headers=employee_headers).get_json()["session"]
    assert current["sales_total_cents"] == 1398
    assert current["expected_amount_cents"] == 11398

    response = client.post(
        f"/api/registers/sessions/{session['id']}/close",
        json={"counted_amount_cents": 11300},
        headers=employee_headers,
    )
    closed = response.get_json()["session"]
    assert response.status_code == 200
    assert closed["status"] == "closed"
    assert closed["variance_cents"] == -98

    summary = client.get(f"/api/reports/cash-summary/{session['id']}", headers=employee_headers).get_json()
    assert summary["summary"]["variance_cents"] == -98


def test_amounts_must_be_integer_cents(client, db_session, employee_headers):
    response = client.post("/api/registers/sessions", json={"initial_amount_cents": 100.5}, headers=employee_headers)
    assert response.status_code == 400
    assert response.get_json()["code"] == "ValidationError"

    response = client.post("/api/registers/sessions", json={}, headers=employee_headers)
    assert response.status_code == 400


def test_error_mapping(client, db_session, employee_headers, manager_headers):
    product = _create_product(client, manager_headers, initial_stock=3)
    session = _open_till(client, employee_headers)

    # 409 business rejection with structured details
    response = client.post("/api/sales", json={
        "session_id": session["id"],
        "items": [{"product_id": product["id"], "quantity": 5}],
        "payment_method": "card",
    }, headers=employee_headers)
    assert response.status_code == 409
    body = response.get_json()
    assert body["code"] == "InsufficientStock"
    assert body["details"] == {
        "product_id": product["id"],
        "product_name": "Heineken 350ml",
        "requested": 5,
        "available": 3,
        "shortfall": 2,
    }

    # 409 state error
    response = client.post("/api/registers/sessions", json={"initial_amount_cents": 0}, headers=employee_headers)
    assert response.status_code == 409
    assert response.get_json()["code"] == "SessionAlreadyOpen"

    # 404 not found
    response = client.get("/api/sales/999", headers=employee_headers)
    assert response.status_code == 404
    assert response.get_json()["code"] == "SaleNotFound"

    # 400 input error
    response = client.post("/api/sales", json={
        "session_id": session["id"],
        "items": [],
        "payment_method": "card",
    }, headers=employee_headers)
    assert response.status_code == 400
    assert response.get_json()["code"] == "EmptyCart"


def test_timeout_maps_to_503(client, db_session, employee_headers, monkeypatch):
    def _locked(**kwargs):
        raise PersistenceTimeout("Timed out waiting for the database")

    monkeypatch.setattr(sales_service, "commit_sale", _locked)
    response = client.post("/api/sales", json={
        "session_id": 1,
        "items": [{"product_id": 1, "quantity": 1}],
        "payment_method": "card",
    }, headers=employee_headers)
    assert response.status_code == 503
    assert response.get_json()["code"] == "PersistenceTimeout"


def test_stock_movements_endpoint(client, db_session, employee_headers, manager_headers):
    product = _create_product(client, manager_headers, initial_stock=0)

    response = client.post(f"/api/stock/{product['id']}/opening-balance", json={"quantity": 12}, headers=employee_headers)
    assert response.status_code == 201
    assert response.get_json()["stock_quantity"] == 12

    response = client.post("/api/stock/movements", json={
        "product_id": product["id"],
        "type": "out",
        "quantity": 2,
        "reason": "garrafa quebrada",
    }, headers=employee_headers)
    assert response.status_code == 201
    assert response.get_json()["stock_quantity"] == 10

    response = client.post(f"/api/stock/{product['id']}/opening-balance", json={"quantity": 5}, headers=employee_headers)
    assert response.status_code == 409
    assert response.get_json()["code"] == "OpeningBalanceExists"

    history = client.get(f"/api/stock/movements?product_id={product['id']}", headers=employee_headers).get_json()
    assert [m["type"] for m in history["movements"]] == ["out", "in"]


def test_product_patch_rejects_stock_quantity(client, db_session, manager_headers):
    product = _create_product(client, manager_headers)

    response = client.patch(f"/api/products/{product['id']}", json={"stock_quantity": 500}, headers=manager_headers)
    assert response.status_code == 400

    response = client.patch(f"/api/products/{product['id']}", json={"price_cents": 799}, headers=manager_headers)
    assert response.status_code == 200
    assert response.get_json()["product"]["price_cents"] == 799
    assert response.get_json()["product"]["stock_quantity"] == 10


def test_cash_transactions_endpoint(client, db_session, employee_headers):
    session = _open_till(client, employee_headers, cents=10000)

    response = client.post(f"/api/registers/sessions/{session['id']}/transactions", json={
        "type": "cash_out",
        "amount_cents": 3000,
        "description": "sangria",
    }, headers=employee_headers)
    assert response.status_code == 201
    assert response.get_json()["session"]["expected_amount_cents"] == 7000

    listed = client.get(f"/api/registers/sessions/{session['id']}/transactions", headers=employee_headers).get_json()
    assert [t["amount_cents"] for t in listed["transactions"]] == [3000]


def test_low_stock_and_audit_reports(client, db_session, employee_headers, manager_headers):
    low = _create_product(client, manager_headers, name="Skol", initial_stock=2, min_stock_quantity=6)
    _create_product(client, manager_headers, name="Água", initial_stock=50, min_stock_quantity=6)

    response = client.get("/api/reports/low-stock", headers=employee_headers)
    assert [p["id"] for p in response.get_json()["products"]] == [low["id"]]

    response = client.get("/api/reports/stock-audit", headers=manager_headers)
    assert response.get_json() == {"consistent": True, "mismatches": []}

    response = client.get(f"/api/reports/stock-audit/{low['id']}", headers=employee_headers)
    assert response.get_json()["audit"]["consistent"] is True


def test_employee_admin(client, db_session, manager_headers):
    response = client.post("/api/employees", json={
        "name": "Carla",
        "email": "carla@deposito.local",
        "hire_date": "2024-05-10",
    }, headers=manager_headers)
    assert response.status_code == 201
    employee = response.get_json()["employee"]
    assert employee["role"] == "funcionario"

    response = client.post("/api/employees", json={"name": "Outra", "email": "carla@deposito.local"}, headers=manager_headers)
    assert response.status_code == 409

    response = client.delete(f"/api/employees/{employee['id']}", headers=manager_headers)
    assert response.get_json()["employee"]["is_active"] is False


def test_non_string_text_fields_are_rejected(client, db_session, employee_headers, manager_headers):
    product = _create_product(client, manager_headers, initial_stock=4)
    session = _open_till(client, employee_headers)

    response = client.post("/api/stock/movements", json={
        "product_id": product["id"],
        "type": "out",
        "quantity": 1,
        "reason": 5,
    }, headers=employee_headers)
    assert response.status_code == 400
    assert response.get_json()["code"] == "ValidationError"

    response = client.post(f"/api/registers/sessions/{session['id']}/transactions", json={
        "type": "cash_in",
        "amount_cents": 500,
        "description": 5,
    }, headers=employee_headers)
    assert response.status_code == 400
    assert response.get_json()["code"] == "InvalidDescription"

    response = client.post(
        f"/api/registers/sessions/{session['id']}/close",
        json={"counted_amount_cents": 10000, "notes": ["faltou"]},
        headers=employee_headers,
    )
    assert response.status_code == 400
    assert response.get_json()["code"] == "ValidationError"

    stock = client.get(f"/api/stock/{product['id']}", headers=employee_headers).get_json()
    assert stock["stock_quantity"] == 4
    current = client.get("/api/registers/current", headers=employee_headers).get_json()["session"]
    assert current["status"] == "open"
    assert current["cash_in_total_cents"] == 0


def test_idempotency_key_is_validated(client, db_session, employee_headers, manager_headers):
    product = _create_product(client, manager_headers)
    session = _open_till(client, employee_headers)
    base = {
        "session_id": session["id"],
        "items": [{"product_id": product["id"], "quantity": 1}],
        "payment_method": "card",
    }

    response = client.post("/api/sales", json={**base, "idempotency_key": {"k": 1}}, headers=employee_headers)
    assert response.status_code == 400
    assert response.get_json()["code"] == "ValidationError"

    response = client.post("/api/sales", json={**base, "idempotency_key": "k" * 65}, headers=employee_headers)
    assert response.status_code == 400

    headers = {**employee_headers, "Idempotency-Key": "caixa-1-venda-7"}
    first = client.post("/api/sales", json=base, headers=headers)
    second = client.post("/api/sales", json=base, headers=headers)
    assert first.status_code == 201
    assert second.get_json()["sale"]["id"] == first.get_json()["sale"]["id"]

    stock = client.get(f"/api/stock/{product['id']}", headers=employee_headers).get_json()
    assert stock["stock_quantity"] == 9
