# Overview: Flask API routes for checkout; parses input and returns JSON responses.

# backend/deposito/routes/sales.py
"""Sales API routes: one POST commits the whole checkout atomically."""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import EngineError, ValidationError
from ..extensions import db
from ..money import Money
from ..services import sales_service
from ..services.sales_service import CartLine
from ..validation import coerce_int, require_cents
from ..decorators import require_employee


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")

MAX_IDEMPOTENCY_KEY_LENGTH = 64


def _idempotency_key(data: dict) -> str | None:
    key = data.get("idempotency_key")
    if key is None:
        key = request.headers.get("Idempotency-Key")
    if key is None:
        return None
    if not isinstance(key, str):
        raise ValidationError("idempotency_key must be a string")
    key = key.strip()
    if len(key) > MAX_IDEMPOTENCY_KEY_LENGTH:
        raise ValidationError(
            f"idempotency_key exceeds max length {MAX_IDEMPOTENCY_KEY_LENGTH}",
            details={"max_length": MAX_IDEMPOTENCY_KEY_LENGTH},
        )
    return key or None


@sales_bp.post("")
@sales_bp.post("/")
@require_employee
def commit_sale_route():
    """
    Commit a checkout.

    Request body:
    {
        "session_id": 3,
        "items": [
            {"product_id": 1, "quantity": 2},
            {"product_id": 5, "quantity": 1, "unit_price_override_cents": 1000}
        ],
        "discount_cents": 0,
        "payment_method": "cash",
        "amount_received_cents": 2000,       (required for cash)
        "idempotency_key": "uuid-from-ui"    (optional, or Idempotency-Key header)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        items = data.get("items")
        if not isinstance(items, list):
            raise ValidationError("items must be a list")

        idempotency_key = _idempotency_key(data)
        received = require_cents(data, "amount_received_cents", required=False)

        sale = sales_service.commit_sale(
            cart=[CartLine.from_dict(item) for item in items],
            discount=Money(require_cents(data, "discount_cents", required=False) or 0),
            payment_method=data.get("payment_method"),
            employee_id=g.employee_id,
            session_id=coerce_int("session_id", data.get("session_id")),
            amount_received=Money(received) if received is not None else None,
            idempotency_key=idempotency_key,
        )
        return jsonify({"sale": sale.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to commit sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@sales_bp.get("/")
@require_employee
def list_sales_route():
    sales = sales_service.list_sales(
        session_id=request.args.get("session_id", type=int),
        limit=request.args.get("limit", 100, type=int),
    )
    return jsonify({"sales": [s.to_dict(include_items=False) for s in sales]}), 200


@sales_bp.get("/<int:sale_id>")
@require_employee
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict()}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
