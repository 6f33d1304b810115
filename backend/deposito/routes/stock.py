# Overview: Flask API routes for the stock ledger; parses input and returns JSON responses.

# backend/deposito/routes/stock.py
"""
Stock ledger API routes

Every change of on-hand quantity is a movement. There is no endpoint that
writes stock_quantity directly.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import EngineError
from ..extensions import db
from ..services import stock_ledger
from ..validation import coerce_int
from ..decorators import require_employee


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("/movements")
@require_employee
def list_movements_route():
    """
    Query params:
    - product_id (optional)
    - type: in | out (optional)
    - limit (default 200)
    """
    try:
        movements = stock_ledger.list_movements(
            product_id=request.args.get("product_id", type=int),
            movement_type=request.args.get("type"),
            limit=request.args.get("limit", 200, type=int),
        )
        return jsonify({"movements": [m.to_dict() for m in movements]}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@stock_bp.post("/movements")
@require_employee
def record_movement_route():
    """
    Record a manual stock movement (delivery, breakage, correction).

    Request body:
    {
        "product_id": 1,
        "type": "in",
        "quantity": 12,
        "reason": "delivery from supplier"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        movement = stock_ledger.record_movement(
            product_id=coerce_int("product_id", data.get("product_id")),
            movement_type=data.get("type"),
            quantity=data.get("quantity"),
            reason=data.get("reason"),
            employee_id=g.employee_id,
        )
        return jsonify({
            "movement": movement.to_dict(),
            "stock_quantity": stock_ledger.current_stock(movement.product_id),
        }), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record stock movement")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/<int:product_id>")
@require_employee
def current_stock_route(product_id: int):
    try:
        return jsonify({
            "product_id": product_id,
            "stock_quantity": stock_ledger.current_stock(product_id),
        }), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@stock_bp.post("/<int:product_id>/opening-balance")
@require_employee
def opening_balance_route(product_id: int):
    """
    Request body:
    {
        "quantity": 48
    }

    Only allowed while the product has no movements.
    """
    try:
        data = request.get_json(silent=True) or {}
        movement = stock_ledger.set_opening_balance(
            product_id=product_id,
            quantity=data.get("quantity"),
            employee_id=g.employee_id,
        )
        return jsonify({
            "movement": movement.to_dict() if movement else None,
            "stock_quantity": stock_ledger.current_stock(product_id),
        }), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to set opening balance")
        return jsonify({"error": "Internal server error"}), 500
