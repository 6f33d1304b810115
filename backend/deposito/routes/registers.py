# Overview: Flask API routes for till sessions; parses input and returns JSON responses.

# backend/deposito/routes/registers.py
"""
Cash Register API Routes

Shift lifecycle: open -> (sales, cash in/out) -> close. A closed session
is immutable. There is no cached "current session": clients call
GET /api/registers/current after every write.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import EngineError
from ..extensions import db
from ..money import Money
from ..services import register_service
from ..validation import require_cents
from ..decorators import require_employee


registers_bp = Blueprint("registers", __name__, url_prefix="/api/registers")


@registers_bp.get("/current")
@require_employee
def current_session_route():
    session = register_service.get_open_session()
    return jsonify({"session": session.to_dict() if session else None}), 200


@registers_bp.get("/sessions")
@require_employee
def list_sessions_route():
    """
    Query params:
    - status: open | closed (optional)
    - limit (default 50)
    """
    sessions = register_service.list_sessions(
        status=request.args.get("status"),
        limit=request.args.get("limit", 50, type=int),
    )
    return jsonify({"sessions": [s.to_dict() for s in sessions]}), 200


@registers_bp.post("/sessions")
@require_employee
def open_session_route():
    """
    Open the till.

    Request body:
    {
        "initial_amount_cents": 10000
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        session = register_service.open_session(
            initial_amount=Money(require_cents(data, "initial_amount_cents")),
            employee_id=g.employee_id,
        )
        return jsonify({"session": session.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to open register session")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/sessions/<int:session_id>")
@require_employee
def get_session_route(session_id: int):
    try:
        session = register_service.get_session(session_id)
        return jsonify({"session": session.to_dict()}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@registers_bp.get("/sessions/<int:session_id>/transactions")
@require_employee
def list_transactions_route(session_id: int):
    try:
        transactions = register_service.list_transactions(session_id)
        return jsonify({"transactions": [t.to_dict() for t in transactions]}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@registers_bp.post("/sessions/<int:session_id>/transactions")
@require_employee
def record_transaction_route(session_id: int):
    """
    Record a cash-in (change float top-up) or cash-out (bleed, supplier paid in cash).

    Request body:
    {
        "type": "cash_out",
        "amount_cents": 5000,
        "description": "sangria"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        transaction = register_service.record_transaction(
            session_id=session_id,
            transaction_type=data.get("type"),
            amount=Money(require_cents(data, "amount_cents")),
            description=data.get("description"),
            employee_id=g.employee_id,
        )
        session = register_service.get_session(session_id)
        return jsonify({
            "transaction": transaction.to_dict(),
            "session": session.to_dict(),
        }), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record cash transaction")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.post("/sessions/<int:session_id>/close")
@require_employee
def close_session_route(session_id: int):
    """
    Close the till with the counted cash.

    Request body:
    {
        "counted_amount_cents": 14850,
        "notes": "optional"
    }

    Response includes expected_amount_cents and variance_cents.
    """
    try:
        data = request.get_json(silent=True) or {}
        session = register_service.close_session(
            session_id=session_id,
            counted_amount=Money(require_cents(data, "counted_amount_cents")),
            employee_id=g.employee_id,
            notes=data.get("notes"),
        )
        return jsonify({"session": session.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to close register session")
        return jsonify({"error": "Internal server error"}), 500
