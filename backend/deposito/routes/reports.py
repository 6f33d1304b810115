# Overview: Flask API routes for reconciliation reports; read-only.

# backend/deposito/routes/reports.py
"""
Reconciliation & reporting API routes

All endpoints are read-only. Date ranges are ISO-8601 (naive = UTC).
"""

from flask import Blueprint, request, jsonify

from ..errors import EngineError
from ..services import reconciliation_service
from ..decorators import require_employee, require_role


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/cash-summary/<int:session_id>")
@require_employee
def cash_summary_route(session_id: int):
    try:
        summary = reconciliation_service.cash_summary(session_id)
        return jsonify({"summary": summary.to_dict()}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@reports_bp.get("/low-stock")
@require_employee
def low_stock_route():
    """
    Query params:
    - threshold: override each product's min_stock_quantity (optional)
    """
    try:
        products = reconciliation_service.low_stock_products(
            threshold=request.args.get("threshold", type=int),
        )
        return jsonify({"products": [p.to_dict() for p in products]}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@reports_bp.get("/stock-audit")
@require_employee
@require_role("gestor")
def stock_audit_all_route():
    mismatches = reconciliation_service.stock_audit_all()
    return jsonify({
        "consistent": not mismatches,
        "mismatches": [m.to_dict() for m in mismatches],
    }), 200


@reports_bp.get("/stock-audit/<int:product_id>")
@require_employee
def stock_audit_route(product_id: int):
    try:
        audit = reconciliation_service.stock_audit(product_id)
        return jsonify({"audit": audit.to_dict()}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@reports_bp.get("/sales-summary")
@require_employee
@require_role("gestor")
def sales_summary_route():
    """
    Query params:
    - start, end: ISO-8601 datetimes (optional)
    """
    try:
        summary = reconciliation_service.sales_summary(
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
        return jsonify({"summary": summary}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@reports_bp.get("/top-products")
@require_employee
@require_role("gestor")
def top_products_route():
    try:
        rows = reconciliation_service.top_products(
            start=request.args.get("start"),
            end=request.args.get("end"),
            limit=request.args.get("limit", 10, type=int),
        )
        return jsonify({"products": rows}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
