# Overview: Flask API routes for the staff directory (gestor only).

from flask import Blueprint, request, jsonify, current_app

from ..errors import EngineError
from ..extensions import db
from ..models import Employee
from ..services import employee_service
from ..validation import ModelValidationPolicy, validate_payload
from ..decorators import require_employee, require_role


employees_bp = Blueprint("employees", __name__, url_prefix="/api/employees")


EMPLOYEE_POLICY = ModelValidationPolicy(
    writable_fields=set(employee_service.EMPLOYEE_EDITABLE_FIELDS),
    required_on_create={"name", "email"},
)


@employees_bp.get("")
@require_employee
@require_role("gestor")
def list_employees_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    employees = employee_service.list_employees(
        include_inactive=include_inactive,
        role=request.args.get("role"),
    )
    return jsonify({"employees": [e.to_dict() for e in employees]}), 200


@employees_bp.post("")
@require_employee
@require_role("gestor")
def create_employee_route():
    """
    Request body:
    {
        "name": "Maria Souza",
        "email": "maria@deposito.local",
        "role": "funcionario",        (optional)
        "phone": "+55 11 99999-0000", (optional)
        "hire_date": "2024-03-01"     (optional)
    }
    """
    try:
        patch = validate_payload(
            model=Employee,
            payload=request.get_json(silent=True),
            policy=EMPLOYEE_POLICY,
            partial=False,
        )
        patch.pop("is_active", None)
        employee = employee_service.create_employee(**patch)
        return jsonify({"employee": employee.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create employee")
        return jsonify({"error": "Internal server error"}), 500


@employees_bp.get("/<int:employee_id>")
@require_employee
@require_role("gestor")
def get_employee_route(employee_id: int):
    try:
        employee = employee_service.get_employee(employee_id)
        return jsonify({"employee": employee.to_dict()}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@employees_bp.patch("/<int:employee_id>")
@require_employee
@require_role("gestor")
def update_employee_route(employee_id: int):
    try:
        patch = validate_payload(
            model=Employee,
            payload=request.get_json(silent=True),
            policy=EMPLOYEE_POLICY,
            partial=True,
        )
        employee = employee_service.update_employee(employee_id, patch)
        return jsonify({"employee": employee.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update employee")
        return jsonify({"error": "Internal server error"}), 500


@employees_bp.delete("/<int:employee_id>")
@require_employee
@require_role("gestor")
def deactivate_employee_route(employee_id: int):
    try:
        employee = employee_service.deactivate_employee(employee_id)
        return jsonify({"employee": employee.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to deactivate employee")
        return jsonify({"error": "Internal server error"}), 500
