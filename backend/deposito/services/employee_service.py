# Overview: Service-layer operations for the staff directory.

"""
Employee Service

WHY: Managers keep a directory of who works the counter. Authentication
belongs to the external identity provider; nothing here grants access.

DESIGN:
- Email is unique (case-insensitive)
- Employees are deactivated, never deleted
- Ledger rows reference employees by the provider's id string, so this
  table can change without touching historical movements or sales
"""

from __future__ import annotations

from datetime import date

from sqlalchemy.exc import IntegrityError

from ..errors import DuplicateRecord, EmployeeNotFound, ValidationError
from ..extensions import db
from ..models import Employee
from ..validation import enforce_rules_employee


ROLE_GESTOR = "gestor"
ROLE_FUNCIONARIO = "funcionario"
ROLES = (ROLE_GESTOR, ROLE_FUNCIONARIO)

EMPLOYEE_EDITABLE_FIELDS = {"name", "email", "phone", "role", "hire_date", "is_active"}


def _normalize_email(email: str | None) -> str:
    email = (email or "").strip().lower()
    if not email:
        raise ValidationError("email is required")
    return email


def _ensure_email_free(email: str, employee_id: int | None = None) -> None:
    query = db.session.query(Employee).filter(Employee.email == email)
    if employee_id is not None:
        query = query.filter(Employee.id != employee_id)
    if query.first() is not None:
        raise DuplicateRecord(f"Email '{email}' is already registered", details={"email": email})


def create_employee(
    *,
    name: str,
    email: str,
    role: str = ROLE_FUNCIONARIO,
    phone: str | None = None,
    hire_date: date | None = None,
) -> Employee:
    """
    Register a new employee.

    Raises:
        ValidationError: blank name, bad email, unknown role
        DuplicateRecord: email already registered
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    email = _normalize_email(email)
    enforce_rules_employee({"role": role, "email": email})
    _ensure_email_free(email)

    employee = Employee(
        name=name,
        email=email,
        phone=phone,
        role=role,
        hire_date=hire_date,
        is_active=True,
    )
    db.session.add(employee)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise DuplicateRecord(f"Email '{email}' is already registered") from exc
    return employee


def get_employee(employee_id: int) -> Employee:
    employee = db.session.get(Employee, employee_id)
    if employee is None:
        raise EmployeeNotFound("Employee not found", details={"employee_id": employee_id})
    return employee


def list_employees(*, include_inactive: bool = False, role: str | None = None) -> list[Employee]:
    query = db.session.query(Employee)
    if not include_inactive:
        query = query.filter(Employee.is_active.is_(True))
    if role is not None:
        query = query.filter(Employee.role == role)
    return query.order_by(Employee.name.asc(), Employee.id.asc()).all()


def update_employee(employee_id: int, patch: dict) -> Employee:
    illegal = set(patch) - EMPLOYEE_EDITABLE_FIELDS
    if illegal:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(illegal))}")

    employee = get_employee(employee_id)
    if "email" in patch:
        patch = {**patch, "email": _normalize_email(patch["email"])}
        _ensure_email_free(patch["email"], employee_id=employee.id)
    enforce_rules_employee(patch)

    for key, value in patch.items():
        setattr(employee, key, value)

    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise DuplicateRecord("Email is already registered") from exc
    return employee


def deactivate_employee(employee_id: int) -> Employee:
    return update_employee(employee_id, {"is_active": False})
