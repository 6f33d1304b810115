from datetime import date

import pytest

from deposito.errors import DuplicateRecord, EmployeeNotFound, ValidationError
from deposito.services import employee_service


def test_create_and_list(db_session):
    maria = employee_service.create_employee(
        name="Maria Souza",
        email="Maria@Deposito.local",
        role="gestor",
        hire_date=date(2024, 3, 1),
    )
    employee_service.create_employee(name="João Lima", email="joao@deposito.local")

    assert maria.email == "maria@deposito.local"
    assert maria.to_dict()["hire_date"] == "2024-03-01"
    assert [e.name for e in employee_service.list_employees()] == ["João Lima", "Maria Souza"]
    assert [e.name for e in employee_service.list_employees(role="gestor")] == ["Maria Souza"]


def test_email_is_unique_case_insensitive(db_session):
    employee_service.create_employee(name="A", email="a@deposito.local")
    with pytest.raises(DuplicateRecord):
        employee_service.create_employee(name="B", email="A@DEPOSITO.LOCAL")


def test_role_and_email_validation(db_session):
    with pytest.raises(ValidationError):
        employee_service.create_employee(name="X", email="x@deposito.local", role="admin")
    with pytest.raises(ValidationError):
        employee_service.create_employee(name="X", email="not-an-email")
    with pytest.raises(ValidationError):
        employee_service.create_employee(name="", email="x@deposito.local")


def test_update_and_deactivate(db_session):
    employee = employee_service.create_employee(name="Ana", email="ana@deposito.local")
    other = employee_service.create_employee(name="Bia", email="bia@deposito.local")

    updated = employee_service.update_employee(employee.id, {"role": "gestor", "phone": "11 99999-0000"})
    assert updated.role == "gestor"

    with pytest.raises(DuplicateRecord):
        employee_service.update_employee(employee.id, {"email": "bia@deposito.local"})
    with pytest.raises(ValidationError):
        employee_service.update_employee(employee.id, {"id": 99})

    employee_service.deactivate_employee(other.id)
    assert [e.id for e in employee_service.list_employees()] == [employee.id]
    assert len(employee_service.list_employees(include_inactive=True)) == 2


def test_unknown_employee(db_session):
    with pytest.raises(EmployeeNotFound):
        employee_service.get_employee(77)
