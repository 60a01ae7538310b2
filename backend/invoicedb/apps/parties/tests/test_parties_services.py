from __future__ import annotations

from decimal import Decimal

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from invoicedb.apps.accounts import models as account_models
from invoicedb.apps.audit import models as audit_models
from invoicedb.apps.parties import schemas as party_schemas
from invoicedb.apps.parties import services as party_services


def _create_company(db, code: str = "PTY") -> account_models.Company:
    company = account_models.Company(code=code, name=f"{code} Ltd", login_slug=code.lower())
    db.add(company)
    db.commit()
    db.refresh(company)
    return company


def _customer(db, company_id: str, code: str, name: str, phone: str | None = None):
    return party_services.create_customer(
        db,
        company_id=company_id,
        payload=party_schemas.CustomerCreate(customer_code=code, name=name, phone=phone),
        actor_user_id=None,
    )


def test_create_customer_normalizes_code_and_audits(db_session):
    company = _create_company(db_session)
    customer = _customer(db_session, company.id, " c001 ", " Blue Bay Store ")
    db_session.commit()

    assert customer.customer_code == "C001"
    assert customer.name == "Blue Bay Store"
    event = db_session.query(audit_models.AuditEvent).one()
    assert (event.entity_type, event.action) == ("Customer", "create")


def test_customer_code_is_unique_per_company(db_session):
    company = _create_company(db_session)
    other = _create_company(db_session, "OTH")
    _customer(db_session, company.id, "C001", "First")

    with pytest.raises(HTTPException) as exc:
        _customer(db_session, company.id, "c001", "Second")
    assert exc.value.status_code == 409

    assert _customer(db_session, other.id, "C001", "Elsewhere").customer_code == "C001"


def test_discount_percent_must_be_in_range():
    with pytest.raises(ValidationError):
        party_schemas.CustomerCreate(customer_code="C1", name="X", discount_percent=Decimal("120"))


def test_list_customers_searches_code_name_and_phone(db_session):
    company = _create_company(db_session)
    _customer(db_session, company.id, "C001", "Alpha Mart", phone="5123 4567")
    _customer(db_session, company.id, "C002", "Beta Shop", phone="5999 0000")
    db_session.commit()

    assert [c.name for c in party_services.list_customers(db_session, company_id=company.id, q="alpha")] == [
        "Alpha Mart"
    ]
    assert [c.name for c in party_services.list_customers(db_session, company_id=company.id, q="c002")] == [
        "Beta Shop"
    ]
    assert [c.name for c in party_services.list_customers(db_session, company_id=company.id, q="5123")] == [
        "Alpha Mart"
    ]
    assert len(party_services.list_customers(db_session, company_id=company.id)) == 2


def test_update_customer_rejects_taken_code(db_session):
    company = _create_company(db_session)
    _customer(db_session, company.id, "C001", "Alpha")
    second = _customer(db_session, company.id, "C002", "Beta")

    with pytest.raises(HTTPException) as exc:
        party_services.update_customer(
            db_session,
            company_id=company.id,
            customer_id=second.id,
            payload=party_schemas.CustomerUpdate(customer_code="c001"),
            actor_user_id=None,
        )
    assert exc.value.status_code == 409

    updated = party_services.update_customer(
        db_session,
        company_id=company.id,
        customer_id=second.id,
        payload=party_schemas.CustomerUpdate(discount_percent=Decimal("5")),
        actor_user_id=None,
    )
    assert updated.discount_percent == Decimal("5")


def test_get_customer_is_tenant_scoped(db_session):
    company = _create_company(db_session)
    other = _create_company(db_session, "OTH")
    customer = _customer(db_session, company.id, "C001", "Alpha")

    with pytest.raises(HTTPException) as exc:
        party_services.get_customer(db_session, company_id=other.id, customer_id=customer.id)
    assert exc.value.status_code == 404


def test_suppliers_create_list_update(db_session):
    company = _create_company(db_session)
    supplier = party_services.create_supplier(
        db_session,
        company_id=company.id,
        payload=party_schemas.SupplierCreate(supplier_code="s01", name="Island Foods"),
        actor_user_id=None,
    )
    assert supplier.supplier_code == "S01"

    with pytest.raises(HTTPException):
        party_services.create_supplier(
            db_session,
            company_id=company.id,
            payload=party_schemas.SupplierCreate(supplier_code="S01", name="Dup"),
            actor_user_id=None,
        )

    party_services.update_supplier(
        db_session,
        company_id=company.id,
        supplier_id=supplier.id,
        payload=party_schemas.SupplierUpdate(phone="208 0000"),
        actor_user_id=None,
    )
    found = party_services.list_suppliers(db_session, company_id=company.id, q="208")
    assert [s.id for s in found] == [supplier.id]
