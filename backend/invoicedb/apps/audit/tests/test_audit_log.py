from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from invoicedb.apps.accounts import models as account_models
from invoicedb.apps.audit import schemas as audit_schemas
from invoicedb.apps.audit import services as audit_services


def _create_company(db) -> account_models.Company:
    company = account_models.Company(code="AUD", name="Audit Co", login_slug="audit")
    db.add(company)
    db.commit()
    db.refresh(company)
    return company


def test_log_event_keeps_reference_and_rounded_amount(db_session):
    company = _create_company(db_session)

    event = audit_services.log_event(
        db_session,
        company_id=company.id,
        actor_user_id=None,
        entity_type="Invoice",
        entity_id=12,
        action="payment.add",
        reference="INV-2026-00012",
        amount="99.995",
        after={"status": "PAID"},
    )
    db_session.commit()

    assert event is not None
    assert event.entity_id == "12"
    assert event.reference == "INV-2026-00012"
    assert event.amount == Decimal("100.00")
    assert event.after == {"status": "PAID"}
    assert len(event.id) == 36


def test_log_event_only_raises_for_critical_actions(db_session, monkeypatch):
    company = _create_company(db_session)

    def _boom(*_args, **_kwargs):
        raise RuntimeError("db down")

    monkeypatch.setattr(audit_services, "create_audit_event", _boom)

    assert (
        audit_services.log_event(
            db_session,
            company_id=company.id,
            actor_user_id=None,
            entity_type="Customer",
            entity_id="1",
            action="update",
        )
        is None
    )
    with pytest.raises(RuntimeError):
        audit_services.log_event(
            db_session,
            company_id=company.id,
            actor_user_id=None,
            entity_type="Invoice",
            entity_id="1",
            action="void",
            critical=True,
        )


def test_list_audit_events_filters_and_orders_newest_first(db_session):
    company = _create_company(db_session)
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    rows = [
        ("CreditNote", "5", "create", "CN-2026-00005"),
        ("CreditNote", "5", "void", "CN-2026-00005"),
        ("CreditNote", "6", "create", "CN-2026-00006"),
        ("Invoice", "5", "create", "INV-2026-00005"),
    ]
    for offset, (entity_type, entity_id, action, reference) in enumerate(rows):
        audit_services.create_audit_event(
            db_session,
            company_id=company.id,
            data=audit_schemas.AuditEventCreate(
                entity_type=entity_type,
                entity_id=entity_id,
                action=action,
                reference=reference,
                occurred_at=base + timedelta(hours=offset),
            ),
        )
    db_session.commit()

    events = audit_services.list_audit_events(
        db_session, company_id=company.id, entity_type="CreditNote", entity_id="5"
    )
    assert [e.action for e in events] == ["void", "create"]

    by_prefix = audit_services.list_audit_events(db_session, company_id=company.id, reference="CN-2026")
    assert {e.reference for e in by_prefix} == {"CN-2026-00005", "CN-2026-00006"}

    creates = audit_services.list_audit_events(db_session, company_id=company.id, action="create")
    assert [e.reference for e in creates] == ["INV-2026-00005", "CN-2026-00006", "CN-2026-00005"]

    windowed = audit_services.list_audit_events(
        db_session,
        company_id=company.id,
        start=base + timedelta(hours=1),
        end=base + timedelta(hours=2),
    )
    assert len(windowed) == 2

    assert audit_services.list_audit_events(db_session, company_id="other") == []


def test_read_schema_serializes_orm_row(db_session):
    company = _create_company(db_session)
    event = audit_services.log_event(
        db_session,
        company_id=company.id,
        actor_user_id=None,
        entity_type="SupplierBill",
        entity_id=3,
        action="create",
        reference="B-100",
        amount=Decimal("300"),
    )
    db_session.commit()

    read = audit_schemas.AuditEventRead.model_validate(event)
    assert read.company_id == company.id
    assert read.amount == Decimal("300.00")
    assert read.occurred_at is not None
