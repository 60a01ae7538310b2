from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from fastapi import HTTPException

from invoicedb.apps.accounts import models as account_models
from invoicedb.apps.inventory import models as inventory_models
from invoicedb.apps.inventory import schemas as inventory_schemas
from invoicedb.apps.inventory import services as inventory_services
from invoicedb.apps.parties import schemas as party_schemas
from invoicedb.apps.parties import services as party_services
from invoicedb.apps.sales import models as sales_models
from invoicedb.apps.sales import schemas as sales_schemas
from invoicedb.apps.sales import services as sales_services

InvoiceStatus = sales_models.InvoiceStatusEnum
CreditNoteStatus = sales_models.CreditNoteStatusEnum


def _create_company(db) -> account_models.Company:
    company = account_models.Company(code="CRN", name="Returns Ltd", login_slug="returns")
    db.add(company)
    db.commit()
    db.refresh(company)
    return company


def _customer(db, company_id: str, code: str, name: str):
    return party_services.create_customer(
        db,
        company_id=company_id,
        payload=party_schemas.CustomerCreate(customer_code=code, name=name),
        actor_user_id=None,
    )


def _setup(db):
    """Posted invoice for 10 pcs @ 10.00 + 15% VAT (115.00), stock 100 -> 90."""
    company = _create_company(db)
    customer = _customer(db, company.id, "C100", "Beach Cafe")
    product = inventory_services.create_product(
        db,
        company_id=company.id,
        payload=inventory_schemas.ProductCreate(sku="TEA-25", name="Tea Bags 25", selling_price=Decimal("10")),
        actor_user_id=None,
    )
    inventory_services.record_movement(
        db,
        company_id=company.id,
        payload=inventory_schemas.StockMovementCreate(
            product_id=product.id,
            movement_type=inventory_models.StockMovementTypeEnum.IN,
            quantity=Decimal("100"),
        ),
        actor_user_id=None,
    )
    invoice = sales_services.create_invoice(
        db,
        company_id=company.id,
        payload=sales_schemas.InvoiceCreate(
            customer_id=customer.id,
            invoice_date=date(2026, 5, 1),
            items=[sales_schemas.InvoiceItemIn(product_id=product.id, uom="PCS", pcs_qty=Decimal("10"))],
        ),
        actor_user_id=None,
    )
    sales_services.post_invoice_and_deduct_stock(db, company_id=company.id, invoice_id=invoice.id, actor_user_id=None)
    return company, customer, product, invoice


def _credit(db, company, customer, product, invoice=None, *, qty="2", status=CreditNoteStatus.ISSUED, key=None):
    return sales_services.create_credit_note(
        db,
        company_id=company.id,
        payload=sales_schemas.CreditNoteCreate(
            customer_id=customer.id,
            invoice_id=invoice.id if invoice is not None else None,
            credit_note_date=date(2026, 5, 3),
            reason="Damaged",
            status=status,
            items=[sales_schemas.CreditNoteItemIn(product_id=product.id, total_qty=Decimal(qty))],
            idempotency_key=key,
        ),
        actor_user_id=None,
    )


def _stock(db, product) -> Decimal:
    db.refresh(product)
    return Decimal(str(product.current_stock))


def test_issued_credit_note_returns_stock_and_reduces_invoice(db_session):
    company, customer, product, invoice = _setup(db_session)
    assert _stock(db_session, product) == Decimal("90")

    note = _credit(db_session, company, customer, product, invoice)

    assert note.credit_note_number == "CN-2026-00001"
    assert note.items[0].description == "Tea Bags 25"
    assert note.subtotal == Decimal("20.00")
    assert note.vat_amount == Decimal("3.00")
    assert note.total_amount == Decimal("23.00")
    assert _stock(db_session, product) == Decimal("92")

    assert invoice.credits_applied == Decimal("23.00")
    assert invoice.balance_remaining == Decimal("92.00")
    assert invoice.status == InvoiceStatus.PARTIALLY_PAID


def test_pending_credit_note_books_nothing(db_session):
    company, customer, product, invoice = _setup(db_session)
    note = _credit(db_session, company, customer, product, invoice, status=CreditNoteStatus.PENDING)

    assert note.status == CreditNoteStatus.PENDING
    assert _stock(db_session, product) == Decimal("90")
    assert invoice.credits_applied == Decimal("0.00")
    assert invoice.status == InvoiceStatus.ISSUED


def test_credit_note_validation(db_session):
    company, customer, product, invoice = _setup(db_session)
    stranger = _customer(db_session, company.id, "C200", "Someone Else")

    with pytest.raises(HTTPException) as exc:
        _credit(db_session, company, stranger, product, invoice)
    assert exc.value.status_code == 400

    with pytest.raises(HTTPException) as exc:
        _credit(db_session, company, customer, product, status=CreditNoteStatus.REFUNDED)
    assert exc.value.status_code == 400

    with pytest.raises(HTTPException) as exc:
        sales_services.create_credit_note(
            db_session,
            company_id=company.id,
            payload=sales_schemas.CreditNoteCreate(customer_id=customer.id, items=[]),
            actor_user_id=None,
        )
    assert exc.value.status_code == 400


def test_credit_note_idempotency(db_session):
    company, customer, product, invoice = _setup(db_session)
    first = _credit(db_session, company, customer, product, invoice, key="cn-1")
    again = _credit(db_session, company, customer, product, invoice, key="cn-1")
    assert again.id == first.id
    assert _stock(db_session, product) == Decimal("92")


def test_refund_then_restore_round_trips_stock_and_credits(db_session):
    company, customer, product, invoice = _setup(db_session)
    note = _credit(db_session, company, customer, product, invoice)

    note = sales_services.refund_credit_note(
        db_session, company_id=company.id, credit_note_id=note.id, note="Cash back", actor_user_id=None
    )
    assert note.status == CreditNoteStatus.REFUNDED
    assert note.refund_note == "Cash back"
    assert _stock(db_session, product) == Decimal("90")
    assert invoice.credits_applied == Decimal("0.00")
    assert invoice.status == InvoiceStatus.ISSUED

    with pytest.raises(HTTPException) as exc:
        sales_services.refund_credit_note(
            db_session, company_id=company.id, credit_note_id=note.id, note=None, actor_user_id=None
        )
    assert exc.value.status_code == 409

    note = sales_services.restore_credit_note(
        db_session, company_id=company.id, credit_note_id=note.id, actor_user_id=None
    )
    assert note.status == CreditNoteStatus.ISSUED
    assert _stock(db_session, product) == Decimal("92")
    assert invoice.credits_applied == Decimal("23.00")

    with pytest.raises(HTTPException) as exc:
        sales_services.restore_credit_note(
            db_session, company_id=company.id, credit_note_id=note.id, actor_user_id=None
        )
    assert exc.value.status_code == 409


def test_void_reverses_and_blocks_refund(db_session):
    company, customer, product, invoice = _setup(db_session)
    note = _credit(db_session, company, customer, product, invoice)

    note = sales_services.void_credit_note(
        db_session, company_id=company.id, credit_note_id=note.id, actor_user_id=None
    )
    assert note.status == CreditNoteStatus.VOID
    assert _stock(db_session, product) == Decimal("90")
    assert invoice.credits_applied == Decimal("0.00")

    with pytest.raises(HTTPException) as exc:
        sales_services.void_credit_note(
            db_session, company_id=company.id, credit_note_id=note.id, actor_user_id=None
        )
    assert exc.value.status_code == 409
    with pytest.raises(HTTPException) as exc:
        sales_services.refund_credit_note(
            db_session, company_id=company.id, credit_note_id=note.id, note=None, actor_user_id=None
        )
    assert exc.value.status_code == 409


def test_list_credit_notes_and_audit_trail(db_session):
    company, customer, product, invoice = _setup(db_session)
    issued = _credit(db_session, company, customer, product, invoice)
    pending = _credit(db_session, company, customer, product, status=CreditNoteStatus.PENDING)

    rows = sales_services.list_credit_notes(db_session, company_id=company.id)
    assert [r.id for r in rows] == [pending.id, issued.id]
    assert rows[0].customer_name == "Beach Cafe"

    only_pending = sales_services.list_credit_notes(
        db_session, company_id=company.id, status_filter=CreditNoteStatus.PENDING
    )
    assert [r.id for r in only_pending] == [pending.id]
    assert [r.id for r in sales_services.list_credit_notes(db_session, company_id=company.id, q="CN-2026-00001")] == [
        issued.id
    ]

    sales_services.refund_credit_note(
        db_session, company_id=company.id, credit_note_id=issued.id, note=None, actor_user_id=None
    )
    events = sales_services.credit_note_audit(db_session, company_id=company.id, credit_note_id=issued.id)
    assert {e.action for e in events} == {"create", "refund"}
    assert all(e.entity_type == "CreditNote" for e in events)

    with pytest.raises(HTTPException) as exc:
        sales_services.credit_note_audit(db_session, company_id=company.id, credit_note_id=9999)
    assert exc.value.status_code == 404
