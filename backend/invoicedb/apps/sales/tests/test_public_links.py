from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
import uuid

import pytest
from fastapi import HTTPException

from invoicedb.apps.accounts import models as account_models
from invoicedb.apps.inventory import schemas as inventory_schemas
from invoicedb.apps.inventory import services as inventory_services
from invoicedb.apps.parties import schemas as party_schemas
from invoicedb.apps.parties import services as party_services
from invoicedb.apps.sales import models as sales_models
from invoicedb.apps.sales import public_links
from invoicedb.apps.sales import quotations
from invoicedb.apps.sales import schemas as sales_schemas
from invoicedb.apps.sales import services as sales_services

DocumentType = sales_models.DocumentTypeEnum


def _setup(db):
    company = account_models.Company(
        code="PUB", name="Public Print Ltd", login_slug="public", address="1 Royal Road", vat_no="VAT123"
    )
    db.add(company)
    db.commit()
    db.refresh(company)
    customer = party_services.create_customer(
        db,
        company_id=company.id,
        payload=party_schemas.CustomerCreate(customer_code="P01", name="Lagoon Bistro", phone="5555 0101"),
        actor_user_id=None,
    )
    product = inventory_services.create_product(
        db,
        company_id=company.id,
        payload=inventory_schemas.ProductCreate(sku="SALT", name="Sea Salt", item_code="SS-1", selling_price=Decimal("4")),
        actor_user_id=None,
    )
    invoice = sales_services.create_invoice(
        db,
        company_id=company.id,
        payload=sales_schemas.InvoiceCreate(
            customer_id=customer.id,
            invoice_date=date(2026, 7, 1),
            items=[sales_schemas.InvoiceItemIn(product_id=product.id, uom="PCS", pcs_qty=Decimal("5"))],
        ),
        actor_user_id=None,
    )
    return company, customer, product, invoice


def _invoice_bundle(db, invoice_id, token):
    return public_links.get_public_print_bundle(
        db, document_type=DocumentType.INVOICE, document_id=invoice_id, token=token
    )


def _assert_not_found(fn, *args, **kwargs):
    with pytest.raises(HTTPException) as exc:
        fn(*args, **kwargs)
    assert exc.value.status_code == 404
    assert exc.value.detail == public_links.NOT_FOUND_DETAIL


def test_invoice_link_is_reused_while_active(db_session):
    company, _, _, invoice = _setup(db_session)

    first = public_links.create_invoice_public_link(
        db_session, company_id=company.id, invoice_id=invoice.id, expires_days=None, actor_user_id=None
    )
    assert first["reused"] is False
    assert first["expires_at"] is None
    assert first["url"].endswith(f"/invoices/{invoice.id}/print?t={first['token']}")
    uuid.UUID(first["token"])
    assert invoice.public_token == first["token"]

    second = public_links.create_invoice_public_link(
        db_session, company_id=company.id, invoice_id=invoice.id, expires_days=7, actor_user_id=None
    )
    assert second["reused"] is True
    assert second["token"] == first["token"]


def test_public_bundle_contents(db_session):
    company, customer, _, invoice = _setup(db_session)
    link = public_links.create_invoice_public_link(
        db_session, company_id=company.id, invoice_id=invoice.id, expires_days=30, actor_user_id=None
    )

    bundle = _invoice_bundle(db_session, invoice.id, link["token"])
    assert bundle["ok"] is True
    assert isinstance(bundle["server_time"], datetime)
    assert bundle["company"]["name"] == "Public Print Ltd"
    assert bundle["company"]["vat_no"] == "VAT123"
    assert bundle["invoice"]["invoice_number"] == invoice.invoice_number
    assert bundle["customer"]["customer_code"] == customer.customer_code
    assert len(bundle["items"]) == 1
    assert bundle["items"][0]["product"]["item_code"] == "SS-1"
    assert "hashed_password" not in str(bundle)


def test_invalid_links_are_indistinguishable(db_session):
    company, customer, product, invoice = _setup(db_session)
    link = public_links.create_invoice_public_link(
        db_session, company_id=company.id, invoice_id=invoice.id, expires_days=None, actor_user_id=None
    )
    token = link["token"]

    _assert_not_found(_invoice_bundle, db_session, invoice.id, None)
    _assert_not_found(_invoice_bundle, db_session, None, token)
    _assert_not_found(_invoice_bundle, db_session, invoice.id, "not-a-uuid")
    _assert_not_found(_invoice_bundle, db_session, invoice.id, str(uuid.uuid4()))
    _assert_not_found(_invoice_bundle, db_session, invoice.id + 1, token)
    _assert_not_found(
        public_links.get_public_print_bundle,
        db_session,
        document_type=DocumentType.CREDIT_NOTE,
        document_id=invoice.id,
        token=token,
    )


def test_revoked_invoice_link_is_replaced(db_session):
    company, _, _, invoice = _setup(db_session)
    old = public_links.create_invoice_public_link(
        db_session, company_id=company.id, invoice_id=invoice.id, expires_days=None, actor_user_id=None
    )

    public_links.revoke_invoice_public_link(db_session, company_id=company.id, invoice_id=invoice.id, actor_user_id=None)
    assert invoice.public_token_revoked is True
    _assert_not_found(_invoice_bundle, db_session, invoice.id, old["token"])

    fresh = public_links.create_invoice_public_link(
        db_session, company_id=company.id, invoice_id=invoice.id, expires_days=None, actor_user_id=None
    )
    assert fresh["reused"] is False
    assert fresh["token"] != old["token"]
    assert _invoice_bundle(db_session, invoice.id, fresh["token"])["invoice"]["id"] == invoice.id


def test_expired_link_is_rejected_and_not_reused(db_session):
    company, _, _, invoice = _setup(db_session)
    link = public_links.create_invoice_public_link(
        db_session, company_id=company.id, invoice_id=invoice.id, expires_days=1, actor_user_id=None
    )
    row = db_session.query(sales_models.PublicLink).filter(sales_models.PublicLink.token == link["token"]).one()
    past = datetime.utcnow() - timedelta(minutes=1)
    row.expires_at = past
    invoice.public_token_expires_at = past
    db_session.flush()

    _assert_not_found(_invoice_bundle, db_session, invoice.id, link["token"])
    again = public_links.create_invoice_public_link(
        db_session, company_id=company.id, invoice_id=invoice.id, expires_days=None, actor_user_id=None
    )
    assert again["reused"] is False


def test_quotation_share_link_rotation(db_session):
    company, customer, product, _ = _setup(db_session)
    quotation = quotations.create_quotation(
        db_session,
        company_id=company.id,
        payload=sales_schemas.QuotationCreate(
            quotation_date=date(2026, 7, 2),
            customer_id=customer.id,
            items=[sales_schemas.QuotationItemIn(product_id=product.id, uom="PCS", pcs_qty=Decimal("3"))],
        ),
        actor_user_id=None,
    )

    def _bundle(token):
        return public_links.get_public_print_bundle(
            db_session, document_type=DocumentType.QUOTATION, document_id=quotation.id, token=token
        )

    first = public_links.create_quotation_share_link(db_session, company_id=company.id, quotation_id=quotation.id)
    kept = public_links.create_quotation_share_link(
        db_session, company_id=company.id, quotation_id=quotation.id, rotate=False, note="for the chef"
    )
    assert _bundle(first["token"])["quotation"]["quotation_number"] == quotation.quotation_number
    assert _bundle(kept["token"])["customer"]["name"] == "Lagoon Bistro"

    rotated = public_links.create_quotation_share_link(db_session, company_id=company.id, quotation_id=quotation.id)
    assert "/quotations/" in rotated["url"]
    _assert_not_found(_bundle, first["token"])
    _assert_not_found(_bundle, kept["token"])
    assert _bundle(rotated["token"])["items"][0]["description"] == "Sea Salt"


def test_credit_note_link(db_session):
    company, customer, product, invoice = _setup(db_session)
    note = sales_services.create_credit_note(
        db_session,
        company_id=company.id,
        payload=sales_schemas.CreditNoteCreate(
            customer_id=customer.id,
            invoice_id=invoice.id,
            items=[sales_schemas.CreditNoteItemIn(product_id=product.id, total_qty=Decimal("1"))],
        ),
        actor_user_id=None,
    )
    link = public_links.create_credit_note_public_link(
        db_session, company_id=company.id, credit_note_id=note.id, expires_in_days=3
    )
    assert link["url"].endswith(f"/credit-notes/{note.id}/print?t={link['token']}")

    bundle = public_links.get_public_print_bundle(
        db_session, document_type=DocumentType.CREDIT_NOTE, document_id=note.id, token=link["token"]
    )
    assert bundle["credit_note"]["total_amount"] == note.total_amount
    assert bundle["credit_note"]["invoice_id"] == invoice.id


def test_document_id_from_query_string(db_session):
    company, _, _, invoice = _setup(db_session)
    token = public_links.create_invoice_public_link(
        db_session, company_id=company.id, invoice_id=invoice.id, expires_days=None, actor_user_id=None
    )["token"]

    bundle = _invoice_bundle(db_session, f" {invoice.id} ", token)
    assert bundle["invoice"]["id"] == invoice.id

    for raw in ("abc", "1.5", "-1", "0", "", "²"):
        _assert_not_found(_invoice_bundle, db_session, raw, token)
