"""
Token links that let a customer open a printable document without logging in.

Every failure on the public side (bad token, wrong document, revoked,
expired) collapses into the same 404 so a caller cannot probe which
documents exist.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
import os
from typing import Any, Dict, List, Optional, Union

from fastapi import HTTPException
from sqlalchemy.orm import Session

from invoicedb.apps.accounts import models as account_models
from invoicedb.utils.identifiers import is_uuid

from . import models
from . import quotations as quotation_services
from . import services as sales_services

logger = logging.getLogger(__name__)

PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "").rstrip("/")
NOT_FOUND_DETAIL = "Not found / invalid link"

DocumentType = models.DocumentTypeEnum

PRINT_PATHS = {
    DocumentType.INVOICE: "invoices",
    DocumentType.CREDIT_NOTE: "credit-notes",
    DocumentType.QUOTATION: "quotations",
}

AUDIT_ENTITY_TYPES = {
    DocumentType.INVOICE: "Invoice",
    DocumentType.CREDIT_NOTE: "CreditNote",
    DocumentType.QUOTATION: "Quotation",
}


def _utcnow() -> datetime:
    return datetime.utcnow()


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _is_active(expires_at: Optional[datetime], revoked: bool, now: datetime) -> bool:
    if revoked:
        return False
    expires = _naive_utc(expires_at)
    return expires is None or expires >= now


def print_url(document_type: DocumentType, document_id: int, token: str) -> str:
    return f"{PUBLIC_BASE_URL}/{PRINT_PATHS[document_type]}/{document_id}/print?t={token}"


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail=NOT_FOUND_DETAIL)


def _active_links(db: Session, *, company_id: str, document_type: DocumentType, document_id: int):
    return (
        db.query(models.PublicLink)
        .filter(
            models.PublicLink.company_id == company_id,
            models.PublicLink.document_type == document_type,
            models.PublicLink.document_id == document_id,
            models.PublicLink.revoked_at.is_(None),
        )
        .all()
    )


def _issue_link(
    db: Session,
    *,
    company_id: str,
    document_type: DocumentType,
    document_id: int,
    expires_in_days: Optional[int],
    note: Optional[str],
    rotate: bool,
    actor_user_id: Optional[str],
) -> models.PublicLink:
    now = _utcnow()
    if rotate:
        for link in _active_links(db, company_id=company_id, document_type=document_type, document_id=document_id):
            link.revoked_at = now
            db.add(link)

    link = models.PublicLink(
        company_id=company_id,
        document_type=document_type,
        document_id=document_id,
        expires_at=now + timedelta(days=expires_in_days) if expires_in_days and expires_in_days > 0 else None,
        note=note,
        created_by_user_id=actor_user_id,
    )
    db.add(link)
    db.flush()
    sales_services._audit(
        db,
        company_id=company_id,
        entity_type=AUDIT_ENTITY_TYPES[document_type],
        entity_id=document_id,
        action="public_link.create",
        actor_user_id=actor_user_id,
        after={"link_id": link.id, "expires_at": link.expires_at.isoformat() if link.expires_at else None},
    )
    return link


# ---------------------------------------------------------------------------
# Authenticated side
# ---------------------------------------------------------------------------


def create_invoice_public_link(
    db: Session,
    *,
    company_id: str,
    invoice_id: int,
    expires_days: Optional[int],
    actor_user_id: Optional[str],
) -> Dict[str, Any]:
    invoice = sales_services.get_invoice(db, company_id=company_id, invoice_id=invoice_id)
    now = _utcnow()

    if invoice.public_token and _is_active(invoice.public_token_expires_at, bool(invoice.public_token_revoked), now):
        return {
            "ok": True,
            "invoice_id": invoice.id,
            "token": invoice.public_token,
            "expires_at": invoice.public_token_expires_at,
            "reused": True,
            "url": print_url(DocumentType.INVOICE, invoice.id, invoice.public_token),
        }

    link = _issue_link(
        db,
        company_id=company_id,
        document_type=DocumentType.INVOICE,
        document_id=invoice.id,
        expires_in_days=expires_days,
        note=None,
        rotate=True,
        actor_user_id=actor_user_id,
    )
    invoice.public_token = link.token
    invoice.public_token_revoked = False
    invoice.public_token_expires_at = link.expires_at
    db.add(invoice)
    db.flush()
    return {
        "ok": True,
        "invoice_id": invoice.id,
        "token": link.token,
        "expires_at": link.expires_at,
        "reused": False,
        "url": print_url(DocumentType.INVOICE, invoice.id, link.token),
    }


def revoke_invoice_public_link(
    db: Session,
    *,
    company_id: str,
    invoice_id: int,
    actor_user_id: Optional[str],
) -> models.Invoice:
    invoice = sales_services.get_invoice(db, company_id=company_id, invoice_id=invoice_id)
    now = _utcnow()
    for link in _active_links(db, company_id=company_id, document_type=DocumentType.INVOICE, document_id=invoice.id):
        link.revoked_at = now
        db.add(link)
    invoice.public_token_revoked = True
    db.add(invoice)
    db.flush()
    sales_services._audit(
        db,
        company_id=company_id,
        entity_type="Invoice",
        entity_id=invoice.id,
        reference=invoice.invoice_number,
        action="public_link.revoke",
        actor_user_id=actor_user_id,
    )
    return invoice


def create_credit_note_public_link(
    db: Session,
    *,
    company_id: str,
    credit_note_id: int,
    expires_in_days: Optional[int] = None,
    note: Optional[str] = None,
    rotate: bool = True,
    actor_user_id: Optional[str] = None,
) -> Dict[str, Any]:
    credit_note = sales_services.get_credit_note(db, company_id=company_id, credit_note_id=credit_note_id)
    link = _issue_link(
        db,
        company_id=company_id,
        document_type=DocumentType.CREDIT_NOTE,
        document_id=credit_note.id,
        expires_in_days=expires_in_days,
        note=note,
        rotate=rotate,
        actor_user_id=actor_user_id,
    )
    return {"ok": True, "token": link.token, "url": print_url(DocumentType.CREDIT_NOTE, credit_note.id, link.token)}


def create_quotation_share_link(
    db: Session,
    *,
    company_id: str,
    quotation_id: int,
    expires_in_days: Optional[int] = None,
    note: Optional[str] = None,
    rotate: bool = True,
    actor_user_id: Optional[str] = None,
) -> Dict[str, Any]:
    quotation = quotation_services.get_quotation(db, company_id=company_id, quotation_id=quotation_id)
    link = _issue_link(
        db,
        company_id=company_id,
        document_type=DocumentType.QUOTATION,
        document_id=quotation.id,
        expires_in_days=expires_in_days,
        note=note,
        rotate=rotate,
        actor_user_id=actor_user_id,
    )
    return {"ok": True, "token": link.token, "url": print_url(DocumentType.QUOTATION, quotation.id, link.token)}


# ---------------------------------------------------------------------------
# Print bundles
# ---------------------------------------------------------------------------


def _company_dict(company: Optional[account_models.Company]) -> Optional[Dict[str, Any]]:
    if company is None:
        return None
    return {
        "id": company.id,
        "name": company.name,
        "address": company.address,
        "phone": company.phone,
        "email": company.email,
        "brn": company.brn,
        "vat_no": company.vat_no,
        "currency": company.currency,
    }


def _customer_dict(customer) -> Optional[Dict[str, Any]]:
    if customer is None:
        return None
    return {
        "id": customer.id,
        "name": customer.name,
        "address": customer.address,
        "phone": customer.phone,
        "whatsapp": customer.whatsapp,
        "brn": customer.brn,
        "vat_no": customer.vat_no,
        "customer_code": customer.customer_code,
    }


def _product_dict(product) -> Optional[Dict[str, Any]]:
    if product is None:
        return None
    return {"id": product.id, "name": product.name, "item_code": product.item_code, "sku": product.sku}


def _columns(row, names: List[str]) -> Dict[str, Any]:
    return {name: getattr(row, name) for name in names}


INVOICE_FIELDS = [
    "id", "invoice_number", "invoice_date", "due_date", "purchase_order_no", "sales_rep",
    "sales_rep_phone", "notes", "vat_percent", "discount_percent", "subtotal", "vat_amount",
    "total_amount", "discount_amount", "previous_balance", "gross_total", "amount_paid",
    "credits_applied", "balance_remaining", "balance_due", "status",
]
INVOICE_ITEM_FIELDS = [
    "id", "description", "uom", "box_qty", "pcs_qty", "units_per_box", "total_qty", "vat_rate",
    "unit_price_excl_vat", "unit_vat", "unit_price_incl_vat", "line_total",
]
CREDIT_NOTE_FIELDS = [
    "id", "credit_note_number", "credit_note_date", "invoice_id", "reason", "subtotal",
    "vat_amount", "total_amount", "status",
]
CREDIT_NOTE_ITEM_FIELDS = [
    "id", "description", "total_qty", "vat_rate", "unit_price_excl_vat", "unit_vat",
    "unit_price_incl_vat", "line_total",
]
QUOTATION_FIELDS = [
    "id", "quotation_number", "quotation_date", "valid_until", "customer_name", "customer_code",
    "sales_rep", "sales_rep_phone", "notes", "subtotal", "discount_percent", "discount_amount",
    "vat_percent", "vat_amount", "total_amount", "status",
]
QUOTATION_ITEM_FIELDS = [
    "id", "description", "uom", "box_qty", "pcs_qty", "grams_qty", "bags_qty", "units_per_box",
    "total_qty", "vat_rate", "unit_price_excl_vat", "unit_vat", "unit_price_incl_vat", "line_total",
]


def _bundle(db: Session, *, key: str, document, fields, item_fields) -> Dict[str, Any]:
    company = db.query(account_models.Company).filter(account_models.Company.id == document.company_id).first()
    items = []
    for item in document.items:
        row = _columns(item, item_fields)
        row["product"] = _product_dict(item.product)
        items.append(row)
    return {
        "ok": True,
        "server_time": _utcnow(),
        "company": _company_dict(company),
        key: _columns(document, fields),
        "customer": _customer_dict(document.customer),
        "items": items,
    }


def build_invoice_bundle(db: Session, invoice: models.Invoice) -> Dict[str, Any]:
    return _bundle(db, key="invoice", document=invoice, fields=INVOICE_FIELDS, item_fields=INVOICE_ITEM_FIELDS)


def build_credit_note_bundle(db: Session, credit_note: models.CreditNote) -> Dict[str, Any]:
    return _bundle(
        db, key="credit_note", document=credit_note, fields=CREDIT_NOTE_FIELDS, item_fields=CREDIT_NOTE_ITEM_FIELDS
    )


def build_quotation_bundle(db: Session, quotation: models.Quotation) -> Dict[str, Any]:
    return _bundle(
        db, key="quotation", document=quotation, fields=QUOTATION_FIELDS, item_fields=QUOTATION_ITEM_FIELDS
    )


def _parse_document_id(value: Union[int, str, None]) -> Optional[int]:
    """Positive integer id from a query string, or None."""
    text = str(value if value is not None else "").strip()
    if not text.isdigit() or not text.isascii():
        return None
    return int(text) or None


def resolve_public_link(
    db: Session,
    *,
    document_type: DocumentType,
    document_id: Union[int, str, None],
    token: Optional[str],
) -> models.PublicLink:
    document_id = _parse_document_id(document_id)
    if document_id is None or not token or not is_uuid(token):
        raise _not_found()
    link = db.query(models.PublicLink).filter(models.PublicLink.token == token).first()
    if (
        link is None
        or link.document_type != document_type
        or link.document_id != document_id
        or not _is_active(link.expires_at, link.revoked_at is not None, _utcnow())
    ):
        raise _not_found()
    return link


_DOCUMENT_MODELS = {
    DocumentType.INVOICE: models.Invoice,
    DocumentType.CREDIT_NOTE: models.CreditNote,
    DocumentType.QUOTATION: models.Quotation,
}

_BUNDLE_BUILDERS = {
    DocumentType.INVOICE: build_invoice_bundle,
    DocumentType.CREDIT_NOTE: build_credit_note_bundle,
    DocumentType.QUOTATION: build_quotation_bundle,
}


def get_public_document(
    db: Session, *, document_type: DocumentType, document_id: Union[int, str, None], token: Optional[str]
):
    link = resolve_public_link(db, document_type=document_type, document_id=document_id, token=token)
    model = _DOCUMENT_MODELS[document_type]
    document = (
        db.query(model)
        .filter(model.company_id == link.company_id, model.id == link.document_id)
        .first()
    )
    if document is None:
        raise _not_found()
    return document


def get_public_print_bundle(
    db: Session,
    *,
    document_type: DocumentType,
    document_id: Union[int, str, None],
    token: Optional[str],
) -> Dict[str, Any]:
    document = get_public_document(db, document_type=document_type, document_id=document_id, token=token)
    logger.info(
        "Public print served",
        extra={"document_type": document_type.value, "document_id": document.id},
    )
    return _BUNDLE_BUILDERS[document_type](db, document)
