from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query, Response, status
from sqlalchemy.orm import Session

from invoicedb.database import get_db, get_read_db
from invoicedb.permissions import require_permission
from invoicedb.apps.accounts import models as account_models
from invoicedb.apps.audit import schemas as audit_schemas

from . import models, pdf_renderer, public_links, schemas, services
from . import quotations as quotation_services

router = APIRouter(prefix="", tags=["sales"])


def _pdf_response(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )


# ---------------------------------------------------------------------------
# INVOICES
# ---------------------------------------------------------------------------


@router.post("/invoices", response_model=schemas.InvoiceRead, status_code=status.HTTP_201_CREATED)
def create_invoice(
    payload: schemas.InvoiceCreate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ar.invoices")),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    if not payload.idempotency_key and idempotency_key:
        payload.idempotency_key = idempotency_key
    invoice = services.create_invoice(
        db, company_id=current_user.company_id, payload=payload, actor_user_id=current_user.id
    )
    db.commit()
    db.refresh(invoice)
    return invoice


@router.get("/invoices", response_model=List[schemas.InvoiceListItem])
def list_invoices(
    q: Optional[str] = None,
    status_filter: Optional[models.InvoiceStatusEnum] = Query(None, alias="status"),
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    customer_id: Optional[int] = None,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_permission("ar.view")),
):
    return services.list_invoices(
        db,
        company_id=current_user.company_id,
        q=q,
        status_filter=status_filter,
        date_from=date_from,
        date_to=date_to,
        customer_id=customer_id,
    )


@router.get("/customers/{customer_id}/invoices", response_model=List[schemas.InvoiceRead])
def list_customer_invoices(
    customer_id: int,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_permission("ar.view")),
):
    return services.list_invoices_by_customer(db, company_id=current_user.company_id, customer_id=customer_id)


@router.get("/invoices/{invoice_id}", response_model=schemas.InvoiceRead)
def get_invoice(
    invoice_id: int,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_permission("ar.view")),
):
    return services.get_invoice(db, company_id=current_user.company_id, invoice_id=invoice_id)


@router.patch("/invoices/{invoice_id}", response_model=schemas.InvoiceRead)
def update_invoice_header(
    invoice_id: int,
    payload: schemas.InvoiceHeaderUpdate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ar.invoices")),
):
    invoice = services.update_invoice_header(
        db,
        company_id=current_user.company_id,
        invoice_id=invoice_id,
        payload=payload,
        actor_user_id=current_user.id,
    )
    db.commit()
    db.refresh(invoice)
    return invoice


@router.put("/invoices/{invoice_id}/items", response_model=schemas.InvoiceRead)
def replace_invoice_items(
    invoice_id: int,
    payload: schemas.InvoiceItemsReplace,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ar.invoices")),
):
    invoice = services.replace_invoice_items(
        db,
        company_id=current_user.company_id,
        invoice_id=invoice_id,
        items=payload.items,
        actor_user_id=current_user.id,
    )
    db.commit()
    db.refresh(invoice)
    return invoice


@router.post("/invoices/{invoice_id}/discount", response_model=schemas.InvoiceRead)
def apply_invoice_discount(
    invoice_id: int,
    payload: schemas.DiscountRequest,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ar.invoices")),
):
    invoice = services.apply_invoice_discount(
        db,
        company_id=current_user.company_id,
        invoice_id=invoice_id,
        discount_percent=payload.discount_percent,
        actor_user_id=current_user.id,
    )
    db.commit()
    db.refresh(invoice)
    return invoice


@router.post("/invoices/{invoice_id}/recalc", response_model=schemas.InvoiceRead)
def recalc_invoice_totals(
    invoice_id: int,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ar.invoices")),
):
    invoice = services.recalc_invoice_totals(db, company_id=current_user.company_id, invoice_id=invoice_id)
    db.commit()
    db.refresh(invoice)
    return invoice


@router.post("/invoices/{invoice_id}/post", response_model=schemas.InvoiceRead)
def post_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ar.invoices")),
):
    invoice = services.post_invoice_and_deduct_stock(
        db, company_id=current_user.company_id, invoice_id=invoice_id, actor_user_id=current_user.id
    )
    db.commit()
    db.refresh(invoice)
    return invoice


@router.post("/invoices/{invoice_id}/void", response_model=schemas.InvoiceRead)
def void_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ar.invoices")),
):
    invoice = services.void_invoice(
        db, company_id=current_user.company_id, invoice_id=invoice_id, actor_user_id=current_user.id
    )
    db.commit()
    db.refresh(invoice)
    return invoice


@router.get("/invoices/{invoice_id}/payments", response_model=List[schemas.InvoicePaymentRead])
def list_payments(
    invoice_id: int,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_permission("ar.view")),
):
    return services.list_payments(db, company_id=current_user.company_id, invoice_id=invoice_id)


@router.post(
    "/invoices/{invoice_id}/payments",
    response_model=schemas.InvoicePaymentRead,
    status_code=status.HTTP_201_CREATED,
)
def add_payment(
    invoice_id: int,
    payload: schemas.InvoicePaymentCreate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ar.invoices")),
):
    payment = services.add_payment(
        db,
        company_id=current_user.company_id,
        invoice_id=invoice_id,
        payload=payload,
        actor_user_id=current_user.id,
    )
    db.commit()
    db.refresh(payment)
    return payment


@router.delete("/invoice-payments/{payment_id}", response_model=schemas.InvoiceRead)
def delete_payment(
    payment_id: int,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ar.invoices")),
):
    invoice = services.delete_payment(
        db, company_id=current_user.company_id, payment_id=payment_id, actor_user_id=current_user.id
    )
    db.commit()
    db.refresh(invoice)
    return invoice


@router.post("/invoices/{invoice_id}/set-payment", response_model=schemas.InvoiceRead)
def set_invoice_payment(
    invoice_id: int,
    payload: schemas.SetPaymentRequest,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ar.invoices")),
):
    invoice = services.set_invoice_payment(
        db,
        company_id=current_user.company_id,
        invoice_id=invoice_id,
        amount_paid=payload.amount_paid,
        actor_user_id=current_user.id,
    )
    db.commit()
    db.refresh(invoice)
    return invoice


@router.post("/invoices/{invoice_id}/mark-paid", response_model=schemas.InvoiceRead)
def mark_invoice_paid(
    invoice_id: int,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ar.invoices")),
):
    invoice = services.mark_invoice_paid(
        db, company_id=current_user.company_id, invoice_id=invoice_id, actor_user_id=current_user.id
    )
    db.commit()
    db.refresh(invoice)
    return invoice


@router.post("/invoices/{invoice_id}/public-link", response_model=schemas.InvoiceLinkResponse)
def create_invoice_public_link(
    invoice_id: int,
    payload: Optional[schemas.InvoiceLinkRequest] = None,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ar.invoices")),
):
    result = public_links.create_invoice_public_link(
        db,
        company_id=current_user.company_id,
        invoice_id=invoice_id,
        expires_days=payload.expires_days if payload else None,
        actor_user_id=current_user.id,
    )
    db.commit()
    return result


@router.delete("/invoices/{invoice_id}/public-link", status_code=status.HTTP_204_NO_CONTENT)
def revoke_invoice_public_link(
    invoice_id: int,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ar.invoices")),
):
    public_links.revoke_invoice_public_link(
        db, company_id=current_user.company_id, invoice_id=invoice_id, actor_user_id=current_user.id
    )
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/invoices/{invoice_id}/pdf")
def invoice_pdf(
    invoice_id: int,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_permission("ar.view")),
):
    invoice = services.get_invoice(db, company_id=current_user.company_id, invoice_id=invoice_id)
    content = pdf_renderer.render_invoice_pdf(public_links.build_invoice_bundle(db, invoice))
    return _pdf_response(content, pdf_renderer.pdf_filename("Invoice", invoice.id))


# ---------------------------------------------------------------------------
# CREDIT NOTES
# ---------------------------------------------------------------------------


@router.post("/credit-notes", response_model=schemas.CreditNoteRead, status_code=status.HTTP_201_CREATED)
def create_credit_note(
    payload: schemas.CreditNoteCreate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ar.invoices")),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    if not payload.idempotency_key and idempotency_key:
        payload.idempotency_key = idempotency_key
    credit_note = services.create_credit_note(
        db, company_id=current_user.company_id, payload=payload, actor_user_id=current_user.id
    )
    db.commit()
    db.refresh(credit_note)
    return credit_note


@router.get("/credit-notes", response_model=List[schemas.CreditNoteListItem])
def list_credit_notes(
    q: Optional[str] = None,
    status_filter: Optional[models.CreditNoteStatusEnum] = Query(None, alias="status"),
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_permission("ar.view")),
):
    return services.list_credit_notes(db, company_id=current_user.company_id, q=q, status_filter=status_filter)


@router.get("/credit-notes/{credit_note_id}", response_model=schemas.CreditNoteRead)
def get_credit_note(
    credit_note_id: int,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_permission("ar.view")),
):
    return services.get_credit_note(db, company_id=current_user.company_id, credit_note_id=credit_note_id)


@router.post("/credit-notes/{credit_note_id}/void", response_model=schemas.CreditNoteRead)
def void_credit_note(
    credit_note_id: int,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ar.invoices")),
):
    credit_note = services.void_credit_note(
        db, company_id=current_user.company_id, credit_note_id=credit_note_id, actor_user_id=current_user.id
    )
    db.commit()
    db.refresh(credit_note)
    return credit_note


@router.post("/credit-notes/{credit_note_id}/refund", response_model=schemas.CreditNoteRead)
def refund_credit_note(
    credit_note_id: int,
    payload: Optional[schemas.RefundRequest] = None,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ar.invoices")),
):
    credit_note = services.refund_credit_note(
        db,
        company_id=current_user.company_id,
        credit_note_id=credit_note_id,
        note=payload.note if payload else None,
        actor_user_id=current_user.id,
    )
    db.commit()
    db.refresh(credit_note)
    return credit_note


@router.post("/credit-notes/{credit_note_id}/restore", response_model=schemas.CreditNoteRead)
def restore_credit_note(
    credit_note_id: int,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ar.invoices")),
):
    credit_note = services.restore_credit_note(
        db, company_id=current_user.company_id, credit_note_id=credit_note_id, actor_user_id=current_user.id
    )
    db.commit()
    db.refresh(credit_note)
    return credit_note


@router.get("/credit-notes/{credit_note_id}/audit", response_model=List[audit_schemas.AuditEventRead])
def credit_note_audit(
    credit_note_id: int,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_permission("ar.view")),
):
    return services.credit_note_audit(db, company_id=current_user.company_id, credit_note_id=credit_note_id)


@router.post("/credit-notes/{credit_note_id}/public-link", response_model=schemas.ShareLinkResponse)
def create_credit_note_public_link(
    credit_note_id: int,
    payload: Optional[schemas.ShareLinkRequest] = None,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ar.invoices")),
):
    payload = payload or schemas.ShareLinkRequest()
    result = public_links.create_credit_note_public_link(
        db,
        company_id=current_user.company_id,
        credit_note_id=credit_note_id,
        expires_in_days=payload.expires_in_days,
        note=payload.note,
        rotate=payload.rotate,
        actor_user_id=current_user.id,
    )
    db.commit()
    return result


@router.get("/credit-notes/{credit_note_id}/pdf")
def credit_note_pdf(
    credit_note_id: int,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_permission("ar.view")),
):
    credit_note = services.get_credit_note(db, company_id=current_user.company_id, credit_note_id=credit_note_id)
    content = pdf_renderer.render_credit_note_pdf(public_links.build_credit_note_bundle(db, credit_note))
    return _pdf_response(content, pdf_renderer.pdf_filename("CreditNote", credit_note.id))


# ---------------------------------------------------------------------------
# QUOTATIONS
# ---------------------------------------------------------------------------


@router.post("/quotations", response_model=schemas.QuotationRead, status_code=status.HTTP_201_CREATED)
def create_quotation(
    payload: schemas.QuotationCreate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ar.invoices")),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    if not payload.idempotency_key and idempotency_key:
        payload.idempotency_key = idempotency_key
    quotation = quotation_services.create_quotation(
        db, company_id=current_user.company_id, payload=payload, actor_user_id=current_user.id
    )
    db.commit()
    db.refresh(quotation)
    return quotation


@router.get("/quotations", response_model=List[schemas.QuotationRead])
def list_quotations(
    q: Optional[str] = None,
    status_filter: Optional[models.QuotationStatusEnum] = Query(None, alias="status"),
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_permission("ar.view")),
):
    return quotation_services.list_quotations(
        db, company_id=current_user.company_id, q=q, status_filter=status_filter
    )


@router.get("/quotations/{quotation_id}", response_model=schemas.QuotationRead)
def get_quotation(
    quotation_id: int,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_permission("ar.view")),
):
    return quotation_services.get_quotation(db, company_id=current_user.company_id, quotation_id=quotation_id)


@router.patch("/quotations/{quotation_id}/status", response_model=schemas.QuotationRead)
def set_quotation_status(
    quotation_id: int,
    payload: schemas.QuotationStatusUpdate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ar.invoices")),
):
    quotation = quotation_services.set_quotation_status(
        db,
        company_id=current_user.company_id,
        quotation_id=quotation_id,
        new_status=payload.status,
        actor_user_id=current_user.id,
    )
    db.commit()
    db.refresh(quotation)
    return quotation


@router.post("/quotations/{quotation_id}/discount", response_model=schemas.QuotationRead)
def apply_quotation_discount(
    quotation_id: int,
    payload: schemas.DiscountRequest,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ar.invoices")),
):
    quotation = quotation_services.apply_quotation_discount(
        db,
        company_id=current_user.company_id,
        quotation_id=quotation_id,
        discount_percent=payload.discount_percent,
        actor_user_id=current_user.id,
    )
    db.commit()
    db.refresh(quotation)
    return quotation


@router.post("/quotations/{quotation_id}/recalc", response_model=schemas.QuotationRead)
def recalc_quotation_totals(
    quotation_id: int,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ar.invoices")),
):
    quotation = quotation_services.recalc_quotation_totals(
        db, company_id=current_user.company_id, quotation_id=quotation_id
    )
    db.commit()
    db.refresh(quotation)
    return quotation


@router.post("/quotations/{quotation_id}/convert", response_model=schemas.QuotationConvertResult)
def convert_quotation(
    quotation_id: int,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ar.invoices")),
):
    result = quotation_services.convert_quotation_to_invoice(
        db, company_id=current_user.company_id, quotation_id=quotation_id, actor_user_id=current_user.id
    )
    db.commit()
    return result


@router.post("/quotations/{quotation_id}/share", response_model=schemas.ShareLinkResponse)
def share_quotation(
    quotation_id: int,
    payload: Optional[schemas.ShareLinkRequest] = None,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ar.invoices")),
):
    payload = payload or schemas.ShareLinkRequest()
    result = public_links.create_quotation_share_link(
        db,
        company_id=current_user.company_id,
        quotation_id=quotation_id,
        expires_in_days=payload.expires_in_days,
        note=payload.note,
        rotate=payload.rotate,
        actor_user_id=current_user.id,
    )
    db.commit()
    return result


@router.get("/quotations/{quotation_id}/pdf")
def quotation_pdf(
    quotation_id: int,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_permission("ar.view")),
):
    quotation = quotation_services.get_quotation(db, company_id=current_user.company_id, quotation_id=quotation_id)
    content = pdf_renderer.render_quotation_pdf(public_links.build_quotation_bundle(db, quotation))
    return _pdf_response(content, pdf_renderer.pdf_filename("Quotation", quotation.id))
