from __future__ import annotations

from collections import OrderedDict
from datetime import date, datetime, time
from decimal import Decimal
import logging
from typing import Dict, Iterable, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import String, cast, func, or_
from sqlalchemy.orm import Session

from invoicedb.apps.accounts import services as accounts_services
from invoicedb.apps.audit import services as audit_services
from invoicedb.apps.inventory import models as inventory_models
from invoicedb.apps.inventory import services as inventory_services
from invoicedb.apps.inventory import uom as uom_utils
from invoicedb.apps.parties import models as party_models
from invoicedb.apps.parties import services as party_services
from invoicedb.utils.decimals import ZERO, round2, to_decimal

from . import models, pricing, schemas
from .numbering import next_document_number

logger = logging.getLogger(__name__)

EPS = Decimal("0.00001")

InvoiceStatus = models.InvoiceStatusEnum
CreditNoteStatus = models.CreditNoteStatusEnum
MovementType = inventory_models.StockMovementTypeEnum

INVOICE_SOURCE = "invoices"
CREDIT_NOTE_SOURCE = "credit_notes"


def _like(q: str) -> str:
    return f"%{q.strip()}%"


def _as_datetime(value: Optional[date]) -> datetime:
    if value is None:
        return datetime.utcnow()
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time())


def _product_or_none(db: Session, *, company_id: str, product_id: Optional[int]):
    if not product_id:
        return None
    return inventory_services.get_product(db, company_id=company_id, product_id=product_id)


def _audit(
    db: Session,
    *,
    company_id: str,
    entity_type: str,
    entity_id,
    action: str,
    actor_user_id: Optional[str],
    after: Optional[dict] = None,
    before: Optional[dict] = None,
    reference: Optional[str] = None,
    amount=None,
    critical: bool = False,
) -> None:
    audit_services.log_event(
        db,
        company_id=company_id,
        actor_user_id=actor_user_id,
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        reference=reference,
        amount=amount,
        before=before,
        after=after,
        critical=critical,
    )


def _merge_rows(rows: Iterable[Dict]) -> List[Dict]:
    """Sum quantities per (product, movement type); one ledger row each."""
    merged: "OrderedDict[tuple, Dict]" = OrderedDict()
    for row in rows:
        key = (row["product_id"], row["movement_type"])
        if key in merged:
            merged[key]["quantity"] += row["quantity"]
        else:
            merged[key] = dict(row)
    return list(merged.values())


# ---------------------------------------------------------------------------
# INVOICES
# ---------------------------------------------------------------------------


def get_invoice(db: Session, *, company_id: str, invoice_id: int) -> models.Invoice:
    invoice = (
        db.query(models.Invoice)
        .filter(models.Invoice.company_id == company_id, models.Invoice.id == invoice_id)
        .first()
    )
    if not invoice:
        raise HTTPException(status_code=404, detail="Invoice not found.")
    return invoice


def _build_invoice_items(
    db: Session,
    *,
    company_id: str,
    items: Iterable[schemas.InvoiceItemIn],
    vat_percent: Decimal,
) -> List[models.InvoiceItem]:
    built: List[models.InvoiceItem] = []
    for item in items:
        product = _product_or_none(db, company_id=company_id, product_id=item.product_id)

        price = item.unit_price_excl_vat
        if price is None:
            price = product.selling_price if product is not None else ZERO
        upb = item.units_per_box
        if upb is None:
            upb = product.units_per_box if product is not None else 1
        rate = pricing.clamp_pct(item.vat_rate) if item.vat_rate is not None else vat_percent

        line = pricing.calc_line(
            uom=item.uom,
            box_qty=item.box_qty,
            pcs_qty=item.pcs_qty,
            units_per_box=upb,
            selling_price_excl_vat=price,
            vat_rate=rate,
        )
        built.append(
            models.InvoiceItem(
                product_id=product.id if product is not None else None,
                description=item.description or (product.name if product is not None else None),
                uom=line.uom,
                box_qty=line.box_qty,
                pcs_qty=line.pcs_qty,
                units_per_box=line.units_per_box,
                total_qty=line.total_qty,
                vat_rate=line.vat_rate,
                unit_price_excl_vat=line.unit_price_excl_vat,
                unit_vat=line.unit_vat,
                unit_price_incl_vat=line.unit_price_incl_vat,
                line_total=line.line_total,
            )
        )
    return built


def _apply_invoice_totals(invoice: models.Invoice) -> None:
    totals = pricing.invoice_totals(
        invoice.items,
        discount_percent=invoice.discount_percent,
        vat_percent=invoice.vat_percent,
        previous_balance=invoice.previous_balance,
        amount_paid=invoice.amount_paid,
        credits_applied=invoice.credits_applied,
    )
    invoice.discount_percent = totals.discount_percent
    invoice.discount_amount = totals.discount_amount
    invoice.subtotal = totals.subtotal
    invoice.vat_amount = totals.vat_amount
    invoice.total_amount = totals.total_amount
    invoice.gross_total = totals.gross_total
    invoice.balance_remaining = totals.balance
    invoice.balance_due = totals.balance


def _payments_total(db: Session, *, invoice_id: int) -> Decimal:
    value = (
        db.query(func.coalesce(func.sum(models.InvoicePayment.amount), 0))
        .filter(models.InvoicePayment.invoice_id == invoice_id)
        .scalar()
    )
    return round2(value)


def _credits_total(db: Session, *, company_id: str, invoice_id: int) -> Decimal:
    value = (
        db.query(func.coalesce(func.sum(models.CreditNote.total_amount), 0))
        .filter(
            models.CreditNote.company_id == company_id,
            models.CreditNote.invoice_id == invoice_id,
            models.CreditNote.status == CreditNoteStatus.ISSUED,
        )
        .scalar()
    )
    return round2(value)


def _sync_invoice(db: Session, invoice: models.Invoice) -> models.Invoice:
    """Re-derive paid, credits, totals and status from the stored rows."""
    db.flush()
    paid = _payments_total(db, invoice_id=invoice.id)
    credits = _credits_total(db, company_id=invoice.company_id, invoice_id=invoice.id)
    invoice.amount_paid = paid
    invoice.credits_applied = credits
    _apply_invoice_totals(invoice)
    if invoice.status != InvoiceStatus.VOID:
        invoice.status = pricing.compute_invoice_status(invoice.status, invoice.gross_total, paid + credits)
    db.add(invoice)
    db.flush()
    return invoice


def sync_invoice_credits(db: Session, *, company_id: str, invoice_id: int) -> models.Invoice:
    invoice = get_invoice(db, company_id=company_id, invoice_id=invoice_id)
    return _sync_invoice(db, invoice)


def create_invoice(
    db: Session,
    *,
    company_id: str,
    payload: schemas.InvoiceCreate,
    actor_user_id: Optional[str],
) -> models.Invoice:
    accounts_services.claim_idempotency_key(
        db,
        company_id=company_id,
        scope="invoices.create",
        key=payload.idempotency_key,
        payload=payload.model_dump(mode="json", exclude={"idempotency_key"}),
    )
    if payload.idempotency_key:
        existing = (
            db.query(models.Invoice)
            .filter(
                models.Invoice.company_id == company_id,
                models.Invoice.idempotency_key == payload.idempotency_key,
            )
            .first()
        )
        if existing:
            return existing

    customer = party_services.get_customer(db, company_id=company_id, customer_id=payload.customer_id)
    vat_percent = (
        pricing.clamp_pct(payload.vat_percent) if payload.vat_percent is not None else pricing.DEFAULT_VAT_PERCENT
    )

    invoice = models.Invoice(
        company_id=company_id,
        invoice_number=next_document_number(
            db,
            company_id=company_id,
            document_type=models.DocumentTypeEnum.INVOICE,
            on_date=payload.invoice_date,
        ),
        customer_id=customer.id,
        idempotency_key=payload.idempotency_key,
        invoice_date=payload.invoice_date,
        due_date=payload.due_date,
        purchase_order_no=payload.purchase_order_no,
        sales_rep=payload.sales_rep,
        sales_rep_phone=payload.sales_rep_phone,
        notes=payload.notes,
        vat_percent=vat_percent,
        discount_percent=pricing.clamp_pct(payload.discount_percent),
        previous_balance=round2(payload.previous_balance),
        amount_paid=ZERO,
        credits_applied=ZERO,
        status=InvoiceStatus.DRAFT,
        created_by_user_id=actor_user_id,
    )
    invoice.items = _build_invoice_items(db, company_id=company_id, items=payload.items, vat_percent=vat_percent)
    _apply_invoice_totals(invoice)
    db.add(invoice)
    db.flush()

    _audit(
        db,
        company_id=company_id,
        entity_type="Invoice",
        entity_id=invoice.id,
        reference=invoice.invoice_number,
        action="create",
        actor_user_id=actor_user_id,
        after={"invoice_number": invoice.invoice_number, "gross_total": str(invoice.gross_total)},
    )
    return invoice


def update_invoice_header(
    db: Session,
    *,
    company_id: str,
    invoice_id: int,
    payload: schemas.InvoiceHeaderUpdate,
    actor_user_id: Optional[str],
) -> models.Invoice:
    invoice = get_invoice(db, company_id=company_id, invoice_id=invoice_id)
    if invoice.status not in (InvoiceStatus.DRAFT, InvoiceStatus.ISSUED):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Invoice can only be edited while DRAFT or ISSUED.",
        )

    changes = payload.model_dump(exclude_unset=True)
    if "vat_percent" in changes and changes["vat_percent"] is not None:
        changes["vat_percent"] = pricing.clamp_pct(changes["vat_percent"])
    if "previous_balance" in changes:
        changes["previous_balance"] = round2(changes["previous_balance"])
    for field, value in changes.items():
        if field == "invoice_date" and value is None:
            continue
        setattr(invoice, field, value)

    _sync_invoice(db, invoice)
    _audit(
        db,
        company_id=company_id,
        entity_type="Invoice",
        entity_id=invoice.id,
        reference=invoice.invoice_number,
        action="update",
        actor_user_id=actor_user_id,
        after={k: str(v) for k, v in changes.items()},
    )
    return invoice


def replace_invoice_items(
    db: Session,
    *,
    company_id: str,
    invoice_id: int,
    items: List[schemas.InvoiceItemIn],
    actor_user_id: Optional[str],
) -> models.Invoice:
    invoice = get_invoice(db, company_id=company_id, invoice_id=invoice_id)
    if invoice.status != InvoiceStatus.DRAFT:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Invoice items can only be changed while DRAFT.",
        )

    invoice.items = _build_invoice_items(
        db, company_id=company_id, items=items, vat_percent=to_decimal(invoice.vat_percent)
    )
    _sync_invoice(db, invoice)
    _audit(
        db,
        company_id=company_id,
        entity_type="Invoice",
        entity_id=invoice.id,
        reference=invoice.invoice_number,
        action="items.replace",
        actor_user_id=actor_user_id,
        after={"items": len(invoice.items), "total_amount": str(invoice.total_amount)},
    )
    return invoice


def apply_invoice_discount(
    db: Session,
    *,
    company_id: str,
    invoice_id: int,
    discount_percent: Decimal,
    actor_user_id: Optional[str],
) -> models.Invoice:
    invoice = get_invoice(db, company_id=company_id, invoice_id=invoice_id)
    if invoice.status == InvoiceStatus.VOID:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Invoice is void.")
    before = {"discount_percent": str(invoice.discount_percent)}
    invoice.discount_percent = pricing.clamp_pct(discount_percent)
    _sync_invoice(db, invoice)
    _audit(
        db,
        company_id=company_id,
        entity_type="Invoice",
        entity_id=invoice.id,
        reference=invoice.invoice_number,
        action="discount",
        actor_user_id=actor_user_id,
        before=before,
        after={"discount_percent": str(invoice.discount_percent), "discount_amount": str(invoice.discount_amount)},
    )
    return invoice


def recalc_invoice_totals(db: Session, *, company_id: str, invoice_id: int) -> models.Invoice:
    invoice = get_invoice(db, company_id=company_id, invoice_id=invoice_id)
    return _sync_invoice(db, invoice)


def _invoice_list_item(invoice: models.Invoice) -> schemas.InvoiceListItem:
    customer = invoice.customer
    return schemas.InvoiceListItem(
        id=invoice.id,
        invoice_number=invoice.invoice_number,
        invoice_date=invoice.invoice_date,
        customer_id=invoice.customer_id,
        customer_name=customer.name if customer else None,
        customer_code=customer.customer_code if customer else None,
        sales_rep=invoice.sales_rep,
        gross_total=invoice.gross_total,
        amount_paid=invoice.amount_paid,
        credits_applied=invoice.credits_applied,
        balance_remaining=invoice.balance_remaining,
        status=invoice.status,
    )


def list_invoices(
    db: Session,
    *,
    company_id: str,
    q: Optional[str] = None,
    status_filter: Optional[InvoiceStatus] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    customer_id: Optional[int] = None,
    limit: int = 500,
) -> List[schemas.InvoiceListItem]:
    query = (
        db.query(models.Invoice)
        .outerjoin(party_models.Customer, party_models.Customer.id == models.Invoice.customer_id)
        .filter(models.Invoice.company_id == company_id)
    )
    if status_filter is not None:
        query = query.filter(models.Invoice.status == status_filter)
    if date_from:
        query = query.filter(models.Invoice.invoice_date >= date_from)
    if date_to:
        query = query.filter(models.Invoice.invoice_date <= date_to)
    if customer_id:
        query = query.filter(models.Invoice.customer_id == customer_id)
    if q and q.strip():
        like = _like(q)
        query = query.filter(
            or_(
                models.Invoice.invoice_number.ilike(like),
                models.Invoice.sales_rep.ilike(like),
                party_models.Customer.name.ilike(like),
                party_models.Customer.customer_code.ilike(like),
            )
        )
    rows = query.order_by(models.Invoice.invoice_date.desc(), models.Invoice.id.desc()).limit(limit).all()
    return [_invoice_list_item(inv) for inv in rows]


def list_invoices_by_customer(db: Session, *, company_id: str, customer_id: int) -> List[models.Invoice]:
    return (
        db.query(models.Invoice)
        .filter(
            models.Invoice.company_id == company_id,
            models.Invoice.customer_id == customer_id,
            models.Invoice.status != InvoiceStatus.VOID,
        )
        .order_by(models.Invoice.invoice_date.desc(), models.Invoice.id.desc())
        .all()
    )


def post_invoice_and_deduct_stock(
    db: Session,
    *,
    company_id: str,
    invoice_id: int,
    actor_user_id: Optional[str],
) -> models.Invoice:
    """
    Issue an invoice and take its items out of stock.

    Runs at most once per invoice: a set `stock_deducted_at` short-circuits,
    and movements left by an earlier partial run are only stamped.
    """
    invoice = get_invoice(db, company_id=company_id, invoice_id=invoice_id)
    if invoice.status == InvoiceStatus.VOID:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Cannot post a void invoice.")
    if invoice.stock_deducted_at is not None:
        return invoice

    if inventory_services.has_document_movements(
        db,
        company_id=company_id,
        source_table=INVOICE_SOURCE,
        source_id=invoice.id,
        movement_type=MovementType.OUT,
    ):
        invoice.stock_deducted_at = datetime.utcnow()
        db.add(invoice)
        db.flush()
        return invoice

    if not invoice.items:
        raise HTTPException(status_code=400, detail="Cannot post invoice without items.")

    rows = []
    for item in invoice.items:
        if not item.product_id or item.product is None:
            continue
        qty = uom_utils.product_base_quantity(item.product, item)
        if qty <= ZERO:
            continue
        rows.append(
            {
                "product_id": item.product_id,
                "movement_type": MovementType.OUT,
                "quantity": qty,
                "movement_date": _as_datetime(invoice.invoice_date),
                "reference": invoice.invoice_number,
                "notes": f"Auto from invoice {invoice.invoice_number}",
            }
        )

    inserted = inventory_services.apply_document_movements(
        db,
        company_id=company_id,
        source_table=INVOICE_SOURCE,
        source_id=invoice.id,
        rows=_merge_rows(rows),
        actor_user_id=actor_user_id,
    )

    if invoice.status == InvoiceStatus.DRAFT:
        invoice.status = InvoiceStatus.ISSUED
    invoice.stock_deducted_at = datetime.utcnow()
    _sync_invoice(db, invoice)
    _audit(
        db,
        company_id=company_id,
        entity_type="Invoice",
        entity_id=invoice.id,
        reference=invoice.invoice_number,
        action="post",
        amount=invoice.gross_total,
        actor_user_id=actor_user_id,
        after={"status": invoice.status.value, "movements": inserted},
        critical=True,
    )
    logger.info(
        "Invoice posted",
        extra={"company_id": company_id, "invoice_id": invoice.id, "movements": inserted},
    )
    return invoice


def void_invoice(
    db: Session,
    *,
    company_id: str,
    invoice_id: int,
    actor_user_id: Optional[str],
) -> models.Invoice:
    invoice = get_invoice(db, company_id=company_id, invoice_id=invoice_id)
    if invoice.status == InvoiceStatus.VOID:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Invoice is already void.")

    before = {"status": invoice.status.value}
    reversed_count = 0
    if invoice.stock_deducted_at is not None:
        deducted = (
            db.query(inventory_models.StockMovement)
            .filter(
                inventory_models.StockMovement.company_id == company_id,
                inventory_models.StockMovement.source_table == INVOICE_SOURCE,
                inventory_models.StockMovement.source_id == invoice.id,
                inventory_models.StockMovement.movement_type == MovementType.OUT,
            )
            .all()
        )
        rows = [
            {
                "product_id": m.product_id,
                "movement_type": MovementType.IN,
                "quantity": to_decimal(m.quantity),
                "reference": f"VOID:{invoice.invoice_number}",
                "notes": f"Reversal of void invoice {invoice.invoice_number}",
            }
            for m in deducted
        ]
        reversed_count = inventory_services.apply_document_movements(
            db,
            company_id=company_id,
            source_table=INVOICE_SOURCE,
            source_id=invoice.id,
            rows=_merge_rows(rows),
            actor_user_id=actor_user_id,
        )

    invoice.status = InvoiceStatus.VOID
    invoice.voided_at = datetime.utcnow()
    _sync_invoice(db, invoice)
    _audit(
        db,
        company_id=company_id,
        entity_type="Invoice",
        entity_id=invoice.id,
        reference=invoice.invoice_number,
        action="void",
        actor_user_id=actor_user_id,
        before=before,
        after={"status": invoice.status.value, "stock_reversed": reversed_count},
        critical=True,
    )
    return invoice


# ---------------------------------------------------------------------------
# PAYMENTS
# ---------------------------------------------------------------------------


def list_payments(db: Session, *, company_id: str, invoice_id: int) -> List[models.InvoicePayment]:
    get_invoice(db, company_id=company_id, invoice_id=invoice_id)
    return (
        db.query(models.InvoicePayment)
        .filter(
            models.InvoicePayment.company_id == company_id,
            models.InvoicePayment.invoice_id == invoice_id,
        )
        .order_by(models.InvoicePayment.payment_date.desc(), models.InvoicePayment.id.desc())
        .all()
    )


def add_payment(
    db: Session,
    *,
    company_id: str,
    invoice_id: int,
    payload: schemas.InvoicePaymentCreate,
    actor_user_id: Optional[str],
) -> models.InvoicePayment:
    invoice = get_invoice(db, company_id=company_id, invoice_id=invoice_id)
    if invoice.status == InvoiceStatus.VOID:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Cannot add payment to a void invoice.")
    amount = round2(payload.amount)
    if amount <= ZERO:
        raise HTTPException(status_code=400, detail="Payment amount must be greater than zero.")

    payment = models.InvoicePayment(
        company_id=company_id,
        invoice_id=invoice.id,
        payment_date=payload.payment_date or date.today(),
        amount=amount,
        method=payload.method or "Cash",
        reference=payload.reference,
        notes=payload.notes,
        is_auto=False,
        created_by_user_id=actor_user_id,
    )
    db.add(payment)
    db.flush()
    _sync_invoice(db, invoice)
    _audit(
        db,
        company_id=company_id,
        entity_type="Invoice",
        entity_id=invoice.id,
        reference=invoice.invoice_number,
        action="payment.add",
        amount=amount,
        actor_user_id=actor_user_id,
        after={"payment_id": payment.id, "amount": str(amount), "status": invoice.status.value},
    )
    return payment


def delete_payment(
    db: Session,
    *,
    company_id: str,
    payment_id: int,
    actor_user_id: Optional[str],
) -> models.Invoice:
    payment = (
        db.query(models.InvoicePayment)
        .filter(
            models.InvoicePayment.company_id == company_id,
            models.InvoicePayment.id == payment_id,
        )
        .first()
    )
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found.")

    invoice = get_invoice(db, company_id=company_id, invoice_id=payment.invoice_id)
    amount = str(payment.amount)
    if payment in invoice.payments:
        invoice.payments.remove(payment)
    db.delete(payment)
    _sync_invoice(db, invoice)
    _audit(
        db,
        company_id=company_id,
        entity_type="Invoice",
        entity_id=invoice.id,
        reference=invoice.invoice_number,
        action="payment.delete",
        amount=-to_decimal(amount),
        actor_user_id=actor_user_id,
        after={"payment_id": payment_id, "amount": amount, "status": invoice.status.value},
    )
    return invoice


def _insert_auto_payment(
    db: Session,
    invoice: models.Invoice,
    *,
    target: Decimal,
    method: str,
    reference: str,
    notes: str,
    actor_user_id: Optional[str],
) -> Optional[models.InvoicePayment]:
    delta = round2(target - _payments_total(db, invoice_id=invoice.id))
    if delta <= EPS:
        return None
    payment = models.InvoicePayment(
        company_id=invoice.company_id,
        invoice_id=invoice.id,
        payment_date=date.today(),
        amount=delta,
        method=method,
        reference=reference,
        notes=notes,
        is_auto=True,
        created_by_user_id=actor_user_id,
    )
    db.add(payment)
    db.flush()
    return payment


def set_invoice_payment(
    db: Session,
    *,
    company_id: str,
    invoice_id: int,
    amount_paid: Decimal,
    actor_user_id: Optional[str],
) -> models.Invoice:
    """
    Force the paid amount and derive the status from the balance. The ledger
    is topped up with an auto payment row so Σ payments matches.
    """
    invoice = get_invoice(db, company_id=company_id, invoice_id=invoice_id)
    if invoice.status == InvoiceStatus.VOID:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Invoice is void.")

    paid = round2(max(ZERO, to_decimal(amount_paid)))
    credits = _credits_total(db, company_id=company_id, invoice_id=invoice.id)
    gross = to_decimal(invoice.gross_total)
    balance = gross - paid - credits

    if balance <= EPS:
        new_status = InvoiceStatus.PAID
    elif paid > EPS or credits > EPS:
        new_status = InvoiceStatus.PARTIALLY_PAID
    else:
        new_status = InvoiceStatus.ISSUED

    invoice.amount_paid = paid
    invoice.credits_applied = credits
    invoice.balance_remaining = round2(max(ZERO, balance))
    invoice.balance_due = invoice.balance_remaining
    invoice.status = new_status
    db.add(invoice)

    if new_status == InvoiceStatus.PAID:
        _insert_auto_payment(
            db,
            invoice,
            target=max(ZERO, gross - credits),
            method="Auto Adjustment",
            reference="AUTO-PAID",
            notes="Auto payment inserted when invoice set to PAID",
            actor_user_id=actor_user_id,
        )
    elif new_status == InvoiceStatus.PARTIALLY_PAID:
        _insert_auto_payment(
            db,
            invoice,
            target=paid,
            method="Auto Partial",
            reference="AUTO-PARTIAL",
            notes="Auto payment inserted when invoice set to PARTIALLY_PAID",
            actor_user_id=actor_user_id,
        )

    db.flush()
    _audit(
        db,
        company_id=company_id,
        entity_type="Invoice",
        entity_id=invoice.id,
        reference=invoice.invoice_number,
        action="payment.set",
        actor_user_id=actor_user_id,
        after={"amount_paid": str(paid), "status": new_status.value},
    )
    return invoice


def mark_invoice_paid(
    db: Session,
    *,
    company_id: str,
    invoice_id: int,
    actor_user_id: Optional[str],
) -> models.Invoice:
    invoice = get_invoice(db, company_id=company_id, invoice_id=invoice_id)
    if invoice.status == InvoiceStatus.VOID:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Invoice is void.")

    credits = _credits_total(db, company_id=company_id, invoice_id=invoice.id)
    target = round2(max(ZERO, to_decimal(invoice.gross_total) - credits))

    invoice.amount_paid = target
    invoice.credits_applied = credits
    invoice.balance_remaining = round2(ZERO)
    invoice.balance_due = invoice.balance_remaining
    invoice.status = InvoiceStatus.PAID
    db.add(invoice)

    _insert_auto_payment(
        db,
        invoice,
        target=target,
        method="Auto Adjustment",
        reference="AUTO-PAID",
        notes="Auto payment inserted when invoice set to PAID",
        actor_user_id=actor_user_id,
    )
    db.flush()
    _audit(
        db,
        company_id=company_id,
        entity_type="Invoice",
        entity_id=invoice.id,
        reference=invoice.invoice_number,
        action="mark_paid",
        actor_user_id=actor_user_id,
        after={"amount_paid": str(target)},
    )
    return invoice


# ---------------------------------------------------------------------------
# CREDIT NOTES
# ---------------------------------------------------------------------------


def get_credit_note(db: Session, *, company_id: str, credit_note_id: int) -> models.CreditNote:
    credit_note = (
        db.query(models.CreditNote)
        .filter(models.CreditNote.company_id == company_id, models.CreditNote.id == credit_note_id)
        .first()
    )
    if not credit_note:
        raise HTTPException(status_code=404, detail="Credit note not found.")
    return credit_note


def _credit_note_stock_in(
    db: Session,
    credit_note: models.CreditNote,
    *,
    actor_user_id: Optional[str],
) -> int:
    rows = []
    for item in credit_note.items:
        if not item.product_id or item.product is None:
            continue
        qty = uom_utils.total_qty_to_base(item.product.stock_unit, item.total_qty)
        if qty <= ZERO:
            continue
        rows.append(
            {
                "product_id": item.product_id,
                "movement_type": MovementType.IN,
                "quantity": qty,
                "movement_date": _as_datetime(credit_note.credit_note_date),
                "reference": f"ISSUE:{credit_note.id}",
                "notes": "Credit note issued (stock return)",
            }
        )
    return inventory_services.apply_document_movements(
        db,
        company_id=credit_note.company_id,
        source_table=CREDIT_NOTE_SOURCE,
        source_id=credit_note.id,
        rows=_merge_rows(rows),
        actor_user_id=actor_user_id,
    )


def _credit_note_stock_reversal(
    db: Session,
    credit_note: models.CreditNote,
    *,
    mode: str,
    actor_user_id: Optional[str],
) -> int:
    returned = (
        db.query(inventory_models.StockMovement)
        .filter(
            inventory_models.StockMovement.company_id == credit_note.company_id,
            inventory_models.StockMovement.source_table == CREDIT_NOTE_SOURCE,
            inventory_models.StockMovement.source_id == credit_note.id,
            inventory_models.StockMovement.movement_type == MovementType.IN,
        )
        .all()
    )
    rows = [
        {
            "product_id": m.product_id,
            "movement_type": MovementType.OUT,
            "quantity": to_decimal(m.quantity),
            "reference": f"{mode}:{credit_note.id}",
            "notes": f"Credit note {mode.lower()} (reversing stock return)",
        }
        for m in returned
    ]
    return inventory_services.apply_document_movements(
        db,
        company_id=credit_note.company_id,
        source_table=CREDIT_NOTE_SOURCE,
        source_id=credit_note.id,
        rows=_merge_rows(rows),
        actor_user_id=actor_user_id,
    )


def _resync_linked_invoice(db: Session, credit_note: models.CreditNote) -> None:
    if credit_note.invoice_id:
        sync_invoice_credits(db, company_id=credit_note.company_id, invoice_id=credit_note.invoice_id)


def create_credit_note(
    db: Session,
    *,
    company_id: str,
    payload: schemas.CreditNoteCreate,
    actor_user_id: Optional[str],
) -> models.CreditNote:
    accounts_services.claim_idempotency_key(
        db,
        company_id=company_id,
        scope="credit_notes.create",
        key=payload.idempotency_key,
        payload=payload.model_dump(mode="json", exclude={"idempotency_key"}),
    )
    if payload.idempotency_key:
        existing = (
            db.query(models.CreditNote)
            .filter(
                models.CreditNote.company_id == company_id,
                models.CreditNote.idempotency_key == payload.idempotency_key,
            )
            .first()
        )
        if existing:
            return existing

    if payload.status not in (CreditNoteStatus.ISSUED, CreditNoteStatus.PENDING):
        raise HTTPException(status_code=400, detail="A new credit note must be ISSUED or PENDING.")
    if not payload.items:
        raise HTTPException(status_code=400, detail="Credit note must have at least one item.")

    customer = party_services.get_customer(db, company_id=company_id, customer_id=payload.customer_id)
    if payload.invoice_id:
        invoice = get_invoice(db, company_id=company_id, invoice_id=payload.invoice_id)
        if invoice.customer_id != customer.id:
            raise HTTPException(status_code=400, detail="Invoice belongs to a different customer.")

    note_date = payload.credit_note_date or date.today()
    credit_note = models.CreditNote(
        company_id=company_id,
        credit_note_number=next_document_number(
            db,
            company_id=company_id,
            document_type=models.DocumentTypeEnum.CREDIT_NOTE,
            on_date=note_date,
        ),
        credit_note_date=note_date,
        customer_id=customer.id,
        invoice_id=payload.invoice_id,
        idempotency_key=payload.idempotency_key,
        reason=payload.reason,
        status=payload.status,
        created_by_user_id=actor_user_id,
    )

    subtotal = ZERO
    vat = ZERO
    total = ZERO
    for item in payload.items:
        product = _product_or_none(db, company_id=company_id, product_id=item.product_id)
        price = item.unit_price_excl_vat
        if price is None:
            price = product.selling_price if product is not None else ZERO
        line = pricing.credit_note_line(item.total_qty, price, item.vat_rate)
        credit_note.items.append(
            models.CreditNoteItem(
                product_id=product.id if product is not None else None,
                description=item.description or (product.name if product is not None else None),
                total_qty=line.total_qty,
                vat_rate=line.vat_rate,
                unit_price_excl_vat=line.unit_price_excl_vat,
                unit_vat=line.unit_vat,
                unit_price_incl_vat=line.unit_price_incl_vat,
                line_total=line.line_total,
            )
        )
        subtotal += line.total_qty * line.unit_price_excl_vat
        vat += line.total_qty * line.unit_vat
        total += line.line_total

    credit_note.subtotal = round2(subtotal)
    credit_note.vat_amount = round2(vat)
    credit_note.total_amount = round2(total)
    db.add(credit_note)
    db.flush()

    movements = 0
    if credit_note.status == CreditNoteStatus.ISSUED:
        movements = _credit_note_stock_in(db, credit_note, actor_user_id=actor_user_id)
    _resync_linked_invoice(db, credit_note)

    _audit(
        db,
        company_id=company_id,
        entity_type="CreditNote",
        entity_id=credit_note.id,
        reference=credit_note.credit_note_number,
        action="create",
        amount=credit_note.total_amount,
        actor_user_id=actor_user_id,
        after={
            "credit_note_number": credit_note.credit_note_number,
            "status": credit_note.status.value,
            "total_amount": str(credit_note.total_amount),
            "movements": movements,
        },
    )
    return credit_note


def _credit_note_list_item(cn: models.CreditNote) -> schemas.CreditNoteListItem:
    customer = cn.customer
    return schemas.CreditNoteListItem(
        id=cn.id,
        credit_note_number=cn.credit_note_number,
        credit_note_date=cn.credit_note_date,
        total_amount=cn.total_amount,
        status=cn.status,
        customer_name=customer.name if customer else None,
        customer_code=customer.customer_code if customer else None,
    )


def list_credit_notes(
    db: Session,
    *,
    company_id: str,
    q: Optional[str] = None,
    status_filter: Optional[CreditNoteStatus] = None,
    limit: int = 500,
) -> List[schemas.CreditNoteListItem]:
    query = (
        db.query(models.CreditNote)
        .outerjoin(party_models.Customer, party_models.Customer.id == models.CreditNote.customer_id)
        .filter(models.CreditNote.company_id == company_id)
    )
    if status_filter is not None:
        query = query.filter(models.CreditNote.status == status_filter)
    if q and q.strip():
        like = _like(q)
        query = query.filter(
            or_(
                models.CreditNote.credit_note_number.ilike(like),
                cast(models.CreditNote.credit_note_date, String).ilike(like),
                cast(models.CreditNote.status, String).ilike(like),
                party_models.Customer.name.ilike(like),
                party_models.Customer.customer_code.ilike(like),
            )
        )
    rows = query.order_by(models.CreditNote.id.desc()).limit(limit).all()
    return [_credit_note_list_item(cn) for cn in rows]


def void_credit_note(
    db: Session,
    *,
    company_id: str,
    credit_note_id: int,
    actor_user_id: Optional[str],
) -> models.CreditNote:
    credit_note = get_credit_note(db, company_id=company_id, credit_note_id=credit_note_id)
    if credit_note.status == CreditNoteStatus.VOID:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Credit note is already void.")

    before = {"status": credit_note.status.value}
    reversed_count = _credit_note_stock_reversal(db, credit_note, mode="VOID", actor_user_id=actor_user_id)
    credit_note.status = CreditNoteStatus.VOID
    db.add(credit_note)
    db.flush()
    _resync_linked_invoice(db, credit_note)
    _audit(
        db,
        company_id=company_id,
        entity_type="CreditNote",
        entity_id=credit_note.id,
        reference=credit_note.credit_note_number,
        action="void",
        actor_user_id=actor_user_id,
        before=before,
        after={"status": credit_note.status.value, "stock_reversed": reversed_count},
        critical=True,
    )
    return credit_note


def refund_credit_note(
    db: Session,
    *,
    company_id: str,
    credit_note_id: int,
    note: Optional[str],
    actor_user_id: Optional[str],
) -> models.CreditNote:
    credit_note = get_credit_note(db, company_id=company_id, credit_note_id=credit_note_id)
    if credit_note.status == CreditNoteStatus.VOID:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A void credit note cannot be refunded.")
    if credit_note.status == CreditNoteStatus.REFUNDED:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Credit note is already refunded.")

    before = {"status": credit_note.status.value}
    reversed_count = _credit_note_stock_reversal(db, credit_note, mode="REFUND", actor_user_id=actor_user_id)
    credit_note.status = CreditNoteStatus.REFUNDED
    credit_note.refund_note = note
    db.add(credit_note)
    db.flush()
    _resync_linked_invoice(db, credit_note)
    _audit(
        db,
        company_id=company_id,
        entity_type="CreditNote",
        entity_id=credit_note.id,
        reference=credit_note.credit_note_number,
        action="refund",
        actor_user_id=actor_user_id,
        before=before,
        after={"status": credit_note.status.value, "note": note, "stock_reversed": reversed_count},
        critical=True,
    )
    return credit_note


def restore_credit_note(
    db: Session,
    *,
    company_id: str,
    credit_note_id: int,
    actor_user_id: Optional[str],
) -> models.CreditNote:
    """Back to ISSUED: drop the reversal rows and make sure the return is booked."""
    credit_note = get_credit_note(db, company_id=company_id, credit_note_id=credit_note_id)
    if credit_note.status == CreditNoteStatus.ISSUED:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Credit note is already issued.")

    before = {"status": credit_note.status.value}
    removed = inventory_services.delete_document_movements(
        db,
        company_id=company_id,
        source_table=CREDIT_NOTE_SOURCE,
        source_id=credit_note.id,
        movement_type=MovementType.OUT,
    )
    credit_note.status = CreditNoteStatus.ISSUED
    db.add(credit_note)
    db.flush()
    added = _credit_note_stock_in(db, credit_note, actor_user_id=actor_user_id)
    _resync_linked_invoice(db, credit_note)
    _audit(
        db,
        company_id=company_id,
        entity_type="CreditNote",
        entity_id=credit_note.id,
        reference=credit_note.credit_note_number,
        action="restore",
        actor_user_id=actor_user_id,
        before=before,
        after={"status": credit_note.status.value, "reversals_removed": removed, "returns_added": added},
        critical=True,
    )
    return credit_note


def credit_note_audit(db: Session, *, company_id: str, credit_note_id: int):
    get_credit_note(db, company_id=company_id, credit_note_id=credit_note_id)
    return audit_services.list_audit_events(
        db,
        company_id=company_id,
        entity_type="CreditNote",
        entity_id=str(credit_note_id),
    )
