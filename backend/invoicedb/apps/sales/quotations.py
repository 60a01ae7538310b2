"""
Quotation services.

Quotation items keep the quantity the customer saw: G lines total in grams,
BAG lines in bags. Conversion copies those quantities onto the invoice as-is.
"""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_DOWN, Decimal
import logging
from typing import List, Optional

from fastapi import HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from invoicedb.apps.accounts import services as accounts_services
from invoicedb.apps.inventory import services as inventory_services
from invoicedb.apps.inventory.uom import normalize_uom
from invoicedb.apps.parties import services as party_services
from invoicedb.utils.decimals import ZERO, non_negative, round2, round_to, to_decimal

from . import models, pricing, schemas
from . import services as sales_services
from .numbering import next_document_number

logger = logging.getLogger(__name__)

QuotationStatus = models.QuotationStatusEnum


def _trunc(value) -> Decimal:
    return non_negative(value).quantize(Decimal("1"), rounding=ROUND_DOWN)


def get_quotation(db: Session, *, company_id: str, quotation_id: int) -> models.Quotation:
    quotation = (
        db.query(models.Quotation)
        .filter(models.Quotation.company_id == company_id, models.Quotation.id == quotation_id)
        .first()
    )
    if not quotation:
        raise HTTPException(status_code=404, detail="Quotation not found.")
    return quotation


def _normalize_item(
    db: Session,
    *,
    company_id: str,
    item: schemas.QuotationItemIn,
    vat_percent: Decimal,
) -> models.QuotationItem:
    product = None
    if item.product_id:
        product = inventory_services.get_product(db, company_id=company_id, product_id=item.product_id)

    uom = normalize_uom(item.uom)
    box = pcs = grams = bags = ZERO
    upb = 1
    if uom == "BOX":
        raw_upb = item.units_per_box
        if raw_upb is None and product is not None:
            raw_upb = product.units_per_box
        upb = max(1, int(to_decimal(raw_upb)))
        box = _trunc(item.box_qty)
        computed = box * upb
    elif uom == "PCS":
        pcs = _trunc(item.pcs_qty)
        computed = pcs
    elif uom == "KG":
        box = round_to(non_negative(item.box_qty), 3)
        computed = box
    elif uom == "G":
        grams = _trunc(item.grams_qty)
        computed = grams
    else:
        bags = _trunc(item.bags_qty)
        computed = bags

    explicit = to_decimal(item.total_qty)
    total_qty = explicit if explicit > ZERO else computed

    base_price = item.base_unit_price_excl_vat
    if base_price is None:
        base_price = product.selling_price if product is not None else item.unit_price_excl_vat
    unit_ex = item.unit_price_excl_vat
    if unit_ex is None:
        unit_ex = base_price
    unit_ex = round2(non_negative(unit_ex))

    vat_rate = pricing.clamp_pct(item.vat_rate) if item.vat_rate is not None else None
    effective_rate = vat_rate if vat_rate is not None else vat_percent
    unit_vat = (
        round2(non_negative(item.unit_vat))
        if item.unit_vat is not None
        else round2(unit_ex * effective_rate / Decimal("100"))
    )
    unit_incl = (
        round2(non_negative(item.unit_price_incl_vat))
        if item.unit_price_incl_vat is not None
        else round2(unit_ex + unit_vat)
    )
    given_total = to_decimal(item.line_total)
    line_total = round2(given_total) if given_total > ZERO else round2(total_qty * unit_incl)

    return models.QuotationItem(
        product_id=product.id if product is not None else None,
        description=item.description or (product.name if product is not None else None),
        uom=uom,
        box_qty=box,
        pcs_qty=pcs,
        grams_qty=grams,
        bags_qty=bags,
        units_per_box=upb,
        total_qty=round_to(total_qty, 6),
        base_unit_price_excl_vat=round2(non_negative(base_price)),
        vat_rate=vat_rate,
        price_overridden=bool(item.price_overridden),
        unit_price_excl_vat=unit_ex,
        unit_vat=unit_vat,
        unit_price_incl_vat=unit_incl,
        line_total=line_total,
    )


def _apply_totals(quotation: models.Quotation) -> None:
    totals = pricing.quotation_totals(
        quotation.items,
        discount_percent=quotation.discount_percent,
        discount_amount=quotation.discount_amount,
    )
    quotation.subtotal = totals.subtotal
    quotation.discount_percent = totals.discount_percent
    quotation.discount_amount = totals.discount_amount
    quotation.vat_amount = totals.vat_amount
    quotation.total_amount = totals.total_amount


def create_quotation(
    db: Session,
    *,
    company_id: str,
    payload: schemas.QuotationCreate,
    actor_user_id: Optional[str],
) -> models.Quotation:
    accounts_services.claim_idempotency_key(
        db,
        company_id=company_id,
        scope="quotations.create",
        key=payload.idempotency_key,
        payload=payload.model_dump(mode="json", exclude={"idempotency_key"}),
    )
    if payload.idempotency_key:
        existing = (
            db.query(models.Quotation)
            .filter(
                models.Quotation.company_id == company_id,
                models.Quotation.idempotency_key == payload.idempotency_key,
            )
            .first()
        )
        if existing:
            return existing

    customer_name = payload.customer_name
    customer_code = payload.customer_code
    if payload.customer_id:
        customer = party_services.get_customer(db, company_id=company_id, customer_id=payload.customer_id)
        customer_name = customer_name or customer.name
        customer_code = customer_code or customer.customer_code

    vat_percent = (
        pricing.clamp_pct(payload.vat_percent) if payload.vat_percent is not None else pricing.DEFAULT_VAT_PERCENT
    )
    quotation = models.Quotation(
        company_id=company_id,
        quotation_number=next_document_number(
            db,
            company_id=company_id,
            document_type=models.DocumentTypeEnum.QUOTATION,
            on_date=payload.quotation_date,
        ),
        quotation_date=payload.quotation_date,
        valid_until=payload.valid_until,
        idempotency_key=payload.idempotency_key,
        customer_id=payload.customer_id,
        customer_name=customer_name,
        customer_code=customer_code,
        sales_rep=payload.sales_rep,
        sales_rep_phone=payload.sales_rep_phone,
        notes=payload.notes,
        discount_percent=pricing.clamp_pct(payload.discount_percent),
        discount_amount=round2(non_negative(payload.discount_amount)),
        vat_percent=vat_percent,
        status=QuotationStatus.DRAFT,
        created_by_user_id=actor_user_id,
    )
    quotation.items = [
        _normalize_item(db, company_id=company_id, item=item, vat_percent=vat_percent) for item in payload.items
    ]
    _apply_totals(quotation)
    db.add(quotation)
    db.flush()

    sales_services._audit(
        db,
        company_id=company_id,
        entity_type="Quotation",
        entity_id=quotation.id,
        reference=quotation.quotation_number,
        action="create",
        actor_user_id=actor_user_id,
        after={"quotation_number": quotation.quotation_number, "total_amount": str(quotation.total_amount)},
    )
    return quotation


def list_quotations(
    db: Session,
    *,
    company_id: str,
    q: Optional[str] = None,
    status_filter: Optional[QuotationStatus] = None,
    limit: int = 500,
) -> List[models.Quotation]:
    query = db.query(models.Quotation).filter(models.Quotation.company_id == company_id)
    if status_filter is not None:
        query = query.filter(models.Quotation.status == status_filter)
    if q and q.strip():
        term = q.strip()
        like = f"%{term}%"
        clauses = [
            models.Quotation.quotation_number.ilike(like),
            models.Quotation.customer_name.ilike(like),
            models.Quotation.customer_code.ilike(like),
        ]
        if term.isdigit():
            clauses.append(models.Quotation.id == int(term))
        query = query.filter(or_(*clauses))
    return query.order_by(models.Quotation.id.desc()).limit(limit).all()


def set_quotation_status(
    db: Session,
    *,
    company_id: str,
    quotation_id: int,
    new_status: QuotationStatus,
    actor_user_id: Optional[str],
) -> models.Quotation:
    quotation = get_quotation(db, company_id=company_id, quotation_id=quotation_id)
    if new_status == QuotationStatus.CONVERTED:
        raise HTTPException(status_code=400, detail="Use convert to turn a quotation into an invoice.")
    if quotation.status == QuotationStatus.CONVERTED:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Quotation is already converted.")

    before = {"status": quotation.status.value}
    quotation.status = new_status
    db.add(quotation)
    db.flush()
    sales_services._audit(
        db,
        company_id=company_id,
        entity_type="Quotation",
        entity_id=quotation.id,
        reference=quotation.quotation_number,
        action="status",
        actor_user_id=actor_user_id,
        before=before,
        after={"status": new_status.value},
    )
    return quotation


def recalc_quotation_totals(db: Session, *, company_id: str, quotation_id: int) -> models.Quotation:
    quotation = get_quotation(db, company_id=company_id, quotation_id=quotation_id)
    _apply_totals(quotation)
    db.add(quotation)
    db.flush()
    return quotation


def apply_quotation_discount(
    db: Session,
    *,
    company_id: str,
    quotation_id: int,
    discount_percent: Decimal,
    actor_user_id: Optional[str],
) -> models.Quotation:
    quotation = get_quotation(db, company_id=company_id, quotation_id=quotation_id)
    if quotation.status == QuotationStatus.CONVERTED:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Quotation is already converted.")

    quotation.discount_percent = pricing.clamp_pct(discount_percent)
    quotation.discount_amount = ZERO
    _apply_totals(quotation)
    db.add(quotation)
    db.flush()
    sales_services._audit(
        db,
        company_id=company_id,
        entity_type="Quotation",
        entity_id=quotation.id,
        reference=quotation.quotation_number,
        action="discount",
        actor_user_id=actor_user_id,
        after={"discount_percent": str(quotation.discount_percent), "total_amount": str(quotation.total_amount)},
    )
    return quotation


def _invoice_item_from_quotation(item: models.QuotationItem, vat_percent: Decimal) -> models.InvoiceItem:
    uom = normalize_uom(item.uom)
    box = ZERO
    pcs = ZERO
    upb = Decimal("1")
    if uom == "BOX":
        box = _trunc(item.box_qty)
        upb = Decimal(max(1, int(item.units_per_box or 1)))
    elif uom == "PCS":
        pcs = _trunc(item.pcs_qty)
    elif uom == "KG":
        box = round_to(item.box_qty, 3)
    elif uom == "G":
        box = _trunc(item.grams_qty)
    else:
        box = _trunc(item.bags_qty)

    total_qty = to_decimal(item.total_qty)
    unit_ex = round2(item.unit_price_excl_vat)
    unit_vat = round2(unit_ex * vat_percent / Decimal("100")) if vat_percent > ZERO else round2(ZERO)
    unit_incl = round2(unit_ex + unit_vat)
    return models.InvoiceItem(
        product_id=item.product_id,
        description=item.description,
        uom=uom,
        box_qty=box,
        pcs_qty=pcs,
        units_per_box=upb,
        total_qty=total_qty,
        vat_rate=vat_percent,
        unit_price_excl_vat=unit_ex,
        unit_vat=unit_vat,
        unit_price_incl_vat=unit_incl,
        line_total=round2(total_qty * unit_incl),
    )


def convert_quotation_to_invoice(
    db: Session,
    *,
    company_id: str,
    quotation_id: int,
    actor_user_id: Optional[str],
) -> schemas.QuotationConvertResult:
    quotation = get_quotation(db, company_id=company_id, quotation_id=quotation_id)
    if quotation.status == QuotationStatus.CONVERTED or quotation.converted_invoice_id:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Quotation is already converted.")
    if not quotation.items:
        raise HTTPException(status_code=400, detail="Quotation has no items")
    if not quotation.customer_id:
        raise HTTPException(status_code=400, detail="Quotation has no customer")

    vat_percent = pricing.clamp_pct(
        quotation.vat_percent if quotation.vat_percent is not None else pricing.DEFAULT_VAT_PERCENT
    )
    invoice = models.Invoice(
        company_id=company_id,
        invoice_number=next_document_number(
            db,
            company_id=company_id,
            document_type=models.DocumentTypeEnum.INVOICE,
            on_date=quotation.quotation_date,
        ),
        customer_id=quotation.customer_id,
        invoice_date=quotation.quotation_date,
        sales_rep=quotation.sales_rep,
        sales_rep_phone=quotation.sales_rep_phone,
        notes=quotation.notes,
        vat_percent=vat_percent,
        discount_percent=pricing.clamp_pct(quotation.discount_percent),
        previous_balance=ZERO,
        amount_paid=ZERO,
        credits_applied=ZERO,
        status=models.InvoiceStatusEnum.DRAFT,
        created_by_user_id=actor_user_id,
    )
    invoice.items = [_invoice_item_from_quotation(item, vat_percent) for item in quotation.items]
    sales_services._apply_invoice_totals(invoice)
    db.add(invoice)
    db.flush()

    quotation.status = QuotationStatus.CONVERTED
    quotation.converted_invoice_id = invoice.id
    quotation.converted_at = datetime.utcnow()
    db.add(quotation)
    db.flush()

    sales_services._audit(
        db,
        company_id=company_id,
        entity_type="Quotation",
        entity_id=quotation.id,
        reference=quotation.quotation_number,
        action="convert",
        actor_user_id=actor_user_id,
        after={"invoice_id": invoice.id, "invoice_number": invoice.invoice_number},
    )
    sales_services._audit(
        db,
        company_id=company_id,
        entity_type="Invoice",
        entity_id=invoice.id,
        reference=invoice.invoice_number,
        action="create",
        actor_user_id=actor_user_id,
        after={"from_quotation": quotation.quotation_number, "gross_total": str(invoice.gross_total)},
    )
    logger.info(
        "Quotation converted",
        extra={"company_id": company_id, "quotation_id": quotation.id, "invoice_id": invoice.id},
    )
    return schemas.QuotationConvertResult(invoice_id=invoice.id, invoice_number=invoice.invoice_number)
