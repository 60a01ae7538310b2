from __future__ import annotations

from datetime import datetime
from decimal import Decimal
import logging
from typing import Dict, Iterable, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from invoicedb.apps.audit import services as audit_services
from invoicedb.apps.parties import services as party_services
from invoicedb.utils.decimals import ZERO, round2, to_decimal

from . import models, schemas

logger = logging.getLogger(__name__)

TOLERANCE = Decimal("0.0001")

BillStatus = models.BillStatusEnum


def _audit(
    db: Session,
    *,
    company_id: str,
    entity_type: str,
    entity_id,
    action: str,
    actor_user_id,
    after: dict,
    reference: Optional[str] = None,
    amount=None,
):
    audit_services.log_event(
        db,
        company_id=company_id,
        actor_user_id=actor_user_id,
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        reference=reference,
        amount=amount,
        after=after,
    )


# ---------------------------------------------------------------------------
# Bills
# ---------------------------------------------------------------------------


def get_bill(db: Session, *, company_id: str, bill_id: int) -> models.SupplierBill:
    bill = (
        db.query(models.SupplierBill)
        .filter(models.SupplierBill.company_id == company_id, models.SupplierBill.id == bill_id)
        .first()
    )
    if not bill:
        raise HTTPException(status_code=404, detail="Bill not found.")
    return bill


def create_bill(
    db: Session,
    *,
    company_id: str,
    payload: schemas.SupplierBillCreate,
    actor_user_id: Optional[str],
) -> models.SupplierBill:
    supplier = party_services.get_supplier(db, company_id=company_id, supplier_id=payload.supplier_id)
    bill = models.SupplierBill(
        company_id=company_id,
        supplier_id=supplier.id,
        bill_no=(payload.bill_no or "").strip() or None,
        bill_date=payload.bill_date,
        due_date=payload.due_date,
        currency=payload.currency,
        total_amount=round2(payload.total_amount),
        notes=payload.notes,
        status=BillStatus.OPEN,
        created_by_user_id=actor_user_id,
    )
    db.add(bill)
    db.flush()
    _audit(
        db,
        company_id=company_id,
        entity_type="SupplierBill",
        entity_id=bill.id,
        reference=bill.bill_no,
        action="create",
        amount=bill.total_amount,
        actor_user_id=actor_user_id,
        after={"bill_no": bill.bill_no, "total_amount": str(bill.total_amount)},
    )
    return bill


def bill_applied_sums(db: Session, *, company_id: str, bill_ids: Iterable[int]) -> Dict[int, Decimal]:
    """Σ amount_applied per bill, across all payments. Missing bills map to 0."""
    ids = [int(b) for b in bill_ids]
    sums: Dict[int, Decimal] = {bill_id: round2(ZERO) for bill_id in ids}
    if not ids:
        return sums
    rows = (
        db.query(
            models.SupplierPaymentAllocation.bill_id,
            func.coalesce(func.sum(models.SupplierPaymentAllocation.amount_applied), 0),
        )
        .filter(
            models.SupplierPaymentAllocation.company_id == company_id,
            models.SupplierPaymentAllocation.bill_id.in_(ids),
        )
        .group_by(models.SupplierPaymentAllocation.bill_id)
        .all()
    )
    for bill_id, total in rows:
        sums[bill_id] = round2(total)
    return sums


def _bill_list_item(bill: models.SupplierBill, applied: Decimal) -> schemas.SupplierBillListItem:
    item = schemas.SupplierBillListItem.model_validate(bill)
    item.supplier_name = bill.supplier.name if bill.supplier else None
    item.amount_applied = applied
    item.balance = round2(max(ZERO, to_decimal(bill.total_amount) - applied))
    return item


def list_bills(
    db: Session,
    *,
    company_id: str,
    q: Optional[str] = None,
    status_filter: Optional[BillStatus] = None,
    supplier_id: Optional[int] = None,
    limit: int = 500,
) -> List[schemas.SupplierBillListItem]:
    query = db.query(models.SupplierBill).filter(models.SupplierBill.company_id == company_id)
    if status_filter is not None:
        query = query.filter(models.SupplierBill.status == status_filter)
    if supplier_id:
        query = query.filter(models.SupplierBill.supplier_id == supplier_id)
    if q and q.strip():
        query = query.filter(models.SupplierBill.bill_no.ilike(f"%{q.strip()}%"))
    bills = query.order_by(models.SupplierBill.bill_date.desc(), models.SupplierBill.id.desc()).limit(limit).all()
    applied = bill_applied_sums(db, company_id=company_id, bill_ids=[b.id for b in bills])
    return [_bill_list_item(b, applied[b.id]) for b in bills]


def recompute_bill_status(db: Session, *, company_id: str, bill_id: int) -> models.SupplierBill:
    bill = get_bill(db, company_id=company_id, bill_id=bill_id)
    if bill.status == BillStatus.VOID:
        return bill
    applied = bill_applied_sums(db, company_id=company_id, bill_ids=[bill.id])[bill.id]
    total = to_decimal(bill.total_amount)
    if applied <= ZERO:
        bill.status = BillStatus.OPEN
    elif applied + TOLERANCE < total:
        bill.status = BillStatus.PARTIALLY_PAID
    else:
        bill.status = BillStatus.PAID
    db.add(bill)
    db.flush()
    return bill


def void_bill(
    db: Session,
    *,
    company_id: str,
    bill_id: int,
    actor_user_id: Optional[str],
) -> models.SupplierBill:
    bill = get_bill(db, company_id=company_id, bill_id=bill_id)
    if bill.status == BillStatus.VOID:
        return bill
    has_allocations = (
        db.query(models.SupplierPaymentAllocation.id)
        .filter(
            models.SupplierPaymentAllocation.company_id == company_id,
            models.SupplierPaymentAllocation.bill_id == bill.id,
        )
        .first()
    )
    if has_allocations:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Bill has payment allocations. Remove them before voiding.",
        )
    bill.status = BillStatus.VOID
    bill.voided_at = datetime.utcnow()
    db.add(bill)
    db.flush()
    _audit(
        db,
        company_id=company_id,
        entity_type="SupplierBill",
        entity_id=bill.id,
        reference=bill.bill_no,
        action="void",
        actor_user_id=actor_user_id,
        after={"status": bill.status.value},
    )
    return bill


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


def get_payment(db: Session, *, company_id: str, payment_id: int) -> models.SupplierPayment:
    payment = (
        db.query(models.SupplierPayment)
        .filter(models.SupplierPayment.company_id == company_id, models.SupplierPayment.id == payment_id)
        .first()
    )
    if not payment:
        raise HTTPException(status_code=404, detail="Supplier payment not found.")
    return payment


def create_payment(
    db: Session,
    *,
    company_id: str,
    payload: schemas.SupplierPaymentCreate,
    actor_user_id: Optional[str],
) -> models.SupplierPayment:
    supplier = party_services.get_supplier(db, company_id=company_id, supplier_id=payload.supplier_id)
    amount = round2(payload.amount)
    if amount <= ZERO:
        raise HTTPException(status_code=400, detail="Payment amount must be greater than zero.")
    payment = models.SupplierPayment(
        company_id=company_id,
        supplier_id=supplier.id,
        payment_date=payload.payment_date,
        amount=amount,
        method=payload.method,
        reference=payload.reference,
        notes=payload.notes,
        created_by_user_id=actor_user_id,
    )
    db.add(payment)
    db.flush()
    _audit(
        db,
        company_id=company_id,
        entity_type="SupplierPayment",
        entity_id=payment.id,
        action="create",
        amount=amount,
        actor_user_id=actor_user_id,
        after={"supplier_id": supplier.id, "amount": str(amount)},
    )
    return payment


def _allocated_total(payment: models.SupplierPayment) -> Decimal:
    return round2(sum((to_decimal(a.amount_applied) for a in payment.allocations), ZERO))


def unallocated_amount(db: Session, *, company_id: str, payment_id: int) -> Decimal:
    payment = get_payment(db, company_id=company_id, payment_id=payment_id)
    return round2(max(ZERO, to_decimal(payment.amount) - _allocated_total(payment)))


def list_payments(
    db: Session,
    *,
    company_id: str,
    supplier_id: Optional[int] = None,
    limit: int = 500,
) -> List[schemas.SupplierPaymentListItem]:
    query = db.query(models.SupplierPayment).filter(models.SupplierPayment.company_id == company_id)
    if supplier_id:
        query = query.filter(models.SupplierPayment.supplier_id == supplier_id)
    payments = (
        query.order_by(models.SupplierPayment.payment_date.desc(), models.SupplierPayment.id.desc())
        .limit(limit)
        .all()
    )
    results = []
    for payment in payments:
        item = schemas.SupplierPaymentListItem.model_validate(payment)
        item.supplier_name = payment.supplier.name if payment.supplier else None
        item.allocated = _allocated_total(payment)
        item.unallocated = round2(max(ZERO, to_decimal(payment.amount) - item.allocated))
        results.append(item)
    return results


def list_allocations(
    db: Session, *, company_id: str, payment_id: int
) -> List[models.SupplierPaymentAllocation]:
    get_payment(db, company_id=company_id, payment_id=payment_id)
    return (
        db.query(models.SupplierPaymentAllocation)
        .filter(
            models.SupplierPaymentAllocation.company_id == company_id,
            models.SupplierPaymentAllocation.payment_id == payment_id,
        )
        .order_by(models.SupplierPaymentAllocation.id.asc())
        .all()
    )


def save_allocations(
    db: Session,
    *,
    company_id: str,
    payment_id: int,
    desired: Dict[int, Decimal],
    actor_user_id: Optional[str],
) -> List[models.SupplierPaymentAllocation]:
    """
    Replace a payment's allocations with `desired` (bill_id -> amount).

    Bills missing from `desired`, or given an amount <= 0, lose their
    allocation from this payment. Every touched bill gets its status
    recomputed.
    """
    payment = get_payment(db, company_id=company_id, payment_id=payment_id)
    wanted: Dict[int, Decimal] = {}
    for bill_id, amount in (desired or {}).items():
        value = round2(to_decimal(amount))
        if value > ZERO:
            wanted[int(bill_id)] = value

    total_wanted = sum(wanted.values(), ZERO)
    if total_wanted - TOLERANCE > to_decimal(payment.amount):
        raise HTTPException(status_code=400, detail="Allocations exceed the payment amount.")

    existing = {a.bill_id: a for a in payment.allocations}
    applied = bill_applied_sums(db, company_id=company_id, bill_ids=list(wanted.keys()))

    for bill_id, amount in wanted.items():
        bill = get_bill(db, company_id=company_id, bill_id=bill_id)
        if bill.supplier_id != payment.supplier_id:
            raise HTTPException(status_code=400, detail=f"Bill {bill_id} belongs to a different supplier.")
        if bill.status == BillStatus.VOID:
            raise HTTPException(status_code=400, detail=f"Bill {bill_id} is void.")
        current = to_decimal(existing[bill_id].amount_applied) if bill_id in existing else ZERO
        remaining = to_decimal(bill.total_amount) - (applied[bill_id] - current)
        if amount - TOLERANCE > remaining:
            raise HTTPException(
                status_code=400,
                detail=f"Allocation for bill {bill_id} exceeds its remaining balance.",
            )

    impacted = set(existing.keys()) | set(wanted.keys())

    for bill_id, allocation in list(existing.items()):
        if bill_id not in wanted:
            payment.allocations.remove(allocation)
            db.delete(allocation)

    for bill_id, amount in wanted.items():
        if bill_id in existing:
            existing[bill_id].amount_applied = amount
            db.add(existing[bill_id])
        else:
            payment.allocations.append(
                models.SupplierPaymentAllocation(
                    company_id=company_id,
                    payment_id=payment.id,
                    bill_id=bill_id,
                    amount_applied=amount,
                )
            )
    db.flush()

    for bill_id in impacted:
        recompute_bill_status(db, company_id=company_id, bill_id=bill_id)

    _audit(
        db,
        company_id=company_id,
        entity_type="SupplierPayment",
        entity_id=payment.id,
        action="allocations.save",
        actor_user_id=actor_user_id,
        after={str(k): str(v) for k, v in wanted.items()},
    )
    return list_allocations(db, company_id=company_id, payment_id=payment.id)


def auto_allocate(
    db: Session,
    *,
    company_id: str,
    payment_id: int,
    actor_user_id: Optional[str],
) -> List[models.SupplierPaymentAllocation]:
    """Spread the unallocated part of a payment over open bills, oldest first."""
    payment = get_payment(db, company_id=company_id, payment_id=payment_id)
    left = round2(max(ZERO, to_decimal(payment.amount) - _allocated_total(payment)))
    desired: Dict[int, Decimal] = {a.bill_id: to_decimal(a.amount_applied) for a in payment.allocations}
    if left <= ZERO:
        return list_allocations(db, company_id=company_id, payment_id=payment.id)

    bills = (
        db.query(models.SupplierBill)
        .filter(
            models.SupplierBill.company_id == company_id,
            models.SupplierBill.supplier_id == payment.supplier_id,
            models.SupplierBill.status.notin_([BillStatus.VOID, BillStatus.PAID]),
        )
        .order_by(models.SupplierBill.bill_date.asc(), models.SupplierBill.id.asc())
        .all()
    )
    applied = bill_applied_sums(db, company_id=company_id, bill_ids=[b.id for b in bills])
    for bill in bills:
        if left <= ZERO:
            break
        remaining = to_decimal(bill.total_amount) - applied[bill.id]
        if remaining <= ZERO:
            continue
        take = min(left, remaining)
        desired[bill.id] = desired.get(bill.id, ZERO) + take
        left -= take

    logger.info(
        "Auto-allocating supplier payment",
        extra={"company_id": company_id, "payment_id": payment.id, "bills": len(desired)},
    )
    return save_allocations(
        db, company_id=company_id, payment_id=payment.id, desired=desired, actor_user_id=actor_user_id
    )
