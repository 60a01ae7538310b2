from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from invoicedb.database import get_db, get_read_db
from invoicedb.permissions import require_permission
from invoicedb.apps.accounts import models as account_models

from . import models, schemas, services

router = APIRouter(prefix="/ap", tags=["payables"])


@router.post("/bills", response_model=schemas.SupplierBillRead, status_code=status.HTTP_201_CREATED)
def create_bill(
    payload: schemas.SupplierBillCreate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ap.bills")),
):
    bill = services.create_bill(db, company_id=current_user.company_id, payload=payload, actor_user_id=current_user.id)
    db.commit()
    db.refresh(bill)
    return bill


@router.get("/bills", response_model=List[schemas.SupplierBillListItem])
def list_bills(
    q: Optional[str] = None,
    status_filter: Optional[models.BillStatusEnum] = Query(None, alias="status"),
    supplier_id: Optional[int] = None,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_permission("ap.view")),
):
    return services.list_bills(
        db,
        company_id=current_user.company_id,
        q=q,
        status_filter=status_filter,
        supplier_id=supplier_id,
    )


@router.get("/bills/{bill_id}", response_model=schemas.SupplierBillRead)
def get_bill(
    bill_id: int,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_permission("ap.view")),
):
    return services.get_bill(db, company_id=current_user.company_id, bill_id=bill_id)


@router.post("/bills/{bill_id}/void", response_model=schemas.SupplierBillRead)
def void_bill(
    bill_id: int,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ap.bills")),
):
    bill = services.void_bill(db, company_id=current_user.company_id, bill_id=bill_id, actor_user_id=current_user.id)
    db.commit()
    db.refresh(bill)
    return bill


@router.post("/payments", response_model=schemas.SupplierPaymentRead, status_code=status.HTTP_201_CREATED)
def create_payment(
    payload: schemas.SupplierPaymentCreate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ap.payments")),
):
    payment = services.create_payment(
        db, company_id=current_user.company_id, payload=payload, actor_user_id=current_user.id
    )
    db.commit()
    db.refresh(payment)
    return payment


@router.get("/payments", response_model=List[schemas.SupplierPaymentListItem])
def list_payments(
    supplier_id: Optional[int] = None,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_permission("ap.view")),
):
    return services.list_payments(db, company_id=current_user.company_id, supplier_id=supplier_id)


def _allocation_result(db: Session, *, company_id: str, payment_id: int, allocations) -> schemas.AllocationResult:
    return schemas.AllocationResult(
        payment_id=payment_id,
        allocations=[schemas.AllocationRead.model_validate(a) for a in allocations],
        unallocated=services.unallocated_amount(db, company_id=company_id, payment_id=payment_id),
    )


@router.get("/payments/{payment_id}/allocations", response_model=schemas.AllocationResult)
def list_allocations(
    payment_id: int,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_permission("ap.view")),
):
    allocations = services.list_allocations(db, company_id=current_user.company_id, payment_id=payment_id)
    return _allocation_result(
        db, company_id=current_user.company_id, payment_id=payment_id, allocations=allocations
    )


@router.put("/payments/{payment_id}/allocations", response_model=schemas.AllocationResult)
def save_allocations(
    payment_id: int,
    payload: schemas.AllocationSaveRequest,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ap.payments")),
):
    allocations = services.save_allocations(
        db,
        company_id=current_user.company_id,
        payment_id=payment_id,
        desired=payload.allocations,
        actor_user_id=current_user.id,
    )
    result = _allocation_result(
        db, company_id=current_user.company_id, payment_id=payment_id, allocations=allocations
    )
    db.commit()
    return result


@router.post("/payments/{payment_id}/auto-allocate", response_model=schemas.AllocationResult)
def auto_allocate(
    payment_id: int,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ap.payments")),
):
    allocations = services.auto_allocate(
        db, company_id=current_user.company_id, payment_id=payment_id, actor_user_id=current_user.id
    )
    result = _allocation_result(
        db, company_id=current_user.company_id, payment_id=payment_id, allocations=allocations
    )
    db.commit()
    return result
