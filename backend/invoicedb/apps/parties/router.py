from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from invoicedb.database import get_db, get_read_db
from invoicedb.permissions import require_permission
from invoicedb.apps.accounts import models as account_models

from . import schemas, services

router = APIRouter(prefix="", tags=["customers", "suppliers"])


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------


@router.get("/customers", response_model=List[schemas.CustomerRead])
def list_customers(
    q: Optional[str] = None,
    active_only: bool = False,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_permission("customers.view")),
):
    return services.list_customers(db, company_id=current_user.company_id, q=q, active_only=active_only)


@router.get("/customers/{customer_id}", response_model=schemas.CustomerRead)
def get_customer(
    customer_id: int,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_permission("customers.view")),
):
    return services.get_customer(db, company_id=current_user.company_id, customer_id=customer_id)


@router.post("/customers", response_model=schemas.CustomerRead, status_code=status.HTTP_201_CREATED)
def create_customer(
    payload: schemas.CustomerCreate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("customers.edit")),
):
    customer = services.create_customer(
        db, company_id=current_user.company_id, payload=payload, actor_user_id=current_user.id
    )
    db.commit()
    db.refresh(customer)
    return customer


@router.patch("/customers/{customer_id}", response_model=schemas.CustomerRead)
def update_customer(
    customer_id: int,
    payload: schemas.CustomerUpdate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("customers.edit")),
):
    customer = services.update_customer(
        db,
        company_id=current_user.company_id,
        customer_id=customer_id,
        payload=payload,
        actor_user_id=current_user.id,
    )
    db.commit()
    db.refresh(customer)
    return customer


# ---------------------------------------------------------------------------
# Suppliers
# ---------------------------------------------------------------------------


@router.get("/suppliers", response_model=List[schemas.SupplierRead])
def list_suppliers(
    q: Optional[str] = None,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_permission("ap.view")),
):
    return services.list_suppliers(db, company_id=current_user.company_id, q=q)


@router.get("/suppliers/{supplier_id}", response_model=schemas.SupplierRead)
def get_supplier(
    supplier_id: int,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_permission("ap.view")),
):
    return services.get_supplier(db, company_id=current_user.company_id, supplier_id=supplier_id)


@router.post("/suppliers", response_model=schemas.SupplierRead, status_code=status.HTTP_201_CREATED)
def create_supplier(
    payload: schemas.SupplierCreate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ap.bills")),
):
    supplier = services.create_supplier(
        db, company_id=current_user.company_id, payload=payload, actor_user_id=current_user.id
    )
    db.commit()
    db.refresh(supplier)
    return supplier


@router.patch("/suppliers/{supplier_id}", response_model=schemas.SupplierRead)
def update_supplier(
    supplier_id: int,
    payload: schemas.SupplierUpdate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("ap.bills")),
):
    supplier = services.update_supplier(
        db,
        company_id=current_user.company_id,
        supplier_id=supplier_id,
        payload=payload,
        actor_user_id=current_user.id,
    )
    db.commit()
    db.refresh(supplier)
    return supplier
