from __future__ import annotations

from typing import List, Optional

from fastapi import HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from invoicedb.apps.audit import services as audit_services

from . import models, schemas


def _like(q: str) -> str:
    return f"%{q.strip()}%"


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------


def get_customer(db: Session, *, company_id: str, customer_id: int) -> models.Customer:
    customer = (
        db.query(models.Customer)
        .filter(models.Customer.company_id == company_id, models.Customer.id == customer_id)
        .first()
    )
    if not customer:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found.")
    return customer


def _assert_customer_code_free(
    db: Session, *, company_id: str, code: str, exclude_id: Optional[int] = None
) -> None:
    query = db.query(models.Customer).filter(
        models.Customer.company_id == company_id,
        models.Customer.customer_code == code,
    )
    if exclude_id is not None:
        query = query.filter(models.Customer.id != exclude_id)
    if query.first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Customer code {code} already exists.",
        )


def create_customer(
    db: Session,
    *,
    company_id: str,
    payload: schemas.CustomerCreate,
    actor_user_id: Optional[str],
) -> models.Customer:
    code = payload.customer_code.strip().upper()
    _assert_customer_code_free(db, company_id=company_id, code=code)

    data = payload.model_dump()
    data["customer_code"] = code
    data["name"] = payload.name.strip()
    customer = models.Customer(company_id=company_id, **data)
    db.add(customer)
    db.flush()

    audit_services.log_event(
        db,
        company_id=company_id,
        actor_user_id=actor_user_id,
        entity_type="Customer",
        entity_id=str(customer.id),
        reference=customer.customer_code,
        action="create",
        after={"customer_code": customer.customer_code, "name": customer.name},
    )
    return customer


def update_customer(
    db: Session,
    *,
    company_id: str,
    customer_id: int,
    payload: schemas.CustomerUpdate,
    actor_user_id: Optional[str],
) -> models.Customer:
    customer = get_customer(db, company_id=company_id, customer_id=customer_id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("customer_code"):
        changes["customer_code"] = changes["customer_code"].strip().upper()
        _assert_customer_code_free(
            db, company_id=company_id, code=changes["customer_code"], exclude_id=customer.id
        )
    for field, value in changes.items():
        setattr(customer, field, value)
    db.add(customer)
    db.flush()

    audit_services.log_event(
        db,
        company_id=company_id,
        actor_user_id=actor_user_id,
        entity_type="Customer",
        entity_id=str(customer.id),
        reference=customer.customer_code,
        action="update",
        after={k: str(v) for k, v in changes.items()},
    )
    return customer


def list_customers(
    db: Session,
    *,
    company_id: str,
    q: Optional[str] = None,
    active_only: bool = False,
    limit: int = 500,
) -> List[models.Customer]:
    query = db.query(models.Customer).filter(models.Customer.company_id == company_id)
    if q and q.strip():
        pattern = _like(q)
        query = query.filter(
            or_(
                models.Customer.customer_code.ilike(pattern),
                models.Customer.name.ilike(pattern),
                models.Customer.phone.ilike(pattern),
            )
        )
    if active_only:
        query = query.filter(models.Customer.is_active.is_(True))
    return query.order_by(models.Customer.name.asc()).limit(limit).all()


# ---------------------------------------------------------------------------
# Suppliers
# ---------------------------------------------------------------------------


def get_supplier(db: Session, *, company_id: str, supplier_id: int) -> models.Supplier:
    supplier = (
        db.query(models.Supplier)
        .filter(models.Supplier.company_id == company_id, models.Supplier.id == supplier_id)
        .first()
    )
    if not supplier:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Supplier not found.")
    return supplier


def create_supplier(
    db: Session,
    *,
    company_id: str,
    payload: schemas.SupplierCreate,
    actor_user_id: Optional[str],
) -> models.Supplier:
    data = payload.model_dump()
    if data.get("supplier_code"):
        data["supplier_code"] = data["supplier_code"].strip().upper()
        dup = (
            db.query(models.Supplier)
            .filter(
                models.Supplier.company_id == company_id,
                models.Supplier.supplier_code == data["supplier_code"],
            )
            .first()
        )
        if dup:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Supplier code {data['supplier_code']} already exists.",
            )
    data["name"] = payload.name.strip()
    supplier = models.Supplier(company_id=company_id, **data)
    db.add(supplier)
    db.flush()

    audit_services.log_event(
        db,
        company_id=company_id,
        actor_user_id=actor_user_id,
        entity_type="Supplier",
        entity_id=str(supplier.id),
        reference=supplier.supplier_code,
        action="create",
        after={"name": supplier.name},
    )
    return supplier


def update_supplier(
    db: Session,
    *,
    company_id: str,
    supplier_id: int,
    payload: schemas.SupplierUpdate,
    actor_user_id: Optional[str],
) -> models.Supplier:
    supplier = get_supplier(db, company_id=company_id, supplier_id=supplier_id)
    changes = payload.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(supplier, field, value)
    db.add(supplier)
    db.flush()

    audit_services.log_event(
        db,
        company_id=company_id,
        actor_user_id=actor_user_id,
        entity_type="Supplier",
        entity_id=str(supplier.id),
        reference=supplier.supplier_code,
        action="update",
        after={k: str(v) for k, v in changes.items()},
    )
    return supplier


def list_suppliers(
    db: Session,
    *,
    company_id: str,
    q: Optional[str] = None,
    limit: int = 500,
) -> List[models.Supplier]:
    query = db.query(models.Supplier).filter(models.Supplier.company_id == company_id)
    if q and q.strip():
        pattern = _like(q)
        query = query.filter(
            or_(
                models.Supplier.supplier_code.ilike(pattern),
                models.Supplier.name.ilike(pattern),
                models.Supplier.phone.ilike(pattern),
            )
        )
    return query.order_by(models.Supplier.name.asc()).limit(limit).all()
