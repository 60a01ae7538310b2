from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from invoicedb.database import get_db, get_read_db
from invoicedb.permissions import require_permission
from invoicedb.apps.accounts import models as account_models

from . import models, schemas, services

router = APIRouter(prefix="", tags=["inventory"])


@router.get("/products", response_model=List[schemas.ProductRead])
def list_products(
    q: Optional[str] = None,
    active_only: bool = False,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_permission("stock.view")),
):
    return services.list_products(db, company_id=current_user.company_id, q=q, active_only=active_only)


@router.get("/products/low-stock", response_model=List[schemas.LowStockItem])
def list_low_stock(
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_permission("stock.view")),
):
    return services.list_low_stock(db, company_id=current_user.company_id)


@router.get("/products/{product_id}", response_model=schemas.ProductRead)
def get_product(
    product_id: int,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_permission("stock.view")),
):
    return services.get_product(db, company_id=current_user.company_id, product_id=product_id)


@router.post("/products", response_model=schemas.ProductRead, status_code=status.HTTP_201_CREATED)
def create_product(
    payload: schemas.ProductCreate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("stock.edit")),
):
    product = services.create_product(
        db, company_id=current_user.company_id, payload=payload, actor_user_id=current_user.id
    )
    db.commit()
    db.refresh(product)
    return product


@router.patch("/products/{product_id}", response_model=schemas.ProductRead)
def update_product(
    product_id: int,
    payload: schemas.ProductUpdate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("stock.edit")),
):
    product = services.update_product(
        db,
        company_id=current_user.company_id,
        product_id=product_id,
        payload=payload,
        actor_user_id=current_user.id,
    )
    db.commit()
    db.refresh(product)
    return product


@router.get("/stock-movements", response_model=List[schemas.StockMovementRead])
def list_movements(
    product_id: Optional[int] = None,
    movement_type: Optional[models.StockMovementTypeEnum] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    q: Optional[str] = None,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_permission("stock.view")),
):
    filters = schemas.StockMovementFilter(
        product_id=product_id,
        movement_type=movement_type,
        date_from=date_from,
        date_to=date_to,
        q=q,
    )
    return services.list_movements(db, company_id=current_user.company_id, filters=filters)


@router.post(
    "/stock-movements",
    response_model=schemas.StockMovementRead,
    status_code=status.HTTP_201_CREATED,
)
def record_movement(
    payload: schemas.StockMovementCreate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_permission("stock.edit")),
):
    entry = services.record_movement(
        db, company_id=current_user.company_id, payload=payload, actor_user_id=current_user.id
    )
    db.commit()
    db.refresh(entry)
    return entry
