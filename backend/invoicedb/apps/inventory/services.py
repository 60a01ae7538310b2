from __future__ import annotations

from datetime import datetime, time
from decimal import Decimal
import logging
from typing import Dict, Iterable, List, Optional, Set

from fastapi import HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from invoicedb.apps.audit import services as audit_services
from invoicedb.utils.decimals import ZERO, round_to, to_decimal

from . import models, schemas

logger = logging.getLogger(__name__)

MovementType = models.StockMovementTypeEnum


def _signed_quantity(entry: models.StockMovement) -> Decimal:
    qty = to_decimal(entry.quantity)
    if entry.movement_type == MovementType.IN:
        return qty
    if entry.movement_type == MovementType.OUT:
        return -qty
    # ADJUSTMENT carries its own sign.
    return qty


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------


def get_product(db: Session, *, company_id: str, product_id: int) -> models.Product:
    product = (
        db.query(models.Product)
        .filter(models.Product.company_id == company_id, models.Product.id == product_id)
        .first()
    )
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found.")
    return product


def create_product(
    db: Session,
    *,
    company_id: str,
    payload: schemas.ProductCreate,
    actor_user_id: Optional[str],
) -> models.Product:
    sku = payload.sku.strip().upper()
    dup = (
        db.query(models.Product)
        .filter(models.Product.company_id == company_id, models.Product.sku == sku)
        .first()
    )
    if dup:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"SKU {sku} already exists.")

    data = payload.model_dump()
    data["sku"] = sku
    product = models.Product(company_id=company_id, current_stock=ZERO, **data)
    db.add(product)
    db.flush()
    audit_services.log_event(
        db,
        company_id=company_id,
        actor_user_id=actor_user_id,
        entity_type="Product",
        entity_id=str(product.id),
        reference=product.sku,
        action="create",
        after={"sku": product.sku, "name": product.name},
    )
    return product


def update_product(
    db: Session,
    *,
    company_id: str,
    product_id: int,
    payload: schemas.ProductUpdate,
    actor_user_id: Optional[str],
) -> models.Product:
    product = get_product(db, company_id=company_id, product_id=product_id)
    changes = payload.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(product, field, value)
    db.add(product)
    db.flush()
    audit_services.log_event(
        db,
        company_id=company_id,
        actor_user_id=actor_user_id,
        entity_type="Product",
        entity_id=str(product.id),
        reference=product.sku,
        action="update",
        after={k: str(v) for k, v in changes.items()},
    )
    return product


def list_products(
    db: Session,
    *,
    company_id: str,
    q: Optional[str] = None,
    active_only: bool = False,
) -> List[models.Product]:
    query = db.query(models.Product).filter(models.Product.company_id == company_id)
    if q and q.strip():
        pattern = f"%{q.strip()}%"
        query = query.filter(
            or_(
                models.Product.sku.ilike(pattern),
                models.Product.item_code.ilike(pattern),
                models.Product.name.ilike(pattern),
            )
        )
    if active_only:
        query = query.filter(models.Product.is_active.is_(True))
    return query.order_by(models.Product.name.asc()).all()


def refresh_product_stock(db: Session, *, company_id: str, product_id: int) -> Decimal:
    """Recompute `current_stock` as the signed sum of the product's movements."""
    entries = (
        db.query(models.StockMovement)
        .filter(
            models.StockMovement.company_id == company_id,
            models.StockMovement.product_id == product_id,
        )
        .all()
    )
    total = sum((_signed_quantity(e) for e in entries), ZERO)
    product = get_product(db, company_id=company_id, product_id=product_id)
    product.current_stock = round_to(total, 3)
    db.add(product)
    db.flush()
    return product.current_stock


def _refresh_many(db: Session, *, company_id: str, product_ids: Iterable[int]) -> None:
    for product_id in sorted(set(product_ids)):
        refresh_product_stock(db, company_id=company_id, product_id=product_id)


def list_low_stock(db: Session, *, company_id: str) -> List[schemas.LowStockItem]:
    products = (
        db.query(models.Product)
        .filter(
            models.Product.company_id == company_id,
            models.Product.is_active.is_(True),
        )
        .order_by(models.Product.name.asc())
        .all()
    )
    results: List[schemas.LowStockItem] = []
    for product in products:
        current = to_decimal(product.current_stock)
        reorder = to_decimal(product.reorder_level)
        if current <= reorder:
            results.append(
                schemas.LowStockItem(
                    product_id=product.id,
                    sku=product.sku,
                    name=product.name,
                    stock_unit=product.stock_unit,
                    current_stock=current,
                    reorder_level=reorder,
                )
            )
    return results


# ---------------------------------------------------------------------------
# Movements
# ---------------------------------------------------------------------------


def record_movement(
    db: Session,
    *,
    company_id: str,
    payload: schemas.StockMovementCreate,
    actor_user_id: Optional[str],
) -> models.StockMovement:
    """Manual stock entry from the stock screen."""
    product = get_product(db, company_id=company_id, product_id=payload.product_id)
    qty = to_decimal(payload.quantity)
    if payload.movement_type in (MovementType.IN, MovementType.OUT) and qty <= ZERO:
        raise HTTPException(status_code=400, detail="Quantity must be greater than 0.")
    if payload.movement_type == MovementType.ADJUSTMENT and qty == ZERO:
        raise HTTPException(status_code=400, detail="Adjustment quantity cannot be 0.")

    entry = models.StockMovement(
        company_id=company_id,
        product_id=product.id,
        movement_type=payload.movement_type,
        quantity=qty,
        movement_date=payload.movement_date or datetime.utcnow(),
        reference=payload.reference,
        notes=payload.notes,
        created_by_user_id=actor_user_id,
    )
    db.add(entry)
    db.flush()
    refresh_product_stock(db, company_id=company_id, product_id=product.id)

    audit_services.log_event(
        db,
        company_id=company_id,
        actor_user_id=actor_user_id,
        entity_type="StockMovement",
        entity_id=str(entry.id),
        reference=entry.reference,
        action=payload.movement_type.value.lower(),
        after={"product_id": product.id, "quantity": str(qty)},
    )
    return entry


def apply_document_movements(
    db: Session,
    *,
    company_id: str,
    source_table: str,
    source_id: int,
    rows: List[Dict],
    actor_user_id: Optional[str] = None,
) -> int:
    """
    Insert movements generated by a document (invoice, credit note).

    Each row is a dict with product_id, movement_type, quantity and optional
    reference / notes / movement_date. Rows whose
    (source_table, source_id, product_id, movement_type) already exists are
    skipped, so repeated calls are safe. Returns the inserted count.
    """
    existing: Set[tuple] = {
        (m.product_id, m.movement_type)
        for m in db.query(models.StockMovement).filter(
            models.StockMovement.company_id == company_id,
            models.StockMovement.source_table == source_table,
            models.StockMovement.source_id == source_id,
        )
    }

    inserted = 0
    touched: Set[int] = set()
    for row in rows:
        qty = to_decimal(row.get("quantity"))
        product_id = row.get("product_id")
        movement_type = MovementType(row["movement_type"])
        if not product_id or qty <= ZERO:
            continue
        key = (int(product_id), movement_type)
        if key in existing:
            continue
        db.add(
            models.StockMovement(
                company_id=company_id,
                product_id=int(product_id),
                movement_type=movement_type,
                quantity=round_to(qty, 3),
                movement_date=row.get("movement_date") or datetime.utcnow(),
                reference=row.get("reference"),
                source_table=source_table,
                source_id=source_id,
                notes=row.get("notes"),
                created_by_user_id=actor_user_id,
            )
        )
        existing.add(key)
        touched.add(int(product_id))
        inserted += 1

    if inserted:
        db.flush()
        _refresh_many(db, company_id=company_id, product_ids=touched)
    return inserted


def has_document_movements(
    db: Session,
    *,
    company_id: str,
    source_table: str,
    source_id: int,
    movement_type: Optional[MovementType] = None,
) -> bool:
    query = db.query(models.StockMovement.id).filter(
        models.StockMovement.company_id == company_id,
        models.StockMovement.source_table == source_table,
        models.StockMovement.source_id == source_id,
    )
    if movement_type is not None:
        query = query.filter(models.StockMovement.movement_type == movement_type)
    return query.first() is not None


def delete_document_movements(
    db: Session,
    *,
    company_id: str,
    source_table: str,
    source_id: int,
    movement_type: Optional[MovementType] = None,
) -> int:
    query = db.query(models.StockMovement).filter(
        models.StockMovement.company_id == company_id,
        models.StockMovement.source_table == source_table,
        models.StockMovement.source_id == source_id,
    )
    if movement_type is not None:
        query = query.filter(models.StockMovement.movement_type == movement_type)

    entries = query.all()
    touched = {e.product_id for e in entries}
    for entry in entries:
        db.delete(entry)
    if entries:
        db.flush()
        _refresh_many(db, company_id=company_id, product_ids=touched)
    return len(entries)


def list_movements(
    db: Session,
    *,
    company_id: str,
    filters: Optional[schemas.StockMovementFilter] = None,
    limit: int = 1000,
) -> List[models.StockMovement]:
    filters = filters or schemas.StockMovementFilter()
    query = db.query(models.StockMovement).filter(models.StockMovement.company_id == company_id)
    if filters.product_id:
        query = query.filter(models.StockMovement.product_id == filters.product_id)
    if filters.movement_type:
        query = query.filter(models.StockMovement.movement_type == filters.movement_type)
    if filters.date_from:
        query = query.filter(
            models.StockMovement.movement_date >= datetime.combine(filters.date_from, time.min)
        )
    if filters.date_to:
        query = query.filter(
            models.StockMovement.movement_date <= datetime.combine(filters.date_to, time.max)
        )
    if filters.q and filters.q.strip():
        pattern = f"%{filters.q.strip()}%"
        query = query.join(models.Product, models.Product.id == models.StockMovement.product_id).filter(
            or_(
                models.StockMovement.reference.ilike(pattern),
                models.StockMovement.notes.ilike(pattern),
                models.Product.name.ilike(pattern),
                models.Product.sku.ilike(pattern),
            )
        )
    return (
        query.order_by(models.StockMovement.movement_date.desc(), models.StockMovement.id.desc())
        .limit(limit)
        .all()
    )
