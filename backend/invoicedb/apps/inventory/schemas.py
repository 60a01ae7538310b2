from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from . import models


class ProductBase(BaseModel):
    sku: str = Field(..., min_length=1, max_length=64)
    item_code: Optional[str] = None
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    units_per_box: Optional[int] = Field(None, ge=0)
    selling_price: Decimal = Field(Decimal("0"), ge=0)
    cost_price: Optional[Decimal] = None
    stock_unit: models.StockUnitEnum = models.StockUnitEnum.PCS
    selling_price_unit: models.PriceUnitEnum = models.PriceUnitEnum.PCS
    reorder_level: Decimal = Decimal("0")
    is_active: bool = True


class ProductCreate(ProductBase):
    pass


class ProductUpdate(BaseModel):
    item_code: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    units_per_box: Optional[int] = Field(None, ge=0)
    selling_price: Optional[Decimal] = Field(None, ge=0)
    cost_price: Optional[Decimal] = None
    selling_price_unit: Optional[models.PriceUnitEnum] = None
    reorder_level: Optional[Decimal] = None
    is_active: Optional[bool] = None


class ProductRead(ProductBase):
    id: int
    company_id: str
    current_stock: Decimal
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class StockMovementCreate(BaseModel):
    product_id: int
    movement_type: models.StockMovementTypeEnum
    quantity: Decimal = Field(..., description="IN/OUT must be > 0; ADJUSTMENT is a signed delta")
    movement_date: Optional[datetime] = None
    reference: Optional[str] = None
    notes: Optional[str] = None


class StockMovementRead(BaseModel):
    id: int
    company_id: str
    product_id: int
    movement_type: models.StockMovementTypeEnum
    quantity: Decimal
    movement_date: datetime
    reference: Optional[str] = None
    source_table: Optional[str] = None
    source_id: Optional[int] = None
    notes: Optional[str] = None
    created_at: datetime
    created_by_user_id: Optional[str] = None

    class Config:
        from_attributes = True


class StockMovementFilter(BaseModel):
    product_id: Optional[int] = None
    movement_type: Optional[models.StockMovementTypeEnum] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    q: Optional[str] = None


class LowStockItem(BaseModel):
    product_id: int
    sku: str
    name: str
    stock_unit: models.StockUnitEnum
    current_stock: Decimal
    reorder_level: Decimal
