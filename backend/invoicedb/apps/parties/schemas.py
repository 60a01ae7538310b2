from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class CustomerBase(BaseModel):
    customer_code: str = Field(..., min_length=1, max_length=32)
    name: str = Field(..., min_length=1)
    address: Optional[str] = None
    phone: Optional[str] = None
    whatsapp: Optional[str] = None
    email: Optional[str] = None
    brn: Optional[str] = None
    vat_no: Optional[str] = None
    discount_percent: Decimal = Field(Decimal("0"), ge=0, le=100)
    opening_balance: Decimal = Decimal("0")
    is_active: bool = True


class CustomerCreate(CustomerBase):
    pass


class CustomerUpdate(BaseModel):
    customer_code: Optional[str] = None
    name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    whatsapp: Optional[str] = None
    email: Optional[str] = None
    brn: Optional[str] = None
    vat_no: Optional[str] = None
    discount_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    opening_balance: Optional[Decimal] = None
    is_active: Optional[bool] = None


class CustomerRead(CustomerBase):
    id: int
    company_id: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class SupplierBase(BaseModel):
    supplier_code: Optional[str] = None
    name: str = Field(..., min_length=1)
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    vat_no: Optional[str] = None
    is_active: bool = True


class SupplierCreate(SupplierBase):
    pass


class SupplierUpdate(BaseModel):
    supplier_code: Optional[str] = None
    name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    vat_no: Optional[str] = None
    is_active: Optional[bool] = None


class SupplierRead(SupplierBase):
    id: int
    company_id: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
