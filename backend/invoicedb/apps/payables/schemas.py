from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from . import models


class SupplierBillCreate(BaseModel):
    supplier_id: int
    bill_no: Optional[str] = None
    bill_date: date
    due_date: Optional[date] = None
    currency: str = "MUR"
    total_amount: Decimal = Field(..., ge=0)
    notes: Optional[str] = None


class SupplierBillRead(BaseModel):
    id: int
    company_id: str
    supplier_id: int
    bill_no: Optional[str] = None
    bill_date: date
    due_date: Optional[date] = None
    currency: str
    total_amount: Decimal
    notes: Optional[str] = None
    status: models.BillStatusEnum
    created_at: datetime

    class Config:
        from_attributes = True


class SupplierBillListItem(SupplierBillRead):
    supplier_name: Optional[str] = None
    amount_applied: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")


class SupplierPaymentCreate(BaseModel):
    supplier_id: int
    payment_date: date
    amount: Decimal = Field(..., gt=0)
    method: str = "Bank Transfer"
    reference: Optional[str] = None
    notes: Optional[str] = None


class SupplierPaymentRead(BaseModel):
    id: int
    company_id: str
    supplier_id: int
    payment_date: date
    amount: Decimal
    method: str
    reference: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class SupplierPaymentListItem(SupplierPaymentRead):
    supplier_name: Optional[str] = None
    allocated: Decimal = Decimal("0")
    unallocated: Decimal = Decimal("0")


class AllocationRead(BaseModel):
    id: int
    payment_id: int
    bill_id: int
    amount_applied: Decimal

    class Config:
        from_attributes = True


class AllocationSaveRequest(BaseModel):
    allocations: Dict[int, Decimal] = Field(
        default_factory=dict, description="bill_id -> amount to apply from this payment"
    )


class AllocationResult(BaseModel):
    payment_id: int
    allocations: List[AllocationRead]
    unallocated: Decimal
