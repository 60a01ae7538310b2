from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from . import models


# ---------------------------------------------------------------------------
# INVOICES
# ---------------------------------------------------------------------------


class InvoiceItemIn(BaseModel):
    product_id: Optional[int] = None
    description: Optional[str] = None
    uom: str = "BOX"
    box_qty: Decimal = Decimal("0")
    pcs_qty: Decimal = Decimal("0")
    units_per_box: Optional[Decimal] = None
    unit_price_excl_vat: Optional[Decimal] = Field(
        None, description="Defaults to the product's selling price"
    )
    vat_rate: Optional[Decimal] = Field(None, description="Defaults to the invoice VAT rate")


class InvoiceCreate(BaseModel):
    customer_id: int
    invoice_date: date
    due_date: Optional[date] = None
    purchase_order_no: Optional[str] = None
    sales_rep: Optional[str] = None
    sales_rep_phone: Optional[str] = None
    notes: Optional[str] = None
    vat_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    discount_percent: Decimal = Field(Decimal("0"), ge=0, le=100)
    previous_balance: Decimal = Decimal("0")
    items: List[InvoiceItemIn] = Field(default_factory=list)
    idempotency_key: Optional[str] = None


class InvoiceHeaderUpdate(BaseModel):
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    purchase_order_no: Optional[str] = None
    sales_rep: Optional[str] = None
    sales_rep_phone: Optional[str] = None
    notes: Optional[str] = None
    vat_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    previous_balance: Optional[Decimal] = None


class InvoiceItemsReplace(BaseModel):
    items: List[InvoiceItemIn]


class DiscountRequest(BaseModel):
    discount_percent: Decimal = Field(..., ge=0, le=100)


class InvoiceItemRead(BaseModel):
    id: int
    invoice_id: int
    product_id: Optional[int] = None
    description: Optional[str] = None
    uom: str
    box_qty: Decimal
    pcs_qty: Decimal
    units_per_box: Decimal
    total_qty: Decimal
    vat_rate: Decimal
    unit_price_excl_vat: Decimal
    unit_vat: Decimal
    unit_price_incl_vat: Decimal
    line_total: Decimal

    class Config:
        from_attributes = True


class InvoiceRead(BaseModel):
    id: int
    company_id: str
    invoice_number: str
    customer_id: int
    invoice_date: date
    due_date: Optional[date] = None
    purchase_order_no: Optional[str] = None
    sales_rep: Optional[str] = None
    sales_rep_phone: Optional[str] = None
    notes: Optional[str] = None
    vat_percent: Decimal
    discount_percent: Decimal
    subtotal: Decimal
    vat_amount: Decimal
    total_amount: Decimal
    discount_amount: Decimal
    previous_balance: Decimal
    gross_total: Decimal
    amount_paid: Decimal
    credits_applied: Decimal
    balance_remaining: Decimal
    balance_due: Decimal
    status: models.InvoiceStatusEnum
    stock_deducted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    items: List[InvoiceItemRead] = Field(default_factory=list)

    class Config:
        from_attributes = True


class InvoiceListItem(BaseModel):
    id: int
    invoice_number: str
    invoice_date: date
    customer_id: int
    customer_name: Optional[str] = None
    customer_code: Optional[str] = None
    sales_rep: Optional[str] = None
    gross_total: Decimal
    amount_paid: Decimal
    credits_applied: Decimal
    balance_remaining: Decimal
    status: models.InvoiceStatusEnum


class InvoicePaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0)
    payment_date: Optional[date] = None
    method: str = "Cash"
    reference: Optional[str] = None
    notes: Optional[str] = None


class InvoicePaymentRead(BaseModel):
    id: int
    invoice_id: int
    payment_date: date
    amount: Decimal
    method: str
    reference: Optional[str] = None
    notes: Optional[str] = None
    is_auto: bool
    created_at: datetime

    class Config:
        from_attributes = True


class SetPaymentRequest(BaseModel):
    amount_paid: Decimal = Field(..., ge=0)


# ---------------------------------------------------------------------------
# CREDIT NOTES
# ---------------------------------------------------------------------------


class CreditNoteItemIn(BaseModel):
    product_id: Optional[int] = None
    description: Optional[str] = None
    total_qty: Decimal = Field(..., ge=0)
    unit_price_excl_vat: Optional[Decimal] = None
    vat_rate: Decimal = Decimal("15")


class CreditNoteCreate(BaseModel):
    customer_id: int
    invoice_id: Optional[int] = None
    credit_note_date: Optional[date] = None
    reason: Optional[str] = None
    status: models.CreditNoteStatusEnum = models.CreditNoteStatusEnum.ISSUED
    items: List[CreditNoteItemIn] = Field(default_factory=list)
    idempotency_key: Optional[str] = None


class CreditNoteItemRead(BaseModel):
    id: int
    credit_note_id: int
    product_id: Optional[int] = None
    description: Optional[str] = None
    total_qty: Decimal
    vat_rate: Decimal
    unit_price_excl_vat: Decimal
    unit_vat: Decimal
    unit_price_incl_vat: Decimal
    line_total: Decimal

    class Config:
        from_attributes = True


class CreditNoteRead(BaseModel):
    id: int
    company_id: str
    credit_note_number: str
    credit_note_date: date
    customer_id: int
    invoice_id: Optional[int] = None
    reason: Optional[str] = None
    subtotal: Decimal
    vat_amount: Decimal
    total_amount: Decimal
    status: models.CreditNoteStatusEnum
    refund_note: Optional[str] = None
    created_at: datetime
    items: List[CreditNoteItemRead] = Field(default_factory=list)

    class Config:
        from_attributes = True


class CreditNoteListItem(BaseModel):
    id: int
    credit_note_number: str
    credit_note_date: date
    total_amount: Decimal
    status: models.CreditNoteStatusEnum
    customer_name: Optional[str] = None
    customer_code: Optional[str] = None


class RefundRequest(BaseModel):
    note: Optional[str] = None


# ---------------------------------------------------------------------------
# QUOTATIONS
# ---------------------------------------------------------------------------


class QuotationItemIn(BaseModel):
    product_id: Optional[int] = None
    description: Optional[str] = None
    uom: str = "BOX"
    box_qty: Decimal = Decimal("0")
    pcs_qty: Decimal = Decimal("0")
    grams_qty: Decimal = Decimal("0")
    bags_qty: Decimal = Decimal("0")
    units_per_box: Optional[Decimal] = None
    total_qty: Optional[Decimal] = None

    unit_price_excl_vat: Optional[Decimal] = None
    unit_vat: Optional[Decimal] = None
    unit_price_incl_vat: Optional[Decimal] = None
    line_total: Optional[Decimal] = None

    base_unit_price_excl_vat: Optional[Decimal] = None
    vat_rate: Optional[Decimal] = None
    price_overridden: bool = False


class QuotationCreate(BaseModel):
    quotation_date: date
    valid_until: Optional[date] = None
    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    customer_code: Optional[str] = None
    sales_rep: Optional[str] = None
    sales_rep_phone: Optional[str] = None
    notes: Optional[str] = None
    discount_percent: Decimal = Field(Decimal("0"), ge=0, le=100)
    discount_amount: Decimal = Field(Decimal("0"), ge=0)
    vat_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    items: List[QuotationItemIn] = Field(default_factory=list)
    idempotency_key: Optional[str] = None


class QuotationStatusUpdate(BaseModel):
    status: models.QuotationStatusEnum


class QuotationItemRead(BaseModel):
    id: int
    quotation_id: int
    product_id: Optional[int] = None
    description: Optional[str] = None
    uom: str
    box_qty: Decimal
    pcs_qty: Decimal
    grams_qty: Decimal
    bags_qty: Decimal
    units_per_box: int
    total_qty: Decimal
    base_unit_price_excl_vat: Decimal
    vat_rate: Optional[Decimal] = None
    price_overridden: bool
    unit_price_excl_vat: Decimal
    unit_vat: Decimal
    unit_price_incl_vat: Decimal
    line_total: Decimal

    class Config:
        from_attributes = True


class QuotationRead(BaseModel):
    id: int
    company_id: str
    quotation_number: str
    quotation_date: date
    valid_until: Optional[date] = None
    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    customer_code: Optional[str] = None
    sales_rep: Optional[str] = None
    sales_rep_phone: Optional[str] = None
    notes: Optional[str] = None
    subtotal: Decimal
    discount_percent: Decimal
    discount_amount: Decimal
    vat_percent: Decimal
    vat_amount: Decimal
    total_amount: Decimal
    status: models.QuotationStatusEnum
    converted_invoice_id: Optional[int] = None
    converted_at: Optional[datetime] = None
    created_at: datetime
    items: List[QuotationItemRead] = Field(default_factory=list)

    class Config:
        from_attributes = True


class QuotationConvertResult(BaseModel):
    invoice_id: int
    invoice_number: str


# ---------------------------------------------------------------------------
# PUBLIC LINKS
# ---------------------------------------------------------------------------


class InvoiceLinkRequest(BaseModel):
    expires_days: Optional[int] = Field(None, ge=0)


class InvoiceLinkResponse(BaseModel):
    ok: bool = True
    invoice_id: int
    token: str
    expires_at: Optional[datetime] = None
    reused: bool
    url: str


class ShareLinkRequest(BaseModel):
    expires_in_days: Optional[int] = Field(None, ge=0)
    note: Optional[str] = None
    rotate: bool = True


class ShareLinkResponse(BaseModel):
    ok: bool = True
    token: str
    url: str
