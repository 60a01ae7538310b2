from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from invoicedb.apps.parties.schemas import CustomerRead


class AgingRow(BaseModel):
    document_id: int
    document_number: Optional[str] = None
    party_id: int
    party_name: Optional[str] = None
    document_date: date
    due_date: Optional[date] = None
    age_days: int
    bucket: str
    balance: Decimal


class AgingReport(BaseModel):
    as_of: date
    buckets: Dict[str, Decimal]
    total: Decimal
    rows: List[AgingRow] = Field(default_factory=list)


class StatementLine(BaseModel):
    invoice_id: int
    invoice_number: str
    invoice_date: date
    status: str
    gross_total: Decimal
    amount_paid: Decimal
    credits_applied: Decimal
    balance_remaining: Decimal


class StatementTotals(BaseModel):
    amount: Decimal
    paid: Decimal
    due: Decimal


class CustomerStatement(BaseModel):
    customer: CustomerRead
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    invoices: List[StatementLine]
    totals: StatementTotals


class TopCustomer(BaseModel):
    customer_id: int
    customer_name: Optional[str] = None
    invoice_count: int
    total: Decimal


class TopProduct(BaseModel):
    product_id: int
    product_name: Optional[str] = None
    quantity: Decimal
    total: Decimal


class SalesSummary(BaseModel):
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    invoice_count: int
    gross_sales: Decimal
    vat_total: Decimal
    collected: Decimal
    outstanding: Decimal
    credit_notes_total: Decimal
    top_customers: List[TopCustomer]
    top_products: List[TopProduct]


class APDashboard(BaseModel):
    as_of: date
    open_bills: int
    total_payable: Decimal
    overdue_amount: Decimal
    payments_this_month: Decimal
    unallocated_payments: Decimal
