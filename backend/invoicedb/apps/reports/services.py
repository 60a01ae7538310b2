"""
Read-only AR/AP reports.

All figures come from stored document totals; nothing here writes.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from invoicedb.apps.inventory import models as inventory_models
from invoicedb.apps.parties import models as party_models
from invoicedb.apps.parties import services as party_services
from invoicedb.apps.parties.schemas import CustomerRead
from invoicedb.apps.payables import models as ap_models
from invoicedb.apps.payables import services as ap_services
from invoicedb.apps.sales import models as sales_models
from invoicedb.utils.decimals import ZERO, round2, to_decimal

from . import schemas

EPS = Decimal("0.00001")
BUCKETS = ("0-30", "31-60", "61-90", "90+")
TOP_N = 5

InvoiceStatus = sales_models.InvoiceStatusEnum


def bucket_for(age_days: int) -> str:
    if age_days <= 30:
        return "0-30"
    if age_days <= 60:
        return "31-60"
    if age_days <= 90:
        return "61-90"
    return "90+"


def _empty_buckets() -> Dict[str, Decimal]:
    return {name: ZERO for name in BUCKETS}


def _finish(as_of: date, buckets: Dict[str, Decimal], rows: List[schemas.AgingRow]) -> schemas.AgingReport:
    rounded = {k: round2(v) for k, v in buckets.items()}
    return schemas.AgingReport(
        as_of=as_of,
        buckets=rounded,
        total=round2(sum(rounded.values(), ZERO)),
        rows=sorted(rows, key=lambda r: (-r.age_days, r.document_id)),
    )


def ar_aging(
    db: Session,
    *,
    company_id: str,
    as_of: Optional[date] = None,
    customer_id: Optional[int] = None,
) -> schemas.AgingReport:
    as_of = as_of or date.today()
    query = db.query(sales_models.Invoice).filter(
        sales_models.Invoice.company_id == company_id,
        sales_models.Invoice.status.notin_([InvoiceStatus.DRAFT, InvoiceStatus.VOID]),
        sales_models.Invoice.balance_remaining > EPS,
    )
    if customer_id:
        query = query.filter(sales_models.Invoice.customer_id == customer_id)

    buckets = _empty_buckets()
    rows: List[schemas.AgingRow] = []
    for invoice in query.all():
        balance = to_decimal(invoice.balance_remaining)
        age = max(0, (as_of - invoice.invoice_date).days)
        bucket = bucket_for(age)
        buckets[bucket] += balance
        rows.append(
            schemas.AgingRow(
                document_id=invoice.id,
                document_number=invoice.invoice_number,
                party_id=invoice.customer_id,
                party_name=invoice.customer.name if invoice.customer else None,
                document_date=invoice.invoice_date,
                due_date=invoice.due_date,
                age_days=age,
                bucket=bucket,
                balance=round2(balance),
            )
        )
    return _finish(as_of, buckets, rows)


def ap_aging(
    db: Session,
    *,
    company_id: str,
    as_of: Optional[date] = None,
    supplier_id: Optional[int] = None,
) -> schemas.AgingReport:
    as_of = as_of or date.today()
    query = db.query(ap_models.SupplierBill).filter(
        ap_models.SupplierBill.company_id == company_id,
        ap_models.SupplierBill.status != ap_models.BillStatusEnum.VOID,
    )
    if supplier_id:
        query = query.filter(ap_models.SupplierBill.supplier_id == supplier_id)
    bills = query.all()
    applied = ap_services.bill_applied_sums(db, company_id=company_id, bill_ids=[b.id for b in bills])

    buckets = _empty_buckets()
    rows: List[schemas.AgingRow] = []
    for bill in bills:
        remaining = to_decimal(bill.total_amount) - applied[bill.id]
        if remaining <= EPS:
            continue
        age = max(0, (as_of - bill.bill_date).days)
        bucket = bucket_for(age)
        buckets[bucket] += remaining
        rows.append(
            schemas.AgingRow(
                document_id=bill.id,
                document_number=bill.bill_no,
                party_id=bill.supplier_id,
                party_name=bill.supplier.name if bill.supplier else None,
                document_date=bill.bill_date,
                due_date=bill.due_date,
                age_days=age,
                bucket=bucket,
                balance=round2(remaining),
            )
        )
    return _finish(as_of, buckets, rows)


def customer_statement(
    db: Session,
    *,
    company_id: str,
    customer_id: int,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> schemas.CustomerStatement:
    customer = party_services.get_customer(db, company_id=company_id, customer_id=customer_id)
    query = db.query(sales_models.Invoice).filter(
        sales_models.Invoice.company_id == company_id,
        sales_models.Invoice.customer_id == customer.id,
        sales_models.Invoice.status != InvoiceStatus.VOID,
    )
    if date_from:
        query = query.filter(sales_models.Invoice.invoice_date >= date_from)
    if date_to:
        query = query.filter(sales_models.Invoice.invoice_date <= date_to)
    invoices = query.order_by(sales_models.Invoice.invoice_date.asc(), sales_models.Invoice.id.asc()).all()

    lines = [
        schemas.StatementLine(
            invoice_id=inv.id,
            invoice_number=inv.invoice_number,
            invoice_date=inv.invoice_date,
            status=inv.status.value,
            gross_total=inv.gross_total,
            amount_paid=inv.amount_paid,
            credits_applied=inv.credits_applied,
            balance_remaining=inv.balance_remaining,
        )
        for inv in invoices
    ]
    totals = schemas.StatementTotals(
        amount=round2(sum((to_decimal(i.gross_total) for i in invoices), ZERO)),
        paid=round2(sum((to_decimal(i.amount_paid) for i in invoices), ZERO)),
        due=round2(sum((to_decimal(i.balance_remaining) for i in invoices), ZERO)),
    )
    return schemas.CustomerStatement(
        customer=CustomerRead.model_validate(customer),
        date_from=date_from,
        date_to=date_to,
        invoices=lines,
        totals=totals,
    )


def sales_summary(
    db: Session,
    *,
    company_id: str,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> schemas.SalesSummary:
    Invoice = sales_models.Invoice
    filters = [
        Invoice.company_id == company_id,
        Invoice.status.notin_([InvoiceStatus.DRAFT, InvoiceStatus.VOID]),
    ]
    if date_from:
        filters.append(Invoice.invoice_date >= date_from)
    if date_to:
        filters.append(Invoice.invoice_date <= date_to)

    count, gross, vat, collected, outstanding = (
        db.query(
            func.count(Invoice.id),
            func.coalesce(func.sum(Invoice.total_amount), 0),
            func.coalesce(func.sum(Invoice.vat_amount), 0),
            func.coalesce(func.sum(Invoice.amount_paid), 0),
            func.coalesce(func.sum(Invoice.balance_remaining), 0),
        )
        .filter(*filters)
        .one()
    )

    CreditNote = sales_models.CreditNote
    cn_query = db.query(func.coalesce(func.sum(CreditNote.total_amount), 0)).filter(
        CreditNote.company_id == company_id,
        CreditNote.status.in_([sales_models.CreditNoteStatusEnum.ISSUED, sales_models.CreditNoteStatusEnum.REFUNDED]),
    )
    if date_from:
        cn_query = cn_query.filter(CreditNote.credit_note_date >= date_from)
    if date_to:
        cn_query = cn_query.filter(CreditNote.credit_note_date <= date_to)
    credit_total = cn_query.scalar()

    customer_total = func.coalesce(func.sum(Invoice.total_amount), 0)
    top_customers = (
        db.query(
            Invoice.customer_id,
            party_models.Customer.name,
            func.count(Invoice.id),
            customer_total,
        )
        .join(party_models.Customer, party_models.Customer.id == Invoice.customer_id)
        .filter(*filters)
        .group_by(Invoice.customer_id, party_models.Customer.name)
        .order_by(customer_total.desc())
        .limit(TOP_N)
        .all()
    )

    Item = sales_models.InvoiceItem
    product_total = func.coalesce(func.sum(Item.line_total), 0)
    top_products = (
        db.query(
            Item.product_id,
            inventory_models.Product.name,
            func.coalesce(func.sum(Item.total_qty), 0),
            product_total,
        )
        .join(Invoice, Invoice.id == Item.invoice_id)
        .join(inventory_models.Product, inventory_models.Product.id == Item.product_id)
        .filter(*filters)
        .group_by(Item.product_id, inventory_models.Product.name)
        .order_by(product_total.desc())
        .limit(TOP_N)
        .all()
    )

    return schemas.SalesSummary(
        date_from=date_from,
        date_to=date_to,
        invoice_count=int(count or 0),
        gross_sales=round2(gross),
        vat_total=round2(vat),
        collected=round2(collected),
        outstanding=round2(outstanding),
        credit_notes_total=round2(credit_total),
        top_customers=[
            schemas.TopCustomer(customer_id=cid, customer_name=name, invoice_count=int(n), total=round2(total))
            for cid, name, n, total in top_customers
        ],
        top_products=[
            schemas.TopProduct(product_id=pid, product_name=name, quantity=to_decimal(qty), total=round2(total))
            for pid, name, qty, total in top_products
        ],
    )


def ap_dashboard(db: Session, *, company_id: str, as_of: Optional[date] = None) -> schemas.APDashboard:
    as_of = as_of or date.today()
    bills = (
        db.query(ap_models.SupplierBill)
        .filter(
            ap_models.SupplierBill.company_id == company_id,
            ap_models.SupplierBill.status.in_(
                [ap_models.BillStatusEnum.OPEN, ap_models.BillStatusEnum.PARTIALLY_PAID]
            ),
        )
        .all()
    )
    applied = ap_services.bill_applied_sums(db, company_id=company_id, bill_ids=[b.id for b in bills])

    total_payable = ZERO
    overdue = ZERO
    for bill in bills:
        remaining = max(ZERO, to_decimal(bill.total_amount) - applied[bill.id])
        total_payable += remaining
        if bill.due_date and bill.due_date < as_of:
            overdue += remaining

    month_start = as_of.replace(day=1)
    payments_this_month = (
        db.query(func.coalesce(func.sum(ap_models.SupplierPayment.amount), 0))
        .filter(
            ap_models.SupplierPayment.company_id == company_id,
            ap_models.SupplierPayment.payment_date >= month_start,
            ap_models.SupplierPayment.payment_date <= as_of,
        )
        .scalar()
    )

    unallocated = sum(
        (p.unallocated for p in ap_services.list_payments(db, company_id=company_id, limit=10000)),
        ZERO,
    )

    return schemas.APDashboard(
        as_of=as_of,
        open_bills=len(bills),
        total_payable=round2(total_payable),
        overdue_amount=round2(overdue),
        payments_this_month=round2(payments_this_month),
        unallocated_payments=round2(unallocated),
    )
