from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from invoicedb.apps.accounts import models as account_models
from invoicedb.apps.inventory import schemas as inventory_schemas
from invoicedb.apps.inventory import services as inventory_services
from invoicedb.apps.parties import schemas as party_schemas
from invoicedb.apps.parties import services as party_services
from invoicedb.apps.payables import schemas as ap_schemas
from invoicedb.apps.payables import services as ap_services
from invoicedb.apps.reports.router import ar_aging
from invoicedb.apps.reports import services as report_services
from invoicedb.apps.sales import models as sales_models
from invoicedb.apps.sales import schemas as sales_schemas
from invoicedb.apps.sales import services as sales_services


def _create_company(db) -> account_models.Company:
    company = account_models.Company(code="RPT", name="Reporting Ltd", login_slug="reporting")
    db.add(company)
    db.commit()
    db.refresh(company)
    return company


def _customer(db, company_id, code, name):
    return party_services.create_customer(
        db,
        company_id=company_id,
        payload=party_schemas.CustomerCreate(customer_code=code, name=name),
        actor_user_id=None,
    )


def _product(db, company_id, sku, price):
    return inventory_services.create_product(
        db,
        company_id=company_id,
        payload=inventory_schemas.ProductCreate(sku=sku, name=sku.title(), selling_price=Decimal(price)),
        actor_user_id=None,
    )


def _posted_invoice(db, company_id, customer, product, on, pcs, *, post=True):
    invoice = sales_services.create_invoice(
        db,
        company_id=company_id,
        payload=sales_schemas.InvoiceCreate(
            customer_id=customer.id,
            invoice_date=on,
            vat_percent=Decimal("0"),
            items=[sales_schemas.InvoiceItemIn(product_id=product.id, uom="PCS", pcs_qty=Decimal(pcs))],
        ),
        actor_user_id=None,
    )
    if post:
        sales_services.post_invoice_and_deduct_stock(db, company_id=company_id, invoice_id=invoice.id, actor_user_id=None)
    return invoice


@pytest.fixture()
def ar_book(db_session):
    """
    alpha: 2026-01-01 100 open, 2026-03-20 100 with 40 paid, 2026-03-25 draft
    beta:  2026-02-15 200 void, 2026-02-20 100 paid
    """
    company = _create_company(db_session)
    alpha = _customer(db_session, company.id, "A1", "Alpha Foods")
    beta = _customer(db_session, company.id, "B1", "Beta Mart")
    pasta = _product(db_session, company.id, "pasta", "100")
    rice = _product(db_session, company.id, "rice", "50")

    old = _posted_invoice(db_session, company.id, alpha, pasta, date(2026, 1, 1), "1")
    recent = _posted_invoice(db_session, company.id, alpha, pasta, date(2026, 3, 20), "1")
    sales_services.add_payment(
        db_session,
        company_id=company.id,
        invoice_id=recent.id,
        payload=sales_schemas.InvoicePaymentCreate(amount=Decimal("40"), payment_date=date(2026, 3, 22)),
        actor_user_id=None,
    )
    draft = _posted_invoice(db_session, company.id, alpha, pasta, date(2026, 3, 25), "1", post=False)
    voided = _posted_invoice(db_session, company.id, beta, rice, date(2026, 2, 15), "4")
    sales_services.void_invoice(db_session, company_id=company.id, invoice_id=voided.id, actor_user_id=None)
    paid = _posted_invoice(db_session, company.id, beta, rice, date(2026, 2, 20), "2")
    sales_services.mark_invoice_paid(db_session, company_id=company.id, invoice_id=paid.id, actor_user_id=None)

    for status in (sales_models.CreditNoteStatusEnum.ISSUED, sales_models.CreditNoteStatusEnum.PENDING):
        sales_services.create_credit_note(
            db_session,
            company_id=company.id,
            payload=sales_schemas.CreditNoteCreate(
                customer_id=alpha.id,
                credit_note_date=date(2026, 3, 1),
                status=status,
                items=[
                    sales_schemas.CreditNoteItemIn(product_id=rice.id, total_qty=Decimal("1"), vat_rate=Decimal("0"))
                ],
            ),
            actor_user_id=None,
        )

    return {
        "company": company,
        "alpha": alpha,
        "beta": beta,
        "pasta": pasta,
        "rice": rice,
        "old": old,
        "recent": recent,
        "draft": draft,
        "paid": paid,
    }


@pytest.mark.parametrize(
    "age, bucket",
    [(0, "0-30"), (30, "0-30"), (31, "31-60"), (60, "31-60"), (61, "61-90"), (90, "61-90"), (91, "90+")],
)
def test_bucket_for(age, bucket):
    assert report_services.bucket_for(age) == bucket


def test_ar_aging_buckets_open_balances(db_session, ar_book):
    report = report_services.ar_aging(db_session, company_id=ar_book["company"].id, as_of=date(2026, 4, 1))

    assert report.buckets == {
        "0-30": Decimal("60.00"),
        "31-60": Decimal("0.00"),
        "61-90": Decimal("100.00"),
        "90+": Decimal("0.00"),
    }
    assert report.total == Decimal("160.00")
    assert [row.document_id for row in report.rows] == [ar_book["old"].id, ar_book["recent"].id]
    assert report.rows[0].age_days == 90
    assert report.rows[0].party_name == "Alpha Foods"

    beta_only = report_services.ar_aging(
        db_session, company_id=ar_book["company"].id, as_of=date(2026, 4, 1), customer_id=ar_book["beta"].id
    )
    assert beta_only.rows == []
    assert beta_only.total == Decimal("0.00")


def test_ar_aging_future_dated_invoice_is_current(db_session, ar_book):
    report = report_services.ar_aging(db_session, company_id=ar_book["company"].id, as_of=date(2025, 12, 1))
    assert {row.age_days for row in report.rows} == {0}
    assert report.buckets["0-30"] == Decimal("160.00")


def test_customer_statement(db_session, ar_book):
    statement = report_services.customer_statement(
        db_session, company_id=ar_book["company"].id, customer_id=ar_book["alpha"].id
    )
    assert statement.customer.customer_code == "A1"
    assert [line.invoice_id for line in statement.invoices] == [
        ar_book["old"].id,
        ar_book["recent"].id,
        ar_book["draft"].id,
    ]
    assert statement.invoices[2].status == "DRAFT"
    assert statement.totals.amount == Decimal("300.00")
    assert statement.totals.paid == Decimal("40.00")
    assert statement.totals.due == Decimal("260.00")

    march = report_services.customer_statement(
        db_session,
        company_id=ar_book["company"].id,
        customer_id=ar_book["alpha"].id,
        date_from=date(2026, 3, 1),
        date_to=date(2026, 3, 31),
    )
    assert len(march.invoices) == 2
    assert march.totals.due == Decimal("160.00")

    beta = report_services.customer_statement(
        db_session, company_id=ar_book["company"].id, customer_id=ar_book["beta"].id
    )
    assert [line.invoice_id for line in beta.invoices] == [ar_book["paid"].id]


def test_sales_summary(db_session, ar_book):
    summary = report_services.sales_summary(db_session, company_id=ar_book["company"].id)

    assert summary.invoice_count == 3
    assert summary.gross_sales == Decimal("300.00")
    assert summary.vat_total == Decimal("0.00")
    assert summary.collected == Decimal("140.00")
    assert summary.outstanding == Decimal("160.00")
    assert summary.credit_notes_total == Decimal("50.00")

    assert [(c.customer_name, c.invoice_count, c.total) for c in summary.top_customers] == [
        ("Alpha Foods", 2, Decimal("200.00")),
        ("Beta Mart", 1, Decimal("100.00")),
    ]
    assert [p.product_id for p in summary.top_products] == [ar_book["pasta"].id, ar_book["rice"].id]
    assert summary.top_products[1].quantity == Decimal("2")

    february = report_services.sales_summary(
        db_session, company_id=ar_book["company"].id, date_from=date(2026, 2, 1), date_to=date(2026, 2, 28)
    )
    assert february.invoice_count == 1
    assert february.credit_notes_total == Decimal("0.00")


def test_ar_aging_route_uses_callers_company(db_session, ar_book):
    user = account_models.User(
        company_id=ar_book["company"].id, email="viewer@example.com", hashed_password="x", role="viewer"
    )
    report = ar_aging(as_of=date(2026, 4, 1), customer_id=None, db=db_session, current_user=user)
    assert report.total == Decimal("160.00")


@pytest.fixture()
def ap_book(db_session):
    company = _create_company(db_session)
    supplier = party_services.create_supplier(
        db_session,
        company_id=company.id,
        payload=party_schemas.SupplierCreate(name="Sugar Estate"),
        actor_user_id=None,
    )

    def bill(amount, on, due):
        return ap_services.create_bill(
            db_session,
            company_id=company.id,
            payload=ap_schemas.SupplierBillCreate(
                supplier_id=supplier.id, bill_date=on, due_date=due, total_amount=Decimal(amount)
            ),
            actor_user_id=None,
        )

    def payment(amount, on):
        return ap_services.create_payment(
            db_session,
            company_id=company.id,
            payload=ap_schemas.SupplierPaymentCreate(supplier_id=supplier.id, payment_date=on, amount=Decimal(amount)),
            actor_user_id=None,
        )

    old = bill("300", date(2026, 1, 10), date(2026, 2, 10))
    recent = bill("200", date(2026, 3, 15), date(2026, 4, 15))
    voided = bill("50", date(2026, 3, 1), None)
    ap_services.void_bill(db_session, company_id=company.id, bill_id=voided.id, actor_user_id=None)

    paying = payment("100", date(2026, 4, 5))
    ap_services.save_allocations(
        db_session, company_id=company.id, payment_id=paying.id, desired={old.id: Decimal("100")}, actor_user_id=None
    )
    payment("80", date(2026, 3, 20))
    return {"company": company, "supplier": supplier, "old": old, "recent": recent}


def test_ap_aging(db_session, ap_book):
    report = report_services.ap_aging(db_session, company_id=ap_book["company"].id, as_of=date(2026, 4, 10))
    assert report.buckets["61-90"] == Decimal("200.00")
    assert report.buckets["0-30"] == Decimal("200.00")
    assert report.total == Decimal("400.00")
    assert [row.document_id for row in report.rows] == [ap_book["old"].id, ap_book["recent"].id]
    assert report.rows[0].party_name == "Sugar Estate"


def test_ap_dashboard(db_session, ap_book):
    dashboard = report_services.ap_dashboard(db_session, company_id=ap_book["company"].id, as_of=date(2026, 4, 10))
    assert dashboard.open_bills == 2
    assert dashboard.total_payable == Decimal("400.00")
    assert dashboard.overdue_amount == Decimal("200.00")
    assert dashboard.payments_this_month == Decimal("100.00")
    assert dashboard.unallocated_payments == Decimal("80.00")
