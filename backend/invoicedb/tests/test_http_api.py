from __future__ import annotations

from datetime import date
from decimal import Decimal
import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from invoicedb import main
from invoicedb.apps.accounts import models as account_models
from invoicedb.apps.inventory import schemas as inventory_schemas
from invoicedb.apps.inventory import services as inventory_services
from invoicedb.apps.parties import schemas as party_schemas
from invoicedb.apps.parties import services as party_services
from invoicedb.apps.sales import public_links
from invoicedb.apps.sales import schemas as sales_schemas
from invoicedb.apps.sales import services as sales_services
from invoicedb.database import Base, get_read_db, get_write_db
from invoicedb.security import create_access_token

PUBLIC_PATHS = (
    "/public/invoice-print",
    "/public/credit-note-print",
    "/public/quotation-print",
    "/public/invoice-pdf",
)


@pytest.fixture()
def api():
    # Requests run in a worker thread, so every session must share one connection.
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

    def _session():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app = main.create_app()
    app.dependency_overrides[get_write_db] = _session
    app.dependency_overrides[get_read_db] = _session

    db = TestingSession()
    try:
        yield TestClient(app), db
    finally:
        db.close()
        engine.dispose()


def _book(db):
    company = account_models.Company(code="HTTP", name="Http Traders", login_slug="http")
    db.add(company)
    db.commit()
    db.refresh(company)
    customer = party_services.create_customer(
        db,
        company_id=company.id,
        payload=party_schemas.CustomerCreate(customer_code="H01", name="Port Louis Deli"),
        actor_user_id=None,
    )
    product = inventory_services.create_product(
        db,
        company_id=company.id,
        payload=inventory_schemas.ProductCreate(sku="RICE", name="Basmati Rice", selling_price=Decimal("12")),
        actor_user_id=None,
    )
    invoice = sales_services.create_invoice(
        db,
        company_id=company.id,
        payload=sales_schemas.InvoiceCreate(
            customer_id=customer.id,
            invoice_date=date(2026, 8, 3),
            items=[sales_schemas.InvoiceItemIn(product_id=product.id, uom="PCS", pcs_qty=Decimal("2"))],
        ),
        actor_user_id=None,
    )
    return company, invoice


def _auth(db, company, email, permissions):
    user = account_models.User(
        company_id=company.id,
        email=email,
        hashed_password="x",
        role="sales",
        permissions=permissions,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    token = create_access_token(data={"sub": user.id, "company_id": company.id})
    return {"Authorization": f"Bearer {token}"}


def test_invoice_list_requires_ar_view(api):
    client, db = api
    company, invoice = _book(db)
    reader = _auth(db, company, "reader@http.mu", {"ar.view": True})
    stranger = _auth(db, company, "stock@http.mu", {"stock.view": True})

    ok = client.get("/invoices", headers=reader)
    assert ok.status_code == 200
    assert [row["id"] for row in ok.json()] == [invoice.id]

    denied = client.get("/invoices", headers=stranger)
    assert denied.status_code == 403

    assert client.get("/invoices").status_code == 401


def test_invoice_pdf_is_served_inline(api):
    client, db = api
    company, invoice = _book(db)
    reader = _auth(db, company, "reader@http.mu", {"ar.view": True})

    response = client.get(f"/invoices/{invoice.id}/pdf", headers=reader)

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert response.headers["content-disposition"] == f'inline; filename="Invoice-{invoice.id}.pdf"'
    assert response.content.startswith(b"%PDF")


def test_public_print_with_valid_link(api):
    client, db = api
    company, invoice = _book(db)
    link = public_links.create_invoice_public_link(
        db, company_id=company.id, invoice_id=invoice.id, expires_days=None, actor_user_id=None
    )

    bundle = client.get("/public/invoice-print", params={"id": str(invoice.id), "t": link["token"]})
    assert bundle.status_code == 200
    assert bundle.json()["invoice"]["invoice_number"] == invoice.invoice_number

    pdf = client.get("/public/invoice-pdf", params={"id": invoice.id, "t": link["token"]})
    assert pdf.status_code == 200
    assert pdf.headers["content-disposition"] == f'inline; filename="Invoice-{invoice.id}.pdf"'


@pytest.mark.parametrize("path", PUBLIC_PATHS)
@pytest.mark.parametrize("bad_id", ["abc", "1.5", "-1", "0", ""])
def test_public_print_rejects_malformed_ids_with_404(api, path, bad_id):
    client, _ = api

    response = client.get(path, params={"id": bad_id, "t": str(uuid.uuid4())})

    assert response.status_code == 404
    assert response.json() == {"detail": public_links.NOT_FOUND_DETAIL}


@pytest.mark.parametrize("path", PUBLIC_PATHS)
def test_public_print_without_params_is_404(api, path):
    client, _ = api

    response = client.get(path)

    assert response.status_code == 404
    assert response.json() == {"detail": public_links.NOT_FOUND_DETAIL}


def test_lifespan_runs_startup_hooks(monkeypatch):
    calls = []
    monkeypatch.setattr(main, "_on_startup", lambda: calls.append("startup"))

    with TestClient(main.create_app()) as client:
        assert calls == ["startup"]
        health = client.get("/health")

    assert health.status_code == 200
    assert health.json() == {"status": "ok", "database": "ok"}
