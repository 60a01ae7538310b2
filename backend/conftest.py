from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT))

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_WRITE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"

from invoicedb.database import Base  # noqa: E402
from invoicedb.apps.accounts import models as account_models  # noqa: E402
from invoicedb.apps.audit import models as audit_models  # noqa: E402
from invoicedb.apps.parties import models as party_models  # noqa: E402
from invoicedb.apps.inventory import models as inventory_models  # noqa: E402
from invoicedb.apps.sales import models as sales_models  # noqa: E402
from invoicedb.apps.payables import models as payables_models  # noqa: E402


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(
        bind=engine,
        tables=[
            account_models.Company.__table__,
            account_models.User.__table__,
            account_models.UserActivity.__table__,
            account_models.AccountSecurityEvent.__table__,
            account_models.IdempotencyKey.__table__,
            audit_models.AuditEvent.__table__,
            party_models.Customer.__table__,
            party_models.Supplier.__table__,
            inventory_models.Product.__table__,
            inventory_models.StockMovement.__table__,
            sales_models.DocumentSequence.__table__,
            sales_models.Invoice.__table__,
            sales_models.InvoiceItem.__table__,
            sales_models.InvoicePayment.__table__,
            sales_models.CreditNote.__table__,
            sales_models.CreditNoteItem.__table__,
            sales_models.Quotation.__table__,
            sales_models.QuotationItem.__table__,
            sales_models.PublicLink.__table__,
            payables_models.SupplierBill.__table__,
            payables_models.SupplierPayment.__table__,
            payables_models.SupplierPaymentAllocation.__table__,
        ],
    )
    TestingSession = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
