from __future__ import annotations

from datetime import date

from invoicedb.apps.accounts import models as account_models
from invoicedb.apps.sales import models as sales_models
from invoicedb.apps.sales import numbering

INVOICE = sales_models.DocumentTypeEnum.INVOICE


def _company(db):
    company = account_models.Company(code="SEQ", name="Sequence Ltd", login_slug="seq")
    db.add(company)
    db.commit()
    db.refresh(company)
    return company


def test_numbers_restart_each_year_per_type(db_session):
    company = _company(db_session)

    def draw(document_type, year):
        return numbering.next_document_number(
            db_session, company_id=company.id, document_type=document_type, on_date=date(year, 3, 1)
        )

    assert draw(INVOICE, 2026) == "INV-2026-00001"
    assert draw(INVOICE, 2026) == "INV-2026-00002"
    assert draw(sales_models.DocumentTypeEnum.CREDIT_NOTE, 2026) == "CN-2026-00001"
    assert draw(INVOICE, 2027) == "INV-2027-00001"


def test_year_row_created_by_another_transaction_is_reused(db_session, monkeypatch):
    company = _company(db_session)
    db_session.add(sales_models.DocumentSequence(company_id=company.id, document_type=INVOICE, year=2026, last_value=4))
    db_session.commit()

    # The first lookup misses, as if the other transaction committed right after it.
    lookups = []
    locked = numbering._locked_sequence

    def racing_lookup(db, **kwargs):
        lookups.append(kwargs["year"])
        return None if len(lookups) == 1 else locked(db, **kwargs)

    monkeypatch.setattr(numbering, "_locked_sequence", racing_lookup)

    number = numbering.next_document_number(
        db_session, company_id=company.id, document_type=INVOICE, on_date=date(2026, 5, 1)
    )
    db_session.commit()

    assert number == "INV-2026-00005"
    assert lookups == [2026, 2026]
    rows = db_session.query(sales_models.DocumentSequence).filter_by(company_id=company.id).all()
    assert [(row.year, row.last_value) for row in rows] == [(2026, 5)]
