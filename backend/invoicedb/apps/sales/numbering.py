from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models

PREFIXES = {
    models.DocumentTypeEnum.INVOICE: "INV",
    models.DocumentTypeEnum.CREDIT_NOTE: "CN",
    models.DocumentTypeEnum.QUOTATION: "QUO",
}


def format_document_number(document_type: models.DocumentTypeEnum, year: int, value: int) -> str:
    return f"{PREFIXES[document_type]}-{year}-{value:05d}"


def _locked_sequence(db: Session, *, company_id: str, document_type, year: int):
    return (
        db.query(models.DocumentSequence)
        .filter(
            models.DocumentSequence.company_id == company_id,
            models.DocumentSequence.document_type == document_type,
            models.DocumentSequence.year == year,
        )
        .with_for_update()
        .first()
    )


def _create_sequence(db: Session, *, company_id: str, document_type, year: int):
    """
    Insert the year's first row inside a savepoint. When a concurrent
    transaction inserted it first, the unique constraint fires and the
    committed row is locked and used instead.
    """
    seq = models.DocumentSequence(company_id=company_id, document_type=document_type, year=year, last_value=0)
    try:
        with db.begin_nested():
            db.add(seq)
    except IntegrityError:
        seq = _locked_sequence(db, company_id=company_id, document_type=document_type, year=year)
        if seq is None:
            raise
    return seq


def next_document_number(
    db: Session,
    *,
    company_id: str,
    document_type: models.DocumentTypeEnum,
    on_date: Optional[date] = None,
) -> str:
    """
    Allocate the next number for a company/type/year.

    The sequence row is locked for the rest of the transaction so two
    concurrent creates cannot draw the same value.
    """
    year = (on_date or date.today()).year
    seq = _locked_sequence(db, company_id=company_id, document_type=document_type, year=year)
    if seq is None:
        seq = _create_sequence(db, company_id=company_id, document_type=document_type, year=year)

    seq.last_value = (seq.last_value or 0) + 1
    db.flush()
    return format_document_number(document_type, year, seq.last_value)
