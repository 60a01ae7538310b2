"""
Unauthenticated print endpoints.

The token is the only credential. Any invalid, revoked or expired link is
answered with the same 404.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from invoicedb.database import get_read_db

from . import models, pdf_renderer, public_links

router = APIRouter(prefix="/public", tags=["public-print"])

DocumentType = models.DocumentTypeEnum


@router.get("/invoice-print")
def invoice_print(
    id: Optional[str] = Query(None),
    t: Optional[str] = Query(None),
    db: Session = Depends(get_read_db),
):
    return public_links.get_public_print_bundle(db, document_type=DocumentType.INVOICE, document_id=id, token=t)


@router.get("/credit-note-print")
def credit_note_print(
    id: Optional[str] = Query(None),
    t: Optional[str] = Query(None),
    db: Session = Depends(get_read_db),
):
    return public_links.get_public_print_bundle(
        db, document_type=DocumentType.CREDIT_NOTE, document_id=id, token=t
    )


@router.get("/quotation-print")
def quotation_print(
    id: Optional[str] = Query(None),
    t: Optional[str] = Query(None),
    db: Session = Depends(get_read_db),
):
    return public_links.get_public_print_bundle(db, document_type=DocumentType.QUOTATION, document_id=id, token=t)


@router.get("/invoice-pdf")
def invoice_pdf(
    id: Optional[str] = Query(None),
    t: Optional[str] = Query(None),
    db: Session = Depends(get_read_db),
):
    bundle = public_links.get_public_print_bundle(db, document_type=DocumentType.INVOICE, document_id=id, token=t)
    filename = pdf_renderer.pdf_filename("Invoice", bundle["invoice"]["id"])
    return Response(
        content=pdf_renderer.render_invoice_pdf(bundle),
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )
