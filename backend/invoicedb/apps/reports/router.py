from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from invoicedb.database import get_read_db
from invoicedb.permissions import require_permission
from invoicedb.apps.accounts import models as account_models

from . import schemas, services

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/ar-aging", response_model=schemas.AgingReport)
def ar_aging(
    as_of: Optional[date] = None,
    customer_id: Optional[int] = None,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_permission("reports.view")),
):
    return services.ar_aging(db, company_id=current_user.company_id, as_of=as_of, customer_id=customer_id)


@router.get("/customer-statement/{customer_id}", response_model=schemas.CustomerStatement)
def customer_statement(
    customer_id: int,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_permission("reports.view")),
):
    return services.customer_statement(
        db,
        company_id=current_user.company_id,
        customer_id=customer_id,
        date_from=date_from,
        date_to=date_to,
    )


@router.get("/sales-summary", response_model=schemas.SalesSummary)
def sales_summary(
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_permission("reports.view")),
):
    return services.sales_summary(db, company_id=current_user.company_id, date_from=date_from, date_to=date_to)


@router.get("/ap-aging", response_model=schemas.AgingReport)
def ap_aging(
    as_of: Optional[date] = None,
    supplier_id: Optional[int] = None,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_permission("ap.view")),
):
    return services.ap_aging(db, company_id=current_user.company_id, as_of=as_of, supplier_id=supplier_id)


@router.get("/ap-dashboard", response_model=schemas.APDashboard)
def ap_dashboard(
    as_of: Optional[date] = None,
    db: Session = Depends(get_read_db),
    current_user: account_models.User = Depends(require_permission("ap.view")),
):
    return services.ap_dashboard(db, company_id=current_user.company_id, as_of=as_of)
