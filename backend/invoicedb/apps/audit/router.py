from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from invoicedb.apps.accounts.models import AccountRole, User
from invoicedb.database import get_read_db
from invoicedb.security import require_roles

from . import schemas, services

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("", response_model=List[schemas.AuditEventRead])
def list_audit_events(
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    action: Optional[str] = None,
    reference: Optional[str] = Query(None, description="Document number prefix"),
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = Query(500, ge=1, le=2000),
    db: Session = Depends(get_read_db),
    current_user: User = Depends(require_roles(AccountRole.ADMIN, AccountRole.MANAGER)),
):
    return services.list_audit_events(
        db,
        company_id=current_user.company_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        reference=reference,
        start=start,
        end=end,
        limit=limit,
    )
