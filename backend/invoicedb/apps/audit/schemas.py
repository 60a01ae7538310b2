from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class AuditEventCreate(BaseModel):
    entity_type: str
    entity_id: str
    action: str
    reference: Optional[str] = None
    amount: Optional[Decimal] = None
    actor_user_id: Optional[str] = None
    occurred_at: Optional[datetime] = None
    before: Optional[dict] = None
    after: Optional[dict] = None


class AuditEventRead(AuditEventCreate):
    id: str
    company_id: str
    occurred_at: datetime
    created_at: datetime

    class Config:
        from_attributes = True
