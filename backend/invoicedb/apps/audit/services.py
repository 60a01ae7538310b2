"""
Audit trail writes and reads.

Writes join the caller's transaction: the event is flushed, never committed
here, so a rolled back document change takes its audit row with it.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from invoicedb.utils.decimals import round2

from . import models, schemas

logger = logging.getLogger(__name__)


def create_audit_event(
    db: Session,
    *,
    company_id: str,
    data: schemas.AuditEventCreate,
) -> models.AuditEvent:
    event = models.AuditEvent(company_id=company_id, **data.model_dump(exclude_none=True))
    if event.amount is not None:
        event.amount = round2(event.amount)
    db.add(event)
    db.flush()
    return event


def log_event(
    db: Session,
    *,
    company_id: str,
    actor_user_id: Optional[str],
    entity_type: str,
    entity_id: Any,
    action: str,
    reference: Optional[str] = None,
    amount: Any = None,
    before: Optional[dict] = None,
    after: Optional[dict] = None,
    critical: bool = False,
) -> Optional[models.AuditEvent]:
    """
    Record an action. Money-moving actions (post, void, payments, refunds)
    pass critical=True and abort with the caller if the row cannot be
    written; everything else only logs a warning.
    """
    try:
        return create_audit_event(
            db,
            company_id=company_id,
            data=schemas.AuditEventCreate(
                entity_type=entity_type,
                entity_id=str(entity_id),
                action=action,
                reference=reference,
                amount=amount,
                actor_user_id=actor_user_id,
                before=before,
                after=after,
            ),
        )
    except Exception:
        logger.warning(
            "Audit write failed for %s %s",
            entity_type,
            action,
            extra={
                "company_id": company_id,
                "entity_id": str(entity_id),
                "reference": reference,
                "critical": critical,
            },
        )
        if critical:
            raise
        return None


def list_audit_events(
    db: Session,
    *,
    company_id: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    action: Optional[str] = None,
    reference: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 500,
) -> List[models.AuditEvent]:
    """Newest first. `reference` is a prefix match (e.g. "INV-2026")."""
    Event = models.AuditEvent
    query = db.query(Event).filter(Event.company_id == company_id)
    if entity_type:
        query = query.filter(Event.entity_type == entity_type)
    if entity_id:
        query = query.filter(Event.entity_id == str(entity_id))
    if action:
        query = query.filter(Event.action == action)
    if reference:
        query = query.filter(Event.reference.like(f"{reference.strip()}%"))
    if start:
        query = query.filter(Event.occurred_at >= start)
    if end:
        query = query.filter(Event.occurred_at <= end)
    return query.order_by(Event.occurred_at.desc(), Event.id.desc()).limit(limit).all()
