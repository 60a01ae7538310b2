from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, JSON, Numeric, String, desc

from ...database import Base
from ...utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEvent(Base):
    """
    One row per state change on a business record.

    `reference` carries the human document number (INV-2026-00001, a bill
    number, a SKU) so the trail reads without joins; `amount` is the money
    moved by the action, when there is one.
    """

    __tablename__ = "audit_events"
    __table_args__ = (
        Index("ix_audit_events_company_entity", "company_id", "entity_type", "entity_id"),
        Index("ix_audit_events_company_reference", "company_id", "reference"),
        Index("ix_audit_events_company_time_desc", "company_id", desc("occurred_at")),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    company_id = Column(String(36), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    entity_type = Column(String(64), nullable=False, index=True)
    entity_id = Column(String(64), nullable=False)
    action = Column(String(64), nullable=False, index=True)
    reference = Column(String(64), nullable=True)
    amount = Column(Numeric(12, 2), nullable=True)
    actor_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    occurred_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    before = Column(JSON, nullable=True)
    after = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        return f"<AuditEvent {self.entity_type}:{self.entity_id} {self.action} ref={self.reference}>"
