# backend/invoicedb/apps/accounts/models.py

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from invoicedb.database import Base
from invoicedb.utils.identifiers import company_key, security_event_key, user_key


# ---------------------------------------------------------------------------
# ENUMS / CONSTANTS
# ---------------------------------------------------------------------------


class AccountRole(str, enum.Enum):
    """Application roles. `admin` bypasses every permission check."""

    ADMIN = "admin"
    MANAGER = "manager"
    ACCOUNTANT = "accountant"
    SALES = "sales"
    VIEWER = "viewer"


ALL_PERMISSION_KEYS = (
    "ap.view",
    "ap.bills",
    "ap.payments",
    "ar.view",
    "ar.invoices",
    "stock.view",
    "stock.edit",
    "customers.view",
    "customers.edit",
    "reports.view",
    "settings.view",
    "settings.edit",
    "users.manage",
)


# ---------------------------------------------------------------------------
# TENANT
# ---------------------------------------------------------------------------


class Company(Base):
    """
    Tenant. Every business record is scoped to a company; the company's
    details are printed on invoices, credit notes and quotations.
    """

    __tablename__ = "companies"

    id = Column(String(36), primary_key=True, default=company_key)
    code = Column(String(32), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    login_slug = Column(String(64), unique=True, nullable=False, index=True)

    address = Column(Text, nullable=True)
    phone = Column(String(64), nullable=True)
    email = Column(String(255), nullable=True)
    brn = Column(String(64), nullable=True, doc="Business registration number")
    vat_no = Column(String(64), nullable=True)
    currency = Column(String(8), nullable=False, default="MUR")

    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    users = relationship("User", back_populates="company", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Company {self.code} {self.name}>"


# ---------------------------------------------------------------------------
# USERS
# ---------------------------------------------------------------------------


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("company_id", "email", name="uq_users_company_email"),
        Index("idx_users_role_active", "role", "is_active"),
    )

    id = Column(String(36), primary_key=True, default=user_key)
    company_id = Column(
        String(36),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    email = Column(String(255), nullable=False, index=True)
    full_name = Column(String(255), nullable=True)

    role = Column(String(32), nullable=False, default=AccountRole.VIEWER.value, index=True)
    permissions = Column(JSON, nullable=False, default=dict)

    is_active = Column(Boolean, nullable=False, default=True, index=True)
    hashed_password = Column(String(255), nullable=False)
    must_change_password = Column(Boolean, nullable=False, default=False)

    login_attempts = Column(Integer, nullable=False, default=0)
    lockout_count = Column(Integer, nullable=False, default=0)
    locked_until = Column(DateTime(timezone=True), nullable=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    last_login_ip = Column(String(64), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )
    deactivated_at = Column(DateTime(timezone=True), nullable=True)

    company = relationship("Company", back_populates="users", lazy="joined")

    @property
    def is_admin(self) -> bool:
        return self.role == AccountRole.ADMIN.value

    def has_permission(self, key: str) -> bool:
        if self.is_admin:
            return True
        return bool((self.permissions or {}).get(key))

    def __repr__(self) -> str:
        return f"<User {self.email} role={self.role}>"


class UserActivity(Base):
    """
    Admin activity trail for user provisioning (create / update / delete).
    """

    __tablename__ = "user_activity"
    __table_args__ = (Index("ix_user_activity_company_created", "company_id", "created_at"),)

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(36), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, doc="Actor")
    event = Column(String(64), nullable=False)
    entity = Column(String(64), nullable=False)
    entity_id = Column(String(64), nullable=True)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)


class AccountSecurityEvent(Base):
    """
    Authentication trail (login success / failure / lockout).
    """

    __tablename__ = "account_security_events"
    __table_args__ = (
        Index("idx_security_events_user_created", "user_id", "event_type", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=security_event_key)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    company_id = Column(String(36), ForeignKey("companies.id", ondelete="SET NULL"), nullable=True, index=True)
    event_type = Column(String(64), nullable=False, doc="LOGIN_SUCCESS, LOGIN_FAILED, LOCKOUT")
    description = Column(Text, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)


class IdempotencyKey(Base):
    __tablename__ = "idempotency_keys"
    __table_args__ = (UniqueConstraint("scope", "key", name="uq_idempotency_scope_key"),)

    id = Column(Integer, primary_key=True, index=True)
    scope = Column(String(128), nullable=False)
    key = Column(String(128), nullable=False)
    payload_hash = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
