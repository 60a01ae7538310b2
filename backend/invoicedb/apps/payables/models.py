from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from invoicedb.database import Base


def _utcnow() -> datetime:
    return datetime.utcnow()


class BillStatusEnum(str, enum.Enum):
    OPEN = "OPEN"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    VOID = "VOID"


class SupplierBill(Base):
    __tablename__ = "supplier_bills"
    __table_args__ = (
        Index("ix_supplier_bills_company_supplier", "company_id", "supplier_id"),
        Index("ix_supplier_bills_company_date", "company_id", "bill_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(36), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    supplier_id = Column(Integer, ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False, index=True)
    bill_no = Column(String(64), nullable=True, index=True)
    bill_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True)
    currency = Column(String(8), nullable=False, default="MUR")
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)
    status = Column(
        SAEnum(BillStatusEnum, name="bill_status_enum", native_enum=False),
        nullable=False,
        default=BillStatusEnum.OPEN,
        index=True,
    )
    voided_at = Column(DateTime(timezone=True), nullable=True)

    created_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    supplier = relationship("Supplier", lazy="joined")


class SupplierPayment(Base):
    __tablename__ = "supplier_payments"
    __table_args__ = (Index("ix_supplier_payments_company_date", "company_id", "payment_date"),)

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(36), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    supplier_id = Column(Integer, ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False, index=True)
    payment_date = Column(Date, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    method = Column(String(64), nullable=False, default="Bank Transfer")
    reference = Column(String(128), nullable=True)
    notes = Column(Text, nullable=True)

    created_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    supplier = relationship("Supplier", lazy="joined")
    allocations = relationship(
        "SupplierPaymentAllocation",
        back_populates="payment",
        lazy="selectin",
        cascade="all, delete-orphan",
    )


class SupplierPaymentAllocation(Base):
    __tablename__ = "supplier_payment_allocations"
    __table_args__ = (
        UniqueConstraint("payment_id", "bill_id", name="uq_supplier_allocation_payment_bill"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(36), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    payment_id = Column(
        Integer, ForeignKey("supplier_payments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    bill_id = Column(Integer, ForeignKey("supplier_bills.id", ondelete="CASCADE"), nullable=False, index=True)
    amount_applied = Column(Numeric(12, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    payment = relationship("SupplierPayment", back_populates="allocations")
    bill = relationship("SupplierBill", lazy="joined")
