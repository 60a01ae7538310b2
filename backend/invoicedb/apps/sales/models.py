from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
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
from invoicedb.utils.identifiers import generate_public_token


def _utcnow() -> datetime:
    return datetime.utcnow()


class InvoiceStatusEnum(str, enum.Enum):
    DRAFT = "DRAFT"
    ISSUED = "ISSUED"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    VOID = "VOID"


class CreditNoteStatusEnum(str, enum.Enum):
    ISSUED = "ISSUED"
    PENDING = "PENDING"
    REFUNDED = "REFUNDED"
    VOID = "VOID"


class QuotationStatusEnum(str, enum.Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    CONVERTED = "CONVERTED"


class DocumentTypeEnum(str, enum.Enum):
    INVOICE = "INVOICE"
    CREDIT_NOTE = "CREDIT_NOTE"
    QUOTATION = "QUOTATION"


# ---------------------------------------------------------------------------
# NUMBERING
# ---------------------------------------------------------------------------


class DocumentSequence(Base):
    """Per-company, per-year counter behind INV-/CN-/QUO- numbers."""

    __tablename__ = "document_sequences"
    __table_args__ = (
        UniqueConstraint("company_id", "document_type", "year", name="uq_document_sequence"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(36), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    document_type = Column(
        SAEnum(DocumentTypeEnum, name="document_type_enum", native_enum=False),
        nullable=False,
    )
    year = Column(Integer, nullable=False)
    last_value = Column(Integer, nullable=False, default=0)


# ---------------------------------------------------------------------------
# INVOICES
# ---------------------------------------------------------------------------


class Invoice(Base):
    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("company_id", "invoice_number", name="uq_invoices_company_number"),
        UniqueConstraint("company_id", "idempotency_key", name="uq_invoices_idempotency"),
        Index("ix_invoices_company_date", "company_id", "invoice_date"),
        Index("ix_invoices_company_status", "company_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(36), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    invoice_number = Column(String(32), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True)
    idempotency_key = Column(String(128), nullable=True)

    invoice_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True)
    purchase_order_no = Column(String(64), nullable=True)
    sales_rep = Column(String(128), nullable=True)
    sales_rep_phone = Column(String(64), nullable=True)
    notes = Column(Text, nullable=True)

    vat_percent = Column(Numeric(5, 2), nullable=False, default=15)
    discount_percent = Column(Numeric(5, 2), nullable=False, default=0)

    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    vat_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    previous_balance = Column(Numeric(12, 2), nullable=False, default=0)
    gross_total = Column(Numeric(12, 2), nullable=False, default=0)
    amount_paid = Column(Numeric(12, 2), nullable=False, default=0)
    credits_applied = Column(Numeric(12, 2), nullable=False, default=0)
    balance_remaining = Column(Numeric(12, 2), nullable=False, default=0)
    balance_due = Column(Numeric(12, 2), nullable=False, default=0)

    status = Column(
        SAEnum(InvoiceStatusEnum, name="invoice_status_enum", native_enum=False),
        nullable=False,
        default=InvoiceStatusEnum.DRAFT,
        index=True,
    )
    stock_deducted_at = Column(DateTime(timezone=True), nullable=True)
    voided_at = Column(DateTime(timezone=True), nullable=True)

    # Mirror of the invoice's current PublicLink.
    public_token = Column(String(36), nullable=True, index=True)
    public_token_revoked = Column(Boolean, nullable=False, default=False)
    public_token_expires_at = Column(DateTime(timezone=True), nullable=True)

    created_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    customer = relationship("Customer", lazy="joined")
    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.id",
    )
    payments = relationship(
        "InvoicePayment",
        back_populates="invoice",
        lazy="selectin",
        cascade="all, delete-orphan",
    )


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)
    description = Column(Text, nullable=True)

    uom = Column(String(8), nullable=False, default="BOX")
    box_qty = Column(Numeric(14, 3), nullable=False, default=0)
    pcs_qty = Column(Numeric(14, 3), nullable=False, default=0)
    units_per_box = Column(Numeric(14, 3), nullable=False, default=1)
    total_qty = Column(Numeric(16, 6), nullable=False, default=0)
    vat_rate = Column(Numeric(5, 2), nullable=False, default=15)

    unit_price_excl_vat = Column(Numeric(12, 2), nullable=False, default=0)
    unit_vat = Column(Numeric(12, 2), nullable=False, default=0)
    unit_price_incl_vat = Column(Numeric(12, 2), nullable=False, default=0)
    line_total = Column(Numeric(12, 2), nullable=False, default=0)

    invoice = relationship("Invoice", back_populates="items")
    product = relationship("Product", lazy="joined")


class InvoicePayment(Base):
    __tablename__ = "invoice_payments"
    __table_args__ = (Index("ix_invoice_payments_invoice_date", "invoice_id", "payment_date"),)

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(36), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    payment_date = Column(Date, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    method = Column(String(64), nullable=False, default="Cash")
    reference = Column(String(128), nullable=True)
    notes = Column(Text, nullable=True)
    is_auto = Column(Boolean, nullable=False, default=False)
    created_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    invoice = relationship("Invoice", back_populates="payments")


# ---------------------------------------------------------------------------
# CREDIT NOTES
# ---------------------------------------------------------------------------


class CreditNote(Base):
    __tablename__ = "credit_notes"
    __table_args__ = (
        UniqueConstraint("company_id", "credit_note_number", name="uq_credit_notes_company_number"),
        UniqueConstraint("company_id", "idempotency_key", name="uq_credit_notes_idempotency"),
        Index("ix_credit_notes_company_date", "company_id", "credit_note_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(36), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    credit_note_number = Column(String(32), nullable=False, index=True)
    credit_note_date = Column(Date, nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True, index=True)
    idempotency_key = Column(String(128), nullable=True)
    reason = Column(Text, nullable=True)

    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    vat_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    status = Column(
        SAEnum(CreditNoteStatusEnum, name="credit_note_status_enum", native_enum=False),
        nullable=False,
        default=CreditNoteStatusEnum.ISSUED,
        index=True,
    )
    refund_note = Column(Text, nullable=True)

    created_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    customer = relationship("Customer", lazy="joined")
    invoice = relationship("Invoice", lazy="select")
    items = relationship(
        "CreditNoteItem",
        back_populates="credit_note",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="CreditNoteItem.id",
    )


class CreditNoteItem(Base):
    __tablename__ = "credit_note_items"

    id = Column(Integer, primary_key=True, index=True)
    credit_note_id = Column(Integer, ForeignKey("credit_notes.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)
    description = Column(Text, nullable=True)
    total_qty = Column(Numeric(16, 6), nullable=False, default=0)
    vat_rate = Column(Numeric(5, 2), nullable=False, default=15)
    unit_price_excl_vat = Column(Numeric(12, 2), nullable=False, default=0)
    unit_vat = Column(Numeric(12, 2), nullable=False, default=0)
    unit_price_incl_vat = Column(Numeric(12, 2), nullable=False, default=0)
    line_total = Column(Numeric(12, 2), nullable=False, default=0)

    credit_note = relationship("CreditNote", back_populates="items")
    product = relationship("Product", lazy="joined")


# ---------------------------------------------------------------------------
# QUOTATIONS
# ---------------------------------------------------------------------------


class Quotation(Base):
    __tablename__ = "quotations"
    __table_args__ = (
        UniqueConstraint("company_id", "quotation_number", name="uq_quotations_company_number"),
        UniqueConstraint("company_id", "idempotency_key", name="uq_quotations_idempotency"),
        Index("ix_quotations_company_date", "company_id", "quotation_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(36), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    quotation_number = Column(String(32), nullable=False, index=True)
    quotation_date = Column(Date, nullable=False)
    valid_until = Column(Date, nullable=True)
    idempotency_key = Column(String(128), nullable=True)

    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True)
    customer_name = Column(String(255), nullable=True)
    customer_code = Column(String(32), nullable=True)
    sales_rep = Column(String(128), nullable=True)
    sales_rep_phone = Column(String(64), nullable=True)
    notes = Column(Text, nullable=True)

    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    discount_percent = Column(Numeric(5, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    vat_percent = Column(Numeric(5, 2), nullable=False, default=15)
    vat_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)

    status = Column(
        SAEnum(QuotationStatusEnum, name="quotation_status_enum", native_enum=False),
        nullable=False,
        default=QuotationStatusEnum.DRAFT,
        index=True,
    )
    converted_invoice_id = Column(Integer, ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True)
    converted_at = Column(DateTime(timezone=True), nullable=True)

    created_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    customer = relationship("Customer", lazy="joined")
    items = relationship(
        "QuotationItem",
        back_populates="quotation",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="QuotationItem.id",
    )


class QuotationItem(Base):
    __tablename__ = "quotation_items"

    id = Column(Integer, primary_key=True, index=True)
    quotation_id = Column(Integer, ForeignKey("quotations.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)
    description = Column(Text, nullable=True)

    uom = Column(String(8), nullable=False, default="BOX")
    box_qty = Column(Numeric(14, 3), nullable=False, default=0)
    pcs_qty = Column(Numeric(14, 3), nullable=False, default=0)
    grams_qty = Column(Numeric(14, 3), nullable=False, default=0)
    bags_qty = Column(Numeric(14, 3), nullable=False, default=0)
    units_per_box = Column(Integer, nullable=False, default=1)
    total_qty = Column(Numeric(16, 6), nullable=False, default=0)

    base_unit_price_excl_vat = Column(Numeric(12, 2), nullable=False, default=0)
    vat_rate = Column(Numeric(5, 2), nullable=True)
    price_overridden = Column(Boolean, nullable=False, default=False)

    unit_price_excl_vat = Column(Numeric(12, 2), nullable=False, default=0)
    unit_vat = Column(Numeric(12, 2), nullable=False, default=0)
    unit_price_incl_vat = Column(Numeric(12, 2), nullable=False, default=0)
    line_total = Column(Numeric(12, 2), nullable=False, default=0)

    quotation = relationship("Quotation", back_populates="items")
    product = relationship("Product", lazy="joined")


# ---------------------------------------------------------------------------
# PUBLIC LINKS
# ---------------------------------------------------------------------------


class PublicLink(Base):
    """
    Unauthenticated print access to one document. A link is valid while
    not revoked and not past `expires_at` (NULL means no expiry).
    """

    __tablename__ = "public_links"
    __table_args__ = (
        Index("ix_public_links_document", "company_id", "document_type", "document_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(36), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    document_type = Column(
        SAEnum(DocumentTypeEnum, name="public_link_document_type_enum", native_enum=False),
        nullable=False,
    )
    document_id = Column(Integer, nullable=False)
    token = Column(String(36), nullable=False, unique=True, index=True, default=generate_public_token)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    note = Column(Text, nullable=True)
    created_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
