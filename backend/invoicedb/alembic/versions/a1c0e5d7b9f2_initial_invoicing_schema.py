"""initial invoicing schema

Revision ID: a1c0e5d7b9f2
Revises:
Create Date: 2026-03-02 09:14:27.512304
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a1c0e5d7b9f2"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


INVOICE_STATUS = ("DRAFT", "ISSUED", "PARTIALLY_PAID", "PAID", "VOID")
CREDIT_NOTE_STATUS = ("ISSUED", "PENDING", "REFUNDED", "VOID")
QUOTATION_STATUS = ("DRAFT", "SENT", "ACCEPTED", "REJECTED", "EXPIRED", "CONVERTED")
DOCUMENT_TYPES = ("INVOICE", "CREDIT_NOTE", "QUOTATION")
BILL_STATUS = ("OPEN", "PARTIALLY_PAID", "PAID", "VOID")


def _int_id() -> sa.Column:
    return sa.Column("id", sa.Integer(), primary_key=True, index=True)


def _company_fk(nullable: bool = False, ondelete: str = "CASCADE") -> sa.Column:
    return sa.Column(
        "company_id",
        sa.String(length=36),
        sa.ForeignKey("companies.id", ondelete=ondelete),
        nullable=nullable,
        index=True,
    )


def _created_by() -> sa.Column:
    return sa.Column(
        "created_by_user_id",
        sa.String(length=36),
        sa.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )


def _ts(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def _money(name: str) -> sa.Column:
    return sa.Column(name, sa.Numeric(12, 2), nullable=False, server_default="0")


def _pct(name: str, default: str = "0") -> sa.Column:
    return sa.Column(name, sa.Numeric(5, 2), nullable=False, server_default=default)


def _unit_prices() -> list:
    return [
        _money("unit_price_excl_vat"),
        _money("unit_vat"),
        _money("unit_price_incl_vat"),
        _money("line_total"),
    ]


def upgrade() -> None:
    # ------------------------------------------------------------------
    # Tenants and users
    # ------------------------------------------------------------------
    op.create_table(
        "companies",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("code", sa.String(length=32), nullable=False, unique=True, index=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("login_slug", sa.String(length=64), nullable=False, unique=True, index=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("brn", sa.String(length=64), nullable=True),
        sa.Column("vat_no", sa.String(length=64), nullable=True),
        sa.Column("currency", sa.String(length=8), nullable=False, server_default="MUR"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true(), index=True),
        _ts("created_at"),
        _ts("updated_at"),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True),
        _company_fk(),
        sa.Column("email", sa.String(length=255), nullable=False, index=True),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("role", sa.String(length=32), nullable=False, server_default="viewer", index=True),
        sa.Column("permissions", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true(), index=True),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("must_change_password", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("login_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lockout_count", sa.Integer(), nullable=False, server_default="0"),
        _ts("locked_until", nullable=True),
        _ts("last_login_at", nullable=True),
        sa.Column("last_login_ip", sa.String(length=64), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        _ts("deactivated_at", nullable=True),
        sa.UniqueConstraint("company_id", "email", name="uq_users_company_email"),
        sa.Index("idx_users_role_active", "role", "is_active"),
    )

    op.create_table(
        "user_activity",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("company_id", sa.String(length=36), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("event", sa.String(length=64), nullable=False),
        sa.Column("entity", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
        _ts("created_at"),
        sa.Index("ix_user_activity_company_created", "company_id", "created_at"),
    )

    op.create_table(
        "account_security_events",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
        ),
        _company_fk(nullable=True, ondelete="SET NULL"),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        _ts("created_at"),
        sa.Index("idx_security_events_user_created", "user_id", "event_type", "created_at"),
    )

    op.create_table(
        "idempotency_keys",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("scope", sa.String(length=128), nullable=False),
        sa.Column("key", sa.String(length=128), nullable=False),
        sa.Column("payload_hash", sa.String(length=64), nullable=False),
        _ts("created_at"),
        sa.UniqueConstraint("scope", "key", name="uq_idempotency_scope_key"),
    )

    op.create_table(
        "audit_events",
        sa.Column("id", sa.String(length=36), primary_key=True, index=True),
        _company_fk(),
        sa.Column("entity_type", sa.String(length=64), nullable=False, index=True),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False, index=True),
        sa.Column("reference", sa.String(length=64), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=True),
        sa.Column(
            "actor_user_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
        _ts("occurred_at"),
        sa.Column("before", sa.JSON(), nullable=True),
        sa.Column("after", sa.JSON(), nullable=True),
        _ts("created_at"),
        sa.Index("ix_audit_events_company_entity", "company_id", "entity_type", "entity_id"),
        sa.Index("ix_audit_events_company_reference", "company_id", "reference"),
    )
    op.create_index(
        "ix_audit_events_company_time_desc",
        "audit_events",
        ["company_id", sa.text("occurred_at DESC")],
    )

    # ------------------------------------------------------------------
    # Parties and inventory
    # ------------------------------------------------------------------
    op.create_table(
        "customers",
        _int_id(),
        _company_fk(),
        sa.Column("customer_code", sa.String(length=32), nullable=False, index=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("whatsapp", sa.String(length=64), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("brn", sa.String(length=64), nullable=True),
        sa.Column("vat_no", sa.String(length=64), nullable=True),
        _pct("discount_percent"),
        _money("opening_balance"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true(), index=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("company_id", "customer_code", name="uq_customers_company_code"),
        sa.Index("ix_customers_company_name", "company_id", "name"),
    )

    op.create_table(
        "suppliers",
        _int_id(),
        _company_fk(),
        sa.Column("supplier_code", sa.String(length=32), nullable=True, index=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("vat_no", sa.String(length=64), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true(), index=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("company_id", "supplier_code", name="uq_suppliers_company_code"),
        sa.Index("ix_suppliers_company_name", "company_id", "name"),
    )

    op.create_table(
        "products",
        _int_id(),
        _company_fk(),
        sa.Column("sku", sa.String(length=64), nullable=False, index=True),
        sa.Column("item_code", sa.String(length=64), nullable=True, index=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("units_per_box", sa.Integer(), nullable=True),
        _money("selling_price"),
        sa.Column("cost_price", sa.Numeric(12, 2), nullable=True),
        sa.Column(
            "stock_unit",
            sa.Enum("PCS", "WEIGHT", name="product_stock_unit_enum", native_enum=False),
            nullable=False,
            server_default="PCS",
        ),
        sa.Column(
            "selling_price_unit",
            sa.Enum("PCS", "KG", "BAG", name="product_price_unit_enum", native_enum=False),
            nullable=False,
            server_default="PCS",
        ),
        sa.Column("current_stock", sa.Numeric(16, 3), nullable=False, server_default="0"),
        sa.Column("reorder_level", sa.Numeric(16, 3), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true(), index=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("company_id", "sku", name="uq_products_company_sku"),
        sa.Index("ix_products_company_name", "company_id", "name"),
    )

    op.create_table(
        "stock_movements",
        _int_id(),
        _company_fk(),
        sa.Column(
            "product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
        ),
        sa.Column(
            "movement_type",
            sa.Enum("IN", "OUT", "ADJUSTMENT", name="stock_movement_type_enum", native_enum=False),
            nullable=False,
            index=True,
        ),
        sa.Column("quantity", sa.Numeric(16, 3), nullable=False),
        _ts("movement_date"),
        sa.Column("reference", sa.String(length=128), nullable=True, index=True),
        sa.Column("source_table", sa.String(length=64), nullable=True),
        sa.Column("source_id", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _ts("created_at"),
        _created_by(),
        sa.UniqueConstraint(
            "company_id",
            "source_table",
            "source_id",
            "product_id",
            "movement_type",
            name="uq_stock_movements_source_product_type",
        ),
        sa.Index("ix_stock_movements_company_date", "company_id", "movement_date"),
        sa.Index("ix_stock_movements_source", "source_table", "source_id"),
    )

    # ------------------------------------------------------------------
    # Sales documents
    # ------------------------------------------------------------------
    op.create_table(
        "document_sequences",
        _int_id(),
        _company_fk(),
        sa.Column(
            "document_type",
            sa.Enum(*DOCUMENT_TYPES, name="document_type_enum", native_enum=False),
            nullable=False,
        ),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("last_value", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("company_id", "document_type", "year", name="uq_document_sequence"),
    )

    op.create_table(
        "invoices",
        _int_id(),
        _company_fk(),
        sa.Column("invoice_number", sa.String(length=32), nullable=False, index=True),
        sa.Column(
            "customer_id", sa.Integer(), sa.ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True
        ),
        sa.Column("idempotency_key", sa.String(length=128), nullable=True),
        sa.Column("invoice_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("purchase_order_no", sa.String(length=64), nullable=True),
        sa.Column("sales_rep", sa.String(length=128), nullable=True),
        sa.Column("sales_rep_phone", sa.String(length=64), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _pct("vat_percent", "15"),
        _pct("discount_percent"),
        _money("subtotal"),
        _money("vat_amount"),
        _money("total_amount"),
        _money("discount_amount"),
        _money("previous_balance"),
        _money("gross_total"),
        _money("amount_paid"),
        _money("credits_applied"),
        _money("balance_remaining"),
        _money("balance_due"),
        sa.Column(
            "status",
            sa.Enum(*INVOICE_STATUS, name="invoice_status_enum", native_enum=False),
            nullable=False,
            server_default="DRAFT",
            index=True,
        ),
        _ts("stock_deducted_at", nullable=True),
        _ts("voided_at", nullable=True),
        sa.Column("public_token", sa.String(length=36), nullable=True, index=True),
        sa.Column("public_token_revoked", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("public_token_expires_at", nullable=True),
        _created_by(),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("company_id", "invoice_number", name="uq_invoices_company_number"),
        sa.UniqueConstraint("company_id", "idempotency_key", name="uq_invoices_idempotency"),
        sa.Index("ix_invoices_company_date", "company_id", "invoice_date"),
        sa.Index("ix_invoices_company_status", "company_id", "status"),
    )

    op.create_table(
        "invoice_items",
        _int_id(),
        sa.Column(
            "invoice_id", sa.Integer(), sa.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
        ),
        sa.Column(
            "product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True
        ),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("uom", sa.String(length=8), nullable=False, server_default="BOX"),
        sa.Column("box_qty", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("pcs_qty", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("units_per_box", sa.Numeric(14, 3), nullable=False, server_default="1"),
        sa.Column("total_qty", sa.Numeric(16, 6), nullable=False, server_default="0"),
        _pct("vat_rate", "15"),
        *_unit_prices(),
    )

    op.create_table(
        "invoice_payments",
        _int_id(),
        _company_fk(),
        sa.Column(
            "invoice_id", sa.Integer(), sa.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
        ),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("method", sa.String(length=64), nullable=False, server_default="Cash"),
        sa.Column("reference", sa.String(length=128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_auto", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_by(),
        _ts("created_at"),
        sa.Index("ix_invoice_payments_invoice_date", "invoice_id", "payment_date"),
    )

    op.create_table(
        "credit_notes",
        _int_id(),
        _company_fk(),
        sa.Column("credit_note_number", sa.String(length=32), nullable=False, index=True),
        sa.Column("credit_note_date", sa.Date(), nullable=False),
        sa.Column(
            "customer_id", sa.Integer(), sa.ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True
        ),
        sa.Column(
            "invoice_id", sa.Integer(), sa.ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True, index=True
        ),
        sa.Column("idempotency_key", sa.String(length=128), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        _money("subtotal"),
        _money("vat_amount"),
        _money("total_amount"),
        sa.Column(
            "status",
            sa.Enum(*CREDIT_NOTE_STATUS, name="credit_note_status_enum", native_enum=False),
            nullable=False,
            server_default="ISSUED",
            index=True,
        ),
        sa.Column("refund_note", sa.Text(), nullable=True),
        _created_by(),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("company_id", "credit_note_number", name="uq_credit_notes_company_number"),
        sa.UniqueConstraint("company_id", "idempotency_key", name="uq_credit_notes_idempotency"),
        sa.Index("ix_credit_notes_company_date", "company_id", "credit_note_date"),
    )

    op.create_table(
        "credit_note_items",
        _int_id(),
        sa.Column(
            "credit_note_id",
            sa.Integer(),
            sa.ForeignKey("credit_notes.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True
        ),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("total_qty", sa.Numeric(16, 6), nullable=False, server_default="0"),
        _pct("vat_rate", "15"),
        *_unit_prices(),
    )

    op.create_table(
        "quotations",
        _int_id(),
        _company_fk(),
        sa.Column("quotation_number", sa.String(length=32), nullable=False, index=True),
        sa.Column("quotation_date", sa.Date(), nullable=False),
        sa.Column("valid_until", sa.Date(), nullable=True),
        sa.Column("idempotency_key", sa.String(length=128), nullable=True),
        sa.Column(
            "customer_id", sa.Integer(), sa.ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True
        ),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("customer_code", sa.String(length=32), nullable=True),
        sa.Column("sales_rep", sa.String(length=128), nullable=True),
        sa.Column("sales_rep_phone", sa.String(length=64), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _money("subtotal"),
        _pct("discount_percent"),
        _money("discount_amount"),
        _pct("vat_percent", "15"),
        _money("vat_amount"),
        _money("total_amount"),
        sa.Column(
            "status",
            sa.Enum(*QUOTATION_STATUS, name="quotation_status_enum", native_enum=False),
            nullable=False,
            server_default="DRAFT",
            index=True,
        ),
        sa.Column(
            "converted_invoice_id",
            sa.Integer(),
            sa.ForeignKey("invoices.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _ts("converted_at", nullable=True),
        _created_by(),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("company_id", "quotation_number", name="uq_quotations_company_number"),
        sa.UniqueConstraint("company_id", "idempotency_key", name="uq_quotations_idempotency"),
        sa.Index("ix_quotations_company_date", "company_id", "quotation_date"),
    )

    op.create_table(
        "quotation_items",
        _int_id(),
        sa.Column(
            "quotation_id",
            sa.Integer(),
            sa.ForeignKey("quotations.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True
        ),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("uom", sa.String(length=8), nullable=False, server_default="BOX"),
        sa.Column("box_qty", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("pcs_qty", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("grams_qty", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("bags_qty", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("units_per_box", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("total_qty", sa.Numeric(16, 6), nullable=False, server_default="0"),
        _money("base_unit_price_excl_vat"),
        sa.Column("vat_rate", sa.Numeric(5, 2), nullable=True),
        sa.Column("price_overridden", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_unit_prices(),
    )

    op.create_table(
        "public_links",
        _int_id(),
        _company_fk(),
        sa.Column(
            "document_type",
            sa.Enum(*DOCUMENT_TYPES, name="public_link_document_type_enum", native_enum=False),
            nullable=False,
        ),
        sa.Column("document_id", sa.Integer(), nullable=False),
        sa.Column("token", sa.String(length=36), nullable=False, unique=True, index=True),
        _ts("expires_at", nullable=True),
        _ts("revoked_at", nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        _created_by(),
        _ts("created_at"),
        sa.Index("ix_public_links_document", "company_id", "document_type", "document_id"),
    )

    # ------------------------------------------------------------------
    # Payables
    # ------------------------------------------------------------------
    op.create_table(
        "supplier_bills",
        _int_id(),
        _company_fk(),
        sa.Column(
            "supplier_id", sa.Integer(), sa.ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False, index=True
        ),
        sa.Column("bill_no", sa.String(length=64), nullable=True, index=True),
        sa.Column("bill_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("currency", sa.String(length=8), nullable=False, server_default="MUR"),
        _money("total_amount"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "status",
            sa.Enum(*BILL_STATUS, name="bill_status_enum", native_enum=False),
            nullable=False,
            server_default="OPEN",
            index=True,
        ),
        _ts("voided_at", nullable=True),
        _created_by(),
        _ts("created_at"),
        _ts("updated_at"),
        sa.Index("ix_supplier_bills_company_supplier", "company_id", "supplier_id"),
        sa.Index("ix_supplier_bills_company_date", "company_id", "bill_date"),
    )

    op.create_table(
        "supplier_payments",
        _int_id(),
        _company_fk(),
        sa.Column(
            "supplier_id", sa.Integer(), sa.ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False, index=True
        ),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("method", sa.String(length=64), nullable=False, server_default="Bank Transfer"),
        sa.Column("reference", sa.String(length=128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_by(),
        _ts("created_at"),
        sa.Index("ix_supplier_payments_company_date", "company_id", "payment_date"),
    )

    op.create_table(
        "supplier_payment_allocations",
        _int_id(),
        _company_fk(),
        sa.Column(
            "payment_id",
            sa.Integer(),
            sa.ForeignKey("supplier_payments.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "bill_id", sa.Integer(), sa.ForeignKey("supplier_bills.id", ondelete="CASCADE"), nullable=False, index=True
        ),
        sa.Column("amount_applied", sa.Numeric(12, 2), nullable=False),
        _ts("created_at"),
        sa.UniqueConstraint("payment_id", "bill_id", name="uq_supplier_allocation_payment_bill"),
    )


def downgrade() -> None:
    op.drop_index("ix_audit_events_company_time_desc", table_name="audit_events")
    for table in (
        "supplier_payment_allocations",
        "supplier_payments",
        "supplier_bills",
        "public_links",
        "quotation_items",
        "quotations",
        "credit_note_items",
        "credit_notes",
        "invoice_payments",
        "invoice_items",
        "invoices",
        "document_sequences",
        "stock_movements",
        "products",
        "suppliers",
        "customers",
        "audit_events",
        "idempotency_keys",
        "account_security_events",
        "user_activity",
        "users",
        "companies",
    ):
        op.drop_table(table)
