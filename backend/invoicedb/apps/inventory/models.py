from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
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


class StockUnitEnum(str, enum.Enum):
    PCS = "PCS"
    WEIGHT = "WEIGHT"


class PriceUnitEnum(str, enum.Enum):
    PCS = "PCS"
    KG = "KG"
    BAG = "BAG"


class StockMovementTypeEnum(str, enum.Enum):
    IN = "IN"
    OUT = "OUT"
    ADJUSTMENT = "ADJUSTMENT"


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint("company_id", "sku", name="uq_products_company_sku"),
        Index("ix_products_company_name", "company_id", "name"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(36), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    sku = Column(String(64), nullable=False, index=True)
    item_code = Column(String(64), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    units_per_box = Column(Integer, nullable=True)
    selling_price = Column(Numeric(12, 2), nullable=False, default=0, doc="Excluding VAT")
    cost_price = Column(Numeric(12, 2), nullable=True)
    stock_unit = Column(
        SAEnum(StockUnitEnum, name="product_stock_unit_enum", native_enum=False),
        nullable=False,
        default=StockUnitEnum.PCS,
    )
    selling_price_unit = Column(
        SAEnum(PriceUnitEnum, name="product_price_unit_enum", native_enum=False),
        nullable=False,
        default=PriceUnitEnum.PCS,
    )
    # Signed sum of movements; grams for WEIGHT products.
    current_stock = Column(Numeric(16, 3), nullable=False, default=0)
    reorder_level = Column(Numeric(16, 3), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    def __repr__(self) -> str:
        return f"<Product {self.sku} {self.name}>"


class StockMovement(Base):
    __tablename__ = "stock_movements"
    __table_args__ = (
        UniqueConstraint(
            "company_id",
            "source_table",
            "source_id",
            "product_id",
            "movement_type",
            name="uq_stock_movements_source_product_type",
        ),
        Index("ix_stock_movements_company_date", "company_id", "movement_date"),
        Index("ix_stock_movements_source", "source_table", "source_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(36), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    movement_type = Column(
        SAEnum(StockMovementTypeEnum, name="stock_movement_type_enum", native_enum=False),
        nullable=False,
        index=True,
    )
    # Positive for IN/OUT; ADJUSTMENT carries a signed delta.
    quantity = Column(Numeric(16, 3), nullable=False)
    movement_date = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    reference = Column(String(128), nullable=True, index=True)
    source_table = Column(String(64), nullable=True)
    source_id = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    created_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    product = relationship("Product", lazy="joined")
