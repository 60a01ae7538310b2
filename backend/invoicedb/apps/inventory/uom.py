"""
Units of measure.

Document lines are entered in one of five UOMs and carry a `total_qty`
that pricing multiplies against the unit price:

    BOX  box_qty * units_per_box       (upb <= 0 -> 1)
    PCS  pcs_qty
    KG   box_qty
    BAG  box_qty * units_per_box       (upb <= 0 -> 25)
    G    box_qty * 0.001               (grams priced per kg)

Stock, on the other hand, is kept in the product's own base unit: pieces
for PCS products, grams for WEIGHT products. `stock_base_quantity` converts
a line into that base.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from invoicedb.utils.decimals import ZERO, non_negative, round_to, to_decimal

UOMS = ("BOX", "PCS", "KG", "G", "BAG")
_ALIASES = {"GRAM": "G", "GRAMS": "G", "BAGS": "BAG"}

DEFAULT_BAG_SIZE = Decimal("25")
GRAMS_PER_KG = Decimal("1000")


def normalize_uom(value: Any) -> str:
    uom = str(value or "BOX").strip().upper()
    uom = _ALIASES.get(uom, uom)
    return uom if uom in UOMS else "BOX"


def compute_total_qty(
    uom: Any,
    box_qty: Any = 0,
    pcs_qty: Any = 0,
    units_per_box: Any = 1,
) -> Decimal:
    u = normalize_uom(uom)
    box = non_negative(box_qty)
    pcs = non_negative(pcs_qty)
    upb = to_decimal(units_per_box)

    if u == "PCS":
        return round_to(pcs, 3)
    if u == "G":
        return round_to(box * Decimal("0.001"), 6)
    if u == "KG":
        return round_to(box, 3)
    if u == "BAG":
        return round_to(box * (upb if upb > ZERO else DEFAULT_BAG_SIZE), 3)
    return round_to(box * (upb if upb > ZERO else Decimal("1")), 3)


def stock_base_quantity(
    *,
    stock_unit: Optional[str],
    price_unit: Optional[str],
    uom: Any,
    box_qty: Any,
    pcs_qty: Any,
    units_per_box: Any,
    total_qty: Any,
) -> Decimal:
    """Quantity to move in the product's stock base (pieces or grams)."""
    u = normalize_uom(uom)
    box = to_decimal(box_qty)
    pcs = to_decimal(pcs_qty)
    upb = to_decimal(units_per_box)
    total = to_decimal(total_qty)

    if str(stock_unit or "PCS").upper() == "WEIGHT":
        if u == "KG":
            qty = box * GRAMS_PER_KG
        elif u == "G":
            qty = box
        else:
            qty = total * GRAMS_PER_KG if total > ZERO else ZERO
    elif u == "PCS":
        qty = pcs
    elif u == "BOX":
        qty = box * max(Decimal("1"), upb) + pcs
    elif u == "BAG" or str(price_unit or "").upper() == "BAG":
        qty = box if box != ZERO else total
    else:
        qty = total

    return non_negative(qty)


def total_qty_to_base(stock_unit: Optional[str], total_qty: Any) -> Decimal:
    """Lines that only carry `total_qty` (credit notes): kg become grams."""
    total = non_negative(total_qty)
    if str(getattr(stock_unit, "value", stock_unit) or "PCS").upper() == "WEIGHT":
        return total * GRAMS_PER_KG
    return total


def product_base_quantity(product: Any, item: Any) -> Decimal:
    """`stock_base_quantity` for an ORM line and its product."""
    stock_unit = getattr(product, "stock_unit", None)
    price_unit = getattr(product, "selling_price_unit", None)
    return stock_base_quantity(
        stock_unit=getattr(stock_unit, "value", stock_unit),
        price_unit=getattr(price_unit, "value", price_unit),
        uom=getattr(item, "uom", None),
        box_qty=getattr(item, "box_qty", 0),
        pcs_qty=getattr(item, "pcs_qty", 0),
        units_per_box=getattr(item, "units_per_box", 1),
        total_qty=getattr(item, "total_qty", 0),
    )
