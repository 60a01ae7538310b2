from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

import pytest

from invoicedb.apps.inventory import uom


@pytest.mark.parametrize(
    "raw,expected",
    [("box", "BOX"), ("Gram", "G"), ("GRAMS", "G"), ("bags", "BAG"), ("kg", "KG"), ("crate", "BOX"), (None, "BOX")],
)
def test_normalize_uom(raw, expected):
    assert uom.normalize_uom(raw) == expected


def test_compute_total_qty_rules():
    assert uom.compute_total_qty("BOX", 3, 0, 12) == Decimal("36.000")
    assert uom.compute_total_qty("BOX", 2, 0, 0) == Decimal("2.000")
    assert uom.compute_total_qty("PCS", 9, 7, 12) == Decimal("7.000")
    assert uom.compute_total_qty("KG", Decimal("1.2345"), 4, 12) == Decimal("1.235")
    assert uom.compute_total_qty("BAG", 2, 0, 0) == Decimal("50.000")
    assert uom.compute_total_qty("BAG", 2, 0, 10) == Decimal("20.000")
    assert uom.compute_total_qty("G", 250, 0, 0) == Decimal("0.250000")
    assert uom.compute_total_qty("BOX", -4, 0, 12) == Decimal("0.000")


def test_stock_base_quantity_for_weight_products():
    kwargs = dict(stock_unit="WEIGHT", price_unit="KG", pcs_qty=0, units_per_box=1)
    assert uom.stock_base_quantity(uom="KG", box_qty=Decimal("1.5"), total_qty=Decimal("1.5"), **kwargs) == Decimal(
        "1500.0"
    )
    assert uom.stock_base_quantity(uom="G", box_qty=250, total_qty=Decimal("0.25"), **kwargs) == Decimal("250")
    assert uom.stock_base_quantity(uom="BOX", box_qty=1, total_qty=Decimal("2"), **kwargs) == Decimal("2000")


def test_stock_base_quantity_for_piece_products():
    kwargs = dict(stock_unit="PCS", price_unit="PCS", total_qty=Decimal("0"))
    assert uom.stock_base_quantity(uom="PCS", box_qty=0, pcs_qty=5, units_per_box=12, **kwargs) == Decimal("5")
    assert uom.stock_base_quantity(uom="BOX", box_qty=2, pcs_qty=3, units_per_box=12, **kwargs) == Decimal("27")
    assert uom.stock_base_quantity(uom="BOX", box_qty=2, pcs_qty=0, units_per_box=0, **kwargs) == Decimal("2")
    assert uom.stock_base_quantity(
        stock_unit="PCS", price_unit="BAG", uom="BAG", box_qty=4, pcs_qty=0, units_per_box=25, total_qty=100
    ) == Decimal("4")
    assert uom.stock_base_quantity(
        stock_unit="PCS", price_unit="PCS", uom="KG", box_qty=0, pcs_qty=0, units_per_box=1, total_qty=-3
    ) == Decimal("0")


def test_product_base_quantity_reads_orm_like_objects():
    product = SimpleNamespace(stock_unit=SimpleNamespace(value="PCS"), selling_price_unit=SimpleNamespace(value="PCS"))
    item = SimpleNamespace(uom="BOX", box_qty=1, pcs_qty=2, units_per_box=6, total_qty=6)
    assert uom.product_base_quantity(product, item) == Decimal("8")


def test_total_qty_to_base_converts_kg_to_grams():
    assert uom.total_qty_to_base("WEIGHT", Decimal("1.25")) == Decimal("1250.00")
    assert uom.total_qty_to_base("PCS", 7) == Decimal("7")
