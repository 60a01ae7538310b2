from __future__ import annotations

from decimal import Decimal

from invoicedb.apps.sales import pricing
from invoicedb.apps.sales.models import InvoiceStatusEnum


def test_round2_is_half_up():
    assert pricing.round2(Decimal("2.345")) == Decimal("2.35")
    assert pricing.round2("1.005") == Decimal("1.01")
    assert pricing.round_to(Decimal("0.0005"), 3) == Decimal("0.001")


def test_clamp_pct():
    assert pricing.clamp_pct(-5) == Decimal("0")
    assert pricing.clamp_pct("12.5") == Decimal("12.5")
    assert pricing.clamp_pct(250) == Decimal("100")


def test_calc_line_box():
    line = pricing.calc_line(
        uom="BOX", box_qty=2, pcs_qty=0, units_per_box=12, selling_price_excl_vat="10.005", vat_rate=15
    )
    assert line.total_qty == Decimal("24.000")
    assert line.unit_price_excl_vat == Decimal("10.01")
    assert line.unit_vat == Decimal("1.50")
    assert line.unit_price_incl_vat == Decimal("11.51")
    assert line.line_total == Decimal("276.24")


def test_calc_line_unit_specific_overrides():
    pcs = pricing.calc_line(uom="PCS", box_qty=5, pcs_qty=3, units_per_box=12, selling_price_excl_vat=2, vat_rate=0)
    assert (pcs.box_qty, pcs.units_per_box, pcs.total_qty) == (Decimal("0"), Decimal("1"), Decimal("3.000"))
    assert pcs.unit_vat == Decimal("0.00")
    assert pcs.line_total == Decimal("6.00")

    kg = pricing.calc_line(uom="KG", box_qty="1.5", pcs_qty=9, units_per_box=12, selling_price_excl_vat=40, vat_rate=15)
    assert kg.pcs_qty == Decimal("0")
    assert kg.total_qty == Decimal("1.500")
    assert kg.line_total == Decimal("69.00")

    grams = pricing.calc_line(uom="G", box_qty=250, pcs_qty=0, units_per_box=0, selling_price_excl_vat=80, vat_rate=15)
    assert grams.units_per_box == Decimal("0.001")
    assert grams.total_qty == Decimal("0.250000")
    assert grams.line_total == Decimal("23.00")

    bag = pricing.calc_line(uom="bags", box_qty=2, pcs_qty=0, units_per_box=0, selling_price_excl_vat=1, vat_rate=0)
    assert bag.uom == "BAG"
    assert bag.units_per_box == Decimal("25")
    assert bag.total_qty == Decimal("50.000")


def test_invoice_totals_with_discount_and_mixed_rates():
    items = [
        {"total_qty": Decimal("10"), "unit_price_excl_vat": Decimal("100"), "vat_rate": Decimal("15")},
        {"total_qty": Decimal("2"), "unit_price_excl_vat": Decimal("50"), "vat_rate": Decimal("0")},
    ]
    totals = pricing.invoice_totals(
        items,
        discount_percent=10,
        vat_percent=15,
        previous_balance=100,
        amount_paid=200,
        credits_applied=25,
    )
    assert totals.base_subtotal == Decimal("1100.00")
    assert totals.discount_amount == Decimal("110.00")
    assert totals.subtotal == Decimal("990.00")
    assert totals.vat_amount == Decimal("135.00")
    assert totals.total_amount == Decimal("1125.00")
    assert totals.gross_total == Decimal("1225.00")
    assert totals.balance == Decimal("1000.00")


def test_invoice_totals_without_discount_matches_unit_vat_sum():
    items = [{"total_qty": Decimal("3"), "unit_price_excl_vat": Decimal("9.99"), "unit_vat": Decimal("1.50"), "vat_rate": None}]
    totals = pricing.invoice_totals(items, vat_percent=15)
    assert totals.vat_amount == Decimal("4.50")
    assert totals.total_amount == Decimal("34.47")


def test_invoice_totals_balance_never_negative():
    items = [{"total_qty": 1, "unit_price_excl_vat": 10, "vat_rate": 0}]
    assert pricing.invoice_totals(items, amount_paid=50).balance == Decimal("0.00")


def test_quotation_totals():
    items = [{"total_qty": Decimal("2"), "unit_price_excl_vat": Decimal("100"), "unit_vat": Decimal("15")}]
    assert pricing.quotation_totals(items, discount_percent=10).total_amount == Decimal("207.00")
    explicit = pricing.quotation_totals(items, discount_percent=10, discount_amount=50)
    assert explicit.discount_amount == Decimal("50.00")
    assert explicit.total_amount == Decimal("180.00")
    assert pricing.quotation_totals(items, discount_amount=500).total_amount == Decimal("0.00")


def test_compute_invoice_status():
    assert pricing.compute_invoice_status(InvoiceStatusEnum.DRAFT, 100, 100) == InvoiceStatusEnum.DRAFT
    assert pricing.compute_invoice_status(InvoiceStatusEnum.ISSUED, 100, 0) == InvoiceStatusEnum.ISSUED
    assert pricing.compute_invoice_status(InvoiceStatusEnum.ISSUED, 100, "99.99") == InvoiceStatusEnum.PARTIALLY_PAID
    assert pricing.compute_invoice_status(InvoiceStatusEnum.PARTIALLY_PAID, 100, "99.995") == InvoiceStatusEnum.PAID
    assert pricing.compute_invoice_status(InvoiceStatusEnum.PAID, 100, 0) == InvoiceStatusEnum.ISSUED


def test_credit_note_line():
    line = pricing.credit_note_line(2, 10, 15)
    assert line.unit_price_incl_vat == Decimal("11.50")
    assert line.line_total == Decimal("23.00")
    assert pricing.credit_note_line(-1, 10, 15).line_total == Decimal("0.00")
