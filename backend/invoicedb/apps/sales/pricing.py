"""
Line and document arithmetic for invoices, credit notes and quotations.

Product selling prices are stored excluding VAT. Every money value leaving
this module is rounded half-up to cents.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import os
from typing import Any, Iterable, Optional

from invoicedb.apps.inventory.uom import compute_total_qty, normalize_uom
from invoicedb.utils.decimals import ZERO, non_negative, round2, round_to, to_decimal

from .models import InvoiceStatusEnum

__all__ = [
    "DEFAULT_VAT_PERCENT",
    "round2",
    "round_to",
    "clamp_pct",
    "calc_line",
    "invoice_totals",
    "quotation_totals",
    "compute_invoice_status",
    "credit_note_line",
]

DEFAULT_VAT_PERCENT = to_decimal(os.getenv("DEFAULT_VAT_PERCENT", "15"))
HUNDRED = Decimal("100")
PAID_TOLERANCE = Decimal("0.009")


def clamp_pct(value: Any) -> Decimal:
    return max(ZERO, min(HUNDRED, to_decimal(value)))


@dataclass
class LineResult:
    uom: str
    box_qty: Decimal
    pcs_qty: Decimal
    units_per_box: Decimal
    total_qty: Decimal
    unit_price_excl_vat: Decimal
    unit_vat: Decimal
    unit_price_incl_vat: Decimal
    line_total: Decimal
    vat_rate: Decimal


def calc_line(
    *,
    uom: Any,
    box_qty: Any,
    pcs_qty: Any,
    units_per_box: Any,
    selling_price_excl_vat: Any,
    vat_rate: Any,
) -> LineResult:
    u = normalize_uom(uom)
    box = round_to(non_negative(box_qty), 3)
    pcs = round_to(non_negative(pcs_qty), 3)

    upb = to_decimal(units_per_box)
    if upb <= ZERO:
        upb = Decimal("1")

    if u == "PCS":
        box = ZERO
        upb = Decimal("1")
    elif u == "KG":
        pcs = ZERO
        upb = Decimal("1")
    elif u == "G":
        pcs = ZERO
        upb = Decimal("0.001")
    elif u == "BAG":
        pcs = ZERO
        if to_decimal(units_per_box) <= ZERO:
            upb = Decimal("25")

    total_qty = compute_total_qty(u, box, pcs, upb)

    rate = to_decimal(vat_rate)
    unit_excl = round2(selling_price_excl_vat)
    unit_vat = round2(unit_excl * rate / HUNDRED) if rate > ZERO else round2(ZERO)
    unit_incl = round2(unit_excl + unit_vat)

    return LineResult(
        uom=u,
        box_qty=box,
        pcs_qty=pcs,
        units_per_box=upb,
        total_qty=total_qty,
        unit_price_excl_vat=unit_excl,
        unit_vat=unit_vat,
        unit_price_incl_vat=unit_incl,
        line_total=round2(total_qty * unit_incl),
        vat_rate=rate,
    )


@dataclass
class InvoiceTotals:
    base_subtotal: Decimal
    discount_percent: Decimal
    discount_amount: Decimal
    subtotal: Decimal
    vat_amount: Decimal
    total_amount: Decimal
    gross_total: Decimal
    balance: Decimal


def invoice_totals(
    items: Iterable[Any],
    *,
    discount_percent: Any = 0,
    vat_percent: Any = None,
    previous_balance: Any = 0,
    amount_paid: Any = 0,
    credits_applied: Any = 0,
) -> InvoiceTotals:
    """
    VAT is charged on the discounted line amounts, using each line's own
    rate and falling back to the invoice rate.
    """
    items = list(items)
    dp = clamp_pct(discount_percent)
    default_rate = DEFAULT_VAT_PERCENT if vat_percent is None else to_decimal(vat_percent)

    base = round2(
        sum((to_decimal(_get(it, "total_qty")) * to_decimal(_get(it, "unit_price_excl_vat")) for it in items), ZERO)
    )
    discount = round2(base * dp / HUNDRED) if dp > ZERO else round2(ZERO)
    subtotal = round2(base - discount)

    vat_raw = ZERO
    for it in items:
        line_rate = _get(it, "vat_rate")
        rate = default_rate if line_rate is None else to_decimal(line_rate)
        if rate <= ZERO:
            continue
        line_ex = to_decimal(_get(it, "total_qty")) * to_decimal(_get(it, "unit_price_excl_vat"))
        vat_raw += line_ex * (1 - dp / HUNDRED) * rate / HUNDRED
    vat = round2(vat_raw)

    total = round2(subtotal + vat)
    gross = round2(total + to_decimal(previous_balance))
    balance = round2(max(ZERO, gross - to_decimal(amount_paid) - to_decimal(credits_applied)))

    return InvoiceTotals(
        base_subtotal=base,
        discount_percent=dp,
        discount_amount=discount,
        subtotal=subtotal,
        vat_amount=vat,
        total_amount=total,
        gross_total=gross,
        balance=balance,
    )


@dataclass
class QuotationTotals:
    subtotal: Decimal
    discount_percent: Decimal
    discount_amount: Decimal
    vat_amount: Decimal
    total_amount: Decimal


def quotation_totals(
    items: Iterable[Any],
    *,
    discount_percent: Any = 0,
    discount_amount: Any = 0,
) -> QuotationTotals:
    """A positive `discount_amount` wins over the percentage."""
    items = list(items)
    subtotal = sum(
        (to_decimal(_get(it, "total_qty")) * to_decimal(_get(it, "unit_price_excl_vat")) for it in items), ZERO
    )
    vat = sum((to_decimal(_get(it, "total_qty")) * to_decimal(_get(it, "unit_vat")) for it in items), ZERO)
    before_discount = subtotal + vat

    dp = clamp_pct(discount_percent)
    explicit = to_decimal(discount_amount)
    discount = explicit if explicit > ZERO else before_discount * dp / HUNDRED

    return QuotationTotals(
        subtotal=round2(subtotal),
        discount_percent=dp,
        discount_amount=round2(discount),
        vat_amount=round2(vat),
        total_amount=round2(max(ZERO, before_discount - discount)),
    )


def compute_invoice_status(
    current: Optional[InvoiceStatusEnum],
    total: Any,
    paid: Any,
) -> InvoiceStatusEnum:
    if current == InvoiceStatusEnum.DRAFT:
        return InvoiceStatusEnum.DRAFT
    paid_d = to_decimal(paid)
    if paid_d <= ZERO:
        return InvoiceStatusEnum.ISSUED
    if paid_d + PAID_TOLERANCE < to_decimal(total):
        return InvoiceStatusEnum.PARTIALLY_PAID
    return InvoiceStatusEnum.PAID


@dataclass
class CreditLine:
    total_qty: Decimal
    unit_price_excl_vat: Decimal
    unit_vat: Decimal
    unit_price_incl_vat: Decimal
    line_total: Decimal
    vat_rate: Decimal


def credit_note_line(qty: Any, unit_price_excl_vat: Any, vat_rate: Any) -> CreditLine:
    rate = to_decimal(vat_rate)
    unit_ex = round2(non_negative(unit_price_excl_vat))
    unit_vat = round2(unit_ex * rate / HUNDRED) if rate > ZERO else round2(ZERO)
    unit_incl = round2(unit_ex + unit_vat)
    total_qty = round_to(non_negative(qty), 3)
    return CreditLine(
        total_qty=total_qty,
        unit_price_excl_vat=unit_ex,
        unit_vat=unit_vat,
        unit_price_incl_vat=unit_incl,
        line_total=round2(total_qty * unit_incl),
        vat_rate=rate,
    )


def _get(item: Any, key: str) -> Any:
    if isinstance(item, dict):
        return item.get(key)
    return getattr(item, key, None)
