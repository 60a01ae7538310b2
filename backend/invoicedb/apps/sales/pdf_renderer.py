"""
A4 renderers for invoices, credit notes and quotations.

All three documents share one layout: company block, customer block, an
items table that breaks onto new pages as needed, a totals block and a
"Page X of Y" footer. The input is the same bundle the public print
endpoints return, so the PDF and the HTML print always show the same data.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from io import BytesIO
from typing import Any, Dict, List, Optional, Sequence, Tuple

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from invoicedb.utils.decimals import round2, to_decimal

PAGE_WIDTH, PAGE_HEIGHT = A4
MARGIN = 15 * mm
ROW_HEIGHT = 6 * mm
FOOTER_Y = 10 * mm
BODY_FONT = "Helvetica"
BOLD_FONT = "Helvetica-Bold"


class NumberedCanvas(canvas.Canvas):
    """Defers page output until the page count is known."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._saved_page_states: List[dict] = []

    def showPage(self):
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        total = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self._draw_page_number(total)
            super().showPage()
        super().save()

    def _draw_page_number(self, total: int) -> None:
        self.setFont(BODY_FONT, 8)
        self.drawRightString(PAGE_WIDTH - MARGIN, FOOTER_Y, f"Page {self._pageNumber} of {total}")


@dataclass(frozen=True)
class Column:
    title: str
    key: str
    width: float
    align: str = "left"
    money: bool = False


@dataclass(frozen=True)
class DocumentLayout:
    title: str
    document_key: str
    number_key: str
    date_key: str
    columns: Sequence[Column]
    totals: Sequence[Tuple[str, str]]
    extra_header: Sequence[Tuple[str, str]] = ()


def _fmt(value: Any, money: bool = False) -> str:
    if value is None:
        return ""
    if hasattr(value, "value"):
        return str(value.value)
    if money:
        return f"{round2(value):,.2f}"
    if isinstance(value, Decimal):
        return f"{value.normalize():f}"
    return str(value)


def _qty(item: Dict[str, Any]) -> str:
    uom = item.get("uom")
    qty = to_decimal(item.get("total_qty"))
    text = f"{qty.normalize():f}"
    return f"{text} {uom}" if uom else text


class _Writer:
    def __init__(self, pdf: NumberedCanvas):
        self.pdf = pdf
        self.y = PAGE_HEIGHT - MARGIN

    def new_page(self) -> None:
        self.pdf.showPage()
        self.y = PAGE_HEIGHT - MARGIN

    def ensure(self, height: float) -> bool:
        if self.y - height < MARGIN + FOOTER_Y:
            self.new_page()
            return True
        return False

    def text(self, x: float, value: str, *, font: str = BODY_FONT, size: int = 9, align: str = "left") -> None:
        self.pdf.setFont(font, size)
        if align == "right":
            self.pdf.drawRightString(x, self.y, value)
        else:
            self.pdf.drawString(x, self.y, value)

    def line_break(self, height: float = ROW_HEIGHT) -> None:
        self.y -= height


def _draw_header(w: _Writer, bundle: Dict[str, Any], layout: DocumentLayout) -> None:
    company = bundle.get("company") or {}
    document = bundle.get(layout.document_key) or {}
    customer = bundle.get("customer") or {}

    w.text(MARGIN, company.get("name") or "", font=BOLD_FONT, size=14)
    w.text(PAGE_WIDTH - MARGIN, layout.title, font=BOLD_FONT, size=14, align="right")
    w.line_break()
    for label in ("address", "phone", "email"):
        if company.get(label):
            w.text(MARGIN, str(company[label]), size=8)
            w.line_break(4 * mm)
    ids = " / ".join(f"{k.upper()}: {company[k]}" for k in ("brn", "vat_no") if company.get(k))
    if ids:
        w.text(MARGIN, ids, size=8)
        w.line_break(4 * mm)

    w.line_break(2 * mm)
    w.text(MARGIN, "Bill to:", font=BOLD_FONT)
    w.text(PAGE_WIDTH - MARGIN, f"No: {_fmt(document.get(layout.number_key))}", align="right")
    w.line_break(5 * mm)
    w.text(MARGIN, customer.get("name") or document.get("customer_name") or "")
    w.text(PAGE_WIDTH - MARGIN, f"Date: {_fmt(document.get(layout.date_key))}", align="right")
    w.line_break(5 * mm)
    left = [str(customer[k]) for k in ("address", "phone") if customer.get(k)]
    if customer.get("customer_code"):
        left.append(f"Code: {customer['customer_code']}")
    right = [f"{label}: {_fmt(document.get(key))}" for label, key in layout.extra_header if document.get(key)]
    for i in range(max(len(left), len(right))):
        if i < len(left):
            w.text(MARGIN, left[i], size=8)
        if i < len(right):
            w.text(PAGE_WIDTH - MARGIN, right[i], size=8, align="right")
        w.line_break(4 * mm)
    w.line_break(3 * mm)


def _draw_table_head(w: _Writer, columns: Sequence[Column]) -> None:
    x = MARGIN
    for col in columns:
        if col.align == "right":
            w.text(x + col.width, col.title, font=BOLD_FONT, align="right")
        else:
            w.text(x, col.title, font=BOLD_FONT)
        x += col.width
    w.pdf.line(MARGIN, w.y - 1.5 * mm, PAGE_WIDTH - MARGIN, w.y - 1.5 * mm)
    w.line_break()


def _cell(item: Dict[str, Any], col: Column) -> str:
    if col.key == "_qty":
        return _qty(item)
    if col.key == "description":
        product = item.get("product") or {}
        text = item.get("description") or product.get("name") or ""
        return text[:60]
    return _fmt(item.get(col.key), money=col.money)


def _draw_items(w: _Writer, items: List[Dict[str, Any]], columns: Sequence[Column]) -> None:
    _draw_table_head(w, columns)
    for item in items:
        if w.ensure(ROW_HEIGHT):
            _draw_table_head(w, columns)
        x = MARGIN
        for col in columns:
            value = _cell(item, col)
            if col.align == "right":
                w.text(x + col.width, value, align="right")
            else:
                w.text(x, value)
            x += col.width
        w.line_break()


def _draw_totals(w: _Writer, document: Dict[str, Any], totals: Sequence[Tuple[str, str]]) -> None:
    w.ensure(ROW_HEIGHT * (len(totals) + 1))
    w.line_break(2 * mm)
    label_x = PAGE_WIDTH - MARGIN - 45 * mm
    for label, key in totals:
        if key not in document:
            continue
        w.text(label_x, label, font=BOLD_FONT, align="right")
        w.text(PAGE_WIDTH - MARGIN, _fmt(document.get(key), money=True), align="right")
        w.line_break(5 * mm)


def render_pdf(bundle: Dict[str, Any], layout: DocumentLayout) -> bytes:
    buffer = BytesIO()
    pdf = NumberedCanvas(buffer, pagesize=A4)
    document = bundle.get(layout.document_key) or {}
    pdf.setTitle(f"{layout.title} {_fmt(document.get(layout.number_key))}")

    w = _Writer(pdf)
    _draw_header(w, bundle, layout)
    _draw_items(w, bundle.get("items") or [], layout.columns)
    _draw_totals(w, document, layout.totals)
    if document.get("notes"):
        w.ensure(ROW_HEIGHT * 2)
        w.line_break(3 * mm)
        w.text(MARGIN, f"Notes: {document['notes']}"[:110], size=8)

    pdf.showPage()
    pdf.save()
    return buffer.getvalue()


_ITEM_COLUMNS = (
    Column("Description", "description", 80 * mm),
    Column("Qty", "_qty", 25 * mm, align="right"),
    Column("Unit excl.", "unit_price_excl_vat", 22 * mm, align="right", money=True),
    Column("VAT", "unit_vat", 18 * mm, align="right", money=True),
    Column("Amount", "line_total", 35 * mm, align="right", money=True),
)

INVOICE_LAYOUT = DocumentLayout(
    title="INVOICE",
    document_key="invoice",
    number_key="invoice_number",
    date_key="invoice_date",
    columns=_ITEM_COLUMNS,
    totals=(
        ("Subtotal", "subtotal"),
        ("Discount", "discount_amount"),
        ("VAT", "vat_amount"),
        ("Total", "total_amount"),
        ("Previous balance", "previous_balance"),
        ("Gross total", "gross_total"),
        ("Paid", "amount_paid"),
        ("Credits", "credits_applied"),
        ("Balance due", "balance_remaining"),
    ),
    extra_header=(("Due", "due_date"), ("PO", "purchase_order_no"), ("Sales rep", "sales_rep")),
)

CREDIT_NOTE_LAYOUT = DocumentLayout(
    title="CREDIT NOTE",
    document_key="credit_note",
    number_key="credit_note_number",
    date_key="credit_note_date",
    columns=_ITEM_COLUMNS,
    totals=(("Subtotal", "subtotal"), ("VAT", "vat_amount"), ("Total", "total_amount")),
    extra_header=(("Reason", "reason"),),
)

QUOTATION_LAYOUT = DocumentLayout(
    title="QUOTATION",
    document_key="quotation",
    number_key="quotation_number",
    date_key="quotation_date",
    columns=_ITEM_COLUMNS,
    totals=(
        ("Subtotal", "subtotal"),
        ("VAT", "vat_amount"),
        ("Discount", "discount_amount"),
        ("Total", "total_amount"),
    ),
    extra_header=(("Valid until", "valid_until"), ("Sales rep", "sales_rep")),
)


def render_invoice_pdf(bundle: Dict[str, Any]) -> bytes:
    return render_pdf(bundle, INVOICE_LAYOUT)


def render_credit_note_pdf(bundle: Dict[str, Any]) -> bytes:
    return render_pdf(bundle, CREDIT_NOTE_LAYOUT)


def render_quotation_pdf(bundle: Dict[str, Any]) -> bytes:
    return render_pdf(bundle, QUOTATION_LAYOUT)


def pdf_filename(prefix: str, document_id: Optional[int]) -> str:
    return f"{prefix}-{document_id}.pdf"
