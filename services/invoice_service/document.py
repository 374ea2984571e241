"""PDF invoice layout for one delivered order."""
from datetime import datetime
from typing import List, Tuple

from fpdf import FPDF

from services.order_service.models import Order

MARGIN = 50
AMOUNT_X = 400
AMOUNT_WIDTH = 90
RULE_END = 550
RULE_GREY = 170
SUPPORT_EMAIL = "support@water.co.za"


def money(value: float) -> str:
    return f"R {value:.2f}"


def vat_included(total: float, rate: float) -> float:
    """VAT portion of a VAT-inclusive total."""
    if rate <= 0:
        return 0.0
    return total * rate / (1 + rate)


def invoice_number(order: Order) -> str:
    return f"INV-{order.woo_order_id}"


def bill_to(order: Order) -> List[str]:
    return [
        order.customer_name,
        order.customer_email or "N/A",
        order.customer_phone or "N/A",
        order.address_text,
    ]


def line_items(order: Order, tax_rate: float) -> List[Tuple[str, str]]:
    return [
        ("Water Delivery Order", money(order.amount_total)),
        (f"VAT included ({tax_rate:.0%})", money(vat_included(order.amount_total, tax_rate))),
    ]


def _latin1(value: str) -> str:
    # The core Helvetica font only covers latin-1
    return value.encode("latin-1", "replace").decode("latin-1")


def _text(pdf: FPDF, x: float, y: float, value: str, size: int, style: str = "") -> None:
    pdf.set_font("Helvetica", style=style, size=size)
    pdf.set_xy(x, y)
    pdf.cell(0, size + 2, _latin1(value))


def _amount(pdf: FPDF, y: float, value: str, size: int = 10, style: str = "") -> None:
    pdf.set_font("Helvetica", style=style, size=size)
    pdf.set_xy(AMOUNT_X, y)
    pdf.cell(AMOUNT_WIDTH, size + 2, _latin1(value), align="R")


def _rule(pdf: FPDF, y: float) -> None:
    pdf.set_draw_color(RULE_GREY)
    pdf.set_line_width(1)
    pdf.line(MARGIN, y, RULE_END, y)


def render_invoice(order: Order, issued_at: datetime, tax_rate: float) -> bytes:
    """
    Lays the invoice out on one A4 page and returns the PDF bytes.

    Header with number and date, the Bill To block, a Description/Amount
    table with the order line and the VAT carved out of the inclusive
    total, the bold total, then a centered footer.
    """
    pdf = FPDF(unit="pt", format="A4")
    pdf.set_auto_page_break(False)
    pdf.set_title(invoice_number(order))
    pdf.set_creation_date(issued_at)
    pdf.add_page()

    _text(pdf, MARGIN, 50, "WATER DISTRIBUTION", 20)
    _text(pdf, MARGIN, 80, "Invoice", 10)
    _text(pdf, MARGIN, 95, f"Invoice Number: {invoice_number(order)}", 10)
    _text(pdf, MARGIN, 110, f"Date: {issued_at:%Y-%m-%d}", 10)

    _text(pdf, MARGIN, 150, "Bill To:", 12)
    for offset, value in enumerate(bill_to(order)):
        _text(pdf, MARGIN, 170 + offset * 15, value, 10)

    table_top = 280
    _text(pdf, MARGIN, table_top, "Description", 10)
    _amount(pdf, table_top, "Amount")
    _rule(pdf, table_top + 15)

    y = table_top + 30
    for label, amount in line_items(order, tax_rate):
        _text(pdf, MARGIN, y, label, 10)
        _amount(pdf, y, amount)
        y += 15

    total_y = y + 25
    _rule(pdf, total_y - 10)
    _text(pdf, 350, total_y, "Total:", 12, style="B")
    _amount(pdf, total_y, money(order.amount_total), size=12, style="B")

    pdf.set_font("Helvetica", size=8)
    for offset, value in enumerate((
        "Thank you for your business!",
        f"For questions about this invoice, please contact {SUPPORT_EMAIL}",
    )):
        pdf.set_xy(MARGIN, total_y + 60 + offset * 15)
        pdf.cell(RULE_END - MARGIN, 10, value, align="C")

    return bytes(pdf.output())
