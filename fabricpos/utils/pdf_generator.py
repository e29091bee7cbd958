import base64
import binascii
import io
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fpdf import FPDF
from fpdf.enums import XPos, YPos

from fabricpos.models import Bill, MEASUREMENT_KEYS
from fabricpos.schemas.settings import BusinessSettings, InvoiceTemplate
from fabricpos.templating import render

logger = logging.getLogger(__name__)

MEASUREMENT_LABELS = {key: key.title() for key in MEASUREMENT_KEYS}

# Colour schemes per template: accent, header text, table head fill, zebra fill, font family
THEMES = {
    InvoiceTemplate.MODERN: {
        "accent": (79, 70, 229), "header_text": (255, 255, 255), "band": True,
        "head_fill": (243, 244, 246), "zebra": (249, 250, 251), "font": "Helvetica",
    },
    InvoiceTemplate.CLASSIC: {
        "accent": (33, 37, 41), "header_text": (33, 37, 41), "band": False,
        "head_fill": (33, 37, 41), "zebra": (255, 255, 255), "font": "Times",
    },
    InvoiceTemplate.MINIMAL: {
        "accent": (108, 117, 125), "header_text": (33, 37, 41), "band": False,
        "head_fill": (255, 255, 255), "zebra": (255, 255, 255), "font": "Helvetica",
    },
    InvoiceTemplate.ELEGANT: {
        "accent": (146, 112, 43), "header_text": (255, 255, 255), "band": True,
        "head_fill": (250, 245, 235), "zebra": (253, 251, 246), "font": "Times",
    },
}


@dataclass
class InvoiceLine:
    name: str
    quantity: Decimal
    unit: str
    unit_price: Decimal
    total_price: Decimal
    description: Optional[str] = None
    tailoring_price: Decimal = Decimal(0)
    is_tailoring: bool = False
    measurements: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None


@dataclass
class InvoiceData:
    bill_number: str
    created_at: datetime
    customer_name: str
    total_amount: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    final_amount: Decimal
    paid_amount: Decimal
    payment_method: str
    payment_status: str
    status: str = "ACTIVE"
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    customer_address: Optional[str] = None
    delivery_date: Optional[Any] = None
    notes: Optional[str] = None
    items: List[InvoiceLine] = field(default_factory=list)

    @property
    def balance_due(self) -> Decimal:
        return self.final_amount - self.paid_amount


def invoice_from_bill(bill: Bill) -> InvoiceData:
    customer = bill.customer
    address = None
    if customer is not None:
        parts = [customer.address, customer.city, customer.state, customer.pincode]
        address = ", ".join(p for p in parts if p) or None
    return InvoiceData(
        bill_number=bill.bill_number,
        created_at=bill.created_at or datetime.utcnow(),
        customer_name=customer.full_name if customer else "Walk-in Customer",
        customer_phone=customer.phone if customer else None,
        customer_email=customer.email if customer else None,
        customer_address=address,
        total_amount=Decimal(str(bill.total_amount)),
        discount_amount=Decimal(str(bill.discount_amount or 0)),
        tax_amount=Decimal(str(bill.tax_amount or 0)),
        final_amount=Decimal(str(bill.final_amount)),
        paid_amount=Decimal(str(bill.paid_amount or 0)),
        payment_method=bill.payment_method.value,
        payment_status=bill.payment_status.value,
        status=bill.status.value,
        delivery_date=bill.delivery_date,
        notes=bill.notes,
        items=[
            InvoiceLine(
                name=item.custom_name,
                description=item.description,
                quantity=Decimal(str(item.quantity)),
                unit=item.unit or "pcs",
                unit_price=Decimal(str(item.unit_price)),
                tailoring_price=Decimal(str(item.tailoring_price or 0)),
                total_price=Decimal(str(item.total_price)),
                is_tailoring=bool(item.is_tailoring),
                measurements=item.measurements,
                notes=item.notes,
            )
            for item in bill.items
        ],
    )


def sample_invoice() -> InvoiceData:
    items = [
        InvoiceLine(name="Cotton Shirting Fabric", quantity=Decimal("2.50"), unit="m",
                    unit_price=Decimal("450.00"), total_price=Decimal("1125.00")),
        InvoiceLine(name="Shirt Stitching", quantity=Decimal("1"), unit="pcs", unit_price=Decimal("0"),
                    tailoring_price=Decimal("650.00"), total_price=Decimal("650.00"), is_tailoring=True,
                    measurements={"chest": "40", "waist": "34", "sleeve": "24", "neck": "15.5"}),
        InvoiceLine(name="Silk Tie", quantity=Decimal("1"), unit="pcs",
                    unit_price=Decimal("799.00"), total_price=Decimal("799.00")),
    ]
    total = sum((i.total_price for i in items), Decimal(0))
    tax = (total * Decimal("0.18")).quantize(Decimal("0.01"))
    return InvoiceData(
        bill_number="CS000000001",
        created_at=datetime.utcnow(),
        customer_name="Sample Customer",
        customer_phone="9876543210",
        customer_address="12 MG Road, Bengaluru, Karnataka 560001",
        total_amount=total,
        discount_amount=Decimal("100.00"),
        tax_amount=tax,
        final_amount=total - Decimal("100.00") + tax,
        paid_amount=Decimal("1000.00"),
        payment_method="UPI",
        payment_status="PARTIAL",
        notes="Trial on Friday. Thank you for shopping with us!",
        items=items,
    )


def format_measurements(measurements: Optional[Dict[str, Any]]) -> str:
    if not measurements:
        return ""
    parts = []
    for key, label in MEASUREMENT_LABELS.items():
        value = measurements.get(key)
        if value not in (None, "") and str(value).strip():
            parts.append(f"{label}: {value}")
    for key, value in measurements.items():
        if key not in MEASUREMENT_LABELS and key != "notes" and str(value).strip():
            parts.append(f"{key.replace('_', ' ').title()}: {value}")
    if measurements.get("notes"):
        parts.append(f"Notes: {measurements['notes']}")
    return ", ".join(parts)


def latin1(text: Any) -> str:
    """Core PDF fonts only cover Latin-1."""
    value = "" if text is None else str(text)
    value = value.replace("₹", "Rs.").replace("–", "-").replace("—", "-")
    return value.encode("latin-1", "replace").decode("latin-1")


class InvoicePDF(FPDF):
    def __init__(self, business: BusinessSettings, template: InvoiceTemplate):
        super().__init__(orientation="P", unit="mm", format="A4")
        self.business = business
        self.template = template
        self.theme = THEMES[template]
        self.symbol = latin1(business.currency_symbol)

    def money(self, value) -> str:
        return f"{self.symbol}{Decimal(str(value)):,.2f}"

    def _logo(self, x: float, y: float, size: float) -> bool:
        data_url = self.business.business_logo
        if not data_url or "," not in data_url:
            return False
        try:
            raw = base64.b64decode(data_url.split(",", 1)[1])
            self.image(io.BytesIO(raw), x=x, y=y, w=size, h=size)
            return True
        except (binascii.Error, ValueError, OSError) as exc:
            logger.warning(f"Business logo could not be drawn: {exc}")
            return False

    def header(self):
        b = self.business
        font = self.theme["font"]
        if self.theme["band"]:
            self.set_fill_color(*self.theme["accent"])
            self.rect(0, 0, 210, 38, "F")

        text_x = 32 if self._logo(10, 8, 18) else 10
        self.set_xy(text_x, 9)
        self.set_text_color(*self.theme["header_text"])
        self.set_font(font, "B", 20)
        self.cell(0, 9, latin1(b.business_name), new_x=XPos.LMARGIN, new_y=YPos.NEXT)

        self.set_font(font, "", 9)
        address = ", ".join(p for p in (b.business_address, b.business_city, b.business_state, b.business_pincode) if p)
        contact = " | ".join(p for p in (b.business_phone, b.business_email, b.business_website) if p)
        for line in (address, contact, f"GSTIN: {b.business_gstin}" if b.business_gstin else ""):
            if line:
                self.set_x(text_x)
                self.cell(0, 4.5, latin1(line), new_x=XPos.LMARGIN, new_y=YPos.NEXT)

        if not self.theme["band"]:
            self.set_draw_color(*self.theme["accent"])
            self.line(10, 38, 200, 38)
        self.set_y(44)

    def footer(self):
        self.set_y(-15)
        self.set_font(self.theme["font"], "I", 8)
        self.set_text_color(128)
        self.cell(0, 10, f"Page {self.page_no()} - Thank you for your business", align="C")


def _info_block(pdf: InvoicePDF, invoice: InvoiceData):
    font = pdf.theme["font"]
    pdf.set_text_color(0, 0, 0)
    pdf.set_font(font, "B", 14)
    pdf.set_text_color(*pdf.theme["accent"])
    pdf.cell(100, 8, latin1(f"INVOICE #{invoice.bill_number}"))
    pdf.set_font(font, "", 10)
    pdf.set_text_color(50, 50, 50)
    pdf.cell(90, 8, f"Date: {invoice.created_at.strftime('%d/%m/%Y %H:%M')}", align="R",
             new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    if invoice.delivery_date:
        pdf.cell(0, 5, f"Delivery: {invoice.delivery_date.strftime('%d/%m/%Y')}", align="R",
                 new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    if invoice.status == "CANCELLED":
        pdf.set_text_color(200, 30, 30)
        pdf.set_font(font, "B", 11)
        pdf.cell(0, 6, "CANCELLED", align="R", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        pdf.set_text_color(50, 50, 50)
    pdf.ln(3)

    pdf.set_font(font, "B", 10)
    pdf.cell(0, 5, "Bill To:", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.set_font(font, "", 10)
    for line in (invoice.customer_name, invoice.customer_phone, invoice.customer_email, invoice.customer_address):
        if line:
            pdf.cell(0, 5, latin1(line), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.ln(4)


def _items_table(pdf: InvoicePDF, invoice: InvoiceData):
    font = pdf.theme["font"]
    head_fill = pdf.theme["head_fill"]
    pdf.set_font(font, "B", 9)
    pdf.set_fill_color(*head_fill)
    dark_head = sum(head_fill) < 300
    pdf.set_text_color(*((255, 255, 255) if dark_head else (0, 0, 0)))

    # Columns: Item(85), Qty(25), Rate(25), Stitching(25), Amount(30)
    pdf.cell(85, 8, "ITEM", fill=True)
    pdf.cell(25, 8, "QTY", align="C", fill=True)
    pdf.cell(25, 8, "RATE", align="R", fill=True)
    pdf.cell(25, 8, "STITCHING", align="R", fill=True)
    pdf.cell(30, 8, "AMOUNT", align="R", fill=True, new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    if pdf.template == InvoiceTemplate.MINIMAL:
        pdf.set_draw_color(200, 200, 200)
        pdf.line(10, pdf.get_y(), 200, pdf.get_y())

    pdf.set_text_color(0, 0, 0)
    fill = False
    for line in invoice.items:
        pdf.set_font(font, "", 9)
        pdf.set_fill_color(*(pdf.theme["zebra"] if fill else (255, 255, 255)))
        pdf.cell(85, 7, latin1(line.name)[:48], fill=fill)
        pdf.cell(25, 7, latin1(f"{line.quantity.normalize():f} {line.unit}"), align="C", fill=fill)
        pdf.cell(25, 7, pdf.money(line.unit_price), align="R", fill=fill)
        pdf.cell(25, 7, pdf.money(line.tailoring_price) if line.tailoring_price else "-", align="R", fill=fill)
        pdf.cell(30, 7, pdf.money(line.total_price), align="R", fill=fill, new_x=XPos.LMARGIN, new_y=YPos.NEXT)

        extra = [line.description or ""]
        if line.is_tailoring:
            extra.append(format_measurements(line.measurements))
        if line.notes:
            extra.append(f"Note: {line.notes}")
        extra_text = " | ".join(e for e in extra if e)
        if extra_text:
            pdf.set_font(font, "I", 8)
            pdf.set_text_color(102, 102, 102)
            pdf.set_x(14)
            pdf.multi_cell(180, 4, latin1(extra_text), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
            pdf.set_text_color(0, 0, 0)

        fill = not fill
        pdf.set_draw_color(230, 230, 230)
        pdf.line(10, pdf.get_y(), 200, pdf.get_y())


def _totals(pdf: InvoicePDF, invoice: InvoiceData):
    font = pdf.theme["font"]
    pdf.ln(4)
    x_totals = 130
    rows = [("Subtotal", invoice.total_amount)]
    if invoice.discount_amount:
        rows.append(("Discount", -invoice.discount_amount))
    tax_label = f"Tax ({pdf.business.tax_rate.normalize():f}%)" if pdf.business.tax_rate else "Tax"
    rows.append((tax_label, invoice.tax_amount))

    pdf.set_font(font, "", 10)
    for label, value in rows:
        pdf.set_x(x_totals)
        pdf.cell(40, 6, label, align="R")
        pdf.cell(30, 6, pdf.money(value), align="R", new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    pdf.set_x(x_totals)
    pdf.set_font(font, "B", 12)
    pdf.set_fill_color(*pdf.theme["accent"])
    pdf.set_text_color(255, 255, 255)
    pdf.cell(40, 10, "TOTAL", align="R", fill=True)
    pdf.cell(30, 10, pdf.money(invoice.final_amount), align="R", fill=True, new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.set_text_color(0, 0, 0)

    pdf.set_font(font, "", 10)
    for label, value in (("Paid", invoice.paid_amount), ("Balance Due", invoice.balance_due)):
        pdf.set_x(x_totals)
        pdf.cell(40, 6, label, align="R")
        pdf.cell(30, 6, pdf.money(value), align="R", new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    pdf.ln(6)
    pdf.set_font(font, "B", 9)
    pdf.cell(0, 5, f"Payment: {invoice.payment_method} ({invoice.payment_status})",
             new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    if invoice.notes:
        pdf.ln(2)
        pdf.set_font(font, "B", 9)
        pdf.cell(0, 5, "Notes:", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        pdf.set_font(font, "", 8)
        pdf.multi_cell(0, 4, latin1(invoice.notes), new_x=XPos.LMARGIN, new_y=YPos.NEXT)


def generate_invoice_pdf(invoice: InvoiceData, business: BusinessSettings,
                         template: Optional[InvoiceTemplate] = None) -> bytes:
    template = template or business.invoice_template
    pdf = InvoicePDF(business, template)
    pdf.set_title(latin1(f"Invoice {invoice.bill_number}"))
    pdf.set_auto_page_break(auto=True, margin=18)
    pdf.add_page()

    _info_block(pdf, invoice)
    _items_table(pdf, invoice)
    _totals(pdf, invoice)

    return bytes(pdf.output())


def generate_invoice_html(invoice: InvoiceData, business: BusinessSettings,
                          template: Optional[InvoiceTemplate] = None) -> str:
    theme = THEMES[template or business.invoice_template]
    return render(
        "invoice.html",
        invoice=invoice,
        business=business,
        accent="#%02x%02x%02x" % theme["accent"],
        symbol=business.currency_symbol,
        format_measurements=format_measurements,
    )
