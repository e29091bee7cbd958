"""
Barcode and QR code rendering.

Wraps python-barcode (linear symbologies), qrcode (QR) and Pillow (labels).
Sizes follow the API parameters:

- width: bar module width in tenths of a millimetre for linear codes, box size for QR
- height: bar height in tenths of a millimetre
- scale: output resolution, 100 dpi per step
"""
import base64
import io
import logging
from decimal import Decimal
from typing import Optional

import barcode
import qrcode
import qrcode.image.svg
from barcode.errors import BarcodeError
from barcode.writer import ImageWriter, SVGWriter
from PIL import Image, ImageDraw, ImageFont

from fabricpos.exceptions import AppError
from fabricpos.schemas.barcodes import BarcodeFormat

logger = logging.getLogger(__name__)

# API format -> python-barcode class name
LINEAR_CLASSES = {
    BarcodeFormat.CODE128: "code128",
    BarcodeFormat.CODE39: "code39",
    BarcodeFormat.EAN13: "ean13",
    BarcodeFormat.EAN8: "ean8",
    BarcodeFormat.UPC: "upca",
}

FORMAT_DESCRIPTIONS = {
    BarcodeFormat.CODE128: "Code 128 - any ASCII text, the default for SKUs",
    BarcodeFormat.CODE39: "Code 39 - upper-case letters, digits and - . $ / + % space",
    BarcodeFormat.EAN13: "EAN-13 - 12 digits, check digit added",
    BarcodeFormat.EAN8: "EAN-8 - 7 digits, check digit added",
    BarcodeFormat.UPC: "UPC-A - 11 digits, check digit added",
    BarcodeFormat.QRCODE: "QR code - free text or URLs",
}

FONT_PATHS = (
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
)


def _linear(text: str, fmt: BarcodeFormat, writer):
    try:
        barcode_class = barcode.get_barcode_class(LINEAR_CLASSES[fmt])
        return barcode_class(text, writer=writer)
    except (BarcodeError, ValueError, KeyError) as exc:
        raise AppError.bad_request(f"'{text}' cannot be encoded as {fmt.value}: {exc}")


def _linear_options(width: int, height: int, scale: int, include_text: bool) -> dict:
    return {
        "module_width": width / 10,
        "module_height": height / 10,
        "quiet_zone": 6.5,
        "font_size": 10,
        "text_distance": 5.0,
        "background": "white",
        "foreground": "black",
        "write_text": include_text,
        "dpi": 100 * scale,
    }


def _qr(text: str, box_size: int) -> qrcode.QRCode:
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=box_size,
        border=4,
    )
    qr.add_data(text)
    qr.make(fit=True)
    return qr


def generate_png(text: str, fmt: BarcodeFormat = BarcodeFormat.CODE128, width: int = 2,
                 height: int = 100, scale: int = 3, include_text: bool = True) -> bytes:
    buffer = io.BytesIO()
    if fmt == BarcodeFormat.QRCODE:
        img = _qr(text, box_size=width * scale).make_image(fill_color="black", back_color="white")
        img.save(buffer, format="PNG")
    else:
        code = _linear(text, fmt, ImageWriter(format="PNG"))
        code.write(buffer, options=_linear_options(width, height, scale, include_text))
    return buffer.getvalue()


def generate_svg(text: str, fmt: BarcodeFormat = BarcodeFormat.CODE128, width: int = 2,
                 height: int = 100, scale: int = 3, include_text: bool = True) -> bytes:
    buffer = io.BytesIO()
    if fmt == BarcodeFormat.QRCODE:
        img = _qr(text, box_size=width * scale).make_image(image_factory=qrcode.image.svg.SvgPathImage)
        img.save(buffer)
    else:
        code = _linear(text, fmt, SVGWriter())
        code.write(buffer, options=_linear_options(width, height, scale, include_text))
    return buffer.getvalue()


def to_data_url(png: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


def _font(size: int, bold: bool = False):
    path = FONT_PATHS[0] if bold else FONT_PATHS[1]
    try:
        return ImageFont.truetype(path, size)
    except OSError:
        return ImageFont.load_default()


def generate_label(text: str, fmt: BarcodeFormat = BarcodeFormat.CODE128, title: Optional[str] = None,
                   subtitle: Optional[str] = None, price: Optional[Decimal] = None,
                   currency_symbol: str = "Rs.", size: tuple = (400, 220)) -> bytes:
    """Shelf label: title, code line, price and the barcode underneath."""
    img = Image.new("RGB", size, color="white")
    draw = ImageDraw.Draw(img)
    title_font = _font(18, bold=True)
    text_font = _font(13)

    y = 10
    if title:
        draw.text((10, y), title[:32], fill="black", font=title_font)
        y += 26
    if subtitle:
        draw.text((10, y), subtitle[:40], fill="black", font=text_font)
        y += 20
    if price is not None:
        draw.text((10, y), f"{currency_symbol} {Decimal(price):,.2f}", fill="black", font=title_font)
        y += 26

    code_png = generate_png(text, fmt, width=2, height=120, scale=2, include_text=True)
    code_img = Image.open(io.BytesIO(code_png))
    code_img.thumbnail((size[0] - 20, size[1] - y - 10))
    img.paste(code_img, ((size[0] - code_img.width) // 2, y + 5))

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def store_ean13(organization_id: int, product_id: int) -> str:
    """In-store EAN-13: '2' + 4-digit workspace + 7-digit product + check digit."""
    body = f"2{organization_id % 10000:04d}{product_id % 10_000_000:07d}"
    return barcode.get_barcode_class("ean13")(body).get_fullcode()
