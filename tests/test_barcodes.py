import base64

import pytest

from fabricpos.schemas.barcodes import BarcodeFormat
from fabricpos.utils import barcodes


def test_formats_are_listed(client, auth_headers):
    formats = client.get("/api/barcodes/formats", headers=auth_headers).json()["data"]
    assert {f["format"] for f in formats} == {fmt.value for fmt in BarcodeFormat}


def test_barcodes_require_login(client):
    assert client.post("/api/barcodes/generate", json={"text": "SKU-1"}).status_code == 401


@pytest.mark.parametrize("fmt, text", [
    ("CODE128", "SHIRT-001"),
    ("CODE39", "SHIRT 001"),
    ("EAN13", "890123456789"),
    ("EAN8", "1234567"),
    ("UPC", "01234567890"),
    ("QRCODE", "https://fabricpos.in/p/1"),
])
def test_generate_png(client, auth_headers, fmt, text):
    response = client.post("/api/barcodes/generate", json={"text": text, "format": fmt}, headers=auth_headers)
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert response.content.startswith(b"\x89PNG")


def test_generate_svg_and_data_url(client, auth_headers):
    svg = client.post("/api/barcodes/generate/svg", json={"text": "SKU-9"}, headers=auth_headers)
    assert svg.headers["content-type"].startswith("image/svg+xml")
    assert b"<svg" in svg.content

    qr_svg = client.post("/api/barcodes/generate/svg", json={"text": "hello", "format": "QRCODE"}, headers=auth_headers)
    assert b"<svg" in qr_svg.content

    data = client.post("/api/barcodes/generate/dataurl", json={"text": "SKU-9"}, headers=auth_headers).json()["data"]
    assert data["format"] == "CODE128"
    prefix = "data:image/png;base64,"
    assert data["data_url"].startswith(prefix)
    assert base64.b64decode(data["data_url"][len(prefix):]).startswith(b"\x89PNG")


def test_label(client, auth_headers):
    response = client.post("/api/barcodes/generate/label", json={
        "text": "KURTA-01", "title": "Cotton Kurta", "price": "1299",
    }, headers=auth_headers)
    assert response.status_code == 200
    assert response.content.startswith(b"\x89PNG")


def test_invalid_input(client, auth_headers):
    bad_ean = client.post("/api/barcodes/generate", json={"text": "ABC", "format": "EAN13"}, headers=auth_headers)
    assert bad_ean.status_code == 400
    assert "EAN13" in bad_ean.json()["error"]["message"]

    too_wide = client.post("/api/barcodes/generate", json={"text": "X", "width": 50}, headers=auth_headers)
    assert too_wide.status_code == 400


def test_store_ean13_has_check_digit():
    code = barcodes.store_ean13(3, 42)
    assert code[:12] == "200030000042"
    assert len(code) == 13
    digits = [int(d) for d in code[:12]]
    check = (10 - (sum(digits[0::2]) + 3 * sum(digits[1::2])) % 10) % 10
    assert int(code[12]) == check
