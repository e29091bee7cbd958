from datetime import datetime
from types import SimpleNamespace
from unittest import mock

import pytest
import requests

from fabricpos.exceptions import AppError
from fabricpos.models import PaymentStatus
from fabricpos.schemas.settings import BusinessSettings, WhatsAppSettings
from fabricpos.utils import whatsapp

API_CONFIG = WhatsAppSettings(
    enabled=True, method="api", api_url="https://graph.facebook.com/v18.0/",
    access_token="EAAtoken1234", phone_number_id="10555",
)


@pytest.mark.parametrize("raw, expected", [
    ("98765 43210", "919876543210"),
    ("+91-98765-43210", "919876543210"),
    ("09876543210", "919876543210"),
    ("", ""),
    (None, ""),
])
def test_format_phone(raw, expected):
    assert whatsapp.format_phone(raw) == expected


def test_is_valid_phone():
    assert whatsapp.is_valid_phone("9876543210")
    assert not whatsapp.is_valid_phone("12345")


def test_web_link_encodes_message():
    link = whatsapp.web_link("919876543210", "Bill CS1 & thanks")
    assert link == "https://web.whatsapp.com/send?phone=919876543210&text=Bill%20CS1%20%26%20thanks"


def test_default_message_mentions_bill():
    bill = SimpleNamespace(
        id=7, bill_number="CS241201001", final_amount=1250, created_at=datetime(2024, 12, 1, 10, 30),
        payment_status=PaymentStatus.PARTIAL,
    )
    message = whatsapp.default_invoice_message(bill, BusinessSettings(business_name="Asha Tailors"))
    assert message.startswith("Hello from Asha Tailors!")
    assert "Bill No: CS241201001" in message
    assert "Date: 01/12/2024" in message
    assert "/api/bills/7/invoice?format=pdf" in message


def test_send_via_api_posts_cloud_message():
    response = mock.Mock(ok=True)
    response.json.return_value = {"messages": [{"id": "wamid.1"}]}
    with mock.patch("fabricpos.utils.whatsapp.requests.post", return_value=response) as post:
        result = whatsapp.send_message(API_CONFIG, "9876543210", "hi")

    assert result == {"method": "api", "phone": "919876543210", "sent": True, "message_id": "wamid.1"}
    url = post.call_args.args[0]
    assert url == "https://graph.facebook.com/v18.0/10555/messages"
    assert post.call_args.kwargs["json"]["text"] == {"body": "hi"}
    assert post.call_args.kwargs["headers"]["Authorization"] == "Bearer EAAtoken1234"


def test_send_via_api_surfaces_errors_as_bad_gateway():
    response = mock.Mock(ok=False, text="bad")
    response.json.return_value = {"error": {"message": "Invalid OAuth access token"}}
    with mock.patch("fabricpos.utils.whatsapp.requests.post", return_value=response):
        with pytest.raises(AppError) as exc:
            whatsapp.send_via_api(API_CONFIG, "919876543210", "hi")
    assert exc.value.status_code == 502
    assert "Invalid OAuth access token" in exc.value.message

    with mock.patch("fabricpos.utils.whatsapp.requests.post", side_effect=requests.ConnectionError("down")):
        with pytest.raises(AppError) as exc:
            whatsapp.send_via_api(API_CONFIG, "919876543210", "hi")
    assert exc.value.status_code == 502


def test_send_message_checks_configuration():
    with pytest.raises(AppError):
        whatsapp.send_message(WhatsAppSettings(), "9876543210", "hi")
    with pytest.raises(AppError):
        whatsapp.send_message(WhatsAppSettings(enabled=True), None, "hi")
