"""
WhatsApp delivery for invoices.

Two methods, chosen per workspace in settings:

- web: build a ``web.whatsapp.com`` link the cashier opens in a browser
- api: post a text message through the WhatsApp Cloud API with ``requests``
"""
import logging
import re
from typing import Optional
from urllib.parse import quote

import requests

from fabricpos.config import settings
from fabricpos.exceptions import AppError
from fabricpos.models import Bill
from fabricpos.schemas.settings import BusinessSettings, WhatsAppMethod, WhatsAppSettings
from fabricpos.templating import format_money

logger = logging.getLogger(__name__)

WEB_URL = "https://web.whatsapp.com/send"
COUNTRY_CODE = "91"


def format_phone(phone: Optional[str]) -> str:
    digits = re.sub(r"\D", "", phone or "").lstrip("0")
    if len(digits) == 10:
        digits = COUNTRY_CODE + digits
    return digits


def is_valid_phone(phone: Optional[str]) -> bool:
    return len(format_phone(phone)) == 12


def invoice_link(bill: Bill) -> str:
    return f"{settings.API_URL}/api/bills/{bill.id}/invoice?format=pdf"


def default_invoice_message(bill: Bill, business: BusinessSettings) -> str:
    created = bill.created_at.strftime("%d/%m/%Y") if bill.created_at else ""
    return (
        f"Hello from {business.business_name}!\n\n"
        f"Bill No: {bill.bill_number}\n"
        f"Amount: {format_money(bill.final_amount, business.currency_symbol)}\n"
        f"Date: {created}\n"
        f"Payment: {bill.payment_status.value}\n\n"
        f"Download your invoice: {invoice_link(bill)}\n\n"
        f"Thank you for shopping with us!"
    )


def web_link(phone: str, message: str) -> str:
    return f"{WEB_URL}?phone={phone}&text={quote(message)}"


def send_via_api(config: WhatsAppSettings, phone: str, message: str) -> dict:
    url = f"{config.api_url.rstrip('/')}/{config.phone_number_id}/messages"
    payload = {
        "messaging_product": "whatsapp",
        "to": phone,
        "type": "text",
        "text": {"body": message},
    }
    try:
        response = requests.post(
            url,
            json=payload,
            headers={"Authorization": f"Bearer {config.access_token}"},
            timeout=settings.WHATSAPP_TIMEOUT_SECONDS,
        )
    except requests.RequestException as exc:
        raise AppError.bad_gateway(f"WhatsApp API unreachable: {exc}")

    if not response.ok:
        try:
            detail = response.json().get("error", {}).get("message") or response.text
        except ValueError:
            detail = response.text
        raise AppError.bad_gateway(f"WhatsApp API error: {detail}")

    data = response.json()
    message_id = (data.get("messages") or [{}])[0].get("id")
    logger.info(f"WhatsApp message {message_id} sent to {phone}")
    return {"message_id": message_id}


def send_message(config: WhatsAppSettings, phone: Optional[str], message: str) -> dict:
    """Deliver ``message`` with the configured method and describe what happened."""
    if not config.enabled:
        raise AppError.bad_request("WhatsApp is not enabled for this workspace")
    if not phone:
        raise AppError.bad_request("No phone number available for WhatsApp")

    if not is_valid_phone(phone):
        raise AppError.bad_request(f"Invalid phone number: {phone}")
    formatted = format_phone(phone)

    if config.method == WhatsAppMethod.API:
        result = send_via_api(config, formatted, message)
        return {"method": WhatsAppMethod.API.value, "phone": formatted, "sent": True, **result}

    return {
        "method": WhatsAppMethod.WEB.value,
        "phone": formatted,
        "sent": False,
        "url": web_link(formatted, message),
    }
