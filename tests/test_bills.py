from datetime import date
from decimal import Decimal

from fabricpos.crud.inventory import current_stock_from_movements
from fabricpos.models import Bill
from fabricpos.utils.bill_numbers import get_next_bill_number
from tests.conftest import bearer


def _create_bill(client, headers, **payload):
    response = client.post("/api/bills/", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def _stock(client, headers, product_id) -> Decimal:
    return Decimal(client.get(f"/api/products/{product_id}", headers=headers).json()["data"]["stock_quantity"])


def test_bill_numbers_are_sequential_per_day(client, auth_headers, make_product):
    product = make_product()
    prefix = f"CS{date.today().strftime('%y%m%d')}"

    first = _create_bill(client, auth_headers, items=[{"product_id": product["id"], "quantity": 1}])
    second = _create_bill(client, auth_headers, items=[{"product_id": product["id"], "quantity": 1}])
    assert first["bill_number"] == f"{prefix}001"
    assert second["bill_number"] == f"{prefix}002"


def test_next_bill_number_uses_highest_sequence(db_session, owner, workspace_id):
    day = date(2024, 12, 1)
    for number in ("CS241201001", "CS241201007", "CS241130099", "CSX"):
        db_session.add(Bill(organization_id=workspace_id, bill_number=number))
    db_session.commit()
    assert get_next_bill_number(db_session, workspace_id, "CS", day) == "CS241201008"
    assert get_next_bill_number(db_session, workspace_id, "INV", day) == "INV241201001"


def test_totals_with_tailoring_discount_and_tax(client, auth_headers, make_product, make_customer):
    fabric = make_product(name="Wool Suiting", sku="FAB-WOOL", type="FABRIC", unit="m", base_price="800", initial_stock="20")
    customer = make_customer()

    bill = _create_bill(
        client, auth_headers,
        customer_id=customer["id"],
        items=[
            {
                "product_id": fabric["id"], "quantity": "2.5", "tailoring_price": "1500",
                "discount_amount": "100", "is_tailoring": True, "measurements": {"chest": 40},
            },
            {"custom_name": "Alteration", "quantity": 1, "unit_price": "200"},
        ],
        discount_amount="100",
        tax_amount="342",
        amount_paid="1000",
        payment_method="UPI",
    )

    lines = {item["custom_name"]: item for item in bill["items"]}
    # 2.5 x 800 + 1500 - 100
    assert Decimal(lines["Wool Suiting"]["total_price"]) == Decimal("3400.00")
    assert lines["Wool Suiting"]["is_tailoring"] is True
    assert Decimal(lines["Alteration"]["total_price"]) == Decimal("200.00")
    assert lines["Alteration"]["product_id"] is None

    assert Decimal(bill["total_amount"]) == Decimal("3600.00")
    assert Decimal(bill["final_amount"]) == Decimal("3842.00")
    assert Decimal(bill["paid_amount"]) == Decimal("1000.00")
    assert Decimal(bill["balance_due"]) == Decimal("2842.00")
    assert bill["payment_status"] == "PARTIAL"
    assert bill["status"] == "ACTIVE"
    assert len(bill["payments"]) == 1
    assert bill["customer"]["id"] == customer["id"]

    assert _stock(client, auth_headers, fabric["id"]) == Decimal("17.5")


def test_insufficient_stock_rejects_whole_bill(client, auth_headers, make_product):
    plenty = make_product(initial_stock="10")
    scarce = make_product(initial_stock="1")

    response = client.post("/api/bills/", json={"items": [
        {"product_id": plenty["id"], "quantity": 2},
        {"product_id": scarce["id"], "quantity": 3},
    ]}, headers=auth_headers)
    assert response.status_code == 400
    assert "Insufficient stock" in response.json()["error"]["message"]

    assert _stock(client, auth_headers, plenty["id"]) == Decimal("10")
    assert client.get("/api/bills/", headers=auth_headers).json()["data"]["pagination"]["total"] == 0


def test_bill_validation(client, auth_headers, make_product):
    assert client.post("/api/bills/", json={"items": []}, headers=auth_headers).status_code == 400
    assert client.post("/api/bills/", json={"items": [{"quantity": 1}]}, headers=auth_headers).status_code == 400
    assert client.post("/api/bills/", json={"items": [{"product_id": 999, "quantity": 1}]}, headers=auth_headers).status_code == 404

    product = make_product(base_price="100")
    overpaid = client.post("/api/bills/", json={
        "items": [{"product_id": product["id"], "quantity": 1}], "amount_paid": "150",
    }, headers=auth_headers)
    assert overpaid.status_code == 400

    too_much_discount = client.post("/api/bills/", json={
        "items": [{"product_id": product["id"], "quantity": 1}], "discount_amount": "150",
    }, headers=auth_headers)
    assert too_much_discount.status_code == 400


def test_payments_complete_the_bill(client, auth_headers, make_product):
    product = make_product(base_price="1000")
    bill = _create_bill(client, auth_headers, items=[{"product_id": product["id"], "quantity": 1}])
    assert bill["payment_status"] == "PENDING"

    url = f"/api/bills/{bill['id']}/payments"
    first = client.post(url, json={"amount": "400", "method": "CASH"}, headers=auth_headers)
    assert first.status_code == 201

    too_much = client.post(url, json={"amount": "700", "method": "CARD"}, headers=auth_headers)
    assert too_much.status_code == 400

    client.post(url, json={"amount": "600", "method": "CARD", "reference": "TXN-1"}, headers=auth_headers)
    refreshed = client.get(f"/api/bills/{bill['id']}", headers=auth_headers).json()["data"]
    assert refreshed["payment_status"] == "COMPLETED"
    assert Decimal(refreshed["balance_due"]) == Decimal("0")

    payments = client.get(url, headers=auth_headers).json()["data"]
    assert [p["method"] for p in payments] == ["CASH", "CARD"]


def test_cancel_restores_stock(client, auth_headers, make_product, db_session):
    product = make_product(initial_stock="5")
    service = client.post("/api/products/", json={
        "name": "Hemming", "sku": "SRV-HEM", "type": "TAILORING_SERVICE", "base_price": "150",
    }, headers=auth_headers).json()["data"]
    bill = _create_bill(client, auth_headers, items=[
        {"product_id": product["id"], "quantity": 3},
        {"product_id": service["id"], "quantity": 1},
    ])
    assert _stock(client, auth_headers, product["id"]) == Decimal("2")

    response = client.post(f"/api/bills/{bill['id']}/cancel", json={"reason": "Customer changed mind"}, headers=auth_headers)
    assert response.status_code == 200
    cancelled = response.json()["data"]
    assert cancelled["status"] == "CANCELLED"
    assert "Customer changed mind" in cancelled["notes"]
    assert _stock(client, auth_headers, product["id"]) == Decimal("5")
    assert current_stock_from_movements(db_session, product["id"]) == Decimal("5")

    again = client.post(f"/api/bills/{bill['id']}/cancel", json={"reason": "twice"}, headers=auth_headers)
    assert again.status_code == 400
    payment = client.post(f"/api/bills/{bill['id']}/payments", json={"amount": "1", "method": "CASH"}, headers=auth_headers)
    assert payment.status_code == 400
    update = client.put(f"/api/bills/{bill['id']}", json={"notes": "x"}, headers=auth_headers)
    assert update.status_code == 400


def test_update_recalculates_final_amount(client, auth_headers, make_product):
    product = make_product(base_price="1000")
    bill = _create_bill(client, auth_headers, items=[{"product_id": product["id"], "quantity": 1}], amount_paid="500")

    response = client.put(f"/api/bills/{bill['id']}", json={"tax_amount": "180", "notes": "Deliver Friday"}, headers=auth_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert Decimal(data["final_amount"]) == Decimal("1180.00")
    assert data["payment_status"] == "PARTIAL"

    below_paid = client.put(f"/api/bills/{bill['id']}", json={"discount_amount": "900"}, headers=auth_headers)
    assert below_paid.status_code == 400

    no_cancel = client.put(f"/api/bills/{bill['id']}", json={"status": "CANCELLED"}, headers=auth_headers)
    assert no_cancel.status_code == 400


def test_draft_bills_and_filters(client, auth_headers, make_product):
    product = make_product()
    _create_bill(client, auth_headers, items=[{"product_id": product["id"], "quantity": 1}], draft=True)
    paid = _create_bill(client, auth_headers, items=[{"product_id": product["id"], "quantity": 1}], amount_paid="500")

    drafts = client.get("/api/bills/", params={"status": "DRAFT"}, headers=auth_headers).json()["data"]
    assert drafts["pagination"]["total"] == 1

    completed = client.get("/api/bills/", params={"payment_status": "COMPLETED"}, headers=auth_headers).json()["data"]
    assert [b["id"] for b in completed["items"]] == [paid["id"]]

    today = date.today().isoformat()
    in_range = client.get("/api/bills/", params={"date_from": today, "date_to": today}, headers=auth_headers).json()["data"]
    assert in_range["pagination"]["total"] == 2

    search = client.get("/api/bills/", params={"search": paid["bill_number"]}, headers=auth_headers).json()["data"]
    assert search["pagination"]["total"] == 1


def test_bill_stats_and_daily_sales(client, auth_headers, make_product):
    product = make_product(name="Sherwani", base_price="5000", initial_stock="5")
    _create_bill(client, auth_headers, items=[{"product_id": product["id"], "quantity": 2}], amount_paid="10000")
    cancelled = _create_bill(client, auth_headers, items=[{"product_id": product["id"], "quantity": 1}])
    client.post(f"/api/bills/{cancelled['id']}/cancel", json={"reason": "test"}, headers=auth_headers)

    stats = client.get("/api/bills/stats/overview", headers=auth_headers).json()["data"]
    assert stats["total_bills"] == 1
    assert stats["total_revenue"] == 10000.0
    assert stats["outstanding"] == 0.0
    assert stats["by_status"]["CANCELLED"] == 1
    assert stats["by_payment_method"]["CASH"]["count"] == 1

    daily = client.get("/api/bills/reports/daily-sales", headers=auth_headers).json()["data"]
    assert daily["total_sales"] == 10000.0
    assert daily["bill_count"] == 1
    assert daily["top_products"][0]["name"] == "Sherwani"
    assert daily["top_products"][0]["quantity"] == 2.0


def test_bills_are_scoped_to_workspace(client, owner, auth_headers, make_product):
    product = make_product()
    bill = _create_bill(client, auth_headers, items=[{"product_id": product["id"], "quantity": 1}])
    other = client.post("/api/workspaces/", json={"name": "Other Shop"}, headers=bearer(owner)).json()["data"]

    response = client.get(f"/api/bills/{bill['id']}", headers=bearer(owner, other["id"]))
    assert response.status_code == 404
    assert response.json()["error"]["message"] == "Bill not found"


def test_invoice_pdf_and_html(client, auth_headers, make_product):
    product = make_product(name="Cotton Kurta")
    bill = _create_bill(client, auth_headers, items=[{"product_id": product["id"], "quantity": 1}])

    pdf = client.get(f"/api/bills/{bill['id']}/invoice", headers=auth_headers)
    assert pdf.status_code == 200
    assert pdf.headers["content-type"] == "application/pdf"
    assert pdf.content.startswith(b"%PDF")
    assert bill["bill_number"] in pdf.headers["content-disposition"]

    classic = client.get(f"/api/bills/{bill['id']}/invoice", params={"template": "classic"}, headers=auth_headers)
    assert classic.content.startswith(b"%PDF")

    html = client.get(f"/api/bills/{bill['id']}/invoice", params={"format": "html"}, headers=auth_headers)
    assert html.status_code == 200
    assert "Walk-in Customer" in html.text
    assert "Cotton Kurta" in html.text

    assert client.get(f"/api/bills/{bill['id']}/invoice", params={"format": "doc"}, headers=auth_headers).status_code == 400


def test_send_whatsapp_builds_web_link(client, auth_headers, make_product, make_customer):
    customer = make_customer(phone="9876512345")
    product = make_product()
    bill = _create_bill(
        client, auth_headers, customer_id=customer["id"], items=[{"product_id": product["id"], "quantity": 1}]
    )
    url = f"/api/bills/{bill['id']}/send-whatsapp"

    disabled = client.post(url, json={}, headers=auth_headers)
    assert disabled.status_code == 400

    client.put("/api/settings/whatsapp", json={"enabled": True, "method": "web"}, headers=auth_headers)
    response = client.post(url, json={}, headers=auth_headers)
    assert response.status_code == 200
    result = response.json()["data"]
    assert result["sent"] is False
    assert result["phone"] == "919876512345"
    assert result["url"].startswith("https://web.whatsapp.com/send?phone=919876512345&text=")
    assert bill["bill_number"] in result["message"]

    bad_phone = client.post(url, json={"phone": "12345"}, headers=auth_headers)
    assert bad_phone.status_code == 400
