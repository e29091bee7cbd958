import io

from PIL import Image


def _png_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (20, 20), color="navy").save(buffer, format="PNG")
    return buffer.getvalue()


def test_whatsapp_settings_mask_the_token(client, auth_headers):
    defaults = client.get("/api/settings/whatsapp", headers=auth_headers).json()["data"]
    assert defaults["enabled"] is False
    assert defaults["method"] == "web"

    response = client.put("/api/settings/whatsapp", json={
        "enabled": True, "method": "api", "api_url": "https://graph.facebook.com/v18.0",
        "access_token": "EAAsecret9876", "phone_number_id": "10555",
    }, headers=auth_headers)
    assert response.status_code == 200
    masked = response.json()["data"]["access_token"]
    assert masked == "*" * 9 + "9876"

    # sending the masked value back keeps the stored token
    client.put("/api/settings/whatsapp", json={"access_token": masked, "phone_number_id": "20666"}, headers=auth_headers)
    current = client.get("/api/settings/whatsapp", headers=auth_headers).json()["data"]
    assert current["access_token"] == masked
    assert current["phone_number_id"] == "20666"


def test_whatsapp_api_method_requires_credentials(client, auth_headers, make_member):
    response = client.put("/api/settings/whatsapp", json={"enabled": True, "method": "api"}, headers=auth_headers)
    assert response.status_code == 400
    assert "access_token" in response.json()["error"]["message"]

    member_headers, _ = make_member("MEMBER")
    assert client.put("/api/settings/whatsapp", json={"enabled": True}, headers=member_headers).status_code == 403


def test_whatsapp_test_message_web(client, auth_headers):
    client.put("/api/settings/whatsapp", json={"enabled": True}, headers=auth_headers)
    result = client.post("/api/settings/whatsapp/test", json={"phone": "9876543210"}, headers=auth_headers).json()["data"]
    assert result["method"] == "web"
    assert "Test%20message%20from%20FabricPOS" in result["url"]


def test_business_info(client, auth_headers):
    defaults = client.get("/api/settings/business/info", headers=auth_headers).json()["data"]
    assert defaults["invoice_prefix"] == "CS"
    assert defaults["invoice_template"] == "modern"

    response = client.put("/api/settings/business/info", json={
        "business_name": "Asha Tailors", "business_city": "Pune", "invoice_prefix": "AT",
        "invoice_template": "elegant", "tax_rate": "12",
    }, headers=auth_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["business_name"] == "Asha Tailors"
    assert data["invoice_template"] == "elegant"
    assert data["tax_rate"] == "12"

    bad = client.put("/api/settings/business/info", json={"business_gstin": "123"}, headers=auth_headers)
    assert bad.status_code == 400


def test_invoice_prefix_applies_to_new_bills(client, auth_headers, make_product):
    client.put("/api/settings/business/info", json={"invoice_prefix": "AT"}, headers=auth_headers)
    product = make_product()
    bill = client.post("/api/bills/", json={"items": [{"product_id": product["id"], "quantity": 1}]}, headers=auth_headers)
    assert bill.json()["data"]["bill_number"].startswith("AT")


def test_logo_upload(client, auth_headers):
    response = client.post(
        "/api/settings/business/logo", files={"file": ("logo.png", _png_bytes(), "image/png")}, headers=auth_headers
    )
    assert response.status_code == 200
    assert response.json()["data"]["business_logo"].startswith("data:image/png;base64,")

    not_image = client.post(
        "/api/settings/business/logo", files={"file": ("notes.txt", b"hello", "text/plain")}, headers=auth_headers
    )
    assert not_image.status_code == 400

    fake_png = client.post(
        "/api/settings/business/logo", files={"file": ("logo.png", b"not really", "image/png")}, headers=auth_headers
    )
    assert fake_png.status_code == 400


def test_sample_invoice_pdf(client, auth_headers):
    client.post("/api/settings/business/logo", files={"file": ("logo.png", _png_bytes(), "image/png")}, headers=auth_headers)
    for template in ("modern", "classic", "minimal", "elegant"):
        response = client.post(
            "/api/settings/business/generate-sample-invoice", json={"template": template}, headers=auth_headers
        )
        assert response.status_code == 200
        assert response.content.startswith(b"%PDF")
        assert template in response.headers["content-disposition"]


def test_generic_settings(client, auth_headers):
    client.put("/api/settings/loyalty_enabled", json={"value": True, "category": "loyalty"}, headers=auth_headers)
    client.put("/api/settings/loyalty_rate", json={"value": 2.5, "category": "loyalty"}, headers=auth_headers)
    client.put("/api/settings/opening_hours", json={"value": {"mon": "10-20"}}, headers=auth_headers)
    client.put("/api/settings/greeting", json={"value": "Namaste"}, headers=auth_headers)

    everything = {s["key"]: s for s in client.get("/api/settings/", headers=auth_headers).json()["data"]}
    assert everything["loyalty_enabled"]["value"] is True
    assert everything["loyalty_enabled"]["type"] == "boolean"
    assert everything["loyalty_rate"]["value"] == 2.5
    assert everything["opening_hours"]["value"] == {"mon": "10-20"}
    assert everything["opening_hours"]["type"] == "json"
    assert everything["greeting"]["category"] == "general"

    loyalty = client.get("/api/settings/loyalty", headers=auth_headers).json()["data"]
    assert [s["key"] for s in loyalty] == ["loyalty_enabled", "loyalty_rate"]

    bad = client.put("/api/settings/flag", json={"value": "maybe", "type": "boolean"}, headers=auth_headers)
    assert bad.status_code == 400


def test_generic_writes_to_business_keys_are_validated(client, auth_headers, make_product):
    bad = client.put("/api/settings/business.tax_rate", json={"value": "abc", "category": "business"}, headers=auth_headers)
    assert bad.status_code == 400
    assert bad.json()["error"]["details"][0]["field"] == "business.tax_rate"

    unknown = client.put("/api/settings/business.colour", json={"value": "red"}, headers=auth_headers)
    assert unknown.status_code == 400

    saved = client.put("/api/settings/business.tax_rate", json={"value": "12"}, headers=auth_headers)
    assert saved.status_code == 200
    assert saved.json()["data"]["value"] == 12
    assert saved.json()["data"]["category"] == "business"

    info = client.get("/api/settings/business/info", headers=auth_headers)
    assert info.status_code == 200
    assert info.json()["data"]["tax_rate"] == "12"

    product = make_product()
    bill = client.post("/api/bills/", json={"items": [{"product_id": product["id"], "quantity": 1}]}, headers=auth_headers)
    assert bill.status_code == 201


def test_generic_writes_to_whatsapp_keys_keep_the_group_rules(client, auth_headers):
    bad = client.put("/api/settings/whatsapp.method", json={"value": "sms"}, headers=auth_headers)
    assert bad.status_code == 400

    client.put("/api/settings/whatsapp.enabled", json={"value": True}, headers=auth_headers)
    missing = client.put("/api/settings/whatsapp.method", json={"value": "api"}, headers=auth_headers)
    assert missing.status_code == 400
    assert "access_token" in missing.json()["error"]["message"]
    assert client.get("/api/settings/whatsapp", headers=auth_headers).json()["data"]["method"] == "web"


def test_null_whatsapp_fields_fall_back_to_defaults(client, auth_headers):
    client.put("/api/settings/whatsapp", json={
        "enabled": True, "method": "api", "api_url": "https://graph.facebook.com/v18.0",
        "access_token": "EAAsecret9876", "phone_number_id": "10555",
    }, headers=auth_headers)

    response = client.put("/api/settings/whatsapp", json={"method": None}, headers=auth_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["method"] == "web"
    assert data["enabled"] is True
    assert data["phone_number_id"] == "10555"

    partial = client.put("/api/settings/whatsapp", json={"enabled": None, "api_url": None}, headers=auth_headers)
    assert partial.status_code == 200
    assert partial.json()["data"]["enabled"] is False
    assert partial.json()["data"]["api_url"] is None
