import io
from decimal import Decimal

import pandas as pd

from fabricpos.crud.inventory import current_stock_from_movements
from fabricpos.models import InventoryMovement


# --- Categories ---
def test_category_crud(client, auth_headers, make_product):
    response = client.post("/api/categories/", json={"name": "Shirts", "description": "Formal"}, headers=auth_headers)
    assert response.status_code == 201
    category = response.json()["data"]

    duplicate = client.post("/api/categories/", json={"name": "shirts"}, headers=auth_headers)
    assert duplicate.status_code == 409

    make_product(category_id=category["id"])
    listed = client.get("/api/categories/", headers=auth_headers).json()["data"]
    assert listed["items"][0]["product_count"] == 1

    # in use, so it cannot be removed
    assert client.delete(f"/api/categories/{category['id']}", headers=auth_headers).status_code == 409

    renamed = client.put(f"/api/categories/{category['id']}", json={"name": "Formal Shirts"}, headers=auth_headers)
    assert renamed.json()["data"]["name"] == "Formal Shirts"


def test_empty_category_can_be_deleted(client, auth_headers):
    category = client.post("/api/categories/", json={"name": "Sarees"}, headers=auth_headers).json()["data"]
    assert client.delete(f"/api/categories/{category['id']}", headers=auth_headers).status_code == 200
    listed = client.get("/api/categories/", headers=auth_headers).json()["data"]
    assert listed["items"] == []
    everything = client.get("/api/categories/", params={"include_inactive": True}, headers=auth_headers).json()["data"]
    assert everything["items"][0]["is_active"] is False


# --- Products ---
def test_create_product_records_initial_stock(client, auth_headers, make_product, db_session):
    product = make_product(sku="SHIRT-001", initial_stock="12")
    assert product["barcode"] == "SHIRT-001"
    assert Decimal(product["selling_price"]) == Decimal("500.00")
    assert Decimal(product["stock_quantity"]) == Decimal("12")
    assert product["tracks_stock"] is True

    movements = db_session.query(InventoryMovement).filter(InventoryMovement.product_id == product["id"]).all()
    assert [(m.type.value, m.quantity) for m in movements] == [("IN", Decimal("12.00"))]


def test_duplicate_sku_conflicts(client, auth_headers, make_product):
    make_product(sku="DUP-1")
    response = client.post("/api/products/", json={"name": "Other", "sku": "DUP-1", "base_price": "10"}, headers=auth_headers)
    assert response.status_code == 409


def test_service_products_do_not_take_stock(client, auth_headers):
    response = client.post("/api/products/", json={
        "name": "Suit Stitching", "sku": "SRV-1", "type": "TAILORING_SERVICE", "base_price": "2500",
        "initial_stock": "5",
    }, headers=auth_headers)
    assert response.status_code == 400

    response = client.post("/api/products/", json={
        "name": "Suit Stitching", "sku": "SRV-1", "type": "TAILORING_SERVICE", "base_price": "2500",
    }, headers=auth_headers)
    assert response.status_code == 201
    assert response.json()["data"]["tracks_stock"] is False
    assert response.json()["data"]["is_low_stock"] is False


def test_members_cannot_manage_catalog(client, make_member, make_product):
    member_headers, _ = make_member("MEMBER")
    product = make_product()
    assert client.get(f"/api/products/{product['id']}", headers=member_headers).status_code == 200
    response = client.post("/api/products/", json={"name": "X", "sku": "X1", "base_price": "1"}, headers=member_headers)
    assert response.status_code == 403
    assert client.delete(f"/api/products/{product['id']}", headers=member_headers).status_code == 403


def test_lookups(client, auth_headers, make_product):
    fabric = make_product(name="Linen Fabric", sku="FAB-LIN", type="FABRIC", unit="m", initial_stock="1", min_stock="5")
    make_product(name="Denim Jeans", sku="RM-JEANS")

    by_barcode = client.get("/api/products/barcode/FAB-LIN", headers=auth_headers).json()["data"]
    assert by_barcode["id"] == fabric["id"]

    found = client.get("/api/products/search/linen", headers=auth_headers).json()["data"]
    assert [p["sku"] for p in found] == ["FAB-LIN"]

    fabrics = client.get("/api/products/type/FABRIC", headers=auth_headers).json()["data"]
    assert [p["sku"] for p in fabrics] == ["FAB-LIN"]

    low = client.get("/api/products/low-stock", headers=auth_headers).json()["data"]
    assert [p["sku"] for p in low] == ["FAB-LIN"]

    filtered = client.get("/api/products/", params={"low_stock": True}, headers=auth_headers).json()["data"]
    assert filtered["pagination"]["total"] == 1

    assert client.get("/api/products/barcode/NOPE", headers=auth_headers).status_code == 404


def test_update_and_soft_delete(client, auth_headers, make_product):
    product = make_product()
    response = client.put(
        f"/api/products/{product['id']}", json={"selling_price": "549.50", "min_stock": "4"}, headers=auth_headers
    )
    assert response.status_code == 200
    assert Decimal(response.json()["data"]["selling_price"]) == Decimal("549.50")

    bad = client.put(f"/api/products/{product['id']}", json={"max_stock": "1"}, headers=auth_headers)
    assert bad.status_code == 400

    assert client.delete(f"/api/products/{product['id']}", headers=auth_headers).status_code == 200
    assert client.get(f"/api/products/{product['id']}", headers=auth_headers).status_code == 404


def test_product_stats(client, auth_headers, make_product):
    make_product(initial_stock="10", cost_price="100", base_price="150")
    make_product(initial_stock="0", min_stock="1")
    stats = client.get("/api/products/stats/overview", headers=auth_headers).json()["data"]
    assert stats["total"] == 2
    assert stats["by_type"]["READY_MADE"] == 2
    assert stats["out_of_stock"] == 1
    assert stats["low_stock"] == 1
    assert stats["stock_value_cost"] == 1000.0
    assert stats["stock_value_selling"] == 1500.0


def test_export_csv_and_xlsx(client, auth_headers, make_product):
    make_product(sku="EXP-1", name="Kurta")

    csv = client.get("/api/products/export", params={"format": "csv"}, headers=auth_headers)
    assert csv.status_code == 200
    assert csv.headers["content-type"].startswith("text/csv")
    df = pd.read_csv(io.BytesIO(csv.content))
    assert list(df["sku"]) == ["EXP-1"]
    assert df.loc[0, "stock"] == 10

    xlsx = client.get("/api/products/export", headers=auth_headers)
    assert xlsx.status_code == 200
    sheet = pd.read_excel(io.BytesIO(xlsx.content), engine="openpyxl")
    assert list(sheet["name"]) == ["Kurta"]


def test_import_creates_updates_and_reports_errors(client, auth_headers, make_product, db_session):
    existing = make_product(sku="IMP-1", initial_stock="3")
    csv = (
        "sku,name,type,base_price,category,stock\n"
        "IMP-1,Updated Shirt,READY_MADE,650,Shirts,8\n"
        "IMP-2,Silk Fabric,fabric,900,Fabrics,25\n"
        "IMP-3,Broken,READY_MADE,abc,,\n"
    )
    response = client.post(
        "/api/products/import",
        files={"file": ("products.csv", csv.encode("utf-8"), "text/csv")},
        headers=auth_headers,
    )
    assert response.status_code == 200, response.text
    result = response.json()["data"]
    assert (result["created"], result["updated"], result["failed"]) == (1, 1, 1)
    assert "Row 4 (IMP-3)" in result["errors"][0]

    updated = client.get(f"/api/products/{existing['id']}", headers=auth_headers).json()["data"]
    assert updated["name"] == "Updated Shirt"
    assert Decimal(updated["stock_quantity"]) == Decimal("8")
    assert updated["category"]["name"] == "Shirts"
    assert current_stock_from_movements(db_session, existing["id"]) == Decimal("8")


def test_import_rejects_unknown_file_type(client, auth_headers):
    response = client.post(
        "/api/products/import", files={"file": ("products.txt", b"sku,name", "text/plain")}, headers=auth_headers
    )
    assert response.status_code == 400


def test_product_barcode_images(client, auth_headers, make_product):
    product = make_product()
    png = client.get(f"/api/products/{product['id']}/barcode", headers=auth_headers)
    assert png.status_code == 200
    assert png.content.startswith(b"\x89PNG")

    label = client.get(f"/api/products/{product['id']}/label", headers=auth_headers)
    assert label.content.startswith(b"\x89PNG")

    regenerated = client.post(f"/api/products/{product['id']}/regenerate-barcode", headers=auth_headers)
    code = regenerated.json()["data"]["barcode"]
    assert len(code) == 13 and code.startswith("2")


def test_include_inactive_is_for_admins(client, auth_headers, make_product, make_member):
    product = make_product()
    client.delete(f"/api/products/{product['id']}", headers=auth_headers)

    assert client.get("/api/products/", headers=auth_headers).json()["data"]["pagination"]["total"] == 0
    everything = client.get("/api/products/", params={"include_inactive": True}, headers=auth_headers).json()["data"]
    assert [p["is_active"] for p in everything["items"]] == [False]

    member_headers, _ = make_member("MEMBER")
    response = client.get("/api/products/", params={"include_inactive": True}, headers=member_headers)
    assert response.status_code == 403
