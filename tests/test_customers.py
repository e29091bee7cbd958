def test_create_and_search_customers(client, auth_headers, make_customer):
    make_customer(first_name="Priya", last_name="Shah", phone="9820011111", email="priya@mail.com")
    make_customer(first_name="Arjun", last_name="Mehta", phone="9820022222", city="Mumbai")

    found = client.get("/api/customers/search/priya shah", headers=auth_headers).json()["data"]
    assert [c["first_name"] for c in found] == ["Priya"]

    by_phone = client.get("/api/customers/", params={"search": "22222"}, headers=auth_headers).json()["data"]
    assert [c["first_name"] for c in by_phone["items"]] == ["Arjun"]

    by_city = client.get("/api/customers/", params={"city": "mumbai"}, headers=auth_headers).json()["data"]
    assert by_city["pagination"]["total"] == 1


def test_contact_details_are_unique_per_workspace(client, auth_headers, make_customer):
    make_customer(phone="9811100000", email="dup@mail.com")
    same_phone = client.post("/api/customers/", json={"first_name": "X", "phone": "9811100000"}, headers=auth_headers)
    assert same_phone.status_code == 409
    same_email = client.post("/api/customers/", json={"first_name": "Y", "email": "DUP@mail.com"}, headers=auth_headers)
    assert same_email.status_code == 409


def test_customer_field_validation(client, auth_headers):
    response = client.post("/api/customers/", json={"first_name": "Z", "phone": "123", "pincode": "12"}, headers=auth_headers)
    assert response.status_code == 400
    fields = {d["field"] for d in response.json()["error"]["details"]}
    assert {"phone", "pincode"} <= fields


def test_update_and_delete_customer(client, auth_headers, make_customer, make_member):
    customer = make_customer()
    response = client.put(f"/api/customers/{customer['id']}", json={"city": "Jaipur", "gender": "FEMALE"}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["data"]["city"] == "Jaipur"

    member_headers, _ = make_member("MEMBER")
    assert client.delete(f"/api/customers/{customer['id']}", headers=member_headers).status_code == 403

    assert client.delete(f"/api/customers/{customer['id']}", headers=auth_headers).status_code == 200
    assert client.get(f"/api/customers/{customer['id']}", headers=auth_headers).status_code == 404


def test_measurements_lifecycle(client, auth_headers, make_customer):
    customer = make_customer()
    base = f"/api/customers/{customer['id']}/measurements"

    empty = client.post(base, json={"name": "Shirt", "measurements": {"chest": ""}}, headers=auth_headers)
    assert empty.status_code == 400

    created = client.post(
        base, json={"name": "Shirt", "measurements": {"chest": 40, "waist": 34.5, "fit": "slim"}}, headers=auth_headers
    )
    assert created.status_code == 201
    measurement = created.json()["data"]
    assert measurement["measurements"]["chest"] == 40
    assert measurement["measurements"]["fit"] == "slim"

    updated = client.put(
        f"{base}/{measurement['id']}", json={"measurements": {"chest": 41, "waist": 35}}, headers=auth_headers
    )
    assert updated.status_code == 200
    assert updated.json()["data"]["measurements"] == {"chest": 41, "waist": 35}

    detail = client.get(f"/api/customers/{customer['id']}", headers=auth_headers).json()["data"]
    assert [m["name"] for m in detail["measurements"]] == ["Shirt"]
    assert detail["bill_count"] == 0

    assert client.delete(f"{base}/{measurement['id']}", headers=auth_headers).status_code == 200
    assert client.get(base, headers=auth_headers).json()["data"] == []
    assert client.put(f"{base}/{measurement['id']}", json={"notes": "x"}, headers=auth_headers).status_code == 404


def test_customer_stats(client, auth_headers, make_customer):
    make_customer(gender="MALE")
    make_customer(gender="FEMALE")
    make_customer()
    stats = client.get("/api/customers/stats/overview", headers=auth_headers).json()["data"]
    assert stats["total"] == 3
    assert stats["active"] == 3
    assert stats["new_this_month"] == 3
    assert stats["by_gender"] == {"MALE": 1, "FEMALE": 1, "OTHER": 0, "UNSPECIFIED": 1}


def test_customer_bill_history(client, auth_headers, make_customer, make_product):
    customer = make_customer()
    product = make_product()
    client.post("/api/bills/", json={
        "customer_id": customer["id"], "items": [{"product_id": product["id"], "quantity": 1}],
    }, headers=auth_headers)

    history = client.get(f"/api/customers/{customer['id']}/bills", headers=auth_headers).json()["data"]
    assert history["pagination"]["total"] == 1
    assert history["items"][0]["customer"]["id"] == customer["id"]
