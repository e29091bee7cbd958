from fabricpos.models import Invitation

from tests.conftest import OWNER, bearer


def test_register_creates_user_workspace_and_tokens(owner):
    assert owner["user"]["email"] == OWNER["email"]
    assert owner["tokens"]["token_type"] == "bearer"
    assert owner["tokens"]["access_token"]
    assert owner["tokens"]["refresh_token"]
    assert len(owner["workspaces"]) == 1
    workspace = owner["workspaces"][0]
    assert workspace["name"] == "Asha Tailors"
    assert workspace["slug"] == "asha-tailors"
    assert workspace["role"] == "OWNER"


def test_register_rejects_weak_password(client):
    payload = dict(OWNER, password="weakpass")
    response = client.post("/api/auth/register", json=payload)
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"]["message"] == "Validation failed"
    assert any(d["field"] == "password" for d in body["error"]["details"])


def test_register_rejects_blank_first_name(client):
    response = client.post("/api/auth/register", json=dict(OWNER, first_name="   "))
    assert response.status_code == 400
    assert any(d["field"] == "first_name" for d in response.json()["error"]["details"])


def test_register_duplicate_email_conflicts(client, owner):
    payload = dict(OWNER, username="someone_else")
    response = client.post("/api/auth/register", json=payload)
    assert response.status_code == 409


def test_login_and_invalid_credentials(client, owner):
    response = client.post("/api/auth/login", json={"email": OWNER["email"], "password": OWNER["password"]})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["user"]["last_login_at"] is not None
    assert data["workspaces"][0]["role"] == "OWNER"

    response = client.post("/api/auth/login", json={"email": OWNER["email"], "password": "Wrong@1234"})
    assert response.status_code == 401
    assert response.json()["error"]["message"] == "Invalid credentials"


def test_oauth2_token_form_accepts_username(client, owner):
    response = client.post("/api/auth/token", data={"username": OWNER["username"], "password": OWNER["password"]})
    assert response.status_code == 200
    assert response.json()["token_type"] == "bearer"


def test_protected_route_requires_token(client):
    response = client.get("/api/auth/profile")
    assert response.status_code == 401
    assert response.json()["error"]["message"] == "Access token required"

    response = client.get("/api/auth/profile", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


def test_refresh_issues_new_pair(client, owner):
    response = client.post("/api/auth/refresh", json={"refresh_token": owner["tokens"]["refresh_token"]})
    assert response.status_code == 200
    assert response.json()["data"]["access_token"]

    # an access token is not accepted as a refresh token
    response = client.post("/api/auth/refresh", json={"refresh_token": owner["tokens"]["access_token"]})
    assert response.status_code == 401


def test_profile_update_and_verify(client, owner):
    headers = bearer(owner)
    response = client.put("/api/auth/profile", json={"first_name": "  Asha R ", "phone": "9876543210"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["data"]["first_name"] == "Asha R"

    response = client.get("/api/auth/verify", headers=headers)
    assert response.json()["data"]["phone"] == "9876543210"


def test_change_password(client, owner):
    headers = bearer(owner)
    response = client.post(
        "/api/auth/change-password",
        json={"current_password": "Wrong@1234", "new_password": "Newpass@123"},
        headers=headers,
    )
    assert response.status_code == 400

    response = client.post(
        "/api/auth/change-password",
        json={"current_password": OWNER["password"], "new_password": "Newpass@123"},
        headers=headers,
    )
    assert response.status_code == 200
    login = client.post("/api/auth/login", json={"email": OWNER["email"], "password": "Newpass@123"})
    assert login.status_code == 200


def test_password_reset_flow(client, owner):
    response = client.post("/api/auth/forgot-password", json={"email": OWNER["email"]})
    assert response.status_code == 200
    link = response.json()["data"]["reset_link"]
    token = link.rsplit("/", 1)[-1]

    verify = client.get(f"/api/auth/reset-password/verify/{token}")
    assert verify.status_code == 200
    assert verify.json()["data"]["email"] == OWNER["email"]

    reset = client.post("/api/auth/reset-password", json={"token": token, "new_password": "Reset@1234"})
    assert reset.status_code == 200

    # tokens are single use
    again = client.post("/api/auth/reset-password", json={"token": token, "new_password": "Again@1234"})
    assert again.status_code == 400

    login = client.post("/api/auth/login", json={"email": OWNER["email"], "password": "Reset@1234"})
    assert login.status_code == 200


def test_forgot_password_unknown_email_does_not_leak(client):
    response = client.post("/api/auth/forgot-password", json={"email": "nobody@fabricshop.com"})
    assert response.status_code == 200
    assert response.json()["data"] == {}


def _invite(client, auth_headers, workspace_id, db_session, email, role="MEMBER"):
    response = client.post(
        f"/api/workspaces/{workspace_id}/invite", json={"email": email, "role": role}, headers=auth_headers
    )
    assert response.status_code == 201, response.text
    return db_session.query(Invitation).filter(Invitation.email == email).one().token


def test_accept_invitation_as_new_user(client, auth_headers, workspace_id, db_session):
    token = _invite(client, auth_headers, workspace_id, db_session, "tailor@fabricshop.com", "ADMIN")

    info = client.get(f"/api/auth/invite/verify/{token}")
    assert info.status_code == 200
    assert info.json()["data"]["user_exists"] is False
    assert info.json()["data"]["organization_name"] == "Asha Tailors"

    missing = client.post("/api/auth/accept-invitation", json={"token": token})
    assert missing.status_code == 400

    response = client.post("/api/auth/accept-invitation", json={
        "token": token, "username": "tailor_one", "password": "Tailor@123", "first_name": "Ravi",
    })
    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert data["user"]["email"] == "tailor@fabricshop.com"
    assert data["workspaces"][0]["role"] == "ADMIN"

    reused = client.post("/api/auth/accept-invitation", json={"token": token})
    assert reused.status_code == 400


def test_accept_invitation_existing_user_must_log_in(client, auth_headers, workspace_id, db_session):
    other = client.post("/api/auth/register", json={
        "email": "karan@fabricshop.com", "username": "karan", "password": "Karan@1234", "first_name": "Karan",
    }).json()["data"]
    token = _invite(client, auth_headers, workspace_id, db_session, "karan@fabricshop.com")

    anonymous = client.post("/api/auth/accept-invitation", json={"token": token})
    assert anonymous.status_code == 401

    response = client.post("/api/auth/accept-invitation", json={"token": token}, headers=bearer(other))
    assert response.status_code == 200
    roles = {w["id"]: w["role"] for w in response.json()["data"]["workspaces"]}
    assert roles[workspace_id] == "MEMBER"


def test_accept_invitation_with_wrong_account_is_forbidden(client, owner, auth_headers, workspace_id, db_session):
    token = _invite(client, auth_headers, workspace_id, db_session, "meera@fabricshop.com")
    response = client.post("/api/auth/accept-invitation", json={"token": token}, headers=bearer(owner))
    assert response.status_code == 403
