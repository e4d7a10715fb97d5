import pytest


def register(client, **overrides):
    payload = {
        "email": "new@example.com",
        "password": "password123",
        "name": "New Person",
        "role": "attendee",
    }
    payload.update(overrides)
    return client.post("/auth/register", json=payload)


# --- REGISTER ---
def test_register_success(client, profiles):
    response = register(client)

    assert response.status_code == 201
    data = response.get_json()
    assert data["role"] == "attendee"
    assert data["is_loading"] is False
    assert data["user"]["name"] == "New Person"
    assert data["redirect"] == "/attendee"
    assert profiles[0]["email"] == "new@example.com"

    # The session cookie carries the new session into the next request
    me = client.get("/auth/me").get_json()
    assert me["user"]["email"] == "new@example.com"


def test_register_organizer_lands_on_organizer_page(client):
    data = register(client, role="organizer", organization_name="Acme").get_json()
    assert data["redirect"] == f"/organizer/{data['user']['id']}"
    assert data["user"]["organization_name"] == "Acme"


def test_register_missing_fields(client):
    response = client.post("/auth/register", json={})
    assert response.status_code == 400
    assert "Email and password required" in response.get_json()["error"]


def test_register_short_password(client):
    response = register(client, password="short")
    assert response.status_code == 400
    assert "at least 8 characters" in response.get_json()["error"]


def test_register_invalid_role(client, backend):
    response = register(client, role="superuser")
    assert response.status_code == 400
    assert "role must be one of" in response.get_json()["error"]
    assert backend.accounts == {}


def test_register_existing_email(client, backend):
    backend.add_user("new@example.com")
    response = register(client)
    assert response.status_code == 400
    assert response.get_json()["error"] == "User already registered"


def test_register_profile_failure_signs_out(client, backend):
    backend.fail("insert_one", "users", message="row-level security policy violation")

    response = register(client)

    assert response.status_code == 500
    assert "profile could not be saved" in response.get_json()["error"]
    assert client.get("/auth/me").get_json()["user"] is None


# --- LOGIN / LOGOUT ---
def test_login_success(client, backend):
    backend.add_user("ana@example.com", role="admin", name="Ana")

    response = client.post("/auth/login", json={"email": "ANA@example.com ", "password": "password123"})

    assert response.status_code == 200
    data = response.get_json()
    assert data["user"]["name"] == "Ana"
    assert data["role"] == "admin"
    assert data["redirect"] == "/admin"


def test_login_invalid_credentials(client, backend):
    backend.add_user("ana@example.com")
    response = client.post("/auth/login", json={"email": "ana@example.com", "password": "wrong-password"})
    assert response.status_code == 401
    assert response.get_json()["error"] == "Invalid login credentials"


def test_login_missing_fields(client):
    response = client.post("/auth/login", json={"email": "ana@example.com"})
    assert response.status_code == 400


def test_login_entry_point(client):
    response = client.get("/auth/login")
    assert response.status_code == 200
    assert response.get_json()["status"] == "sign_in_required"


def test_logout_clears_session(client, backend, login):
    backend.add_user("ana@example.com")
    login("ana@example.com")

    response = client.post("/auth/logout")

    assert response.status_code == 200
    assert response.get_json() == {"status": "signed_out"}
    me = client.get("/auth/me").get_json()
    assert me["user"] is None
    assert me["redirect"] == "/auth/login"


def test_logout_remote_failure_clears_cookie_session(client, backend, login):
    backend.add_user("ana@example.com")
    login("ana@example.com")
    backend.fail("sign_out", "", code="network", message="Could not reach the account store")

    response = client.post("/auth/logout")

    assert response.status_code == 502
    body = response.get_json()
    assert body["status"] == "signed_out_locally"
    assert "Could not reach the account store" in body["error"]
    assert client.get("/auth/me").get_json()["user"] is None


# --- ROLE SELECTION ---
def test_select_role_first_time(client, backend, login, profiles):
    backend.add_user("ana@example.com", role=None)
    assert login("ana@example.com")["redirect"] == "/dashboard"

    response = client.post("/auth/select-role", json={"role": "organizer"})

    assert response.status_code == 200
    data = response.get_json()
    assert data["role"] == "organizer"
    assert data["redirect"] == f"/organizer/{data['user']['id']}"
    assert profiles[0]["role"] == "organizer"


def test_select_role_already_chosen(client, backend, login):
    backend.add_user("ana@example.com", role="attendee")
    login("ana@example.com")

    response = client.post("/auth/select-role", json={"role": "admin"})

    assert response.status_code == 409
    assert response.get_json()["error"] == "Your role has already been selected."


def test_select_role_not_signed_in(client, backend):
    response = client.post("/auth/select-role", json={"role": "attendee"})
    assert response.status_code == 400
    assert ("update_one", "users") not in backend.calls


# --- /me ---
def test_update_me(client, backend, login):
    backend.add_user("ana@example.com", role="organizer")
    login("ana@example.com")

    response = client.put("/auth/me", json={"name": "Ana Lima", "bio": "Concerts"})

    assert response.status_code == 200
    assert response.get_json()["user"]["name"] == "Ana Lima"
    assert response.get_json()["user"]["bio"] == "Concerts"


def test_update_me_not_signed_in(client):
    response = client.put("/auth/me", json={"name": "Ana"})
    assert response.status_code == 401


def test_update_me_no_valid_fields(client, backend, login):
    backend.add_user("ana@example.com")
    login("ana@example.com")
    response = client.put("/auth/me", json={"role": "admin"})
    assert response.status_code == 400


# --- ADMIN ---
def test_admin_lists_users(client, backend, login):
    backend.add_user("admin@example.com", role="admin", name="Zed")
    backend.add_user("ana@example.com", name="Ana")
    login("admin@example.com")

    response = client.get("/auth/users")

    assert response.status_code == 200
    assert [u["name"] for u in response.get_json()] == ["Ana", "Zed"]


def test_non_admin_is_redirected(client, backend, login):
    backend.add_user("ana@example.com", role="attendee")
    login("ana@example.com")

    response = client.get("/auth/users")

    assert response.status_code == 302
    assert response.headers["Location"] == "/auth/login"


def test_signed_in_without_role_goes_to_role_selection(client, backend, login):
    backend.add_user("ana@example.com", role=None)
    login("ana@example.com")

    response = client.get("/auth/users")

    assert response.status_code == 302
    assert response.headers["Location"] == "/dashboard"


def test_admin_updates_user_role(client, backend, login, profiles):
    target = backend.add_user("ana@example.com", role="attendee")
    backend.add_user("admin@example.com", role="admin")
    login("admin@example.com")

    response = client.put(f"/auth/users/{target}", json={"role": "organizer", "name": "Ana"})

    assert response.status_code == 200
    assert response.get_json()["role"] == "organizer"
    assert profiles[0]["name"] == "Ana"


def test_admin_update_rejected_leaves_profile_unchanged(client, backend, login, profiles):
    target = backend.add_user("ana@example.com", role="attendee", name="Ana")
    backend.add_user("admin@example.com", role="admin")
    login("admin@example.com")
    backend.fail("update_one", "users", code="permission-denied", message="permission denied for table users")

    response = client.put(f"/auth/users/{target}", json={"role": "organizer", "name": "Ana Lima"})

    assert response.status_code == 409
    assert profiles[0]["role"] == "attendee"
    assert profiles[0]["name"] == "Ana"
    assert backend.calls.count(("update_one", "users")) == 1


def test_admin_get_missing_user(client, backend, login):
    backend.add_user("admin@example.com", role="admin")
    login("admin@example.com")
    response = client.get("/auth/users/acct-404")
    assert response.status_code == 404


# --- BEARER TOKENS ---
def test_bearer_caller(client, backend, bearer_headers):
    account_id = backend.add_user("api@example.com", role="admin")

    response = client.get("/auth/users", headers=bearer_headers(account_id))

    assert response.status_code == 200


def test_bearer_caller_wrong_role_gets_json(client, backend, bearer_headers):
    account_id = backend.add_user("api@example.com", role="attendee")

    response = client.get("/auth/users", headers=bearer_headers(account_id))

    assert response.status_code == 403
    assert response.get_json()["error"] == "permission denied"


def test_invalid_bearer_token(client):
    response = client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.get_json()["error"] == "invalid token"


# --- LOADING ---
@pytest.fixture
def unsettled_app(app, backend):
    def factory():
        store = backend.store()
        # Never deliver the initial session
        store.on_session_change = lambda callback: (lambda: None)
        return store
    app.config["ACCOUNT_STORE_FACTORY"] = factory
    return app


def test_guarded_page_waits_while_loading(unsettled_app):
    client = unsettled_app.test_client()
    for path in ("/auth/users", "/attendee", "/dashboard"):
        response = client.get(path)
        assert response.status_code == 202
        assert response.get_json() == {"status": "loading"}
