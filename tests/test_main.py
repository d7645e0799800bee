from fastapi.testclient import TestClient

from loanbook.main import create_app
from loanbook.repo import get_friend, update_tracking_code
from loanbook.settings import Settings

REGISTRATION = {
    "full_name": "Owner",
    "email": "owner@example.com",
    "password": "Sup3r$ecret",
    "confirm_password": "Sup3r$ecret",
    "country_code": "+94",
    "phone": "771234567",
}


def make_client(tmp_path):
    settings = Settings(data_dir=tmp_path, db_path=tmp_path / "t.sqlite")
    return TestClient(create_app(settings)), settings


def register(client):
    response = client.post("/register", data=REGISTRATION)
    assert response.status_code == 200
    return response


def add_friend(client, name="Kamal", phone="711111111"):
    response = client.post(
        "/friends", data={"full_name": name, "country_code": "+94", "phone": phone}
    )
    assert response.status_code == 200
    return int(str(response.url).rstrip("/").rsplit("/", 1)[-1])


def record(client, friend_id, txn_type, amount, **headers):
    return client.post(
        "/transactions",
        data={"friend_id": friend_id, "type": txn_type, "amount": amount},
        headers=headers,
    )


def test_anonymous_visitor_sees_login(tmp_path):
    client, _ = make_client(tmp_path)

    response = client.get("/")

    assert response.status_code == 200
    assert "Sign in" in response.text


def test_register_lands_on_dashboard(tmp_path):
    client, _ = make_client(tmp_path)

    response = register(client)

    assert "Total Friends" in response.text
    assert "All settled up." in response.text


def test_register_rejects_weak_password(tmp_path):
    client, _ = make_client(tmp_path)

    response = client.post(
        "/register", data={**REGISTRATION, "password": "weak", "confirm_password": "weak"}
    )

    assert response.status_code == 400


def test_login_and_logout(tmp_path):
    client, _ = make_client(tmp_path)
    register(client)
    client.post("/logout")
    assert "Sign in" in client.get("/").text

    bad = client.post("/login", data={"email": "owner@example.com", "password": "nope"})
    assert bad.status_code == 401

    good = client.post(
        "/login", data={"email": "owner@example.com", "password": "Sup3r$ecret"}
    )
    assert good.status_code == 200
    assert "Total Friends" in good.text


def test_record_transactions_and_read_balances(tmp_path):
    client, _ = make_client(tmp_path)
    register(client)
    friend_id = add_friend(client)

    assert record(client, friend_id, "loan", "100").status_code == 200
    assert record(client, friend_id, "repayment", "40").status_code == 200

    payload = client.get("/api/balances").json()
    assert payload["currency"] == "LKR"
    assert payload["balances"] == {
        str(friend_id): {
            "total_borrowed": "100",
            "total_repaid": "40",
            "remaining_balance": "60",
        }
    }
    assert payload["summary"]["total_outstanding"] == "60"
    assert payload["summary"]["all_settled"] is False

    page = client.get(f"/friends/{friend_id}")
    assert "Kamal owes LKR 60.00" in page.text


def test_htmx_request_gets_partial(tmp_path):
    client, _ = make_client(tmp_path)
    register(client)
    friend_id = add_friend(client)

    response = record(client, friend_id, "loan", "12.50", **{"HX-Request": "true"})

    assert response.status_code == 200
    assert 'id="balance-summary"' in response.text
    assert "<html" not in response.text


def test_invalid_transaction_input_is_rejected(tmp_path):
    client, _ = make_client(tmp_path)
    register(client)
    friend_id = add_friend(client)

    assert record(client, friend_id, "loan", "-1").status_code == 400
    assert record(client, friend_id, "gift", "5").status_code == 400
    assert record(client, friend_id + 100, "loan", "5").status_code == 404


def test_dashboard_filter(tmp_path):
    client, _ = make_client(tmp_path)
    register(client)
    owing = add_friend(client, "Amara", "711111111")
    add_friend(client, "Bandara", "722222222")
    record(client, owing, "loan", "10")

    outstanding = client.get("/", params={"status": "outstanding"})
    assert "Amara" in outstanding.text
    assert "Bandara" not in outstanding.text

    settled = client.get("/", params={"status": "settled"})
    assert "Bandara" in settled.text

    assert client.get("/", params={"status": "overdue"}).status_code == 400


def test_routes_require_login(tmp_path):
    client, _ = make_client(tmp_path)

    response = client.post(
        "/friends",
        data={"full_name": "X", "country_code": "+94", "phone": "711111111"},
        follow_redirects=False,
    )
    assert response.status_code == 303
    assert response.headers["location"] == "/"
    assert client.get("/api/balances").status_code == 401


def test_tracking_page_needs_the_right_code(tmp_path):
    client, settings = make_client(tmp_path)
    register(client)
    friend_id = add_friend(client)
    record(client, friend_id, "loan", "75")
    update_tracking_code(settings.db_path, friend_id, admin_id=1, code="0420")
    token = get_friend(settings.db_path, friend_id, admin_id=1).tracking_url

    client.post("/logout")
    assert client.get(f"/track/{token}").status_code == 200
    assert client.get(f"/track/{token}", params={"code": "9999"}).status_code == 403

    page = client.get(f"/track/{token}", params={"code": "0420"})
    assert page.status_code == 200
    assert "Kamal owes LKR 75.00" in page.text

    assert client.get("/track/not-a-token").status_code == 404
    assert client.get("/track/AAAAAAAAAAAA-zz").status_code == 404


def test_export_csv(tmp_path):
    client, _ = make_client(tmp_path)
    register(client)
    friend_id = add_friend(client)
    record(client, friend_id, "loan", "10.05")

    response = client.get("/export.csv")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    lines = response.text.lstrip("\ufeff").splitlines()
    assert lines[0] == "id,friend_id,friend,date,type,amount,description"
    assert lines[1].split(",")[-3:] == ["loan", "10.05", ""]


def test_forged_cookies_are_not_a_login(tmp_path):
    client, _ = make_client(tmp_path)
    register(client)
    assert client.get("/api/balances").status_code == 200

    stranger = TestClient(client.app)
    stranger.cookies.set("admin_id", "1")
    assert stranger.get("/api/balances").status_code == 401
    assert "Sign in" in stranger.get("/").text

    # {"admin_id": 1} base64-encoded without a valid signature
    stranger.cookies.set("loanbook_session", "eyJhZG1pbl9pZCI6IDF9.forged.signature")
    assert stranger.get("/api/balances").status_code == 401
    response = stranger.get("/profile", follow_redirects=False)
    assert response.status_code == 303


def test_search_combines_with_status_filter(tmp_path):
    client, _ = make_client(tmp_path)
    register(client)
    amara = add_friend(client, "Amara", "711111111")
    add_friend(client, "Amal", "722222222")
    add_friend(client, "Bandara", "733333333")
    record(client, amara, "loan", "10")

    everyone = client.get("/", params={"q": "ama"})
    assert "Amara" in everyone.text
    assert "Amal" in everyone.text
    assert "Bandara" not in everyone.text

    owing = client.get("/", params={"q": "AMA", "status": "outstanding"})
    assert "Amara" in owing.text
    assert "Amal" not in owing.text

    settled = client.get("/", params={"q": "ama", "status": "settled"})
    assert "Amal" in settled.text
    assert "Bandara" not in settled.text

    by_number = client.get("/", params={"q": "733333"})
    assert "Bandara" in by_number.text
    assert "Amal<" not in by_number.text

    nobody = client.get("/", params={"q": "zzz"})
    assert "No matching friends." in nobody.text


def test_profile_update_and_password_change(tmp_path):
    client, _ = make_client(tmp_path)
    register(client)

    page = client.get("/profile")
    assert page.status_code == 200
    assert "owner@example.com" in page.text

    saved = client.post("/profile", data={"full_name": "Renamed", "preferred_currency": "EUR"})
    assert saved.status_code == 200
    assert "Profile saved." in saved.text
    assert client.get("/api/balances").json()["currency"] == "EUR"
    assert (
        client.post(
            "/profile", data={"full_name": "Renamed", "preferred_currency": "XYZ"}
        ).status_code
        == 400
    )

    change = {
        "current_password": "Sup3r$ecret",
        "new_password": "N3w$ecret!",
        "confirm_password": "N3w$ecret!",
    }
    assert (
        client.post("/profile/password", data={**change, "confirm_password": "other"}).status_code
        == 400
    )
    assert (
        client.post("/profile/password", data={**change, "current_password": "wrong"}).status_code
        == 401
    )
    assert "Password changed." in client.post("/profile/password", data=change).text

    client.post("/logout")
    assert (
        client.post(
            "/login", data={"email": "owner@example.com", "password": "Sup3r$ecret"}
        ).status_code
        == 401
    )
    assert (
        client.post(
            "/login", data={"email": "owner@example.com", "password": "N3w$ecret!"}
        ).status_code
        == 200
    )


def test_amounts_render_from_cents_exactly(tmp_path):
    client, _ = make_client(tmp_path)
    register(client)
    friend_id = add_friend(client)
    record(client, friend_id, "loan", "10.05")
    record(client, friend_id, "loan", "1234567.29")

    page = client.get(f"/friends/{friend_id}")
    assert "<td>LKR 10.05</td>" in page.text
    assert "<td>LKR 1,234,567.29</td>" in page.text

    dashboard = client.get("/")
    assert "loan LKR 1,234,567.29" in dashboard.text


def test_deleting_missing_transaction_is_404(tmp_path):
    client, _ = make_client(tmp_path)
    register(client)
    friend_id = add_friend(client)

    response = client.post("/transactions/999/delete", data={"friend_id": friend_id})

    assert response.status_code == 404
