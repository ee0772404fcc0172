"""Tests for sign in, registration and admin gating."""

from donations import crud
from donations.auth import create_session_token, decode_session_token
from donations.config import settings
from donations.forms import DonationForm

from conftest import PASSWORD


class TestHealth:
    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == settings.SERVICE_NAME


class TestLogin:
    def test_pages_redirect_to_login(self, client):
        response = client.get("/c/default", follow_redirects=False)
        assert response.status_code == 303
        assert response.headers["location"].startswith("/login?next=")

    def test_api_returns_401(self, client):
        response = client.get("/api/c/default/totals")
        assert response.status_code == 401
        assert response.json() == {"detail": "Login required"}

    def test_redirect_keeps_query_string(self, client, member):
        response = client.get(
            "/c/c1/donations",
            params={"q": "juan", "method": "card"},
            follow_redirects=False,
        )
        assert response.status_code == 303
        location = response.headers["location"]
        assert location == "/login?next=%2Fc%2Fc1%2Fdonations%3Fq%3Djuan%26method%3Dcard"

        response = client.post(
            "/login",
            data={
                "email": member.email,
                "password": PASSWORD,
                "next": "/c/c1/donations?q=juan&method=card",
            },
            follow_redirects=False,
        )
        assert response.headers["location"] == "/c/c1/donations?q=juan&method=card"

    def test_login_page_renders(self, client):
        response = client.get("/login")
        assert response.status_code == 200
        assert 'name="password"' in response.text

    def test_login_success_sets_cookie_and_redirects(self, client, member):
        response = client.post(
            "/login",
            data={"email": member.email, "password": PASSWORD, "next": "/c/raul"},
            follow_redirects=False,
        )
        assert response.status_code == 303
        assert response.headers["location"] == "/c/raul"
        assert settings.SESSION_COOKIE in response.cookies

        assert client.get("/c/raul").status_code == 200

    def test_login_ignores_external_next(self, client, member):
        response = client.post(
            "/login",
            data={"email": member.email, "password": PASSWORD, "next": "//evil.example"},
            follow_redirects=False,
        )
        assert response.headers["location"] == "/"

    def test_wrong_password(self, client, member):
        response = client.post(
            "/login", data={"email": member.email, "password": "nope-nope"}
        )
        assert response.status_code == 400
        assert "Invalid email or password" in response.text

    def test_tampered_cookie_is_ignored(self, client):
        client.cookies.set(settings.SESSION_COOKIE, "not-a-jwt")
        response = client.get("/c/default", follow_redirects=False)
        assert response.status_code == 303

    def test_logout_clears_session(self, member_client):
        assert member_client.get("/c/default").status_code == 200
        member_client.post("/logout", follow_redirects=False)
        member_client.cookies.clear()
        response = member_client.get("/c/default", follow_redirects=False)
        assert response.status_code == 303

    def test_logged_in_user_skips_login_page(self, member_client):
        response = member_client.get("/login", follow_redirects=False)
        assert response.status_code == 303


class TestRegister:
    def test_register_member(self, client, db):
        response = client.post(
            "/register",
            data={"email": "new@example.com", "password": "long-enough"},
            follow_redirects=False,
        )
        assert response.status_code == 303
        user = crud.get_user_by_email(db, "new@example.com")
        assert user.role == "member"

    def test_register_admin_email(self, client, db):
        client.post(
            "/register",
            data={"email": "Boss@Example.com", "password": "long-enough"},
            follow_redirects=False,
        )
        assert crud.get_user_by_email(db, "boss@example.com").is_admin

    def test_short_password(self, client):
        response = client.post(
            "/register", data={"email": "a@example.com", "password": "short"}
        )
        assert response.status_code == 400
        assert "at least" in response.text

    def test_duplicate(self, client, member):
        response = client.post(
            "/register", data={"email": member.email, "password": "long-enough"}
        )
        assert response.status_code == 400
        assert "already registered" in response.text


class TestSessionToken:
    def test_roundtrip_payload(self, member):
        payload = decode_session_token(create_session_token(member))
        assert payload["sub"] == str(member.id)
        assert payload["role"] == "member"

    def test_bad_signature(self, member):
        token = create_session_token(member)
        assert decode_session_token(token[:-2] + "xx") is None


class TestAdminGate:
    def test_member_cannot_edit(self, member_client, db):
        d = crud.create_donation(db, "c1", DonationForm.parse("Jane", "10", "cash"))
        response = member_client.get(f"/c/c1/donations/{d.id}/edit")
        assert response.status_code == 403
        assert "Only administrators" in response.text

    def test_member_cannot_delete(self, member_client, db):
        d = crud.create_donation(db, "c1", DonationForm.parse("Jane", "10", "cash"))
        response = member_client.post(f"/c/c1/donations/{d.id}/delete")
        assert response.status_code == 403
        db.expire_all()
        assert crud.get_donation(db, d.id).status == "active"

    def test_admin_can_open_edit(self, admin_client, db):
        d = crud.create_donation(db, "c1", DonationForm.parse("Jane", "10", "cash"))
        response = admin_client.get(f"/c/c1/donations/{d.id}/edit")
        assert response.status_code == 200
        assert "Save changes" in response.text
