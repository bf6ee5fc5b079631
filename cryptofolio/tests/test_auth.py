#!/usr/bin/env python3
"""
cryptofolio/tests/test_auth.py

Authentication tests for Cryptofolio.

These tests verify:
1. Password hashing and verification with bcrypt
2. The 72-byte bcrypt limit is enforced
3. Register / login / logout endpoints
4. Session-based access to /api/users/me
5. Deleting an account removes its data

Usage:
    pytest cryptofolio/tests/test_auth.py -v
"""

import uuid

import bcrypt
import pytest

from cryptofolio.models.user import User


def unique_name(prefix="user"):
    return f"{prefix}_{uuid.uuid4().hex[:8]}"


# =============================================================================
# UNIT TESTS - Password Hashing
# =============================================================================

class TestPasswordHashing:
    """Test the User model's password hashing methods."""

    def test_set_password_creates_valid_hash(self):
        user = User(username="testuser")
        user.set_password("mysecretpassword")

        assert user.password_hash.startswith("$2")
        assert len(user.password_hash) == 60

    def test_verify_password(self):
        user = User(username="testuser")
        user.set_password("correctpassword")

        assert user.verify_password("correctpassword") is True
        assert user.verify_password("wrongpassword") is False
        assert user.verify_password("") is False

    def test_password_hash_is_salted(self):
        user1 = User(username="user1")
        user2 = User(username="user2")
        user1.set_password("samepassword")
        user2.set_password("samepassword")

        assert user1.password_hash != user2.password_hash

    def test_hash_compatible_with_bcrypt(self):
        user = User(username="testuser")
        user.set_password("compat")
        assert bcrypt.checkpw(b"compat", user.password_hash.encode("utf-8"))

    def test_unicode_password(self):
        user = User(username="testuser")
        user.set_password("pässwörd₿")
        assert user.verify_password("pässwörd₿") is True
        assert user.verify_password("password") is False

    def test_malformed_hash_does_not_raise(self):
        user = User(username="testuser", password_hash="not-a-bcrypt-hash")
        assert user.verify_password("anything") is False


class TestPasswordLengthLimit:
    """bcrypt only reads 72 bytes; longer passwords are refused."""

    def test_72_bytes_accepted(self):
        user = User(username="testuser")
        user.set_password("a" * 72)
        assert user.verify_password("a" * 72) is True

    def test_73_bytes_rejected(self):
        user = User(username="testuser")
        with pytest.raises(ValueError, match="72 bytes"):
            user.set_password("a" * 73)

    def test_multibyte_counts_bytes(self):
        user = User(username="testuser")
        # 25 x 3-byte characters = 75 bytes
        with pytest.raises(ValueError):
            user.set_password("€" * 25)

    def test_verify_overlong_returns_false(self):
        user = User(username="testuser")
        user.set_password("short")
        assert user.verify_password("a" * 100) is False


# =============================================================================
# API TESTS - Register / Login / Logout
# =============================================================================

class TestSessionFlow:

    def test_register_login_me_logout(self, anon_client):
        name = unique_name()
        r = anon_client.post("/api/users/register", json={"username": name, "password": "pw123"})
        assert r.status_code == 201
        assert r.json()["username"] == name
        assert "password" not in r.json()
        assert "password_hash" not in r.json()

        r = anon_client.post("/api/login", json={"username": name, "password": "pw123"})
        assert r.status_code == 200

        r = anon_client.get("/api/users/me")
        assert r.status_code == 200
        assert r.json()["username"] == name

        assert anon_client.post("/api/logout").status_code == 200
        assert anon_client.get("/api/users/me").status_code == 401

    def test_duplicate_username(self, anon_client):
        name = unique_name()
        body = {"username": name, "password": "pw"}
        assert anon_client.post("/api/users/register", json=body).status_code == 201
        assert anon_client.post("/api/users/register", json=body).status_code == 409

    def test_overlong_password_rejected_on_register(self, anon_client):
        r = anon_client.post("/api/users/register",
                             json={"username": unique_name(), "password": "x" * 80})
        assert r.status_code == 400

    @pytest.mark.parametrize("username, password", [
        ("admin", "wrong"),
        ("nobody_here", "password"),
    ])
    def test_bad_credentials(self, anon_client, username, password):
        r = anon_client.post("/api/login", json={"username": username, "password": password})
        assert r.status_code == 401
        assert r.json()["detail"] == "Invalid username or password."

    def test_change_password(self, anon_client):
        name = unique_name()
        anon_client.post("/api/users/register", json={"username": name, "password": "old"})
        anon_client.post("/api/login", json={"username": name, "password": "old"})

        r = anon_client.patch("/api/users/me", json={"password": "new"})
        assert r.status_code == 200
        anon_client.post("/api/logout")

        assert anon_client.post("/api/login", json={"username": name, "password": "old"}).status_code == 401
        assert anon_client.post("/api/login", json={"username": name, "password": "new"}).status_code == 200

    def test_rename_to_taken_username(self, anon_client):
        name = unique_name()
        anon_client.post("/api/users/register", json={"username": name, "password": "pw"})
        anon_client.post("/api/login", json={"username": name, "password": "pw"})
        r = anon_client.patch("/api/users/me", json={"username": "admin"})
        assert r.status_code == 409

    def test_users_are_isolated(self, anon_client, auth_client):
        admin_wallet = auth_client.post("/api/wallets/", json={"name": "Admin only"}).json()

        name = unique_name()
        anon_client.post("/api/users/register", json={"username": name, "password": "pw"})
        anon_client.post("/api/login", json={"username": name, "password": "pw"})

        assert anon_client.get(f"/api/wallets/{admin_wallet['id']}").status_code == 404
        assert anon_client.get("/api/wallets/").json() == []
        r = anon_client.get("/api/calculations/open-positions")
        assert r.status_code == 200
        assert r.json()["positions"] == []

    def test_delete_all_and_delete_account(self, anon_client, test_db):
        name = unique_name()
        anon_client.post("/api/users/register", json={"username": name, "password": "pw"})
        anon_client.post("/api/login", json={"username": name, "password": "pw"})

        wallet = anon_client.post("/api/wallets/", json={"name": "Mine"}).json()
        for qty in ("1", "2"):
            r = anon_client.post("/api/transactions/", json={
                "wallet_id": wallet["id"],
                "date": "2024-01-01T00:00:00Z",
                "action": "DEPOSIT",
                "ticker": "USDT",
                "quantity": qty,
            })
            assert r.status_code == 201

        r = anon_client.delete("/api/transactions/delete_all")
        assert r.status_code == 200
        assert r.json() == {"deleted_count": 2}
        assert anon_client.get("/api/transactions/").json() == []

        assert anon_client.delete("/api/users/me").status_code == 204
        assert anon_client.get("/api/users/me").status_code == 401
        assert test_db.query(User).filter(User.username == name).first() is None
