"""Tests for the account store and login service."""

import pytest

from accounts import UserService, UserStore, hash_password, verify_password
from database import ensure_indexes
from errors import ConflictError


@pytest.fixture
def users(db):
    ensure_indexes(db)
    return UserService(UserStore(db))


class TestRegister:
    def test_creates_user(self, users):
        user = users.register("Ada@Example.com", "secret", "Ada", "Lovelace")
        assert user.id
        assert user.email == "ada@example.com"
        assert user.first_name == "Ada"
        assert user.last_name == "Lovelace"

    def test_password_not_stored_in_plaintext(self, users, db):
        users.register("ada@example.com", "secret", "Ada", "Lovelace")
        doc = db["user"].find_one({"email": "ada@example.com"})
        assert "password" not in doc
        assert "secret" not in doc["password_hash"]

    def test_duplicate_email(self, users):
        users.register("ada@example.com", "secret", "Ada", "Lovelace")
        with pytest.raises(ConflictError):
            users.register("ADA@example.com", "other", "Ada", "Byron")

    def test_find_by_email(self, users):
        users.register("ada@example.com", "secret", "Ada", "Lovelace")
        assert users.users.find_by_email("ada@example.com") is not None
        assert users.users.find_by_email("bob@example.com") is None


class TestLogin:
    def test_correct_password(self, users):
        registered = users.register("ada@example.com", "secret", "Ada", "Lovelace")
        user = users.login("ada@example.com", "secret")
        assert user is not None
        assert user.id == registered.id

    def test_wrong_password(self, users):
        users.register("ada@example.com", "secret", "Ada", "Lovelace")
        assert users.login("ada@example.com", "Secret") is None

    def test_unknown_email(self, users):
        assert users.login("nobody@example.com", "secret") is None


class TestPasswordHashing:
    def test_salted(self):
        assert hash_password("pw") != hash_password("pw")

    def test_verify(self):
        stored = hash_password("pw")
        assert verify_password("pw", stored)
        assert not verify_password("pw2", stored)

    def test_malformed_hash(self):
        assert not verify_password("pw", "")
        assert not verify_password("pw", "zz$abc")
