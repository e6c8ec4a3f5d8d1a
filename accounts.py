"""Account store and the register/login service on top of it."""
import hashlib
import hmac
import logging
import os
from typing import Any, Dict, Optional

from pymongo.errors import DuplicateKeyError

from database import create_document, parse_object_id
from errors import ConflictError
from schemas import User

logger = logging.getLogger(__name__)

COLLECTION = "user"
PBKDF2_ROUNDS = 100_000


def hash_password(password: str, salt: Optional[bytes] = None) -> str:
    salt = salt or os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt, PBKDF2_ROUNDS)
    return f"{salt.hex()}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        salt_hex, _ = stored.split("$", 1)
        salt = bytes.fromhex(salt_hex)
    except ValueError:
        return False
    return hmac.compare_digest(hash_password(password, salt), stored)


def user_from_doc(doc: Dict[str, Any]) -> User:
    return User(
        id=str(doc["_id"]),
        email=doc["email"],
        first_name=doc.get("first_name", ""),
        last_name=doc.get("last_name", ""),
        created_at=doc.get("created_at"),
    )


class UserStore:
    def __init__(self, database):
        self._db = database
        self._users = database[COLLECTION]

    def find_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        """Raw user document including the password hash, or None."""
        return self._users.find_one({"email": email.strip().lower()})

    def create(self, email: str, password: str, first_name: str, last_name: str) -> User:
        email = email.strip().lower()
        if self.find_by_email(email):
            raise ConflictError(email)
        try:
            user_id = create_document(self._db, COLLECTION, {
                "email": email,
                "password_hash": hash_password(password),
                "first_name": first_name,
                "last_name": last_name,
            })
        except DuplicateKeyError:
            # lost a race with a concurrent registration
            raise ConflictError(email)
        return user_from_doc(self._users.find_one({"_id": parse_object_id(user_id)}))


class UserService:
    def __init__(self, users: UserStore):
        self.users = users

    def register(self, email: str, password: str, first_name: str, last_name: str) -> User:
        try:
            user = self.users.create(email, password, first_name, last_name)
        except ConflictError:
            logger.warning("Registration refused, email already in use: %s", email)
            raise
        logger.info("Registered user %s", user.id)
        return user

    def login(self, email: str, password: str) -> Optional[User]:
        doc = self.users.find_by_email(email)
        if doc is None or not verify_password(password, doc.get("password_hash", "")):
            logger.info("Failed login for %s", email)
            return None
        return user_from_doc(doc)
