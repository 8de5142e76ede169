"""
Identity store

Customers, drivers and admins live in their own collections, but an email is
unique across all three and the kind is always decided server side: login
looks the email up in every collection instead of trusting a client-sent type.
"""

import logging
from typing import Optional, Tuple

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from auth import hash_password, verify_password
from database import IDENTITY_COLLECTIONS, create_document, to_object_id, utcnow
from errors import Conflict, NotFound, Unauthorized
from schemas import Admin, Customer, Driver, UserKind

logger = logging.getLogger(__name__)

MODELS = {
    UserKind.CUSTOMER: Customer,
    UserKind.DRIVER: Driver,
    UserKind.ADMIN: Admin,
}

PUBLIC_PROJECTION = {"password": 0}


def find_by_email(db: Database, email: str) -> Optional[Tuple[UserKind, dict]]:
    for name in IDENTITY_COLLECTIONS:
        doc = db[name].find_one({"email": email})
        if doc:
            return UserKind(name), doc
    return None


def register(db: Database, kind: UserKind, data: dict, bcrypt_rounds: int = 10) -> str:
    """Create a user of the given kind; ``data`` carries the plaintext password."""
    kind = UserKind(kind)
    if find_by_email(db, data["email"]) is not None:
        raise Conflict("Email already registered")

    fields = {k: v for k, v in data.items() if k != "role"}
    fields["password"] = hash_password(data["password"], rounds=bcrypt_rounds)
    user = MODELS[kind](**fields)
    try:
        user_id = create_document(kind.value, user, database=db)
    except DuplicateKeyError as exc:
        raise Conflict("Email already registered") from exc
    logger.info("Registered %s %s", kind.value, user_id)
    return user_id


def authenticate(db: Database, email: str, password: str) -> Tuple[UserKind, dict]:
    found = find_by_email(db, email)
    if found is None or not verify_password(password, found[1]["password"]):
        logger.warning("Failed login for %s", email)
        raise Unauthorized("Invalid credentials")
    return found


def get_user(db: Database, kind: UserKind, user_id) -> dict:
    oid = to_object_id(user_id)
    doc = db[UserKind(kind).value].find_one({"_id": oid}, PUBLIC_PROJECTION) if oid is not None else None
    if not doc:
        raise NotFound(f"{UserKind(kind).value.capitalize()} not found")
    return doc


def update_user(db: Database, kind: UserKind, user_id, changes: dict, bcrypt_rounds: int = 10) -> dict:
    kind = UserKind(kind)
    oid = to_object_id(user_id)
    if oid is None:
        raise NotFound(f"{kind.value.capitalize()} not found")

    changes = {k: v for k, v in changes.items() if v is not None}
    if "email" in changes:
        owner = find_by_email(db, changes["email"])
        if owner is not None and owner[1]["_id"] != oid:
            raise Conflict("Email already registered")
    if "password" in changes:
        changes["password"] = hash_password(changes["password"], rounds=bcrypt_rounds)
    changes["updatedAt"] = utcnow()

    result = db[kind.value].update_one({"_id": oid}, {"$set": changes})
    if result.matched_count == 0:
        raise NotFound(f"{kind.value.capitalize()} not found")
    return get_user(db, kind, oid)


def delete_user(db: Database, user_id, kinds=tuple(UserKind)) -> int:
    oid = to_object_id(user_id)
    if oid is None:
        raise NotFound("User not found")
    deleted = sum(db[UserKind(kind).value].delete_one({"_id": oid}).deleted_count for kind in kinds)
    if deleted == 0:
        raise NotFound("User not found")
    logger.info("Deleted user %s", oid)
    return deleted
