import jwt
import pytest

from auth import create_token, decode_token, hash_password, verify_password
from errors import Conflict, NotFound, Unauthorized
from identity import authenticate, delete_user, find_by_email, get_user, register, update_user
from schemas import UserKind


def test_password_hash_roundtrip():
    hashed = hash_password("secret123", rounds=4)
    assert hashed != "secret123"
    assert verify_password("secret123", hashed)
    assert not verify_password("wrong", hashed)


def test_token_carries_id_and_role():
    payload = decode_token(create_token("abc", "driver"))
    assert payload["sub"] == "abc"
    assert payload["role"] == "driver"


def test_tampered_token_rejected():
    token = jwt.encode({"sub": "abc", "role": "admin"}, "another-secret-that-is-long-enough-too", algorithm="HS256")
    with pytest.raises(Unauthorized):
        decode_token(token)


def test_register_stores_hash_and_defaults(mongo_db):
    driver_id = register(mongo_db, UserKind.DRIVER,
                         {"name": "Chong", "email": "chong@example.com", "password": "secret123",
                          "vehicle_type": "MPV"}, bcrypt_rounds=4)

    doc = mongo_db["driver"].find_one({"email": "chong@example.com"})
    assert str(doc["_id"]) == driver_id
    assert doc["password"] != "secret123"
    assert doc["role"] == "driver"
    assert doc["vehicleType"] == "MPV"
    assert doc["averageRating"] == 0
    assert doc["totalRatings"] == 0


def test_email_unique_across_kinds(mongo_db):
    register(mongo_db, UserKind.CUSTOMER,
             {"name": "Aina", "email": "aina@example.com", "password": "secret123"}, bcrypt_rounds=4)
    with pytest.raises(Conflict):
        register(mongo_db, UserKind.DRIVER,
                 {"name": "Aina", "email": "aina@example.com", "password": "secret123"}, bcrypt_rounds=4)


def test_authenticate_finds_kind_from_email(mongo_db):
    register(mongo_db, UserKind.ADMIN,
             {"name": "Root", "email": "root@example.com", "password": "secret123"}, bcrypt_rounds=4)

    kind, user = authenticate(mongo_db, "root@example.com", "secret123")

    assert kind is UserKind.ADMIN
    assert user["name"] == "Root"
    assert find_by_email(mongo_db, "nobody@example.com") is None


def test_authenticate_rejects_bad_password(mongo_db):
    register(mongo_db, UserKind.CUSTOMER,
             {"name": "Aina", "email": "aina@example.com", "password": "secret123"}, bcrypt_rounds=4)
    with pytest.raises(Unauthorized):
        authenticate(mongo_db, "aina@example.com", "wrong-password")
    with pytest.raises(Unauthorized):
        authenticate(mongo_db, "ghost@example.com", "secret123")


def test_update_user_rehashes_password(mongo_db):
    user_id = register(mongo_db, UserKind.CUSTOMER,
                       {"name": "Aina", "email": "aina@example.com", "password": "secret123"}, bcrypt_rounds=4)

    updated = update_user(mongo_db, UserKind.CUSTOMER, user_id,
                          {"phone": "0123", "password": "newsecret", "name": None}, bcrypt_rounds=4)

    assert updated["phone"] == "0123"
    assert updated["name"] == "Aina"
    assert "password" not in updated
    authenticate(mongo_db, "aina@example.com", "newsecret")


def test_update_user_rejects_taken_email(mongo_db):
    register(mongo_db, UserKind.DRIVER,
             {"name": "Chong", "email": "chong@example.com", "password": "secret123"}, bcrypt_rounds=4)
    user_id = register(mongo_db, UserKind.CUSTOMER,
                       {"name": "Aina", "email": "aina@example.com", "password": "secret123"}, bcrypt_rounds=4)
    with pytest.raises(Conflict):
        update_user(mongo_db, UserKind.CUSTOMER, user_id, {"email": "chong@example.com"})


def test_delete_user(mongo_db):
    user_id = register(mongo_db, UserKind.CUSTOMER,
                       {"name": "Aina", "email": "aina@example.com", "password": "secret123"}, bcrypt_rounds=4)

    assert delete_user(mongo_db, user_id) == 1
    with pytest.raises(NotFound):
        get_user(mongo_db, UserKind.CUSTOMER, user_id)
    with pytest.raises(NotFound):
        delete_user(mongo_db, user_id)
