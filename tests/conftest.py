import os

os.environ.setdefault("AUTH_JWT_SECRET", "test-secret-for-the-ride-hailing-suite")
os.environ.setdefault("AUTH_BCRYPT_ROUNDS", "4")

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import create_document, ensure_indexes
from ledger import BookingLedger
from main import app, get_db


@pytest.fixture
def mongo_db():
    """In-memory MongoDB with the production indexes."""
    db = mongomock.MongoClient()["ride_hailing_test"]
    ensure_indexes(db)
    return db


@pytest.fixture
def ledger(mongo_db):
    return BookingLedger(mongo_db)


@pytest.fixture
def customer_id(mongo_db):
    return mongo_db["customer"].insert_one(
        {"name": "Aina", "email": "aina@example.com", "password": "x", "role": "customer"}
    ).inserted_id


@pytest.fixture
def other_customer_id(mongo_db):
    return mongo_db["customer"].insert_one(
        {"name": "Badrul", "email": "badrul@example.com", "password": "x", "role": "customer"}
    ).inserted_id


@pytest.fixture
def make_driver(mongo_db):
    def factory(name="Driver", email=None):
        return mongo_db["driver"].insert_one({
            "name": name,
            "email": email or f"{name.lower()}@example.com",
            "password": "x",
            "role": "driver",
            "vehicleType": "sedan",
            "averageRating": 0,
            "totalRatings": 0,
        }).inserted_id
    return factory


@pytest.fixture
def driver_id(make_driver):
    return make_driver("Chong")


@pytest.fixture
def pending_booking(ledger, customer_id):
    return ledger.create(customer_id, "KL Sentral", "Mid Valley", 20, 5)


@pytest.fixture
def test_client(mongo_db):
    app.dependency_overrides[get_db] = lambda: mongo_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def signup(test_client):
    """Register a user through the API and return (id, auth headers)."""
    def factory(kind="customer", email=None, password="secret123", **extra):
        email = email or f"{kind}@example.com"
        body = {"name": extra.pop("name", kind.title()), "email": email, "password": password, **extra}
        if kind == "driver":
            response = test_client.post("/drivers", json=body)
        else:
            response = test_client.post("/users", json={**body, "role": kind})
        assert response.status_code == 201, response.text
        user_id = response.json()["id"]
        login = test_client.post("/auth/login", json={"email": email, "password": password})
        assert login.status_code == 200, login.text
        return user_id, {"Authorization": f"Bearer {login.json()['token']}"}
    return factory


@pytest.fixture
def seed_booking(mongo_db):
    """Insert a booking document directly, bypassing the ledger."""
    def factory(customer, **fields):
        doc = {
            "customerId": customer,
            "pickupLocation": "A",
            "dropoffLocation": "B",
            "fare": 10.0,
            "distance": 2.0,
            "status": "pending",
            **fields,
        }
        return create_document("booking", doc, database=mongo_db)
    return factory
