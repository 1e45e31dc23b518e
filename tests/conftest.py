import os

# settings are read at import time
os.environ.pop("DATABASE_URL", None)
os.environ.pop("DATABASE_NAME", None)
os.environ["ENVIRONMENT"] = "test"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["ADMIN_EMAIL"] = "admin@example.com"
os.environ["ADMIN_PASSWORD"] = "Admin@123"
os.environ["ADMIN_NAME"] = "Kiln Owner"
os.environ["WHATSAPP_NUMBER"] = "+91 98765 43210"

import mongomock
import pytest
from faker import Faker
from fastapi.testclient import TestClient

import database
import settings
from auth import hash_password
from main import app
from ratelimit import RateLimiter
from streams import PING, Broadcaster

API = settings.API_PREFIX
ADMIN_PASSWORD = "Admin@123"


@pytest.fixture
def db(monkeypatch):
    mock_db = mongomock.MongoClient().db
    monkeypatch.setattr(database, "db", mock_db)
    return mock_db


@pytest.fixture
def client(db):
    app.state.review_limiter = RateLimiter(5, 15 * 60, "Too many review submissions. Please try again after some time.")
    app.state.analytics_limiter = RateLimiter(120, 60, "Too many analytics requests. Please try again later.")
    app.state.reviews_stream = Broadcaster("reviews", heartbeat_seconds=25, heartbeat=PING)
    app.state.gallery_stream = Broadcaster("gallery")
    app.state.products_stream = Broadcaster("products")
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


def login(client, email, password):
    resp = client.post(f"{API}/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    token = resp.cookies[settings.AUTH_COOKIE_NAME]
    client.cookies.clear()
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def super_admin_headers(client):
    return login(client, settings.ADMIN_EMAIL, ADMIN_PASSWORD)


@pytest.fixture
def admin_headers(client, db):
    db["user"].insert_one({
        "name": "Desk Admin",
        "email": "desk@example.com",
        "password_hash": hash_password("Desk@123"),
        "role": "admin",
        "is_active": True,
    })
    return login(client, "desk@example.com", "Desk@123")


@pytest.fixture
def fake():
    Faker.seed(1234)
    return Faker("en_IN")


@pytest.fixture
def order_payload(fake):
    def build(**overrides):
        data = {
            "brickType": "Second",
            "usagePurpose": "House",
            "quantityUnit": "bricks",
            "quantityValue": 5000,
            "deliveryArea": fake.city(),
            "distanceRange": "0-10km",
            "requiredDeliveryDate": "2030-01-15",
            "urgency": "flexible",
            "name": fake.name(),
            "phoneNumber": "98765 43210",
            "email": "Customer@Example.com",
            "isWhatsappSame": True,
        }
        data.update(overrides)
        return data

    return build
