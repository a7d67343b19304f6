from datetime import datetime, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

import main
from mailer import OtpMailer
from security import hash_password, issue_token


class FakeUploader:
    configured = True

    def __init__(self):
        self.uploads = []

    def upload(self, content, filename, folder):
        self.uploads.append((filename, folder, content))
        return f"https://cdn.example.com/{folder}/{filename}"


def insert_user(db, email, password="secret123", is_admin=False, is_blocked=False, name="Test User"):
    res = db["user"].insert_one({
        "name": name,
        "email": email,
        "password_hash": hash_password(password),
        "is_admin": is_admin,
        "is_blocked": is_blocked,
        "created_at": datetime.now(timezone.utc),
    })
    return str(res.inserted_id)


def auth(user_id):
    return {"Authorization": f"Bearer {issue_token(user_id)}"}


@pytest.fixture
def db():
    return mongomock.MongoClient()["storefront_test"]


@pytest.fixture
def uploader():
    return FakeUploader()


@pytest.fixture
def client(db, uploader):
    main.app.dependency_overrides[main.get_db] = lambda: db
    main.app.dependency_overrides[main.get_uploader] = lambda: uploader
    main.app.dependency_overrides[main.get_mailer] = lambda: OtpMailer()
    with TestClient(main.app) as c:
        yield c
    main.app.dependency_overrides.clear()


@pytest.fixture
def admin_id(db):
    return insert_user(db, "admin@example.com", is_admin=True, name="Admin")


@pytest.fixture
def admin_headers(admin_id):
    return auth(admin_id)


@pytest.fixture
def user_id(db):
    return insert_user(db, "jane@example.com", name="Jane")


@pytest.fixture
def user_headers(user_id):
    return auth(user_id)


@pytest.fixture
def make_product(db):
    def _make(name="Apple", out_price=100.0, stock=10, listed=True, variant_id="v1", category_id=None):
        if category_id is None:
            category_id = str(db["category"].insert_one({
                "name": f"{name} category", "is_listed": True, "is_deleted": False, "priority": 101,
            }).inserted_id)
        res = db["product"].insert_one({
            "name": name,
            "category_id": category_id,
            "sub_category_id": None,
            "variants": [{
                "id": variant_id,
                "weight": "1kg",
                "in_price": out_price * 0.8,
                "out_price": out_price,
                "stock_quantity": stock,
            }],
            "descriptions": [{"header": "About", "content": f"Fresh {name}"}],
            "images": [f"https://cdn.example.com/products/{name}.png"],
            "sku": f"SKU-{name}",
            "ean": f"EAN-{name}",
            "is_listed": listed,
            "is_deleted": False,
            "rating": 4.5,
            "num_reviews": 2,
            "created_at": datetime.now(timezone.utc),
        })
        return str(res.inserted_id)
    return _make


ADDRESS = {
    "full_name": "Jane Doe",
    "address_line1": "12 Market Street",
    "city": "Kochi",
    "postal_code": "682001",
    "country": "IN",
    "phone": "9876543210",
}
