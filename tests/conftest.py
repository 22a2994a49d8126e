import smtplib
from datetime import datetime
from types import SimpleNamespace

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from auth import create_access_token, get_password_hash
from config import Settings
from invoices import InvoiceRenderer
from mailer import Mailer
from main import create_app
from payments import PaymentGateway

PASSWORD = "secret123"
PASSWORD_HASH = get_password_hash(PASSWORD)


class FakeRazorpayOrders:
    def __init__(self):
        self.created = []

    def create(self, data):
        order = {"id": f"order_test{len(self.created) + 1}", "status": "created", **data}
        self.created.append(order)
        return order


class FakeRazorpay:
    def __init__(self):
        self.order = FakeRazorpayOrders()


class RecordingMailer(Mailer):
    def __init__(self, settings):
        super().__init__(settings)
        self.sent = []
        self.fail = False

    def deliver(self, message):
        if self.fail:
            raise smtplib.SMTPException("smtp down")
        self.sent.append(message)


class FakeRenderer(InvoiceRenderer):
    def __init__(self):
        self.rendered = []

    def render_pdf(self, html, path):
        self.rendered.append(html)
        path.write_bytes(b"%PDF-1.4\n% test invoice\n")


@pytest.fixture
def settings(tmp_path):
    return Settings(
        secret_key="test-secret",
        razorpay_key_id="rzp_test_key",
        razorpay_key_secret="rzp_test_secret",
        invoice_dir=str(tmp_path / "invoices"),
    )


@pytest.fixture
def db():
    return mongomock.MongoClient()["storefront_test"]


@pytest.fixture
def razorpay_client():
    return FakeRazorpay()


@pytest.fixture
def gateway(settings, razorpay_client):
    return PaymentGateway(settings, client=razorpay_client)


@pytest.fixture
def mailer(settings):
    return RecordingMailer(settings)


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def app(settings, db, gateway, mailer, renderer):
    return create_app(settings, db=db, gateway=gateway, mailer=mailer, renderer=renderer)


@pytest.fixture
def client(app):
    return TestClient(app)


def make_user(db, email, usertype="user", username=None):
    now = datetime.utcnow()
    doc = {
        "username": username or email.split("@")[0],
        "email": email,
        "password_hash": PASSWORD_HASH,
        "usertype": usertype,
        "gender": "Female",
        "created_at": now,
        "updated_at": now,
    }
    doc["_id"] = db["user"].insert_one(doc).inserted_id
    return doc


def headers_for(user, settings):
    return {"Authorization": f"Bearer {create_access_token(user, settings)}"}


@pytest.fixture
def user(db):
    return make_user(db, "asha@example.com")


@pytest.fixture
def admin(db):
    return make_user(db, "admin@example.com", usertype="admin")


@pytest.fixture
def user_headers(user, settings):
    return headers_for(user, settings)


@pytest.fixture
def admin_headers(admin, settings):
    return headers_for(admin, settings)


@pytest.fixture
def catalog(db):
    """Two flat products (A: 100, B: 50) and one sized product (S: 300/3, M: 320/2, 10% off)."""
    now = datetime.utcnow()
    category = db["category"].insert_one({"categoryname": "Apparel", "created_at": now}).inserted_id
    small = db["size"].insert_one({"size": "S", "created_at": now}).inserted_id
    medium = db["size"].insert_one({"size": "M", "created_at": now}).inserted_id
    subcategory = db["subcategory"].insert_one(
        {"subcategory": "Shirts", "category": category, "sizes": [small, medium], "created_at": now}
    ).inserted_id

    def flat(name, price, stock):
        return db["product"].insert_one({
            "product_name": name, "gender": "Unisex", "price": price, "stock": stock,
            "discounted_price": price, "discount_percentage": 0, "sizes": [],
            "images": [{"filename": f"{name}.jpg", "filepath": f"https://cdn.example.com/{name}.jpg"}],
            "category": category, "subcategory": subcategory, "created_at": now,
        }).inserted_id

    entry_s, entry_m = ObjectId(), ObjectId()
    sized = db["product"].insert_one({
        "product_name": "Kurta", "gender": "Male", "price": 300, "stock": 5,
        "discounted_price": 270, "discount_percentage": 10, "discount": 10, "discount_type": "Percentage",
        "sizes": [
            {"_id": entry_s, "size": small, "price": 300, "stock": 3, "discounted_price": 270, "discount_percentage": 10},
            {"_id": entry_m, "size": medium, "price": 320, "stock": 2, "discounted_price": 288, "discount_percentage": 10},
        ],
        "images": [], "category": category, "subcategory": subcategory, "created_at": now,
    }).inserted_id

    return SimpleNamespace(
        category=category, subcategory=subcategory, small=small, medium=medium,
        a=flat("Tee", 100, 10), b=flat("Cap", 50, 5),
        sized=sized, entry_s=entry_s, entry_m=entry_m,
    )


@pytest.fixture
def shipping():
    return {"houseno": "12", "street": "MG Road", "city": "Pune", "state": "MH", "pincode": "411001"}
