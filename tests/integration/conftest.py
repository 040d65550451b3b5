import hashlib
import hmac
import json
import os
import sys
import time
from datetime import date, datetime
from types import SimpleNamespace

import pytest

ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from lamacare import clock, create_app
from lamacare.auth.service import create_user
from lamacare.auth.tokens import issue_token
from lamacare.extensions import db
from lamacare.models.payment import Payment
from lamacare.models.pet import Pet

WEBHOOK_SECRET = "whsec_test"
PASSWORD = "P@ssword1"


def _assert_memory_db(uri: str):
    if uri != "sqlite:///:memory:":
        raise RuntimeError(
            f"Refusing to run tests on non-memory DB: {uri!r}. "
            "This guard protects your real database."
        )


@pytest.fixture(scope="function")
def app():
    os.environ.pop("DATABASE_URL", None)

    flask_app = create_app(
        TESTING=True,
        SECRET_KEY="test-secret-key",
        JWT_SECRET_KEY="test-jwt-secret",
        SQLALCHEMY_DATABASE_URI="sqlite:///:memory:",
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        STRIPE_WEBHOOK_SECRET=WEBHOOK_SECRET,
        RESEND_API_KEY=None,
    )
    _assert_memory_db(flask_app.config["SQLALCHEMY_DATABASE_URI"])

    with flask_app.app_context():
        db.create_all()

    yield flask_app

    with flask_app.app_context():
        _assert_memory_db(flask_app.config["SQLALCHEMY_DATABASE_URI"])
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def frozen_now(monkeypatch):
    """Pin the business clock; returns a setter so a test can move time forward."""

    def _freeze(moment: datetime):
        monkeypatch.setattr(clock, "utcnow", lambda: moment)
        return moment

    return _freeze


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def make_user(app):
    def _make_user(role: str, email: str, birth_date=date(1990, 1, 1), **extra):
        payload = {
            "email": email,
            "password": PASSWORD,
            "name": email.split("@", 1)[0].title(),
            "birth_date": birth_date,
            "telephone_number": "0812345678",
            "address": "42 Test Street",
        }
        if role == "doctor":
            payload.setdefault("license_number", f"LIC-{email}")
        payload.update(extra)
        with app.app_context():
            user = create_user(role, payload)
            token = issue_token(user.id, user.role).token
            return SimpleNamespace(
                id=user.id, role=role, email=user.email, headers=auth_header(token)
            )

    return _make_user


@pytest.fixture()
def owner(make_user):
    return make_user("owner", "alice@x.com")


@pytest.fixture()
def admin(make_user):
    return make_user("admin", "root@x.com")


@pytest.fixture()
def caretaker(make_user):
    return make_user("caretaker", "bob@x.com", specialization="dogs")


@pytest.fixture()
def doctor(make_user):
    return make_user("doctor", "vet@x.com")


@pytest.fixture()
def make_pet(app):
    def _make_pet(owner_id: str, name="Maca"):
        with app.app_context():
            pet = Pet(
                owner_id=owner_id,
                kind="dog",
                name=name,
                birth_date=date(2020, 5, 1),
                weight=12.5,
                sex="female",
            )
            db.session.add(pet)
            db.session.commit()
            return pet.id

    return _make_pet


@pytest.fixture()
def make_payment(app):
    def _make_payment(owner_id: str, status="unpaid", pay_date=None):
        with app.app_context():
            payment = Payment(owner_id=owner_id, status=status, pay_date=pay_date)
            db.session.add(payment)
            db.session.commit()
            return payment.id

    return _make_payment


@pytest.fixture()
def book(client, make_pet, make_payment):
    """POST a caretaker booking through the API and return the response."""

    def _book(user, start: str, end: str, staff_id=None, pet_id=None, payment_id=None, **extra):
        body = {
            "pet_id": pet_id or make_pet(user.id),
            "payment_id": payment_id or make_payment(user.id),
            "service_type": "cservice",
            "reserve_date_start": start,
            "reserve_date_end": end,
            "price": 500,
        }
        if staff_id:
            body["staff_id"] = staff_id
        body.update(extra)
        return client.post("/api/v1/services", json=body, headers=user.headers)

    return _book


@pytest.fixture()
def fetch(app):
    """Read a row in a fresh app context so the assertion sees committed state."""

    def _fetch(model, ident):
        with app.app_context():
            row = db.session.get(model, ident)
            return row.to_dict() if row is not None else None

    return _fetch


def _stripe_event(event_id: str, pay_id: str, payment_status="paid", created=None,
                  event_type="checkout.session.completed", method="card") -> bytes:
    event = {
        "id": event_id,
        "type": event_type,
        "created": created if created is not None else int(time.time()),
        "data": {
            "object": {
                "object": "checkout.session",
                "payment_status": payment_status,
                "payment_method_types": [method],
                "metadata": {"pay_id": pay_id},
            }
        },
    }
    return json.dumps(event).encode()


def _sign(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp=None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode()}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


@pytest.fixture()
def stripe_event():
    return _stripe_event


@pytest.fixture()
def post_webhook(client):
    """Deliver a payload to the webhook endpoint, signed unless a signature is given."""

    def _post(payload: bytes, signature=None):
        return client.post(
            "/api/v1/webhooks/payment",
            data=payload,
            headers={
                "Content-Type": "application/json",
                "Stripe-Signature": signature if signature is not None else _sign(payload),
            },
        )

    return _post
