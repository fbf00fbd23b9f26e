"""
Test configuration and fixtures
"""

import os

# In-memory database and no outside services, set before the app is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["RESEND_API_KEY"] = ""
os.environ["DB_LOG_SLOW_QUERIES"] = "false"

from datetime import timedelta
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from keepon.auth import TOKEN_TYPE_CLIENT, issue_access_token
from keepon.database import Base, SessionLocal, engine
from keepon.domain.payments.stripe_gateway import get_stripe_gateway
from keepon.main import app
from keepon.models import Client, Trainer
from keepon.shared.dates import utcnow


class FakeStripeGateway:
    """Stands in for StripeGateway and records every call"""

    def __init__(self):
        self.calls = []
        self.card_country = "AU"
        self.intent_status = "succeeded"
        self.create_error = None
        self.list_error = None
        self.payment_methods = None
        self.existing_intent = None
        self._customers = 0
        self._intents = 0

    def _card(self, payment_method_id="pm_card"):
        return SimpleNamespace(id=payment_method_id, card=SimpleNamespace(country=self.card_country))

    def create_customer(self, email, description, metadata, stripe_account=None):
        self._customers += 1
        self.calls.append(("create_customer", email, stripe_account))
        return SimpleNamespace(id=f"cus_{self._customers}")

    def retrieve_payment_method(self, payment_method_id, stripe_account=None):
        self.calls.append(("retrieve_payment_method", payment_method_id, stripe_account))
        return self._card(payment_method_id)

    def list_card_payment_methods(self, customer_id, stripe_account=None):
        self.calls.append(("list_card_payment_methods", customer_id, stripe_account))
        if self.list_error:
            raise self.list_error
        if self.payment_methods is not None:
            return self.payment_methods
        return [self._card()]

    def detach_payment_method(self, payment_method_id, stripe_account=None):
        self.calls.append(("detach_payment_method", payment_method_id, stripe_account))

    def retrieve_payment_intent(self, payment_intent_id, stripe_account=None):
        self.calls.append(("retrieve_payment_intent", payment_intent_id, stripe_account))
        return self.existing_intent

    def create_payment_intent(self, params, stripe_account=None):
        self.calls.append(("create_payment_intent", params, stripe_account))
        if self.create_error:
            raise self.create_error
        self._intents += 1
        return SimpleNamespace(
            id=f"pi_{self._intents}",
            status=self.intent_status,
            client_secret=f"pi_{self._intents}_secret",
            latest_charge=f"ch_{self._intents}",
        )

    def confirm_payment_intent(self, payment_intent_id, stripe_account=None):
        self.calls.append(("confirm_payment_intent", payment_intent_id, stripe_account))
        return SimpleNamespace(
            id=payment_intent_id, status=self.intent_status, client_secret="secret", latest_charge="ch_confirmed"
        )

    def intent_params(self):
        return [call[1] for call in self.calls if call[0] == "create_payment_intent"]


@pytest.fixture(scope="function")
def db_session():
    """Fresh tables for each test"""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def stripe_gateway():
    return FakeStripeGateway()


@pytest.fixture(scope="function")
def api(db_session, stripe_gateway):
    """Test client with the fake Stripe gateway installed"""
    app.dependency_overrides[get_stripe_gateway] = lambda: stripe_gateway
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def sign_up(api, email="coach@example.com", country="AU", **overrides):
    body = {
        "email": email,
        "password": "correct-horse",
        "firstName": "Sam",
        "lastName": "Coach",
        "businessName": "Sam's Strength",
        "country": country,
        "timezone": "Australia/Sydney",
    }
    body.update(overrides)
    response = api.post("/trainers", json=body)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def trainer(api):
    """Signed-up trainer: ids plus auth headers"""
    data = sign_up(api)
    return {
        "id": data["trainerId"],
        "userId": data["userId"],
        "headers": {"Authorization": f"Bearer {data['token']}"},
    }


@pytest.fixture
def connect_trainer(db_session, trainer):
    """Give the trainer a Stripe connected account"""

    def _connect(account_type="custom", account_id="acct_123"):
        row = db_session.get(Trainer, trainer["id"])
        row.stripe_account_id = account_id
        row.stripe_account_type = account_type
        db_session.commit()
        return row

    return _connect


@pytest.fixture
def make_client(api, trainer):
    def _make(first_name="Alex", email="alex@example.com", **extra):
        response = api.post(
            "/clients",
            json={"firstName": first_name, "lastName": "Client", "email": email, **extra},
            headers=trainer["headers"],
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _make


@pytest.fixture
def client_headers(db_session):
    """Client dashboard auth headers for a client id"""

    def _headers(client_id):
        client = db_session.get(Client, client_id)
        token = issue_access_token(db_session, client.user_id, TOKEN_TYPE_CLIENT)
        db_session.commit()
        return {"Authorization": f"Bearer {token.id}"}

    return _headers


@pytest.fixture
def make_sale(api, trainer):
    def _make(client_id, price="100.00", name="PT Session", **extra):
        response = api.post(
            "/sales",
            json={"clientId": client_id, "name": name, "price": price, **extra},
            headers=trainer["headers"],
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _make


def in_days(days, hours=0):
    return utcnow() + timedelta(days=days, hours=hours)


def create_series(api, trainer, starts=None, price="30.00", maximum_attendance=None, name="Bootcamp"):
    body = {
        "name": name,
        "location": "Park",
        "price": price,
        "durationMinutes": 60,
        "sessionType": "group",
        "starts": [s.isoformat() for s in (starts or [in_days(1)])],
    }
    if maximum_attendance is not None:
        body["maximumAttendance"] = maximum_attendance
    response = api.post("/sessionSeries", json=body, headers=trainer["headers"])
    assert response.status_code == 201, response.text
    return response.json()
