"""
Shared fixtures:
- engine / session / store: fresh in-memory SQLite database per test
- donations / arbitration / accounts: the three managers wired to the store
- identity_provider / payment_processor: in-process fakes
- admin, restaurant, charity_a, charity_b, plain_user: seeded accounts
- client + auth_headers: HTTP client with dependency overrides
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("IDENTITY_BACKEND", "signed")

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

import models  # noqa: F401
from db import build_engine, get_session
from errors import UpstreamError
from models import ROLE_ADMIN, ROLE_CHARITY, ROLE_RESTAURANT, ROLE_USER, User
from providers import Identity, SignedTokenIdentityProvider
from schemas import DonationCreate, RequestCreate
from services.accounts import AccountLifecycleManager
from services.arbitration import RequestArbitrationManager
from services.donations import DonationLifecycleManager
from store import EntityStore


class FakeIdentityProvider(SignedTokenIdentityProvider):
    """Signed tokens plus a switch that makes account deletion fail."""

    def __init__(self):
        super().__init__("test-secret")
        self.fail_deletes = False
        self.deleted = []

    def delete_account(self, uid: str) -> None:
        if self.fail_deletes:
            raise UpstreamError(f"Identity provider refused to delete account {uid}")
        self.deleted.append(uid)
        super().delete_account(uid)


class FakePaymentProcessor:
    def __init__(self):
        self.amounts = []

    def create_intent(self, amount: int) -> str:
        self.amounts.append(amount)
        return f"pi_test_{len(self.amounts)}_secret"


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def store(session):
    return EntityStore(session)


@pytest.fixture
def identity_provider():
    return FakeIdentityProvider()


@pytest.fixture
def payment_processor():
    return FakePaymentProcessor()


@pytest.fixture
def donations(store):
    return DonationLifecycleManager(store)


@pytest.fixture
def arbitration(store, donations):
    return RequestArbitrationManager(store, donations)


@pytest.fixture
def accounts(store, identity_provider):
    return AccountLifecycleManager(store, identity_provider)


def make_account(store: EntityStore, email: str, role: str, name: str = None) -> Identity:
    user = store.insert(
        User(email=email, name=name or email.split("@")[0], role=role, uid=f"uid-{email}")
    )
    return Identity(email=user.email, uid=user.uid)


@pytest.fixture
def admin(store):
    return make_account(store, "admin@example.com", ROLE_ADMIN)


@pytest.fixture
def restaurant(store):
    return make_account(store, "kitchen@example.com", ROLE_RESTAURANT, "Green Kitchen")


@pytest.fixture
def charity_a(store):
    return make_account(store, "alpha@example.com", ROLE_CHARITY, "Alpha Relief")


@pytest.fixture
def charity_b(store):
    return make_account(store, "beta@example.com", ROLE_CHARITY, "Beta Shelter")


@pytest.fixture
def plain_user(store):
    return make_account(store, "someone@example.com", ROLE_USER)


def donation_payload(owner_email: str, **overrides) -> DonationCreate:
    data = {
        "restaurant_email": owner_email,
        "restaurant_name": "Green Kitchen",
        "title": "Vegetable biryani",
        "food_type": "Cooked meal",
        "quantity": "20 portions",
        "pickup_window": "18:00-20:00",
        "location": "12 Market Street",
    }
    data.update(overrides)
    return DonationCreate(**data)


def request_payload(donation_id: int, charity: Identity, name: str) -> RequestCreate:
    return RequestCreate(
        donation_id=donation_id,
        charity_email=charity.email,
        charity_name=name,
        request_description="Evening meal service",
        pickup_time="19:00",
    )


@pytest.fixture
def donation(donations, restaurant):
    return donations.post(restaurant, donation_payload(restaurant.email))


@pytest.fixture
def client(session, identity_provider, payment_processor):
    from main import app
    from routers.auth import get_identity_provider, get_payment_processor

    app.dependency_overrides[get_session] = lambda: session
    app.dependency_overrides[get_identity_provider] = lambda: identity_provider
    app.dependency_overrides[get_payment_processor] = lambda: payment_processor
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(identity_provider):
    def _headers(identity: Identity) -> dict:
        token = identity_provider.issue(identity.email, identity.uid)
        return {"Authorization": f"Bearer {token}"}

    return _headers
