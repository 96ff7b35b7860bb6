"""
Shared fixtures: a fresh SQLite database per test, user/donation factories
and logged-in HTTP clients.
"""
import itertools
import os

# Must be set before the app modules build their engine
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine

from db import get_session
from main import app
from models import Donation, User
from routers.auth import hash_password

PASSWORD = "correct horse battery staple"


# ============================================================================
# DATABASE
# ============================================================================

@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so worker threads share one database"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'zerohunger.db'}",
        connect_args={"check_same_thread": False},
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def fetch(engine):
    """Read a row through a brand-new session, bypassing any cached state"""
    def _fetch(model, ident):
        with Session(engine) as fresh:
            return fresh.get(model, ident)
    return _fetch


# ============================================================================
# FACTORIES
# ============================================================================

@pytest.fixture
def make_user(session):
    counter = itertools.count(1)

    def _make(name="user", donor=False, volunteer=False):
        n = next(counter)
        user = User(
            email=f"{name}{n}@example.com",
            name=f"{name.title()} {n}",
            is_donor=donor,
            is_volunteer=volunteer,
            password_hash=hash_password(PASSWORD),
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make


@pytest.fixture
def donor(make_user):
    return make_user("donor", donor=True)


@pytest.fixture
def volunteer(make_user):
    return make_user("volunteer", volunteer=True)


@pytest.fixture
def other_volunteer(make_user):
    return make_user("helper", volunteer=True)


@pytest.fixture
def make_donation(session):
    def _make(donor, quantity_kg=5.0, **fields):
        donation = Donation(
            donor_id=donor.id,
            title=fields.pop("title", "Surplus bread"),
            quantity_kg=quantity_kg,
            latitude=40.7128,
            longitude=-74.0060,
            **fields,
        )
        session.add(donation)
        session.commit()
        session.refresh(donation)
        return donation

    return _make


@pytest.fixture
def donation(make_donation, donor):
    return make_donation(donor)


# ============================================================================
# HTTP
# ============================================================================

@pytest.fixture
def app_client(engine):
    """Builds TestClients whose requests use the test database"""
    def override_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session

    def _client():
        return TestClient(app)

    yield _client
    app.dependency_overrides.clear()


@pytest.fixture
def login_as(app_client):
    """A client holding a session cookie for ``user`` in ``role``"""
    def _login(user, role):
        client = app_client()
        response = client.post(
            "/login",
            json={"email": user.email, "password": PASSWORD, "role": role},
        )
        assert response.status_code == 200, response.text
        return client

    return _login
