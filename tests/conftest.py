import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.pop("REDIS_URL", None)

from datetime import date  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from jose import jwt  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from app import rate_limiter  # noqa: E402
from app.database import Base, build_engine, get_db  # noqa: E402
from app.domain.restaurants.service import RestaurantService  # noqa: E402
from app.main import app  # noqa: E402
from app.models import BankTransaction, ChartOfAccount, User, UserRestaurant  # noqa: E402

OWNER_ID = "00000000-0000-0000-0000-000000000001"
OWNER_EMAIL = "owner@bistro.test"


def make_token(user_id: str, email: str = "someone@bistro.test", **claims) -> str:
    payload = {"sub": user_id, "email": email, "aud": "authenticated", **claims}
    return jwt.encode(payload, os.environ["SUPABASE_JWT_SECRET"], algorithm="HS256")


def auth_headers(user_id: str, email: str = "someone@bistro.test") -> dict:
    return {"Authorization": f"Bearer {make_token(user_id, email)}"}


@pytest.fixture(autouse=True)
def clear_rate_limits():
    rate_limiter.memory_cache.clear()
    yield
    rate_limiter.memory_cache.clear()


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def owner(db):
    user = User(id=OWNER_ID, email=OWNER_EMAIL, full_name="Olive Owner")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def restaurant(db, owner):
    return RestaurantService(db).create_restaurant(owner, "Test Bistro", "America/Chicago")


@pytest.fixture
def owner_headers(owner):
    return auth_headers(owner.id, owner.email)


@pytest.fixture
def add_member(db):
    """Attach a user to a restaurant with the given role"""

    def _add(restaurant, role, user_id, email=None):
        user = User(id=user_id, email=email or f"{role}@bistro.test")
        db.add(user)
        db.add(UserRestaurant(user_id=user_id, restaurant_id=restaurant.id, role=role))
        db.commit()
        return auth_headers(user_id, user.email)

    return _add


@pytest.fixture
def account(db, restaurant):
    def _get(code):
        return (
            db.query(ChartOfAccount)
            .filter(ChartOfAccount.restaurant_id == restaurant.id, ChartOfAccount.account_code == code)
            .one()
        )

    return _get


@pytest.fixture
def bank_txn(db, restaurant):
    def _make(amount, description="POS purchase", on=date(2024, 3, 15), **fields):
        transaction = BankTransaction(
            restaurant_id=restaurant.id,
            transaction_date=on,
            amount=amount,
            description=description,
            **fields,
        )
        db.add(transaction)
        db.commit()
        db.refresh(transaction)
        return transaction

    return _make
