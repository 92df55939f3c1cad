import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from database import Base
from models import User


@pytest.fixture
def engine():
    # One shared connection so the in-memory database survives across threads.
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def make_user(session):
    def _make(name: str = "Alex", budget_cents: int = 0) -> User:
        user = User(
            name=name,
            email=f"{name.lower()}@example.com",
            monthly_budget_cents=budget_cents,
        )
        session.add(user)
        session.commit()
        return user

    return _make


@pytest.fixture
def user(make_user) -> User:
    return make_user()
