from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from finance_tracker.db.core import Base, UserDB, AccountType, TransactionType, BudgetPeriod, get_db
from finance_tracker.main import app
from finance_tracker.models.account import AccountCreate
from finance_tracker.models.budget import BudgetCreate, BudgetCategoryCreate
from finance_tracker.crud.crud_account import create_db_account
from finance_tracker.crud.crud_budget import create_db_budget

@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


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


def make_user(db, username: str) -> UserDB:
    # Skips bcrypt; registration itself is covered in test_routers
    user = UserDB(
        id=uuid4(),
        email=f"{username}@example.com",
        username=username,
        password_hash="not-a-real-hash",
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def user(db):
    return make_user(db, "alice")


@pytest.fixture
def other_user(db):
    return make_user(db, "bob")


@pytest.fixture
def checking(db, user):
    return create_db_account(db, user.db_id, AccountCreate(
        account_name="Checking",
        account_type=AccountType.CHECKING,
        initial_balance=Decimal("1000"),
        currency="inr",
    ))


@pytest.fixture
def june_budget(db, user):
    return create_db_budget(db, user.db_id, BudgetCreate(
        budget_name="June",
        period=BudgetPeriod.MONTHLY,
        start_date=date(2025, 6, 1),
        categories=[BudgetCategoryCreate(name="Food", allocated_amount=Decimal("500"),
                                         category_type=TransactionType.EXPENSE)],
    ))
