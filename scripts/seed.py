import sys
import os
import random
from sqlalchemy.orm import Session
from datetime import date, timedelta
from decimal import Decimal
from faker import Faker
from dotenv import load_dotenv

# Add the project root to the Python path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

load_dotenv()

from finance_tracker.db.core import session_local, UserDB, AccountType, TransactionType, BudgetPeriod
from finance_tracker.logging_config import setup_logging
from finance_tracker.models.user import UserCreate
from finance_tracker.models.account import AccountCreate
from finance_tracker.models.budget import BudgetCreate, BudgetCategoryCreate
from finance_tracker.models.transaction import TransactionCreate
from finance_tracker.crud.crud_user import create_db_user
from finance_tracker.crud.crud_account import create_db_account
from finance_tracker.crud.crud_budget import create_db_budget
from finance_tracker.crud.crud_transaction import create_db_transaction

fake = Faker()

EXPENSE_CATEGORIES = {
    "Groceries": (Decimal("15"), Decimal("180")),
    "Restaurants": (Decimal("10"), Decimal("90")),
    "Utilities": (Decimal("40"), Decimal("220")),
    "Transport": (Decimal("5"), Decimal("60")),
    "Entertainment": (Decimal("8"), Decimal("120")),
    "Shopping": (Decimal("20"), Decimal("400")),
}
INCOME_CATEGORIES = ["Salary", "Freelance", "Interest"]

ACCOUNT_TEMPLATES = [
    (AccountType.CHECKING, "Main Checking", Decimal("8000")),
    (AccountType.SAVINGS, "Emergency Fund", Decimal("25000")),
    (AccountType.CREDIT_CARD, "Rewards Card", Decimal("-1500")),
    (AccountType.CASH, "Wallet", Decimal("300")),
]


def _money(low: Decimal, high: Decimal) -> Decimal:
    return Decimal(str(round(random.uniform(float(low), float(high)), 2)))


def seed_user(db: Session, index: int, months: int = 3) -> UserDB:
    """
    Create one user with accounts, monthly budgets and a few months of transactions.
    Everything goes through the crud layer so balances and spent totals stay consistent.
    """
    password = f"Seed{index}password"
    user = create_db_user(db, UserCreate(
        email=f"seed{index}.{fake.user_name()}@example.com",
        username=f"seed_{index}_{fake.user_name()}".replace(".", "_")[:100],
        password=password,
        confirm_password=password,
        first_name=fake.first_name(),
        last_name=fake.last_name(),
    ))

    accounts = []
    for account_type, name, opening in ACCOUNT_TEMPLATES:
        accounts.append(create_db_account(db, user.db_id, AccountCreate(
            account_name=name,
            account_type=account_type,
            initial_balance=(opening * Decimal(str(random.uniform(0.8, 1.2)))).quantize(Decimal("0.01")),
            currency="INR",
            description=fake.sentence(nb_words=6),
        )))

    month_start = date.today().replace(day=1)
    for _ in range(months):
        create_db_budget(db, user.db_id, BudgetCreate(
            budget_name=f"{month_start:%B %Y}",
            period=BudgetPeriod.MONTHLY,
            start_date=month_start,
            categories=[
                BudgetCategoryCreate(name=name, allocated_amount=high * 4, category_type=TransactionType.EXPENSE)
                for name, (_, high) in EXPENSE_CATEGORIES.items()
            ] + [
                BudgetCategoryCreate(name="Salary", allocated_amount=Decimal("5000"), category_type=TransactionType.INCOME)
            ],
        ))
        month_start = (month_start - timedelta(days=1)).replace(day=1)

    first_day = month_start + timedelta(days=32)
    first_day = first_day.replace(day=1)
    for _ in range(random.randint(30, 60)):
        account = random.choice(accounts)
        if random.random() < 0.2:
            transaction = TransactionCreate(
                account_id=account.id,
                amount=_money(Decimal("200"), Decimal("3000")),
                transaction_type=TransactionType.INCOME,
                category=random.choice(INCOME_CATEGORIES),
                description=fake.company(),
                transaction_date=fake.date_between(start_date=first_day, end_date="today"),
            )
        else:
            category = random.choice(list(EXPENSE_CATEGORIES))
            transaction = TransactionCreate(
                account_id=account.id,
                amount=_money(*EXPENSE_CATEGORIES[category]),
                transaction_type=TransactionType.EXPENSE,
                category=category,
                description=fake.company(),
                transaction_date=fake.date_between(start_date=first_day, end_date="today"),
            )
        create_db_transaction(db, user.db_id, transaction)

    return user


def seed_database(user_count: int = 3):
    """
    Fills the database with sample users, accounts, budgets and transactions.
    """
    db: Session = session_local()

    try:
        # Check if data exists to prevent duplicate seeding
        if db.query(UserDB).count() > 0:
            print("Database appears to be already seeded. Exiting.")
            return

        print(f"Seeding database with {user_count} sample user(s)...")
        for i in range(user_count):
            user = seed_user(db, i)
            print(f"--- Seeded user {i + 1}/{user_count}: {user.username} ---")

        print("Seeding complete.")
    finally:
        db.close()


if __name__ == "__main__":
    setup_logging()
    seed_database()
