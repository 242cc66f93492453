import os
from typing import Optional
from sqlalchemy import create_engine, ForeignKey, Index, UniqueConstraint, String, Text, DECIMAL, DateTime, Date
from sqlalchemy.types import Enum
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Mapped, relationship, mapped_column
from datetime import datetime, date
from uuid import UUID
from decimal import Decimal, ROUND_HALF_UP
import enum


DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///finance_tracker.db")


# ===== ERRORS =====

class LedgerError(Exception):
    """Base class for errors surfaced to API callers as {kind, message}."""
    kind = "Internal"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ValidationError(LedgerError, ValueError):
    kind = "ValidationError"


class NotFoundError(LedgerError):
    kind = "NotFound"


class ForbiddenError(LedgerError):
    kind = "Forbidden"


class ConflictError(LedgerError, ValueError):
    kind = "Conflict"


class InternalError(LedgerError):
    kind = "Internal"


# ===== MONEY =====

CENT = Decimal("0.01")


def round_money(value: Decimal) -> Decimal:
    """Round to cents, half away from zero (12.345 -> 12.35)"""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


# ===== ORM MODELS =====

class Base(DeclarativeBase):
    pass


class AccountType(str, enum.Enum):
    SAVINGS = "SAVINGS"
    CHECKING = "CHECKING"
    CREDIT_CARD = "CREDIT_CARD"
    CASH = "CASH"
    INVESTMENT = "INVESTMENT"
    LOAN = "LOAN"
    OTHER = "OTHER"


class TransactionType(str, enum.Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class BudgetPeriod(str, enum.Enum):
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    ANNUALLY = "ANNUALLY"
    CUSTOM = "CUSTOM"


class UserDB(Base):
    __tablename__ = "users"

    __table_args__ = (
        UniqueConstraint("email", name="uq_user_email"),
        UniqueConstraint("username", name="uq_user_username"),
        Index("idx_users_email", "email"),
    )

    db_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    id: Mapped[UUID] = mapped_column(unique=True, nullable=False)

    email: Mapped[str] = mapped_column(String(255), nullable=False)
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    first_name: Mapped[Optional[str]] = mapped_column(String(100))
    last_name: Mapped[Optional[str]] = mapped_column(String(100))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    accounts = relationship("AccountDB", back_populates="user")
    transactions = relationship("TransactionDB", back_populates="user")
    budgets = relationship("BudgetDB", back_populates="user")


class AccountDB(Base):
    __tablename__ = "accounts"

    __table_args__ = (
        # Account names are unique per user
        UniqueConstraint("user_id", "account_name", name="uq_user_account_name"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.db_id"), nullable=False)

    account_name: Mapped[str] = mapped_column(String(50), nullable=False)
    account_type: Mapped[AccountType] = mapped_column(Enum(AccountType), default=AccountType.CHECKING)
    currency: Mapped[str] = mapped_column(String(5), nullable=False, default="INR")
    description: Mapped[Optional[str]] = mapped_column(String(200))

    # Balance Tracking. current_balance is only written through crud_account.apply_balance_delta
    initial_balance: Mapped[Decimal] = mapped_column(DECIMAL(15, 2), nullable=False, default=0)
    current_balance: Mapped[Decimal] = mapped_column(DECIMAL(15, 2), nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("UserDB", back_populates="accounts")
    transactions = relationship("TransactionDB", back_populates="account")


class TransactionDB(Base):
    __tablename__ = "transactions"

    __table_args__ = (
        Index("idx_transactions_user_date", "user_id", "transaction_date"),
        Index("idx_transactions_user_account", "user_id", "account_id"),
        Index("idx_transactions_user_category", "user_id", "category"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.db_id"), nullable=False)
    # NULL once the account has been deleted (orphaned transaction)
    account_id: Mapped[Optional[int]] = mapped_column(ForeignKey("accounts.id", ondelete="SET NULL"))

    amount: Mapped[Decimal] = mapped_column(DECIMAL(15, 2), nullable=False)
    transaction_type: Mapped[TransactionType] = mapped_column(Enum(TransactionType), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="uncategorized")
    description: Mapped[Optional[str]] = mapped_column(String(200))
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False, default=date.today)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("UserDB", back_populates="transactions")
    account = relationship("AccountDB", back_populates="transactions")


class BudgetDB(Base):
    __tablename__ = "budgets"

    __table_args__ = (
        Index("idx_budgets_user_window", "user_id", "start_date", "end_date"),
    )

    budget_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.db_id"), nullable=False)

    budget_name: Mapped[str] = mapped_column(String(255), nullable=False)
    period: Mapped[BudgetPeriod] = mapped_column(Enum(BudgetPeriod), default=BudgetPeriod.MONTHLY)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    # Sum of INCOME allocations minus sum of EXPENSE allocations
    total_allocated_amount: Mapped[Decimal] = mapped_column(DECIMAL(15, 2), nullable=False, default=0)
    description: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("UserDB", back_populates="budgets")
    budget_categories = relationship(
        "BudgetCategoryDB",
        back_populates="budget",
        cascade="all, delete-orphan",
        order_by="BudgetCategoryDB.budget_category_id",
    )


class BudgetCategoryDB(Base):
    __tablename__ = "budget_categories"

    __table_args__ = (
        UniqueConstraint("budget_id", "name", name="uq_budget_category_name"),
        Index("idx_budget_categories_name", "name"),
    )

    budget_category_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    budget_id: Mapped[int] = mapped_column(ForeignKey("budgets.budget_id", ondelete="CASCADE"), nullable=False)

    name: Mapped[str] = mapped_column(String(50), nullable=False)
    category_type: Mapped[TransactionType] = mapped_column(Enum(TransactionType), default=TransactionType.EXPENSE)
    allocated_amount: Mapped[Decimal] = mapped_column(DECIMAL(15, 2), nullable=False)
    # Running counter, only written through crud_budget.record_expense / reverse_expense
    spent_amount: Mapped[Decimal] = mapped_column(DECIMAL(15, 2), nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    budget = relationship("BudgetDB", back_populates="budget_categories")


# SQLite connections get handed across FastAPI worker threads
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(
    DATABASE_URL,
    echo=os.getenv("SQL_ECHO", "false").lower() == "true",
    connect_args=connect_args,
)
session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# Dependency to get the database session
def get_db():
    database = session_local()
    try:
        yield database
    finally:
        database.close()
