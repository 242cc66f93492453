from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import desc
from typing import Optional, List, NamedTuple
from contextlib import contextmanager
from datetime import datetime, date
from decimal import Decimal, InvalidOperation

from finance_tracker.db.core import (
    TransactionDB,
    TransactionType,
    LedgerError,
    NotFoundError,
    ForbiddenError,
    ValidationError,
    InternalError,
    round_money,
)
from finance_tracker.models.transaction import TransactionCreate, TransactionUpdate, TransactionFilter
from finance_tracker.crud.crud_account import apply_balance_delta, get_owned_account
from finance_tracker.crud.crud_budget import record_expense, reverse_expense
from finance_tracker.logging_config import get_logger, ledger_operation

logger = get_logger(__name__)

DEFAULT_CATEGORY = "uncategorized"


class TransactionState(NamedTuple):
    """The fields of a transaction that drive balance and budget side effects"""
    account_id: Optional[int]
    transaction_type: TransactionType
    amount: Decimal
    category: str
    transaction_date: date

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.transaction_type == TransactionType.INCOME else -self.amount

    @property
    def counts_against_budget(self) -> bool:
        return self.transaction_type == TransactionType.EXPENSE and bool(self.category.strip())


# ===== UTILITY FUNCTIONS =====

def validate_amount(amount) -> Decimal:
    """Amounts must be finite numbers greater than zero once rounded to cents"""
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError("Invalid amount provided. Amount must be a positive number.")
    if not value.is_finite():
        raise ValidationError("Invalid amount provided. Amount must be a positive number.")
    value = round_money(value)
    if value <= 0:
        raise ValidationError("Invalid amount provided. Amount must be a positive number.")
    return value


def normalize_category(category: Optional[str]) -> str:
    category = (category or "").strip()
    return category or DEFAULT_CATEGORY


def _state_of(db_transaction: TransactionDB) -> TransactionState:
    return TransactionState(
        account_id=db_transaction.account_id,
        transaction_type=TransactionType(db_transaction.transaction_type),
        amount=db_transaction.amount,
        category=db_transaction.category or "",
        transaction_date=db_transaction.transaction_date,
    )


@contextmanager
def ledger_unit_of_work(db: Session, action: str):
    """
    Commit every write made inside the block together, or none of them.
    Storage failures are logged and surfaced as InternalError without their details.
    """
    try:
        yield
        db.commit()
    except LedgerError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Rolled back while {action}")
        raise InternalError(f"Server error {action}") from e


def get_owned_transaction(db: Session, transaction_id: int, user_id: int) -> TransactionDB:
    db_transaction = db.query(TransactionDB).filter(TransactionDB.id == transaction_id).first()
    if not db_transaction:
        raise NotFoundError(f"Transaction with id {transaction_id} not found")
    if db_transaction.user_id != user_id:
        raise ForbiddenError(f"Not authorized to access transaction {transaction_id}")
    return db_transaction


# ===== LIFECYCLE OPERATIONS =====

@ledger_operation("transaction.create")
def create_db_transaction(db: Session, user_id: int, transaction_data: TransactionCreate) -> TransactionDB:
    """
    Record a transaction and apply its effects.

    Validation and ownership checks finish before anything is written. The record, the
    balance delta and the budget spend are then committed as one unit.
    """
    amount = validate_amount(transaction_data.amount)
    account = get_owned_account(db, transaction_data.account_id, user_id)

    db_transaction = TransactionDB(
        user_id=user_id,
        account_id=account.id,
        amount=amount,
        transaction_type=TransactionType(transaction_data.transaction_type),
        category=normalize_category(transaction_data.category),
        description=(transaction_data.description or "").strip() or None,
        transaction_date=transaction_data.transaction_date or date.today(),
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow()
    )
    state = _state_of(db_transaction)

    with ledger_unit_of_work(db, "creating transaction"):
        db.add(db_transaction)
        db.flush()
        apply_balance_delta(db, account.id, state.signed_amount)
        if state.counts_against_budget:
            record_expense(db, user_id, state.category, state.transaction_date, state.amount)

    db.refresh(db_transaction)
    logger.info(f"Created {state.transaction_type.value} transaction {db_transaction.id} of {amount} "
                f"on account {account.id} for user {user_id}")
    return db_transaction


@ledger_operation("transaction.update")
def update_db_transaction(db: Session, transaction_id: int, user_id: int,
                          transaction_updates: TransactionUpdate) -> TransactionDB:
    """
    Partially update a transaction and move its effects from the old state to the new one.

    The old budget spend is reversed and the new one recorded. The balance is touched only
    when the account, amount or type changed: one net delta on the same account, or a
    reversal on the old account plus an application on the new one.
    """
    db_transaction = get_owned_transaction(db, transaction_id, user_id)
    update_data = transaction_updates.model_dump(exclude_unset=True)
    old = _state_of(db_transaction)

    new_amount = old.amount
    if update_data.get('amount') is not None:
        new_amount = validate_amount(update_data['amount'])

    new_account_id = old.account_id
    if update_data.get('account_id') is not None:
        new_account_id = get_owned_account(db, update_data['account_id'], user_id).id

    new = TransactionState(
        account_id=new_account_id,
        transaction_type=TransactionType(update_data.get('transaction_type') or old.transaction_type),
        amount=new_amount,
        category=normalize_category(update_data['category']) if 'category' in update_data else old.category,
        transaction_date=update_data.get('transaction_date') or old.transaction_date,
    )

    balance_changed = (new.account_id, new.transaction_type, new.amount) != (old.account_id, old.transaction_type, old.amount)
    if balance_changed and new.account_id is None:
        raise ValidationError("Transaction has no account; provide account_id to change its amount or type")

    with ledger_unit_of_work(db, "updating transaction"):
        db_transaction.account_id = new.account_id
        db_transaction.transaction_type = new.transaction_type
        db_transaction.amount = new.amount
        db_transaction.category = new.category
        db_transaction.transaction_date = new.transaction_date
        if 'description' in update_data:
            db_transaction.description = (update_data['description'] or "").strip() or None
        db_transaction.updated_at = datetime.utcnow()
        db.flush()

        if old.counts_against_budget:
            reverse_expense(db, user_id, old.category, old.transaction_date, old.amount)
        if new.counts_against_budget:
            record_expense(db, user_id, new.category, new.transaction_date, new.amount)

        if balance_changed:
            if new.account_id != old.account_id:
                if old.account_id is not None:
                    apply_balance_delta(db, old.account_id, -old.signed_amount)
                apply_balance_delta(db, new.account_id, new.signed_amount)
            else:
                apply_balance_delta(db, new.account_id, new.signed_amount - old.signed_amount)

    db.refresh(db_transaction)
    logger.info(f"Updated transaction {transaction_id} for user {user_id}")
    return db_transaction


@ledger_operation("transaction.delete")
def delete_db_transaction(db: Session, transaction_id: int, user_id: int) -> bool:
    """
    Reverse a transaction's budget spend and balance effect, then remove it.
    The effect reversed is that of the transaction's current state.
    """
    db_transaction = get_owned_transaction(db, transaction_id, user_id)
    state = _state_of(db_transaction)

    with ledger_unit_of_work(db, "deleting transaction"):
        if state.counts_against_budget:
            reverse_expense(db, user_id, state.category, state.transaction_date, state.amount)
        if state.account_id is not None:
            apply_balance_delta(db, state.account_id, -state.signed_amount)
        else:
            logger.warning(f"Transaction {transaction_id} is orphaned; no account balance to reverse")
        db.delete(db_transaction)

    logger.info(f"Deleted transaction {transaction_id} for user {user_id}")
    return True


# ===== READ OPERATIONS =====

def read_db_transaction(db: Session, transaction_id: int, user_id: int) -> TransactionDB:
    """Read a transaction owned by the user"""
    return get_owned_transaction(db, transaction_id, user_id)


def read_db_transactions(db: Session, user_id: int, filters: Optional[TransactionFilter] = None,
                         skip: int = 0, limit: int = 100) -> List[TransactionDB]:
    """Read transactions with filtering and pagination, most recent first"""

    query = db.query(TransactionDB).filter(TransactionDB.user_id == user_id)

    if filters:
        if filters.account_id:
            get_owned_account(db, filters.account_id, user_id)
            query = query.filter(TransactionDB.account_id == filters.account_id)

        if filters.transaction_type:
            query = query.filter(TransactionDB.transaction_type == TransactionType(filters.transaction_type))

        if filters.category:
            query = query.filter(TransactionDB.category == filters.category.strip())

        if filters.date_from:
            query = query.filter(TransactionDB.transaction_date >= filters.date_from)

        if filters.date_to:
            query = query.filter(TransactionDB.transaction_date <= filters.date_to)

    query = query.order_by(
        desc(TransactionDB.transaction_date),
        desc(TransactionDB.created_at),
        desc(TransactionDB.id)
    )
    return query.offset(skip).limit(limit).all()
