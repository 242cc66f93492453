from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from finance_tracker.db.core import AccountDB, UserDB, TransactionDB, AccountType, NotFoundError, ForbiddenError, ConflictError
from finance_tracker.models.account import AccountCreate, AccountUpdate
from finance_tracker.logging_config import get_logger, ledger_operation

logger = get_logger(__name__)


# ===== LEDGER OPERATIONS =====

def apply_balance_delta(db: Session, account_id: int, delta: Decimal) -> Decimal:
    """
    Add a signed delta to an account's current balance and return the new balance.

    The increment is a single UPDATE evaluated by the database, so concurrent callers
    never overwrite each other's changes. The caller owns the commit.
    """
    updated = db.query(AccountDB).filter(AccountDB.id == account_id).update(
        {
            AccountDB.current_balance: AccountDB.current_balance + delta,
            AccountDB.updated_at: datetime.utcnow(),
        },
        synchronize_session="fetch",
    )
    if not updated:
        raise NotFoundError(f"Account with id {account_id} not found")

    new_balance = db.query(AccountDB.current_balance).filter(AccountDB.id == account_id).scalar()
    logger.debug(f"Account {account_id} balance moved by {delta} to {new_balance}")
    return new_balance


def get_owned_account(db: Session, account_id: int, user_id: int) -> AccountDB:
    """Load an account, distinguishing a missing account from someone else's"""
    account = db.query(AccountDB).filter(AccountDB.id == account_id).first()
    if not account:
        raise NotFoundError(f"Account with id {account_id} not found")
    if account.user_id != user_id:
        raise ForbiddenError(f"Not authorized to access account {account_id}")
    return account


# ===== DATABASE OPERATIONS =====

@ledger_operation("account.create")
def create_db_account(db: Session, user_id: int, account_data: AccountCreate) -> AccountDB:
    """Create a new account for a user; current balance starts at the initial balance"""

    user = db.query(UserDB).filter(UserDB.db_id == user_id).first()
    if not user:
        raise NotFoundError(f"User with id {user_id} not found")

    existing_account = db.query(AccountDB).filter(
        AccountDB.user_id == user_id,
        AccountDB.account_name == account_data.account_name
    ).first()
    if existing_account:
        raise ConflictError(f"Account name '{account_data.account_name}' already exists")

    db_account = AccountDB(
        user_id=user_id,
        account_name=account_data.account_name,
        account_type=AccountType(account_data.account_type),
        initial_balance=account_data.initial_balance,
        current_balance=account_data.initial_balance,
        currency=account_data.currency,
        description=account_data.description,
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow()
    )

    try:
        db.add(db_account)
        db.commit()
        db.refresh(db_account)
    except IntegrityError:
        db.rollback()
        raise ConflictError(f"Account name '{account_data.account_name}' already exists")

    logger.info(f"Created account {db_account.id} for user {user_id} with balance {db_account.current_balance}")
    return db_account


def read_db_account(db: Session, account_id: int, user_id: int) -> AccountDB:
    """Read an account owned by the user"""
    return get_owned_account(db, account_id, user_id)


def read_db_accounts(db: Session, user_id: int, account_type: Optional[AccountType] = None,
                     skip: int = 0, limit: int = 100) -> List[AccountDB]:
    """Read accounts for a user, newest first, optionally filtered by account type"""

    query = db.query(AccountDB).filter(AccountDB.user_id == user_id)

    if account_type:
        query = query.filter(AccountDB.account_type == AccountType(account_type))

    return query.order_by(AccountDB.created_at.desc(), AccountDB.id.desc()).offset(skip).limit(limit).all()


@ledger_operation("account.update")
def update_db_account(db: Session, account_id: int, user_id: int, account_updates: AccountUpdate) -> AccountDB:
    """Update an account's descriptive fields. Balances only move through apply_balance_delta."""

    db_account = get_owned_account(db, account_id, user_id)

    if account_updates.account_name and account_updates.account_name != db_account.account_name:
        existing_name = db.query(AccountDB).filter(
            AccountDB.user_id == user_id,
            AccountDB.account_name == account_updates.account_name,
            AccountDB.id != account_id
        ).first()
        if existing_name:
            raise ConflictError(f"Account name '{account_updates.account_name}' already exists")

    update_data = account_updates.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in update_data.items():
        if field == 'account_type':
            setattr(db_account, field, AccountType(value))
        else:
            setattr(db_account, field, value)

    db_account.updated_at = datetime.utcnow()

    try:
        db.commit()
        db.refresh(db_account)
        return db_account
    except IntegrityError:
        db.rollback()
        raise ConflictError("Account update failed due to database constraint")


@ledger_operation("account.delete")
def delete_db_account(db: Session, account_id: int, user_id: int) -> bool:
    """
    Delete an account. Its transactions stay behind as orphans (account_id set to NULL);
    their effects are not reversed anywhere.
    """

    db_account = get_owned_account(db, account_id, user_id)

    orphaned = db.query(TransactionDB).filter(TransactionDB.account_id == account_id).update(
        {TransactionDB.account_id: None},
        synchronize_session="fetch",
    )
    db.delete(db_account)
    db.commit()

    if orphaned:
        logger.warning(f"Deleted account {account_id}; {orphaned} transaction(s) are now orphaned")
    else:
        logger.info(f"Deleted account {account_id}")
    return True
