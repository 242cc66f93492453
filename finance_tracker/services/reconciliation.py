"""
Ledger Reconciliation Service

Balances and budget spent counters are running totals kept up to date by the
transaction lifecycle. This service recomputes both from the stored transactions
and reports (or repairs) any drift between the running totals and the history.
"""
from sqlalchemy.orm import Session
from datetime import date
from decimal import Decimal
from typing import List, Dict, Any, Optional

from finance_tracker.db.core import (
    AccountDB,
    BudgetDB,
    BudgetCategoryDB,
    TransactionDB,
    TransactionType,
)
from finance_tracker.crud.crud_account import apply_balance_delta
from finance_tracker.crud.crud_budget import adjust_category_spent
from finance_tracker.logging_config import get_logger, ledger_operation

logger = get_logger(__name__)


def _signed(transaction: TransactionDB) -> Decimal:
    if transaction.transaction_type == TransactionType.INCOME:
        return transaction.amount
    return -transaction.amount


def expected_account_balances(db: Session, user_id: int) -> Dict[int, Decimal]:
    """Initial balance plus the signed amount of every transaction still attached to the account"""
    accounts = db.query(AccountDB).filter(AccountDB.user_id == user_id).all()
    expected = {account.id: account.initial_balance for account in accounts}

    transactions = db.query(TransactionDB).filter(
        TransactionDB.user_id == user_id,
        TransactionDB.account_id.isnot(None)
    ).all()
    for transaction in transactions:
        if transaction.account_id in expected:
            expected[transaction.account_id] += _signed(transaction)
    return expected


def _first_covering_category(categories: List[BudgetCategoryDB], name: str,
                             on_date: date) -> Optional[BudgetCategoryDB]:
    for category in categories:
        budget = category.budget
        if category.name == name and budget.start_date <= on_date <= budget.end_date:
            return category
    return None


def expected_category_spent(db: Session, user_id: int) -> Dict[int, Decimal]:
    """
    Spent totals per expense budget category, attributing each expense transaction to the
    oldest budget whose window and category cover it. Orphaned transactions still count.
    """
    categories = db.query(BudgetCategoryDB).join(BudgetCategoryDB.budget).filter(
        BudgetDB.user_id == user_id,
        BudgetCategoryDB.category_type == TransactionType.EXPENSE,
    ).order_by(BudgetDB.budget_id, BudgetCategoryDB.budget_category_id).all()
    expected = {category.budget_category_id: Decimal('0.00') for category in categories}

    expenses = db.query(TransactionDB).filter(
        TransactionDB.user_id == user_id,
        TransactionDB.transaction_type == TransactionType.EXPENSE,
    ).all()
    for transaction in expenses:
        name = (transaction.category or "").strip()
        if not name:
            continue
        match = _first_covering_category(categories, name, transaction.transaction_date)
        if match is not None:
            expected[match.budget_category_id] += transaction.amount
    return expected


@ledger_operation("reconcile")
def reconcile_user(db: Session, user_id: int, apply: bool = False) -> Dict[str, Any]:
    """
    Compare running totals with recomputed totals for one user.

    Returns a report with the account and category drifts found. With apply=True the
    drifts are corrected through the same atomic increments the lifecycle uses, and
    committed together.
    """
    account_drifts = []
    balances = expected_account_balances(db, user_id)
    for account in db.query(AccountDB).filter(AccountDB.id.in_(list(balances))).all():
        expected = balances[account.id]
        if account.current_balance != expected:
            account_drifts.append({
                'account_id': account.id,
                'account_name': account.account_name,
                'recorded': account.current_balance,
                'expected': expected,
            })

    category_drifts = []
    spent = expected_category_spent(db, user_id)
    for category in db.query(BudgetCategoryDB).filter(BudgetCategoryDB.budget_category_id.in_(list(spent))).all():
        expected = spent[category.budget_category_id]
        if category.spent_amount != expected:
            category_drifts.append({
                'budget_category_id': category.budget_category_id,
                'budget_id': category.budget_id,
                'name': category.name,
                'recorded': category.spent_amount,
                'expected': expected,
            })

    for drift in account_drifts:
        logger.warning(f"Account {drift['account_id']} balance is {drift['recorded']}, expected {drift['expected']}")
    for drift in category_drifts:
        logger.warning(f"Budget category {drift['budget_category_id']} spent is {drift['recorded']}, "
                       f"expected {drift['expected']}")

    if apply and (account_drifts or category_drifts):
        try:
            for drift in account_drifts:
                apply_balance_delta(db, drift['account_id'], drift['expected'] - drift['recorded'])
            for drift in category_drifts:
                adjust_category_spent(db, drift['budget_category_id'], drift['expected'] - drift['recorded'])
            db.commit()
        except Exception:
            db.rollback()
            logger.exception(f"Failed to apply reconciliation for user {user_id}")
            raise
        logger.info(f"Corrected {len(account_drifts)} account(s) and {len(category_drifts)} "
                    f"budget category(ies) for user {user_id}")

    return {
        'user_id': user_id,
        'account_drifts': account_drifts,
        'category_drifts': category_drifts,
        'applied': apply and bool(account_drifts or category_drifts),
    }
