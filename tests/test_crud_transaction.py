import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from finance_tracker.db.core import (
    AccountDB,
    BudgetCategoryDB,
    TransactionDB,
    AccountType,
    TransactionType,
    ValidationError,
    NotFoundError,
    ForbiddenError,
    InternalError,
)
from finance_tracker.models.account import AccountCreate
from finance_tracker.models.transaction import TransactionCreate, TransactionUpdate, TransactionFilter
from finance_tracker.crud import crud_transaction
from finance_tracker.crud.crud_account import create_db_account, delete_db_account, apply_balance_delta
from finance_tracker.crud.crud_transaction import (
    create_db_transaction,
    update_db_transaction,
    delete_db_transaction,
    read_db_transaction,
    read_db_transactions,
    validate_amount,
)

JUNE_15 = date(2025, 6, 15)


def balance(db, account_id) -> Decimal:
    db.expire_all()
    return db.query(AccountDB.current_balance).filter(AccountDB.id == account_id).scalar()


def spent(db, budget_category_id) -> Decimal:
    db.expire_all()
    return db.query(BudgetCategoryDB.spent_amount).filter(
        BudgetCategoryDB.budget_category_id == budget_category_id
    ).scalar()


def income(account_id, amount, **kwargs):
    return TransactionCreate(account_id=account_id, amount=Decimal(amount),
                             transaction_type=TransactionType.INCOME, **kwargs)


def expense(account_id, amount, category="Food", on=JUNE_15, **kwargs):
    return TransactionCreate(account_id=account_id, amount=Decimal(amount),
                             transaction_type=TransactionType.EXPENSE,
                             category=category, transaction_date=on, **kwargs)


@pytest.fixture
def food(june_budget):
    return june_budget.budget_categories[0]


# ===== WALKTHROUGH =====

def test_checking_and_june_budget_walkthrough(db, user, checking, june_budget, food):
    uid = user.db_id
    assert june_budget.total_allocated_amount == Decimal("-500.00")

    create_db_transaction(db, uid, income(checking.id, "200", transaction_date=JUNE_15))
    assert balance(db, checking.id) == Decimal("1200.00")

    grocery = create_db_transaction(db, uid, expense(checking.id, "300"))
    assert balance(db, checking.id) == Decimal("900.00")
    assert spent(db, food.budget_category_id) == Decimal("300.00")

    update_db_transaction(db, grocery.id, uid, TransactionUpdate(amount=Decimal("100")))
    assert balance(db, checking.id) == Decimal("1100.00")
    assert spent(db, food.budget_category_id) == Decimal("100.00")

    delete_db_transaction(db, grocery.id, uid)
    assert balance(db, checking.id) == Decimal("1200.00")
    assert spent(db, food.budget_category_id) == Decimal("0.00")

    with pytest.raises(ValidationError):
        create_db_transaction(db, uid, expense(checking.id, "-50"))
    assert balance(db, checking.id) == Decimal("1200.00")
    assert spent(db, food.budget_category_id) == Decimal("0.00")
    assert db.query(TransactionDB).count() == 1


# ===== CREATE =====

@pytest.mark.parametrize("amount", ["0", "-1", "0.001", "NaN", "Infinity", "abc", None])
def test_validate_amount_rejects_non_positive_and_non_finite(amount):
    with pytest.raises(ValidationError):
        validate_amount(amount)


def test_validate_amount_rounds_to_cents():
    assert validate_amount("12.345") == Decimal("12.35")
    assert validate_amount("2.675") == Decimal("2.68")
    assert validate_amount("0.005") == Decimal("0.01")
    assert validate_amount(7) == Decimal("7.00")


def test_create_defaults_date_and_category(db, user, checking):
    txn = create_db_transaction(db, user.db_id, TransactionCreate(
        account_id=checking.id, amount=Decimal("10"), transaction_type=TransactionType.EXPENSE,
        category="   ", description="  coffee  "))
    assert txn.transaction_date == date.today()
    assert txn.category == "uncategorized"
    assert txn.description == "coffee"


def test_create_against_missing_account_is_not_found(db, user):
    with pytest.raises(NotFoundError):
        create_db_transaction(db, user.db_id, income(9999, "10"))
    assert db.query(TransactionDB).count() == 0


def test_create_against_other_users_account_is_forbidden(db, user, other_user, checking):
    with pytest.raises(ForbiddenError):
        create_db_transaction(db, other_user.db_id, income(checking.id, "10"))
    assert balance(db, checking.id) == Decimal("1000.00")


def test_expense_outside_budget_window_leaves_budget_alone(db, user, checking, food):
    create_db_transaction(db, user.db_id, expense(checking.id, "40", on=date(2025, 7, 1)))
    assert balance(db, checking.id) == Decimal("960.00")
    assert spent(db, food.budget_category_id) == Decimal("0.00")


def test_window_is_inclusive_on_both_ends(db, user, checking, food):
    create_db_transaction(db, user.db_id, expense(checking.id, "1", on=date(2025, 6, 1)))
    create_db_transaction(db, user.db_id, expense(checking.id, "2", on=date(2025, 6, 30)))
    assert spent(db, food.budget_category_id) == Decimal("3.00")


def test_income_never_touches_budget_spend(db, user, checking, food):
    create_db_transaction(db, user.db_id, income(checking.id, "75", category="Food", transaction_date=JUNE_15))
    assert spent(db, food.budget_category_id) == Decimal("0.00")


def test_other_users_budget_is_not_charged(db, user, other_user, food):
    theirs = create_db_account(db, other_user.db_id, AccountCreate(
        account_name="Wallet", account_type=AccountType.CASH, initial_balance=Decimal("50"), currency="INR"))
    create_db_transaction(db, other_user.db_id, expense(theirs.id, "20"))
    assert spent(db, food.budget_category_id) == Decimal("0.00")


def test_storage_failure_rolls_back_every_write(db, user, checking, food, monkeypatch):
    def broken_record_expense(*args, **kwargs):
        raise OperationalError("UPDATE budget_categories", {}, Exception("disk I/O error"))

    monkeypatch.setattr(crud_transaction, "record_expense", broken_record_expense)

    with pytest.raises(InternalError) as exc_info:
        create_db_transaction(db, user.db_id, expense(checking.id, "300"))

    assert "disk I/O" not in exc_info.value.message
    assert db.query(TransactionDB).count() == 0
    assert balance(db, checking.id) == Decimal("1000.00")
    assert spent(db, food.budget_category_id) == Decimal("0.00")


# ===== UPDATE =====

def test_update_moves_effect_between_accounts(db, user, checking, food):
    savings = create_db_account(db, user.db_id, AccountCreate(
        account_name="Savings", account_type=AccountType.SAVINGS, initial_balance=Decimal("500"), currency="INR"))
    txn = create_db_transaction(db, user.db_id, expense(checking.id, "100"))

    update_db_transaction(db, txn.id, user.db_id, TransactionUpdate(account_id=savings.id, amount=Decimal("60")))

    assert balance(db, checking.id) == Decimal("1000.00")
    assert balance(db, savings.id) == Decimal("440.00")
    assert spent(db, food.budget_category_id) == Decimal("60.00")


def test_update_flipping_type_removes_budget_spend(db, user, checking, food):
    txn = create_db_transaction(db, user.db_id, expense(checking.id, "100"))

    update_db_transaction(db, txn.id, user.db_id, TransactionUpdate(transaction_type=TransactionType.INCOME))

    assert balance(db, checking.id) == Decimal("1100.00")
    assert spent(db, food.budget_category_id) == Decimal("0.00")


def test_update_date_moves_spend_out_of_window(db, user, checking, food):
    txn = create_db_transaction(db, user.db_id, expense(checking.id, "80"))

    update_db_transaction(db, txn.id, user.db_id, TransactionUpdate(transaction_date=date(2025, 5, 31)))

    assert spent(db, food.budget_category_id) == Decimal("0.00")
    assert balance(db, checking.id) == Decimal("920.00")


def test_description_only_update_changes_no_totals(db, user, checking, food):
    txn = create_db_transaction(db, user.db_id, expense(checking.id, "80"))

    updated = update_db_transaction(db, txn.id, user.db_id, TransactionUpdate(description="lunch"))

    assert updated.description == "lunch"
    assert balance(db, checking.id) == Decimal("920.00")
    assert spent(db, food.budget_category_id) == Decimal("80.00")


def test_update_then_revert_restores_totals(db, user, checking, food):
    txn = create_db_transaction(db, user.db_id, expense(checking.id, "80"))

    update_db_transaction(db, txn.id, user.db_id, TransactionUpdate(amount=Decimal("15"), category="Travel"))
    update_db_transaction(db, txn.id, user.db_id, TransactionUpdate(amount=Decimal("80"), category="Food"))

    assert balance(db, checking.id) == Decimal("920.00")
    assert spent(db, food.budget_category_id) == Decimal("80.00")


def test_invalid_update_changes_nothing(db, user, other_user, checking, food):
    txn = create_db_transaction(db, user.db_id, expense(checking.id, "80"))
    theirs = create_db_account(db, other_user.db_id, AccountCreate(
        account_name="Wallet", account_type=AccountType.CASH, initial_balance=Decimal("50"), currency="INR"))

    with pytest.raises(ValidationError):
        update_db_transaction(db, txn.id, user.db_id, TransactionUpdate(amount=Decimal("0")))
    with pytest.raises(ForbiddenError):
        update_db_transaction(db, txn.id, user.db_id, TransactionUpdate(account_id=theirs.id, amount=Decimal("5")))
    with pytest.raises(NotFoundError):
        update_db_transaction(db, txn.id, user.db_id, TransactionUpdate(account_id=9999))

    assert read_db_transaction(db, txn.id, user.db_id).amount == Decimal("80.00")
    assert balance(db, checking.id) == Decimal("920.00")
    assert spent(db, food.budget_category_id) == Decimal("80.00")


def test_update_of_other_users_transaction_is_forbidden(db, user, other_user, checking):
    txn = create_db_transaction(db, user.db_id, income(checking.id, "10"))
    with pytest.raises(ForbiddenError):
        update_db_transaction(db, txn.id, other_user.db_id, TransactionUpdate(amount=Decimal("20")))


# ===== DELETE =====

def test_delete_missing_transaction_is_not_found(db, user):
    with pytest.raises(NotFoundError):
        delete_db_transaction(db, 12345, user.db_id)


def test_delete_other_users_transaction_is_forbidden(db, user, other_user, checking):
    txn = create_db_transaction(db, user.db_id, income(checking.id, "10"))
    with pytest.raises(ForbiddenError):
        delete_db_transaction(db, txn.id, other_user.db_id)
    assert balance(db, checking.id) == Decimal("1010.00")


def test_create_then_delete_restores_totals(db, user, checking, food):
    txn = create_db_transaction(db, user.db_id, expense(checking.id, "123.45"))
    delete_db_transaction(db, txn.id, user.db_id)

    assert balance(db, checking.id) == Decimal("1000.00")
    assert spent(db, food.budget_category_id) == Decimal("0.00")
    assert db.query(TransactionDB).count() == 0


def test_orphaned_transaction_can_be_deleted(db, user, checking, food):
    txn = create_db_transaction(db, user.db_id, expense(checking.id, "30"))
    delete_db_account(db, checking.id, user.db_id)

    orphan = read_db_transaction(db, txn.id, user.db_id)
    assert orphan.account_id is None

    delete_db_transaction(db, txn.id, user.db_id)
    assert spent(db, food.budget_category_id) == Decimal("0.00")


def test_orphaned_transaction_needs_account_to_change_amount(db, user, checking):
    txn = create_db_transaction(db, user.db_id, expense(checking.id, "30"))
    delete_db_account(db, checking.id, user.db_id)

    with pytest.raises(ValidationError):
        update_db_transaction(db, txn.id, user.db_id, TransactionUpdate(amount=Decimal("40")))

    savings = create_db_account(db, user.db_id, AccountCreate(
        account_name="Savings", account_type=AccountType.SAVINGS, initial_balance=Decimal("500"), currency="INR"))
    update_db_transaction(db, txn.id, user.db_id, TransactionUpdate(account_id=savings.id, amount=Decimal("40")))
    assert balance(db, savings.id) == Decimal("460.00")


# ===== READ =====

def test_read_transactions_filters_and_orders_newest_first(db, user, checking):
    create_db_transaction(db, user.db_id, expense(checking.id, "10", on=date(2025, 6, 1)))
    create_db_transaction(db, user.db_id, expense(checking.id, "20", category="Rent", on=date(2025, 6, 3)))
    create_db_transaction(db, user.db_id, income(checking.id, "30", transaction_date=date(2025, 6, 2)))

    everything = read_db_transactions(db, user.db_id)
    assert [t.amount for t in everything] == [Decimal("20.00"), Decimal("30.00"), Decimal("10.00")]

    expenses = read_db_transactions(db, user.db_id, TransactionFilter(transaction_type=TransactionType.EXPENSE))
    assert len(expenses) == 2

    food_only = read_db_transactions(db, user.db_id, TransactionFilter(category="Food"))
    assert [t.amount for t in food_only] == [Decimal("10.00")]

    early = read_db_transactions(db, user.db_id, TransactionFilter(date_to=date(2025, 6, 2)))
    assert len(early) == 2


def test_listing_by_other_users_account_is_forbidden(db, user, other_user, checking):
    with pytest.raises(ForbiddenError):
        read_db_transactions(db, other_user.db_id, TransactionFilter(account_id=checking.id))


# ===== CONCURRENCY =====

def test_interleaved_sessions_do_not_lose_updates(db, session_factory, user, checking):
    """Two requests that both loaded the account before either wrote still apply both deltas."""
    create_db_transaction(db, user.db_id, income(checking.id, "200"))

    first = session_factory()
    second = session_factory()
    try:
        # Both sessions hold the same stale snapshot of the account
        assert first.get(AccountDB, checking.id).current_balance == Decimal("1200.00")
        assert second.get(AccountDB, checking.id).current_balance == Decimal("1200.00")

        create_db_transaction(first, user.db_id, expense(checking.id, "50", category="Snacks"))
        create_db_transaction(second, user.db_id, expense(checking.id, "50", category="Snacks"))
    finally:
        first.close()
        second.close()

    assert balance(db, checking.id) == Decimal("1100.00")


def test_concurrent_expenses_all_land(session_factory, db, user, checking, food):
    """Eight threads, one session each, post a 50 expense at the same moment."""
    workers = 8
    user_id, account_id = user.db_id, checking.id
    start = threading.Barrier(workers)

    def post_expense(_):
        session = session_factory()
        try:
            start.wait()
            return create_db_transaction(session, user_id, expense(account_id, "50")).id
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=workers) as pool:
        ids = list(pool.map(post_expense, range(workers)))

    assert len(set(ids)) == workers
    assert balance(db, account_id) == Decimal("600.00")
    assert spent(db, food.budget_category_id) == Decimal("400.00")
    assert db.query(TransactionDB).filter(TransactionDB.account_id == account_id).count() == workers


def test_apply_balance_delta_on_missing_account(db):
    with pytest.raises(NotFoundError):
        apply_balance_delta(db, 4242, Decimal("1"))
