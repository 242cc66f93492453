from sqlalchemy.orm import Session, joinedload
from sqlalchemy.exc import IntegrityError
from sqlalchemy import desc
from typing import Optional, List, Iterable
from datetime import datetime, date
from decimal import Decimal

from finance_tracker.db.core import (
    BudgetDB,
    BudgetCategoryDB,
    UserDB,
    BudgetPeriod,
    TransactionType,
    NotFoundError,
    ForbiddenError,
    ConflictError,
    ValidationError,
)
from finance_tracker.models.budget import BudgetCreate, BudgetUpdate, BudgetCategoryCreate, BudgetCategoryUpdate, period_end_date
from finance_tracker.logging_config import get_logger, ledger_operation

logger = get_logger(__name__)


# ===== SPEND TRACKER =====

def find_matching_budget_categories(db: Session, user_id: int, category: str, on_date: date) -> List[BudgetCategoryDB]:
    """
    Expense categories named `category` in the user's budgets whose window contains on_date.
    Ordered by budget_id so the oldest budget comes first.
    """
    return db.query(BudgetCategoryDB).join(BudgetCategoryDB.budget).filter(
        BudgetDB.user_id == user_id,
        BudgetDB.start_date <= on_date,
        BudgetDB.end_date >= on_date,
        BudgetCategoryDB.name == category,
        BudgetCategoryDB.category_type == TransactionType.EXPENSE,
    ).order_by(BudgetDB.budget_id, BudgetCategoryDB.budget_category_id).all()


def adjust_category_spent(db: Session, budget_category_id: int, delta: Decimal) -> None:
    """Atomically move one category's spent counter by delta. The caller owns the commit."""
    updated = db.query(BudgetCategoryDB).filter(
        BudgetCategoryDB.budget_category_id == budget_category_id
    ).update(
        {BudgetCategoryDB.spent_amount: BudgetCategoryDB.spent_amount + delta},
        synchronize_session="fetch",
    )
    if not updated:
        raise NotFoundError(f"Budget category with id {budget_category_id} not found")
    logger.debug(f"Budget category {budget_category_id} spent moved by {delta}")


def _adjust_spent(db: Session, user_id: int, category: str, on_date: date, delta: Decimal) -> Optional[int]:
    category = (category or "").strip()
    if not category:
        return None

    matches = find_matching_budget_categories(db, user_id, category, on_date)
    if not matches:
        logger.debug(f"No budget for user {user_id} covers category '{category}' on {on_date}")
        return None
    if len(matches) > 1:
        logger.warning(
            f"{len(matches)} budgets for user {user_id} cover category '{category}' on {on_date}; "
            f"applying {delta} to budget {matches[0].budget_id} only"
        )

    target = matches[0]
    adjust_category_spent(db, target.budget_category_id, delta)
    return target.budget_category_id


def record_expense(db: Session, user_id: int, category: str, on_date: date, amount: Decimal) -> Optional[int]:
    """
    Add an expense to the first budget category that covers it.

    Returns the budget_category_id that was incremented, or None when no budget matched.
    The caller owns the commit.
    """
    return _adjust_spent(db, user_id, category, on_date, amount)


def reverse_expense(db: Session, user_id: int, category: str, on_date: date, amount: Decimal) -> Optional[int]:
    """Undo record_expense. Spent totals are allowed to go negative."""
    return _adjust_spent(db, user_id, category, on_date, -amount)


# ===== HELPERS =====

def calculate_total_allocated(categories: Iterable[BudgetCategoryDB]) -> Decimal:
    """Income allocations add to the budget, expense allocations subtract from it"""
    total = Decimal('0.00')
    for cat in categories:
        if cat.category_type == TransactionType.INCOME:
            total += cat.allocated_amount
        else:
            total -= cat.allocated_amount
    return total


def _refresh_total_allocated(db_budget: BudgetDB) -> None:
    db_budget.total_allocated_amount = calculate_total_allocated(db_budget.budget_categories)
    db_budget.updated_at = datetime.utcnow()


def get_owned_budget(db: Session, budget_id: int, user_id: int) -> BudgetDB:
    budget = db.query(BudgetDB).options(
        joinedload(BudgetDB.budget_categories)
    ).filter(BudgetDB.budget_id == budget_id).first()
    if not budget:
        raise NotFoundError(f"Budget with id {budget_id} not found")
    if budget.user_id != user_id:
        raise ForbiddenError(f"Not authorized to access budget {budget_id}")
    return budget


def _get_owned_budget_category(db: Session, budget_category_id: int, user_id: int) -> BudgetCategoryDB:
    db_category = db.query(BudgetCategoryDB).filter(
        BudgetCategoryDB.budget_category_id == budget_category_id
    ).first()
    if not db_category:
        raise NotFoundError(f"Budget category with id {budget_category_id} not found")
    if db_category.budget.user_id != user_id:
        raise ForbiddenError(f"Not authorized to access budget category {budget_category_id}")
    return db_category


def _new_category(category_data: BudgetCategoryCreate) -> BudgetCategoryDB:
    return BudgetCategoryDB(
        name=category_data.name,
        category_type=TransactionType(category_data.category_type),
        allocated_amount=category_data.allocated_amount,
        spent_amount=Decimal('0.00'),
        created_at=datetime.utcnow()
    )


# ===== DATABASE OPERATIONS =====

@ledger_operation("budget.create")
def create_db_budget(db: Session, user_id: int, budget_data: BudgetCreate) -> BudgetDB:
    """Create a new budget with categories. Spent counters start at zero."""

    user = db.query(UserDB).filter(UserDB.db_id == user_id).first()
    if not user:
        raise NotFoundError(f"User with id {user_id} not found")

    db_budget = BudgetDB(
        user_id=user_id,
        budget_name=budget_data.budget_name,
        period=BudgetPeriod(budget_data.period),
        start_date=budget_data.start_date,
        end_date=budget_data.end_date,
        description=budget_data.description,
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow()
    )
    db_budget.budget_categories = [_new_category(cat) for cat in budget_data.categories]
    _refresh_total_allocated(db_budget)

    try:
        db.add(db_budget)
        db.commit()
        db.refresh(db_budget)
    except IntegrityError:
        db.rollback()
        raise ConflictError("Budget creation failed due to database constraint")

    logger.info(f"Created budget {db_budget.budget_id} '{db_budget.budget_name}' for user {user_id} "
                f"({db_budget.start_date} - {db_budget.end_date})")
    return db_budget


def read_db_budget(db: Session, budget_id: int, user_id: int) -> BudgetDB:
    """Read a budget owned by the user, with its categories"""
    return get_owned_budget(db, budget_id, user_id)


def read_db_budgets(db: Session, user_id: int, skip: int = 0, limit: int = 100,
                    active_only: bool = False) -> List[BudgetDB]:
    """Read all budgets for a user, latest start date first"""

    query = db.query(BudgetDB).filter(BudgetDB.user_id == user_id)

    if active_only:
        current_date = date.today()
        query = query.filter(
            BudgetDB.start_date <= current_date,
            BudgetDB.end_date >= current_date
        )

    query = query.order_by(desc(BudgetDB.start_date), BudgetDB.budget_id)
    return query.options(joinedload(BudgetDB.budget_categories)).offset(skip).limit(limit).all()


@ledger_operation("budget.update")
def update_db_budget(db: Session, budget_id: int, user_id: int, budget_updates: BudgetUpdate) -> BudgetDB:
    """
    Partially update a budget.

    Changing the period or start date without an end date re-derives the end date the
    way creation does (CUSTOM budgets keep theirs). Replacing the category list keeps the
    spent counter of every category whose name and type survive the replacement; new
    categories, and categories whose type flipped, start at zero.
    """

    db_budget = get_owned_budget(db, budget_id, user_id)
    update_data = budget_updates.model_dump(exclude_unset=True, exclude={'categories'})
    # Only the description may be cleared
    update_data = {field: value for field, value in update_data.items()
                   if value is not None or field == 'description'}

    new_period = BudgetPeriod(update_data.get('period', db_budget.period))
    new_start = update_data.get('start_date', db_budget.start_date)
    if 'end_date' not in update_data and ('period' in update_data or 'start_date' in update_data):
        derived_end = period_end_date(new_period, new_start)
        if derived_end is not None:
            update_data['end_date'] = derived_end
    new_end = update_data.get('end_date', db_budget.end_date)
    if new_end < new_start:
        raise ValidationError("end_date must not be before start_date")

    for field, value in update_data.items():
        if field == 'period':
            setattr(db_budget, field, BudgetPeriod(value))
        else:
            setattr(db_budget, field, value)

    if budget_updates.categories is not None:
        existing = {cat.name: cat for cat in db_budget.budget_categories}
        replacement = []
        for category_data in budget_updates.categories:
            kept = existing.get(category_data.name)
            if kept is None:
                replacement.append(_new_category(category_data))
                continue
            new_type = TransactionType(category_data.category_type)
            if kept.category_type != new_type:
                # Counter was tracking the other type
                kept.category_type = new_type
                kept.spent_amount = Decimal('0.00')
            kept.allocated_amount = category_data.allocated_amount
            replacement.append(kept)
        db_budget.budget_categories = replacement

    _refresh_total_allocated(db_budget)

    try:
        db.commit()
        db.refresh(db_budget)
        return db_budget
    except IntegrityError:
        db.rollback()
        raise ConflictError("Budget update failed due to database constraint")


@ledger_operation("budget.delete")
def delete_db_budget(db: Session, budget_id: int, user_id: int) -> bool:
    """Delete a budget and all its categories"""

    db_budget = get_owned_budget(db, budget_id, user_id)
    db.delete(db_budget)
    db.commit()
    logger.info(f"Deleted budget {budget_id}")
    return True


@ledger_operation("budget_category.create")
def add_budget_category(db: Session, budget_id: int, user_id: int, category_data: BudgetCategoryCreate) -> BudgetCategoryDB:
    """Add a new category to an existing budget"""

    db_budget = get_owned_budget(db, budget_id, user_id)

    if any(cat.name == category_data.name for cat in db_budget.budget_categories):
        raise ConflictError(f"Category '{category_data.name}' already exists in this budget")

    db_category = _new_category(category_data)
    db_budget.budget_categories.append(db_category)
    _refresh_total_allocated(db_budget)

    try:
        db.commit()
        db.refresh(db_category)
        return db_category
    except IntegrityError:
        db.rollback()
        raise ConflictError("Failed to add category due to database constraint")


@ledger_operation("budget_category.update")
def update_budget_category(db: Session, budget_category_id: int, user_id: int,
                           category_updates: BudgetCategoryUpdate) -> BudgetCategoryDB:
    """
    Update a budget category's name, type or allocated amount.
    Flipping the type resets the spent counter, as replacing the category list does.
    """

    db_category = _get_owned_budget_category(db, budget_category_id, user_id)
    db_budget = db_category.budget
    update_data = category_updates.model_dump(exclude_unset=True, exclude_none=True)

    new_name = update_data.get('name')
    if new_name and new_name != db_category.name:
        if any(cat.name == new_name for cat in db_budget.budget_categories if cat is not db_category):
            raise ConflictError(f"Category '{new_name}' already exists in this budget")

    for field, value in update_data.items():
        if field == 'category_type':
            new_type = TransactionType(value)
            if new_type != db_category.category_type:
                # Counter was tracking the other type
                db_category.spent_amount = Decimal('0.00')
            db_category.category_type = new_type
        else:
            setattr(db_category, field, value)

    _refresh_total_allocated(db_budget)

    try:
        db.commit()
        db.refresh(db_category)
        return db_category
    except IntegrityError:
        db.rollback()
        raise ConflictError("Budget category update failed due to database constraint")


@ledger_operation("budget_category.delete")
def delete_budget_category(db: Session, budget_category_id: int, user_id: int) -> bool:
    """Delete a category from a budget"""

    db_category = _get_owned_budget_category(db, budget_category_id, user_id)
    db_budget = db_category.budget
    db_budget.budget_categories.remove(db_category)
    _refresh_total_allocated(db_budget)
    db.commit()
    return True
