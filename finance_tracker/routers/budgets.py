from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from finance_tracker.crud import crud_budget
from finance_tracker.models import budget as budget_models
from finance_tracker.db.core import get_db
from finance_tracker.routers.dependencies import get_current_user_id

router = APIRouter(
    prefix="/budgets",
    tags=["budgets"],
)


@router.post("/", response_model=budget_models.BudgetResponse, status_code=status.HTTP_201_CREATED)
def create_budget(
    budget: budget_models.BudgetCreate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Create a new budget with associated categories. The end date is derived from the period when omitted.
    """
    return crud_budget.create_db_budget(db=db, user_id=user_id, budget_data=budget)


@router.get("/", response_model=List[budget_models.BudgetResponse])
def read_budgets(
    skip: int = 0,
    limit: int = 100,
    active_only: bool = False,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Retrieve all budgets for the current user.
    """
    return crud_budget.read_db_budgets(
        db=db, user_id=user_id, skip=skip, limit=limit, active_only=active_only
    )


@router.get("/{budget_id}", response_model=budget_models.BudgetResponse)
def read_budget(
    budget_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Retrieve a specific budget by its ID, including category and spending details.
    """
    return crud_budget.read_db_budget(db=db, budget_id=budget_id, user_id=user_id)


@router.put("/{budget_id}", response_model=budget_models.BudgetResponse)
def update_budget(
    budget_id: int,
    budget: budget_models.BudgetUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Update a budget. Supplying categories replaces the whole category list.
    """
    return crud_budget.update_db_budget(
        db=db, budget_id=budget_id, user_id=user_id, budget_updates=budget
    )


@router.delete("/{budget_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_budget(
    budget_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Delete a budget and its categories.
    """
    crud_budget.delete_db_budget(db=db, budget_id=budget_id, user_id=user_id)


# ===== BUDGET CATEGORY ROUTES =====

@router.post("/{budget_id}/categories/", response_model=budget_models.BudgetCategoryResponse,
             status_code=status.HTTP_201_CREATED)
def add_category_to_budget(
    budget_id: int,
    category: budget_models.BudgetCategoryCreate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Add a new category to an existing budget.
    """
    return crud_budget.add_budget_category(db=db, budget_id=budget_id, user_id=user_id, category_data=category)


@router.put("/categories/{budget_category_id}", response_model=budget_models.BudgetCategoryResponse)
def update_budget_category(
    budget_category_id: int,
    category: budget_models.BudgetCategoryUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Update a budget category's name, type or allocation.
    """
    return crud_budget.update_budget_category(
        db=db, budget_category_id=budget_category_id, user_id=user_id, category_updates=category
    )


@router.delete("/categories/{budget_category_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_budget_category(
    budget_category_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Remove a category from its budget.
    """
    crud_budget.delete_budget_category(db=db, budget_category_id=budget_category_id, user_id=user_id)
