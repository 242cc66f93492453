from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional

from finance_tracker.crud import crud_account
from finance_tracker.models import account as account_models
from finance_tracker.db.core import get_db, AccountType
from finance_tracker.routers.dependencies import get_current_user_id

router = APIRouter(
    prefix="/accounts",
    tags=["accounts"],
)


@router.post("/", response_model=account_models.AccountResponse, status_code=status.HTTP_201_CREATED)
def create_account(
    account: account_models.AccountCreate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Create a new account for the current user. The current balance starts at the initial balance.
    """
    return crud_account.create_db_account(db=db, user_id=user_id, account_data=account)


@router.get("/", response_model=List[account_models.AccountResponse])
def read_accounts(
    account_type: Optional[AccountType] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Retrieve all accounts for the current user, with optional filtering by account type.
    """
    return crud_account.read_db_accounts(
        db=db, user_id=user_id, account_type=account_type, skip=skip, limit=limit
    )


@router.get("/{account_id}", response_model=account_models.AccountResponse)
def read_account(
    account_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Retrieve a specific account by its ID.
    """
    return crud_account.read_db_account(db=db, account_id=account_id, user_id=user_id)


@router.put("/{account_id}", response_model=account_models.AccountResponse)
def update_account(
    account_id: int,
    account: account_models.AccountUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Update an account's name, type, currency or description.
    """
    return crud_account.update_db_account(
        db=db, account_id=account_id, user_id=user_id, account_updates=account
    )


@router.delete("/{account_id}", response_model=account_models.AccountResponse)
def delete_account(
    account_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Delete an account. Its transactions are kept with no account attached.
    """
    db_account = crud_account.read_db_account(db, account_id=account_id, user_id=user_id)
    response = account_models.AccountResponse.model_validate(db_account)
    crud_account.delete_db_account(db=db, account_id=account_id, user_id=user_id)
    return response
