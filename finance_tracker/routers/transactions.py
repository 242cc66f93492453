from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from finance_tracker.db.core import get_db, TransactionType
from finance_tracker.models.transaction import TransactionCreate, TransactionUpdate, TransactionResponse, TransactionFilter
from finance_tracker.crud.crud_transaction import (
    create_db_transaction,
    read_db_transaction,
    read_db_transactions,
    update_db_transaction,
    delete_db_transaction,
)
from finance_tracker.routers.dependencies import get_current_user_id

router = APIRouter(
    prefix="/transactions",
    tags=["transactions"],
)


@router.post("/", status_code=status.HTTP_201_CREATED)
def create_transaction(transaction: TransactionCreate, db: Session = Depends(get_db),
                       user_id: int = Depends(get_current_user_id)) -> TransactionResponse:
    db_transaction = create_db_transaction(db, user_id, transaction)
    return TransactionResponse.model_validate(db_transaction)


@router.get("/")
def read_transactions(
    account_id: Optional[int] = None,
    transaction_type: Optional[TransactionType] = None,
    category: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
) -> List[TransactionResponse]:
    filters = TransactionFilter(
        account_id=account_id,
        transaction_type=transaction_type,
        category=category,
        date_from=date_from,
        date_to=date_to,
    )
    db_transactions = read_db_transactions(db, user_id, filters=filters, skip=skip, limit=limit)
    return [TransactionResponse.model_validate(t) for t in db_transactions]


@router.get("/{transaction_id}")
def read_transaction(transaction_id: int, db: Session = Depends(get_db),
                     user_id: int = Depends(get_current_user_id)) -> TransactionResponse:
    db_transaction = read_db_transaction(db, transaction_id=transaction_id, user_id=user_id)
    return TransactionResponse.model_validate(db_transaction)


@router.put("/{transaction_id}")
def update_transaction(transaction_id: int, transaction: TransactionUpdate, db: Session = Depends(get_db),
                       user_id: int = Depends(get_current_user_id)) -> TransactionResponse:
    db_transaction = update_db_transaction(db, transaction_id, user_id, transaction)
    return TransactionResponse.model_validate(db_transaction)


@router.delete("/{transaction_id}")
def delete_transaction(transaction_id: int, db: Session = Depends(get_db),
                       user_id: int = Depends(get_current_user_id)) -> TransactionResponse:
    db_transaction = read_db_transaction(db, transaction_id=transaction_id, user_id=user_id)
    response = TransactionResponse.model_validate(db_transaction)
    delete_db_transaction(db, transaction_id, user_id)
    return response
