from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from finance_tracker.crud import crud_user
from finance_tracker.models import user as user_models
from finance_tracker.db.core import get_db

router = APIRouter(
    prefix="/users",
    tags=["users"],
)


@router.post("/", response_model=user_models.UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(user: user_models.UserCreate, db: Session = Depends(get_db)):
    """
    Register a new user.
    """
    return crud_user.create_db_user(db=db, user_data=user)


@router.get("/{user_id}", response_model=user_models.UserResponse)
def read_user(user_id: int, db: Session = Depends(get_db)):
    """
    Retrieve a single user by their integer ID.
    """
    return crud_user.get_db_user(db, user_id=user_id)
