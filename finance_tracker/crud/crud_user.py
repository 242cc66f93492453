from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import Optional
from uuid import uuid4, UUID
from datetime import datetime
import bcrypt

from finance_tracker.db.core import UserDB, NotFoundError, ConflictError, ValidationError
from finance_tracker.models.user import UserCreate
from finance_tracker.logging_config import get_logger

logger = get_logger(__name__)


# ===== PASSWORD HASHING UTILITIES =====

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


# ===== DATABASE OPERATIONS =====

def create_db_user(db: Session, user_data: UserCreate) -> UserDB:
    """Register a new user. Email and username must both be unused."""

    existing_user = db.query(UserDB).filter(UserDB.email == user_data.email).first()
    if existing_user:
        raise ConflictError("Email already registered")

    existing_username = db.query(UserDB).filter(UserDB.username == user_data.username).first()
    if existing_username:
        raise ConflictError("Username already taken")

    db_user = UserDB(
        id=uuid4(),
        email=user_data.email,
        username=user_data.username,
        password_hash=hash_password(user_data.password),
        first_name=user_data.first_name,
        last_name=user_data.last_name,
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow()
    )

    try:
        db.add(db_user)
        db.commit()
        db.refresh(db_user)
    except IntegrityError:
        db.rollback()
        raise ConflictError("User creation failed due to database constraint")

    logger.info(f"Registered user {db_user.db_id} ({db_user.username})")
    return db_user


def read_db_user(db: Session, user_id: int = None, user_uuid: UUID = None,
                 email: str = None, username: str = None) -> Optional[UserDB]:
    """Read a user from the database by various identifiers"""

    query = db.query(UserDB)

    if user_id:
        return query.filter(UserDB.db_id == user_id).first()
    elif user_uuid:
        return query.filter(UserDB.id == user_uuid).first()
    elif email:
        return query.filter(UserDB.email == email.lower()).first()
    elif username:
        return query.filter(UserDB.username == username.lower()).first()
    else:
        raise ValidationError("Must provide at least one identifier (user_id, user_uuid, email, or username)")


def get_db_user(db: Session, user_id: int) -> UserDB:
    db_user = read_db_user(db, user_id=user_id)
    if not db_user:
        raise NotFoundError(f"User with id {user_id} not found")
    return db_user
