from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime, date
from decimal import Decimal

from finance_tracker.db.core import TransactionType, round_money


# ===== TRANSACTION PYDANTIC MODELS =====

def _round_amount(v: Optional[Decimal]) -> Optional[Decimal]:
    # Non-finite and non-positive amounts are rejected by the lifecycle manager
    if v is None or not v.is_finite():
        return v
    return round_money(v)


class TransactionCreate(BaseModel):
    account_id: int = Field(..., description="Account ID for this transaction")
    amount: Decimal = Field(..., description="Transaction amount, strictly positive")
    transaction_type: TransactionType = Field(..., description="INCOME or EXPENSE")
    category: Optional[str] = Field(None, max_length=50, description="Free-text category")
    description: Optional[str] = Field(None, max_length=200, description="Transaction description")
    transaction_date: Optional[date] = Field(None, description="Date of the transaction, defaults to today")

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        return _round_amount(v)

    @field_validator('category', 'description')
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v else v


class TransactionUpdate(BaseModel):
    """Update transaction - all fields optional"""
    account_id: Optional[int] = None
    amount: Optional[Decimal] = None
    transaction_type: Optional[TransactionType] = None
    category: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = Field(None, max_length=200)
    transaction_date: Optional[date] = None

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return _round_amount(v)

    @field_validator('category', 'description')
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v else v


class TransactionResponse(BaseModel):
    """Transaction data returned to client"""
    id: int
    user_id: int
    account_id: Optional[int]
    amount: Decimal
    transaction_type: TransactionType
    category: str
    description: Optional[str]
    transaction_date: date
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TransactionFilter(BaseModel):
    """Filter parameters for transaction queries"""
    account_id: Optional[int] = None
    transaction_type: Optional[TransactionType] = None
    category: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
