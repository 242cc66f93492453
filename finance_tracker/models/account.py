from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime
from decimal import Decimal

from finance_tracker.db.core import AccountType, round_money


# ===== ACCOUNT PYDANTIC MODELS =====

class AccountCreate(BaseModel):
    account_name: str = Field(..., min_length=1, max_length=50, description="Account name")
    account_type: AccountType = Field(..., description="Type of account")
    initial_balance: Decimal = Field(..., description="Opening balance; current balance starts here")
    currency: str = Field(..., min_length=1, max_length=5, description="ISO currency code, e.g. INR")
    description: Optional[str] = Field(None, max_length=200, description="Optional description")

    @field_validator('account_name')
    @classmethod
    def validate_account_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('Account name is required')
        return v

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError('Select currency')
        return v

    @field_validator('initial_balance')
    @classmethod
    def validate_initial_balance(cls, v: Decimal) -> Decimal:
        if not v.is_finite():
            raise ValueError('Initial balance must be a number')
        return round_money(v)

    @field_validator('description')
    @classmethod
    def validate_description(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v else v


class AccountUpdate(BaseModel):
    """Update account details - balances are never writable here"""
    account_name: Optional[str] = Field(None, min_length=1, max_length=50)
    account_type: Optional[AccountType] = None
    currency: Optional[str] = Field(None, min_length=1, max_length=5)
    description: Optional[str] = Field(None, max_length=200)

    @field_validator('account_name')
    @classmethod
    def validate_account_name(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v else v

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v else v


class AccountResponse(BaseModel):
    """Account data returned to client"""
    id: int
    user_id: int
    account_name: str
    account_type: AccountType
    initial_balance: Decimal
    current_balance: Decimal
    currency: str
    description: Optional[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
