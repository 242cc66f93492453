import calendar
from pydantic import BaseModel, Field, field_validator, model_validator, computed_field
from typing import Optional, List
from datetime import datetime, date
from decimal import Decimal
from typing_extensions import Self

from finance_tracker.db.core import BudgetPeriod, TransactionType, round_money


# ===== BUDGET PYDANTIC MODELS =====

def period_end_date(period: BudgetPeriod, start_date: date) -> Optional[date]:
    """Last day of the month, quarter or year that contains start_date. None for CUSTOM."""
    if period == BudgetPeriod.MONTHLY:
        last_day = calendar.monthrange(start_date.year, start_date.month)[1]
        return date(start_date.year, start_date.month, last_day)
    if period == BudgetPeriod.QUARTERLY:
        quarter_end_month = ((start_date.month - 1) // 3) * 3 + 3
        last_day = calendar.monthrange(start_date.year, quarter_end_month)[1]
        return date(start_date.year, quarter_end_month, last_day)
    if period == BudgetPeriod.ANNUALLY:
        return date(start_date.year, 12, 31)
    return None


class BudgetCategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50, description="Category name, matched against transaction categories")
    allocated_amount: Decimal = Field(..., ge=0, description="Allocated budget amount")
    category_type: TransactionType = Field(default=TransactionType.EXPENSE, description="INCOME or EXPENSE")

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('Category name is required')
        return v

    @field_validator('allocated_amount')
    @classmethod
    def validate_allocated_amount(cls, v: Decimal) -> Decimal:
        return round_money(v)


class BudgetCategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    allocated_amount: Optional[Decimal] = Field(None, ge=0)
    category_type: Optional[TransactionType] = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v else v

    @field_validator('allocated_amount')
    @classmethod
    def validate_allocated_amount(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return round_money(v) if v is not None else v


def _check_unique_names(categories: List[BudgetCategoryCreate]) -> List[BudgetCategoryCreate]:
    names = [cat.name for cat in categories]
    if len(names) != len(set(names)):
        raise ValueError('Duplicate category names are not allowed')
    return categories


class BudgetCategoryResponse(BaseModel):
    budget_category_id: int
    budget_id: int
    name: str
    category_type: TransactionType
    allocated_amount: Decimal
    spent_amount: Decimal
    created_at: datetime

    @computed_field
    @property
    def remaining_amount(self) -> Decimal:
        return self.allocated_amount - self.spent_amount

    @computed_field
    @property
    def percentage_used(self) -> float:
        if self.allocated_amount > 0:
            return float(self.spent_amount / self.allocated_amount * 100)
        return 0.0

    class Config:
        from_attributes = True


class BudgetCreate(BaseModel):
    budget_name: str = Field(..., min_length=1, max_length=255, description="Budget name")
    period: BudgetPeriod = Field(default=BudgetPeriod.MONTHLY, description="Budget period")
    start_date: date = Field(..., description="Budget start date")
    end_date: Optional[date] = Field(None, description="Budget end date, derived from period when omitted")
    categories: List[BudgetCategoryCreate] = Field(default_factory=list, description="Budget categories")
    description: Optional[str] = Field(None, description="Optional description")

    @field_validator('budget_name')
    @classmethod
    def validate_budget_name(cls, v: str) -> str:
        return v.strip()

    @field_validator('categories')
    @classmethod
    def validate_categories(cls, v: List[BudgetCategoryCreate]) -> List[BudgetCategoryCreate]:
        return _check_unique_names(v)

    @model_validator(mode="after")
    def resolve_window(self) -> Self:
        if self.end_date is None:
            self.end_date = period_end_date(self.period, self.start_date)
            if self.end_date is None:
                raise ValueError('end_date is required for CUSTOM budgets')
        if self.end_date < self.start_date:
            raise ValueError('end_date must not be before start_date')
        return self


class BudgetUpdate(BaseModel):
    budget_name: Optional[str] = Field(None, min_length=1, max_length=255)
    period: Optional[BudgetPeriod] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    categories: Optional[List[BudgetCategoryCreate]] = None
    description: Optional[str] = None

    @field_validator('budget_name')
    @classmethod
    def validate_budget_name(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v else v

    @field_validator('categories')
    @classmethod
    def validate_categories(cls, v: Optional[List[BudgetCategoryCreate]]) -> Optional[List[BudgetCategoryCreate]]:
        return _check_unique_names(v) if v is not None else v


class BudgetResponse(BaseModel):
    budget_id: int
    user_id: int
    budget_name: str
    period: BudgetPeriod
    start_date: date
    end_date: date
    total_allocated_amount: Decimal
    description: Optional[str]
    created_at: datetime
    updated_at: datetime
    budget_categories: List[BudgetCategoryResponse] = []

    @computed_field
    @property
    def total_spent(self) -> Decimal:
        return sum(
            (cat.spent_amount for cat in self.budget_categories if cat.category_type == TransactionType.EXPENSE),
            Decimal('0.00'),
        )

    @computed_field
    @property
    def is_active(self) -> bool:
        return self.start_date <= date.today() <= self.end_date

    class Config:
        from_attributes = True
