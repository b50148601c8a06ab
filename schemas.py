from datetime import datetime
from decimal import Decimal
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field

from models import CategoryType

Money = Annotated[Decimal, Field(gt=0, max_digits=12, decimal_places=2)]
Rate = Annotated[Decimal, Field(ge=0, max_digits=5, decimal_places=2)]


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: CategoryType
    icon: Optional[str] = Field(default=None, max_length=50)
    color: Optional[str] = Field(default=None, max_length=7)


class CategoryUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    icon: Optional[str] = Field(default=None, max_length=50)
    color: Optional[str] = Field(default=None, max_length=7)


class IncomeIn(BaseModel):
    amount: Money
    description: str = Field(..., min_length=1, max_length=200)
    source: Optional[str] = Field(default=None, max_length=100)
    date: datetime
    is_recurring: bool = False
    category_id: Optional[int] = None


class IncomeUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: Optional[Money] = None
    description: Optional[str] = Field(default=None, min_length=1, max_length=200)
    source: Optional[str] = Field(default=None, max_length=100)
    date: Optional[datetime] = None
    is_recurring: Optional[bool] = None
    category_id: Optional[int] = None


class ExpenseIn(BaseModel):
    amount: Money
    description: str = Field(..., min_length=1, max_length=200)
    date: datetime
    is_recurring: bool = False
    category_id: int


class ExpenseUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: Optional[Money] = None
    description: Optional[str] = Field(default=None, min_length=1, max_length=200)
    date: Optional[datetime] = None
    is_recurring: Optional[bool] = None
    category_id: Optional[int] = None


class DebtIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    total_amount: Money
    interest_rate: Optional[Rate] = None
    minimum_payment: Optional[Money] = None
    due_date: Optional[datetime] = None
    start_date: datetime
    category_id: Optional[int] = None


class DebtUpdate(BaseModel):
    """Partial debt edit.

    Only the fields present in ``model_fields_set`` are applied, so an explicit
    ``null`` clears a nullable column while an omitted field leaves it alone.
    """

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    total_amount: Optional[Money] = None
    interest_rate: Optional[Rate] = None
    minimum_payment: Optional[Money] = None
    due_date: Optional[datetime] = None
    category_id: Optional[int] = None


class PaymentIn(BaseModel):
    amount: Money
    date: datetime
    note: Optional[str] = Field(default=None, max_length=200)


class SavingIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    target_amount: Money
    target_date: Optional[datetime] = None
    description: Optional[str] = Field(default=None, max_length=500)
    color: Optional[str] = Field(default=None, max_length=7)


class SavingUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    target_amount: Optional[Money] = None
    target_date: Optional[datetime] = None
    description: Optional[str] = Field(default=None, max_length=500)
    color: Optional[str] = Field(default=None, max_length=7)


class DepositIn(BaseModel):
    amount: Money
    date: datetime
    note: Optional[str] = Field(default=None, max_length=200)
