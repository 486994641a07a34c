import datetime as dt
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, StrictFloat, StrictInt, field_validator

from ledger import is_finite_number


class RegisterIn(BaseModel):
    name: str = ""
    email: str = ""
    password: str = ""


class LoginIn(BaseModel):
    email: str = ""
    password: str = ""


class TransactionIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    date: Optional[dt.date] = None
    description: str = ""
    category: str = ""
    amount: Optional[Union[StrictInt, StrictFloat]] = None

    @field_validator("date", mode="before")
    @classmethod
    def blank_date_is_missing(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class BudgetsIn(BaseModel):
    budgets: dict[str, Union[StrictInt, StrictFloat]]

    @field_validator("budgets")
    @classmethod
    def limits_not_negative(cls, value):
        for category, limit in value.items():
            if not category.strip():
                raise ValueError("Budget category cannot be empty")
            if not is_finite_number(limit) or limit < 0:
                raise ValueError(f"Budget for '{category}' must be a non-negative number")
        return value
