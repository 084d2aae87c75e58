from typing import Optional
from sqlalchemy import String
from sqlmodel import Field
from .base import SyncModel
from .enums import Currency


class RecurringItem(SyncModel, table=True):
    __tablename__ = "local_recurring"

    name: str = Field(index=True)
    # Se for variável, é a média estimada
    amount: float
    is_variable: bool = Field(default=False)
    category: str
    day_of_month: int = Field(default=1, ge=1, le=31)
    currency: Optional[Currency] = Field(default=None, sa_type=String)
    last_paid_date: Optional[str] = Field(default=None)
