from typing import Optional
from sqlalchemy import String
from sqlmodel import Field
from .base import SyncModel
from .enums import TransactionType


class Category(SyncModel, table=True):
    __tablename__ = "local_categories"

    name: str = Field(index=True)
    icon: str = Field(default="DollarSign")  # Nome do ícone Lucide
    color: str = Field(default="#808080")
    budget: Optional[float] = Field(default=None)  # Orçamento mensal opcional
    type: TransactionType = Field(default=TransactionType.EXPENSE, sa_type=String)
