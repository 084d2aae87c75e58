from typing import Any, Dict, Optional
from sqlalchemy import JSON, String
from sqlmodel import Field
from .base import SyncModel
from .enums import Currency, TransactionType


class Transaction(SyncModel, table=True):
    __tablename__ = "local_transactions"

    date: str = Field(index=True)  # Data ISO (YYYY-MM-DD)
    amount: float
    category: str = Field(index=True)
    description: str = Field(default="")

    # sa_type=String: o banco guarda texto simples, o Pydantic valida o Enum
    type: TransactionType = Field(default=TransactionType.EXPENSE, sa_type=String)
    currency: Currency = Field(default=Currency.USD, sa_type=String)

    exchange_rate: float = Field(default=1.0)
    usd_amount: float = Field(default=0.0)

    # Itens relacionados (parcelas), nome do cartão, período de fatura...
    details: Optional[Dict[str, Any]] = Field(default=None, sa_type=JSON)
