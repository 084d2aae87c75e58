from typing import Optional
from sqlalchemy import String
from sqlmodel import Field
from .base import SyncModel
from .enums import Currency


class CreditCardPurchase(SyncModel, table=True):
    __tablename__ = "local_credit_cards"

    description: str
    total_amount: float
    installments_total: int = Field(default=1)
    installments_paid: int = Field(default=0)
    purchase_date: str
    card_name: str = Field(index=True)
    currency: Optional[Currency] = Field(default=None, sa_type=String)

    @property
    def installment_amount(self) -> float:
        return self.total_amount / max(self.installments_total, 1)

    @property
    def is_paid_off(self) -> bool:
        return self.installments_paid >= self.installments_total
