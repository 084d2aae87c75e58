from sqlmodel import Field
from .base import SyncModel


class BudgetCategory(SyncModel, table=True):
    __tablename__ = "local_budgets"

    category: str = Field(index=True)
    limit: float = Field(default=0.0)
