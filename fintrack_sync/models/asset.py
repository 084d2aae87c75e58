from typing import Optional
from sqlalchemy import String
from sqlmodel import Field
from .base import SyncModel
from .enums import AssetType, Currency


class Asset(SyncModel, table=True):
    __tablename__ = "local_assets"

    name: str = Field(index=True)
    value: float
    type: AssetType = Field(default=AssetType.SAVINGS, sa_type=String)
    currency: Optional[Currency] = Field(default=None, sa_type=String)
