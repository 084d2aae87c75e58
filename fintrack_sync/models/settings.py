from typing import Dict, Optional
from sqlalchemy import JSON, BigInteger, String
from sqlmodel import Field
from .base import SyncModel
from .enums import Currency, Language

# Configurações são um singleton: sempre o mesmo id
SETTINGS_ID = "settings_default"


def default_exchange_rates() -> Dict[str, float]:
    # Cotação relativa ao USD
    return {"USD": 1.0, "EUR": 0.92, "ARS": 1000.0}


class AppSettings(SyncModel, table=True):
    __tablename__ = "local_settings"

    id: str = Field(default=SETTINGS_ID, primary_key=True)
    language: Language = Field(default=Language.EN, sa_type=String)
    main_currency: Currency = Field(default=Currency.USD, sa_type=String)
    exchange_rates: Dict[str, float] = Field(default_factory=default_exchange_rates, sa_type=JSON)
    last_rates_update: Optional[int] = Field(default=None, sa_type=BigInteger)
