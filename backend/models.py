from typing import Any, Dict, List, Type
from sqlalchemy import JSON, BigInteger
from sqlmodel import Field, SQLModel


class RemoteRowBase(SQLModel):
    """
    Linha remota: um registro por linha, particionado por usuário.
    `data` é o registro inteiro do cliente (blob JSON, schema-free).
    """
    id: str = Field(primary_key=True)
    user_id: str = Field(primary_key=True, index=True)
    data: Dict[str, Any] = Field(default_factory=dict, sa_type=JSON)
    # Espelha data.updated_at (ms)
    updated_at: int = Field(default=0, sa_type=BigInteger, index=True)


class TransactionRow(RemoteRowBase, table=True):
    __tablename__ = "transactions"


class CreditCardRow(RemoteRowBase, table=True):
    __tablename__ = "credit_cards"


class RecurringRow(RemoteRowBase, table=True):
    __tablename__ = "recurring"


class AssetRow(RemoteRowBase, table=True):
    __tablename__ = "assets"


class BudgetRow(RemoteRowBase, table=True):
    __tablename__ = "budgets"


class CategoryRow(RemoteRowBase, table=True):
    __tablename__ = "categories"


class SettingsRow(RemoteRowBase, table=True):
    __tablename__ = "settings"


# --- MAPEAMENTO DE ROTAS ---
# Conecta o "nome na URL" à "Classe do Modelo"
REMOTE_TABLES: Dict[str, Type[RemoteRowBase]] = {
    model.__tablename__: model
    for model in (
        TransactionRow,
        CreditCardRow,
        RecurringRow,
        AssetRow,
        BudgetRow,
        CategoryRow,
        SettingsRow,
    )
}


# --- PAYLOADS DA API ---

class RowPayload(SQLModel):
    id: str
    user_id: str
    data: Dict[str, Any]
    updated_at: int


class UpsertRequest(SQLModel):
    rows: List[RowPayload]
