import time
import uuid
from typing import Optional
from pydantic import ConfigDict
from sqlalchemy import BigInteger
from sqlmodel import Field, SQLModel


# Relógio lógico: milissegundos de parede no aparelho de origem
def now_ms() -> int:
    return int(time.time() * 1000)


def new_id() -> str:
    return str(uuid.uuid4())


class SyncModel(SQLModel):
    """
    Classe Base para todas as entidades sincronizáveis.
    Implementa UUID, Soft Delete e os metadados usados no Last-Write-Wins.
    """
    # Enums viram o valor (str) na validação, igual ao texto salvo no banco
    model_config = ConfigDict(use_enum_values=True)

    # Identificador UUID v4 (NUNCA usar Autoincrement). Imutável após criação.
    id: str = Field(default_factory=new_id, primary_key=True)

    # Dono do registro (partição remota), não participa do merge
    user_id: Optional[str] = Field(default=None, index=True)

    # Metadados de Auditoria (ms). Só updated_at é usado para resolver conflitos.
    created_at: int = Field(default_factory=now_ms, sa_type=BigInteger)
    updated_at: int = Field(default_factory=now_ms, sa_type=BigInteger, index=True)

    # Flag apenas local: True se a cópia local == última versão enviada/recebida
    is_synced: bool = Field(default=False)

    # Tombstone para Soft Delete. O registro nunca é apagado fisicamente.
    is_deleted: bool = Field(default=False)
