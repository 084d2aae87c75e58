import os
from typing import Optional
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import create_engine

from fintrack_sync.config import DATABASE_NAME


def get_db_path(db_path: Optional[str] = None) -> str:
    """
    Define o caminho do banco local.
    Prioridade: argumento explícito > FINTRACK_DB_PATH > arquivo no diretório atual.
    """
    if db_path:
        return db_path
    return os.getenv("FINTRACK_DB_PATH", DATABASE_NAME)


def _apply_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    # --- CRÍTICO: leitores nunca bloqueiam o escritor (sync roda em thread) ---
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA synchronous=NORMAL;")
    cursor.execute("PRAGMA temp_store=MEMORY;")
    cursor.close()


def create_db_engine(db_path: Optional[str] = None) -> Engine:
    """
    Cria o Engine SQLite compartilhado por todos os repositórios.
    check_same_thread=False: o sync roda numa thread separada da aplicação.
    """
    path = get_db_path(db_path)
    engine = create_engine(
        f"sqlite:///{path}",
        connect_args={"check_same_thread": False, "timeout": 10.0},
    )
    event.listen(engine, "connect", _apply_pragmas)
    return engine
