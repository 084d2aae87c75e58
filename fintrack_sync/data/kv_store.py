import sqlite3
from typing import Optional

from fintrack_sync.data.db_context import get_db_path
from fintrack_sync.errors import StorageError

LAST_GLOBAL_SYNC_KEY = "last_global_sync"


def last_sync_key(collection: str) -> str:
    return f"last_sync:{collection}"


class KVStore:
    """Gerencia persistência de metadados simples (Chave-Valor)"""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = get_db_path(db_path)
        self._init_table()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, timeout=10.0)

    def _init_table(self):
        try:
            with self._connect() as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS sys_meta (
                        key TEXT PRIMARY KEY,
                        value TEXT
                    )
                """)
        except sqlite3.Error as exc:
            raise StorageError(f"sys_meta indisponível: {exc}") from exc

    def get(self, key: str) -> Optional[str]:
        try:
            with self._connect() as conn:
                row = conn.execute("SELECT value FROM sys_meta WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Falha ao ler '{key}': {exc}") from exc
        return row[0] if row else None

    def set(self, key: str, value: str):
        try:
            with self._connect() as conn:
                conn.execute(
                    "INSERT OR REPLACE INTO sys_meta (key, value) VALUES (?, ?)",
                    (key, value),
                )
        except sqlite3.Error as exc:
            raise StorageError(f"Falha ao gravar '{key}': {exc}") from exc


class SyncState:
    """
    Watermarks duráveis do sync, injetados no SyncManager.

    Cada coleção tem o seu próprio `last_sync` (ms). O `last_global_sync`
    marca o fim da última passada em que TODAS as coleções tiveram sucesso.
    Valor 0 significa "nunca sincronizou" (baixa tudo).
    """

    def __init__(self, kv_store: KVStore):
        self.kv_store = kv_store

    def _get_int(self, key: str) -> int:
        value = self.kv_store.get(key)
        if value is None:
            return 0
        try:
            return int(value)
        except ValueError:
            # Valor corrompido: recomeça do zero (pull completo)
            return 0

    def get_last_sync(self, collection: str) -> int:
        return self._get_int(last_sync_key(collection))

    def set_last_sync(self, collection: str, timestamp: int) -> None:
        self.kv_store.set(last_sync_key(collection), str(int(timestamp)))

    @property
    def last_global_sync(self) -> int:
        return self._get_int(LAST_GLOBAL_SYNC_KEY)

    def set_last_global_sync(self, timestamp: int) -> None:
        self.kv_store.set(LAST_GLOBAL_SYNC_KEY, str(int(timestamp)))
