import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Carrega as variáveis do arquivo .env (se existir)
load_dotenv()

API_BASE_URL = "http://localhost:8000"
DATABASE_NAME = "fintrack.db"
TIMEOUT_SECONDS = 10.0

# Intervalo do gatilho periódico enquanto houver sessão ativa
SYNC_INTERVAL_SECONDS = 30.0

# Janela extra no pull para compensar relógios dessincronizados entre aparelhos
SAFETY_BUFFER_MS = 5 * 60 * 1000

# Um sync que passe disso é considerado travado e o guard é liberado
GUARD_TIMEOUT_SECONDS = 300.0


@dataclass(frozen=True)
class SyncSettings:
    api_base_url: str = API_BASE_URL
    api_token: Optional[str] = None
    db_path: str = DATABASE_NAME
    timeout_seconds: float = TIMEOUT_SECONDS
    sync_interval_seconds: float = SYNC_INTERVAL_SECONDS
    safety_buffer_ms: int = SAFETY_BUFFER_MS
    guard_timeout_seconds: float = GUARD_TIMEOUT_SECONDS

    @classmethod
    def from_env(cls) -> "SyncSettings":
        return cls(
            api_base_url=os.getenv("FINTRACK_API_URL", API_BASE_URL),
            api_token=os.getenv("FINTRACK_API_TOKEN") or None,
            db_path=os.getenv("FINTRACK_DB_PATH", DATABASE_NAME),
            timeout_seconds=float(os.getenv("FINTRACK_HTTP_TIMEOUT", TIMEOUT_SECONDS)),
            sync_interval_seconds=float(os.getenv("FINTRACK_SYNC_INTERVAL", SYNC_INTERVAL_SECONDS)),
            safety_buffer_ms=int(os.getenv("FINTRACK_SAFETY_BUFFER_MS", SAFETY_BUFFER_MS)),
            guard_timeout_seconds=float(os.getenv("FINTRACK_GUARD_TIMEOUT", GUARD_TIMEOUT_SECONDS)),
        )
