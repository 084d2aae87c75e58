import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from fintrack_sync.config import GUARD_TIMEOUT_SECONDS, SAFETY_BUFFER_MS, SyncSettings
from fintrack_sync.data.kv_store import KVStore, SyncState
from fintrack_sync.data.local_store import LocalStore
from fintrack_sync.errors import StorageError
from fintrack_sync.models.base import now_ms
from fintrack_sync.models.registry import SYNC_PLAN
from fintrack_sync.services.reconciler import CollectionSyncResult, Reconciler
from fintrack_sync.services.remote_transport import HttpRemoteTransport, RemoteTransport

logger = logging.getLogger("SyncManager")

STATUS_SUCCESS = "success"
STATUS_OFFLINE = "offline"
STATUS_ERROR = "error"
STATUS_BUSY = "busy"
STATUS_NO_SESSION = "no_session"


@dataclass
class SyncReport:
    status: str = STATUS_SUCCESS
    pushed: int = 0
    pulled: int = 0
    errors: List[str] = field(default_factory=list)
    results: List[CollectionSyncResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == STATUS_SUCCESS

    def as_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "pushed": self.pushed,
            "pulled": self.pulled,
            "errors": list(self.errors),
        }


class SingleFlightGuard:
    """
    Flag "sync em andamento" protegida por mutex. acquire() nunca bloqueia.

    Se o dono ficar preso além de `stale_after` segundos o guard é retomado;
    o token de geração impede que o dono antigo libere o guard do novo.
    """

    def __init__(self, stale_after: Optional[float] = GUARD_TIMEOUT_SECONDS, monotonic: Callable[[], float] = time.monotonic):
        self.stale_after = stale_after
        self._monotonic = monotonic
        self._lock = threading.Lock()
        self._holder: Optional[int] = None
        self._acquired_at = 0.0
        self._generation = 0

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._holder is not None

    def acquire(self) -> Optional[int]:
        with self._lock:
            now = self._monotonic()
            if self._holder is not None:
                held_for = now - self._acquired_at
                if self.stale_after is None or held_for < self.stale_after:
                    return None
                logger.warning(f"Sync anterior preso há {held_for:.0f}s; liberando o guard")
            self._generation += 1
            self._holder = self._generation
            self._acquired_at = now
            return self._holder

    def release(self, token: int) -> None:
        with self._lock:
            if self._holder == token:
                self._holder = None


class SyncManager:
    """
    Orquestrador: roda o Reconciler em todas as coleções, na ordem fixa,
    e mantém os watermarks de cada uma.

    Watermarks por coleção: o `last_sync` de uma coleção só avança quando o
    ciclo dela termina sem erros. Uma coleção que falhou repete a mesma janela
    no próximo ciclo, sem atrasar as outras.
    """

    def __init__(
        self,
        store: LocalStore,
        transport: RemoteTransport,
        state: SyncState,
        clock: Callable[[], int] = now_ms,
        safety_buffer_ms: int = SAFETY_BUFFER_MS,
        guard: Optional[SingleFlightGuard] = None,
        plan: Sequence[Tuple[str, str]] = SYNC_PLAN,
    ):
        self.store = store
        self.transport = transport
        self.state = state
        self.clock = clock
        self.plan = tuple(plan)
        self.guard = guard or SingleFlightGuard()
        self.reconciler = Reconciler(store, transport, clock=clock, safety_buffer_ms=safety_buffer_ms)

    @classmethod
    def from_settings(
        cls,
        settings: SyncSettings,
        clock: Callable[[], int] = now_ms,
        user_provider: Optional[Callable[[], Optional[str]]] = None,
    ) -> "SyncManager":
        store = LocalStore(settings.db_path, clock=clock, user_provider=user_provider)
        transport = HttpRemoteTransport(
            base_url=settings.api_base_url,
            token=settings.api_token,
            timeout=settings.timeout_seconds,
        )
        state = SyncState(KVStore(settings.db_path))
        return cls(
            store,
            transport,
            state,
            clock=clock,
            safety_buffer_ms=settings.safety_buffer_ms,
            guard=SingleFlightGuard(settings.guard_timeout_seconds),
        )

    @property
    def is_syncing(self) -> bool:
        return self.guard.busy

    @property
    def last_synced_at(self) -> int:
        """Fim da última passada 100% bem sucedida (0 = nunca)."""
        return self.state.last_global_sync

    def pending_changes(self) -> int:
        return self.store.count_unsynced()

    def sync_all(self, user_id: Optional[str]) -> SyncReport:
        if not user_id:
            logger.info("Sem sessão autenticada; sync ignorado")
            return SyncReport(status=STATUS_NO_SESSION)

        token = self.guard.acquire()
        if token is None:
            logger.info("Sync já em andamento; chamada ignorada")
            return SyncReport(status=STATUS_BUSY)

        try:
            return self._run_pass(user_id)
        finally:
            self.guard.release(token)

    def _run_pass(self, user_id: str) -> SyncReport:
        report = SyncReport()
        other_errors = 0

        for collection, remote_table in self.plan:
            try:
                last_sync = self.state.get_last_sync(collection)
                result = self.reconciler.sync_collection(collection, remote_table, user_id, last_sync)
            except Exception as e:
                logger.exception(f"Sync Error ({collection}): {e}")
                report.errors.append(f"{collection}: {e}")
                other_errors += 1
                continue

            report.results.append(result)
            report.pushed += result.pushed
            report.pulled += result.pulled

            if not result.ok:
                report.errors.extend(f"{collection}: {error}" for error in result.errors)
                continue

            try:
                self.state.set_last_sync(collection, result.started_at)
            except StorageError as e:
                logger.error(f"Falha ao gravar watermark de {collection}: {e}")
                report.errors.append(f"{collection}: {e}")
                other_errors += 1

        if not report.errors:
            try:
                self.state.set_last_global_sync(self.clock())
            except StorageError as e:
                logger.error(f"Falha ao gravar last_global_sync: {e}")
                report.errors.append(str(e))
                other_errors += 1

        failed = [result for result in report.results if not result.ok]
        if not report.errors:
            report.status = STATUS_SUCCESS
        elif failed and not other_errors and all(result.offline for result in failed):
            report.status = STATUS_OFFLINE
        else:
            report.status = STATUS_ERROR

        logger.info(
            f"Sync {report.status}: ▲{report.pushed} ▼{report.pulled}"
            + (f" ({len(report.errors)} erros)" if report.errors else "")
        )
        return report

    def close(self) -> None:
        close = getattr(self.transport, "close", None)
        if callable(close):
            close()
        self.store.close()
