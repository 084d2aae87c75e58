import logging
import threading
from typing import Callable, Optional

from fintrack_sync.config import SYNC_INTERVAL_SECONDS
from fintrack_sync.models.base import SyncModel
from fintrack_sync.services.sync_manager import SyncManager, SyncReport

logger = logging.getLogger("SyncScheduler")

# Colaborador de autenticação: devolve o user_id da sessão ativa ou None
SessionProvider = Callable[[], Optional[str]]


class SyncScheduler:
    """
    Gatilhos do sync: na inicialização (se houver sessão), a cada
    `interval` segundos, e sob demanda via request_sync() ("Sincronizar
    agora" ou logo após uma mutação local).

    Todos passam pelo mesmo SyncManager.sync_all, ou seja, pelo mesmo
    single-flight guard.
    """

    def __init__(
        self,
        manager: SyncManager,
        session_provider: SessionProvider,
        interval: float = SYNC_INTERVAL_SECONDS,
        on_report: Optional[Callable[[SyncReport], None]] = None,
    ):
        self.manager = manager
        self.session_provider = session_provider
        self.interval = interval
        self.on_report = on_report

        self._wake = threading.Event()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> Optional[SyncReport]:
        user_id = self.session_provider()
        if not user_id:
            return None

        report = self.manager.sync_all(user_id)
        if self.on_report is not None:
            self.on_report(report)
        return report

    def _loop(self):
        while not self._stop.is_set():
            self._wake.clear()
            try:
                self.run_once()
            except Exception as e:
                # A thread periódica não pode morrer por causa de um ciclo
                logger.exception(f"Ciclo de sync falhou: {e}")

            self._wake.wait(self.interval)

    def start(self) -> None:
        if self.running:
            if self._stop.is_set():
                logger.warning("Sync periódico ainda parando; start ignorado")
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="sync-scheduler", daemon=True)
        self._thread.start()
        logger.info(f"Sync periódico iniciado (a cada {self.interval:.0f}s)")

    def request_sync(self) -> None:
        """Acorda o laço imediatamente."""
        self._wake.set()

    def on_local_change(self, collection: str, record: SyncModel) -> None:
        """Listener para LocalStore.add_listener: sync ansioso após mutação."""
        logger.debug(f"Mutação local em {collection}/{record.id}; agendando sync")
        self.request_sync()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        self._wake.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                # Ciclo ainda em andamento; a thread sai sozinha ao terminar
                logger.warning("Sync periódico ainda finalizando o ciclo atual")
                return
            self._thread = None
