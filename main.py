import logging
import os
import signal
import threading

from fintrack_sync.config import SyncSettings
from fintrack_sync.services.scheduler import SyncScheduler
from fintrack_sync.services.sync_manager import SyncManager, SyncReport

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("FinTrack")


def current_user_id():
    """
    Sessão autenticada. A tela de login é outra camada; aqui o id chega
    pelo ambiente (FINTRACK_USER_ID). Sem sessão o motor fica inerte.
    """
    return os.getenv("FINTRACK_USER_ID") or None


def show_report(report: SyncReport):
    if report.status == "success":
        logger.info(f"Sync OK! ▲{report.pushed} ▼{report.pulled}")
    elif report.status == "offline":
        logger.info("Offline. Operando localmente.")
    elif report.status == "error":
        logger.warning(f"Erro: {report.errors[0] if report.errors else '?'}")


def main():
    settings = SyncSettings.from_env()
    sync_service = SyncManager.from_settings(settings, user_provider=current_user_id)

    scheduler = SyncScheduler(
        sync_service,
        session_provider=current_user_id,
        interval=settings.sync_interval_seconds,
        on_report=show_report,
    )
    # Qualquer escrita local dispara um sync imediato
    sync_service.store.add_listener(scheduler.on_local_change)

    stopped = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stopped.set())
    signal.signal(signal.SIGTERM, lambda *_: stopped.set())

    scheduler.start()
    try:
        stopped.wait()
    finally:
        scheduler.stop(timeout=settings.timeout_seconds)
        sync_service.close()


if __name__ == "__main__":
    main()
