import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List

from fintrack_sync.config import SAFETY_BUFFER_MS
from fintrack_sync.data.local_store import LocalStore
from fintrack_sync.errors import DecodeError, RemoteError, StorageError
from fintrack_sync.models.base import SyncModel, now_ms
from fintrack_sync.services.codec import decode_row, encode_row
from fintrack_sync.services.remote_transport import RemoteTransport

logger = logging.getLogger("Reconciler")


@dataclass(frozen=True)
class ConflictSkip:
    """Linha remota ignorada porque a cópia local é igual ou mais nova."""
    id: str
    local_updated_at: int
    remote_updated_at: int


@dataclass
class CollectionSyncResult:
    collection: str
    started_at: int = 0
    pushed: int = 0
    pulled: int = 0
    skipped: List[ConflictSkip] = field(default_factory=list)
    rejected: List[str] = field(default_factory=list)  # ids com DecodeError
    requeued: List[str] = field(default_factory=list)  # editados durante o push
    errors: List[str] = field(default_factory=list)
    offline: bool = False

    @property
    def ok(self) -> bool:
        return not self.errors


def query_watermark(last_sync: int, safety_buffer_ms: int = SAFETY_BUFFER_MS) -> int:
    """
    Limite inferior do pull. O buffer compensa relógios atrasados: um registro
    enviado por um aparelho "no passado" ainda cai dentro da janela.
    """
    return max(0, last_sync - safety_buffer_ms)


class Reconciler:
    """
    Sync de UMA coleção: sempre PUSH antes do PULL.

    Push: envia tudo com is_synced=False e marca como sincronizado apenas o
    snapshot exato que foi enviado.
    Pull: busca as linhas remotas alteradas desde o watermark e aplica
    Last-Write-Wins (empate favorece a cópia local).
    """

    def __init__(
        self,
        store: LocalStore,
        transport: RemoteTransport,
        clock: Callable[[], int] = now_ms,
        safety_buffer_ms: int = SAFETY_BUFFER_MS,
    ):
        self.store = store
        self.transport = transport
        self.clock = clock
        self.safety_buffer_ms = safety_buffer_ms

    def sync_collection(
        self,
        collection: str,
        remote_table: str,
        user_id: str,
        last_sync: int = 0,
    ) -> CollectionSyncResult:
        result = CollectionSyncResult(collection=collection, started_at=self.clock())

        # 1. Fotografia completa, incluindo tombstones
        try:
            all_local = self.store.get_all(collection, include_deleted=True)
        except StorageError as exc:
            logger.error(f"[{collection}] Falha ao ler a réplica local: {exc}")
            result.errors.append(str(exc))
            return result

        # 2-5. PUSH. Uma falha aqui não impede o pull.
        unsynced = [record for record in all_local if not record.is_synced]
        if unsynced:
            self._push(collection, remote_table, user_id, unsynced, result)

        # 6-9. PULL
        self._pull(collection, remote_table, user_id, last_sync, result)
        return result

    # --- PUSH ---

    def _push(
        self,
        collection: str,
        remote_table: str,
        user_id: str,
        unsynced: List[SyncModel],
        result: CollectionSyncResult,
    ) -> None:
        logger.info(f"[{collection}] Enviando {len(unsynced)} registros para {remote_table}")
        rows = [encode_row(record, user_id) for record in unsynced]
        try:
            self.transport.upsert(remote_table, rows)
        except RemoteError as exc:
            # Tudo continua is_synced=False
            logger.warning(f"[{collection}] Push falhou: {exc}")
            result.errors.append(f"push: {exc}")
            result.offline = result.offline or exc.offline
            return

        for record in unsynced:
            try:
                marked = self.store.mark_synced(collection, record)
            except StorageError as exc:
                logger.error(f"[{collection}] Falha ao marcar '{record.id}' como sincronizado: {exc}")
                result.errors.append(str(exc))
                continue
            if marked:
                result.pushed += 1
            else:
                logger.info(f"[{collection}] '{record.id}' mudou durante o push; fica pendente")
                result.requeued.append(record.id)

    # --- PULL ---

    def _pull(
        self,
        collection: str,
        remote_table: str,
        user_id: str,
        last_sync: int,
        result: CollectionSyncResult,
    ) -> None:
        since = query_watermark(last_sync, self.safety_buffer_ms)
        logger.info(f"[{collection}] Buscando {remote_table} com updated_at > {since}")

        try:
            remote_rows = self.transport.query_updated_since(remote_table, user_id, since)
        except RemoteError as exc:
            logger.warning(f"[{collection}] Pull falhou: {exc}")
            result.errors.append(f"pull: {exc}")
            result.offline = result.offline or exc.offline
            return

        if not remote_rows:
            return
        logger.info(f"[{collection}] Recebidos {len(remote_rows)} registros de {remote_table}")

        model_type = self.store.model_type(collection)
        try:
            # Releitura depois do push: pega edições feitas durante a rede
            local_by_id: Dict[str, SyncModel] = {
                record.id: record for record in self.store.get_all(collection, include_deleted=True)
            }
        except StorageError as exc:
            logger.error(f"[{collection}] Falha ao ler a réplica local: {exc}")
            result.errors.append(str(exc))
            return

        for row in remote_rows:
            try:
                remote = decode_row(model_type, row)
            except DecodeError as exc:
                logger.error(f"[{collection}] Linha remota rejeitada: {exc}")
                result.rejected.append(exc.row_id or "?")
                continue

            local = local_by_id.get(remote.id)
            if local is not None and remote.updated_at <= local.updated_at:
                self._skip(collection, result, remote, local.updated_at)
                continue

            try:
                applied = self.store.apply_remote_record(collection, remote, newer_only=True)
            except StorageError as exc:
                logger.error(f"[{collection}] Falha ao gravar '{remote.id}': {exc}")
                result.errors.append(str(exc))
                continue

            if applied is None:
                # Editado localmente entre a leitura e a escrita
                self._skip(collection, result, remote, local.updated_at if local else remote.updated_at)
                continue

            if local is None:
                logger.debug(f"[{collection}] Novo registro remoto {remote.id} (deleted={remote.is_deleted})")
            else:
                logger.debug(
                    f"[{collection}] Atualizando {remote.id} "
                    f"(remoto {remote.updated_at} > local {local.updated_at}, deleted={remote.is_deleted})"
                )
            result.pulled += 1

    def _skip(
        self,
        collection: str,
        result: CollectionSyncResult,
        remote: SyncModel,
        local_updated_at: int,
    ) -> None:
        skip = ConflictSkip(remote.id, local_updated_at, remote.updated_at)
        result.skipped.append(skip)
        logger.debug(
            f"[{collection}] Ignorando {remote.id}: local é igual ou mais novo "
            f"(remoto {remote.updated_at}, local {local_updated_at})"
        )
