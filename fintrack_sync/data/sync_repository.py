import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Generic, Iterator, List, Optional, Type, TypeVar, Union

from pydantic import ValidationError
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, func, select

from fintrack_sync.errors import NotFoundError, StorageError
from fintrack_sync.models.base import SyncModel, now_ms

T = TypeVar("T", bound=SyncModel)


class SyncRepository(Generic[T]):
    """
    Repositório de uma coleção sincronizável.
    Implementa Dirty Checking (is_synced), Upsert Seguro e Soft Delete.

    Os carimbos de tempo são feitos aqui, em Python, e não por trigger:
    registros vindos do servidor precisam manter o updated_at original.
    """

    def __init__(
        self,
        collection: str,
        model_type: Type[T],
        engine: Engine,
        lock: threading.RLock,
        clock: Callable[[], int] = now_ms,
    ):
        self.collection = collection
        self.model_type = model_type
        self.table_name = model_type.__tablename__
        self.engine = engine
        self.clock = clock
        self._lock = lock

        # Garante que a tabela exista
        try:
            SQLModel.metadata.create_all(self.engine, tables=[model_type.__table__])
        except SQLAlchemyError as exc:
            raise StorageError(f"{self.collection}: banco local indisponível ({exc})") from exc

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with Session(self.engine, expire_on_commit=False) as session:
                yield session
        except SQLAlchemyError as exc:
            raise StorageError(f"{self.collection}: {exc}") from exc

    def _to_dict(self, entity: Union[T, Dict[str, Any]]) -> Dict[str, Any]:
        if isinstance(entity, SQLModel):
            return entity.model_dump()
        return dict(entity)

    def _validate(self, data: Dict[str, Any]) -> T:
        try:
            return self.model_type.model_validate(data)
        except ValidationError as exc:
            raise StorageError(f"{self.collection}: registro inválido ({exc})") from exc

    def _next_timestamp(self, current: Optional[T]) -> int:
        """'Agora', mas nunca antes da versão que já está gravada."""
        now = self.clock()
        if current is not None and now <= current.updated_at:
            return current.updated_at + 1
        return now

    @staticmethod
    def fingerprint(entity: SyncModel) -> Dict[str, Any]:
        """Valores comparáveis do registro, exceto a flag local is_synced."""
        return entity.model_dump(mode="json", exclude={"is_synced"})

    # --- LEITURA ---

    def get_all(self, include_deleted: bool = False) -> List[T]:
        """Full scan. Tombstones só aparecem com include_deleted=True."""
        with self._session() as session:
            statement = select(self.model_type)
            if not include_deleted:
                statement = statement.where(self.model_type.is_deleted == False)  # noqa: E712
            return list(session.exec(statement).all())

    def get_by_id(self, entity_id: str) -> Optional[T]:
        with self._session() as session:
            return session.get(self.model_type, entity_id)

    def count_unsynced(self) -> int:
        with self._session() as session:
            statement = (
                select(func.count())
                .select_from(self.model_type)
                .where(self.model_type.is_synced == False)  # noqa: E712
            )
            return session.exec(statement).one()

    # --- ESCRITAS DA APLICAÇÃO (sempre is_synced=False + updated_at=agora) ---

    def insert(self, entity: Union[T, Dict[str, Any]], user_id: Optional[str] = None) -> T:
        data = self._to_dict(entity)
        if not data.get("id"):
            data.pop("id", None)
        if user_id is not None:
            data["user_id"] = user_id

        with self._lock, self._session() as session:
            now = self.clock()
            data.update(created_at=now, updated_at=now, is_synced=False, is_deleted=False)
            record = self._validate(data)
            if session.get(self.model_type, record.id) is not None:
                raise StorageError(f"{self.collection}: id '{record.id}' já existe")
            session.add(record)
            session.commit()
            return record

    def update(self, entity: Union[T, Dict[str, Any]]) -> T:
        """Upsert pelo id. Usado para edições feitas pelo usuário."""
        data = self._to_dict(entity)
        if not data.get("id"):
            raise StorageError(f"{self.collection}: update exige um id")

        with self._lock, self._session() as session:
            current = session.get(self.model_type, data["id"])
            data.update(updated_at=self._next_timestamp(current), is_synced=False)
            record = self._validate(data)
            # merge: se o ID existir atualiza (UPDATE), senão cria (INSERT)
            merged = session.merge(record)
            session.commit()
            return merged

    def soft_delete(self, entity_id: str) -> T:
        """Marca o registro como deletado. Nunca remove a linha."""
        with self._lock, self._session() as session:
            current = session.get(self.model_type, entity_id)
            if current is None:
                raise NotFoundError(self.collection, entity_id)

            current.updated_at = self._next_timestamp(current)
            current.is_deleted = True
            current.is_synced = False
            session.add(current)
            session.commit()
            return current

    # --- ESCRITAS DO SYNC (preservam o updated_at recebido) ---

    def apply_remote_record(self, entity: Union[T, Dict[str, Any]], newer_only: bool = False) -> Optional[T]:
        """
        Grava um registro vindo do servidor sem tocar no updated_at.
        Com newer_only=True a regra Last-Write-Wins é checada dentro da
        transação: se a linha local já for igual ou mais nova, nada é gravado
        e o retorno é None.
        """
        data = self._to_dict(entity)
        data["is_synced"] = True
        record = self._validate(data)

        with self._lock, self._session() as session:
            current = session.get(self.model_type, record.id)
            if newer_only and current is not None and record.updated_at <= current.updated_at:
                return None
            merged = session.merge(record)
            session.commit()
            return merged

    def mark_synced(self, snapshot: T) -> bool:
        """
        Marca como sincronizado apenas se a linha gravada ainda for
        exatamente o snapshot enviado. Uma edição feita durante a chamada de
        rede mantém is_synced=False e será reenviada no próximo ciclo.
        """
        with self._lock, self._session() as session:
            current = session.get(self.model_type, snapshot.id)
            if current is None or self.fingerprint(current) != self.fingerprint(snapshot):
                return False
            if not current.is_synced:
                current.is_synced = True
                session.add(current)
                session.commit()
            return True
