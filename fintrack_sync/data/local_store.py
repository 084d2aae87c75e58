import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Type, Union

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from fintrack_sync.data.db_context import create_db_engine
from fintrack_sync.data.sync_repository import SyncRepository
from fintrack_sync.errors import StorageError
from fintrack_sync.models.asset import Asset
from fintrack_sync.models.base import SyncModel, now_ms
from fintrack_sync.models.budget import BudgetCategory
from fintrack_sync.models.category import Category
from fintrack_sync.models.credit_card import CreditCardPurchase
from fintrack_sync.models.recurring import RecurringItem
from fintrack_sync.models.registry import COLLECTION_MODELS
from fintrack_sync.models.settings import SETTINGS_ID, AppSettings
from fintrack_sync.models.transaction import Transaction

logger = logging.getLogger("LocalStore")

Entity = Union[SyncModel, Dict[str, Any]]
ChangeListener = Callable[[str, SyncModel], None]


@dataclass
class FinancialState:
    """Fotografia de tudo que a aplicação exibe (sem tombstones)."""
    transactions: List[Transaction] = field(default_factory=list)
    credit_cards: List[CreditCardPurchase] = field(default_factory=list)
    recurring: List[RecurringItem] = field(default_factory=list)
    assets: List[Asset] = field(default_factory=list)
    budgets: List[BudgetCategory] = field(default_factory=list)
    categories: List[Category] = field(default_factory=list)
    settings: AppSettings = field(default_factory=AppSettings)


class LocalStore:
    """
    Réplica local persistente: uma tabela SQLite por coleção, chaveada por id.

    É o único dono da representação em disco. O Reconciler apenas lê
    fotografias completas e grava registro a registro pelas primitivas daqui.
    """

    def __init__(
        self,
        db_path: Optional[str] = None,
        clock: Callable[[], int] = now_ms,
        engine: Optional[Engine] = None,
        collections: Mapping[str, Type[SyncModel]] = COLLECTION_MODELS,
        user_provider: Optional[Callable[[], Optional[str]]] = None,
    ):
        self.clock = clock
        # Sessão ativa: dono carimbado nos registros criados sem user_id
        self.user_provider = user_provider
        try:
            self.engine = engine or create_db_engine(db_path)
        except SQLAlchemyError as exc:
            raise StorageError(f"Banco local indisponível: {exc}") from exc

        # Um único lock para todas as escritas read-modify-write
        self._lock = threading.RLock()
        self._listeners: List[ChangeListener] = []
        self.repositories: Dict[str, SyncRepository] = {
            name: SyncRepository(name, model, self.engine, self._lock, clock)
            for name, model in collections.items()
        }

    def repository(self, collection: str) -> SyncRepository:
        try:
            return self.repositories[collection]
        except KeyError:
            raise StorageError(f"Coleção '{collection}' desconhecida.") from None

    def model_type(self, collection: str) -> Type[SyncModel]:
        return self.repository(collection).model_type

    # --- Listeners (gatilho opcional de sync após mutação local) ---

    def add_listener(self, callback: ChangeListener) -> None:
        self._listeners.append(callback)

    def remove_listener(self, callback: ChangeListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self, collection: str, record: SyncModel) -> None:
        for callback in list(self._listeners):
            try:
                callback(collection, record)
            except Exception:
                # A escrita já foi confirmada
                logger.exception(f"Listener falhou após escrita em {collection}")

    # --- Contrato do Local Store ---

    def get_all(self, collection: str, include_deleted: bool = False) -> List[SyncModel]:
        return self.repository(collection).get_all(include_deleted=include_deleted)

    def get_by_id(self, collection: str, entity_id: str) -> Optional[SyncModel]:
        return self.repository(collection).get_by_id(entity_id)

    def insert(self, collection: str, entity: Entity, user_id: Optional[str] = None) -> SyncModel:
        if user_id is None and self.user_provider is not None:
            user_id = self.user_provider()
        record = self.repository(collection).insert(entity, user_id=user_id)
        self._notify(collection, record)
        return record

    def update(self, collection: str, entity: Entity) -> SyncModel:
        record = self.repository(collection).update(entity)
        self._notify(collection, record)
        return record

    def soft_delete(self, collection: str, entity_id: str) -> SyncModel:
        record = self.repository(collection).soft_delete(entity_id)
        self._notify(collection, record)
        return record

    def apply_remote_record(self, collection: str, entity: Entity, newer_only: bool = False) -> Optional[SyncModel]:
        return self.repository(collection).apply_remote_record(entity, newer_only=newer_only)

    def mark_synced(self, collection: str, snapshot: SyncModel) -> bool:
        return self.repository(collection).mark_synced(snapshot)

    def count_unsynced(self, collection: Optional[str] = None) -> int:
        """Pendências de envio de uma coleção (ou de todas)."""
        if collection is not None:
            return self.repository(collection).count_unsynced()
        return sum(repo.count_unsynced() for repo in self.repositories.values())

    # --- Operações especiais ---

    def get_settings(self) -> AppSettings:
        """Configurações gravadas ou, no primeiro uso, os valores padrão (não gravados)."""
        stored = self.get_by_id("settings", SETTINGS_ID)
        if stored is None or stored.is_deleted:
            return AppSettings()
        return stored

    def save_settings(self, settings: Entity) -> AppSettings:
        # Sempre o mesmo ID para as configurações
        data = settings.model_dump() if isinstance(settings, SyncModel) else dict(settings)
        data["id"] = SETTINGS_ID
        return self.update("settings", data)

    def load_full_state(self) -> FinancialState:
        return FinancialState(
            transactions=self.get_all("transactions"),
            credit_cards=self.get_all("credit_cards"),
            recurring=self.get_all("recurring"),
            assets=self.get_all("assets"),
            budgets=self.get_all("budgets"),
            categories=self.get_all("categories"),
            settings=self.get_settings(),
        )

    def close(self) -> None:
        self.engine.dispose()
