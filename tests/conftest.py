"""Fixtures compartilhadas: relógio falso, servidor remoto em memória e stores em tmp_path."""

import copy
from collections import defaultdict
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

from fintrack_sync.data.kv_store import KVStore, SyncState
from fintrack_sync.data.local_store import LocalStore
from fintrack_sync.errors import RemoteError
from fintrack_sync.services.reconciler import Reconciler
from fintrack_sync.services.sync_manager import SyncManager

USER_ID = "user-1"


class FakeClock:
    """Relógio em ms controlado pelo teste."""

    def __init__(self, start: int = 1_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int = 1) -> int:
        self.now += ms
        return self.now


class InMemoryRemote:
    """
    Tabelas remotas em memória com a mesma semântica do backend:
    upsert Last-Write-Wins por (user_id, id), empate sobrescreve.
    """

    def __init__(self):
        self.tables: Dict[str, Dict[tuple, Dict[str, Any]]] = defaultdict(dict)
        self.upsert_calls: List[tuple] = []
        self.query_calls: List[tuple] = []
        self.upsert_errors: Dict[str, Exception] = {}
        self.query_errors: Dict[str, Exception] = {}
        self.lose_next_ack = False
        self.before_upsert: Optional[Callable[[str, list], None]] = None
        self.before_query: Optional[Callable[[str], None]] = None

    def _error_for(self, errors: Dict[str, Exception], table: str) -> Optional[Exception]:
        return errors.get(table) or errors.get("*")

    def upsert(self, table: str, rows: List[Dict[str, Any]]) -> None:
        self.upsert_calls.append((table, copy.deepcopy(rows)))
        if self.before_upsert is not None:
            self.before_upsert(table, rows)
        error = self._error_for(self.upsert_errors, table)
        if error is not None:
            raise error

        for row in rows:
            key = (row["user_id"], row["id"])
            existing = self.tables[table].get(key)
            if existing is None or row["updated_at"] >= existing["updated_at"]:
                self.tables[table][key] = copy.deepcopy(row)

        if self.lose_next_ack:
            # Gravou, mas a resposta se perdeu no caminho
            self.lose_next_ack = False
            raise RemoteError("timeout lendo a resposta", offline=True)

    def query_updated_since(self, table: str, user_id: str, threshold: int) -> List[Dict[str, Any]]:
        self.query_calls.append((table, user_id, threshold))
        if self.before_query is not None:
            self.before_query(table)
        error = self._error_for(self.query_errors, table)
        if error is not None:
            raise error
        return [
            copy.deepcopy(row)
            for (owner, _), row in self.tables[table].items()
            if owner == user_id and row["updated_at"] > threshold
        ]

    # --- helpers de teste ---

    def row(self, table: str, record_id: str, user_id: str = USER_ID) -> Optional[Dict[str, Any]]:
        return self.tables[table].get((user_id, record_id))

    def put(self, table: str, data: Dict[str, Any], user_id: str = USER_ID) -> Dict[str, Any]:
        """Grava direto no 'servidor', como se outro aparelho tivesse enviado."""
        row = {"id": data["id"], "user_id": user_id, "data": copy.deepcopy(data), "updated_at": data["updated_at"]}
        self.tables[table][(user_id, data["id"])] = row
        return row


def tx_data(amount: float = 10.0, **extra) -> Dict[str, Any]:
    data = {
        "date": "2024-03-10",
        "amount": amount,
        "category": "Food",
        "description": "Mercado",
        "type": "EXPENSE",
        "currency": "USD",
        "exchange_rate": 1.0,
        "usd_amount": amount,
    }
    data.update(extra)
    return data


def remote_tx(record_id: str, updated_at: int, amount: float = 10.0, is_deleted: bool = False, **extra) -> Dict[str, Any]:
    """Payload `data` completo de uma transação, como o cliente envia."""
    data = tx_data(amount, **extra)
    data.update(
        id=record_id,
        user_id=USER_ID,
        created_at=updated_at,
        updated_at=updated_at,
        is_deleted=is_deleted,
        details=None,
    )
    return data


class Device:
    """Um aparelho: réplica local + estado de sync + orquestrador."""

    def __init__(self, root: Path, name: str, remote, clock: FakeClock, **manager_kwargs):
        db_path = str(root / f"{name}.db")
        self.clock = clock
        self.store = LocalStore(db_path, clock=clock)
        self.state = SyncState(KVStore(db_path))
        self.manager = SyncManager(self.store, remote, self.state, clock=clock, **manager_kwargs)

    def sync(self, user_id: str = USER_ID):
        return self.manager.sync_all(user_id)

    def get(self, record_id: str, collection: str = "transactions"):
        return self.store.get_by_id(collection, record_id)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "device.db")


@pytest.fixture()
def store(db_path: str, clock: FakeClock):
    local = LocalStore(db_path, clock=clock)
    yield local
    local.close()


@pytest.fixture()
def state(db_path: str) -> SyncState:
    return SyncState(KVStore(db_path))


@pytest.fixture()
def remote() -> InMemoryRemote:
    return InMemoryRemote()


@pytest.fixture()
def reconciler(store: LocalStore, remote: InMemoryRemote, clock: FakeClock) -> Reconciler:
    return Reconciler(store, remote, clock=clock)


@pytest.fixture()
def manager(store: LocalStore, remote: InMemoryRemote, state: SyncState, clock: FakeClock) -> SyncManager:
    return SyncManager(store, remote, state, clock=clock)


@pytest.fixture()
def make_device(tmp_path: Path, remote: InMemoryRemote):
    devices: List[Device] = []

    def factory(name: str, clock: Optional[FakeClock] = None, **manager_kwargs) -> Device:
        device = Device(tmp_path, name, remote, clock or FakeClock(), **manager_kwargs)
        devices.append(device)
        return device

    yield factory
    for device in devices:
        device.store.close()
