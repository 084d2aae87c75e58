import logging
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import httpx

from fintrack_sync.config import API_BASE_URL, TIMEOUT_SECONDS
from fintrack_sync.errors import RemoteError

logger = logging.getLogger("RemoteTransport")

RemoteRow = Dict[str, Any]


@runtime_checkable
class RemoteTransport(Protocol):
    """
    Interface que o Reconciler usa para falar com as tabelas remotas
    (uma linha por registro, particionada por usuário).
    Qualquer falha vira RemoteError.
    """

    def upsert(self, table: str, rows: List[RemoteRow]) -> None:
        """Upsert em lote, idempotente por id (Last-Write-Wins por updated_at)."""
        ...

    def query_updated_since(self, table: str, user_id: str, threshold: int) -> List[RemoteRow]:
        """Linhas do usuário com updated_at > threshold."""
        ...


class HttpRemoteTransport:
    """Cliente HTTP (httpx) do servidor de sync em backend/."""

    def __init__(
        self,
        base_url: str = API_BASE_URL,
        token: Optional[str] = None,
        timeout: float = TIMEOUT_SECONDS,
        client: Optional[httpx.Client] = None,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        if client is None:
            client = httpx.Client(base_url=base_url, timeout=timeout, headers=headers)
        elif headers:
            client.headers.update(headers)
        self.client = client

    def _request(self, method: str, url: str, **kwargs) -> Any:
        try:
            response = self.client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise RemoteError(f"{method} {url} -> HTTP {status}", status_code=status) from exc
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            raise RemoteError(f"{method} {url}: servidor inacessível ({exc})", offline=True) from exc
        except httpx.HTTPError as exc:
            raise RemoteError(f"{method} {url}: {exc}") from exc

        try:
            return response.json()
        except ValueError as exc:
            raise RemoteError(f"{method} {url}: resposta não é JSON") from exc

    def upsert(self, table: str, rows: List[RemoteRow]) -> None:
        if not rows:
            return
        # Endpoint ex: /sync/transactions/upsert
        result = self._request("POST", f"/sync/{table}/upsert", json={"rows": rows})
        processed = result.get("processed_ids", []) if isinstance(result, dict) else []
        logger.debug(f"{table}: servidor processou {len(processed)} de {len(rows)} linhas")

    def query_updated_since(self, table: str, user_id: str, threshold: int) -> List[RemoteRow]:
        data = self._request("GET", f"/sync/{table}", params={"user_id": user_id, "since": threshold})
        rows = data.get("rows") if isinstance(data, dict) else None
        if not isinstance(rows, list):
            raise RemoteError(f"GET /sync/{table}: resposta sem lista 'rows'")
        return rows

    def close(self) -> None:
        self.client.close()
