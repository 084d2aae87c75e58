from typing import Optional


class SyncEngineError(Exception):
    """Classe base para todos os erros do motor de sincronização."""


class StorageError(SyncEngineError):
    """Meio local indisponível ou escrita rejeitada. Nada foi gravado."""


class NotFoundError(SyncEngineError, LookupError):
    """O id não existe na coleção local."""

    def __init__(self, collection: str, record_id: str):
        super().__init__(f"{collection}: registro '{record_id}' não encontrado")
        self.collection = collection
        self.record_id = record_id


class RemoteError(SyncEngineError):
    """
    Falha de rede/autenticação/servidor ao falar com as tabelas remotas.
    `offline=True` quando o servidor nem sequer foi alcançado.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, offline: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.offline = offline


class DecodeError(SyncEngineError):
    """Linha remota malformada: não pode virar uma entidade local."""

    def __init__(self, message: str, row_id: Optional[str] = None):
        super().__init__(message)
        self.row_id = row_id
