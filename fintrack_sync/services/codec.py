from typing import Any, Dict, Mapping, Type

from pydantic import ValidationError

from fintrack_sync.errors import DecodeError
from fintrack_sync.models.base import SyncModel

# Campos que nunca saem do aparelho
LOCAL_ONLY_FIELDS = {"is_synced"}

# Sem estes o merge não tem como decidir; os defaults do modelo não valem aqui
REQUIRED_DATA_FIELDS = ("id", "updated_at", "is_deleted")


def encode_row(record: SyncModel, user_id: str) -> Dict[str, Any]:
    """
    Linha remota: {id, user_id, data, updated_at}.
    `data` é o registro local inteiro (blob JSON, schema-free no servidor).
    """
    data = record.model_dump(mode="json", exclude=LOCAL_ONLY_FIELDS)
    # Registro criado sem sessão: o dono é o usuário que está enviando
    if not data.get("user_id"):
        data["user_id"] = user_id
    return {
        "id": record.id,
        "user_id": user_id,
        "data": data,
        "updated_at": record.updated_at,
    }


def decode_row(model_type: Type[SyncModel], row: Any) -> SyncModel:
    """
    Converte uma linha remota na entidade tipada.
    Linhas malformadas levantam DecodeError em vez de propagar campos vazios.
    """
    if not isinstance(row, Mapping):
        raise DecodeError(f"Linha remota não é um objeto: {type(row).__name__}")

    row_id = row.get("id")
    if not isinstance(row_id, str) or not row_id:
        raise DecodeError("Linha remota sem id", row_id=None)

    data = row.get("data")
    if not isinstance(data, Mapping):
        raise DecodeError(f"Linha '{row_id}' sem payload 'data'", row_id=row_id)

    missing = [name for name in REQUIRED_DATA_FIELDS if name not in data]
    if missing:
        raise DecodeError(f"Linha '{row_id}': campos ausentes em data: {', '.join(missing)}", row_id=row_id)

    if data["id"] != row_id:
        raise DecodeError(f"Linha '{row_id}': data.id diverge ({data['id']!r})", row_id=row_id)

    updated_at = row.get("updated_at")
    if isinstance(updated_at, bool) or not isinstance(updated_at, int):
        raise DecodeError(f"Linha '{row_id}': updated_at inválido ({updated_at!r})", row_id=row_id)

    payload = {key: value for key, value in data.items() if key not in LOCAL_ONLY_FIELDS}
    try:
        entity = model_type.model_validate(payload)
    except ValidationError as exc:
        raise DecodeError(f"Linha '{row_id}': {exc}", row_id=row_id) from exc

    # A coluna updated_at espelha data.updated_at
    if entity.updated_at != updated_at:
        raise DecodeError(
            f"Linha '{row_id}': updated_at da coluna ({updated_at}) != data ({entity.updated_at})",
            row_id=row_id,
        )
    return entity
