"""Testes unitários de fintrack_sync.services.codec (fronteira tipada das linhas remotas)."""

import pytest

from conftest import USER_ID, remote_tx, tx_data
from fintrack_sync.errors import DecodeError
from fintrack_sync.models.transaction import Transaction
from fintrack_sync.services.codec import decode_row, encode_row


def _row(data, **overrides):
    row = {"id": data.get("id"), "user_id": USER_ID, "data": data, "updated_at": data.get("updated_at")}
    row.update(overrides)
    return row


class TestEncodeRow:
    def test_shape(self, store):
        record = store.insert("transactions", tx_data(10.0, details={"cardName": "Visa"}))
        row = encode_row(record, USER_ID)

        assert set(row) == {"id", "user_id", "data", "updated_at"}
        assert row["id"] == record.id
        assert row["user_id"] == USER_ID
        assert row["updated_at"] == record.updated_at
        assert row["data"]["amount"] == 10.0
        assert row["data"]["details"] == {"cardName": "Visa"}
        assert row["data"]["type"] == "EXPENSE"

    def test_is_synced_never_leaves_device(self, store):
        record = store.insert("transactions", tx_data())
        assert "is_synced" not in encode_row(record, USER_ID)["data"]

    def test_missing_owner_filled_with_session_user(self, store):
        record = store.insert("transactions", tx_data())
        assert record.user_id is None
        assert encode_row(record, USER_ID)["data"]["user_id"] == USER_ID

    def test_existing_owner_kept(self, store):
        record = store.insert("transactions", tx_data(), user_id="owner-0")
        assert encode_row(record, USER_ID)["data"]["user_id"] == "owner-0"


class TestDecodeRow:
    def test_valid_row(self):
        entity = decode_row(Transaction, _row(remote_tx("t1", 200, amount=99.0)))
        assert isinstance(entity, Transaction)
        assert entity.id == "t1"
        assert entity.amount == 99.0
        assert entity.updated_at == 200

    def test_ignores_remote_is_synced(self):
        data = remote_tx("t1", 200)
        data["is_synced"] = True
        assert decode_row(Transaction, _row(data)).is_synced is False

    def test_not_a_mapping(self):
        with pytest.raises(DecodeError):
            decode_row(Transaction, ["t1", 200])

    def test_missing_id(self):
        row = _row(remote_tx("t1", 200))
        del row["id"]
        with pytest.raises(DecodeError):
            decode_row(Transaction, row)

    def test_missing_data(self):
        with pytest.raises(DecodeError) as info:
            decode_row(Transaction, {"id": "t1", "updated_at": 1, "data": None})
        assert info.value.row_id == "t1"

    @pytest.mark.parametrize("field", ["id", "updated_at", "is_deleted"])
    def test_missing_merge_fields(self, field):
        data = remote_tx("t1", 200)
        del data[field]
        with pytest.raises(DecodeError, match=field):
            decode_row(Transaction, _row(data, id="t1", updated_at=200))

    def test_id_mismatch(self):
        with pytest.raises(DecodeError, match="diverge"):
            decode_row(Transaction, _row(remote_tx("t1", 200), id="t2"))

    def test_column_timestamp_mismatch(self):
        with pytest.raises(DecodeError):
            decode_row(Transaction, _row(remote_tx("t1", 200), updated_at=300))

    @pytest.mark.parametrize("bad", [None, "200", True, 2.5])
    def test_invalid_column_timestamp(self, bad):
        with pytest.raises(DecodeError):
            decode_row(Transaction, _row(remote_tx("t1", 200), updated_at=bad))

    def test_invalid_field_value(self):
        with pytest.raises(DecodeError) as info:
            decode_row(Transaction, _row(remote_tx("t1", 200, amount="muito")))
        assert info.value.row_id == "t1"
