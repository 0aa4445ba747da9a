import json
import os

import pytest

from conftest import TOKEN_C
from mixion_sdk.chains.registry import TokenConfig
from mixion_sdk.errors import InvalidInput
from mixion_sdk.storage import (
    HISTORY_LIMIT,
    KEY_LAST_CHAIN_ID,
    KEY_WAS_CONNECTED,
    ClientStore,
    TransactionRecord,
)
from mixion_sdk.utils.bytes import ZERO_ADDRESS

TOKEN = TokenConfig(name="Token C", symbol="TKC", address=TOKEN_C, decimals=8)


def test_session_markers_roundtrip(tmp_path):
    path = tmp_path / "state.json"
    store = ClientStore(path)
    assert not store.was_connected and store.last_chain_id is None
    store.mark_connected(137)
    reopened = ClientStore(path)
    assert reopened.was_connected and reopened.last_chain_id == 137
    doc = json.loads(path.read_text())
    assert doc[KEY_WAS_CONNECTED] is True and doc[KEY_LAST_CHAIN_ID] == 137
    reopened.clear_session_markers()
    assert not ClientStore(path).was_connected
    assert ClientStore(path).last_chain_id is None


def test_file_is_private(tmp_path):
    path = tmp_path / "nested" / "state.json"
    ClientStore(path).mark_connected(1)
    assert path.exists()
    if os.name == "posix":
        assert (path.stat().st_mode & 0o777) == 0o600


def test_corrupt_file_reads_as_empty(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("][")
    store = ClientStore(path)
    assert not store.was_connected
    store.mark_connected(1)
    assert ClientStore(path).was_connected


def test_custom_tokens(store):
    store.add_custom_token(1, TOKEN)
    assert store.get_custom_tokens(1) == [TOKEN]
    assert store.get_custom_tokens(2) == []
    with pytest.raises(InvalidInput, match="already added"):
        store.add_custom_token(1, TOKEN.model_copy(update={"address": TOKEN_C.upper().replace("0X", "0x")}))
    native = TokenConfig(name="Native", symbol="N", address=ZERO_ADDRESS)
    with pytest.raises(InvalidInput):
        store.add_custom_token(1, native)
    assert store.remove_custom_token(1, TOKEN_C.upper().replace("0X", "0x"))
    assert not store.remove_custom_token(1, TOKEN_C)
    assert store.get_custom_tokens(1) == []


def test_malformed_custom_token_is_skipped(store):
    store.set("mixion-custom-tokens", {"1": [{"symbol": "BAD"}, TOKEN.model_dump(by_alias=True)]})
    assert [t.symbol for t in store.get_custom_tokens(1)] == ["TKC"]


def test_history_newest_first_and_capped(store):
    for i in range(HISTORY_LIMIT + 5):
        store.save_transaction(TransactionRecord(tx_hash=f"0x{i:064x}", type="lock", amount=str(i),
                                                 currency="ETH", chain_id=1, timestamp=float(i)))
    history = store.get_transaction_history()
    assert len(history) == HISTORY_LIMIT
    assert history[0].amount == str(HISTORY_LIMIT + 4)
    assert history[-1].amount == "5"
    store.clear_transaction_history()
    assert store.get_transaction_history() == []


def test_in_memory_store_isolated():
    a, b = ClientStore(), ClientStore()
    a.mark_connected(1)
    assert a.was_connected and not b.was_connected
    assert a.path is None
