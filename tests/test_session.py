"""
Tests for the rolling local buffer, session identity and storage backends.
"""

import json

import pytest

from voice_widget.models.data_models import Role, Turn
from voice_widget.providers.storage import JsonFileStorage, MemoryStorage
from voice_widget.session.buffer import RollingLocalBuffer
from voice_widget.session.identity import SessionIdentityStore, SESSION_STORAGE_KEY
from voice_widget.utils.error_handling import StorageUnavailableError


def turn(i):
    return Turn(role=Role.USER if i % 2 == 0 else Role.ASSISTANT, text=f"turn {i}", timestamp=float(i))


class TestRollingLocalBuffer:

    @pytest.mark.parametrize("pushes", [0, 1, 9, 10, 11, 25])
    def test_keeps_last_n_in_order(self, pushes):
        buffer = RollingLocalBuffer(10)
        for i in range(pushes):
            buffer.push(turn(i))

        texts = [t.text for t in buffer.to_list()]
        assert len(texts) <= 10
        assert texts == [f"turn {i}" for i in range(max(0, pushes - 10), pushes)]

    def test_snapshot_is_independent(self):
        buffer = RollingLocalBuffer(3)
        buffer.push(turn(0))
        snapshot = buffer.to_list()
        buffer.push(turn(1))

        assert len(snapshot) == 1
        assert len(buffer) == 2

    def test_payload_shape(self):
        buffer = RollingLocalBuffer()
        buffer.push(turn(0))
        buffer.push(turn(1))

        assert buffer.to_payload() == [
            {'role': 'user', 'text': 'turn 0'},
            {'role': 'assistant', 'text': 'turn 1'},
        ]

    def test_clear(self):
        buffer = RollingLocalBuffer()
        buffer.push(turn(0))
        buffer.clear()
        assert buffer.to_list() == []

    def test_limit_must_be_positive(self):
        with pytest.raises(ValueError):
            RollingLocalBuffer(0)


class TestSessionIdentityStore:

    def test_same_scope_returns_same_id(self):
        store = SessionIdentityStore(MemoryStorage())

        first = store.get_or_create_session_id()
        assert first == store.get_or_create_session_id()
        assert first.startswith("sess_")

    def test_id_shared_through_storage(self):
        storage = MemoryStorage()

        first = SessionIdentityStore(storage).get_or_create_session_id()
        second = SessionIdentityStore(storage).get_or_create_session_id()

        assert first == second
        assert storage.get(SESSION_STORAGE_KEY) == first

    def test_fresh_scope_gets_new_id(self):
        first = SessionIdentityStore(MemoryStorage()).get_or_create_session_id()
        second = SessionIdentityStore(MemoryStorage()).get_or_create_session_id()

        assert first != second

    def test_reset_creates_new_id(self):
        storage = MemoryStorage()
        store = SessionIdentityStore(storage)
        first = store.get_or_create_session_id()

        second = store.reset()

        assert second != first
        assert storage.get(SESSION_STORAGE_KEY) == second

    def test_existing_value_is_reused(self):
        storage = MemoryStorage({'initial': {SESSION_STORAGE_KEY: "sess_existing"}})
        assert SessionIdentityStore(storage).get_or_create_session_id() == "sess_existing"

    def test_unavailable_storage_falls_back_to_memory(self):
        class BrokenStorage(MemoryStorage):
            def get(self, key):
                raise StorageUnavailableError("disk gone")

        store = SessionIdentityStore(BrokenStorage())

        first = store.get_or_create_session_id()
        assert first == store.get_or_create_session_id()

    def test_no_storage(self):
        store = SessionIdentityStore(None)
        assert store.get_or_create_session_id() == store.get_or_create_session_id()


class TestJsonFileStorage:

    def test_round_trip_and_remove(self, tmp_path):
        storage = JsonFileStorage({'path': str(tmp_path / "nested" / "storage.json")})

        assert storage.get("missing") is None
        storage.set("key", "value")
        assert storage.get("key") == "value"
        assert json.loads((tmp_path / "nested" / "storage.json").read_text()) == {"key": "value"}

        storage.remove("key")
        assert storage.get("key") is None

    def test_two_instances_share_a_file(self, tmp_path):
        path = str(tmp_path / "storage.json")

        first = SessionIdentityStore(JsonFileStorage({'path': path})).get_or_create_session_id()
        second = SessionIdentityStore(JsonFileStorage({'path': path})).get_or_create_session_id()

        assert first == second

    def test_corrupt_file_is_unavailable(self, tmp_path):
        path = tmp_path / "storage.json"
        path.write_text("{not json")
        storage = JsonFileStorage({'path': str(path)})

        with pytest.raises(StorageUnavailableError):
            storage.get("key")

        store = SessionIdentityStore(storage)
        assert store.get_or_create_session_id().startswith("sess_")
