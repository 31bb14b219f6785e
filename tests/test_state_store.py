"""Tests for the local state stores."""

from campus_assistant.session.state_store import InMemoryStateStore, JsonFileStateStore


def test_json_store_persists_across_instances(tmp_path) -> None:
    path = tmp_path / "nested" / "state.json"
    JsonFileStateStore(path).set("last_session_id", "abc123")

    assert JsonFileStateStore(path).get("last_session_id") == "abc123"


def test_json_store_delete(tmp_path) -> None:
    store = JsonFileStateStore(tmp_path / "state.json")
    store.set("last_session_id", "abc123")
    store.set("other", "x")

    store.delete("last_session_id")
    store.delete("never-set")

    assert store.get("last_session_id") is None
    assert store.get("other") == "x"


def test_json_store_missing_file_is_empty(tmp_path) -> None:
    assert JsonFileStateStore(tmp_path / "absent.json").get("anything") is None


def test_json_store_ignores_corrupt_file(tmp_path, caplog) -> None:
    path = tmp_path / "state.json"
    path.write_text("{oops", encoding="utf-8")
    store = JsonFileStateStore(path)

    assert store.get("last_session_id") is None
    assert "corrupt" in caplog.text

    store.set("last_session_id", "fresh")
    assert store.get("last_session_id") == "fresh"


def test_in_memory_store() -> None:
    store = InMemoryStateStore({"a": "1"})
    store.set("b", "2")
    store.delete("a")

    assert store.get("a") is None
    assert store.get("b") == "2"
