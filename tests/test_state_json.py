import json
import os

import pytest

from tagwatch.errors import ConfigError, PersistError
from tagwatch.state.json_store import JsonStateStore


def test_missing_file_loads_empty(tmp_path) -> None:  # noqa: ANN001
    store = JsonStateStore.load(str(tmp_path / "state.json"))
    assert store.snapshot() == {}
    assert store.get("o/r") is None


def test_roundtrip(tmp_path) -> None:  # noqa: ANN001
    path = str(tmp_path / "state.json")
    store = JsonStateStore.load(path)
    record = {f"owner{i}/repo{i}": f"v{i}.0.0" for i in range(25)}
    record["ünï/cødé"] = "release/2026-01 ✓"
    for repo, tag in record.items():
        store.set(repo, tag)
    assert store.persist() is True

    loaded = JsonStateStore.load(path)
    assert loaded.snapshot() == record

    with open(path, encoding="utf-8") as f:
        on_disk = json.load(f)
    assert on_disk == record


def test_malformed_file_is_config_error(tmp_path) -> None:  # noqa: ANN001
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError):
        JsonStateStore.load(str(path))


@pytest.mark.parametrize("content", ['["a", "b"]', '{"o/r": 1}', '{"last_seen": {"o/r": "v1"}}'])
def test_wrong_shape_is_config_error(tmp_path, content) -> None:  # noqa: ANN001
    path = tmp_path / "state.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError):
        JsonStateStore.load(str(path))


def test_set_is_idempotent_and_skips_unchanged_writes(tmp_path) -> None:  # noqa: ANN001
    path = str(tmp_path / "state.json")
    store = JsonStateStore.load(path)
    assert store.persist() is False

    store.set("o/r", "v1")
    store.set("o/r", "v1")
    assert store.snapshot() == {"o/r": "v1"}
    assert store.persist() is True

    store.set("o/r", "v1")
    assert store.persist() is False
    assert json.loads((tmp_path / "state.json").read_text(encoding="utf-8")) == {"o/r": "v1"}


def test_crash_between_write_and_rename_keeps_previous_file(tmp_path, monkeypatch) -> None:  # noqa: ANN001
    path = tmp_path / "state.json"
    path.write_text(json.dumps({"o/r": "v1"}), encoding="utf-8")
    before = path.read_bytes()

    store = JsonStateStore.load(str(path))
    store.set("o/r", "v2")

    def _boom(src, dst):  # noqa: ANN001, ARG001
        raise OSError("simulated crash before rename")

    monkeypatch.setattr("tagwatch.state.json_store.os.replace", _boom)
    with pytest.raises(PersistError):
        store.persist()

    assert path.read_bytes() == before
    assert JsonStateStore.load(str(path)).snapshot() == {"o/r": "v1"}
    assert [p.name for p in tmp_path.iterdir()] == ["state.json"]

    # 内存状态仍然是权威值，下一次 persist 成功写入
    assert store.get("o/r") == "v2"
    monkeypatch.undo()
    assert store.persist() is True
    assert JsonStateStore.load(str(path)).snapshot() == {"o/r": "v2"}


def test_persist_into_missing_directory_is_persist_error(tmp_path) -> None:  # noqa: ANN001
    store = JsonStateStore.load(str(tmp_path / "nope" / "state.json"))
    store.set("o/r", "v1")
    with pytest.raises(PersistError):
        store.persist()
    assert store.get("o/r") == "v1"
    assert not os.path.exists(tmp_path / "nope")
