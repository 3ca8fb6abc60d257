import json
from datetime import datetime
from pathlib import Path

from skilltree_planner.engine.allocation_engine import AllocationState
from skilltree_planner.engine.build_config import PlannerConfig
from skilltree_planner.storage.build_store import BuildStore, SavedBuildRef, build_key


def _state(**points: int) -> AllocationState:
    return AllocationState(points_by_skill=dict(points))


def _store(tmp_path: Path) -> BuildStore:
    return BuildStore(tmp_path / "builds.json")


def test_save_then_load_by_name_and_class(tmp_path):
    store = _store(tmp_path)
    state = AllocationState(points_by_skill={"x": 2}, selected_skill_by_node={"n1": "x"})
    result = store.save("glass cannon", "Hacker", state)
    assert result.overwritten is False
    assert result.stored is True

    saved = store.load("glass cannon", "Hacker")
    assert saved is not None
    assert saved.name == "glass cannon"
    assert saved.class_id == "Hacker"
    assert saved.state == state
    assert saved.key == "Hacker:glass cannon"
    datetime.fromisoformat(saved.timestamp)


def test_load_by_full_key(tmp_path):
    store = _store(tmp_path)
    store.save("tank", "Soldier", _state(a=1))
    saved = store.load("Soldier:tank")
    assert saved is not None
    assert saved.state == _state(a=1)


def test_resave_reports_overwrite(tmp_path):
    store = _store(tmp_path)
    store.save("tank", "Soldier", _state(a=1))
    result = store.save("tank", "Soldier", _state(a=3))
    assert result.overwritten is True
    assert store.load("tank", "Soldier").state == _state(a=3)
    assert len(store.list()) == 1


def test_same_name_in_two_classes_is_two_entries(tmp_path):
    store = _store(tmp_path)
    store.save("main", "Hacker", _state(h=1))
    assert store.save("main", "Soldier", _state(s=1)).overwritten is False
    assert store.load("main", "Hacker").state == _state(h=1)
    assert store.load("main", "Soldier").state == _state(s=1)


def test_exists(tmp_path):
    store = _store(tmp_path)
    store.save("tank", "Soldier", _state(a=1))
    assert store.exists("tank", "Soldier") is True
    assert store.exists("tank", "Hacker") is False


def test_list_returns_refs_sorted(tmp_path):
    store = _store(tmp_path)
    store.save("zed", "Soldier", _state(a=1))
    store.save("Alpha", "Soldier", _state(a=1))
    store.save("beta", "Hacker", _state(a=1))
    assert store.list() == [
        SavedBuildRef(name="beta", class_id="Hacker", key="Hacker:beta"),
        SavedBuildRef(name="Alpha", class_id="Soldier", key="Soldier:Alpha"),
        SavedBuildRef(name="zed", class_id="Soldier", key="Soldier:zed"),
    ]


def test_delete_exact_key_and_missing_key(tmp_path):
    store = _store(tmp_path)
    store.save("tank", "Soldier", _state(a=1))
    store.delete("Soldier:missing")
    assert len(store.list()) == 1
    store.delete("Soldier:tank")
    assert store.list() == []
    assert store.load("tank", "Soldier") is None


def test_entries_live_under_namespace(tmp_path):
    path = tmp_path / "builds.json"
    path.write_text(json.dumps({"otherApp": {"keep": True}}))
    store = BuildStore(path, PlannerConfig(store_namespace="myBuilds"))
    store.save("tank", "Soldier", _state(a=1))

    doc = json.loads(path.read_text())
    assert doc["otherApp"] == {"keep": True}
    record = doc["myBuilds"][build_key("tank", "Soldier")]
    assert record["className"] == "Soldier"
    assert record["skillPoints"] == {"a": 1}
    assert record["selectedSkillsInNodes"] == {}
    assert "timestamp" in record


class TestLegacyKeys:
    def _legacy_store(self, tmp_path: Path) -> BuildStore:
        path = tmp_path / "builds.json"
        path.write_text(
            json.dumps(
                {
                    "skillTreeBuilds": {
                        "speedrun": {
                            "skillPoints": {"old": 2},
                            "selectedSkillsInNodes": {},
                            "timestamp": "2023-01-01T00:00:00",
                        }
                    }
                }
            )
        )
        return BuildStore(path)

    def test_bare_name_resolves_when_no_qualified_match(self, tmp_path):
        store = self._legacy_store(tmp_path)
        saved = store.load("speedrun", "Hacker")
        assert saved is not None
        assert saved.key == "speedrun"
        assert saved.state == _state(old=2)

    def test_qualified_key_wins_over_bare_name(self, tmp_path):
        store = self._legacy_store(tmp_path)
        store.save("speedrun", "Hacker", _state(new=1))
        assert store.load("speedrun", "Hacker").state == _state(new=1)
        assert store.load("speedrun", "Soldier").state == _state(old=2)

    def test_legacy_entry_is_listed(self, tmp_path):
        store = self._legacy_store(tmp_path)
        assert store.list() == [SavedBuildRef(name="speedrun", class_id="", key="speedrun")]


class TestStorageUnavailable:
    def test_missing_file_is_empty(self, tmp_path):
        store = BuildStore(tmp_path / "nope" / "builds.json")
        assert store.list() == []
        assert store.load("x", "Hacker") is None

    def test_corrupt_file_degrades_to_empty(self, tmp_path, caplog):
        path = tmp_path / "builds.json"
        path.write_text("{not json")
        store = BuildStore(path)
        assert store.list() == []
        assert "not valid JSON" in caplog.text

    def test_unwritable_location_reports_not_stored(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")
        store = BuildStore(blocker / "builds.json")
        result = store.save("tank", "Soldier", _state(a=1))
        assert result.stored is False
        assert result.overwritten is False
        store.delete("Soldier:tank")
        assert store.list() == []

    def test_malformed_record_is_skipped_on_load(self, tmp_path):
        path = tmp_path / "builds.json"
        path.write_text(json.dumps({"skillTreeBuilds": {"Hacker:bad": {"skillPoints": {"x": "lots"}}}}))
        store = BuildStore(path)
        assert store.load("bad", "Hacker") is None

    def test_non_finite_level_is_skipped_on_load(self, tmp_path):
        path = tmp_path / "builds.json"
        path.write_text('{"skillTreeBuilds": {"Hacker:inf": {"skillPoints": {"x": Infinity}},'
                        ' "Hacker:nan": {"skillPoints": {"x": NaN}}}}')
        store = BuildStore(path)
        assert store.load("inf", "Hacker") is None
        assert store.load("nan", "Hacker") is None
        assert [row.key for row in store.list()] == ["Hacker:inf", "Hacker:nan"]

    def test_invalid_utf8_degrades_to_empty(self, tmp_path, caplog):
        path = tmp_path / "builds.json"
        path.write_bytes(b'{"skillTreeBuilds": {"Hacker:x": {"name": "\xff\xfe"}}}')
        store = BuildStore(path)
        assert store.list() == []
        assert store.load("x", "Hacker") is None
        assert store.exists("x", "Hacker") is False
        store.delete("Hacker:x")
        assert "not valid UTF-8" in caplog.text


def test_qualified_key_is_matched_before_current_class(tmp_path):
    path = tmp_path / "builds.json"
    path.write_text(
        json.dumps(
            {
                "skillTreeBuilds": {
                    "Soldier:tank": {"skillPoints": {"s": 1}},
                    "Hacker:Soldier:tank": {"skillPoints": {"h": 1}},
                }
            }
        )
    )
    store = BuildStore(path)
    saved = store.load("Soldier:tank", "Hacker")
    assert saved is not None
    assert saved.key == "Soldier:tank"
    assert saved.state == _state(s=1)
