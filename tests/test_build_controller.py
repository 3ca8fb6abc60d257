from pathlib import Path

import pytest

from skilltree_planner.codec.build_codec import BuildCodec
from skilltree_planner.engine.allocation_engine import AllocationState
from skilltree_planner.engine.build_config import PlannerConfig
from skilltree_planner.models.catalog import SkillCatalog
from skilltree_planner.parser.catalog_parser import parse_catalog
from skilltree_planner.storage.build_store import BuildStore
from skilltree_planner.ui.controllers.build_controller import LINK_FAILED_MESSAGE, BuildController
from skilltree_planner.ui.state import UiState


def _skill(skill_id: str, max_level: int) -> dict:
    return {"id": skill_id, "slot": "active", "maxLevel": max_level}


def _catalog() -> SkillCatalog:
    return parse_catalog(
        {
            "Hacker": {
                "startHubId": "h_start",
                "children": {
                    "h_start": {
                        "id": "h_start",
                        "type": "Hub",
                        "children": ["h_default", "h_pick", "h_any"],
                    },
                    "h_default": {"id": "h_default", "type": "DefaultSkills", "skills": [_skill("ping", 1)]},
                    "h_pick": {
                        "id": "h_pick",
                        "type": "ChooseOneSkill",
                        "skills": [_skill("x", 5), _skill("y", 5)],
                    },
                    "h_any": {
                        "id": "h_any",
                        "type": "ChooseAnySkills",
                        "skills": [_skill("fast", 10), _skill("slow", 10)],
                    },
                    "h_gate": {
                        "id": "h_gate",
                        "type": "Hub",
                        "pointsToUnlock": 10,
                        "children": ["h_gated"],
                    },
                    "h_gated": {"id": "h_gated", "type": "ChooseAnySkills", "skills": [_skill("ult", 3)]},
                },
            },
            "Soldier": {
                "startHubId": "s_start",
                "children": {
                    "s_start": {"id": "s_start", "type": "Hub", "children": ["s_any"]},
                    "s_any": {"id": "s_any", "type": "ChooseAnySkills", "skills": [_skill("tough", 5)]},
                },
            },
        }
    )


def _controller(tmp_path: Path, **kwargs) -> BuildController:
    return BuildController(
        catalog=_catalog(),
        store=BuildStore(tmp_path / "builds.json"),
        state=UiState(),
        **kwargs,
    )


def _add(c: BuildController, skill_id: str, times: int) -> None:
    for _ in range(times):
        c.add_point(skill_id)


def test_defaults_to_first_class(tmp_path):
    c = _controller(tmp_path)
    assert c.current_class == "Hacker"
    assert c.state.player_level == 1


def test_config_default_class_is_used(tmp_path):
    c = _controller(tmp_path, config=PlannerConfig(default_class="Soldier"))
    assert c.current_class == "Soldier"


def test_unknown_class_raises(tmp_path):
    c = _controller(tmp_path)
    with pytest.raises(ValueError, match="Unknown class"):
        c.change_class("Wizard")


def test_add_point_updates_ui_state_and_notifies(tmp_path):
    calls = []
    c = _controller(tmp_path, on_change=lambda: calls.append(1))
    _add(c, "fast", 3)
    assert c.state.player_level == 4
    assert c.summary() == (4, 30, 3, 26)
    assert len(calls) == 3


def test_adds_under_locked_hub_are_refused(tmp_path):
    c = _controller(tmp_path)
    assert c.is_hub_locked("h_gate") is True
    assert c.can_add_point("ult") is False
    c.add_point("ult")
    assert c.level("ult") == 0

    _add(c, "fast", 10)
    assert c.is_hub_locked("h_gate") is False
    c.add_point("ult")
    assert c.level("ult") == 1


def test_removing_below_threshold_cascades(tmp_path):
    c = _controller(tmp_path)
    _add(c, "fast", 10)
    _add(c, "ult", 2)
    c.remove_point("fast")
    c.remove_point("fast")
    assert c.level("ult") == 2  # total 10, still unlocked
    c.remove_point("fast")
    assert c.level("ult") == 0
    assert c.last_cascaded_hubs == ["h_gate"]
    assert c.engine.total_spent_points == 7


def test_choice_switch_through_controller(tmp_path):
    c = _controller(tmp_path)
    _add(c, "x", 2)
    assert c.is_choice_locked("h_pick", "y") is True
    c.select_node_choice("h_pick", "y")
    assert c.level("x") == 0
    assert c.engine.selection("h_pick") == "y"


def test_display_level_for_default_skills(tmp_path):
    c = _controller(tmp_path)
    assert c.display_level("ping") == 1
    assert c.level("ping") == 0
    assert c.engine.total_spent_points == 0


def test_reset(tmp_path):
    c = _controller(tmp_path)
    _add(c, "fast", 4)
    c.reset()
    assert c.engine.state == AllocationState()
    assert c.state.player_level == 1


class TestClassChange:
    def test_change_class_starts_empty(self, tmp_path):
        c = _controller(tmp_path)
        _add(c, "fast", 2)
        c.change_class("Soldier")
        assert c.engine.total_spent_points == 0
        c.change_class("Hacker")
        assert c.level("fast") == 0

    def test_preserve_skills_keeps_previous_allocation(self, tmp_path):
        c = _controller(tmp_path)
        _add(c, "fast", 2)
        c.change_class("Soldier")
        c.change_class("Hacker", preserve_skills=True)
        assert c.level("fast") == 2


class TestSharing:
    def test_share_and_import_round_trip(self, tmp_path):
        c = _controller(tmp_path)
        _add(c, "x", 2)
        _add(c, "fast", 3)
        code = c.share_code()
        c.reset()

        ok, message = c.import_shared(code)
        assert ok is True
        assert "Hacker" in message
        assert c.level("x") == 2
        assert c.level("fast") == 3
        assert c.engine.selection("h_pick") == "x"

    def test_import_switches_class(self, tmp_path):
        c = _controller(tmp_path)
        code = BuildCodec().encode(AllocationState(points_by_skill={"tough": 4}), "Soldier")
        ok, _message = c.import_shared(code)
        assert ok is True
        assert c.current_class == "Soldier"
        assert c.level("tough") == 4

    def test_malformed_link_does_nothing(self, tmp_path):
        c = _controller(tmp_path)
        _add(c, "fast", 2)
        ok, message = c.import_shared("garbage!!")
        assert ok is False
        assert message == LINK_FAILED_MESSAGE
        assert c.level("fast") == 2

    def test_unknown_class_in_link_is_rejected(self, tmp_path):
        c = _controller(tmp_path)
        code = BuildCodec().encode(AllocationState(points_by_skill={"x": 1}), "Wizard")
        ok, message = c.import_shared(code)
        assert ok is False
        assert "Wizard" in message
        assert c.current_class == "Hacker"

    def test_imported_points_under_unaffordable_hub_are_cascaded(self, tmp_path):
        c = _controller(tmp_path)
        code = BuildCodec().encode(
            AllocationState(points_by_skill={"fast": 3, "ult": 3}), "Hacker"
        )
        ok, _message = c.import_shared(code)
        assert ok is True
        assert c.level("fast") == 3
        assert c.level("ult") == 0
        assert c.last_cascaded_hubs == ["h_gate"]

    def test_import_query(self, tmp_path):
        c = _controller(tmp_path)
        code = BuildCodec().encode(AllocationState(points_by_skill={"slow": 1}), "Hacker")
        assert c.import_query({"tab": "x"}) == (False, None)
        ok, _message = c.import_query({"b": code})
        assert ok is True
        assert c.level("slow") == 1

    def test_share_url(self, tmp_path):
        c = _controller(tmp_path)
        c.add_point("fast")
        url = c.share_url("https://example.com/")
        assert url.startswith("https://example.com/?b=")


class TestSavedBuilds:
    def test_save_load_cycle(self, tmp_path):
        c = _controller(tmp_path)
        _add(c, "fast", 5)
        ok, message = c.save_build("  speed  ")
        assert ok is True
        assert message == "Build saved successfully!"
        assert c.build_exists("speed") is True

        c.reset()
        ok, message = c.load_build("Hacker:speed")
        assert ok is True
        assert message == "Loaded build: speed"
        assert c.level("fast") == 5

    def test_overwrite_message(self, tmp_path):
        c = _controller(tmp_path)
        c.save_build("speed")
        ok, message = c.save_build("speed")
        assert ok is True
        assert message == "Build 'speed' has been overwritten!"

    def test_empty_name_is_rejected(self, tmp_path):
        c = _controller(tmp_path)
        assert c.save_build("   ") == (False, "Please enter a build name")
        assert c.saved_builds() == []

    def test_key_separator_in_name_is_rejected(self, tmp_path):
        c = _controller(tmp_path)
        ok, message = c.save_build("Soldier:wall")
        assert ok is False
        assert ":" in message
        assert c.saved_builds() == []

    def test_loading_other_class_switches_first(self, tmp_path):
        c = _controller(tmp_path)
        c.change_class("Soldier")
        _add(c, "tough", 3)
        c.save_build("wall")
        c.change_class("Hacker")

        ok, _message = c.load_build("Soldier:wall")
        assert ok is True
        assert c.current_class == "Soldier"
        assert c.level("tough") == 3

    def test_missing_build(self, tmp_path):
        c = _controller(tmp_path)
        ok, _message = c.load_build("Hacker:ghost")
        assert ok is False

    def test_delete(self, tmp_path):
        c = _controller(tmp_path)
        c.save_build("speed")
        assert c.delete_build("Hacker:speed") == "Deleted build: speed"
        assert c.saved_builds() == []
