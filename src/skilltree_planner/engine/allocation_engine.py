"""Allocation engine: point ledger and exclusive choices for one class tree.

The engine owns an AllocationState and guards every mutation so the state
can never violate the budget or ChooseOneSkill exclusivity. Constraint
violations are silent no-ops; there is no exception path for user input.

Hub locks are not stored. ``is_hub_locked`` derives them from the current
total, and the orchestration layer (see ``engine.lock_tracker``) decides when
a lock transition happened and calls ``remove_points_for_hub``.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Iterable

from skilltree_planner.engine.build_config import PlannerConfig
from skilltree_planner.models.catalog import NodeType, SkillTree


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class AllocationState:
    """Serialisable snapshot of a build's point allocation.

    ``points_by_skill`` is sparse: skills at level 0 are absent.
    ``selected_skill_by_node`` only holds ChooseOneSkill nodes with an
    active selection.
    """

    points_by_skill: dict[str, int] = field(default_factory=dict)
    selected_skill_by_node: dict[str, str] = field(default_factory=dict)

    @property
    def total_spent_points(self) -> int:
        return sum(self.points_by_skill.values())

    def is_empty(self) -> bool:
        return not self.points_by_skill and not self.selected_skill_by_node


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class AllocationEngine:
    """Guards point allocation for a single class tree.

    Consumes a SkillTree and PlannerConfig without modifying either.
    """

    __slots__ = ("_state", "_tree", "_config", "_default_skills")

    def __init__(self, tree: SkillTree, config: PlannerConfig | None = None) -> None:
        self._tree = tree
        self._config = config or PlannerConfig()
        self._state = AllocationState()
        self._default_skills = tree.default_skill_ids()

    # --- Factories ---------------------------------------------------------

    @classmethod
    def from_state(
        cls,
        state: AllocationState,
        tree: SkillTree,
        config: PlannerConfig | None = None,
    ) -> AllocationEngine:
        """Create an engine and replay *state* through the guarded mutators."""
        engine = cls(tree, config)
        engine.restore(state)
        return engine

    def copy(self) -> AllocationEngine:
        clone = AllocationEngine.__new__(AllocationEngine)
        clone._tree = self._tree
        clone._config = self._config
        clone._default_skills = self._default_skills
        clone._state = copy.deepcopy(self._state)
        return clone

    # --- Read side ---------------------------------------------------------

    @property
    def state(self) -> AllocationState:
        """Return a deep copy of the current state for serialisation."""
        return copy.deepcopy(self._state)

    @property
    def tree(self) -> SkillTree:
        return self._tree

    @property
    def max_player_level(self) -> int:
        return self._config.max_player_level

    @property
    def total_spent_points(self) -> int:
        return self._state.total_spent_points

    @property
    def player_level(self) -> int:
        return min(self.total_spent_points + 1, self.max_player_level)

    @property
    def remaining_points(self) -> int:
        return self.max_player_level - self.player_level

    def level(self, skill_id: str) -> int:
        return self._state.points_by_skill.get(skill_id, 0)

    def selection(self, node_id: str) -> str | None:
        return self._state.selected_skill_by_node.get(node_id)

    def is_choice_locked(self, node_id: str, skill_id: str) -> bool:
        """True when *node_id* already committed to a different skill."""
        selected = self._state.selected_skill_by_node.get(node_id)
        return selected is not None and selected != skill_id

    def is_hub_locked(self, hub_id: str) -> bool:
        hub = self._tree.node(hub_id)
        if hub is None or not hub.is_hub:
            return False
        return self.total_spent_points < hub.points_to_unlock

    def locked_hubs(self) -> dict[str, bool]:
        return {hub.id: self.is_hub_locked(hub.id) for hub in self._tree.hubs()}

    # --- Mutators ----------------------------------------------------------

    def add_point(self, skill_id: str) -> None:
        skill = self._tree.skill(skill_id)
        if skill is None or skill_id in self._default_skills:
            return
        if self.total_spent_points >= self._config.point_budget:
            return
        current = self.level(skill_id)
        if current >= skill.max_level:
            return

        node = self._tree.node_for_skill(skill_id)
        if node is not None and node.type is NodeType.CHOOSE_ONE:
            if self.is_choice_locked(node.id, skill_id):
                return
            self._state.selected_skill_by_node[node.id] = skill_id

        self._state.points_by_skill[skill_id] = current + 1

    def remove_point(self, skill_id: str) -> None:
        current = self.level(skill_id)
        if current <= 0:
            return
        if current == 1:
            del self._state.points_by_skill[skill_id]
            self._clear_selection_of(skill_id)
        else:
            self._state.points_by_skill[skill_id] = current - 1

    def select_node_choice(self, node_id: str, skill_id: str) -> None:
        node = self._tree.node(node_id)
        if node is None or node.type is not NodeType.CHOOSE_ONE:
            return
        if skill_id not in node.skill_ids:
            return
        previous = self._state.selected_skill_by_node.get(node_id)
        if previous == skill_id:
            return
        if previous is not None:
            # Switching discards the previous investment entirely.
            self._state.points_by_skill.pop(previous, None)
        self._state.selected_skill_by_node[node_id] = skill_id

    def remove_points_for_hub(
        self,
        hub_child_node_ids: Iterable[str],
        catalog: SkillTree | None = None,
    ) -> None:
        """Zero every skill under the given hub children and clear their choices.

        Both maps are rebuilt and swapped in together. Calling this twice
        with the same input leaves the state unchanged the second time.
        """
        tree = catalog or self._tree
        node_ids, skill_ids = tree.skills_under(hub_child_node_ids)
        drop_nodes = set(node_ids)
        drop_skills = set(skill_ids)

        points = {
            sid: lvl for sid, lvl in self._state.points_by_skill.items() if sid not in drop_skills
        }
        selected = {
            nid: sid
            for nid, sid in self._state.selected_skill_by_node.items()
            if nid not in drop_nodes
        }
        self._state = AllocationState(points_by_skill=points, selected_skill_by_node=selected)

    def reset(self) -> None:
        self._state = AllocationState()

    def restore(self, state: AllocationState) -> None:
        """Replace the current state with *state*, dropping anything invalid.

        Selections are applied first, then levels are added one point at a
        time in skill-id order, so the budget, max levels and exclusivity are
        enforced exactly as for interactive input.
        """
        self.reset()
        for node_id, skill_id in sorted(state.selected_skill_by_node.items()):
            self.select_node_choice(node_id, skill_id)
        for skill_id, level in sorted(state.points_by_skill.items()):
            for _ in range(max(0, int(level))):
                before = self.level(skill_id)
                self.add_point(skill_id)
                if self.level(skill_id) == before:
                    break

    # --- Helpers -----------------------------------------------------------

    def _clear_selection_of(self, skill_id: str) -> None:
        for node_id, selected in list(self._state.selected_skill_by_node.items()):
            if selected == skill_id:
                del self._state.selected_skill_by_node[node_id]
