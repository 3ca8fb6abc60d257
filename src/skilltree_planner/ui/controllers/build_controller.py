"""Controller for allocation, sharing and saved-build actions.

This controller owns one AllocationEngine per class and the hub lock
tracker that goes with it. Every mutation is followed by lock settling so
points under a hub that just locked are removed before views re-render.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Mapping

from skilltree_planner.codec.build_codec import BuildCodec
from skilltree_planner.engine.allocation_engine import AllocationEngine, AllocationState
from skilltree_planner.engine.build_config import PlannerConfig
from skilltree_planner.engine.lock_tracker import HubLockTracker, settle_hub_locks
from skilltree_planner.models.catalog import SkillCatalog, SkillTree
from skilltree_planner.storage.build_store import KEY_SEP, BuildStore, SavedBuildRef
from skilltree_planner.ui.state import UiState


logger = logging.getLogger(__name__)

LINK_FAILED_MESSAGE = "Build link could not be read; nothing was imported."


@dataclass(slots=True)
class BuildController:
    """Owns build actions for the current class context."""

    catalog: SkillCatalog
    store: BuildStore
    state: UiState
    config: PlannerConfig = field(default_factory=PlannerConfig)
    codec: BuildCodec | None = None
    on_change: Callable[[], None] | None = None
    last_cascaded_hubs: list[str] = field(default_factory=list)
    _engines: dict[str, AllocationEngine] = field(default_factory=dict)
    _trackers: dict[str, HubLockTracker] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.state.current_class:
            self.state.current_class = (
                self.config.default_class
                if self.catalog.has_class(self.config.default_class)
                else self.catalog.default_class
            )
        self.catalog.tree(self.state.current_class)
        if self.codec is None:
            self.codec = BuildCodec(self.config, default_class=self.catalog.default_class)
        self._ensure_engine(self.state.current_class)
        self._sync_state()

    # --- Read side ---------------------------------------------------------

    @property
    def current_class(self) -> str:
        return self.state.current_class

    @property
    def engine(self) -> AllocationEngine:
        return self._engines[self.state.current_class]

    @property
    def tree(self) -> SkillTree:
        return self.catalog.tree(self.state.current_class)

    def summary(self) -> tuple[int, int, int, int]:
        """(player_level, max_player_level, total_spent, remaining)."""
        e = self.engine
        return e.player_level, e.max_player_level, e.total_spent_points, e.remaining_points

    def level(self, skill_id: str) -> int:
        return self.engine.level(skill_id)

    def display_level(self, skill_id: str) -> int:
        """Level shown to the player; default skills always read as 1."""
        if skill_id in self.tree.default_skill_ids():
            return 1
        return self.engine.level(skill_id)

    def is_hub_locked(self, hub_id: str) -> bool:
        return self.engine.is_hub_locked(hub_id)

    def is_choice_locked(self, node_id: str, skill_id: str) -> bool:
        return self.engine.is_choice_locked(node_id, skill_id)

    def can_add_point(self, skill_id: str) -> bool:
        node = self.tree.node_for_skill(skill_id)
        if node is None:
            return False
        hub = self.tree.hub_for_node(node.id)
        if hub is not None and self.engine.is_hub_locked(hub.id):
            return False
        if self.engine.is_choice_locked(node.id, skill_id):
            return False
        skill = self.tree.skill(skill_id)
        return (
            skill is not None
            and skill_id not in self.tree.default_skill_ids()
            and self.engine.level(skill_id) < skill.max_level
            and self.engine.remaining_points > 0
        )

    # --- Allocation --------------------------------------------------------

    def add_point(self, skill_id: str) -> None:
        if not self.can_add_point(skill_id):
            return
        self.engine.add_point(skill_id)
        self._after_mutation()

    def remove_point(self, skill_id: str) -> None:
        self.engine.remove_point(skill_id)
        self._after_mutation()

    def select_node_choice(self, node_id: str, skill_id: str) -> None:
        self.engine.select_node_choice(node_id, skill_id)
        self._after_mutation()

    def reset(self) -> None:
        self.engine.reset()
        self._after_mutation()

    def change_class(self, class_id: str, *, preserve_skills: bool = False) -> None:
        """Switch class context.

        By default the target class starts from an empty allocation. With
        ``preserve_skills`` the allocation last used for that class is kept.
        """
        self.catalog.tree(class_id)
        if not preserve_skills:
            self._engines.pop(class_id, None)
            self._trackers.pop(class_id, None)
        self.state.current_class = class_id
        self._ensure_engine(class_id)
        self.last_cascaded_hubs = []
        self._sync_state()
        self._notify()

    # --- Sharing -----------------------------------------------------------

    def share_code(self) -> str:
        return self.codec.encode(self.engine.state, self.current_class)

    def share_url(self, base_url: str) -> str:
        return self.codec.share_url(base_url, self.engine.state, self.current_class)

    def import_shared(self, payload: str) -> tuple[bool, str]:
        decoded = self.codec.decode(payload)
        if not decoded.ok:
            return False, LINK_FAILED_MESSAGE
        return self._apply_build(decoded.class_id, decoded.state, f"Imported {decoded.class_id} build")

    def import_query(self, params: Mapping[str, str]) -> tuple[bool, str | None]:
        """Import from URL query parameters; (False, None) when none are present."""
        decoded = self.codec.decode_query(params)
        if decoded is None:
            return False, None
        if not decoded.ok:
            return False, LINK_FAILED_MESSAGE
        return self._apply_build(decoded.class_id, decoded.state, f"Imported {decoded.class_id} build")

    # --- Saved builds ------------------------------------------------------

    def build_exists(self, name: str) -> bool:
        return self.store.exists(name.strip(), self.current_class)

    def save_build(self, name: str) -> tuple[bool, str]:
        clean = name.strip()
        if not clean:
            return False, "Please enter a build name"
        if KEY_SEP in clean:
            return False, f"Build names cannot contain '{KEY_SEP}'"
        result = self.store.save(clean, self.current_class, self.engine.state)
        if not result.stored:
            return False, "Saved builds are unavailable right now."
        if result.overwritten:
            return True, f"Build '{clean}' has been overwritten!"
        return True, "Build saved successfully!"

    def load_build(self, key: str) -> tuple[bool, str]:
        saved = self.store.load(key, self.current_class)
        if saved is None:
            return False, f"No saved build named {key!r}"
        return self._apply_build(saved.class_id, saved.state, f"Loaded build: {saved.name}")

    def delete_build(self, key: str) -> str:
        self.store.delete(key)
        _class_id, _sep, name = key.partition(KEY_SEP)
        return f"Deleted build: {name or key}"

    def saved_builds(self) -> list[SavedBuildRef]:
        return self.store.list()

    # --- Internals ---------------------------------------------------------

    def _ensure_engine(self, class_id: str) -> AllocationEngine:
        engine = self._engines.get(class_id)
        if engine is None:
            engine = AllocationEngine(self.catalog.tree(class_id), self.config)
            self._engines[class_id] = engine
            tracker = HubLockTracker()
            tracker.prime(engine.locked_hubs())
            self._trackers[class_id] = tracker
        return engine

    def _apply_build(self, class_id: str, snapshot: AllocationState, message: str) -> tuple[bool, str]:
        if not self.catalog.has_class(class_id):
            logger.warning("ignoring build for unknown class %s", class_id)
            return False, f"Unknown class: {class_id}"

        # Class first, then allocation: dependent skills need the new tree.
        self.change_class(class_id)
        engine = self.engine
        engine.restore(snapshot)

        # Treat every hub as previously unlocked so stored points under a
        # hub the snapshot cannot afford are cascaded away.
        self._trackers[class_id].prime({hub_id: False for hub_id in engine.locked_hubs()})
        self._after_mutation()
        logger.info("%s (%d points)", message, engine.total_spent_points)
        return True, message

    def _after_mutation(self) -> None:
        self.last_cascaded_hubs = settle_hub_locks(
            self.engine, self._trackers[self.state.current_class]
        )
        if self.last_cascaded_hubs:
            logger.info("hubs locked, points removed: %s", ", ".join(self.last_cascaded_hubs))
        self._sync_state()
        self._notify()

    def _sync_state(self) -> None:
        self.state.player_level = self.engine.player_level
        self.state.max_player_level = self.engine.max_player_level

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change()
