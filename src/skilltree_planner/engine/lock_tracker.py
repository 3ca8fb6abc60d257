"""Hub lock edge detection.

Hub lock status is derived from the engine's total. This tracker remembers
the last observed status per hub so the orchestration layer can react only
to unlocked -> locked transitions.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from skilltree_planner.engine.allocation_engine import AllocationEngine


@dataclass(slots=True)
class HubLockTracker:
    """Remembers the previous lock status of every hub."""

    last_locked_by_hub: dict[str, bool] = field(default_factory=dict)

    def prime(self, locked_by_hub: dict[str, bool]) -> None:
        """Record a baseline without reporting edges."""
        self.last_locked_by_hub = dict(locked_by_hub)

    def update(self, locked_by_hub: dict[str, bool]) -> list[str]:
        """Store the new status and return hubs that just became locked.

        Hubs seen for the first time have no previous value and never
        report an edge.
        """
        newly_locked = [
            hub_id
            for hub_id, locked in locked_by_hub.items()
            if locked and self.last_locked_by_hub.get(hub_id, True) is False
        ]
        self.last_locked_by_hub = dict(locked_by_hub)
        return newly_locked


def settle_hub_locks(engine: AllocationEngine, tracker: HubLockTracker) -> list[str]:
    """Cascade point removal until no hub changes lock state.

    A cascade lowers the total, which can lock further hubs, so this loops
    until the tracker reports no new edge. Returns every hub that locked,
    in the order the cascades ran.
    """
    cascaded: list[str] = []
    tree = engine.tree
    while True:
        edges = tracker.update(engine.locked_hubs())
        if not edges:
            return cascaded
        for hub_id in edges:
            hub = tree.node(hub_id)
            if hub is not None:
                engine.remove_points_for_hub(hub.children, tree)
            cascaded.append(hub_id)
