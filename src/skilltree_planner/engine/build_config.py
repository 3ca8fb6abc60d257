"""Configuration knobs for the allocation engine and build sharing.

Defaults match the reference planner: 30 levels, compact share links under
``?b=`` with the older verbose format still accepted under ``?build=``.
"""

from dataclasses import dataclass


@dataclass(slots=True)
class PlannerConfig:
    """Tuneable parameters that aren't stored in the catalog."""

    max_player_level: int = 30      # Budget is max_player_level - 1 points
    share_query_key: str = "b"      # Compact codec
    legacy_query_key: str = "build" # Verbose JSON codec, read-only
    store_namespace: str = "skillTreeBuilds"
    default_class: str = ""         # Empty = first class in the catalog

    @property
    def point_budget(self) -> int:
        return self.max_player_level - 1
