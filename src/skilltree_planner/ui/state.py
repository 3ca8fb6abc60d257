"""Shared UI state and lightweight app metadata."""

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(slots=True)
class DataSourceState:
    """Tracks where catalog and saved builds are read from."""

    catalog_path: Path | None = None
    store_path: Path | None = None


@dataclass(slots=True)
class UiState:
    """Top-level app state used by controllers and views."""

    current_class: str = ""
    player_level: int = 1
    max_player_level: int = 30
    banner_title: str = "Skill Tree Planner"
    data_source: DataSourceState = field(default_factory=DataSourceState)
