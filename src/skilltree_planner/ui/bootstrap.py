"""Bootstrap helpers for loading planner data into UI runtime state."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

from skilltree_planner.codec.build_codec import BuildCodec
from skilltree_planner.engine.build_config import PlannerConfig
from skilltree_planner.models.catalog import SkillCatalog
from skilltree_planner.parser.catalog_parser import BUNDLED_CATALOG_PATH, load_catalog
from skilltree_planner.storage.build_store import BuildStore, default_store_path
from skilltree_planner.ui.state import DataSourceState, UiState


def _env_catalog_path() -> Path | None:
    raw = os.environ.get("SKILLTREE_CATALOG")
    if not raw:
        return None
    return Path(raw).expanduser()


@dataclass(slots=True)
class PlannerSession:
    """Runtime objects needed by controllers."""

    catalog: SkillCatalog
    store: BuildStore
    codec: BuildCodec
    config: PlannerConfig


def bootstrap_default_session(
    catalog_path: Path | None = None,
    store_path: Path | None = None,
    config: PlannerConfig | None = None,
) -> tuple[PlannerSession, UiState]:
    """Load the catalog and open the build store.

    Explicit paths win over ``SKILLTREE_CATALOG`` / ``SKILLTREE_STORE``,
    which win over the bundled sample trees and the per-user store file.
    """
    cfg = config or PlannerConfig()
    resolved_catalog = catalog_path or _env_catalog_path() or BUNDLED_CATALOG_PATH
    resolved_store = store_path or default_store_path()

    catalog = load_catalog(resolved_catalog)
    default_class = cfg.default_class if catalog.has_class(cfg.default_class) else catalog.default_class

    session = PlannerSession(
        catalog=catalog,
        store=BuildStore(resolved_store, cfg),
        codec=BuildCodec(cfg, default_class=default_class),
        config=cfg,
    )
    state = UiState(
        current_class=default_class,
        max_player_level=cfg.max_player_level,
        data_source=DataSourceState(catalog_path=resolved_catalog, store_path=resolved_store),
    )
    return session, state
