"""Parse skill-tree JSON into typed catalog records.

Expected shape (one entry per class)::

    {
      "Hacker": {
        "startHubId": "hub_start",
        "children": {
          "hub_start": {"id": "hub_start", "type": "Hub", "children": [...]},
          "n1": {"id": "n1", "type": "ChooseOneSkill", "skills": [...]},
          ...
        }
      }
    }
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from skilltree_planner.models.catalog import (
    CatalogNode,
    LevelEffect,
    NodeType,
    PASSIVE_SLOT,
    Skill,
    SkillCatalog,
    SkillTree,
)


logger = logging.getLogger(__name__)

BUNDLED_CATALOG_PATH = Path(__file__).resolve().parents[1] / "data" / "skill_trees.json"


def _parse_level_descriptions(raw: Any) -> dict[int, tuple[LevelEffect, ...]]:
    if not isinstance(raw, dict):
        return {}
    out: dict[int, tuple[LevelEffect, ...]] = {}
    for level, rows in raw.items():
        try:
            level_num = int(level)
        except (TypeError, ValueError):
            continue
        out[level_num] = tuple(
            LevelEffect(key=str(row.get("key", "")), value=str(row.get("value", "")))
            for row in rows or []
            if isinstance(row, dict)
        )
    return out


def parse_skill(raw: dict[str, Any]) -> Skill:
    skill_id = raw.get("id")
    if not skill_id:
        raise ValueError(f"skill is missing an id: {raw!r}")
    if "maxLevel" not in raw:
        raise ValueError(f"skill {skill_id!r} is missing maxLevel")
    max_level = int(raw["maxLevel"])
    if max_level < 1:
        raise ValueError(f"skill {skill_id!r} has maxLevel {max_level}, expected >= 1")
    return Skill(
        id=str(skill_id),
        max_level=max_level,
        slot=str(raw.get("slot") or PASSIVE_SLOT),
        name=str(raw.get("name", "")),
        description=str(raw.get("description", "")),
        level_descriptions=_parse_level_descriptions(raw.get("levelDescriptions")),
    )


def parse_node(node_id: str, raw: dict[str, Any]) -> CatalogNode:
    type_tag = raw.get("type")
    try:
        node_type = NodeType(type_tag)
    except ValueError:
        raise ValueError(f"node {node_id!r} has unknown type {type_tag!r}") from None

    points_to_unlock = int(raw.get("pointsToUnlock") or 0)
    if points_to_unlock < 0:
        raise ValueError(f"node {node_id!r} has negative pointsToUnlock")

    return CatalogNode(
        id=str(raw.get("id") or node_id),
        type=node_type,
        points_to_unlock=points_to_unlock if node_type is NodeType.HUB else 0,
        children=tuple(str(c) for c in raw.get("children") or ()),
        skills=tuple(parse_skill(s) for s in raw.get("skills") or ()),
        parent=raw.get("parent"),
        next_hub_node=raw.get("nextHubNode"),
    )


def parse_tree(class_id: str, raw: dict[str, Any]) -> SkillTree:
    children = raw.get("children")
    if not isinstance(children, dict):
        raise ValueError(f"class {class_id!r} has no node mapping")
    nodes = {str(node_id): parse_node(str(node_id), node) for node_id, node in children.items()}

    start_hub_id = str(raw.get("startHubId") or "")
    if start_hub_id and start_hub_id not in nodes:
        logger.warning("class %s: startHubId %s not found in nodes", class_id, start_hub_id)
    return SkillTree(class_id=class_id, start_hub_id=start_hub_id, nodes=nodes)


def parse_catalog(payload: dict[str, Any]) -> SkillCatalog:
    """Build a SkillCatalog from the decoded JSON payload."""
    if not isinstance(payload, dict):
        raise ValueError("catalog payload must be an object keyed by class")
    trees = {str(class_id): parse_tree(str(class_id), raw) for class_id, raw in payload.items()}

    seen: dict[str, str] = {}
    for class_id, tree in trees.items():
        for skill_id in tree.skills:
            if skill_id in seen and seen[skill_id] != class_id:
                logger.warning(
                    "skill id %s appears in both %s and %s", skill_id, seen[skill_id], class_id
                )
            seen.setdefault(skill_id, class_id)
    return SkillCatalog(trees=trees)


def load_catalog(path: Path | None = None) -> SkillCatalog:
    """Load a catalog file (defaults to the bundled sample trees)."""
    source = path or BUNDLED_CATALOG_PATH
    catalog = parse_catalog(json.loads(source.read_text(encoding="utf-8")))
    logger.info("loaded %d class trees from %s", len(catalog.trees), source)
    return catalog
