"""Export planner state for the web UI runtime."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from skilltree_planner.models.catalog import CatalogNode, NodeType, SkillTree
from skilltree_planner.ui.controllers.build_controller import BuildController


def _skill_rows(build: BuildController, node: CatalogNode, hub_locked: bool) -> list[dict[str, Any]]:
    rows = []
    for skill in node.skills:
        rows.append(
            {
                "id": skill.id,
                "name": skill.name or skill.id,
                "description": skill.description,
                "slot": skill.slot,
                "passive": skill.is_passive,
                "max_level": int(skill.max_level),
                "level": int(build.level(skill.id)),
                "display_level": int(build.display_level(skill.id)),
                "choice_locked": build.is_choice_locked(node.id, skill.id),
                "can_add": (not hub_locked) and build.can_add_point(skill.id),
                "level_descriptions": {
                    str(level): [{"key": e.key, "value": e.value} for e in effects]
                    for level, effects in sorted(skill.level_descriptions.items())
                },
            }
        )
    return rows


def _node_payload(build: BuildController, node: CatalogNode, hub_locked: bool) -> dict[str, Any]:
    return {
        "id": node.id,
        "type": node.type.value,
        "selection": build.engine.selection(node.id) if node.type is NodeType.CHOOSE_ONE else None,
        "skills": _skill_rows(build, node, hub_locked),
    }


def _hub_rows(build: BuildController, tree: SkillTree) -> list[dict[str, Any]]:
    rows = []
    for hub in tree.hubs_in_unlock_order():
        locked = build.is_hub_locked(hub.id)
        children = [tree.node(child_id) for child_id in hub.children]
        nodes = [c for c in children if c is not None]
        # Passive-only nodes render after active ones.
        nodes.sort(key=lambda n: bool(n.skills) and n.skills[0].is_passive)
        rows.append(
            {
                "id": hub.id,
                "points_to_unlock": int(hub.points_to_unlock),
                "locked": locked,
                "is_start": any(n.type is NodeType.DEFAULT for n in nodes),
                "nodes": [_node_payload(build, n, locked) for n in nodes],
            }
        )
    return rows


def build_webui_state_from_controller(build: BuildController) -> dict[str, Any]:
    """Build a current snapshot from the live controller."""
    player_level, max_level, spent, remaining = build.summary()
    snapshot = build.engine.state
    return {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "app": {
            "banner_title": build.state.banner_title,
            "current_class": build.current_class,
            "classes": build.catalog.class_ids(),
            "max_player_level": int(max_level),
        },
        "allocation": {
            "player_level": int(player_level),
            "total_spent_points": int(spent),
            "remaining_points": int(remaining),
            "points_by_skill": dict(sorted(snapshot.points_by_skill.items())),
            "selected_skill_by_node": dict(sorted(snapshot.selected_skill_by_node.items())),
            "last_cascaded_hubs": list(build.last_cascaded_hubs),
        },
        "hubs": _hub_rows(build, build.tree),
        "saved_builds": [
            {"name": ref.name, "class_id": ref.class_id, "key": ref.key}
            for ref in build.saved_builds()
        ],
    }
