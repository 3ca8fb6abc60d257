"""Skill catalog data model: classes, trees, nodes, and skills.

The catalog is static and read-only. It is loaded once at startup by
``parser.catalog_parser`` and handed to engines/controllers, which never
modify it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class NodeType(str, Enum):
    """Closed set of catalog node kinds."""

    HUB = "Hub"
    CHOOSE_ONE = "ChooseOneSkill"
    CHOOSE_ANY = "ChooseAnySkills"
    DEFAULT = "DefaultSkills"


PASSIVE_SLOT = "none"


@dataclass(frozen=True, slots=True)
class LevelEffect:
    key: str
    value: str


@dataclass(frozen=True, slots=True)
class Skill:
    """A levelable skill. ``slot == "none"`` marks a passive."""

    id: str
    max_level: int
    slot: str = PASSIVE_SLOT
    name: str = ""
    description: str = ""
    level_descriptions: dict[int, tuple[LevelEffect, ...]] = field(default_factory=dict)

    @property
    def is_passive(self) -> bool:
        return self.slot == PASSIVE_SLOT


@dataclass(frozen=True, slots=True)
class CatalogNode:
    """A node in a class tree.

    Only Hub nodes carry a meaningful ``points_to_unlock``; skill-bearing
    nodes (ChooseOne/ChooseAny/Default) carry ``skills``.
    """

    id: str
    type: NodeType
    points_to_unlock: int = 0
    children: tuple[str, ...] = ()
    skills: tuple[Skill, ...] = ()
    parent: str | None = None
    next_hub_node: str | None = None

    @property
    def is_hub(self) -> bool:
        return self.type is NodeType.HUB

    @property
    def skill_ids(self) -> tuple[str, ...]:
        return tuple(skill.id for skill in self.skills)


@dataclass(slots=True)
class SkillTree:
    """One class tree: a start hub plus every node keyed by id."""

    class_id: str
    start_hub_id: str
    nodes: dict[str, CatalogNode]
    _skills: dict[str, Skill] = field(default_factory=dict, repr=False)
    _node_by_skill: dict[str, str] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        for node in self.nodes.values():
            for skill in node.skills:
                self._skills[skill.id] = skill
                self._node_by_skill[skill.id] = node.id

    def node(self, node_id: str) -> CatalogNode | None:
        return self.nodes.get(node_id)

    def skill(self, skill_id: str) -> Skill | None:
        return self._skills.get(skill_id)

    def node_for_skill(self, skill_id: str) -> CatalogNode | None:
        node_id = self._node_by_skill.get(skill_id)
        return self.nodes.get(node_id) if node_id is not None else None

    @property
    def skills(self) -> dict[str, Skill]:
        return dict(self._skills)

    def hubs(self) -> list[CatalogNode]:
        return [node for node in self.nodes.values() if node.is_hub]

    def hub_for_node(self, node_id: str) -> CatalogNode | None:
        """The hub listing *node_id* as a child, falling back to ``parent``."""
        for hub in self.hubs():
            if node_id in hub.children:
                return hub
        node = self.nodes.get(node_id)
        if node is not None and node.parent is not None:
            parent = self.nodes.get(node.parent)
            if parent is not None and parent.is_hub:
                return parent
        return None

    def starting_hub(self) -> CatalogNode | None:
        """The hub whose children include a DefaultSkills node."""
        for hub in self.hubs():
            if any(
                (child := self.nodes.get(child_id)) is not None
                and child.type is NodeType.DEFAULT
                for child_id in hub.children
            ):
                return hub
        return None

    def hubs_in_unlock_order(self) -> list[CatalogNode]:
        """Starting hub first, then the rest by ascending unlock threshold."""
        start = self.starting_hub()
        rest = [hub for hub in self.hubs() if start is None or hub.id != start.id]
        rest.sort(key=lambda hub: hub.points_to_unlock)
        return ([start] if start is not None else []) + rest

    def default_skill_ids(self) -> frozenset[str]:
        return frozenset(
            skill.id
            for node in self.nodes.values()
            if node.type is NodeType.DEFAULT
            for skill in node.skills
        )

    def skills_under(self, node_ids) -> tuple[list[str], list[str]]:
        """Walk ``node_ids`` and their descendants.

        Returns ``(node_ids_seen, skill_ids_seen)`` in visit order. Each node
        is visited at most once, so cyclic or shared children are safe.
        """
        seen_nodes: list[str] = []
        seen_skills: list[str] = []
        visited: set[str] = set()
        stack = list(reversed(list(node_ids)))
        while stack:
            node_id = stack.pop()
            if node_id in visited:
                continue
            visited.add(node_id)
            seen_nodes.append(node_id)
            node = self.nodes.get(node_id)
            if node is None:
                continue
            seen_skills.extend(node.skill_ids)
            stack.extend(reversed(node.children))
        return seen_nodes, seen_skills


@dataclass(slots=True)
class SkillCatalog:
    """Every class tree, in source order."""

    trees: dict[str, SkillTree]

    def class_ids(self) -> list[str]:
        return list(self.trees)

    def tree(self, class_id: str) -> SkillTree:
        try:
            return self.trees[class_id]
        except KeyError:
            raise ValueError(f"Unknown class: {class_id!r}") from None

    def has_class(self, class_id: str) -> bool:
        return class_id in self.trees

    @property
    def default_class(self) -> str:
        if not self.trees:
            raise ValueError("catalog has no classes")
        return next(iter(self.trees))
