"""Named build persistence in a local JSON document.

All saved builds live in one JSON file under a fixed namespace::

    {
      "skillTreeBuilds": {
        "Hacker:glass cannon": {
          "name": "glass cannon",
          "className": "Hacker",
          "skillPoints": {"hacker_overclock": 3},
          "selectedSkillsInNodes": {"hacker_choice_1": "hacker_overclock"},
          "timestamp": "2024-05-01T12:00:00+00:00"
        }
      }
    }

Keys are ``class:name``. Older files keyed entries by bare ``name``; those
stay readable but only when no class-qualified entry matches.

Storage failures (unreadable file, disk full, permissions) never propagate:
reads degrade to an empty collection and writes report ``stored=False``.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from skilltree_planner.engine.allocation_engine import AllocationState
from skilltree_planner.engine.build_config import PlannerConfig


logger = logging.getLogger(__name__)

KEY_SEP = ":"


def default_store_path() -> Path:
    env_path = os.environ.get("SKILLTREE_STORE")
    if env_path:
        return Path(env_path).expanduser()
    return Path.home() / ".local/share/skilltree-planner/builds.json"


def build_key(name: str, class_id: str) -> str:
    return f"{class_id}{KEY_SEP}{name}"


@dataclass(slots=True)
class SaveResult:
    overwritten: bool
    stored: bool = True


@dataclass(frozen=True, slots=True)
class SavedBuildRef:
    """Listing row: enough to show and load an entry."""

    name: str
    class_id: str
    key: str


@dataclass(slots=True)
class SavedBuild:
    name: str
    class_id: str
    state: AllocationState
    timestamp: str
    key: str = ""


def _record_from_state(name: str, class_id: str, state: AllocationState) -> dict[str, Any]:
    return {
        "name": name,
        "className": class_id,
        "skillPoints": {k: int(v) for k, v in state.points_by_skill.items() if v > 0},
        "selectedSkillsInNodes": dict(state.selected_skill_by_node),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def _split_key(key: str) -> tuple[str, str]:
    class_id, sep, name = key.partition(KEY_SEP)
    if not sep:
        return "", key
    return class_id, name


def _build_from_record(key: str, record: Any) -> SavedBuild | None:
    if not isinstance(record, dict):
        logger.warning("skipping saved build %s: record is not an object", key)
        return None
    key_class, key_name = _split_key(key)
    points = record.get("skillPoints") or {}
    selected = record.get("selectedSkillsInNodes") or {}
    if not isinstance(points, dict) or not isinstance(selected, dict):
        logger.warning("skipping saved build %s: malformed allocation maps", key)
        return None
    try:
        state = AllocationState(
            points_by_skill={str(k): int(v) for k, v in points.items() if int(v) > 0},
            selected_skill_by_node={str(k): str(v) for k, v in selected.items()},
        )
    except (TypeError, ValueError, OverflowError):
        logger.warning("skipping saved build %s: non-integer level", key)
        return None
    return SavedBuild(
        name=str(record.get("name") or key_name),
        class_id=str(record.get("className") or key_class),
        state=state,
        timestamp=str(record.get("timestamp", "")),
        key=key,
    )


class BuildStore:
    """Read-modify-write access to the saved-build collection."""

    def __init__(self, path: Path | None = None, config: PlannerConfig | None = None) -> None:
        self.path = path or default_store_path()
        self._namespace = (config or PlannerConfig()).store_namespace

    # --- Raw document ------------------------------------------------------

    def _read_document(self) -> dict[str, Any]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except UnicodeDecodeError as exc:
            logger.warning("build store %s is not valid UTF-8: %s", self.path, exc)
            return {}
        except OSError as exc:
            logger.warning("build store %s is unavailable: %s", self.path, exc)
            return {}
        try:
            doc = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as exc:
            logger.warning("build store %s is not valid JSON: %s", self.path, exc)
            return {}
        return doc if isinstance(doc, dict) else {}

    def _read_entries(self) -> dict[str, Any]:
        entries = self._read_document().get(self._namespace, {})
        return entries if isinstance(entries, dict) else {}

    def _write_entries(self, entries: dict[str, Any]) -> bool:
        doc = self._read_document()
        doc[self._namespace] = entries
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(json.dumps(doc, indent=2, sort_keys=True), encoding="utf-8")
            tmp.replace(self.path)
        except OSError as exc:
            logger.warning("could not write build store %s: %s", self.path, exc)
            return False
        return True

    # --- Public API --------------------------------------------------------

    def save(self, name: str, class_id: str, state: AllocationState) -> SaveResult:
        key = build_key(name, class_id)
        entries = self._read_entries()
        overwritten = key in entries
        entries[key] = _record_from_state(name, class_id, state)
        stored = self._write_entries(entries)
        if stored:
            logger.info("saved build %s (overwritten=%s)", key, overwritten)
        return SaveResult(overwritten=overwritten, stored=stored)

    def exists(self, name: str, class_id: str) -> bool:
        return build_key(name, class_id) in self._read_entries()

    def load(self, name_or_key: str, class_id: str | None = None) -> SavedBuild | None:
        """Find a build by name (with class) or by full key.

        Lookup order: ``class:name`` (when *class_id* is given), the exact
        key, then a legacy bare-name key derived from a qualified key. An
        argument that is already qualified is tried as an exact key first.
        """
        entries = self._read_entries()
        candidates: list[str] = []
        if KEY_SEP in name_or_key:
            candidates.append(name_or_key)
        if class_id:
            candidates.append(build_key(name_or_key, class_id))
        if name_or_key not in candidates:
            candidates.append(name_or_key)
        _key_class, bare_name = _split_key(name_or_key)
        candidates.append(bare_name)

        for key in candidates:
            if key in entries:
                build = _build_from_record(key, entries[key])
                if build is not None:
                    return build
        return None

    def list(self) -> list[SavedBuildRef]:
        rows: list[SavedBuildRef] = []
        for key, record in self._read_entries().items():
            key_class, key_name = _split_key(key)
            if isinstance(record, dict):
                name = str(record.get("name") or key_name)
                class_id = str(record.get("className") or key_class)
            else:
                name, class_id = key_name, key_class
            rows.append(SavedBuildRef(name=name, class_id=class_id, key=key))
        rows.sort(key=lambda row: (row.class_id, row.name.lower()))
        return rows

    def delete(self, key: str) -> None:
        entries = self._read_entries()
        if key not in entries:
            return
        del entries[key]
        if self._write_entries(entries):
            logger.info("deleted build %s", key)
