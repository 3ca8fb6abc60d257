"""Build share codec: compact URL-safe strings with a legacy fallback.

Compact format (current, query key ``b``)::

    class|skillId=level,skillId=level|nodeId=skillId,...

Pairs are sorted by id so the same build always yields the same string.
The text is zlib-compressed and written as unpadded URL-safe base64.

Legacy format (read-only, query key ``build``): the same compression wrapped
around a JSON object ``{"className", "skillPoints", "selectedSkillsInNodes"}``.

Decoding never raises. Anything that is not a well-formed compact triple or
legacy object decodes to an empty build in the default class.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import zlib
from dataclasses import dataclass, field
from typing import Literal, Mapping
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from skilltree_planner.engine.allocation_engine import AllocationState
from skilltree_planner.engine.build_config import PlannerConfig


logger = logging.getLogger(__name__)

FIELD_SEP = "|"
PAIR_SEP = ","
KV_SEP = "="

# Upper bound on decompressed text; real builds are a few hundred bytes.
MAX_TEXT_BYTES = 64 * 1024

DecodeFormat = Literal["compact", "legacy", "default"]


class MalformedBuild(ValueError):
    """Raised internally when a payload cannot be parsed."""


@dataclass(slots=True)
class DecodedBuild:
    class_id: str
    state: AllocationState = field(default_factory=AllocationState)
    format: DecodeFormat = "default"

    @property
    def ok(self) -> bool:
        return self.format != "default"


# ---------------------------------------------------------------------------
# Compression
# ---------------------------------------------------------------------------


def compress_text(text: str) -> str:
    raw = zlib.compress(text.encode("utf-8"), 9)
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decompress_text(payload: str) -> str:
    token = payload.strip()
    if not token:
        raise MalformedBuild("empty payload")
    token += "=" * (-len(token) % 4)
    try:
        raw = base64.urlsafe_b64decode(token.encode("ascii"))
        inflater = zlib.decompressobj()
        data = inflater.decompress(raw, MAX_TEXT_BYTES)
        if inflater.unconsumed_tail:
            raise MalformedBuild(f"payload expands beyond {MAX_TEXT_BYTES} bytes")
        if not inflater.eof:
            raise MalformedBuild("truncated payload")
        return data.decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError, zlib.error) as exc:
        raise MalformedBuild(f"cannot decompress payload: {exc}") from exc


# ---------------------------------------------------------------------------
# Compact triple
# ---------------------------------------------------------------------------


def _check_id(value: str, what: str) -> str:
    if not value or any(sep in value for sep in (FIELD_SEP, PAIR_SEP, KV_SEP)):
        raise MalformedBuild(f"invalid {what}: {value!r}")
    return value


def _split_pairs(section: str) -> list[tuple[str, str]]:
    if not section:
        return []
    pairs: list[tuple[str, str]] = []
    for chunk in section.split(PAIR_SEP):
        key, sep, value = chunk.partition(KV_SEP)
        if not sep:
            raise MalformedBuild(f"pair without '=': {chunk!r}")
        pairs.append((key, value))
    return pairs


def format_compact(state: AllocationState, class_id: str) -> str:
    skill_pairs = PAIR_SEP.join(
        f"{_check_id(skill_id, 'skill id')}{KV_SEP}{level}"
        for skill_id, level in sorted(state.points_by_skill.items())
        if level > 0
    )
    selection_pairs = PAIR_SEP.join(
        f"{_check_id(node_id, 'node id')}{KV_SEP}{_check_id(skill_id, 'skill id')}"
        for node_id, skill_id in sorted(state.selected_skill_by_node.items())
    )
    return FIELD_SEP.join([_check_id(class_id, "class id"), skill_pairs, selection_pairs])


def parse_compact(text: str) -> tuple[str, AllocationState]:
    fields = text.split(FIELD_SEP)
    if len(fields) != 3:
        raise MalformedBuild(f"expected 3 fields, got {len(fields)}")
    class_id, skill_section, selection_section = fields
    _check_id(class_id, "class id")

    points: dict[str, int] = {}
    for skill_id, raw_level in _split_pairs(skill_section):
        _check_id(skill_id, "skill id")
        try:
            level = int(raw_level)
        except ValueError:
            raise MalformedBuild(f"level is not an integer: {raw_level!r}") from None
        if level <= 0:
            raise MalformedBuild(f"level must be positive: {skill_id}={level}")
        points[skill_id] = level

    selected: dict[str, str] = {}
    for node_id, skill_id in _split_pairs(selection_section):
        selected[_check_id(node_id, "node id")] = _check_id(skill_id, "skill id")

    return class_id, AllocationState(points_by_skill=points, selected_skill_by_node=selected)


# ---------------------------------------------------------------------------
# Legacy object
# ---------------------------------------------------------------------------


def format_legacy(state: AllocationState, class_id: str) -> str:
    return json.dumps(
        {
            "className": class_id,
            "skillPoints": dict(state.points_by_skill),
            "selectedSkillsInNodes": dict(state.selected_skill_by_node),
        }
    )


def parse_legacy(text: str) -> tuple[str, AllocationState]:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedBuild(f"legacy payload is not JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise MalformedBuild("legacy payload must be an object")

    class_id = payload.get("className")
    skill_points = payload.get("skillPoints", {})
    selections = payload.get("selectedSkillsInNodes", {})
    if not isinstance(class_id, str) or not class_id:
        raise MalformedBuild("legacy payload has no className")
    if not isinstance(skill_points, dict) or not isinstance(selections, dict):
        raise MalformedBuild("legacy payload maps are malformed")

    points: dict[str, int] = {}
    for skill_id, level in skill_points.items():
        if isinstance(level, bool) or not isinstance(level, int):
            raise MalformedBuild(f"legacy level is not an integer: {skill_id}={level!r}")
        if level > 0:
            points[str(skill_id)] = level
    selected = {str(node_id): str(skill_id) for node_id, skill_id in selections.items()}
    return class_id, AllocationState(points_by_skill=points, selected_skill_by_node=selected)


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------


class BuildCodec:
    """Encode/decode shareable builds.

    ``encode`` always writes the compact format. ``decode`` tries compact,
    then legacy, then gives up and returns the default empty build.
    """

    __slots__ = ("_config", "_default_class")

    def __init__(self, config: PlannerConfig | None = None, default_class: str = "") -> None:
        self._config = config or PlannerConfig()
        self._default_class = default_class or self._config.default_class

    @property
    def default_class(self) -> str:
        return self._default_class

    def default_build(self) -> DecodedBuild:
        return DecodedBuild(class_id=self._default_class)

    def encode(self, state: AllocationState, class_id: str) -> str:
        return compress_text(format_compact(state, class_id))

    def encode_legacy(self, state: AllocationState, class_id: str) -> str:
        """Write the verbose format older links used."""
        return compress_text(format_legacy(state, class_id))

    def decode(self, payload: str) -> DecodedBuild:
        if not isinstance(payload, str):
            logger.warning("ignoring non-text build payload of type %s", type(payload).__name__)
            return self.default_build()
        try:
            text = decompress_text(payload)
        except MalformedBuild as exc:
            logger.warning("ignoring malformed build link: %s", exc)
            return self.default_build()

        try:
            class_id, state = parse_compact(text)
            return DecodedBuild(class_id=class_id, state=state, format="compact")
        except MalformedBuild as compact_exc:
            compact_error = compact_exc

        try:
            class_id, state = parse_legacy(text)
            return DecodedBuild(class_id=class_id, state=state, format="legacy")
        except MalformedBuild as legacy_exc:
            logger.warning(
                "ignoring malformed build link (compact: %s; legacy: %s)",
                compact_error,
                legacy_exc,
            )
            return self.default_build()

    def decode_query(self, params: Mapping[str, str]) -> DecodedBuild | None:
        """Decode whichever build parameter is present, or None if neither."""
        for key in (self._config.share_query_key, self._config.legacy_query_key):
            value = params.get(key)
            if value:
                return self.decode(value)
        return None

    def share_url(self, base_url: str, state: AllocationState, class_id: str) -> str:
        parts = urlsplit(base_url)
        query = [
            (k, v)
            for k, v in parse_qsl(parts.query, keep_blank_values=True)
            if k not in self._build_keys()
        ]
        query.append((self._config.share_query_key, self.encode(state, class_id)))
        return urlunsplit(parts._replace(query=urlencode(query)))

    def strip_build_params(self, url: str) -> str:
        """Remove build parameters so a reload doesn't import again."""
        parts = urlsplit(url)
        query = [
            (k, v)
            for k, v in parse_qsl(parts.query, keep_blank_values=True)
            if k not in self._build_keys()
        ]
        return urlunsplit(parts._replace(query=urlencode(query)))

    def _build_keys(self) -> set[str]:
        return {self._config.share_query_key, self._config.legacy_query_key}
