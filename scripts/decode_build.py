"""Decode a share code or share link and print the build as JSON.

Usage:
    python -m scripts.decode_build "https://example.com/?b=eNqr..."
    python -m scripts.decode_build eNqr... --validate --catalog trees.json
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from urllib.parse import parse_qsl, urlsplit

from skilltree_planner.codec.build_codec import BuildCodec, DecodedBuild
from skilltree_planner.engine.allocation_engine import AllocationEngine
from skilltree_planner.engine.build_config import PlannerConfig
from skilltree_planner.parser.catalog_parser import load_catalog


def decode_argument(raw: str, codec: BuildCodec) -> DecodedBuild:
    """Accept either a bare share code or a URL carrying one."""
    if "?" in raw or raw.startswith(("http://", "https://")):
        params = dict(parse_qsl(urlsplit(raw).query))
        decoded = codec.decode_query(params)
        if decoded is not None:
            return decoded
    return codec.decode(raw)


def build_payload(decoded: DecodedBuild, *, validate: bool, catalog_path: Path | None) -> dict:
    state = decoded.state
    payload: dict = {
        "format": decoded.format,
        "class_id": decoded.class_id,
        "points_by_skill": dict(sorted(state.points_by_skill.items())),
        "selected_skill_by_node": dict(sorted(state.selected_skill_by_node.items())),
        "total_spent_points": state.total_spent_points,
    }
    if validate and decoded.ok:
        catalog = load_catalog(catalog_path)
        if not catalog.has_class(decoded.class_id):
            payload["validation"] = {"ok": False, "message": f"Unknown class: {decoded.class_id}"}
            return payload
        engine = AllocationEngine.from_state(state, catalog.tree(decoded.class_id))
        accepted = engine.state
        payload["validation"] = {
            "ok": accepted == state,
            "accepted_points_by_skill": dict(sorted(accepted.points_by_skill.items())),
            "accepted_selected_skill_by_node": dict(sorted(accepted.selected_skill_by_node.items())),
            "player_level": engine.player_level,
        }
    return payload


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Decode a shared build")
    parser.add_argument("build", help="Share code or full share URL")
    parser.add_argument("--validate", action="store_true", help="Replay the build through the engine")
    parser.add_argument("--catalog", help="Skill tree JSON used by --validate")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    codec = BuildCodec(PlannerConfig())
    decoded = decode_argument(args.build, codec)
    payload = build_payload(
        decoded,
        validate=args.validate,
        catalog_path=Path(args.catalog).expanduser() if args.catalog else None,
    )
    print(json.dumps(payload, indent=2))
    return 0 if decoded.ok else 1


if __name__ == "__main__":
    sys.exit(main())
