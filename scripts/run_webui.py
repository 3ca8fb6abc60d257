"""Run the web UI backed by a live planner runtime."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from urllib.parse import parse_qs, urlsplit

from skilltree_planner.engine.build_config import PlannerConfig
from skilltree_planner.webui.server import serve


def main() -> None:
    parser = argparse.ArgumentParser(description="Run web UI")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=4173)
    parser.add_argument("--no-open", action="store_true", help="Do not open a browser tab")
    parser.add_argument("--catalog", help="Skill tree JSON to load (default: bundled trees)")
    parser.add_argument("--store", help="Saved-build JSON file (default: per-user store)")
    parser.add_argument("--build", help="Share code or link to import on startup")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    build_link = args.build
    if build_link and "?" in build_link:
        build_link = _code_from_link(build_link)

    serve(
        host=args.host,
        port=args.port,
        open_browser=not args.no_open,
        catalog_path=Path(args.catalog).expanduser() if args.catalog else None,
        store_path=Path(args.store).expanduser() if args.store else None,
        build_link=build_link,
    )


def _code_from_link(link: str, config: PlannerConfig | None = None) -> str:
    config = config or PlannerConfig()
    params = parse_qs(urlsplit(link).query)
    for key in (config.share_query_key, config.legacy_query_key):
        if params.get(key):
            return params[key][0]
    return link


if __name__ == "__main__":
    main()
