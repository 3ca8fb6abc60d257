"""Web UI serving utilities with a live planner runtime.

The JSON API is served from here. Static front-end files are not shipped with
the package: drop them into a top-level ``webui/`` directory (or pass another
*directory* to :func:`make_server`). Without an ``index.html`` there, requests
for the root page are redirected to ``/api/state``.
"""

from __future__ import annotations

import json
import logging
import threading
import webbrowser
from dataclasses import dataclass
from functools import partial
from http import HTTPStatus
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from urllib.parse import parse_qsl, urlsplit

from skilltree_planner.engine.build_config import PlannerConfig
from skilltree_planner.ui.bootstrap import bootstrap_default_session
from skilltree_planner.ui.controllers.build_controller import BuildController
from skilltree_planner.webui.export_state import build_webui_state_from_controller


logger = logging.getLogger(__name__)

REPO_ROOT = Path(__file__).resolve().parents[3]
WEBUI_DIR = REPO_ROOT / "webui"


@dataclass(slots=True)
class ActionResult:
    ok: bool
    message: str | None = None


class PlannerRuntime:
    """Live, mutable planner runtime backing web UI API requests."""

    def __init__(
        self,
        *,
        catalog_path: Path | None = None,
        store_path: Path | None = None,
        config: PlannerConfig | None = None,
    ) -> None:
        session, state = bootstrap_default_session(catalog_path, store_path, config)
        self.session = session
        self.state = state
        self.build = BuildController(
            catalog=session.catalog,
            store=session.store,
            state=state,
            config=session.config,
            codec=session.codec,
        )
        self._lock = threading.RLock()

    def snapshot(self) -> dict:
        with self._lock:
            return build_webui_state_from_controller(self.build)

    def import_from_url(self, url: str) -> tuple[ActionResult | None, str]:
        """Import a build carried in *url*'s query string.

        Returns ``(result, clean_url)``; ``result`` is None when the URL has
        no build parameter. ``clean_url`` has build parameters removed.
        """
        with self._lock:
            params = dict(parse_qsl(urlsplit(url).query, keep_blank_values=True))
            ok, message = self.build.import_query(params)
            if message is None:
                return None, url
            return ActionResult(ok=ok, message=message), self.session.codec.strip_build_params(url)

    def apply(self, path: str, payload: dict) -> ActionResult:
        with self._lock:
            if path == "/api/points/add":
                self.build.add_point(str(payload.get("skill_id", "")))
                return ActionResult(ok=True)
            if path == "/api/points/remove":
                self.build.remove_point(str(payload.get("skill_id", "")))
                return ActionResult(ok=True)
            if path == "/api/choice/select":
                return self._action_select(payload)
            if path == "/api/reset":
                self.build.reset()
                return ActionResult(ok=True)
            if path == "/api/class":
                return self._action_class(payload)
            if path == "/api/share":
                return self._action_share(payload)
            if path == "/api/import":
                ok, message = self.build.import_shared(str(payload.get("code", "")))
                return ActionResult(ok=ok, message=message)
            if path == "/api/builds/save":
                ok, message = self.build.save_build(str(payload.get("name", "")))
                return ActionResult(ok=ok, message=message)
            if path == "/api/builds/load":
                ok, message = self.build.load_build(str(payload.get("key", "")))
                return ActionResult(ok=ok, message=message)
            if path == "/api/builds/delete":
                return ActionResult(ok=True, message=self.build.delete_build(str(payload.get("key", ""))))
            return ActionResult(ok=False, message=f"Unknown API endpoint: {path}")

    def _action_select(self, payload: dict) -> ActionResult:
        node_id = str(payload.get("node_id", ""))
        skill_id = str(payload.get("skill_id", ""))
        if not node_id or not skill_id:
            return ActionResult(ok=False, message="node_id and skill_id are required")
        self.build.select_node_choice(node_id, skill_id)
        return ActionResult(ok=True)

    def _action_class(self, payload: dict) -> ActionResult:
        class_id = str(payload.get("class_id", ""))
        try:
            self.build.change_class(class_id, preserve_skills=bool(payload.get("preserve_skills", False)))
        except ValueError as exc:
            return ActionResult(ok=False, message=str(exc))
        return ActionResult(ok=True)

    def _action_share(self, payload: dict) -> ActionResult:
        base_url = str(payload.get("base_url", "")).strip()
        if not base_url:
            return ActionResult(ok=True, message=self.build.share_code())
        return ActionResult(ok=True, message=self.build.share_url(base_url))


class WebUiRequestHandler(SimpleHTTPRequestHandler):
    """Static-file handler with JSON API routes."""

    def __init__(self, *args, runtime: PlannerRuntime, directory: str, **kwargs):
        self._runtime = runtime
        super().__init__(*args, directory=directory, **kwargs)

    def _send_json(self, payload: dict, status: int = HTTPStatus.OK) -> None:
        body = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Cache-Control", "no-store")
        self.end_headers()
        self.wfile.write(body)

    def _redirect(self, location: str) -> None:
        self.send_response(HTTPStatus.SEE_OTHER)
        self.send_header("Location", location)
        self.send_header("Content-Length", "0")
        self.send_header("Cache-Control", "no-store")
        self.end_headers()

    def do_GET(self) -> None:  # noqa: N802
        parts = urlsplit(self.path)
        if parts.path in {"/api/state", "/state.json"}:
            self._send_json(self._runtime.snapshot())
            return
        if parts.query:
            result, clean = self._runtime.import_from_url(self.path)
            if result is not None and result.ok:
                # Drop the build parameter so a reload doesn't import again.
                self._redirect(clean or "/")
                return
            if result is not None:
                logger.warning("build link ignored: %s", result.message)
        if parts.path in {"/", "/index.html"} and not (Path(self.directory) / "index.html").exists():
            self._redirect("/api/state")
            return
        super().do_GET()

    def do_POST(self) -> None:  # noqa: N802
        path = urlsplit(self.path).path
        if not path.startswith("/api/"):
            self._send_json({"ok": False, "message": "Unknown endpoint"}, status=HTTPStatus.NOT_FOUND)
            return

        try:
            length = int(self.headers.get("Content-Length", "0"))
        except ValueError:
            length = 0

        raw = self.rfile.read(length) if length > 0 else b"{}"
        try:
            payload = json.loads(raw.decode("utf-8") if raw else "{}")
        except (json.JSONDecodeError, UnicodeDecodeError):
            self._send_json({"ok": False, "message": "Invalid JSON body"}, status=HTTPStatus.BAD_REQUEST)
            return

        if not isinstance(payload, dict):
            self._send_json({"ok": False, "message": "JSON body must be an object"}, status=HTTPStatus.BAD_REQUEST)
            return

        result = self._runtime.apply(path, payload)
        response = {
            "ok": bool(result.ok),
            "message": result.message,
            "state": self._runtime.snapshot(),
        }
        status = HTTPStatus.OK if result.ok else HTTPStatus.BAD_REQUEST
        self._send_json(response, status=status)


def make_server(
    host: str,
    port: int,
    directory: Path = WEBUI_DIR,
    *,
    runtime: PlannerRuntime | None = None,
) -> ThreadingHTTPServer:
    active_runtime = runtime or PlannerRuntime()
    handler = partial(
        WebUiRequestHandler,
        directory=str(directory),
        runtime=active_runtime,
    )
    server = ThreadingHTTPServer((host, port), handler)
    server.planner_runtime = active_runtime  # type: ignore[attr-defined]
    return server


def serve(
    *,
    host: str = "127.0.0.1",
    port: int = 4173,
    open_browser: bool = True,
    catalog_path: Path | None = None,
    store_path: Path | None = None,
    build_link: str | None = None,
) -> None:
    runtime = PlannerRuntime(catalog_path=catalog_path, store_path=store_path)
    if build_link:
        _ok, message = runtime.build.import_shared(build_link)
        print(message)
    server = make_server(host, port, WEBUI_DIR, runtime=runtime)
    page = "index.html" if (WEBUI_DIR / "index.html").exists() else "api/state"
    url = f"http://{host}:{port}/{page}"
    state = runtime.snapshot()
    print(f"Class: {state['app']['current_class']} | level {state['allocation']['player_level']}")
    print(f"Saved builds: {runtime.session.store.path}")
    print(f"Serving {WEBUI_DIR} at {url}")

    if open_browser:
        webbrowser.open(url)

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()
