"""Preview server for popgate.

Serves a built site and runs the popup gate for every open page:
- Injects the gate client script into HTML responses.
- Rejects directory listings and missing paths with a 404 (serving 404.html when present).
- Runs one gate chain per page over a websocket; closing the page cancels pending popups.
- Watches popgate.yaml and reloads popups plus open pages on change.

Key classes:
- PreviewServer: Main class for running the preview server.
- PageSession: Gate chain and wire protocol for one open page.
- WebSocketOverlay: Overlay renderer that asks the page to show a popup.
- _GateHandler: HTTP request handler that injects the gate script and enforces 404s.
- _ConfigChangeHandler: File system event handler for config reloads.
"""

from __future__ import annotations

import asyncio
import functools
import json
import threading
import time
from collections.abc import Callable
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any

import websockets
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer
from websockets.exceptions import ConnectionClosed

from .config import CONFIG_FILENAME, ConfigError, PopupConfig, load_config
from .gate import DisplayGate, build_chain
from .html_utils import inject_before_body_close
from .overlay import cornerpopup_options, render_client_script
from .scheduling import AsyncioScheduler
from .stores import CookieMarkerStore


class _GateHandler(SimpleHTTPRequestHandler):
    """HTTP request handler that injects the gate script into HTML pages.

    Attributes:
        gate_script: Client script connecting the page to the gate websocket.
    """

    gate_script = str(render_client_script(4001))

    def end_headers(self):
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        super().end_headers()

    def list_directory(self, path):  # pragma: no cover - exercised via send_head
        # Never expose directory listings; treat as missing content.
        return self._serve_404()

    def _send_html(self, status: int, content: str) -> None:
        encoded = inject_before_body_close(content, self.gate_script).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(encoded)

    def _serve_404(self):
        """Serve 404.html (when present) with the gate script and a 404 status."""
        error_page = Path(self.directory) / "404.html"
        if error_page.exists():
            self._send_html(404, error_page.read_text(encoding="utf-8"))
            return None
        self.send_error(404, "File not found")
        return None

    def send_head(self):
        path = self.translate_path(self.path)
        path_obj = Path(path)
        if path_obj.is_dir():
            index_path = path_obj / "index.html"
            if index_path.exists():
                path = str(index_path)
                path_obj = index_path
            else:
                return self._serve_404()
        elif not path_obj.exists():
            return self._serve_404()

        if path.endswith(".html"):
            self._send_html(200, path_obj.read_text(encoding="utf-8"))
            return None
        return super().send_head()


class WebSocketOverlay:
    """Overlay renderer that sends popups to a page.

    The page reports back with a `shown` message once the widget is visible;
    only then does the pending callback run, and only once.
    """

    def __init__(self, send: Callable[[dict[str, Any]], None]):
        self._send = send
        self._pending: dict[str, Callable[[], None]] = {}

    def show(self, popup: PopupConfig, on_shown: Callable[[], None]) -> None:
        self._pending[popup.key] = on_shown
        self._send({"type": "popup", "key": popup.key, "options": cornerpopup_options(popup)})

    def shown(self, key: str) -> None:
        callback = self._pending.pop(key, None)
        if callback is not None:
            callback()


class PageSession:
    """One open page: its marker store, timers and gate chain.

    Attributes:
        websocket: Connection to the page.
        popups: Popup chain for this page, fixed at connection time.
        gate: Head of the gate chain once the page reported ready.
        overlay: Renderer delivering popups to this page.
    """

    def __init__(self, websocket, popups: list[PopupConfig]):
        self.websocket = websocket
        self.popups = list(popups)
        self.gate: DisplayGate | None = None
        self.overlay = WebSocketOverlay(self.send)
        self._ready = False
        self._tasks: set[asyncio.Task] = set()

    async def run(self) -> None:
        try:
            async for raw in self.websocket:
                self.handle_message(raw)
        except ConnectionClosed:
            pass
        finally:
            self.close()

    def handle_message(self, raw: str | bytes) -> None:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            return
        if not isinstance(message, dict):
            return
        kind = message.get("type")
        if kind == "ready":
            cookie = message.get("cookie")
            self._on_ready(cookie if isinstance(cookie, str) else None)
        elif kind == "shown" and isinstance(message.get("key"), str):
            self.overlay.shown(message["key"])

    def _on_ready(self, cookie: str | None) -> None:
        if self._ready:
            return
        self._ready = True
        store = CookieMarkerStore(cookie, on_set=self._deliver_marker)
        self.gate = build_chain(self.popups, store, AsyncioScheduler(), self.overlay)
        if self.gate is not None:
            self.gate.on_page_ready()

    def _deliver_marker(self, key: str, assignment: str) -> None:
        self.send({"type": "marker", "key": key, "cookie": assignment})

    def send(self, message: dict[str, Any]) -> None:
        task = asyncio.get_running_loop().create_task(self._async_send(json.dumps(message)))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _async_send(self, text: str) -> None:
        try:
            await self.websocket.send(text)
        except ConnectionClosed:
            # Page already gone; nothing left to tell it.
            pass

    def close(self) -> None:
        if self.gate is not None:
            self.gate.unload()


class PreviewServer:
    """Preview server with per-page popup gating.

    Attributes:
        project_root: Root directory of the project.
        config: Loaded configuration.
        site_dir: Directory of the built site being served.
        popups: Current popup chain, replaced on config reload.
        ws_port: Port for WebSocket connections.
        http_port: Port for HTTP server.
        _observer: File system observer for config changes.
        _sessions: Open page sessions.
        _loop: Event loop for WebSocket handling and popup timers.
    """

    def __init__(self, project_root: Path, http_port: int | None = None, ws_port: int | None = None):
        """Initialize the preview server.

        Args:
            project_root: Root directory of the project.
            http_port: Optional override for HTTP port.
            ws_port: Optional override for WebSocket port.
        """
        self.project_root = project_root
        self.config = load_config(project_root)
        self.site_dir = project_root / self.config["site_dir"]
        self.popups: list[PopupConfig] = self.config["popups"]
        base_http = int(http_port or self.config["port"])
        resolved_ws = (
            ws_port
            if ws_port is not None
            else (base_http + 1 if http_port is not None else self.config["ws_port"])
        )
        self.ws_port = resolved_ws
        self.http_port = base_http
        self._gate_script = str(render_client_script(self.ws_port))
        self._observer: Observer | None = None
        self._sessions: set[PageSession] = set()
        self._loop = asyncio.new_event_loop()
        self._last_reload_at = 0.0
        self._debounce_seconds = 0.05

    def start(self) -> None:  # pragma: no cover - integration path
        threading.Thread(target=self._start_http, daemon=True).start()
        threading.Thread(target=self._start_ws, daemon=True).start()
        self._start_watcher()
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            self.stop()

    def stop(self) -> None:
        if self._observer:
            self._observer.stop()
            self._observer.join()
        self._loop.call_soon_threadsafe(self._loop.stop)

    def _start_http(self) -> None:  # pragma: no cover - integration path
        handler_cls = type(
            "_GateHandlerWithPort",
            (_GateHandler,),
            {"gate_script": self._gate_script},
        )
        handler = functools.partial(handler_cls, directory=str(self.site_dir))
        httpd = ThreadingHTTPServer(("", self.http_port), handler)
        print(f"Serving {self.site_dir} at http://localhost:{self.http_port}")
        httpd.serve_forever()

    def _start_ws(self) -> None:  # pragma: no cover - integration path
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_until_complete(self._run_ws_server())
        except OSError as exc:
            print(f"WebSocket server failed to start (port {self.ws_port}): {exc}")
            return

    async def _run_ws_server(self) -> None:  # pragma: no cover - integration path
        async with websockets.serve(self._ws_handler, "0.0.0.0", self.ws_port):
            await asyncio.Future()  # Run forever

    async def _ws_handler(self, websocket):
        session = PageSession(websocket, self.popups)
        self._sessions.add(session)
        try:
            await session.run()
        finally:
            self._sessions.discard(session)

    def reload_config(self) -> bool:
        """Re-read popgate.yaml and reload open pages.

        Returns:
            True if the new configuration was applied.
        """
        now = time.time()
        if (now - self._last_reload_at) < self._debounce_seconds:
            return False
        self._last_reload_at = now
        try:
            config = load_config(self.project_root)
        except ConfigError as exc:
            print(f"Config reload failed; keeping previous popups: {exc.message}")
            return False
        self.config = config
        self.popups = config["popups"]
        print(f"Config reloaded ({len(self.popups)} popups)")
        self._broadcast_reload()
        return True

    def _broadcast_reload(self):
        message = json.dumps({"type": "reload"})
        asyncio.run_coroutine_threadsafe(self._async_broadcast(message), self._loop)

    async def _async_broadcast(self, message: str):
        stale = set()
        for session in list(self._sessions):
            try:
                await session.websocket.send(message)
            except Exception:
                stale.add(session)
        for session in stale:
            self._sessions.discard(session)

    def _start_watcher(self) -> None:
        handler = _ConfigChangeHandler(self)
        observer = Observer()
        observer.schedule(handler, str(self.project_root), recursive=False)
        observer.start()
        self._observer = observer


class _ConfigChangeHandler(FileSystemEventHandler):
    def __init__(self, server: PreviewServer):
        super().__init__()
        self.server = server

    def on_any_event(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).name != CONFIG_FILENAME:
            return
        self.server.reload_config()
