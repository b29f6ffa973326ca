"""
Development server.

Serves the built site, injects the live-reload client into HTML pages and
exposes the reload channel as a websocket.
"""

from pathlib import Path

import uvicorn
from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse, HTMLResponse, Response

from assetflow_engine.devserver.hub import ReloadHub
from assetflow_shared.infra.observability import get_logger

logger = get_logger(__name__)

LIVERELOAD_PATH = "/__livereload"
CLIENT_SCRIPT_PATH = "/__livereload.js"
CLIENT_TAG = f'<script src="{CLIENT_SCRIPT_PATH}"></script>'

CLIENT_SCRIPT = """\
(function () {
  var proto = location.protocol === "https:" ? "wss://" : "ws://";
  function refreshStylesheets(path) {
    var links = document.querySelectorAll('link[rel="stylesheet"]');
    for (var i = 0; i < links.length; i++) {
      var href = links[i].getAttribute("href").split("?")[0];
      if (href.replace(/^\\//, "") === path.replace(/^\\//, "")) {
        links[i].setAttribute("href", href + "?v=" + Date.now());
      }
    }
  }
  function showError(pipeline, message) {
    var box = document.getElementById("__assetflow_error");
    if (!box) {
      box = document.createElement("pre");
      box.id = "__assetflow_error";
      box.style.cssText = "position:fixed;bottom:0;left:0;right:0;margin:0;padding:12px;" +
        "background:#300;color:#fbb;font:12px monospace;z-index:2147483647;white-space:pre-wrap";
      document.body.appendChild(box);
    }
    box.textContent = "[" + pipeline + "] " + message;
  }
  function connect() {
    var ws = new WebSocket(proto + location.host + "%(path)s");
    ws.onmessage = function (event) {
      var msg = JSON.parse(event.data);
      if (msg.type === "reload") {
        location.reload();
      } else if (msg.type === "inject" && msg.kind === "css") {
        refreshStylesheets(msg.path);
      } else if (msg.type === "error") {
        showError(msg.pipeline, msg.message);
      }
    };
    ws.onclose = function () {
      setTimeout(connect, 1000);
    };
  }
  connect();
})();
""" % {"path": LIVERELOAD_PATH}


def content_security_policy(host: str, port: int) -> str:
    return (
        "default-src 'self'; "
        "script-src 'self' 'unsafe-inline' 'unsafe-eval'; "
        "style-src 'self' 'unsafe-inline'; "
        f"connect-src 'self' ws://localhost:{port} ws://{host}:{port}; "
        "img-src 'self' data:; "
        "font-src 'self'"
    )


def inject_client(html: str) -> str:
    """Insert the reload client before ``</body>`` (or append it)."""
    index = html.lower().rfind("</body>")
    if index == -1:
        return html + CLIENT_TAG
    return html[:index] + CLIENT_TAG + html[index:]


def resolve_static(base_dir: Path, path: str) -> Path | None:
    """File under ``base_dir`` for a URL path, ``None`` if missing or outside."""
    base_dir = base_dir.resolve()
    target = (base_dir / path.lstrip("/")).resolve()
    if not target.is_relative_to(base_dir):
        return None
    if target.is_dir():
        target = target / "index.html"
    return target if target.is_file() else None


def create_app(base_dir: Path, hub: ReloadHub, host: str = "127.0.0.1", port: int = 3000) -> FastAPI:
    app = FastAPI(title="assetflow dev server", docs_url=None, redoc_url=None, openapi_url=None)
    csp = content_security_policy(host, port)

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["Content-Security-Policy"] = csp
        return response

    @app.get(CLIENT_SCRIPT_PATH)
    async def client_script():
        return Response(CLIENT_SCRIPT, media_type="application/javascript")

    @app.post(f"{LIVERELOAD_PATH}/reload")
    async def trigger_reload():
        return {"delivered": await hub.reload()}

    @app.websocket(LIVERELOAD_PATH)
    async def livereload(websocket: WebSocket):
        await websocket.accept()
        hub.connect(websocket)
        try:
            await websocket.send_json({"type": "hello"})
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            hub.disconnect(websocket)

    @app.get("/{path:path}")
    async def serve(path: str):
        target = resolve_static(base_dir, path)
        if target is None:
            raise HTTPException(status_code=404, detail="Not found")
        if target.suffix.lower() in (".html", ".htm"):
            return HTMLResponse(inject_client(target.read_text(encoding="utf-8")))
        return FileResponse(target)

    return app


async def run_server(app: FastAPI, host: str, port: int, log_level: str = "warning") -> None:
    """Serve until cancelled."""
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level=log_level.lower()))
    logger.info("devserver_started", url=f"http://{host}:{port}")
    await server.serve()
