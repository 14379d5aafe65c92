"""
livedoc/server/app.py
─────────────────────
FastAPI application serving the documentation snapshot.

• ``GET /{path}``             → static files from the current snapshot
• ``WS  /__livedoc/ws``       → reload notifications ("reload")
• ``GET /__livedoc/status``   → clients / last build, as JSON
• ``POST /__livedoc/reload``  → reload every tab by hand
"""

from __future__ import annotations

import pathlib
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import (
    FileResponse,
    JSONResponse,
    PlainTextResponse,
    RedirectResponse,
    Response,
)

from livedoc import __version__
from livedoc.reload.broadcaster import ReloadBroadcaster
from livedoc.server.inject import RELOAD_JS, SCRIPT_PATH, WS_PATH, inject_reload_script

HELLO_MESSAGE = "hello"
HTML_SUFFIXES = {".html", ".htm"}


def _building() -> Response:
    return PlainTextResponse(
        "Documentation is being built, retrying shortly...",
        status_code=503,
        headers={"Retry-After": "1"},
    )


def _not_found() -> Response:
    return PlainTextResponse("Not Found", status_code=404)


def resolve_within(root: pathlib.Path, url_path: str) -> Optional[pathlib.Path]:
    """
    Map a URL path onto a file below *root*.

    Returns:
        The resolved path, or None if it would escape *root*
    """
    root = root.resolve()
    candidate = (root / url_path.lstrip("/")).resolve()
    if candidate != root and root not in candidate.parents:
        return None
    return candidate


def create_app(
    current_root: Callable[[], Optional[pathlib.Path]],
    broadcaster: ReloadBroadcaster,
    index_path: Optional[str] = None,
    status: Optional[Callable[[], Dict[str, Any]]] = None,
) -> FastAPI:
    """
    Create the documentation server application.

    Args:
        current_root: Returns the directory to serve, or None while no build
            has succeeded yet. Called once per request.
        broadcaster: Registry the reload socket registers clients with
        index_path: Where ``/`` redirects to (e.g. ``/my_crate/``)
        status: Extra fields for the status endpoint

    Returns:
        A configured FastAPI application
    """
    app = FastAPI(
        title="livedoc",
        description="Live-reload documentation server",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.websocket(WS_PATH)
    async def reload_socket(websocket: WebSocket):
        """Hold a browser connection open until it goes away."""
        await websocket.accept()
        conn_id = await broadcaster.register(websocket)
        try:
            await websocket.send_text(HELLO_MESSAGE)
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            await broadcaster.unregister(conn_id)

    @app.get(SCRIPT_PATH)
    async def reload_script():
        return Response(RELOAD_JS, media_type="application/javascript")

    @app.get("/__livedoc/status")
    async def server_status():
        payload: Dict[str, Any] = {"clients": len(broadcaster), "serving": None}
        root = current_root()
        if root is not None:
            payload["serving"] = str(root)
        if status is not None:
            payload.update(status())
        return JSONResponse(payload)

    @app.post("/__livedoc/reload")
    async def trigger_reload():
        delivered = await broadcaster.notify_reload()
        return JSONResponse({"delivered": delivered})

    @app.api_route("/{path:path}", methods=["GET", "HEAD"])
    async def static_files(path: str, request: Request):
        # Resolve the snapshot once so the whole response comes from one build
        root = current_root()
        if root is None:
            return _building()

        if path == "" and index_path:
            return RedirectResponse(index_path, status_code=307)

        target = resolve_within(root, path)
        if target is None:
            return _not_found()

        if target.is_dir():
            if path and not path.endswith("/"):
                url = request.url.replace(path=request.url.path + "/")
                return RedirectResponse(str(url), status_code=307)
            target = target / "index.html"

        if not target.is_file():
            return _not_found()

        if target.suffix.lower() in HTML_SUFFIXES:
            try:
                body = target.read_bytes()
            except FileNotFoundError:
                # snapshot pruned under us
                return _building()
            return Response(inject_reload_script(body), media_type="text/html")

        return FileResponse(target)

    return app
