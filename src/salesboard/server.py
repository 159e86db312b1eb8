"""aiohttp application: WebSocket sync endpoint plus snapshot/backup routes."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path

from aiohttp import WSMsgType, web
from aiohttp.typedefs import Handler

from salesboard._constants import BACKUP_FILENAME_PREFIX
from salesboard.config import BoardConfig
from salesboard.store.base import UnitStore
from salesboard.store.factory import build_store
from salesboard.sync import SyncHandler

_logger = logging.getLogger(__name__)

HANDLER_KEY: web.AppKey[SyncHandler] = web.AppKey("sync_handler", SyncHandler)

_CORS_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


@web.middleware
async def cors_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Allow the front-ends to be served from another origin."""
    if request.method == "OPTIONS":
        return web.Response(status=204, headers=_CORS_HEADERS)
    response = await handler(request)
    if not isinstance(response, web.WebSocketResponse):
        response.headers.update(_CORS_HEADERS)
    return response


def _error(status: int, message: str) -> web.Response:
    return web.json_response({"success": False, "error": message}, status=status)


# ------------------------------------------------------------------
# WebSocket
# ------------------------------------------------------------------


async def ws_handler(request: web.Request) -> web.WebSocketResponse:
    """One connection: frames are handled strictly one after another."""
    ws = web.WebSocketResponse()
    await ws.prepare(request)
    handler = request.app[HANDLER_KEY]
    _logger.info("Client connected from %s", request.remote)

    try:
        async for msg in ws:
            if msg.type == WSMsgType.TEXT:
                await handler.handle_message(ws, msg.data)
            elif msg.type == WSMsgType.ERROR:
                _logger.warning("WebSocket error: %s", ws.exception())
    finally:
        handler.disconnect(ws)
        _logger.info("Client from %s disconnected (code=%s)", request.remote, ws.close_code)
    return ws


# ------------------------------------------------------------------
# HTTP
# ------------------------------------------------------------------


async def status_handler(request: web.Request) -> web.Response:
    """Current snapshot; ``?refresh=1`` re-reads the store first."""
    handler = request.app[HANDLER_KEY]
    if request.query.get("refresh") in {"1", "true", "yes"}:
        if not await handler.reload(notify_displays=True):
            return _error(500, "failed to load unit status from store")
    return web.json_response(handler.cache.snapshot())


async def init_or_reset_handler(request: web.Request) -> web.Response:
    handler = request.app[HANDLER_KEY]
    if not await handler.reinitialize():
        return _error(500, "store initialization failed")
    return web.json_response({"success": True, "count": len(handler.cache)})


async def backup_handler(request: web.Request) -> web.Response:
    handler = request.app[HANDLER_KEY]
    stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")
    body = json.dumps(handler.cache.snapshot(), ensure_ascii=False, indent=2)
    return web.Response(
        text=body,
        content_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{BACKUP_FILENAME_PREFIX}-{stamp}.json"'},
    )


async def restore_handler(request: web.Request) -> web.Response:
    """Replace the whole snapshot with a ``{"<unit id>": <bool>}`` body.

    Ids are trimmed the same way ``update-status`` trims ``roomId``.
    """
    handler = request.app[HANDLER_KEY]
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _error(400, "body is not valid JSON")

    if not isinstance(payload, dict) or not payload:
        return _error(400, "body must be a non-empty JSON object")
    bad = [key for key, value in payload.items() if not isinstance(value, bool) or not key.strip()]
    if bad:
        return _error(400, f"invalid entries: {bad[:5]}")

    snapshot = {key.strip(): value for key, value in payload.items()}
    if len(snapshot) != len(payload):
        return _error(400, "ids collide after trimming whitespace")

    if not await handler.restore(snapshot):
        return _error(500, "restore failed")
    return web.json_response({"success": True, "count": len(snapshot)})


# ------------------------------------------------------------------
# App factory
# ------------------------------------------------------------------


def build_app(config: BoardConfig, *, store: UnitStore | None = None) -> web.Application:
    """Create the application.

    Parameters
    ----------
    config : BoardConfig
        Server configuration.
    store : UnitStore or None
        Durable store to use.  When omitted one is built from *config*.
    """
    if store is None:
        store = build_store(config)
    sync_handler = SyncHandler(store, send_timeout=config.send_timeout)

    app = web.Application(middlewares=[cors_middleware])
    app[HANDLER_KEY] = sync_handler

    app.router.add_get("/ws", ws_handler)
    for prefix in ("", "/api"):
        app.router.add_get(f"{prefix}/status", status_handler)
        app.router.add_get(f"{prefix}/init-or-reset", init_or_reset_handler)
        app.router.add_get(f"{prefix}/backup", backup_handler)
        app.router.add_post(f"{prefix}/restore", restore_handler)
    app.router.add_get("/api/init-db", init_or_reset_handler)

    if config.static_dir:
        static_root = Path(config.static_dir)
        if static_root.is_dir():
            index = static_root / "index.html"

            async def _index(request: web.Request) -> web.FileResponse:
                return web.FileResponse(index)

            if index.is_file():
                app.router.add_get("/", _index)
            app.router.add_static("/", static_root)
        else:
            _logger.warning("Static directory %s not found, front-ends not served", static_root)

    async def _on_startup(app_ctx: web.Application) -> None:
        await app_ctx[HANDLER_KEY].initialize()
        _logger.info("Serving %d unit(s)", len(app_ctx[HANDLER_KEY].cache))

    async def _on_cleanup(app_ctx: web.Application) -> None:
        await app_ctx[HANDLER_KEY].shutdown()
        await app_ctx[HANDLER_KEY].store.close()

    app.on_startup.append(_on_startup)
    app.on_cleanup.append(_on_cleanup)
    return app
