from __future__ import annotations

"""HTTP endpoints for ping ingestion, status, history and device config."""

import json
import secrets

from aiohttp import web
from loguru import logger
from pydantic import ValidationError

from .config import Settings
from .devices import DeviceNotFoundError
from .models import DeviceUpdate
from .service import LivenessService

SERVICE_KEY = web.AppKey("service", LivenessService)
SETTINGS_KEY = web.AppKey("settings", Settings)

DEFAULT_DEVICE_ID = "default"


def _service(request: web.Request) -> LivenessService:
    return request.app[SERVICE_KEY]


async def ping(request: web.Request) -> web.Response:
    """Record a liveness signal; always answers `ok` once recorded."""
    device_id = request.query.get("device", "").strip() or DEFAULT_DEVICE_ID
    await _service(request).handle_ping(device_id)
    return web.Response(text="ok")


async def status(request: web.Request) -> web.Response:
    return web.json_response(_service(request).status_snapshot())


async def history(request: web.Request) -> web.Response:
    """Return newest transition events, per device or for all devices."""
    settings = request.app[SETTINGS_KEY]
    device_id = request.query.get("device", "").strip() or None
    raw_limit = request.query.get("limit", "").strip()
    try:
        limit = int(raw_limit) if raw_limit else settings.HISTORY_DEFAULT_LIMIT
    except ValueError:
        raise web.HTTPBadRequest(text="limit must be an integer") from None
    limit = min(max(limit, 1), settings.HISTORY_MAX_LIMIT)

    try:
        payload = await _service(request).history(device_id, limit)
    except DeviceNotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc))
    return web.json_response(payload)


async def stats(request: web.Request) -> web.Response:
    return web.json_response(await _service(request).stats())


def _check_admin(request: web.Request) -> None:
    expected = request.app[SETTINGS_KEY].ADMIN_API_KEY
    if expected is None:
        return
    supplied = request.headers.get("X-API-Key", "")
    if not secrets.compare_digest(supplied, expected):
        raise web.HTTPUnauthorized(text="invalid api key")


async def update_device(request: web.Request) -> web.Response:
    """Apply a partial configuration change (name, destination, paused, timeout)."""
    _check_admin(request)
    device_id = request.match_info["device_id"]
    try:
        body = await request.json()
        change = DeviceUpdate.model_validate(body)
    except (json.JSONDecodeError, ValidationError) as exc:
        raise web.HTTPBadRequest(text=f"invalid device update: {exc}") from exc

    try:
        device = await _service(request).update_device(device_id, change)
    except DeviceNotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc))
    return web.json_response(
        {
            "id": device.id,
            "name": device.name,
            "configured": device.configured,
            "paused": device.paused,
            "timeout": device.timeout,
        }
    )


async def delete_device(request: web.Request) -> web.Response:
    """Remove a device, its live state and its event history."""
    _check_admin(request)
    device_id = request.match_info["device_id"]
    try:
        await _service(request).remove_device(device_id)
    except DeviceNotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc))
    return web.Response(text="ok")


@web.middleware
async def error_middleware(request: web.Request, handler):
    """Log unexpected handler failures and answer 500 without a traceback."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception as exc:
        logger.exception("unhandled error on {} {}: {}", request.method, request.path, exc)
        raise web.HTTPInternalServerError(text="internal error")


def create_app(service: LivenessService, settings: Settings) -> web.Application:
    """Build the aiohttp application around a running service."""
    app = web.Application(middlewares=[error_middleware])
    app[SERVICE_KEY] = service
    app[SETTINGS_KEY] = settings
    app.router.add_route("*", "/ping", ping)
    app.router.add_get("/api/status", status)
    app.router.add_get("/api/history", history)
    app.router.add_get("/api/stats", stats)
    app.router.add_put("/api/devices/{device_id}", update_device)
    app.router.add_delete("/api/devices/{device_id}", delete_device)
    return app
