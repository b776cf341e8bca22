"""API routes for simulator sessions."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import Response

from simulator_server.device.screenshots import process_screenshot
from simulator_server.formatting import session_to_dict
from simulator_server.models import (
    BundleRequest,
    CreateSessionRequest,
    DeviceError,
    DeviceNotFoundError,
    InstallAppRequest,
    TapRequest,
)

router = APIRouter(prefix="/api/v1/sessions", tags=["sessions"])
logger = logging.getLogger("ios-simulator-server.api")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_registry(request: Request):
    """Get the SessionRegistry from app state."""
    registry = request.app.state.registry
    if registry is None:
        raise HTTPException(status_code=503, detail="Session registry not initialized")
    return registry


def _require_session(registry, session_id: str) -> None:
    if registry.get_session(session_id) is None:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")


def _action_result(ok: bool, session_id: str, action: str) -> dict:
    if not ok:
        raise HTTPException(status_code=500, detail=f"Failed to {action} for session: {session_id}")
    return {"status": "ok", "session_id": session_id}


# ---------------------------------------------------------------------------
# Session CRUD
# ---------------------------------------------------------------------------


@router.get("")
async def list_sessions(request: Request):
    registry = _get_registry(request)
    sessions = registry.list_sessions()
    return {
        "sessions": [session_to_dict(s) for s in sessions],
        "total": len(sessions),
    }


@router.post("", status_code=201)
async def create_session(request: Request, body: CreateSessionRequest):
    """Create a session; boots the simulator unless autoboot is false.

    Returns 404 with a list of available simulators if nothing matches.
    """
    registry = _get_registry(request)
    try:
        session = await registry.create_session(
            device_name=body.device_name,
            platform_version=body.platform_version,
            timeout=body.timeout,
        )
    except DeviceNotFoundError as e:
        raise HTTPException(
            status_code=404,
            detail={
                "message": str(e),
                "available": [
                    {"name": s.name, "udid": s.udid, "os_version": s.os_version}
                    for s in e.simulators if s.is_available
                ],
            },
        )
    except DeviceError as e:
        raise HTTPException(status_code=500, detail=f"[{e.tool}] {e}")

    booted = await registry.boot_simulator(session.id) if body.autoboot else False
    return {**session_to_dict(session), "booted": booted}


@router.get("/{session_id}")
async def get_session(request: Request, session_id: str):
    registry = _get_registry(request)
    session = registry.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return session_to_dict(session)


@router.delete("/{session_id}")
async def terminate_session(request: Request, session_id: str):
    registry = _get_registry(request)
    if not await registry.terminate_session(session_id):
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return {"status": "terminated", "session_id": session_id}


# ---------------------------------------------------------------------------
# Device actions
# ---------------------------------------------------------------------------


@router.post("/{session_id}/boot")
async def boot(request: Request, session_id: str):
    registry = _get_registry(request)
    _require_session(registry, session_id)
    return _action_result(await registry.boot_simulator(session_id), session_id, "boot simulator")


@router.post("/{session_id}/shutdown")
async def shutdown(request: Request, session_id: str):
    registry = _get_registry(request)
    _require_session(registry, session_id)
    return _action_result(await registry.shutdown_simulator(session_id), session_id, "shutdown simulator")


@router.post("/{session_id}/apps/install")
async def install_app(request: Request, session_id: str, body: InstallAppRequest):
    registry = _get_registry(request)
    _require_session(registry, session_id)
    return _action_result(await registry.install_app(session_id, body.app_path), session_id, "install app")


@router.post("/{session_id}/apps/launch")
async def launch_app(request: Request, session_id: str, body: BundleRequest):
    registry = _get_registry(request)
    _require_session(registry, session_id)
    return _action_result(await registry.launch_app(session_id, body.bundle_id), session_id, "launch app")


@router.post("/{session_id}/apps/terminate")
async def terminate_app(request: Request, session_id: str, body: BundleRequest):
    registry = _get_registry(request)
    _require_session(registry, session_id)
    return _action_result(await registry.terminate_app(session_id, body.bundle_id), session_id, "terminate app")


@router.post("/{session_id}/tap")
async def tap(request: Request, session_id: str, body: TapRequest):
    registry = _get_registry(request)
    _require_session(registry, session_id)
    return _action_result(await registry.tap(session_id, body.x, body.y), session_id, "perform tap")


@router.get("/{session_id}/screenshot")
async def screenshot(
    request: Request,
    session_id: str,
    format: str = Query(default="png", pattern="^(png|jpeg)$"),
    scale: float = Query(default=1.0, ge=0.1, le=1.0),
    quality: int = Query(default=85, ge=1, le=100),
):
    """Capture a screenshot as image/png or image/jpeg."""
    registry = _get_registry(request)
    _require_session(registry, session_id)
    raw = await registry.get_screenshot(session_id)
    if raw is None:
        raise HTTPException(status_code=500, detail=f"Failed to get screenshot for session: {session_id}")
    try:
        data, media_type = process_screenshot(raw, format=format, scale=scale, quality=quality)
    except (ValueError, OSError) as e:
        raise HTTPException(
            status_code=500, detail=f"Failed to process screenshot for session: {session_id}: {e}"
        ) from e
    return Response(content=data, media_type=media_type)
