"""API routes for direct simulator control by UDID."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request

from simulator_server.models import EnumerationError

router = APIRouter(prefix="/api/v1/simulators", tags=["simulators"])
logger = logging.getLogger("ios-simulator-server.api")


def _get_registry(request: Request):
    """Get the SessionRegistry from app state."""
    registry = request.app.state.registry
    if registry is None:
        raise HTTPException(status_code=503, detail="Session registry not initialized")
    return registry


@router.get("")
async def list_simulators(request: Request, available_only: bool = True):
    """List simulators (available ones only, unless available_only=false)."""
    registry = _get_registry(request)
    try:
        simulators = await registry.resolver.list_simulators(strict=True)
    except EnumerationError as e:
        raise HTTPException(status_code=503, detail=str(e))
    if available_only:
        simulators = [s for s in simulators if s.is_available]
    return {
        "simulators": [s.model_dump(mode="json") for s in simulators],
        "total": len(simulators),
    }


@router.get("/booted")
async def list_booted(request: Request):
    registry = _get_registry(request)
    try:
        booted = await registry.resolver.list_booted(strict=True)
    except EnumerationError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {
        "simulators": [s.model_dump(mode="json") for s in booted],
        "total": len(booted),
    }


@router.post("/{udid}/boot")
async def boot_simulator(request: Request, udid: str):
    registry = _get_registry(request)
    if not await registry.boot_by_udid(udid):
        raise HTTPException(status_code=500, detail=f"Failed to boot simulator with UDID: {udid}")
    return {"status": "booted", "udid": udid}


@router.post("/{udid}/shutdown")
async def shutdown_simulator(request: Request, udid: str):
    """Shut down a simulator and verify it left the booted list.

    Returns 409 if the command ran but the simulator still reports booted.
    """
    registry = _get_registry(request)
    if not await registry.direct_shutdown_by_udid(udid):
        raise HTTPException(status_code=500, detail=f"Failed to shutdown simulator with UDID: {udid}")
    if not await registry.verify_shutdown(udid):
        raise HTTPException(
            status_code=409,
            detail=f"Shutdown command executed but simulator may still be running. UDID: {udid}",
        )
    return {"status": "shutdown", "udid": udid}
