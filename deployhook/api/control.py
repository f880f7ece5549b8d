"""
Administrative endpoints.

Served on a separate port meant for a trusted network only; there is
no authentication here.
"""

import time
from typing import Any

from fastapi import APIRouter, Depends

from deployhook.api.deps import get_runtime
from deployhook.core.runtime import Runtime

router = APIRouter()

# Server start time for uptime calculation
_start_time = time.time()


@router.post("/update")
async def update(runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    """Reload the routing tables in the background."""
    runtime.control.trigger_reload()
    return {"status": "accepted", "action": "update"}


@router.post("/deploy-all")
async def deploy_all(runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    """Redeploy every configured app in the background."""
    runtime.control.trigger_deploy_all()
    return {"status": "accepted", "action": "deploy-all"}


@router.get("/status")
async def status(runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    """Live config generation, last reload outcome and pending work."""
    return runtime.control.status()


@router.get("/hooks/{hook_id}")
async def describe_hook(hook_id: str, runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    """Show the apps a hook would deploy right now."""
    apps = runtime.store.links_for(hook_id)
    if apps is None:
        return {"hook": hook_id, "known": False, "apps": []}
    return {
        "hook": hook_id,
        "known": True,
        "apps": [
            {"app": app, "repository": runtime.store.repository_for(app)}
            for app in apps
        ],
    }


@router.get("/health")
async def health_check(runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    """Health check endpoint."""
    data_dir = runtime.settings.data_dir
    return {
        "status": "ok",
        "timestamp": int(time.time() * 1000),
        "data_dir": {
            "path": str(data_dir),
            "status": "ok" if data_dir.exists() else "inaccessible",
        },
        "generation": runtime.store.generation,
        "uptime": time.time() - _start_time,
    }
