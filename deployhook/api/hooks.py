"""
Public hook endpoint.

The whole request path is treated as a hook identifier. The caller
only learns that the hook was received, never how the deploys went.
"""

from typing import Any

from fastapi import APIRouter, Depends

from deployhook.api.deps import get_runtime
from deployhook.core.runtime import Runtime

router = APIRouter()


@router.get("/")
async def root() -> dict[str, Any]:
    """Liveness response; the root path is not a hook."""
    return {"name": "deployhook", "status": "running"}


@router.api_route("/{hook_id:path}", methods=["GET", "POST"])
async def receive_hook(hook_id: str, runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    """Deploy every app linked to ``hook_id``, then acknowledge."""
    await runtime.dispatcher.dispatch(hook_id)
    return {"status": "received", "hook": hook_id}
