"""
Shared request dependencies.
"""

from fastapi import Request

from deployhook.core.runtime import Runtime


def get_runtime(request: Request) -> Runtime:
    """Get the runtime attached by the app factory."""
    return request.app.state.runtime
