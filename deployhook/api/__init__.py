"""
API routes for the hook and control servers.
"""

from deployhook.api import control, hooks

hook_router = hooks.router
control_router = control.router
