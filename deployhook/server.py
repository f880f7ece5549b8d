"""
deployhook server

Runs the public hook server and the administrative control server in
one event loop, both backed by the same Runtime.
"""

import asyncio
import sys
from typing import Optional

import uvicorn
from fastapi import FastAPI

from deployhook import __version__
from deployhook.api import control_router, hook_router
from deployhook.config import Settings, get_settings
from deployhook.core.runtime import Runtime
from deployhook.core.tables import LoadError
from deployhook.lib.logger import get_logger, setup_logging

logger = get_logger(__name__)

# Seconds to let background deploys finish on shutdown
SHUTDOWN_GRACE = 30.0


def create_hook_app(runtime: Runtime) -> FastAPI:
    """Public app: every request path is a hook identifier."""
    app = FastAPI(
        title="deployhook",
        description="Webhook receiver that deploys linked apps",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.runtime = runtime
    app.include_router(hook_router)
    return app


def create_control_app(runtime: Runtime) -> FastAPI:
    """Administrative app: reload, bulk redeploy and status."""
    app = FastAPI(
        title="deployhook control",
        description="Reload routing tables and redeploy apps",
        version=__version__,
    )
    app.state.runtime = runtime
    app.include_router(control_router)
    return app


async def serve(runtime: Runtime) -> None:
    """Run both servers until either one exits."""
    settings = runtime.settings
    log_level = settings.log_level.lower()

    hook_server = uvicorn.Server(
        uvicorn.Config(
            create_hook_app(runtime),
            host=settings.host,
            port=settings.hook_port,
            log_level=log_level,
        )
    )
    control_server = uvicorn.Server(
        uvicorn.Config(
            create_control_app(runtime),
            host=settings.control_host,
            port=settings.control_port,
            log_level=log_level,
        )
    )

    logger.info(f"Starting hook server on {settings.host}:{settings.hook_port}")
    logger.info(f"Starting control server on {settings.control_host}:{settings.control_port}")
    servers = [
        asyncio.create_task(hook_server.serve(), name="hook-server"),
        asyncio.create_task(control_server.serve(), name="control-server"),
    ]

    if settings.deploy_on_start:
        runtime.control.trigger_deploy_all()

    done, pending = await asyncio.wait(servers, return_when=asyncio.FIRST_COMPLETED)
    for task in done:
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"{task.get_name()} stopped: {task.exception()}")

    # Shutdown
    logger.info("Shutting down...")
    hook_server.should_exit = True
    control_server.should_exit = True
    await asyncio.gather(*pending, return_exceptions=True)

    try:
        await asyncio.wait_for(runtime.control.wait_idle(), timeout=SHUTDOWN_GRACE)
    except asyncio.TimeoutError:
        logger.warning(f"Background work still running after {SHUTDOWN_GRACE}s: {runtime.control.pending}")

    await runtime.notifier.aclose()


def main(settings: Optional[Settings] = None) -> None:
    """Main entry point."""
    settings = settings or get_settings()
    setup_logging(settings)

    runtime = Runtime.build(settings)
    try:
        runtime.load_initial()
    except LoadError as e:
        logger.error(f"error loading all local data: {e}")
        sys.exit(1)

    print(f"""
===============================================================
                 deployhook {__version__}
===============================================================
  Hooks:    http://{settings.host}:{settings.hook_port}/<hook>
  Control:  http://{settings.control_host}:{settings.control_port}
  Data:     {str(settings.data_dir)[:45]}
---------------------------------------------------------------
  Control Endpoints:
    POST /update         - Reload routing tables
    POST /deploy-all     - Redeploy every app
    GET  /status         - Config generation and reload state
    GET  /hooks/:hook    - Apps linked to a hook
===============================================================
    """)

    try:
        asyncio.run(serve(runtime))
    except KeyboardInterrupt:
        # uvicorn re-raises the captured SIGINT once both servers have stopped
        logger.info("Stopped")


if __name__ == "__main__":
    main()
