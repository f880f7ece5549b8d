"""
Control service: reload and bulk redeploy as background tasks.

Both operations are fire-and-forget from the HTTP side. Reloads are
all-or-nothing: a failed load leaves the previous snapshot live.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Optional

from deployhook.config import Settings
from deployhook.core.dispatcher import HookDispatcher
from deployhook.core.models import DeployResult
from deployhook.core.store import ConfigStore
from deployhook.core.tables import ConfigSnapshot, LoadError, load_snapshot
from deployhook.lib.notifier import WebhookNotifier

logger = logging.getLogger(__name__)


@dataclass
class ReloadInfo:
    """Outcome of the most recent reload attempt."""

    last_attempt: Optional[datetime] = None
    last_success: Optional[datetime] = None
    last_error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "last_attempt": self.last_attempt.isoformat() if self.last_attempt else None,
            "last_success": self.last_success.isoformat() if self.last_success else None,
            "last_error": self.last_error,
        }


class ControlService:
    """Administrative operations against the shared config store."""

    def __init__(
        self,
        settings: Settings,
        store: ConfigStore,
        dispatcher: HookDispatcher,
        notifier: Optional[WebhookNotifier] = None,
    ):
        self.settings = settings
        self.store = store
        self.dispatcher = dispatcher
        self.notifier = notifier or WebhookNotifier(None)
        self.reload_info = ReloadInfo()
        self._tasks: set[asyncio.Task] = set()

    def load(self) -> ConfigSnapshot:
        """Read the routing tables named by settings. Raises LoadError."""
        return load_snapshot(
            Path(self.settings.data_dir),
            hooks_file=self.settings.hooks_file,
            links_file=self.settings.links_file,
            deploys_file=self.settings.deploys_file,
        )

    async def reload(self) -> bool:
        """Load the tables and install them. Keeps the old snapshot on LoadError."""
        self.reload_info.last_attempt = datetime.now(timezone.utc)
        loop = asyncio.get_running_loop()
        try:
            snapshot = await loop.run_in_executor(None, self.load)
        except LoadError as e:
            self.reload_info.last_error = str(e)
            logger.error(f"Reload failed, keeping generation {self.store.generation}: {e}")
            await self.notifier.send_text(f"Config reload failed: {e}")
            return False

        generation = self.store.install(snapshot)
        self.reload_info.last_success = datetime.now(timezone.utc)
        self.reload_info.last_error = None
        logger.info(f"Finished loading all local data (generation {generation})")
        return True

    async def deploy_all(self) -> list[DeployResult]:
        return await self.dispatcher.deploy_all()

    def trigger_reload(self) -> asyncio.Task:
        """Schedule a reload and return immediately."""
        return self._spawn(self.reload(), "reload")

    def trigger_deploy_all(self) -> asyncio.Task:
        """Schedule a bulk redeploy and return immediately."""
        return self._spawn(self.deploy_all(), "deploy-all")

    def _spawn(self, coro: Awaitable[Any], name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        logger.info(f"Scheduled background {name}")
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning(f"Background {task.get_name()} was cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background {task.get_name()} failed: {exc}", exc_info=exc)

    @property
    def pending(self) -> list[str]:
        """Names of background tasks still running."""
        return sorted(task.get_name() for task in self._tasks if not task.done())

    async def wait_idle(self) -> None:
        """Wait for every scheduled background task to finish."""
        while True:
            running = [task for task in self._tasks if not task.done()]
            if not running:
                return
            await asyncio.gather(*running, return_exceptions=True)

    def status(self) -> dict:
        snapshot = self.store.snapshot()
        return {
            "generation": self.store.generation,
            "config": snapshot.summary(),
            "reload": self.reload_info.to_dict(),
            "pending": self.pending,
        }
