"""
Runtime wiring shared by the hook and control servers.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from deployhook.config import Settings
from deployhook.core.control import ControlService
from deployhook.core.dispatcher import HookDispatcher
from deployhook.core.executor import DeployExecutor
from deployhook.core.store import ConfigStore
from deployhook.lib.notifier import WebhookNotifier

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Every long-lived component, built once at startup."""

    settings: Settings
    store: ConfigStore
    executor: DeployExecutor
    notifier: WebhookNotifier
    dispatcher: HookDispatcher
    control: ControlService

    @classmethod
    def build(
        cls,
        settings: Settings,
        store: Optional[ConfigStore] = None,
        executor: Optional[DeployExecutor] = None,
        notifier: Optional[WebhookNotifier] = None,
    ) -> "Runtime":
        store = store or ConfigStore()
        executor = executor or DeployExecutor.from_settings(settings)
        notifier = notifier or WebhookNotifier(settings.log_webhook_url)
        if not notifier.enabled:
            logger.info("No log webhook configured, notifications disabled")

        dispatcher = HookDispatcher(store, executor, notifier)
        control = ControlService(settings, store, dispatcher, notifier)
        return cls(
            settings=settings,
            store=store,
            executor=executor,
            notifier=notifier,
            dispatcher=dispatcher,
            control=control,
        )

    def load_initial(self) -> int:
        """Load and install the first snapshot. Raises LoadError."""
        snapshot = self.control.load()
        generation = self.store.install(snapshot)
        logger.info("Finished loading all local data")
        return generation
