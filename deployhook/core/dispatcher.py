"""
Hook dispatcher: maps an inbound hook to the apps it deploys.
"""

import logging
from typing import Optional

from deployhook.core.executor import DeployExecutor
from deployhook.core.models import DeployResult, DeployStatus, DispatchReport, DispatchStatus
from deployhook.core.store import ConfigStore
from deployhook.lib.notifier import WebhookNotifier

logger = logging.getLogger(__name__)


class HookDispatcher:
    """Deploys every app linked to a hook, one after another.

    Each dispatch reads a single snapshot from the store, so a reload
    that lands mid-dispatch does not change which apps are attempted.
    A failing app never stops the ones after it.
    """

    def __init__(
        self,
        store: ConfigStore,
        executor: DeployExecutor,
        notifier: Optional[WebhookNotifier] = None,
    ):
        self.store = store
        self.executor = executor
        self.notifier = notifier or WebhookNotifier(None)

    async def dispatch(self, hook: str) -> DispatchReport:
        """Deploy the apps linked to ``hook``. Unknown hooks are a no-op."""
        snapshot = self.store.snapshot()
        apps = snapshot.links.get(hook)
        if apps is None:
            logger.debug(f"Ignoring unknown hook '{hook}'")
            return DispatchReport(hook=hook, status=DispatchStatus.NOT_FOUND)

        logger.info(f'Hook "{hook}" was triggered ({len(apps)} apps)')
        await self.notifier.send_text(f'Hook "{hook}" was triggered')

        report = DispatchReport(hook=hook, status=DispatchStatus.DISPATCHED)
        for app in apps:
            result = await self._deploy_one(app, snapshot.deploys.get(app))
            report.results.append(result)

        if report.failed:
            logger.warning(
                f'Hook "{hook}": {len(report.failed)}/{len(report.results)} deploys failed'
            )
        return report

    async def deploy_all(self) -> list[DeployResult]:
        """Deploy every app in the deploys table, in table order."""
        targets = self.store.deploy_targets()
        logger.info(f"Deploying all {len(targets)} configured apps")

        results = [await self._deploy_one(app, repository) for app, repository in targets]

        failed = [r.app for r in results if r.status == DeployStatus.FAILED]
        if failed:
            logger.warning(f"Finished deploying all apps, failures: {failed}")
        else:
            logger.info("Finished deploying all apps")
        return results

    async def _deploy_one(self, app: str, repository: Optional[str]) -> DeployResult:
        try:
            result = await self.executor.deploy(app, repository)
        except Exception as e:
            logger.error(f"Unexpected error deploying app {app}: {e}", exc_info=True)
            result = DeployResult(
                app=app,
                repository=repository,
                status=DeployStatus.FAILED,
                error=f"unexpected error: {e}",
            )

        await self._notify(result)
        return result

    async def _notify(self, result: DeployResult) -> None:
        if result.status == DeployStatus.SUCCEEDED:
            await self.notifier.send_text(f"App {result.app} has been deployed")
        elif result.status == DeployStatus.SKIPPED:
            await self.notifier.send_text(f"Skipped {result.app}: {result.error}")
        else:
            await self.notifier.send_text(f"Error deploying app {result.app}: {result.error}")
            output = result.stderr or result.stdout
            if output:
                await self.notifier.send_code(output)
