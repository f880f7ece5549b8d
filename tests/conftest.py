"""
Pytest configuration and fixtures.
"""

import os
import sys
from pathlib import Path
from typing import Optional

import pytest

from deployhook.config import Settings
from deployhook.core.models import DeployResult, DeployStatus
from deployhook.core.runtime import Runtime

# Set test environment
os.environ["LOG_LEVEL"] = "WARNING"
os.environ.pop("DATA_DIR", None)
os.environ.pop("LOG_WEBHOOK_URL", None)


SCENARIO_TABLES = {
    "hooks": "build\n",
    "links": "build app1\nbuild app2\n",
    "deploys": "app1 repoA\napp2 repoB\n",
}


def write_tables(data_dir: Path, **tables: str) -> Path:
    """Write routing tables into ``data_dir``; unspecified tables use the scenario."""
    data_dir.mkdir(parents=True, exist_ok=True)
    for name, default in SCENARIO_TABLES.items():
        (data_dir / name).write_text(tables.get(name, default))
    return data_dir


def python_command(code: str) -> list[str]:
    """Deploy command running ``code``; app and repository land in sys.argv[1:]."""
    return [sys.executable, "-c", code]


class RecordingExecutor:
    """Stands in for DeployExecutor and records every call."""

    def __init__(self):
        self.calls: list[tuple[str, Optional[str]]] = []
        self.outcomes: dict[str, DeployStatus] = {}
        self.errors: dict[str, Exception] = {}
        self.gate = None  # asyncio.Event that deploys wait on
        self.started = None  # asyncio.Event set when a deploy begins

    async def deploy(self, app: str, repository: Optional[str]) -> DeployResult:
        self.calls.append((app, repository))
        if self.started is not None:
            self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if app in self.errors:
            raise self.errors[app]
        if not repository:
            return DeployResult(
                app=app,
                repository=repository,
                status=DeployStatus.SKIPPED,
                error="no repository configured",
            )

        status = self.outcomes.get(app, DeployStatus.SUCCEEDED)
        failed = status == DeployStatus.FAILED
        return DeployResult(
            app=app,
            repository=repository,
            status=status,
            stdout=f"synced {app}\n",
            stderr="remote rejected\n" if failed else "",
            returncode=0,
            error="error executing deploy: remote rejected" if failed else None,
        )


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Data dir holding the build -> app1, app2 scenario."""
    return write_tables(tmp_path / "data")


@pytest.fixture
def test_settings(data_dir: Path) -> Settings:
    return Settings(
        data_dir=data_dir,
        deploy_command="true",
        deploy_on_start=False,
        log_level="WARNING",
    )


@pytest.fixture
def recording_executor() -> RecordingExecutor:
    return RecordingExecutor()


@pytest.fixture
def runtime(test_settings: Settings, recording_executor: RecordingExecutor) -> Runtime:
    """Runtime with the scenario tables loaded and a recording executor."""
    rt = Runtime.build(test_settings, executor=recording_executor)
    rt.load_initial()
    return rt


@pytest.fixture
def tables():
    """Writer for routing tables: ``tables(path, links="...")``."""
    return write_tables


@pytest.fixture
def py_cmd():
    """Builder for a deploy command that runs inline Python."""
    return python_command
