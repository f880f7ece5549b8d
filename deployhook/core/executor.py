"""
Deploy executor.

Runs the external deploy tool once per (app, repository) pair and
classifies the result. Any stderr output counts as a failure, even with
a zero exit code, because the deploy tool reports errors there.
"""

import asyncio
import logging
import time
from collections import defaultdict
from typing import Optional, Sequence

from deployhook.config import Settings
from deployhook.core.models import DeployResult, DeployStatus

logger = logging.getLogger(__name__)

# Read size for draining subprocess pipes
_CHUNK_SIZE = 64 * 1024


class _Capture:
    """Bounded buffer for one subprocess pipe, readable mid-stream."""

    def __init__(self, limit: int):
        self.limit = limit
        self.buf = bytearray()
        self.truncated = False

    def text(self) -> str:
        return self.buf.decode("utf-8", errors="replace")


async def _drain(stream: Optional[asyncio.StreamReader], capture: _Capture) -> None:
    """Read a stream to EOF into ``capture``, discarding past its limit."""
    if stream is None:
        return

    while True:
        chunk = await stream.read(_CHUNK_SIZE)
        if not chunk:
            break
        room = capture.limit - len(capture.buf)
        if room > 0:
            capture.buf.extend(chunk[:room])
        if len(chunk) > room:
            capture.truncated = True


class DeployExecutor:
    """Spawns the deploy tool and captures its output."""

    def __init__(
        self,
        command: Sequence[str],
        timeout: Optional[float] = None,
        max_output_bytes: int = 1024 * 1024,
        serialize: bool = False,
    ):
        if not command:
            raise ValueError("deploy command must not be empty")
        self.command = list(command)
        self.timeout = timeout or None
        self.max_output_bytes = max_output_bytes
        self.serialize = serialize
        self._app_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @classmethod
    def from_settings(cls, settings: Settings) -> "DeployExecutor":
        return cls(
            command=settings.deploy_argv,
            timeout=settings.deploy_timeout,
            max_output_bytes=settings.max_output_bytes,
            serialize=settings.serialize_deploys,
        )

    def build_command(self, app: str, repository: str) -> list[str]:
        return [*self.command, app, repository]

    async def deploy(self, app: str, repository: Optional[str]) -> DeployResult:
        """Deploy ``app`` from ``repository``. Never raises for deploy failures."""
        if not repository:
            logger.info(f"Skipping deploy of {app}: no repository configured")
            return DeployResult(
                app=app,
                repository=repository,
                status=DeployStatus.SKIPPED,
                error="no repository configured",
            )

        if not self.serialize:
            return await self._run(app, repository)

        lock = self._app_locks[app]
        if lock.locked():
            logger.info(f"Deploy of {app} queued behind a running deploy")
        async with lock:
            return await self._run(app, repository)

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        """Kill the deploy tool and reap it."""
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
        await process.wait()

    async def _run(self, app: str, repository: str) -> DeployResult:
        cmd = self.build_command(app, repository)
        started = time.monotonic()
        logger.info(f"Deploying {app} from {repository}: {' '.join(cmd)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"Failed to start deploy of {app}: {e}")
            return DeployResult(
                app=app,
                repository=repository,
                status=DeployStatus.FAILED,
                error=f"error running command: {e}",
                duration=time.monotonic() - started,
            )

        out = _Capture(self.max_output_bytes)
        err = _Capture(self.max_output_bytes)

        async def communicate() -> None:
            await asyncio.gather(_drain(process.stdout, out), _drain(process.stderr, err))
            await process.wait()

        try:
            await asyncio.wait_for(communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Deploy of {app} timed out after {self.timeout}s, killing")
            await self._kill(process)
            return DeployResult(
                app=app,
                repository=repository,
                status=DeployStatus.FAILED,
                stdout=out.text(),
                stderr=err.text(),
                returncode=process.returncode,
                error=f"timed out after {self.timeout}s",
                duration=time.monotonic() - started,
                truncated=out.truncated or err.truncated,
            )
        except asyncio.CancelledError:
            logger.warning(f"Deploy of {app} cancelled, killing pid {process.pid}")
            await self._kill(process)
            raise

        stdout = out.text()
        stderr = err.text()
        result = DeployResult(
            app=app,
            repository=repository,
            status=DeployStatus.SUCCEEDED,
            stdout=stdout,
            stderr=stderr,
            returncode=process.returncode,
            duration=time.monotonic() - started,
            truncated=out.truncated or err.truncated,
        )
        if result.truncated:
            logger.warning(f"Output of {app} deploy exceeded {self.max_output_bytes} bytes, truncated")

        logger.debug(f"[{app}] out: {stdout}")
        logger.debug(f"[{app}] err: {stderr}")

        if stderr:
            result.status = DeployStatus.FAILED
            result.error = f"error executing deploy: {stderr.strip()}"
        elif process.returncode != 0:
            result.status = DeployStatus.FAILED
            result.error = f"deploy exited with code {process.returncode}"

        if result.ok:
            logger.info(f"App {app} has been deployed")
        else:
            logger.error(f"Deploy of {app} failed: {result.error}")
        return result
