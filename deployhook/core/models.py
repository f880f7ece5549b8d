"""
Deploy and dispatch result models.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class DeployStatus(str, Enum):
    """Outcome of a single deploy attempt."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class DispatchStatus(str, Enum):
    """Outcome of routing an inbound hook."""

    DISPATCHED = "dispatched"
    NOT_FOUND = "not_found"


@dataclass
class DeployResult:
    """Captured output and classification of one deploy."""

    app: str
    repository: Optional[str]
    status: DeployStatus
    stdout: str = ""
    stderr: str = ""
    returncode: Optional[int] = None
    error: Optional[str] = None
    duration: float = 0.0
    truncated: bool = False

    @property
    def ok(self) -> bool:
        return self.status == DeployStatus.SUCCEEDED

    def to_dict(self) -> dict:
        """Serialize for ``deployhook deploy --json``."""
        return {
            "app": self.app,
            "repository": self.repository,
            "status": self.status.value,
            "returncode": self.returncode,
            "error": self.error,
            "duration": round(self.duration, 3),
            "truncated": self.truncated,
        }


@dataclass
class DispatchReport:
    """Every deploy attempted for one inbound hook."""

    hook: str
    status: DispatchStatus
    results: list[DeployResult] = field(default_factory=list)

    @property
    def failed(self) -> list[DeployResult]:
        return [r for r in self.results if r.status == DeployStatus.FAILED]
