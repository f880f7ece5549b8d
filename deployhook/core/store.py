"""
Config store: the live routing snapshot.

Readers copy out what they need under the lock and release it
immediately. Deploys never run while the lock is held.
"""

import logging
import threading
from typing import Optional

from deployhook.core.tables import ConfigSnapshot

logger = logging.getLogger(__name__)


class ConfigStore:
    """Holds the current ConfigSnapshot behind a single swap lock."""

    def __init__(self, snapshot: Optional[ConfigSnapshot] = None):
        self._lock = threading.Lock()
        self._snapshot = snapshot or ConfigSnapshot()
        self._generation = 1 if snapshot is not None else 0

    @property
    def generation(self) -> int:
        """Number of snapshots installed so far."""
        with self._lock:
            return self._generation

    def install(self, snapshot: ConfigSnapshot) -> int:
        """Replace the live snapshot. Last writer wins. Returns the new generation."""
        with self._lock:
            self._snapshot = snapshot
            self._generation += 1
            generation = self._generation
        logger.info(f"Installed config generation {generation}")
        return generation

    def snapshot(self) -> ConfigSnapshot:
        """Point-in-time view of all three tables."""
        with self._lock:
            return self._snapshot

    def links_for(self, hook: str) -> Optional[tuple[str, ...]]:
        """Apps linked to ``hook`` in table order, or None for an unknown hook."""
        with self._lock:
            return self._snapshot.links.get(hook)

    def repository_for(self, app: str) -> Optional[str]:
        """Repository configured for ``app``, if any."""
        with self._lock:
            return self._snapshot.deploys.get(app)

    def deploy_targets(self) -> list[tuple[str, str]]:
        """Every (app, repository) pair in table order."""
        with self._lock:
            return list(self._snapshot.deploys.items())
