"""
Routing table loader.

Three whitespace-delimited flat files describe where deploys go:

    hooks     hookID [...]        one hook per line, extra fields ignored
    links     hookID appID        a hook may appear on several lines
    deploys   appID repository    one line per app

Blank lines and lines starting with ``#`` are skipped. Any other line
with the wrong number of fields fails the whole table.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Iterator, Mapping, Optional

logger = logging.getLogger(__name__)


class LoadError(Exception):
    """A routing table could not be read or parsed."""

    def __init__(self, table: str, reason: str, line_number: Optional[int] = None):
        self.table = table
        self.reason = reason
        self.line_number = line_number
        where = f"{table} table"
        if line_number is not None:
            where += f" line {line_number}"
        super().__init__(f"error loading {where}: {reason}")


@dataclass(frozen=True)
class ConfigSnapshot:
    """One consistent generation of the hooks, links and deploys tables."""

    hooks: tuple[str, ...] = ()
    links: Mapping[str, tuple[str, ...]] = field(default_factory=lambda: MappingProxyType({}))
    deploys: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    source: Optional[Path] = None
    loaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def build(
        cls,
        hooks: list[str],
        links: dict[str, list[str]],
        deploys: dict[str, str],
        source: Optional[Path] = None,
    ) -> "ConfigSnapshot":
        """Freeze freshly parsed tables into a snapshot."""
        return cls(
            hooks=tuple(hooks),
            links=MappingProxyType({hook: tuple(apps) for hook, apps in links.items()}),
            deploys=MappingProxyType(dict(deploys)),
            source=source,
        )

    def unlinked_apps(self) -> list[str]:
        """Apps referenced by links that have no repository configured."""
        missing: list[str] = []
        for apps in self.links.values():
            for app in apps:
                if app not in self.deploys and app not in missing:
                    missing.append(app)
        return missing

    def summary(self) -> dict:
        return {
            "hooks": len(self.hooks),
            "links": sum(len(apps) for apps in self.links.values()),
            "deploys": len(self.deploys),
            "source": str(self.source) if self.source else None,
            "loaded_at": self.loaded_at.isoformat(),
        }


def _iter_records(path: Path, table: str) -> Iterator[tuple[int, list[str]]]:
    """Yield (line_number, fields) for each meaningful line of a table file."""
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise LoadError(table, f"cannot read {path}: {e}") from e

    for number, line in enumerate(text.splitlines(), start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        yield number, stripped.split()


def parse_hooks(path: Path) -> list[str]:
    """Parse the hooks table. Only the first field of each line is used."""
    return [fields[0] for _, fields in _iter_records(path, "hooks")]


def parse_links(path: Path) -> dict[str, list[str]]:
    """Parse the links table into hook -> apps, keeping file order."""
    links: dict[str, list[str]] = {}
    for number, fields in _iter_records(path, "links"):
        if len(fields) != 2:
            raise LoadError("links", f"expected 'hookID appID', got {len(fields)} fields", number)
        hook, app = fields
        links.setdefault(hook, []).append(app)
    return links


def parse_deploys(path: Path) -> dict[str, str]:
    """Parse the deploys table into app -> repository."""
    deploys: dict[str, str] = {}
    for number, fields in _iter_records(path, "deploys"):
        if len(fields) != 2:
            raise LoadError("deploys", f"expected 'appID repository', got {len(fields)} fields", number)
        app, repository = fields
        if app in deploys:
            raise LoadError("deploys", f"duplicate app '{app}'", number)
        deploys[app] = repository
    return deploys


def load_snapshot(
    data_dir: Path,
    hooks_file: str = "hooks",
    links_file: str = "links",
    deploys_file: str = "deploys",
) -> ConfigSnapshot:
    """Read all three tables from ``data_dir``.

    Raises:
        LoadError: if any table is unreadable or malformed. Nothing is
            returned in that case, so callers keep whatever they had.
    """
    data_dir = Path(data_dir)
    hooks = parse_hooks(data_dir / hooks_file)
    links = parse_links(data_dir / links_file)
    deploys = parse_deploys(data_dir / deploys_file)

    snapshot = ConfigSnapshot.build(hooks, links, deploys, source=data_dir)

    # Links for hooks that are not in the hooks table still dispatch
    unknown_hooks = [hook for hook in snapshot.links if hook not in snapshot.hooks]
    if unknown_hooks:
        logger.warning(f"Links reference hooks missing from the hooks table: {unknown_hooks}")
    unlinked = snapshot.unlinked_apps()
    if unlinked:
        logger.warning(f"Linked apps without a configured repository: {unlinked}")

    logger.debug(
        f"Loaded {len(hooks)} hooks, {len(links)} linked hooks, "
        f"{len(deploys)} deploys from {data_dir}"
    )
    return snapshot
