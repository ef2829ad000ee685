"""Thread-safe, TTL-bounded store for the latest detection snapshot."""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable, Iterable
from pathlib import Path

from stm32_configurator.toolchain import (
    TOOL_NAMES,
    DetectionSnapshot,
    not_started,
    now_ms,
)

logger = logging.getLogger(__name__)

STATE_DIR = ".stm32cfg"
SNAPSHOT_FILE = "detection.json"


def create_empty() -> DetectionSnapshot:
    """A snapshot with every tool NOT_STARTED."""
    return DetectionSnapshot()


def _check_names(tool_names: Iterable[str]) -> list[str]:
    names = list(tool_names)
    unknown = [n for n in names if n not in TOOL_NAMES]
    if unknown:
        raise KeyError(f"Unknown tool(s): {', '.join(unknown)}")
    return names


class ResultCache:
    """Holds at most one DetectionSnapshot.

    Every read, full replace and partial update holds the same lock, so a
    partial update of one tool can never clobber a concurrent update of
    another.
    """

    def __init__(self, clock: Callable[[], int] = now_ms):
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshot: DetectionSnapshot | None = None

    def get_cached(self) -> DetectionSnapshot | None:
        with self._lock:
            return self._snapshot

    def set_cached(self, snapshot: DetectionSnapshot) -> None:
        with self._lock:
            self._snapshot = snapshot
        logger.debug("Detection cache replaced (completed_at=%s)", snapshot.completed_at)

    def is_valid(self, ttl_ms: int) -> bool:
        """True iff a snapshot exists and is younger than *ttl_ms*."""
        with self._lock:
            if self._snapshot is None:
                return False
            return self._clock() - self._snapshot.completed_at < ttl_ms

    def update_specific(self, partial: DetectionSnapshot, tool_names: Iterable[str]) -> DetectionSnapshot:
        """Copy only *tool_names* from *partial* into the cached snapshot."""
        names = _check_names(tool_names)
        with self._lock:
            base = self._snapshot or create_empty()
            updated = base.with_results(
                {name: partial.get(name) for name in names},
                completed_at=partial.completed_at,
            )
            self._snapshot = updated
        logger.debug("Detection cache updated for %s", ", ".join(names))
        return updated

    def get_specific(self, tool_names: Iterable[str]) -> DetectionSnapshot | None:
        """Snapshot with only the named tools copied; the rest NOT_STARTED."""
        names = _check_names(tool_names)
        with self._lock:
            if self._snapshot is None:
                return None
            source = self._snapshot
        return create_empty().with_results(
            {name: source.get(name) for name in names},
            completed_at=source.completed_at,
        )

    def invalidate(self, tool_names: Iterable[str]) -> None:
        """Reset the named tools to NOT_STARTED, keeping the others."""
        names = _check_names(tool_names)
        with self._lock:
            if self._snapshot is None:
                return
            self._snapshot = self._snapshot.with_results(
                {name: not_started(name) for name in names},
                completed_at=self._snapshot.completed_at,
            )

    def clear(self) -> None:
        with self._lock:
            self._snapshot = None

    def age_ms(self) -> int | None:
        with self._lock:
            if self._snapshot is None:
                return None
            return self._clock() - self._snapshot.completed_at


def ensure_state_dir(project_dir: Path | str) -> Path:
    """Create .stm32cfg/ with a .gitignore containing '*'."""
    state_dir = Path(project_dir) / STATE_DIR
    state_dir.mkdir(exist_ok=True)
    gitignore = state_dir / ".gitignore"
    if not gitignore.exists():
        gitignore.write_text("*\n")
    return state_dir


def load_snapshot(project_dir: Path | str) -> DetectionSnapshot | None:
    """Read .stm32cfg/detection.json; an unreadable file counts as no cache."""
    path = Path(project_dir) / STATE_DIR / SNAPSHOT_FILE
    if not path.exists():
        return None
    try:
        return DetectionSnapshot.from_dict(json.loads(path.read_text()))
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.warning("Ignoring detection cache %s: %s", path, e)
        return None


def save_snapshot(project_dir: Path | str, snapshot: DetectionSnapshot) -> None:
    """Write .stm32cfg/detection.json."""
    path = ensure_state_dir(project_dir) / SNAPSHOT_FILE
    path.write_text(json.dumps(snapshot.to_dict(), indent=2))


def clear_snapshot(project_dir: Path | str) -> bool:
    """Delete .stm32cfg/detection.json; returns True if it existed."""
    path = Path(project_dir) / STATE_DIR / SNAPSHOT_FILE
    if not path.exists():
        return False
    path.unlink()
    return True
