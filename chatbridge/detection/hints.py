"""Best-effort change hints from the file system.

The store's owner writes through SQLite's write-ahead log, so a change to
the modification time or size of either the database file or its ``-wal``
sibling is a cheap signal that new rows may exist. Hints carry no payload
and are neither complete nor exact: the scheduled poll stays the source of
truth.
"""

import asyncio
import logging
from contextlib import suppress
from pathlib import Path
from typing import Callable, Optional, Tuple

logger = logging.getLogger(__name__)

HintCallback = Callable[[], None]
Fingerprint = Tuple[Optional[Tuple[int, int]], ...]


class FileChangeHintSource:
    """Watch a SQLite database and its WAL file for modifications."""

    def __init__(
        self,
        db_path: str | Path,
        check_interval_seconds: float = 0.25,
        callback: Optional[HintCallback] = None,
    ) -> None:
        self.db_path = Path(db_path)
        self.check_interval_seconds = check_interval_seconds
        self._callback = callback
        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._last: Optional[Fingerprint] = None

    @property
    def watched_paths(self) -> Tuple[Path, Path]:
        return (self.db_path, self.db_path.with_name(self.db_path.name + "-wal"))

    @property
    def is_running(self) -> bool:
        return self._running

    def set_callback(self, callback: Optional[HintCallback]) -> None:
        self._callback = callback

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._running = True
        self._last = self.fingerprint()
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Change hints enabled for %s", self.db_path)

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    def fingerprint(self) -> Fingerprint:
        stamps = []
        for path in self.watched_paths:
            try:
                stat = path.stat()
            except OSError:
                # The WAL file comes and goes with checkpoints
                stamps.append(None)
                continue
            stamps.append((stat.st_mtime_ns, stat.st_size))
        return tuple(stamps)

    def check(self) -> bool:
        """Compare against the last fingerprint and fire the callback on change.

        Returns:
            True if a change was observed
        """
        current = self.fingerprint()
        if current == self._last:
            return False
        self._last = current
        if self._callback is not None:
            self._callback()
        return True

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.check_interval_seconds)
                self.check()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Change hint check failed for %s", self.db_path)
