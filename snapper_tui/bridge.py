from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Optional

from snapper_tui.models import Failed, Outcome


logger = logging.getLogger(__name__)

Spawn = Callable[[Callable[[], None]], None]


def _spawn_daemon_thread(fn: Callable[[], None]) -> None:
    threading.Thread(target=fn, daemon=True).start()


class TaskBridge:
    """
    Runs one blocking operation at a time off the UI thread.

    Curses is not thread-safe; operations only compute an Outcome and hand it
    back through a capacity-one queue. Each submit() installs a new queue, so
    a result still in flight from an earlier submission lands in a queue
    nobody reads and is dropped. Threads are never cancelled.
    """

    def __init__(self, *, spawn: Optional[Spawn] = None) -> None:
        self._spawn = spawn or _spawn_daemon_thread
        self._endpoint: "Optional[queue.Queue[Outcome]]" = None
        self.kind: Optional[str] = None

    @property
    def pending(self) -> bool:
        return self._endpoint is not None

    def submit(self, fn: Callable[[], Outcome], *, kind: str = "") -> None:
        q: "queue.Queue[Outcome]" = queue.Queue(maxsize=1)
        if self._endpoint is not None:
            logger.debug("Replacing in-flight %s operation with %s", self.kind or "?", kind or "?")
        self._endpoint = q
        self.kind = kind

        def _run() -> None:
            try:
                result = fn()
            except Exception as e:
                logger.exception("Background %s operation failed", kind or "?")
                result = Failed(str(e) or e.__class__.__name__)
            q.put(result)

        self._spawn(_run)

    def poll_once(self) -> Optional[Outcome]:
        q = self._endpoint
        if q is None:
            return None
        try:
            result = q.get_nowait()
        except queue.Empty:
            return None
        self._endpoint = None
        self.kind = None
        return result
