from __future__ import annotations

import itertools
import logging
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

_ids = itertools.count(1)


class TaskHandle:
    """
    One in-flight build attempt for a watched path.

    Work attached to the handle (an external process, an asyncio task)
    registers a callback with on_cancel() so that cancelling the handle
    actually stops it.
    """

    def __init__(self, path: str):
        self.path = path
        self.id = next(_ids)
        self._cancelled = False
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def on_cancel(self, callback: Callable[[], None]) -> None:
        if self._cancelled:
            callback()
            return
        self._callbacks.append(callback)

    def discard_callback(self, callback: Callable[[], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Cancel callback failed for %s (task %d)", self.path, self.id)

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "live"
        return f"<TaskHandle {self.path} #{self.id} {state}>"


class TaskRegistry:
    """
    Keyed store of the single live TaskHandle per path.
    start_task() cancels the previous handle before the new one is stored.
    """

    def __init__(self) -> None:
        self._tasks: Dict[str, TaskHandle] = {}

    def start_task(self, path: str) -> TaskHandle:
        previous = self._tasks.pop(path, None)
        if previous is not None:
            logger.debug("Cancelling %r, superseded by a newer build", previous)
            previous.cancel()
        handle = TaskHandle(path)
        self._tasks[path] = handle
        return handle

    def is_cancelled(self, handle: TaskHandle) -> bool:
        return handle.cancelled

    def current(self, path: str) -> Optional[TaskHandle]:
        return self._tasks.get(path)

    def finish(self, handle: TaskHandle) -> None:
        """Forget a settled handle, unless a newer one already replaced it."""
        if self._tasks.get(handle.path) is handle:
            del self._tasks[handle.path]

    def cancel_all(self) -> None:
        tasks, self._tasks = self._tasks, {}
        for handle in tasks.values():
            handle.cancel()

    def __len__(self) -> int:
        return len(self._tasks)
