from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, Mapping, Optional, Set

from manual_build.domain.models import (
    BuildResult,
    BuildState,
    EventKind,
    FileEvent,
    FileKind,
    WatchedFile,
)
from manual_build.services.pipelines import Pipeline
from manual_build.services.status_reporter import (
    MISSING_INDEX,
    StatusReporter,
    building_text,
    built_text,
    error_text,
)
from manual_build.services.task_registry import TaskHandle, TaskRegistry

logger = logging.getLogger(__name__)

FatalHandler = Callable[[str, str], None]


class ChangeDispatcher:
    """
    Routes filesystem events for the watched paths to their pipelines.

    handle() runs synchronously up to the point where the pipeline is
    awaited: the "building" line is shown and any older build for the same
    path is cancelled before control returns to the loop. That keeps
    status updates in edit order even when slow builds finish out of order.
    """

    def __init__(
        self,
        root: Path,
        files: Iterable[WatchedFile],
        pipelines: Mapping[FileKind, Pipeline],
        reporter: StatusReporter,
        registry: TaskRegistry,
        on_fatal: FatalHandler,
    ):
        self.root = root
        self.files: Dict[str, WatchedFile] = {f.path: f for f in files}
        self.pipelines = dict(pipelines)
        self.reporter = reporter
        self.registry = registry
        self.on_fatal = on_fatal
        self._pending: Set[asyncio.Task] = set()

    def state(self, path: str) -> BuildState:
        return self.files[path].state

    def handle(self, event: FileEvent) -> Optional[asyncio.Task]:
        watched = self.files.get(event.path)
        if watched is None:
            logger.debug("Ignoring event for unwatched path %s", event.path)
            return None

        logger.debug("%s %s", event.kind.value, event.path)
        watched.last_event = event.kind
        self.reporter.notice(watched.path, building_text(watched.path))
        handle = self.registry.start_task(watched.path)

        if event.kind is EventKind.REMOVED:
            self.registry.finish(handle)
            if watched.kind is FileKind.HTML:
                # An index page is always expected, so keep a visible warning.
                self.reporter.warning(watched.path, MISSING_INDEX)
                watched.state = BuildState.MISSING_NOTICE
            else:
                self.reporter.remove(watched.path)
                watched.state = BuildState.REMOVED
            return None

        watched.state = BuildState.BUILDING
        task = asyncio.get_running_loop().create_task(self._build(watched, handle))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _build(self, watched: WatchedFile, handle: TaskHandle) -> BuildResult:
        pipeline = self.pipelines[watched.kind]
        try:
            result = await pipeline.build(watched.source(self.root), handle)
        except Exception as e:
            logger.exception("Unexpected error while building %s", watched.path)
            result = BuildResult.failed(str(e) or type(e).__name__, message=repr(e))
        finally:
            self.registry.finish(handle)

        self._settle(watched, handle, result)
        return result

    def _settle(self, watched: WatchedFile, handle: TaskHandle, result: BuildResult) -> None:
        if result.is_cancelled or handle.cancelled:
            # A newer build owns the status line now.
            logger.debug("Discarding result of superseded build %r", handle)
            return

        if result.ok:
            watched.state = BuildState.BUILT
            self.reporter.success(watched.path, built_text(watched.path))
            return

        watched.state = BuildState.FAILED
        if result.fatal:
            logger.error("Build tool for %s failed without output: %s", watched.path, result.message)
            self.on_fatal(watched.path, result.message)
            return

        logger.warning("Build failed for %s", watched.path)
        self.reporter.error(watched.path, error_text(watched.path, result.detail))

    async def drain(self) -> None:
        """Wait for every build started so far, including ones started while waiting."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def cancel_all(self) -> None:
        self.registry.cancel_all()
