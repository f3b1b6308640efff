from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from manual_build.domain.models import EventKind, FileEvent

logger = logging.getLogger(__name__)

EventCallback = Callable[[FileEvent], None]


def _fs_path(raw) -> str:
    if isinstance(raw, bytes):
        raw = os.fsdecode(raw)
    return os.path.normcase(os.path.abspath(raw))


class WatchedPathIndex:
    """Maps absolute filesystem paths back to the relative watched paths."""

    def __init__(self, root: Path, paths: Iterable[str]):
        self.root = root
        self._by_abs: Dict[str, str] = {_fs_path(root / p): p for p in paths}

    def lookup(self, raw) -> Optional[str]:
        if not raw:
            return None
        return self._by_abs.get(_fs_path(raw))

    def paths(self) -> List[str]:
        return list(self._by_abs.values())


def translate(event: FileSystemEvent, index: WatchedPathIndex) -> List[FileEvent]:
    """Turn one watchdog event into zero or more FileEvents for watched paths."""
    out: List[FileEvent] = []
    if event.event_type == EVENT_TYPE_MOVED:
        src = index.lookup(event.src_path)
        dest = index.lookup(getattr(event, "dest_path", ""))
        if src:
            out.append(FileEvent(EventKind.REMOVED, src))
        if dest:
            out.append(FileEvent(EventKind.ADDED, dest))
        return out

    path = index.lookup(event.src_path)
    if path is None:
        return out
    if event.event_type == EVENT_TYPE_CREATED:
        out.append(FileEvent(EventKind.ADDED, path))
    elif event.event_type == EVENT_TYPE_MODIFIED and not event.is_directory:
        out.append(FileEvent(EventKind.CHANGED, path))
    elif event.event_type == EVENT_TYPE_DELETED:
        out.append(FileEvent(EventKind.REMOVED, path))
    return out


class _Handler(FileSystemEventHandler):
    def __init__(self, watcher: "FileWatcher"):
        super().__init__()
        self._watcher = watcher

    def on_any_event(self, event: FileSystemEvent) -> None:
        self._watcher._on_raw_event(event)


class FileWatcher:
    """
    watchdog adapter. Observer callbacks arrive on watchdog's thread and are
    handed to the asyncio loop with call_soon_threadsafe, so the dispatcher
    only ever runs on the loop.
    """

    def __init__(self, root: Path, paths: Iterable[str], loop: asyncio.AbstractEventLoop, callback: EventCallback):
        self.root = root
        self.index = WatchedPathIndex(root, paths)
        self.loop = loop
        self.callback = callback
        self._observer: Optional[Observer] = None
        self._handler = _Handler(self)
        self._watched_dirs: Dict[str, object] = {}

    def _dirs(self) -> List[Path]:
        dirs: List[Path] = []
        for rel in self.index.paths():
            parent = (self.root / rel).parent
            if parent not in dirs:
                dirs.append(parent)
        return dirs

    def _schedule(self, directory: Path) -> None:
        key = _fs_path(directory)
        if key in self._watched_dirs or self._observer is None or not directory.is_dir():
            return
        self._watched_dirs[key] = self._observer.schedule(self._handler, str(directory), recursive=False)
        logger.debug("Watching directory %s", directory)

    def _unschedule(self, directory: Path) -> None:
        watch = self._watched_dirs.pop(_fs_path(directory), None)
        if watch is None or self._observer is None:
            return
        # the emitter for a deleted directory may already have been dropped
        with contextlib.suppress(KeyError):
            self._observer.unschedule(watch)
        logger.debug("Stopped watching directory %s", directory)

    def start(self) -> None:
        self._observer = Observer()
        for directory in self._dirs():
            self._schedule(directory)
        self._observer.start()

        # Initial scan: sources that already exist are built straight away.
        for rel in self.index.paths():
            if (self.root / rel).exists():
                self.callback(FileEvent(EventKind.ADDED, rel))

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join()
        self._observer = None
        self._watched_dirs.clear()

    def _on_raw_event(self, event: FileSystemEvent) -> None:
        # A watched source directory went away; its watch is dead and must be
        # dropped so the directory can be scheduled again when it comes back.
        if event.is_directory and event.event_type in (EVENT_TYPE_DELETED, EVENT_TYPE_MOVED):
            gone = Path(os.fsdecode(event.src_path))
            if _fs_path(gone) in self._watched_dirs and _fs_path(gone) != _fs_path(self.root):
                self._unschedule(gone)

        # A source directory (e.g. src/) created after start-up.
        if event.is_directory and event.event_type in (EVENT_TYPE_CREATED, EVENT_TYPE_MOVED):
            created = Path(os.fsdecode(getattr(event, "dest_path", "") or event.src_path))
            if _fs_path(created) in {_fs_path(d) for d in self._dirs()}:
                self._schedule(created)
                for rel in self.index.paths():
                    source = self.root / rel
                    if _fs_path(source.parent) == _fs_path(created) and source.exists():
                        self.loop.call_soon_threadsafe(self.callback, FileEvent(EventKind.ADDED, rel))

        for file_event in translate(event, self.index):
            self.loop.call_soon_threadsafe(self.callback, file_event)
