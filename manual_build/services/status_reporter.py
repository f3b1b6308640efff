from __future__ import annotations

import threading
from typing import Dict, List, Optional, Tuple

from rich.console import Console, Group
from rich.live import Live
from rich.style import Style
from rich.text import Text

STYLE_PLAIN = Style()
STYLE_SUCCESS = Style(color="green")
STYLE_ERROR = Style(color="red")
STYLE_WARNING = Style(color="yellow")

MISSING_INDEX_AT_START = "! your web page won't be visible until we create index.html"
MISSING_INDEX = "! missing index.html"


def building_text(path: str) -> str:
    return f"- building {path}"


def built_text(path: str) -> str:
    return f"√ built {path}"


def error_text(path: str, detail: str) -> str:
    return f"× error building {path}\n {detail}"


class StatusReporter:
    """
    One persistent, in-place updated status line per key.

    Lines are never marked done or dropped on success; they are only
    rewritten, so the user keeps one line per watched file. Rendering goes
    through a rich Live region between start() and stop(). Outside of that
    window the lines are still tracked, which is what tests look at.
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(stderr=True)
        self._lines: Dict[str, Tuple[str, Style]] = {}
        self._lock = threading.Lock()
        self._live: Optional[Live] = None

    # lifecycle

    def start(self) -> None:
        if self._live is not None:
            return
        self._live = Live(
            self._renderable(),
            console=self.console,
            auto_refresh=False,
            transient=False,
            redirect_stdout=False,
            redirect_stderr=False,
        )
        self._live.start(refresh=True)

    def stop(self) -> None:
        if self._live is None:
            return
        self._live.stop()
        self._live = None

    @property
    def running(self) -> bool:
        return self._live is not None

    # operations

    def notice(self, key: str, text: str, style: Style = STYLE_PLAIN) -> None:
        with self._lock:
            self._lines[key] = (text, style)
        self._refresh()

    def success(self, key: str, text: str) -> None:
        self.notice(key, text, STYLE_SUCCESS)

    def error(self, key: str, text: str) -> None:
        self.notice(key, text, STYLE_ERROR)

    def warning(self, key: str, text: str) -> None:
        self.notice(key, text, STYLE_WARNING)

    def remove(self, key: str) -> None:
        with self._lock:
            self._lines.pop(key, None)
        self._refresh()

    # queries

    def text(self, key: str) -> Optional[str]:
        entry = self._lines.get(key)
        return entry[0] if entry else None

    def lines(self) -> List[str]:
        with self._lock:
            return [text for text, _ in self._lines.values()]

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._lines)

    # rendering

    def _renderable(self) -> Group:
        with self._lock:
            return Group(*(Text(text, style=style) for text, style in self._lines.values()))

    def _refresh(self) -> None:
        if self._live is not None:
            self._live.update(self._renderable(), refresh=True)
