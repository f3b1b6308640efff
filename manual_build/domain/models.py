######## models.py
########

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional


class FileKind(Enum):
    HTML = "html"
    SASS = "sass"
    JS = "js"


class EventKind(Enum):
    ADDED = "added"
    CHANGED = "changed"
    REMOVED = "removed"


class BuildState(Enum):
    IDLE = "idle"
    BUILDING = "building"
    BUILT = "built"
    FAILED = "failed"
    REMOVED = "removed"
    MISSING_NOTICE = "missing_notice"


# Fixed watched paths, relative to the project root.
INDEX_PATH = "index.html"
SASS_PATH = "src/main.scss"
JS_PATH = "src/main.js"

WATCHED_KINDS = {
    INDEX_PATH: FileKind.HTML,
    SASS_PATH: FileKind.SASS,
    JS_PATH: FileKind.JS,
}

PUBLIC_DIR = "public"


@dataclass
class WatchedFile:
    path: str
    kind: FileKind
    last_event: Optional[EventKind] = None
    state: BuildState = BuildState.IDLE

    def source(self, root: Path) -> Path:
        return root / self.path


@dataclass(frozen=True)
class FileEvent:
    kind: EventKind
    path: str                   # one of the watched paths


@dataclass(frozen=True)
class BuildResult:
    status: str                 # "built" | "failed" | "cancelled"
    detail: str = ""            # diagnostic text shown on the status line
    message: str = ""           # what went wrong when there is no diagnostic

    @classmethod
    def built(cls) -> "BuildResult":
        return cls(status="built")

    @classmethod
    def failed(cls, detail: str, message: str = "") -> "BuildResult":
        return cls(status="failed", detail=detail or "", message=message or "")

    @classmethod
    def cancelled(cls) -> "BuildResult":
        return cls(status="cancelled")

    @property
    def ok(self) -> bool:
        return self.status == "built"

    @property
    def is_cancelled(self) -> bool:
        return self.status == "cancelled"

    @property
    def fatal(self) -> bool:
        """A failure with nothing to show the user means the toolchain is broken."""
        return self.status == "failed" and not self.detail.strip()


@dataclass(frozen=True)
class ProcessOutcome:
    argv: tuple[str, ...]
    returncode: Optional[int]
    stdout: str = ""
    stderr: str = ""
    cancelled: bool = False
    spawn_error: str = ""

    @property
    def ok(self) -> bool:
        return not self.cancelled and not self.spawn_error and self.returncode == 0

    @property
    def diagnostic(self) -> str:
        return self.stderr if self.stderr.strip() else self.stdout

    def to_result(self) -> BuildResult:
        if self.cancelled:
            return BuildResult.cancelled()
        if self.ok:
            return BuildResult.built()
        if self.spawn_error:
            return BuildResult.failed("", message=self.spawn_error)
        return BuildResult.failed(
            self.diagnostic.strip(),
            message=f"Command failed with exit code {self.returncode}: {' '.join(self.argv)}",
        )
