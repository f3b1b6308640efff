from .errors import FatalBuildError
from .models import (
    BuildResult,
    BuildState,
    EventKind,
    FileEvent,
    FileKind,
    ProcessOutcome,
    WatchedFile,
)

__all__ = [
    "BuildResult",
    "BuildState",
    "EventKind",
    "FatalBuildError",
    "FileEvent",
    "FileKind",
    "ProcessOutcome",
    "WatchedFile",
]
