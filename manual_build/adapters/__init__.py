from .fs_watcher import FileWatcher, WatchedPathIndex, translate

__all__ = ["FileWatcher", "WatchedPathIndex", "translate"]
