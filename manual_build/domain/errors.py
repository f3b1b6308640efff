from __future__ import annotations


class FatalBuildError(Exception):
    """
    Raised at the application boundary when a build tool failed without
    producing any diagnostic output. The watcher cannot recover from this.
    """

    def __init__(self, path: str, message: str):
        self.path = path
        self.message = message
        super().__init__(f"There was an unexpected error building {path}:\n\n{message}")
