from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from rich.console import Console

from manual_build.adapters.fs_watcher import FileWatcher
from manual_build.config.ini_config import AppSettings
from manual_build.domain.errors import FatalBuildError
from manual_build.domain.models import (
    INDEX_PATH,
    PUBLIC_DIR,
    WATCHED_KINDS,
    BuildState,
    FileKind,
    WatchedFile,
)
from manual_build.repositories.artifact_repository import ArtifactRepository
from manual_build.services.dispatcher import ChangeDispatcher
from manual_build.services.pipelines import HtmlPipeline, JsPipeline, SassPipeline
from manual_build.services.process_runner import ProcessRunner
from manual_build.services.status_reporter import MISSING_INDEX_AT_START, StatusReporter
from manual_build.services.task_registry import TaskRegistry
from manual_build.web.routes import create_preview_app
from manual_build.web.server import PreviewServer

logger = logging.getLogger(__name__)

TUTORIAL_URL = "https://origami.ft.com/documentation/tutorials/manual-build/"


def banner(url: str) -> str:
    return (
        "Building Sass, JavaScript, and serving HTML for the Origami manual build tutorial!\n"
        f"{TUTORIAL_URL}\n\n"
        f"Your code is running at: {url}\n"
    )


@dataclass
class BuildApp:
    """
    Composition root output: everything one watch session needs.
    run() owns the lifecycle of the status display, the server and the watcher.
    """
    settings: AppSettings
    artifacts: ArtifactRepository
    reporter: StatusReporter
    registry: TaskRegistry
    dispatcher: ChangeDispatcher
    server: PreviewServer
    out: Console
    err: Console

    def show_missing_index(self) -> None:
        index = self.settings.root / INDEX_PATH
        if not index.is_file():
            self.reporter.warning(INDEX_PATH, MISSING_INDEX_AT_START)
            self.dispatcher.files[INDEX_PATH].state = BuildState.MISSING_NOTICE

    async def run(self) -> int:
        loop = asyncio.get_running_loop()
        stopped: asyncio.Future = loop.create_future()

        def on_fatal(path: str, message: str) -> None:
            if not stopped.done():
                stopped.set_exception(FatalBuildError(path, message))

        self.dispatcher.on_fatal = on_fatal
        self.artifacts.ensure_public_dir()

        url = self.server.start()
        logger.debug("Preview server listening on %s", url)
        self.out.print(banner(url), style="green", highlight=False, markup=False)

        watcher = FileWatcher(self.settings.root, list(WATCHED_KINDS), loop, self.dispatcher.handle)
        self.reporter.start()
        try:
            self.show_missing_index()
            watcher.start()
            await stopped
        except FatalBuildError as e:
            self.reporter.stop()
            self.err.print(str(e), style="red", highlight=False, markup=False)
            return 1
        finally:
            watcher.stop()
            self.dispatcher.cancel_all()
            self.reporter.stop()
            self.server.stop()
        return 0


def create_app(settings: AppSettings, out: Optional[Console] = None, err: Optional[Console] = None) -> BuildApp:
    out = out or Console()
    err = err or Console(stderr=True)
    root = settings.root

    artifacts = ArtifactRepository(public_dir=root / PUBLIC_DIR)
    runner = ProcessRunner(cwd=root)

    pipelines = {
        FileKind.HTML: HtmlPipeline(artifacts=artifacts),
        FileKind.SASS: SassPipeline(
            runner=runner,
            artifacts=artifacts,
            sass_bin=settings.sass_bin,
            postcss_bin=settings.postcss_bin,
            load_path=settings.load_path,
            browsers=settings.browsers,
        ),
        FileKind.JS: JsPipeline(runner=runner, artifacts=artifacts, esbuild_bin=settings.esbuild_bin),
    }

    reporter = StatusReporter(console=err)
    registry = TaskRegistry()

    def fatal_before_start(path: str, message: str) -> None:
        raise FatalBuildError(path, message)

    dispatcher = ChangeDispatcher(
        root=root,
        files=[WatchedFile(path=p, kind=k) for p, k in WATCHED_KINDS.items()],
        pipelines=pipelines,
        reporter=reporter,
        registry=registry,
        on_fatal=fatal_before_start,
    )

    server = PreviewServer(
        create_preview_app(artifacts.public_dir),
        host=settings.host,
        start_port=settings.start_port,
        attempts=settings.port_attempts,
    )

    return BuildApp(
        settings=settings,
        artifacts=artifacts,
        reporter=reporter,
        registry=registry,
        dispatcher=dispatcher,
        server=server,
        out=out,
        err=err,
    )
