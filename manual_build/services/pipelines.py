from __future__ import annotations

import json
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from manual_build.domain.models import BuildResult, FileKind
from manual_build.repositories.artifact_repository import ArtifactRepository
from manual_build.services.process_runner import ProcessRunner
from manual_build.services.task_registry import TaskHandle


# The Sass compiler writes the embedded map as `application/json;charset=utf-8,...`
# and PostCSS only parses a charset on base64 maps.
# https://github.com/postcss/postcss/issues/1281#issuecomment-599626666
SASS_MAP_MIME = "application/json;charset=utf-8,"
POSTCSS_MAP_MIME = "application/json,"

POSTCSS_CONFIG_NAME = "postcss.config.js"
AUTOPREFIXER_OPTIONS = {"cascade": False, "flexbox": "no-2009", "grid": True}


def strip_map_charset(css: str) -> str:
    return css.replace(SASS_MAP_MIME, POSTCSS_MAP_MIME)


class Pipeline:
    """Strategy interface: turn one watched source into its public artifact."""
    kind: FileKind

    async def build(self, source: Path, handle: TaskHandle) -> BuildResult:
        raise NotImplementedError


@dataclass
class HtmlPipeline(Pipeline):
    artifacts: ArtifactRepository
    kind: FileKind = FileKind.HTML

    async def build(self, source: Path, handle: TaskHandle) -> BuildResult:
        if handle.cancelled:
            return BuildResult.cancelled()
        if source.is_dir():
            return BuildResult.failed(f'Could not copy "{source.name}". Is it a file?')
        try:
            self.artifacts.copy_in(self.kind, source)
        except IsADirectoryError:
            return BuildResult.failed(f'Could not copy "{source.name}". Is it a file?')
        except OSError as e:
            return BuildResult.failed(str(e))
        return BuildResult.built()


@dataclass
class SassPipeline(Pipeline):
    runner: ProcessRunner
    artifacts: ArtifactRepository
    sass_bin: str
    postcss_bin: str
    load_path: Path
    browsers: Sequence[str]
    kind: FileKind = FileKind.SASS

    def sass_command(self, source: Path) -> list[str]:
        return [
            self.sass_bin,
            str(source),
            "--embed-source-map",
            "--source-map-urls",
            "absolute",
            "--load-path",
            str(self.load_path),
        ]

    def postcss_config(self) -> str:
        """
        postcss.config.js for one run. The postcss CLI cannot pass plugin
        options, so autoprefixer is configured here. It is resolved from the
        project directory (the child's cwd), not from the temp config dir.
        """
        options = dict(AUTOPREFIXER_OPTIONS, overrideBrowserslist=list(self.browsers))
        return (
            'const autoprefixer = require(require.resolve("autoprefixer", { paths: [process.cwd()] }));\n'
            "module.exports = {\n"
            "  map: { inline: true },\n"
            f"  plugins: [autoprefixer({json.dumps(options)})],\n"
            "};\n"
        )

    def postcss_command(self, config_dir: Path) -> list[str]:
        # stdin -> stdout keeps the source map inline
        return [self.postcss_bin, "--config", str(config_dir)]

    async def build(self, source: Path, handle: TaskHandle) -> BuildResult:
        compiled = await self.runner.run(self.sass_command(source), handle)
        if not compiled.ok:
            return compiled.to_result()

        css = strip_map_charset(compiled.stdout)

        config_dir = Path(tempfile.mkdtemp(prefix="manual-build-postcss-"))
        try:
            (config_dir / POSTCSS_CONFIG_NAME).write_text(self.postcss_config(), encoding="utf-8")
            prefixed = await self.runner.run(self.postcss_command(config_dir), handle, input_text=css)
        finally:
            shutil.rmtree(config_dir, ignore_errors=True)
        if not prefixed.ok:
            return prefixed.to_result()

        if handle.cancelled:
            return BuildResult.cancelled()
        try:
            self.artifacts.write_text(self.kind, prefixed.stdout)
        except OSError as e:
            return BuildResult.failed(str(e))
        return BuildResult.built()


@dataclass
class JsPipeline(Pipeline):
    runner: ProcessRunner
    artifacts: ArtifactRepository
    esbuild_bin: str
    kind: FileKind = FileKind.JS

    def command(self, source: Path, outfile: Path) -> list[str]:
        return [
            self.esbuild_bin,
            str(source),
            "--bundle",
            "--sourcemap",
            f"--outfile={outfile.resolve()}",
        ]

    async def build(self, source: Path, handle: TaskHandle) -> BuildResult:
        # esbuild writes its outfile in place, so bundle next to main.js and
        # only swap it in once the bundle is complete.
        staged = self.artifacts.staging_path(self.kind)
        try:
            bundled = await self.runner.run(self.command(source, staged), handle)
            if not bundled.ok:
                return bundled.to_result()
            if handle.cancelled:
                return BuildResult.cancelled()
            try:
                self.artifacts.promote_bundle(self.kind, staged)
            except OSError as e:
                return BuildResult.failed(str(e))
            return BuildResult.built()
        finally:
            self.artifacts.discard(staged)
