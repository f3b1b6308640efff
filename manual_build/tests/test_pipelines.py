from __future__ import annotations

import asyncio
import json
import re
from pathlib import Path
from typing import List, Optional

import pytest

from manual_build.domain.models import FileKind, ProcessOutcome
from manual_build.repositories.artifact_repository import ArtifactRepository
from manual_build.services.pipelines import (
    HtmlPipeline,
    JsPipeline,
    SassPipeline,
    strip_map_charset,
)
from manual_build.services.task_registry import TaskHandle

SASS_CSS = (
    "a{color:red}\n"
    "/*# sourceMappingURL=data:application/json;charset=utf-8,%7B%22version%22:3%7D */\n"
)


# -----------------------------
# Test doubles
# -----------------------------
class FakeRunner:
    """Hands back queued outcomes and records what it was asked to run."""

    def __init__(self, outcomes: List[ProcessOutcome]):
        self._outcomes = list(outcomes)
        self.calls: List[dict] = []

    async def run(self, argv, handle, *, input_text: Optional[str] = None) -> ProcessOutcome:
        call = {"argv": list(argv), "input_text": input_text, "config": None}
        if "--config" in call["argv"]:
            # the config dir is removed once the run returns
            config_dir = Path(call["argv"][call["argv"].index("--config") + 1])
            call["config"] = (config_dir / "postcss.config.js").read_text(encoding="utf-8")
        self.calls.append(call)
        return self._outcomes.pop(0)


class BundlingRunner:
    """Plays esbuild: writes the outfile and its map, then reports success."""

    def __init__(self, bundle: str = "console.log(1);\n", outcome: Optional[ProcessOutcome] = None):
        self.bundle = bundle
        self.outcome = outcome
        self.outfiles: List[Path] = []

    async def run(self, argv, handle, *, input_text: Optional[str] = None) -> ProcessOutcome:
        outfile = Path(next(a for a in argv if a.startswith("--outfile=")).split("=", 1)[1])
        self.outfiles.append(outfile)
        outfile.write_text(self.bundle + f"//# sourceMappingURL={outfile.name}.map\n", encoding="utf-8")
        Path(str(outfile) + ".map").write_text('{"version":3}', encoding="utf-8")
        if self.outcome is not None:
            return self.outcome
        return ok(stderr="  public/main.js  1.2kb\n")


def ok(stdout: str = "", stderr: str = "") -> ProcessOutcome:
    return ProcessOutcome(argv=("tool",), returncode=0, stdout=stdout, stderr=stderr)


def failed(stdout: str = "", stderr: str = "", code: int = 65) -> ProcessOutcome:
    return ProcessOutcome(argv=("tool",), returncode=code, stdout=stdout, stderr=stderr)


def make_sass(tmp_path: Path, runner: FakeRunner) -> SassPipeline:
    return SassPipeline(
        runner=runner,
        artifacts=ArtifactRepository(public_dir=tmp_path / "public"),
        sass_bin="sass",
        postcss_bin="postcss",
        load_path=tmp_path / "node_modules",
        browsers=("> 1%", "last 2 versions", "ie >= 11"),
    )


# -----------------------------
# HTML
# -----------------------------
def test_html_copies_bytes(tmp_path: Path):
    source = tmp_path / "index.html"
    source.write_bytes(b"<!doctype html>\n<p>caf\xc3\xa9</p>\n")
    pipeline = HtmlPipeline(artifacts=ArtifactRepository(public_dir=tmp_path / "public"))

    result = asyncio.run(pipeline.build(source, TaskHandle("index.html")))

    assert result.ok
    assert (tmp_path / "public" / "index.html").read_bytes() == source.read_bytes()


def test_html_directory_gives_clear_message(tmp_path: Path):
    source = tmp_path / "index.html"
    source.mkdir()
    pipeline = HtmlPipeline(artifacts=ArtifactRepository(public_dir=tmp_path / "public"))

    result = asyncio.run(pipeline.build(source, TaskHandle("index.html")))

    assert result.status == "failed"
    assert result.detail == 'Could not copy "index.html". Is it a file?'
    assert not result.fatal


def test_html_missing_source_reports_io_error(tmp_path: Path):
    pipeline = HtmlPipeline(artifacts=ArtifactRepository(public_dir=tmp_path / "public"))

    result = asyncio.run(pipeline.build(tmp_path / "index.html", TaskHandle("index.html")))

    assert result.status == "failed"
    assert "index.html" in result.detail


def test_html_cancelled_handle_does_not_copy(tmp_path: Path):
    source = tmp_path / "index.html"
    source.write_text("x", encoding="utf-8")
    handle = TaskHandle("index.html")
    handle.cancel()
    pipeline = HtmlPipeline(artifacts=ArtifactRepository(public_dir=tmp_path / "public"))

    result = asyncio.run(pipeline.build(source, handle))

    assert result.is_cancelled
    assert not (tmp_path / "public" / "index.html").exists()


# -----------------------------
# Sass
# -----------------------------
def test_strip_map_charset_only_touches_map_mime():
    css = "a{content:'charset=utf-8'}\n" + SASS_CSS
    out = strip_map_charset(css)
    assert "data:application/json,%7B" in out
    assert "application/json;charset=utf-8," not in out
    assert "content:'charset=utf-8'" in out


def test_sass_compiles_prefixes_and_writes_css(tmp_path: Path):
    runner = FakeRunner([ok(stdout=SASS_CSS), ok(stdout="a{color:red}\n/*# inline map */\n")])
    pipeline = make_sass(tmp_path, runner)
    source = tmp_path / "src" / "main.scss"

    result = asyncio.run(pipeline.build(source, TaskHandle("src/main.scss")))

    assert result.ok
    sass_call, postcss_call = runner.calls
    assert sass_call["argv"] == [
        "sass",
        str(source),
        "--embed-source-map",
        "--source-map-urls",
        "absolute",
        "--load-path",
        str(tmp_path / "node_modules"),
    ]
    assert postcss_call["argv"][:2] == ["postcss", "--config"]
    assert not Path(postcss_call["argv"][2]).exists()
    assert "application/json;charset=utf-8," not in postcss_call["input_text"]
    assert "application/json,%7B" in postcss_call["input_text"]
    assert (tmp_path / "public" / "main.css").read_text(encoding="utf-8") == "a{color:red}\n/*# inline map */\n"


def test_postcss_runs_autoprefixer_with_project_options(tmp_path: Path):
    runner = FakeRunner([ok(stdout=SASS_CSS), ok(stdout="a{color:red}\n")])
    pipeline = make_sass(tmp_path, runner)

    asyncio.run(pipeline.build(tmp_path / "src" / "main.scss", TaskHandle("src/main.scss")))

    config = runner.calls[1]["config"]
    assert 'require.resolve("autoprefixer", { paths: [process.cwd()] })' in config
    assert "map: { inline: true }" in config
    options = json.loads(re.search(r"autoprefixer\((\{.*\})\)", config).group(1))
    assert options == {
        "cascade": False,
        "flexbox": "no-2009",
        "grid": True,
        "overrideBrowserslist": ["> 1%", "last 2 versions", "ie >= 11"],
    }


def test_sass_syntax_error_leaves_old_css(tmp_path: Path):
    public = tmp_path / "public"
    public.mkdir()
    (public / "main.css").write_text("old", encoding="utf-8")
    runner = FakeRunner([failed(stderr="Error: expected \"}\".\n  src/main.scss 3:1  root stylesheet")])
    pipeline = make_sass(tmp_path, runner)

    result = asyncio.run(pipeline.build(tmp_path / "src" / "main.scss", TaskHandle("src/main.scss")))

    assert result.status == "failed"
    assert 'expected "}"' in result.detail
    assert not result.fatal
    assert len(runner.calls) == 1
    assert (public / "main.css").read_text(encoding="utf-8") == "old"


def test_postcss_failure_is_reported(tmp_path: Path):
    runner = FakeRunner([ok(stdout=SASS_CSS), failed(stdout="CssSyntaxError: Unknown word")])
    pipeline = make_sass(tmp_path, runner)

    result = asyncio.run(pipeline.build(tmp_path / "src" / "main.scss", TaskHandle("src/main.scss")))

    assert result.detail == "CssSyntaxError: Unknown word"
    assert not (tmp_path / "public" / "main.css").exists()


def test_sass_silent_crash_is_fatal(tmp_path: Path):
    runner = FakeRunner([failed(code=1)])
    pipeline = make_sass(tmp_path, runner)

    result = asyncio.run(pipeline.build(tmp_path / "src" / "main.scss", TaskHandle("src/main.scss")))

    assert result.fatal
    assert "exit code 1" in result.message


def test_sass_cancelled_between_steps_writes_nothing(tmp_path: Path):
    cancelled = ProcessOutcome(argv=("postcss",), returncode=None, cancelled=True)
    runner = FakeRunner([ok(stdout=SASS_CSS), cancelled])
    pipeline = make_sass(tmp_path, runner)

    result = asyncio.run(pipeline.build(tmp_path / "src" / "main.scss", TaskHandle("src/main.scss")))

    assert result.is_cancelled
    assert not (tmp_path / "public" / "main.css").exists()


# -----------------------------
# JavaScript
# -----------------------------
def test_js_bundles_to_staging_file_then_replaces_main_js(tmp_path: Path):
    public = tmp_path / "public"
    public.mkdir()
    (public / "main.js").write_text("old bundle", encoding="utf-8")
    runner = BundlingRunner(bundle="console.log(2);\n")
    pipeline = JsPipeline(runner=runner, artifacts=ArtifactRepository(public_dir=public), esbuild_bin="esbuild")

    result = asyncio.run(pipeline.build(tmp_path / "src" / "main.js", TaskHandle("src/main.js")))

    assert result.ok
    staged = runner.outfiles[0]
    assert staged.parent == public
    assert staged.name != "main.js"
    assert (public / "main.js").read_text(encoding="utf-8") == "console.log(2);\n//# sourceMappingURL=main.js.map\n"
    assert (public / "main.js.map").exists()
    assert sorted(p.name for p in public.iterdir()) == ["main.js", "main.js.map"]


def test_js_command_line(tmp_path: Path):
    pipeline = JsPipeline(runner=FakeRunner([]), artifacts=ArtifactRepository(public_dir=tmp_path), esbuild_bin="esbuild")
    source = tmp_path / "src" / "main.js"

    assert pipeline.command(source, tmp_path / ".building-x.js") == [
        "esbuild",
        str(source),
        "--bundle",
        "--sourcemap",
        f"--outfile={(tmp_path / '.building-x.js').resolve()}",
    ]


@pytest.mark.parametrize(
    "outcome",
    [
        failed(stderr='✘ [ERROR] Could not resolve "./missing.js"'),
        ProcessOutcome(argv=("esbuild",), returncode=None, cancelled=True),
    ],
)
def test_js_unfinished_bundle_never_replaces_main_js(tmp_path: Path, outcome):
    public = tmp_path / "public"
    public.mkdir()
    (public / "main.js").write_text("old bundle", encoding="utf-8")
    runner = BundlingRunner(bundle="half a bund", outcome=outcome)
    pipeline = JsPipeline(runner=runner, artifacts=ArtifactRepository(public_dir=public), esbuild_bin="esbuild")

    result = asyncio.run(pipeline.build(tmp_path / "src" / "main.js", TaskHandle("src/main.js")))

    assert not result.ok
    assert (public / "main.js").read_text(encoding="utf-8") == "old bundle"
    assert sorted(p.name for p in public.iterdir()) == ["main.js"]


@pytest.mark.parametrize(
    "outcome, detail",
    [
        (failed(stderr='✘ [ERROR] Could not resolve "./missing.js"'), '✘ [ERROR] Could not resolve "./missing.js"'),
        (failed(stdout="src/main.js:1:4: ERROR: Expected \";\""), "src/main.js:1:4: ERROR: Expected \";\""),
    ],
)
def test_js_diagnostics_surface_as_detail(tmp_path: Path, outcome, detail):
    runner = FakeRunner([outcome])
    pipeline = JsPipeline(
        runner=runner,
        artifacts=ArtifactRepository(public_dir=tmp_path / "public"),
        esbuild_bin="esbuild",
    )

    result = asyncio.run(pipeline.build(tmp_path / "src" / "main.js", TaskHandle("src/main.js")))

    assert result.status == "failed"
    assert result.detail == detail


def test_pipeline_kinds():
    artifacts = ArtifactRepository(public_dir=Path("public"))
    assert HtmlPipeline(artifacts=artifacts).kind is FileKind.HTML
    assert JsPipeline(runner=FakeRunner([]), artifacts=artifacts, esbuild_bin="esbuild").kind is FileKind.JS
