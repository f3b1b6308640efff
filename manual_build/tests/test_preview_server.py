from __future__ import annotations

import socket
import urllib.request
from pathlib import Path

import pytest

from manual_build.web.routes import create_preview_app
from manual_build.web.server import PreviewServer, bind_first_free, find_free_port


@pytest.fixture
def public(tmp_path: Path) -> Path:
    d = tmp_path / "public"
    d.mkdir()
    (d / "index.html").write_text("<h1>Preview</h1>", encoding="utf-8")
    (d / "main.css").write_text("a{color:red}", encoding="utf-8")
    return d


@pytest.fixture
def occupied_port():
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(1)
    try:
        yield sock.getsockname()[1]
    finally:
        sock.close()


def test_root_serves_index(public: Path):
    client = create_preview_app(public).test_client()

    resp = client.get("/")

    assert resp.status_code == 200
    assert resp.data == b"<h1>Preview</h1>"
    assert resp.headers["Cache-Control"] == "no-store"


def test_static_files_are_served(public: Path):
    client = create_preview_app(public).test_client()

    resp = client.get("/main.css")

    assert resp.status_code == 200
    assert resp.data == b"a{color:red}"
    assert resp.mimetype == "text/css"


def test_missing_files_are_404(public: Path):
    client = create_preview_app(public).test_client()

    assert client.get("/main.js").status_code == 404


def test_index_missing_is_404(tmp_path: Path):
    empty = tmp_path / "public"
    empty.mkdir()
    client = create_preview_app(empty).test_client()

    assert client.get("/").status_code == 404


def test_subdirectory_falls_back_to_its_index(public: Path):
    (public / "docs").mkdir()
    (public / "docs" / "index.html").write_text("docs", encoding="utf-8")
    client = create_preview_app(public).test_client()

    assert client.get("/docs/").data == b"docs"


def test_files_added_after_start_are_served(public: Path):
    client = create_preview_app(public).test_client()
    assert client.get("/main.js").status_code == 404

    (public / "main.js").write_text("console.log(1)", encoding="utf-8")

    assert client.get("/main.js").status_code == 200


def test_find_free_port_skips_occupied(occupied_port: int):
    assert find_free_port("127.0.0.1", occupied_port, attempts=50) > occupied_port


def test_bind_first_free_skips_occupied(public: Path, occupied_port: int):
    server = bind_first_free(create_preview_app(public), "127.0.0.1", occupied_port, attempts=50)
    try:
        assert server.server_port > occupied_port
    finally:
        server.server_close()


def test_printed_url_matches_listening_port(public: Path, occupied_port: int):
    server = PreviewServer(create_preview_app(public), host="127.0.0.1", start_port=occupied_port, attempts=50)

    url = server.start()
    try:
        assert url == f"http://127.0.0.1:{server.port}"
        assert server.port != occupied_port
        with urllib.request.urlopen(f"{url}/index.html", timeout=5) as resp:
            assert resp.read() == b"<h1>Preview</h1>"
    finally:
        server.stop()


def test_port_requires_running_server(public: Path):
    server = PreviewServer(create_preview_app(public), host="127.0.0.1")

    with pytest.raises(RuntimeError):
        server.port
