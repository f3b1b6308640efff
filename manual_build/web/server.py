from __future__ import annotations

import logging
import socket
import threading
from typing import Optional

from flask import Flask
from werkzeug.serving import BaseWSGIServer, make_server

logger = logging.getLogger(__name__)


def port_is_free(host: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def find_free_port(host: str, start_port: int, attempts: int = 100) -> int:
    for port in range(start_port, min(start_port + attempts, 65536)):
        if port_is_free(host, port):
            return port
    raise OSError(f"No free port in {start_port}-{start_port + attempts - 1} on {host}")


def bind_first_free(app: Flask, host: str, start_port: int, attempts: int = 100) -> BaseWSGIServer:
    """
    Bind a WSGI server on the first port >= start_port that is free.
    The returned server is already listening, so its port is the real one.
    """
    end = start_port + attempts
    port = start_port
    while port < end:
        port = find_free_port(host, port, end - port)
        try:
            return make_server(host, port, app, threaded=True)
        except SystemExit:
            # werkzeug exits when the port was taken between the probe and the bind
            logger.debug("Port %d was taken before it could be bound", port)
            port += 1
    raise OSError(f"No free port in {start_port}-{end - 1} on {host}")


class PreviewServer:
    """Serves the public directory on a background thread."""

    def __init__(self, app: Flask, host: str = "localhost", start_port: int = 3000, attempts: int = 100):
        self.app = app
        self.host = host
        self.start_port = start_port
        self.attempts = attempts
        self._server: Optional[BaseWSGIServer] = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> str:
        self._server = bind_first_free(self.app, self.host, self.start_port, self.attempts)
        self._thread = threading.Thread(target=self._server.serve_forever, name="preview-server", daemon=True)
        self._thread.start()
        logger.info("Serving on %s", self.url)
        return self.url

    def stop(self) -> None:
        if self._server is None:
            return
        self._server.shutdown()
        self._server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5)
        self._server = None
        self._thread = None

    @property
    def port(self) -> int:
        if self._server is None:
            raise RuntimeError("Preview server is not running.")
        return self._server.server_port

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"
