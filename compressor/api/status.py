"""Liveness endpoint served beside the pipeline."""

from __future__ import annotations

import threading
from typing import Optional

from flask import Flask
from werkzeug.serving import BaseWSGIServer, make_server

from compressor.core.logger import setup_logger

logger = setup_logger(__name__)


def create_app() -> Flask:
    app = Flask(__name__)

    @app.route("/status")
    def status():
        return "ok", 200, {"Content-Type": "text/plain; charset=utf-8"}

    return app


class StatusServer:
    """Runs the status app on a background thread until ``stop()``."""

    def __init__(self, port: int, host: str = "0.0.0.0") -> None:
        self.host = host
        self.port = port
        self._server: Optional[BaseWSGIServer] = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Bind and serve. Raises OSError if the port cannot be bound."""
        self._server = make_server(self.host, self.port, create_app(), threaded=True)
        self._thread = threading.Thread(target=self._server.serve_forever, name="StatusServer", daemon=True)
        self._thread.start()
        logger.info(f"Status endpoint listening on {self.host}:{self.port}")

    def stop(self) -> None:
        if self._server is None:
            return
        self._server.shutdown()
        if self._thread is not None:
            self._thread.join(timeout=5)
        self._server.server_close()
        self._server = None
