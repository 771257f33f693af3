"""Tests for the liveness endpoint."""

import socket

import requests

from compressor.api.status import StatusServer, create_app


class TestStatusRoute:
    def test_status_returns_ok(self):
        client = create_app().test_client()

        response = client.get("/status")

        assert response.status_code == 200
        assert response.get_data(as_text=True) == "ok"
        assert response.mimetype == "text/plain"

    def test_unknown_route_is_404(self):
        client = create_app().test_client()

        assert client.get("/").status_code == 404


def _free_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class TestStatusServer:
    def test_serves_until_stopped(self):
        port = _free_port()
        server = StatusServer(port, host="127.0.0.1")
        server.start()
        try:
            response = requests.get(f"http://127.0.0.1:{port}/status", timeout=5)
            assert response.status_code == 200
            assert response.text == "ok"
        finally:
            server.stop()

    def test_stop_without_start_is_noop(self):
        StatusServer(0).stop()
