"""Tests for the CLI's HTTP client."""

import json

import httpx
import pytest

from herald.cli.client import ServerClient, ServerRequestError, server_url
from herald.config.models import ServerConfig


def health_ok(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"status": "healthy"})


class TestServerUrl:
    @pytest.mark.parametrize(
        ("host", "expected"),
        [
            ("127.0.0.1", "http://127.0.0.1:8080"),
            ("herald.internal", "http://herald.internal:8080"),
            ("0.0.0.0", "http://127.0.0.1:8080"),
        ],
    )
    def test_server_url(self, host: str, expected: str):
        assert server_url(ServerConfig(host=host, port=8080)) == expected


class TestConnect:
    """Tests for ServerClient.connect."""

    def test_unreachable_returns_none(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        client = ServerClient.connect(
            ServerConfig(), transport=httpx.MockTransport(handler)
        )
        assert client is None

    def test_unhealthy_returns_none(self):
        client = ServerClient.connect(
            ServerConfig(),
            transport=httpx.MockTransport(lambda request: httpx.Response(503)),
        )
        assert client is None

    def test_healthy_server(self):
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return health_ok(request)

        client = ServerClient.connect(
            ServerConfig(port=9090), transport=httpx.MockTransport(handler)
        )
        assert client is not None
        with client:
            assert client.base_url == "http://127.0.0.1:9090"
        assert seen == ["http://127.0.0.1:9090/health"]


class TestRequests:
    """Tests for ServerClient operations."""

    def make_client(self, handler) -> ServerClient:
        return ServerClient(
            httpx.Client(
                base_url="http://127.0.0.1:8080",
                transport=httpx.MockTransport(handler),
            )
        )

    def test_create_posts_body(self):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                201, json={"success": True, "data": {"id": "a1b2c3d4e5f6"}}
            )

        with self.make_client(handler) as client:
            data = client.create({"message": "Hi", "day": "2026-03-01", "time": "9:30"})

        assert data == {"id": "a1b2c3d4e5f6"}
        request = requests[0]
        assert request.method == "POST"
        assert request.url.path == "/api/scheduled-messages"
        assert json.loads(request.content)["time"] == "9:30"

    def test_retry_sends_only_given_fields(self):
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/scheduled-messages/abc/retry"
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"success": True, "data": {"id": "abc"}})

        with self.make_client(handler) as client:
            client.retry("abc")
            client.retry("abc", time="10:00")

        assert bodies == [{}, {"time": "10:00"}]

    def test_error_envelope_is_raised(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                404,
                json={"success": False, "error": "Scheduled message not found: abc"},
            )

        with self.make_client(handler) as client:
            with pytest.raises(ServerRequestError, match="not found: abc") as exc_info:
                client.cancel("abc")
        assert exc_info.value.status_code == 404

    def test_non_json_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="Bad Gateway")

        with self.make_client(handler) as client:
            with pytest.raises(ServerRequestError, match="HTTP 502"):
                client.cancel("abc")

    def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with self.make_client(handler) as client:
            with pytest.raises(ServerRequestError, match="Request to Herald server"):
                client.cancel("abc")
