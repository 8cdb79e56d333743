"""HTTP client for a running Herald server.

CLI mutations go through the server when one is reachable, so the
server's own scheduler arms the timers.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from herald.scheduling.errors import HeraldError

if TYPE_CHECKING:
    from herald.config.models import ServerConfig

logger = logging.getLogger(__name__)

API_PREFIX = "/api/scheduled-messages"
DEFAULT_TIMEOUT = 5.0


class ServerRequestError(HeraldError):
    """The server rejected a request or could not be reached mid-request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def server_url(config: ServerConfig) -> str:
    # A wildcard bind address is reached through loopback
    host = "127.0.0.1" if config.host in ("0.0.0.0", "::", "") else config.host
    return f"http://{host}:{config.port}"


class ServerClient:
    """Scheduled message operations over the server's HTTP API.

    Example:
        client = ServerClient.connect(config.server)
        if client is not None:
            with client:
                data = client.create({"message": "Hi", "day": day, "time": "09:30"})
    """

    def __init__(self, http: httpx.Client) -> None:
        self._http = http

    @classmethod
    def connect(
        cls,
        config: ServerConfig,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> ServerClient | None:
        """Return a client if a server answers its health check, else None."""
        http = httpx.Client(
            base_url=server_url(config), timeout=timeout, transport=transport
        )
        try:
            http.get("/health").raise_for_status()
        except httpx.HTTPError as e:
            logger.debug(
                "server_unreachable",
                extra={"server.url": str(http.base_url), "error.message": str(e)},
            )
            http.close()
            return None
        return cls(http)

    @property
    def base_url(self) -> str:
        return str(self._http.base_url).rstrip("/")

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> ServerClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = self._http.request(method, f"{API_PREFIX}{path}", **kwargs)
        except httpx.HTTPError as e:
            raise ServerRequestError(f"Request to Herald server failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.is_error:
            message = body.get("error") if isinstance(body, dict) else None
            raise ServerRequestError(
                message or f"Server returned HTTP {response.status_code}",
                response.status_code,
            )
        return body

    def create(self, body: dict[str, Any]) -> dict[str, Any]:
        return self._request("POST", "", json=body)["data"]

    def cancel(self, task_id: str) -> None:
        self._request("DELETE", f"/{task_id}")

    def retry(
        self, task_id: str, *, day: str | None = None, time: str | None = None
    ) -> dict[str, Any]:
        body: dict[str, str] = {}
        if day is not None:
            body["day"] = day
        if time is not None:
            body["time"] = time
        return self._request("POST", f"/{task_id}/retry", json=body)["data"]
