"""Internal HTTP request executor for the Drone SDK.

This module provides a thin wrapper around httpx that applies credentials,
encodes request bodies, decodes responses and normalizes errors
consistently across the SDK. Every call opens its own exchange; nothing is
pooled or retried.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx

from .config import DroneConfig
from .exceptions import ConnectionError, HTTPError, ResponseDecodeError

logger = logging.getLogger(__name__)

METHODS = frozenset({"GET", "POST", "PATCH", "PUT", "DELETE"})

ErrorSink = Callable[[HTTPError], Any]


@dataclass
class TimeoutConfig:
    """Configuration for HTTP request timeouts."""

    read: float = 30.0
    connect: float = 10.0
    write: float = 30.0
    pool: float = 30.0

    def to_httpx(self) -> httpx.Timeout:
        return httpx.Timeout(
            read=self.read,
            connect=self.connect,
            write=self.write,
            pool=self.pool,
        )


def encode_body(body: Any) -> bytes:
    """Serialize a request payload as a compact JSON document."""
    return json.dumps(body, separators=(",", ":")).encode("utf-8")


def media_type(content_type: Optional[str]) -> str:
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def is_json_media_type(content_type: Optional[str]) -> bool:
    kind = media_type(content_type)
    return kind == "application/json" or kind.endswith("+json")


def decode_body(content_type: Optional[str], text: str) -> Any:
    """Decode a successful response body.

    The declared content type is consulted first: a JSON media type is
    parsed strictly. Bodies served without a content type (or as plain
    text) that look like a JSON object or array are parsed leniently and
    fall back to the raw text when they do not parse.

    Raises
    ------
    ResponseDecodeError
        If the body is declared as JSON but is not valid JSON
    """
    if is_json_media_type(content_type):
        try:
            return json.loads(text)
        except ValueError as exc:
            raise ResponseDecodeError(text, exc) from exc

    if media_type(content_type) in ("", "text/plain") and text.lstrip()[:1] in ("{", "["):
        try:
            return json.loads(text)
        except ValueError:
            logger.debug("Body looked like JSON but did not parse; returning text")
    return text


class HTTPClient:
    """Async request executor carrying the client's credentials.

    Parameters
    ----------
    config : DroneConfig
        Server URL and credentials
    timeout_config : TimeoutConfig, optional
        Per-request timeouts
    transport : httpx.AsyncBaseTransport, optional
        Transport handed to each per-request ``httpx.AsyncClient``
    on_error : callable, optional
        Error sink invoked with every ``HTTPError`` before it is raised
    """

    def __init__(
        self,
        config: DroneConfig,
        timeout_config: TimeoutConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        on_error: ErrorSink | None = None,
    ):
        self.config = config
        self.timeout_config = timeout_config or TimeoutConfig()
        self.transport = transport
        self.on_error = on_error

    def build_headers(self, method: str, has_body: bool) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        if method != "GET" and self.config.csrf:
            headers["X-CSRF-TOKEN"] = self.config.csrf
        if has_body:
            headers["Content-Type"] = "application/json"
        return headers

    async def request(self, method: str, path: str, body: Any = None) -> Any:
        """Execute one HTTP exchange and return the decoded response body.

        Parameters
        ----------
        method : str
            One of GET, POST, PATCH, PUT, DELETE
        path : str
            Fully composed path (leading slash and query string included),
            appended verbatim to the configured server
        body : any, optional
            JSON-serializable payload

        Returns
        -------
        Any
            Parsed JSON for JSON responses, the raw text otherwise

        Raises
        ------
        HTTPError
            For status codes of 300 and above
        ResponseDecodeError
            When a JSON response cannot be parsed
        ConnectionError
            When no response was received
        """
        method = method.upper()
        if method not in METHODS:
            raise ValueError(f"Unsupported HTTP method: {method}")

        url = f"{self.config.server}{path}"
        has_body = body is not None
        headers = self.build_headers(method, has_body)
        content = encode_body(body) if has_body else None

        logger.debug("%s %s", method, url)
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_config.to_httpx(),
                transport=self.transport,
            ) as client:
                resp = await client.request(method, url, headers=headers, content=content)
        except httpx.TransportError as exc:
            raise ConnectionError(url, exc) from exc

        if resp.status_code >= 300:
            error = HTTPError(resp.status_code, resp.text)
            logger.debug("%s %s failed with %s", method, url, resp.status_code)
            self._notify(error)
            raise error

        return decode_body(resp.headers.get("Content-Type"), resp.text)

    def _notify(self, error: HTTPError) -> None:
        if self.on_error is None:
            return
        try:
            self.on_error(error)
        except Exception:
            logger.exception("Error sink raised while handling %s", error)
