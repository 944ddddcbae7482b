"""Thin async client for the Drone REST and streaming API."""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional
from urllib.parse import quote

import httpx

from ._http import ErrorSink, HTTPClient, TimeoutConfig
from ._stream import ErrorCallback, StreamSubscriber, Subscription, SubscriptionOptions
from .config import DroneConfig

# Characters left unescaped by JavaScript's encodeURIComponent
_QUERY_SAFE = "-_.!~*'()"


def encode_query_string(params: Optional[Mapping[str, Any]]) -> str:
    """Encode query parameters in url encoded form, sorted by key.

    Parameters
    ----------
    params : mapping, optional
        Query parameters in key value form

    Returns
    -------
    str
        The query string without a leading ``?``; empty when there are no
        parameters
    """
    if not params:
        return ""
    return "&".join(
        f"{quote(str(key), safe=_QUERY_SAFE)}={quote(_query_value(params[key]), safe=_QUERY_SAFE)}"
        for key in sorted(params)
    )


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class DroneClient:
    """Async client for the Drone continuous integration server.

    The client provides methods to:
    - Manage repositories, builds, secrets and registries
    - Fetch logs and build artifacts
    - Subscribe to the server event feed and to build log streams

    Parameters
    ----------
    server : str, optional
        Base URL of the Drone server (e.g., "https://drone.example.com").
        Empty means paths are used as given
    token : str, optional
        Bearer token sent with every request and stream
    csrf : str, optional
        Anti-forgery token sent with state-changing requests
    on_error : callable, optional
        Error sink invoked with every :class:`~drone.sdk.exceptions.HTTPError`
    timeout_config : TimeoutConfig, optional
        Request timeouts
    transport : httpx.AsyncBaseTransport, optional
        Custom httpx transport, used for every request and stream
    """

    def __init__(
        self,
        server: str | None = "",
        token: str | None = None,
        csrf: str | None = None,
        *,
        on_error: ErrorSink | None = None,
        timeout_config: TimeoutConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = DroneConfig(server=server, token=token, csrf=csrf)
        self._http = HTTPClient(self.config, timeout_config, transport, on_error)
        self._streams = StreamSubscriber(self.config, timeout_config, transport)

    @classmethod
    def from_config(cls, config: DroneConfig, **kwargs: Any) -> "DroneClient":
        return cls(config.server, config.token, config.csrf, **kwargs)

    @classmethod
    def from_environ(cls, **kwargs: Any) -> "DroneClient":
        """Create a client from ``DRONE_SERVER``, ``DRONE_TOKEN`` and ``DRONE_CSRF``."""
        return cls.from_config(DroneConfig.from_environment(), **kwargs)

    @classmethod
    def from_context(cls, context: Any, **kwargs: Any) -> "DroneClient":
        """Create a client from a host-runtime mapping or object."""
        return cls.from_config(DroneConfig.from_context(context), **kwargs)

    @property
    def server(self) -> str:
        return self.config.server

    @property
    def token(self) -> Optional[str]:
        return self.config.token

    @property
    def csrf(self) -> Optional[str]:
        return self.config.csrf

    @property
    def on_error(self) -> ErrorSink | None:
        """Error sink called with every failed request before it raises."""
        return self._http.on_error

    @on_error.setter
    def on_error(self, sink: ErrorSink | None) -> None:
        self._http.on_error = sink

    # ---------------- Repositories -----------------

    async def get_repo_list(self, opts: Mapping[str, Any] | None = None) -> Any:
        """Return the user repository list."""
        query = encode_query_string(opts)
        return await self._get(f"/api/user/repos?{query}")

    async def get_repo(self, owner: str, repo: str) -> Any:
        """Return the repository by owner and name."""
        return await self._get(f"/api/repos/{owner}/{repo}")

    async def activate_repo(self, owner: str, repo: str) -> Any:
        """Activate the repository by owner and name."""
        return await self._post(f"/api/repos/{owner}/{repo}")

    async def update_repo(self, owner: str, repo: str, data: Any) -> Any:
        """Update the repository.

        Parameters
        ----------
        owner : str
            Repository owner
        repo : str
            Repository name
        data : dict
            Fields to change
        """
        return await self._patch(f"/api/repos/{owner}/{repo}", data)

    async def delete_repo(self, owner: str, repo: str) -> Any:
        """Delete the repository by owner and name."""
        return await self._delete(f"/api/repos/{owner}/{repo}")

    # ---------------- Builds -----------------

    async def get_build_list(self, owner: str, repo: str) -> Any:
        """Return the build list for the given repository."""
        return await self._get(f"/api/repos/{owner}/{repo}/builds")

    async def get_build(self, owner: str, repo: str, number: int) -> Any:
        """Return the build by number for the given repository."""
        return await self._get(f"/api/repos/{owner}/{repo}/builds/{number}")

    async def get_build_feed(self, opts: Mapping[str, Any] | None = None) -> Any:
        """Return the build feed for the user account."""
        query = encode_query_string(opts)
        return await self._get(f"/api/user/feed?{query}")

    async def cancel_build(self, owner: str, repo: str, number: int, ppid: int) -> Any:
        """Cancel the build process ``ppid`` of build ``number``."""
        return await self._delete(f"/api/repos/{owner}/{repo}/builds/{number}/{ppid}")

    async def approve_build(self, owner: str, repo: str, build: int) -> Any:
        """Approve a build that is waiting for approval."""
        return await self._post(f"/api/repos/{owner}/{repo}/builds/{build}/approve")

    async def decline_build(self, owner: str, repo: str, build: int) -> Any:
        """Decline a build that is waiting for approval."""
        return await self._post(f"/api/repos/{owner}/{repo}/builds/{build}/decline")

    async def restart_build(
        self, owner: str, repo: str, build: int, opts: Mapping[str, Any] | None = None
    ) -> Any:
        """Restart the build by number for the given repository.

        ``opts`` become query parameters, e.g. ``{"fork": True}`` or
        extra build parameters.
        """
        query = encode_query_string(opts)
        return await self._post(f"/api/repos/{owner}/{repo}/builds/{build}?{query}")

    # ---------------- Logs and artifacts -----------------

    async def get_logs(self, owner: str, repo: str, build: int, proc: int) -> Any:
        """Return the logs of one build process."""
        return await self._get(f"/api/repos/{owner}/{repo}/logs/{build}/{proc}")

    async def get_artifact(self, owner: str, repo: str, build: int, proc: int, file: str) -> Any:
        """Return the raw content of a build artifact."""
        return await self._get(f"/api/repos/{owner}/{repo}/files/{build}/{proc}/{file}?raw=true")

    async def get_artifact_list(self, owner: str, repo: str, build: int) -> Any:
        """Return the artifacts of a build."""
        return await self._get(f"/api/repos/{owner}/{repo}/files/{build}")

    # ---------------- Secrets and registries -----------------

    async def get_secret_list(self, owner: str, repo: str) -> Any:
        """Return the repository secret list."""
        return await self._get(f"/api/repos/{owner}/{repo}/secrets")

    async def create_secret(self, owner: str, repo: str, secret: Any) -> Any:
        """Create a repository secret from its details."""
        return await self._post(f"/api/repos/{owner}/{repo}/secrets", secret)

    async def delete_secret(self, owner: str, repo: str, secret: str) -> Any:
        """Delete the named repository secret."""
        return await self._delete(f"/api/repos/{owner}/{repo}/secrets/{secret}")

    async def get_registry_list(self, owner: str, repo: str) -> Any:
        """Return the repository registry list."""
        return await self._get(f"/api/repos/{owner}/{repo}/registry")

    async def create_registry(self, owner: str, repo: str, registry: Any) -> Any:
        """Create a registry credential from its details."""
        return await self._post(f"/api/repos/{owner}/{repo}/registry", registry)

    async def delete_registry(self, owner: str, repo: str, address: str) -> Any:
        """Delete the registry credential for ``address``."""
        return await self._delete(f"/api/repos/{owner}/{repo}/registry/{address}")

    # ---------------- User -----------------

    async def get_self(self) -> Any:
        """Return the currently authenticated user."""
        return await self._get("/api/user")

    async def get_token(self) -> Any:
        """Return the user's personal API token."""
        return await self._post("/api/user/token")

    # ---------------- Streams -----------------

    def on(
        self,
        receiver: Callable[[Any], Any],
        *,
        reconnect: bool = True,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        """Subscribe to the server event feed.

        Every pushed event is decoded and passed to ``receiver``. The feed
        reconnects after dropped connections unless ``reconnect`` is False.
        Must be called from a running event loop.
        """
        return self._streams.subscribe(
            "/stream/events",
            receiver,
            SubscriptionOptions(reconnect=reconnect),
            on_error=on_error,
        )

    def stream(
        self,
        owner: str,
        repo: str,
        build: int,
        proc: int,
        receiver: Callable[[Any], Any],
        *,
        reconnect: bool = False,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        """Subscribe to the log stream of one build process.

        The stream closes itself when the server signals the end of the
        log. Must be called from a running event loop.
        """
        return self._streams.subscribe(
            f"/stream/logs/{owner}/{repo}/{build}/{proc}",
            receiver,
            SubscriptionOptions(reconnect=reconnect),
            on_error=on_error,
        )

    # ---------------- internal -----------------

    async def _get(self, path: str) -> Any:
        return await self._http.request("GET", path)

    async def _post(self, path: str, data: Any = None) -> Any:
        return await self._http.request("POST", path, data)

    async def _patch(self, path: str, data: Any = None) -> Any:
        return await self._http.request("PATCH", path, data)

    async def _delete(self, path: str) -> Any:
        return await self._http.request("DELETE", path)

    async def aclose(self) -> None:
        """Close every open subscription.

        Can also be used as an async context manager to handle this
        automatically.
        """
        await self._streams.aclose()

    async def __aenter__(self) -> "DroneClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
