"""Server-sent event subscriptions for the Drone SDK.

A subscription owns one persistent ``text/event-stream`` connection, decodes
every pushed message as JSON for a callback and, when asked to, reopens the
connection after transient failures. The server ends a finite stream with
an ``error`` event whose data is ``eof``; that is a normal close.

State machine::

    CONNECTING -> CLOSED (rejected: status >= 300 or not an event stream)
    CONNECTING -> OPEN -> CLOSED (eof | caller | error)
                       -> RECONNECTING -> CONNECTING
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, Field

from ._http import TimeoutConfig, media_type
from .config import DroneConfig
from .exceptions import MessageDecodeError, StreamError

logger = logging.getLogger(__name__)

EOF = "eof"

MessageCallback = Callable[[Any], Any]
ErrorCallback = Callable[[MessageDecodeError], Any]


class SubscriptionState(str, Enum):
    """Connection state of a subscription."""

    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


class CloseReason(str, Enum):
    """Why a subscription reached the CLOSED state."""

    EOF = "eof"
    CALLER = "caller"
    ERROR = "error"


class SubscriptionOptions(BaseModel):
    """Per-subscription behaviour."""

    reconnect: bool = Field(default=False)
    # Seconds between a dropped connection and the next attempt; the
    # server may override it with a ``retry:`` field.
    reconnect_delay: float = Field(default=3.0, ge=0)

    class Config:
        frozen = True


@dataclass
class ServerSentEvent:
    """One dispatched event. ``data`` is None when no data lines were sent."""

    event: str = "message"
    data: Optional[str] = None
    id: Optional[str] = None
    retry: Optional[int] = None


async def parse_event_stream(lines: AsyncIterator[str]) -> AsyncIterator[ServerSentEvent]:
    """Parse an async line iterator of a text/event-stream into events."""
    event_type: Optional[str] = None
    event_id: Optional[str] = None
    retry: Optional[int] = None
    data_parts: list[str] = []
    pending = False

    async for line in lines:
        if line.startswith(":"):
            continue
        if line == "":
            if pending:
                yield ServerSentEvent(
                    event=event_type or "message",
                    data="\n".join(data_parts) if data_parts else None,
                    id=event_id,
                    retry=retry,
                )
            event_type = None
            event_id = None
            retry = None
            data_parts = []
            pending = False
            continue

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            event_type = value
        elif field == "data":
            data_parts.append(value)
        elif field == "id":
            event_id = value
        elif field == "retry":
            if not value.isdigit():
                continue
            retry = int(value)
        else:
            continue
        pending = True

    if data_parts:
        yield ServerSentEvent(
            event=event_type or "message",
            data="\n".join(data_parts),
            id=event_id,
            retry=retry,
        )


class _CallbackFailed(Exception):
    """Wraps an exception raised by a subscriber callback."""


class Subscription:
    """Handle on one server-push connection.

    The handle is returned before the connection is opened. Closing it is
    immediate: no callback runs after :meth:`close` returns, and no
    reconnection is attempted.

    Attributes
    ----------
    state : SubscriptionState
        Current connection state
    close_reason : CloseReason or None
        Set once the subscription is closed
    error : Exception or None
        The failure that closed the subscription, if any
    """

    def __init__(
        self,
        url: str,
        display_url: str,
        on_message: MessageCallback,
        options: SubscriptionOptions,
        on_error: ErrorCallback | None = None,
        timeout: httpx.Timeout | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.display_url = display_url
        self.on_message = on_message
        self.on_error = on_error
        self.options = options
        self.state = SubscriptionState.CONNECTING
        self.close_reason: CloseReason | None = None
        self.error: BaseException | None = None
        self.attempts = 0
        self._timeout = timeout
        self._transport = transport
        self._delay = options.reconnect_delay
        self._task: asyncio.Task | None = None

    def __repr__(self) -> str:
        return f"<Subscription {self.display_url} {self.state.value}>"

    @property
    def closed(self) -> bool:
        return self.state is SubscriptionState.CLOSED

    def start(self) -> "Subscription":
        """Schedule the connection loop on the running event loop."""
        if self._task is None:
            loop = asyncio.get_running_loop()
            self._task = loop.create_task(self._run())
        return self

    def close(self) -> None:
        """Close the subscription. Safe to call more than once."""
        if not self.closed:
            self._finish(CloseReason.CALLER)
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def aclose(self) -> None:
        """Close the subscription and wait for the connection to be released."""
        self.close()
        if self._task is None or self._task is asyncio.current_task():
            return
        await self.wait()

    async def wait(self) -> SubscriptionState:
        """Wait until the connection loop has finished."""
        if self._task is not None:
            await asyncio.wait({self._task})
        return self.state

    async def __aenter__(self) -> "Subscription":
        return self.start()

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ---------------- internal -----------------

    def _finish(self, reason: CloseReason, error: BaseException | None = None) -> None:
        if self.closed:
            return
        self.state = SubscriptionState.CLOSED
        self.close_reason = reason
        self.error = error

    async def _run(self) -> None:
        try:
            while not self.closed:
                self.state = SubscriptionState.CONNECTING
                self.attempts += 1
                try:
                    await self._consume()
                except _CallbackFailed as exc:
                    cause = exc.__cause__
                    logger.error(
                        "Subscriber callback failed on %s", self.display_url, exc_info=cause
                    )
                    self._finish(CloseReason.ERROR, cause)
                except StreamError as exc:
                    if self.closed:
                        return
                    if not (self.options.reconnect and exc.retryable):
                        logger.warning("%s", exc)
                        self._finish(CloseReason.ERROR, exc)
                        return
                    self.state = SubscriptionState.RECONNECTING
                    logger.info("%s; reconnecting in %.1fs", exc, self._delay)
                    await asyncio.sleep(self._delay)
                except Exception as exc:
                    logger.exception("Stream %s failed", self.display_url)
                    self._finish(CloseReason.ERROR, exc)
        except asyncio.CancelledError:
            self._finish(CloseReason.CALLER)
            raise

    async def _consume(self) -> None:
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        logger.debug("Opening stream %s", self.display_url)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                async with client.stream("GET", self.url, headers=headers) as resp:
                    if resp.status_code >= 300:
                        body = (await resp.aread()).decode("utf-8", errors="replace")
                        raise StreamError(
                            self.display_url,
                            body or resp.reason_phrase,
                            status=resp.status_code,
                            retryable=False,
                        )
                    content_type = resp.headers.get("Content-Type")
                    if media_type(content_type) != "text/event-stream":
                        raise StreamError(
                            self.display_url,
                            f"unexpected content type {content_type!r}",
                            status=resp.status_code,
                            retryable=False,
                        )
                    if self.closed:
                        return
                    self.state = SubscriptionState.OPEN

                    async for event in parse_event_stream(resp.aiter_lines()):
                        if self.closed:
                            return
                        if event.retry is not None:
                            self._delay = event.retry / 1000
                        if event.event == "error":
                            if event.data == EOF:
                                logger.info("Stream %s reached end of stream", self.display_url)
                                self._finish(CloseReason.EOF)
                                return
                            raise StreamError(self.display_url, event.data or "error event")
                        if event.data is None:
                            continue
                        try:
                            self._dispatch(event.data)
                        except Exception as exc:
                            raise _CallbackFailed() from exc
        except httpx.HTTPError as exc:
            raise StreamError(self.display_url, str(exc) or type(exc).__name__) from exc

        if not self.closed:
            raise StreamError(self.display_url, "connection ended without eof")

    def _dispatch(self, data: str) -> None:
        try:
            value = json.loads(data)
        except ValueError as exc:
            error = MessageDecodeError(data, exc)
            if self.on_error is None:
                logger.warning("Dropping message on %s: %s", self.display_url, error)
                return
            self.on_error(error)
            return
        self.on_message(value)


class StreamSubscriber:
    """Opens subscriptions against the configured server.

    Stream URLs carry the token as an ``access_token`` query parameter;
    event-stream connections cannot carry custom headers, and the CSRF
    token is never attached.
    """

    def __init__(
        self,
        config: DroneConfig,
        timeout_config: TimeoutConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.timeout_config = timeout_config or TimeoutConfig()
        self.transport = transport
        self._subscriptions: set[Subscription] = set()

    def build_url(self, path: str) -> str:
        url = f"{self.config.server}{path}"
        if self.config.token:
            sep = "&" if "?" in url else "?"
            url = f"{url}{sep}{urlencode({'access_token': self.config.token})}"
        return url

    def subscribe(
        self,
        path: str,
        on_message: MessageCallback,
        options: SubscriptionOptions | None = None,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        """Open a subscription and return its handle without waiting.

        Must be called from a running event loop.
        """
        timeout = httpx.Timeout(
            connect=self.timeout_config.connect,
            read=None,
            write=self.timeout_config.write,
            pool=self.timeout_config.pool,
        )
        subscription = Subscription(
            self.build_url(path),
            f"{self.config.server}{path}",
            on_message,
            options or SubscriptionOptions(),
            on_error=on_error,
            timeout=timeout,
            transport=self.transport,
        )
        subscription.start()
        self._subscriptions.add(subscription)
        subscription._task.add_done_callback(lambda _: self._subscriptions.discard(subscription))
        return subscription

    @property
    def subscriptions(self) -> frozenset[Subscription]:
        """Subscriptions whose connection loop is still running."""
        return frozenset(self._subscriptions)

    async def aclose(self) -> None:
        """Close every running subscription."""
        for subscription in list(self._subscriptions):
            await subscription.aclose()
