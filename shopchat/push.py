"""Push channel: one websocket per session with fixed-delay reconnection."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol
from urllib.parse import quote

import websockets
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import DEFAULT_RECONNECT_DELAY_S
from .errors import ConnectionFailure
from .models import PushEvent
from .observers import Listeners

logger = logging.getLogger("shopchat.push")


def _utc_now() -> datetime:
    return datetime.now(UTC)


class ConnectionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.IDLE: frozenset({ConnectionState.CONNECTING, ConnectionState.CLOSED}),
    ConnectionState.CONNECTING: frozenset(
        {ConnectionState.OPEN, ConnectionState.RECONNECTING, ConnectionState.CLOSED}
    ),
    ConnectionState.OPEN: frozenset({ConnectionState.RECONNECTING, ConnectionState.CLOSED}),
    ConnectionState.RECONNECTING: frozenset({ConnectionState.CONNECTING, ConnectionState.CLOSED}),
    ConnectionState.CLOSED: frozenset(),
}


class ConnectionEvent(BaseModel):
    """Emitted on every connection state transition."""

    model_config = ConfigDict(frozen=True)

    state: ConnectionState
    previous: ConnectionState | None = None
    session_id: str | None = None
    attempt: int = 0
    error: str | None = None
    at: datetime = Field(default_factory=_utc_now)


class PushConnection(Protocol):
    async def send(self, message: str) -> None: ...

    async def close(self) -> None: ...

    def __aiter__(self) -> AsyncIterator[str | bytes]: ...


Connector = Callable[[str], Awaitable[PushConnection]]
Sleep = Callable[[float], Awaitable[None]]


def websocket_connector(*, open_timeout: float | None = 10.0) -> Connector:
    async def connect(url: str) -> PushConnection:
        return await websockets.connect(url, open_timeout=open_timeout)

    return connect


def _decode_frame(frame: str | bytes) -> PushEvent | None:
    text = frame.decode("utf-8", errors="replace") if isinstance(frame, (bytes, bytearray)) else frame
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return None
    if isinstance(payload, Mapping) and isinstance(payload.get("type"), str):
        try:
            return PushEvent.model_validate({"type": payload["type"], "data": payload.get("data")})
        except ValidationError:
            return None
    return PushEvent(type="message", data=payload)


class PushChannel:
    """Owns the connection state machine of the session's push channel.

    The channel is best effort: outbound sends are dropped unless the
    connection is open, and connection state is informational only.
    Abnormal closes (failed connects included) are retried forever after
    a constant ``reconnect_delay_s``; only :meth:`close` reaches ``CLOSED``.
    """

    def __init__(
        self,
        ws_url: str,
        *,
        reconnect_delay_s: float = DEFAULT_RECONNECT_DELAY_S,
        connector: Connector | None = None,
        sleep: Sleep | None = None,
        open_timeout_s: float | None = 10.0,
    ) -> None:
        if reconnect_delay_s < 0:
            raise ValueError("reconnect_delay_s must be non-negative")
        self.ws_url = ws_url.rstrip("/")
        self.reconnect_delay_s = reconnect_delay_s
        self._connector = connector or websocket_connector(open_timeout=open_timeout_s)
        self._sleep = sleep or asyncio.sleep
        self._state = ConnectionState.IDLE
        self._session_id: str | None = None
        self._connection: PushConnection | None = None
        self._task: asyncio.Task[None] | None = None
        self._closing: asyncio.Future[None] | None = None
        self._reconnect_attempts = 0
        self._last_error: ConnectionFailure | None = None
        self._state_listeners: Listeners[ConnectionEvent] = Listeners("push.state")
        self._event_listeners: Listeners[PushEvent] = Listeners("push.events")

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == ConnectionState.OPEN

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def last_error(self) -> ConnectionFailure | None:
        return self._last_error

    def url_for(self, session_id: str) -> str:
        return f"{self.ws_url}/{quote(session_id, safe='')}"

    def subscribe_state(self, listener: Callable[[ConnectionEvent], None]) -> Callable[[], None]:
        return self._state_listeners.add(listener)

    def subscribe_events(self, listener: Callable[[PushEvent], None]) -> Callable[[], None]:
        return self._event_listeners.add(listener)

    def open(self, session_id: str | None) -> bool:
        """Start the connection loop for ``session_id``.

        Returns False (and stays put) without a session id or when the
        channel was already opened or closed.
        """

        if not session_id:
            logger.debug("push_open_skipped", extra={"reason": "no_session"})
            return False
        if self._state != ConnectionState.IDLE or self._task is not None:
            logger.debug("push_open_skipped", extra={"reason": "not_idle", "state": self._state.value})
            return False
        self._session_id = session_id
        self._task = asyncio.get_running_loop().create_task(
            self._run(session_id), name=f"shopchat:push:{session_id}"
        )
        return True

    async def wait_for_state(self, state: ConnectionState, timeout: float | None = None) -> None:
        if self._state == state:
            return
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()

        def _watch(event: ConnectionEvent) -> None:
            if event.state == state and not future.done():
                future.set_result(None)

        unsubscribe = self._state_listeners.add(_watch)
        try:
            await asyncio.wait_for(future, timeout)
        finally:
            unsubscribe()

    async def send(self, event: PushEvent | Mapping[str, Any]) -> bool:
        connection = self._connection
        if self._state != ConnectionState.OPEN or connection is None:
            logger.debug("push_send_dropped", extra={"state": self._state.value})
            return False
        if isinstance(event, PushEvent):
            payload: Any = event.model_dump(mode="json", include={"type", "data"})
        else:
            payload = dict(event)
        try:
            await connection.send(json.dumps(payload))
        except Exception as exc:  # noqa: BLE001
            logger.warning("push_send_failed", extra={"session_id": self._session_id, "exception": exc})
            return False
        return True

    async def close(self) -> None:
        # Overlapping callers share one teardown.
        if self._closing is None:
            self._closing = asyncio.ensure_future(self._close())
        await asyncio.shield(self._closing)

    async def _close(self) -> None:
        if self._state == ConnectionState.CLOSED:
            return
        connection = self._connection
        task = self._task
        self._task = None
        if task is not None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        self._connection = None
        if connection is not None:
            try:
                await connection.close()
            except Exception as exc:  # noqa: BLE001
                logger.debug("push_close_error", extra={"session_id": self._session_id, "exception": exc})
        self._transition(ConnectionState.CLOSED)
        logger.info("push_closed", extra={"session_id": self._session_id})

    def _transition(
        self,
        state: ConnectionState,
        *,
        attempt: int = 0,
        error: BaseException | None = None,
    ) -> None:
        previous = self._state
        if state not in _TRANSITIONS[previous]:
            raise RuntimeError(f"Illegal push channel transition {previous.value} -> {state.value}")
        self._state = state
        event = ConnectionEvent(
            state=state,
            previous=previous,
            session_id=self._session_id,
            attempt=attempt,
            error=repr(error) if error is not None else None,
        )
        self._state_listeners.notify(event)

    def _dispatch(self, frame: str | bytes) -> None:
        event = _decode_frame(frame)
        if event is None:
            logger.warning("push_frame_invalid", extra={"session_id": self._session_id})
            return
        logger.debug("push_event", extra={"session_id": self._session_id, "type": event.type})
        self._event_listeners.notify(event)

    async def _run(self, session_id: str) -> None:
        url = self.url_for(session_id)
        attempt = 0
        while True:
            self._transition(ConnectionState.CONNECTING, attempt=attempt)
            error: BaseException | None = None
            try:
                connection = await self._connector(url)
            except Exception as exc:  # noqa: BLE001
                error = exc
                logger.warning("push_connect_failed", extra={"url": url, "attempt": attempt, "exception": exc})
            else:
                self._connection = connection
                self._transition(ConnectionState.OPEN, attempt=attempt)
                logger.info("push_connected", extra={"session_id": session_id, "attempt": attempt})
                try:
                    async for frame in connection:
                        self._dispatch(frame)
                except Exception as exc:  # noqa: BLE001
                    error = exc
                finally:
                    self._connection = None
                logger.info("push_disconnected", extra={"session_id": session_id, "exception": error})

            self._last_error = ConnectionFailure(
                f"push channel for session {session_id} closed",
                cause=error,
            )
            self._transition(ConnectionState.RECONNECTING, attempt=attempt, error=error)
            logger.info(
                "push_reconnect_scheduled",
                extra={"session_id": session_id, "delay_s": self.reconnect_delay_s, "attempt": attempt + 1},
            )
            await self._sleep(self.reconnect_delay_s)
            attempt += 1
            self._reconnect_attempts = attempt


__all__ = [
    "ConnectionEvent",
    "ConnectionState",
    "Connector",
    "PushChannel",
    "PushConnection",
    "websocket_connector",
]
