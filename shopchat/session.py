"""Session lifecycle: one backend session per client, created at most once."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from .errors import SessionCreationFailure, TransportFailure
from .observers import Listeners
from .push import PushChannel
from .transport import ChatTransport

logger = logging.getLogger("shopchat.session")

SESSION_FAILURE_NOTICE = "Failed to connect to the chat service"


class SessionStatus(str, Enum):
    UNINITIALIZED = "uninitialized"
    CREATING = "creating"
    ACTIVE = "active"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class Session:
    session_id: str | None = None
    status: SessionStatus = SessionStatus.UNINITIALIZED
    created_at: datetime | None = None
    error: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE and bool(self.session_id)


class SessionCoordinator:
    """Creates the session and hands its id to the push channel."""

    def __init__(self, transport: ChatTransport, *, push_channel: PushChannel | None = None) -> None:
        self._transport = transport
        self._push_channel = push_channel
        self._session = Session()
        self._creation: asyncio.Future[Session] | None = None
        self._notice: str | None = None
        self._last_error: SessionCreationFailure | None = None
        self._listeners: Listeners[Session] = Listeners("session")

    @property
    def session(self) -> Session:
        return self._session

    @property
    def push_channel(self) -> PushChannel | None:
        return self._push_channel

    @property
    def notice(self) -> str | None:
        return self._notice

    @property
    def last_error(self) -> SessionCreationFailure | None:
        return self._last_error

    def subscribe(self, listener: Callable[[Session], None]) -> Callable[[], None]:
        return self._listeners.add(listener)

    async def create_session(self) -> Session:
        # Single-flight: every caller shares the first (and only) creation attempt.
        if self._creation is None:
            self._creation = asyncio.ensure_future(self._create())
        return await asyncio.shield(self._creation)

    async def close(self) -> None:
        if self._push_channel is not None:
            await self._push_channel.close()

    def _set(self, session: Session) -> None:
        self._session = session
        self._listeners.notify(session)

    async def _create(self) -> Session:
        self._set(dataclasses.replace(self._session, status=SessionStatus.CREATING))
        try:
            info = await self._transport.create_session()
        except Exception as exc:  # noqa: BLE001
            # Any failure ends in FAILED; the session never stays CREATING.
            failure = SessionCreationFailure(str(exc) or type(exc).__name__, cause=exc)
            self._last_error = failure
            self._notice = SESSION_FAILURE_NOTICE
            logger.error(
                "session_create_failed",
                extra={"exception": exc},
                exc_info=not isinstance(exc, TransportFailure),
            )
            self._set(Session(status=SessionStatus.FAILED, error=str(exc)))
            return self._session

        self._set(
            Session(
                session_id=info.session_id,
                status=SessionStatus.ACTIVE,
                created_at=datetime.now(UTC),
            )
        )
        logger.info("session_created", extra={"session_id": info.session_id})
        if self._push_channel is not None:
            self._push_channel.open(info.session_id)
        return self._session


__all__ = ["SESSION_FAILURE_NOTICE", "Session", "SessionCoordinator", "SessionStatus"]
