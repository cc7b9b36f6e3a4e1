"""Conversation state machine.

Merges user intents, request/reply results and push-channel events into a
single append-only message log plus the typing and connection indicators.
Only one send may be outstanding at a time; a second ``submit`` while the
first is unresolved is rejected, not queued.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict

from .errors import TransportFailure
from .models import ConversationMessage, MessageKind, PushEvent, Sender, encode_image
from .observers import Listeners
from .push import ConnectionEvent, ConnectionState
from .session import Session, SessionStatus
from .transport import ChatTransport

logger = logging.getLogger("shopchat.conversation")

ERROR_REPLY_TEXT = "Sorry, I encountered an error. Please try again."
SEND_FAILURE_NOTICE = "Failed to send message. Please try again."


def _utc_now() -> datetime:
    return datetime.now(UTC)


class RejectReason(str, Enum):
    EMPTY = "empty"
    NO_SESSION = "no_session"
    BUSY = "busy"


@dataclass(frozen=True, slots=True)
class SubmitResult:
    accepted: bool
    reason: RejectReason | None = None
    reply: ConversationMessage | None = None


class ConversationView(BaseModel):
    """Materialized state handed to the rendering layer."""

    model_config = ConfigDict(frozen=True)

    messages: tuple[ConversationMessage, ...] = ()
    is_typing: bool = False
    connection_state: ConnectionState = ConnectionState.IDLE
    session_status: SessionStatus = SessionStatus.UNINITIALIZED
    notice: str | None = None

    @property
    def is_connected(self) -> bool:
        return self.connection_state == ConnectionState.OPEN

    @property
    def can_submit(self) -> bool:
        return self.session_status == SessionStatus.ACTIVE and not self.is_typing


class Conversation:
    def __init__(
        self,
        transport: ChatTransport,
        *,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._transport = transport
        self._clock = clock
        self._sequence = itertools.count(1)
        self._messages: list[ConversationMessage] = []
        self._is_typing = False
        self._session = Session()
        self._connection_state = ConnectionState.IDLE
        self._notice: str | None = None
        self._last_push_event: PushEvent | None = None
        self._listeners: Listeners[ConversationView] = Listeners("conversation")

    @property
    def messages(self) -> tuple[ConversationMessage, ...]:
        return tuple(self._messages)

    @property
    def is_typing(self) -> bool:
        return self._is_typing

    @property
    def connection_state(self) -> ConnectionState:
        return self._connection_state

    @property
    def last_push_event(self) -> PushEvent | None:
        return self._last_push_event

    def view(self) -> ConversationView:
        return ConversationView(
            messages=tuple(self._messages),
            is_typing=self._is_typing,
            connection_state=self._connection_state,
            session_status=self._session.status,
            notice=self._notice,
        )

    def subscribe(self, listener: Callable[[ConversationView], None]) -> Callable[[], None]:
        return self._listeners.add(listener)

    def observe_session(self, session: Session) -> None:
        self._session = session
        self._changed()

    def observe_connection(self, event: ConnectionEvent | PushEvent) -> None:
        # Push traffic never touches the message log.
        if isinstance(event, PushEvent):
            self._last_push_event = event
            logger.debug("conversation_push_event", extra={"type": event.type})
            return
        if event.state == self._connection_state:
            return
        self._connection_state = event.state
        self._changed()

    async def quick_action(self, text: str) -> SubmitResult:
        return await self.submit(text)

    async def submit(self, text: str, image: bytes | str | None = None) -> SubmitResult:
        text = (text or "").strip()
        encoded = encode_image(image) if image else None
        reason = self._check_submit(text, encoded)
        if reason is not None:
            logger.debug("submit_rejected", extra={"reason": reason.value})
            return SubmitResult(accepted=False, reason=reason)

        session_id = self._session.session_id
        self._append(Sender.USER, text, image=encoded)
        self._is_typing = True
        self._notice = None
        self._changed()

        try:
            reply = await self._transport.send_message(text, encoded, session_id)
        except TransportFailure as exc:
            logger.warning(
                "send_failed",
                extra={"session_id": session_id, "status_code": exc.status_code, "exception": exc},
            )
            self._notice = SEND_FAILURE_NOTICE
            message = self._append(Sender.ASSISTANT, ERROR_REPLY_TEXT, kind=MessageKind.ERROR_NOTICE)
        else:
            message = self._append(
                Sender.ASSISTANT,
                reply.response,
                products=reply.products or (),
                kind=reply.message_type,
                server_timestamp=reply.timestamp,
            )
        finally:
            self._is_typing = False
        self._changed()
        return SubmitResult(accepted=True, reply=message)

    def _check_submit(self, text: str, image: str | None) -> RejectReason | None:
        if not text and not image:
            return RejectReason.EMPTY
        if not self._session.is_active:
            return RejectReason.NO_SESSION
        if self._is_typing:
            return RejectReason.BUSY
        return None

    def _append(
        self,
        sender: Sender,
        text: str,
        *,
        image: str | None = None,
        products: tuple = (),
        kind: MessageKind = MessageKind.PLAIN_TEXT,
        server_timestamp: datetime | None = None,
    ) -> ConversationMessage:
        seq = next(self._sequence)
        created_at = self._clock()
        if self._messages and created_at < self._messages[-1].created_at:
            # Keep the log non-decreasing even if the wall clock steps back.
            created_at = self._messages[-1].created_at
        message = ConversationMessage(
            id=f"msg-{seq}",
            seq=seq,
            sender=sender,
            text=text,
            image=image,
            products=tuple(products),
            kind=kind,
            created_at=created_at,
            server_timestamp=server_timestamp,
        )
        self._messages.append(message)
        return message

    def _changed(self) -> None:
        self._listeners.notify(self.view())


__all__ = [
    "ERROR_REPLY_TEXT",
    "SEND_FAILURE_NOTICE",
    "Conversation",
    "ConversationView",
    "RejectReason",
    "SubmitResult",
]
