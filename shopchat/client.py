from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import httpx

from .config import ClientConfig
from .conversation import Conversation, ConversationView, SubmitResult
from .push import PushChannel
from .session import Session, SessionCoordinator
from .transport import ChatHttpTransport, ChatTransport

logger = logging.getLogger("shopchat.client")


class ChatClient:
    """Composition root wiring transport, push channel, session and conversation."""

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        transport: ChatTransport | None = None,
        push_channel: PushChannel | None = None,
    ) -> None:
        self.config = config or ClientConfig.from_env()
        self._http_client: httpx.AsyncClient | None = None
        if transport is None:
            self._http_client = httpx.AsyncClient(timeout=self.config.timeout_s)
            transport = ChatHttpTransport(
                base_url=self.config.api_url,
                timeout_s=self.config.timeout_s,
                client=self._http_client,
            )
        if push_channel is None:
            push_channel = PushChannel(
                self.config.ws_url or "",
                reconnect_delay_s=self.config.reconnect_delay_s,
                open_timeout_s=self.config.open_timeout_s,
            )
        self.transport = transport
        self.push_channel = push_channel
        self.coordinator = SessionCoordinator(transport, push_channel=push_channel)
        self.conversation = Conversation(transport)
        self._unsubscribers: list[Callable[[], None]] = [
            self.coordinator.subscribe(self.conversation.observe_session),
            push_channel.subscribe_state(self.conversation.observe_connection),
            push_channel.subscribe_events(self.conversation.observe_connection),
        ]
        self._closed = False

    async def __aenter__(self) -> ChatClient:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @property
    def session(self) -> Session:
        return self.coordinator.session

    async def start(self) -> Session:
        return await self.coordinator.create_session()

    async def submit(self, text: str, image: bytes | str | None = None) -> SubmitResult:
        return await self.conversation.submit(text, image)

    async def quick_action(self, text: str) -> SubmitResult:
        return await self.conversation.quick_action(text)

    async def health(self) -> dict[str, Any]:
        return await self.transport.health()

    def view(self) -> ConversationView:
        return self.conversation.view()

    def subscribe(self, listener: Callable[[ConversationView], None]) -> Callable[[], None]:
        return self.conversation.subscribe(listener)

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.coordinator.close()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        if self._http_client is not None:
            await self._http_client.aclose()
        logger.debug("client_closed", extra={"session_id": self.session.session_id})


__all__ = ["ChatClient"]
