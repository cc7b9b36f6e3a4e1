from __future__ import annotations

import asyncio
import sys
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

# Ensure repository root is on sys.path for test imports.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from shopchat.errors import TransportFailure  # noqa: E402
from shopchat.models import ChatReply, Product, SessionInfo  # noqa: E402

_CLOSE = object()


def sample_product(**overrides: Any) -> Product:
    payload: dict[str, Any] = {
        "id": "p-1",
        "name": "Trail Runner",
        "description": "Lightweight running shoe",
        "price": 89.99,
        "brand": "Stride",
        "in_stock": True,
    }
    payload.update(overrides)
    return Product.model_validate(payload)


def sample_reply(**overrides: Any) -> ChatReply:
    payload: dict[str, Any] = {
        "response": "Here are some popular products",
        "products": [sample_product().to_wire()],
        "session_id": "sess-1",
        "timestamp": "2024-05-01T12:00:00Z",
        "message_type": "product_recommendation",
    }
    payload.update(overrides)
    return ChatReply.model_validate(payload)


class FakeTransport:
    def __init__(
        self,
        *,
        session_id: str = "sess-1",
        fail_session: bool = False,
        fail_send: bool = False,
        reply: ChatReply | None = None,
    ) -> None:
        self.session_id = session_id
        self.fail_session = fail_session
        self.fail_send = fail_send
        self.reply = reply or sample_reply(session_id=session_id)
        self.session_calls = 0
        self.sent: list[tuple[str, str | None, str | None]] = []
        self.gate: asyncio.Event | None = None

    async def create_session(self) -> SessionInfo:
        self.session_calls += 1
        await asyncio.sleep(0)
        if self.fail_session:
            raise TransportFailure("/session/create failed (503)", status_code=503)
        return SessionInfo(session_id=self.session_id)

    async def send_message(
        self,
        text: str,
        image: bytes | str | None = None,
        session_id: str | None = None,
    ) -> ChatReply:
        self.sent.append((text, image, session_id))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_send:
            raise TransportFailure("/chat failed (500): kaboom", status_code=500)
        return self.reply

    async def health(self) -> dict[str, Any]:
        return {"status": "healthy"}


class FakeConnection:
    def __init__(self) -> None:
        self.inbox: asyncio.Queue[Any] = asyncio.Queue()
        self.sent: list[str] = []
        self.closed = False

    async def send(self, message: str) -> None:
        self.sent.append(message)

    async def close(self) -> None:
        self.closed = True
        self.inbox.put_nowait(_CLOSE)

    def feed(self, frame: str | bytes) -> None:
        self.inbox.put_nowait(frame)

    def drop(self, error: BaseException | None = None) -> None:
        self.inbox.put_nowait(error if error is not None else _CLOSE)

    def __aiter__(self) -> FakeConnection:
        return self

    async def __anext__(self) -> str | bytes:
        item = await self.inbox.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


class FakeConnector:
    """Hands out scripted outcomes; once exhausted, every call opens a fresh connection."""

    def __init__(self, *outcomes: FakeConnection | BaseException) -> None:
        self.outcomes = list(outcomes)
        self.urls: list[str] = []
        self.connections: list[FakeConnection] = []

    async def __call__(self, url: str) -> FakeConnection:
        self.urls.append(url)
        outcome = self.outcomes.pop(0) if self.outcomes else FakeConnection()
        if isinstance(outcome, BaseException):
            raise outcome
        self.connections.append(outcome)
        return outcome


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


async def wait_for(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


class StepClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def fake_transport() -> Callable[..., FakeTransport]:
    return FakeTransport


@pytest.fixture
def fake_connection() -> Callable[[], FakeConnection]:
    return FakeConnection


@pytest.fixture
def fake_connector() -> Callable[..., FakeConnector]:
    return FakeConnector


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def waiter() -> Callable[..., Any]:
    return wait_for


@pytest.fixture
def reply_factory() -> Callable[..., ChatReply]:
    return sample_reply


@pytest.fixture
def product_factory() -> Callable[..., Product]:
    return sample_product


@pytest.fixture
def step_clock() -> StepClock:
    return StepClock()
