"""Wire contracts for the chat backend and the conversation value types."""

from __future__ import annotations

import base64
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


def _utc_now() -> datetime:
    return datetime.now(UTC)


class WireModel(BaseModel):
    model_config = ConfigDict(
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )


class MessageKind(str, Enum):
    PLAIN_TEXT = "text"
    PRODUCT_RECOMMENDATION = "product_recommendation"
    IMAGE_SEARCH_RESULT = "image_search"
    ERROR_NOTICE = "error"


class Sender(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Product(WireModel):
    id: str
    name: str
    description: str = ""
    price: Decimal = Field(ge=0)
    category: str | None = None
    sub_category: str | None = None
    brand: str | None = None
    color: str | None = None
    gender: str | None = None
    image_url: str | None = None
    image_base64: str | None = None
    in_stock: bool = True
    similarity_score: float | None = Field(default=None, ge=0.0, le=1.0)
    features: tuple[str, ...] | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        # Catalogue ids arrive as either strings or integers.
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("price", mode="before")
    @classmethod
    def _price_from_number(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError("price must be a number")
        if isinstance(value, float):
            return Decimal(repr(value))
        return value

    @field_serializer("price", when_used="json")
    def _price_to_number(self, value: Decimal) -> float | int:
        if value == value.to_integral_value():
            return int(value)
        return float(value)

    @property
    def image_source(self) -> str | None:
        if self.image_url:
            return self.image_url
        if self.image_base64:
            if self.image_base64.startswith("data:"):
                return self.image_base64
            return f"data:image/jpeg;base64,{self.image_base64}"
        return None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class SessionInfo(WireModel):
    session_id: str = Field(min_length=1)


class ChatRequest(WireModel):
    message: str
    image: str | None = None
    session_id: str | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class ChatReply(WireModel):
    response: str
    products: tuple[Product, ...] | None = None
    session_id: str
    timestamp: datetime
    message_type: MessageKind


class PushEvent(WireModel):
    """One inbound frame of the push channel."""

    type: str
    data: Any = None
    received_at: datetime = Field(default_factory=_utc_now)


class ConversationMessage(WireModel):
    id: str
    seq: int = Field(ge=1)
    sender: Sender
    text: str = ""
    image: str | None = None
    products: tuple[Product, ...] = ()
    kind: MessageKind = MessageKind.PLAIN_TEXT
    created_at: datetime = Field(default_factory=_utc_now)
    server_timestamp: datetime | None = None

    @property
    def is_user(self) -> bool:
        return self.sender == Sender.USER


def encode_image(image: bytes | str) -> str:
    """Return the transport-safe (base64) form of ``image``.

    Bytes are encoded; strings are assumed to be base64 already and any
    ``data:<mime>;base64,`` prefix is removed.
    """

    if isinstance(image, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(image)).decode("ascii")
    if image.startswith("data:") and "," in image:
        return image.split(",", 1)[1]
    return image


__all__ = [
    "ChatReply",
    "ChatRequest",
    "ConversationMessage",
    "MessageKind",
    "Product",
    "PushEvent",
    "Sender",
    "SessionInfo",
    "WireModel",
    "encode_image",
]
