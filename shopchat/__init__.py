"""Public package surface for shopchat."""

from __future__ import annotations

from .client import ChatClient
from .config import ClientConfig
from .conversation import Conversation, ConversationView, RejectReason, SubmitResult
from .errors import (
    ConnectionFailure,
    InvalidReplyError,
    SessionCreationFailure,
    ShopChatError,
    TransportFailure,
)
from .models import ChatReply, ConversationMessage, MessageKind, Product, PushEvent, Sender
from .push import ConnectionEvent, ConnectionState, PushChannel
from .session import Session, SessionCoordinator, SessionStatus
from .transport import ChatHttpTransport, ChatTransport

__all__ = [
    "__version__",
    "ChatClient",
    "ChatHttpTransport",
    "ChatReply",
    "ChatTransport",
    "ClientConfig",
    "ConnectionEvent",
    "ConnectionFailure",
    "ConnectionState",
    "Conversation",
    "ConversationMessage",
    "ConversationView",
    "InvalidReplyError",
    "MessageKind",
    "Product",
    "PushChannel",
    "PushEvent",
    "RejectReason",
    "Sender",
    "Session",
    "SessionCoordinator",
    "SessionCreationFailure",
    "SessionStatus",
    "ShopChatError",
    "SubmitResult",
    "TransportFailure",
]

__version__ = "0.1.0"
