from __future__ import annotations


class ShopChatError(Exception):
    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class TransportFailure(ShopChatError):
    """A request/reply call failed: network, timeout, status or decoding."""

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.status_code = status_code


class InvalidReplyError(TransportFailure):
    """The backend answered, but the body does not match the wire contract."""


class SessionCreationFailure(ShopChatError):
    pass


class ConnectionFailure(ShopChatError):
    pass


__all__ = [
    "ConnectionFailure",
    "InvalidReplyError",
    "SessionCreationFailure",
    "ShopChatError",
    "TransportFailure",
]
