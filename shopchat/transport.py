from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from .errors import InvalidReplyError, TransportFailure
from .models import ChatReply, ChatRequest, SessionInfo, encode_image

logger = logging.getLogger("shopchat.transport")


class ChatTransport(Protocol):
    """Request/reply surface of the chat backend."""

    async def create_session(self) -> SessionInfo:
        """Ask the backend for a new conversation session."""

    async def send_message(
        self,
        text: str,
        image: bytes | str | None = None,
        session_id: str | None = None,
    ) -> ChatReply:
        """Send one user message and wait for the assistant reply."""

    async def health(self) -> dict[str, Any]:
        """Return the backend health payload."""


def _normalize_base_url(url: str) -> str:
    return url.rstrip("/")


def _extract_detail(body: str | None) -> str | None:
    if not body:
        return None
    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        return None
    if isinstance(payload, Mapping):
        detail = payload.get("detail") or payload.get("title") or payload.get("error")
        if isinstance(detail, str):
            return detail
        if detail is not None:
            return json.dumps(detail)
    return None


def _raise_for_status(response: httpx.Response, *, path: str) -> None:
    if 200 <= response.status_code < 300:
        return
    detail = _extract_detail(response.text)
    detail_text = f": {detail}" if detail else ""
    raise TransportFailure(
        f"{path} failed ({response.status_code}){detail_text}",
        status_code=response.status_code,
    )


def _decode_json(response: httpx.Response, *, path: str) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise InvalidReplyError(f"{path} returned a non-JSON body", cause=exc) from exc


@dataclass(slots=True)
class ChatHttpTransport:
    base_url: str
    timeout_s: float | None = 30.0
    headers: Mapping[str, str] | None = None
    client: httpx.AsyncClient | None = None

    @asynccontextmanager
    async def _client_context(self):
        if self.client is not None:
            yield self.client
            return
        async with httpx.AsyncClient(timeout=self.timeout_s) as client:
            yield client

    def _base_headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.headers:
            headers.update(self.headers)
        return headers

    def _url(self, path: str) -> str:
        return f"{_normalize_base_url(self.base_url)}{path}"

    async def _request(self, method: str, path: str, *, json_body: Any | None = None) -> Any:
        try:
            async with self._client_context() as client:
                response = await client.request(
                    method,
                    self._url(path),
                    json=json_body,
                    headers=self._base_headers(),
                    timeout=self.timeout_s,
                )
        except httpx.TimeoutException as exc:
            logger.warning("transport_timeout", extra={"path": path, "timeout_s": self.timeout_s})
            raise TransportFailure(f"{path} timed out", cause=exc) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("transport_error", extra={"path": path, "exception": repr(exc)})
            raise TransportFailure(f"{path} failed: {exc}", cause=exc) from exc
        except RuntimeError as exc:
            # httpx raises RuntimeError once the shared client has been closed.
            logger.warning("transport_client_closed", extra={"path": path, "exception": repr(exc)})
            raise TransportFailure(f"{path} failed: {exc}", cause=exc) from exc
        _raise_for_status(response, path=path)
        return _decode_json(response, path=path)

    async def create_session(self) -> SessionInfo:
        data = await self._request("POST", "/session/create")
        try:
            info = SessionInfo.model_validate(data)
        except ValidationError as exc:
            raise InvalidReplyError("/session/create returned an invalid payload", cause=exc) from exc
        logger.debug("transport_session_created", extra={"session_id": info.session_id})
        return info

    async def send_message(
        self,
        text: str,
        image: bytes | str | None = None,
        session_id: str | None = None,
    ) -> ChatReply:
        request = ChatRequest(
            message=text,
            image=encode_image(image) if image is not None else None,
            session_id=session_id,
        )
        data = await self._request("POST", "/chat", json_body=request.to_wire())
        try:
            return ChatReply.model_validate(data)
        except ValidationError as exc:
            raise InvalidReplyError("/chat returned an invalid payload", cause=exc) from exc

    async def health(self) -> dict[str, Any]:
        data = await self._request("GET", "/health")
        if isinstance(data, Mapping):
            return dict(data)
        return {"status": data}


__all__ = ["ChatHttpTransport", "ChatTransport"]
