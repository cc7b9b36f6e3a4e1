from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

DEFAULT_API_URL = "http://localhost:8000"
DEFAULT_RECONNECT_DELAY_S = 3.0


def _normalize_base_url(url: str) -> str:
    return url.rstrip("/")


def derive_ws_url(api_url: str) -> str:
    base = _normalize_base_url(api_url)
    if base.startswith("https://"):
        base = "wss://" + base[len("https://") :]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://") :]
    return f"{base}/ws"


@dataclass(slots=True)
class ClientConfig:
    api_url: str = DEFAULT_API_URL
    ws_url: str | None = None
    timeout_s: float | None = 30.0
    reconnect_delay_s: float = DEFAULT_RECONNECT_DELAY_S
    open_timeout_s: float | None = 10.0

    def __post_init__(self) -> None:
        if not self.api_url:
            raise ValueError("api_url must be non-empty")
        self.api_url = _normalize_base_url(self.api_url)
        if self.ws_url is None:
            self.ws_url = derive_ws_url(self.api_url)
        else:
            self.ws_url = _normalize_base_url(self.ws_url)
        if self.timeout_s is not None and self.timeout_s <= 0:
            raise ValueError("timeout_s must be positive or None")
        if self.reconnect_delay_s < 0:
            raise ValueError("reconnect_delay_s must be non-negative")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ClientConfig:
        env = os.environ if environ is None else environ
        kwargs: dict[str, object] = {}
        if api_url := env.get("SHOPCHAT_API_URL"):
            kwargs["api_url"] = api_url
        if ws_url := env.get("SHOPCHAT_WS_URL"):
            kwargs["ws_url"] = ws_url
        if raw_timeout := env.get("SHOPCHAT_TIMEOUT_S"):
            try:
                kwargs["timeout_s"] = float(raw_timeout)
            except ValueError as exc:
                raise ValueError(f"SHOPCHAT_TIMEOUT_S must be a number, got {raw_timeout!r}") from exc
        return cls(**kwargs)  # type: ignore[arg-type]


__all__ = ["ClientConfig", "DEFAULT_API_URL", "DEFAULT_RECONNECT_DELAY_S", "derive_ws_url"]
