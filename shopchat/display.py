from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal

from .models import ConversationMessage, MessageKind, Product, Sender

_CENTS = Decimal("0.01")


def format_price(price: Decimal | float) -> str:
    value = price if isinstance(price, Decimal) else Decimal(repr(price))
    return f"${value.quantize(_CENTS, rounding=ROUND_HALF_UP)}"


def format_match(score: float | None) -> str | None:
    if not score:
        return None
    return f"{math.floor(score * 100 + 0.5)}% match"


def stock_label(product: Product) -> str:
    return "In Stock" if product.in_stock else "Out of Stock"


def render_product(product: Product) -> str:
    parts = [product.name, format_price(product.price), stock_label(product)]
    if product.brand:
        parts.insert(1, product.brand)
    match = format_match(product.similarity_score)
    if match:
        parts.append(match)
    return " | ".join(parts)


def render_message(message: ConversationMessage) -> list[str]:
    speaker = "You" if message.sender == Sender.USER else "Assistant"
    prefix = f"{speaker}:"
    if message.kind == MessageKind.ERROR_NOTICE:
        prefix = f"{speaker} (error):"
    lines = [f"{prefix} {message.text}".rstrip()]
    if message.image:
        lines.append("  [image attached]")
    if message.sender == Sender.ASSISTANT:
        lines.extend(f"  - {render_product(product)}" for product in message.products)
    return lines


__all__ = ["format_match", "format_price", "render_message", "render_product", "stock_label"]
