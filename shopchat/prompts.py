from __future__ import annotations

from dataclasses import dataclass

WELCOME_TEXT = (
    "Welcome to AI Shopping Assistant. I can help you find products, compare prices, "
    "and discover items from images."
)
IMAGE_TIP = "Tip: you can attach an image to find similar products."


@dataclass(frozen=True, slots=True)
class QuickAction:
    label: str
    prompt: str


QUICK_ACTIONS: tuple[QuickAction, ...] = (
    QuickAction("Browse popular items", "Show me popular products"),
    QuickAction("Sports & Fitness", "I need sports clothing"),
    QuickAction("Today's deals", "What deals do you have?"),
    QuickAction("Search by image", "How do I search with an image?"),
)


__all__ = ["IMAGE_TIP", "QUICK_ACTIONS", "QuickAction", "WELCOME_TEXT"]
