from __future__ import annotations

import base64
from decimal import Decimal

import pytest
from pydantic import ValidationError

from shopchat.models import (
    ChatReply,
    ChatRequest,
    ConversationMessage,
    MessageKind,
    Product,
    Sender,
    SessionInfo,
    encode_image,
)


def test_product_wire_round_trip_keeps_displayable_fields() -> None:
    wire = {
        "id": "sku-9",
        "name": "Denim Jacket",
        "description": "Classic fit",
        "price": 59.99,
        "category": "Apparel",
        "sub_category": "Jackets",
        "brand": "Blue Co",
        "color": "Indigo",
        "gender": "Unisex",
        "image_url": "https://cdn.example.com/jacket.jpg",
        "in_stock": False,
        "similarity_score": 0.87,
        "features": ["cotton", "button front"],
    }
    product = Product.model_validate(wire)
    assert product.price == Decimal("59.99")

    encoded = product.to_wire()
    assert encoded["price"] == 59.99
    assert encoded["features"] == ["cotton", "button front"]
    decoded = Product.model_validate(encoded)
    assert decoded == product
    assert decoded.in_stock is False
    assert decoded.similarity_score == 0.87


def test_product_to_wire_omits_missing_optionals() -> None:
    product = Product(id="1", name="Socks", price=Decimal("5"))
    assert product.to_wire() == {
        "id": "1",
        "name": "Socks",
        "description": "",
        "price": 5,
        "in_stock": True,
    }


def test_product_accepts_integer_ids() -> None:
    assert Product.model_validate({"id": 42, "name": "Cap", "price": 10}).id == "42"


@pytest.mark.parametrize(
    "overrides",
    [
        {"price": -1},
        {"price": True},
        {"similarity_score": 1.5},
        {"similarity_score": -0.1},
    ],
)
def test_product_rejects_out_of_range_values(overrides) -> None:
    payload = {"id": "1", "name": "Cap", "price": 10}
    payload.update(overrides)
    with pytest.raises(ValidationError):
        Product.model_validate(payload)


def test_product_image_source_prefers_url_then_inline() -> None:
    assert Product(id="1", name="a", price=1, image_url="https://x/y.png").image_source == "https://x/y.png"
    inline = Product(id="1", name="a", price=1, image_base64="QUJD")
    assert inline.image_source == "data:image/jpeg;base64,QUJD"
    assert Product(id="1", name="a", price=1).image_source is None


def test_chat_reply_rejects_unknown_message_type() -> None:
    with pytest.raises(ValidationError):
        ChatReply.model_validate(
            {
                "response": "hi",
                "session_id": "s",
                "timestamp": "2024-05-01T12:00:00Z",
                "message_type": "carousel",
            }
        )


def test_chat_reply_decodes_kind_and_products() -> None:
    reply = ChatReply.model_validate(
        {
            "response": "Similar items",
            "session_id": "s",
            "timestamp": "2024-05-01T12:00:00",
            "message_type": "image_search",
            "products": [{"id": "1", "name": "Mug", "price": 12.5, "in_stock": True}],
        }
    )
    assert reply.message_type == MessageKind.IMAGE_SEARCH_RESULT
    assert reply.products is not None
    assert reply.products[0].price == Decimal("12.5")


def test_chat_request_omits_absent_fields() -> None:
    assert ChatRequest(message="hello").to_wire() == {"message": "hello"}
    assert ChatRequest(message="", image="QUJD", session_id="s").to_wire() == {
        "message": "",
        "image": "QUJD",
        "session_id": "s",
    }


def test_session_info_requires_identifier() -> None:
    with pytest.raises(ValidationError):
        SessionInfo.model_validate({"session_id": ""})
    with pytest.raises(ValidationError):
        SessionInfo.model_validate({})


def test_conversation_message_is_immutable() -> None:
    message = ConversationMessage(id="msg-1", seq=1, sender=Sender.USER, text="hi")
    with pytest.raises(ValidationError):
        message.text = "edited"  # type: ignore[misc]


def test_encode_image_handles_bytes_and_data_uris() -> None:
    raw = b"\x89PNG\r\n"
    assert encode_image(raw) == base64.b64encode(raw).decode("ascii")
    assert encode_image("data:image/png;base64,QUJD") == "QUJD"
    assert encode_image("QUJD") == "QUJD"
