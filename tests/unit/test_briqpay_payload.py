import pytest

from processor import config
from processor.briqpay import payload

CONFIRMATION = "https://shop.example.com/checkout/confirm?step=done#top"


@pytest.mark.parametrize(
    "origin,expected",
    [
        ("http://localhost:3000", True),
        ("http://127.0.0.1:8080", True),
        ("http://[::1]:3000", True),
        ("http://10.1.2.3", True),
        ("http://192.168.1.20:5173", True),
        ("http://172.20.0.5", True),
        ("http://172.32.0.5", False),
        ("https://shop.example.com", False),
        ("not a url", False),
        (None, False),
    ],
)
def test_is_local_development_origin(origin, expected):
    assert payload.is_local_development_origin(origin) is expected


def test_confirmation_url_for_local_origin(monkeypatch):
    monkeypatch.setattr(config, "BRIQPAY_CONFIRMATION_URL", CONFIRMATION)
    assert payload.build_confirmation_url("http://localhost:3000") == "http://localhost:3000/checkout/confirm?step=done#top"


def test_confirmation_url_for_public_origin(monkeypatch):
    monkeypatch.setattr(config, "BRIQPAY_CONFIRMATION_URL", CONFIRMATION)
    assert payload.build_confirmation_url("https://evil.example.com") == CONFIRMATION
    assert payload.build_confirmation_url(None) == CONFIRMATION


def test_hook_url():
    assert payload.hook_url("processor.example.com") == "https://processor.example.com/notifications"
    assert payload.hook_url("processor.example.com/") == "https://processor.example.com/notifications"


def test_session_body(monkeypatch, cart_factory):
    monkeypatch.setattr(config, "BRIQPAY_TERMS_URL", "https://shop.example.com/terms")
    cart = cart_factory()
    body = payload.build_session_body(
        cart, {"centAmount": 10000, "currencyCode": "SEK"}, [], 0.2, "processor.example.com", "ORDER-7"
    )
    assert body["references"] == {"cartId": "cart-1", "reference1": "ORDER-7"}
    assert body["urls"]["terms"] == "https://shop.example.com/terms"
    assert [h["eventType"] for h in body["hooks"]] == ["order_status", "capture_status", "refund_status"]
    assert {h["url"] for h in body["hooks"]} == {"https://processor.example.com/notifications"}
    assert body["locale"] == "en-GB"
    assert body["country"] == "SE"
    assert set(body["data"]) == {"billing", "shipping", "order"}


def test_update_body_only_carries_data(cart_factory):
    body = payload.build_update_body(cart_factory(), {"centAmount": 10000, "currencyCode": "SEK"}, [], 0.2)
    assert list(body) == ["data"]
    assert body["data"]["order"]["amountIncVat"] == 10000
