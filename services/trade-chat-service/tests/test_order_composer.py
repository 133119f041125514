import pytest

from app.core import order_composer
from app.core.order_composer import ADAPTIVE_CARD_CONTENT_TYPE
from app.core.order_composer import SIDE_BUY
from app.core.order_composer import SIDE_SELL
from app.core.order_composer import compose
from app.core.order_normalization import OrderDescriptor


def _descriptor():
    return OrderDescriptor(quantity="1", stock="신한지주", price="cp")


def test_compose_buy_builds_sentence_and_confirm_target():
    descriptor = _descriptor()

    composition = compose(SIDE_BUY, descriptor)

    assert composition.text == "신한지주 1주 cp 매수하시겠어요?"
    assert composition.card["contentType"] == ADAPTIVE_CARD_CONTENT_TYPE
    content = composition.card["content"]
    assert content["type"] == "AdaptiveCard"
    assert content["body"][0]["text"] == composition.text
    change_account, confirm = content["actions"]
    assert change_account["title"] == "계좌 변경하기"
    assert "data=&" in change_account["url"]
    assert confirm["title"] == "이대로 매수하기"
    assert "data=1|SEP|신한지주|SEP|cp&isPop=Y" in confirm["url"]
    assert descriptor == _descriptor()


def test_compose_sell_uses_sell_wording():
    composition = compose(SIDE_SELL, OrderDescriptor(quantity="10", stock="카카오", price="50000"))

    assert composition.text.endswith("매도하시겠어요?")
    assert composition.text.startswith("카카오 10주 50000")
    assert composition.card["content"]["actions"][1]["title"] == "이대로 매도하기"


def test_compose_rejects_unknown_side():
    with pytest.raises(ValueError):
        compose("hold", _descriptor())


def test_compose_does_not_share_template_between_calls():
    first = compose(SIDE_BUY, _descriptor())
    second = compose(SIDE_SELL, _descriptor())

    assert first.card["content"] is not second.card["content"]
    assert first.card["content"]["actions"][1]["title"] == "이대로 매수하기"


def test_legacy_encoding_roundtrip_is_opt_in(monkeypatch):
    descriptor = OrderDescriptor(quantity="1", stock="📈신한지주", price="cp")

    plain = compose(SIDE_BUY, descriptor)
    assert plain.card["content"]["body"][0]["text"].startswith("📈")

    monkeypatch.setattr(order_composer.SETTINGS, "card_legacy_encoding", "euc-kr")
    legacy = compose(SIDE_BUY, descriptor)

    assert legacy.text == plain.text
    assert legacy.card["content"]["body"][0]["text"].startswith("?")
    assert legacy.card["content"]["actions"][0]["title"] == "계좌 변경하기"


def test_static_cards_are_adaptive_attachments():
    for card in (order_composer.welcome_card(), order_composer.balance_card()):
        assert card["contentType"] == ADAPTIVE_CARD_CONTENT_TYPE
        assert card["content"]["body"]
