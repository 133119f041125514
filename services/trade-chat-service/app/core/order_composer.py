from __future__ import annotations

import copy
import json
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

from app.core.order_normalization import OrderDescriptor, serialize_descriptor
from app.core.settings import SETTINGS

ADAPTIVE_CARD_CONTENT_TYPE = "application/vnd.microsoft.card.adaptive"
SIDE_BUY = "buy"
SIDE_SELL = "sell"

SHARE_COUNTER = "주"
CHANGE_ACCOUNT_TITLE = "계좌 변경하기"

_RESOURCE_DIR = Path(__file__).resolve().parent.parent / "resources"
_SIDE_WORDING: dict[str, dict[str, str]] = {
    SIDE_BUY: {"question": "매수하시겠어요?", "confirm_title": "이대로 매수하기"},
    SIDE_SELL: {"question": "매도하시겠어요?", "confirm_title": "이대로 매도하기"},
}


@dataclass(frozen=True)
class Composition:
    text: str
    card: dict[str, Any]


@lru_cache(maxsize=8)
def _load_template(name: str) -> dict[str, Any]:
    with (_RESOURCE_DIR / name).open(encoding="utf-8") as handle:
        return json.load(handle)


def _template(name: str) -> dict[str, Any]:
    return copy.deepcopy(_load_template(name))


def _legacy_roundtrip(text: str) -> str:
    encoding = SETTINGS.card_legacy_encoding
    if not encoding:
        return text
    return text.encode(encoding, errors="replace").decode(encoding)


def attachment(card: dict[str, Any]) -> dict[str, Any]:
    return {"contentType": ADAPTIVE_CARD_CONTENT_TYPE, "content": card}


def _action_url(data: str) -> str:
    return f"{SETTINGS.confirm_url_base}?data={data}&isPop=Y&path={SETTINGS.confirm_url_path}"


def confirmation_text(side: str, descriptor: OrderDescriptor) -> str:
    wording = _SIDE_WORDING[side]
    parts: list[str] = []
    if descriptor.stock:
        parts.append(descriptor.stock)
    if descriptor.quantity:
        parts.append(f"{descriptor.quantity}{SHARE_COUNTER}")
    if descriptor.price:
        parts.append(descriptor.price)
    parts.append(wording["question"])
    return " ".join(parts)


def compose(side: str, descriptor: OrderDescriptor) -> Composition:
    if side not in _SIDE_WORDING:
        raise ValueError(f"unsupported order side: {side}")
    wording = _SIDE_WORDING[side]
    text = confirmation_text(side, descriptor)

    card = _template("order_card.json")
    card["body"] = [
        {
            "type": "TextBlock",
            "size": "default",
            "wrap": True,
            "maxLines": 0,
            "text": _legacy_roundtrip(text),
        }
    ]
    card["actions"] = [
        {
            "type": "Action.OpenUrl",
            "title": _legacy_roundtrip(CHANGE_ACCOUNT_TITLE),
            "url": _action_url(""),
        },
        {
            "type": "Action.OpenUrl",
            "title": _legacy_roundtrip(wording["confirm_title"]),
            "url": _action_url(serialize_descriptor(descriptor)),
        },
    ]
    return Composition(text=text, card=attachment(card))


def welcome_card() -> dict[str, Any]:
    return attachment(_template("welcome_card.json"))


def balance_card() -> dict[str, Any]:
    return attachment(_template("balance_card.json"))
