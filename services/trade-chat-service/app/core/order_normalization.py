from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence

from app.core.recognition import EntityCandidate

DESCRIPTOR_SEPARATOR = "|SEP|"

QUANTITY_ENTITY = "수량"
STOCK_ENTITY = "종목"
PRICE_ENTITY = "단가"

USER_NAME_ENTITIES = ("userName", "userName_patternAny")
USER_LOCATION_ENTITIES = ("userLocation", "userLocation_patternAny")

_QUANTITY_UNITS = ("주", "개")
# Checked in order, first hit wins.
_PRICE_RULES: tuple[tuple[str, str], ...] = (
    ("원", ""),
    ("시장가", "mp"),
    ("현재가", "cp"),
    ("하한가", "lp"),
    ("상한가", "hp"),
    ("시간외단일가", "tp"),
)


@dataclass(frozen=True)
class OrderDescriptor:
    quantity: str | None = None
    stock: str | None = None
    price: str | None = None

    @property
    def is_complete(self) -> bool:
        return all(bool(value) for value in (self.quantity, self.stock, self.price))

    def to_dict(self) -> dict[str, str | None]:
        return {"quantity": self.quantity, "stock": self.stock, "price": self.price}


@dataclass
class GreetingState:
    name: str | None = None
    city: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {"name": self.name, "city": self.city}

    @classmethod
    def from_dict(cls, raw: Any) -> "GreetingState":
        if not isinstance(raw, dict):
            return cls()
        name = raw.get("name") if isinstance(raw.get("name"), str) else None
        city = raw.get("city") if isinstance(raw.get("city"), str) else None
        return cls(name=name or None, city=city or None)


def _first_text(candidates: Sequence[EntityCandidate] | None) -> str | None:
    for candidate in candidates or ():
        if candidate.text:
            return candidate.text
    return None


def normalize_quantity(text: str) -> str:
    for unit in _QUANTITY_UNITS:
        if text.endswith(unit):
            return text[: -len(unit)]
    return text


def normalize_stock(text: str) -> str:
    return "".join(text.split())


def normalize_price(text: str) -> str:
    for phrase, code in _PRICE_RULES:
        if phrase in text:
            return text.replace(phrase, code)
    return text


def _normalized_field(candidates: Sequence[EntityCandidate] | None, normalizer: Callable[[str], str]) -> str | None:
    text = _first_text(candidates)
    if text is None:
        return None
    # "주" alone normalizes to nothing; treat it as missing.
    return normalizer(text) or None


def normalize_order(entities: Mapping[str, Sequence[EntityCandidate]]) -> OrderDescriptor:
    return OrderDescriptor(
        quantity=_normalized_field(entities.get(QUANTITY_ENTITY), normalize_quantity),
        stock=_normalized_field(entities.get(STOCK_ENTITY), normalize_stock),
        price=_normalized_field(entities.get(PRICE_ENTITY), normalize_price),
    )


def serialize_descriptor(descriptor: OrderDescriptor) -> str:
    return DESCRIPTOR_SEPARATOR.join(
        [descriptor.quantity or "", descriptor.stock or "", descriptor.price or ""]
    )


def parse_descriptor(raw: str) -> OrderDescriptor:
    segments = str(raw or "").split(DESCRIPTOR_SEPARATOR)
    if len(segments) != 3:
        raise ValueError(f"order descriptor must have 3 segments, got {len(segments)}")
    quantity, stock, price = segments
    return OrderDescriptor(quantity=quantity or None, stock=stock or None, price=price or None)


def _capitalize_first(text: str) -> str:
    return text[:1].upper() + text[1:]


def _first_alias_text(entities: Mapping[str, Sequence[EntityCandidate]], aliases: Sequence[str]) -> str | None:
    for alias in aliases:
        text = _first_text(entities.get(alias))
        if text:
            return text
    return None


def apply_greeting_slots(state: GreetingState, entities: Mapping[str, Sequence[EntityCandidate]]) -> bool:
    changed = False
    name = _first_alias_text(entities, USER_NAME_ENTITIES)
    if name:
        state.name = _capitalize_first(name)
        changed = True
    city = _first_alias_text(entities, USER_LOCATION_ENTITIES)
    if city:
        state.city = _capitalize_first(city)
        changed = True
    return changed
