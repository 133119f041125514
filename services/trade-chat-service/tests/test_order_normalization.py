import pytest

from app.core.order_normalization import GreetingState
from app.core.order_normalization import OrderDescriptor
from app.core.order_normalization import apply_greeting_slots
from app.core.order_normalization import normalize_order
from app.core.order_normalization import normalize_price
from app.core.order_normalization import normalize_quantity
from app.core.order_normalization import parse_descriptor
from app.core.order_normalization import serialize_descriptor
from app.core.recognition import parse_entities


def _entities(raw):
    return parse_entities(raw)


def test_normalize_order_canonicalizes_all_three_fields():
    descriptor = normalize_order(
        _entities(
            {
                "수량": [{"text": "1주"}],
                "종목": [{"text": "신한 지주"}],
                "단가": [{"text": "현재가"}],
            }
        )
    )

    assert descriptor == OrderDescriptor(quantity="1", stock="신한지주", price="cp")
    assert descriptor.is_complete is True
    assert serialize_descriptor(descriptor) == "1|SEP|신한지주|SEP|cp"


def test_normalize_order_leaves_missing_price_empty_without_placeholder():
    descriptor = normalize_order(_entities({"수량": [{"text": "3개"}], "종목": [{"text": "삼성 전자"}]}))

    assert descriptor.price is None
    assert descriptor.is_complete is False
    serialized = serialize_descriptor(descriptor)
    assert serialized == "3|SEP|삼성전자|SEP|"
    assert "noprice" not in serialized


def test_normalize_order_treats_empty_candidate_list_as_absent():
    with_empty = normalize_order(_entities({"수량": [], "종목": [{"text": "카카오"}], "단가": []}))
    without_keys = normalize_order(_entities({"종목": [{"text": "카카오"}]}))

    assert with_empty == without_keys
    assert serialize_descriptor(with_empty) == "|SEP|카카오|SEP|"


def test_normalize_order_uses_only_first_candidate():
    first_only = normalize_order(
        _entities({"수량": [{"text": "5주"}], "종목": [{"text": "신한지주"}], "단가": [{"text": "시장가"}]})
    )
    with_extra = normalize_order(
        _entities(
            {
                "수량": [{"text": "5주"}, {"text": "10주"}],
                "종목": [{"text": "신한지주"}, {"text": "삼성전자"}],
                "단가": [{"text": "시장가"}, {"text": "50000원"}],
            }
        )
    )

    assert with_extra == first_only


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("50000원", "50000"),
        ("시장가", "mp"),
        ("현재가로", "cp로"),
        ("하한가", "lp"),
        ("상한가", "hp"),
        ("시간외단일가", "tp"),
        ("52000", "52000"),
    ],
)
def test_normalize_price_applies_single_rule(raw, expected):
    assert normalize_price(raw) == expected


def test_normalize_price_currency_suffix_wins_over_phrases():
    assert normalize_price("시장가 5000원") == "시장가 5000"


def test_normalize_quantity_strips_only_trailing_counter():
    assert normalize_quantity("10개") == "10"
    assert normalize_quantity("3 주") == "3 "
    assert normalize_quantity("일주일") == "일주일"


def test_normalize_order_drops_field_that_normalizes_to_nothing():
    descriptor = normalize_order(_entities({"수량": [{"text": "주"}]}))

    assert descriptor.quantity is None


def test_parse_descriptor_round_trips_serialized_segments():
    descriptor = OrderDescriptor(quantity="2", stock=None, price="tp")

    serialized = serialize_descriptor(descriptor)

    assert serialized.split("|SEP|") == ["2", "", "tp"]
    assert parse_descriptor(serialized) == descriptor


def test_parse_descriptor_rejects_wrong_segment_count():
    with pytest.raises(ValueError):
        parse_descriptor("1|SEP|신한지주|SEP|cp|SEP|")


def test_apply_greeting_slots_capitalizes_and_overwrites():
    state = GreetingState(name="Old", city="Busan")

    changed = apply_greeting_slots(
        state,
        _entities({"userName_patternAny": ["tony"], "userLocation": ["seattle"]}),
    )

    assert changed is True
    assert state.name == "Tony"
    assert state.city == "Seattle"


def test_apply_greeting_slots_keeps_hangul_bytes_intact():
    state = GreetingState()

    apply_greeting_slots(state, _entities({"userName": ["홍길동"], "userLocation_patternAny": ["서울"]}))

    assert state.name == "홍길동"
    assert state.city == "서울"


def test_apply_greeting_slots_without_entities_is_noop():
    state = GreetingState(name="Tony", city=None)

    changed = apply_greeting_slots(state, _entities({"종목": [{"text": "신한지주"}]}))

    assert changed is False
    assert state.to_dict() == {"name": "Tony", "city": None}
