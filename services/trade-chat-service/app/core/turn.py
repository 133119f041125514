from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from app.core.dialogs import GREETING_DIALOG, DialogContext, DialogState, DialogTurnStatus
from app.core.interrupts import classify
from app.core.metrics import metrics
from app.core.order_composer import SIDE_BUY, SIDE_SELL, balance_card, compose, welcome_card
from app.core.order_normalization import (
    GreetingState,
    apply_greeting_slots,
    normalize_order,
    serialize_descriptor,
)
from app.core.recognition import RecognitionResult
from app.core.recognizer import recognize
from app.core.settings import SETTINGS
from app.core.turn_state_store import get_state_store

logger = logging.getLogger(__name__)

ACTIVITY_MESSAGE = "message"
ACTIVITY_CONVERSATION_UPDATE = "conversationUpdate"

ACTION_MESSAGE = "message"
ACTION_EVENT = "event"

GREETING_INTENT = "Greeting"
NONE_INTENT = "None"
BUY_INTENT = "Buy"
SELL_INTENT = "Sell"
BALANCE_INTENT = "Balance"
BALANCE_SKIN_INTENT = "BalanceSkin"

# Recognizer apps trained in Korean publish these names.
_INTENT_ALIASES = {
    "주식매수": BUY_INTENT,
    "주식매도": SELL_INTENT,
    "주식잔고": BALANCE_INTENT,
    "껍데기_잔고": BALANCE_SKIN_INTENT,
}

BUY_INTENT_EVENT = "buy-intent"
SELL_INTENT_EVENT = "sell-intent"
BALANCE_INTENT_EVENT = "balance-intent"
BALANCE_SKIN_EVENT = "balance-skin"

NOT_UNDERSTOOD_MESSAGE = "I didn't understand what you just said to me."
_INCOMPLETE_ORDER_MESSAGES = {
    SIDE_BUY: '종목, 수량, 단가를 모두 입력해주세요.\n(예시:"신한지주 1주 현재가로 매수해줘")',
    SIDE_SELL: '종목, 수량, 단가를 모두 입력해주세요.\n(예시:"신한지주 1주 현재가로 매도해줘")',
}
_ORDER_EVENTS = {SIDE_BUY: BUY_INTENT_EVENT, SIDE_SELL: SELL_INTENT_EVENT}

COMMAND_NONE = "NONE"
COMMAND_CANCEL_ALL = "CANCEL_ALL"
COMMAND_REPROMPT = "REPROMPT"
COMMAND_CONTINUE = "CONTINUE"
COMMAND_BEGIN_GREETING = "BEGIN:GREETING"
COMMAND_END = "END"


@dataclass(frozen=True)
class OutboundAction:
    type: str
    text: str | None = None
    attachments: tuple[dict[str, Any], ...] = ()
    name: str | None = None
    value: str | None = None

    @classmethod
    def message(cls, text: str | None = None, attachments: tuple[dict[str, Any], ...] = ()) -> "OutboundAction":
        return cls(type=ACTION_MESSAGE, text=text, attachments=attachments)

    @classmethod
    def event(cls, name: str, value: str) -> "OutboundAction":
        return cls(type=ACTION_EVENT, name=name, value=value)

    def to_dict(self) -> dict[str, Any]:
        if self.type == ACTION_EVENT:
            return {"type": self.type, "name": self.name, "value": self.value}
        payload: dict[str, Any] = {"type": self.type, "text": self.text}
        if self.attachments:
            payload["attachments"] = list(self.attachments)
        return payload


@dataclass
class TurnActivity:
    type: str
    text: str = ""
    conversation_id: str = ""
    user_id: str = ""
    recipient_id: str = ""
    members_added: list[str] = field(default_factory=list)


@dataclass
class TurnResult:
    actions: list[OutboundAction] = field(default_factory=list)
    dialog_command: str = COMMAND_NONE
    dialog_status: str | None = None
    dialog_state: DialogState = field(default_factory=DialogState)
    greeting_state: GreetingState = field(default_factory=GreetingState)

    @property
    def responded(self) -> bool:
        return bool(self.actions)

    def send(self, text: str) -> None:
        self.actions.append(OutboundAction.message(text))


def canonical_intent(top_intent: str) -> str:
    return _INTENT_ALIASES.get(top_intent, top_intent)


def _route_order(result: TurnResult, side: str, recognition: RecognitionResult) -> None:
    descriptor = normalize_order(recognition.entities)
    if not descriptor.is_complete:
        metrics.inc("ts_intent_route_total", {"intent": side, "result": "incomplete"})
        result.send(_INCOMPLETE_ORDER_MESSAGES[side])
        return
    composition = compose(side, descriptor)
    result.actions.append(OutboundAction.message(composition.text, (composition.card,)))
    result.actions.append(OutboundAction.event(_ORDER_EVENTS[side], serialize_descriptor(descriptor)))
    metrics.inc("ts_intent_route_total", {"intent": side, "result": "confirm"})


def _route_by_intent(result: TurnResult, dc: DialogContext, recognition: RecognitionResult) -> None:
    intent = canonical_intent(recognition.top_intent)
    if intent == GREETING_INTENT:
        dc.begin_dialog(GREETING_DIALOG)
        result.dialog_command = COMMAND_BEGIN_GREETING
        metrics.inc("ts_intent_route_total", {"intent": "greeting", "result": "dialog"})
    elif intent == BUY_INTENT:
        _route_order(result, SIDE_BUY, recognition)
    elif intent == SELL_INTENT:
        _route_order(result, SIDE_SELL, recognition)
    elif intent == BALANCE_INTENT:
        descriptor = normalize_order(recognition.entities)
        result.actions.append(OutboundAction.event(BALANCE_INTENT_EVENT, serialize_descriptor(descriptor)))
        metrics.inc("ts_intent_route_total", {"intent": "balance", "result": "event"})
    elif intent == BALANCE_SKIN_INTENT:
        descriptor = normalize_order(recognition.entities)
        result.actions.append(OutboundAction.event(BALANCE_SKIN_EVENT, serialize_descriptor(descriptor)))
        result.actions.append(OutboundAction.message(attachments=(balance_card(),)))
        metrics.inc("ts_intent_route_total", {"intent": "balance_skin", "result": "event"})
    else:
        result.send(NOT_UNDERSTOOD_MESSAGE)
        metrics.inc("ts_intent_route_total", {"intent": "none", "result": "not_understood"})


def dispatch_turn(
    recognition: RecognitionResult,
    dialog_state: DialogState,
    greeting_state: GreetingState,
    text: str = "",
) -> TurnResult:
    result = TurnResult(dialog_state=dialog_state, greeting_state=greeting_state)
    dc = DialogContext(dialog_state, greeting_state, result.send)
    top_intent = recognition.top_intent

    apply_greeting_slots(greeting_state, recognition.entities)

    decision = classify(top_intent, dc.active_dialog is not None)
    if decision.handled:
        metrics.inc("ts_interrupt_total", {"intent": top_intent})
        if decision.reset_dialog:
            dc.cancel_all_dialogs()
            result.dialog_command = COMMAND_CANCEL_ALL
        for message in decision.messages:
            result.send(message)
        if decision.reprompt:
            dc.reprompt_dialog()
            result.dialog_command = COMMAND_REPROMPT
        return result

    turn = dc.continue_dialog(text)
    result.dialog_status = turn.status.value
    result.dialog_command = COMMAND_CONTINUE
    metrics.inc("ts_dialog_status_total", {"status": turn.status.value})
    if result.responded:
        return result

    if turn.status == DialogTurnStatus.EMPTY:
        _route_by_intent(result, dc, recognition)
    elif turn.status == DialogTurnStatus.WAITING:
        pass
    elif turn.status == DialogTurnStatus.COMPLETE:
        dc.end_dialog()
        result.dialog_command = COMMAND_END
    else:
        logger.warning("resetting dialogs after unexpected status: %s", turn.status.value)
        dc.cancel_all_dialogs()
        result.dialog_command = COMMAND_CANCEL_ALL
    return result


def welcome_members(activity: TurnActivity) -> list[OutboundAction]:
    bot_id = activity.recipient_id or SETTINGS.bot_id
    return [
        OutboundAction.message(attachments=(welcome_card(),))
        for member_id in activity.members_added
        if member_id != bot_id
    ]


async def run_turn(activity: TurnActivity, trace_id: str, request_id: str) -> TurnResult:
    metrics.inc("ts_turn_total", {"type": activity.type or "unknown"})
    store = get_state_store()

    if activity.type != ACTIVITY_MESSAGE:
        state = store.load(activity.conversation_id, activity.user_id)
        result = TurnResult(dialog_state=state.dialog, greeting_state=state.greeting)
        if activity.type == ACTIVITY_CONVERSATION_UPDATE:
            result.actions.extend(welcome_members(activity))
        store.save(state)
        return result

    # A contract violation raised here aborts the turn before any state is touched.
    recognition = await recognize(activity.text, trace_id, request_id)
    logger.info(
        "turn recognized trace_id=%s request_id=%s intent=%s entities=%s",
        trace_id,
        request_id,
        recognition.top_intent,
        sorted(recognition.entities.keys()),
    )

    state = store.load(activity.conversation_id, activity.user_id)
    result = dispatch_turn(recognition, state.dialog, state.greeting, activity.text)
    store.save(state)
    return result
