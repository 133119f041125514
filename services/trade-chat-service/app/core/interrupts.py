from __future__ import annotations

from dataclasses import dataclass, field

CANCEL_INTENT = "Cancel"
HELP_INTENT = "Help"

CANCEL_DONE_MESSAGE = "Ok. I've canceled our last activity."
CANCEL_NOTHING_MESSAGE = "I don't have anything to cancel."
HELP_MESSAGES = (
    "Let me try to provide some help.",
    "I understand greetings, being asked for help, or being asked to cancel what I am doing.",
)


@dataclass(frozen=True)
class InterruptDecision:
    handled: bool
    messages: list[str] = field(default_factory=list)
    reset_dialog: bool = False
    reprompt: bool = False


def classify(top_intent: str, has_active_dialog: bool) -> InterruptDecision:
    if top_intent == CANCEL_INTENT:
        if has_active_dialog:
            return InterruptDecision(handled=True, messages=[CANCEL_DONE_MESSAGE], reset_dialog=True)
        return InterruptDecision(handled=True, messages=[CANCEL_NOTHING_MESSAGE])

    if top_intent == HELP_INTENT:
        return InterruptDecision(handled=True, messages=list(HELP_MESSAGES), reprompt=has_active_dialog)

    return InterruptDecision(handled=False)
