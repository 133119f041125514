from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping, Protocol

from app.core.order_normalization import GreetingState

logger = logging.getLogger(__name__)

GREETING_DIALOG = "greeting"


class DialogTurnStatus(str, Enum):
    EMPTY = "EMPTY"
    WAITING = "WAITING"
    COMPLETE = "COMPLETE"
    CANCELLED = "CANCELLED"


@dataclass
class DialogFrame:
    dialog_id: str
    step: str = ""
    values: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"dialog_id": self.dialog_id, "step": self.step, "values": dict(self.values)}


@dataclass
class DialogState:
    stack: list[DialogFrame] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"stack": [frame.to_dict() for frame in self.stack]}

    @classmethod
    def from_dict(cls, raw: Any) -> "DialogState":
        if not isinstance(raw, dict) or not isinstance(raw.get("stack"), list):
            return cls()
        frames: list[DialogFrame] = []
        for item in raw["stack"]:
            if not isinstance(item, dict) or not isinstance(item.get("dialog_id"), str):
                continue
            values = item.get("values") if isinstance(item.get("values"), dict) else {}
            frames.append(DialogFrame(dialog_id=item["dialog_id"], step=str(item.get("step") or ""), values=dict(values)))
        return cls(stack=frames)


@dataclass(frozen=True)
class DialogTurnResult:
    status: DialogTurnStatus


class Dialog(Protocol):
    dialog_id: str

    def begin(self, dc: "DialogContext", frame: DialogFrame) -> DialogTurnStatus: ...

    def resume(self, dc: "DialogContext", frame: DialogFrame, text: str) -> DialogTurnStatus: ...

    def reprompt(self, dc: "DialogContext", frame: DialogFrame) -> None: ...


class DialogContext:
    """Runs sub-dialogs against one conversation's explicit ``DialogState``."""

    def __init__(
        self,
        state: DialogState,
        greeting_state: GreetingState,
        send: Callable[[str], None],
        dialogs: Mapping[str, Dialog] | None = None,
    ) -> None:
        self.state = state
        self.greeting_state = greeting_state
        self.send = send
        self._dialogs = dict(dialogs) if dialogs is not None else default_dialogs()
        self._completed: DialogFrame | None = None

    @property
    def active_dialog(self) -> DialogFrame | None:
        return self.state.stack[-1] if self.state.stack else None

    def begin_dialog(self, dialog_id: str) -> DialogTurnResult:
        dialog = self._dialogs.get(dialog_id)
        if dialog is None:
            raise KeyError(f"unknown dialog: {dialog_id}")
        frame = DialogFrame(dialog_id=dialog_id)
        self.state.stack.append(frame)
        return self._settle(frame, dialog.begin(self, frame))

    def continue_dialog(self, text: str) -> DialogTurnResult:
        frame = self.active_dialog
        if frame is None:
            return DialogTurnResult(DialogTurnStatus.EMPTY)
        dialog = self._dialogs.get(frame.dialog_id)
        if dialog is None:
            logger.warning("dropping unknown dialog frame: %s", frame.dialog_id)
            self.cancel_all_dialogs()
            return DialogTurnResult(DialogTurnStatus.CANCELLED)
        return self._settle(frame, dialog.resume(self, frame, text))

    def reprompt_dialog(self) -> None:
        frame = self.active_dialog
        if frame is None:
            return
        dialog = self._dialogs.get(frame.dialog_id)
        if dialog is not None:
            dialog.reprompt(self, frame)

    def end_dialog(self) -> None:
        # A frame that reported COMPLETE was already popped when it settled.
        if self._completed is not None:
            self._completed = None
            return
        if self.state.stack:
            self.state.stack.pop()

    def cancel_all_dialogs(self) -> None:
        self.state.stack.clear()

    def _settle(self, frame: DialogFrame, status: DialogTurnStatus) -> DialogTurnResult:
        self._completed = None
        if status == DialogTurnStatus.COMPLETE and self.state.stack and self.state.stack[-1] is frame:
            self.state.stack.pop()
            self._completed = frame
        return DialogTurnResult(status)


class GreetingDialog:
    """Collects the user's name and city, skipping slots already known."""

    dialog_id = GREETING_DIALOG

    NAME_PROMPT = "What is your name?"
    CITY_PROMPT = "What city do you live in?"
    NAME_TOO_SHORT = "Names need to be at least 3 characters long."
    CITY_TOO_SHORT = "City names needs to be at least 5 characters long."
    NAME_MIN_LEN = 3
    CITY_MIN_LEN = 5

    def begin(self, dc: DialogContext, frame: DialogFrame) -> DialogTurnStatus:
        return self._next_step(dc, frame)

    def resume(self, dc: DialogContext, frame: DialogFrame, text: str) -> DialogTurnStatus:
        answer = (text or "").strip()
        if frame.step == "name":
            if len(answer) < self.NAME_MIN_LEN:
                dc.send(self.NAME_TOO_SHORT)
                return DialogTurnStatus.WAITING
            dc.greeting_state.name = answer[:1].upper() + answer[1:]
        elif frame.step == "city":
            if len(answer) < self.CITY_MIN_LEN:
                dc.send(self.CITY_TOO_SHORT)
                return DialogTurnStatus.WAITING
            dc.greeting_state.city = answer[:1].upper() + answer[1:]
        return self._next_step(dc, frame)

    def reprompt(self, dc: DialogContext, frame: DialogFrame) -> None:
        if frame.step == "name":
            dc.send(self.NAME_PROMPT)
        elif frame.step == "city":
            dc.send(self.CITY_PROMPT)

    def _next_step(self, dc: DialogContext, frame: DialogFrame) -> DialogTurnStatus:
        greeting = dc.greeting_state
        if not greeting.name:
            frame.step = "name"
            dc.send(self.NAME_PROMPT)
            return DialogTurnStatus.WAITING
        if not greeting.city:
            frame.step = "city"
            dc.send(self.CITY_PROMPT)
            return DialogTurnStatus.WAITING
        frame.step = "done"
        dc.send(f"Hi {greeting.name}, from {greeting.city}, nice to meet you!")
        return DialogTurnStatus.COMPLETE


def default_dialogs() -> dict[str, Dialog]:
    return {GREETING_DIALOG: GreetingDialog()}
