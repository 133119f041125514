from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from threading import Lock
from typing import Any

import redis

from app.core.dialogs import DialogState
from app.core.metrics import metrics
from app.core.order_normalization import GreetingState
from app.core.settings import SETTINGS

logger = logging.getLogger(__name__)


class TurnStateStoreError(RuntimeError):
    def __init__(self, op: str, message: str) -> None:
        super().__init__(message)
        self.op = op
        self.message = message


@dataclass
class TurnState:
    conversation_id: str
    user_id: str
    greeting: GreetingState = field(default_factory=GreetingState)
    dialog: DialogState = field(default_factory=DialogState)


def greeting_key(user_id: str) -> str:
    return f"ts:user:{user_id}:greeting"


def dialog_key(conversation_id: str) -> str:
    return f"ts:conv:{conversation_id}:dialog"


class MemoryBackend:
    def __init__(self) -> None:
        self._store: dict[str, tuple[float | None, str]] = {}
        self._lock = Lock()

    def get(self, key: str) -> str | None:
        now = time.time()
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at is not None and expires_at <= now:
                self._store.pop(key, None)
                return None
            return value

    def set(self, key: str, value: str, ttl: int | None = None) -> None:
        expires_at = time.time() + ttl if ttl is not None else None
        with self._lock:
            self._store[key] = (expires_at, value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()


class RedisBackend:
    def __init__(self, client: Any) -> None:
        self._client = client

    def get(self, key: str) -> str | None:
        return self._client.get(key)

    def set(self, key: str, value: str, ttl: int | None = None) -> None:
        if ttl is not None:
            self._client.setex(key, ttl, value)
        else:
            self._client.set(key, value)

    def delete(self, key: str) -> None:
        self._client.delete(key)


class TurnStateStore:
    """Per-user greeting state and per-conversation dialog state.

    Records are read once at the start of a turn and written once at the end,
    last write wins. Backend failures are raised as ``TurnStateStoreError``.
    """

    def __init__(self, backend: Any, ttl_sec: int | None = None) -> None:
        self._backend = backend
        self._ttl_sec = ttl_sec

    def load(self, conversation_id: str, user_id: str) -> TurnState:
        greeting_raw = self._get_json(greeting_key(user_id))
        dialog_raw = self._get_json(dialog_key(conversation_id))
        return TurnState(
            conversation_id=conversation_id,
            user_id=user_id,
            greeting=GreetingState.from_dict(greeting_raw),
            dialog=DialogState.from_dict(dialog_raw),
        )

    def save(self, state: TurnState) -> None:
        self._set_json(dialog_key(state.conversation_id), state.dialog.to_dict())
        self._set_json(greeting_key(state.user_id), state.greeting.to_dict())

    def reset_dialog(self, conversation_id: str) -> bool:
        key = dialog_key(conversation_id)
        existed = self._get_json(key) is not None
        try:
            self._backend.delete(key)
        except Exception as exc:
            raise self._failure("delete", key, exc) from exc
        return existed

    def _get_json(self, key: str) -> Any | None:
        try:
            raw = self._backend.get(key)
        except Exception as exc:
            raise self._failure("get", key, exc) from exc
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("turn state record is not valid json, ignoring: %s", key)
            metrics.inc("ts_state_error_total", {"op": "decode"})
            return None

    def _set_json(self, key: str, value: Any) -> None:
        payload = json.dumps(value, ensure_ascii=False)
        try:
            self._backend.set(key, payload, self._ttl_sec)
        except Exception as exc:
            raise self._failure("set", key, exc) from exc

    @staticmethod
    def _failure(op: str, key: str, exc: Exception) -> TurnStateStoreError:
        logger.warning("turn state %s failed for %s: %s", op, key, exc)
        metrics.inc("ts_state_error_total", {"op": op})
        return TurnStateStoreError(op, f"turn state {op} failed")


_store: TurnStateStore | None = None


def get_state_store() -> TurnStateStore:
    global _store
    if _store is not None:
        return _store
    if SETTINGS.state_redis_url:
        client = redis.Redis.from_url(SETTINGS.state_redis_url, decode_responses=True)
        _store = TurnStateStore(RedisBackend(client), ttl_sec=SETTINGS.state_ttl_sec)
    else:
        _store = TurnStateStore(MemoryBackend(), ttl_sec=SETTINGS.state_ttl_sec)
    return _store


def set_state_store(store: TurnStateStore | None) -> None:
    global _store
    _store = store
