from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

_INSTANCE_KEY = "$instance"


class RecognitionContractError(ValueError):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass(frozen=True)
class EntityCandidate:
    text: str
    score: float | None
    type: str


@dataclass(frozen=True)
class RecognitionResult:
    top_intent: str
    entities: Mapping[str, tuple[EntityCandidate, ...]] = field(default_factory=dict)
    top_score: float | None = None

    def candidates(self, entity_type: str) -> tuple[EntityCandidate, ...]:
        return self.entities.get(entity_type) or ()


def _safe_score(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_candidate(raw: Any, entity_type: str) -> EntityCandidate | None:
    # Plain recognizer values arrive as bare strings, instance records as objects.
    if isinstance(raw, str):
        return EntityCandidate(text=raw, score=None, type=entity_type)
    if isinstance(raw, dict):
        text = raw.get("text")
        if not isinstance(text, str):
            return None
        resolved_type = raw.get("type") if isinstance(raw.get("type"), str) else entity_type
        return EntityCandidate(text=text, score=_safe_score(raw.get("score")), type=resolved_type)
    return None


def _to_candidates(raw: Any, entity_type: str) -> tuple[EntityCandidate, ...]:
    if not isinstance(raw, list):
        return ()
    parsed = (_to_candidate(item, entity_type) for item in raw)
    return tuple(candidate for candidate in parsed if candidate is not None)


def _group_entity_list(raw: list[Any]) -> dict[str, tuple[EntityCandidate, ...]]:
    # Verbose v2 responses list {entity, type, score} records in utterance order.
    grouped: dict[str, list[EntityCandidate]] = {}
    for item in raw:
        if not isinstance(item, dict):
            continue
        entity_type = item.get("type")
        text = item.get("entity", item.get("text"))
        if not isinstance(entity_type, str) or not isinstance(text, str):
            continue
        candidate = EntityCandidate(text=text, score=_safe_score(item.get("score")), type=entity_type)
        grouped.setdefault(entity_type, []).append(candidate)
    return {entity_type: tuple(candidates) for entity_type, candidates in grouped.items()}


def parse_entities(raw: Any) -> dict[str, tuple[EntityCandidate, ...]]:
    if raw is None:
        return {}
    if isinstance(raw, list):
        return _group_entity_list(raw)
    if not isinstance(raw, dict):
        raise RecognitionContractError("bad_entities", "entities must be an object or a list")

    instances = raw.get(_INSTANCE_KEY) if isinstance(raw.get(_INSTANCE_KEY), dict) else {}
    entity_types = [key for key in raw.keys() if key != _INSTANCE_KEY]
    entity_types += [key for key in instances.keys() if key not in raw]

    entities: dict[str, tuple[EntityCandidate, ...]] = {}
    for entity_type in entity_types:
        if not isinstance(entity_type, str):
            continue
        candidates = _to_candidates(instances.get(entity_type), entity_type)
        if not candidates:
            candidates = _to_candidates(raw.get(entity_type), entity_type)
        entities[entity_type] = candidates
    return entities


def _resolve_top_intent(payload: dict[str, Any]) -> tuple[str | None, float | None]:
    top = payload.get("topIntent", payload.get("top_intent"))
    if isinstance(top, str):
        return top, None

    scoring = payload.get("topScoringIntent")
    if isinstance(scoring, dict) and isinstance(scoring.get("intent"), str):
        return scoring["intent"], _safe_score(scoring.get("score"))

    intents = payload.get("intents")
    if isinstance(intents, dict) and intents:
        best_name: str | None = None
        best_score = float("-inf")
        for name, detail in intents.items():
            score = _safe_score(detail.get("score")) if isinstance(detail, dict) else None
            if score is None:
                score = 0.0
            if best_name is None or score > best_score:
                best_name, best_score = name, score
        return best_name, best_score
    return None, None


def parse_recognition(payload: Any) -> RecognitionResult:
    if not isinstance(payload, dict):
        raise RecognitionContractError("bad_recognition", "recognition result must be an object")

    top_intent, top_score = _resolve_top_intent(payload)
    if not isinstance(top_intent, str) or not top_intent.strip():
        raise RecognitionContractError("missing_top_intent", "recognition result has no top intent")

    return RecognitionResult(
        top_intent=top_intent.strip(),
        entities=parse_entities(payload.get("entities")),
        top_score=top_score,
    )
