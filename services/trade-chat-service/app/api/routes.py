import logging
import uuid

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.api.schemas import DialogResetRequest, TurnRequest
from app.core.metrics import metrics
from app.core.recognition import RecognitionContractError
from app.core.recognizer import RecognizerError
from app.core.turn import TurnActivity, run_turn
from app.core.turn_state_store import TurnStateStoreError, get_state_store

router = APIRouter()
logger = logging.getLogger(__name__)

_STATE_ERROR_MESSAGES = {
    "get": "Conversation state could not be loaded.",
    "set": "Conversation state could not be saved.",
    "delete": "Conversation state could not be reset.",
}


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/metrics")
def metrics_endpoint():
    return metrics.snapshot()


@router.post("/turn")
async def turn(request: Request):
    trace_id, request_id, _, traceparent = _extract_ids(request)
    try:
        body = await request.json()
    except Exception:
        return _error_response(
            "invalid_request",
            "Request body must be a valid JSON object.",
            trace_id,
            request_id,
        )
    if not isinstance(body, dict):
        return _error_response(
            "invalid_request",
            "Request body must be a JSON object.",
            trace_id,
            request_id,
        )

    try:
        turn_request = TurnRequest.model_validate(body)
    except ValidationError as exc:
        fields = ",".join(str(err["loc"][-1]) for err in exc.errors() if err.get("loc"))
        return _error_response(
            "invalid_request",
            f"Invalid turn activity: {fields or 'body'}.",
            trace_id,
            request_id,
        )

    if turn_request.trace_id:
        trace_id = turn_request.trace_id
    if turn_request.request_id:
        request_id = turn_request.request_id

    activity = TurnActivity(
        type=turn_request.type,
        text=turn_request.text,
        conversation_id=turn_request.conversation_id,
        user_id=turn_request.user_id,
        recipient_id=turn_request.recipient_id or "",
        members_added=[member.id for member in turn_request.members_added],
    )
    try:
        result = await run_turn(activity, trace_id, request_id)
    except RecognitionContractError as exc:
        metrics.inc("ts_turn_rejected_total", {"reason": exc.code})
        return _error_response(
            "recognition_contract_violation",
            "The recognizer result could not be used for this turn.",
            trace_id,
            request_id,
            status_code=422,
        )
    except RecognizerError as exc:
        metrics.inc("ts_turn_rejected_total", {"reason": exc.code})
        return _error_response(
            exc.code,
            "The language recognizer is unavailable. Please try again shortly.",
            trace_id,
            request_id,
            status_code=502,
        )
    except TurnStateStoreError as exc:
        metrics.inc("ts_turn_rejected_total", {"reason": f"state_{exc.op}"})
        return _error_response(
            "state_unavailable",
            _STATE_ERROR_MESSAGES.get(exc.op, "Conversation state is unavailable."),
            trace_id,
            request_id,
            status_code=503,
        )

    response = {
        "version": "v1",
        "trace_id": trace_id,
        "request_id": request_id,
        "status": "ok",
        "actions": [action.to_dict() for action in result.actions],
        "dialog_command": result.dialog_command,
        "dialog_status": result.dialog_status,
    }
    return JSONResponse(content=response, headers=_response_headers(trace_id, request_id, traceparent))


@router.get("/internal/turn/state")
async def turn_state(request: Request):
    trace_id, request_id, _, traceparent = _extract_ids(request)
    conversation_id = (request.query_params.get("conversation_id") or "").strip()
    user_id = (request.query_params.get("user_id") or "").strip()
    if not conversation_id or not user_id:
        return _error_response(
            "invalid_request",
            "conversation_id and user_id are required.",
            trace_id,
            request_id,
        )
    try:
        state = get_state_store().load(conversation_id, user_id)
    except TurnStateStoreError:
        return _error_response(
            "state_unavailable",
            "Conversation state could not be loaded.",
            trace_id,
            request_id,
            status_code=503,
        )
    payload = {
        "version": "v1",
        "trace_id": trace_id,
        "request_id": request_id,
        "status": "ok",
        "state": {
            "conversation_id": conversation_id,
            "user_id": user_id,
            "greeting": state.greeting.to_dict(),
            "dialog": state.dialog.to_dict(),
        },
    }
    return JSONResponse(content=payload, headers=_response_headers(trace_id, request_id, traceparent))


@router.post("/internal/turn/reset")
async def turn_reset(request: Request):
    trace_id, request_id, _, traceparent = _extract_ids(request)
    try:
        body = await request.json()
    except Exception:
        return _error_response(
            "invalid_request",
            "Request body must be a valid JSON object.",
            trace_id,
            request_id,
        )
    try:
        reset_request = DialogResetRequest.model_validate(body)
    except ValidationError:
        return _error_response(
            "invalid_request",
            "conversation_id is required.",
            trace_id,
            request_id,
        )
    try:
        reset_applied = get_state_store().reset_dialog(reset_request.conversation_id)
    except TurnStateStoreError:
        return _error_response(
            "state_unavailable",
            "Conversation state could not be reset.",
            trace_id,
            request_id,
            status_code=503,
        )
    metrics.inc("ts_dialog_reset_total", {"result": "applied" if reset_applied else "noop"})
    payload = {
        "version": "v1",
        "trace_id": trace_id,
        "request_id": request_id,
        "status": "ok",
        "session": {"conversation_id": reset_request.conversation_id, "reset_applied": reset_applied},
    }
    return JSONResponse(content=payload, headers=_response_headers(trace_id, request_id, traceparent))


def _extract_ids(request: Request) -> tuple[str, str, str | None, str | None]:
    trace_id = request.headers.get("x-trace-id")
    request_id = request.headers.get("x-request-id")
    traceparent = request.headers.get("traceparent")
    span_id = None

    if not trace_id and traceparent:
        parsed_trace, parsed_span = _parse_traceparent(traceparent)
        trace_id = parsed_trace or trace_id
        span_id = parsed_span

    if not trace_id:
        trace_id = f"trace_{uuid.uuid4().hex}"
    if not request_id:
        request_id = f"req_{uuid.uuid4().hex}"
    return trace_id, request_id, span_id, traceparent


def _parse_traceparent(value: str) -> tuple[str | None, str | None]:
    parts = value.split("-")
    if len(parts) != 4:
        return None, None
    trace_id = parts[1]
    span_id = parts[2]
    if len(trace_id) != 32 or len(span_id) != 16:
        return None, None
    return trace_id, span_id


def _error_response(
    code: str,
    message: str,
    trace_id: str,
    request_id: str,
    status_code: int = 400,
) -> JSONResponse:
    payload = {
        "error": {"code": code, "message": message},
        "trace_id": trace_id,
        "request_id": request_id,
    }
    return JSONResponse(status_code=status_code, content=payload)


def _response_headers(trace_id: str, request_id: str, traceparent: str | None) -> dict[str, str]:
    headers = {"x-trace-id": trace_id, "x-request-id": request_id}
    if traceparent:
        headers["traceparent"] = traceparent
    return headers
