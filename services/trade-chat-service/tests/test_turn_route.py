import pytest
from fastapi.testclient import TestClient

from app.core import turn
from app.core.recognition import parse_recognition
from app.core.recognizer import RecognizerError
from app.core.turn_state_store import MemoryBackend
from app.core.turn_state_store import TurnStateStore
from app.core.turn_state_store import set_state_store
from app.main import app


@pytest.fixture(autouse=True)
def _memory_state_store():
    set_state_store(TurnStateStore(MemoryBackend()))
    yield
    set_state_store(None)


def _patch_recognizer(monkeypatch, payload):
    async def fake_recognize(text, trace_id, request_id):
        return parse_recognition(payload)

    monkeypatch.setattr(turn, "recognize", fake_recognize)


def test_turn_route_returns_buy_actions(monkeypatch):
    _patch_recognizer(
        monkeypatch,
        {
            "topIntent": "주식매수",
            "entities": {"수량": [{"text": "1주"}], "종목": [{"text": "신한 지주"}], "단가": [{"text": "현재가"}]},
        },
    )
    client = TestClient(app)

    response = client.post(
        "/turn",
        headers={"x-trace-id": "trace_route"},
        json={"type": "message", "text": "신한지주 1주 현재가로 매수해줘", "conversation_id": "c1", "user_id": "u1"},
    )

    assert response.status_code == 200
    assert response.headers["x-trace-id"] == "trace_route"
    data = response.json()
    assert data["status"] == "ok"
    assert data["actions"][0]["attachments"][0]["contentType"] == "application/vnd.microsoft.card.adaptive"
    assert data["actions"][1] == {"type": "event", "name": "buy-intent", "value": "1|SEP|신한지주|SEP|cp"}


def test_turn_route_rejects_invalid_json_body():
    client = TestClient(app)
    response = client.post("/turn", content="{invalid", headers={"content-type": "application/json"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_request"


def test_turn_route_requires_conversation_and_user():
    client = TestClient(app)
    response = client.post("/turn", json={"type": "message", "text": "hi"})

    assert response.status_code == 400
    payload = response.json()
    assert payload["error"]["code"] == "invalid_request"
    assert "conversation_id" in payload["error"]["message"]


def test_turn_route_maps_contract_violation_to_422(monkeypatch):
    _patch_recognizer(monkeypatch, {"entities": {}})
    client = TestClient(app)

    response = client.post("/turn", json={"text": "hi", "conversation_id": "c1", "user_id": "u1"})

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "recognition_contract_violation"


def test_turn_route_maps_recognizer_failure_to_502(monkeypatch):
    async def failing_recognize(text, trace_id, request_id):
        raise RecognizerError("recognizer_unavailable", "timeout")

    monkeypatch.setattr(turn, "recognize", failing_recognize)
    client = TestClient(app)

    response = client.post("/turn", json={"text": "hi", "conversation_id": "c1", "user_id": "u1"})

    assert response.status_code == 502
    assert response.json()["error"]["code"] == "recognizer_unavailable"


def test_turn_state_and_reset_routes(monkeypatch):
    _patch_recognizer(monkeypatch, {"topIntent": "Greeting", "entities": {"userName": ["tony"]}})
    client = TestClient(app)
    client.post("/turn", json={"text": "hi I'm tony", "conversation_id": "c9", "user_id": "u9"})

    state = client.get("/internal/turn/state", params={"conversation_id": "c9", "user_id": "u9"}).json()
    assert state["state"]["greeting"]["name"] == "Tony"
    assert state["state"]["dialog"]["stack"][0]["dialog_id"] == "greeting"

    reset = client.post("/internal/turn/reset", json={"conversation_id": "c9"}).json()
    assert reset["session"]["reset_applied"] is True

    after = client.get("/internal/turn/state", params={"conversation_id": "c9", "user_id": "u9"}).json()
    assert after["state"]["dialog"]["stack"] == []


def test_turn_state_route_requires_ids():
    client = TestClient(app)
    response = client.get("/internal/turn/state", params={"conversation_id": "c1"})

    assert response.status_code == 400


def test_welcome_route_skips_bot_member():
    client = TestClient(app)
    response = client.post(
        "/turn",
        json={
            "type": "conversationUpdate",
            "conversation_id": "c1",
            "user_id": "u1",
            "recipient_id": "bot",
            "members_added": [{"id": "bot"}, {"id": "u1"}],
        },
    )

    assert response.status_code == 200
    actions = response.json()["actions"]
    assert len(actions) == 1
    assert actions[0]["type"] == "message"
    assert actions[0]["attachments"][0]["content"]["type"] == "AdaptiveCard"


def test_turn_route_reports_state_load_failure(monkeypatch):
    class UnreadableBackend(MemoryBackend):
        def get(self, key):
            raise ConnectionError("redis down")

    _patch_recognizer(monkeypatch, {"topIntent": "None", "entities": {}})
    set_state_store(TurnStateStore(UnreadableBackend()))
    client = TestClient(app)

    response = client.post("/turn", json={"text": "hi", "conversation_id": "c1", "user_id": "u1"})

    assert response.status_code == 503
    error = response.json()["error"]
    assert error["code"] == "state_unavailable"
    assert error["message"] == "Conversation state could not be loaded."


def test_turn_route_reports_state_save_failure(monkeypatch):
    class ReadOnlyBackend(MemoryBackend):
        def set(self, key, value, ttl=None):
            raise ConnectionError("redis read-only")

    _patch_recognizer(monkeypatch, {"topIntent": "None", "entities": {}})
    set_state_store(TurnStateStore(ReadOnlyBackend()))
    client = TestClient(app)

    response = client.post("/turn", json={"text": "hi", "conversation_id": "c1", "user_id": "u1"})

    assert response.status_code == 503
    assert response.json()["error"]["message"] == "Conversation state could not be saved."
