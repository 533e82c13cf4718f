import asyncio
import time
import pytest
from unittest.mock import AsyncMock

from API_LAYER.app import app
from executors.chat import ChatExecutor
from tests.conftest import ALICE, SENDER

# ------------------------------------------------------------
# Helpers
# ------------------------------------------------------------
def assert_failure_envelope(body: dict):
    """
    Enforces the minimal failure response contract.
    """
    assert isinstance(body, dict), "Failure response must be a JSON object"
    assert "error" in body, "Missing 'error' key in failure response"

    error = body["error"]
    assert isinstance(error, dict), "'error' must be an object"
    assert isinstance(error.get("type"), str), "'error.type' must be a string"
    assert isinstance(error.get("message"), str), "'error.message' must be a string"


def assert_success_envelope(body: dict):
    assert set(body) == {"type", "data", "message"}
    assert isinstance(body["type"], str)
    assert isinstance(body["message"], str)


def chat(client, text, session_id="s1", sender=SENDER):
    return client.post("/chat", json={"session_id": session_id, "sender_address": sender, "text": text})


# ------------------------------------------------------------
# Tests
# ------------------------------------------------------------

def test_root_and_health(client):
    assert client.get("/").status_code == 200
    body = client.get("/health").json()
    assert body["status"] == "ok"


def test_send_confirm_settle_over_http(client):
    response = chat(client, "Send $50 to Alice")
    assert response.status_code == 200
    body = response.json()
    assert_success_envelope(body)
    assert body["type"] == "proposal"
    assert body["data"]["proposal"]["recipientAddress"] == ALICE

    response = client.post("/confirm", json={"session_id": "s1"})
    assert response.status_code == 200
    body = response.json()
    assert body["type"] == "submitted"
    assert body["data"]["transaction"]["hash"].startswith("0x")

    snapshot = None
    for _ in range(100):
        snapshot = client.get("/sessions/s1").json()
        if snapshot["state"] == "idle":
            break
        time.sleep(0.02)

    assert snapshot["state"] == "idle"
    assert snapshot["transaction"]["status"] == "confirmed"
    assert len(snapshot["history"]) == 1


def test_cancel_over_http(client, gateway):
    chat(client, "Send $50 to Alice")
    response = client.post("/cancel", json={"session_id": "s1"})

    assert response.json()["type"] == "cancelled"
    assert gateway.submitted == []
    assert client.get("/sessions/s1").json()["state"] == "idle"


def test_gibberish_gets_help(client):
    body = chat(client, "blorp").json()
    assert body["type"] == "help"


def test_invalid_sender_returns_failure_envelope(client):
    response = chat(client, "Send $50 to Alice", sender="not-a-wallet")

    assert response.status_code == 422
    body = response.json()
    assert_failure_envelope(body)
    assert body["error"]["type"] == "validation_error"


def test_unknown_session_returns_failure_envelope(client):
    response = client.post("/confirm", json={"session_id": "nope"})

    assert response.status_code == 404
    assert_failure_envelope(response.json())


def test_session_sender_mismatch_is_conflict(client):
    chat(client, "Check my balance")
    response = chat(client, "Check my balance", sender="0x2222222222222222222222222222222222222222")

    assert response.status_code == 409
    assert_failure_envelope(response.json())


def test_executor_timeout_returns_504(client, registry):
    async def slow(_text):
        await asyncio.sleep(1)

    registry.parser = AsyncMock()
    registry.parser.parse = AsyncMock(side_effect=slow)
    app.state.chat_executor = ChatExecutor(timeout=0.01)

    response = chat(client, "Send $50 to Alice")

    assert response.status_code == 504
    body = response.json()
    assert_failure_envelope(body)
    assert body["error"]["type"] == "timeout"


def test_unhandled_exception_returns_failure_envelope(client, registry):
    registry.parser = AsyncMock()
    registry.parser.parse = AsyncMock(side_effect=RuntimeError("boom"))

    response = chat(client, "Send $50 to Alice")

    assert response.status_code == 500
    assert_failure_envelope(response.json())


def test_delete_session(client):
    chat(client, "Check my balance")

    assert client.delete("/sessions/s1").status_code == 200
    assert client.get("/sessions/s1").status_code == 404


def test_metrics_count_requests(client):
    before = client.get("/metrics").json()["total"]
    chat(client, "Check my balance")
    assert client.get("/metrics").json()["total"] == before + 1
