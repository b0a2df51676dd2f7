from __future__ import annotations

import json
from typing import Any, Callable, Dict

import pytest
from fastapi.testclient import TestClient

from admissions_chat.ports.responder import get_language_model
from worker import turn_queue

from conftest import ScriptedLLM

Headers = Callable[..., Dict[str, str]]


@pytest.fixture
def queued(monkeypatch: pytest.MonkeyPatch) -> list[tuple[str, str]]:
    calls: list[tuple[str, str]] = []

    def _record(chat_id: str, message_id: str) -> None:
        calls.append((chat_id, message_id))

    monkeypatch.setattr(turn_queue, "enqueue_conversation_turn", _record)
    return calls


def _use_llm(client: TestClient, llm: ScriptedLLM) -> None:
    client.app.dependency_overrides[get_language_model] = lambda: llm


def _create_chat(client: TestClient, headers: Dict[str, str], **body: Any) -> Dict[str, Any]:
    response = client.post("/chats", headers=headers, json=body)
    assert response.status_code == 201, response.text
    return response.json()


def test_requests_without_token_are_rejected(client: TestClient) -> None:
    response = client.get("/chats")

    assert response.status_code == 401
    assert response.headers.get("X-Request-Id")


def test_student_creates_and_lists_own_chats(client: TestClient, auth_headers: Headers) -> None:
    ada = auth_headers("student-1", name="Ada", email="ada@example.com")
    bob = auth_headers("student-2")

    chat = _create_chat(client, ada)
    _create_chat(client, bob, title="Bob's chat")

    assert chat["title"] == "New Chat" and chat["status"] == "open"
    listing = client.get("/chats", headers=ada).json()
    assert [item["id"] for item in listing["chats"]] == [chat["id"]]

    admin_listing = client.get("/chats", headers=auth_headers("admin-1", role="admin")).json()
    assert admin_listing["count"] == 2

    forbidden = client.get(f"/chats/{chat['id']}", headers=bob)
    assert forbidden.status_code == 403
    assert forbidden.json()["error"]["code"] == "permission_denied"


def test_unknown_chat_is_404(client: TestClient, auth_headers: Headers) -> None:
    response = client.get("/chats/does-not-exist", headers=auth_headers())

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "not_found"


def test_student_message_is_stored_and_queues_a_turn(
    client: TestClient, auth_headers: Headers, queued: list[tuple[str, str]]
) -> None:
    headers = auth_headers()
    chat = _create_chat(client, headers)

    response = client.post(f"/chats/{chat['id']}/messages", headers=headers, json={"content": "Hi there"})

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["ai_turn_queued"] is True
    assert body["message"]["role"] == "student"
    assert queued == [(chat["id"], body["message"]["id"])]

    refreshed = client.get(f"/chats/{chat['id']}", headers=headers).json()
    assert refreshed["last_message_at"] is not None


def test_empty_message_is_rejected(client: TestClient, auth_headers: Headers, queued: list[tuple[str, str]]) -> None:
    headers = auth_headers()
    chat = _create_chat(client, headers)

    response = client.post(f"/chats/{chat['id']}/messages", headers=headers, json={"content": ""})

    assert response.status_code == 422
    assert queued == []


def test_admin_message_takes_over_without_queueing(
    client: TestClient, auth_headers: Headers, queued: list[tuple[str, str]]
) -> None:
    student = auth_headers()
    admin = auth_headers("admin-1", role="admin")
    chat = _create_chat(client, student)

    response = client.post(f"/chats/{chat['id']}/messages", headers=admin, json={"content": "Adviser here"})

    assert response.status_code == 201
    assert response.json()["ai_turn_queued"] is False
    assert queued == []
    assert client.get(f"/chats/{chat['id']}", headers=student).json()["admin_taken_over"] is True

    messages = client.get(f"/chats/{chat['id']}/messages", headers=student).json()
    assert [item["role"] for item in messages["messages"]] == ["admin"]


def test_takeover_and_release_endpoints(client: TestClient, auth_headers: Headers) -> None:
    student = auth_headers()
    admin = auth_headers("admin-1", role="admin")
    chat = _create_chat(client, student)

    assert client.post(f"/chats/{chat['id']}/takeover", headers=student).status_code == 403
    assert client.post(f"/chats/{chat['id']}/takeover", headers=admin).json()["admin_taken_over"] is True
    assert client.post(f"/chats/{chat['id']}/release", headers=admin).json()["admin_taken_over"] is False
    assert client.post(f"/chats/{chat['id']}/typing", headers=admin).json()["admin_taken_over"] is True


def test_admin_patches_chat(client: TestClient, auth_headers: Headers) -> None:
    admin = auth_headers("admin-1", role="admin")
    chat = _create_chat(client, auth_headers())

    response = client.patch(f"/chats/{chat['id']}", headers=admin, json={"status": "closed", "tags": "fees"})

    assert response.status_code == 200, response.text
    assert response.json()["status"] == "closed"
    assert response.json()["tags"] == "fees"
    assert client.patch(f"/chats/{chat['id']}", headers=admin, json={"status": "archived"}).status_code == 422


def test_ai_chat_runs_a_turn_and_audits_it(client: TestClient, auth_headers: Headers) -> None:
    headers = auth_headers()
    admin = auth_headers("admin-1", role="admin")
    chat = _create_chat(client, headers)
    llm = ScriptedLLM(
        judge=json.dumps(
            {"escalationNeeded": True, "confidence": 0.92, "reasons": ["upset"], "suggestedResponse": "call"}
        )
    )
    _use_llm(client, llm)

    response = client.post(
        "/ai/chat",
        headers=headers,
        json={
            "chat_id": chat["id"],
            "user_message": "How much is tuition?",
            "history": [{"role": "student", "content": "Hello"}, {"role": "bot", "content": "Hi!"}],
        },
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["aborted"] is False
    assert body["message"]["role"] == "bot"
    assert body["sources"][0]["id"] == "kb-tuition-fees"
    assert body["analysis"]["escalation_analysis"]["confidence"] == 0.92
    assert client.get(f"/chats/{chat['id']}", headers=headers).json()["status"] == "escalated"

    audit = client.get("/admin/audit", headers=admin, params={"chat_id": chat["id"]}).json()
    assert len(audit["items"]) == 2
    assert {item["message_id"] for item in audit["items"]} == {body["message"]["id"]}


def test_ai_chat_after_takeover_is_aborted(client: TestClient, auth_headers: Headers) -> None:
    headers = auth_headers()
    chat = _create_chat(client, headers)
    client.post(f"/chats/{chat['id']}/takeover", headers=auth_headers("admin-1", role="admin"))
    llm = ScriptedLLM()
    _use_llm(client, llm)

    response = client.post("/ai/chat", headers=headers, json={"chat_id": chat["id"], "user_message": "hello"})

    assert response.status_code == 200
    assert response.json() == {"aborted": True, "chat_id": chat["id"], "reason": "admin_takeover"}
    assert llm.calls == []


def test_ai_chat_generation_failure_is_502(client: TestClient, auth_headers: Headers) -> None:
    headers = auth_headers()
    chat = _create_chat(client, headers)
    _use_llm(client, ScriptedLLM(reply=""))

    response = client.post("/ai/chat", headers=headers, json={"chat_id": chat["id"], "user_message": "hello"})

    assert response.status_code == 502
    assert response.json()["error"]["code"] == "generation_failed"
    assert client.get(f"/chats/{chat['id']}/messages", headers=headers).json()["count"] == 0


def test_escalation_endpoint_updates_status(client: TestClient, auth_headers: Headers) -> None:
    headers = auth_headers()
    chat = _create_chat(client, headers)
    _use_llm(
        client,
        ScriptedLLM(
            judge='{"escalationNeeded": true, "confidence": 0.8, "reasons": ["asks for human"], '
            '"suggestedResponse": "book a call"}'
        ),
    )

    response = client.post(
        "/ai/escalation",
        headers=headers,
        json={"chat_id": chat["id"], "message_id": "msg-1", "user_message": "Let me talk to a person"},
    )

    assert response.status_code == 200, response.text
    assert response.json()["chat_status_updated"] is True
    assert response.json()["analysis"]["suggested_response"] == "book a call"
    assert client.get(f"/chats/{chat['id']}", headers=headers).json()["status"] == "escalated"


def test_admin_chat_listing_validates_parameters(client: TestClient, auth_headers: Headers) -> None:
    admin = auth_headers("admin-1", role="admin")
    student = auth_headers(name="Ada", email="ada@example.com")
    chat = _create_chat(client, student)
    client.post(f"/chats/{chat['id']}/messages", headers=admin, json={"content": "Adviser here"})

    assert client.get("/admin/chats", headers=student).status_code == 403
    assert client.get("/admin/chats", headers=admin, params={"status": "pending"}).status_code == 400
    assert client.get("/admin/chats", headers=admin, params={"count": 0}).status_code == 400
    assert client.get("/admin/chats", headers=admin, params={"count": 1001}).status_code == 400

    listing = client.get("/admin/chats", headers=admin, params={"status": "open", "count": 1000}).json()
    assert listing["count"] == 1
    summary = listing["chats"][0]
    assert summary["user_name"] == "Ada"
    assert summary["message_count"] == 1
    assert summary["last_message_preview"] == "Adviser here"
    assert summary["last_message_role"] == "admin"
