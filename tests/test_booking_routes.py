from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict

from fastapi.testclient import TestClient

Headers = Callable[..., Dict[str, str]]


def _in_days(days: int, minutes: int = 0) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days, minutes=minutes)).isoformat()


def _new_chat(client: TestClient, headers: Dict[str, str]) -> str:
    response = client.post("/chats", headers=headers, json={})
    assert response.status_code == 201, response.text
    return response.json()["id"]


def _book(client: TestClient, headers: Dict[str, str], chat_id: str, **overrides: Any):
    body = {"name": " Ada Lovelace ", "email": "Ada@Example.com ", "scheduled_time": _in_days(3)}
    body.update(overrides)
    return client.post(f"/chats/{chat_id}/booking", headers=headers, json=body)


def test_booking_marks_chat_call_booked(client: TestClient, auth_headers: Headers) -> None:
    student = auth_headers()
    chat_id = _new_chat(client, student)

    response = _book(client, student, chat_id)

    assert response.status_code == 201, response.text
    booking = response.json()["booking"]
    assert booking["chat_id"] == chat_id
    assert booking["name"] == "Ada Lovelace"
    assert booking["email"] == "ada@example.com"
    chat = client.get(f"/chats/{chat_id}", headers=student).json()
    assert chat["status"] == "call_booked"
    assert chat["last_message_at"] is not None

    fetched = client.get(f"/chats/{chat_id}/booking", headers=student)
    assert fetched.status_code == 200
    assert fetched.json()["booking"]["id"] == booking["id"]


def test_second_booking_for_a_chat_conflicts(client: TestClient, auth_headers: Headers) -> None:
    student = auth_headers()
    chat_id = _new_chat(client, student)
    assert _book(client, student, chat_id).status_code == 201

    response = _book(client, student, chat_id, scheduled_time=_in_days(5))

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "conflict"


def test_booking_within_fifteen_minutes_of_another_conflicts(client: TestClient, auth_headers: Headers) -> None:
    first = auth_headers("student-1")
    second = auth_headers("student-2")
    slot = datetime.now(timezone.utc) + timedelta(days=2)
    assert _book(client, first, _new_chat(client, first), scheduled_time=slot.isoformat()).status_code == 201

    clash = _book(client, second, _new_chat(client, second), scheduled_time=(slot + timedelta(minutes=10)).isoformat())
    free = _book(client, second, _new_chat(client, second), scheduled_time=(slot + timedelta(minutes=30)).isoformat())

    assert clash.status_code == 409
    assert clash.json()["error"]["message"] == "This time slot is already booked"
    assert free.status_code == 201


def test_booking_validates_email_and_future_time(client: TestClient, auth_headers: Headers) -> None:
    student = auth_headers()
    chat_id = _new_chat(client, student)

    bad_email = _book(client, student, chat_id, email="not-an-email")
    past = _book(client, student, chat_id, scheduled_time=_in_days(-1))
    missing = client.post(f"/chats/{chat_id}/booking", headers=student, json={"name": "Ada"})

    assert bad_email.status_code == 400
    assert bad_email.json()["error"]["message"] == "Invalid email format"
    assert past.status_code == 400
    assert missing.status_code == 422
    assert client.get(f"/chats/{chat_id}", headers=student).json()["status"] == "open"


def test_booking_requires_chat_access(client: TestClient, auth_headers: Headers) -> None:
    chat_id = _new_chat(client, auth_headers("student-1"))

    assert _book(client, auth_headers("student-2"), chat_id).status_code == 403
    assert _book(client, auth_headers(), "no-such-chat").status_code == 404
    assert client.get(f"/chats/{chat_id}/booking", headers=auth_headers("student-1")).status_code == 404


def test_admin_lists_bookings_with_filters(client: TestClient, auth_headers: Headers) -> None:
    admin = auth_headers("admin-1", role="admin")
    student = auth_headers()
    first_chat = _new_chat(client, student)
    second_chat = _new_chat(client, student)
    _book(client, student, first_chat, scheduled_time=_in_days(1))
    _book(client, student, second_chat, email="grace@example.com", scheduled_time=_in_days(2))

    assert client.get("/bookings", headers=student).status_code == 403
    everything = client.get("/bookings", headers=admin).json()
    by_chat = client.get("/bookings", headers=admin, params={"chat_id": first_chat}).json()
    by_email = client.get("/bookings", headers=admin, params={"email": "GRACE@example.com"}).json()

    assert everything["count"] == 2
    assert [item["chat_id"] for item in by_chat["bookings"]] == [first_chat]
    assert [item["chat_id"] for item in by_email["bookings"]] == [second_chat]
    assert client.get("/bookings", headers=admin, params={"count": 0}).status_code == 422
