from __future__ import annotations

import threading
from datetime import datetime
from pathlib import Path

import pytest
import requests

from conftest import StubHttp, StubResponse
from tasknote.domain.errors import ApiError, AuthenticationError
from tasknote.domain.updates import IdentityUpdate, ScheduleUpdate
from tasknote.infra.api_client import ApiClient

BASE = "http://api.test/api"


def _client(http: StubHttp, token: str | None = "secret") -> ApiClient:
    return ApiClient(lambda: token, base_url=BASE, timeout=5, http=http)


def test_fetch_tasks_sends_bearer_token_and_range() -> None:
    http = StubHttp(StubResponse(payload=[{"id": 1, "title": "a", "completed": False, "created_at": 0}]))
    start, end = datetime(2026, 3, 10), datetime(2026, 3, 10, 23, 59)

    tasks = _client(http).fetch_tasks(start, end)

    sent = http.requests[0]
    assert sent["method"] == "GET"
    assert sent["url"] == f"{BASE}/tasks"
    assert sent["headers"] == {"Authorization": "Bearer secret"}
    assert sent["params"] == {"start_date": int(start.timestamp() * 1000), "end_date": int(end.timestamp() * 1000)}
    assert sent["timeout"] == 5
    assert [t.id for t in tasks] == [1]


def test_update_task_puts_wire_payload() -> None:
    http = StubHttp(StubResponse(payload={"id": 4, "title": "x", "completed": False, "created_at": 0, "sort_order": 300}))

    task = _client(http).update_task(4, ScheduleUpdate(sort_order=300))

    assert http.requests[0]["method"] == "PUT"
    assert http.requests[0]["url"] == f"{BASE}/tasks/4"
    assert http.requests[0]["json"] == {"sort_order": 300}
    assert task.sort_order == 300
    assert task.notes is None


def test_toggle_uses_patch() -> None:
    http = StubHttp(StubResponse(payload={"id": 4, "title": "x", "completed": True, "created_at": 0, "completed_at": 1000}))

    task = _client(http).toggle_task(4)

    assert http.requests[0]["method"] == "PATCH"
    assert http.requests[0]["url"] == f"{BASE}/tasks/4/toggle"
    assert task.completed and task.completed_at is not None


def test_delete_accepts_empty_body() -> None:
    http = StubHttp(StubResponse(status_code=204))

    assert _client(http).delete_task(9) is None


def test_unauthorized_raises_authentication_error() -> None:
    http = StubHttp(StubResponse(status_code=401, payload={"error": "token expired"}))

    with pytest.raises(AuthenticationError) as info:
        _client(http).fetch_tasks()

    assert info.value.status == 401
    assert str(info.value) == "token expired"


def test_server_error_message_is_surfaced() -> None:
    http = StubHttp(StubResponse(status_code=500, payload={"error": "db down"}))

    with pytest.raises(ApiError) as info:
        _client(http).create_task("x", datetime(2026, 3, 10))

    assert info.value.status == 500
    assert str(info.value) == "db down"


def test_transport_failure_becomes_api_error() -> None:
    http = StubHttp(requests.Timeout("slow"))

    with pytest.raises(ApiError) as info:
        _client(http).search_tasks("x")

    assert info.value.status is None


def test_login_without_token_and_second_factor() -> None:
    http = StubHttp(StubResponse(payload={"require_2fa": True}), StubResponse(payload={"token": "t", "username": "alice"}))
    client = _client(http, token=None)

    first = client.login("alice", "pw")
    second = client.login("alice", "pw", "123456")

    assert first.require_2fa is True
    assert second.token == "t"
    assert http.requests[0]["headers"] == {}
    assert "totp_token" not in http.requests[0]["json"]
    assert http.requests[1]["json"]["totp_token"] == "123456"


def test_create_note_posts_task_note() -> None:
    http = StubHttp(StubResponse(payload={"id": 8, "content": "hi", "created_at": "2026-03-10T09:30:00Z"}))

    note = _client(http).create_note(3, "hi")

    assert http.requests[0]["json"] == {"task_id": 3, "content": "hi", "type": "task"}
    assert note.id == 8


def test_upload_image_sends_multipart(tmp_path: Path) -> None:
    image = tmp_path / "paste.png"
    image.write_bytes(b"\x89PNG")
    http = StubHttp(StubResponse(payload={"url": "/uploads/paste.png"}))

    assert _client(http).upload_image(image) == "/uploads/paste.png"
    assert http.requests[0]["files"]["file"][0] == "paste.png"


def test_totp_endpoints() -> None:
    http = StubHttp(
        StubResponse(payload={"enabled": False}),
        StubResponse(payload={"secret": "ABC", "url": "otpauth://x"}),
        StubResponse(payload={}),
    )
    client = _client(http)

    assert client.totp_status() is False
    assert client.totp_generate().secret == "ABC"
    client.totp_verify("654321")

    assert [r["url"] for r in http.requests] == [
        f"{BASE}/auth/totp/status",
        f"{BASE}/auth/totp/generate",
        f"{BASE}/auth/totp/verify",
    ]
    assert http.requests[2]["json"] == {"token": "654321"}


def test_toggle_accepts_completion_only_reply() -> None:
    http = StubHttp(StubResponse(payload={"completed": True, "completed_at": 1773135000000}))

    task = _client(http).toggle_task(4)

    assert task.id == 4
    assert task.completed is True
    assert task.completed_at == datetime.fromtimestamp(1773135000)


def test_empty_body_on_update_is_an_api_error() -> None:
    http = StubHttp(StubResponse(status_code=204))

    with pytest.raises(ApiError) as info:
        _client(http).update_task(1, IdentityUpdate(title="b"))

    assert str(info.value) == "PUT /tasks/1 returned an unexpected payload"
    assert info.value.status == 204


def test_malformed_payloads_are_api_errors() -> None:
    http = StubHttp(
        StubResponse(payload={"title": "no id", "completed": False}),
        StubResponse(payload=[{"id": 2, "title": "x", "time_unit": "fortnight"}]),
        StubResponse(payload={"message": "ok"}),
        StubResponse(payload={}),
    )
    client = _client(http)

    with pytest.raises(ApiError):
        client.create_task("no id", datetime(2026, 3, 10))
    with pytest.raises(ApiError):
        client.fetch_tasks()
    with pytest.raises(ApiError):
        client.login("alice", "pw")
    with pytest.raises(ApiError):
        client.totp_generate()


def test_upload_without_url_is_an_api_error(tmp_path: Path) -> None:
    image = tmp_path / "paste.png"
    image.write_bytes(b"\x89PNG")
    http = StubHttp(StubResponse(payload={"name": "paste.png"}))

    with pytest.raises(ApiError) as info:
        _client(http).upload_image(image)

    assert info.value.status == 200


def test_default_sessions_are_per_thread() -> None:
    client = ApiClient(lambda: None, base_url=BASE)
    seen: list[requests.Session] = []
    workers = [threading.Thread(target=lambda: seen.append(client.http_session())) for _ in range(2)]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join()

    assert isinstance(seen[0], requests.Session)
    assert seen[0] is not seen[1]
    assert client.http_session() is client.http_session()


def test_injected_session_is_shared() -> None:
    http = StubHttp()

    assert _client(http).http_session() is http
