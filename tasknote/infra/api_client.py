from __future__ import annotations

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

import requests

from tasknote.config import SETTINGS
from tasknote.domain.entities import LoginResult, Note, StandaloneNote, Task, TaskStat, TotpSecret
from tasknote.domain.enums import NoteType
from tasknote.domain.errors import ApiError, AuthenticationError
from tasknote.domain.updates import TaskUpdate

from . import codec

logger = logging.getLogger(__name__)

# Anything a decoder raises on a malformed body.
DECODE_ERRORS = (KeyError, TypeError, ValueError, AttributeError)


class ApiClient:
    """Thin REST client for the task backend.

    Without an injected ``http`` session each thread gets its own
    ``requests.Session``, since sessions are not safe to share across the
    reorder workers.
    """

    def __init__(
        self,
        token_provider: Callable[[], Optional[str]],
        base_url: str | None = None,
        timeout: float | None = None,
        http: requests.Session | None = None,
    ) -> None:
        self._token_provider = token_provider
        self._base_url = (base_url or SETTINGS.api_url).rstrip("/")
        self._timeout = timeout if timeout is not None else SETTINGS.request_timeout
        self._shared_http = http
        self._local = threading.local()

    def http_session(self) -> requests.Session:
        if self._shared_http is not None:
            return self._shared_http
        http = getattr(self._local, "http", None)
        if http is None:
            http = self._local.http = requests.Session()
        return http

    # tasks

    def fetch_tasks(self, start: datetime | None = None, end: datetime | None = None) -> list[Task]:
        params = {}
        if start:
            params["start_date"] = codec.to_millis(start)
        if end:
            params["end_date"] = codec.to_millis(end)
        return self._request("GET", "/tasks", params=params, decode=_list_of(codec.task_from_wire))

    def fetch_task_stats(self, start: datetime, end: datetime) -> list[TaskStat]:
        params = {"start_date": codec.to_millis(start), "end_date": codec.to_millis(end)}
        return self._request("GET", "/tasks/stats", params=params, decode=_list_of(codec.stat_from_wire))

    def create_task(self, title: str, task_time: datetime) -> Task:
        payload = codec.new_task_to_wire(title, task_time)
        return self._request("POST", "/tasks", json=payload, decode=codec.task_from_wire)

    def update_task(self, task_id: int, update: TaskUpdate) -> Task:
        payload = codec.update_to_wire(update)
        return self._request("PUT", f"/tasks/{task_id}", json=payload, decode=codec.task_from_wire)

    def toggle_task(self, task_id: int) -> Task:
        # Only the completion fields of the reply are used.
        return self._request(
            "PATCH",
            f"/tasks/{task_id}/toggle",
            decode=lambda data: codec.task_from_wire({"id": task_id, **data}),
        )

    def delete_task(self, task_id: int) -> None:
        self._request("DELETE", f"/tasks/{task_id}")

    def search_tasks(self, query: str) -> list[Task]:
        return self._request("GET", "/search", params={"q": query}, decode=_list_of(codec.task_from_wire))

    # notes

    def create_note(self, task_id: int, content: str) -> Note:
        payload = {"task_id": task_id, "content": content, "type": NoteType.TASK.value}
        return self._request("POST", "/notes", json=payload, decode=codec.note_from_wire)

    def update_note(self, note_id: int, content: str) -> Note:
        return self._request("PUT", f"/notes/{note_id}", json={"content": content}, decode=codec.note_from_wire)

    def delete_note(self, note_id: int) -> None:
        self._request("DELETE", f"/notes/{note_id}")

    def fetch_standalone_notes(self) -> list[StandaloneNote]:
        return self._request(
            "GET",
            "/notes",
            params={"type": NoteType.NOTE.value},
            decode=_list_of(codec.standalone_note_from_wire),
        )

    def create_standalone_note(self, content: str, label: str = "") -> StandaloneNote:
        payload = {"task_id": 0, "content": content, "type": NoteType.NOTE.value, "label": label}
        return self._request("POST", "/notes", json=payload, decode=codec.standalone_note_from_wire)

    def update_standalone_note(self, note_id: int, content: str, label: str, sort: int) -> StandaloneNote:
        payload = {"content": content, "label": label, "sort": sort}
        return self._request("PUT", f"/notes/{note_id}", json=payload, decode=codec.standalone_note_from_wire)

    def upload_image(self, path: Path) -> str:
        with path.open("rb") as handle:
            return self._request(
                "POST",
                "/upload",
                files={"file": (path.name, handle)},
                decode=lambda data: str(data["url"]),
            )

    # auth

    def login(self, username: str, password: str, totp_token: str | None = None) -> LoginResult:
        payload: dict[str, Any] = {"username": username, "password": password}
        if totp_token:
            payload["totp_token"] = totp_token

        def decode(data: dict) -> LoginResult:
            if data.get("require_2fa"):
                return LoginResult(require_2fa=True)
            return LoginResult(token=data["token"], username=data.get("username") or username)

        return self._request("POST", "/login", json=payload, auth=False, decode=decode)

    def register(self, username: str, password: str) -> None:
        self._request("POST", "/register", json={"username": username, "password": password}, auth=False)

    def reset_password(self, username: str, new_password: str, totp_token: str) -> None:
        payload = {"username": username, "new_password": new_password, "totp_token": totp_token}
        self._request("POST", "/auth/reset-password", json=payload, auth=False)

    def totp_status(self) -> bool:
        return self._request("GET", "/auth/totp/status", decode=lambda data: bool(data.get("enabled")))

    def totp_generate(self) -> TotpSecret:
        return self._request("POST", "/auth/totp/generate", decode=codec.totp_secret_from_wire)

    def totp_verify(self, code: str) -> None:
        self._request("POST", "/auth/totp/verify", json={"token": code})

    def _headers(self, auth: bool) -> dict[str, str]:
        if not auth:
            return {}
        token = self._token_provider()
        return {"Authorization": f"Bearer {token}"} if token else {}

    def _request(
        self,
        method: str,
        path: str,
        auth: bool = True,
        decode: Callable[[Any], Any] | None = None,
        **kwargs,
    ) -> Any:
        url = f"{self._base_url}{path}"
        try:
            response = self.http_session().request(
                method,
                url,
                headers=self._headers(auth),
                timeout=self._timeout,
                **kwargs,
            )
        except requests.RequestException as exc:
            raise ApiError(f"{method} {path} failed: {exc}") from exc

        if response.status_code == 401:
            raise AuthenticationError(_error_message(response, "Unauthorized"))
        if not response.ok:
            message = _error_message(response, f"{method} {path} returned {response.status_code}")
            raise ApiError(message, status=response.status_code)

        logger.debug("%s %s -> %s", method, path, response.status_code)
        data = None
        if response.content:
            try:
                data = response.json()
            except ValueError as exc:
                raise ApiError(f"{method} {path} returned invalid JSON", status=response.status_code) from exc
        if decode is None:
            return data
        try:
            return decode(data)
        except DECODE_ERRORS as exc:
            raise ApiError(
                f"{method} {path} returned an unexpected payload", status=response.status_code
            ) from exc


def _list_of(decoder: Callable[[Any], Any]) -> Callable[[Any], list]:
    # A null list body means no rows.
    def decode(data: Any) -> list:
        return [decoder(item) for item in data or []]

    return decode


def _error_message(response: requests.Response, default: str) -> str:
    try:
        data = response.json()
    except ValueError:
        return default
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return default
