"""Async HTTP client for the Remote Store (discussions, messages, tasks, team)."""

import logging
from datetime import date
from typing import Any

import httpx
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from threadflow.core.config import constants, settings
from threadflow.core.errors import (
    AuthorizationError,
    NetworkError,
    NotFoundError,
    RemoteStoreError,
    ValidationError,
)
from threadflow.domain import (
    Discussion,
    Message,
    RecordId,
    SubDiscussion,
    Task,
    TaskDifficulty,
    TaskStatus,
    TeamMember,
    is_temporary_id,
)


logger = logging.getLogger(__name__)


HTTP_CLIENT_ERROR_START = 400
HTTP_CLIENT_ERROR_END = 500

_discussions = TypeAdapter(list[Discussion])
_messages = TypeAdapter(list[Message])
_subdiscussions = TypeAdapter(list[SubDiscussion])
_tasks = TypeAdapter(list[Task])
_team = TypeAdapter(list[TeamMember])
_discussion = TypeAdapter(Discussion)
_message = TypeAdapter(Message)
_subdiscussion = TypeAdapter(SubDiscussion)
_task = TypeAdapter(Task)


def _error_detail(response: httpx.Response) -> str:
    """Pull the human-readable reason out of an error body ({"message": ...} or {"error": ...})."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body.get("detail") or f"HTTP {response.status_code}")
    return f"HTTP {response.status_code}"


def error_for_response(response: httpx.Response) -> RemoteStoreError:
    """Map a non-2xx response onto the error taxonomy."""
    detail = _error_detail(response)
    status_code = response.status_code

    if status_code == constants.HTTP_BAD_REQUEST:
        return ValidationError(detail, status_code=status_code)
    if status_code in (constants.HTTP_UNAUTHORIZED, constants.HTTP_FORBIDDEN):
        return AuthorizationError(detail, status_code=status_code)
    if status_code == constants.HTTP_NOT_FOUND:
        return NotFoundError(detail, status_code=status_code)
    if HTTP_CLIENT_ERROR_START <= status_code < HTTP_CLIENT_ERROR_END:
        return ValidationError(detail, status_code=status_code)
    return NetworkError(f"Server error: {detail}", status_code=status_code)


def _require_persisted(record_id: RecordId | None, *, what: str) -> None:
    """Refuse to send a temporary id to the Remote Store."""
    if record_id is not None and is_temporary_id(record_id):
        msg = f"Cannot reference {what} {record_id}: it has not been saved yet"
        raise ValidationError(msg)


def _task_payload(task: Task) -> dict[str, Any]:
    return {
        "id": task.id,
        "name": task.name,
        "description": task.description,
        "assignedTo": task.assignee,
        "status": task.status.value,
        "Difficulty": task.difficulty.value,
        "dueDate": task.due_date.isoformat() if task.due_date else None,
        "progress": task.progress,
        "collaborators": list(task.collaborators),
    }


class RemoteStoreClient:
    """Request/response pairs against the Remote Store HTTP API.

    Every call opens a short-lived ``httpx.AsyncClient``. Transport failures and
    non-2xx responses are raised as ``RemoteStoreError`` subclasses; callers
    decide whether that becomes a failed optimistic record or a user notice.
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = (base_url or settings.api_base_url).rstrip("/")
        self._token = token if token is not None else settings.api_token
        self._timeout = timeout or settings.request_timeout_seconds
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:  # noqa: ANN401
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, params=params, json=json, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error("remote_store_request_failed", extra={"method": method, "path": path, "error": str(e)})
            msg = f"{method} {path} failed: {e}"
            raise NetworkError(msg) from e

        if not response.is_success:
            error = error_for_response(response)
            logger.warning(
                "remote_store_request_rejected",
                extra={"method": method, "path": path, "status_code": response.status_code, "error": str(error)},
            )
            raise error

        logger.debug("remote_store_request_ok", extra={"method": method, "path": path})
        try:
            return response.json()
        except ValueError as e:
            msg = f"{method} {path} returned a non-JSON body"
            raise RemoteStoreError(msg, status_code=response.status_code) from e

    @staticmethod
    def _parse(adapter: TypeAdapter, payload: Any, *, path: str) -> Any:  # noqa: ANN401
        try:
            return adapter.validate_python(payload)
        except PydanticValidationError as e:
            logger.error("remote_store_malformed_response", extra={"path": path, "error": str(e)})
            msg = f"Malformed response from {path}: {e.error_count()} invalid field(s)"
            raise RemoteStoreError(msg) from e

    # Discussions

    async def list_discussions(self) -> list[Discussion]:
        """Fetch all discussions, newest first."""
        data = await self._request("GET", "/api/discussions")
        return self._parse(_discussions, data, path="/api/discussions")

    async def create_discussion(self, *, title: str, username: str) -> Discussion:
        """Create a discussion; ``username`` is the display name stored as ``started_by``."""
        data = await self._request("POST", "/api/discussions", json={"title": title, "username": username})
        return self._parse(_discussion, data, path="/api/discussions")

    # Messages

    async def list_messages(self, *, discussion_id: int) -> list[Message]:
        """Fetch every message of a discussion (main thread and sub-discussions), oldest first."""
        data = await self._request("GET", "/api/messages", params={"discussionId": discussion_id})
        return self._parse(_messages, data, path="/api/messages")

    async def create_message(
        self,
        *,
        discussion_id: int,
        content: str,
        author: str,
        subdiscussion_id: RecordId | None = None,
    ) -> Message:
        """Post a message as ``author`` (a display name); the Remote Store assigns its id and timestamp."""
        _require_persisted(subdiscussion_id, what="sub-discussion")
        payload = {
            "discussion_id": discussion_id,
            "subdiscussion_id": subdiscussion_id,
            "content": content,
            "username": author,
        }
        data = await self._request("POST", "/api/messages", json=payload)
        return self._parse(_message, data, path="/api/messages")

    # Sub-discussions

    async def list_subdiscussions(self, *, discussion_id: int) -> list[SubDiscussion]:
        """Fetch the sub-discussions of a discussion (without their messages)."""
        data = await self._request("GET", "/api/subdiscussions", params={"discussionId": discussion_id})
        return self._parse(_subdiscussions, data, path="/api/subdiscussions")

    async def create_subdiscussion(self, *, discussion_id: int, title: str) -> SubDiscussion:
        """Create a sub-discussion under ``discussion_id``."""
        data = await self._request("POST", "/api/subdiscussions", json={"discussionId": discussion_id, "title": title})
        return self._parse(_subdiscussion, data, path="/api/subdiscussions")

    async def update_subdiscussion_progress(
        self, *, subdiscussion_id: RecordId, progress: int, role: str
    ) -> SubDiscussion:
        """Set a sub-discussion's progress; the Remote Store only accepts this from reviewers."""
        _require_persisted(subdiscussion_id, what="sub-discussion")
        payload = {"id": subdiscussion_id, "progress": progress, "role": role}
        data = await self._request("PUT", "/api/subdiscussions", json=payload)
        return self._parse(_subdiscussion, data, path="/api/subdiscussions")

    # Tasks

    async def list_tasks(self) -> list[Task]:
        """Fetch all tasks with their assignee names."""
        data = await self._request("GET", "/api/tasks")
        return self._parse(_tasks, data, path="/api/tasks")

    async def create_task(
        self,
        *,
        name: str,
        assignee: str,
        description: str = "",
        difficulty: TaskDifficulty = TaskDifficulty.MODERATE,
        due_date: date | None = None,
        collaborators: list[str] | None = None,
    ) -> Task:
        """Create a task; new tasks start Pending at 0%."""
        payload = {
            "name": name,
            "description": description,
            "assignedTo": assignee,
            "status": TaskStatus.PENDING.value,
            "Difficulty": difficulty.value,
            "dueDate": due_date.isoformat() if due_date else None,
            "progress": 0,
            "collaborators": collaborators or [],
        }
        data = await self._request("POST", "/api/tasks", json=payload)
        return self._parse(_task, data, path="/api/tasks")

    async def update_task(self, task: Task) -> Task:
        """Replace a task's fields (including collaborators); last write wins."""
        data = await self._request("PUT", "/api/tasks", json=_task_payload(task))
        return self._parse(_task, data, path="/api/tasks")

    async def update_task_progress(self, *, task_id: int, progress: int) -> Task:
        """Set a task's progress; the Remote Store recomputes its status."""
        path = f"/api/tasks/{task_id}/progress"
        data = await self._request("PUT", path, json={"progress": progress})
        return self._parse(_task, data, path=path)

    async def verify_task(self, *, task_id: int) -> Task:
        """Mark a completed task as verified; the route answers with the raw task row."""
        path = f"/api/tasks/{task_id}/verify"
        data = await self._request("PUT", path)
        return self._parse(_task, data, path=path)

    async def delete_task(self, *, task_id: int) -> None:
        """Delete a task."""
        await self._request("DELETE", f"/api/tasks/{task_id}")

    # Team

    async def list_team(self) -> list[TeamMember]:
        """Fetch team members."""
        data = await self._request("GET", "/api/team")
        return self._parse(_team, data, path="/api/team")
