"""
Async Jira Cloud REST client.

Thin httpx-based wrapper around the Jira platform REST API v3 and the
Jira Software (agile) REST API 1.0.  Only the calls the tool surface
needs are implemented.

Authentication is either basic (account email + API token) or an OAuth
2.0 bearer token.  The client never retries; failures surface as
:class:`~jiragate.core.exceptions.RemoteServiceError` carrying the HTTP
status and Jira's own error messages.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any

import httpx
import structlog

from jiragate import __version__
from jiragate.core.config import JiraConfig
from jiragate.core.exceptions import RemoteServiceError, SecurityError

logger = structlog.get_logger()

_API = "/rest/api/3"
_AGILE = "/rest/agile/1.0"
_DOWNLOAD_CHUNK = 64 * 1024


def _error_message(resp: httpx.Response) -> str:
    """Flatten Jira's ``errorMessages`` / ``errors`` body into one line."""
    try:
        body = resp.json()
    except ValueError:
        body = None
    parts: list[str] = []
    if isinstance(body, dict):
        parts.extend(str(m) for m in body.get("errorMessages") or [])
        errors = body.get("errors") or {}
        if isinstance(errors, dict):
            parts.extend(f"{k}: {v}" for k, v in errors.items())
        if not parts and body.get("message"):
            parts.append(str(body["message"]))
    if not parts:
        parts.append(resp.reason_phrase or "request failed")
    return f"Jira API error {resp.status_code}: {'; '.join(parts)}"


class JiraClient:
    """
    Async Jira REST client.

    Parameters
    ----------
    base_url:
        Site URL, e.g. ``https://example.atlassian.net``.
    api_token:
        API token (basic auth) or OAuth 2.0 access token.
    email:
        Account email; required for basic auth.
    auth_type:
        ``"basic"`` or ``"oauth2"``.
    transport:
        Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        base_url: str,
        api_token: str,
        *,
        email: str = "",
        auth_type: str = "basic",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._headers = {
            "Accept": "application/json",
            "User-Agent": f"jiragate/{__version__}",
        }
        self._auth: httpx.Auth | None = None
        if auth_type == "oauth2":
            self._headers["Authorization"] = f"Bearer {api_token}"
        else:
            self._auth = httpx.BasicAuth(email, api_token)
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(
        cls, cfg: JiraConfig, *, transport: httpx.AsyncBaseTransport | None = None
    ) -> JiraClient:
        token = cfg.api_token.get_secret_value() if cfg.api_token else ""
        return cls(
            cfg.base_url,
            token,
            email=cfg.email,
            auth_type=cfg.auth_type,
            timeout=cfg.timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> JiraClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._headers,
            auth=self._auth,
            timeout=self._timeout,
            follow_redirects=True,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *_: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Issues
    # ------------------------------------------------------------------

    async def get_issue(
        self,
        issue_key: str,
        *,
        fields: Sequence[str] | None = None,
        expand: Sequence[str] | None = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {}
        if fields:
            params["fields"] = ",".join(fields)
        if expand:
            params["expand"] = ",".join(expand)
        return await self._get(f"{_API}/issue/{issue_key}", params=params or None)

    async def search_issues(
        self,
        jql: str,
        *,
        max_results: int = 50,
        fields: Sequence[str] | None = None,
        next_page_token: str | None = None,
    ) -> dict[str, Any]:
        """Enhanced JQL search (``POST /search/jql``)."""
        body: dict[str, Any] = {"jql": jql, "maxResults": max_results}
        if fields:
            body["fields"] = list(fields)
        if next_page_token:
            body["nextPageToken"] = next_page_token
        return await self._post(f"{_API}/search/jql", json=body)

    async def create_issue(self, fields: dict[str, Any]) -> dict[str, Any]:
        return await self._post(f"{_API}/issue", json={"fields": fields})

    async def edit_issue(self, issue_key: str, fields: dict[str, Any]) -> None:
        await self._put(f"{_API}/issue/{issue_key}", json={"fields": fields})

    async def get_transitions(self, issue_key: str) -> list[dict[str, Any]]:
        data = await self._get(f"{_API}/issue/{issue_key}/transitions")
        return list(data.get("transitions", []))

    async def transition_issue(self, issue_key: str, transition_id: str) -> None:
        await self._post(
            f"{_API}/issue/{issue_key}/transitions",
            json={"transition": {"id": transition_id}},
        )

    async def add_comment(self, issue_key: str, body: dict[str, Any]) -> dict[str, Any]:
        return await self._post(f"{_API}/issue/{issue_key}/comment", json={"body": body})

    async def get_comments(
        self, issue_key: str, *, max_results: int = 50, start_at: int = 0
    ) -> dict[str, Any]:
        return await self._get(
            f"{_API}/issue/{issue_key}/comment",
            params={"maxResults": max_results, "startAt": start_at, "orderBy": "-created"},
        )

    async def get_worklogs(self, issue_key: str) -> dict[str, Any]:
        return await self._get(f"{_API}/issue/{issue_key}/worklog")

    async def link_issues(
        self,
        link_type: str,
        inward_issue: str,
        outward_issue: str,
        *,
        comment: dict[str, Any] | None = None,
    ) -> None:
        body: dict[str, Any] = {
            "type": {"name": link_type},
            "inwardIssue": {"key": inward_issue},
            "outwardIssue": {"key": outward_issue},
        }
        if comment:
            body["comment"] = {"body": comment}
        await self._post(f"{_API}/issueLink", json=body)

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    async def search_projects(
        self, *, query: str | None = None, max_results: int = 50, start_at: int = 0
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"maxResults": max_results, "startAt": start_at}
        if query:
            params["query"] = query
        return await self._get(f"{_API}/project/search", params=params)

    async def get_project(self, project_key: str) -> dict[str, Any]:
        return await self._get(f"{_API}/project/{project_key}")

    async def get_project_components(self, project_key: str) -> list[dict[str, Any]]:
        return await self._get(f"{_API}/project/{project_key}/components")

    async def get_project_versions(self, project_key: str) -> list[dict[str, Any]]:
        return await self._get(f"{_API}/project/{project_key}/versions")

    # ------------------------------------------------------------------
    # Users and permissions
    # ------------------------------------------------------------------

    async def get_current_user(self) -> dict[str, Any]:
        return await self._get(f"{_API}/myself")

    async def get_user(self, account_id: str) -> dict[str, Any]:
        return await self._get(
            f"{_API}/user", params={"accountId": account_id, "expand": "groups,applicationRoles"}
        )

    async def get_user_groups(self, account_id: str) -> list[dict[str, Any]]:
        return await self._get(f"{_API}/user/groups", params={"accountId": account_id})

    async def find_users(self, query: str, *, max_results: int = 50) -> list[dict[str, Any]]:
        return await self._get(
            f"{_API}/user/search", params={"query": query, "maxResults": max_results}
        )

    async def find_assignable_users(
        self,
        *,
        project_key: str | None = None,
        issue_key: str | None = None,
        query: str | None = None,
        max_results: int = 50,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"maxResults": max_results}
        if project_key:
            params["project"] = project_key
        if issue_key:
            params["issueKey"] = issue_key
        if query:
            params["query"] = query
        return await self._get(f"{_API}/user/assignable/search", params=params)

    async def get_my_permissions(
        self, permissions: Sequence[str], project_key: str | None = None
    ) -> dict[str, Any]:
        """Return the ``permissions`` map of ``/mypermissions`` for the given keys."""
        params: dict[str, Any] = {"permissions": ",".join(permissions)}
        if project_key:
            params["projectKey"] = project_key
        data = await self._get(f"{_API}/mypermissions", params=params)
        return dict(data.get("permissions", {}))

    # ------------------------------------------------------------------
    # Boards and sprints (agile API)
    # ------------------------------------------------------------------

    async def get_all_boards(
        self,
        *,
        project_key: str | None = None,
        board_type: str | None = None,
        name: str | None = None,
        max_results: int = 50,
        start_at: int = 0,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"maxResults": max_results, "startAt": start_at}
        if project_key:
            params["projectKeyOrId"] = project_key
        if board_type:
            params["type"] = board_type
        if name:
            params["name"] = name
        return await self._get(f"{_AGILE}/board", params=params)

    async def get_board(self, board_id: int) -> dict[str, Any]:
        return await self._get(f"{_AGILE}/board/{board_id}")

    async def get_board_configuration(self, board_id: int) -> dict[str, Any]:
        return await self._get(f"{_AGILE}/board/{board_id}/configuration")

    async def get_board_issues(
        self,
        board_id: int,
        *,
        jql: str | None = None,
        max_results: int = 50,
        start_at: int = 0,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"maxResults": max_results, "startAt": start_at}
        if jql:
            params["jql"] = jql
        return await self._get(f"{_AGILE}/board/{board_id}/issue", params=params)

    async def get_sprint(self, sprint_id: int) -> dict[str, Any]:
        return await self._get(f"{_AGILE}/sprint/{sprint_id}")

    async def get_board_sprints(
        self,
        board_id: int,
        *,
        state: str | None = None,
        max_results: int = 50,
        start_at: int = 0,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"maxResults": max_results, "startAt": start_at}
        if state:
            params["state"] = state
        return await self._get(f"{_AGILE}/board/{board_id}/sprint", params=params)

    async def get_sprint_issues(
        self,
        sprint_id: int,
        *,
        jql: str | None = None,
        max_results: int = 50,
        start_at: int = 0,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"maxResults": max_results, "startAt": start_at}
        if jql:
            params["jql"] = jql
        return await self._get(f"{_AGILE}/sprint/{sprint_id}/issue", params=params)

    async def create_sprint(
        self,
        name: str,
        board_id: int,
        *,
        start_date: str | None = None,
        end_date: str | None = None,
        goal: str | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"name": name, "originBoardId": board_id}
        if start_date:
            body["startDate"] = start_date
        if end_date:
            body["endDate"] = end_date
        if goal:
            body["goal"] = goal
        return await self._post(f"{_AGILE}/sprint", json=body)

    async def update_sprint(self, sprint_id: int, **fields: Any) -> dict[str, Any]:
        """Partial sprint update, e.g. ``state="closed"`` to complete it."""
        return await self._post(f"{_AGILE}/sprint/{sprint_id}", json=fields)

    async def move_issues_to_sprint(self, sprint_id: int, issue_keys: Sequence[str]) -> None:
        await self._post(f"{_AGILE}/sprint/{sprint_id}/issue", json={"issues": list(issue_keys)})

    # ------------------------------------------------------------------
    # Attachments
    # ------------------------------------------------------------------

    async def add_attachment(
        self, issue_key: str, file_path: Path, *, filename: str | None = None
    ) -> list[dict[str, Any]]:
        content = file_path.read_bytes()
        return await self._request(
            "POST",
            f"{_API}/issue/{issue_key}/attachments",
            files={"file": (filename or file_path.name, content)},
            headers={"X-Atlassian-Token": "no-check"},
        )

    async def get_attachment(self, attachment_id: str) -> dict[str, Any]:
        return await self._get(f"{_API}/attachment/{attachment_id}")

    async def download_attachment(
        self, attachment_id: str, destination: Path, *, max_bytes: int
    ) -> int:
        """Stream attachment content to *destination*.  Returns bytes written.

        Content is written to a sibling temporary file that replaces
        *destination* only once the download completes.  On failure the
        temporary file is removed and an existing *destination* is untouched.
        """
        assert self._client is not None
        tmp_path = destination.with_name(f".{destination.name}.part")
        written = 0
        try:
            async with self._client.stream(
                "GET", f"{_API}/attachment/content/{attachment_id}"
            ) as resp:
                if resp.is_error:
                    await resp.aread()
                    raise RemoteServiceError(_error_message(resp), resp.status_code)
                with open(tmp_path, "wb") as fh:
                    async for chunk in resp.aiter_bytes(_DOWNLOAD_CHUNK):
                        written += len(chunk)
                        if written > max_bytes:
                            raise SecurityError(
                                f"Attachment exceeds maximum size of {max_bytes} bytes",
                                "FILE_TOO_LARGE",
                            )
                        fh.write(chunk)
        except httpx.HTTPError as exc:
            tmp_path.unlink(missing_ok=True)
            raise RemoteServiceError(f"Jira request failed: {exc}") from exc
        except (RemoteServiceError, SecurityError):
            tmp_path.unlink(missing_ok=True)
            raise
        tmp_path.replace(destination)
        logger.debug("attachment_downloaded", attachment_id=attachment_id, bytes=written)
        return written

    async def delete_attachment(self, attachment_id: str) -> None:
        await self._delete(f"{_API}/attachment/{attachment_id}")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        assert self._client is not None
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise RemoteServiceError(f"Jira request failed: {exc}") from exc
        if resp.is_error:
            raise RemoteServiceError(_error_message(resp), resp.status_code)
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await self._request("GET", path, params=params)

    async def _post(self, path: str, json: dict[str, Any] | None = None) -> Any:
        return await self._request("POST", path, json=json)

    async def _put(self, path: str, json: dict[str, Any] | None = None) -> Any:
        return await self._request("PUT", path, json=json)

    async def _delete(self, path: str) -> None:
        await self._request("DELETE", path)
