"""JIRA API client for pulling issues."""

import re
from collections.abc import Callable
from typing import Any

import requests
import structlog
from requests.auth import HTTPBasicAuth

from .config import JiraFieldConfig
from .models import ConnectionCheck, JiraProject, SearchPage
from .retry import with_retries

logger = structlog.get_logger()

PAGE_SIZE = 100

BASE_FIELDS = [
    "summary",
    "description",
    "status",
    "assignee",
    "reporter",
    "priority",
    "issuetype",
    "created",
    "updated",
    "duedate",
    "labels",
    "components",
    "resolution",
    "timetracking",
    "parent",
    "subtasks",
    "issuelinks",
]

DEFAULT_ORDER = "ORDER BY updated DESC"
ORDER_BY_PATTERN = re.compile(r"\border\s+by\b", re.IGNORECASE)


class JiraAPIError(Exception):
    """Base exception for JIRA API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        """Initialize JIRA API error."""
        super().__init__(message)
        self.status_code = status_code


class NetworkError(JiraAPIError):
    """The request never got an HTTP response."""


class RemoteServiceError(JiraAPIError):
    """JIRA answered with an error status."""


def build_jql(projects: list[str], assignees: list[str], custom_jql: str) -> str:
    """Combine the collection filter into one JQL query with an explicit ordering."""
    parts: list[str] = []

    if projects:
        project_list = ", ".join(f'"{p}"' for p in projects)
        parts.append(f"project IN ({project_list})")

    if assignees:
        assignee_list = ", ".join(f'"{a}"' for a in assignees)
        parts.append(f"assignee IN (currentUser(), {assignee_list})")
    else:
        parts.append("assignee = currentUser()")

    # An ORDER BY inside the parenthesized clause is invalid JQL, so lift it out.
    custom, *order_clause = ORDER_BY_PATTERN.split(custom_jql.strip(), maxsplit=1)
    custom = custom.strip()
    if custom:
        parts.append(f"({custom})")

    jql = " AND ".join(parts)
    order = order_clause[0].strip() if order_clause else ""
    if order:
        return f"{jql} ORDER BY {order}"
    return f"{jql} {DEFAULT_ORDER}"


class JiraClient:
    """Read-only JIRA client with retries, pagination and an identity probe."""

    def __init__(
        self,
        base_url: str,
        email: str,
        api_token: str,
        fields: JiraFieldConfig | None = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
    ) -> None:
        """Initialize JIRA client."""
        if max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {max_retries}")
        self.base_url = base_url.rstrip("/")
        self.fields = fields or JiraFieldConfig()
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.session = requests.Session()
        self.session.auth = HTTPBasicAuth(email, api_token)
        self.session.headers.update(
            {
                "Accept": "application/json",
                "Content-Type": "application/json",
            }
        )

    @property
    def field_allowlist(self) -> list[str]:
        return [*BASE_FIELDS, self.fields.story_points, self.fields.sprint]

    def _send(
        self,
        method: str,
        endpoint: str,
        data: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Make a single HTTP request, mapping failures onto the error taxonomy."""
        url = f"{self.base_url}/rest/api/3/{endpoint.lstrip('/')}"

        try:
            response = self.session.request(
                method=method,
                url=url,
                json=data,
                params=params,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"Request to {url} failed: {e}") from e

        if not response.ok:
            logger.error(
                "JIRA API request failed",
                status_code=response.status_code,
                response_text=response.text[:500],
                url=url,
            )
            raise RemoteServiceError(
                f"JIRA API error: {response.status_code} - {_error_message(response)}",
                response.status_code,
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise RemoteServiceError(
                f"JIRA API returned a non-JSON body ({response.status_code}) from {url}",
                response.status_code,
            ) from e

    def _make_request(
        self,
        method: str,
        endpoint: str,
        data: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Make HTTP request to JIRA API with retries."""
        return with_retries(
            lambda: self._send(method, endpoint, data=data, params=params),
            max_retries=self.max_retries,
            base_delay=self.retry_base_delay,
        )

    def test_connection(self) -> ConnectionCheck:
        """Probe credentials with a single call. Never raises."""
        try:
            data = self._send("GET", "myself")
        except JiraAPIError as e:
            return ConnectionCheck(success=False, error=str(e))

        if not isinstance(data, dict):
            return ConnectionCheck(success=False, error="Unexpected response from JIRA identity endpoint")
        return ConnectionCheck(success=True, display_name=data.get("displayName"))

    def get_projects(self) -> list[JiraProject]:
        """List projects visible to the account."""
        data = self._make_request("GET", "project")
        return [JiraProject(key=p["key"], name=p["name"], id=p.get("id")) for p in data or []]

    def fetch_page(self, jql: str, start_at: int = 0) -> SearchPage:
        """Fetch one page of search results."""
        data = self._make_request(
            "POST",
            "search",
            data={
                "jql": jql,
                "startAt": start_at,
                "maxResults": PAGE_SIZE,
                "fields": self.field_allowlist,
            },
        )

        issues = data.get("issues") or []
        return SearchPage(
            issues=issues,
            total=data.get("total", len(issues)),
            max_results=data.get("maxResults", PAGE_SIZE),
        )

    def fetch_all(
        self,
        jql: str,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch every issue matching ``jql``, page by page."""
        logger.info("Searching JIRA issues", jql=jql)
        issues: list[dict[str, Any]] = []

        while True:
            page = self.fetch_page(jql, start_at=len(issues))
            issues.extend(page.issues)

            logger.debug("Fetched page", fetched=len(issues), total=page.total)
            if on_progress:
                on_progress(len(issues), page.total)

            if len(issues) >= page.total or not page.issues:
                break

        return issues


def _error_message(response: requests.Response) -> str:
    """Pull the most useful message out of a JIRA error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]

    if isinstance(body, dict):
        messages = body.get("errorMessages") or []
        if messages:
            return str(messages[0])
        if body.get("message"):
            return str(body["message"])
    return response.text[:200]
