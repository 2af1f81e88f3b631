"""Normalization of raw JIRA search results into flat issue records."""

from collections.abc import Iterable
from typing import Any

import structlog

from .adf import adf_to_markdown
from .config import JiraFieldConfig
from .models import IssueLink, LinkDirection, NormalizedIssue, StatusCategory, TimeTracking

logger = structlog.get_logger()


class DescriptionCache:
    """Memoized ADF conversions keyed by (issue key, updated timestamp)."""

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], str | None] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: tuple[str, str]) -> bool:
        return key in self._entries

    def get_or_convert(self, issue_key: str, updated: str, document: Any) -> str | None:
        cache_key = (issue_key, updated)
        if cache_key not in self._entries:
            self._entries[cache_key] = adf_to_markdown(document)
        return self._entries[cache_key]

    def prune(self, active_keys: Iterable[tuple[str, str]]) -> int:
        """Keep only the (issue key, updated) pairs in ``active_keys``. Returns how many were dropped."""
        keep = set(active_keys)
        stale = [cache_key for cache_key in self._entries if cache_key not in keep]
        for cache_key in stale:
            del self._entries[cache_key]
        return len(stale)


def _name(value: Any, attr: str = "name") -> str | None:
    if isinstance(value, dict):
        return value.get(attr)
    return None


def _select_sprint(sprints: Any) -> dict[str, Any] | None:
    """Prefer the active sprint, else the first one listed."""
    if not isinstance(sprints, list) or not sprints:
        return None
    sprints = [s for s in sprints if isinstance(s, dict)]
    for sprint in sprints:
        if sprint.get("state") == "active":
            return sprint
    return sprints[0] if sprints else None


def _status_category(status: dict[str, Any]) -> StatusCategory:
    key = _name(status.get("statusCategory"), "key")
    try:
        return StatusCategory(key)
    except ValueError:
        return StatusCategory.NEW


def _parse_links(raw_links: Any) -> list[IssueLink]:
    links: list[IssueLink] = []
    for link in raw_links or []:
        link_type = _name(link.get("type")) or ""
        if link.get("outwardIssue"):
            direction = LinkDirection.OUTWARD
            linked = link["outwardIssue"].get("key")
        else:
            direction = LinkDirection.INWARD
            linked = (link.get("inwardIssue") or {}).get("key")

        if not linked:
            continue
        links.append(IssueLink(type=link_type, direction=direction, linked_issue_key=linked))
    return links


def _story_points(value: Any) -> float | None:
    # 0 is a real estimate; only missing or non-numeric values become None.
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    return value


def _parse_time_tracking(raw: Any) -> TimeTracking | None:
    if not isinstance(raw, dict) or not raw:
        return None
    return TimeTracking(
        original_estimate=raw.get("originalEstimate"),
        remaining_estimate=raw.get("remainingEstimate"),
        time_spent=raw.get("timeSpent"),
    )


class IssueNormalizer:
    """Maps raw JIRA issues to NormalizedIssue, owning the description cache."""

    def __init__(self, fields: JiraFieldConfig | None = None) -> None:
        self.fields = fields or JiraFieldConfig()
        self.cache = DescriptionCache()

    def normalize(self, issue_data: dict[str, Any]) -> NormalizedIssue:
        """Parse one raw issue into the flat model."""
        key = issue_data["key"]
        fields = issue_data.get("fields") or {}
        status = fields.get("status") or {}
        updated = fields.get("updated", "")

        sprint = _select_sprint(fields.get(self.fields.sprint))
        story_points = fields.get(self.fields.story_points)

        return NormalizedIssue(
            key=key,
            summary=fields.get("summary") or "",
            description=self.cache.get_or_convert(key, updated, fields.get("description")),
            status=status.get("name", ""),
            status_category=_status_category(status),
            assignee=_name(fields.get("assignee"), "displayName"),
            reporter=_name(fields.get("reporter"), "displayName"),
            priority=_name(fields.get("priority")),
            issue_type=_name(fields.get("issuetype")) or "",
            story_points=_story_points(story_points),
            sprint=sprint.get("name") if sprint else None,
            start_date=sprint.get("startDate") if sprint else None,
            labels=list(fields.get("labels") or []),
            components=[c["name"] for c in fields.get("components") or [] if c.get("name")],
            created=fields.get("created", ""),
            updated=updated,
            due_date=fields.get("duedate"),
            resolution=_name(fields.get("resolution")),
            time_tracking=_parse_time_tracking(fields.get("timetracking")),
            parent=_name(fields.get("parent"), "key"),
            subtasks=[s["key"] for s in fields.get("subtasks") or [] if s.get("key")],
            issue_links=_parse_links(fields.get("issuelinks")),
        )

    def normalize_batch(self, issues: list[dict[str, Any]]) -> list[NormalizedIssue]:
        """Normalize a whole batch, then prune the cache to that batch's keys."""
        normalized = [self.normalize(issue) for issue in issues]
        dropped = self.cache.prune((issue.key, issue.updated) for issue in normalized)
        logger.debug("Normalized batch", issue_count=len(normalized), cache_size=len(self.cache), pruned=dropped)
        return normalized
