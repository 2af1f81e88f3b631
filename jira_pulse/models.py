"""Data models for the jira-pulse sync service."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator

HISTORY_LIMIT = 100
CHANGELOG_LIMIT = 500


class StatusCategory(str, Enum):
    """Jira status category key."""

    NEW = "new"
    INDETERMINATE = "indeterminate"
    DONE = "done"


class LinkDirection(str, Enum):
    """Which side of an issue link the normalized issue sits on."""

    INWARD = "inward"
    OUTWARD = "outward"


class ChangeType(str, Enum):
    """Kind of field change detected between two syncs."""

    CREATED = "created"
    STATUS = "status"
    ASSIGNEE = "assignee"
    PRIORITY = "priority"
    STORY_POINTS = "storyPoints"
    RESOLVED = "resolved"


class SyncTrigger(str, Enum):
    """What started a sync run."""

    SCHEDULED = "scheduled"
    MANUAL = "manual"


class TimeTracking(BaseModel):
    """Time tracking estimates as Jira renders them (e.g. "3d 4h")."""

    original_estimate: str | None = None
    remaining_estimate: str | None = None
    time_spent: str | None = None


class IssueLink(BaseModel):
    """One link from a normalized issue to another issue."""

    type: str
    direction: LinkDirection
    linked_issue_key: str


class NormalizedIssue(BaseModel):
    """Flat, canonical representation of one Jira issue."""

    key: str
    summary: str
    description: str | None = None
    status: str
    status_category: StatusCategory = StatusCategory.NEW
    assignee: str | None = None
    reporter: str | None = None
    priority: str | None = None
    issue_type: str
    story_points: float | None = None
    sprint: str | None = None
    start_date: str | None = None
    labels: list[str] = Field(default_factory=list)
    components: list[str] = Field(default_factory=list)
    created: str
    updated: str
    due_date: str | None = None
    resolution: str | None = None
    time_tracking: TimeTracking | None = None
    parent: str | None = None
    subtasks: list[str] = Field(default_factory=list)
    issue_links: list[IssueLink] = Field(default_factory=list)


class SyncSource(BaseModel):
    """Where a batch was pulled from."""

    base_url: str
    projects: list[str] = Field(default_factory=list)


class StoredData(BaseModel):
    """One complete synced batch."""

    synced_at: datetime
    source: SyncSource
    issues: list[NormalizedIssue] = Field(default_factory=list)
    total_count: int

    @model_validator(mode="after")
    def _check_count(self) -> "StoredData":
        if self.total_count != len(self.issues):
            raise ValueError(f"total_count {self.total_count} does not match {len(self.issues)} issues")
        return self


class SyncHistoryEntry(BaseModel):
    """Record of one sync run."""

    timestamp: datetime
    type: SyncTrigger
    issue_count: int = 0
    duration_ms: int = 0
    success: bool
    error: str | None = None


class MetaData(BaseModel):
    """Run history document."""

    last_sync: datetime | None = None
    sync_history: list[SyncHistoryEntry] = Field(default_factory=list)


class ChangelogEntry(BaseModel):
    """One detected field change."""

    issue_key: str
    summary: str
    change_type: ChangeType
    old_value: str | None = None
    new_value: str | None = None
    detected_at: datetime


class ChangelogData(BaseModel):
    """Changelog document, newest entries first."""

    synced_at: datetime | None = None
    entries: list[ChangelogEntry] = Field(default_factory=list)


class LabelNote(BaseModel):
    """Free-form note attached to a label."""

    label: str
    description: str
    updated_at: datetime


class PlanningDocument(BaseModel):
    """Team planning document; structure is owned by the UI layer."""

    model_config = {"extra": "allow"}

    updated_at: datetime | None = None


class ReportInfo(BaseModel):
    """Listing entry for a stored report."""

    filename: str
    size: int
    modified_at: datetime


class JiraProject(BaseModel):
    """Project as returned by the project listing."""

    key: str
    name: str
    id: str | None = None


class SearchPage(BaseModel):
    """One page of raw search results."""

    issues: list[dict[str, Any]] = Field(default_factory=list)
    total: int = 0
    max_results: int = 0


class ConnectionCheck(BaseModel):
    """Outcome of an identity probe."""

    success: bool
    display_name: str | None = None
    error: str | None = None


class SyncProgress(BaseModel):
    """Progress report emitted while fetching."""

    current: int
    total: int
    percentage: int

    @classmethod
    def of(cls, current: int, total: int) -> "SyncProgress":
        percentage = round(current / total * 100) if total > 0 else 0
        return cls(current=current, total=total, percentage=percentage)


class SyncResult(BaseModel):
    """Result of a sync run."""

    success: bool
    issue_count: int = 0
    duration_ms: int = 0
    error: str | None = None


class SyncStatus(BaseModel):
    """Cheap snapshot of the orchestrator state."""

    is_running: bool
    last_sync: datetime | None = None
    last_result: SyncHistoryEntry | None = None
