"""User settings document: schema, defaults and legacy migration."""

import re
import uuid
from typing import Any

from pydantic import BaseModel, Field, field_validator

TIME_PATTERN = re.compile(r"^\d{2}:\d{2}$")

DEFAULT_SYNC_TIMES = ["09:00", "13:00", "18:00"]


def validate_time(value: str) -> str:
    """Check an HH:MM wall-clock time."""
    if not TIME_PATTERN.match(value):
        raise ValueError(f"time must be HH:MM, got {value!r}")
    hour, minute = (int(part) for part in value.split(":"))
    if hour > 23 or minute > 59:
        raise ValueError(f"time out of range: {value!r}")
    return value


class JiraConnection(BaseModel):
    """Where to connect and as whom. The API token lives in the credential store."""

    base_url: str = ""
    email: str = ""


class Collection(BaseModel):
    """Which issues to pull."""

    projects: list[str] = Field(default_factory=list)
    assignees: list[str] = Field(default_factory=list)
    custom_jql: str = ""


class Schedule(BaseModel):
    """Recurring daily trigger times."""

    enabled: bool = True
    times: list[str] = Field(default_factory=lambda: list(DEFAULT_SYNC_TIMES))

    @field_validator("times")
    @classmethod
    def _check_times(cls, times: list[str]) -> list[str]:
        return [validate_time(t) for t in times]


class StorageSettings(BaseModel):
    retention_days: int = Field(default=90, ge=1, le=365)


class Team(BaseModel):
    """A group of assignees with its own notification timetable."""

    id: str
    name: str
    color: str = "#3B82F6"
    assignees: list[str] = Field(default_factory=list)
    notification: Schedule = Field(default_factory=lambda: Schedule(enabled=False, times=[]))


class Settings(BaseModel):
    """The whole settings document."""

    jira: JiraConnection = Field(default_factory=JiraConnection)
    collection: Collection = Field(default_factory=Collection)
    schedule: Schedule = Field(default_factory=Schedule)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    teams: list[Team] = Field(default_factory=list)

    @field_validator("teams")
    @classmethod
    def _unique_team_ids(cls, teams: list[Team]) -> list[Team]:
        ids = [team.id for team in teams]
        if len(ids) != len(set(ids)):
            raise ValueError("team ids must be unique")
        return teams


def default_settings() -> Settings:
    return Settings()


def merge_with_defaults(raw: dict[str, Any]) -> dict[str, Any]:
    """Shallow-merge a raw document over the defaults, one level deep per section."""
    merged = default_settings().model_dump(mode="json")
    for section, value in raw.items():
        if isinstance(value, dict) and isinstance(merged.get(section), dict):
            merged[section] = {**merged[section], **value}
        else:
            merged[section] = value
    return merged


def migrate_to_teams(settings: Settings) -> Settings:
    """Turn pre-team settings into a single default team.

    Older documents only carried ``collection.assignees``. When no team is
    configured yet but assignees exist, those assignees become one team.
    """
    if settings.teams or not settings.collection.assignees:
        return settings

    team = Team(
        id=uuid.uuid4().hex[:8],
        name="Default team",
        assignees=list(settings.collection.assignees),
    )
    return settings.model_copy(update={"teams": [team]})
