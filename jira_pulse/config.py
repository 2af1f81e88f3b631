"""Process configuration for the jira-pulse sync service."""

from pathlib import Path

from decouple import config
from pydantic import BaseModel, Field


class JiraFieldConfig(BaseModel):
    """Instance-specific custom field ids."""

    story_points: str = Field(default="customfield_10016", description="Story points custom field id")
    sprint: str = Field(default="customfield_10020", description="Sprint custom field id")


class AppConfig(BaseModel):
    """Main process configuration."""

    data_dir: Path = Field(..., description="Root directory for settings and synced data")
    log_level: str = Field(default="INFO", description="Minimum log level")
    request_timeout_seconds: float = Field(default=30.0, gt=0, description="Per-request timeout")
    max_retries: int = Field(default=3, ge=1, description="Maximum attempts per remote call")
    retry_base_delay_seconds: float = Field(default=1.0, ge=0, description="Base delay for exponential backoff")
    fields: JiraFieldConfig = Field(default_factory=JiraFieldConfig)


def load_config() -> AppConfig:
    """Load configuration from environment variables."""
    return AppConfig(
        data_dir=Path(config("JIRA_PULSE_DATA_DIR", default=str(Path.home() / ".jira-pulse"))).expanduser(),
        log_level=config("JIRA_PULSE_LOG_LEVEL", default="INFO"),
        request_timeout_seconds=config("JIRA_REQUEST_TIMEOUT", default=30.0, cast=float),
        max_retries=config("JIRA_MAX_RETRIES", default=3, cast=int),
        retry_base_delay_seconds=config("JIRA_RETRY_BASE_DELAY", default=1.0, cast=float),
        fields=JiraFieldConfig(
            story_points=config("JIRA_STORY_POINTS_FIELD", default="customfield_10016"),
            sprint=config("JIRA_SPRINT_FIELD", default="customfield_10020"),
        ),
    )
