"""Field-level change detection between two synced batches."""

from datetime import datetime

from .models import ChangelogEntry, ChangeType, NormalizedIssue

# Compared in this order; resolution is handled separately.
TRACKED_FIELDS = (
    (ChangeType.STATUS, "status"),
    (ChangeType.ASSIGNEE, "assignee"),
    (ChangeType.PRIORITY, "priority"),
    (ChangeType.STORY_POINTS, "story_points"),
)


def _format_value(value: object) -> str | None:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def diff_issues(
    previous: list[NormalizedIssue],
    current: list[NormalizedIssue],
    detected_at: datetime,
) -> list[ChangelogEntry]:
    """Compare two batches and return the detected changes in batch order.

    Issues only present in ``previous`` are not reported, and a resolution is
    only reported when it goes from unset to set.
    """
    previous_by_key = {issue.key: issue for issue in previous}
    entries: list[ChangelogEntry] = []

    for issue in current:
        before = previous_by_key.get(issue.key)

        if before is None:
            entries.append(
                ChangelogEntry(
                    issue_key=issue.key,
                    summary=issue.summary,
                    change_type=ChangeType.CREATED,
                    detected_at=detected_at,
                )
            )
            continue

        for change_type, field in TRACKED_FIELDS:
            old_value = getattr(before, field)
            new_value = getattr(issue, field)
            if old_value != new_value:
                entries.append(
                    ChangelogEntry(
                        issue_key=issue.key,
                        summary=issue.summary,
                        change_type=change_type,
                        old_value=_format_value(old_value),
                        new_value=_format_value(new_value),
                        detected_at=detected_at,
                    )
                )

        if before.resolution is None and issue.resolution is not None:
            entries.append(
                ChangelogEntry(
                    issue_key=issue.key,
                    summary=issue.summary,
                    change_type=ChangeType.RESOLVED,
                    new_value=issue.resolution,
                    detected_at=detected_at,
                )
            )

    return entries
