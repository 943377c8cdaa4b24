"""
Read-side projections over the notification store.

Nothing here mutates the store or caches its content: every call reads
the store's current records.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import Any, Callable, Dict, List, Optional, Tuple

from taskbell.models import NotificationKind, NotificationRecord, Route, utcnow
from taskbell.store import NotificationStore


DASHBOARD_ROUTE = Route(view="dashboard", path="/dashboard")


@dataclass(frozen=True)
class TimeLabels:
    """
    Wording of relative times.

    Unit templates take ``{n}``; a ``(singular, plural)`` pair picks the
    form by count.
    """

    just_now: str
    minutes: Tuple[str, str]
    hours: Tuple[str, str]
    days: Tuple[str, str]

    def format(self, forms: Tuple[str, str], count: int) -> str:
        return forms[0 if count == 1 else 1].format(n=count)


ENGLISH_LABELS = TimeLabels(
    just_now="just now",
    minutes=("{n} minute ago", "{n} minutes ago"),
    hours=("{n} hour ago", "{n} hours ago"),
    days=("{n} day ago", "{n} days ago"),
)

INDONESIAN_LABELS = TimeLabels(
    just_now="Baru saja",
    minutes=("{n} menit lalu", "{n} menit lalu"),
    hours=("{n} jam lalu", "{n} jam lalu"),
    days=("{n} hari lalu", "{n} hari lalu"),
)

LABELS_BY_LANGUAGE: Dict[str, TimeLabels] = {
    "en": ENGLISH_LABELS,
    "id": INDONESIAN_LABELS,
}


def labels_for(language: str) -> TimeLabels:
    """Label table for a language code, English when unknown."""
    return LABELS_BY_LANGUAGE.get(language, ENGLISH_LABELS)


class NotificationPresenter:
    """
    Derives badges, timestamps and navigation targets from the store.

    Args:
        store: Store to read from
        clock: Returns the current time (timezone-aware)
        tz: Timezone for absolute dates (None uses the local timezone)
        labels: Wording of relative times
    """

    def __init__(
        self,
        store: NotificationStore,
        clock: Callable[[], datetime] = utcnow,
        tz: Optional[tzinfo] = None,
        labels: TimeLabels = ENGLISH_LABELS,
    ):
        self._store = store
        self._clock = clock
        self._tz = tz
        self._labels = labels

    @property
    def labels(self) -> TimeLabels:
        return self._labels

    def records(self, unread_only: bool = False) -> List[NotificationRecord]:
        records = self._store.records
        if unread_only:
            return [r for r in records if not r.read]
        return records

    def unread_count(self) -> int:
        return sum(1 for r in self._store.records if not r.read)

    def relative_time(self, record: NotificationRecord) -> str:
        """
        Describe the record's age.

        Buckets: just now (<1 min), minutes (<60 min), hours (<24 h) and
        days (<7 days), worded by the label table; older records show the
        date. Timestamps in the future count as just now.
        """
        labels = self._labels
        age = self._clock() - record.created_at
        if age < timedelta(minutes=1):
            return labels.just_now
        if age < timedelta(hours=1):
            return labels.format(labels.minutes, int(age.total_seconds() // 60))
        if age < timedelta(days=1):
            return labels.format(labels.hours, int(age.total_seconds() // 3600))
        if age < timedelta(days=7):
            return labels.format(labels.days, age.days)

        created = record.created_at.astimezone(self._tz)
        return f"{created.day} {created:%b %Y}"

    def route_for(self, record: NotificationRecord) -> Route:
        """Navigation target: follower profile, task detail or the dashboard."""
        if record.kind == NotificationKind.USER_FOLLOWED and record.related_username:
            return Route(
                view="profile",
                path=f"/profile/{record.related_username}",
                params={"username": record.related_username},
            )
        if record.related_task_id is not None:
            return Route(
                view="task",
                path=f"/dashboard/{record.related_task_id}",
                params={"task_id": record.related_task_id},
            )
        return DASHBOARD_ROUTE

    def summary(self) -> Dict[str, Any]:
        """Badge data for status displays."""
        records = self._store.records
        latest = records[0] if records else None
        return {
            "total": len(records),
            "unread": sum(1 for r in records if not r.read),
            "latest_id": latest.id if latest else None,
            "latest_title": latest.title if latest else None,
        }
