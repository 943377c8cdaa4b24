"""
Unit tests for NotificationPresenter.

Tests unread counting, relative timestamps and navigation targets.
"""

from datetime import datetime, timedelta, timezone

import pytest

from taskbell.models import NotificationKind, Route
from taskbell.presenter import (
    DASHBOARD_ROUTE,
    ENGLISH_LABELS,
    INDONESIAN_LABELS,
    NotificationPresenter,
    labels_for,
)


NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def presenter(store):
    return NotificationPresenter(store, clock=lambda: NOW, tz=timezone.utc)


class TestListing:
    """Tests for records() and unread_count()."""

    def test_unread_count(self, store, presenter, make_record):
        store.append(make_record("a"))
        store.append(make_record("b", read=True))
        store.append(make_record("c"))

        assert presenter.unread_count() == 2

    def test_unread_count_follows_store(self, store, presenter, make_record):
        store.append(make_record("a"))
        assert presenter.unread_count() == 1

        store.mark_read("a")
        assert presenter.unread_count() == 0

    def test_records_newest_first(self, store, presenter, make_record):
        store.append(make_record("a"))
        store.append(make_record("b"))

        assert [r.id for r in presenter.records()] == ["b", "a"]

    def test_records_unread_only(self, store, presenter, make_record):
        store.append(make_record("a"))
        store.append(make_record("b"))
        store.mark_read("b")

        assert [r.id for r in presenter.records(unread_only=True)] == ["a"]

    def test_empty_store(self, presenter):
        assert presenter.records() == []
        assert presenter.unread_count() == 0

    def test_summary(self, store, presenter, make_record):
        store.append(make_record("a"))
        store.append(make_record("b", title="Follower Baru!"))
        store.mark_read("a")

        assert presenter.summary() == {
            "total": 2,
            "unread": 1,
            "latest_id": "b",
            "latest_title": "Follower Baru!",
        }

    def test_summary_empty(self, presenter):
        assert presenter.summary()["latest_id"] is None


class TestRelativeTime:
    """Tests for relative_time() buckets."""

    @pytest.mark.parametrize(
        "age,expected",
        [
            (timedelta(seconds=0), "just now"),
            (timedelta(seconds=59), "just now"),
            (timedelta(minutes=1), "1 minute ago"),
            (timedelta(minutes=5, seconds=30), "5 minutes ago"),
            (timedelta(minutes=59), "59 minutes ago"),
            (timedelta(hours=1), "1 hour ago"),
            (timedelta(hours=23, minutes=59), "23 hours ago"),
            (timedelta(days=1), "1 day ago"),
            (timedelta(days=6, hours=23), "6 days ago"),
        ],
    )
    def test_buckets(self, presenter, make_record, age, expected):
        record = make_record(created_at=NOW - age)

        assert presenter.relative_time(record) == expected

    def test_older_than_a_week_shows_date(self, presenter, make_record):
        record = make_record(created_at=datetime(2026, 10, 1, 9, 0, tzinfo=timezone.utc))

        assert presenter.relative_time(record) == "1 Oct 2026"

    def test_future_timestamp_is_just_now(self, presenter, make_record):
        record = make_record(created_at=NOW + timedelta(minutes=10))

        assert presenter.relative_time(record) == "just now"

    def test_date_uses_configured_timezone(self, store, make_record):
        jakarta = timezone(timedelta(hours=7))
        presenter = NotificationPresenter(store, clock=lambda: NOW, tz=jakarta)
        record = make_record(created_at=datetime(2026, 9, 30, 20, 0, tzinfo=timezone.utc))

        assert presenter.relative_time(record) == "1 Oct 2026"


class TestTimeLabels:
    """Tests for the relative time wording."""

    @pytest.fixture
    def indonesian(self, store):
        return NotificationPresenter(
            store, clock=lambda: NOW, tz=timezone.utc, labels=INDONESIAN_LABELS
        )

    @pytest.mark.parametrize(
        "age,expected",
        [
            (timedelta(seconds=30), "Baru saja"),
            (timedelta(minutes=1), "1 menit lalu"),
            (timedelta(minutes=12), "12 menit lalu"),
            (timedelta(hours=3), "3 jam lalu"),
            (timedelta(days=2), "2 hari lalu"),
        ],
    )
    def test_indonesian_buckets(self, indonesian, make_record, age, expected):
        record = make_record(created_at=NOW - age)

        assert indonesian.relative_time(record) == expected

    def test_indonesian_keeps_absolute_date(self, indonesian, make_record):
        record = make_record(created_at=datetime(2026, 10, 1, 9, 0, tzinfo=timezone.utc))

        assert indonesian.relative_time(record) == "1 Oct 2026"

    def test_labels_for_language(self):
        assert labels_for("id") is INDONESIAN_LABELS
        assert labels_for("en") is ENGLISH_LABELS
        assert labels_for("fr") is ENGLISH_LABELS


class TestRouteFor:
    """Tests for route_for()."""

    def test_followed_routes_to_profile(self, presenter, make_record):
        record = make_record(
            kind=NotificationKind.USER_FOLLOWED,
            related_task_id=None,
            related_username="siti",
        )

        route = presenter.route_for(record)

        assert route == Route("profile", "/profile/siti", {"username": "siti"})

    def test_task_routes_to_detail(self, presenter, make_record):
        route = presenter.route_for(make_record(related_task_id=7))

        assert route.view == "task"
        assert route.path == "/dashboard/7"
        assert route.params == {"task_id": 7}

    def test_submitted_task_routes_to_detail(self, presenter, make_record):
        record = make_record(kind=NotificationKind.TASK_SUBMITTED, related_task_id=9)

        assert presenter.route_for(record).path == "/dashboard/9"

    def test_no_target_routes_to_dashboard(self, presenter, make_record):
        record = make_record(kind=NotificationKind.GENERIC, related_task_id=None)

        assert presenter.route_for(record) == DASHBOARD_ROUTE
        assert DASHBOARD_ROUTE.path == "/dashboard"

    def test_followed_without_username_falls_back(self, presenter, make_record):
        record = make_record(kind=NotificationKind.USER_FOLLOWED, related_task_id=None)

        assert presenter.route_for(record) == DASHBOARD_ROUTE

    def test_route_does_not_mark_read(self, store, presenter, make_record):
        store.append(make_record("a"))

        presenter.route_for(store.get("a"))

        assert store.get("a").read is False
