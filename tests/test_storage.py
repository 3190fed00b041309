"""
Tests for storage.py - video store queries and writes.
"""

from datetime import datetime, timedelta

import pytest

from viewtracker.errors import NotFoundError, StaleWriteError
from viewtracker.models import EntityStatus
from viewtracker.storage import VideoStore


class TestListStale:
    def test_only_stale_refreshable_videos(self, store, add_video):
        stale = add_video(age=timedelta(hours=2))
        errored = add_video(status="error", age=timedelta(hours=3))
        add_video(age=timedelta(minutes=5))  # fresh
        add_video(status="stopped", age=timedelta(days=1))

        page = store.list_stale(min_update_age=3600, limit=10)

        assert {v.id for v in page} == {stale, errored}

    def test_oldest_first_ties_by_id(self, store, add_video):
        now = datetime.now()
        same = now - timedelta(hours=2)
        b = add_video(updated_at=same)
        c = add_video(updated_at=same)
        a = add_video(updated_at=now - timedelta(hours=5))

        page = store.list_stale(min_update_age=3600, limit=10, now=now)

        assert [v.id for v in page] == [a, b, c]

    def test_limit_and_cursor(self, store, add_video):
        now = datetime.now()
        stamp = now - timedelta(hours=2)
        ids = [add_video(updated_at=stamp) for _ in range(5)]

        first = store.list_stale(3600, 2, now=now)
        last = first[-1]
        second = store.list_stale(3600, 2, after=(last.updated_at, last.id), now=now)
        last = second[-1]
        third = store.list_stale(3600, 2, after=(last.updated_at, last.id), now=now)

        assert [v.id for v in first + second + third] == ids
        assert len(third) == 1

    def test_reference_time(self, store, add_video):
        """Videos updated after the reference cutoff are not selected."""
        now = datetime.now()
        add_video(updated_at=now - timedelta(minutes=30))

        assert store.list_stale(3600, 10, now=now) == []
        assert len(store.list_stale(3600, 10, now=now + timedelta(hours=1))) == 1

    def test_returns_snapshots(self, store, add_video):
        video_id = add_video(views=10, earnings=0.25)

        (video,) = store.list_stale(3600, 10)

        assert video.id == video_id
        assert video.current_views == 10
        assert video.current_earnings == 0.25
        assert video.status is EntityStatus.ACTIVE


class TestUpdateAggregate:
    def test_moves_views_forward(self, store, add_video):
        video_id = add_video(views=100, earnings=0.01)
        before = store.get(video_id).updated_at

        store.update_aggregate(video_id, 200, 0.02)

        video = store.get(video_id)
        assert video.current_views == 200
        assert video.current_earnings == 0.02
        assert video.updated_at > before

    @pytest.mark.parametrize("views", [100, 50])
    def test_rejects_non_increasing_views(self, store, add_video, views):
        video_id = add_video(views=100, earnings=0.01)

        with pytest.raises(StaleWriteError):
            store.update_aggregate(video_id, views, 0.5)

        video = store.get(video_id)
        assert video.current_views == 100
        assert video.current_earnings == 0.01

    def test_unknown_video(self, store):
        with pytest.raises(NotFoundError):
            store.update_aggregate(999, 10, 0.1)

    def test_clears_error_state(self, store, add_video):
        video_id = add_video(views=1)
        store.mark_error(video_id, "TransportError: reset")

        store.update_aggregate(video_id, 2, 0.0)

        video = store.get(video_id)
        assert video.status is EntityStatus.ACTIVE
        assert video.last_error is None
        assert video.last_error_at is None

    def test_keeps_stopped_status(self, store, add_video):
        video_id = add_video(views=1, status="stopped")

        store.update_aggregate(video_id, 2, 0.0)

        assert store.get(video_id).status is EntityStatus.STOPPED


class TestErrorsAndStop:
    def test_mark_error(self, store, add_video):
        video_id = add_video(age=timedelta(hours=2))

        assert store.mark_error(video_id, "RetryError: gave up") is True

        video = store.get(video_id)
        assert video.status is EntityStatus.ERROR
        assert video.last_error == "RetryError: gave up"
        assert video.last_error_at is not None
        # Failed videos wait out the normal staleness window
        assert store.list_stale(3600, 10) == []

    def test_mark_error_leaves_stopped_alone(self, store, add_video):
        video_id = add_video(status="stopped")

        assert store.mark_error(video_id, "boom") is False
        assert store.get(video_id).status is EntityStatus.STOPPED

    def test_mark_stopped(self, store, add_video):
        video_id = add_video()

        store.mark_stopped(video_id)

        assert store.get(video_id).status is EntityStatus.STOPPED
        assert store.list_stale(0, 10, now=datetime.now() + timedelta(days=1)) == []

    def test_mark_stopped_unknown(self, store):
        with pytest.raises(NotFoundError):
            store.mark_stopped(12345)


class TestIntakeAndHistory:
    def test_create_writes_first_history_point(self, store):
        video = store.create("7300000000000000001", "https://www.tiktok.com/@a/video/7300000000000000001", 1000, 0.1)

        assert video.status is EntityStatus.ACTIVE
        assert store.find_by_external_id("7300000000000000001").id == video.id
        points = store.history(video.id)
        assert [(p.views, p.earnings) for p in points] == [(1000, 0.1)]

    def test_create_duplicate_returns_existing(self, store):
        """A second insert of the same id yields the first row and writes nothing."""
        url = "https://www.tiktok.com/@a/video/7300000000000000001"
        first = store.create("7300000000000000001", url, 1000, 0.1)

        second = store.create("7300000000000000001", url, 5000, 0.5)

        assert second.id == first.id
        assert second.current_views == 1000
        assert len(store.history(first.id)) == 1
        assert store.list_all()[1] == 1

    def test_find_missing(self, store):
        assert store.find_by_external_id("nope") is None

    def test_get_missing(self, store):
        with pytest.raises(NotFoundError):
            store.get(1)

    def test_history_range(self, session_factory, add_video):
        clock_values = iter([
            datetime(2024, 1, 1, 10, 0),
            datetime(2024, 1, 1, 11, 0),
            datetime(2024, 1, 1, 12, 0),
        ])
        store = VideoStore(session_factory, clock=lambda: next(clock_values))
        video_id = add_video()
        store.append_history(video_id, 10, 0.001)
        store.append_history(video_id, 20, 0.002)
        store.append_history(video_id, 30, 0.003)

        everything = store.history(video_id)
        window = store.history(video_id, start=datetime(2024, 1, 1, 11, 0), end=datetime(2024, 1, 1, 12, 0))

        assert [p.views for p in everything] == [10, 20, 30]
        assert [p.views for p in window] == [20]

    def test_list_all(self, store, add_video):
        first = add_video()
        second = add_video(status="stopped")
        third = add_video()

        videos, total = store.list_all()
        assert total == 3
        assert [v.id for v in videos] == [third, second, first]

        stopped, total = store.list_all(status="stopped")
        assert total == 1
        assert [v.id for v in stopped] == [second]

        page, total = store.list_all(limit=1, offset=1)
        assert total == 3
        assert [v.id for v in page] == [second]
