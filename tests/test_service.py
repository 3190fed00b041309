"""
Tests for the tracking intake service.
"""

from datetime import datetime, timedelta

import pytest

from viewtracker.errors import InvalidTokenError, NotFoundError, ValidationError
from viewtracker.service import TrackingService

VIDEO_ID = "7300000000000000001"
VIDEO_URL = f"https://www.tiktok.com/@creator/video/{VIDEO_ID}"


@pytest.fixture
def service_for(store, policy, quiet_logger):
    def _make(provider):
        return TrackingService(store, provider, policy, logger=quiet_logger)

    return _make


class TestTrack:
    def test_new_video(self, fake_provider, service_for, store):
        provider = fake_provider({VIDEO_URL: 2000})
        service = service_for(provider)

        result = service.track(url=VIDEO_URL + "?is_from_webapp=1")

        assert provider.calls == [VIDEO_URL]
        assert result["tiktok_id"] == VIDEO_ID
        assert result["current_views"] == 2000
        assert result["current_earnings"] == pytest.approx(0.2)
        assert result["currency"] == "USD"
        assert result["status"] == "active"
        assert len(store.history(result["video_id"])) == 1

    def test_already_tracked_skips_provider(self, fake_provider, service_for):
        service_for(fake_provider({VIDEO_URL: 2000})).track(url=VIDEO_URL)
        provider = fake_provider()

        result = service_for(provider).track(tiktok_id=VIDEO_ID)

        assert provider.calls == []
        assert result["current_views"] == 2000

    def test_unknown_id_without_url(self, fake_provider, service_for):
        with pytest.raises(ValidationError) as exc_info:
            service_for(fake_provider()).track(tiktok_id=VIDEO_ID)
        assert "url is required" in str(exc_info.value)

    def test_url_without_video_id(self, fake_provider, service_for):
        with pytest.raises(ValidationError):
            service_for(fake_provider()).track(url="https://www.tiktok.com/@creator")

    def test_invalid_request(self, fake_provider, service_for):
        with pytest.raises(ValidationError) as exc_info:
            service_for(fake_provider()).track()
        assert len(exc_info.value.errors) == 1

    def test_concurrent_intake_of_same_video(self, fake_provider, service_for, store, monkeypatch):
        """Losing an intake race returns the winner's record instead of failing."""
        winner = service_for(fake_provider({VIDEO_URL: 2000})).track(url=VIDEO_URL)
        real_find = store.find_by_external_id
        lookups = []

        def find_missing_first(external_id):
            lookups.append(external_id)
            return None if len(lookups) == 1 else real_find(external_id)

        monkeypatch.setattr(store, "find_by_external_id", find_missing_first)
        provider = fake_provider({VIDEO_URL: 2500})

        result = service_for(provider).track(url=VIDEO_URL)

        assert provider.calls == [VIDEO_URL]
        assert result["video_id"] == winner["video_id"]
        assert result["current_views"] == 2000
        assert len(store.history(winner["video_id"])) == 1

    def test_provider_failure_stores_nothing(self, fake_provider, service_for, store):
        service = service_for(fake_provider({VIDEO_URL: InvalidTokenError("rejected")}))

        with pytest.raises(InvalidTokenError):
            service.track(url=VIDEO_URL)

        assert store.find_by_external_id(VIDEO_ID) is None


class TestReads:
    def test_get(self, fake_provider, service_for):
        service = service_for(fake_provider({VIDEO_URL: 10}))
        service.track(url=VIDEO_URL)

        assert service.get(VIDEO_ID)["current_views"] == 10

    def test_get_unknown(self, fake_provider, service_for):
        with pytest.raises(NotFoundError):
            service_for(fake_provider()).get("42")

    def test_history(self, fake_provider, service_for, store):
        service = service_for(fake_provider({VIDEO_URL: 10}))
        video_id = service.track(url=VIDEO_URL)["video_id"]
        store.update_aggregate(video_id, 20, 0.002)
        store.append_history(video_id, 20, 0.002)

        result = service.history(video_id)

        assert result["video_id"] == video_id
        assert [p["views"] for p in result["history_video"]] == [10, 20]

        future = datetime.now() + timedelta(days=1)
        assert service.history(video_id, start=future)["history_video"] == []

    def test_history_unknown(self, fake_provider, service_for):
        with pytest.raises(NotFoundError):
            service_for(fake_provider()).history(99)

    def test_stop(self, fake_provider, service_for):
        service = service_for(fake_provider({VIDEO_URL: 10}))
        video_id = service.track(url=VIDEO_URL)["video_id"]

        assert service.stop(video_id)["status"] == "stopped"
