"""
Tracking intake and read operations.

New videos get their first stats snapshot from the provider at intake;
videos already tracked are returned from the store without calling it.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from .earnings import EarningsPolicy
from .errors import NotFoundError, ValidationError
from .logger import StructuredLogger, get_logger
from .normalize import canonical_url, extract_video_id
from .schema import validate_track_request
from .storage import VideoStore


class TrackingService:
    def __init__(
        self,
        store: VideoStore,
        provider,
        policy: EarningsPolicy,
        logger: Optional[StructuredLogger] = None,
    ):
        self.store = store
        self.provider = provider
        self.policy = policy
        self.logger = logger or get_logger()

    def track(self, url: Optional[str] = None, tiktok_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Start tracking a video, or return it if it is already tracked.

        Raises:
            ValidationError: Request has neither a usable URL nor id
            ProviderError / RetryError: Initial fetch failed
        """
        errors = validate_track_request({"url": url, "tiktok_id": tiktok_id})
        if errors:
            raise ValidationError(errors)

        url = canonical_url(url) if url else None
        tiktok_id = (tiktok_id or "").strip() or extract_video_id(url or "")
        if not tiktok_id:
            raise ValidationError(["Could not derive tiktok_id from url; pass it explicitly"])

        existing = self.store.find_by_external_id(tiktok_id)
        if existing is not None:
            self.logger.info("track: video already tracked, not calling provider", tiktok_id=tiktok_id)
            return existing.to_dict()

        if not url:
            raise ValidationError([f"Video {tiktok_id} is not tracked yet; url is required"])

        stats = self.provider.fetch(url)
        earnings = self.policy.total(stats.views)
        video = self.store.create(tiktok_id, url, stats.views, earnings)
        self.logger.info("track: new video tracked", video_id=video.id, tiktok_id=tiktok_id, views=stats.views)
        return video.to_dict()

    def get(self, tiktok_id: str) -> Dict[str, Any]:
        video = self.store.find_by_external_id(tiktok_id)
        if video is None:
            raise NotFoundError(f"video {tiktok_id} is not tracked")
        return video.to_dict()

    def history(
        self,
        video_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        self.store.get(video_id)  # raises NotFoundError
        points = self.store.history(video_id, start=start, end=end)
        return {
            "video_id": video_id,
            "history_video": [p.to_dict() for p in points],
        }

    def stop(self, video_id: int) -> Dict[str, Any]:
        self.store.mark_stopped(video_id)
        self.logger.info("stop: video will no longer be refreshed", video_id=video_id)
        return self.store.get(video_id).to_dict()
