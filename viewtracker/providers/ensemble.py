import threading
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import requests

from ..config import ProviderConfig
from ..errors import (
    BadRequestError,
    BadResponseError,
    InvalidTokenError,
    RetryableProviderError,
    TerminalProviderError,
)
from ..logger import StructuredLogger, get_logger
from ..models import FetchResult
from ..retry import RetryError, retry_call
from .common import get_json

POST_INFO_PATH = "tt/post/info"


def parse_post_info(payload: Dict[str, Any]) -> FetchResult:
    """Turn a post-info payload into a FetchResult.

    A payload with no entries is a valid answer: all counts are zero.
    """
    if not isinstance(payload, dict):
        raise ValueError("post info payload must be a JSON object")
    data = payload.get("data") or []
    if not isinstance(data, list):
        raise ValueError(f"post info 'data' must be a list, got {type(data).__name__}")
    if not data:
        return FetchResult()
    if not isinstance(data[0], dict):
        raise ValueError("post info entry must be a JSON object")

    stats = data[0].get("statistics") or {}
    return FetchResult(
        views=int(stats.get("play_count") or 0),
        likes=int(stats.get("digg_count") or 0),
        comments=int(stats.get("comment_count") or 0),
        shares=int(stats.get("share_count") or 0),
    )


class EnsembleClient:
    """TikTok post statistics via the EnsembleData API."""

    name = "ensemble"

    def __init__(
        self,
        config: ProviderConfig,
        session: Optional[requests.Session] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        parsed = urlparse(config.base_url)
        if not (parsed.scheme and parsed.netloc):
            raise ValueError(f"Invalid provider base URL: {config.base_url!r}")
        self.config = config
        self.session = session or requests.Session()
        self.logger = logger or get_logger()
        self.endpoint = config.base_url.rstrip("/") + "/" + POST_INFO_PATH

    def fetch(self, video_url: str, cancel: Optional[threading.Event] = None) -> FetchResult:
        """
        Fetch current stats for one video, retrying transient failures.

        Args:
            video_url: Public TikTok video URL
            cancel: Optional stop event interrupting the retry wait

        Raises:
            TerminalProviderError: Bad request or bad credential, never retried
            RetryError: All attempts failed; __cause__ is the last failure
            Cancelled: Stop event set before or between attempts
        """
        self.logger.record_fetch_attempt()

        def on_retry(attempt: int, error: Exception, delay: float):
            self.logger.warning(
                f"{self.name}: attempt {attempt}/{self.config.max_retries} failed",
                url=video_url,
                error=str(error),
                retry_in=delay,
            )

        def on_success(attempt: int):
            if attempt > 1:
                self.logger.info(f"{self.name}: success on attempt {attempt}", url=video_url)

        try:
            result = retry_call(
                lambda: self._fetch_once(video_url),
                max_attempts=self.config.max_retries,
                delay=self.config.retry_timeout,
                terminal=(TerminalProviderError,),
                exceptions=(RetryableProviderError,),
                cancel=cancel,
                on_retry=on_retry,
                on_success=on_success,
            )
        except TerminalProviderError as e:
            self.logger.record_fetch_failure(type(e).__name__)
            raise
        except RetryError as e:
            self.logger.record_fetch_failure(type(e.last_error).__name__)
            raise

        self.logger.record_fetch_success()
        return result

    def _fetch_once(self, video_url: str) -> FetchResult:
        if not video_url or not video_url.strip():
            raise BadRequestError("video URL is empty")
        if not self.config.token:
            raise InvalidTokenError("provider token is not configured")

        params = {
            "url": video_url,
            "token": self.config.token,
            "new_version": "false",
            "download_video": "false",
        }
        payload = get_json(
            self.session,
            self.endpoint,
            params,
            timeout=self.config.request_timeout,
            provider=self.name,
            logger=self.logger,
            redact="token",
        )
        try:
            return parse_post_info(payload)
        except (ValueError, TypeError, AttributeError, LookupError) as e:
            raise BadResponseError(f"{self.name} payload has unexpected shape: {e}") from e
