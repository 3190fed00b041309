import re
from typing import Optional
from urllib.parse import urlparse

VIDEO_ID_RE = re.compile(r"/video/(\d+)")


def canonical_url(url: str) -> str:
    parsed = urlparse(url.strip())
    path = parsed.path.rstrip("/")
    # Drop query and fragment to avoid share-link tracking params
    return f"{parsed.scheme}://{parsed.netloc}{path}" if parsed.scheme and parsed.netloc else path


def extract_video_id(url: str) -> Optional[str]:
    """Pull the numeric video id out of a TikTok video URL."""
    match = VIDEO_ID_RE.search(urlparse(url.strip()).path)
    return match.group(1) if match else None
