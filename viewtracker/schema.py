from typing import Any, Dict, List
from urllib.parse import urlparse

OPTIONAL_STR_FIELDS = ["url", "tiktok_id"]


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def _valid_url(v: str) -> bool:
    try:
        p = urlparse(v)
        return bool(p.scheme in ("http", "https") and p.netloc)
    except ValueError:
        return False


def validate_track_request(data: Dict[str, Any]) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    A request needs a video URL, a TikTok id, or both.
    """
    errors: List[str] = []

    for f in OPTIONAL_STR_FIELDS:
        if f in data and data[f] is not None and not isinstance(data[f], str):
            errors.append(f"Field '{f}' must be a string if provided")

    url = data.get("url")
    tiktok_id = data.get("tiktok_id")
    has_url = _is_non_empty_str(url)
    has_id = _is_non_empty_str(tiktok_id)

    if not has_url and not has_id:
        errors.append("Either url or tiktok_id must be provided")

    if has_url and not _valid_url(url.strip()):
        errors.append("Field 'url' must be a valid absolute http(s) URL")

    if has_id and not tiktok_id.strip().isdigit():
        errors.append("Field 'tiktok_id' must contain digits only")

    return errors
