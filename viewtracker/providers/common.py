"""Shared HTTP handling for metrics providers."""

from typing import Any, Dict, Optional

import requests

from ..errors import (
    BadRequestError,
    BadResponseError,
    InvalidTokenError,
    TransportError,
)
from ..logger import StructuredLogger
from ..retry import should_retry_http_status


def get_json(
    session: requests.Session,
    url: str,
    params: Dict[str, Any],
    timeout: float,
    provider: str,
    logger: StructuredLogger,
    redact: Optional[str] = None,
) -> Any:
    """Issue one GET and return the decoded JSON body.

    Args:
        session: requests session (or compatible object with .get)
        url: Endpoint URL
        params: Query parameters
        timeout: Request timeout in seconds
        provider: Provider name for logging
        logger: Logger receiving request/failure records
        redact: Query parameter whose value must not be logged

    Raises:
        TransportError: Connection failure or timeout (retryable)
        BadResponseError: Non-OK status or undecodable body (retryable)
        BadRequestError: Provider rejected the request (400)
        InvalidTokenError: Provider rejected the credential (401/403)
    """
    safe_params = {k: ("***" if k == redact else v) for k, v in params.items()}
    logger.record_api_call()
    logger.debug(f"{provider} request", url=url, params=safe_params)

    try:
        resp = session.get(url, params=params, timeout=timeout, stream=False)
    except requests.exceptions.Timeout as e:
        logger.warning(f"{provider} request timed out", url=url)
        raise TransportError(f"{provider} request timed out: {e}") from e
    except requests.exceptions.RequestException as e:
        logger.error(f"{provider} request error", url=url, error=str(e))
        raise TransportError(f"{provider} request error: {e}") from e

    status = resp.status_code
    if status != 200:
        body = (resp.text or "")[:500]
        logger.error(f"{provider} bad status", url=url, status=status, body=body)
        if status in (401, 403):
            raise InvalidTokenError(f"{provider} rejected the API token ({status})")
        if not should_retry_http_status(status):
            raise BadRequestError(f"{provider} rejected the request ({status}): {body}")
        raise BadResponseError(f"{provider} request failed ({status})", status_code=status)

    try:
        return resp.json()
    except ValueError as e:
        logger.error(f"{provider} decode failed", url=url, error=str(e))
        raise BadResponseError(f"{provider} returned an undecodable body: {e}", status_code=status) from e
