"""
Shared HTTP plumbing for provider adapters.

Every request passes the family rate gate first, uses a per-call timeout,
and turns network errors and non-success statuses into
`ProviderUnavailableError` so adapters can handle them at one boundary.
"""

import json
import logging
import time
from typing import Any, Optional

import requests

from ..base import RateLimiter
from ..throttling import NoOpRateLimiter
from ...utils.errors import ProviderUnavailableError

logger = logging.getLogger(__name__)


class HttpProvider:
    """Base for adapters that talk JSON over HTTP."""

    name: str = "http"

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = 25.0,
        rate_limiter: Optional[RateLimiter] = None,
        max_retries: int = 1,
        retry_delay_s: float = 1.0,
    ):
        """
        Args:
            session: HTTP session (a fresh requests.Session by default)
            timeout: Per-request timeout in seconds
            rate_limiter: Gate shared by the provider family
            max_retries: Attempts per request before giving up
            retry_delay_s: Base delay for exponential backoff between attempts
        """
        self.session = session or requests.Session()
        self.timeout = timeout
        self.rate_limiter = rate_limiter or NoOpRateLimiter()
        self.max_retries = max(1, max_retries)
        self.retry_delay_s = retry_delay_s

    def _get_json(self, url: str, params: Optional[dict[str, Any]] = None, headers: Optional[dict[str, str]] = None) -> Any:
        return self._request("GET", url, params=params, headers=headers)

    def _post_json(self, url: str, data: Optional[dict[str, Any]] = None, headers: Optional[dict[str, str]] = None) -> Any:
        return self._request("POST", url, data=data, headers=headers)

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        last_error: Optional[ProviderUnavailableError] = None

        for attempt in range(self.max_retries):
            self.rate_limiter.wait()
            try:
                response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            except requests.RequestException as e:
                last_error = ProviderUnavailableError(endpoint=url, reason=str(e)[:200])
            else:
                logger.debug(f"{self.name} {method} {url} -> {response.status_code}")
                if response.ok:
                    try:
                        return response.json()
                    except ValueError as e:
                        last_error = ProviderUnavailableError(
                            endpoint=url,
                            http_status=response.status_code,
                            body_snippet=(response.text or "")[:200],
                            reason=f"invalid JSON: {e}",
                        )
                else:
                    last_error = ProviderUnavailableError(
                        endpoint=url,
                        http_status=response.status_code,
                        body_snippet=(response.text or "")[:200],
                        reason=getattr(response, "reason", "") or "",
                    )

            logger.warning(f"{self.name}: attempt {attempt+1}/{self.max_retries} failed: {last_error}")
            if attempt < self.max_retries - 1:
                time.sleep(self.retry_delay_s * (2 ** attempt))  # exponential backoff

        assert last_error is not None
        raise last_error


def params_json(params: dict[str, Any], secret_keys: tuple[str, ...] = ("key",)) -> str:
    """Request parameters for error records, with secrets masked."""
    shown = {k: ("***" if k in secret_keys else v) for k, v in params.items()}
    return json.dumps(shown, ensure_ascii=False)[:500]
