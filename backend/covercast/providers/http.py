"""
Shared HTTP plumbing for context providers.

Every call goes through the provider's rate limiter, carries a timeout, and
is retried with exponential backoff on 429/5xx/connection failures. Once
retries are exhausted the provider-specific ``ProviderUnavailableError``
subclass is raised so callers can fall back.
"""

from typing import Any, Dict, Optional, Type
from urllib.parse import urlparse

import requests
from loguru import logger
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential, RetryError

from covercast.utils.errors import (
    ProviderUnavailableError,
    RateLimitError,
    TransientProviderError,
)
from covercast.utils.rate_limit import RateLimiter


class ProviderClient:
    """JSON-over-HTTP client with rate limiting, timeout and retry."""
    
    def __init__(
        self,
        base_url: str,
        rate_limiter: RateLimiter,
        timeout: float = 10.0,
        max_retries: int = 3,
        error_class: Type[ProviderUnavailableError] = ProviderUnavailableError,
        session: Optional[requests.Session] = None,
        backoff_multiplier: float = 0.5,
    ):
        self.base_url = base_url.rstrip("/")
        self.host = urlparse(self.base_url).netloc or self.base_url
        self.rate_limiter = rate_limiter
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.error_class = error_class
        self.session = session or requests.Session()
        self.backoff_multiplier = backoff_multiplier
    
    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET ``base_url/path`` and decode the JSON body."""
        url = f"{self.base_url}/{path.lstrip('/')}"
        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.backoff_multiplier, max=30),
            retry=retry_if_exception_type((TransientProviderError, RateLimitError)),
            reraise=False,
        )
        try:
            for attempt in retrying:
                with attempt:
                    return self._get_once(url, params or {})
        except RetryError as e:
            cause = e.last_attempt.exception()
            logger.warning(f"{self.host} unavailable after {self.max_retries} attempts: {cause}")
            raise self.error_class(
                f"{self.host} unavailable: {cause}",
                details={"url": url, "attempts": self.max_retries},
            ) from cause
    
    def _get_once(self, url: str, params: Dict[str, Any]) -> Any:
        self.rate_limiter.wait_if_needed(self.host, max_wait=self.timeout)
        
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except (requests.Timeout, requests.ConnectionError) as e:
            raise TransientProviderError(f"{self.host} request failed: {e}") from e
        
        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            logger.warning(f"{self.host} returned 429, backing off")
            raise RateLimitError(
                f"{self.host} rate limited the request",
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if response.status_code >= 500:
            raise TransientProviderError(f"{self.host} returned {response.status_code}")
        if response.status_code >= 400:
            raise self.error_class(
                f"{self.host} rejected the request with {response.status_code}",
                details={"url": url, "status": response.status_code},
            )
        
        try:
            return response.json()
        except ValueError as e:
            raise self.error_class(f"{self.host} returned a non-JSON body", details={"url": url}) from e
