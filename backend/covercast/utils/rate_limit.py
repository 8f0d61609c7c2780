"""
Rate limiting for context-provider HTTP calls.

Each provider owns one limiter; keys are the provider host so that several
provider instances sharing a limiter also share a quota.
"""

import threading
import time
from collections import defaultdict, deque
from typing import Deque, Dict

from loguru import logger

from covercast.utils.errors import RateLimitError


class RateLimiter:
    """
    Sliding-window rate limiter.
    
    Tracks request timestamps per key and enforces ``requests`` per ``period`` seconds.
    Safe to share between the context collector's worker threads.
    """
    
    def __init__(self, requests: int = 10, period: float = 1, enabled: bool = True):
        """
        Initialize rate limiter.
        
        Args:
            requests: Number of requests allowed per period
            period: Time period in seconds
            enabled: When False every call passes straight through
        """
        self.requests = requests
        self.period = period
        self.enabled = enabled
        self._buckets: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()
    
    def _expire(self, bucket: Deque[float], now: float) -> None:
        while bucket and bucket[0] <= now - self.period:
            bucket.popleft()
    
    def wait_if_needed(self, key: str, max_wait: float = 10.0) -> None:
        """
        Block until a slot for ``key`` frees up, waiting at most ``max_wait`` seconds.
        
        Raises:
            RateLimitError: If no slot frees up within ``max_wait``
        """
        if not self.enabled:
            return
        
        deadline = time.monotonic() + max_wait
        while True:
            with self._lock:
                now = time.monotonic()
                bucket = self._buckets[key]
                self._expire(bucket, now)
                if len(bucket) < self.requests:
                    bucket.append(now)
                    return
                wait_time = self.period - (now - bucket[0])
            
            if now + wait_time > deadline:
                raise RateLimitError(
                    f"Rate limit exceeded for {key}",
                    retry_after=int(wait_time) + 1,
                )
            logger.debug(f"Rate limit: waiting {wait_time:.2f}s for {key}")
            time.sleep(wait_time)
