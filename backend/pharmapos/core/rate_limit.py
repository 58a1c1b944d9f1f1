"""
Rate Limiting Middleware
Throttles sale capture and credit ledger writes per client and tenant
"""
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Dict, Tuple, Optional
import threading
import logging

from pharmapos.core.config import settings

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class RateLimiter:
    """
    Thread-safe in-memory rate limiter using a sliding window.
    Limits are per process; a shared store is needed across workers.
    """

    def __init__(self, limits: Dict[str, Tuple[int, int]] = None):
        self._requests: Dict[str, list] = defaultdict(list)
        self._lock = threading.Lock()

        # (requests, window seconds), matched by path prefix
        self.limits = limits or {
            '/api/v1/credit/payments': (30, 60),
            '/api/v1/credit/gateway-confirmations': (60, 60),
            '/api/v1/credit/accounts': (30, 60),
            '/api/v1/sales': (60, 60),
            'default': (120, 60),
        }

    def _get_client_ip(self, request: Request) -> str:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip

        if request.client:
            return request.client.host

        return "unknown"

    def _get_rate_limit_key(self, request: Request) -> str:
        """Client IP combined with the tenant the request acts for"""
        ip = self._get_client_ip(request)
        tenant = request.headers.get("X-Tenant-ID", "none")
        return f"{ip}:{tenant}"

    def _limit_for(self, path: str) -> Tuple[int, int]:
        for pattern, limit in self.limits.items():
            if pattern != 'default' and path.startswith(pattern):
                return limit
        return self.limits['default']

    def _cleanup_old_requests(self, key: str, window_seconds: int):
        cutoff = _now() - timedelta(seconds=window_seconds)
        self._requests[key] = [
            timestamp for timestamp in self._requests[key]
            if timestamp > cutoff
        ]

    def is_allowed(self, request: Request) -> Tuple[bool, Optional[Dict]]:
        """
        Check if the request is allowed under rate limiting rules.

        Returns:
            Tuple of (is_allowed, rate_limit_info)
        """
        # Reads are never throttled
        if request.method in ['GET', 'HEAD', 'OPTIONS']:
            return True, None

        path = request.url.path
        limit, window = self._limit_for(path)
        key = f"{path}:{self._get_rate_limit_key(request)}"

        with self._lock:
            self._cleanup_old_requests(key, window)
            current_count = len(self._requests[key])

            if current_count >= limit:
                oldest_request = min(self._requests[key])
                retry_after = int((oldest_request + timedelta(seconds=window) - _now()).total_seconds())
                logger.warning(f"Rate limit exceeded for {key}: {current_count}/{limit} requests")
                return False, {
                    'limit': limit,
                    'remaining': 0,
                    'reset': retry_after,
                    'retry_after': max(1, retry_after)
                }

            self._requests[key].append(_now())
            return True, {
                'limit': limit,
                'remaining': limit - current_count - 1,
                'reset': window
            }

    def reset(self):
        with self._lock:
            self._requests.clear()


class RateLimitMiddleware(BaseHTTPMiddleware):
    """FastAPI middleware for rate limiting"""

    def __init__(self, app, rate_limiter: RateLimiter = None, enabled: bool = None):
        super().__init__(app)
        self.rate_limiter = rate_limiter or RateLimiter()
        self.enabled = settings.RATE_LIMIT_ENABLED if enabled is None else enabled

    async def dispatch(self, request: Request, call_next):
        if not self.enabled or not request.url.path.startswith('/api/'):
            return await call_next(request)

        is_allowed, rate_info = self.rate_limiter.is_allowed(request)

        if not is_allowed:
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    'detail': 'Too many requests. Please try again later.',
                    'code': 'RATE_LIMITED',
                    'retry_after': rate_info['retry_after']
                },
                headers={
                    'Retry-After': str(rate_info['retry_after']),
                    'X-RateLimit-Limit': str(rate_info['limit']),
                    'X-RateLimit-Remaining': '0',
                    'X-RateLimit-Reset': str(rate_info['reset'])
                }
            )

        response = await call_next(request)

        if rate_info:
            response.headers['X-RateLimit-Limit'] = str(rate_info['limit'])
            response.headers['X-RateLimit-Remaining'] = str(rate_info['remaining'])
            response.headers['X-RateLimit-Reset'] = str(rate_info['reset'])

        return response
