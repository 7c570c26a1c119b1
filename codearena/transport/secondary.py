# secondary transport: raw httpcore connection pool
from typing import Optional
from urllib.parse import urljoin

import httpcore
import structlog

from .types import NETWORK_MESSAGE, REASON_NETWORK, FetchResult, LazyBody, RequestDescriptor

log = structlog.get_logger(__name__)


class HttpcoreTransport:
    """Lower-level fallback below httpx. Never raises: failures resolve to status 0."""

    def __init__(self, origin: Optional[str] = None, pool: Optional[httpcore.AsyncConnectionPool] = None):
        self.origin = origin
        self._owns_pool = pool is None
        self._pool = pool or httpcore.AsyncConnectionPool()

    def _resolve(self, url: str) -> str:
        if url.startswith("http://") or url.startswith("https://"):
            return url
        if not self.origin:
            raise ValueError(f"Cannot resolve relative URL without an origin: {url}")
        return urljoin(self.origin.rstrip("/") + "/", url.lstrip("/"))

    async def send(self, request: RequestDescriptor) -> FetchResult:
        try:
            url = self._resolve(request.url)
            r = await self._pool.request(
                request.method, url, headers=dict(request.headers), content=request.body,
            )
            return FetchResult(status=r.status, body=LazyBody(r.content), url=url)
        except Exception as e:
            log.debug("transport.secondary_failed", url=request.url, error=repr(e))
            return FetchResult.failure(REASON_NETWORK, NETWORK_MESSAGE, url=request.url, error=str(e))

    async def aclose(self) -> None:
        if self._owns_pool:
            await self._pool.aclose()
