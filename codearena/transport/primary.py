# primary transport: httpx.AsyncClient
from typing import Optional

import httpx

from .types import FetchResult, LazyBody, RequestDescriptor


class HttpxTransport:
    """Primary transport. Raises on anything that is not an HTTP response.

    Root-relative URLs are resolved against ``origin``; without one httpx
    rejects them, which sends the request down the secondary path.
    The client has no timeout of its own: the fetcher races it instead.
    """

    def __init__(self, origin: Optional[str] = None, client: Optional[httpx.AsyncClient] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.origin = origin
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=origin or "", timeout=None, transport=transport, follow_redirects=True,
        )

    async def send(self, request: RequestDescriptor) -> FetchResult:
        r = await self._client.request(
            request.method, request.url, headers=request.headers, content=request.body,
        )
        return FetchResult(status=r.status_code, body=LazyBody(r.content, encoding=r.encoding), url=str(r.url))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
