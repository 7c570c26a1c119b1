# resilient fetch: timer race, primary -> secondary transport, retry, root-relative fallback
import asyncio
import json as jsonlib
import uuid
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Protocol, Set

import httpx
import structlog

from codearena.config.constants import DEFAULT_TIMEOUT_MS, RETRY_BACKOFF_MS
from codearena.config.env import Cfg
from codearena.session.store import SessionStore
from .primary import HttpxTransport
from .secondary import HttpcoreTransport
from .types import (
    NETWORK_MESSAGE,
    REASON_NETWORK,
    REASON_TIMEOUT,
    TIMEOUT_MESSAGE,
    FetchResult,
    RequestDescriptor,
)

log = structlog.get_logger(__name__)

IDEMPOTENCY_HEADER = "Idempotency-Key"


class Transport(Protocol):
    async def send(self, request: RequestDescriptor) -> FetchResult: ...


def join_url(base: str, path: str) -> tuple[str, Optional[str]]:
    """Return (url, relative_fallback) for a caller path.

    Absolute paths pass through with no fallback. With an empty base the
    path is used as-is and there is nothing to fall back to.
    """
    if path.startswith("http"):
        return path, None
    rel = path if path.startswith("/") else f"/{path}"
    if not base:
        return path, None
    return base.rstrip("/") + rel, rel


class ResilientFetcher:
    """Issues one logical request and always resolves to a FetchResult.

    Every failure (timeout, connectivity, malformed body, 4xx/5xx) is
    encoded in the result; callers never need try/except around a fetch.
    """

    def __init__(self, base_url: str = "", session: Optional[SessionStore] = None, *,
                 origin: Optional[str] = None,
                 primary: Optional[Transport] = None,
                 secondary: Optional[Transport] = None,
                 timeout_ms: int = DEFAULT_TIMEOUT_MS,
                 backoff_ms: int = RETRY_BACKOFF_MS,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.base_url = base_url or ""
        self.session = session or SessionStore()
        self.timeout_ms = timeout_ms
        self.backoff_ms = backoff_ms
        self.primary = primary or HttpxTransport(origin)
        self.secondary = secondary or HttpcoreTransport(origin)
        self._sleep = sleep
        self._orphans: Set[asyncio.Task] = set()

    @classmethod
    def from_cfg(cls, cfg: Cfg, session: SessionStore) -> "ResilientFetcher":
        return cls(cfg.api_base_url, session, origin=cfg.site_origin(),
                   timeout_ms=cfg.request_timeout_ms, backoff_ms=cfg.retry_backoff_ms)

    async def __aenter__(self) -> "ResilientFetcher":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        for t in list(self._orphans):
            t.cancel()
        for transport in (self.primary, self.secondary):
            close = getattr(transport, "aclose", None)
            if close is not None:
                await close()

    @property
    def in_flight_orphans(self) -> int:
        return len(self._orphans)

    # ---- descriptors ----
    def build(self, path: str, method: str = "GET", *,
              params: Optional[Mapping[str, Any]] = None,
              json: Any = None,
              body: Optional[bytes] = None,
              headers: Optional[Mapping[str, str]] = None,
              timeout_ms: Optional[int] = None) -> RequestDescriptor:
        if params:
            query = str(httpx.QueryParams({k: v for k, v in params.items() if v is not None}))
            if query:
                path = f"{path}{'&' if '?' in path else '?'}{query}"
        url, fallback = join_url(self.base_url, path)
        hdrs: Dict[str, str] = dict(headers or {})
        if json is not None:
            body = jsonlib.dumps(json).encode("utf-8")
            if not any(k.lower() == "content-type" for k in hdrs):
                hdrs["Content-Type"] = "application/json"
        method = method.upper()
        if method != "GET" and not any(k.lower() == IDEMPOTENCY_HEADER.lower() for k in hdrs):
            # one key per logical call, reused by every retry and fallback
            hdrs[IDEMPOTENCY_HEADER] = uuid.uuid4().hex
        return RequestDescriptor(
            method=method, url=url, path=path, relative_fallback=fallback,
            headers=hdrs, body=body, timeout_ms=timeout_ms or self.timeout_ms,
        )

    async def request(self, path: str, method: str = "GET", **kwargs) -> FetchResult:
        return await self.attempt_request(self.build(path, method, **kwargs))

    # ---- attempt chain ----
    def _authorize(self, descriptor: RequestDescriptor) -> RequestDescriptor:
        if descriptor.has_header("Authorization"):
            return descriptor
        bearer = self.session.authorization_header()
        if bearer is None:
            return descriptor
        return descriptor.with_header("Authorization", bearer)

    async def attempt_request(self, descriptor: RequestDescriptor) -> FetchResult:
        try:
            descriptor = self._authorize(descriptor)
            log.debug("fetch.start", method=descriptor.method, url=descriptor.url, timeout_ms=descriptor.timeout_ms)

            first = await self._attempt(descriptor)
            if not first.transport_failed:
                return first

            await self._sleep(self.backoff_ms / 1000.0)
            second = await self._attempt(descriptor)
            if not second.transport_failed:
                return second

            if descriptor.relative_fallback is None:
                log.debug("fetch.exhausted", url=descriptor.url, reason=second.reason)
                return second

            log.debug("fetch.relative_fallback", primary=descriptor.url, fallback=descriptor.relative_fallback)
            return await self._attempt(descriptor.retarget(descriptor.relative_fallback))
        except Exception as e:
            log.warning("fetch.unexpected_error", url=descriptor.url, error=repr(e))
            return FetchResult.failure(REASON_NETWORK, NETWORK_MESSAGE, url=descriptor.url, error=str(e))

    async def _attempt(self, descriptor: RequestDescriptor) -> FetchResult:
        task = asyncio.ensure_future(self._send_safely(descriptor))
        done, _ = await asyncio.wait({task}, timeout=descriptor.timeout_ms / 1000.0)
        if task in done:
            return task.result()
        # the physical request is left to finish; its result is dropped
        self._orphans.add(task)
        task.add_done_callback(self._orphans.discard)
        log.debug("fetch.timeout", url=descriptor.url, timeout_ms=descriptor.timeout_ms)
        return FetchResult.failure(REASON_TIMEOUT, TIMEOUT_MESSAGE, url=descriptor.url)

    async def _send_safely(self, descriptor: RequestDescriptor) -> FetchResult:
        try:
            return await self.primary.send(descriptor)
        except Exception as e:
            log.debug("fetch.primary_failed", url=descriptor.url, error=repr(e))
        try:
            return await self.secondary.send(descriptor)
        except Exception as e:
            log.debug("fetch.secondary_failed", url=descriptor.url, error=repr(e))
            return FetchResult.failure(REASON_NETWORK, NETWORK_MESSAGE, url=descriptor.url, error=str(e))
