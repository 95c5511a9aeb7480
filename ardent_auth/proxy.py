"""
CAPI proxy: serves companion API resources per account from the cache, falling back to Frontier
with the account's stored access token. Never refreshes tokens itself (that is the scheduler's job).
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

import httpx

from ardent_auth.cache_store import CacheStore
from ardent_auth.errors import NotSupported, Unauthorized, UpstreamFailure
from ardent_auth.frontier import FrontierClient
from ardent_auth.models import CachedResponse, utc_now
from ardent_auth.token_store import TokenStore

logger = logging.getLogger(__name__)

SUPPORTED_RESOURCES = (
    "profile",
    "market",
    "shipyard",
    "communitygoals",
    "journal",
    "fleetcarrier",
    "visitedstars",
)

JSON_CONTENT_TYPE = "application/json"
TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"

TEXT_RESOURCES = {"journal"}
# Streamed through with their own content type; too large to cache
BINARY_RESOURCES = {"visitedstars": "application/gzip"}


@dataclass(frozen=True)
class ProxyResponse:
    body: bytes
    content_type: str
    cached: bool = False


class CapiProxy:
    def __init__(
        self,
        frontier: FrontierClient,
        token_store: TokenStore,
        cache_store: CacheStore,
        *,
        max_age_seconds: int | None = None,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self.frontier = frontier
        self.token_store = token_store
        self.cache_store = cache_store
        self.max_age_seconds = max_age_seconds
        self._now = now

    def _is_fresh(self, cached: CachedResponse) -> bool:
        if self.max_age_seconds is None:
            return True
        return cached.age_seconds(self._now()) <= self.max_age_seconds

    def _access_token(self, account_id: str) -> str:
        session = self.token_store.get(account_id)
        if session is None or not session.access_token:
            raise Unauthorized("no stored access token")
        return session.access_token

    def _upstream(self, account_id: str, path: str) -> httpx.Response:
        r = self.frontier.get(path, self._access_token(account_id))
        if not r.is_success:
            logger.info("Frontier returned %d for %s (account %s)", r.status_code, path or "/", account_id)
            raise UpstreamFailure(r.status_code)
        return r

    @staticmethod
    def check_supported(resource: str) -> None:
        if resource not in SUPPORTED_RESOURCES:
            raise NotSupported()

    def fetch(self, account_id: str, resource: str) -> ProxyResponse:
        """Cached CAPI resource for the account; unknown resources fail before any store or network access."""
        self.check_supported(resource)

        cached = self.cache_store.get(account_id, resource)
        if cached is not None and self._is_fresh(cached):
            return ProxyResponse(body=cached.payload, content_type=cached.content_type, cached=True)

        r = self._upstream(account_id, resource)
        if resource in BINARY_RESOURCES:
            return ProxyResponse(body=r.content, content_type=BINARY_RESOURCES[resource])
        if resource in TEXT_RESOURCES:
            body, content_type = r.text.encode("utf-8"), TEXT_CONTENT_TYPE
        else:
            body, content_type = json.dumps(r.json()).encode("utf-8"), JSON_CONTENT_TYPE

        self.cache_store.set(account_id, resource, body, content_type)
        return ProxyResponse(body=body, content_type=content_type)

    def fetch_root(self, account_id: str) -> ProxyResponse:
        """The CAPI root document. Not cached."""
        r = self._upstream(account_id, "")
        return ProxyResponse(body=json.dumps(r.json()).encode("utf-8"), content_type=JSON_CONTENT_TYPE)

    def fetch_journal_day(self, account_id: str, year: str, month: str, day: str) -> ProxyResponse:
        """Raw journal text for one day. Never cached."""
        if not all(part.isdigit() for part in (year, month, day)):
            raise NotSupported()
        r = self._upstream(account_id, f"journal/{year}/{month}/{day}")
        return ProxyResponse(body=r.text.encode("utf-8"), content_type=TEXT_CONTENT_TYPE)

    def purge(self, account_id: str) -> int:
        return self.cache_store.delete_all(account_id)
