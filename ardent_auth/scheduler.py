"""
Refresh scheduler: proactively renews access tokens that expire within the refresh horizon.
Runs once at startup (to self-heal after downtime) and then on a fixed period, independently of
request traffic. It holds no locks; concurrent safety comes from the Token Store's atomic row writes.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Awaitable, Callable

from starlette.concurrency import run_in_threadpool

from ardent_auth.frontier import FrontierClient, TokenExchangeError
from ardent_auth.models import Session, utc_now
from ardent_auth.token_store import TokenStore

logger = logging.getLogger(__name__)


@dataclass
class RefreshSummary:
    checked: int = 0
    refreshed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class RefreshScheduler:
    def __init__(
        self,
        token_store: TokenStore,
        frontier: FrontierClient,
        *,
        horizon_seconds: int,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self.token_store = token_store
        self.frontier = frontier
        self.horizon_seconds = horizon_seconds
        self._now = now

    def run_once(self) -> RefreshSummary:
        """One pass over sessions inside the horizon. A failure for one account never stops the pass."""
        cutoff = self._now() + timedelta(seconds=self.horizon_seconds)
        sessions = self.token_store.expiring_before(cutoff)
        summary = RefreshSummary(checked=len(sessions))
        for session in sessions:
            try:
                self._refresh(session)
            except TokenExchangeError as e:
                summary.failed.append(session.account_id)
                logger.warning("Failed to refresh access token for account %s: %s", session.account_id, e)
            except Exception:
                summary.failed.append(session.account_id)
                logger.exception("Unexpected error refreshing access token for account %s", session.account_id)
            else:
                summary.refreshed.append(session.account_id)
        if sessions:
            logger.info(
                "Access token refresh: %d due, %d refreshed, %d failed",
                summary.checked,
                len(summary.refreshed),
                len(summary.failed),
            )
        return summary

    def _refresh(self, session: Session) -> None:
        tokens = self.frontier.refresh(session.refresh_token)
        now = self._now()
        fields = {
            "access_token": tokens.access_token,
            "access_token_expires_at": now + timedelta(seconds=tokens.expires_in),
            "updated_at": now,
        }
        if tokens.refresh_token:
            fields["refresh_token"] = tokens.refresh_token
        # No row means the account signed out during the pass; nothing to recreate
        if not self.token_store.update_fields(session.account_id, **fields):
            logger.debug("Session for account %s removed before refresh completed", session.account_id)


class PeriodicTask:
    """
    Run a blocking callable immediately and then every interval_seconds, off the event loop.
    A failed pass is logged and retried on the next period with no backoff state.
    """

    def __init__(
        self,
        name: str,
        func: Callable[[], object],
        interval_seconds: float,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_crash: Callable[[BaseException], None] | None = None,
    ) -> None:
        self.name = name
        self.func = func
        self.interval_seconds = interval_seconds
        self._sleep = sleep
        self._on_crash = on_crash
        self.passes = 0

    async def run(self, iterations: int | None = None) -> None:
        while iterations is None or self.passes < iterations:
            try:
                await run_in_threadpool(self.func)
            except Exception:
                logger.exception("%s pass failed; retrying next period", self.name)
            self.passes += 1
            if iterations is not None and self.passes >= iterations:
                return
            await self._sleep(self.interval_seconds)

    def start(self) -> asyncio.Task:
        task = asyncio.create_task(self.run(), name=self.name)
        task.add_done_callback(self._done)
        return task

    def _done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        logger.critical("%s stopped unexpectedly", self.name, exc_info=exc)
        if self._on_crash is not None:
            self._on_crash(exc)
