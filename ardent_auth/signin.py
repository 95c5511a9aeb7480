"""
Sign-in flow: OAuth2 authorization code with PKCE against the Frontier auth server.

    INIT -> AUTHORIZING -> CALLBACK -> AUTHENTICATED
    any non-terminal state -> ERROR

A session is written only on reaching AUTHENTICATED, as one complete record.
ERROR is terminal for the attempt; nothing is retried.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from ardent_auth.errors import SignInError
from ardent_auth.flow_store import FlowStore
from ardent_auth.frontier import FrontierClient, TokenExchangeError
from ardent_auth.models import Session, utc_now
from ardent_auth.pkce import generate_pkce, generate_state
from ardent_auth.token_store import TokenStore

logger = logging.getLogger(__name__)


class FlowState(enum.Enum):
    INIT = "init"
    AUTHORIZING = "authorizing"
    CALLBACK = "callback"
    AUTHENTICATED = "authenticated"
    ERROR = "error"


_NEXT = {
    FlowState.INIT: FlowState.AUTHORIZING,
    FlowState.AUTHORIZING: FlowState.CALLBACK,
    FlowState.CALLBACK: FlowState.AUTHENTICATED,
}


@dataclass
class SignInAttempt:
    state: str
    status: FlowState = FlowState.INIT
    account_id: str | None = None
    error: str | None = None

    def advance(self, to: FlowState) -> None:
        if _NEXT.get(self.status) != to:
            raise RuntimeError(f"Invalid sign-in transition {self.status.value} -> {to.value}")
        self.status = to

    def fail(self, reason: str) -> None:
        if self.status in (FlowState.AUTHENTICATED, FlowState.ERROR):
            raise RuntimeError(f"Sign-in attempt already {self.status.value}")
        self.status = FlowState.ERROR
        self.error = reason


class SignInFlow:
    def __init__(
        self,
        frontier: FrontierClient,
        token_store: TokenStore,
        flow_store: FlowStore,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self.frontier = frontier
        self.token_store = token_store
        self.flow_store = flow_store
        self._now = now

    def begin(self) -> tuple[SignInAttempt, str]:
        """Start an attempt: keep its verifier, return (attempt, authorization URL to redirect to)."""
        attempt = SignInAttempt(state=generate_state())
        code_verifier, challenge = generate_pkce()
        self.flow_store.put(attempt.state, code_verifier)
        attempt.advance(FlowState.AUTHORIZING)
        return attempt, self.frontier.authorize_url(state=attempt.state, code_challenge=challenge)

    def complete(self, *, state: str | None, code: str | None, error: str | None = None) -> SignInAttempt:
        """Handle the redirect back from Frontier. Returns the attempt in AUTHENTICATED or ERROR."""
        attempt = SignInAttempt(state=state or "", status=FlowState.AUTHORIZING)
        try:
            # Pop first so the verifier is discarded whatever happens next
            flow = self.flow_store.pop(state) if state else None
            if error:
                raise SignInError(f"Authorization failed: {error}")
            if flow is None:
                raise SignInError("Invalid or expired state")
            if not code:
                raise SignInError("Missing code parameter")
            attempt.advance(FlowState.CALLBACK)

            tokens = self.frontier.exchange_code(code, flow.code_verifier)
            account_id = self.frontier.decode(tokens.access_token)
            self._store_session(account_id, tokens.access_token, tokens.refresh_token, tokens.expires_in)
            attempt.account_id = account_id
            attempt.advance(FlowState.AUTHENTICATED)
        except (SignInError, TokenExchangeError) as e:
            attempt.fail(str(e))
            logger.warning("Sign-in failed: %s", e)
            return attempt
        logger.info("Account %s signed in", attempt.account_id)
        return attempt

    def _store_session(self, account_id: str, access_token: str, refresh_token: str, expires_in: int) -> None:
        now = self._now()
        existing = self.token_store.get(account_id)
        self.token_store.upsert(
            Session(
                account_id=account_id,
                access_token=access_token,
                refresh_token=refresh_token,
                access_token_expires_at=now + timedelta(seconds=expires_in),
                created_at=existing.created_at if existing else now,
                updated_at=now,
            )
        )

    def sign_out(self, account_id: str) -> None:
        self.token_store.delete(account_id)
        logger.info("Account %s signed out", account_id)
