"""
Session credential: HS256 JWT naming the account, carried in an httpOnly cookie.
Independent of the Frontier tokens; validity is signature + expiry only, nothing is stored server-side.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

import jwt
from fastapi import Response

from ardent_auth.config import Settings
from ardent_auth.errors import Unauthorized
from ardent_auth.models import utc_now

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


@dataclass(frozen=True)
class Credential:
    account_id: str
    issued_at: datetime
    expires_at: datetime


class CredentialIssuer:
    def __init__(
        self,
        secret: str,
        *,
        max_age_seconds: int,
        renew_after_seconds: int,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        if not secret:
            raise ValueError("Credential signing secret must be provided")
        self._secret = secret
        self.max_age_seconds = max_age_seconds
        self.renew_after_seconds = renew_after_seconds
        self._now = now

    def issue(self, account_id: str) -> str:
        now = self._now()
        payload = {
            "sub": account_id,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=self.max_age_seconds)).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def verify(self, token: str | None) -> Credential:
        """
        Check signature and expiry. Every failure raises Unauthorized with the same message;
        the specific cause only goes to the debug log.
        """
        if not token:
            raise Unauthorized("credential missing")
        try:
            # Expiry is checked against our own clock below
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"require": ["sub", "iat", "exp"], "verify_exp": False, "verify_iat": False},
            )
        except jwt.InvalidTokenError as e:
            logger.debug("Credential rejected: %s", e)
            raise Unauthorized("credential invalid")
        account_id = payload.get("sub")
        if not isinstance(account_id, str) or not account_id:
            raise Unauthorized("credential has no subject")
        try:
            issued_at = datetime.fromtimestamp(payload["iat"], timezone.utc)
            expires_at = datetime.fromtimestamp(payload["exp"], timezone.utc)
        except (TypeError, ValueError, OverflowError):
            raise Unauthorized("credential has invalid timestamps")
        if expires_at <= self._now():
            logger.debug("Credential rejected: expired")
            raise Unauthorized("credential expired")
        return Credential(account_id=account_id, issued_at=issued_at, expires_at=expires_at)

    def needs_renewal(self, credential: Credential) -> bool:
        """Sliding window: re-issue once the credential is older than renew_after_seconds."""
        return (self._now() - credential.issued_at).total_seconds() >= self.renew_after_seconds


class CredentialCookie:
    """Where the credential lives on the client: httpOnly, secure outside development."""

    def __init__(self, settings: Settings) -> None:
        self.name = settings.cookie_name
        self.domain = settings.cookie_domain
        self.secure = settings.is_production
        self.max_age = settings.credential_max_age_seconds

    def set(self, response: Response, token: str) -> None:
        response.set_cookie(
            key=self.name,
            value=token,
            max_age=self.max_age,
            domain=self.domain,
            path="/",
            secure=self.secure,
            httponly=True,
            samesite="lax",
        )

    def clear(self, response: Response) -> None:
        response.delete_cookie(key=self.name, domain=self.domain, path="/")
