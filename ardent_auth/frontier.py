"""
Client for the Frontier auth server (authorize, token, decode) and the companion API (CAPI).
"""
import logging
from dataclasses import dataclass

import httpx

from ardent_auth.config import Settings
from ardent_auth.pkce import build_authorize_url

logger = logging.getLogger(__name__)


class TokenExchangeError(Exception):
    """The token endpoint rejected the request, could not be reached, or returned an unusable payload."""


@dataclass(frozen=True)
class TokenResponse:
    access_token: str
    refresh_token: str | None
    expires_in: int


class FrontierClient:
    def __init__(self, settings: Settings, http: httpx.Client | None = None) -> None:
        self.settings = settings
        self.auth_url = settings.frontier_auth_url
        self.api_url = settings.frontier_api_url
        self._http = http or httpx.Client(timeout=settings.upstream_timeout_seconds)

    def close(self) -> None:
        self._http.close()

    def authorize_url(self, state: str, code_challenge: str) -> str:
        return build_authorize_url(
            auth_url=self.auth_url,
            client_id=self.settings.client_id,
            redirect_uri=self.settings.callback_url,
            scope=self.settings.oauth_scope,
            audience=self.settings.oauth_audience,
            state=state,
            code_challenge=code_challenge,
        )

    def _token_request(self, data: dict, *, require_refresh_token: bool) -> TokenResponse:
        try:
            r = self._http.post(
                f"{self.auth_url}/token",
                data={"client_id": self.settings.client_id, **data},
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"Token endpoint unreachable: {e}") from e
        if r.status_code != 200:
            raise TokenExchangeError(f"Token endpoint responded with status {r.status_code}")
        try:
            payload = r.json()
        except ValueError as e:
            raise TokenExchangeError("Token endpoint returned invalid JSON") from e

        access_token = payload.get("access_token")
        refresh_token = payload.get("refresh_token")
        expires_in = payload.get("expires_in")
        if not access_token or not expires_in or (require_refresh_token and not refresh_token):
            raise TokenExchangeError("Incomplete token payload returned from Frontier")
        try:
            expires_in = int(expires_in)
        except (TypeError, ValueError) as e:
            raise TokenExchangeError(f"Invalid expires_in: {expires_in!r}") from e
        return TokenResponse(access_token=access_token, refresh_token=refresh_token or None, expires_in=expires_in)

    def exchange_code(self, code: str, code_verifier: str) -> TokenResponse:
        """authorization_code grant; the verifier must match the challenge sent to /auth."""
        return self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "code_verifier": code_verifier,
                "redirect_uri": self.settings.callback_url,
            },
            require_refresh_token=True,
        )

    def refresh(self, refresh_token: str) -> TokenResponse:
        """refresh_token grant. refresh_token in the result is None when Frontier does not rotate it."""
        return self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
            require_refresh_token=False,
        )

    def decode(self, access_token: str) -> str:
        """Resolve the account (customer) id an access token belongs to."""
        try:
            r = self._http.get(
                f"{self.auth_url}/decode",
                headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"Decode endpoint unreachable: {e}") from e
        if r.status_code != 200:
            raise TokenExchangeError(f"Decode endpoint responded with status {r.status_code}")
        try:
            customer_id = r.json()["usr"]["customer_id"]
        except (ValueError, KeyError, TypeError) as e:
            raise TokenExchangeError("Decode response missing usr.customer_id") from e
        return str(customer_id)

    def get(self, path: str, access_token: str) -> httpx.Response:
        """GET a CAPI path ("" for the root document). Network errors propagate."""
        url = f"{self.api_url}/{path}" if path else self.api_url
        return self._http.get(url, headers={"Authorization": f"Bearer {access_token}"})
