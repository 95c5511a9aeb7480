"""
HTTP routes: sign-in (/signin, /callback, /signout, /token) and the CAPI proxy (/cmdr...).
Errors raised here (ardent_auth.errors) are rendered by the handlers registered in main.py.
"""
import logging
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse

from ardent_auth.config import VERSION
from ardent_auth.credentials import Credential
from ardent_auth.errors import Unauthorized
from ardent_auth.proxy import CapiProxy, ProxyResponse
from ardent_auth.signin import FlowState

logger = logging.getLogger(__name__)
router = APIRouter()


def _services(request: Request):
    return request.app.state.services


def authenticate(request: Request) -> Credential:
    """Verify the credential cookie; raises Unauthorized on any failure."""
    services = _services(request)
    return services.issuer.verify(request.cookies.get(services.cookie.name))


def _finish(request: Request, credential: Credential, response: Response) -> Response:
    """Sliding expiry: re-issue the credential once it is old enough."""
    services = _services(request)
    if services.issuer.needs_renewal(credential):
        services.cookie.set(response, services.issuer.issue(credential.account_id))
    return response


def _proxy_response(result: ProxyResponse) -> Response:
    return Response(content=result.body, media_type=result.content_type)


@router.get("/", response_class=PlainTextResponse)
def index(request: Request):
    started_at = request.app.state.started_at
    uptime = int((datetime.now(timezone.utc) - started_at).total_seconds())
    return f"Ardent Authentication v{VERSION}\nUptime: {uptime}s\n"


@router.get("/health")
def health(request: Request):
    """Health check endpoint."""
    services = _services(request)
    return {
        "status": "healthy",
        "version": VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "sessions": services.token_store.count(),
        "cached_responses": services.cache_store.count(),
    }


@router.get("/version")
def version():
    return {"version": VERSION}


@router.get("/signin")
def signin(request: Request):
    """Start a PKCE sign-in attempt and redirect to the Frontier authorization endpoint."""
    _, url = _services(request).signin.begin()
    return RedirectResponse(url=url, status_code=302)


@router.get("/callback")
def callback(request: Request, code: str | None = None, state: str | None = None, error: str | None = None):
    """
    Redirect target after Frontier sign-in. On success, set the credential cookie and send the
    client to the signed-in page; on any failure send it to the error page.
    """
    services = _services(request)
    attempt = services.signin.complete(state=state, code=code, error=error)
    if attempt.status != FlowState.AUTHENTICATED:
        return RedirectResponse(url=services.settings.error_url, status_code=302)
    response = RedirectResponse(url=services.settings.signed_in_url, status_code=302)
    services.cookie.set(response, services.issuer.issue(attempt.account_id))
    return response


@router.get("/signout")
def signout(request: Request):
    """Delete the account's session and cached responses, clear the cookie, redirect to signed-out page."""
    services = _services(request)
    try:
        credential = authenticate(request)
    except Unauthorized:
        credential = None
    if credential is not None:
        services.signin.sign_out(credential.account_id)
        services.proxy.purge(credential.account_id)
    response = RedirectResponse(url=services.settings.signed_out_url, status_code=302)
    services.cookie.clear(response)
    return response


@router.get("/token")
def token(request: Request, credential: Annotated[Credential, Depends(authenticate)]):
    """Expiry of the current credential; lets the client know whether it is signed in."""
    response = JSONResponse({"account_id": credential.account_id, "expires": credential.expires_at.isoformat()})
    return _finish(request, credential, response)


@router.get("/cmdr")
def cmdr_root(request: Request, credential: Annotated[Credential, Depends(authenticate)]):
    """Full CAPI root document for the signed-in account."""
    result = _services(request).proxy.fetch_root(credential.account_id)
    return _finish(request, credential, _proxy_response(result))


@router.post("/cmdr/delete")
def cmdr_delete(request: Request, credential: Annotated[Credential, Depends(authenticate)]):
    """Purge every cached CAPI response for the signed-in account."""
    _services(request).proxy.purge(credential.account_id)
    return _finish(request, credential, JSONResponse({"success": True}))


@router.get("/cmdr/journal/{year}/{month}/{day}")
def cmdr_journal_day(
    request: Request,
    year: str,
    month: str,
    day: str,
    credential: Annotated[Credential, Depends(authenticate)],
):
    """Raw journal text for one day. Not cached."""
    result = _services(request).proxy.fetch_journal_day(credential.account_id, year, month, day)
    return _finish(request, credential, _proxy_response(result))


def supported_resource(resource: str) -> str:
    CapiProxy.check_supported(resource)
    return resource


@router.get("/cmdr/{resource}")
def cmdr_resource(
    request: Request,
    # Declared first: unknown resources are rejected before the credential is looked at
    resource: Annotated[str, Depends(supported_resource)],
    credential: Annotated[Credential, Depends(authenticate)],
):
    """One CAPI resource, served from cache when present."""
    result = _services(request).proxy.fetch(credential.account_id, resource)
    return _finish(request, credential, _proxy_response(result))
