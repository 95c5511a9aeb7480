"""
Ardent Authentication service.
Signs accounts in against Frontier (OAuth2 + PKCE), keeps their access tokens fresh and proxies/caches CAPI.
Run with `python -m ardent_auth.main` or `ardent-auth`.
"""
import asyncio
import logging
import os
import sys
import threading
import traceback
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ardent_auth.cache_store import CacheStore
from ardent_auth.config import VERSION, Settings, load_settings
from ardent_auth.credentials import CredentialCookie, CredentialIssuer
from ardent_auth.database import Database
from ardent_auth.errors import ServiceError, Unauthorized
from ardent_auth.flow_store import FlowStore
from ardent_auth.frontier import FrontierClient
from ardent_auth.logging_setup import configure_logging
from ardent_auth.proxy import CapiProxy
from ardent_auth.routes import router
from ardent_auth.scheduler import PeriodicTask, RefreshScheduler
from ardent_auth.signin import SignInFlow
from ardent_auth.token_store import TokenStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    db: Database
    frontier: FrontierClient
    token_store: TokenStore
    cache_store: CacheStore
    issuer: CredentialIssuer
    cookie: CredentialCookie
    signin: SignInFlow
    proxy: CapiProxy
    scheduler: RefreshScheduler

    def close(self) -> None:
        self.frontier.close()
        self.db.close()


def build_services(settings: Settings, *, http: httpx.Client | None = None) -> Services:
    """Construct every component once; each gets its collaborators explicitly."""
    db = Database(settings.database_url, busy_timeout_ms=settings.busy_timeout_ms)
    frontier = FrontierClient(settings, http=http)
    token_store = TokenStore(db)
    cache_store = CacheStore(db)
    return Services(
        settings=settings,
        db=db,
        frontier=frontier,
        token_store=token_store,
        cache_store=cache_store,
        issuer=CredentialIssuer(
            settings.jwt_secret,
            max_age_seconds=settings.credential_max_age_seconds,
            renew_after_seconds=settings.credential_renew_after_seconds,
        ),
        cookie=CredentialCookie(settings),
        signin=SignInFlow(frontier, token_store, FlowStore(ttl_seconds=settings.flow_ttl_seconds)),
        proxy=CapiProxy(frontier, token_store, cache_store, max_age_seconds=settings.cache_max_age_seconds),
        scheduler=RefreshScheduler(token_store, frontier, horizon_seconds=settings.refresh_horizon_seconds),
    )


def fail_fast(exc: BaseException) -> None:
    """Unexpected faults at the process boundary terminate the process rather than continue."""
    logger.critical("Fatal error, shutting down: %r", exc)
    logging.shutdown()
    os._exit(1)


def install_fail_fast() -> None:
    def _excepthook(exc_type, exc, tb):
        logger.critical("Uncaught exception", exc_info=(exc_type, exc, tb))
        fail_fast(exc)

    def _thread_excepthook(args):
        if args.exc_value is not None:
            _excepthook(args.exc_type, args.exc_value, args.exc_traceback)

    sys.excepthook = _excepthook
    threading.excepthook = _thread_excepthook


def create_app(
    settings: Settings | None = None,
    *,
    http: httpx.Client | None = None,
    start_scheduler: bool = True,
) -> FastAPI:
    """App factory. Settings are loaded once here when not given."""
    if settings is None:
        settings = load_settings()
    services = build_services(settings, http=http)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Create tables; run the token refresh now and every refresh_interval_seconds."""
        services.db.init_db()
        task = None
        if start_scheduler:
            periodic = PeriodicTask(
                "access-token-refresh",
                services.scheduler.run_once,
                settings.refresh_interval_seconds,
                on_crash=fail_fast,
            )
            task = periodic.start()
        logger.info("Ardent Authentication v%s started", VERSION)
        try:
            yield
        finally:
            if task is not None:
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
            services.close()
            logger.info("Shutting down")

    app = FastAPI(title="Ardent Authentication", version=VERSION, lifespan=lifespan)
    app.state.services = services
    app.state.started_at = datetime.now(timezone.utc)

    # Middleware added first runs innermost: errors -> CORS -> default headers
    @app.middleware("http")
    async def internal_errors(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            logger.error("Error in %s %s", request.method, request.url.path, exc_info=exc)
            body = {"error": "Internal error", "message": str(exc) or type(exc).__name__}
            if not settings.is_production:
                body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
            return JSONResponse(body, status_code=500)

    # Credentialed requests from any origin: the origin is echoed back, never "*"
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=".*",
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Origin", "X-Requested-With", "Content-Type", "Accept"],
    )

    @app.middleware("http")
    async def default_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["Ardent-Auth-Version"] = VERSION
        # Responses from this service must never be cached by intermediaries
        response.headers["Cache-Control"] = "private"
        return response

    @app.exception_handler(ServiceError)
    async def service_error(request: Request, exc: ServiceError):
        if isinstance(exc, Unauthorized):
            logger.debug("Unauthorized %s %s: %s", request.method, request.url.path, exc.reason)
        return JSONResponse(exc.body(), status_code=exc.status_code)

    app.include_router(router)
    return app


def main() -> None:
    import uvicorn

    settings = load_settings()
    configure_logging(settings.log_level)
    install_fail_fast()
    logger.info("Ardent Authentication v%s starting", VERSION)
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        proxy_headers=True,
    )


if __name__ == "__main__":
    main()
