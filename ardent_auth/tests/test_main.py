"""Tests for the app factory wiring, process fail-fast and logging setup."""
import logging
import sys
import threading
from unittest.mock import patch

from fastapi.testclient import TestClient

from ardent_auth.logging_setup import configure_logging
from ardent_auth.main import build_services, create_app, fail_fast, install_fail_fast
from fakes import FakeFrontier


def test_build_services_shares_one_database(settings):
    services = build_services(settings, http=FakeFrontier().client())
    try:
        assert services.token_store.db is services.db
        assert services.cache_store.db is services.db
        assert services.proxy.token_store is services.token_store
        assert services.signin.frontier is services.frontier
    finally:
        services.close()


def test_lifespan_creates_tables(settings):
    app = create_app(settings, http=FakeFrontier().client(), start_scheduler=False)
    with TestClient(app) as client:
        assert client.get("/health").json()["cached_responses"] == 0


def test_scheduler_runs_at_startup(settings):
    with patch("ardent_auth.main.RefreshScheduler.run_once") as run_once:
        app = create_app(settings, http=FakeFrontier().client())
        with TestClient(app) as client:
            client.get("/health")
    assert run_once.called


def test_fail_fast_exits_process():
    with patch("ardent_auth.main.os._exit") as exit_:
        fail_fast(RuntimeError("boom"))
    exit_.assert_called_once_with(1)


def test_install_fail_fast_hooks_threads():
    saved = sys.excepthook, threading.excepthook
    try:
        install_fail_fast()
        with patch("ardent_auth.main.fail_fast") as fatal:
            thread = threading.Thread(target=lambda: 1 / 0)
            thread.start()
            thread.join()
        assert fatal.call_count == 1
        assert isinstance(fatal.call_args.args[0], ZeroDivisionError)
    finally:
        sys.excepthook, threading.excepthook = saved


def test_configure_logging_quiets_http_client():
    configure_logging("DEBUG")
    assert logging.getLogger("httpx").level == logging.WARNING
