"""Tests for normalized error responses."""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from manzai.core.config import build_pipeline_config
from manzai.core.errors import (
    AppError,
    QuotaExceededError,
    app_error_handler,
    unhandled_exception_handler,
)
from manzai.core.middleware.request_id import RequestIdMiddleware
from manzai.tests.mocks import make_settings


def _make_app(env="development"):
    app = FastAPI()
    app.state.pipeline_config = build_pipeline_config(make_settings(ENV=env))
    app.add_middleware(RequestIdMiddleware)
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.get("/quota")
    def quota():
        raise QuotaExceededError("no credits", payload={"usage_count": 3, "paid_credits": 0})

    @app.get("/boom")
    def boom():
        raise RuntimeError("database password leaked")

    return app


def test_app_error_shape_merges_payload():
    resp = TestClient(_make_app()).get("/quota")

    assert resp.status_code == 403
    body = resp.json()
    assert body["error"]["code"] == "quota_exceeded"
    assert body["error"]["message"] == "no credits"
    assert body["detail"] == "no credits"
    assert body["error"]["request_id"] == resp.headers["x-request-id"]
    assert body["usage_count"] == 3
    assert "debug" not in body


def test_unhandled_error_shows_debug_outside_production():
    client = TestClient(_make_app(), raise_server_exceptions=False)

    resp = client.get("/boom")

    assert resp.status_code == 500
    body = resp.json()
    assert body["error"]["code"] == "internal_error"
    assert body["debug"]["type"] == "RuntimeError"


def test_unhandled_error_hides_debug_in_production():
    client = TestClient(_make_app("production"), raise_server_exceptions=False)

    resp = client.get("/boom")

    assert resp.status_code == 500
    assert resp.json()["detail"] == "Server Error"
    assert "database password leaked" not in resp.text
