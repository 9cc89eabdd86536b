import logging
import os
import sys
from fastapi import FastAPI
from fastapi.testclient import TestClient

# Ensure the ladder package is importable
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

# Avoid startup validation error when importing the app
os.environ.setdefault("ALLOW_CREDENTIALS", "false")
os.environ.setdefault("ALLOWED_ORIGINS", "http://testserver")
from ladder.exceptions import ReplayIntegrityError  # noqa: E402
from ladder.main import domain_exception_handler, unhandled_exception_handler  # noqa: E402


def test_unhandled_exception_logs_traceback(caplog):
    app = FastAPI()
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.get("/boom")
    def boom():
        raise ValueError("boom")

    client = TestClient(app, raise_server_exceptions=False)
    with caplog.at_level(logging.ERROR):
        response = client.get("/boom")

    assert response.status_code == 500
    assert response.json()["code"] == "internal_server_error"
    record = next((r for r in caplog.records if r.message == "Unhandled exception"), None)
    assert record is not None
    assert record.exc_info[0] is ValueError
    assert "ValueError: boom" in caplog.text


def test_integrity_errors_are_logged_as_problems(caplog):
    app = FastAPI()
    app.add_exception_handler(ReplayIntegrityError, domain_exception_handler)

    @app.post("/replay")
    def replay():
        raise ReplayIntegrityError("participant 'ghost' is unknown", match_id="m1")

    client = TestClient(app, raise_server_exceptions=False)
    with caplog.at_level(logging.ERROR):
        response = client.post("/replay")

    assert response.status_code == 500
    assert response.headers["content-type"].startswith("application/problem+json")
    assert response.json()["code"] == "replay_integrity_error"
    assert any(r.exc_info and r.exc_info[0] is ReplayIntegrityError for r in caplog.records)
