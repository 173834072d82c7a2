#!/usr/bin/env python3
"""
Error mapping, error aggregation and the rate limiter's window arithmetic.
"""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from app.core.errors import (
    ErrorAggregator,
    ErrorPattern,
    ErrorSeverity,
    NotFound,
    StoreUnavailable,
    ValidationFailed,
)
from app.core.middleware import FixedWindowLimiter
from app.main import create_app


def store_down():
    return OperationalError("SELECT", {}, Exception("connection refused to 10.0.0.5"))


@pytest.mark.integration
class TestStoreFailures:

    @pytest.mark.parametrize("target,method,path,body", [
        ("list_appointments", "GET", "/atendimentos", None),
        ("create_appointment", "POST", "/atendimentos", {"title": "x", "start": "2024-01-01T10:00:00Z"}),
        ("create_series", "POST", "/atendimentos",
         {"title": "x", "start": "2024-01-01T10:00:00Z", "repeat": "daily", "times": 3}),
        ("update_appointment", "PUT", "/atendimentos/1", {"title": "x", "start": "2024-01-01T10:00:00Z"}),
        ("delete_appointment", "DELETE", "/atendimentos/1", None),
        ("delete_series_from", "DELETE",
         "/atendimentos/recurrence/6f1c3c56-6c53-4b59-9d8e-3a4a1c0d2b10/from/1", None),
    ])
    def test_generic_500(self, client, auth_headers, target, method, path, body):
        with patch(f"app.api.routes.appointments.{target}", side_effect=store_down()):
            response = client.request(method, path, headers=auth_headers, json=body)

        assert response.status_code == 500
        # no driver detail leaks to the client
        assert response.json() == {"error": "Internal server error"}

    def test_statistics_500(self, client, auth_headers):
        with patch("app.api.routes.statistics.get_statistics", side_effect=store_down()):
            response = client.get("/estatisticas", headers=auth_headers)

        assert response.status_code == 500
        assert "10.0.0.5" not in response.text

    def test_logged_as_medium_with_endpoint(self, client, auth_headers):
        with patch("app.api.routes.appointments.list_appointments", side_effect=store_down()), \
                patch("app.api.routes.appointments.log_error") as mock_log:
            client.get("/atendimentos", headers=auth_headers)

        error, context, severity = mock_log.call_args.args
        assert isinstance(error, OperationalError)
        assert context == {"endpoint": "GET /atendimentos"}
        assert severity is ErrorSeverity.MEDIUM

    def test_repeated_failures_are_aggregated(self, client, auth_headers):
        aggregator = ErrorAggregator(log_threshold=10)
        with patch("app.core.errors.error_aggregator", aggregator), \
                patch("app.core.errors.logger") as mock_logger, \
                patch("app.api.routes.appointments.list_appointments", side_effect=store_down()), \
                patch("app.api.routes.statistics.get_statistics", side_effect=store_down()):
            for _ in range(3):
                client.get("/atendimentos", headers=auth_headers)
            client.get("/estatisticas", headers=auth_headers)

        # one pattern per endpoint
        assert sorted(p.count for p in aggregator.patterns.values()) == [1, 3]
        # first failure of each endpoint logged, the two repeats suppressed
        assert mock_logger.error.call_count == 2


@pytest.mark.integration
def test_unhandled_exception_is_500(settings):
    app = create_app(settings)

    @app.get("/boom")
    async def boom():
        raise RuntimeError("secret internals")

    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.get("/boom")

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}


@pytest.mark.unit
class TestApiErrors:

    def test_default_bodies(self):
        assert NotFound().to_body() == {"error": "Event not found"}
        assert StoreUnavailable().to_body() == {"error": "Internal server error"}

    def test_custom_key(self):
        err = ValidationFailed("nope", key="message")
        assert err.status_code == 400
        assert err.to_body() == {"message": "nope"}
        # class default untouched
        assert ValidationFailed("x").to_body() == {"error": "x"}


@pytest.mark.unit
class TestErrorAggregator:

    def test_same_error_shares_fingerprint(self):
        aggregator = ErrorAggregator()
        first = aggregator.log_error(ValueError("bad"), {"endpoint": "/x"}, ErrorSeverity.LOW)
        second = aggregator.log_error(ValueError("bad"), {"endpoint": "/x"}, ErrorSeverity.LOW)

        assert first == second
        assert aggregator.patterns[first].count == 2

    def test_different_endpoint_different_fingerprint(self):
        aggregator = ErrorAggregator()
        a = aggregator.log_error(ValueError("bad"), {"endpoint": "/x"})
        b = aggregator.log_error(ValueError("bad"), {"endpoint": "/y"})
        assert a != b

    def test_quiet_patterns_pruned(self):
        aggregator = ErrorAggregator(time_window=300)
        with patch("app.core.errors.time.time", return_value=1000.0):
            old = aggregator.log_error(ValueError("old"), {"endpoint": "/a"})
            aggregator.log_error(ValueError("again"), {"endpoint": "/a"})
        with patch("app.core.errors.time.time", return_value=1299.0):
            aggregator.log_error(ValueError("again"), {"endpoint": "/a"})
        with patch("app.core.errors.time.time", return_value=1400.0):
            fresh = aggregator.log_error(ValueError("new"), {"endpoint": "/b"})

        assert old not in aggregator.patterns
        assert fresh in aggregator.patterns
        # "again" was seen within the window, so it survives
        assert len(aggregator.patterns) == 2

    def test_pattern_counts_restart_after_window(self):
        aggregator = ErrorAggregator(time_window=60)
        with patch("app.core.errors.time.time", return_value=0.0):
            fp = aggregator.log_error(ValueError("x"), {"endpoint": "/a"})
            aggregator.log_error(ValueError("x"), {"endpoint": "/a"})
        with patch("app.core.errors.time.time", return_value=100.0):
            aggregator.log_error(ValueError("x"), {"endpoint": "/a"})

        assert aggregator.patterns[fp].count == 1

    def test_should_log_thresholds(self):
        aggregator = ErrorAggregator(log_threshold=3)
        pattern = ErrorPattern("ValueError", "bad", {})

        assert aggregator.should_log(pattern, ErrorSeverity.LOW)  # first occurrence
        pattern.count = 2
        assert not aggregator.should_log(pattern, ErrorSeverity.MEDIUM)
        assert aggregator.should_log(pattern, ErrorSeverity.HIGH)
        pattern.count = 3
        assert aggregator.should_log(pattern, ErrorSeverity.MEDIUM)
        assert not aggregator.should_log(pattern, ErrorSeverity.LOW)
        pattern.count = 15
        assert aggregator.should_log(pattern, ErrorSeverity.LOW)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.mark.unit
class TestFixedWindowLimiter:

    def test_allows_up_to_limit(self):
        limiter = FixedWindowLimiter(limit=3, window_seconds=60, clock=FakeClock())

        results = [limiter.hit("1.2.3.4") for _ in range(4)]

        assert [allowed for allowed, _, _ in results] == [True, True, True, False]
        assert [remaining for _, remaining, _ in results] == [2, 1, 0, 0]

    def test_window_resets(self):
        clock = FakeClock()
        limiter = FixedWindowLimiter(limit=1, window_seconds=60, clock=clock)

        assert limiter.hit("a")[0]
        allowed, _, reset_in = limiter.hit("a")
        assert not allowed
        assert reset_in == 60

        clock.now += 60
        assert limiter.hit("a")[0]

    def test_keys_are_independent(self):
        limiter = FixedWindowLimiter(limit=1, window_seconds=60, clock=FakeClock())
        assert limiter.hit("a")[0]
        assert limiter.hit("b")[0]
        assert not limiter.hit("a")[0]

    def test_expired_windows_cleaned_up(self):
        clock = FakeClock()
        limiter = FixedWindowLimiter(limit=5, window_seconds=10, clock=clock)
        for key in ("a", "b", "c"):
            limiter.hit(key)

        clock.now += 20
        limiter.hit("d")

        assert set(limiter._windows) == {"d"}
