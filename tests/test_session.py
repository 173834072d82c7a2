#!/usr/bin/env python3
"""
Engine construction and the pool event hooks: idle expiry and fail-fast.
"""

from types import SimpleNamespace
from unittest.mock import Mock

import pytest
from sqlalchemy import exc

from app.db.session import IdleExpiry, PoolFailFast, build_engine
from conftest import make_settings


def error_context(is_pre_ping=True, is_disconnect=True):
    return SimpleNamespace(
        is_pre_ping=is_pre_ping,
        is_disconnect=is_disconnect,
        original_exception=ConnectionResetError("server closed the connection unexpectedly"),
    )


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.mark.unit
class TestIdleExpiry:

    def test_fresh_connection_passes(self):
        record = SimpleNamespace(info={})
        IdleExpiry(30).on_checkout(None, record, None)

    def test_recently_idle_connection_reused(self):
        clock = FakeClock()
        expiry = IdleExpiry(30, clock=clock)
        record = SimpleNamespace(info={})

        expiry.on_checkin(None, record)
        clock.now = 29
        expiry.on_checkout(None, record, None)

    def test_long_idle_connection_replaced(self):
        clock = FakeClock()
        expiry = IdleExpiry(30, clock=clock)
        record = SimpleNamespace(info={})

        expiry.on_checkin(None, record)
        clock.now = 31

        with pytest.raises(exc.DisconnectionError):
            expiry.on_checkout(None, record, None)
        assert "checked_in_at" not in record.info


@pytest.mark.unit
class TestPoolFailFast:

    def test_broken_idle_connection_is_fatal(self):
        on_fatal = Mock()
        PoolFailFast(on_fatal)(error_context())
        on_fatal.assert_called_once_with()

    @pytest.mark.parametrize("is_pre_ping,is_disconnect", [
        (False, True),   # dropped mid-query: a request error, not pool state
        (True, False),
        (False, False),
    ])
    def test_other_errors_not_fatal(self, is_pre_ping, is_disconnect):
        on_fatal = Mock()
        PoolFailFast(on_fatal)(error_context(is_pre_ping, is_disconnect))
        on_fatal.assert_not_called()


@pytest.mark.unit
class TestBuildEngine:

    def test_handle_error_event_triggers_fail_fast(self, tmp_path):
        on_fatal = Mock()
        engine = build_engine(make_settings(tmp_path), on_pool_fatal=on_fatal)

        engine.sync_engine.dispatch.handle_error(error_context())

        on_fatal.assert_called_once_with()

    def test_fail_fast_can_be_disabled(self, tmp_path):
        on_fatal = Mock()
        engine = build_engine(make_settings(tmp_path, DB_FAIL_FAST=False), on_pool_fatal=on_fatal)

        engine.sync_engine.dispatch.handle_error(error_context())

        on_fatal.assert_not_called()

    def test_postgres_pool_settings(self, tmp_path):
        settings = make_settings(
            tmp_path,
            DATABASE_URL="postgres://u:p@db:5432/app",
            DB_POOL_SIZE=7,
            DB_POOL_TIMEOUT=1.5,
            DB_POOL_RECYCLE=600,
        )
        engine = build_engine(settings)

        pool = engine.sync_engine.pool
        assert pool.size() == 7
        assert pool.timeout() == 1.5
        # age-based; idle expiry is handled by IdleExpiry
        assert pool._recycle == 600
        assert pool._pre_ping
