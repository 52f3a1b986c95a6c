# tests/test_retry.py
import asyncio

import pytest
import requests

from paintplan.errors import (
    BackendUnreachableError,
    CommunicationError,
    QuotaExceededError,
    classify_error,
    is_rate_limit_error,
    is_unreachable_error,
)
from paintplan.retry import with_retry


# ── Dummies ───────────────────────────────────────────────────────────────────
class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class FlakyOperation:
    """Raises the queued errors in order, then returns 'ok'."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


def _rate_limit():
    return Exception("429 RESOURCE_EXHAUSTED: quota exceeded")


# ── Backoff schedule ──────────────────────────────────────────────────────────
def test_succeeds_after_four_rate_limits_with_doubling_delays():
    sleep = RecordingSleep()
    op = FlakyOperation(*[_rate_limit() for _ in range(4)])
    result = asyncio.run(with_retry(op, "identifyColors", sleep=sleep))
    assert result == "ok"
    assert sleep.delays == [5.0, 10.0, 20.0, 40.0]
    assert op.calls == 5


def test_fifth_rate_limit_raises_quota_error_without_another_delay():
    sleep = RecordingSleep()
    op = FlakyOperation(*[_rate_limit() for _ in range(5)])
    with pytest.raises(QuotaExceededError) as exc:
        asyncio.run(with_retry(op, "generateSteps", sleep=sleep))
    assert sleep.delays == [5.0, 10.0, 20.0, 40.0]
    assert exc.value.context == "generateSteps"
    assert "limite de requisições" in exc.value.user_message


def test_non_rate_limit_error_is_not_retried():
    sleep = RecordingSleep()
    op = FlakyOperation(ValueError("boom"))
    with pytest.raises(CommunicationError) as exc:
        asyncio.run(with_retry(op, "identifyParts", sleep=sleep))
    assert sleep.delays == []
    assert op.calls == 1
    assert "identifyParts" in exc.value.user_message
    assert isinstance(exc.value.__cause__, ValueError)


def test_connection_refused_maps_to_unreachable():
    sleep = RecordingSleep()
    op = FlakyOperation(requests.ConnectionError("Connection refused"))
    with pytest.raises(BackendUnreachableError):
        asyncio.run(with_retry(op, "getHexForPaint", sleep=sleep))
    assert sleep.delays == []


def test_custom_schedule():
    sleep = RecordingSleep()
    op = FlakyOperation(_rate_limit(), _rate_limit())
    with pytest.raises(QuotaExceededError):
        asyncio.run(with_retry(op, "x", max_retries=1, initial_delay=0.5, sleep=sleep))
    assert sleep.delays == [0.5]


# ── Classification ────────────────────────────────────────────────────────────
def test_rate_limit_detection():
    assert is_rate_limit_error(Exception("HTTP 429 Too Many Requests"))
    assert is_rate_limit_error(RuntimeError("RESOURCE_EXHAUSTED"))
    assert not is_rate_limit_error(Exception("500 Internal"))


def test_unreachable_detection():
    class StatusZero(Exception):
        status = 0

    assert is_unreachable_error(ConnectionRefusedError())
    assert is_unreachable_error(StatusZero("network"))
    assert is_unreachable_error(Exception("org.apache.http.conn.HttpHostConnectException"))
    assert not is_unreachable_error(Exception("bad gateway"))


def test_terminal_errors_pass_through_classification():
    err = QuotaExceededError("identifyColors")
    assert classify_error(err, "other") is err
