"""Tests for the database read retry."""
import asyncio

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from mediaflow.storage.retry import is_transient_exc, retry_async


class Flaky:
    def __init__(self, failures, error):
        self.failures = failures
        self.error = error
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "rows"


def operational_error():
    return OperationalError("SELECT 1", {}, Exception("database is locked"))


def test_transient_errors_retried():
    fn = Flaky(2, operational_error())

    assert asyncio.run(retry_async(fn, attempts=3, delay_s=0)) == "rows"
    assert fn.calls == 3


def test_last_error_raised_when_attempts_exhausted():
    fn = Flaky(5, operational_error())

    with pytest.raises(OperationalError):
        asyncio.run(retry_async(fn, attempts=2, delay_s=0))
    assert fn.calls == 2


def test_permanent_errors_not_retried():
    fn = Flaky(1, ValueError("bad query"))

    with pytest.raises(ValueError):
        asyncio.run(retry_async(fn, attempts=3, delay_s=0))
    assert fn.calls == 1


def test_is_transient():
    assert is_transient_exc(operational_error())
    assert is_transient_exc(ConnectionResetError())
    assert not is_transient_exc(KeyError("x"))
    assert not is_transient_exc(IntegrityError("INSERT", {}, Exception("dup")))
