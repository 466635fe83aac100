# -*- coding: utf-8 -*-

from __future__ import annotations

import asyncio
import sqlite3
import unittest

from dietplanner.retry import retry_async, retry_sync


class TestRetrySync(unittest.TestCase):
    def test_backoff_doubles_until_success(self) -> None:
        sleeps = []
        attempts = []

        def flaky() -> str:
            attempts.append(1)
            if len(attempts) < 3:
                raise sqlite3.OperationalError("database is locked")
            return "ok"

        result = retry_sync(
            flaky, attempts=3, base_delay=0.5, retry_on=(sqlite3.OperationalError,), sleep=sleeps.append
        )
        self.assertEqual(result, "ok")
        self.assertEqual(sleeps, [0.5, 1.0])

    def test_non_matching_errors_propagate_immediately(self) -> None:
        sleeps = []

        def broken() -> None:
            raise KeyError("nope")

        with self.assertRaises(KeyError):
            retry_sync(broken, attempts=5, base_delay=1, retry_on=(sqlite3.OperationalError,), sleep=sleeps.append)
        self.assertEqual(sleeps, [])

    def test_gives_up_after_attempts(self) -> None:
        calls = []

        def always_locked() -> None:
            calls.append(1)
            raise sqlite3.OperationalError("locked")

        with self.assertRaises(sqlite3.OperationalError):
            retry_sync(always_locked, attempts=2, base_delay=0, retry_on=(sqlite3.OperationalError,), sleep=lambda _: None)
        self.assertEqual(len(calls), 2)


class TestRetryAsync(unittest.TestCase):
    def test_should_retry_filters_errors(self) -> None:
        calls = []

        async def rejected() -> None:
            calls.append(1)
            raise ValueError("client error")

        with self.assertRaises(ValueError):
            asyncio.run(
                retry_async(rejected, attempts=3, base_delay=0, retry_on=(ValueError,), should_retry=lambda exc: False)
            )
        self.assertEqual(len(calls), 1)

    def test_retries_then_returns(self) -> None:
        calls = []

        async def flaky() -> int:
            calls.append(1)
            if len(calls) == 1:
                raise TimeoutError("slow")
            return 42

        with self.assertLogs("dietplanner.retry", level="WARNING"):
            result = asyncio.run(retry_async(flaky, attempts=3, base_delay=0, retry_on=(TimeoutError,)))
        self.assertEqual(result, 42)
        self.assertEqual(len(calls), 2)


if __name__ == "__main__":
    unittest.main()
