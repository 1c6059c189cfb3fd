import asyncio
import unittest
from datetime import datetime, timedelta, timezone

from lumen.llm.errors import OperationTimeout
from lumen.utils import truncate, utc_day_key, with_timeout


class TestWithTimeout(unittest.IsolatedAsyncioTestCase):
    async def test_result_within_deadline(self):
        async def quick():
            return 42

        self.assertEqual(await with_timeout(quick(), 1.0, "quick"), 42)

    async def test_errors_inside_the_call_propagate(self):
        async def broken():
            raise ValueError("bad")

        with self.assertRaises(ValueError):
            await with_timeout(broken(), 1.0)

    async def test_expired_call_keeps_running(self):
        release = asyncio.Event()
        finished = []

        async def slow():
            await release.wait()
            finished.append(True)
            return "late"

        with self.assertRaises(OperationTimeout) as cm:
            await with_timeout(slow(), 0.05, "slow")
        self.assertEqual(cm.exception.label, "slow")

        release.set()
        for _ in range(5):
            await asyncio.sleep(0)
        self.assertEqual(finished, [True])

    async def test_late_failure_is_consumed(self):
        release = asyncio.Event()

        async def fails_late():
            await release.wait()
            raise RuntimeError("after deadline")

        with self.assertRaises(OperationTimeout):
            await with_timeout(fails_late(), 0.05)

        with self.assertLogs("lumen.utils", level="DEBUG") as logs:
            release.set()
            for _ in range(5):
                await asyncio.sleep(0)
        self.assertIn("after deadline", logs.output[0])


class TestHelpers(unittest.TestCase):
    def test_utc_day_key_uses_utc(self):
        local = datetime(2026, 10, 18, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
        self.assertEqual(utc_day_key(local), "2026-10-19")

    def test_truncate(self):
        self.assertEqual(truncate("short", 10), "short")
        self.assertEqual(truncate("abcdefghij", 5, "…"), "abcd…")


if __name__ == "__main__":
    unittest.main()
