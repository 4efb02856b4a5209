import time
import unittest
from concurrent.futures import ThreadPoolExecutor

import pytest

from trust_guard.shared.clock import ManualClock
from trust_guard.shared.config import FailedLoginConfig
from trust_guard.shared.errors import ConfigurationError
from trust_guard.trust import FailedLoginTracker


class TestFailedLoginTracker(unittest.TestCase):
    def setUp(self):
        self.clock = ManualClock(1_000_000.0)
        self.tracker = FailedLoginTracker(clock=self.clock)

    def test_counts_increase_per_failure(self):
        self.assertEqual(self.tracker.record_failure("1.2.3.4"), 1)
        self.assertEqual(self.tracker.record_failure("1.2.3.4"), 2)
        self.assertEqual(self.tracker.record_failure("1.2.3.4"), 3)
        self.assertEqual(self.tracker.get_failure_count("1.2.3.4"), 3)

    def test_penalty_from_threshold_on(self):
        self.tracker.record_failure("1.2.3.4")
        self.tracker.record_failure("1.2.3.4")
        self.assertEqual(self.tracker.should_penalize("1.2.3.4"), (False, 0))
        self.tracker.record_failure("1.2.3.4")
        self.assertEqual(self.tracker.should_penalize("1.2.3.4"), (True, -50))
        self.tracker.record_failure("1.2.3.4")
        self.assertEqual(self.tracker.should_penalize("1.2.3.4"), (True, -50))

    def test_unknown_key(self):
        self.assertEqual(self.tracker.get_failure_count("never-seen"), 0)
        self.assertEqual(self.tracker.should_penalize("never-seen"), (False, 0))
        self.assertEqual(self.tracker.get_time_until_reset("never-seen"), 0.0)

    def test_keys_are_independent(self):
        for _ in range(3):
            self.tracker.record_failure("a")
        self.tracker.record_failure("b")
        self.assertTrue(self.tracker.should_penalize("a")[0])
        self.assertFalse(self.tracker.should_penalize("b")[0])

    def test_failures_expire_after_window(self):
        for _ in range(3):
            self.tracker.record_failure("1.2.3.4")
        self.clock.advance(600)
        self.assertEqual(self.tracker.get_failure_count("1.2.3.4"), 3)
        self.clock.advance(1)
        self.assertEqual(self.tracker.get_failure_count("1.2.3.4"), 0)
        self.assertEqual(self.tracker.should_penalize("1.2.3.4"), (False, 0))
        self.assertEqual(self.tracker.tracked_keys(), 0)

    def test_window_slides(self):
        self.tracker.record_failure("k")
        self.clock.advance(300)
        self.tracker.record_failure("k")
        self.clock.advance(200)
        self.tracker.record_failure("k")
        self.assertEqual(self.tracker.get_failure_count("k"), 3)
        self.clock.advance(150)
        self.assertEqual(self.tracker.get_failure_count("k"), 2)
        self.assertEqual(self.tracker.record_failure("k"), 3)

    def test_reset_failures(self):
        for _ in range(4):
            self.tracker.record_failure("1.2.3.4")
        self.tracker.reset_failures("1.2.3.4")
        self.assertEqual(self.tracker.get_failure_count("1.2.3.4"), 0)
        self.assertEqual(self.tracker.should_penalize("1.2.3.4"), (False, 0))
        self.tracker.reset_failures("not-tracked")

    def test_time_until_reset(self):
        self.tracker.record_failure("k")
        self.clock.advance(100)
        self.tracker.record_failure("k")
        self.assertEqual(self.tracker.get_time_until_reset("k"), 500.0)
        self.clock.advance(550)
        # The first failure expired; the second now bounds the reset.
        self.assertEqual(self.tracker.get_time_until_reset("k"), 50.0)
        self.clock.advance(51)
        self.assertEqual(self.tracker.get_time_until_reset("k"), 0.0)

    def test_tracked_keys(self):
        self.tracker.record_failure("a")
        self.tracker.record_failure("b")
        self.assertEqual(self.tracker.tracked_keys(), 2)


def test_custom_policy_from_config():
    clock = ManualClock(0.0)
    config = FailedLoginConfig(threshold=2, expiry_window=30.0, penalty=-70)
    tracker = FailedLoginTracker.from_config(config, clock=clock)
    tracker.record_failure("user@example.com")
    tracker.record_failure("user@example.com")
    assert tracker.should_penalize("user@example.com") == (True, -70)
    clock.advance(31)
    assert tracker.should_penalize("user@example.com") == (False, 0)


@pytest.mark.parametrize(
    "kwargs",
    [{"threshold": 0}, {"expiry_window": 0}, {"expiry_window": -5.0}],
)
def test_invalid_policy_is_rejected(kwargs):
    with pytest.raises(ConfigurationError):
        FailedLoginTracker(**kwargs)


def test_concurrent_failures_are_all_counted():
    tracker = FailedLoginTracker(threshold=3, clock=ManualClock(0.0))
    with ThreadPoolExecutor(max_workers=16) as pool:
        list(pool.map(lambda _: tracker.record_failure("hammer"), range(100)))
    assert tracker.get_failure_count("hammer") == 100
    assert tracker.should_penalize("hammer") == (True, -50)


def test_concurrent_mixed_keys():
    tracker = FailedLoginTracker(clock=ManualClock(0.0))
    keys = [f"10.0.0.{i}" for i in range(20)]

    def work(i):
        key = keys[i % len(keys)]
        tracker.record_failure(key)
        tracker.should_penalize(key)
        tracker.get_time_until_reset(key)

    with ThreadPoolExecutor(max_workers=16) as pool:
        list(pool.map(work, range(400)))
    assert tracker.tracked_keys() == 20
    assert all(tracker.get_failure_count(key) == 20 for key in keys)


def test_tracked_keys_are_bounded():
    tracker = FailedLoginTracker(clock=ManualClock(0.0), max_tracked_keys=32, shards=4)
    for i in range(200):
        tracker.record_failure(f"key-{i}")
    assert tracker.tracked_keys() <= 32


def test_many_failures_on_one_key_stay_linear():
    clock = ManualClock(0.0)
    tracker = FailedLoginTracker(clock=clock)
    started = time.perf_counter()
    for i in range(20_000):
        assert tracker.record_failure("1.2.3.4") == i + 1
    assert time.perf_counter() - started < 2.0
    assert tracker.get_failure_count("1.2.3.4") == 20_000
    assert tracker.get_time_until_reset("1.2.3.4") == 600.0


def test_only_expired_failures_are_dropped():
    clock = ManualClock(0.0)
    tracker = FailedLoginTracker(clock=clock)
    for _ in range(50):
        tracker.record_failure("k")
        clock.advance(10)
    # now=500; everything recorded within the last 600s still counts
    assert tracker.get_failure_count("k") == 50
    clock.advance(195)
    # now=695; failures at t=0..90 have left the window
    assert tracker.get_failure_count("k") == 40
    assert tracker.get_time_until_reset("k") == 5.0


if __name__ == "__main__":
    unittest.main()
