"""
Tests for admission control: the fair token bucket and the timekeeper.

Bucket tests refill by hand so ordering is deterministic; only the
timekeeper tests depend on wall-clock time.
"""
import threading
import time

import pytest

from crpt_tools.errors import Interrupted, LimitExceeded, Stopped
from crpt_tools.ratelimit import FairTokenBucket, Timekeeper, TimeUnit


# ── Helpers ──────────────────────────────────────────────────────────

def _wait_until(predicate, timeout=2.0):
    """Poll until predicate() is true. Fails the test on timeout."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return
        time.sleep(0.005)
    pytest.fail("condition not reached in time")


def _start_waiter(bucket, outcomes, name, cancel=None):
    """Start a thread that acquires from bucket and records the outcome."""
    def run():
        try:
            bucket.acquire(cancel)
            outcomes.append((name, "admitted"))
        except (Interrupted, Stopped, LimitExceeded) as e:
            outcomes.append((name, e.code))

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    return thread


def _drained(limit=1):
    bucket = FairTokenBucket(limit)
    for _ in range(limit):
        bucket.acquire()
    return bucket


# ── TimeUnit ─────────────────────────────────────────────────────────

class TestTimeUnit:

    @pytest.mark.parametrize("name,seconds", [
        ("nanoseconds", 1e-9),
        ("milliseconds", 1e-3),
        ("seconds", 1.0),
        ("minutes", 60.0),
        ("days", 86400.0),
    ])
    def test_window_length_is_one_unit(self, name, seconds):
        assert TimeUnit.parse(name).seconds == seconds

    def test_parse_is_case_insensitive(self):
        assert TimeUnit.parse("Seconds") is TimeUnit.SECONDS
        assert TimeUnit.parse(TimeUnit.HOURS) is TimeUnit.HOURS

    def test_unknown_unit(self):
        with pytest.raises(ValueError, match="Unknown time unit"):
            TimeUnit.parse("fortnights")


# ── FairTokenBucket ──────────────────────────────────────────────────

class TestFairTokenBucket:

    def test_starts_full(self):
        bucket = FairTokenBucket(5)
        for _ in range(5):
            bucket.acquire()
        assert bucket.available == 0
        assert bucket.admitted == 5

    def test_rejects_zero_limit(self):
        with pytest.raises(ValueError):
            FairTokenBucket(0)

    def test_blocks_when_empty(self):
        bucket = _drained()
        outcomes = []
        thread = _start_waiter(bucket, outcomes, "late")

        _wait_until(lambda: bucket.waiting == 1)
        time.sleep(0.05)
        assert outcomes == []

        bucket.refill()
        thread.join(1)
        assert outcomes == [("late", "admitted")]

    def test_waiters_served_in_arrival_order(self):
        bucket = _drained()
        outcomes = []
        threads = []
        for i in range(5):
            threads.append(_start_waiter(bucket, outcomes, i))
            _wait_until(lambda n=i: bucket.waiting == n + 1)

        for served in range(1, 6):
            bucket.refill()
            _wait_until(lambda n=served: len(outcomes) == n)

        assert [name for name, _ in outcomes] == [0, 1, 2, 3, 4]
        for t in threads:
            t.join(1)

    def test_refill_releases_all_blocked_callers(self):
        bucket = _drained(limit=3)
        outcomes = []
        threads = []
        for i in range(3):
            threads.append(_start_waiter(bucket, outcomes, i))
            _wait_until(lambda n=i: bucket.waiting == n + 1)

        assert bucket.refill() == 3
        for t in threads:
            t.join(1)

        assert [name for name, _ in outcomes] == [0, 1, 2]
        assert bucket.available == 0

    def test_new_arrival_does_not_overtake_waiter(self):
        bucket = _drained(limit=2)
        outcomes = []
        first = _start_waiter(bucket, outcomes, "first")
        _wait_until(lambda: bucket.waiting == 1)
        second = _start_waiter(bucket, outcomes, "second")
        _wait_until(lambda: bucket.waiting == 2)

        bucket.refill()
        first.join(1)
        second.join(1)
        assert [name for name, _ in outcomes] == ["first", "second"]

    def test_refill_caps_at_limit(self):
        bucket = FairTokenBucket(3)
        bucket.acquire()
        assert bucket.refill() == 1
        assert bucket.refill() == 0
        assert bucket.available == 3
        assert bucket.admitted == 0

    def test_cancelled_waiter_consumes_nothing(self):
        bucket = _drained()
        cancel = threading.Event()
        outcomes = []
        cancelled = _start_waiter(bucket, outcomes, "cancelled", cancel=cancel)
        _wait_until(lambda: bucket.waiting == 1)
        behind = _start_waiter(bucket, outcomes, "behind")
        _wait_until(lambda: bucket.waiting == 2)

        cancel.set()
        cancelled.join(1)
        assert outcomes == [("cancelled", "interrupted")]
        assert bucket.waiting == 1

        bucket.refill()
        behind.join(1)
        assert outcomes[-1] == ("behind", "admitted")
        assert bucket.admitted == 1

    def test_cancel_already_set(self):
        bucket = FairTokenBucket(1)
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(Interrupted):
            bucket.acquire(cancel)
        assert bucket.available == 1

    def test_close_wakes_waiters_with_stopped(self):
        bucket = _drained()
        outcomes = []
        thread = _start_waiter(bucket, outcomes, "waiter")
        _wait_until(lambda: bucket.waiting == 1)

        bucket.close()
        thread.join(1)
        assert outcomes == [("waiter", "stopped")]
        assert bucket.waiting == 0

    def test_acquire_after_close(self):
        bucket = FairTokenBucket(2)
        bucket.close()
        with pytest.raises(Stopped):
            bucket.acquire()
        assert bucket.refill() == 0

    def test_counter_guard_trips_on_overfilled_bucket(self):
        bucket = FairTokenBucket(2)
        bucket._available = 3  # more tokens than the window allows
        bucket.acquire()
        bucket.acquire()
        with pytest.raises(LimitExceeded) as exc_info:
            bucket.acquire()
        assert exc_info.value.details == {"admitted": 3, "limit": 2}

    def test_available_never_negative_under_contention(self):
        bucket = FairTokenBucket(4)
        admitted = []
        lock = threading.Lock()

        def worker():
            bucket.acquire()
            with lock:
                admitted.append(1)

        threads = [threading.Thread(target=worker, daemon=True) for _ in range(12)]
        for t in threads:
            t.start()

        _wait_until(lambda: len(admitted) == 4)
        for expected in (8, 12):
            assert 0 <= bucket.available <= 4
            bucket.refill()
            _wait_until(lambda n=expected: len(admitted) == n)

        for t in threads:
            t.join(1)
        assert bucket.available == 0


# ── Timekeeper ───────────────────────────────────────────────────────

class TestTimekeeper:

    def test_first_tick_after_one_interval(self):
        ticks = []
        keeper = Timekeeper(0.3, lambda: ticks.append(time.monotonic()))
        started = time.monotonic()
        keeper.start()
        try:
            time.sleep(0.1)
            assert ticks == []
            _wait_until(lambda: len(ticks) >= 1)
            assert ticks[0] - started >= 0.25
        finally:
            assert keeper.stop() is True

    def test_ticks_at_fixed_rate(self):
        counter = []
        keeper = Timekeeper(0.05, lambda: counter.append(1))
        keeper.start()
        time.sleep(0.33)
        keeper.stop()
        assert 4 <= len(counter) <= 7
        assert keeper.ticks == len(counter)

    def test_stop_is_prompt_and_final(self):
        counter = []
        keeper = Timekeeper(60, lambda: counter.append(1))
        keeper.start()
        started = time.monotonic()
        assert keeper.stop(timeout=1.0) is True
        assert time.monotonic() - started < 0.5
        assert not keeper.running
        assert counter == []

    def test_failing_tick_does_not_kill_thread(self):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")

        keeper = Timekeeper(0.05, flaky)
        keeper.start()
        _wait_until(lambda: len(calls) >= 3)
        keeper.stop()

    def test_sub_millisecond_interval_is_throttled(self):
        counter = []
        keeper = Timekeeper(TimeUnit.NANOSECONDS.seconds, lambda: counter.append(1))
        keeper.start()
        time.sleep(0.1)
        keeper.stop()
        assert 1 <= len(counter) <= 150

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            Timekeeper(0, lambda: None)
