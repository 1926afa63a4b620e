import threading
import time

from conftest import wait_until
from netsweep.threading_module import BoundedExecutor, ConcurrencyGauge


def test_finished_tasks_are_not_retained():
    pool = BoundedExecutor(4, name="test-pool")
    futures = [pool.submit(lambda n=n: n * 2) for n in range(500)]
    assert pool.wait_all(timeout=10)
    assert [f.result() for f in futures] == [n * 2 for n in range(500)]
    assert wait_until(lambda: pool.outstanding == 0)
    pool.shutdown()


def test_wait_all_waits_for_running_tasks():
    release = threading.Event()
    pool = BoundedExecutor(2, name="test-pool")
    pool.submit(release.wait, 5)
    assert pool.outstanding == 1
    assert pool.wait_all(timeout=0.1) is False
    release.set()
    assert pool.wait_all(timeout=5) is True
    assert wait_until(lambda: pool.outstanding == 0)
    pool.shutdown()


def test_executors_sharing_slots_stay_under_one_limit():
    slots = threading.BoundedSemaphore(3)
    gauge = ConcurrencyGauge("shared")

    def work():
        with gauge:
            time.sleep(0.02)

    first = BoundedExecutor(3, name="first", slots=slots)
    second = BoundedExecutor(3, name="second", slots=slots)

    def feed(pool):
        for _ in range(20):
            pool.submit(work)

    feeders = [threading.Thread(target=feed, args=(p,)) for p in (first, second)]
    for t in feeders:
        t.start()
    for t in feeders:
        t.join(10)
    assert first.wait_all(timeout=10) and second.wait_all(timeout=10)
    assert 1 <= gauge.peak <= 3
    first.shutdown()
    second.shutdown()


def test_stopped_executor_refuses_new_work():
    stop = threading.Event()
    pool = BoundedExecutor(1, name="test-pool", stop_event=stop)
    release = threading.Event()
    pool.submit(release.wait, 5)
    stop.set()
    assert pool.submit(lambda: None) is None
    release.set()
    assert pool.wait_all(timeout=5)
    pool.shutdown()
