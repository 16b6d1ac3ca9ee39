"""
Tests for the background task queue.
"""

import threading

from swipematch.background import BackgroundTaskQueue


def test_tasks_run_with_arguments():
    results = []
    with BackgroundTaskQueue(n_workers=2) as queue:
        for i in range(20):
            assert queue.submit('append', results.append, i)
        queue.join()

    assert sorted(results) == list(range(20))


def test_failing_task_is_recorded_and_isolated():
    results = []

    def boom(value):
        raise RuntimeError(f"bad value {value}")

    queue = BackgroundTaskQueue()
    queue.submit('boom', boom, 7)
    queue.submit('append', results.append, 'after')
    queue.join()
    queue.shutdown()

    assert results == ['after']
    assert len(queue.failures) == 1
    assert queue.failures[0].name == 'boom'
    assert 'bad value 7' in queue.failures[0].error


def test_failure_sink_is_bounded():
    def boom():
        raise ValueError("nope")

    queue = BackgroundTaskQueue(max_failures=3)
    for _ in range(10):
        queue.submit('boom', boom)
    queue.join()
    queue.shutdown()

    assert len(queue.failures) == 3


def test_submit_after_shutdown_is_rejected():
    queue = BackgroundTaskQueue()
    queue.shutdown()
    assert queue.submit('late', print) is False


def test_shutdown_drains_queued_tasks():
    gate = threading.Event()
    done = []

    queue = BackgroundTaskQueue()
    queue.submit('wait', gate.wait, 5)
    queue.submit('mark', done.append, True)
    gate.set()
    queue.shutdown(wait=True)

    assert done == [True]
    assert queue.pending() == 0


def test_submit_racing_shutdown_never_strands_tasks():
    ran = []
    accepted = []
    start = threading.Barrier(5)
    queue = BackgroundTaskQueue(n_workers=2)

    def submitter(offset):
        start.wait()
        for i in range(200):
            if queue.submit('append', ran.append, offset + i):
                accepted.append(offset + i)

    threads = [threading.Thread(target=submitter, args=(n * 1000,)) for n in range(4)]
    for t in threads:
        t.start()
    start.wait()
    queue.shutdown(wait=True)
    for t in threads:
        t.join()

    # Every accepted task ran before the workers stopped
    assert sorted(ran) == sorted(accepted)
    assert queue.pending() == 0
