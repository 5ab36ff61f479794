from __future__ import annotations

import threading
import time

import pytest

from hydrolink.runtime.executor import ExecutorClosedError, SerialExecutor


def test_jobs_run_in_fifo_order_on_one_thread():
    ex = SerialExecutor("t")
    seen = []
    threads = set()

    def job(i):
        seen.append(i)
        threads.add(threading.current_thread().name)

    futs = [ex.submit(job, i) for i in range(50)]
    for f in futs:
        f.result(timeout=1.0)
    ex.close()

    assert seen == list(range(50))
    assert threads == {"t"}


def test_call_returns_result_and_propagates_errors():
    ex = SerialExecutor("t")
    try:
        assert ex.call(lambda a, b: a + b, 2, 3) == 5
        with pytest.raises(ZeroDivisionError):
            ex.call(lambda: 1 / 0)
    finally:
        ex.close()


def test_call_from_worker_runs_inline():
    ex = SerialExecutor("t")
    try:
        # would deadlock if the nested call were queued
        assert ex.call(lambda: ex.call(lambda: "inner")) == "inner"
    finally:
        ex.close()


def test_post_failure_is_logged_not_raised(caplog):
    ex = SerialExecutor("t")

    def boom():
        raise RuntimeError("boom")

    ex.post(boom)
    assert ex.drain(timeout=1.0)
    ex.close()

    assert any("EXECUTOR_JOB_FAILED" in r.getMessage() for r in caplog.records)


def test_close_runs_queued_jobs_then_rejects():
    ex = SerialExecutor("t")
    done = []

    ex.post(lambda: time.sleep(0.05))
    ex.post(lambda: done.append(1))
    ex.close(timeout=1.0)

    assert done == [1]
    assert ex.closed
    with pytest.raises(ExecutorClosedError):
        ex.submit(lambda: None).result(timeout=0.1)

    ex.close()  # idempotent


def test_drain_times_out_on_slow_job():
    ex = SerialExecutor("t")
    gate = threading.Event()
    ex.post(gate.wait, 1.0)
    try:
        assert ex.drain(timeout=0.05) is False
    finally:
        gate.set()
        ex.close()
