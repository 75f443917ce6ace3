# tests/test_mutation_queue.py
import threading
import time

import pytest

from pharmacy_pos.modules.pos.engine import SaleSyncEngine
from pharmacy_pos.modules.pos.mutation_queue import MutationQueue
from pharmacy_pos.utils.auth import OperatorContext


@pytest.fixture()
def queue(qapp):
    q = MutationQueue()
    yield q
    q.wait_for_idle(5000)


def test_jobs_run_one_at_a_time_in_order(queue):
    order = []
    running = []
    overlap = []
    lock = threading.Lock()

    def job(n):
        with lock:
            running.append(n)
            if len(running) > 1:
                overlap.append(tuple(running))
        time.sleep(0.01)
        order.append(n)
        with lock:
            running.remove(n)

    for n in range(6):
        queue.submit(f"job-{n}", job, n)
    assert queue.wait_for_idle(5000)

    assert order == list(range(6))
    assert overlap == []
    assert queue.pending() == 0


def test_failing_job_does_not_block_the_next(qtbot, queue):
    done = []

    def boom():
        raise RuntimeError("nope")

    with qtbot.waitSignal(queue.failed, timeout=2000) as blocker:
        queue.submit("boom", boom)
        queue.submit("after", done.append, "ran")
    assert blocker.args[0] == "boom"
    assert isinstance(blocker.args[1], RuntimeError)

    assert queue.wait_for_idle(5000)
    assert done == ["ran"]


def test_finished_carries_result(qtbot, queue):
    with qtbot.waitSignal(queue.finished, timeout=2000) as blocker:
        queue.submit("sum", sum, [1, 2, 3])
    assert blocker.args == ["sum", 6]


def test_rapid_double_add_through_queue_gives_one_line(queue, service, products):
    engine = SaleSyncEngine(service, OperatorContext(user_id=2), queue=queue)
    engine.submit("add_product", products["A"])
    engine.submit("add_product", products["A"])
    assert queue.wait_for_idle(5000)

    assert [ln.product_id for ln in engine.session.cart_lines] == [10]
    assert service.names().count("create_empty_sale") == 1
    assert service.names().count("add_sale_item") == 2


def test_queued_failure_is_reported_not_raised(qtbot, queue, service, products):
    engine = SaleSyncEngine(service, OperatorContext(user_id=2), queue=queue)
    with qtbot.waitSignal(queue.failed, timeout=2000) as blocker:
        engine.submit("update_quantity", 10, 2)
    assert blocker.args[0] == "update_quantity"
    assert engine.session.selected_sale is None
