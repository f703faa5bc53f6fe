"""
Fan-out helper tests.

Bounded thread fan-out, failures isolated and aggregated, outcome order kept.
"""

import threading
import time

from core.fan_out import TaskReport, run_patch_tasks
from core.models.results import BatchStatus


class TestRunPatchTasks:

    def test_empty_items(self):
        result = run_patch_tasks("upload", [], lambda item: TaskReport())
        assert result.status == BatchStatus.EMPTY

    def test_outcomes_keep_item_order(self):
        def task(item):
            time.sleep(0.001 * (5 - item))
            return TaskReport(patch_id=item * 10, rows_affected=item)

        result = run_patch_tasks("upload", [1, 2, 3, 4], task, key_fn=lambda i: f"patch {i}")
        assert [o.patch_key for o in result.outcomes] == ["patch 1", "patch 2", "patch 3", "patch 4"]
        assert result.patch_ids == [10, 20, 30, 40]
        assert result.rows_affected == 10

    def test_failure_does_not_cancel_siblings(self):
        finished = []

        def task(item):
            if item == 2:
                raise RuntimeError("patch exploded")
            finished.append(item)
            return TaskReport(rows_affected=1)

        result = run_patch_tasks("associate", [1, 2, 3], task, patch_id_fn=lambda i: i)
        assert sorted(finished) == [1, 3]
        assert result.status == BatchStatus.COMPLETED_WITH_ERRORS
        failed = result.outcomes[1]
        assert not failed.success
        assert failed.patch_id == 2
        assert failed.error_type == "RuntimeError"
        assert failed.error_message == "patch exploded"

    def test_all_items_run_concurrently(self):
        barrier = threading.Barrier(5, timeout=5)

        def task(item):
            barrier.wait()
            return TaskReport()

        result = run_patch_tasks("download", list(range(5)), task)
        assert result.successful_count == 5

    def test_thread_bound_is_respected(self):
        lock = threading.Lock()
        running = []
        peak = []
        thread_names = set()

        def task(item):
            with lock:
                running.append(item)
                peak.append(len(running))
                thread_names.add(threading.current_thread().name)
            time.sleep(0.005)
            with lock:
                running.remove(item)
            return TaskReport(rows_affected=1)

        result = run_patch_tasks("upload", list(range(12)), task, max_threads=2)
        assert result.successful_count == 12
        assert max(peak) <= 2
        assert len(thread_names) <= 2
        assert all(name.startswith("upload") for name in thread_names)
