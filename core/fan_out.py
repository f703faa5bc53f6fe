# ============================================================================
# FAN-OUT HELPER - Bounded thread fan-out of patch tasks, outcomes aggregated
# ============================================================================
# STATUS: Core - used by upload, association and download services
# PURPOSE: Run per-patch store tasks concurrently and collect a BatchResult
# EXPORTS: run_patch_tasks, TaskReport
# ============================================================================
"""
Fan-Out Helper.

Per-patch tasks run on at most max_threads threads, one per item when no
bound is given. Callers pass a small multiple of the pool size: each task
acquires one pooled connection for its whole duration, so the pool bound is
the admission control and surplus threads block on acquisition.

A failing task never cancels its siblings. Its exception is logged with the
patch key and recorded as a failed PatchOutcome; the call joins all tasks and
returns the aggregate.

Usage:
    def upload_one(item):
        id_range, patch = item
        patch_id = repository.insert_patch(conn, patch)
        return TaskReport(patch_id=patch_id, rows_affected=patch.size)

    result = run_patch_tasks(
        "upload", patches, upload_one,
        key_fn=lambda i: i[0].key,
        max_threads=config.fan_out_threads(pool.max_size),
    )
    result.raise_for_failures()
"""

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, TypeVar

from core.models.results import BatchResult, PatchOutcome
from util_logger import LoggerFactory, ComponentType

T = TypeVar("T")

logger = LoggerFactory.create_logger(ComponentType.CORE, "fan_out")


@dataclass(frozen=True)
class TaskReport:
    """What a successful task hands back."""
    patch_id: Optional[int] = None
    rows_affected: int = 0


def run_patch_tasks(
    operation: str,
    items: Sequence[T],
    task: Callable[[T], TaskReport],
    key_fn: Callable[[T], str] = str,
    patch_id_fn: Optional[Callable[[T], Optional[int]]] = None,
    max_threads: Optional[int] = None
) -> BatchResult:
    """
    Run task(item) for every item on a bounded thread pool and join all.

    Args:
        operation: Name used in logs and the BatchResult
        items: Task inputs
        task: Callable returning a TaskReport or raising
        key_fn: Human readable key of an item for logs and outcomes
        patch_id_fn: Store patch id of an item, if known before the task runs
        max_threads: Upper bound of concurrent threads, len(items) when None

    Returns:
        BatchResult with one outcome per item, in item order
    """
    if not items:
        logger.info(f"{operation}: no patch tasks to run")
        return BatchResult(operation=operation)

    def run_one(item: T) -> PatchOutcome:
        patch_key = key_fn(item)
        known_patch_id = patch_id_fn(item) if patch_id_fn else None
        started = time.monotonic()
        try:
            report = task(item)
        except Exception as e:
            duration_ms = int((time.monotonic() - started) * 1000)
            task_logger = LoggerFactory.create_with_context(
                ComponentType.CORE, "fan_out", operation=operation, patch_id=known_patch_id
            )
            task_logger.error(
                f"❌ {operation} task failed for {patch_key}: {type(e).__name__}: {e}",
                exc_info=True,
                extra={'custom_dimensions': {
                    'patch_key': patch_key,
                    'error_type': type(e).__name__,
                }}
            )
            return PatchOutcome(
                patch_key=patch_key,
                patch_id=known_patch_id,
                success=False,
                error_type=type(e).__name__,
                error_message=str(e),
                duration_ms=duration_ms,
            )

        duration_ms = int((time.monotonic() - started) * 1000)
        patch_id = report.patch_id if report.patch_id is not None else known_patch_id
        return PatchOutcome(
            patch_key=patch_key,
            patch_id=patch_id,
            success=True,
            rows_affected=report.rows_affected,
            duration_ms=duration_ms,
        )

    threads = len(items) if max_threads is None else max(1, min(len(items), max_threads))
    logger.info(f"{operation}: starting {len(items)} patch tasks on {threads} thread(s)")
    with ThreadPoolExecutor(max_workers=threads, thread_name_prefix=operation) as executor:
        futures = [executor.submit(run_one, item) for item in items]
        outcomes = [future.result() for future in futures]

    result = BatchResult(operation=operation, outcomes=outcomes)
    log = logger.info if result.success else logger.warning
    log(
        f"{operation}: {result.successful_count}/{result.task_count} patch tasks succeeded "
        f"({result.status.value})",
        extra={'custom_dimensions': result.summary()}
    )
    return result
