"""
BatchResult tests.

Tests aggregation logic: all success, all failed, mixed, empty and the
failure error raised for partial results.
"""

import pytest

from core.models.results import BatchResult, BatchStatus, PatchOutcome
from exceptions import PatchProcessingError


def _outcome(key: str, success: bool, rows: int = 10, patch_id: int = None) -> PatchOutcome:
    return PatchOutcome(
        patch_key=key,
        patch_id=patch_id,
        success=success,
        rows_affected=rows if success else 0,
        error_type=None if success else "RuntimeError",
        error_message=None if success else "boom",
    )


class TestBatchResult:

    def test_all_success_status_completed(self):
        result = BatchResult(operation="upload", outcomes=[_outcome(f"p{i}", True) for i in range(3)])
        assert result.status == BatchStatus.COMPLETED
        assert result.success
        assert result.rows_affected == 30

    def test_all_failed_status_failed(self):
        result = BatchResult(operation="upload", outcomes=[_outcome(f"p{i}", False) for i in range(3)])
        assert result.status == BatchStatus.FAILED
        assert result.failed_count == 3

    def test_mixed_status_completed_with_errors(self):
        result = BatchResult(operation="associate", outcomes=[_outcome("a", True), _outcome("b", False)])
        assert result.status == BatchStatus.COMPLETED_WITH_ERRORS
        assert result.failed_patch_keys == ["b"]

    def test_empty_result(self):
        result = BatchResult(operation="download")
        assert result.status == BatchStatus.EMPTY
        assert result.success
        assert result.raise_for_failures() is result

    def test_patch_ids_of_successful_tasks(self):
        result = BatchResult(operation="upload", outcomes=[
            _outcome("a", True, patch_id=4), _outcome("b", False, patch_id=5), _outcome("c", True, patch_id=6),
        ])
        assert result.patch_ids == [4, 6]

    def test_raise_for_failures_names_failed_keys(self):
        result = BatchResult(operation="upload", outcomes=[_outcome("step 1, ids 0-99", False), _outcome("ok", True)])
        with pytest.raises(PatchProcessingError, match="step 1, ids 0-99") as excinfo:
            result.raise_for_failures()
        assert excinfo.value.result is result

    def test_summary(self):
        summary = BatchResult(operation="upload", outcomes=[_outcome("a", True)]).summary()
        assert summary["status"] == "completed"
        assert summary["task_count"] == 1
