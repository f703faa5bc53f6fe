"""
Execution Result Data Models.

Represents results of the per-patch fan-out calls.
No business logic - pure data structures plus the status rollup.

Exports:
    BatchStatus: Aggregate status values
    PatchOutcome: Result of one per-patch task
    BatchResult: Aggregate of all tasks of one call
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from exceptions import PatchProcessingError


class BatchStatus(str, Enum):
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"
    EMPTY = "empty"


class PatchOutcome(BaseModel):
    """
    Result of one per-patch task.

    patch_key identifies the task before the store assigned an id
    ("step 3, ids 300000-399999"); patch_id is the store id when known.
    """

    patch_key: str = Field(..., description="Human readable task identifier")
    patch_id: Optional[int] = Field(default=None, description="Store-assigned patch id")
    success: bool = Field(..., description="Task committed without error")
    rows_affected: int = Field(default=0, ge=0, description="Rows written or read by the task")
    error_type: Optional[str] = Field(default=None, description="Exception class name if failed")
    error_message: Optional[str] = Field(default=None, description="Error message if failed")
    duration_ms: Optional[int] = Field(default=None, ge=0, description="Task wall time in milliseconds")


class BatchResult(BaseModel):
    """
    Aggregate of one fan-out call (upload, associate, download).

    Failed tasks never abort their siblings; the caller decides what a
    partial result means via raise_for_failures().
    """

    operation: str = Field(..., description="Fan-out operation name")
    outcomes: List[PatchOutcome] = Field(default_factory=list)

    @property
    def task_count(self) -> int:
        return len(self.outcomes)

    @property
    def successful_count(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed_count(self) -> int:
        return self.task_count - self.successful_count

    @property
    def rows_affected(self) -> int:
        return sum(o.rows_affected for o in self.outcomes if o.success)

    @property
    def failed_patch_keys(self) -> List[str]:
        return [o.patch_key for o in self.outcomes if not o.success]

    @property
    def patch_ids(self) -> List[int]:
        """Store ids of successful tasks, in task order."""
        return [o.patch_id for o in self.outcomes if o.success and o.patch_id is not None]

    @property
    def status(self) -> BatchStatus:
        if not self.outcomes:
            return BatchStatus.EMPTY
        if self.failed_count == 0:
            return BatchStatus.COMPLETED
        if self.successful_count == 0:
            return BatchStatus.FAILED
        return BatchStatus.COMPLETED_WITH_ERRORS

    @property
    def success(self) -> bool:
        return self.failed_count == 0

    def raise_for_failures(self) -> "BatchResult":
        """
        Raises:
            PatchProcessingError: At least one task failed
        """
        if self.failed_count:
            raise PatchProcessingError(self)
        return self

    def summary(self) -> dict:
        return {
            "operation": self.operation,
            "status": self.status.value,
            "task_count": self.task_count,
            "successful_count": self.successful_count,
            "failed_count": self.failed_count,
            "rows_affected": self.rows_affected,
            "failed_patch_keys": self.failed_patch_keys[:20],
        }
