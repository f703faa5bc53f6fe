# ============================================================================
# SENSOR DATA EXCEPTIONS
# ============================================================================
# STATUS: Shared - used by core, infrastructure, services and CLI
# PURPOSE: Exception hierarchy separating contract violations, fatal setup
#          problems and per-patch runtime failures
# EXPORTS: ContractViolationError, BusinessLogicError, ConfigurationError,
#          ReferenceFrameConflictError, ExtractionError, ReferenceFrameError,
#          DatabaseError, DatabaseConnectionError, ValidationError,
#          PatchProcessingError
# DEPENDENCIES: None (standard library only)
# ============================================================================

"""
Custom Exception Hierarchy

Distinguishes between:
1. Contract Violations (programming bugs that need fixing)
2. Fatal setup errors (configuration, malformed recordings)
3. Business Logic Failures (expected runtime issues, reported per patch)

Configuration and extraction errors abort the whole run. Store errors that
happen inside a per-patch task are collected into a BatchResult instead, and
only surface as PatchProcessingError when the caller asks for it.
"""


class ContractViolationError(TypeError):
    """
    Raised when component contracts are violated (programming bugs).

    These indicate:
    - Point clouds handed to the encoder without the required columns
    - Column arrays of mismatching length
    - Wrong types passed across a component boundary

    These should NEVER be caught and handled - they indicate bugs
    that need to be fixed in the code.
    """
    pass


class BusinessLogicError(Exception):
    """
    Base class for expected runtime failures.

    Subclasses represent specific categories of business failures.
    """
    pass


class ConfigurationError(Exception):
    """
    System configuration error.

    These are fatal and indicate misconfiguration that prevents the
    pipeline from operating.

    Examples:
        - CITYDB_DATABASE_URL not set
        - Invalid paths passed on the command line
        - Malformed georeferencing documents
    """
    pass


class ReferenceFrameConflictError(ConfigurationError):
    """
    Two merged frame graphs define the same child frame differently.

    Merging is a union; a frame identifier may only appear twice if both
    definitions are identical. Raised inside extraction worker processes,
    so it must survive a pickle round trip.
    """

    def __init__(self, child_frame_id: str, message: str):
        self.child_frame_id = child_frame_id
        super().__init__(message)

    def __reduce__(self):
        return (self.__class__, (self.child_frame_id, str(self)))


class ExtractionError(BusinessLogicError):
    """
    Point extraction from a log recording failed.

    Fatal for the whole upload run.

    Examples:
        - Recording has no start/stop time
        - Window query failed inside the recording reader
    """
    pass


class ReferenceFrameError(ExtractionError):
    """
    A point cloud could not be resolved into the target frame.

    Examples:
        - No transform chain from the sensor frame to 'world'
        - Cycle in the frame graph
    """
    pass


class DatabaseError(BusinessLogicError):
    """
    Database operation failures.

    The repository converts psycopg errors into this type, keeping the
    driver error as __cause__.

    Examples:
        - Statement failed inside a per-patch task
        - Truncating a table group failed during clear
        - Listing geometries for the fallback explode failed
    """
    pass


class DatabaseConnectionError(DatabaseError):
    """
    The connection pool could not be opened.

    Raised once at startup; there is no retry.
    """
    pass


class ValidationError(BusinessLogicError):
    """
    Business validation failed.

    Note: This is different from ContractViolationError.
    This is for caller-supplied values, not type contracts.

    Examples:
        - Non-positive distance threshold
        - Non-positive step duration
        - Patch step size below one
    """
    pass


class PatchProcessingError(BusinessLogicError):
    """
    One or more per-patch tasks of a fan-out call failed.

    Carries the aggregated BatchResult so callers can inspect which
    patches failed and which were committed.
    """

    def __init__(self, result):
        self.result = result
        failed = ", ".join(result.failed_patch_keys[:20])
        if len(result.failed_patch_keys) > 20:
            failed += ", ..."
        super().__init__(
            f"{result.operation}: {result.failed_count} of {result.task_count} "
            f"patch tasks failed ({failed})"
        )
