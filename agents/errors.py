"""
Error codes and exceptions for the drafting system.

Units of work never raise to their callers: faults are reported as an
AgentError inside an AgentResult. The exceptions below are used inside the
orchestrators to unwind a job, and are converted back into a failed
JobResult at the orchestrator boundary.
"""

from enum import Enum


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"    # bad job configuration, not retryable
    CHECKPOINT_FAILED = "CHECKPOINT_FAILED"  # a pre/post invariant did not hold
    PROCESSING_ERROR = "PROCESSING_ERROR"    # uncaught fault inside a unit
    SYSTEM = "SYSTEM"                        # node-level fault in the quality pipeline


class JobValidationError(ValueError):
    """Raised when a job configuration is rejected before any stage runs."""

    code = ErrorCode.VALIDATION_ERROR


class StageFailedError(Exception):
    """
    Raised by an orchestrator when a stage reports failure.

    Carries the stage name and the AgentError reported by the unit so the
    job result can say which stage failed and why.
    """

    def __init__(self, stage: str, error):
        self.stage = stage
        self.error = error
        super().__init__(f"{stage} failed: {error.message}")

    @property
    def code(self) -> ErrorCode:
        return self.error.code
