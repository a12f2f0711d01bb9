"""
Unit of Work: the lifecycle every processing step goes through.

    validate input → pre-checks → execute → post-checks → result or error

A unit is a plain value holding the functions for each step, so an agent is
built by composing a UnitOfWork rather than subclassing one. process() never
raises; every fault comes back as an AgentResult with an AgentError.

On success the unit emits one AgentLogEntry whose input/output hashes are
computed over each entity's to_dict(), so the same data always hashes the
same across processes.
"""

import hashlib
import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from agents.contracts import AgentError, AgentLogEntry, AgentResult, CheckpointResult, json_safe
from agents.errors import ErrorCode
from utils.execution_logger import ExecutionLogger

HASH_LENGTH = 16


def checkpoint(name: str, passed: bool, message: str = "") -> CheckpointResult:
    """Build an immutable checkpoint result stamped with the current time."""
    return CheckpointResult(name=name, passed=bool(passed), message=message)


def content_hash(payload: Dict) -> str:
    """Short sha256 of the canonical JSON form of a serialized entity."""
    canonical = json.dumps(json_safe(payload), sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:HASH_LENGTH]


def _to_dict(entity: Any) -> Dict:
    return entity.to_dict()


def _no_checks(*args) -> List[CheckpointResult]:
    return []


def _always_valid(value: Any) -> bool:
    return True


@dataclass
class UnitOfWork:
    """
    One auditable processing step.

    Attributes:
        name: Unit name used in execution order and log entries
        description: One-line description (shown in logs)
        execute: input -> output, the core transformation
        logger: Sink for tagged lines and audit entries
        validate: input -> bool, False rejects the input as malformed
        pre_checks: input -> [CheckpointResult], run before execute
        post_checks: (input, output) -> [CheckpointResult], run after execute
        serialize_input / serialize_output: entity -> dict used for hashing
        tag: Console tag, defaults to the upper-cased name
    """
    name: str
    description: str
    execute: Callable[[Any], Any]
    logger: ExecutionLogger
    validate: Callable[[Any], bool] = _always_valid
    pre_checks: Callable[[Any], List[CheckpointResult]] = _no_checks
    post_checks: Callable[[Any, Any], List[CheckpointResult]] = _no_checks
    serialize_input: Callable[[Any], Dict] = _to_dict
    serialize_output: Callable[[Any], Dict] = _to_dict
    tag: Optional[str] = None

    @property
    def log_tag(self) -> str:
        return self.tag or self.name.upper()

    def process(self, input_data: Any) -> AgentResult:
        """
        Run the full lifecycle on one input.

        Returns:
            AgentResult with the output and one log entry on success, or an
            AgentError (PROCESSING_ERROR / CHECKPOINT_FAILED) on failure
        """
        start = time.time()
        checkpoints: List[CheckpointResult] = []

        def fail(code: ErrorCode, message: str, details: List[CheckpointResult] = None,
                 cause: BaseException = None) -> AgentResult:
            self.logger.error(self.log_tag, message, code=code.value)
            return AgentResult(
                success=False,
                error=AgentError(code=code, message=message, details=details or [], cause=cause),
                processing_time=time.time() - start,
                checkpoints=list(checkpoints),
            )

        # Step 1: input validation
        if input_data is None:
            return fail(ErrorCode.PROCESSING_ERROR, f"{self.name}: input is required")
        try:
            valid = self.validate(input_data)
        except Exception as e:
            return fail(ErrorCode.PROCESSING_ERROR, f"{self.name}: input validation raised {e}", cause=e)
        if not valid:
            return fail(ErrorCode.PROCESSING_ERROR, f"{self.name}: invalid input")

        try:
            # Step 2: pre-checks
            pre = list(self.pre_checks(input_data))
            checkpoints.extend(pre)
            failed = [c for c in pre if not c.passed]
            if failed:
                return fail(
                    ErrorCode.CHECKPOINT_FAILED,
                    f"{self.name}: pre-checks failed: {', '.join(c.name for c in failed)}",
                    details=failed,
                )

            # Step 3: execute
            self.logger.debug(self.log_tag, f"{self.description}...")
            output = self.execute(input_data)

            # Step 4: post-checks (execute's side effects stay in place)
            post = list(self.post_checks(input_data, output))
            checkpoints.extend(post)
            failed = [c for c in post if not c.passed]
            if failed:
                return fail(
                    ErrorCode.CHECKPOINT_FAILED,
                    f"{self.name}: post-checks failed: {', '.join(c.name for c in failed)}",
                    details=failed,
                )

            # Step 5: audit entry
            processing_time = time.time() - start
            entry = AgentLogEntry(
                agent=self.name,
                input_hash=content_hash(self.serialize_input(input_data)),
                output_hash=content_hash(self.serialize_output(output)),
                processing_time=processing_time,
                checkpoints_passed=len(checkpoints),
            )
        except Exception as e:
            return fail(ErrorCode.PROCESSING_ERROR, f"{self.name}: {type(e).__name__}: {e}", cause=e)

        self.logger.log_unit(entry.to_dict())
        return AgentResult(
            success=True,
            data=output,
            processing_time=processing_time,
            checkpoints=checkpoints,
            agent_logs=[entry],
        )
