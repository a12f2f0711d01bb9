"""
Parallel Orchestrator: fans template sections out to drafting workers.

    VALIDATE → INTAKE → CONTEXT → SPLIT → DRAFTING xN (parallel) → MERGE
             → [QUALITY PIPELINE] → PERSIST

Fan-out is a ThreadPoolExecutor with one worker per task (at most
max_parallel). The join is all-or-nothing: the first failed worker fails
the job, queued workers are cancelled, and running ones are waited for and
their output discarded. Leaving the executor block joins every thread, so
no worker outlives the job.
"""

import concurrent.futures
from typing import Dict, List

from agents.contracts import (
    AgentError, AgentResult, DraftingInput, DraftingTask, JobConfig, JobResult,
    MergeInput, PartialDraftOutput, Template
)
from agents.drafting import DraftingAgent
from agents.errors import ErrorCode, StageFailedError
from agents.overseer import OverseerAgent
from orchestrator.stages import JobStages, JobTrace
from utils.execution_logger import ExecutionLogger
from utils.task_splitter import split_into_tasks

STRATEGY = "parallel"
SPLITTER_STAGE = "TaskSplitter"


def parallel_stage_name(worker_count: int) -> str:
    """Execution-order marker recording that fan-out happened."""
    return f"{DraftingAgent.name}[x{worker_count} parallel]"


class ParallelOrchestrator:
    """
    Runs a job with concurrent drafting workers.

    Key features:
    - Deterministic split (same template + bound → same tasks)
    - Merge order follows the template, not completion order
    - Fail-fast join, no partial merges
    """

    def __init__(self, stages: JobStages, max_parallel: int = None):
        self.stages = stages
        self.max_parallel = max_parallel or stages.config.max_parallel
        self.overseer = OverseerAgent(stages.logger, stages.config)

    @property
    def logger(self) -> ExecutionLogger:
        return self.stages.logger

    def run_job(self, job: JobConfig, template: Template) -> JobResult:
        trace = self.stages.new_trace()
        max_parallel = job.flags.max_parallel or self.max_parallel

        self.logger.stage(f"PARALLEL JOB {trace.job_id}: {job.document_type_value} (max {max_parallel} workers)")

        try:
            matter, bundle = self.stages.acquire_context(job, template, trace)

            trace.execution_order.append(SPLITTER_STAGE)
            tasks = split_into_tasks(template, matter, bundle, max_parallel)
            self.logger.info("PARALLEL", f"Split {len(template.sections)} sections into {len(tasks)} tasks: "
                                         + "; ".join(f"{t.task_id}={t.section_ids}" for t in tasks))

            partials = self._draft_concurrently(tasks, trace)

            merged = self.stages.run_stage(
                trace, OverseerAgent.name, self.overseer,
                MergeInput(partial_drafts=partials, template=template)
            )

            return self.stages.finish(job, template, matter, bundle, merged.merged_markdown, trace, STRATEGY)

        except Exception as e:
            return self.stages.fail(job, trace, STRATEGY, e)

    def _draft_concurrently(self, tasks: List[DraftingTask], trace: JobTrace) -> List[PartialDraftOutput]:
        """
        Run one drafting worker per task and join.

        Returns:
            Partial drafts in completion order (the merge re-orders them)

        Raises:
            StageFailedError: the first worker failure observed
        """
        stage = parallel_stage_name(len(tasks))
        trace.execution_order.append(stage)
        agent = self.stages.drafting_agent

        completed: List[PartialDraftOutput] = []
        results: Dict[int, AgentResult] = {}
        failure = None

        with concurrent.futures.ThreadPoolExecutor(max_workers=len(tasks)) as executor:
            futures = {
                executor.submit(agent.process, DraftingInput.from_task(task)): task
                for task in tasks
            }

            for future in concurrent.futures.as_completed(futures):
                task = futures[future]
                try:
                    result = future.result()
                except Exception as e:
                    result = AgentResult(
                        success=False,
                        error=AgentError(code=ErrorCode.PROCESSING_ERROR, message=str(e), cause=e)
                    )

                if not result.success:
                    failure = (task, result)
                    for pending in futures:
                        pending.cancel()
                    break

                results[task.sequence] = result
                completed.append(result.data)
                self.logger.info("PARALLEL", f"{task.task_id} done ({len(completed)}/{len(tasks)})")

        if failure is not None:
            task, result = failure
            trace.record(result)
            self.logger.error("PARALLEL", f"{task.task_id} failed: {result.error.message}; "
                                          f"discarding {len(completed)} completed drafts")
            error = AgentError(
                code=result.error.code,
                message=f"{task.task_id} ({', '.join(task.section_ids)}): {result.error.message}",
                details=result.error.details,
                cause=result.error.cause
            )
            raise StageFailedError(stage, error)

        for sequence in sorted(results):
            trace.record(results[sequence])

        return completed
