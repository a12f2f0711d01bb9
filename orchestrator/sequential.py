"""
Sequential Orchestrator: one drafting worker over the whole template.

    VALIDATE → INTAKE → CONTEXT → DRAFTING → [QUALITY PIPELINE] → PERSIST

Used for small templates, or whenever fan-out would not help.
"""

from agents.contracts import DraftingInput, JobConfig, JobResult, Template
from agents.drafting import DraftingAgent
from orchestrator.stages import JobStages
from utils.execution_logger import ExecutionLogger

STRATEGY = "sequential"


class SequentialOrchestrator:
    """
    Runs a job end to end without concurrency.

    Never raises: every failure comes back as a failed JobResult naming the
    stage that failed, with the audit trail collected up to that point.
    """

    def __init__(self, stages: JobStages):
        self.stages = stages

    @property
    def logger(self) -> ExecutionLogger:
        return self.stages.logger

    def run_job(self, job: JobConfig, template: Template) -> JobResult:
        trace = self.stages.new_trace()

        self.logger.stage(f"SEQUENTIAL JOB {trace.job_id}: {job.document_type_value}")

        try:
            matter, bundle = self.stages.acquire_context(job, template, trace)

            partial = self.stages.run_stage(
                trace, DraftingAgent.name, self.stages.drafting_agent,
                DraftingInput(template=template, matter_context=matter, context_bundle=bundle)
            )

            return self.stages.finish(job, template, matter, bundle, partial.markdown, trace, STRATEGY)

        except Exception as e:
            return self.stages.fail(job, trace, STRATEGY, e)
