"""
Job runner: picks the orchestration strategy for a job.

The parallel strategy is used only when the job asks for it and fan-out can
help (more than one section and a parallelism bound above one); everything
else runs sequentially. Both strategies return the same JobResult shape.
"""

from agents.base import DraftConfig
from agents.collaborators import (
    ChatModelGenerator, ChatModelReviewer, GenerationCollaborator, IntakeCollaborator,
    PersistenceCollaborator, QualityReviewer, RetrievalCollaborator
)
from agents.contracts import JobConfig, JobResult, Template
from orchestrator.parallel import ParallelOrchestrator
from orchestrator.sequential import SequentialOrchestrator
from orchestrator.stages import JobStages
from utils.execution_logger import ExecutionLogger


class JobRunner:
    """Holds both orchestrators over one shared set of job stages."""

    def __init__(self, stages: JobStages):
        self.stages = stages
        self.sequential = SequentialOrchestrator(stages)
        self.parallel = ParallelOrchestrator(stages)

    def choose_strategy(self, job: JobConfig, template: Template) -> str:
        max_parallel = job.flags.max_parallel or self.stages.config.max_parallel
        if job.flags.parallel and len(template.sections) > 1 and max_parallel > 1:
            return "parallel"
        return "sequential"

    def run(self, job: JobConfig, template: Template) -> JobResult:
        strategy = self.choose_strategy(job, template)
        self.stages.logger.info("RUNNER", f"{job.document_type_value}: {strategy} strategy "
                                          f"({len(template.sections)} sections)")
        if strategy == "parallel":
            return self.parallel.run_job(job, template)
        return self.sequential.run_job(job, template)


def create_runner(config: DraftConfig = None,
                  logger: ExecutionLogger = None,
                  generator: GenerationCollaborator = None,
                  reviewer: QualityReviewer = None,
                  intake: IntakeCollaborator = None,
                  retriever: RetrievalCollaborator = None,
                  store: PersistenceCollaborator = None) -> JobRunner:
    """
    Build a runner, filling in the chat-model adapters where no collaborator
    is given.

    Args:
        config: DraftConfig (DraftConfig.from_env() when omitted)
        logger: ExecutionLogger sink (a verbose one when omitted)
        generator / reviewer / intake / retriever / store: collaborators

    Returns:
        JobRunner ready to run jobs
    """
    config = config or DraftConfig.from_env()
    logger = logger or ExecutionLogger()
    logger.set_config({
        'max_parallel': config.max_parallel,
        'quality_gate_threshold': config.quality_gate_threshold,
        'final_gate_threshold': config.final_gate_threshold,
        'max_iterations': config.max_iterations,
        'standard_model': config.standard_model,
        'premium_model': config.premium_model,
    })

    stages = JobStages(
        generator=generator or ChatModelGenerator(config),
        logger=logger,
        config=config,
        intake=intake,
        retriever=retriever,
        reviewer=reviewer or ChatModelReviewer(config),
        store=store
    )
    return JobRunner(stages)


def run_job(job: JobConfig, template: Template, **kwargs) -> JobResult:
    """
    Convenience function to run one job.

    Args:
        job: Job configuration
        template: Template for the job's document type
        **kwargs: Passed to create_runner()

    Returns:
        JobResult
    """
    return create_runner(**kwargs).run(job, template)
