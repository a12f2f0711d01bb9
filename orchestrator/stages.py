"""
Job stages shared by the sequential and parallel orchestrators.

Both strategies run the same preamble (validation → intake → retrieval) and
the same ending (optional quality pipeline → persistence). Only the
drafting stage in between differs. JobTrace accumulates the audit trail
(execution order, checkpoints, log entries) that every JobResult carries,
whether the job succeeded or not.
"""

import os
import time
import uuid
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from agents.base import DraftConfig
from agents.collaborators import (
    GenerationCollaborator, IntakeCollaborator, MappingIntake, PersistenceCollaborator,
    FileDocumentStore, QualityReviewer, RetrievalCollaborator
)
from agents.context_builder import ContextBuilderAgent
from agents.contracts import (
    AgentError, AgentLogEntry, AgentResult, CheckpointResult, ContextBundle, DocumentType,
    JobConfig, JobMetadata, JobResult, MatterContext, Template
)
from agents.drafting import DraftingAgent
from agents.errors import ErrorCode, JobValidationError, StageFailedError
from agents.intake import IntakeAgent, IntakeRequest
from orchestrator.quality_pipeline import QualityPipeline, get_workflow_stats
from orchestrator.state import FAILED
from utils.execution_logger import ExecutionLogger, JobSummaryLog

VALIDATION_STAGE = "JobValidation"
PIPELINE_STAGE = "QualityPipeline"
PERSISTENCE_STAGE = "Persistence"


@dataclass
class JobTrace:
    """Audit trail of one job."""
    job_id: str
    start: float = field(default_factory=time.time)
    execution_order: List[str] = field(default_factory=list)
    checkpoints: List[CheckpointResult] = field(default_factory=list)
    agent_logs: List[AgentLogEntry] = field(default_factory=list)
    pipeline: Optional[dict] = None

    def record(self, result: AgentResult):
        self.checkpoints.extend(result.checkpoints)
        self.agent_logs.extend(result.agent_logs)

    @property
    def elapsed(self) -> float:
        return time.time() - self.start

    def metadata(self) -> JobMetadata:
        return JobMetadata(
            total_processing_time=self.elapsed,
            execution_order=list(self.execution_order),
            checkpoints=list(self.checkpoints),
            agent_logs=list(self.agent_logs)
        )


def validate_job_config(job: JobConfig):
    """
    Reject a job before any stage runs.

    Raises:
        JobValidationError: unsupported document type or empty input/output reference
    """
    if not job.document_type:
        raise JobValidationError("Document type is required")
    if not DocumentType.is_supported(job.document_type):
        raise JobValidationError(
            f"Unsupported document type: {job.document_type}. "
            f"Supported: {', '.join(DocumentType.supported())}"
        )
    if not job.input_ref:
        raise JobValidationError("Input data reference is required")
    if not job.output_path or not str(job.output_path).strip():
        raise JobValidationError("Output path is required")
    flags = job.flags
    if flags.max_parallel is not None and flags.max_parallel < 1:
        raise JobValidationError(f"max_parallel must be at least 1, got {flags.max_parallel}")
    if flags.max_iterations is not None and flags.max_iterations < 0:
        raise JobValidationError(f"max_iterations must be non-negative, got {flags.max_iterations}")


class JobStages:
    """
    The agents and collaborators a job runs through.

    Built once and shared by an orchestrator across jobs; holds no per-job
    state (that lives in JobTrace).
    """

    def __init__(self,
                 generator: GenerationCollaborator,
                 logger: ExecutionLogger,
                 config: DraftConfig = None,
                 intake: IntakeCollaborator = None,
                 retriever: RetrievalCollaborator = None,
                 reviewer: QualityReviewer = None,
                 store: PersistenceCollaborator = None):
        self.config = config or DraftConfig()
        self.logger = logger
        self.generator = generator
        self.reviewer = reviewer
        self.retriever = retriever
        self.store = store or FileDocumentStore()

        self.intake_agent = IntakeAgent(logger, intake or MappingIntake())
        self.context_builder = ContextBuilderAgent(retriever, logger, self.config) if retriever else None
        self.drafting_agent = DraftingAgent(generator, logger, self.config)

    @staticmethod
    def new_trace() -> JobTrace:
        return JobTrace(job_id=f"job-{uuid.uuid4().hex[:8]}")

    def run_stage(self, trace: JobTrace, stage: str, agent, payload):
        """Run one unit, record its audit data, and unwrap its output."""
        trace.execution_order.append(stage)
        result = agent.process(payload)
        trace.record(result)
        if not result.success:
            raise StageFailedError(stage, result.error)
        return result.data

    def acquire_context(self, job: JobConfig, template: Template,
                        trace: JobTrace) -> Tuple[MatterContext, ContextBundle]:
        """Validation, intake and best-effort retrieval."""
        validate_job_config(job)

        matter = self.run_stage(
            trace, IntakeAgent.name, self.intake_agent,
            IntakeRequest(raw_input=job.input_ref, document_type=job.document_type_value, template=template)
        )

        if self.context_builder is None:
            self.logger.info("CONTEXT", "No retriever configured, continuing without precedent")
            return matter, ContextBundle.empty(self.config.similarity_threshold)

        trace.execution_order.append(ContextBuilderAgent.name)
        result = self.context_builder.process(matter)
        trace.record(result)
        if not result.success:
            self.logger.warn("CONTEXT", f"Context Builder Agent failed: {result.error.message}; "
                                        f"continuing with empty context")
            return matter, ContextBundle.empty(self.config.similarity_threshold)
        return matter, result.data

    def finish(self, job: JobConfig, template: Template, matter: MatterContext,
               bundle: ContextBundle, document: str, trace: JobTrace, strategy: str) -> JobResult:
        """Optional quality pipeline, then persistence."""
        quality_score = None
        completion_status = None

        if job.flags.quality_pipeline:
            trace.execution_order.append(PIPELINE_STAGE)
            pipeline = QualityPipeline(self.generator, self.reviewer, self.logger, self.config)
            state = pipeline.run(
                document_type=job.document_type_value,
                template=template,
                matter_context=matter,
                context_bundle=bundle,
                draft=document,
                max_iterations=job.flags.max_iterations
            )
            trace.pipeline = get_workflow_stats(state)
            if state['completion_status'] == FAILED:
                messages = "; ".join(f"{e['node']}: {e['message']}" for e in state['errors'])
                raise StageFailedError(
                    PIPELINE_STAGE,
                    AgentError(code=ErrorCode.SYSTEM, message=f"Quality pipeline failed ({messages})")
                )
            document = state['final_document']
            quality_score = state['quality_score']
            completion_status = state['completion_status']

        trace.execution_order.append(PERSISTENCE_STAGE)
        try:
            saved = self.store.save(document, job.output_path, {
                'document_type': job.document_type_value,
                'client': matter.client,
                'strategy': strategy,
                'source': os.path.basename(job.input_ref) if isinstance(job.input_ref, str) else 'mapping',
            })
        except Exception as e:
            raise StageFailedError(
                PERSISTENCE_STAGE,
                AgentError(code=ErrorCode.PROCESSING_ERROR, message=f"Save failed: {e}", cause=e)
            )

        self.logger.info("JOB", f"Saved {saved.size} bytes to {saved.path}")
        result = JobResult(
            success=True,
            metadata=trace.metadata(),
            document=document,
            output=saved,
            pipeline=trace.pipeline
        )
        self._summarize(job, trace, strategy, result, quality_score, completion_status)
        return result

    def fail(self, job: JobConfig, trace: JobTrace, strategy: str, exc: Exception) -> JobResult:
        """Convert any job-level failure into a failed JobResult."""
        if isinstance(exc, JobValidationError):
            stage = VALIDATION_STAGE
            error = AgentError(code=ErrorCode.VALIDATION_ERROR, message=str(exc), cause=exc)
        elif isinstance(exc, StageFailedError):
            stage = exc.stage
            error = exc.error
        else:
            stage = trace.execution_order[-1] if trace.execution_order else VALIDATION_STAGE
            error = AgentError(code=ErrorCode.PROCESSING_ERROR, message=f"{type(exc).__name__}: {exc}", cause=exc)

        self.logger.error("JOB", f"Job failed at {stage}: {error.message}")
        result = JobResult(
            success=False,
            metadata=trace.metadata(),
            error=error,
            failed_stage=stage,
            pipeline=trace.pipeline
        )
        self._summarize(job, trace, strategy, result)
        return result

    def _summarize(self, job: JobConfig, trace: JobTrace, strategy: str, result: JobResult,
                   quality_score: float = None, completion_status: str = None):
        self.logger.log_job(JobSummaryLog(
            job_id=trace.job_id,
            document_type=str(job.document_type_value),
            strategy=strategy,
            success=result.success,
            duration_seconds=result.metadata.total_processing_time,
            execution_order=list(trace.execution_order),
            failed_stage=result.failed_stage,
            quality_score=quality_score,
            completion_status=completion_status
        ))
