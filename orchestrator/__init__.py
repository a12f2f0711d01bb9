"""
Orchestrator: job strategies and the LangGraph quality pipeline.

1. SequentialOrchestrator → one drafting worker over the whole template
2. ParallelOrchestrator → split → N drafting workers → merge
3. QualityPipeline → score, refine and gate (80 / 90) the draft
4. JobRunner → picks the strategy, returns the JobResult
"""

from orchestrator.stages import JobStages, validate_job_config
from orchestrator.sequential import SequentialOrchestrator
from orchestrator.parallel import ParallelOrchestrator
from orchestrator.quality_pipeline import QualityPipeline, get_workflow_stats
from orchestrator.routers import quality_gate_router, final_gate_router, get_gate_statistics
from orchestrator.runner import JobRunner, create_runner, run_job

__all__ = [
    'JobStages', 'validate_job_config',
    'SequentialOrchestrator', 'ParallelOrchestrator',
    'QualityPipeline', 'get_workflow_stats',
    'quality_gate_router', 'final_gate_router', 'get_gate_statistics',
    'JobRunner', 'create_runner', 'run_job'
]
