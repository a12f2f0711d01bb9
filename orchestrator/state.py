"""
Pipeline state for the quality-gated refinement graph.

One PipelineState threads through every node of a single run. Nodes return
the keys they change and never mutate the state they receive; each run
builds its own state, so concurrent runs share nothing.
"""

from datetime import datetime
from typing import Dict, List, Optional, TypedDict

from agents.base import PREMIUM_TIER, STANDARD_TIER, DraftConfig
from agents.contracts import ContextBundle, MatterContext, Template

# Completion statuses
IN_PROGRESS = "in_progress"
QUALITY_APPROVED = "quality_approved"
FINAL_APPROVED = "final_approved"
MAX_ITERATIONS = "max_iterations"
FAILED = "failed"


class ModelUsage(TypedDict):
    standard_calls: int
    premium_calls: int
    total_tokens: int
    total_cost: float
    potential_premium_cost: float  # same tokens, all on the premium tier
    cost_savings: float
    savings_percentage: float
    call_details: List[Dict]


class PipelineState(TypedDict):
    # Input
    document_type: str
    template: Template
    matter_context: MatterContext
    context_bundle: ContextBundle
    draft: Optional[str]  # orchestrator output, when the pipeline runs after one

    # Iteration control
    current_iteration: int
    max_iterations: int
    quality_gate_threshold: float
    final_gate_threshold: float

    # History
    quality_history: List[Dict]
    refinement_history: List[Dict]

    # Documents
    context_summary: str
    generated_document: str
    refined_document: str
    final_document: str

    # Quality
    quality_score: float
    quality_feedback: List[str]
    passed_quality_gate: bool
    passed_final_gate: bool
    completion_status: str

    # Telemetry
    model_usage: ModelUsage
    node_trail: List[str]
    errors: List[Dict]
    warnings: List[str]
    start_time: datetime
    end_time: Optional[datetime]


def new_model_usage() -> ModelUsage:
    return {
        'standard_calls': 0,
        'premium_calls': 0,
        'total_tokens': 0,
        'total_cost': 0.0,
        'potential_premium_cost': 0.0,
        'cost_savings': 0.0,
        'savings_percentage': 0.0,
        'call_details': []
    }


def record_model_call(usage: ModelUsage, node: str, tier: str, tokens: int,
                      duration: float, config: DraftConfig) -> ModelUsage:
    """
    Return a new usage record with one more call accounted for.

    Counters only ever grow; savings are measured against running every
    call on the premium tier.
    """
    cost = config.cost_for(tier, tokens)
    total_cost = usage['total_cost'] + cost
    potential = usage['potential_premium_cost'] + config.cost_for(PREMIUM_TIER, tokens)
    savings = potential - total_cost

    return {
        'standard_calls': usage['standard_calls'] + (1 if tier == STANDARD_TIER else 0),
        'premium_calls': usage['premium_calls'] + (1 if tier == PREMIUM_TIER else 0),
        'total_tokens': usage['total_tokens'] + tokens,
        'total_cost': total_cost,
        'potential_premium_cost': potential,
        'cost_savings': savings,
        'savings_percentage': (savings / potential * 100) if potential > 0 else 0.0,
        'call_details': usage['call_details'] + [{
            'node': node,
            'tier': tier,
            'tokens': tokens,
            'cost': cost,
            'duration': duration,
            'timestamp': datetime.now().isoformat()
        }]
    }


def initialize_pipeline_state(document_type: str,
                              template: Template,
                              matter_context: MatterContext,
                              context_bundle: ContextBundle = None,
                              draft: str = None,
                              max_iterations: int = None,
                              config: DraftConfig = None) -> PipelineState:
    """Fresh state for one pipeline run."""
    config = config or DraftConfig()
    if max_iterations is None:
        max_iterations = config.max_iterations
    if max_iterations < 0:
        raise ValueError(f"max_iterations must be non-negative, got {max_iterations}")

    return {
        'document_type': document_type,
        'template': template,
        'matter_context': matter_context,
        'context_bundle': context_bundle or ContextBundle.empty(config.similarity_threshold),
        'draft': draft,
        'current_iteration': 0,
        'max_iterations': max_iterations,
        'quality_gate_threshold': config.quality_gate_threshold,
        'final_gate_threshold': config.final_gate_threshold,
        'quality_history': [],
        'refinement_history': [],
        'context_summary': "",
        'generated_document': "",
        'refined_document': "",
        'final_document': "",
        'quality_score': 0.0,
        'quality_feedback': [],
        'passed_quality_gate': False,
        'passed_final_gate': False,
        'completion_status': IN_PROGRESS,
        'model_usage': new_model_usage(),
        'node_trail': [],
        'errors': [],
        'warnings': [],
        'start_time': datetime.now(),
        'end_time': None
    }


def latest_document(state: PipelineState) -> str:
    """Most recent document version (refined over generated)."""
    return state['refined_document'] or state['generated_document']
