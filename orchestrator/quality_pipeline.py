"""
Quality Pipeline using LangGraph.

Implements the refinement loop layered on an orchestrator draft:
CONTEXT ASSEMBLY → GENERATION → BASIC REFINEMENT → QUALITY ANALYSIS → QUALITY GATE (80)
    refine         → TARGETED REFINEMENT → QUALITY ANALYSIS
    pass           → FINAL GATE (90)
                        approve        → CLIENT READINESS
                        refine         → FINAL REFINEMENT → QUALITY ANALYSIS
                        max_iterations → CLIENT READINESS (quality approved)
    max_iterations → CLIENT READINESS (unresolved)

Features:
- Bounded refinement (max_iterations, default 3)
- Low scores are retried, crashed nodes are not: any node exception ends the run as failed
- Model usage accounting across every node (calls per tier, cost, savings vs all-premium)
"""

from datetime import datetime
from typing import Dict

from langgraph.graph import END, StateGraph

from agents.base import DraftConfig
from agents.collaborators import GenerationCollaborator, QualityReviewer
from agents.contracts import ContextBundle, MatterContext, Template
from orchestrator.nodes import PipelineNodes, guard_node
from orchestrator.routers import (
    APPROVE, EXHAUSTED, PASS, REFINE, final_gate_router, get_gate_statistics, quality_gate_router
)
from orchestrator.state import FAILED, PipelineState, initialize_pipeline_state
from utils.execution_logger import ExecutionLogger

# Node names
CONTEXT_ASSEMBLY = "context_assembly"
DOCUMENT_GENERATION = "document_generation"
BASIC_REFINEMENT = "basic_refinement"
QUALITY_ANALYSIS = "quality_analysis"
QUALITY_GATE = "quality_gate"
TARGETED_REFINEMENT = "targeted_refinement"
FINAL_GATE = "final_gate"
FINAL_REFINEMENT = "final_refinement"
CLIENT_READINESS = "client_readiness"

# Edge label for the failure exit
FAIL = "failed"
NEXT = "next"


def _failed(state: PipelineState) -> bool:
    return state['completion_status'] == FAILED


def _continue_or_fail(state: PipelineState) -> str:
    return FAIL if _failed(state) else NEXT


def _route_quality_gate(state: PipelineState) -> str:
    return FAIL if _failed(state) else quality_gate_router(state)


def _route_final_gate(state: PipelineState) -> str:
    return FAIL if _failed(state) else final_gate_router(state)


class QualityPipeline:
    """
    Quality-gated refinement workflow.

    Coordinates:
    - Generation collaborator: drafting and refinement calls
    - Quality reviewer: the 0-100 score the gates route on
    - Gate routers: pure decisions over the pipeline state
    """

    def __init__(self, generator: GenerationCollaborator, reviewer: QualityReviewer,
                 logger: ExecutionLogger, config: DraftConfig = None):
        if generator is None or reviewer is None:
            raise ValueError("The quality pipeline needs both a generator and a quality reviewer")
        self.config = config or DraftConfig()
        self.logger = logger
        self.nodes = PipelineNodes(generator, reviewer, logger, self.config)
        self.graph = self._build_graph()

    def _build_graph(self):
        """Build the LangGraph workflow."""
        workflow = StateGraph(PipelineState)

        steps = {
            CONTEXT_ASSEMBLY: self.nodes.context_assembly,
            DOCUMENT_GENERATION: self.nodes.document_generation,
            BASIC_REFINEMENT: self.nodes.basic_refinement,
            QUALITY_ANALYSIS: self.nodes.quality_analysis,
            QUALITY_GATE: self.nodes.quality_gate,
            TARGETED_REFINEMENT: self.nodes.targeted_refinement,
            FINAL_GATE: self.nodes.final_gate,
            FINAL_REFINEMENT: self.nodes.final_refinement,
            CLIENT_READINESS: self.nodes.client_readiness,
        }
        for name, node in steps.items():
            workflow.add_node(name, guard_node(name, node, self.logger))

        workflow.set_entry_point(CONTEXT_ASSEMBLY)

        # Linear steps: continue, or stop on a crashed node
        linear = [
            (CONTEXT_ASSEMBLY, DOCUMENT_GENERATION),
            (DOCUMENT_GENERATION, BASIC_REFINEMENT),
            (BASIC_REFINEMENT, QUALITY_ANALYSIS),
            (QUALITY_ANALYSIS, QUALITY_GATE),
            (TARGETED_REFINEMENT, QUALITY_ANALYSIS),
            (FINAL_REFINEMENT, QUALITY_ANALYSIS),
        ]
        for source, target in linear:
            workflow.add_conditional_edges(source, _continue_or_fail, {NEXT: target, FAIL: END})

        workflow.add_conditional_edges(
            QUALITY_GATE,
            _route_quality_gate,
            {
                REFINE: TARGETED_REFINEMENT,
                PASS: FINAL_GATE,
                EXHAUSTED: CLIENT_READINESS,
                FAIL: END
            }
        )

        workflow.add_conditional_edges(
            FINAL_GATE,
            _route_final_gate,
            {
                APPROVE: CLIENT_READINESS,
                REFINE: FINAL_REFINEMENT,
                EXHAUSTED: CLIENT_READINESS,
                FAIL: END
            }
        )

        workflow.add_edge(CLIENT_READINESS, END)

        return workflow.compile()

    def recursion_limit(self, max_iterations: int) -> int:
        # First pass is 5 steps plus 2 to exit; each refinement adds at most 4
        return 10 + 4 * (max_iterations + 1)

    def run(self, document_type: str, template: Template, matter_context: MatterContext,
            context_bundle: ContextBundle = None, draft: str = None,
            max_iterations: int = None) -> PipelineState:
        """
        Run the pipeline for one document.

        Args:
            document_type: Template identifier
            template: Template the document follows
            matter_context: Normalized matter data
            context_bundle: Retrieved passages (empty when omitted)
            draft: Orchestrator draft; when given, generation reuses it
            max_iterations: Refinement budget (config default when omitted)

        Returns:
            Final PipelineState (completion_status tells how it ended)
        """
        initial_state = initialize_pipeline_state(
            document_type, template, matter_context, context_bundle,
            draft=draft, max_iterations=max_iterations, config=self.config
        )

        self.logger.stage(f"QUALITY PIPELINE: {document_type} for {matter_context.client}")
        self.logger.info("PIPELINE", f"Gates {initial_state['quality_gate_threshold']:.0f}/"
                                     f"{initial_state['final_gate_threshold']:.0f}, "
                                     f"max {initial_state['max_iterations']} iterations"
                                     f"{', reusing draft' if draft else ''}")

        final_state = self.graph.invoke(
            initial_state,
            config={"recursion_limit": self.recursion_limit(initial_state['max_iterations'])}
        )

        stats = get_workflow_stats(final_state)
        self.logger.info("PIPELINE", f"Complete: {stats['status']} | score {stats['quality_score']:.1f} | "
                                     f"{stats['refinements']} refinements | "
                                     f"${stats['model_usage']['total_cost']:.4f} "
                                     f"({stats['model_usage']['savings_percentage']:.0f}% saved)")
        return final_state


def get_workflow_stats(state: PipelineState) -> Dict:
    """Summary of a pipeline run, attached to the job result."""
    end = state['end_time'] or datetime.now()
    usage = state['model_usage']

    return {
        'execution_time': (end - state['start_time']).total_seconds(),
        'iterations': state['current_iteration'],
        'max_iterations': state['max_iterations'],
        'quality_score': state['quality_score'],
        'status': state['completion_status'],
        'model_usage': {
            'standard_calls': usage['standard_calls'],
            'premium_calls': usage['premium_calls'],
            'total_tokens': usage['total_tokens'],
            'total_cost': usage['total_cost'],
            'cost_savings': usage['cost_savings'],
            'savings_percentage': usage['savings_percentage']
        },
        'quality_gates': {
            'passed_quality_gate': state['passed_quality_gate'],
            'passed_final_gate': state['passed_final_gate'],
            'quality_gate_threshold': state['quality_gate_threshold'],
            'final_gate_threshold': state['final_gate_threshold']
        },
        'gate_statistics': get_gate_statistics(state),
        'refinements': len(state['refinement_history']),
        'node_trail': list(state['node_trail']),
        'errors': len(state['errors']),
        'warnings': len(state['warnings'])
    }
