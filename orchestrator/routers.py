"""
Gate routers for the quality pipeline.

Quality gate (80): below threshold → refine, at/above → final gate.
Final gate (90): below threshold → final refinement, at/above → approve.

The score is compared first, so a passing score always passes. A failing
score only routes to refinement while iterations remain; otherwise the
pipeline exits. Routers are pure functions of the state.
"""

from typing import Dict

from orchestrator.state import PipelineState

# Quality gate decisions
PASS = "pass"
REFINE = "refine"
EXHAUSTED = "max_iterations"

# Final gate decisions
APPROVE = "approve"


def iterations_remaining(state: PipelineState) -> bool:
    return state['current_iteration'] < state['max_iterations']


def quality_gate_router(state: PipelineState) -> str:
    """pass | refine | max_iterations"""
    if state['quality_score'] >= state['quality_gate_threshold']:
        return PASS
    if iterations_remaining(state):
        return REFINE
    return EXHAUSTED


def final_gate_router(state: PipelineState) -> str:
    """approve | refine | max_iterations"""
    if state['quality_score'] >= state['final_gate_threshold']:
        return APPROVE
    if iterations_remaining(state):
        return REFINE
    return EXHAUSTED


def get_gate_statistics(state: PipelineState) -> Dict:
    """Gate margins, iteration budget and score progression of a run."""
    score = state['quality_score']
    max_iterations = state['max_iterations']
    current = state['current_iteration']

    return {
        'quality_gate': {
            'threshold': state['quality_gate_threshold'],
            'current_score': score,
            'passed': state['passed_quality_gate'],
            'margin': score - state['quality_gate_threshold'],
            'attempts': len(state['quality_history'])
        },
        'final_gate': {
            'threshold': state['final_gate_threshold'],
            'current_score': score,
            'passed': state['passed_final_gate'],
            'margin': score - state['final_gate_threshold'],
            'ready_for_evaluation': state['passed_quality_gate']
        },
        'iterations': {
            'current': current,
            'maximum': max_iterations,
            'remaining': max_iterations - current,
            'utilization_rate': (current / max_iterations * 100) if max_iterations else 0.0
        },
        'quality_progression': [
            {
                'iteration': q['iteration'],
                'score': q['score'],
                'passed': q['passed_gate'],
                'timestamp': q['timestamp']
            }
            for q in state['quality_history']
        ]
    }
