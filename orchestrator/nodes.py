"""
Nodes of the quality pipeline.

Each node takes the current PipelineState and returns only the keys it
changes. Model-backed nodes go through the generation collaborator (or the
quality reviewer) and account for the call in model_usage:

    context_assembly      no model call
    document_generation   premium tier (skipped when a draft is supplied)
    basic_refinement      standard tier
    quality_analysis      reviewer, standard tier
    targeted_refinement   standard tier, uses the review feedback
    final_refinement      standard tier
    client_readiness      no model call

guard_node() wraps a node so an exception becomes a recorded error and a
failed status instead of propagating.
"""

import re
import time
from datetime import datetime
from typing import Callable, Dict

from agents.base import PREMIUM_TIER, STANDARD_TIER, DraftConfig, estimate_tokens
from agents.collaborators import (
    BASIC_REFINEMENT, DOCUMENT_GENERATION, FINAL_REFINEMENT, TARGETED_REFINEMENT,
    GenerationCollaborator, GenerationRequest, QualityReviewer
)
from orchestrator.routers import APPROVE, EXHAUSTED, final_gate_router, quality_gate_router
from orchestrator.state import (
    FAILED, FINAL_APPROVED, IN_PROGRESS, MAX_ITERATIONS, QUALITY_APPROVED,
    PipelineState, latest_document, record_model_call
)
from utils.execution_logger import ExecutionLogger

NodeFn = Callable[[PipelineState], Dict]


def guard_node(name: str, node: NodeFn, logger: ExecutionLogger) -> NodeFn:
    """
    Wrap a node: record it in the node trail, and turn any exception into a
    system error that ends the run with status failed. Crashed nodes are
    never retried.
    """
    def run(state: PipelineState) -> Dict:
        trail = state['node_trail'] + [name]
        try:
            update = node(state)
        except Exception as e:
            logger.error("PIPELINE", f"{name} failed: {type(e).__name__}: {e}")
            return {
                'node_trail': trail,
                'completion_status': FAILED,
                'end_time': datetime.now(),
                'errors': state['errors'] + [{
                    'node': name,
                    'type': 'system',
                    'message': f"{type(e).__name__}: {e}",
                    'recoverable': True,
                    'timestamp': datetime.now().isoformat()
                }]
            }
        update['node_trail'] = trail
        return update
    return run


def tidy_markdown(document: str) -> str:
    """Strip trailing whitespace and collapse runs of blank lines."""
    lines = [line.rstrip() for line in document.strip().split('\n')]
    return re.sub(r'\n{3,}', '\n\n', '\n'.join(lines)) + '\n'


class PipelineNodes:
    """Node implementations, bound to the collaborators of one pipeline."""

    def __init__(self, generator: GenerationCollaborator, reviewer: QualityReviewer,
                 logger: ExecutionLogger, config: DraftConfig = None):
        self.generator = generator
        self.reviewer = reviewer
        self.logger = logger
        self.config = config or DraftConfig()

    def _request(self, state: PipelineState, purpose: str, tier: str = STANDARD_TIER,
                 temperature: float = None, current_document: str = None,
                 feedback=None) -> GenerationRequest:
        return GenerationRequest(
            purpose=purpose,
            template=state['template'],
            sections=state['template'].ordered_sections(),
            matter=state['matter_context'],
            context=state['context_bundle'],
            tier=tier,
            temperature=self.config.refinement_temperature if temperature is None else temperature,
            current_document=current_document,
            feedback=list(feedback or []),
            context_summary=state['context_summary']
        )

    def _generate(self, state: PipelineState, node: str, request: GenerationRequest):
        """One generation call plus its usage record."""
        start = time.time()
        text = self.generator.generate(request)
        duration = time.time() - start

        if not text or not text.strip():
            raise ValueError(f"{node}: generator returned an empty document")

        prompt_text = (request.current_document or "") + request.context_summary
        tokens = estimate_tokens(prompt_text + text, self.config.chars_per_token)
        usage = record_model_call(state['model_usage'], node, request.tier, tokens, duration, self.config)
        self.logger.log_model_call(node, request.tier, tokens, self.config.cost_for(request.tier, tokens), duration)
        return text, usage

    # --- First pass ---

    def context_assembly(self, state: PipelineState) -> Dict:
        bundle = state['context_bundle']
        matter = state['matter_context']

        lines = [f"Client: {matter.client}"]
        if matter.attorney:
            lines.append(f"Attorney: {matter.attorney}")
        if bundle.is_empty:
            lines.append("No supporting precedent available; rely on the matter data only.")
        else:
            lines.append(f"{bundle.results_count} precedent passages (search terms: "
                         f"{', '.join(bundle.search_terms[:8])})")
            for p in bundle.passages:
                lines.append(f"- {p.citation or p.source or p.id} (similarity {p.similarity:.2f})")

        warnings = state['warnings']
        invalid = [v.field for v in matter.validation_results if not v.is_valid]
        if invalid:
            warnings = warnings + [f"Matter fields failed validation: {', '.join(invalid)}"]

        self.logger.info("CONTEXT_ASSEMBLY", f"{bundle.results_count} passages, "
                                             f"{len(matter.normalized_fields)} matter fields")
        return {'context_summary': "\n".join(lines), 'warnings': warnings}

    def document_generation(self, state: PipelineState) -> Dict:
        if state.get('draft'):
            self.logger.info("GENERATION", f"Using orchestrator draft ({len(state['draft'])} chars)")
            return {'generated_document': state['draft']}

        request = self._request(state, DOCUMENT_GENERATION, tier=PREMIUM_TIER,
                                temperature=self.config.drafting_temperature)
        text, usage = self._generate(state, 'document_generation', request)
        self.logger.info("GENERATION", f"Generated {len(text)} chars ({PREMIUM_TIER} tier)")
        return {'generated_document': text, 'model_usage': usage}

    def basic_refinement(self, state: PipelineState) -> Dict:
        request = self._request(state, BASIC_REFINEMENT, current_document=state['generated_document'])
        text, usage = self._generate(state, 'basic_refinement', request)
        self.logger.info("REFINEMENT", f"Basic refinement: {len(state['generated_document'])} → {len(text)} chars")
        return {'refined_document': text, 'model_usage': usage}

    def quality_analysis(self, state: PipelineState) -> Dict:
        document = latest_document(state)
        request = self._request(state, "quality_analysis", temperature=self.config.review_temperature,
                                current_document=document)

        start = time.time()
        review = self.reviewer.review(document, request)
        duration = time.time() - start

        score = float(review.score)
        if not 0 <= score <= 100:
            raise ValueError(f"quality score out of range: {score}")

        tokens = review.tokens or estimate_tokens(document, self.config.chars_per_token)
        usage = record_model_call(state['model_usage'], 'quality_analysis', STANDARD_TIER,
                                  tokens, duration, self.config)
        self.logger.log_model_call('quality_analysis', STANDARD_TIER, tokens,
                                   self.config.cost_for(STANDARD_TIER, tokens), duration)

        passed = score >= state['quality_gate_threshold']
        self.logger.info("QUALITY", f"Score {score:.1f}/100 (iteration {state['current_iteration']}, "
                                    f"{len(review.feedback)} findings)")

        return {
            'quality_score': score,
            'quality_feedback': list(review.feedback),
            'quality_history': state['quality_history'] + [{
                'iteration': state['current_iteration'],
                'score': score,
                'criteria_scores': dict(review.criteria_scores),
                'passed_gate': passed,
                'feedback': list(review.feedback),
                'timestamp': datetime.now().isoformat()
            }],
            'model_usage': usage
        }

    # --- Gates ---

    def quality_gate(self, state: PipelineState) -> Dict:
        decision = quality_gate_router(state)
        self.logger.log_gate('quality_gate', decision, state['quality_score'], state['quality_gate_threshold'],
                             state['current_iteration'], state['max_iterations'])

        update = {'passed_quality_gate': state['quality_score'] >= state['quality_gate_threshold'],
                  'passed_final_gate': False}
        if decision == EXHAUSTED:
            update['completion_status'] = MAX_ITERATIONS
            update['warnings'] = state['warnings'] + [
                f"Quality gate not reached after {state['current_iteration']} refinement iterations "
                f"(score {state['quality_score']:.1f})"
            ]
        else:
            update['completion_status'] = IN_PROGRESS
        return update

    def final_gate(self, state: PipelineState) -> Dict:
        decision = final_gate_router(state)
        self.logger.log_gate('final_gate', decision, state['quality_score'], state['final_gate_threshold'],
                             state['current_iteration'], state['max_iterations'])

        if decision == APPROVE:
            return {'passed_final_gate': state['passed_quality_gate'], 'completion_status': FINAL_APPROVED}
        if decision == EXHAUSTED:
            return {'passed_final_gate': False, 'completion_status': QUALITY_APPROVED}
        return {'passed_final_gate': False, 'completion_status': IN_PROGRESS}

    # --- Refinement loop ---

    def _refine(self, state: PipelineState, node: str, purpose: str) -> Dict:
        iteration = state['current_iteration'] + 1
        if iteration > state['max_iterations']:
            raise RuntimeError(f"{node}: iteration budget exhausted ({state['max_iterations']})")

        request = self._request(state, purpose, current_document=latest_document(state),
                                feedback=state['quality_feedback'],
                                temperature=self.config.final_refinement_temperature
                                if purpose == FINAL_REFINEMENT else None)
        text, usage = self._generate(state, node, request)

        self.logger.info("REFINEMENT", f"{node} iteration {iteration}/{state['max_iterations']} "
                                       f"(score was {state['quality_score']:.1f})")
        return {
            'refined_document': text,
            'current_iteration': iteration,
            'refinement_history': state['refinement_history'] + [{
                'iteration': iteration,
                'node': node,
                'score_before': state['quality_score'],
                'feedback_addressed': list(state['quality_feedback']),
                'timestamp': datetime.now().isoformat()
            }],
            'model_usage': usage
        }

    def targeted_refinement(self, state: PipelineState) -> Dict:
        return self._refine(state, 'targeted_refinement', TARGETED_REFINEMENT)

    def final_refinement(self, state: PipelineState) -> Dict:
        return self._refine(state, 'final_refinement', FINAL_REFINEMENT)

    # --- Exit ---

    def client_readiness(self, state: PipelineState) -> Dict:
        final_document = tidy_markdown(latest_document(state))
        self.logger.info("CLIENT_READINESS", f"Final document ready: {state['completion_status']} "
                                             f"(score {state['quality_score']:.1f}, "
                                             f"{len(state['refinement_history'])} refinement passes)")
        return {'final_document': final_document, 'end_time': datetime.now()}
