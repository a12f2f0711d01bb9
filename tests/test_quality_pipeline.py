import pytest

from agents.base import PREMIUM_TIER, STANDARD_TIER, DraftConfig
from agents.collaborators import (
    BASIC_REFINEMENT, DOCUMENT_GENERATION, DRAFT, FINAL_REFINEMENT, TARGETED_REFINEMENT
)
from agents.errors import ErrorCode
from orchestrator.quality_pipeline import QualityPipeline, get_workflow_stats
from orchestrator.routers import (
    APPROVE, EXHAUSTED, PASS, REFINE, final_gate_router, get_gate_statistics, quality_gate_router
)
from orchestrator.sequential import SequentialOrchestrator
from orchestrator.state import (
    FAILED, FINAL_APPROVED, MAX_ITERATIONS, QUALITY_APPROVED, initialize_pipeline_state,
    new_model_usage, record_model_call
)
from tests.conftest import FakeGenerator, ScriptedReviewer


def gate_state(template, matter, score, iteration, max_iterations=3):
    state = initialize_pipeline_state("patent-assignment-agreement", template, matter,
                                      max_iterations=max_iterations)
    state['quality_score'] = score
    state['current_iteration'] = iteration
    return state


def run_pipeline(logger, template, matter, bundle, scores, generator=None, config=None, **kwargs):
    generator = generator or FakeGenerator()
    reviewer = ScriptedReviewer(scores)
    pipeline = QualityPipeline(generator, reviewer, logger, config or DraftConfig())
    state = pipeline.run("patent-assignment-agreement", template, matter, bundle, **kwargs)
    return state, generator, reviewer


# --- Routers ---

@pytest.mark.parametrize("score,iteration,expected", [
    (78, 1, REFINE),
    (82, 1, PASS),
    (80, 0, PASS),
    (79.9, 3, EXHAUSTED),
    (95, 3, PASS),
])
def test_quality_gate_router(template, matter, score, iteration, expected):
    assert quality_gate_router(gate_state(template, matter, score, iteration)) == expected


@pytest.mark.parametrize("score,iteration,expected", [
    (90, 1, APPROVE),
    (85, 1, REFINE),
    (85, 3, EXHAUSTED),
    (96, 3, APPROVE),
])
def test_final_gate_router(template, matter, score, iteration, expected):
    assert final_gate_router(gate_state(template, matter, score, iteration)) == expected


def test_gate_statistics(template, matter):
    state = gate_state(template, matter, 84, 1)
    state['passed_quality_gate'] = True

    stats = get_gate_statistics(state)

    assert stats['quality_gate']['margin'] == 4
    assert stats['final_gate']['margin'] == -6
    assert stats['final_gate']['ready_for_evaluation'] is True
    assert stats['iterations']['remaining'] == 2


# --- Full runs ---

def test_first_pass_approval(logger, template, matter, bundle):
    state, generator, reviewer = run_pipeline(logger, template, matter, bundle, [95])

    assert state['completion_status'] == FINAL_APPROVED
    assert state['passed_quality_gate'] and state['passed_final_gate']
    assert state['current_iteration'] == 0
    assert state['refinement_history'] == []
    assert generator.purposes() == [DOCUMENT_GENERATION, BASIC_REFINEMENT]
    assert state['node_trail'] == [
        "context_assembly", "document_generation", "basic_refinement",
        "quality_analysis", "quality_gate", "final_gate", "client_readiness",
    ]
    assert state['final_document'].startswith("## Alpha")
    assert state['end_time'] is not None


def test_refinement_until_approval(logger, template, matter, bundle):
    state, generator, reviewer = run_pipeline(logger, template, matter, bundle, [70, 85, 92])

    assert state['completion_status'] == FINAL_APPROVED
    assert state['quality_score'] == 92
    assert state['current_iteration'] == 2
    assert [r['node'] for r in state['refinement_history']] == ["targeted_refinement", "final_refinement"]
    assert [q['score'] for q in state['quality_history']] == [70, 85, 92]
    assert generator.purposes() == [
        DOCUMENT_GENERATION, BASIC_REFINEMENT, TARGETED_REFINEMENT, FINAL_REFINEMENT
    ]
    # Review feedback is handed to the targeted pass
    assert generator.requests[2].feedback == ["Tighten the definitions (review 1)"]
    assert generator.requests[3].temperature == DraftConfig().final_refinement_temperature
    assert "Revised: final_refinement." in state['final_document']


def test_final_refinement_temperature_comes_from_config(logger, template, matter, bundle):
    config = DraftConfig(final_refinement_temperature=0.0, refinement_temperature=0.3)

    state, generator, reviewer = run_pipeline(logger, template, matter, bundle, [70, 85, 92], config=config)

    temperatures = {r.purpose: r.temperature for r in generator.requests}
    assert temperatures[FINAL_REFINEMENT] == 0.0
    assert temperatures[TARGETED_REFINEMENT] == 0.3


def test_quality_gate_never_reached(logger, template, matter, bundle):
    state, generator, reviewer = run_pipeline(logger, template, matter, bundle, [70])

    assert state['completion_status'] == MAX_ITERATIONS
    assert state['current_iteration'] == 3
    assert reviewer.calls == 4
    assert not state['passed_quality_gate']
    assert not state['passed_final_gate']
    assert state['final_document']
    assert any("Quality gate not reached" in w for w in state['warnings'])
    assert [g.decision for g in logger.gate_decisions] == [REFINE, REFINE, REFINE, EXHAUSTED]


def test_final_gate_never_reached(logger, template, matter, bundle):
    state, generator, reviewer = run_pipeline(logger, template, matter, bundle, [85])

    assert state['completion_status'] == QUALITY_APPROVED
    assert state['current_iteration'] == 3
    assert state['passed_quality_gate'] and not state['passed_final_gate']
    assert all(r['node'] == "final_refinement" for r in state['refinement_history'])


def test_zero_iteration_budget(logger, template, matter, bundle):
    state, generator, reviewer = run_pipeline(logger, template, matter, bundle, [70], max_iterations=0)

    assert state['completion_status'] == MAX_ITERATIONS
    assert state['current_iteration'] == 0
    assert state['refinement_history'] == []
    assert reviewer.calls == 1


def test_negative_iteration_budget_is_rejected(logger, template, matter, bundle):
    with pytest.raises(ValueError):
        run_pipeline(logger, template, matter, bundle, [95], max_iterations=-1)


def test_supplied_draft_skips_premium_generation(logger, template, matter, bundle):
    draft = "## Alpha\n\nAgreed text.\n\n## Beta\n\nAgreed text.\n\n## Gamma\n\nAgreed text."
    state, generator, reviewer = run_pipeline(logger, template, matter, bundle, [95], draft=draft)

    assert state['generated_document'] == draft
    assert generator.purposes() == [BASIC_REFINEMENT]
    assert state['model_usage']['premium_calls'] == 0
    assert state['model_usage']['standard_calls'] == 2


def test_generation_crash_fails_without_retry(logger, template, matter, bundle):
    generator = FakeGenerator(fail_purposes=[BASIC_REFINEMENT])
    state, _, reviewer = run_pipeline(logger, template, matter, bundle, [95], generator=generator)

    assert state['completion_status'] == FAILED
    assert reviewer.calls == 0
    assert state['node_trail'][-1] == "basic_refinement"
    assert generator.purposes().count(BASIC_REFINEMENT) == 1
    error = state['errors'][0]
    assert error['node'] == "basic_refinement"
    assert error['type'] == "system"
    assert "generation backend unavailable" in error['message']
    assert state['final_document'] == ""


def test_reviewer_crash_fails(logger, template, matter, bundle):
    pipeline = QualityPipeline(FakeGenerator(), ScriptedReviewer([95], fail=True), logger)
    state = pipeline.run("patent-assignment-agreement", template, matter, bundle)

    assert state['completion_status'] == FAILED
    assert state['errors'][0]['node'] == "quality_analysis"


def test_out_of_range_score_fails(logger, template, matter, bundle):
    state, _, _ = run_pipeline(logger, template, matter, bundle, [140])

    assert state['completion_status'] == FAILED
    assert "out of range" in state['errors'][0]['message']


def test_pipeline_requires_both_collaborators(logger):
    with pytest.raises(ValueError):
        QualityPipeline(FakeGenerator(), None, logger)


def test_concurrent_runs_do_not_share_state(logger, template, matter, bundle):
    first, _, _ = run_pipeline(logger, template, matter, bundle, [95])
    second, _, _ = run_pipeline(logger, template, matter, bundle, [70, 85, 92])

    assert first['refinement_history'] == []
    assert len(second['refinement_history']) == 2
    assert first['model_usage'] is not second['model_usage']


# --- Usage accounting ---

def test_usage_accounting(logger, template, matter, bundle):
    state, _, _ = run_pipeline(logger, template, matter, bundle, [70, 85, 92])
    usage = state['model_usage']

    assert usage['premium_calls'] == 1
    assert usage['standard_calls'] == 6  # basic + 3 reviews + 2 refinements
    assert usage['total_tokens'] == sum(c['tokens'] for c in usage['call_details'])
    assert usage['total_cost'] == pytest.approx(sum(c['cost'] for c in usage['call_details']))
    assert usage['cost_savings'] == pytest.approx(usage['potential_premium_cost'] - usage['total_cost'])
    assert 0 < usage['savings_percentage'] < 80
    assert len(logger.model_calls) == 7


def test_usage_counters_only_grow():
    config = DraftConfig()
    usage = new_model_usage()
    history = [usage]
    for tier in (PREMIUM_TIER, STANDARD_TIER, STANDARD_TIER):
        usage = record_model_call(usage, "node", tier, 1000, 0.1, config)
        history.append(usage)

    for before, after in zip(history, history[1:]):
        assert after['total_tokens'] > before['total_tokens']
        assert after['total_cost'] > before['total_cost']
        assert len(after['call_details']) == len(before['call_details']) + 1
    assert history[0]['call_details'] == []
    assert usage['total_cost'] == pytest.approx(0.15 + 0.03 + 0.03)
    assert usage['potential_premium_cost'] == pytest.approx(0.45)
    assert usage['savings_percentage'] == pytest.approx(0.24 / 0.45 * 100)


def test_workflow_stats(logger, template, matter, bundle):
    state, _, _ = run_pipeline(logger, template, matter, bundle, [70, 85, 92])
    stats = get_workflow_stats(state)

    assert stats['status'] == FINAL_APPROVED
    assert stats['iterations'] == 2
    assert stats['refinements'] == 2
    assert stats['errors'] == 0
    assert stats['gate_statistics']['iterations']['remaining'] == 1
    assert [p['score'] for p in stats['gate_statistics']['quality_progression']] == [70, 85, 92]


# --- Behind an orchestrator ---

def test_orchestrator_runs_pipeline_on_its_draft(stages_factory, job_factory, template, store):
    generator = FakeGenerator()
    stages = stages_factory(generator, reviewer=ScriptedReviewer([70, 93]))

    result = SequentialOrchestrator(stages).run_job(job_factory(quality_pipeline=True), template)

    assert result.success, result.error
    assert result.metadata.execution_order[-2:] == ["QualityPipeline", "Persistence"]
    assert generator.purposes() == [DRAFT, BASIC_REFINEMENT, TARGETED_REFINEMENT]
    assert result.pipeline['status'] == FINAL_APPROVED
    assert result.pipeline['model_usage']['premium_calls'] == 0
    assert "Revised: targeted_refinement." in store.saved[0][0]
    assert stages.logger.jobs[-1].quality_score == 93


def test_pipeline_flag_respects_job_iteration_budget(stages_factory, job_factory, template):
    stages = stages_factory(FakeGenerator(), reviewer=ScriptedReviewer([70]))

    result = SequentialOrchestrator(stages).run_job(
        job_factory(quality_pipeline=True, max_iterations=1), template
    )

    assert result.success
    assert result.pipeline['status'] == MAX_ITERATIONS
    assert result.pipeline['iterations'] == 1


def test_pipeline_failure_fails_the_job(stages_factory, job_factory, template, store):
    stages = stages_factory(FakeGenerator(), reviewer=ScriptedReviewer([95], fail=True))

    result = SequentialOrchestrator(stages).run_job(job_factory(quality_pipeline=True), template)

    assert not result.success
    assert result.failed_stage == "QualityPipeline"
    assert result.error.code == ErrorCode.SYSTEM
    assert "quality_analysis" in result.error.message
    assert result.pipeline['status'] == FAILED
    assert store.saved == []
