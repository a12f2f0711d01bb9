import json

import pytest

from agents.base import DraftConfig, clean_output, extract_headings, find_placeholders
from agents.collaborators import (
    DRAFT, TARGETED_REFINEMENT, ChatModelGenerator, GenerationCollaborator, GenerationRequest,
    TfidfRetriever, MappingIntake, to_snake_case
)
from agents.contracts import ContextBundle, DocumentType
from agents.intake import IntakeAgent, IntakeRequest
from agents.context_builder import ContextBuilderAgent
from agents.errors import ErrorCode
from tests.conftest import FakeGenerator, FakeRetriever


@pytest.mark.parametrize("key,expected", [
    ("clientName", "client_name"),
    ("Client", "client"),
    ("patent number", "patent_number"),
    ("effective-date", "effective_date"),
    (" AssignorID ", "assignor_id"),
])
def test_snake_case_keys(key, expected):
    assert to_snake_case(key) == expected


def test_mapping_intake_normalizes(matter):
    assert matter.client == "Acme Robotics"
    assert matter.attorney == "J. Rivera"
    assert matter.normalized_fields["patent_number"] == "US 10,123,456"
    assert matter.fields["patentNumber"] == "US 10,123,456"
    assert matter.validation_results[0].is_valid


def test_mapping_intake_reads_json_file(tmp_path):
    path = tmp_path / "matter.json"
    path.write_text(json.dumps({"clientName": "  Borealis Labs  ", "licensee": ""}), encoding="utf-8")

    matter = MappingIntake().normalize(str(path), "patent-license-agreement")

    assert matter.client == "Borealis Labs"
    assert [v.field for v in matter.validation_results if not v.is_valid] == ["licensee"]


def test_intake_agent_rejects_unknown_document_type(logger, template, raw_input):
    result = IntakeAgent(logger).process(IntakeRequest(raw_input, "living-trust", template))

    assert result.error.code == ErrorCode.CHECKPOINT_FAILED
    assert "document_type_validation" in result.error.message


def test_intake_agent_requires_client(logger, template):
    result = IntakeAgent(logger).process(
        IntakeRequest({"assignor": "Dana Lee"}, "patent-assignment-agreement", template)
    )

    assert [c.name for c in result.error.details] == ["client_identified", "required_fields_present"]
    assert "client" in result.error.details[1].message


def test_document_types():
    assert DocumentType.is_supported("nda-ip-specific")
    assert DocumentType.is_supported(DocumentType.TRADEMARK_APPLICATION)
    assert not DocumentType.is_supported("prenup")
    assert len(DocumentType.supported()) == 8


def test_tfidf_retriever_filters_and_ranks_with_default_config(matter):
    passages = [
        {"id": "weak", "content": "Unrelated employment terms for staff.", "source": "a.md"},
        {"id": "strong", "content": "Patent assignment agreement between Acme Robotics and Dana Lee.",
         "source": "b.md"},
        {"id": "medium", "content": "The assignor assigns all patent rights to the assignee.", "source": "c.md"},
    ]
    config = DraftConfig()

    bundle = TfidfRetriever(passages, config).retrieve(matter)

    assert [p.id for p in bundle.passages] == ["strong"]
    assert bundle.passages[0].similarity > 0.5
    assert bundle.similarity_threshold == config.similarity_threshold
    assert bundle.results_count == 1
    assert "acme" in bundle.search_terms


def test_tfidf_retriever_finds_on_point_passage_for_full_matter():
    raw = {
        "clientName": "Acme Robotics", "attorneyName": "J. Rivera", "assignor": "Dana Lee",
        "assignee": "Acme Robotics Inc.", "patentNumber": "US 10,123,456", "patentTitle": "Robotic gripper",
        "effectiveDate": "2024-01-15", "consideration": "USD 50,000", "governingLaw": "Delaware",
    }
    matter = MappingIntake().normalize(raw, "patent-assignment-agreement")
    passages = [
        {"id": "assignment", "source": "precedent/assignment.md",
         "content": "The Assignor hereby assigns to the Assignee, Acme Robotics, all right, title and "
                    "interest in the patent for the robotic gripper invention, governed by Delaware law."},
        {"id": "lease", "source": "precedent/lease.md",
         "content": "The tenant shall pay rent monthly for the warehouse premises."},
    ]

    bundle = TfidfRetriever(passages).retrieve(matter)

    assert [p.id for p in bundle.passages] == ["assignment"]


def test_tfidf_retriever_respects_token_budget(matter):
    long_text = "Patent assignment for Acme Robotics. " * 40
    passages = [{"id": f"p{i}", "content": long_text, "source": "x.md"} for i in range(5)]

    bundle = TfidfRetriever(passages, DraftConfig(max_context_tokens=800)).retrieve(matter)

    assert [p.id for p in bundle.passages] == ["p0", "p1"]
    assert 0 < bundle.total_tokens <= 800


def test_tfidf_retriever_without_passages(matter):
    bundle = TfidfRetriever([]).retrieve(matter)

    assert bundle.passages == []
    assert bundle.total_tokens == 0
    assert bundle.similarity_threshold == DraftConfig().similarity_threshold


def test_context_builder_rejects_oversized_bundle(logger, matter, bundle):
    agent = ContextBuilderAgent(FakeRetriever(bundle), logger, DraftConfig(max_context_tokens=10))

    result = agent.process(matter)

    assert result.error.code == ErrorCode.CHECKPOINT_FAILED
    assert [c.name for c in result.error.details] == ["token_count_reasonable"]


def test_generator_prompts_cover_only_requested_sections(template, matter, bundle):
    request = GenerationRequest(purpose=DRAFT, template=template, sections=template.sections[1:],
                                matter=matter, context=bundle)

    system_prompt, user_prompt = ChatModelGenerator().build_prompts(request)

    assert "Acme Robotics" in system_prompt
    assert "## Beta" in user_prompt and "## Gamma" in user_prompt
    assert "## Alpha" not in user_prompt
    assert "Assignment Precedent 1" in user_prompt


def test_refinement_prompt_lists_feedback(template, matter):
    request = GenerationRequest(purpose=TARGETED_REFINEMENT, template=template, sections=template.sections,
                                matter=matter, context=ContextBundle.empty(),
                                current_document="## Alpha\n\nText.", feedback=["Define 'Patent Rights'"])

    _, user_prompt = ChatModelGenerator().build_prompts(request)

    assert "- Define 'Patent Rights'" in user_prompt
    assert "## Alpha\n\nText." in user_prompt


def test_fakes_satisfy_the_collaborator_protocol():
    assert isinstance(FakeGenerator(), GenerationCollaborator)
    assert isinstance(ChatModelGenerator(), GenerationCollaborator)


def test_markdown_helpers():
    raw = "<think>plan</think>\n```markdown\n## Parties\n\nBetween {{assignor}} and {{ assignee }}.\n```"
    cleaned = clean_output(raw)

    assert cleaned.startswith("## Parties")
    assert extract_headings(cleaned) == ["Parties"]
    assert find_placeholders(cleaned) == ["assignor", "assignee"]


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("DRAFT_MAX_PARALLEL", "6")
    monkeypatch.setenv("DRAFT_QUALITY_GATE", "75.5")
    monkeypatch.delenv("DRAFT_MAX_ITERATIONS", raising=False)

    config = DraftConfig.from_env()

    assert config.max_parallel == 6
    assert config.quality_gate_threshold == 75.5
    assert config.max_iterations == 3


def test_config_from_env_rejects_garbage(monkeypatch):
    monkeypatch.setenv("DRAFT_MAX_PARALLEL", "many")

    with pytest.raises(ValueError):
        DraftConfig.from_env()
