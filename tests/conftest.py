"""Shared fixtures and in-memory collaborators for the drafting tests."""

import sys
import threading
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402

from agents.base import DraftConfig  # noqa: E402
from agents.collaborators import MappingIntake, QualityReview  # noqa: E402
from agents.contracts import (  # noqa: E402
    ContextBundle, ContextPassage, JobConfig, JobFlags, SaveResult, Template, TemplateSection
)
from orchestrator.runner import JobRunner  # noqa: E402
from orchestrator.stages import JobStages  # noqa: E402
from utils.execution_logger import ExecutionLogger  # noqa: E402

FILLER = ("The parties agree to the terms set out in this section, which are binding "
          "on their successors and permitted assigns.")


class FakeGenerator:
    """
    Writes one `## Title` block per requested section.

    Refinement requests return the current document with a marker line, so
    the document never shrinks between passes.
    """

    def __init__(self, delays=None, fail_sections=None, placeholder_sections=None,
                 fail_purposes=None, short=False):
        self.delays = delays or {}
        self.fail_sections = set(fail_sections or [])
        self.placeholder_sections = set(placeholder_sections or [])
        self.fail_purposes = set(fail_purposes or [])
        self.short = short
        self.requests = []
        self._lock = threading.Lock()

    def generate(self, request):
        with self._lock:
            self.requests.append(request)

        if request.purpose in self.fail_purposes:
            raise RuntimeError(f"generation backend unavailable ({request.purpose})")

        if request.current_document:
            return request.current_document.rstrip() + f"\n\nRevised: {request.purpose}."

        ids = [s.id for s in request.sections]
        for section_id in ids:
            if section_id in self.delays:
                time.sleep(self.delays[section_id])
        if self.fail_sections.intersection(ids):
            raise RuntimeError(f"generation failed for {sorted(self.fail_sections.intersection(ids))}")
        if self.short:
            return "## Stub"

        blocks = []
        for s in request.sections:
            body = FILLER
            if s.id in self.placeholder_sections:
                body += " Effective on {{effective_date}}."
            blocks.append(f"## {s.title}\n\n{body}")
        return "\n\n".join(blocks)

    def purposes(self):
        return [r.purpose for r in self.requests]


class ScriptedReviewer:
    """Returns the scripted scores in order, repeating the last one."""

    def __init__(self, scores, fail=False):
        self.scores = list(scores)
        self.fail = fail
        self.calls = 0

    def review(self, document, request):
        if self.fail:
            raise RuntimeError("reviewer timed out")
        score = self.scores[min(self.calls, len(self.scores) - 1)]
        self.calls += 1
        return QualityReview(
            score=score,
            criteria_scores={'accuracy': score},
            feedback=[f"Tighten the definitions (review {self.calls})"],
            tokens=100
        )


class FakeRetriever:
    def __init__(self, bundle=None, error=None):
        self.bundle = bundle
        self.error = error
        self.calls = 0

    def retrieve(self, matter):
        self.calls += 1
        if self.error:
            raise self.error
        return self.bundle


class MemoryStore:
    def __init__(self):
        self.saved = []

    def save(self, document, destination, metadata=None):
        self.saved.append((document, destination, metadata))
        return SaveResult(path=f"{destination}/memory.md", size=len(document.encode('utf-8')))


def make_template(titles, required_fields=None):
    sections = [
        TemplateSection(id=title.lower().replace(" ", "_"), title=title, order=i + 1,
                        help_text=f"Describe the {title.lower()}")
        for i, title in enumerate(titles)
    ]
    return Template(
        id="patent-assignment-agreement",
        name="Patent Assignment Agreement",
        sections=sections,
        required_fields=list(required_fields or [])
    )


@pytest.fixture
def logger():
    return ExecutionLogger(experiment_name="test", verbose=False)


@pytest.fixture
def config():
    return DraftConfig(max_parallel=4)


@pytest.fixture
def template():
    return make_template(["Alpha", "Beta", "Gamma"], required_fields=["client", "assignor"])


@pytest.fixture
def large_template():
    return make_template(["Parties", "Recitals", "Assignment", "Consideration", "Warranties", "Signatures"],
                         required_fields=["client"])


@pytest.fixture
def raw_input():
    return {"Client": "Acme Robotics", "attorneyName": "J. Rivera", "Assignor": "Dana Lee",
            "patentNumber": "US 10,123,456"}


@pytest.fixture
def matter(raw_input):
    return MappingIntake().normalize(raw_input, "patent-assignment-agreement")


@pytest.fixture
def bundle():
    passages = [
        ContextPassage(id="p1", content="Assignment of all right, title and interest.", similarity=0.91,
                       source="precedent/assignment.md", citation="Assignment Precedent 1"),
        ContextPassage(id="p2", content="Consideration clause for patent transfers.", similarity=0.82,
                       source="precedent/consideration.md", citation="Consideration Precedent 2"),
    ]
    return ContextBundle(passages=passages, search_terms=["assignment", "patent"],
                         similarity_threshold=0.75, results_count=2, total_tokens=21)


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def job_factory(raw_input):
    def make(parallel=False, max_parallel=None, quality_pipeline=False, max_iterations=None,
             document_type="patent-assignment-agreement", input_ref=None, output_path="out"):
        return JobConfig(
            document_type=document_type,
            input_ref=raw_input if input_ref is None else input_ref,
            output_path=output_path,
            flags=JobFlags(parallel=parallel, max_parallel=max_parallel,
                           quality_pipeline=quality_pipeline, max_iterations=max_iterations)
        )
    return make


@pytest.fixture
def stages_factory(logger, config, store, bundle):
    def make(generator, retriever=None, reviewer=None, intake=None):
        return JobStages(
            generator=generator,
            logger=logger,
            config=config,
            intake=intake,
            retriever=retriever if retriever is not None else FakeRetriever(bundle),
            reviewer=reviewer,
            store=store
        )
    return make


@pytest.fixture
def runner_factory(stages_factory):
    def make(generator, **kwargs):
        return JobRunner(stages_factory(generator, **kwargs))
    return make
