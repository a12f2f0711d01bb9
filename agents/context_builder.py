"""
Context Builder Agent: retrieves supporting precedent for a matter.

Retrieval is best-effort. This unit reports failures like any other, and
the orchestrators recover from them by continuing with an empty bundle.

Pre-check:  document_type_present
Post-check: token_count_reasonable, passages_have_sources
"""

from typing import List

from agents.base import DraftConfig
from agents.collaborators import RetrievalCollaborator
from agents.contracts import AgentResult, CheckpointResult, ContextBundle, MatterContext
from agents.unit_of_work import UnitOfWork, checkpoint
from utils.execution_logger import ExecutionLogger


class ContextBuilderAgent:
    """Queries the retrieval collaborator for relevant passages."""

    name = "ContextBuilderAgent"

    def __init__(self, retriever: RetrievalCollaborator, logger: ExecutionLogger,
                 config: DraftConfig = None):
        self.retriever = retriever
        self.logger = logger
        self.config = config or DraftConfig()
        self.unit = UnitOfWork(
            name=self.name,
            description="Retrieve supporting precedent",
            execute=self._execute,
            logger=logger,
            pre_checks=self._pre_checks,
            post_checks=self._post_checks,
            tag="CONTEXT",
        )

    def process(self, matter: MatterContext) -> AgentResult:
        return self.unit.process(matter)

    def _execute(self, matter: MatterContext) -> ContextBundle:
        bundle = self.retriever.retrieve(matter)
        avg = (sum(p.similarity for p in bundle.passages) / len(bundle.passages)) if bundle.passages else 0.0
        self.logger.info("CONTEXT", f"Retrieved {bundle.results_count} passages, "
                                    f"~{bundle.total_tokens} tokens (avg similarity {avg:.2f})")
        return bundle

    def _pre_checks(self, matter: MatterContext) -> List[CheckpointResult]:
        present = bool(matter.document_type)
        return [
            checkpoint(
                'document_type_present',
                present,
                f"Document type: {matter.document_type}" if present
                else 'Document type is required for context search'
            )
        ]

    def _post_checks(self, matter: MatterContext, bundle: ContextBundle) -> List[CheckpointResult]:
        limit = self.config.max_context_tokens
        with_sources = sum(1 for p in bundle.passages if p.source or p.citation)
        return [
            checkpoint(
                'token_count_reasonable',
                bundle.total_tokens <= limit,
                f"Total context tokens: {bundle.total_tokens} (limit {limit})"
            ),
            checkpoint(
                'passages_have_sources',
                with_sources == len(bundle.passages),
                f"{with_sources}/{len(bundle.passages)} passages have a source"
            ),
        ]
