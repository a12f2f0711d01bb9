"""
Drafting Agent: generates the markdown for a set of template sections.

Input: DraftingInput (template, matter, retrieved context, assigned sections)
Output: PartialDraftOutput (markdown + generation metadata)

One generation call per invocation. Metadata is read back from the text:
- headings → sections_generated
- {{placeholder}} tokens → placeholders_remaining
- length / CHARS_PER_TOKEN → token_estimate

A draft with placeholders left or with implausibly little content fails its
post-checks. There is no retry here; the failure goes to the orchestrator.

Runs once over the whole template (sequential strategy) or once per task
(parallel strategy).
"""

from typing import List

from agents.base import DraftConfig, estimate_tokens, extract_headings, find_placeholders
from agents.collaborators import DRAFT, GenerationCollaborator, GenerationRequest
from agents.contracts import (
    AgentResult, CheckpointResult, DraftingInput, GenerationMetadata, PartialDraftOutput
)
from agents.unit_of_work import UnitOfWork, checkpoint
from utils.execution_logger import ExecutionLogger


class DraftingAgent:
    """
    Drafting Agent: one generation call per assigned section group.

    Key features:
    - Only the assigned sections are requested (all of them when none are assigned)
    - Normalized matter fields and retrieved passages ground the request
    - Safe to run concurrently: holds no per-call state
    """

    name = "DraftingAgent"

    def __init__(self, generator: GenerationCollaborator, logger: ExecutionLogger,
                 config: DraftConfig = None):
        self.generator = generator
        self.logger = logger
        self.config = config or DraftConfig()
        self.unit = UnitOfWork(
            name=self.name,
            description="Generate document sections from template metadata",
            execute=self._execute,
            logger=logger,
            validate=self._validate,
            pre_checks=self._pre_checks,
            post_checks=self._post_checks,
            tag="DRAFTING",
        )

    def process(self, draft_input: DraftingInput) -> AgentResult:
        return self.unit.process(draft_input)

    def _validate(self, draft_input: DraftingInput) -> bool:
        return draft_input.template is not None and draft_input.matter_context is not None

    def _assigned_ids(self, draft_input: DraftingInput) -> List[str]:
        if draft_input.section_ids is None:
            return [s.id for s in draft_input.template.ordered_sections()]
        return list(draft_input.section_ids)

    def _execute(self, draft_input: DraftingInput) -> PartialDraftOutput:
        section_ids = self._assigned_ids(draft_input)
        sections = draft_input.template.sections_by_id(section_ids)

        self.logger.info("DRAFTING", f"Task {draft_input.sequence}: writing {len(sections)} sections "
                                     f"({', '.join(s.title for s in sections)[:60]})")

        request = GenerationRequest(
            purpose=DRAFT,
            template=draft_input.template,
            sections=sections,
            matter=draft_input.matter_context,
            context=draft_input.context_bundle,
            temperature=self.config.drafting_temperature,
        )
        markdown = self.generator.generate(request)

        metadata = GenerationMetadata(
            sections_generated=extract_headings(markdown),
            placeholders_remaining=find_placeholders(markdown),
            token_estimate=estimate_tokens(markdown, self.config.chars_per_token),
            generation_passes=1,
        )

        return PartialDraftOutput(
            markdown=markdown,
            metadata=metadata,
            section_ids=section_ids,
            sequence=draft_input.sequence,
        )

    def _pre_checks(self, draft_input: DraftingInput) -> List[CheckpointResult]:
        template = draft_input.template
        has_sections = bool(template.sections)
        known = {s.id for s in template.sections}
        unknown = [sid for sid in self._assigned_ids(draft_input) if sid not in known]

        return [
            checkpoint(
                'template_sections_present',
                has_sections,
                f"Template has {len(template.sections)} sections" if has_sections
                else 'Template has no sections defined'
            ),
            checkpoint(
                'assigned_sections_known',
                has_sections and not unknown,
                'All assigned sections exist in the template' if not unknown
                else f"Unknown sections: {', '.join(unknown)}"
            ),
        ]

    def _post_checks(self, draft_input: DraftingInput, output: PartialDraftOutput) -> List[CheckpointResult]:
        placeholders = output.metadata.placeholders_remaining
        content_length = len(output.markdown.strip())
        has_content = content_length > self.config.min_draft_chars

        return [
            checkpoint(
                'no_placeholders_remaining',
                not placeholders,
                'No placeholders remaining in document' if not placeholders
                else f"{len(placeholders)} placeholders remaining: {', '.join(placeholders[:5])}"
            ),
            checkpoint(
                'document_has_content',
                has_content,
                f"Document has {content_length} characters" if has_content
                else 'Document appears to be empty or too short'
            ),
            checkpoint(
                'generation_completed',
                output.metadata.generation_passes > 0,
                f"{output.metadata.generation_passes} generation pass(es)"
            ),
        ]
