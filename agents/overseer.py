"""
Overseer Agent: merges partial drafts into a single document.

Input: MergeInput (partial drafts in completion order + template)
Output: MergeOutput (merged markdown, rewrite ratio, token estimate)

No polishing model call happens here; refinement belongs to the quality
pipeline.
"""

from typing import List

from agents.base import DraftConfig, estimate_tokens
from agents.contracts import AgentResult, CheckpointResult, MergeInput, MergeOutput
from agents.unit_of_work import UnitOfWork, checkpoint
from utils.execution_logger import ExecutionLogger
from utils.markdown_merge import merge_partial_drafts


class OverseerAgent:
    """Merges partial drafts in template order and removes duplicate sections."""

    name = "OverseerAgent"

    def __init__(self, logger: ExecutionLogger, config: DraftConfig = None):
        self.logger = logger
        self.config = config or DraftConfig()
        self.unit = UnitOfWork(
            name=self.name,
            description="Merge partial drafts",
            execute=self._execute,
            logger=logger,
            pre_checks=self._pre_checks,
            post_checks=self._post_checks,
            tag="OVERSEER",
        )

    def process(self, merge_input: MergeInput) -> AgentResult:
        return self.unit.process(merge_input)

    def _execute(self, merge_input: MergeInput) -> MergeOutput:
        merged, removed = merge_partial_drafts(merge_input.partial_drafts, merge_input.template)

        original_chars = sum(len(pd.markdown) for pd in merge_input.partial_drafts)
        rewrite_ratio = 0.0 if original_chars == 0 else (len(merged) - original_chars) / original_chars

        if removed:
            self.logger.warn("OVERSEER", f"Removed {len(removed)} duplicate sections: {', '.join(removed)}")
        self.logger.info("OVERSEER", f"Merged {len(merge_input.partial_drafts)} partial drafts "
                                     f"({len(merged)} chars, rewrite ratio {rewrite_ratio:.3f})")

        return MergeOutput(
            merged_markdown=merged,
            rewrite_ratio=round(rewrite_ratio, 3),
            token_estimate=estimate_tokens(merged, self.config.chars_per_token),
            duplicates_removed=removed
        )

    def _pre_checks(self, merge_input: MergeInput) -> List[CheckpointResult]:
        count = len(merge_input.partial_drafts)
        return [
            checkpoint(
                'partial_drafts_present',
                count > 0,
                f"{count} partial drafts to merge" if count else 'No partial drafts to merge'
            )
        ]

    def _post_checks(self, merge_input: MergeInput, output: MergeOutput) -> List[CheckpointResult]:
        length = len(output.merged_markdown.strip())
        has_content = length > self.config.min_draft_chars
        return [
            checkpoint(
                'merged_document_has_content',
                has_content,
                f"Merged document has {length} characters" if has_content
                else 'Merged document appears to be empty or too short'
            )
        ]
