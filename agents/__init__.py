"""
Agents for quality-gated document drafting.

Every agent composes a UnitOfWork (validate → pre-checks → execute →
post-checks → audit entry):
- IntakeAgent: raw input → MatterContext
- ContextBuilderAgent: MatterContext → ContextBundle (best-effort)
- DraftingAgent: template sections → PartialDraftOutput
- OverseerAgent: partial drafts → merged document
"""

from agents.base import DraftConfig, get_llm, clean_output, extract_headings, find_placeholders, estimate_tokens
from agents.errors import ErrorCode, JobValidationError, StageFailedError
from agents.contracts import (
    DocumentType, JobFlags, JobConfig, Template, TemplateSection, MatterContext,
    ContextPassage, ContextBundle, DraftingInput, PartialDraftOutput, AgentResult, JobResult
)
from agents.unit_of_work import UnitOfWork, checkpoint, content_hash
from agents.collaborators import (
    GenerationRequest, QualityReview, MappingIntake, TfidfRetriever,
    ChatModelGenerator, ChatModelReviewer, FileDocumentStore
)
from agents.intake import IntakeAgent, IntakeRequest
from agents.context_builder import ContextBuilderAgent
from agents.drafting import DraftingAgent
from agents.overseer import OverseerAgent

__all__ = [
    'DraftConfig', 'get_llm', 'clean_output', 'extract_headings', 'find_placeholders', 'estimate_tokens',
    'ErrorCode', 'JobValidationError', 'StageFailedError',
    'DocumentType', 'JobFlags', 'JobConfig', 'Template', 'TemplateSection', 'MatterContext',
    'ContextPassage', 'ContextBundle', 'DraftingInput', 'PartialDraftOutput', 'AgentResult', 'JobResult',
    'UnitOfWork', 'checkpoint', 'content_hash',
    'GenerationRequest', 'QualityReview', 'MappingIntake', 'TfidfRetriever',
    'ChatModelGenerator', 'ChatModelReviewer', 'FileDocumentStore',
    'IntakeAgent', 'IntakeRequest', 'ContextBuilderAgent', 'DraftingAgent', 'OverseerAgent'
]
