"""
Data contracts shared by agents and orchestrators.

Every entity that crosses a unit-of-work boundary has an explicit to_dict()
returning JSON-safe primitives. Those dictionaries are what the audit hashes
are computed over, so they must be deterministic: no ids generated on the
fly, no set ordering, timestamps as ISO strings.
"""

import json
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from agents.errors import ErrorCode


class DocumentType(str, Enum):
    """Supported template identifiers."""
    CEASE_AND_DESIST_LETTER = "cease-and-desist-letter"
    NDA_IP_SPECIFIC = "nda-ip-specific"
    OFFICE_ACTION_RESPONSE = "office-action-response"
    PATENT_ASSIGNMENT_AGREEMENT = "patent-assignment-agreement"
    PATENT_LICENSE_AGREEMENT = "patent-license-agreement"
    PROVISIONAL_PATENT_APPLICATION = "provisional-patent-application"
    TECHNOLOGY_TRANSFER_AGREEMENT = "technology-transfer-agreement"
    TRADEMARK_APPLICATION = "trademark-application"

    @classmethod
    def supported(cls) -> List[str]:
        return [member.value for member in cls]

    @classmethod
    def is_supported(cls, value: Any) -> bool:
        if isinstance(value, cls):
            return True
        return isinstance(value, str) and value in cls.supported()


def _iso(ts: Optional[datetime]) -> Optional[str]:
    return ts.isoformat() if ts else None


def json_safe(value: Any) -> Any:
    """
    Coerce raw input values (dates, sets, tuples, non-string keys) into
    JSON primitives.

    Mapping keys become strings and are sorted; sets are sorted by their
    canonical JSON form so the result is the same in every process. Anything
    else that JSON cannot hold is stringified.
    """
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, Enum):
        return json_safe(value.value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): json_safe(v) for k, v in sorted(value.items(), key=lambda kv: str(kv[0]))}
    if isinstance(value, (set, frozenset)):
        items = [json_safe(v) for v in value]
        return sorted(items, key=lambda v: json.dumps(v, sort_keys=True))
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    return str(value)


# --- Job configuration ---

@dataclass(frozen=True)
class JobFlags:
    parallel: bool = False
    max_parallel: Optional[int] = None
    quality_pipeline: bool = False
    max_iterations: Optional[int] = None

    def to_dict(self) -> Dict:
        return {
            "parallel": self.parallel,
            "max_parallel": self.max_parallel,
            "quality_pipeline": self.quality_pipeline,
            "max_iterations": self.max_iterations,
        }


@dataclass(frozen=True)
class JobConfig:
    """Immutable description of one generation job."""
    document_type: str
    input_ref: Union[str, Mapping[str, Any]]
    output_path: str
    flags: JobFlags = field(default_factory=JobFlags)

    @property
    def document_type_value(self) -> str:
        if isinstance(self.document_type, DocumentType):
            return self.document_type.value
        return self.document_type

    def to_dict(self) -> Dict:
        input_ref = self.input_ref if isinstance(self.input_ref, str) else json_safe(self.input_ref)
        return {
            "document_type": self.document_type_value,
            "input_ref": input_ref,
            "output_path": self.output_path,
            "flags": self.flags.to_dict(),
        }


# --- Templates ---

@dataclass
class TemplateSection:
    id: str
    title: str
    order: int
    content: str = ""
    required: bool = True
    help_text: str = ""

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "title": self.title,
            "order": self.order,
            "content": self.content,
            "required": self.required,
            "help_text": self.help_text,
        }


@dataclass
class Template:
    id: str
    name: str
    sections: List[TemplateSection]
    description: str = ""
    required_fields: List[str] = field(default_factory=list)

    def ordered_sections(self) -> List[TemplateSection]:
        """Sections in canonical document order."""
        return sorted(self.sections, key=lambda s: s.order)

    def section_index(self) -> Dict[str, int]:
        """Canonical position of every section id."""
        return {s.id: i for i, s in enumerate(self.ordered_sections())}

    def sections_by_id(self, section_ids: List[str]) -> List[TemplateSection]:
        wanted = set(section_ids)
        return [s for s in self.ordered_sections() if s.id in wanted]

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "sections": [s.to_dict() for s in self.ordered_sections()],
            "required_fields": list(self.required_fields),
        }


# --- Matter context (intake output) ---

@dataclass
class ValidationResult:
    field: str
    is_valid: bool
    message: str = ""

    def to_dict(self) -> Dict:
        return {"field": self.field, "is_valid": self.is_valid, "message": self.message}


@dataclass
class MatterContext:
    """Normalized business data for one job. Read-only to the core."""
    document_type: str
    client: str
    attorney: Optional[str] = None
    fields: Dict[str, Any] = field(default_factory=dict)
    validation_results: List[ValidationResult] = field(default_factory=list)
    normalized_fields: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "document_type": self.document_type,
            "client": self.client,
            "attorney": self.attorney,
            "fields": json_safe(self.fields),
            "validation_results": [v.to_dict() for v in self.validation_results],
            "normalized_fields": json_safe(self.normalized_fields),
        }


# --- Context bundle (retrieval output) ---

@dataclass
class ContextPassage:
    id: str
    content: str
    similarity: float
    source: str = ""
    citation: str = ""

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "content": self.content,
            "similarity": round(self.similarity, 6),
            "source": self.source,
            "citation": self.citation,
        }


@dataclass
class ContextBundle:
    passages: List[ContextPassage] = field(default_factory=list)
    search_terms: List[str] = field(default_factory=list)
    similarity_threshold: float = 0.1
    results_count: int = 0
    total_tokens: int = 0

    @classmethod
    def empty(cls, similarity_threshold: float = 0.1) -> "ContextBundle":
        """Well-formed bundle used when retrieval is skipped or fails."""
        return cls(
            passages=[],
            search_terms=[],
            similarity_threshold=similarity_threshold,
            results_count=0,
            total_tokens=0,
        )

    @property
    def is_empty(self) -> bool:
        return not self.passages

    def to_dict(self) -> Dict:
        return {
            "passages": [p.to_dict() for p in self.passages],
            "search_terms": list(self.search_terms),
            "similarity_threshold": self.similarity_threshold,
            "results_count": self.results_count,
            "total_tokens": self.total_tokens,
        }


# --- Drafting ---

@dataclass
class DraftingTask:
    """One partition of a template; owned by exactly one drafting worker."""
    task_id: str
    sequence: int
    section_ids: List[str]
    template: Template
    matter_context: MatterContext
    context_bundle: ContextBundle

    def to_dict(self) -> Dict:
        return {
            "task_id": self.task_id,
            "sequence": self.sequence,
            "section_ids": list(self.section_ids),
            "template": self.template.id,
        }


@dataclass
class DraftingInput:
    template: Template
    matter_context: MatterContext
    context_bundle: ContextBundle
    section_ids: Optional[List[str]] = None  # None means the whole template
    sequence: int = 0

    @classmethod
    def from_task(cls, task: DraftingTask) -> "DraftingInput":
        return cls(
            template=task.template,
            matter_context=task.matter_context,
            context_bundle=task.context_bundle,
            section_ids=list(task.section_ids),
            sequence=task.sequence,
        )

    def to_dict(self) -> Dict:
        return {
            "template": self.template.to_dict(),
            "matter_context": self.matter_context.to_dict(),
            "context_bundle": self.context_bundle.to_dict(),
            "section_ids": list(self.section_ids) if self.section_ids is not None else None,
            "sequence": self.sequence,
        }


@dataclass(frozen=True)
class GenerationMetadata:
    sections_generated: List[str]
    placeholders_remaining: List[str]
    token_estimate: int
    generation_passes: int = 1

    def to_dict(self) -> Dict:
        return {
            "sections_generated": list(self.sections_generated),
            "placeholders_remaining": list(self.placeholders_remaining),
            "token_estimate": self.token_estimate,
            "generation_passes": self.generation_passes,
        }


@dataclass(frozen=True)
class PartialDraftOutput:
    """Text and metadata produced by one drafting worker."""
    markdown: str
    metadata: GenerationMetadata
    section_ids: List[str] = field(default_factory=list)
    sequence: int = 0

    def to_dict(self) -> Dict:
        return {
            "markdown": self.markdown,
            "metadata": self.metadata.to_dict(),
            "section_ids": list(self.section_ids),
            "sequence": self.sequence,
        }


@dataclass
class MergeInput:
    partial_drafts: List[PartialDraftOutput]
    template: Template

    def to_dict(self) -> Dict:
        return {
            "partial_drafts": [p.to_dict() for p in self.partial_drafts],
            "template": self.template.to_dict(),
        }


@dataclass(frozen=True)
class MergeOutput:
    merged_markdown: str
    rewrite_ratio: float
    token_estimate: int
    duplicates_removed: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "merged_markdown": self.merged_markdown,
            "rewrite_ratio": self.rewrite_ratio,
            "token_estimate": self.token_estimate,
            "duplicates_removed": list(self.duplicates_removed),
        }


# --- Unit-of-work results ---

@dataclass(frozen=True)
class CheckpointResult:
    name: str
    passed: bool
    message: str = ""
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "passed": self.passed,
            "message": self.message,
            "timestamp": _iso(self.timestamp),
        }


@dataclass(frozen=True)
class AgentLogEntry:
    agent: str
    input_hash: str
    output_hash: str
    timestamp: datetime = field(default_factory=datetime.now)
    processing_time: float = 0.0
    checkpoints_passed: int = 0

    def to_dict(self) -> Dict:
        return {
            "agent": self.agent,
            "input_hash": self.input_hash,
            "output_hash": self.output_hash,
            "timestamp": _iso(self.timestamp),
            "metadata": {
                "processing_time": round(self.processing_time, 4),
                "checkpoints_passed": self.checkpoints_passed,
            },
        }


@dataclass
class AgentError:
    code: ErrorCode
    message: str
    details: List[CheckpointResult] = field(default_factory=list)
    cause: Optional[BaseException] = None

    def to_dict(self) -> Dict:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": [c.to_dict() for c in self.details],
            "cause": repr(self.cause) if self.cause is not None else None,
        }


@dataclass
class AgentResult:
    success: bool
    data: Any = None
    error: Optional[AgentError] = None
    processing_time: float = 0.0
    checkpoints: List[CheckpointResult] = field(default_factory=list)
    agent_logs: List[AgentLogEntry] = field(default_factory=list)

    @property
    def failed_checkpoints(self) -> List[CheckpointResult]:
        return [c for c in self.checkpoints if not c.passed]


# --- Caller-facing job result ---

@dataclass
class SaveResult:
    path: str
    size: int

    def to_dict(self) -> Dict:
        return {"path": self.path, "size": self.size}


@dataclass
class JobMetadata:
    total_processing_time: float
    execution_order: List[str]
    checkpoints: List[CheckpointResult]
    agent_logs: List[AgentLogEntry]

    def to_dict(self) -> Dict:
        return {
            "total_processing_time": round(self.total_processing_time, 4),
            "execution_order": list(self.execution_order),
            "checkpoints": [c.to_dict() for c in self.checkpoints],
            "agent_logs": [e.to_dict() for e in self.agent_logs],
        }


@dataclass
class JobResult:
    success: bool
    metadata: JobMetadata
    document: Optional[str] = None
    error: Optional[AgentError] = None
    failed_stage: Optional[str] = None
    output: Optional[SaveResult] = None
    pipeline: Optional[Dict] = None

    def to_dict(self) -> Dict:
        return {
            "success": self.success,
            "document": self.document,
            "error": self.error.to_dict() if self.error else None,
            "failed_stage": self.failed_stage,
            "output": self.output.to_dict() if self.output else None,
            "pipeline": self.pipeline,
            "metadata": self.metadata.to_dict(),
        }
