"""
External collaborators and their default adapters.

The core only talks to these narrow interfaces:
- IntakeCollaborator: raw input → MatterContext
- RetrievalCollaborator: MatterContext → ContextBundle (best-effort)
- GenerationCollaborator: GenerationRequest → markdown text
- QualityReviewer: document → QualityReview (0-100 score + feedback)
- PersistenceCollaborator: document → SaveResult

Default adapters are provided for running the system end to end; tests
substitute in-memory fakes.
"""

import json
import os
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, Union, runtime_checkable

from langchain_core.messages import HumanMessage, SystemMessage
from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.metrics.pairwise import cosine_similarity

from agents.base import (
    STANDARD_TIER, DraftConfig, clean_output, estimate_tokens,
    extract_key_terms, get_llm
)
from agents.contracts import (
    ContextBundle, ContextPassage, MatterContext, SaveResult, Template,
    TemplateSection, ValidationResult
)

# Request purposes understood by the generator
DRAFT = "draft"
DOCUMENT_GENERATION = "document_generation"
BASIC_REFINEMENT = "basic_refinement"
TARGETED_REFINEMENT = "targeted_refinement"
FINAL_REFINEMENT = "final_refinement"


@dataclass
class GenerationRequest:
    """Everything a single generation call needs."""
    purpose: str
    template: Template
    sections: List[TemplateSection]
    matter: MatterContext
    context: ContextBundle
    tier: str = STANDARD_TIER
    temperature: float = 0.2
    current_document: Optional[str] = None
    feedback: List[str] = field(default_factory=list)
    context_summary: str = ""


@dataclass
class QualityReview:
    """Score and feedback produced by a quality reviewer."""
    score: float
    criteria_scores: Dict[str, float] = field(default_factory=dict)
    feedback: List[str] = field(default_factory=list)
    recommended_actions: List[str] = field(default_factory=list)
    tokens: int = 0

    def to_dict(self) -> Dict:
        return {
            "score": self.score,
            "criteria_scores": dict(self.criteria_scores),
            "feedback": list(self.feedback),
            "recommended_actions": list(self.recommended_actions),
        }


# --- Interfaces ---

@runtime_checkable
class IntakeCollaborator(Protocol):
    def normalize(self, raw_input: Any, document_type: str) -> MatterContext:
        ...


@runtime_checkable
class RetrievalCollaborator(Protocol):
    def retrieve(self, matter: MatterContext) -> ContextBundle:
        ...


@runtime_checkable
class GenerationCollaborator(Protocol):
    def generate(self, request: GenerationRequest) -> str:
        ...


@runtime_checkable
class QualityReviewer(Protocol):
    def review(self, document: str, request: GenerationRequest) -> QualityReview:
        ...


@runtime_checkable
class PersistenceCollaborator(Protocol):
    def save(self, document: str, destination: str, metadata: Dict = None) -> SaveResult:
        ...


# --- Intake ---

def to_snake_case(key: str) -> str:
    key = re.sub(r'([a-z0-9])([A-Z])', r'\1_\2', key.strip())
    key = re.sub(r'[^0-9a-zA-Z]+', '_', key)
    return key.strip('_').lower()


class MappingIntake:
    """
    Intake from a mapping or a JSON file.

    Keys are normalized to snake_case and string values are trimmed. The
    party identifiers are read from `client` / `client_name` and
    `attorney` / `attorney_name`.
    """

    CLIENT_KEYS = ("client", "client_name")
    ATTORNEY_KEYS = ("attorney", "attorney_name")

    def normalize(self, raw_input: Union[str, Mapping[str, Any]], document_type: str) -> MatterContext:
        if isinstance(raw_input, str):
            with open(raw_input, 'r', encoding='utf-8') as f:
                data = json.load(f)
        else:
            data = dict(raw_input)

        if not isinstance(data, dict):
            raise ValueError("Intake data must be a JSON object")

        normalized = {}
        for key, value in data.items():
            if isinstance(value, str):
                value = value.strip()
            normalized[to_snake_case(str(key))] = value

        client = next((normalized[k] for k in self.CLIENT_KEYS if normalized.get(k)), "")
        attorney = next((normalized[k] for k in self.ATTORNEY_KEYS if normalized.get(k)), None)

        validation = [
            ValidationResult(
                field="client",
                is_valid=bool(client),
                message="Client identified" if client else "Client is required"
            )
        ]
        for key, value in normalized.items():
            if value in ("", None):
                validation.append(ValidationResult(field=key, is_valid=False, message="Empty value"))

        return MatterContext(
            document_type=document_type,
            client=client,
            attorney=attorney,
            fields=data,
            validation_results=validation,
            normalized_fields=normalized
        )


# --- Retrieval ---

class TfidfRetriever:
    """
    In-memory retrieval by TF-IDF cosine similarity.

    The query is the document type plus the matter's field values. Query
    and passages are vectorized together, each passage is scored by its
    cosine similarity to the query, passages below the threshold are
    dropped, and the rest are kept best first until the passage or token
    budget is spent.
    """

    def __init__(self, passages: Sequence[Union[ContextPassage, Mapping[str, Any]]],
                 config: DraftConfig = None):
        self.config = config or DraftConfig()
        self.passages = [self._coerce(p, i) for i, p in enumerate(passages)]

    @staticmethod
    def _coerce(passage, index: int) -> ContextPassage:
        if isinstance(passage, ContextPassage):
            return passage
        return ContextPassage(
            id=str(passage.get("id", f"passage-{index}")),
            content=passage["content"],
            similarity=0.0,
            source=passage.get("source", ""),
            citation=passage.get("citation", "")
        )

    @staticmethod
    def query_text(matter: MatterContext) -> str:
        values = [str(v) for v in matter.normalized_fields.values() if isinstance(v, (str, int, float))]
        return " ".join([matter.document_type.replace("-", " ")] + values)

    def search_terms(self, matter: MatterContext) -> List[str]:
        return extract_key_terms(self.query_text(matter))

    def score(self, query: str) -> List[float]:
        """Cosine similarity of every passage to the query."""
        docs = [query] + [p.content for p in self.passages]
        vectorizer = TfidfVectorizer(stop_words='english', max_features=5000)
        try:
            tfidf_matrix = vectorizer.fit_transform(docs)
        except ValueError:
            # Nothing but stop words in query and passages
            return [0.0] * len(self.passages)
        similarities = cosine_similarity(tfidf_matrix[0:1], tfidf_matrix[1:])[0]
        return [float(max(0.0, min(1.0, s))) for s in similarities]

    def retrieve(self, matter: MatterContext) -> ContextBundle:
        threshold = self.config.similarity_threshold
        terms = self.search_terms(matter)
        if not terms or not self.passages:
            return ContextBundle.empty(threshold)

        scored: List[Tuple[float, ContextPassage]] = [
            (similarity, passage)
            for similarity, passage in zip(self.score(self.query_text(matter)), self.passages)
            if similarity >= threshold
        ]
        scored.sort(key=lambda item: (-item[0], item[1].id))

        selected = []
        total_tokens = 0
        for similarity, passage in scored[:self.config.max_passages]:
            tokens = estimate_tokens(passage.content, self.config.chars_per_token)
            if total_tokens + tokens > self.config.max_context_tokens:
                break
            selected.append(ContextPassage(
                id=passage.id,
                content=passage.content,
                similarity=similarity,
                source=passage.source,
                citation=passage.citation
            ))
            total_tokens += tokens

        return ContextBundle(
            passages=selected,
            search_terms=terms,
            similarity_threshold=threshold,
            results_count=len(selected),
            total_tokens=total_tokens
        )


# --- Generation ---

def format_sections(sections: List[TemplateSection]) -> str:
    lines = []
    for s in sections:
        lines.append(f"## {s.title}")
        if s.help_text:
            lines.append(f"Guidance: {s.help_text}")
        if s.content:
            lines.append(s.content)
        lines.append("")
    return "\n".join(lines).strip()


def format_context(bundle: ContextBundle, limit: int = 6000) -> str:
    if bundle.is_empty:
        return "No supporting precedent retrieved."
    blocks = []
    for p in bundle.passages:
        label = p.citation or p.source or p.id
        blocks.append(f"[{label}] (similarity {p.similarity:.2f})\n{p.content}")
    return "\n\n".join(blocks)[:limit]


class ChatModelGenerator:
    """
    Generation through an OpenAI-compatible chat model.

    One call per request; the tier and temperature on the request pick the
    model. Returned text is cleaned of reasoning blocks and fences.
    """

    def __init__(self, config: DraftConfig = None):
        self.config = config or DraftConfig()
        self._llms = {}

    def _llm(self, tier: str, temperature: float):
        key = (tier, temperature)
        if key not in self._llms:
            self._llms[key] = get_llm(tier, temperature, self.config)
        return self._llms[key]

    def generate(self, request: GenerationRequest) -> str:
        system_prompt, user_prompt = self.build_prompts(request)
        response = self._llm(request.tier, request.temperature).invoke([
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_prompt)
        ])
        return clean_output(response.content)

    def build_prompts(self, request: GenerationRequest) -> Tuple[str, str]:
        matter = request.matter
        doc_label = request.template.name or matter.document_type

        system_prompt = f"""You are an experienced attorney drafting a {doc_label} for {matter.client}.

### Rules
1. Write in markdown; each section starts with a level-2 heading (## Title)
2. Fill every field from the matter data; NEVER leave {{{{placeholder}}}} tokens
3. Ground statements in the supporting precedent where it is relevant
4. Formal, precise legal language
5. Output ONLY the document text (no preamble, no commentary)"""

        matter_fields = json.dumps(matter.normalized_fields, indent=2, sort_keys=True, default=str)

        if request.purpose == DRAFT or request.purpose == DOCUMENT_GENERATION or not request.current_document:
            user_prompt = f"""### Sections to Write (in this order, ONLY these)
{format_sections(request.sections)}

### Matter Data
{matter_fields}

### Supporting Precedent
{format_context(request.context)}
"""
            if request.context_summary:
                user_prompt += f"\n### Drafting Notes\n{request.context_summary}\n"
            user_prompt += "\nWrite the sections now:"
            return system_prompt, user_prompt

        if request.purpose == BASIC_REFINEMENT:
            instructions = """- Fix formatting, numbering and heading consistency
- Resolve any remaining placeholders from the matter data
- Do not change the substance"""
        elif request.purpose == TARGETED_REFINEMENT:
            issues = "\n".join(f"- {f}" for f in request.feedback) or "- General quality improvements"
            instructions = f"""Address ALL of these review findings:
{issues}
- Keep every section that is already correct unchanged"""
        else:
            instructions = """- Apply a final partner-level polish
- Perfect consistency of terminology and formatting
- Keep the exact same structure and headings"""

        user_prompt = f"""### Current Document
{request.current_document}

### Matter Data
{matter_fields}

### Revision Instructions
{instructions}

Output the complete revised document:"""
        return system_prompt, user_prompt


# --- Quality review ---

# Weighted review criteria (weights sum to 1.0)
REVIEW_CRITERIA = {
    'ACCURACY': 0.25,
    'COMPLETENESS': 0.25,
    'CONSISTENCY': 0.20,
    'TONE': 0.15,
    'RISK': 0.15,
}


class ChatModelReviewer:
    """
    Scores a document 0-100 with a standard-tier chat model.

    The model scores each criterion; the overall score is the weighted sum
    of REVIEW_CRITERIA. Findings listed under ISSUES become the feedback
    for the next refinement.
    """

    def __init__(self, config: DraftConfig = None):
        self.config = config or DraftConfig()
        self.llm = get_llm(STANDARD_TIER, self.config.review_temperature, self.config)

    def review(self, document: str, request: GenerationRequest) -> QualityReview:
        system_prompt = """You are a senior partner reviewing a legal document before delivery.

### Evaluation Criteria (score 0-100):
ACCURACY: correct legal terminology and concepts
COMPLETENESS: every section filled, no placeholders
CONSISTENCY: consistent terminology, logical flow, uniform formatting
TONE: professional, clear, appropriately formal
RISK: identified risks, protective language

### Output Format (STRICT):
ACCURACY: [score]
COMPLETENESS: [score]
CONSISTENCY: [score]
TONE: [score]
RISK: [score]
ISSUES:
- Issue 1
- Issue 2
(list specific, actionable problems)"""

        user_prompt = f"""### Document Type
{request.template.name or request.matter.document_type}

### Expected Sections
{', '.join(s.title for s in request.sections)}

### Document
{document}

Evaluate this document:"""

        response = self.llm.invoke([
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_prompt)
        ])
        content = clean_output(response.content)

        criteria = {name: self._extract_score(content, name) for name in REVIEW_CRITERIA}
        score = sum(criteria[name] * weight for name, weight in REVIEW_CRITERIA.items())
        issues = self._extract_issues(content)

        return QualityReview(
            score=round(score, 1),
            criteria_scores={name.lower(): value for name, value in criteria.items()},
            feedback=issues,
            recommended_actions=issues[:3],
            tokens=estimate_tokens(system_prompt + user_prompt + content, self.config.chars_per_token)
        )

    def _extract_score(self, content: str, metric: str) -> float:
        """Extract numeric score from response."""
        pattern = rf'{metric}:\s*(\d+(?:\.\d+)?)'
        match = re.search(pattern, content, re.IGNORECASE)
        if match:
            return min(100.0, max(0.0, float(match.group(1))))
        return 50.0

    def _extract_issues(self, content: str) -> List[str]:
        """Extract list of issues from response."""
        issues = []
        if 'ISSUES:' in content:
            issues_section = content.split('ISSUES:', 1)[1]
            for line in issues_section.split('\n'):
                line = line.strip()
                if line.startswith('-') or line.startswith('•'):
                    issue = line.lstrip('-•').strip()
                    if issue and len(issue) > 5:
                        issues.append(issue)
        return issues[:8]


# --- Persistence ---

class FileDocumentStore:
    """
    Writes documents as markdown files.

    A destination ending in .md (any case) is used as the file path; anything
    else is treated as a directory and the file is named <type>-<timestamp>.md.
    Metadata goes into a front-matter header with every value JSON-quoted, so
    colons and newlines in a value stay on their own line.
    """

    def save(self, document: str, destination: str, metadata: Dict = None) -> SaveResult:
        metadata = metadata or {}
        if destination.lower().endswith('.md'):
            path = destination
            parent = os.path.dirname(path)
        else:
            parent = destination
            stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
            path = os.path.join(parent, f"{metadata.get('document_type', 'document')}-{stamp}.md")

        if parent:
            os.makedirs(parent, exist_ok=True)

        header = ""
        if metadata:
            fields = dict(metadata, generated_at=datetime.now().isoformat())
            lines = [f"{key}: {json.dumps(str(value), ensure_ascii=False)}" for key, value in fields.items()]
            header = "---\n" + "\n".join(lines) + "\n---\n\n"

        content = header + document
        with open(path, 'w', encoding='utf-8') as f:
            f.write(content)

        return SaveResult(path=path, size=len(content.encode('utf-8')))
