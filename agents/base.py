"""
Base utilities shared across all agents.

Provides:
- LLM configuration (OpenAI-compatible endpoint, two model tiers)
- Output cleaning (remove <think> blocks, code fences, preambles)
- Markdown scanning helpers used by drafting and merging
- Configuration dataclass
"""

import math
import os
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List

from langchain_openai import ChatOpenAI

# --- Configuration ---
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "EMPTY")

STANDARD_MODEL = os.getenv("DRAFT_STANDARD_MODEL", "gpt-4")
PREMIUM_MODEL = os.getenv("DRAFT_PREMIUM_MODEL", "o3")

# Model tiers used for usage accounting
STANDARD_TIER = "standard"
PREMIUM_TIER = "premium"

# Rough size estimate: ~4 characters per token
CHARS_PER_TOKEN = 4

# Anything shorter than this (stripped) is treated as a malformed generation
MIN_DRAFT_CHARS = 50

HEADING_PATTERN = re.compile(r'^#+\s+(.+?)\s*#*\s*$')
PLACEHOLDER_PATTERN = re.compile(r'\{\{([^}]+)\}\}')


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}")


@dataclass
class DraftConfig:
    """Configuration for the drafting system."""
    # Fan-out
    max_parallel: int = 4

    # Drafting checks
    min_draft_chars: int = MIN_DRAFT_CHARS
    chars_per_token: int = CHARS_PER_TOKEN

    # Retrieval
    similarity_threshold: float = 0.1  # TF-IDF cosine, not embedding similarity
    max_context_tokens: int = 4000
    max_passages: int = 8

    # Quality gates (0-100 scale)
    quality_gate_threshold: float = 80.0
    final_gate_threshold: float = 90.0
    max_iterations: int = 3

    # Models
    standard_model: str = STANDARD_MODEL
    premium_model: str = PREMIUM_MODEL
    drafting_temperature: float = 0.2
    refinement_temperature: float = 0.1
    final_refinement_temperature: float = 0.05
    review_temperature: float = 0.0

    # Approximate USD per 1K tokens, by tier
    cost_per_1k_tokens: Dict[str, float] = field(default_factory=lambda: {
        STANDARD_TIER: 0.03,
        PREMIUM_TIER: 0.15,
    })

    @classmethod
    def from_env(cls) -> "DraftConfig":
        """Build a config, letting DRAFT_* environment variables override the defaults."""
        defaults = cls()
        return cls(
            max_parallel=_env_int("DRAFT_MAX_PARALLEL", defaults.max_parallel),
            min_draft_chars=_env_int("DRAFT_MIN_CHARS", defaults.min_draft_chars),
            similarity_threshold=_env_float("DRAFT_SIMILARITY_THRESHOLD", defaults.similarity_threshold),
            max_context_tokens=_env_int("DRAFT_MAX_CONTEXT_TOKENS", defaults.max_context_tokens),
            quality_gate_threshold=_env_float("DRAFT_QUALITY_GATE", defaults.quality_gate_threshold),
            final_gate_threshold=_env_float("DRAFT_FINAL_GATE", defaults.final_gate_threshold),
            max_iterations=_env_int("DRAFT_MAX_ITERATIONS", defaults.max_iterations),
        )

    def cost_for(self, tier: str, tokens: int) -> float:
        return (tokens / 1000) * self.cost_per_1k_tokens[tier]


def get_llm(tier: str = STANDARD_TIER, temperature: float = 0.2,
            config: DraftConfig = None) -> ChatOpenAI:
    """
    Get configured LLM instance for a model tier.

    The premium tier is a reasoning model and is used only for the initial
    document generation; everything else runs on the standard tier.
    """
    config = config or DraftConfig()
    model = config.premium_model if tier == PREMIUM_TIER else config.standard_model

    if tier == PREMIUM_TIER:
        # Reasoning models reject a custom temperature
        return ChatOpenAI(
            model=model,
            base_url=OPENAI_BASE_URL,
            api_key=OPENAI_API_KEY,
        )
    return ChatOpenAI(
        model=model,
        base_url=OPENAI_BASE_URL,
        api_key=OPENAI_API_KEY,
        temperature=temperature,
    )


def clean_output(content: str) -> str:
    """Clean LLM output by removing thinking blocks and artifacts."""
    content = re.sub(r'<think>.*?</think>', '', content, flags=re.DOTALL)

    # Unwrap a fenced markdown answer
    fenced = re.match(r'^\s*```(?:markdown|md)?\s*\n(.*?)\n```\s*$', content, flags=re.DOTALL)
    if fenced:
        content = fenced.group(1)

    preambles = [
        "Here is the ",
        "Here's the ",
        "Below is ",
        "The following is ",
    ]
    stripped = content.lstrip()
    for p in preambles:
        if stripped.lower().startswith(p.lower()):
            idx = stripped.find('\n')
            if 0 < idx < 120:
                content = stripped[idx:]
            break

    return content.strip()


def extract_headings(markdown: str) -> List[str]:
    """Titles of every markdown heading, in document order."""
    headings = []
    for line in markdown.split('\n'):
        match = HEADING_PATTERN.match(line)
        if match:
            headings.append(match.group(1).strip())
    return headings


def find_placeholders(markdown: str) -> List[str]:
    """Unresolved {{placeholder}} tokens, in order of appearance."""
    return [m.strip() for m in PLACEHOLDER_PATTERN.findall(markdown)]


def estimate_tokens(text: str, chars_per_token: int = CHARS_PER_TOKEN) -> int:
    return math.ceil(len(text) / chars_per_token)


def extract_key_terms(text: str, top_n: int = 20) -> List[str]:
    """
    Most frequent meaningful words of a text.
    Used to build retrieval search terms from matter fields.
    """
    words = re.findall(r'\b[a-zA-Z]{4,}\b', text.lower())

    stop_words = {
        'that', 'this', 'with', 'from', 'have', 'been', 'were', 'they',
        'their', 'which', 'where', 'when', 'what', 'there', 'these',
        'also', 'more', 'such', 'than', 'into', 'some', 'only', 'other',
        'over', 'most', 'very', 'each', 'both', 'between', 'after',
        'being', 'about', 'would', 'could', 'should', 'will', 'shall',
        'true', 'false', 'none', 'null'
    }

    word_counts = Counter(w for w in words if w not in stop_words)
    return [word for word, count in word_counts.most_common(top_n)]
