"""
Merge partial drafts into one document.

Partial drafts arrive in completion order. They are re-ordered by the
template's canonical section order before concatenation, and repeated
level-2 sections (a worker that wrote more than its slice) are dropped.
"""

import re
from typing import List, Tuple

from agents.contracts import PartialDraftOutput, Template

SECTION_HEADER = re.compile(r'^##\s+(.+)')


def _normalize_title(title: str) -> str:
    return re.sub(r'\s+', ' ', title.strip().rstrip('#').strip()).lower()


def _position(partial: PartialDraftOutput, template: Template) -> Tuple[int, int]:
    """
    Canonical position of a partial draft.

    Uses the smallest template index among its assigned section ids; falls
    back to the first generated heading that matches a template title, and
    finally to the task sequence.
    """
    index = template.section_index()
    assigned = [index[sid] for sid in partial.section_ids if sid in index]
    if assigned:
        return min(assigned), partial.sequence

    by_title = {_normalize_title(s.title): i for i, s in enumerate(template.ordered_sections())}
    generated = [by_title[_normalize_title(t)] for t in partial.metadata.sections_generated
                 if _normalize_title(t) in by_title]
    if generated:
        return min(generated), partial.sequence

    return len(index) + partial.sequence, partial.sequence


def remove_duplicate_sections(document: str) -> Tuple[str, List[str]]:
    """
    Drop repeated level-2 sections, keeping the first occurrence.

    A repeated header and every line after it are skipped until the next
    header that has not been seen yet.

    Returns:
        (deduplicated document, titles of the removed occurrences)
    """
    seen = set()
    output = []
    removed = []
    skip = False

    for line in document.split('\n'):
        match = SECTION_HEADER.match(line)
        if match:
            title = _normalize_title(match.group(1))
            if title in seen:
                skip = True
                removed.append(match.group(1).strip())
                continue
            seen.add(title)
            skip = False
        if not skip:
            output.append(line)

    return '\n'.join(output), removed


def merge_partial_drafts(partial_drafts: List[PartialDraftOutput],
                         template: Template) -> Tuple[str, List[str]]:
    """
    Merge partial drafts in canonical template order.

    Args:
        partial_drafts: Drafts in any order (e.g. completion order)
        template: Template defining the canonical section order

    Returns:
        (merged markdown, titles of removed duplicate sections)
    """
    if not partial_drafts:
        raise ValueError("No partial drafts provided for merging")

    ordered = sorted(partial_drafts, key=lambda pd: _position(pd, template))
    combined = '\n\n'.join(pd.markdown.strip() for pd in ordered if pd.markdown.strip())

    merged, removed = remove_duplicate_sections(combined)
    # Collapse the blank runs left behind by removed sections
    merged = re.sub(r'\n{3,}', '\n\n', merged).strip()
    return merged, removed
