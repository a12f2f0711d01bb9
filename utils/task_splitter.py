"""
Task Splitter: partition a template into drafting tasks.

Sections are chunked contiguously in canonical order so every task covers a
slice of the document, and the slices together cover the whole template
exactly once. Task sizes differ by at most one section.
"""

import copy
from typing import List

from agents.contracts import ContextBundle, DraftingTask, MatterContext, Template


def split_into_tasks(template: Template,
                     matter_context: MatterContext,
                     context_bundle: ContextBundle,
                     max_parallel: int) -> List[DraftingTask]:
    """
    Split template sections into balanced DraftingTasks.

    Args:
        template: Full template definition
        matter_context: Normalized matter data (deep-copied into every task)
        context_bundle: Retrieved passages (deep-copied into every task)
        max_parallel: Upper bound on the number of tasks

    Returns:
        min(max_parallel, number of sections) non-empty tasks, in document order

    Raises:
        ValueError: template has no sections, or max_parallel < 1
    """
    sections = template.ordered_sections()
    if not sections:
        raise ValueError("Template has no sections to split")
    if max_parallel < 1:
        raise ValueError(f"max_parallel must be at least 1, got {max_parallel}")

    num_tasks = min(max_parallel, len(sections))
    base_size, extra = divmod(len(sections), num_tasks)

    tasks = []
    start = 0
    for i in range(num_tasks):
        size = base_size + (1 if i < extra else 0)
        chunk = sections[start:start + size]
        start += size

        tasks.append(DraftingTask(
            task_id=f"task-{i + 1}",
            sequence=i,
            section_ids=[s.id for s in chunk],
            template=template,
            matter_context=copy.deepcopy(matter_context),
            context_bundle=copy.deepcopy(context_bundle)
        ))

    return tasks
