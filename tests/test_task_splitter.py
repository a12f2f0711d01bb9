import pytest

from agents.contracts import ContextBundle, Template
from tests.conftest import make_template
from utils.task_splitter import split_into_tasks


def section_ids(tasks):
    return [t.section_ids for t in tasks]


def test_contiguous_chunks_cover_template_once(large_template, matter, bundle):
    tasks = split_into_tasks(large_template, matter, bundle, 4)

    assert len(tasks) == 4
    flattened = [sid for t in tasks for sid in t.section_ids]
    assert flattened == [s.id for s in large_template.ordered_sections()]
    assert [t.sequence for t in tasks] == [0, 1, 2, 3]
    assert [t.task_id for t in tasks] == ["task-1", "task-2", "task-3", "task-4"]


@pytest.mark.parametrize("count,parallel,expected", [
    (6, 4, [2, 2, 1, 1]),
    (7, 3, [3, 2, 2]),
    (5, 2, [3, 2]),
    (4, 4, [1, 1, 1, 1]),
    (3, 1, [3]),
])
def test_task_sizes_are_balanced(matter, bundle, count, parallel, expected):
    template = make_template([f"Section {i}" for i in range(count)])
    tasks = split_into_tasks(template, matter, bundle, parallel)

    assert [len(t.section_ids) for t in tasks] == expected


def test_fewer_sections_than_parallelism(template, matter, bundle):
    tasks = split_into_tasks(template, matter, bundle, 8)

    assert section_ids(tasks) == [["alpha"], ["beta"], ["gamma"]]


def test_split_is_deterministic(large_template, matter, bundle):
    first = split_into_tasks(large_template, matter, bundle, 4)
    second = split_into_tasks(large_template, matter, bundle, 4)

    assert section_ids(first) == section_ids(second)


def test_canonical_order_follows_section_order_field(matter, bundle):
    template = make_template(["A", "B", "C"])
    template.sections[0].order, template.sections[2].order = 3, 1

    tasks = split_into_tasks(template, matter, bundle, 3)

    assert section_ids(tasks) == [["c"], ["b"], ["a"]]


def test_each_task_gets_its_own_copies(template, matter, bundle):
    tasks = split_into_tasks(template, matter, bundle, 3)

    tasks[0].matter_context.normalized_fields["client"] = "Changed"
    tasks[0].context_bundle.passages.clear()

    assert tasks[1].matter_context.normalized_fields["client"] == "Acme Robotics"
    assert len(tasks[1].context_bundle.passages) == 2
    assert matter.normalized_fields["client"] == "Acme Robotics"
    assert len(bundle.passages) == 2


def test_empty_template_is_rejected(matter):
    with pytest.raises(ValueError):
        split_into_tasks(Template(id="t", name="Empty", sections=[]), matter, ContextBundle.empty(), 2)


def test_parallelism_below_one_is_rejected(template, matter, bundle):
    with pytest.raises(ValueError):
        split_into_tasks(template, matter, bundle, 0)
