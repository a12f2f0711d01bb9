"""
Utilities for the drafting system.

- task_splitter.py: Partition a template into parallel drafting tasks
- markdown_merge.py: Order-preserving merge with duplicate section removal
- execution_logger.py: Tagged console output + structured execution records
"""

from utils.execution_logger import ExecutionLogger, JobSummaryLog
from utils.task_splitter import split_into_tasks
from utils.markdown_merge import merge_partial_drafts, remove_duplicate_sections

__all__ = [
    'ExecutionLogger', 'JobSummaryLog',
    'split_into_tasks',
    'merge_partial_drafts', 'remove_duplicate_sections'
]
