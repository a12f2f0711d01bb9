"""
Execution Logger for the drafting system.

Captures everything each unit of work and each pipeline node does so a job
can be reconstructed afterwards:
- Tagged console lines ([DRAFTING], [PARALLEL], [QUALITY_GATE], ...)
- Structured records (unit log entries, gate decisions, model calls)
- Per-job summaries (strategy, outcome, duration, quality score)
- Summary statistics across all jobs

The logger is passed explicitly into every agent, orchestrator and pipeline.
Nothing in the system reaches for a global instance, so a test can hand in
a quiet logger and inspect what was recorded.
"""

import json
import os
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import numpy as np


@dataclass
class LogRecord:
    """One structured log line."""
    timestamp: str
    level: str
    tag: str
    message: str
    fields: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class GateDecisionLog:
    """A quality/final gate routing decision."""
    gate: str
    decision: str
    score: float
    threshold: float
    iteration: int
    max_iterations: int
    timestamp: str

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class JobSummaryLog:
    """Outcome of a complete job."""
    job_id: str
    document_type: str
    strategy: str
    success: bool
    duration_seconds: float
    execution_order: List[str]
    failed_stage: Optional[str] = None
    quality_score: Optional[float] = None
    completion_status: Optional[str] = None

    def to_dict(self) -> Dict:
        return asdict(self)


class ExecutionLogger:
    """
    Logger sink shared by the components of one process (or one test).

    Key features:
    - Console output can be silenced without losing structured records
    - Thread-safe appends (parallel drafting workers log concurrently)
    - Unit-of-work log entries are kept verbatim for the audit trail
    - Summary stats across jobs (durations, quality scores)
    """

    def __init__(self, experiment_name: str = "drafting", log_dir: str = "logs",
                 verbose: bool = True):
        self.experiment_name = experiment_name
        self.log_dir = log_dir
        self.verbose = verbose
        self.timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

        self.records: List[LogRecord] = []
        self.unit_logs: List[Dict] = []
        self.gate_decisions: List[GateDecisionLog] = []
        self.model_calls: List[Dict] = []
        self.jobs: List[JobSummaryLog] = []
        self._lock = threading.Lock()

        self.metadata = {
            'experiment_name': experiment_name,
            'start_time': datetime.now().isoformat(),
            'config': {},
            'summary_stats': {}
        }

    def set_config(self, config: Dict):
        """Store run configuration."""
        self.metadata['config'] = config

    # --- Plain log lines ---

    def _emit(self, level: str, tag: str, message: str, fields: Dict[str, Any]):
        record = LogRecord(
            timestamp=datetime.now().isoformat(),
            level=level,
            tag=tag,
            message=message,
            fields=fields
        )
        with self._lock:
            self.records.append(record)
        if self.verbose:
            prefix = f"[{tag}]" if level == "INFO" else f"[{tag}] {level}:"
            print(f"{prefix} {message}")

    def debug(self, tag: str, message: str, **fields):
        self._emit("DEBUG", tag, message, fields)

    def info(self, tag: str, message: str, **fields):
        self._emit("INFO", tag, message, fields)

    def warn(self, tag: str, message: str, **fields):
        self._emit("WARNING", tag, message, fields)

    def error(self, tag: str, message: str, **fields):
        self._emit("ERROR", tag, message, fields)

    def stage(self, title: str):
        """Banner marking the start of a stage."""
        with self._lock:
            self.records.append(LogRecord(
                timestamp=datetime.now().isoformat(), level="INFO", tag="STAGE", message=title
            ))
        if self.verbose:
            print("\n" + "="*60)
            print(title)
            print("="*60)

    # --- Structured records ---

    def log_unit(self, entry: Dict):
        """Record an AgentLogEntry (already serialized)."""
        with self._lock:
            self.unit_logs.append(entry)
        if self.verbose:
            meta = entry.get('metadata', {})
            print(f"[AUDIT] {entry['agent']}: in={entry['input_hash']} out={entry['output_hash']} "
                  f"({meta.get('processing_time', 0):.2f}s, {meta.get('checkpoints_passed', 0)} checkpoints)")

    def log_gate(self, gate: str, decision: str, score: float, threshold: float,
                 iteration: int, max_iterations: int):
        """Record a gate routing decision."""
        gate_log = GateDecisionLog(
            gate=gate,
            decision=decision,
            score=score,
            threshold=threshold,
            iteration=iteration,
            max_iterations=max_iterations,
            timestamp=datetime.now().isoformat()
        )
        with self._lock:
            self.gate_decisions.append(gate_log)

        tag = gate.upper()
        if self.verbose:
            margin = score - threshold
            sign = "+" if margin >= 0 else ""
            print(f"[{tag}] {decision} | score {score:.1f} vs {threshold:.0f} ({sign}{margin:.1f}) "
                  f"| iteration {iteration}/{max_iterations}")

    def log_model_call(self, node: str, tier: str, tokens: int, cost: float, duration: float):
        """Record one call to a generation/review model."""
        call = {
            'node': node,
            'tier': tier,
            'tokens': tokens,
            'cost': cost,
            'duration_seconds': duration,
            'timestamp': datetime.now().isoformat()
        }
        with self._lock:
            self.model_calls.append(call)
        if self.verbose:
            print(f"[MODEL] {node} ({tier}): ~{tokens} tokens, ${cost:.4f} ({duration:.2f}s)")

    def log_job(self, summary: JobSummaryLog):
        """Record the outcome of a job."""
        with self._lock:
            self.jobs.append(summary)

        if self.verbose:
            status = "✓ SUCCESS" if summary.success else f"✗ FAILED at {summary.failed_stage}"
            print(f"\n[JOB] === {summary.job_id} ({summary.strategy}) {status} ===")
            print(f"[JOB] Stages: {' → '.join(summary.execution_order)}")
            print(f"[JOB] Total Time: {summary.duration_seconds:.2f}s")
            if summary.quality_score is not None:
                print(f"[JOB] Quality: {summary.quality_score:.1f} ({summary.completion_status})")

    # --- Queries ---

    def messages(self, tag: str = None, level: str = None) -> List[str]:
        """Messages recorded so far, optionally filtered by tag and level."""
        return [
            r.message for r in self.records
            if (tag is None or r.tag == tag) and (level is None or r.level == level)
        ]

    # --- Persistence ---

    def save(self, filename: str = None) -> str:
        """Save all records to a JSON file."""
        if filename is None:
            os.makedirs(self.log_dir, exist_ok=True)
            filename = f"{self.log_dir}/{self.experiment_name}_{self.timestamp}_execution.json"

        self._calculate_summary_stats()

        output = {
            'metadata': self.metadata,
            'jobs': [j.to_dict() for j in self.jobs],
            'unit_logs': self.unit_logs,
            'gate_decisions': [g.to_dict() for g in self.gate_decisions],
            'model_calls': self.model_calls,
            'records': [r.to_dict() for r in self.records]
        }

        with open(filename, 'w') as f:
            json.dump(output, f, indent=2, default=str)

        if self.verbose:
            print(f"\n[EXECUTION_LOGGER] Saved execution log to: {filename}")

        return filename

    def summary_stats(self) -> Dict:
        self._calculate_summary_stats()
        return self.metadata['summary_stats']

    def _calculate_summary_stats(self):
        """Calculate summary statistics across all jobs."""
        if not self.jobs:
            self.metadata['summary_stats'] = {'total_jobs': 0}
            return

        durations = [j.duration_seconds for j in self.jobs]
        scores = [j.quality_score for j in self.jobs if j.quality_score is not None]
        successes = sum(1 for j in self.jobs if j.success)
        total_cost = sum(c['cost'] for c in self.model_calls)

        self.metadata['summary_stats'] = {
            'total_jobs': len(self.jobs),
            'successful_jobs': successes,
            'success_rate': successes / len(self.jobs),
            'duration_mean': float(np.mean(durations)),
            'duration_std': float(np.std(durations)),
            'quality_mean': float(np.mean(scores)) if scores else 0.0,
            'quality_std': float(np.std(scores)) if scores else 0.0,
            'total_unit_logs': len(self.unit_logs),
            'total_gate_decisions': len(self.gate_decisions),
            'total_model_calls': len(self.model_calls),
            'total_model_cost': total_cost
        }
