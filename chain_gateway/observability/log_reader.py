"""
Execution Log Reader

Utilities for reading back per-execution JSONL logs.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Any, List, Optional

logger = logging.getLogger(__name__)


class ExecutionLogReader:
    """Reader for chain execution logs"""

    def __init__(self, log_file: Path):
        """
        Initialize log reader

        Args:
            log_file: Path to the .jsonl log file
        """
        self.log_file = Path(log_file)
        self.entries = []
        self.load()

    def load(self):
        """Load all log entries from file"""
        self.entries = []
        if not self.log_file.exists():
            raise FileNotFoundError(f"Log file not found: {self.log_file}")

        with open(self.log_file, 'r') as f:
            for line_num, line in enumerate(f, 1):
                if not line.strip():
                    continue
                try:
                    entry = json.loads(line)
                except json.JSONDecodeError as e:
                    logger.warning(f"Failed to parse {self.log_file} line {line_num}: {e}")
                    continue
                entry['_line_number'] = line_num
                self.entries.append(entry)

    def get_events_by_type(self, event_type: str) -> List[Dict[str, Any]]:
        """
        Get all events of a specific type

        Args:
            event_type: Event type (e.g., 'step.failed', 'chain.completed')
        """
        return [e for e in self.entries if e.get('event') == event_type]

    def get_completed_steps(self) -> List[str]:
        return [e['step_name'] for e in self.get_events_by_type('step.completed')]

    def get_failed_steps(self) -> List[Dict[str, Any]]:
        return self.get_events_by_type('step.failed')

    def get_skipped_steps(self) -> List[str]:
        return [e['step_name'] for e in self.get_events_by_type('step.skipped')]

    def get_final_status(self) -> Optional[str]:
        completed = self.get_events_by_type('chain.completed')
        return completed[-1].get('status') if completed else None

    def get_summary(self) -> Dict[str, Any]:
        """Summarize the execution recorded in this file"""
        started = self.get_events_by_type('chain.started')
        first = started[0] if started else {}
        completed = self.get_events_by_type('chain.completed')
        last = completed[-1] if completed else {}
        return {
            "chain_id": first.get('chain_id'),
            "execution_id": first.get('execution_id'),
            "chain_name": first.get('chain_name'),
            "status": last.get('status'),
            "duration_ms": last.get('duration_ms'),
            "completed_steps": self.get_completed_steps(),
            "failed_steps": [e['step_name'] for e in self.get_failed_steps()],
            "skipped_steps": self.get_skipped_steps(),
            "log_file": str(self.log_file),
        }


def find_execution_logs(log_dir: Path, chain_id: Optional[str] = None) -> List[Path]:
    """
    List execution log files, newest first

    Args:
        log_dir: Directory holding the JSONL files
        chain_id: Only return logs of this chain
    """
    log_dir = Path(log_dir)
    if not log_dir.exists():
        return []

    files = sorted(log_dir.glob("*.jsonl"), reverse=True)
    if chain_id is None:
        return files

    matching = []
    for path in files:
        with open(path, 'r') as f:
            first_line = f.readline()
        try:
            if json.loads(first_line).get('chain_id') == chain_id:
                matching.append(path)
        except json.JSONDecodeError:
            continue
    return matching
