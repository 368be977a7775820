"""
Execution Logger using structlog

Emits one structured event per chain/step lifecycle transition. When a log
directory is configured, every execution also gets its own JSONL file for
later inspection with ExecutionLogReader.
"""

import structlog
import json
from pathlib import Path
from datetime import datetime, timezone
from typing import Dict, Any, Optional, Callable


class ExecutionLogger:
    """Logger for an individual chain execution"""

    def __init__(self, chain_id: str, execution_id: str, log_dir: Optional[Path] = None):
        """
        Initialize logger for a specific execution

        Args:
            chain_id: Chain being executed
            execution_id: Unique execution ID
            log_dir: Directory for the JSONL file; no file is written when None
        """
        self.chain_id = chain_id
        self.execution_id = execution_id

        self.log_file = None
        if log_dir is not None:
            log_dir = Path(log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
            self.log_file = log_dir / f"{timestamp}_{execution_id}.jsonl"

        self.logger = structlog.get_logger("chain_gateway.execution").bind(
            chain_id=chain_id,
            execution_id=execution_id
        )

    def _write_to_file(self, data: Dict[str, Any]):
        """Write a log entry to the JSONL file"""
        with open(self.log_file, 'a') as f:
            json.dump(data, f, default=str)
            f.write('\n')

    def _emit(self, event: str, level: str = "info", **fields):
        getattr(self.logger, level)(event, **fields)
        if self.log_file is not None:
            entry = {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "event": event,
                "chain_id": self.chain_id,
                "execution_id": self.execution_id,
            }
            entry.update(fields)
            self._write_to_file(entry)

    def log_chain_started(self, chain_name: str, execution_order: str, step_count: int):
        self._emit(
            "chain.started",
            chain_name=chain_name,
            execution_order=execution_order,
            step_count=step_count
        )

    def log_step_started(self, step_name: str, step_type: str, input_data: Dict[str, Any]):
        self._emit(
            "step.started",
            level="debug",
            step_name=step_name,
            step_type=step_type,
            input_keys=sorted(input_data)
        )

    def log_step_completed(self, step_name: str, duration_ms: float):
        self._emit("step.completed", step_name=step_name, duration_ms=round(duration_ms, 3))

    def log_step_failed(self, step_name: str, error: str, duration_ms: float):
        self._emit(
            "step.failed",
            level="warning",
            step_name=step_name,
            error=error,
            duration_ms=round(duration_ms, 3)
        )

    def log_step_skipped(self, step_name: str, reason: str):
        self._emit("step.skipped", step_name=step_name, reason=reason)

    def log_chain_completed(self, status: str, duration_ms: float, error: Optional[str] = None):
        """Log the aggregate outcome of the execution"""
        self._emit(
            "chain.completed",
            level="info" if status == "success" else "warning",
            status=status,
            duration_ms=round(duration_ms, 3),
            error=error
        )


def create_execution_logger_factory(
    log_dir: Optional[Path] = None
) -> Callable[[str, str], ExecutionLogger]:
    """
    Factory suitable for ChainEngine(execution_logger_factory=...)

    Args:
        log_dir: Directory for per-execution JSONL files (None = structlog only)
    """
    def factory(chain_id: str, execution_id: str) -> ExecutionLogger:
        return ExecutionLogger(chain_id, execution_id, log_dir)

    return factory
