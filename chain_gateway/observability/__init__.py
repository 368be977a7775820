"""
Observability - Logging and Monitoring

Per-execution structured logging for chain runs.
"""

from .execution_logger import ExecutionLogger, create_execution_logger_factory
from .log_reader import ExecutionLogReader, find_execution_logs

__all__ = [
    'ExecutionLogger',
    'create_execution_logger_factory',
    'ExecutionLogReader',
    'find_execution_logs',
]
