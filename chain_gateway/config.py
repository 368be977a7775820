"""
Gateway configuration

All settings come from environment variables; see Settings.from_env.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .database.session import DEFAULT_DATABASE_URL

TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class Settings:
    """
    Runtime settings

    Attributes:
        database_url: SQLAlchemy URL of the chain store
        resource_api_url: Prompt service URL; None = in-memory resolver
        resource_api_key: Bearer token for the prompt service
        resource_api_timeout: Prompt service request timeout in seconds
        max_concurrency: Cap on concurrently running steps (None = unbounded)
        execution_log_dir: Directory for per-execution JSONL logs
        log_level: Logging level name
        log_json: Render structlog events as JSON instead of console lines
    """
    database_url: str = DEFAULT_DATABASE_URL
    resource_api_url: Optional[str] = None
    resource_api_key: Optional[str] = None
    resource_api_timeout: float = 30.0
    max_concurrency: Optional[int] = None
    execution_log_dir: Optional[Path] = None
    log_level: str = "INFO"
    log_json: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from the environment

        Raises:
            ValueError: If a numeric setting cannot be parsed
        """
        env = os.environ if environ is None else environ

        max_concurrency = env.get("CHAIN_MAX_CONCURRENCY") or None
        log_dir = env.get("EXECUTION_LOG_DIR") or None

        return cls(
            database_url=env.get("DATABASE_URL", DEFAULT_DATABASE_URL),
            resource_api_url=env.get("RESOURCE_API_URL") or None,
            resource_api_key=env.get("RESOURCE_API_KEY") or None,
            resource_api_timeout=float(env.get("RESOURCE_API_TIMEOUT", "30")),
            max_concurrency=int(max_concurrency) if max_concurrency else None,
            execution_log_dir=Path(log_dir) if log_dir else None,
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            log_json=env.get("LOG_JSON", "").lower() in TRUTHY,
        )
