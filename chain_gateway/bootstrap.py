"""
Wiring of a ChainManager from Settings
"""

import logging
from typing import Optional

from chain_sdk.chains import (
    ChainEngine,
    ChainInterpreter,
    ChainManager,
    EchoStepRunner,
    InMemoryResourceResolver,
    ResourceResolver,
    StepRunner,
)

from .clients import HttpResourceResolver
from .config import Settings
from .database import SqlChainRepository
from .logging_config import configure_logging
from .observability import create_execution_logger_factory

logger = logging.getLogger(__name__)


def build_resource_resolver(settings: Settings) -> ResourceResolver:
    """HTTP resolver when a prompt service is configured, in-memory otherwise"""
    if settings.resource_api_url:
        return HttpResourceResolver(
            settings.resource_api_url,
            api_key=settings.resource_api_key,
            timeout=settings.resource_api_timeout
        )
    logger.warning("RESOURCE_API_URL not set, resolving resources from memory")
    return InMemoryResourceResolver()


def build_chain_manager(
    settings: Optional[Settings] = None,
    runner: Optional[StepRunner] = None,
    resolver: Optional[ResourceResolver] = None,
    repository=None
) -> ChainManager:
    """
    Build a ChainManager backed by the SQL repository

    Args:
        settings: Settings (read from the environment when omitted)
        runner: Step runner (placeholder echo runner when omitted)
        resolver: Resource resolver (built from settings when omitted)
        repository: Chain repository (SQL repository from settings when omitted)
    """
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level, settings.log_json)
    resolver = resolver or build_resource_resolver(settings)
    repository = repository or SqlChainRepository(settings.database_url)
    interpreter = ChainInterpreter()

    engine = ChainEngine(
        resolver,
        runner or EchoStepRunner(),
        interpreter=interpreter,
        max_concurrency=settings.max_concurrency,
        execution_logger_factory=create_execution_logger_factory(settings.execution_log_dir),
    )
    return ChainManager(repository, resolver, engine=engine, interpreter=interpreter)
