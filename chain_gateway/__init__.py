"""
Chain Gateway

Persistence, resource clients, configuration and logging around the chain SDK.
"""

from .config import Settings
from .logging_config import configure_logging
from .bootstrap import build_chain_manager, build_resource_resolver

__all__ = [
    "Settings",
    "configure_logging",
    "build_chain_manager",
    "build_resource_resolver",
]
