"""
Database module for the chain gateway

Provides SQLAlchemy models, CRUD operations and the SQL chain repository.
"""

from .models import ChainRecord, ChainVersionRecord, Base
from .session import (
    DEFAULT_DATABASE_URL,
    create_db_engine,
    create_session_factory,
    init_db,
    session_scope,
)
from .crud import (
    save_chain_version,
    get_chain_record,
    get_chain_version,
    list_latest_versions,
    list_chain_versions,
    delete_chain,
)
from .repository import SqlChainRepository

__all__ = [
    # Models
    "ChainRecord",
    "ChainVersionRecord",
    "Base",
    # Session
    "DEFAULT_DATABASE_URL",
    "create_db_engine",
    "create_session_factory",
    "init_db",
    "session_scope",
    # CRUD
    "save_chain_version",
    "get_chain_record",
    "get_chain_version",
    "list_latest_versions",
    "list_chain_versions",
    "delete_chain",
    # Repository
    "SqlChainRepository",
]
