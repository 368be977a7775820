"""
SQL-backed ChainRepository
"""

import logging
from typing import List, Optional

from chain_sdk.chains.models import Chain
from chain_sdk.chains.versioning import sort_versions

from .crud import (
    delete_chain,
    get_chain_version,
    list_chain_versions,
    list_latest_versions,
    save_chain_version,
)
from .session import (
    DEFAULT_DATABASE_URL,
    create_db_engine,
    create_session_factory,
    init_db,
    session_scope,
)

logger = logging.getLogger(__name__)


class SqlChainRepository:
    """
    Stores every chain version as a JSON snapshot

    Snapshots are parsed back into fresh Chain objects on every read, so
    callers never share state with each other.
    """

    def __init__(self, database_url: str = DEFAULT_DATABASE_URL, echo: bool = False):
        self.engine = create_db_engine(database_url, echo=echo)
        init_db(self.engine)
        self.session_factory = create_session_factory(self.engine)
        logger.info(f"Chain repository using {self.engine.url.render_as_string(hide_password=True)}")

    def get(self, chain_id: str, version: Optional[str] = None) -> Optional[Chain]:
        with session_scope(self.session_factory) as session:
            snapshot = get_chain_version(session, chain_id, version)
            if snapshot is None:
                return None
            return Chain.model_validate(snapshot.definition)

    def put(self, chain: Chain) -> Chain:
        definition = chain.model_dump(mode="json")
        with session_scope(self.session_factory) as session:
            save_chain_version(
                session,
                chain_id=chain.id,
                name=chain.name,
                version=chain.version,
                definition=definition,
                execution_order=chain.execution_order.value,
                step_count=len(chain.steps),
                author=chain.author,
                description=chain.description,
            )
        return Chain.model_validate(definition)

    def delete(self, chain_id: str) -> bool:
        with session_scope(self.session_factory) as session:
            return delete_chain(session, chain_id)

    def list(self) -> List[Chain]:
        with session_scope(self.session_factory) as session:
            return [
                Chain.model_validate(snapshot.definition)
                for snapshot in list_latest_versions(session)
            ]

    def versions(self, chain_id: str) -> List[str]:
        with session_scope(self.session_factory) as session:
            return sort_versions(list_chain_versions(session, chain_id))

    def dispose(self) -> None:
        self.engine.dispose()
