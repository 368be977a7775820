"""
Chain Repository

Storage interface for chain snapshots plus an in-memory implementation.
Every stored version is kept; reads hand out copies so callers always work
on a stable snapshot.
"""

import threading
from typing import Dict, List, Optional, Protocol, runtime_checkable

from chain_sdk.chains.models import Chain
from chain_sdk.chains.versioning import sort_versions


@runtime_checkable
class ChainRepository(Protocol):
    def get(self, chain_id: str, version: Optional[str] = None) -> Optional[Chain]:
        """Latest snapshot, or the given version; None when missing"""
        ...

    def put(self, chain: Chain) -> Chain:
        """Store a snapshot as the chain's latest version"""
        ...

    def delete(self, chain_id: str) -> bool:
        """Remove a chain and all its versions; False when missing"""
        ...

    def list(self) -> List[Chain]:
        """Latest snapshot of every chain"""
        ...

    def versions(self, chain_id: str) -> List[str]:
        """Stored versions of a chain, ascending"""
        ...


class InMemoryChainRepository:
    """Thread-safe dict-backed repository"""

    def __init__(self):
        self._lock = threading.Lock()
        # chain_id -> version -> snapshot, insertion order = storage order
        self._chains: Dict[str, Dict[str, Chain]] = {}

    def get(self, chain_id: str, version: Optional[str] = None) -> Optional[Chain]:
        with self._lock:
            versions = self._chains.get(chain_id)
            if not versions:
                return None
            if version is None:
                chain = list(versions.values())[-1]
            else:
                chain = versions.get(version)
            return chain.model_copy(deep=True) if chain else None

    def put(self, chain: Chain) -> Chain:
        stored = chain.model_copy(deep=True)
        with self._lock:
            versions = self._chains.setdefault(chain.id, {})
            versions.pop(chain.version, None)
            versions[chain.version] = stored
        return stored.model_copy(deep=True)

    def delete(self, chain_id: str) -> bool:
        with self._lock:
            return self._chains.pop(chain_id, None) is not None

    def list(self) -> List[Chain]:
        with self._lock:
            return [
                list(versions.values())[-1].model_copy(deep=True)
                for versions in self._chains.values()
                if versions
            ]

    def versions(self, chain_id: str) -> List[str]:
        with self._lock:
            return sort_versions(list(self._chains.get(chain_id, {})))
