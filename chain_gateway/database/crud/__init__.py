"""
CRUD operations module

Imports all CRUD functions from individual entity files
"""

from .chain import (
    save_chain_version,
    get_chain_record,
    get_chain_version,
    list_latest_versions,
    list_chain_versions,
    delete_chain,
)

__all__ = [
    "save_chain_version",
    "get_chain_record",
    "get_chain_version",
    "list_latest_versions",
    "list_chain_versions",
    "delete_chain",
]
