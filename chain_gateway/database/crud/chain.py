"""
CRUD operations for chain records and their version snapshots
"""

from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from ..models import ChainRecord, ChainVersionRecord


def save_chain_version(
    session: Session,
    chain_id: str,
    name: str,
    version: str,
    definition: Dict[str, Any],
    execution_order: str,
    step_count: int,
    author: str = "system",
    description: Optional[str] = None,
) -> ChainVersionRecord:
    """
    Store a chain snapshot as the chain's latest version

    Creates the chain record on first save. Saving an existing version
    replaces that snapshot.
    """
    record = get_chain_record(session, chain_id)
    if record is None:
        record = ChainRecord(id=chain_id, created_at=datetime.now(timezone.utc))
        session.add(record)

    record.name = name
    record.author = author
    record.execution_order = execution_order
    record.latest_version = version
    record.step_count = step_count
    record.updated_at = datetime.now(timezone.utc)

    existing = (
        session.query(ChainVersionRecord)
        .filter(ChainVersionRecord.chain_id == chain_id, ChainVersionRecord.version == version)
        .first()
    )
    if existing is not None:
        session.delete(existing)
        session.flush()

    last_sequence = (
        session.query(func.max(ChainVersionRecord.sequence))
        .filter(ChainVersionRecord.chain_id == chain_id)
        .scalar()
    )
    snapshot = ChainVersionRecord(
        chain_id=chain_id,
        version=version,
        sequence=(last_sequence or 0) + 1,
        definition=definition,
        description=description,
        created_at=datetime.now(timezone.utc),
    )
    session.add(snapshot)
    session.commit()
    session.refresh(snapshot)
    return snapshot


def get_chain_record(session: Session, chain_id: str) -> Optional[ChainRecord]:
    """Get chain record by ID"""
    return session.query(ChainRecord).filter(ChainRecord.id == chain_id).first()


def get_chain_version(
    session: Session,
    chain_id: str,
    version: Optional[str] = None,
) -> Optional[ChainVersionRecord]:
    """Get a specific snapshot, or the most recently stored one"""
    query = session.query(ChainVersionRecord).filter(ChainVersionRecord.chain_id == chain_id)
    if version is not None:
        return query.filter(ChainVersionRecord.version == version).first()
    return query.order_by(desc(ChainVersionRecord.sequence)).first()


def list_latest_versions(
    session: Session,
    limit: Optional[int] = None,
    offset: int = 0,
) -> List[ChainVersionRecord]:
    """Latest snapshot of every chain, most recently updated first"""
    records = session.query(ChainRecord).order_by(desc(ChainRecord.updated_at))
    if limit is not None:
        records = records.limit(limit)
    records = records.offset(offset).all()

    latest = []
    for record in records:
        snapshot = get_chain_version(session, record.id)
        if snapshot is not None:
            latest.append(snapshot)
    return latest


def list_chain_versions(session: Session, chain_id: str) -> List[str]:
    """Stored versions of a chain in storage order"""
    rows = (
        session.query(ChainVersionRecord.version)
        .filter(ChainVersionRecord.chain_id == chain_id)
        .order_by(ChainVersionRecord.sequence)
        .all()
    )
    return [row[0] for row in rows]


def delete_chain(session: Session, chain_id: str) -> bool:
    """Delete a chain and all its versions (cascade)"""
    record = get_chain_record(session, chain_id)
    if not record:
        return False

    session.delete(record)
    session.commit()
    return True
