"""
SQLAlchemy models for chain storage
"""

from sqlalchemy import (
    Column,
    String,
    Integer,
    DateTime,
    Text,
    ForeignKey,
    Index,
    UniqueConstraint,
    JSON,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class ChainRecord(Base):
    """A chain; its content lives in ChainVersionRecord snapshots"""

    __tablename__ = "chains"

    id = Column(String, primary_key=True)  # UUID
    name = Column(String, nullable=False)
    author = Column(String, nullable=False, default="system")
    execution_order = Column(String, nullable=False)  # 'sequential', 'parallel'

    # Denormalized from the latest snapshot for listing
    latest_version = Column(String, nullable=False)
    step_count = Column(Integer, nullable=False, default=0)

    # Metadata
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    versions = relationship(
        "ChainVersionRecord",
        back_populates="chain",
        cascade="all, delete-orphan",
        order_by="ChainVersionRecord.sequence",
    )

    # Indexes
    __table_args__ = (
        Index("idx_chains_name", "name"),
        Index("idx_chains_updated", "updated_at"),
    )

    def __repr__(self):
        return f"<ChainRecord(id={self.id}, name={self.name}, version={self.latest_version})>"


class ChainVersionRecord(Base):
    """One stored version of a chain (full snapshot as JSON)"""

    __tablename__ = "chain_versions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    chain_id = Column(String, ForeignKey("chains.id", ondelete="CASCADE"), nullable=False)
    version = Column(String, nullable=False)
    sequence = Column(Integer, nullable=False)  # storage order within the chain

    definition = Column(JSON, nullable=False)  # Chain.model_dump(mode="json")
    description = Column(Text)

    created_at = Column(DateTime, default=func.now())

    # Relationships
    chain = relationship("ChainRecord", back_populates="versions")

    # Indexes
    __table_args__ = (
        UniqueConstraint("chain_id", "version", name="uq_chain_version"),
        Index("idx_chain_versions_chain", "chain_id", "sequence"),
    )

    def __repr__(self):
        return f"<ChainVersionRecord(chain_id={self.chain_id}, version={self.version})>"
