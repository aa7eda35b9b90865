"""SQLAlchemy database models for launchpad projects and contributions"""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, BigInteger, ForeignKey
from sqlalchemy.orm import declarative_base

Base = declarative_base()

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

class LaunchpadProject(Base):
    """
    A token sale. Monetary fields are exact decimal strings; the running
    raised total is kept in currency base units so it can be incremented
    in place by the database.
    """
    __tablename__ = 'launchpad_projects'

    id = Column(String(36), primary_key=True)
    name = Column(String(255), nullable=False)
    symbol = Column(String(50), nullable=False)
    description = Column(Text, nullable=True)
    token_address = Column(String(42), nullable=True)
    price_per_token = Column(String, nullable=False)
    total_supply = Column(String, nullable=False)
    allocation = Column(String, nullable=False)
    start_time = Column(BigInteger, nullable=False, index=True)  # epoch ms
    end_time = Column(BigInteger, nullable=False)  # epoch ms
    min_contribution = Column(String, nullable=False)
    max_contribution = Column(String, nullable=False)
    status = Column(String(16), nullable=False, default='upcoming')
    raised_amount_units = Column(BigInteger, nullable=False, default=0)
    contributors_count = Column(Integer, nullable=False, default=0)
    privacy_pool_address = Column(String(42), nullable=False)
    distribution_in_progress = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

class LaunchpadContribution(Base):
    """
    One shielded pledge to a project.
    Written once when the shield transfer confirms, updated once at distribution.
    """
    __tablename__ = 'launchpad_contributions'

    id = Column(String(36), primary_key=True)
    project_id = Column(String(36), ForeignKey('launchpad_projects.id'), nullable=False, index=True)
    user_address = Column(String(42), nullable=False, index=True)
    destination_address = Column(String, nullable=True)
    amount = Column(String, nullable=False)
    token = Column(String(8), nullable=False)
    shield_tx_hash = Column(String(66), nullable=False, unique=True)
    tokens_allocated = Column(String, nullable=False)
    distribution_tx_hash = Column(String(66), nullable=True)
    status = Column(String(16), nullable=False, default='pending', index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
