"""Domain models for launchpad projects and contributions"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

class ProjectStatus(str, Enum):
    UPCOMING = 'upcoming'
    ACTIVE = 'active'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'

class ContributionState(str, Enum):
    PENDING = 'pending'
    ALLOCATED = 'allocated'
    REFUNDED = 'refunded'

class TokenKind(str, Enum):
    """Stablecoins accepted for contributions"""
    USDT = 'USDT'
    USDC = 'USDC'

@dataclass(frozen=True)
class Project:
    """Read-only snapshot of a stored project"""
    id: str
    name: str
    symbol: str
    description: Optional[str]
    token_address: Optional[str]
    price_per_token: Decimal
    total_supply: Decimal
    allocation: Decimal
    start_time: datetime
    end_time: datetime
    min_contribution: Decimal
    max_contribution: Decimal
    status: ProjectStatus
    raised_amount: Decimal
    contributors_count: int
    privacy_pool_address: str
    distribution_in_progress: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def is_open_at(self, moment: datetime) -> bool:
        """True when moment falls inside the inclusive sale window"""
        return self.start_time <= moment <= self.end_time

@dataclass(frozen=True)
class Contribution:
    """Read-only snapshot of a stored contribution"""
    id: str
    project_id: str
    contributor_address: str
    amount: Decimal
    token: TokenKind
    tokens_allocated: Decimal
    shield_tx_hash: str
    status: ContributionState = ContributionState.PENDING
    destination_address: Optional[str] = None
    distribution_tx_hash: Optional[str] = None
    created_at: Optional[datetime] = None

@dataclass(frozen=True)
class ContributionTotals:
    """Sum of one contributor's contributions sharing a status"""
    status: ContributionState
    amount: Decimal
    tokens_allocated: Decimal

@dataclass(frozen=True)
class ContributionStatus:
    """Reporting view of a contributor's position in a project"""
    contributed: Decimal
    tokens_allocated: Decimal
    status: ContributionState

    @classmethod
    def empty(cls) -> 'ContributionStatus':
        return cls(Decimal(0), Decimal(0), ContributionState.PENDING)

@dataclass(frozen=True)
class ContributeResult:
    shield_tx_hash: str
    contribution_id: str

@dataclass(frozen=True)
class DistributeResult:
    distribution_tx_hash: str
