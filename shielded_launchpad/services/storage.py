"""Database storage for launchpad projects and contributions"""
import logging
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from decimal import Decimal, localcontext
from typing import Any, Dict, Iterator, List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from shielded_launchpad.allocation import CURRENCY_DECIMALS, format_units, parse_units, to_decimal
from shielded_launchpad.db import Database
from shielded_launchpad.errors import ConflictError, NotFoundError
from shielded_launchpad.models.db import LaunchpadContribution, LaunchpadProject
from shielded_launchpad.models.launchpad import (
    Contribution, ContributionState, ContributionTotals, Project, ProjectStatus, TokenKind
)

# Statuses from which a distribution may complete a project
DISTRIBUTABLE_STATUSES = (ProjectStatus.ACTIVE, ProjectStatus.COMPLETED)

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

def to_epoch_ms(moment: datetime) -> int:
    """Aware datetime to epoch milliseconds; naive values are taken as UTC"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - EPOCH) // timedelta(milliseconds=1)

def from_epoch_ms(value: int) -> datetime:
    return EPOCH + timedelta(milliseconds=int(value))

class ProjectStore(ABC):
    """
    Durable state for projects and contributions.

    Implementations own all persisted state. Values they return are
    snapshots, and every method that changes aggregates must do so
    atomically at the storage layer.
    """

    @abstractmethod
    def insert_project(self, fields: Dict[str, Any]) -> str:
        """Store a new project and return its id"""

    @abstractmethod
    def get_project(self, project_id: str) -> Project:
        """Return the project or raise NotFoundError"""

    @abstractmethod
    def list_projects(self) -> List[Project]:
        """All projects, latest start time first"""

    @abstractmethod
    def update_project_status(self, project_id: str, status: ProjectStatus) -> None:
        """Externally driven status change, refused while a distribution is in progress"""

    @abstractmethod
    def insert_contribution(self, contribution: Contribution) -> None:
        """Store a contribution row without touching project aggregates"""

    @abstractmethod
    def increment_project_aggregate(self, project_id: str, amount_delta: Decimal, contributor_delta: int) -> None:
        """Atomically add to raised amount and contributor count"""

    @abstractmethod
    def record_contribution(self, contribution: Contribution) -> None:
        """Insert the contribution and increment its project's aggregates in one transaction"""

    @abstractmethod
    def list_pending_contributions(self, project_id: str) -> List[Contribution]:
        """Contributions of the project still waiting for distribution"""

    @abstractmethod
    def list_contributions(self, project_id: str, address: Optional[str] = None) -> List[Contribution]:
        """Contributions of the project, optionally only those of one address"""

    @abstractmethod
    def mark_contributions_allocated(self, contribution_ids: Sequence[str], distribution_tx_hash: str) -> int:
        """Move pending contributions to allocated; returns the number updated"""

    @abstractmethod
    def mark_project_completed(self, project_id: str) -> None:
        """Set the project status to completed if it is active or already completed"""

    @abstractmethod
    def finalize_distribution(self, project_id: str, contribution_ids: Sequence[str],
                              distribution_tx_hash: str) -> None:
        """Allocate exactly the given contributions and complete the project, all or nothing"""

    @abstractmethod
    def distribution_lock(self, project_id: str):
        """Context manager holding the project's single distribution slot"""

    @abstractmethod
    def release_distribution_lock(self, project_id: str) -> bool:
        """Clear a distribution marker left behind; returns False when none was set"""

    @abstractmethod
    def sum_contributions_by_status(self, project_id: str, address: str) -> List[ContributionTotals]:
        """Amount and allocation totals of one contributor, grouped by status"""

class SqlProjectStore(ProjectStore):
    """ProjectStore backed by SQLAlchemy"""

    def __init__(self, database: Database):
        self.db = database

    @staticmethod
    def _to_project(row: LaunchpadProject) -> Project:
        return Project(
            id=row.id,
            name=row.name,
            symbol=row.symbol,
            description=row.description,
            token_address=row.token_address,
            price_per_token=Decimal(row.price_per_token),
            total_supply=Decimal(row.total_supply),
            allocation=Decimal(row.allocation),
            start_time=from_epoch_ms(row.start_time),
            end_time=from_epoch_ms(row.end_time),
            min_contribution=Decimal(row.min_contribution),
            max_contribution=Decimal(row.max_contribution),
            status=ProjectStatus(row.status),
            raised_amount=format_units(row.raised_amount_units, CURRENCY_DECIMALS),
            contributors_count=row.contributors_count,
            privacy_pool_address=row.privacy_pool_address,
            distribution_in_progress=bool(row.distribution_in_progress),
            created_at=row.created_at,
            updated_at=row.updated_at
        )

    @staticmethod
    def _to_contribution(row: LaunchpadContribution) -> Contribution:
        return Contribution(
            id=row.id,
            project_id=row.project_id,
            contributor_address=row.user_address,
            destination_address=row.destination_address,
            amount=Decimal(row.amount),
            token=TokenKind(row.token),
            tokens_allocated=Decimal(row.tokens_allocated),
            shield_tx_hash=row.shield_tx_hash,
            distribution_tx_hash=row.distribution_tx_hash,
            status=ContributionState(row.status),
            created_at=row.created_at
        )

    def insert_project(self, fields: Dict[str, Any]) -> str:
        project_id = fields.get('id') or str(uuid.uuid4())
        row = LaunchpadProject(
            id=project_id,
            name=fields['name'],
            symbol=fields['symbol'],
            description=fields.get('description'),
            token_address=fields.get('token_address'),
            price_per_token=format(to_decimal(fields['price_per_token']), 'f'),
            total_supply=format(to_decimal(fields['total_supply']), 'f'),
            allocation=format(to_decimal(fields['allocation']), 'f'),
            start_time=to_epoch_ms(fields['start_time']),
            end_time=to_epoch_ms(fields['end_time']),
            min_contribution=format(to_decimal(fields['min_contribution']), 'f'),
            max_contribution=format(to_decimal(fields['max_contribution']), 'f'),
            status=ProjectStatus(fields.get('status', ProjectStatus.UPCOMING)).value,
            raised_amount_units=0,
            contributors_count=0,
            privacy_pool_address=fields['privacy_pool_address'],
            distribution_in_progress=False
        )
        try:
            with self.db.session() as session:
                session.add(row)
            logger.info(f"Stored project {project_id} ({fields['symbol']})")
            return project_id
        except SQLAlchemyError as e:
            logger.error(f"Database error storing project: {e}")
            raise

    def _load_project_row(self, session: Session, project_id: str) -> LaunchpadProject:
        row = session.get(LaunchpadProject, project_id)
        if row is None:
            raise NotFoundError(f"Project not found: {project_id}")
        return row

    def get_project(self, project_id: str) -> Project:
        with self.db.session() as session:
            return self._to_project(self._load_project_row(session, project_id))

    def list_projects(self) -> List[Project]:
        with self.db.session() as session:
            rows = session.scalars(
                select(LaunchpadProject).order_by(LaunchpadProject.start_time.desc())
            ).all()
            return [self._to_project(row) for row in rows]

    def update_project_status(self, project_id: str, status: ProjectStatus) -> None:
        with self.db.session() as session:
            result = session.execute(
                update(LaunchpadProject)
                .where(LaunchpadProject.id == project_id,
                       LaunchpadProject.distribution_in_progress.is_(False))
                .values(status=ProjectStatus(status).value)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                self._load_project_row(session, project_id)
                raise ConflictError(f"Distribution in progress for project {project_id}, status not changed")

    def _add_contribution(self, session: Session, contribution: Contribution) -> None:
        session.add(LaunchpadContribution(
            id=contribution.id,
            project_id=contribution.project_id,
            user_address=contribution.contributor_address,
            destination_address=contribution.destination_address,
            amount=format(contribution.amount, 'f'),
            token=TokenKind(contribution.token).value,
            shield_tx_hash=contribution.shield_tx_hash,
            tokens_allocated=format(contribution.tokens_allocated, 'f'),
            distribution_tx_hash=contribution.distribution_tx_hash,
            status=ContributionState(contribution.status).value
        ))
        session.flush()

    def _increment(self, session: Session, project_id: str, amount_delta: Decimal, contributor_delta: int) -> None:
        # Single UPDATE so concurrent writers cannot overwrite each other's totals
        result = session.execute(
            update(LaunchpadProject)
            .where(LaunchpadProject.id == project_id)
            .values(
                raised_amount_units=LaunchpadProject.raised_amount_units + parse_units(amount_delta, CURRENCY_DECIMALS),
                contributors_count=LaunchpadProject.contributors_count + contributor_delta
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError(f"Project not found: {project_id}")

    def insert_contribution(self, contribution: Contribution) -> None:
        try:
            with self.db.session() as session:
                self._add_contribution(session, contribution)
        except SQLAlchemyError as e:
            logger.error(f"Database error storing contribution: {e}")
            raise

    def increment_project_aggregate(self, project_id: str, amount_delta: Decimal, contributor_delta: int) -> None:
        try:
            with self.db.session() as session:
                self._increment(session, project_id, amount_delta, contributor_delta)
        except SQLAlchemyError as e:
            logger.error(f"Database error updating project aggregates: {e}")
            raise

    def record_contribution(self, contribution: Contribution) -> None:
        try:
            with self.db.session() as session:
                self._add_contribution(session, contribution)
                self._increment(session, contribution.project_id, contribution.amount, 1)
        except SQLAlchemyError as e:
            logger.error(f"Database error recording contribution {contribution.id}: {e}")
            raise

    def list_pending_contributions(self, project_id: str) -> List[Contribution]:
        with self.db.session() as session:
            rows = session.scalars(
                select(LaunchpadContribution)
                .where(LaunchpadContribution.project_id == project_id,
                       LaunchpadContribution.status == ContributionState.PENDING.value)
                .order_by(LaunchpadContribution.created_at, LaunchpadContribution.id)
            ).all()
            return [self._to_contribution(row) for row in rows]

    def list_contributions(self, project_id: str, address: Optional[str] = None) -> List[Contribution]:
        query = select(LaunchpadContribution).where(LaunchpadContribution.project_id == project_id)
        if address is not None:
            query = query.where(LaunchpadContribution.user_address == address)
        with self.db.session() as session:
            rows = session.scalars(
                query.order_by(LaunchpadContribution.created_at, LaunchpadContribution.id)
            ).all()
            return [self._to_contribution(row) for row in rows]

    def _allocate(self, session: Session, contribution_ids: Sequence[str], distribution_tx_hash: str,
                  project_id: Optional[str] = None) -> int:
        query = (
            update(LaunchpadContribution)
            .where(LaunchpadContribution.id.in_(list(contribution_ids)),
                   LaunchpadContribution.status == ContributionState.PENDING.value)
        )
        if project_id is not None:
            query = query.where(LaunchpadContribution.project_id == project_id)
        result = session.execute(
            query.values(status=ContributionState.ALLOCATED.value, distribution_tx_hash=distribution_tx_hash)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def _complete(self, session: Session, project_id: str) -> None:
        # Only a project still open for distribution may complete
        result = session.execute(
            update(LaunchpadProject)
            .where(LaunchpadProject.id == project_id,
                   LaunchpadProject.status.in_([s.value for s in DISTRIBUTABLE_STATUSES]))
            .values(status=ProjectStatus.COMPLETED.value)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            row = self._load_project_row(session, project_id)
            raise ConflictError(f"Project {project_id} is {row.status} and cannot be completed")

    def mark_contributions_allocated(self, contribution_ids: Sequence[str], distribution_tx_hash: str) -> int:
        if not contribution_ids:
            return 0
        with self.db.session() as session:
            return self._allocate(session, contribution_ids, distribution_tx_hash)

    def mark_project_completed(self, project_id: str) -> None:
        with self.db.session() as session:
            self._complete(session, project_id)

    def finalize_distribution(self, project_id: str, contribution_ids: Sequence[str],
                              distribution_tx_hash: str) -> None:
        try:
            with self.db.session() as session:
                updated = self._allocate(session, contribution_ids, distribution_tx_hash, project_id)
                if updated != len(contribution_ids):
                    raise ConflictError(
                        f"Expected {len(contribution_ids)} pending contributions for project {project_id}, "
                        f"found {updated}"
                    )
                self._complete(session, project_id)
        except SQLAlchemyError as e:
            logger.error(f"Database error finalizing distribution for project {project_id}: {e}")
            raise

    @contextmanager
    def distribution_lock(self, project_id: str) -> Iterator[None]:
        with self.db.session() as session:
            result = session.execute(
                update(LaunchpadProject)
                .where(LaunchpadProject.id == project_id,
                       LaunchpadProject.distribution_in_progress.is_(False))
                .values(distribution_in_progress=True)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                self._load_project_row(session, project_id)
                raise ConflictError(f"Distribution already in progress for project {project_id}")
        try:
            yield
        finally:
            with self.db.session() as session:
                session.execute(
                    update(LaunchpadProject)
                    .where(LaunchpadProject.id == project_id)
                    .values(distribution_in_progress=False)
                    .execution_options(synchronize_session=False)
                )

    def release_distribution_lock(self, project_id: str) -> bool:
        with self.db.session() as session:
            self._load_project_row(session, project_id)
            result = session.execute(
                update(LaunchpadProject)
                .where(LaunchpadProject.id == project_id,
                       LaunchpadProject.distribution_in_progress.is_(True))
                .values(distribution_in_progress=False)
                .execution_options(synchronize_session=False)
            )
        released = result.rowcount == 1
        if released:
            logger.warning(f"Distribution lock of project {project_id} released by operator")
        return released

    def sum_contributions_by_status(self, project_id: str, address: str) -> List[ContributionTotals]:
        totals: Dict[ContributionState, List[Decimal]] = {}
        with localcontext() as ctx:
            ctx.prec = 80
            for contribution in self.list_contributions(project_id, address):
                amount, allocated = totals.setdefault(contribution.status, [Decimal(0), Decimal(0)])
                totals[contribution.status] = [amount + contribution.amount, allocated + contribution.tokens_allocated]

        return [
            ContributionTotals(status=state, amount=totals[state][0], tokens_allocated=totals[state][1])
            for state in ContributionState if state in totals
        ]
