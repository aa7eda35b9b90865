"""Launchpad operations exposed to the transport layer"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError as SchemaValidationError

from shielded_launchpad.config import Settings
from shielded_launchpad.errors import ValidationError
from shielded_launchpad.models.launchpad import (
    ContributeResult, Contribution, ContributionState, ContributionStatus, DistributeResult,
    Project, ProjectStatus
)
from shielded_launchpad.models.requests import ProjectCreate
from shielded_launchpad.services.contribution import ContributionProcessor, utcnow
from shielded_launchpad.services.distribution import DistributionBatcher
from shielded_launchpad.services.signer import TransactionSigner
from shielded_launchpad.services.storage import ProjectStore

logger = logging.getLogger(__name__)

# Reported when a contributor has contributions in more than one state
STATUS_PRECEDENCE = (ContributionState.PENDING, ContributionState.ALLOCATED, ContributionState.REFUNDED)

class LaunchpadOrchestrator:
    """Composes storage, contribution and distribution into the public operations"""

    def __init__(self, settings: Settings, store: ProjectStore,
                 clock: Callable[[], datetime] = utcnow):
        self.settings = settings
        self.store = store
        self.contributions = ContributionProcessor(store, settings.PRIVACY_POOL_ADDRESS, clock)
        self.distributions = DistributionBatcher(store, settings.PRIVACY_POOL_ADDRESS)

    def create_project(self, fields: Union[ProjectCreate, Dict[str, Any]]) -> Project:
        """Validate and store a new project in the upcoming state"""
        try:
            data = fields if isinstance(fields, ProjectCreate) else ProjectCreate.model_validate(fields)
        except SchemaValidationError as e:
            raise ValidationError(f"Invalid project: {e}")

        project_id = self.store.insert_project({**data.model_dump(), 'status': ProjectStatus.UPCOMING})
        return self.store.get_project(project_id)

    def list_projects(self) -> List[Project]:
        return self.store.list_projects()

    def get_project(self, project_id: str) -> Project:
        return self.store.get_project(project_id)

    def set_project_status(self, project_id: str, status: Union[ProjectStatus, str]) -> Project:
        """
        Apply an externally driven status change.

        Completion is reserved for distribution, and completed projects are final.
        Changes are refused while a distribution of the project is in progress.
        """
        try:
            status = ProjectStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown project status: {status}")
        if status == ProjectStatus.COMPLETED:
            raise ValidationError("Projects are completed by distribution only")

        project = self.store.get_project(project_id)
        if project.status == ProjectStatus.COMPLETED:
            raise ValidationError("Project is already completed")

        self.store.update_project_status(project_id, status)
        logger.info(f"Project {project_id} moved from {project.status.value} to {status.value}")
        return self.store.get_project(project_id)

    def contribute(self, project_id: str, amount: str, token, signer: TransactionSigner,
                   destination_address: Optional[str] = None,
                   timeout: Optional[float] = None) -> ContributeResult:
        return self.contributions.contribute(
            project_id, amount, token, signer,
            destination_address=destination_address, timeout=timeout
        )

    def distribute(self, project_id: str, signer: TransactionSigner,
                   timeout: Optional[float] = None) -> DistributeResult:
        return self.distributions.distribute(project_id, signer, timeout=timeout)

    def release_distribution_lock(self, project_id: str, confirm: bool = False) -> bool:
        """
        Clear a distribution marker left by an interrupted distribution.

        Only safe once the operator has checked that no distribution of the
        project is still running, so the caller must confirm it.
        """
        if not confirm:
            raise ValidationError("Releasing a distribution lock must be confirmed")
        return self.store.release_distribution_lock(project_id)

    def list_contributions(self, project_id: str, address: Optional[str] = None) -> List[Contribution]:
        return self.store.list_contributions(project_id, address)

    def get_contribution_status(self, project_id: str, address: str) -> ContributionStatus:
        """
        Summarize one contributor's position in a project.

        Returns a zero pending status when the address never contributed.
        """
        totals = {t.status: t for t in self.store.sum_contributions_by_status(project_id, address)}
        for state in STATUS_PRECEDENCE:
            if state in totals:
                return ContributionStatus(
                    contributed=totals[state].amount,
                    tokens_allocated=totals[state].tokens_allocated,
                    status=state
                )
        return ContributionStatus.empty()
