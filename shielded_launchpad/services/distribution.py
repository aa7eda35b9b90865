"""Batch distribution of allocated tokens"""
import logging
import time
from typing import Optional

from shielded_launchpad.errors import ConflictError, OperationTimeoutError, TransactionError, ValidationError
from shielded_launchpad.models.launchpad import DistributeResult
from shielded_launchpad.services.signer import TransactionRequest, TransactionSigner, encode_memo
from shielded_launchpad.services.storage import DISTRIBUTABLE_STATUSES, ProjectStore

logger = logging.getLogger(__name__)

class DistributionBatcher:
    """
    Finalizes every pending contribution of a project with one transaction.

    The ledger change is all or nothing: either every contribution read as
    pending is marked allocated with the same distribution hash and the
    project is completed, or nothing changes.
    """

    def __init__(self, store: ProjectStore, privacy_pool_address: str = ''):
        self.store = store
        self.privacy_pool_address = privacy_pool_address

    def distribute(self, project_id: str, admin_signer: TransactionSigner,
                   timeout: Optional[float] = None) -> DistributeResult:
        started = time.monotonic()
        project = self.store.get_project(project_id)
        if project.status not in DISTRIBUTABLE_STATUSES:
            raise ValidationError("Project is not ready for distribution")

        with self.store.distribution_lock(project_id):
            # status may have changed before the lock was taken
            project = self.store.get_project(project_id)
            if project.status not in DISTRIBUTABLE_STATUSES:
                raise ValidationError("Project is not ready for distribution")

            pending = self.store.list_pending_contributions(project_id)
            if not pending:
                raise ConflictError("No pending contributions to distribute")

            if timeout is not None and time.monotonic() - started >= timeout:
                raise OperationTimeoutError(f"Distribution for {project_id} timed out before submission")

            request = TransactionRequest(
                to=project.token_address or project.privacy_pool_address or self.privacy_pool_address,
                data=encode_memo('distributeTokens()')
            )
            receipt = admin_signer.send_and_confirm(request)
            if receipt is None:
                logger.error(f"Distribution transaction for project {project_id} was not confirmed")
                raise TransactionError("Distribution transaction failed")

            self.store.finalize_distribution(project_id, [c.id for c in pending], receipt.tx_hash)

        logger.info(
            f"Distributed project {project_id}: {len(pending)} contributions allocated in {receipt.tx_hash}"
        )
        return DistributeResult(distribution_tx_hash=receipt.tx_hash)
