"""Shield-then-record contribution flow"""
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from shielded_launchpad.allocation import CURRENCY_DECIMALS, parse_units, to_decimal, tokens_allocated
from shielded_launchpad.errors import OperationTimeoutError, TransactionError, ValidationError
from shielded_launchpad.models.launchpad import (
    ContributeResult, Contribution, ContributionState, Project, ProjectStatus, TokenKind
)
from shielded_launchpad.services.signer import TransactionRequest, TransactionSigner, encode_memo
from shielded_launchpad.services.storage import ProjectStore

logger = logging.getLogger(__name__)

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class ContributionProcessor:
    """Validates pledges, shields the funds and records the contribution"""

    def __init__(self, store: ProjectStore, privacy_pool_address: str = '',
                 clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.privacy_pool_address = privacy_pool_address
        self.clock = clock

    def _check_open(self, project: Project) -> None:
        if project.status != ProjectStatus.ACTIVE:
            raise ValidationError("Project is not active")
        if not project.is_open_at(self.clock()):
            raise ValidationError("Project is not in contribution period")

    def _check_amount(self, project: Project, amount: str) -> int:
        amount_units = parse_units(amount, CURRENCY_DECIMALS)
        min_units = parse_units(project.min_contribution, CURRENCY_DECIMALS)
        max_units = parse_units(project.max_contribution, CURRENCY_DECIMALS)
        if amount_units < min_units or amount_units > max_units:
            raise ValidationError("Contribution amount out of allowed range")
        return amount_units

    def _shield(self, project: Project, amount: str, amount_units: int, token: TokenKind,
                signer: TransactionSigner) -> str:
        """Send the funds into the privacy pool and return the confirmed transaction hash"""
        request = TransactionRequest(
            to=project.privacy_pool_address or self.privacy_pool_address,
            value=amount_units,
            data=encode_memo(f"shield({token.value},{amount})")
        )
        receipt = signer.send_and_confirm(request)
        if receipt is None:
            raise TransactionError("Shield transaction failed")
        return receipt.tx_hash

    def contribute(self, project_id: str, amount: str, token, signer: TransactionSigner,
                   destination_address: Optional[str] = None,
                   timeout: Optional[float] = None) -> ContributeResult:
        """
        Pledge amount of token to a project.

        Args:
            project_id: Project to contribute to
            amount: Decimal string in stablecoin units
            token: USDT or USDC
            signer: Contributor's signing capability
            destination_address: Optional shielded address for the token payout
            timeout: Seconds the caller allows before the transfer is submitted

        Returns:
            ContributeResult with the shield transaction hash and new contribution id

        Raises:
            NotFoundError: Unknown project
            ValidationError: Project closed, amount out of range or malformed
            OperationTimeoutError: Deadline passed before submission
            TransactionError: Shield transfer did not confirm
        """
        started = time.monotonic()
        project = self.store.get_project(project_id)
        self._check_open(project)
        amount_units = self._check_amount(project, amount)
        try:
            token = TokenKind(token)
        except ValueError:
            raise ValidationError(f"Unsupported token: {token}")

        contributor = signer.get_address()

        if timeout is not None and time.monotonic() - started >= timeout:
            raise OperationTimeoutError(f"Contribution to {project_id} timed out before shielding")

        try:
            shield_tx_hash = self._shield(project, amount, amount_units, token, signer)
        except TransactionError as e:
            logger.error(f"Shield transfer for project {project_id} from {contributor} failed: {e}")
            raise

        contribution = Contribution(
            id=str(uuid.uuid4()),
            project_id=project_id,
            contributor_address=contributor,
            destination_address=destination_address,
            amount=to_decimal(amount),
            token=token,
            tokens_allocated=tokens_allocated(amount, project.price_per_token),
            shield_tx_hash=shield_tx_hash,
            status=ContributionState.PENDING
        )
        try:
            self.store.record_contribution(contribution)
        except Exception:
            # Funds are already in the pool; the hash is the only link back to them
            logger.error(
                f"Shield transfer {shield_tx_hash} confirmed but contribution for project "
                f"{project_id} from {contributor} was not recorded"
            )
            raise

        logger.info(f"Recorded contribution {contribution.id} of {amount} {token.value} to project {project_id}")
        return ContributeResult(shield_tx_hash=shield_tx_hash, contribution_id=contribution.id)
