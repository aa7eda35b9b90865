from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from shielded_launchpad.errors import (
    NotFoundError, OperationTimeoutError, TransactionError, ValidationError
)
from shielded_launchpad.models.launchpad import ContributionState, ProjectStatus, TokenKind
from shielded_launchpad.services.contribution import ContributionProcessor
from shielded_launchpad.services.signer import TransactionReceipt
from shielded_launchpad.services.storage import ProjectStore

from conftest import CONTRIBUTOR, NOW, POOL_ADDRESS, make_signer, project_fields

def assert_unchanged(launchpad, project_id):
    project = launchpad.get_project(project_id)
    assert project.raised_amount == Decimal(0)
    assert project.contributors_count == 0
    assert launchpad.list_contributions(project_id) == []

def test_contribution_is_shielded_and_recorded(launchpad, active_project):
    signer = make_signer(tx_hash='0xtxhash')

    result = launchpad.contribute(active_project.id, '1000', 'USDT', signer)

    assert result.shield_tx_hash == '0xtxhash'
    project = launchpad.get_project(active_project.id)
    assert project.raised_amount == Decimal('1000')
    assert project.contributors_count == 1

    [contribution] = launchpad.list_contributions(active_project.id)
    assert contribution.id == result.contribution_id
    assert contribution.contributor_address == CONTRIBUTOR
    assert contribution.amount == Decimal('1000')
    assert contribution.token == TokenKind.USDT
    assert contribution.tokens_allocated == Decimal('500')
    assert contribution.shield_tx_hash == '0xtxhash'
    assert contribution.status == ContributionState.PENDING
    assert contribution.distribution_tx_hash is None

def test_shield_transfer_goes_to_privacy_pool(launchpad, active_project, signer):
    launchpad.contribute(active_project.id, '1000.5', TokenKind.USDC, signer, destination_address='zs1dest')

    request = signer.send_and_confirm.call_args[0][0]
    assert request.to == POOL_ADDRESS
    assert request.value == 1_000_500_000
    assert bytes.fromhex(request.data[2:]).decode() == 'shield(USDC,1000.5)'
    assert launchpad.list_contributions(active_project.id)[0].destination_address == 'zs1dest'

def test_bounds_are_inclusive(launchpad, active_project, signer):
    launchpad.contribute(active_project.id, '100', 'USDT', signer)
    launchpad.contribute(active_project.id, '10000', 'USDT', signer)

    project = launchpad.get_project(active_project.id)
    assert project.raised_amount == Decimal('10100')
    assert project.contributors_count == 2

@pytest.mark.parametrize('amount', ['50', '99.999999', '10000.000001', '20000'])
def test_amount_out_of_range(launchpad, active_project, signer, amount):
    with pytest.raises(ValidationError, match="Contribution amount out of allowed range"):
        launchpad.contribute(active_project.id, amount, 'USDT', signer)

    signer.send_and_confirm.assert_not_called()
    assert_unchanged(launchpad, active_project.id)

@pytest.mark.parametrize('amount', ['abc', '100.0000001', '-100', '1e3', '1_000'])
def test_malformed_amount(launchpad, active_project, signer, amount):
    with pytest.raises(ValidationError):
        launchpad.contribute(active_project.id, amount, 'USDT', signer)
    signer.send_and_confirm.assert_not_called()

@pytest.mark.parametrize('status', [ProjectStatus.UPCOMING, ProjectStatus.CANCELLED])
def test_project_not_active(launchpad, store, active_project, signer, status):
    store.update_project_status(active_project.id, status)

    with pytest.raises(ValidationError, match="Project is not active"):
        launchpad.contribute(active_project.id, '1000', 'USDT', signer)

    signer.send_and_confirm.assert_not_called()
    assert_unchanged(launchpad, active_project.id)

@pytest.mark.parametrize('offset', [timedelta(days=-3), timedelta(days=3)])
def test_outside_contribution_period(store, signer, offset):
    project_id = store.insert_project({**project_fields(), 'status': ProjectStatus.ACTIVE})
    processor = ContributionProcessor(store, POOL_ADDRESS, clock=lambda: NOW + offset)

    with pytest.raises(ValidationError, match="Project is not in contribution period"):
        processor.contribute(project_id, '1000', 'USDT', signer)
    signer.send_and_confirm.assert_not_called()

def test_window_edges_are_open(store, signer):
    project_id = store.insert_project({**project_fields(), 'status': ProjectStatus.ACTIVE})
    for moment in (NOW - timedelta(days=1), NOW + timedelta(days=1)):
        processor = ContributionProcessor(store, POOL_ADDRESS, clock=lambda: moment)
        processor.contribute(project_id, '100', 'USDT', signer)

    assert store.get_project(project_id).contributors_count == 2

def test_unknown_project(launchpad, signer):
    with pytest.raises(NotFoundError):
        launchpad.contribute('missing', '1000', 'USDT', signer)

def test_unsupported_token(launchpad, active_project, signer):
    with pytest.raises(ValidationError, match="Unsupported token"):
        launchpad.contribute(active_project.id, '1000', 'DAI', signer)
    signer.send_and_confirm.assert_not_called()

def test_unconfirmed_shield_persists_nothing(launchpad, active_project, signer):
    signer.send_and_confirm.side_effect = None
    signer.send_and_confirm.return_value = None

    with pytest.raises(TransactionError, match="Shield transaction failed"):
        launchpad.contribute(active_project.id, '1000', 'USDT', signer)

    signer.send_and_confirm.assert_called_once()
    assert_unchanged(launchpad, active_project.id)

def test_expired_timeout_aborts_before_submission(launchpad, active_project, signer):
    with pytest.raises(OperationTimeoutError):
        launchpad.contribute(active_project.id, '1000', 'USDT', signer, timeout=0)

    signer.send_and_confirm.assert_not_called()
    assert_unchanged(launchpad, active_project.id)

def test_generous_timeout_lets_contribution_through(launchpad, active_project, signer):
    launchpad.contribute(active_project.id, '1000', 'USDT', signer, timeout=60)
    assert launchpad.get_project(active_project.id).contributors_count == 1

def test_ledger_failure_after_shield_is_logged(store, active_project, caplog):
    failing_store = MagicMock(spec=ProjectStore)
    failing_store.get_project.return_value = store.get_project(active_project.id)
    failing_store.record_contribution.side_effect = RuntimeError("database gone")
    processor = ContributionProcessor(failing_store, POOL_ADDRESS, clock=lambda: NOW)
    signer = make_signer(tx_hash='0xorphan')

    with pytest.raises(RuntimeError):
        processor.contribute(active_project.id, '1000', 'USDT', signer)

    assert '0xorphan' in caplog.text
    assert 'not recorded' in caplog.text

def test_contribution_uses_receipt_hash(store, active_project):
    signer = make_signer()
    signer.send_and_confirm.side_effect = None
    signer.send_and_confirm.return_value = TransactionReceipt(tx_hash='0xreceipt', block_number=7, status=1)
    processor = ContributionProcessor(store, POOL_ADDRESS, clock=lambda: NOW)

    result = processor.contribute(active_project.id, '500', 'USDC', signer)

    assert result.shield_tx_hash == '0xreceipt'
