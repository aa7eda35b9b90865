from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from decimal import Decimal

import pytest

from shielded_launchpad.errors import NotFoundError, ValidationError
from shielded_launchpad.models.launchpad import ContributionState, ContributionStatus, ProjectStatus
from shielded_launchpad.models.requests import ProjectCreate

from conftest import CONTRIBUTOR, NOW, TOKEN_ADDRESS, make_signer, project_fields

def test_create_project_starts_upcoming(launchpad):
    project = launchpad.create_project(project_fields(token_address=TOKEN_ADDRESS))

    assert project.status == ProjectStatus.UPCOMING
    assert project.token_address == TOKEN_ADDRESS
    assert project.raised_amount == Decimal(0)
    assert launchpad.get_project(project.id) == project

def test_create_project_accepts_schema_instance_and_epoch_ms(launchpad):
    start_ms = int((NOW - timedelta(days=1)).timestamp() * 1000)
    fields = project_fields(start_time=start_ms, end_time=start_ms + 86_400_000 * 2)

    project = launchpad.create_project(ProjectCreate(**fields))

    assert project.start_time == NOW - timedelta(days=1)
    assert project.end_time == NOW + timedelta(days=1)

@pytest.mark.parametrize('overrides', [
    {'name': ''},
    {'symbol': 'X' * 51},
    {'privacy_pool_address': '0x1234'},
    {'token_address': 'not-an-address'},
    {'price_per_token': '0'},
    {'price_per_token': '1.0000001'},
    {'price_per_token': 'free'},
    {'min_contribution': '20000'},
    {'max_contribution': '1000000000.000001'},
    {'end_time': NOW - timedelta(days=2)},
])
def test_create_project_rejects_invalid_fields(launchpad, overrides):
    with pytest.raises(ValidationError):
        launchpad.create_project(project_fields(**overrides))
    assert launchpad.list_projects() == []

def test_list_projects_latest_start_first(launchpad):
    old = launchpad.create_project(project_fields(name='Old', start_time=NOW - timedelta(days=10)))
    new = launchpad.create_project(project_fields(name='New', start_time=NOW))

    assert [p.name for p in launchpad.list_projects()] == [new.name, old.name]

def test_get_unknown_project(launchpad):
    with pytest.raises(NotFoundError):
        launchpad.get_project('missing')

def test_status_changes(launchpad):
    project = launchpad.create_project(project_fields())

    assert launchpad.set_project_status(project.id, 'active').status == ProjectStatus.ACTIVE
    assert launchpad.set_project_status(project.id, ProjectStatus.CANCELLED).status == ProjectStatus.CANCELLED

def test_completion_is_reserved_for_distribution(launchpad, active_project):
    with pytest.raises(ValidationError):
        launchpad.set_project_status(active_project.id, ProjectStatus.COMPLETED)
    with pytest.raises(ValidationError):
        launchpad.set_project_status(active_project.id, 'paused')
    assert launchpad.get_project(active_project.id).status == ProjectStatus.ACTIVE

def test_completed_project_is_final(launchpad, active_project, signer, admin_signer):
    launchpad.contribute(active_project.id, '1000', 'USDT', signer)
    launchpad.distribute(active_project.id, admin_signer)

    with pytest.raises(ValidationError, match="already completed"):
        launchpad.set_project_status(active_project.id, ProjectStatus.CANCELLED)

def test_contribution_status_defaults_to_zero_pending(launchpad, active_project):
    status = launchpad.get_contribution_status(active_project.id, CONTRIBUTOR)

    assert status == ContributionStatus(Decimal(0), Decimal(0), ContributionState.PENDING)

def test_contribution_status_sums_contributions(launchpad, active_project, signer):
    launchpad.contribute(active_project.id, '1000', 'USDT', signer)
    launchpad.contribute(active_project.id, '500', 'USDC', signer)
    launchpad.contribute(active_project.id, '9000', 'USDT', make_signer(address='0xsomeone-else'))

    status = launchpad.get_contribution_status(active_project.id, CONTRIBUTOR)

    assert status.contributed == Decimal('1500')
    assert status.tokens_allocated == Decimal('750')
    assert status.status == ContributionState.PENDING

def test_contribution_status_after_distribution(launchpad, active_project, signer, admin_signer):
    launchpad.contribute(active_project.id, '1000', 'USDT', signer)
    launchpad.distribute(active_project.id, admin_signer)

    status = launchpad.get_contribution_status(active_project.id, CONTRIBUTOR)

    assert status.contributed == Decimal('1000')
    assert status.tokens_allocated == Decimal('500')
    assert status.status == ContributionState.ALLOCATED

def test_raise_accounting_matches_contributions(launchpad, active_project, signer):
    for amount in ('100', '250.25', '999.999999', '4000'):
        launchpad.contribute(active_project.id, amount, 'USDT', signer)

    project = launchpad.get_project(active_project.id)
    contributions = launchpad.list_contributions(active_project.id)
    assert project.raised_amount == sum(c.amount for c in contributions)
    assert project.raised_amount == Decimal('5350.249999')
    assert project.contributors_count == len(contributions) == 4

def test_concurrent_contributions_lose_no_updates(launchpad, active_project):
    workers = 10

    def contribute(i):
        return launchpad.contribute(active_project.id, '150', 'USDT', make_signer(address=f'0x{i:040x}'))

    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(contribute, range(workers)))

    assert len({r.contribution_id for r in results}) == workers
    project = launchpad.get_project(active_project.id)
    assert project.raised_amount == Decimal('150') * workers
    assert project.contributors_count == workers

def test_full_sale_lifecycle(launchpad, admin_signer):
    project = launchpad.create_project(project_fields())
    launchpad.set_project_status(project.id, ProjectStatus.ACTIVE)

    first = launchpad.contribute(project.id, '1000', 'USDT', make_signer(address='0xa'))
    launchpad.contribute(project.id, '3000', 'USDC', make_signer(address='0xb'))
    distribution = launchpad.distribute(project.id, admin_signer)

    finished = launchpad.get_project(project.id)
    assert finished.status == ProjectStatus.COMPLETED
    assert finished.raised_amount == Decimal('4000')
    assert finished.contributors_count == 2
    assert launchpad.get_contribution_status(project.id, '0xa') == ContributionStatus(
        Decimal('1000'), Decimal('500'), ContributionState.ALLOCATED
    )
    assert {c.distribution_tx_hash for c in launchpad.list_contributions(project.id)} == {
        distribution.distribution_tx_hash
    }
    assert first.contribution_id in {c.id for c in launchpad.list_contributions(project.id, '0xa')}
