import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from shielded_launchpad.config import Settings
from shielded_launchpad.db import Database
from shielded_launchpad.launchpad import LaunchpadOrchestrator
from shielded_launchpad.models.launchpad import ProjectStatus
from shielded_launchpad.services.signer import TransactionReceipt, TransactionSigner
from shielded_launchpad.services.storage import SqlProjectStore

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)
POOL_ADDRESS = '0x' + 'ab' * 20
TOKEN_ADDRESS = '0x' + 'cd' * 20
CONTRIBUTOR = '0x' + '11' * 20
ADMIN = '0x' + '99' * 20

def make_signer(address=CONTRIBUTOR, tx_hash=None):
    """Signer mock that confirms every transaction, with a fresh hash unless one is given"""
    signer = MagicMock(spec=TransactionSigner)
    signer.get_address.return_value = address
    if tx_hash is None:
        signer.send_and_confirm.side_effect = lambda request: TransactionReceipt(tx_hash='0x' + uuid.uuid4().hex)
    else:
        signer.send_and_confirm.return_value = TransactionReceipt(tx_hash=tx_hash)
    return signer

def project_fields(**overrides):
    fields = {
        'name': 'Project 1',
        'symbol': 'PRJ1',
        'description': 'Test project',
        'price_per_token': '2.0',
        'total_supply': '1000000',
        'allocation': '100000',
        'start_time': NOW - timedelta(days=1),
        'end_time': NOW + timedelta(days=1),
        'min_contribution': '100',
        'max_contribution': '10000',
        'privacy_pool_address': POOL_ADDRESS,
    }
    fields.update(overrides)
    return fields

@pytest.fixture
def database(tmp_path):
    """File-backed SQLite database so several threads can share it"""
    database = Database()
    database.init(f"sqlite:///{tmp_path / 'launchpad.db'}")
    yield database
    database.dispose()

@pytest.fixture
def store(database):
    return SqlProjectStore(database)

@pytest.fixture
def settings():
    return Settings(PRIVACY_POOL_ADDRESS=POOL_ADDRESS)

@pytest.fixture
def launchpad(settings, store):
    return LaunchpadOrchestrator(settings, store, clock=lambda: NOW)

@pytest.fixture
def active_project(launchpad):
    project = launchpad.create_project(project_fields())
    return launchpad.set_project_status(project.id, ProjectStatus.ACTIVE)

@pytest.fixture
def signer():
    return make_signer()

@pytest.fixture
def admin_signer():
    return make_signer(address=ADMIN, tx_hash='0xdistribution')
