"""
conftest.py - Shared pytest fixtures for vault tests

Provides common fixtures used across unit, functional and conformance tests:
- A deployed in-memory vault with funded wallets
- Shortcuts to its clock, feed, bUSD, BNB and engine
- A vault with one standard position already open
"""

import pytest

from fxvault import WAD, Clock, PositionLedger

from tests.builders import deploy, open_standard, START_TIME


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    """Fresh clock at the standard start time."""
    return Clock(START_TIME)


@pytest.fixture
def book():
    """Empty position ledger."""
    return PositionLedger()


@pytest.fixture
def deployment():
    """Vault at $300 with alice, bob, carol and liquidator holding 100 BNB each."""
    return deploy()


@pytest.fixture
def vault(deployment):
    return deployment.vault


@pytest.fixture
def busd(deployment):
    return deployment.busd


@pytest.fixture
def bnb(deployment):
    return deployment.bnb


@pytest.fixture
def feed(deployment):
    return deployment.feed


# =============================================================================
# POSITION FIXTURES
# =============================================================================

@pytest.fixture
def opened(deployment):
    """Deployment plus alice's position: 1 BNB collateral, 180 bUSD debt, 7 days."""
    position_id = open_standard(deployment)
    return deployment, position_id


@pytest.fixture
def approved(opened):
    """Standard position with alice's bUSD approved for repayment."""
    d, position_id = opened
    d.busd.approve("alice", d.vault.address, 180 * WAD)
    return d, position_id
