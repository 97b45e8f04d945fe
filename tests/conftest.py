"""
Shared fixtures: settings, in-memory repositories, fake clients and a wired job.
"""

import pytest

from mintsync.core.config import NetworkSettings, Settings
from mintsync.scheduler.main import build_sync_job

from .fakes import NETWORK, FakeIndexingClient, FakePinner, FakeRepositories


@pytest.fixture
def settings():
    """Settings with one network and no waiting between retries."""
    return Settings(
        _env_file=None,
        networks={
            NETWORK: NetworkSettings(
                chain_id="0x1",
                minter_address="0x00000000000000000000000000000000000000FF",
                authenticity_host="https://auth.example",
            )
        },
        indexer_api_key_mainnet="mainnet-key",
        indexer_api_key_testnet="testnet-key",
        indexer_max_retries=2,
        indexer_retry_delay=0,
        import_page_delay=0,
        import_page_retries=2,
        ipfs_gateway="https://gateway.test/ipfs/",
    )


@pytest.fixture
def repos():
    return FakeRepositories()


@pytest.fixture
def indexing_client():
    return FakeIndexingClient()


@pytest.fixture
def pinner():
    return FakePinner()


@pytest.fixture
def job(repos, indexing_client, pinner, settings):
    return build_sync_job(repos, indexing_client, pinner, settings)
