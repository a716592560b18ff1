"""E2E test fixtures: real API, isolated temp directories."""

import pytest

from github_repo_harvester.connector import GitHubConnector
from github_repo_harvester.settings import get_settings


@pytest.fixture
def e2e_cache(tmp_path):
    """Isolated temp cache directory."""
    d = tmp_path / "cache"
    d.mkdir()
    return d


@pytest.fixture
def live_connector():
    connector = GitHubConnector(settings=get_settings())
    yield connector
    connector.close()
