"""E2E tests against the live GitHub API.

No mocks. Skip if GITHUB_TOKEN is not set.
"""

import json
import os
import subprocess
import sys
from datetime import date

import pytest

from github_repo_harvester.search import Range

pytestmark = [
    pytest.mark.e2e,
    pytest.mark.skipif(
        not os.environ.get("GITHUB_TOKEN"),
        reason="GITHUB_TOKEN required for E2E tests",
    ),
]


def _run_cli(*args, timeout=300):
    cmd = [sys.executable, "-m", "github_repo_harvester.cli", *args]
    return subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)


def test_repo_info(live_connector):
    info = live_connector.fetch_repo_info("octocat/Hello-World")
    assert info["full_name"] == "octocat/Hello-World"


def test_counts_branches(live_connector):
    assert live_connector.fetch_number_of_branches("octocat/Hello-World") >= 1


def test_last_commit(live_connector):
    commit = live_connector.fetch_last_commit("octocat/Hello-World")
    assert not commit.is_null
    assert commit.date is not None


def test_search_page(live_connector):
    page = live_connector.search_repositories("Java", Range(date(2023, 1, 1), date(2023, 1, 2)))
    assert page["total_count"] > 0
    assert all(item["language"] == "Java" for item in page["items"])


def test_cli_count_with_cache(e2e_cache):
    args = ["--cache-dir", str(e2e_cache), "count", "octocat/Hello-World", "branches"]
    first = _run_cli(*args)
    assert first.returncode == 0, f"stderr: {first.stderr}"
    assert list(e2e_cache.glob("*.json"))

    second = _run_cli(*args)
    assert second.returncode == 0
    assert json.loads(second.stdout) == json.loads(first.stdout)
