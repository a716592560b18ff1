"""Integration tests for search bisection and the parallel metrics harvest.

The connector is mostly a MagicMock; redirect tests use a real connector with
only the httpx client mocked.
"""

import json
from datetime import date
from unittest.mock import MagicMock, patch

import httpx
import pytest

from github_repo_harvester.connector import GitHubConnector
from github_repo_harvester.exceptions import NoValidCredentialsError, UpstreamClientError
from github_repo_harvester.harvest import fetch_repo_metrics, harvest_metrics, search_all
from github_repo_harvester.models import GitCommit
from github_repo_harvester.search import Range
from github_repo_harvester.settings import Settings

JANUARY = Range(date(2022, 1, 1), date(2022, 1, 31))


def _items(prefix, count, start=0):
    return [{"full_name": f"{prefix}/repo{i}"} for i in range(start, start + count)]


def _page(total, items):
    return {"total_count": total, "items": items}


class TestSearchAll:
    def test_collects_all_pages_of_a_small_range(self):
        connector = MagicMock()
        connector.search_repositories.side_effect = [
            _page(250, _items("a", 100)),
            _page(250, _items("a", 100, start=100)),
            _page(250, _items("a", 50, start=200)),
        ]

        repos = list(search_all(connector, "Java", JANUARY))

        assert len(repos) == 250
        pages = [call.kwargs["page"] for call in connector.search_repositories.call_args_list]
        assert pages == [1, 2, 3]

    def test_stops_on_short_page(self):
        connector = MagicMock()
        connector.search_repositories.side_effect = [
            _page(300, _items("a", 100)),
            _page(300, _items("a", 20, start=100)),
        ]

        repos = list(search_all(connector, "Java", JANUARY))

        assert len(repos) == 120
        assert connector.search_repositories.call_count == 2

    def test_bisects_dense_ranges(self):
        left = Range(date(2022, 1, 1), date(2022, 1, 16))
        right = Range(date(2022, 1, 16), date(2022, 1, 31))

        def search(language, interval, page=1):
            if interval == JANUARY:
                return _page(1500, _items("all", 100))
            if interval == left:
                # The midpoint day belongs to both halves
                return _page(60, _items("left", 59) + [{"full_name": "shared/repo"}])
            if interval == right:
                return _page(40, _items("right", 39) + [{"full_name": "shared/repo"}])
            raise AssertionError(f"unexpected range {interval}")

        connector = MagicMock()
        connector.search_repositories.side_effect = search

        names = [repo["full_name"] for repo in search_all(connector, "Java", JANUARY)]

        assert len(names) == 99
        assert len(set(names)) == len(names)
        assert not any(name.startswith("all/") for name in names)
        ranges = [call.args[1] for call in connector.search_repositories.call_args_list]
        assert ranges == [JANUARY, left, right]

    def test_keeps_first_thousand_of_unsplittable_range(self):
        day = Range(date(2022, 1, 1), date(2022, 1, 1))
        connector = MagicMock()
        connector.search_repositories.side_effect = [
            _page(5000, _items("a", 100, start=100 * p)) for p in range(10)
        ]

        repos = list(search_all(connector, "Java", day))

        assert len(repos) == 1000
        assert connector.search_repositories.call_count == 10

    def test_unbounded_range_is_not_split(self):
        connector = MagicMock()
        connector.search_repositories.return_value = _page(0, [])

        assert list(search_all(connector, "Java", Range())) == []
        assert connector.search_repositories.call_count == 1


def _metrics_connector():
    connector = MagicMock()
    connector.fetch_repo_info.return_value = {
        "full_name": "o/r",
        "fork": False,
        "default_branch": "main",
        "license": {"name": "MIT License"},
        "stargazers_count": 42,
        "forks_count": 7,
        "subscribers_count": 3,
        "language": "Java",
    }
    for method in (
        "fetch_number_of_commits",
        "fetch_number_of_branches",
        "fetch_number_of_releases",
        "fetch_number_of_labels",
        "fetch_number_of_languages",
        "fetch_number_of_topics",
    ):
        getattr(connector, method).return_value = 5
    connector.fetch_number_of_contributors.return_value = None
    connector.fetch_number_of_open_issues_and_pulls.return_value = 30
    connector.fetch_number_of_open_pulls.return_value = 12
    connector.fetch_number_of_all_issues_and_pulls.return_value = None
    connector.fetch_number_of_all_pulls.return_value = 80
    connector.fetch_last_commit.return_value = GitCommit(sha="abc", date=None)
    connector.fetch_repo_labels.side_effect = [
        [{"name": f"label{i}"} for i in range(100)],
        [{"name": "bug"}],
    ]
    connector.fetch_repo_languages.return_value = {"Java": 1000}
    connector.fetch_repo_topics.return_value = {"names": ["crawler"]}
    return connector


class TestFetchRepoMetrics:
    def test_collects_details_and_counts(self):
        metrics = fetch_repo_metrics(_metrics_connector(), "o/r")

        assert metrics["name"] == "o/r"
        assert metrics["license"] == "MIT License"
        assert metrics["stars"] == 42
        assert metrics["last_commit"] == {"sha": "abc", "date": None}
        assert metrics["languages"] == {"Java": 1000}
        assert metrics["topics"] == ["crawler"]

    def test_unknown_counts_stay_unknown(self):
        counts = fetch_repo_metrics(_metrics_connector(), "o/r")["counts"]

        assert counts["contributors"] is None
        assert counts["open_issues"] == 18
        assert counts["total_issues"] is None

    def test_pages_through_labels(self):
        connector = _metrics_connector()

        metrics = fetch_repo_metrics(connector, "o/r")

        assert len(metrics["label_names"]) == 101
        assert [call.args[1] for call in connector.fetch_repo_labels.call_args_list] == [1, 2]


class TestHarvestMetrics:
    def test_yields_one_result_per_repository(self):
        connector = MagicMock()
        with patch(
            "github_repo_harvester.harvest.repo_metrics.fetch_repo_metrics",
            side_effect=lambda c, name: {"name": name},
        ) as fetch:
            results = list(harvest_metrics(connector, ["a/x", "b/y", "a/x"], max_workers=2))

        assert sorted(r["name"] for r in results) == ["a/x", "b/y"]
        assert fetch.call_count == 2

    def test_upstream_errors_become_error_records(self):
        def fetch(connector, name):
            if name == "gone/repo":
                raise UpstreamClientError(404, "Not Found", "https://api.github.com/repos/gone/repo")
            return {"name": name}

        with patch("github_repo_harvester.harvest.repo_metrics.fetch_repo_metrics", side_effect=fetch):
            results = list(harvest_metrics(MagicMock(), ["o/r", "gone/repo"], max_workers=2))

        errors = [r for r in results if "error" in r]
        assert len(results) == 2
        assert errors[0]["name"] == "gone/repo"
        assert "404" in errors[0]["error"]

    def test_fatal_errors_stop_the_harvest(self):
        connector = MagicMock()

        def fetch(c, name):
            raise NoValidCredentialsError("No valid GitHub token left in the pool")

        with patch("github_repo_harvester.harvest.repo_metrics.fetch_repo_metrics", side_effect=fetch):
            with pytest.raises(NoValidCredentialsError):
                list(harvest_metrics(connector, ["o/r", "o/s"], max_workers=1))

        connector.cancel.assert_called_once()

    def test_unexpected_worker_errors_become_error_records(self):
        def fetch(connector, name):
            raise KeyError(0)

        connector = MagicMock()
        with patch("github_repo_harvester.harvest.repo_metrics.fetch_repo_metrics", side_effect=fetch):
            results = list(harvest_metrics(connector, ["o/r"], max_workers=1))

        assert results == [{"name": "o/r", "error": "KeyError: 0"}]
        connector.cancel.assert_not_called()


def _moved_connector():
    """A real connector whose every request is answered with 301."""
    moved = MagicMock(spec=httpx.Response)
    moved.status_code = 301
    moved.content = json.dumps({"message": "Moved Permanently"}).encode()
    moved.json.return_value = {"message": "Moved Permanently"}
    moved.headers = {}
    stop_event = MagicMock()
    stop_event.is_set.return_value = False
    stop_event.wait.return_value = False
    settings = Settings(_env_file=None, github_token="token-a", github_tokens=None, cache_dir=None)
    connector = GitHubConnector(settings=settings, quota_probe=MagicMock(), stop_event=stop_event)
    connector._client.get = MagicMock(return_value=moved)
    return connector


class TestRedirectedRepository:
    def test_metrics_fall_back_to_requested_name(self):
        metrics = fetch_repo_metrics(_moved_connector(), "old/name")

        assert metrics["name"] == "old/name"
        assert metrics["stars"] is None
        assert metrics["last_commit"] == {"sha": None, "date": None}
        assert metrics["label_names"] == []
        assert metrics["topics"] == []

    def test_harvest_keeps_going(self):
        results = list(harvest_metrics(_moved_connector(), ["old/name", "other/name"], max_workers=2))

        assert sorted(r["name"] for r in results) == ["old/name", "other/name"]
        assert not any("error" in r for r in results)

    def test_search_of_a_redirect_is_empty(self):
        assert list(search_all(_moved_connector(), "Java", JANUARY)) == []
