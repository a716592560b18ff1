"""Fetch repository details and counts for many repositories in parallel."""

import logging
import sys
from collections.abc import Iterable, Iterator
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait

from ..connector import GitHubConnector
from ..exceptions import GitHubFatalError, InterruptedDuringWait

logging.getLogger("github").setLevel(logging.ERROR)
logging.getLogger("github.Requester").setLevel(logging.ERROR)

DEFAULT_WORKERS = 4
LABEL_PAGE_SIZE = 100

# metric -> connector method
COUNTS = {
    "commits": "fetch_number_of_commits",
    "branches": "fetch_number_of_branches",
    "releases": "fetch_number_of_releases",
    "contributors": "fetch_number_of_contributors",
    "open_issues_and_pulls": "fetch_number_of_open_issues_and_pulls",
    "total_issues_and_pulls": "fetch_number_of_all_issues_and_pulls",
    "open_pulls": "fetch_number_of_open_pulls",
    "total_pulls": "fetch_number_of_all_pulls",
    "labels": "fetch_number_of_labels",
    "languages": "fetch_number_of_languages",
    "topics": "fetch_number_of_topics",
}


def _progress(msg: str):
    sys.stdout.write(f"\033[2K\r{msg}")
    sys.stdout.flush()


def _log(msg: str):
    sys.stderr.write(f"\033[2K\r[harvest] {msg}\n")
    sys.stderr.flush()


def _difference(total: int | None, pulls: int | None) -> int | None:
    # The issues endpoint lists pull requests too
    if total is None or pulls is None:
        return None
    return max(total - pulls, 0)


def fetch_repo_labels(connector: GitHubConnector, name: str) -> list[str]:
    labels = []
    page = 1
    while True:
        batch = connector.fetch_repo_labels(name, page)
        labels.extend(label["name"] for label in batch if "name" in label)
        if len(batch) < LABEL_PAGE_SIZE:
            return labels
        page += 1


def fetch_repo_metrics(connector: GitHubConnector, name: str) -> dict:
    """Everything the crawl records about one repository."""
    info = connector.fetch_repo_info(name)
    counts = {metric: getattr(connector, method)(name) for metric, method in COUNTS.items()}
    counts["open_issues"] = _difference(counts["open_issues_and_pulls"], counts["open_pulls"])
    counts["total_issues"] = _difference(counts["total_issues_and_pulls"], counts["total_pulls"])
    last_commit = connector.fetch_last_commit(name)

    return {
        "name": info.get("full_name", name),
        "is_fork": info.get("fork"),
        "default_branch": info.get("default_branch"),
        "license": (info.get("license") or {}).get("name"),
        "homepage": info.get("homepage"),
        "stars": info.get("stargazers_count"),
        "forks": info.get("forks_count"),
        "watchers": info.get("subscribers_count"),
        "size": info.get("size"),
        "language": info.get("language"),
        "created_at": info.get("created_at"),
        "pushed_at": info.get("pushed_at"),
        "updated_at": info.get("updated_at"),
        "archived": info.get("archived"),
        "disabled": info.get("disabled"),
        "has_wiki": info.get("has_wiki"),
        "last_commit": last_commit.to_dict(),
        "counts": counts,
        "label_names": fetch_repo_labels(connector, name),
        "languages": connector.fetch_repo_languages(name),
        "topics": connector.fetch_repo_topics(name).get("names", []),
    }


def harvest_metrics(
    connector: GitHubConnector,
    names: Iterable[str],
    max_workers: int = DEFAULT_WORKERS,
) -> Iterator[dict]:
    """Yield ``fetch_repo_metrics`` results as workers finish.

    A repository whose calls fail with any non-fatal error is yielded as
    ``{"name": ..., "error": ...}``; fatal errors stop the harvest.
    """
    names = list(dict.fromkeys(names))
    stats = {"fetched": 0, "errors": 0}

    executor = ThreadPoolExecutor(max_workers=max_workers)
    futures = {executor.submit(fetch_repo_metrics, connector, name): name for name in names}
    try:
        pending = set(futures)
        while pending:
            done, pending = wait(pending, return_when=FIRST_COMPLETED)
            for future in done:
                name = futures[future]
                try:
                    result = future.result()
                except (GitHubFatalError, InterruptedDuringWait):
                    raise
                except Exception as exc:
                    error = f"{type(exc).__name__}: {exc}"
                    _log(f"{name}: {error}")
                    result = {"name": name, "error": error}
                    stats["errors"] += 1
                else:
                    stats["fetched"] += 1
                _progress(
                    f"  [{stats['fetched'] + stats['errors']}/{len(names)}] "
                    f"{stats['fetched']} fetched, {stats['errors']} errors, "
                    f"{connector.requests} requests, {connector.rate_limit_hits} rate limited"
                )
                yield result
    except (KeyboardInterrupt, GitHubFatalError, InterruptedDuringWait):
        # Wake up workers sleeping on a rate limit so shutdown is prompt
        connector.cancel()
        raise
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
        sys.stdout.write("\n")
        sys.stdout.flush()
