"""CLI commands for repository harvesting."""

import argparse
import json
import sys
from contextlib import contextmanager
from datetime import date
from pathlib import Path

from .harvest.repo_metrics import COUNTS


def _date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}") from exc


def _write(obj, out):
    json.dump(obj, out, default=str)
    out.write("\n")


@contextmanager
def _output(path: Path | None):
    if path is None:
        yield sys.stdout
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yield f


def _add_range_arguments(parser):
    parser.add_argument("language", help="Repository language (e.g., Java)")
    parser.add_argument("--pushed-after", type=_date, default=None, help="Lower bound, YYYY-MM-DD")
    parser.add_argument("--pushed-before", type=_date, default=None, help="Upper bound, YYYY-MM-DD")


def main():
    parser = argparse.ArgumentParser(
        description="Harvest repository metadata from GitHub",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--cache-dir",
        type=Path,
        default=None,
        help="Cache API responses in this directory (default: no cache)",
    )
    parser.add_argument(
        "--skip-cache",
        action="store_true",
        help="Skip reading from cache (still writes to cache)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    search_parser = subparsers.add_parser("search", help="Fetch one page of repository search results")
    _add_range_arguments(search_parser)
    search_parser.add_argument("--page", type=int, default=1, help="Result page (default: 1)")

    repo_parser = subparsers.add_parser("repo", help="Fetch repository details")
    repo_parser.add_argument("name", help="Repository as owner/name")

    count_parser = subparsers.add_parser("count", help="Count a repository collection")
    count_parser.add_argument("name", help="Repository as owner/name")
    count_parser.add_argument("metric", choices=sorted(COUNTS), help="What to count")

    commit_parser = subparsers.add_parser("last-commit", help="Fetch the latest commit of a repository")
    commit_parser.add_argument("name", help="Repository as owner/name")

    metrics_parser = subparsers.add_parser("metrics", help="Fetch details and counts for repositories")
    metrics_parser.add_argument("names", nargs="+", help="Repositories as owner/name")
    metrics_parser.add_argument("--workers", type=int, default=None, help="Parallel workers")
    metrics_parser.add_argument("-o", "--output", type=Path, default=None, help="Output JSON lines file")

    harvest_parser = subparsers.add_parser(
        "harvest",
        help="Search every repository for a language and fetch its metrics",
    )
    _add_range_arguments(harvest_parser)
    harvest_parser.add_argument("--workers", type=int, default=None, help="Parallel workers")
    harvest_parser.add_argument("-o", "--output", type=Path, default=None, help="Output JSON lines file")

    api_parser = subparsers.add_parser("api", help="Make a GitHub API GET call")
    api_parser.add_argument("endpoint", help="API endpoint path (e.g., repos/owner/repo/branches)")
    api_parser.add_argument(
        "--param",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Query parameter (repeatable, e.g., --param per_page=100)",
    )

    args = parser.parse_args()
    if args.command is None:
        parser.print_help()
        return

    from . import connector as connector_mod

    connector = connector_mod.get_connector(cache_dir=args.cache_dir, skip_cache=args.skip_cache)
    workers = getattr(args, "workers", None) or connector.settings.max_workers

    try:
        if args.command == "search":
            from .search import Range

            pushed = Range(args.pushed_after, args.pushed_before)
            _write(connector.search_repositories(args.language, pushed, page=args.page), sys.stdout)
        elif args.command == "repo":
            _write(connector.fetch_repo_info(args.name), sys.stdout)
        elif args.command == "count":
            _write(getattr(connector, COUNTS[args.metric])(args.name), sys.stdout)
        elif args.command == "last-commit":
            _write(connector.fetch_last_commit(args.name).to_dict(), sys.stdout)
        elif args.command == "metrics":
            from .harvest import harvest_metrics

            with _output(args.output) as out:
                for result in harvest_metrics(connector, args.names, max_workers=workers):
                    _write(result, out)
        elif args.command == "harvest":
            from .harvest import harvest_metrics, search_all
            from .search import Range

            pushed = Range(args.pushed_after, args.pushed_before)
            names = [item["full_name"] for item in search_all(connector, args.language, pushed)]
            print(f"Found {len(names):,} repositories", file=sys.stderr, flush=True)
            with _output(args.output) as out:
                for result in harvest_metrics(connector, names, max_workers=workers):
                    _write(result, out)
        elif args.command == "api":
            params = {}
            for p in args.param:
                k, _, v = p.partition("=")
                params[k] = v
            url = f"{connector.base_url}/{args.endpoint.lstrip('/')}"
            _write(connector.execute(url, params or None).body, sys.stdout)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(130)
    finally:
        connector.close()


if __name__ == "__main__":
    main()
