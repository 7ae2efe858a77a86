"""Release aggregation: fan out to every source, merge, filter, sort, cap.

This is the one entrypoint consumers use (HTTP API, weekly summary, CLI):

1. Expand the source groups visible in the requested context
2. Run every fetch unit concurrently; a failing unit contributes nothing
3. Tag each release with its group label, drop undated ones and duplicates
4. Apply the context's excluded repos and the caller's repo filter
5. Sort by date, newest first, and keep the first `max_releases`

The repo filter is either a plain substring of `repo`, or the compound
`kind:substring` form ("npm:utils", "gh_pr:tutorial") that also restricts
the source kind.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Mapping

from release_digest.config import Settings, SourceKind, SourcesConfig, load_sources_config
from release_digest.logging_config import get_logger, setup_logging
from release_digest.registry import (
    SOURCE_REGISTRY,
    Fetcher,
    FetchUnit,
    ReleaseContext,
    flatten_source_groups,
    kind_for_prefix,
)
from release_digest.schemas import Release

logger = get_logger(__name__)


def split_repo_filter(repo_filter: str) -> tuple[SourceKind | None, str]:
    """Split "kind:substring"; a filter without a known kind prefix has kind None."""
    prefix, separator, needle = repo_filter.partition(":")
    if separator:
        kind = kind_for_prefix(prefix.strip())
        if kind is not None:
            return kind, needle.strip()
    return None, repo_filter


def matches_repo_filter(repo_filter: str | None, kind: SourceKind, release: Release) -> bool:
    if not repo_filter:
        return True
    if repo_filter in release.repo:
        return True
    filter_kind, needle = split_repo_filter(repo_filter)
    return filter_kind is not None and filter_kind == kind and needle in release.repo


class ReleaseAggregator:
    """Merges the releases of every configured source.

    Stateless between calls; the sources config is fixed at construction.

    Usage:
        aggregator = ReleaseAggregator(load_sources_config("sources.yaml"))
        releases = await aggregator.list_releases(repo_filter="nimiq/core")
    """

    def __init__(
        self,
        sources: SourcesConfig,
        fetchers: Mapping[SourceKind, Fetcher] | None = None,
    ) -> None:
        """Initialize the aggregator.

        Args:
            sources: Validated sources configuration
            fetchers: Override the registry's fetchers (tests, dry runs)
        """
        self.sources = sources
        self._fetchers: dict[SourceKind, Fetcher] = {
            kind: definition.fetcher for kind, definition in SOURCE_REGISTRY.items()
        }
        if fetchers:
            self._fetchers.update(fetchers)

    async def list_releases(
        self,
        repo_filter: str | None = None,
        context: ReleaseContext = ReleaseContext.RELEASES,
    ) -> list[Release]:
        """Fetch, merge and rank releases.

        Raises:
            ConfigError: A source group cannot be resolved
        """
        units = flatten_source_groups(self.sources.groups, context)

        # fetchers only understand plain substrings
        fetch_filter = repo_filter
        if repo_filter and split_repo_filter(repo_filter)[0] is not None:
            fetch_filter = None

        results = await asyncio.gather(*(self._run_unit(unit, fetch_filter) for unit in units))

        excluded = tuple(
            pattern
            for pattern in (
                self.sources.release_excluded_repos
                if context is ReleaseContext.RELEASES
                else self.sources.summary_excluded_repos
            )
            if pattern
        )

        seen: set[tuple[str, str, str, str]] = set()
        merged: list[Release] = []
        for unit, releases in zip(units, results):
            for release in releases:
                if release.published_at is None:
                    continue
                key = (release.url, release.repo, release.tag, release.date)
                if key in seen:
                    continue
                seen.add(key)
                if any(pattern in release.repo for pattern in excluded):
                    continue
                if not matches_repo_filter(repo_filter, unit.kind, release):
                    continue
                merged.append(release.model_copy(update={"group_label": unit.group_label}))

        merged.sort(key=lambda release: release.published_at, reverse=True)
        releases = merged[: self.sources.max_releases]

        logger.info(
            "releases_listed",
            context=context.value,
            repo_filter=repo_filter,
            units=len(units),
            count=len(releases),
        )
        return releases

    async def _run_unit(self, unit: FetchUnit, repo_filter: str | None) -> list[Release]:
        fetcher = self._fetchers[unit.kind]
        try:
            return await fetcher(unit.config, repo_filter)
        except Exception as exc:
            logger.warning(
                "source_fetch_failed",
                kind=unit.kind.value,
                group=unit.group_label,
                error=str(exc),
            )
            return []


# ---------------------------------------------------------------------------
# CLI Entry Point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Usage:
        release-digest releases [--repo nimiq/core] [--config sources.yaml]
        release-digest summary [--config sources.yaml]
        release-digest linear-summary
    """
    parser = argparse.ArgumentParser(description="Release digest aggregator")
    subcommands = parser.add_subparsers(dest="command")

    releases_cmd = subcommands.add_parser("releases", help="Print the merged release list as JSON")
    releases_cmd.add_argument("--repo", "-r", type=str, help="Repo filter (substring or kind:substring)")
    releases_cmd.add_argument("--config", "-c", type=str, help="Path to the sources YAML file")

    summary_cmd = subcommands.add_parser("summary", help="Run the weekly summary once")
    summary_cmd.add_argument("--config", "-c", type=str, help="Path to the sources YAML file")

    subcommands.add_parser("linear-summary", help="Run the weekly Linear team recap once")

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_usage()
        print("Choose a command: releases, summary or linear-summary.")
        return

    settings = Settings.from_env()
    setup_logging(settings.environment, settings.log_level)

    if args.command == "linear-summary":
        from release_digest.linear_summary import build_linear_summarizer

        result = asyncio.run(build_linear_summarizer(settings).run())
        print(result.model_dump_json(indent=2))
        return

    sources = load_sources_config(args.config or settings.sources_config)

    if args.command == "releases":
        aggregator = ReleaseAggregator(sources)
        releases = asyncio.run(aggregator.list_releases(repo_filter=args.repo))
        json.dump([release.model_dump(mode="json") for release in releases], sys.stdout, indent=2)
        print()
        return

    from release_digest.summary import build_summarizer

    summarizer = build_summarizer(settings, ReleaseAggregator(sources))
    result = asyncio.run(summarizer.run())
    print(result.model_dump_json(indent=2))


if __name__ == "__main__":
    main()
