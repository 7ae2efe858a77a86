"""Shared fixtures for the release-digest test suite."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from release_digest.markup import paragraph_tree
from release_digest.schemas import Release


@pytest.fixture(autouse=True)
def _development_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Tests run as development unless they opt into production."""
    monkeypatch.delenv("ENVIRONMENT", raising=False)


@pytest.fixture
def make_release() -> Callable[..., Release]:
    """Factory for Release objects with sensible defaults."""

    def _make(
        repo: str = "nimiq/core",
        tag: str = "v1.0.0",
        date: str = "2024-05-08T12:00:00Z",
        **overrides: object,
    ) -> Release:
        fields = {
            "url": f"https://github.com/{repo}/releases/tag/{tag}",
            "repo": repo,
            "tag": tag,
            "title": tag,
            "date": date,
            "body": paragraph_tree(f"Notes for {tag}"),
        }
        fields.update(overrides)
        return Release(**fields)

    return _make
