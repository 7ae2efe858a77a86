"""Tests for sources file loading and environment settings."""

from __future__ import annotations

from pathlib import Path

import pytest

from release_digest.config import (
    SourceConfig,
    SourceGroup,
    Settings,
    default_sources_config,
    expand_env,
    load_sources_config,
    parse_sources_config,
)
from release_digest.errors import ConfigError


class TestExpandEnv:
    def test_placeholders(self, monkeypatch) -> None:
        monkeypatch.setenv("GH_TOKEN_TEST", "abc")
        monkeypatch.delenv("MISSING_TEST", raising=False)
        assert expand_env("${GH_TOKEN_TEST}") == "abc"
        assert expand_env("${MISSING_TEST:-fallback}") == "fallback"
        assert expand_env("x-${MISSING_TEST}-y") == "x--y"

    def test_nested(self, monkeypatch) -> None:
        monkeypatch.setenv("REPO_TEST", "o/r")
        assert expand_env({"groups": [{"source": "gh:${REPO_TEST}", "n": 3}]}) == {
            "groups": [{"source": "gh:o/r", "n": 3}]
        }


class TestSourceConfig:
    def test_csv_fields(self) -> None:
        config = SourceConfig(repos="a/b, c/d", packages="x", labels=" bug ,, ui ")
        assert config.repos == ["a/b", "c/d"]
        assert config.packages == ["x"]
        assert config.labels == ["bug", "ui"]

    def test_projects_csv(self) -> None:
        config = SourceConfig(projects="12:group/app, broken, 34:x/y")
        assert [(p.id, p.name) for p in config.projects] == [("12", "group/app"), ("34", "x/y")]

    def test_projects_list_with_int_ids(self) -> None:
        config = SourceConfig(projects=[{"id": 7, "name": "g/a"}])
        assert config.projects[0].id == "7"

    def test_blank_strings_become_none(self) -> None:
        config = SourceConfig.model_validate({"token": "", "baseUrl": "  ", "since": ""})
        assert config.token is None
        assert config.base_url is None
        assert config.since is None

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ValueError):
            SourceConfig.model_validate({"repo": "typo"})


class TestSourceGroup:
    def test_aliases(self) -> None:
        group = SourceGroup.model_validate(
            {
                "label": "X",
                "source": "gh:o/r",
                "showInReleases": False,
                "showInSummary": False,
                "requiresEnv": ["A_TEST_VAR"],
            }
        )
        assert group.show_in_releases is False
        assert group.show_in_summary is False
        assert group.requires_env == ["A_TEST_VAR"]

    def test_env_satisfied(self, monkeypatch) -> None:
        group = SourceGroup(label="X", source="gh:o/r", requires_env=["A_TEST_VAR"])
        monkeypatch.delenv("A_TEST_VAR", raising=False)
        assert not group.env_satisfied()
        monkeypatch.setenv("A_TEST_VAR", "1")
        assert group.env_satisfied()


class TestParseSourcesConfig:
    def test_bare_list(self) -> None:
        config = parse_sources_config([{"label": "Core", "source": "gh:o/r"}])
        assert config.groups[0].label == "Core"
        assert config.max_releases == 35

    def test_orchestrator_options(self) -> None:
        config = parse_sources_config(
            {"maxReleases": 10, "summaryExcludedRepos": ["o/r"], "groups": []}
        )
        assert config.max_releases == 10
        assert config.summary_excluded_repos == ["o/r"]

    def test_empty_document(self) -> None:
        assert parse_sources_config(None).groups == []

    def test_invalid(self) -> None:
        with pytest.raises(ConfigError, match="Invalid sources config"):
            parse_sources_config({"groups": [{"source": "gh:o/r"}]})


class TestLoadSourcesConfig:
    def test_yaml_file(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setenv("TOKEN_TEST", "secret")
        path = tmp_path / "sources.yaml"
        path.write_text(
            "maxReleases: 5\n"
            "groups:\n"
            "  - label: Core\n"
            "    token: ${TOKEN_TEST}\n"
            "    source: gh:o/r\n"
            "  - label: Pay\n"
            "    source:\n"
            "      kind: gitlab\n"
            "      config:\n"
            "        projects: '1:g/app'\n"
            "        enabled: false\n"
        )

        config = load_sources_config(path)

        assert config.max_releases == 5
        assert config.groups[0].token == "secret"
        assert config.groups[1].source.config.enabled is False

    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        config = load_sources_config(tmp_path / "nope.yaml")
        assert config == default_sources_config()
        assert config.groups[0].label == "Nimiq Core"

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "sources.yaml"
        path.write_text("groups: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_sources_config(path)


class TestDefaults:
    def test_default_groups(self, monkeypatch) -> None:
        monkeypatch.setenv("GITHUB_TOKEN", "gh-token")
        monkeypatch.setenv("FEEDBACK_REPO", "acme/feedback")
        config = default_sources_config()
        labels = [group.label for group in config.groups]
        assert "Nimiq Wallet" in labels
        assert "Nimiq Blog" in labels
        core = config.groups[0]
        assert core.token == "gh-token"
        feedback = next(group for group in config.groups if group.label == "Nimiq Feedback")
        assert feedback.source == "gh_issues_feedback:acme/feedback"
        assert feedback.show_in_releases is False

    def test_summary_excludes_personal_repos_by_default(self) -> None:
        assert default_sources_config().summary_excluded_repos == ["onmax/"]
        assert parse_sources_config({"groups": []}).summary_excluded_repos == ["onmax/"]


class TestSettings:
    def test_from_env(self, monkeypatch) -> None:
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setenv("SLACK_BOT_TOKEN", "xoxb-1")
        monkeypatch.setenv("SLACK_FORCE_DEV", "true")
        monkeypatch.setenv("KV_PATH", "")
        settings = Settings.from_env()
        assert settings.is_production
        assert settings.slack_bot_token == "xoxb-1"
        assert settings.slack_force_dev is True
        assert settings.kv_path is None

    def test_defaults(self, monkeypatch) -> None:
        for name in ("LOG_LEVEL", "SOURCES_CONFIG", "OPENAI_MODEL", "SLACK_FORCE_DEV"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings.from_env()
        assert settings.environment == "development"
        assert settings.sources_config == "sources.yaml"
        assert settings.openai_model == "gpt-4o-mini"
        assert settings.slack_force_dev is False
