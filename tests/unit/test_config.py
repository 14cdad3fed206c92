"""Tests for configuration loading."""

import pytest

from grant_tracker.config.loader import (
    ConfigLoader,
    Settings,
    SourceEntry,
    load_sources,
    substitute_env_vars,
)
from grant_tracker.core.errors import ConfigError


class TestSubstituteEnvVars:
    """Tests for ${VAR} substitution."""

    def test_set_variable(self, monkeypatch):
        monkeypatch.setenv("CRON_SECRET", "s3cret")
        assert substitute_env_vars("secret: ${CRON_SECRET}") == "secret: s3cret"

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("GRANT_TRACKER_DB", raising=False)
        assert substitute_env_vars("${GRANT_TRACKER_DB:-grants.db}") == "grants.db"

    def test_missing_required_is_empty(self, monkeypatch):
        monkeypatch.delenv("NOT_SET_ANYWHERE", raising=False)
        assert substitute_env_vars("key: ${NOT_SET_ANYWHERE}") == "key: "


class TestSettings:
    """Tests for Settings.from_dict."""

    def test_defaults(self):
        settings = Settings.from_dict({})
        assert settings.cron_secret is None
        assert settings.request_timeout == 20.0
        assert settings.alert_min_score == 70
        assert settings.alert_limit == 8
        assert settings.flag_threshold == 3

    def test_types_coerced(self):
        settings = Settings.from_dict({"request_timeout": "5", "port": "9000", "cron_secret": "abc"})
        assert settings.request_timeout == 5.0
        assert settings.port == 9000
        assert settings.cron_secret == "abc"

    def test_blank_value_keeps_default(self):
        settings = Settings.from_dict({"cron_secret": "", "max_pages": None})
        assert settings.cron_secret is None
        assert settings.max_pages == 10

    def test_invalid_value(self):
        with pytest.raises(ConfigError):
            Settings.from_dict({"port": "eighty"})

    def test_unknown_keys_ignored(self):
        settings = Settings.from_dict({"colour": "blue"})
        assert not hasattr(settings, "colour")


class TestConfigLoader:
    """Tests for the packaged YAML files."""

    def test_load_packaged_settings(self, monkeypatch):
        monkeypatch.delenv("CRON_SECRET", raising=False)
        monkeypatch.delenv("PORT", raising=False)
        settings = ConfigLoader().load_settings()

        assert isinstance(settings, Settings)
        assert settings.cron_secret is None
        assert settings.port == 8080

    def test_settings_from_environment(self, monkeypatch):
        monkeypatch.setenv("CRON_SECRET", "from-env")
        monkeypatch.setenv("GRANT_TRACKER_REQUEST_TIMEOUT", "7.5")
        settings = ConfigLoader().load_settings()

        assert settings.cron_secret == "from-env"
        assert settings.request_timeout == 7.5

    def test_load_packaged_sources(self):
        entries = ConfigLoader().load_sources()

        assert len(entries) > 0
        assert all(isinstance(e, SourceEntry) for e in entries)
        assert sorted({e.batch for e in entries}) == [1, 2, 3, 4]
        ids = [e.source_id for e in entries]
        assert len(ids) == len(set(ids))
        assert {"gov_uk", "360giving", "ukri", "community_fund", "heritage_fund"} <= set(ids)

    def test_listing_sources_have_required_options(self):
        for entry in ConfigLoader().load_sources():
            if entry.adapter == "listing":
                assert entry.options["listing_url"].startswith("https://")
                assert entry.options["item_selector"]
                assert entry.options["funder"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            ConfigLoader(str(tmp_path)).load_settings()

    def test_invalid_yaml(self, tmp_path):
        (tmp_path / "settings.yml").write_text("settings: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigError):
            ConfigLoader(str(tmp_path)).load_settings()

    def test_bad_source_entries_skipped(self, tmp_path):
        path = tmp_path / "sources.yml"
        path.write_text(
            """
sources:
  - source_id: good
    batch: 2
    options:
      listing_url: https://example.org/grants
      item_selector: .card
      funder: Example Trust
  - source_id: no_selector
    options:
      listing_url: https://example.org/grants
      funder: Example Trust
  - adapter: gov_uk
  - source_id: bad_batch
    adapter: gov_uk
    batch: first
""",
            encoding="utf-8",
        )
        entries = load_sources(str(path))

        assert [e.source_id for e in entries] == ["good"]
        assert entries[0].batch == 2
        assert entries[0].adapter == "listing"
