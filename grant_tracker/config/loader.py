"""
YAML configuration loader.

Loads process settings and source definitions from YAML files with:
- Environment variable substitution
- Required-field validation
- Default values
"""

import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

import yaml
import structlog

from grant_tracker.core.errors import ConfigError

logger = structlog.get_logger(__name__)


ENV_PLACEHOLDER = re.compile(r"\$\{(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?::-(?P<default>[^}]*))?\}")


def substitute_env_vars(text: str) -> str:
    """
    Expand ${NAME} and ${NAME:-default} placeholders from the environment.

    A bare ${NAME} that is unset expands to "" and logs a warning; secrets
    such as CRON_SECRET are written this way so a missing one is visible.
    """
    def expand(match: re.Match) -> str:
        name, default = match.group("name"), match.group("default")
        value = os.environ.get(name)
        if value is not None:
            return value
        if default is None:
            logger.warning("env_var_not_set", var=name)
            return ""
        return default

    return ENV_PLACEHOLDER.sub(expand, text)


@dataclass
class Settings:
    """
    Process-wide settings, built once at start-up and injected downward.

    Business logic receives this object; it never reads the environment.
    """

    # Trigger auth
    cron_secret: Optional[str] = None

    # Crawling
    request_timeout: float = 20.0
    max_retries: int = 2
    requests_per_second: float = 2.0
    max_pages: int = 10
    batch_budget_seconds: float = 300.0
    user_agent: str = "GrantTracker/1.0 (+https://granttracker.co.uk)"

    # Storage
    database_path: str = "grants.db"

    # Matching / alerts
    alert_min_score: int = 70
    alert_limit: int = 8
    flag_threshold: int = 3
    prefilter_limit: int = 35

    # Ranking oracle
    anthropic_api_key: Optional[str] = None
    oracle_model: str = "claude-haiku-4-5-20251001"

    # HTTP server
    host: str = "0.0.0.0"
    port: int = 8080

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        """Build from a parsed YAML mapping, coercing scalar types."""
        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(data) - set(known))
        if unknown:
            logger.warning("unknown_settings_ignored", keys=unknown)

        values = {}
        for name, f in known.items():
            if name not in data:
                continue
            raw = data[name]
            if raw in ("", None):
                values[name] = None if f.default is None else f.default
                continue
            default_type = type(f.default) if f.default is not None else str
            try:
                values[name] = default_type(raw)
            except (TypeError, ValueError) as e:
                raise ConfigError(f"Invalid value for setting {name!r}: {raw!r}") from e
        return cls(**values)


@dataclass
class SourceEntry:
    """One row of the source table in sources.yml."""

    source_id: str
    batch: int = 1
    enabled: bool = True
    adapter: str = "listing"  # Registered adapter name; "listing" is table-driven
    options: dict = field(default_factory=dict)


class ConfigLoader:
    """
    Configuration loader for settings and sources.

    Loads YAML config files and validates them against the expected shape.
    """

    def __init__(self, config_dir: Optional[str] = None):
        """
        Args:
            config_dir: Directory holding settings.yml and sources.yml
                       (defaults to the packaged config)
        """
        self.config_dir = Path(config_dir) if config_dir else Path(__file__).parent

    def load_file(self, filename: str) -> dict:
        """
        Read one YAML file from config_dir with env placeholders expanded.

        Raises:
            ConfigError: File missing, unreadable YAML, or not a mapping
        """
        path = self.config_dir / filename
        if not path.is_file():
            raise ConfigError(f"Config file not found: {path}")

        logger.info("loading_config", file=str(path))
        text = substitute_env_vars(path.read_text(encoding="utf-8"))

        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"Expected a mapping at the top of {path}")
        return data

    def load_settings(self, filename: str = "settings.yml") -> Settings:
        """Load process settings."""
        return Settings.from_dict(self.load_file(filename).get("settings", {}))

    def load_sources(self, filename: str = "sources.yml") -> list[SourceEntry]:
        """
        Load the source table.

        Invalid entries are logged and skipped so one bad row cannot stop
        the remaining sources from loading.
        """
        config = self.load_file(filename)

        entries = []
        for data in config.get("sources", []):
            try:
                entries.append(self._parse_source(data))
            except ConfigError as e:
                logger.error(
                    "source_load_failed",
                    source=data.get("source_id", "unknown"),
                    error=str(e),
                )

        return entries

    def _parse_source(self, data: dict) -> SourceEntry:
        """
        Parse source definition into SourceEntry.

        Raises:
            ConfigError: If required fields are missing or malformed
        """
        if "source_id" not in data:
            raise ConfigError("Missing required field: source_id")

        try:
            batch = int(data.get("batch", 1))
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid batch for {data['source_id']}: {data.get('batch')!r}") from e

        adapter = data.get("adapter", "listing")
        options = data.get("options", {}) or {}
        if adapter == "listing":
            for required in ("listing_url", "item_selector", "funder"):
                if required not in options:
                    raise ConfigError(
                        f"Listing source {data['source_id']} missing option: {required}"
                    )

        return SourceEntry(
            source_id=str(data["source_id"]),
            batch=batch,
            enabled=bool(data.get("enabled", True)),
            adapter=adapter,
            options=options,
        )


def load_settings(config_path: Optional[str] = None) -> Settings:
    """
    Convenience function to load settings.

    Args:
        config_path: Optional path to settings.yml
    """
    if config_path:
        path = Path(config_path)
        return ConfigLoader(str(path.parent)).load_settings(path.name)
    return ConfigLoader().load_settings()


def load_sources(config_path: Optional[str] = None) -> list[SourceEntry]:
    """
    Convenience function to load source entries.

    Args:
        config_path: Optional path to sources.yml
    """
    if config_path:
        path = Path(config_path)
        return ConfigLoader(str(path.parent)).load_sources(path.name)
    return ConfigLoader().load_sources()
