"""
Configuration and constants for the balance checker.

This module provides:
- Default timeouts and paths, overridable via environment variables
- Loading per-site settings and tracked balances from a YAML file
- An explicit RunSettings value handed to the reconciliation engine
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

# =============================================================================
# Ledger Settings
# =============================================================================

LEDGER_COMMAND: str = os.environ.get("LEDGER_COMMAND", "ledger")
LEDGER_FILE: str = os.environ.get("LEDGER_FILE", "~/ledger/ledger.ledger")
LEDGER_TIMEOUT_SECONDS: float = float(os.environ.get("LEDGER_TIMEOUT", "30"))

# =============================================================================
# Session Cache Settings
# =============================================================================

SESSION_CACHE_DIR: str = os.environ.get("SESSION_CACHE_DIR", "cache")

# Long-lived cookies pile up and some sites reject oversized cookie headers,
# so cached sessions are rotated daily.
SESSION_MAX_AGE_SECONDS: float = 24 * 60 * 60

# =============================================================================
# Login Settings
# =============================================================================

LOGIN_TIMEOUT_SECONDS: float = float(os.environ.get("LOGIN_TIMEOUT", "240"))
LOGIN_CHECK_INTERVAL_SECONDS: float = 2.0

# =============================================================================
# Extraction Settings
# =============================================================================

EXTRACTION_TIMEOUT_SECONDS: float = float(os.environ.get("EXTRACTION_TIMEOUT", "30"))
EXTRACTION_INTERVAL_SECONDS: float = 1.0

# =============================================================================
# Browser Settings
# =============================================================================

HEADLESS: bool = os.environ.get("HEADLESS", "false").lower() == "true"
NAVIGATION_TIMEOUT_MS: int = 60000
ACTION_TIMEOUT_MS: int = 60000

# Cookie header size above which a warning is logged
COOKIE_HEADER_WARN_CHARS: int = 4000

# =============================================================================
# Application Info
# =============================================================================

APP_NAME: str = "Ledger Balance Checker"
APP_VERSION: str = "1.0.0"

CONFIG_FILENAMES: List[str] = ["config.yaml", "config.yml"]


class ConfigError(Exception):
    """Raised when the configuration file is missing a value or is invalid."""


@dataclass(frozen=True)
class RunSettings:
    """
    Everything one reconciliation run needs besides the site adapter.

    Built once at startup and passed to the engine; nothing reads
    configuration globally after that.
    """
    session_path: str
    session_max_age: float = SESSION_MAX_AGE_SECONDS
    login_timeout: float = LOGIN_TIMEOUT_SECONDS
    login_check_interval: float = LOGIN_CHECK_INTERVAL_SECONDS
    extraction_timeout: float = EXTRACTION_TIMEOUT_SECONDS
    extraction_interval: float = EXTRACTION_INTERVAL_SECONDS
    headless: bool = HEADLESS
    navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS


class Config:
    """
    Configuration loaded from a YAML file.

    Layout:
        ledger: {command, file, timeout}
        session: {cache_dir, max_age_hours}
        login: {timeout_seconds, check_interval_seconds}
        extraction: {timeout_seconds, interval_seconds}
        browser: {headless, navigation_timeout_ms}
        credentials: {<site>: {...}}
        sites: {<site>: {balances: [...], ...}}
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None, path: Optional[Path] = None):
        self._data: Dict[str, Any] = data or {}
        self.path = path

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Config":
        """
        Load configuration from an explicit path or the default locations.

        Args:
            path: Config file path; if None, ./config.yaml, ./config.yml and
                  ~/.balance-checker/config.yaml are tried in order

        Returns:
            Config instance (empty if no file was found and none was requested)
        """
        if path is not None:
            config_path = Path(path).expanduser()
            if not config_path.exists():
                raise ConfigError(f"Config file not found: {config_path}")
            return cls(_read_yaml(config_path), config_path)

        for config_path in _default_config_paths():
            if config_path.exists():
                return cls(_read_yaml(config_path), config_path)

        return cls()

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dotted key, e.g. "ledger.file"."""
        node: Any = self._data
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    @property
    def sites(self) -> Dict[str, Dict[str, Any]]:
        """Per-site configuration sections."""
        sites = self._data.get("sites") or {}
        if not isinstance(sites, dict):
            raise ConfigError("'sites' must be a mapping of site name to settings")
        return sites

    def site_config(self, site: str) -> Dict[str, Any]:
        """Get the configuration section of one site (empty if absent)."""
        section = self.sites.get(site) or {}
        if not isinstance(section, dict):
            raise ConfigError(f"'sites.{site}' must be a mapping")
        return section

    def credentials(self, site: str) -> Dict[str, str]:
        """
        Resolve credentials for a site.

        Values from the config file win; missing ones are looked up in the
        environment as <SITE>_<KEY>, e.g. BACKIT_EMAIL.
        """
        configured = self.get(f"credentials.{site}", {}) or {}
        resolved = {str(k): str(v) for k, v in configured.items() if v is not None}
        prefix = site.upper().replace("-", "_")
        for key in ("email", "password", "username"):
            env_value = os.environ.get(f"{prefix}_{key.upper()}")
            if key not in resolved and env_value:
                resolved[key] = env_value
        return resolved

    def ledger_file(self) -> str:
        return str(self.get("ledger.file", LEDGER_FILE))

    def ledger_command(self) -> str:
        return str(self.get("ledger.command", LEDGER_COMMAND))

    def ledger_timeout(self) -> float:
        return _as_float(self.get("ledger.timeout", LEDGER_TIMEOUT_SECONDS), "ledger.timeout")

    def run_settings(self, site: str, headless: Optional[bool] = None) -> RunSettings:
        """
        Build the RunSettings for one site.

        Args:
            site: Site name (used for the default session file name)
            headless: Command-line override for the browser mode
        """
        cache_dir = self.get("session.cache_dir", SESSION_CACHE_DIR)
        session_path = self.get(f"sites.{site}.session_path") or os.path.join(
            cache_dir, f"{site}StorageState.json"
        )
        max_age_hours = self.get("session.max_age_hours")
        max_age = (
            _as_float(max_age_hours, "session.max_age_hours") * 3600
            if max_age_hours is not None else SESSION_MAX_AGE_SECONDS
        )

        if headless is None:
            headless = bool(self.get("browser.headless", HEADLESS))

        return RunSettings(
            session_path=str(session_path),
            session_max_age=max_age,
            login_timeout=_as_float(
                self.get("login.timeout_seconds", LOGIN_TIMEOUT_SECONDS), "login.timeout_seconds"
            ),
            login_check_interval=_as_float(
                self.get("login.check_interval_seconds", LOGIN_CHECK_INTERVAL_SECONDS),
                "login.check_interval_seconds",
            ),
            extraction_timeout=_as_float(
                self.get("extraction.timeout_seconds", EXTRACTION_TIMEOUT_SECONDS),
                "extraction.timeout_seconds",
            ),
            extraction_interval=_as_float(
                self.get("extraction.interval_seconds", EXTRACTION_INTERVAL_SECONDS),
                "extraction.interval_seconds",
            ),
            headless=headless,
            navigation_timeout_ms=int(
                self.get("browser.navigation_timeout_ms", NAVIGATION_TIMEOUT_MS)
            ),
        )


def _default_config_paths() -> List[Path]:
    paths = [Path.cwd() / name for name in CONFIG_FILENAMES]
    paths.append(Path.home() / ".balance-checker" / "config.yaml")
    return paths


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Top level of {path} must be a mapping")
    return data


def _as_float(value: Any, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"'{key}' must be a number, got {value!r}")
