"""Configuration management for tripwire.

Loads YAML settings (settings.yaml) and environment variables (.env)
into a typed Config object. Property getters provide safe access with
sensible defaults for the Slack connection, handler discovery and
logging.

Key classes:
    Config: Central configuration manager.

Key functions:
    get_config: Singleton accessor for the global Config instance.
"""

import os
from pathlib import Path
from typing import List, Optional

import structlog
import yaml
from dotenv import load_dotenv

from .exceptions import ConfigurationError

logger = structlog.get_logger("tripwire.bot")


class Config:
    """Central configuration manager for tripwire.

    Args:
        config_dir: Path to the config directory. Defaults to
            ``$TRIPWIRE_CONFIG_DIR`` or ``<repo_root>/config/``.
    """

    def __init__(self, config_dir: Optional[Path] = None):
        if config_dir is None:
            env_dir = os.environ.get("TRIPWIRE_CONFIG_DIR")
            config_dir = Path(env_dir) if env_dir else Path(__file__).parent.parent / "config"
        self.config_dir = config_dir

        # Load environment variables
        env_file = config_dir / ".env"
        if env_file.exists():
            load_dotenv(env_file)

        self.settings = self._load_yaml("settings.yaml")

    def _load_yaml(self, filename: str) -> dict:
        """Load a YAML configuration file."""
        filepath = self.config_dir / filename
        if filepath.exists():
            with open(filepath, "r") as f:
                try:
                    data = yaml.safe_load(f) or {}
                except yaml.YAMLError as e:
                    raise ConfigurationError(
                        f"cannot parse {filename}: {e}", setting_name=filename
                    ) from e
            if not isinstance(data, dict):
                raise ConfigurationError(
                    f"{filename} must contain a mapping", setting_name=filename
                )
            return data
        return {}

    def validate(self):
        """Validate critical settings at startup.

        Logs warnings/errors but does not raise -- startup fails later,
        at connect time, if the tokens are really unusable.
        """
        if not self.slack_bot_token:
            logger.error("missing_setting", key="SLACK_BOT_TOKEN")
        elif not self.slack_bot_token.startswith("xoxb-"):
            logger.warning("unexpected_token_format", key="SLACK_BOT_TOKEN", expected="xoxb-")
        if not self.slack_app_token:
            logger.error("missing_setting", key="SLACK_APP_TOKEN")
        elif not self.slack_app_token.startswith("xapp-"):
            logger.warning("unexpected_token_format", key="SLACK_APP_TOKEN", expected="xapp-")

        handlers = self.settings.get("handlers", {})
        if not isinstance(handlers, dict):
            logger.error("config_invalid_type", key="handlers", type=type(handlers).__name__)
        elif not isinstance(handlers.get("modules", []), list):
            logger.error("config_invalid_type", key="handlers.modules", type=type(handlers.get("modules")).__name__)

    # --- Slack ---

    @property
    def slack_bot_token(self) -> str:
        """Bot User OAuth token. Env var SLACK_BOT_TOKEN takes precedence."""
        slack = self.settings.get("slack", {})
        return os.environ.get("SLACK_BOT_TOKEN") or slack.get("bot_token", "")

    @property
    def slack_app_token(self) -> str:
        """App-level Socket Mode token. Env var SLACK_APP_TOKEN takes precedence."""
        slack = self.settings.get("slack", {})
        return os.environ.get("SLACK_APP_TOKEN") or slack.get("app_token", "")

    @property
    def slack_api_url(self) -> str:
        """Slack Web API base URL (default https://slack.com/api)."""
        slack = self.settings.get("slack", {})
        return os.environ.get("SLACK_API_URL") or slack.get("api_url", "https://slack.com/api")

    # --- Handler discovery ---

    def _handlers_section(self) -> dict:
        section = self.settings.get("handlers", {})
        return section if isinstance(section, dict) else {}

    @property
    def handler_modules(self) -> List[str]:
        """Dotted module names to import for handlers."""
        modules = self._handlers_section().get("modules", [])
        if not isinstance(modules, list):
            logger.error("handler_modules_invalid_type", type=type(modules).__name__)
            return []
        return [str(m) for m in modules]

    @property
    def handlers_dir(self) -> Path:
        """Directory of standalone handler files (default <repo_root>/handlers)."""
        configured = self._handlers_section().get("dir")
        if configured:
            return Path(configured).expanduser()
        return Path(__file__).parent.parent / "handlers"

    @property
    def handler_allowlist(self) -> Optional[List[str]]:
        """If set, only these files load from handlers_dir."""
        return self._handlers_section().get("allowlist")

    @property
    def builtin_commands_enabled(self) -> bool:
        """Whether the built-in ping/help commands load (default True)."""
        return self._handlers_section().get("builtin", True)

    # --- Logging ---

    @property
    def log_dir(self) -> Path:
        """Get log directory path."""
        configured = self.settings.get("log_dir")
        if configured:
            return Path(configured).expanduser()
        return Path(__file__).parent.parent / "logs"

    @property
    def logging_level(self) -> str:
        """Global log level (default INFO). Controls console and combined file."""
        log_config = self.settings.get("logging", {})
        return log_config.get("level", "INFO")

    @property
    def logging_subsystem_levels(self) -> dict:
        """Per-subsystem log level overrides. E.g. {"slack": "DEBUG"}."""
        log_config = self.settings.get("logging", {})
        return log_config.get("subsystem_levels", {})

    @property
    def logging_max_file_size_mb(self) -> int:
        """Max size per log file in MB before rotation (default 10)."""
        log_config = self.settings.get("logging", {})
        return log_config.get("max_file_size_mb", 10)

    @property
    def logging_backup_count(self) -> int:
        """Number of rotated log files to keep (default 5)."""
        log_config = self.settings.get("logging", {})
        return log_config.get("backup_count", 5)


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config
