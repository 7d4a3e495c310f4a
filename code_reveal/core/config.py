"""Configuration management for Code Reveal."""

import logging
import yaml
from pathlib import Path
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, asdict, fields

from .errors import ConfigurationError
from .interfaces import IConfigManager


logger = logging.getLogger(__name__)


REVEAL_MODES = ("chars", "lines")


@dataclass
class RevealConfig:
    """Pacing of a single reveal."""
    chars_per_tick: int = 5
    tick_interval_ms: float = 6
    newline_extra_delay_ms: float = 15
    mode: str = "chars"

    def validate(self) -> None:
        """Raise ConfigurationError if the pacing cannot drive a reveal."""
        errors = validate_reveal_settings(asdict(self))
        if errors:
            raise ConfigurationError("; ".join(errors))


@dataclass
class SessionConfig:
    """Multi-file session behaviour."""
    settle_delay_ms: float = 75
    max_session_seconds: Optional[float] = None


@dataclass
class HistoryConfig:
    """Undo/redo history limits."""
    max_history: int = 50


@dataclass
class DiffConfig:
    """Diff engine limits."""
    max_diff_lines: int = 5000
    max_diff_chars: int = 500_000
    context_lines: int = 3
    max_previews: int = 100


@dataclass
class DisplayConfig:
    """Display and UI configuration."""
    theme: str = "dark"
    diff_format: str = "unified"
    syntax_highlighting: bool = True
    progress_indicators: bool = True


@dataclass
class CodeRevealConfig:
    """Complete configuration for Code Reveal."""
    reveal: RevealConfig
    session: SessionConfig
    history: HistoryConfig
    diff: DiffConfig
    display: DisplayConfig

    def __init__(self):
        self.reveal = RevealConfig()
        self.session = SessionConfig()
        self.history = HistoryConfig()
        self.diff = DiffConfig()
        self.display = DisplayConfig()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CodeRevealConfig":
        """Build a typed config from a (possibly partial) config dictionary.

        Unknown keys are ignored so older config files keep loading.
        """
        config = cls()
        for section_name in ("reveal", "session", "history", "diff", "display"):
            section = getattr(config, section_name)
            values = data.get(section_name) or {}
            known = {f.name for f in fields(section)}
            for key, value in values.items():
                if key in known:
                    setattr(section, key, value)
                else:
                    logger.debug(f"Ignoring unknown config key {section_name}.{key}")
        return config

    def to_dict(self) -> Dict[str, Any]:
        return {
            'reveal': asdict(self.reveal),
            'session': asdict(self.session),
            'history': asdict(self.history),
            'diff': asdict(self.diff),
            'display': asdict(self.display),
        }


def validate_reveal_settings(reveal: Dict[str, Any]) -> List[str]:
    """Validate reveal pacing values and return any errors."""
    errors = []

    chars_per_tick = reveal.get('chars_per_tick', 0)
    if not isinstance(chars_per_tick, int) or chars_per_tick <= 0:
        errors.append("reveal.chars_per_tick must be a positive integer")

    if reveal.get('tick_interval_ms', 0) <= 0:
        errors.append("reveal.tick_interval_ms must be greater than 0")

    if reveal.get('newline_extra_delay_ms', 0) < 0:
        errors.append("reveal.newline_extra_delay_ms must be non-negative")

    if reveal.get('mode', 'chars') not in REVEAL_MODES:
        errors.append("reveal.mode must be 'chars' or 'lines'")

    return errors


class ConfigManager(IConfigManager):
    """Manages configuration loading, saving, and validation."""

    DEFAULT_CONFIG_NAME = "config.yml"

    def __init__(self, project_root: Optional[Path] = None):
        self.project_root = project_root or Path.cwd()
        self.config_dir = self.project_root / ".code-reveal"
        self.config_path = self.config_dir / self.DEFAULT_CONFIG_NAME

    def load_config(self, config_path: Optional[Path] = None) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        path = config_path or self.config_path

        if not path.exists():
            return self.get_default_config()

        try:
            with open(path, 'r', encoding='utf-8') as f:
                config_data = yaml.safe_load(f) or {}

            # Merge with defaults to ensure all keys are present
            default_config = self.get_default_config()
            return self._merge_configs(default_config, config_data)
        except Exception as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            return self.get_default_config()

    def save_config(self, config: Dict[str, Any], config_path: Optional[Path] = None) -> bool:
        """Save configuration to YAML file."""
        path = config_path or self.config_path

        try:
            path.parent.mkdir(parents=True, exist_ok=True)

            with open(path, 'w', encoding='utf-8') as f:
                yaml.dump(config, f, default_flow_style=False, indent=2)

            return True
        except Exception as e:
            logger.error(f"Failed to save config to {path}: {e}")
            return False

    def get_default_config(self) -> Dict[str, Any]:
        """Get default configuration values."""
        return CodeRevealConfig().to_dict()

    def validate_config(self, config: Dict[str, Any]) -> List[str]:
        """Validate configuration and return any errors."""
        errors = []

        errors.extend(validate_reveal_settings(config.get('reveal', {})))

        session = config.get('session', {})
        if session.get('settle_delay_ms', 0) < 0:
            errors.append("session.settle_delay_ms must be non-negative")

        max_seconds = session.get('max_session_seconds')
        if max_seconds is not None and max_seconds <= 0:
            errors.append("session.max_session_seconds must be greater than 0 when set")

        history = config.get('history', {})
        if history.get('max_history', 0) <= 0:
            errors.append("history.max_history must be greater than 0")

        diff = config.get('diff', {})
        if diff.get('max_diff_lines', 0) <= 0:
            errors.append("diff.max_diff_lines must be greater than 0")

        if diff.get('max_diff_chars', 0) <= 0:
            errors.append("diff.max_diff_chars must be greater than 0")

        if diff.get('context_lines', 3) < 0:
            errors.append("diff.context_lines must be non-negative")

        if diff.get('max_previews', 100) <= 0:
            errors.append("diff.max_previews must be greater than 0")

        display = config.get('display', {})
        theme = display.get('theme', 'dark')
        if theme not in ['dark', 'light', 'auto']:
            errors.append("display.theme must be 'dark', 'light', or 'auto'")

        diff_format = display.get('diff_format', 'unified')
        if diff_format not in ['unified', 'side-by-side']:
            errors.append("display.diff_format must be 'unified' or 'side-by-side'")

        return errors

    def _merge_configs(self, default: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge user config with default config."""
        result = default.copy()

        for key, value in user.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def create_default_config_file(self) -> bool:
        """Create a default configuration file."""
        return self.save_config(self.get_default_config())

    def get_config_path(self) -> Path:
        """Get the path to the configuration file."""
        return self.config_path
