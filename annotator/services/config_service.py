"""
Configuration service for the Filla annotator.

Settings are stored as JSON in ~/.config/filla-annotator/config.json.
Values found on disk are merged over the defaults, so new keys show up
in the file the next time it is written.
"""

import copy
import json
from pathlib import Path
from typing import Any, Dict, Optional

from annotator.services.logging_service import get_logger

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "filla-annotator"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.json"

DEFAULT_CONFIG: Dict[str, Any] = {
    # Quiet period before a background save, in milliseconds
    "autosave_delay_ms": 2000,
    # How long the "Saved" indicator stays up
    "saved_status_ms": 1000,
    # Hit-test slack around shapes, in display pixels
    "hit_tolerance_px": 8,
    "touch_hit_tolerance_px": 20,
    "default_color": "charcoal",
    "default_stroke_width": "medium",
    # Where the local annotation store keeps its records
    "store_dir": str(Path.home() / ".local" / "share" / "filla-annotator" / "annotations"),
    # Timeout for fetching remote images, in seconds
    "image_timeout_s": 10,
}


class ConfigService:
    """
    Loads, merges and persists editor settings.

    Falls back to defaults when the file is missing or corrupted.
    """

    def __init__(self, config_path: Optional[Path] = None) -> None:
        self._logger = get_logger(__name__)
        self._config_path = Path(config_path) if config_path else DEFAULT_CONFIG_FILE
        self._config: Dict[str, Any] = {}

        self._load()

    def _load(self) -> None:
        """Load configuration from file, using defaults if needed."""
        self._config = copy.deepcopy(DEFAULT_CONFIG)

        if not self._config_path.exists():
            self._logger.info(
                f"Config file not found at {self._config_path}. Using defaults."
            )
            self._save_to_file()
            return

        try:
            with open(self._config_path, "r", encoding="utf-8") as f:
                loaded_config = json.load(f)

            if not isinstance(loaded_config, dict):
                raise ValueError("Config file does not contain a valid JSON object")

            self._deep_merge(self._config, loaded_config)
            self._logger.info(f"Configuration loaded from {self._config_path}")
            self._save_to_file()

        except (json.JSONDecodeError, ValueError) as e:
            self._logger.warning(
                f"Config file corrupted or invalid: {e}. Recreating with defaults."
            )
            self._config = copy.deepcopy(DEFAULT_CONFIG)
            self._save_to_file()

        except (OSError, PermissionError) as e:
            self._logger.warning(f"Could not read config file: {e}. Using defaults.")

    def _deep_merge(self, base: Dict, override: Dict) -> None:
        """Recursively merge override dict into base dict."""
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def _save_to_file(self) -> None:
        try:
            self._config_path.parent.mkdir(parents=True, exist_ok=True)

            with open(self._config_path, "w", encoding="utf-8") as f:
                json.dump(self._config, f, indent=2)

            self._logger.debug(f"Configuration saved to {self._config_path}")

        except (OSError, PermissionError) as e:
            self._logger.error(f"Could not save config file: {e}")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Look up a configuration value.

        Args:
            key: Top-level configuration key.
            default: Returned when the key is absent.

        Returns:
            The stored value, or default.
        """
        return self._config.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """
        Change a configuration value for this session.

        Args:
            key: Top-level configuration key.
            value: New value; must be JSON serializable.

        Note:
            Nothing is written until save() is called.
        """
        self._config[key] = value
        self._logger.debug(f"Config key '{key}' set to '{value}'")

    def save(self) -> None:
        """Persist current configuration to disk."""
        self._save_to_file()

    @property
    def path(self) -> Path:
        """Location of the config file on disk."""
        return self._config_path

    # ─── Editor Settings ──────────────────────────────────────────────────

    @property
    def autosave_delay_ms(self) -> int:
        """Quiet period after the last edit before an autosave, in ms."""
        return int(self.get("autosave_delay_ms", 2000))

    @property
    def saved_status_ms(self) -> int:
        """How long the Saved indicator stays up, in ms."""
        return int(self.get("saved_status_ms", 1000))

    @property
    def hit_tolerance_px(self) -> float:
        """Hit-test slack around shapes for mouse input, in display pixels."""
        return float(self.get("hit_tolerance_px", 8))

    @property
    def touch_hit_tolerance_px(self) -> float:
        """Hit-test slack around shapes for touch input, in display pixels."""
        return float(self.get("touch_hit_tolerance_px", 20))

    @property
    def default_color(self) -> str:
        """Palette name new annotations start with, e.g. 'charcoal'."""
        return self.get("default_color", "charcoal")

    @property
    def default_stroke_width(self) -> str:
        """Stroke width name new annotations start with: thin, medium or bold."""
        return self.get("default_stroke_width", "medium")

    # ─── Storage Settings ─────────────────────────────────────────────────

    @property
    def store_dir(self) -> Path:
        """Directory holding the annotation store records."""
        return Path(self.get("store_dir", DEFAULT_CONFIG["store_dir"]))

    @property
    def image_timeout_s(self) -> float:
        """Timeout for fetching remote images, in seconds."""
        return float(self.get("image_timeout_s", 10))
