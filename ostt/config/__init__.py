"""YAML configuration loader for ostt."""

import os
import copy
import tempfile
import logging
from pathlib import Path
from typing import Dict, Any, Optional, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from ..exceptions import ConfigInvalid

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "ostt" / "ostt.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    "audio": {
        "device": "default",
        "sample_rate": 16000,
        "channels": 1,
        "chunk_size": 1024,
        "buffer_capacity": 256,
        "peak_volume_threshold": 90,
        "reference_level_db": -20,
        "silence_floor_db": -100.0,
        "output_format": "mp3 -ab 16k -ar 12000",
        "visualization": "spectrum",
        "frame_rate": 25,
    },
    "output": {
        "directory": None,
    },
    "logging": {
        "level": "INFO",
        "file_path": None,
        "console_output": False,
    },
}


class AudioSettings(BaseModel):
    """Validated audio section of the configuration."""

    device: str = "default"
    sample_rate: int = Field(16000, ge=8000, le=192000)
    channels: int = Field(1, ge=1, le=8)
    chunk_size: int = Field(1024, ge=64, le=16384)
    buffer_capacity: int = Field(256, ge=8)
    peak_volume_threshold: int = Field(90, ge=0, le=100)
    reference_level_db: int = Field(-20, ge=-60, le=0)
    silence_floor_db: float = Field(-100.0, ge=-160.0, le=-40.0)
    output_format: str = "mp3 -ab 16k -ar 12000"
    visualization: Literal["spectrum", "waveform"] = "spectrum"
    frame_rate: int = Field(25, ge=10, le=60)

    @field_validator("device", mode="before")
    @classmethod
    def _device_as_string(cls, value: Any) -> str:
        # YAML turns `device: 2` into an int
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("device")
    @classmethod
    def _device_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("device must be 'default', an index, or a device name")
        return value.strip()

    @field_validator("output_format")
    @classmethod
    def _format_has_codec(cls, value: str) -> str:
        if not value.split():
            raise ValueError("output_format must start with an ffmpeg codec name")
        return value

    @property
    def codec(self) -> str:
        return self.output_format.split()[0]

    @classmethod
    def from_mapping(cls, values: Dict[str, Any]) -> "AudioSettings":
        """Validate a raw mapping, converting failures to ConfigInvalid."""
        try:
            return cls.model_validate(values or {})
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in err['loc']) or 'audio'}: {err['msg']}"
                for err in e.errors()
            )
            raise ConfigInvalid(f"Invalid audio configuration: {problems}") from e


class OsttConfig:
    """ostt configuration loader."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. If None, uses
                        ~/.config/ostt/ostt.yaml and falls back to built-in
                        defaults when that file does not exist.
        """
        if config_path:
            self.config_file = Path(config_path).expanduser()
            if not self.config_file.exists():
                raise FileNotFoundError(f"Configuration file not found: {self.config_file}")
        else:
            self.config_file = DEFAULT_CONFIG_PATH

        if self.config_file.exists():
            logger.info(f"Loading configuration from: {self.config_file}")
            self.config = self._load_config()
        else:
            logger.info(f"No configuration at {self.config_file}, using defaults")
            self.config = copy.deepcopy(DEFAULT_CONFIG)

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file, layered over the defaults."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")
        except OSError as e:
            raise ValueError(f"Failed to load configuration: {e}")

        if not loaded:
            raise ValueError("Configuration file is empty")
        if not isinstance(loaded, dict):
            raise ValueError("Configuration file must contain a mapping")

        config = copy.deepcopy(DEFAULT_CONFIG)
        for section, values in loaded.items():
            if isinstance(values, dict) and isinstance(config.get(section), dict):
                config[section].update(values)
            else:
                config[section] = values

        self._resolve_paths(config)
        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        for section, key in (("logging", "file_path"), ("output", "directory")):
            values = config.get(section)
            if not isinstance(values, dict) or not values.get(key):
                continue
            path = os.path.expanduser(str(values[key]))
            if not os.path.isabs(path):
                path = str(config_dir / path)
            values[key] = path

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'audio.sample_rate').

        Args:
            key_path: Dot-separated key path
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'audio.device')
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config

        for key in keys[:-1]:
            if key not in config_dict or not isinstance(config_dict[key], dict):
                config_dict[key] = {}
            config_dict = config_dict[key]

        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def get_audio_settings(self) -> AudioSettings:
        """Validate and return the audio section - raises ConfigInvalid."""
        settings = AudioSettings.from_mapping(self.get('audio') or {})
        logger.debug(f"Audio settings: {settings.model_dump()}")
        return settings

    def get_log_file_path(self) -> Path:
        """Get log file path, following XDG_STATE_HOME when not configured."""
        configured = self.get('logging.file_path')
        if configured:
            return Path(configured)
        state_home = os.environ.get("XDG_STATE_HOME")
        base = Path(state_home) if state_home else Path.home() / ".local" / "state"
        return base / "ostt" / "ostt.log"

    def get_output_directory(self) -> Path:
        """Get directory for encoded recordings (system temp dir by default)."""
        configured = self.get('output.directory')
        if configured:
            return Path(configured)
        return Path(tempfile.gettempdir())


__all__ = ["OsttConfig", "AudioSettings", "DEFAULT_CONFIG", "DEFAULT_CONFIG_PATH"]
