"""Configuration management for the chunkdelta CLI."""

import json
import logging
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from common.constants import (
    CHUNK_SIZE_BYTES,
    COMPRESSION_DEFAULT,
    DEFAULT_TOOL_PATH,
    MAX_CONCURRENT_SUBPROCESSES,
    TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / '.chunkdelta' / 'config.json'

# Keys of the config file that map onto GeneratorOptions fields
GENERATOR_KEYS = ("tool_path", "compression", "timeout", "chunk_size", "verify")


class Config:
    """Manages CLI configuration stored in JSON file."""

    DEFAULT_CONFIG = {
        "tool_path": DEFAULT_TOOL_PATH,
        "compression": COMPRESSION_DEFAULT,
        "timeout": TIMEOUT_SECONDS,
        "chunk_size": CHUNK_SIZE_BYTES,
        "max_parallel": MAX_CONCURRENT_SUBPROCESSES,
        "verify": True,
    }

    def __init__(self, config_path: Path = DEFAULT_CONFIG_PATH):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to config JSON file (typically ~/.chunkdelta/config.json)
        """
        self.config_path = config_path
        self.data = self._load()

    def _load(self) -> dict:
        """
        Load configuration from file, creating defaults if necessary.

        A file that cannot be parsed is copied to config.json.bak and the
        defaults are used instead.

        Returns:
            Configuration dictionary
        """
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
        except PermissionError:
            self.config_path = Path(tempfile.gettempdir()) / '.chunkdelta' / 'config.json'
            self.config_path.parent.mkdir(parents=True, exist_ok=True)

        if self.config_path.exists():
            try:
                with open(self.config_path, 'r') as f:
                    data = json.load(f)
                if not isinstance(data, dict):
                    raise ValueError("top-level value is not an object")
                config = self.DEFAULT_CONFIG.copy()
                config.update(data)
                return config
            except (ValueError, OSError) as e:
                backup_path = self.config_path.with_suffix('.json.bak')
                logger.warning(f"Ignoring unreadable config {self.config_path}: {e}")
                try:
                    shutil.copy(self.config_path, backup_path)
                except OSError as copy_error:
                    logger.warning(f"Could not back up config to {backup_path}: {copy_error}")
                return self.DEFAULT_CONFIG.copy()
        else:
            config = self.DEFAULT_CONFIG.copy()
            try:
                with open(self.config_path, 'w') as f:
                    json.dump(config, f, indent=2)
            except OSError as e:
                logger.warning(f"Could not write default config {self.config_path}: {e}")
            return config

    def save(self) -> None:
        """Save current configuration to file."""
        try:
            with open(self.config_path, 'w') as f:
                json.dump(self.data, f, indent=2)
        except OSError as e:
            logger.warning(f"Could not save config {self.config_path}: {e}")

    def set(self, key: str, value) -> None:
        """
        Set a value and save to file.

        Args:
            key: Config key
            value: JSON-serializable value
        """
        self.data[key] = value
        self.save()

    def get_tool_path(self) -> str:
        return self.data.get('tool_path', DEFAULT_TOOL_PATH)

    def get_timeout(self) -> Optional[float]:
        """
        Get the per-invocation tool timeout in seconds.

        Returns:
            Timeout value in seconds, or None for no limit
        """
        return self.data.get('timeout', TIMEOUT_SECONDS)

    def get_max_parallel(self) -> int:
        return self.data.get('max_parallel', MAX_CONCURRENT_SUBPROCESSES)

    def get_generator_options(self) -> dict:
        """
        Get the values used to build the PatchGenerator options.

        Returns:
            Dictionary of GeneratorOptions fields present in the config
        """
        return {key: self.data[key] for key in GENERATOR_KEYS if key in self.data}
