"""
Configuration Management

Handles loading configuration from environment variables and config files.
"""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional
import json

from dotenv import load_dotenv

from .transfer.locator import DEFAULT_HOST, DEFAULT_LINE_LIMIT, PORT_HIGH, PORT_LOW, PortRange
from .storage.blob_store import DEFAULT_STORAGE_DIR

ENV_PREFIX = 'BLOBLINE_'


@dataclass
class Config:
    """
    blobline configuration.

    Configuration priority (highest to lowest):
    1. Environment variables (BLOBLINE_*)
    2. Config file (JSON)
    3. Default values
    """
    # Network
    host: str = DEFAULT_HOST
    port_low: int = PORT_LOW
    port_high: int = PORT_HIGH
    connect_timeout: float = 5.0
    line_limit: int = DEFAULT_LINE_LIMIT

    # Storage
    storage_dir: Path = field(default_factory=lambda: DEFAULT_STORAGE_DIR)

    # Logging
    log_level: str = 'INFO'

    @property
    def port_range(self) -> PortRange:
        """Validated port range. Raises ValueError if the bounds are bad."""
        return PortRange(self.port_low, self.port_high)

    def validate(self):
        """Raise ValueError if any setting is unusable."""
        self.port_range
        if self.connect_timeout <= 0:
            raise ValueError(f"connect_timeout must be positive: {self.connect_timeout}")
        if self.line_limit <= 0:
            raise ValueError(f"line_limit must be positive: {self.line_limit}")

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        load_dotenv()

        config = cls()

        # Network
        config.host = os.getenv(f'{ENV_PREFIX}HOST', config.host)
        config.port_low = int(os.getenv(f'{ENV_PREFIX}PORT_LOW', config.port_low))
        config.port_high = int(os.getenv(f'{ENV_PREFIX}PORT_HIGH', config.port_high))
        config.connect_timeout = float(
            os.getenv(f'{ENV_PREFIX}CONNECT_TIMEOUT', config.connect_timeout)
        )
        config.line_limit = int(os.getenv(f'{ENV_PREFIX}LINE_LIMIT', config.line_limit))

        # Storage
        storage_dir = os.getenv(f'{ENV_PREFIX}STORAGE_DIR')
        if storage_dir:
            config.storage_dir = Path(storage_dir)

        # Logging
        config.log_level = os.getenv(f'{ENV_PREFIX}LOG_LEVEL', config.log_level)

        return config

    @classmethod
    def from_file(cls, path: Path) -> 'Config':
        """Load configuration from a JSON file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        config = cls()

        # Network
        config.host = data.get('host', config.host)
        config.port_low = data.get('port_low', config.port_low)
        config.port_high = data.get('port_high', config.port_high)
        config.connect_timeout = data.get('connect_timeout', config.connect_timeout)
        config.line_limit = data.get('line_limit', config.line_limit)

        # Storage
        if 'storage_dir' in data:
            config.storage_dir = Path(data['storage_dir'])

        # Logging
        config.log_level = data.get('log_level', config.log_level)

        return config

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'host': self.host,
            'port_low': self.port_low,
            'port_high': self.port_high,
            'connect_timeout': self.connect_timeout,
            'line_limit': self.line_limit,
            'storage_dir': str(self.storage_dir),
            'log_level': self.log_level,
        }

    def save(self, path: Path):
        """Save configuration to a JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from file and environment.

    Environment variables override file settings.
    """
    # Start with defaults
    config = Config()

    # Load from file if provided
    if config_path and config_path.exists():
        config = Config.from_file(config_path)

    # Override with environment variables
    env_config = Config.from_env()

    # Merge (env takes precedence wherever the variable is set)
    for key in ['host', 'port_low', 'port_high', 'connect_timeout',
                'line_limit', 'storage_dir', 'log_level']:
        if os.getenv(f'{ENV_PREFIX}{key.upper()}'):
            setattr(config, key, getattr(env_config, key))

    config.validate()

    return config


# Example config file template
EXAMPLE_CONFIG = """
{
  "host": "localhost",
  "port_low": 23525,
  "port_high": 23529,
  "connect_timeout": 5.0,
  "line_limit": 16777216,
  "storage_dir": "server_files",
  "log_level": "INFO"
}
"""
