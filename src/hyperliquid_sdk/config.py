"""
Configuration management for the Hyperliquid client.
"""
import os
import json
import yaml
import logging
import logging.handlers
from typing import Dict, Any, Optional, Tuple
from pathlib import Path
from dataclasses import dataclass, field, asdict, replace
from enum import Enum

logger = logging.getLogger(__name__)

ENV_PREFIX = "HYPERLIQUID_"


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Network(str, Enum):
    """Operating environments."""
    MAINNET = "mainnet"
    TESTNET = "testnet"


# (REST base URL, stream URL) per network
NETWORK_PRESETS: Dict[Network, Tuple[str, str]] = {
    Network.MAINNET: ("https://api.hyperliquid.xyz", "wss://api.hyperliquid.xyz/ws"),
    Network.TESTNET: ("https://api.hyperliquid-testnet.xyz", "wss://api.hyperliquid-testnet.xyz/ws"),
}


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff shared by REST retries and stream reconnects."""
    max_attempts: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 10.0  # seconds

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("Backoff delays must be non-negative")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must not be smaller than base_delay")

    def delay(self, attempt: int) -> float:
        """Delay to wait after the given (0-based) failed attempt."""
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RetryPolicy':
        """Create from dictionary."""
        return cls(**{k: v for k, v in data.items() if k in cls.__annotations__})


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration."""
    level: LogLevel = LogLevel.INFO
    file: Optional[str] = None
    max_size_mb: int = 100  # Max log file size in MB
    backup_count: int = 5  # Number of backup logs to keep
    console: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoggingConfig':
        """Create from dictionary."""
        data = dict(data)
        if "level" in data and isinstance(data["level"], str):
            data["level"] = LogLevel[data["level"].upper()]
        return cls(**{k: v for k, v in data.items() if k in cls.__annotations__})


@dataclass(frozen=True)
class ClientConfig:
    """Immutable client configuration, validated at construction."""
    network: Network = Network.MAINNET
    rest_url: str = ""
    ws_url: str = ""
    private_key: Optional[str] = field(default=None, repr=False)
    vault_address: Optional[str] = None
    timeout: float = 30.0  # seconds, per HTTP request
    rate_limit: int = 1200  # requests per rate_window
    rate_window: float = 60.0  # seconds
    ping_interval: float = 50.0  # seconds
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self):
        network = Network(self.network)
        object.__setattr__(self, "network", network)

        rest_url, ws_url = NETWORK_PRESETS[network]
        if not self.rest_url:
            object.__setattr__(self, "rest_url", rest_url)
        if not self.ws_url:
            object.__setattr__(self, "ws_url", ws_url)
        object.__setattr__(self, "rest_url", self.rest_url.rstrip('/'))

        if not self.rest_url.startswith(("http://", "https://")):
            raise ValueError(f"Invalid REST URL: {self.rest_url}")
        if not self.ws_url.startswith(("ws://", "wss://")):
            raise ValueError(f"Invalid WebSocket URL: {self.ws_url}")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.rate_limit < 1 or self.rate_window <= 0:
            raise ValueError("rate_limit and rate_window must be positive")
        if self.ping_interval <= 0:
            raise ValueError("ping_interval must be positive")

    @property
    def is_mainnet(self) -> bool:
        return self.network == Network.MAINNET

    @classmethod
    def mainnet(cls, private_key: Optional[str] = None, **kwargs) -> 'ClientConfig':
        """Production preset."""
        return cls(network=Network.MAINNET, private_key=private_key, **kwargs)

    @classmethod
    def testnet(cls, private_key: Optional[str] = None, **kwargs) -> 'ClientConfig':
        """Sandbox preset."""
        return cls(network=Network.TESTNET, private_key=private_key, **kwargs)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ClientConfig':
        """Create configuration from a dictionary."""
        values = {k: v for k, v in data.items() if k in cls.__annotations__}

        if isinstance(values.get("retry"), dict):
            values["retry"] = RetryPolicy.from_dict(values["retry"])

        if isinstance(values.get("logging"), dict):
            values["logging"] = LoggingConfig.from_dict(values["logging"])

        return cls(**values)

    @classmethod
    def from_file(cls, file_path: str) -> 'ClientConfig':
        """Load configuration from a YAML or JSON file."""
        return cls.from_dict(_read_file(Path(file_path)))

    def with_overrides(self, **changes) -> 'ClientConfig':
        """Return a copy with the given fields replaced.

        Changing ``network`` also switches URLs that came from the old preset;
        explicitly configured URLs are kept.
        """
        if "network" in changes:
            preset_rest, preset_ws = NETWORK_PRESETS[self.network]
            if self.rest_url == preset_rest:
                changes.setdefault("rest_url", "")
            if self.ws_url == preset_ws:
                changes.setdefault("ws_url", "")
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a dictionary, without the private key."""
        data = asdict(self)
        data.pop("private_key", None)
        data["network"] = self.network.value
        data["logging"]["level"] = self.logging.level.value
        return data


def _read_file(file_path: Path) -> Dict[str, Any]:
    if not file_path.exists():
        raise FileNotFoundError(f"Config file not found: {file_path}")

    with open(file_path, 'r') as f:
        if file_path.suffix.lower() == '.json':
            data = json.load(f)
        elif file_path.suffix.lower() in ('.yaml', '.yml'):
            data = yaml.safe_load(f)
        else:
            raise ValueError(f"Unsupported config file format: {file_path.suffix}")

    return data or {}


def _apply_env_overrides(data: Dict[str, Any], environ: Dict[str, str]) -> None:
    overrides = {
        "NETWORK": ("network", str),
        "PRIVATE_KEY": ("private_key", str),
        "VAULT_ADDRESS": ("vault_address", str),
        "REST_URL": ("rest_url", str),
        "WS_URL": ("ws_url", str),
        "TIMEOUT": ("timeout", float),
    }
    for suffix, (key, cast) in overrides.items():
        value = environ.get(ENV_PREFIX + suffix)
        if value:
            data[key] = cast(value)


def load_config(config_path: Optional[str] = None,
                environ: Optional[Dict[str, str]] = None) -> ClientConfig:
    """
    Load configuration from a file and ``HYPERLIQUID_*`` environment variables.

    Args:
        config_path: Path to a YAML/JSON file. If None, only the environment is used.
        environ: Environment mapping (defaults to ``os.environ``)

    Returns:
        ClientConfig: Loaded configuration
    """
    data: Dict[str, Any] = {}
    if config_path:
        data = _read_file(Path(config_path))
        logger.info(f"Loaded configuration from {config_path}")

    if data.get("private_key"):
        logger.warning(
            "Private key found in plain text in the config file. "
            "Consider using the HYPERLIQUID_PRIVATE_KEY environment variable."
        )

    _apply_env_overrides(data, dict(os.environ if environ is None else environ))
    return ClientConfig.from_dict(data)


def setup_logging(config: LoggingConfig) -> None:
    """Configure root logging from a LoggingConfig."""
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    root = logging.getLogger()
    root.setLevel(getattr(logging, config.level.value))

    if config.console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    if config.file:
        file_handler = logging.handlers.RotatingFileHandler(
            config.file,
            maxBytes=config.max_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
