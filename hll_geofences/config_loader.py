#!/usr/bin/env python3
"""
Configuration loader module
YAML + environment variable hybrid approach implementation
"""

import os
import re
import yaml
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from dataclasses import dataclass, field

from .game.fence import Fence, fence_from_dict
from .game.models import GRID_COLUMNS, GRID_ROWS, Side
from .utils.helpers import validate_port


DEFAULT_WARNING_MESSAGE = (
    "You are outside the allowed area! Return within {seconds} seconds or you will be punished."
)
DEFAULT_PUNISH_MESSAGE = "You were punished for staying outside the allowed area."


class ConfigError(ValueError):
    """Raised when configuration values are invalid"""


@dataclass
class LoggingConfig:
    """Logging configuration data class"""
    level: str = "INFO"
    format_style: str = "simple"  # simple, console, json
    log_dir: Optional[Path] = None
    enable_file: bool = False


@dataclass
class IdleRestartConfig:
    """Inactivity restart configuration data class"""
    enabled: bool = True
    idle_minutes: float = 30.0
    check_interval: float = 60.0


@dataclass
class MetricsConfig:
    """Prometheus metrics endpoint configuration data class"""
    enabled: bool = False
    host: str = "0.0.0.0"
    port: int = 9108


@dataclass
class MonitoringConfig:
    """Polling intervals and escalation timing shared by every worker"""
    session_interval: float = 1.0
    player_interval: float = 0.5
    punish_interval: float = 1.0
    punish_window_seconds: float = 5.0
    punish_settle_seconds: float = 5.0
    startup_grace_seconds: float = 5.0
    max_concurrent_evaluations: int = 16
    restart_grace_seconds: float = 0.5
    restart_on_shutdown: bool = True
    idle_restart: IdleRestartConfig = field(default_factory=IdleRestartConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)


@dataclass
class ServerConfig:
    """Per-server RCON access and fence enforcement settings"""
    host: str
    port: int = 7779
    password: str = ""
    name: str = ""
    punish_after_seconds: int = 10
    warning_message: str = DEFAULT_WARNING_MESSAGE
    punish_message: str = DEFAULT_PUNISH_MESSAGE
    whitelist: List[str] = field(default_factory=list)
    axis_fence: List[Fence] = field(default_factory=list)
    allies_fence: List[Fence] = field(default_factory=list)

    @property
    def display_name(self) -> str:
        return self.name or f"{self.host}:{self.port}"

    def is_whitelisted(self, player_id: str) -> bool:
        return player_id in self.whitelist


@dataclass
class GeofenceConfig:
    """Complete geofence configuration"""
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    servers: List[ServerConfig] = field(default_factory=list)


class ConfigLoader:
    """Configuration loader class"""

    # Environment variable substitution pattern: ${VAR_NAME:default_value}
    ENV_VAR_PATTERN = re.compile(r'\$\{([^}:]+)(?::([^}]*))?\}')

    # Free text that must survive type conversion untouched
    TEXT_KEYS = {'password', 'warning_message', 'punish_message', 'name', 'host', 'whitelist'}

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        """
        Initialize configuration loader

        Args:
            config_path: Configuration file path (default: $CONFIG_PATH or config/default.yaml)
        """
        if config_path is None:
            config_path = os.getenv("CONFIG_PATH")
        if config_path is None:
            current_dir = Path(__file__).parent.parent
            config_path = current_dir / "config" / "default.yaml"

        self.config_path = Path(config_path)
        self._raw_config: Dict[str, Any] = {}
        self._processed_config: Dict[str, Any] = {}

    def _substitute_env_vars(self, value: Any) -> Any:
        """
        Process environment variable substitution

        Args:
            value: Value to substitute

        Returns:
            Value with environment variables substituted
        """
        if isinstance(value, str):
            def replace_env_var(match):
                var_name = match.group(1)
                default_value = match.group(2) if match.group(2) is not None else ""
                return os.getenv(var_name, default_value)

            return self.ENV_VAR_PATTERN.sub(replace_env_var, value)

        elif isinstance(value, dict):
            return {k: self._substitute_env_vars(v) for k, v in value.items()}

        elif isinstance(value, list):
            return [self._substitute_env_vars(item) for item in value]

        return value

    def _convert_types(self, value: Any, key: Optional[str] = None) -> Any:
        """
        Convert strings to appropriate types

        Args:
            value: Value to convert
            key: Mapping key the value sits under

        Returns:
            Type-converted value
        """
        if key in self.TEXT_KEYS:
            if isinstance(value, list):
                return [str(item) for item in value]
            return value if value is None else str(value)

        if isinstance(value, str):
            if value.lower() in ('true', 'yes', 'on'):
                return True
            elif value.lower() in ('false', 'no', 'off'):
                return False

            if value.isdigit():
                return int(value)

            try:
                if '.' in value:
                    return float(value)
            except ValueError:
                pass

        elif isinstance(value, dict):
            return {k: self._convert_types(v, k) for k, v in value.items()}

        elif isinstance(value, list):
            return [self._convert_types(item) for item in value]

        return value

    def load_config(self) -> GeofenceConfig:
        """
        Load configuration file and apply environment variables

        Returns:
            GeofenceConfig instance

        Raises:
            FileNotFoundError: When configuration file is not found
            yaml.YAMLError: YAML parsing error
            ConfigError: Malformed server or fence entries
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                self._raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"YAML file parsing error: {e}")

        self._processed_config = self._substitute_env_vars(self._raw_config)
        self._processed_config = self._convert_types(self._processed_config)

        return self._create_config_instance()

    def _create_config_instance(self) -> GeofenceConfig:
        """
        Create GeofenceConfig instance from dictionary

        Returns:
            GeofenceConfig instance
        """
        config_dict = self._processed_config

        logging_dict = config_dict.get('logging', {}) or {}
        log_dir = logging_dict.get('log_dir')
        logging_config = LoggingConfig(
            level=str(logging_dict.get('level', 'INFO')),
            format_style=logging_dict.get('format_style', 'simple'),
            log_dir=Path(log_dir) if log_dir else None,
            enable_file=logging_dict.get('enable_file', False),
        )
        if os.getenv("DEBUG") is not None:
            logging_config.level = "DEBUG"

        monitoring_dict = config_dict.get('monitoring', {}) or {}
        idle_dict = monitoring_dict.get('idle_restart', {}) or {}
        metrics_dict = monitoring_dict.get('metrics', {}) or {}

        monitoring_config = MonitoringConfig(
            session_interval=float(monitoring_dict.get('session_interval', 1.0)),
            player_interval=float(monitoring_dict.get('player_interval', 0.5)),
            punish_interval=float(monitoring_dict.get('punish_interval', 1.0)),
            punish_window_seconds=float(monitoring_dict.get('punish_window_seconds', 5.0)),
            punish_settle_seconds=float(monitoring_dict.get('punish_settle_seconds', 5.0)),
            startup_grace_seconds=float(monitoring_dict.get('startup_grace_seconds', 5.0)),
            max_concurrent_evaluations=int(monitoring_dict.get('max_concurrent_evaluations', 16)),
            restart_grace_seconds=float(monitoring_dict.get('restart_grace_seconds', 0.5)),
            restart_on_shutdown=monitoring_dict.get('restart_on_shutdown', True),
            idle_restart=IdleRestartConfig(
                enabled=idle_dict.get('enabled', True),
                idle_minutes=float(idle_dict.get('idle_minutes', 30)),
                check_interval=float(idle_dict.get('check_interval', 60)),
            ),
            metrics=MetricsConfig(
                enabled=metrics_dict.get('enabled', False),
                host=str(metrics_dict.get('host', '0.0.0.0')),
                port=int(metrics_dict.get('port', 9108)),
            ),
        )

        servers = [
            self._create_server_config(index, server_dict)
            for index, server_dict in enumerate(config_dict.get('servers', []) or [])
        ]

        return GeofenceConfig(
            logging=logging_config,
            monitoring=monitoring_config,
            servers=servers,
        )

    def _create_server_config(self, index: int, server_dict: Dict[str, Any]) -> ServerConfig:
        """Build one server entry, converting fence mappings to Fence objects"""
        if not isinstance(server_dict, dict) or not server_dict.get('host'):
            raise ConfigError(f"Server entry #{index} must be a mapping with a host")

        punish_after = server_dict.get('punish_after_seconds')
        if punish_after is None:
            punish_after = 10

        try:
            axis_fence = [fence_from_dict(Side.AXIS, f) for f in server_dict.get('axis_fence', []) or []]
            allies_fence = [fence_from_dict(Side.ALLIES, f) for f in server_dict.get('allies_fence', []) or []]
        except (TypeError, ValueError, AttributeError) as e:
            raise ConfigError(f"Invalid fence in server entry #{index}: {e}")

        return ServerConfig(
            host=server_dict['host'],
            port=int(server_dict.get('port', 7779)),
            password=server_dict.get('password', '') or '',
            name=server_dict.get('name', '') or '',
            punish_after_seconds=int(punish_after),
            warning_message=server_dict.get('warning_message') or DEFAULT_WARNING_MESSAGE,
            punish_message=server_dict.get('punish_message') or DEFAULT_PUNISH_MESSAGE,
            whitelist=list(server_dict.get('whitelist', []) or []),
            axis_fence=axis_fence,
            allies_fence=allies_fence,
        )

    def validate_config(self, config: GeofenceConfig) -> bool:
        """
        Validate configuration

        Args:
            config: Configuration to validate

        Returns:
            Whether validation passed
        """
        if not config.servers:
            raise ConfigError("No servers configured")

        valid_styles = ['simple', 'console', 'json']
        if config.logging.format_style not in valid_styles:
            raise ConfigError(f"Invalid log format style: {config.logging.format_style}")

        monitoring = config.monitoring
        for name in ('session_interval', 'player_interval', 'punish_interval'):
            if getattr(monitoring, name) <= 0:
                raise ConfigError(f"Invalid {name}: {getattr(monitoring, name)}")
        for name in ('punish_window_seconds', 'punish_settle_seconds',
                     'startup_grace_seconds', 'restart_grace_seconds'):
            if getattr(monitoring, name) < 0:
                raise ConfigError(f"Invalid {name}: {getattr(monitoring, name)}")
        if monitoring.max_concurrent_evaluations < 1:
            raise ConfigError(f"Invalid max concurrent evaluations: {monitoring.max_concurrent_evaluations}")
        if monitoring.idle_restart.idle_minutes <= 0 or monitoring.idle_restart.check_interval <= 0:
            raise ConfigError("Idle restart minutes and check interval must be positive")
        if monitoring.metrics.enabled and not validate_port(monitoring.metrics.port):
            raise ConfigError(f"Invalid metrics port: {monitoring.metrics.port}")

        for server in config.servers:
            if not validate_port(server.port):
                raise ConfigError(f"Invalid RCON port for {server.host}: {server.port}")
            if server.punish_after_seconds < 0:
                raise ConfigError(f"Invalid punish_after_seconds for {server.host}: {server.punish_after_seconds}")

            for fence in server.axis_fence + server.allies_fence:
                for column in fence.columns:
                    if column not in GRID_COLUMNS:
                        raise ConfigError(f"Invalid fence column for {server.host}: {column}")
                for row in fence.rows:
                    if not 1 <= row <= GRID_ROWS:
                        raise ConfigError(f"Invalid fence row for {server.host}: {row}")
                for numpad in fence.numpads:
                    if not 1 <= numpad <= 9:
                        raise ConfigError(f"Invalid fence numpad for {server.host}: {numpad}")

        return True


# Global configuration instances
_config_instance: Optional[GeofenceConfig] = None
_config_loader: Optional[ConfigLoader] = None


def get_config(config_path: Optional[Union[str, Path]] = None) -> GeofenceConfig:
    """
    Return global configuration instance (singleton pattern)

    Args:
        config_path: Configuration file path

    Returns:
        GeofenceConfig instance
    """
    global _config_instance, _config_loader

    if _config_instance is None:
        _config_loader = ConfigLoader(config_path)
        _config_instance = _config_loader.load_config()
        _config_loader.validate_config(_config_instance)

    return _config_instance

