"""
Configuration loading for dirserve
"""

import os
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional

from .models import (
    Config, ServerConfig, TlsConfig, CacheConfig, ApiConfig, MetricsConfig,
    LoggingConfig
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "dirserve.yaml"


class ConfigError(Exception):
    """Raised when configuration is unusable"""
    pass


class ConfigManager:
    """Loads configuration from a YAML file and the environment"""

    def __init__(self, config_path: str = DEFAULT_CONFIG_PATH):
        self.config_path = Path(config_path).resolve()
        self.config: Optional[Config] = None

    def load_config(self) -> Config:
        """Load configuration from YAML file"""
        if not self.config_path.exists():
            logger.warning(f"Configuration file not found: {self.config_path}")
            data = {}
        else:
            try:
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigError(f"Failed to load configuration: {e}")
            logger.info(f"Configuration loaded from {self.config_path}")

        if not isinstance(data, dict):
            raise ConfigError(f"Configuration must be a mapping: {self.config_path}")

        try:
            config = self._parse_config(data)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration value in {self.config_path}: {e}")
        apply_env_overrides(config)
        self.config = config
        return config

    def _parse_config(self, data: Dict[str, Any]) -> Config:
        """Parse configuration data into Config object"""

        # Server configuration
        server_data = section(data, 'server')
        tls_data = section(server_data, 'tls')
        server = ServerConfig(
            addr=server_data.get('addr', '0.0.0.0'),
            port=int(server_data.get('port', 3000)),
            tls=TlsConfig(
                enabled=tls_data.get('enabled', False),
                certfile=tls_data.get('certfile', ''),
                keyfile=tls_data.get('keyfile', '')
            ),
            shutdownTimeout=float(server_data.get('shutdownTimeout', 10.0)),
            keepAliveTimeout=float(server_data.get('keepAliveTimeout', 120.0))
        )

        # Relative roots are taken relative to the config file
        root = Path(data.get('root') or '.')
        if not root.is_absolute():
            root = self.config_path.parent / root

        # Cache
        cache_data = section(data, 'cache')
        cache = CacheConfig(ttl=float(cache_data.get('ttl', 300.0)))

        # JSON echo endpoint
        api_data = section(data, 'api')
        api = ApiConfig(
            paths=list(api_data.get('paths', ['/post', '/api'])),
            maxBodySize=int(api_data.get('maxBodySize', 1048576))
        )

        # Health and metrics endpoints
        metrics_data = section(data, 'metrics')
        metrics = MetricsConfig(
            enabled=bool(metrics_data.get('enabled', False)),
            prefix=str(metrics_data.get('prefix', '/_dirserve'))
        )

        # Logging
        logging_data = section(data, 'logging')
        logging_config = LoggingConfig(
            json=logging_data.get('json', False),
            file=logging_data.get('file', ''),
            level=logging_data.get('level', 'INFO'),
            max_size_mb=int(logging_data.get('max_size_mb', 100)),
            backup_count=int(logging_data.get('backup_count', 5))
        )

        return Config(
            server=server,
            root=root,
            cache=cache,
            api=api,
            metrics=metrics,
            logging=logging_config
        )


def section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Mapping stored under name; an empty or null section counts as {}"""
    value = data.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"Configuration section '{name}' must be a mapping")
    return value


def apply_env_overrides(config: Config) -> Config:
    """Apply HOST and PORT environment variables"""
    host = os.getenv("HOST")
    if host:
        config.server.addr = host

    port = os.getenv("PORT")
    if port:
        try:
            config.server.port = int(port)
        except ValueError:
            raise ConfigError(f"Invalid PORT: {port}")

    return config


def validate_config(config: Config) -> Config:
    """Check settings the server cannot start without"""
    if not config.root.is_dir():
        raise ConfigError(f"Root directory does not exist: {config.root}")

    if config.cache.ttl <= 0:
        raise ConfigError(f"cache.ttl must be positive, got {config.cache.ttl}")

    if config.api.maxBodySize <= 0:
        raise ConfigError(f"api.maxBodySize must be positive, got {config.api.maxBodySize}")

    if config.server.tls.enabled and not (config.server.tls.certfile and config.server.tls.keyfile):
        raise ConfigError("TLS enabled but certfile or keyfile missing")

    for path in config.api.paths:
        if not path.startswith('/'):
            raise ConfigError(f"API path must start with '/': {path}")

    prefix = config.metrics.prefix
    if config.metrics.enabled and (not prefix.startswith('/') or prefix.rstrip('/') == ''):
        raise ConfigError(f"metrics.prefix must be a non-root path starting with '/': {prefix}")

    return config


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> Config:
    """Load configuration from file"""
    return ConfigManager(config_path).load_config()
