"""SyTest configuration management.

Configuration is loaded from multiple sources with the following priority
(highest to lowest):
1. CLI arguments
2. Environment variables (with SYTEST_ prefix)
3. Configuration file (sytest.config.yaml)
4. Default values

Example usage:
    from sytest.core.settings import get_settings

    settings = get_settings(servers=3)
    print(settings.ports)

Environment variable support:
    SYTEST_SERVERS=3
    SYTEST_SERVER__SERVER_DIR=/src/synapse
    SYTEST_POSTGRES__DB_1=sytest_1
"""

import logging
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

CONFIG_FILE_NAMES = ["sytest.config.yaml", "sytest.config.yml"]

# Sections that may appear nested in the YAML file
NESTED_SECTIONS = ["server", "client", "runner", "postgres", "logging"]


def _find_config_file(start_dir: Path | None = None) -> Path | None:
    """Find a configuration file in the start directory or its parents."""
    search_dir = start_dir or Path.cwd()

    for _ in range(10):
        for filename in CONFIG_FILE_NAMES:
            config_path = search_dir / filename
            if config_path.exists():
                return config_path

        parent = search_dir.parent
        if parent == search_dir:
            break
        search_dir = parent

    return None


def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    """Load configuration from a YAML file.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Dictionary of configuration values, empty if unreadable.
    """
    try:
        with open(config_path) as f:
            config = yaml.safe_load(f) or {}
            return config if isinstance(config, dict) else {}
    except yaml.YAMLError as e:
        logger.warning("Failed to parse config file %s: %s", config_path, e)
        return {}
    except OSError as e:
        logger.warning("Failed to read config file %s: %s", config_path, e)
        return {}


class OverwritePolicy(str, Enum):
    """What the test environment does when a key is provided twice."""

    WARN = "warn"
    ERROR = "error"
    ALLOW = "allow"


class ServerSettings(BaseModel):
    """Homeserver process settings."""

    server_dir: Path = Field(
        default=Path("../synapse"),
        description="Working directory the homeserver is started from",
    )
    command: list[str] = Field(
        default_factory=lambda: [
            "python",
            "-m",
            "synapse.app.homeserver",
            "--config-path",
            "{data_dir}/homeserver.yaml",
            "--server-name",
            "{server_name}",
        ],
        description="Command template; {port}, {data_dir}, {server_name} expand",
    )
    ready_pattern: str = Field(
        default=r"Synapse now listening on port (\d+)",
        description="Regex matched against server output to detect readiness",
    )
    start_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Seconds a server has to become ready before boot fails",
    )
    output_dir: Path = Field(
        default=Path("."),
        description="Directory holding the per-server localhost-<port> dirs",
    )
    print_output: bool = Field(
        default=False,
        description="Log every line of server output",
    )
    kill_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Seconds to wait for a signalled server to exit",
    )


class ClientSettings(BaseModel):
    """Protocol client settings."""

    use_ssl: bool = Field(default=True, description="Connect over HTTPS")
    verify_ssl: bool = Field(
        default=False,
        description="Verify server certificates (test servers are self-signed)",
    )
    host: str = Field(default="localhost", description="Homeserver host name")
    password: SecretStr = Field(
        default=SecretStr("f00b4r"),
        description="Password used when registering test users",
    )
    user_prefix: str = Field(
        default="u-",
        description="Localpart prefix; users are registered as <prefix><port>",
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for ordinary requests in seconds",
    )
    sync_timeout_ms: int = Field(
        default=30000,
        ge=0,
        description="Long-poll timeout passed to /sync in milliseconds",
    )
    log_traffic: bool = Field(
        default=False,
        description="Log requests, responses and received events",
    )


class RunnerSettings(BaseModel):
    """Test scheduler settings."""

    poll_interval: float = Field(
        default=1.0,
        ge=0,
        description="Seconds between check attempts",
    )
    fail_fast: bool = Field(
        default=False,
        description="Stop the run after the first failing test",
    )
    overwrite_policy: OverwritePolicy = Field(
        default=OverwritePolicy.WARN,
        description="Behaviour when an environment key is provided twice",
    )
    flush_delay: float = Field(
        default=3.0,
        ge=0,
        description="Seconds to wait for in-flight events before final checks",
    )
    convergence_attempts: int = Field(
        default=10,
        ge=0,
        description="Retries for the final cross-client convergence checks",
    )


class PostgresSettings(BaseModel):
    """Per-server PostgreSQL settings.

    Server N (1-based) uses db_N/user_N/password_N/host_N. ``pass_N`` is
    accepted for ``password_N``, matching the POSTGRES_PASS_N variables of
    existing CI jobs. Servers without a database name keep the
    homeserver's default database.
    """

    model_config = ConfigDict(extra="allow")

    def for_server(self, index: int) -> dict[str, Any] | None:
        """Return the database args for the index-th server, if configured."""
        values = {**(self.model_extra or {})}
        database = values.get(f"db_{index}")
        if not database:
            return None
        return {
            "database": database,
            "user": values.get(f"user_{index}"),
            "password": values.get(f"password_{index}", values.get(f"pass_{index}")),
            "host": values.get(f"host_{index}"),
        }


class LoggingSettings(BaseModel):
    """Logging configuration settings."""

    level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_output: bool | None = Field(
        default=None,
        description="Output logs as JSON; auto-detected from the TTY if unset",
    )
    file: str | None = Field(
        default=None,
        description="Log file path (optional)",
    )

    @field_validator("level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid Python logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper_v


class SyTestSettings(BaseSettings):
    """Main SyTest configuration settings.

    Example:
        settings = SyTestSettings(servers=3)
        print(settings.ports)  # [8001, 8002, 8003]
        print(settings.server.start_timeout)
    """

    model_config = SettingsConfigDict(
        env_prefix="SYTEST_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )

    servers: int = Field(
        default=2,
        ge=1,
        le=16,
        description="Number of homeservers (and clients) to boot",
    )
    base_port: int = Field(
        default=8000,
        ge=1,
        le=65000,
        description="Servers listen on base_port+1 .. base_port+servers",
    )
    tests_dir: Path | None = Field(
        default=None,
        description="Directory of test files; defaults to the built-in scenarios",
    )

    server: ServerSettings = Field(default_factory=ServerSettings)
    client: ClientSettings = Field(default_factory=ClientSettings)
    runner: RunnerSettings = Field(default_factory=RunnerSettings)
    postgres: PostgresSettings = Field(default_factory=PostgresSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @model_validator(mode="before")
    @classmethod
    def load_from_config_file(cls, data: dict[str, Any]) -> dict[str, Any]:
        """Merge values from sytest.config.yaml underneath explicit values."""
        if data.get("_skip_file_loading"):
            data.pop("_skip_file_loading", None)
            return data

        config_path = _find_config_file()
        if not config_path:
            return data

        file_config = _load_yaml_config(config_path)
        if not file_config:
            return data

        logger.debug("Loaded configuration from %s", config_path)
        return _merge_config(file_config, data)

    @property
    def ports(self) -> list[int]:
        """Ports of every homeserver in boot order."""
        return [self.base_port + i for i in range(1, self.servers + 1)]

    def to_dict(self, mask_secrets: bool = True) -> dict[str, Any]:
        """Convert settings to a plain dictionary.

        Args:
            mask_secrets: If True, mask secret values such as passwords.
        """
        data = self.model_dump(mode="json")
        if not mask_secrets:
            data["client"]["password"] = self.client.password.get_secret_value()
        return data


def _merge_config(file_config: dict[str, Any], data: dict[str, Any]) -> dict[str, Any]:
    """Merge file values with explicit values; explicit values win."""
    merged = {**file_config, **data}
    for section in NESTED_SECTIONS:
        file_section = file_config.get(section)
        if not isinstance(file_section, dict):
            continue
        data_section = data.get(section)
        merged[section] = {
            **file_section,
            **(data_section if isinstance(data_section, dict) else {}),
        }
    return merged


def get_settings(
    config_file: Path | None = None,
    **overrides: Any,
) -> SyTestSettings:
    """Get a SyTest settings instance.

    Args:
        config_file: Optional explicit path to a configuration file. When
            given, automatic discovery of sytest.config.yaml is skipped.
        **overrides: Explicit configuration overrides (nested sections as
            dicts).

    Returns:
        Configured SyTestSettings instance.
    """
    if config_file is not None and config_file.exists():
        file_config = _load_yaml_config(config_file)
        merged = _merge_config(file_config, overrides)
        merged["_skip_file_loading"] = True
        return SyTestSettings(**merged)

    return SyTestSettings(**overrides)


@lru_cache
def get_cached_settings() -> SyTestSettings:
    """Get a cached settings instance.

    The cache can be cleared with get_cached_settings.cache_clear().
    """
    return get_settings()
