"""Per-server PostgreSQL database configuration.

When postgres settings are present, every homeserver gets a
``database.yaml`` in its data directory:

    name: psycopg2
    args:
        database: sytest_1
        user: sytest
        password: ...
        host: localhost

Servers without any postgres settings keep the homeserver's default
database.
"""

import logging
from pathlib import Path
from typing import Any

import yaml

from sytest.core.exceptions import ConfigurationError
from sytest.core.settings import PostgresSettings

logger = logging.getLogger(__name__)

DATABASE_CONFIG_NAME = "database.yaml"
DATABASE_ENGINE = "psycopg2"


def postgres_enabled(postgres: PostgresSettings) -> bool:
    """Return True if any server has a database configured."""
    return any(
        key.startswith("db_") and value
        for key, value in (postgres.model_extra or {}).items()
    )


def database_config(args: dict[str, Any]) -> dict[str, Any]:
    """Build the database config document; unset connection args are left out."""
    return {
        "name": DATABASE_ENGINE,
        "args": {key: value for key, value in args.items() if value is not None},
    }


def write_database_config(
    data_dir: Path, index: int, postgres: PostgresSettings
) -> Path | None:
    """
    Write ``database.yaml`` for the index-th server (1-based).

    Args:
        data_dir: The server's data directory; created if missing.
        index: Position of the server in boot order, starting at 1.
        postgres: Postgres settings holding ``db_<index>`` and friends.

    Returns:
        Path of the written file, or None when postgres is not in use.

    Raises:
        ConfigurationError: Postgres is in use but server ``index`` has no
            database configured.
    """
    if not postgres_enabled(postgres):
        return None

    args = postgres.for_server(index)
    if args is None:
        raise ConfigurationError(
            f"Variable SYTEST_POSTGRES__DB_{index} not set "
            f"(postgres is configured for other servers)"
        )

    data_dir.mkdir(parents=True, exist_ok=True)
    config_path = data_dir / DATABASE_CONFIG_NAME
    with open(config_path, "w") as f:
        yaml.safe_dump(database_config(args), f, default_flow_style=False)

    logger.debug("Wrote database config for server %d to %s", index, config_path)
    return config_path
