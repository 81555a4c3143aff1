"""
Driver factory: builds a DatabaseDriver from a database URL.
"""

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from ..exceptions import ConfigurationError
from .base import DatabaseDriver
from .postgres import PostgresDriver
from .sqlite import SQLiteDriver


logger = logging.getLogger(__name__)


SUPPORTED_SCHEMES = ("sqlite", "postgresql", "postgres")


def sqlite_path(url: str) -> str:
    """
    ``sqlite:///:memory:`` and ``sqlite://`` -> ``:memory:``,
    ``sqlite:///relative.db`` -> ``relative.db``,
    ``sqlite:////abs/path.db`` -> ``/abs/path.db``.
    """
    remainder = url.split("://", 1)[1] if "://" in url else ""
    if remainder in ("", "/", "/:memory:", ":memory:"):
        return ":memory:"
    if not remainder.startswith("/"):
        raise ConfigurationError(f"Invalid SQLite URL: {url}", {"expected": "sqlite:///path"})
    return remainder[1:]


def create_driver(config: Any) -> DatabaseDriver:
    """
    Create a driver from a DatabaseConfig (or anything exposing ``url``).

    Raises:
        ConfigurationError: for an unsupported URL scheme
    """
    url: str = config.url
    scheme = urlparse(url).scheme
    max_identifier_length: Optional[int] = getattr(config, "max_identifier_length", None)

    if scheme == "sqlite":
        path = sqlite_path(url)
        logger.info(f"Using SQLite database {path}")
        return SQLiteDriver(
            path,
            timeout=getattr(config, "timeout", 5.0),
            max_identifier_length=max_identifier_length,
        )

    if scheme in ("postgresql", "postgres"):
        overrides: Dict[str, Any] = {
            "command_timeout": getattr(config, "command_timeout", None),
            "min_size": getattr(config, "min_size", None),
            "max_size": getattr(config, "max_size", None),
        }
        driver = PostgresDriver.from_url(
            url,
            schema_name=getattr(config, "schema_name", "public"),
            max_identifier_length=max_identifier_length,
            **overrides,
        )
        logger.info(f"Using PostgreSQL database {driver.config.host}/{driver.config.database}")
        return driver

    raise ConfigurationError(
        f"Unsupported database URL scheme: {scheme or url}",
        {"supported": ", ".join(SUPPORTED_SCHEMES)},
    )
