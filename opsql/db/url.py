from __future__ import annotations

import re
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.exc import ArgumentError

from ..errors import ConfigurationError
from .session import Database

# user:password@tcp(host:port)/dbname?params, as written for Go MySQL drivers
_TCP_DSN = re.compile(
    r"^(?:(?P<user>[^:@/]*)(?::(?P<password>[^@]*))?@)?tcp\((?P<host>[^)]*)\)/(?P<db>[^?]*)"
)
_SECRET = re.compile(r"://([^:/@]+):([^@]+)@")
_TCP_SECRET = re.compile(r"^([^:/@]+):([^@]+)@tcp\(")

_DRIVERS = {
    "postgres": "postgresql+psycopg2",
    "postgresql": "postgresql+psycopg2",
    "mysql": "mysql+pymysql",
    "sqlite": "sqlite",
}


def detect_driver(dsn: str) -> str:
    """
    Return "postgresql", "mysql" or "sqlite" for a connection string.

    Raises:
        ConfigurationError: If the driver cannot be determined
    """
    lowered = dsn.lower()
    scheme = lowered.split("://", 1)[0] if "://" in lowered else ""
    dialect = scheme.split("+", 1)[0]
    if dialect in ("postgres", "postgresql"):
        return "postgresql"
    if dialect == "mysql" or "@tcp(" in lowered or lowered.startswith("tcp("):
        return "mysql"
    if dialect == "sqlite":
        return "sqlite"
    raise ConfigurationError(f"unsupported database driver in DSN: {mask_secret(dsn)}")


def to_sqlalchemy_url(dsn: str) -> str:
    """
    Translate a DSN into a SQLAlchemy URL.

    Explicit SQLAlchemy URLs ("mysql+pymysql://...") pass through unchanged.
    """
    detect_driver(dsn)
    if "://" in dsn:
        scheme, rest = dsn.split("://", 1)
        if "+" in scheme:
            return dsn
        return f"{_DRIVERS[scheme.lower()]}://{rest}"

    match = _TCP_DSN.match(dsn)
    if match is None:
        raise ConfigurationError(f"malformed MySQL DSN: {mask_secret(dsn)}")
    auth = ""
    if match.group("user"):
        auth = match.group("user")
        if match.group("password") is not None:
            auth += f":{match.group('password')}"
        auth += "@"
    host = match.group("host") or "127.0.0.1:3306"
    # Go driver options such as parseTime have no PyMySQL equivalent
    return f"mysql+pymysql://{auth}{host}/{match.group('db')}"


def mask_secret(dsn: str) -> str:
    """Replace the password in a URL-style DSN with ***."""
    masked = _SECRET.sub(r"://\1:***@", dsn)
    return _TCP_SECRET.sub(r"\1:***@tcp(", masked)


def create_database(dsn: str, **engine_kwargs: Any) -> Database:
    """Build a Database for a DSN; pool_pre_ping is on unless overridden."""
    engine_kwargs.setdefault("pool_pre_ping", True)
    url = to_sqlalchemy_url(dsn)
    try:
        engine = create_engine(url, **engine_kwargs)
    except (ArgumentError, ImportError) as exc:
        raise ConfigurationError(f"cannot create engine for {mask_secret(url)}: {exc}") from exc
    return Database(engine)
