"""Connection settings loaded from environment variables.

Other modules should take a ``DatabaseSettings`` instance (usually from
``get_settings()``) rather than reading ``os.environ`` directly.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal
from urllib.parse import quote, unquote, urlsplit

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_SCHEMES = {"postgres": "postgresql", "mysql": "mysql"}


class DatabaseSettings(BaseSettings):
    """Store and pool configuration backed by ``DB_*`` environment variables.

    ``DATABASE_URL`` (or ``DB_URL``) takes precedence over the individual
    host fields for network drivers.

    Example::

        settings = DatabaseSettings()  # reads .env + real env
        provider = ConnectionProvider(settings)
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # -- Store ------------------------------------------------------------

    driver: Literal["postgres", "sqlite", "mysql"] = "postgres"
    """Which DB-API driver and SQL dialect to use."""

    url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("DB_URL", "DATABASE_URL"),
    )
    """Full connection URL. Overrides host/port/name/user/password."""

    host: str = "localhost"
    port: int = 5432
    name: str = "safe_dal"
    user: str = "postgres"
    password: str = Field(
        default="password",
        validation_alias=AliasChoices("DB_PASSWORD", "DB_PASS"),
    )
    ssl: bool = False
    """Require TLS for network drivers."""

    sqlite_path: str = ":memory:"
    """Database file for the sqlite driver."""

    # -- Pool -------------------------------------------------------------

    pool_min: int = Field(default=2, ge=0)
    pool_max: int = Field(default=10, ge=1)

    idle_timeout: float = 30.0
    """Seconds an idle pooled connection may live before it is closed."""

    connect_timeout: float = 10.0
    """Seconds the driver may spend opening one connection."""

    acquire_timeout: float = 60.0
    """Seconds a caller may wait for a free pooled connection."""

    pool_transaction_guard: Literal["rollback", "raise", "discard"] = "rollback"
    """What the pool does with a connection returned mid-transaction."""

    pool_reset_session: bool = True
    """Reset driver session state when a connection goes back to the pool."""

    @model_validator(mode="after")
    def _check_pool_bounds(self) -> DatabaseSettings:
        if self.pool_min > self.pool_max:
            raise ValueError("pool_min must be <= pool_max.")
        return self

    def dsn(self) -> str:
        """Return the connection URL for network drivers."""

        if self.url:
            return self.url
        if self.driver == "sqlite":
            return f"sqlite:///{self.sqlite_path}"
        scheme = _SCHEMES[self.driver]
        user = quote(self.user, safe="")
        password = quote(self.password, safe="")
        return f"{scheme}://{user}:{password}@{self.host}:{self.port}/{self.name}"

    def network_params(self) -> dict[str, object]:
        """Split the effective URL into host/port/user/password/database parts."""

        if not self.url:
            return {
                "host": self.host,
                "port": self.port,
                "user": self.user,
                "password": self.password,
                "database": self.name,
            }
        parts = urlsplit(self.url)
        return {
            "host": parts.hostname or self.host,
            "port": parts.port or self.port,
            "user": unquote(parts.username) if parts.username else self.user,
            "password": unquote(parts.password) if parts.password else self.password,
            "database": parts.path.lstrip("/") or self.name,
        }


@lru_cache(maxsize=1)
def get_settings() -> DatabaseSettings:
    """Return a cached ``DatabaseSettings`` instance.

    The ``.env`` file is read at most once per process; call
    ``get_settings.cache_clear()`` to reload.
    """
    return DatabaseSettings()
