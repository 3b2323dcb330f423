"""
Storage configuration.

Defaults live in module constants. `StorageConfig` collects the runtime values
and can be loaded from the environment.
"""

from __future__ import annotations

import os
from typing import Final

from pydantic import Field
from typing_extensions import Self

from .types import StrictBaseModel

DEFAULT_DATABASE_PATH: Final = ":memory:"
"""In-memory SQLite database. Suitable for tests only."""

PENDING_FINALIZATION_LIMIT: Final = 30
"""Finalization candidates handed out per call. Bounds the finalizer's work per cycle."""

BUSY_TIMEOUT_SECS: Final = 5.0
"""How long a write waits on a lock held by another connection before failing."""

ENV_DATABASE_PATH: Final = "FINALIZER_DB_PATH"
ENV_PENDING_LIMIT: Final = "FINALIZER_PENDING_LIMIT"
ENV_BUSY_TIMEOUT: Final = "FINALIZER_BUSY_TIMEOUT_SECS"


class StorageConfig(StrictBaseModel):
    """Runtime configuration for the withdrawal store."""

    database_path: str = DEFAULT_DATABASE_PATH
    """Path to the SQLite database file, or ":memory:"."""

    pending_finalization_limit: int = Field(default=PENDING_FINALIZATION_LIMIT, gt=0)
    """Default cap on the number of records returned by `pending_finalization`."""

    busy_timeout_secs: float = Field(default=BUSY_TIMEOUT_SECS, ge=0)
    """Lock wait timeout passed to SQLite."""

    @classmethod
    def from_env(cls) -> Self:
        """
        Build a configuration from environment variables.

        Unset variables keep their defaults.

        Raises:
            ValueError: If a numeric variable does not parse.
            pydantic.ValidationError: If a parsed value is out of range.
        """
        values: dict[str, object] = {}
        if (path := os.environ.get(ENV_DATABASE_PATH)) is not None:
            values["database_path"] = path
        if (limit := os.environ.get(ENV_PENDING_LIMIT)) is not None:
            values["pending_finalization_limit"] = int(limit)
        if (timeout := os.environ.get(ENV_BUSY_TIMEOUT)) is not None:
            values["busy_timeout_secs"] = float(timeout)
        return cls(**values)
