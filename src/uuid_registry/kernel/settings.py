"""
Registry Settings - Tunable limits and table names

These are the "physical constants" of identifier issuance: how hard to try
before giving up, how large a backfill batch is, and where the registry and
the external-document identifiers live.
"""

import os
import re
from typing import Any

from pydantic import BaseModel, Field, field_validator

_ENV_PREFIX = "UUID_REGISTRY_"
_SQL_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class RegistrySettings(BaseModel):
    """
    Settings shared by every registry component

    The defaults match the deployed schema: registry rows live in
    ``uuid_registry``, every tracked table stores its identifier in a
    ``uuid`` column, and drive documents use ``documents.drive_uuid``.
    """

    max_tries: int = Field(
        default=100,
        ge=1,
        description="Attempts a single-entity generation makes before giving up",
    )

    batch_size: int = Field(
        default=1000,
        ge=1,
        le=10000,
        description="Maximum rows assigned per backfill round",
    )

    max_probe_rounds: int = Field(
        default=10,
        ge=1,
        description="Maximum generate-and-check rounds for one unused-uuid batch",
    )

    registry_table: str = Field(
        default="uuid_registry",
        description="Table holding one row per issued uuid",
    )

    uuid_column: str = Field(
        default="uuid",
        description="Identifier column in the registry and in every tracked table",
    )

    document_table: str = Field(
        default="documents",
        description="Table holding drive document identifiers",
    )

    document_column: str = Field(
        default="drive_uuid",
        description="Identifier column of the drive document table",
    )

    audit_category: str = Field(
        default="uuid",
        description="Audit log category used by the backfill orchestrator",
    )

    model_config = {"frozen": True}

    @field_validator("registry_table", "uuid_column", "document_table", "document_column")
    @classmethod
    def _plain_sql_name(cls, value: str) -> str:
        if not _SQL_NAME.match(value):
            raise ValueError(f"{value!r} is not a plain SQL identifier")
        return value

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "RegistrySettings":
        """
        Build settings from ``UUID_REGISTRY_*`` environment variables

        Example: ``UUID_REGISTRY_BATCH_SIZE=500`` overrides ``batch_size``.
        Unset variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        overrides: dict[str, Any] = {}
        for name in cls.model_fields:
            raw = env.get(_ENV_PREFIX + name.upper())
            if raw is not None:
                overrides[name] = raw.strip()
        return cls(**overrides)


# Default global settings instance
default_settings = RegistrySettings()
