"""
Kernel - Shared infrastructure for the UUID registry

Storage, audit logging, settings, errors and observability used by every
registry component.
"""

from uuid_registry.kernel.errors import (
    IdentifierExhausted,
    InvalidConfiguration,
    MalformedIdentifier,
    ProbeRoundsExceeded,
    StorageFailure,
    UuidRegistryError,
)
from uuid_registry.kernel.settings import RegistrySettings
from uuid_registry.kernel.storage import SQLiteStorage, Storage
from uuid_registry.kernel.time import RealTimeProvider, TestTimeProvider, TimeProvider

__all__ = [
    # Settings
    "RegistrySettings",
    # Storage
    "Storage",
    "SQLiteStorage",
    # Time
    "TimeProvider",
    "RealTimeProvider",
    "TestTimeProvider",
    # Errors
    "UuidRegistryError",
    "IdentifierExhausted",
    "MalformedIdentifier",
    "InvalidConfiguration",
    "StorageFailure",
    "ProbeRoundsExceeded",
]
