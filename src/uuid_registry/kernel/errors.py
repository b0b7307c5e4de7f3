"""
Custom exceptions for the UUID registry

A small, well-defined hierarchy so callers can tell a compromised randomness
source apart from bad input, bad configuration and storage trouble.

Fun fact: With 122 random bits, you would need to issue about 2.7 quintillion
identifiers before the odds of a single collision reach 50%. The retry paths
below exist anyway.
"""


class UuidRegistryError(Exception):
    """Base exception for all UUID registry errors"""

    pass


class IdentifierExhausted(UuidRegistryError):
    """
    Raised when a unique identifier could not be produced within the retry cap

    This should never happen in practice. If it does, the randomness source
    of the host is compromised and the caller should stop issuing identifiers.
    """

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(
            f"Unable to create a unique UUID after {attempts} attempts - "
            "the random source of this host is suspect"
        )


class MalformedIdentifier(UuidRegistryError, ValueError):
    """Raised when a value is not a syntactically valid UUID"""

    def __init__(self, value: object, reason: str = "") -> None:
        self.value = value
        detail = f" ({reason})" if reason else ""
        super().__init__(f"Malformed UUID {value!r}{detail}")


class InvalidConfiguration(UuidRegistryError):
    """
    Raised when a registry context or backfill target cannot be used as given

    Examples: a table or column name that is not a plain SQL identifier, a
    vertical key naming columns the table does not have, or a batch whose
    rows and identifiers do not line up.
    """

    pass


class StorageFailure(UuidRegistryError):
    """Raised when the underlying database rejects a query or statement"""

    pass


class ProbeRoundsExceeded(StorageFailure):
    """Raised when batch probing keeps finding collisions round after round"""

    def __init__(self, rounds: int, outstanding: int) -> None:
        self.rounds = rounds
        self.outstanding = outstanding
        super().__init__(
            f"Still missing {outstanding} unused UUIDs after {rounds} probe rounds"
        )
