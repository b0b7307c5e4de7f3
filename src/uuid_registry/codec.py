"""
Identifier codec - Timestamp-first COMB uuids

A COMB ("combined") uuid is a random version-4 uuid whose leading 48 bits are
replaced by a timestamp. Stored as 16 bytes, such values sort by creation
time, so they behave well as clustered primary keys while the remaining 74
random bits keep them unguessable.

Layout (big-endian):
    bytes 0-5   timestamp, 10-microsecond ticks since the Unix epoch
    bytes 6-15  random, with the version nibble (4) and RFC 4122 variant set

Fun fact: COMB uuids were described by Jimmy Nilsson in 2002 to stop SQL
Server from fragmenting its indexes on random GUID keys.
"""

import re
import secrets
import threading
import time
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Protocol

from uuid_registry.kernel.errors import MalformedIdentifier

UUID_BYTES_LENGTH = 16

# All-zero value that legacy rows use to mean "no uuid yet"
NIL_UUID_BYTES = b"\x00" * UUID_BYTES_LENGTH

TICKS_PER_SECOND = 100_000
_NS_PER_TICK = 1_000_000_000 // TICKS_PER_SECOND
_TIMESTAMP_MASK = (1 << 48) - 1

_CANONICAL_UUID = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


class IdFactory(Protocol):
    """Protocol for uuid generation strategies"""

    def generate(self) -> bytes:
        """Generate one new 16-byte uuid"""
        ...


class TimestampFirstCombCodec:
    """
    Generates timestamp-first COMB uuids

    The tick counter never goes backwards for one codec instance: if the
    clock steps back, the last issued tick is reused and the random bytes
    alone tell the values apart.
    """

    def __init__(self, clock_ns: Callable[[], int] = time.time_ns) -> None:
        """
        Args:
            clock_ns: Wall clock in nanoseconds since the epoch (injectable for tests)
        """
        self._clock_ns = clock_ns
        self._last_ticks = 0
        self._lock = threading.Lock()

    def _next_ticks(self) -> int:
        ticks = (self._clock_ns() // _NS_PER_TICK) & _TIMESTAMP_MASK
        with self._lock:
            if ticks < self._last_ticks:
                ticks = self._last_ticks
            self._last_ticks = ticks
        return ticks

    def generate(self) -> bytes:
        """Return one new uuid in its 16-byte form"""
        ticks = self._next_ticks()
        tail = bytearray(secrets.token_bytes(10))
        tail[0] = (tail[0] & 0x0F) | 0x40  # version 4
        tail[2] = (tail[2] & 0x3F) | 0x80  # RFC 4122 variant
        return ticks.to_bytes(6, "big") + bytes(tail)

    def generate_batch(self, count: int) -> list[bytes]:
        return [self.generate() for _ in range(count)]


# Global default codec
default_codec = TimestampFirstCombCodec()


def generate_uuid() -> bytes:
    """Generate a uuid with the default codec (no uniqueness check)"""
    return default_codec.generate()


def uuid_to_string(uuid_bytes: bytes) -> str:
    """
    Convert a 16-byte uuid to its canonical lowercase 8-4-4-4-12 string

    Raises:
        MalformedIdentifier: If the value is not exactly 16 bytes
    """
    if not isinstance(uuid_bytes, (bytes, bytearray, memoryview)):
        raise MalformedIdentifier(uuid_bytes, "expected bytes")
    raw = bytes(uuid_bytes)
    if len(raw) != UUID_BYTES_LENGTH:
        raise MalformedIdentifier(raw, f"expected {UUID_BYTES_LENGTH} bytes, got {len(raw)}")
    return str(uuid.UUID(bytes=raw))


def uuid_to_bytes(uuid_string: str) -> bytes:
    """
    Convert a canonical uuid string to its 16-byte form

    Raises:
        MalformedIdentifier: If the string is not in 8-4-4-4-12 hex form
    """
    if not is_valid_string_uuid(uuid_string):
        raise MalformedIdentifier(uuid_string, "expected 8-4-4-4-12 hex form")
    return uuid.UUID(uuid_string).bytes


def is_valid_string_uuid(uuid_string: Any) -> bool:
    """Non-throwing syntax check for the canonical string form"""
    return isinstance(uuid_string, str) and bool(_CANONICAL_UUID.match(uuid_string))


def is_empty_binary_uuid(value: Any) -> bool:
    """True for an unset value and for the all-zero sentinel"""
    if value is None:
        return True
    if isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
        return raw == b"" or raw == NIL_UUID_BYTES
    return value == ""


def timestamp_of(uuid_bytes: bytes) -> datetime:
    """Recover the creation time embedded in a COMB uuid"""
    if len(uuid_bytes) != UUID_BYTES_LENGTH:
        raise MalformedIdentifier(uuid_bytes, f"expected {UUID_BYTES_LENGTH} bytes")
    ticks = int.from_bytes(bytes(uuid_bytes[:6]), "big")
    return datetime.fromtimestamp(ticks / TICKS_PER_SECOND, tz=timezone.utc)
