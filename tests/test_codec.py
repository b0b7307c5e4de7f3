"""
Tests for the identifier codec

Covers the timestamp-first layout, conversion between the binary and string
forms, and the "empty" sentinel checks.

Fun fact: 48 bits of 10-microsecond ticks run out in the year 2059, which is
a problem for whoever maintains this then.
"""

from datetime import datetime, timezone

import pytest

from uuid_registry.codec import (
    NIL_UUID_BYTES,
    TimestampFirstCombCodec,
    generate_uuid,
    is_empty_binary_uuid,
    is_valid_string_uuid,
    timestamp_of,
    uuid_to_bytes,
    uuid_to_string,
)
from uuid_registry.kernel.errors import MalformedIdentifier


def clock_from(values: list[int]):
    """Clock that returns the given nanosecond readings in order"""
    readings = iter(values)
    return lambda: next(readings)


class TestGeneration:
    def test_generates_sixteen_bytes(self) -> None:
        assert len(generate_uuid()) == 16

    def test_version_and_variant_bits(self) -> None:
        value = generate_uuid()
        assert value[6] >> 4 == 4
        assert value[8] & 0xC0 == 0x80

    def test_values_are_distinct(self) -> None:
        codec = TimestampFirstCombCodec()
        batch = codec.generate_batch(500)
        assert len(set(batch)) == 500

    def test_values_sort_by_creation_time(self) -> None:
        """Later clock readings give byte-wise larger uuids"""
        second = 1_000_000_000
        codec = TimestampFirstCombCodec(
            clock_ns=clock_from([1_700_000_000 * second + i * second for i in range(5)])
        )
        values = [codec.generate() for _ in range(5)]
        assert values == sorted(values)

    def test_clock_stepping_back_keeps_prefix_monotonic(self) -> None:
        second = 1_000_000_000
        codec = TimestampFirstCombCodec(
            clock_ns=clock_from([1_700_000_010 * second, 1_700_000_000 * second])
        )
        first = codec.generate()
        second_value = codec.generate()
        assert second_value[:6] == first[:6]

    def test_timestamp_is_recoverable(self) -> None:
        codec = TimestampFirstCombCodec(clock_ns=lambda: 1_700_000_000 * 1_000_000_000)
        value = codec.generate()
        assert timestamp_of(value) == datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)


class TestConversion:
    def test_round_trip(self) -> None:
        value = generate_uuid()
        assert uuid_to_bytes(uuid_to_string(value)) == value

    def test_string_form_is_canonical_lowercase(self) -> None:
        value = bytes(range(16))
        assert uuid_to_string(value) == "00010203-0405-0607-0809-0a0b0c0d0e0f"

    def test_uppercase_string_accepted(self) -> None:
        assert uuid_to_bytes("00010203-0405-0607-0809-0A0B0C0D0E0F") == bytes(range(16))

    @pytest.mark.parametrize("value", [b"", b"\x01" * 15, b"\x01" * 17])
    def test_to_string_rejects_wrong_length(self, value: bytes) -> None:
        with pytest.raises(MalformedIdentifier):
            uuid_to_string(value)

    def test_to_string_rejects_text(self) -> None:
        with pytest.raises(MalformedIdentifier):
            uuid_to_string("00010203-0405-0607-0809-0a0b0c0d0e0f")  # type: ignore[arg-type]

    @pytest.mark.parametrize(
        "value",
        [
            "not-a-uuid",
            "000102030405060708090a0b0c0d0e0f",
            "{00010203-0405-0607-0809-0a0b0c0d0e0f}",
            "00010203-0405-0607-0809-0a0b0c0d0e0g",
            "",
        ],
    )
    def test_to_bytes_rejects_non_canonical(self, value: str) -> None:
        with pytest.raises(MalformedIdentifier):
            uuid_to_bytes(value)

    def test_malformed_is_a_value_error(self) -> None:
        with pytest.raises(ValueError):
            uuid_to_bytes("nope")


class TestPredicates:
    def test_is_valid_string_uuid(self) -> None:
        assert is_valid_string_uuid(uuid_to_string(generate_uuid()))
        assert not is_valid_string_uuid("nope")
        assert not is_valid_string_uuid(None)
        assert not is_valid_string_uuid(b"\x00" * 16)

    @pytest.mark.parametrize("value", [None, b"", "", NIL_UUID_BYTES, bytearray(16)])
    def test_empty_values(self, value: object) -> None:
        assert is_empty_binary_uuid(value)

    def test_generated_value_is_not_empty(self) -> None:
        assert not is_empty_binary_uuid(generate_uuid())
