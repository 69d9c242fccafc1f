#!/usr/bin/env python3
"""Numeric and byte encoding helpers.

Converts chain-native integer representations (Starknet felts, EVM ints and
bytes32) into the canonical string forms used by the models, and encodes
verified VAA bytes into the Cairo ByteBuffer layout.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from starknet_py.cairo.felt import decode_shortstring

from .models import Price

# Prime of the Starknet field; felts above half of it encode negative values
FIELD_PRIME: int = 2**251 + 17 * 2**192 + 1

# Emitter addresses and felt addresses are rendered at 32 bytes
HEX_WIDTH: int = 64

# Cairo bytes31 chunk size used by ByteBuffer
BYTES31_SIZE: int = 31


def strip_hex_prefix(value: str) -> str:
    """Remove a leading 0x/0X from a hex string."""
    return value[2:] if value[:2].lower() == "0x" else value


def with_hex_prefix(value: str) -> str:
    """Return the hex string with exactly one 0x prefix."""
    return "0x" + strip_hex_prefix(value)


def to_fixed_hex(value: int | bytes | str, width: int = HEX_WIDTH) -> str:
    """Render an integer, bytes or hex string as zero padded hex.

    Args:
        value: Numeric address, raw bytes or hex string (prefix optional)
        width: Number of hex characters in the output

    Returns:
        Lowercase hex string of exactly ``width`` characters without 0x

    Raises:
        ValueError: If the value is negative or does not fit in ``width``
    """
    match value:
        case bool():
            raise ValueError(f"Cannot encode boolean {value} as hex")
        case int():
            if value < 0:
                raise ValueError(f"Cannot encode negative value {value} as hex")
            digits = format(value, "x")
        case bytes():
            digits = bytes(value).hex()
        case str():
            digits = strip_hex_prefix(value).lower()
            int(digits or "0", 16)
        case _:
            raise ValueError(f"Unsupported hex value type: {type(value).__name__}")

    if len(digits) > width:
        raise ValueError(f"Value 0x{digits} does not fit in {width} hex characters")
    return digits.zfill(width)


def to_signed(value: int, prime: int = FIELD_PRIME) -> int:
    """Interpret a felt as a signed integer.

    Values already in signed form (for example decoded by web3 or by a
    Cairo signed integer serializer) pass through unchanged.
    """
    value = int(value)
    if value > prime // 2:
        return value - prime
    return value


def decode_symbol(value: int | str) -> str:
    """Decode an ERC20 symbol returned either as a short string felt or a ByteArray."""
    if isinstance(value, int):
        return decode_shortstring(value)
    return str(value)


def to_tx_hash(value: int | bytes | str) -> str:
    """Render a transaction hash as a 0x-prefixed hex string."""
    match value:
        case int():
            return hex(value)
        case bytes():
            return "0x" + bytes(value).hex()
        case _:
            return with_hex_prefix(str(value))


def unwrap_variant(value: Any) -> tuple[str, Any] | None:
    """Return the (variant, payload) pair of a deserialized Cairo enum.

    starknet-py decodes enums into a TupleDataclass with ``variant`` and
    ``value`` fields. Mappings are accepted either in that same shape or
    keyed by variant name. Anything without exactly one active variant
    yields None.
    """
    if value is None:
        return None
    if hasattr(value, "variant"):
        return value.variant, getattr(value, "value", None)
    if isinstance(value, Mapping):
        if "variant" in value:
            return value["variant"], value.get("value")
        active = [(name, payload) for name, payload in value.items() if payload is not None]
        if len(value) == 1:
            return next(iter(value.items()))
        if len(active) == 1:
            return active[0]
    return None


def read_field(obj: Any, name: str) -> Any:
    """Read a struct member from a mapping or an attribute-style object."""
    if isinstance(obj, Mapping):
        return obj[name]
    return getattr(obj, name)


def convert_price(obj: Any) -> Price:
    """Convert a chain price struct into a Price record.

    Accepts a mapping or object exposing price, conf, expo and publish_time.
    """
    return Price(
        price=str(to_signed(read_field(obj, "price"))),
        conf=str(int(read_field(obj, "conf"))),
        expo=str(to_signed(read_field(obj, "expo"))),
        publish_time=str(int(read_field(obj, "publish_time")))
    )


def convert_price_tuple(values: tuple[int, int, int, int]) -> Price:
    """Convert an EVM (price, conf, expo, publishTime) tuple into a Price record."""
    price, conf, expo, publish_time = values
    return Price(
        price=str(price),
        conf=str(conf),
        expo=str(expo),
        publish_time=str(publish_time)
    )


@dataclass(frozen=True, slots=True)
class ByteBuffer:
    """Cairo ByteBuffer encoding of an arbitrary byte string.

    The payload is split into 31-byte big-endian chunks. Every chunk but the
    last is full; num_last_bytes records how many bytes the last one holds.

    Attributes:
        num_last_bytes: Length of the final chunk (0 for an empty buffer)
        data: Chunks as integers
    """

    num_last_bytes: int
    data: tuple[int, ...]

    @classmethod
    def from_bytes(cls, buffer: bytes) -> "ByteBuffer":
        """Split raw bytes into bytes31 chunks."""
        chunks = [
            buffer[pos:pos + BYTES31_SIZE]
            for pos in range(0, len(buffer), BYTES31_SIZE)
        ]
        num_last_bytes = len(chunks[-1]) if chunks else 0
        return cls(
            num_last_bytes=num_last_bytes,
            data=tuple(int.from_bytes(chunk, "big") for chunk in chunks)
        )

    def to_bytes(self) -> bytes:
        """Reassemble the original byte string."""
        if not self.data:
            return b""
        head = b"".join(chunk.to_bytes(BYTES31_SIZE, "big") for chunk in self.data[:-1])
        return head + self.data[-1].to_bytes(self.num_last_bytes, "big")

    def to_calldata(self) -> dict[str, Any]:
        """Struct form accepted by starknet-py contract calls."""
        return {
            "num_last_bytes": self.num_last_bytes,
            "data": list(self.data)
        }
