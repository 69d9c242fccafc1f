#!/usr/bin/env python3
"""Data models for the price feed manager.

This module provides immutable data classes for prices, data sources, fee
quotes and transaction results shared by every chain variant.
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class Price:
    """A price reading as decimal-integer strings.

    Strings are used so that no precision is lost between chains with
    different native integer widths. The actual value is price * 10^expo.

    Attributes:
        price: Price mantissa
        conf: Confidence interval around the price, same exponent
        expo: Signed power-of-ten exponent
        publish_time: Unix timestamp of publication
    """

    price: str
    conf: str
    expo: str
    publish_time: str

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary for serialization."""
        return {
            "price": self.price,
            "conf": self.conf,
            "expo": self.expo,
            "publishTime": self.publish_time
        }


@dataclass(frozen=True, slots=True)
class PriceFeed:
    """Current and exponential-moving-average price for one feed."""

    price: Price
    ema_price: Price

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "price": self.price.to_dict(),
            "emaPrice": self.ema_price.to_dict()
        }


@dataclass(frozen=True, slots=True)
class DataSource:
    """A trusted origin of price update or governance messages.

    Attributes:
        emitter_chain: Wormhole chain id of the emitter
        emitter_address: 64 hex characters, zero padded, without 0x prefix
    """

    emitter_chain: int
    emitter_address: str

    def __str__(self) -> str:
        """Human-readable string representation."""
        return f"DataSource(chain={self.emitter_chain}, emitter={self.emitter_address[:10]}...)"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "emitterChain": self.emitter_chain,
            "emitterAddress": self.emitter_address
        }


@dataclass(frozen=True, slots=True)
class FeeQuote:
    """Cost of a single update.

    Attributes:
        amount: Decimal-integer amount in the token's smallest unit
        denom: Token symbol, None when paid in the chain's native token
    """

    amount: str
    denom: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        result: dict[str, Any] = {"amount": self.amount}
        if self.denom is not None:
            result["denom"] = self.denom
        return result


@dataclass(frozen=True, slots=True)
class TxResult:
    """Result of a confirmed transaction.

    Attributes:
        id: Transaction hash
        info: Chain-specific confirmation payload (receipt)
    """

    id: str
    info: Any
