#!/usr/bin/env python3
"""Error types raised by price feed contracts.

Every error derives from PriceFeedContractError so callers can catch the
whole family at once. None of these errors are retried internally.
"""

import json
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .update_protocol import UpdateSubmission


class PriceFeedContractError(Exception):
    """Base class for all price feed contract errors."""


class UnsupportedOperationError(PriceFeedContractError):
    """The operation has no equivalent on this chain family."""

    def __init__(self, operation: str) -> None:
        self.operation: str = operation
        super().__init__(f"Unsupported operation: {operation}")


class TypeMismatchError(PriceFeedContractError, ValueError):
    """A config record does not match the class or chain it is loaded into."""


class AccountAddressRequiredError(PriceFeedContractError):
    """Signing on this chain family needs an explicit account address."""

    def __init__(self, alternative: str) -> None:
        self.alternative: str = alternative
        super().__init__(
            f"An account address is required on this chain, use {alternative} instead"
        )


class NoFeeTokenConfiguredError(PriceFeedContractError):
    """The contract does not list any accepted fee token."""

    def __init__(self, contract_id: str) -> None:
        self.contract_id: str = contract_id
        super().__init__(f"No fee token configured for contract {contract_id}")


class TokenResolutionFailedError(PriceFeedContractError):
    """A fee token address does not resolve to a readable token contract."""

    def __init__(self, token: str, reason: str = "") -> None:
        self.token: str = token
        message = f"Could not resolve fee token {token}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class FeedQueryFailedError(PriceFeedContractError):
    """The contract answered a price query with an explicit error.

    Attributes:
        feed_id: Feed identifier that was queried
        payload: Error payload exactly as returned by the contract
    """

    def __init__(self, feed_id: str, payload: Any) -> None:
        self.feed_id: str = feed_id
        self.payload: Any = payload
        super().__init__(
            f"Price feed query for {feed_id} failed: {json.dumps(payload, default=str)}"
        )


class TransactionFailedError(PriceFeedContractError):
    """Submitting or confirming a transaction failed.

    Attributes:
        step: Protocol step that failed ("approve", "update" or "governance")
        tx_id: Hash of the failed transaction if it was submitted
        submission: Protocol state at the time of failure, if any
    """

    def __init__(
        self,
        step: str,
        reason: str = "",
        tx_id: str | None = None,
        submission: "UpdateSubmission | None" = None
    ) -> None:
        self.step: str = step
        self.tx_id: str | None = tx_id
        self.submission: "UpdateSubmission | None" = submission
        message = f"Transaction failed at step '{step}'"
        if tx_id:
            message += f" (tx {tx_id})"
        if reason:
            message += f": {reason}"
        super().__init__(message)
