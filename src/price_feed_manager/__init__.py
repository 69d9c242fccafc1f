"""
Price feed manager package.

Chain-agnostic price feed contract clients and the transaction protocols
for submitting price updates and governance instructions.
"""

from .base import PriceFeedContract, contract_from_json, contracts_from_json
from .chains import Chain, EvmChain, StarknetChain, chain_from_json
from .contracts import EvmPriceFeedContract, StarknetPriceFeedContract
from .errors import (
    AccountAddressRequiredError,
    FeedQueryFailedError,
    NoFeeTokenConfiguredError,
    PriceFeedContractError,
    TokenResolutionFailedError,
    TransactionFailedError,
    TypeMismatchError,
    UnsupportedOperationError,
)
from .models import DataSource, FeeQuote, Price, PriceFeed, TxResult
from .update_protocol import UpdateState, UpdateSubmission

__all__ = [
    "AccountAddressRequiredError",
    "Chain",
    "DataSource",
    "EvmChain",
    "EvmPriceFeedContract",
    "FeeQuote",
    "FeedQueryFailedError",
    "NoFeeTokenConfiguredError",
    "Price",
    "PriceFeed",
    "PriceFeedContract",
    "PriceFeedContractError",
    "StarknetChain",
    "StarknetPriceFeedContract",
    "TokenResolutionFailedError",
    "TransactionFailedError",
    "TxResult",
    "TypeMismatchError",
    "UnsupportedOperationError",
    "UpdateState",
    "UpdateSubmission",
    "chain_from_json",
    "contract_from_json",
    "contracts_from_json",
]
__version__ = "0.1.0"
