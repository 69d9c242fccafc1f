"""Price feed contract variants, one per chain family.

Importing this package registers every variant for contract_from_json.
"""

from .evm import EvmPriceFeedContract
from .starknet import StarknetPriceFeedContract

__all__ = ["EvmPriceFeedContract", "StarknetPriceFeedContract"]
