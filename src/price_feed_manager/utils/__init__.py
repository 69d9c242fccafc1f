"""Chain client utilities."""

from .contract_utility import ContractUtility, StarknetProvider, resolve_contract

__all__ = ["ContractUtility", "StarknetProvider", "resolve_contract"]
