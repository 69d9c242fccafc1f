#!/usr/bin/env python3
"""Configuration management for the price feed manager.

This module provides type-safe configuration dataclasses with validation.
Configuration is loaded from environment variables with sensible defaults
where appropriate.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import ClassVar
from urllib.parse import urlparse

from .base import PriceFeedContract, contract_from_json
from .chains import Chain, EvmChain, StarknetChain
from .codec import strip_hex_prefix
from .contracts import EvmPriceFeedContract, StarknetPriceFeedContract
from .hermes import HermesClient

# Get logger for this module
logger = logging.getLogger(__name__)


def _validate_hex(value: str, name: str, max_length: int = 64) -> None:
    digits = strip_hex_prefix(value)
    if not digits or len(digits) > max_length:
        raise ValueError(
            f"Invalid {name} length. Expected 1-{max_length} hex characters, got {len(digits)}"
        )
    try:
        int(digits, 16)
    except ValueError:
        raise ValueError(f"Invalid {name} format. Must be hexadecimal") from None


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True, slots=True)
class ChainConfig:
    """Configuration for the target chain.

    Attributes:
        chain_type: Chain family ('starknet' or 'evm')
        chain_id: Stable chain identifier, e.g. 'starknet_mainnet'
        rpc_url: RPC endpoint of the chain
        mainnet: Whether the chain is a production network
        network_id: EIP-155 chain id (EVM only, optional)
    """

    chain_type: str
    chain_id: str
    rpc_url: str
    mainnet: bool = True
    network_id: int | None = None

    SUPPORTED_CHAIN_TYPES: ClassVar[dict[str, str]] = {
        "starknet": StarknetPriceFeedContract.TYPE,
        "evm": EvmPriceFeedContract.TYPE,
    }

    def __post_init__(self) -> None:
        """Validate chain configuration."""
        if self.chain_type not in self.SUPPORTED_CHAIN_TYPES:
            raise ValueError(
                f"Unsupported chain type: {self.chain_type}. "
                f"Supported chain types: {', '.join(sorted(self.SUPPORTED_CHAIN_TYPES))}"
            )

        if not self.chain_id:
            raise ValueError("Chain id is required (CHAIN_ID)")

        if not self.rpc_url:
            raise ValueError("RPC URL is required (RPC_URL)")

        parsed = urlparse(self.rpc_url)
        if parsed.scheme not in ('http', 'https', 'ws', 'wss'):
            raise ValueError(
                f"Invalid RPC URL scheme: {parsed.scheme}. "
                "Expected http, https, ws, or wss"
            )

        if self.network_id is not None and self.chain_type != "evm":
            raise ValueError("Network id (NETWORK_ID) is only valid for evm chains")

    @property
    def contract_type(self) -> str:
        return self.SUPPORTED_CHAIN_TYPES[self.chain_type]

    def to_chain(self) -> Chain:
        """Build the chain handle described by this configuration."""
        match self.chain_type:
            case "starknet":
                return StarknetChain(id=self.chain_id, mainnet=self.mainnet, rpc_url=self.rpc_url)
            case _:
                return EvmChain(
                    id=self.chain_id,
                    mainnet=self.mainnet,
                    rpc_url=self.rpc_url,
                    network_id=self.network_id
                )


@dataclass(frozen=True, slots=True)
class ContractConfig:
    """Configuration for the price feed contract.

    Attributes:
        address: Hex address of the contract
    """

    address: str

    def __post_init__(self) -> None:
        """Validate contract configuration."""
        if not self.address:
            raise ValueError("Contract address is required (CONTRACT_ADDRESS)")
        _validate_hex(self.address, "contract address")


@dataclass(frozen=True, slots=True)
class SignerConfig:
    """Credentials for submitting transactions.

    Attributes:
        private_key: Private key in hex (optional - read-only without it)
        sender_address: Sending account address, required on Starknet
    """

    private_key: str | None = None
    sender_address: str | None = None

    def __post_init__(self) -> None:
        """Validate signer configuration."""
        if self.private_key:
            _validate_hex(self.private_key, "private key")
        if self.sender_address:
            _validate_hex(self.sender_address, "sender address")
        if self.sender_address and not self.private_key:
            raise ValueError("SENDER_ADDRESS is set but PRIVATE_KEY is missing")

    @property
    def can_sign(self) -> bool:
        return bool(self.private_key)


@dataclass(frozen=True, slots=True)
class HermesConfig:
    """Configuration for the Hermes price service."""

    url: str = HermesClient.DEFAULT_URL
    request_timeout: int = 30  # HTTP request timeout in seconds

    def __post_init__(self) -> None:
        """Validate Hermes configuration."""
        if urlparse(self.url).scheme not in ('http', 'https'):
            raise ValueError(f"Invalid Hermes URL: {self.url}. Expected http or https")

        if self.request_timeout <= 0:
            raise ValueError(f"Request timeout must be positive, got {self.request_timeout}")
        if self.request_timeout > 120:
            raise ValueError(f"Request timeout too long (max 120s), got {self.request_timeout}")

    def build_client(self) -> HermesClient:
        return HermesClient(self.url, timeout=float(self.request_timeout))


@dataclass(frozen=True, slots=True)
class ManagerConfig:
    """Main configuration for the price feed manager.

    Attributes:
        chain: Target chain
        contract: Price feed contract on that chain
        signer: Transaction credentials
        hermes: Price service used to fetch update VAAs
    """

    chain: ChainConfig
    contract: ContractConfig
    signer: SignerConfig = field(default_factory=SignerConfig)
    hermes: HermesConfig = field(default_factory=HermesConfig)

    @classmethod
    def from_env(cls) -> "ManagerConfig":
        """Load configuration from environment variables.

        Returns:
            ManagerConfig instance with loaded values

        Raises:
            ValueError: If required environment variables are missing or invalid
        """
        chain_type = os.environ.get("CHAIN_TYPE", "starknet").lower()

        chain_id = os.environ.get("CHAIN_ID", "")
        if not chain_id:
            raise ValueError(
                "CHAIN_ID environment variable is required. "
                "This is the identifier of the target chain, e.g. starknet_mainnet."
            )

        rpc_url = os.environ.get("RPC_URL", "")
        if not rpc_url:
            raise ValueError(
                "RPC_URL environment variable is required. "
                "This is the RPC endpoint of the target chain."
            )

        network_id = os.environ.get("NETWORK_ID")
        chain_config = ChainConfig(
            chain_type=chain_type,
            chain_id=chain_id,
            rpc_url=rpc_url,
            mainnet=_parse_bool(os.environ.get("MAINNET", "true")),
            network_id=int(network_id) if network_id else None
        )

        contract_address = os.environ.get("CONTRACT_ADDRESS", "")
        if not contract_address:
            raise ValueError(
                "CONTRACT_ADDRESS environment variable is required. "
                "This should be the price feed contract address on the target chain."
            )
        contract_config = ContractConfig(address=contract_address)

        signer_config = SignerConfig(
            private_key=os.environ.get("PRIVATE_KEY") or None,
            sender_address=os.environ.get("SENDER_ADDRESS") or None
        )

        hermes_config = HermesConfig(
            url=os.environ.get("HERMES_URL", HermesClient.DEFAULT_URL),
            request_timeout=int(os.environ.get("REQUEST_TIMEOUT", "30"))
        )

        return cls(
            chain=chain_config,
            contract=contract_config,
            signer=signer_config,
            hermes=hermes_config
        )

    def build_contract(self) -> PriceFeedContract:
        """Build the configured price feed contract through the variant registry."""
        chain = self.chain.to_chain()
        return contract_from_json(chain, {
            "type": self.chain.contract_type,
            "chain": chain.get_id(),
            "address": self.contract.address
        })

    def log_config(self) -> None:
        """Log the configuration in a readable format for debugging."""
        logger.info("=" * 60)
        logger.info("Price Feed Manager Configuration")
        logger.info("=" * 60)

        logger.info("Chain:")
        logger.info(f"  Type: {self.chain.chain_type}")
        logger.info(f"  Id: {self.chain.chain_id}")
        logger.info(f"  RPC URL: {self.chain.rpc_url}")
        logger.info(f"  Mainnet: {self.chain.mainnet}")
        if self.chain.network_id is not None:
            logger.info(f"  Network Id: {self.chain.network_id}")

        logger.info("Contract:")
        logger.info(f"  Address: {self.contract.address}")

        logger.info("Signer:")
        logger.info(f"  Private Key: {'[CONFIGURED]' if self.signer.private_key else '[NOT SET]'}")
        logger.info(f"  Sender: {self.signer.sender_address or '[DERIVED]'}")

        logger.info("Hermes:")
        logger.info(f"  URL: {self.hermes.url}")
        logger.info(f"  Request Timeout: {self.hermes.request_timeout} seconds")

        logger.info("=" * 60)
