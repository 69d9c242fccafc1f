#!/usr/bin/env python3
"""Chain-agnostic price feed contract interface.

Every chain family implements PriceFeedContract. Variants register under a
type tag so that config records ``{"type", "chain", "address"}`` can be
turned back into the right class with contract_from_json.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar, TypeVar

from .chains import Chain
from .errors import NoFeeTokenConfiguredError, TypeMismatchError
from .models import DataSource, FeeQuote, PriceFeed, TxResult

logger = logging.getLogger(__name__)

CONTRACT_TYPES: dict[str, type["PriceFeedContract"]] = {}

ContractT = TypeVar("ContractT", bound=type["PriceFeedContract"])


def register_contract(cls: ContractT) -> ContractT:
    """Class decorator adding a contract variant to the registry under its TYPE tag."""
    if cls.TYPE in CONTRACT_TYPES:
        raise ValueError(f"Contract type {cls.TYPE} is already registered")
    CONTRACT_TYPES[cls.TYPE] = cls
    return cls


class PriceFeedContract(ABC):
    """A price feed contract deployed at one address on one chain.

    Instances are immutable; a new instance is built if the chain or the
    address changes. Operations that need the network are coroutines and
    each resolves its own contract client.
    """

    TYPE: ClassVar[str]
    CHAIN_CLASS: ClassVar[type[Chain]]

    __slots__ = ("_chain", "_address")

    def __init__(self, chain: Chain, address: str) -> None:
        if not isinstance(chain, self.CHAIN_CLASS):
            raise TypeMismatchError(f"Wrong chain type {chain} for {type(self).__name__}")
        if not address:
            raise ValueError("Contract address is required")
        object.__setattr__(self, "_chain", chain)
        object.__setattr__(self, "_address", address)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.get_id()})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PriceFeedContract):
            return NotImplemented
        return self.get_type() == other.get_type() and self.get_id() == other.get_id()

    def __hash__(self) -> int:
        return hash((self.get_type(), self.get_id()))

    @property
    def chain(self) -> Chain:
        return self._chain

    @property
    def address(self) -> str:
        return self._address

    def get_chain(self) -> Chain:
        return self._chain

    def get_id(self) -> str:
        return f"{self._chain.get_id()}_{self._address}"

    def get_type(self) -> str:
        return self.TYPE

    def to_json(self) -> dict[str, Any]:
        """Serialize to a config record."""
        return {
            "chain": self._chain.get_id(),
            "address": self._address,
            "type": self.TYPE
        }

    @classmethod
    def from_json(cls, chain: Chain, parsed: dict[str, Any]) -> "PriceFeedContract":
        """Load from a config record.

        Args:
            chain: Chain handle the record's ``chain`` id resolves to
            parsed: Record with ``type`` and ``address`` keys

        Raises:
            TypeMismatchError: If the type tag or the chain class does not match
        """
        if parsed.get("type") != cls.TYPE:
            raise TypeMismatchError(
                f"Invalid type {parsed.get('type')!r} for {cls.__name__}, expected {cls.TYPE!r}"
            )
        if not isinstance(chain, cls.CHAIN_CLASS):
            raise TypeMismatchError(f"Wrong chain type {chain} for {cls.__name__}")
        if "chain" in parsed and parsed["chain"] != chain.get_id():
            raise TypeMismatchError(
                f"Record is for chain {parsed['chain']!r} but was given {chain.get_id()!r}"
            )
        if not (address := parsed.get("address")):
            raise ValueError(f"{cls.TYPE} config is missing required field 'address'")
        return cls(chain, address)

    @abstractmethod
    async def get_valid_time_period(self) -> int:
        """Maximum accepted price staleness in seconds."""

    @abstractmethod
    async def get_data_sources(self) -> list[DataSource]:
        """Trusted origins of price update messages."""

    @abstractmethod
    async def get_fee_token_addresses(self) -> list[str]:
        """Accepted fee tokens in the contract's order; index 0 is the default."""

    async def get_base_update_fee(self) -> FeeQuote:
        """Fee for a single update in the default fee token.

        Raises:
            NoFeeTokenConfiguredError: If the contract accepts no fee token
        """
        tokens = await self.get_fee_token_addresses()
        if not tokens:
            raise NoFeeTokenConfiguredError(self.get_id())
        return await self.get_base_update_fee_in_token(tokens[0])

    @abstractmethod
    async def get_base_update_fee_in_token(self, token: str) -> FeeQuote:
        """Fee for a single update in the given token, with the token's symbol."""

    @abstractmethod
    async def get_price_feed(self, feed_id: str) -> PriceFeed | None:
        """Current and EMA price of a feed, or None if the feed does not exist."""

    @abstractmethod
    async def get_last_executed_governance_sequence(self) -> int:
        """Sequence number of the last applied governance instruction."""

    @abstractmethod
    async def get_governance_data_source(self) -> DataSource:
        """The single trusted origin of governance instructions."""

    @abstractmethod
    async def execute_update_price_feed(self, private_key: str, vaas: list[bytes]) -> TxResult:
        """Submit price updates, deriving the sender from the key."""

    @abstractmethod
    async def execute_update_price_feed_with_address(
        self,
        private_key: str,
        sender_address: str,
        vaa: bytes
    ) -> TxResult:
        """Submit a price update from an explicit sender account."""

    @abstractmethod
    async def execute_governance_instruction(self, private_key: str, vaa: bytes) -> TxResult:
        """Execute a governance instruction, deriving the sender from the key."""

    @abstractmethod
    async def execute_governance_instruction_with_address(
        self,
        private_key: str,
        sender_address: str,
        vaa: bytes
    ) -> TxResult:
        """Execute a governance instruction from an explicit sender account."""


def contract_from_json(chain: Chain, parsed: dict[str, Any]) -> PriceFeedContract:
    """Load any registered contract variant from its config record.

    Raises:
        TypeMismatchError: If the type tag is unknown or does not fit the chain
    """
    contract_type = parsed.get("type")
    if (contract_cls := CONTRACT_TYPES.get(contract_type)) is None:
        raise TypeMismatchError(f"Unknown contract type: {contract_type!r}")
    return contract_cls.from_json(chain, parsed)


def contracts_from_json(
    chains: dict[str, Chain],
    records: list[dict[str, Any]]
) -> dict[str, PriceFeedContract]:
    """Load a batch of contract records against known chains, keyed by contract id.

    Raises:
        ValueError: If a record references an unknown chain id
    """
    contracts: dict[str, PriceFeedContract] = {}
    for record in records:
        chain_id = record.get("chain")
        if (chain := chains.get(chain_id)) is None:
            raise ValueError(f"Contract record references unknown chain {chain_id!r}")
        contract = contract_from_json(chain, record)
        contracts[contract.get_id()] = contract
    logger.debug(f"Loaded {len(contracts)} price feed contracts")
    return contracts
