#!/usr/bin/env python3
"""Chain handles for price feed deployments.

A chain handle carries the identity and RPC endpoint of one deployment
target and hands out fresh provider clients on request. Handles are
immutable and are loaded from config records of the form
``{"type": ..., "id": ..., "mainnet": ..., "rpcUrl": ...}``.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, TypeVar

from .errors import TypeMismatchError
from .utils.contract_utility import ContractUtility, StarknetProvider

logger = logging.getLogger(__name__)

CHAIN_TYPES: dict[str, type["Chain"]] = {}

ChainT = TypeVar("ChainT", bound=type["Chain"])


def register_chain(cls: ChainT) -> ChainT:
    """Class decorator adding a chain variant to the registry under its TYPE tag."""
    if cls.TYPE in CHAIN_TYPES:
        raise ValueError(f"Chain type {cls.TYPE} is already registered")
    CHAIN_TYPES[cls.TYPE] = cls
    return cls


def _require(parsed: dict[str, Any], key: str, kind: str) -> Any:
    if key not in parsed:
        raise ValueError(f"{kind} config is missing required field '{key}'")
    return parsed[key]


class Chain(ABC):
    """A deployment target identified by a stable chain id."""

    TYPE: ClassVar[str]

    id: str
    mainnet: bool

    def get_id(self) -> str:
        return self.id

    def is_mainnet(self) -> bool:
        return self.mainnet

    def __str__(self) -> str:
        return f"{self.TYPE}({self.id})"

    @classmethod
    def _check_type(cls, parsed: dict[str, Any]) -> None:
        if parsed.get("type") != cls.TYPE:
            raise TypeMismatchError(
                f"Invalid type {parsed.get('type')!r} for {cls.__name__}, expected {cls.TYPE!r}"
            )

    @abstractmethod
    def to_json(self) -> dict[str, Any]:
        """Serialize to a config record."""

    @classmethod
    @abstractmethod
    def from_json(cls, parsed: dict[str, Any]) -> "Chain":
        """Load from a config record."""


@register_chain
@dataclass(frozen=True, slots=True)
class StarknetChain(Chain):
    """A Starknet network reachable over JSON-RPC.

    Attributes:
        id: Chain id, e.g. 'starknet_mainnet'
        mainnet: Whether this is a production network
        rpc_url: Starknet JSON-RPC endpoint
    """

    TYPE: ClassVar[str] = "StarknetChain"

    id: str
    mainnet: bool
    rpc_url: str

    def get_provider(self) -> StarknetProvider:
        """Create a provider for this chain."""
        return StarknetProvider(self.rpc_url, mainnet=self.mainnet)

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "mainnet": self.mainnet,
            "rpcUrl": self.rpc_url,
            "type": self.TYPE
        }

    @classmethod
    def from_json(cls, parsed: dict[str, Any]) -> "StarknetChain":
        cls._check_type(parsed)
        return cls(
            id=_require(parsed, "id", cls.TYPE),
            mainnet=bool(_require(parsed, "mainnet", cls.TYPE)),
            rpc_url=_require(parsed, "rpcUrl", cls.TYPE)
        )


@register_chain
@dataclass(frozen=True, slots=True)
class EvmChain(Chain):
    """An EVM network reachable over JSON-RPC.

    Attributes:
        id: Chain id, e.g. 'ethereum'
        mainnet: Whether this is a production network
        rpc_url: HTTP(S) RPC endpoint
        network_id: EIP-155 chain id, if known
    """

    TYPE: ClassVar[str] = "EvmChain"

    id: str
    mainnet: bool
    rpc_url: str
    network_id: int | None = None

    def get_contract_utility(self, secret: str = "") -> ContractUtility:
        """Create a web3 utility, signing with ``secret`` when given."""
        return ContractUtility(self.rpc_url, secret)

    def to_json(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "mainnet": self.mainnet,
            "rpcUrl": self.rpc_url,
            "type": self.TYPE
        }
        if self.network_id is not None:
            result["networkId"] = self.network_id
        return result

    @classmethod
    def from_json(cls, parsed: dict[str, Any]) -> "EvmChain":
        cls._check_type(parsed)
        network_id = parsed.get("networkId")
        return cls(
            id=_require(parsed, "id", cls.TYPE),
            mainnet=bool(_require(parsed, "mainnet", cls.TYPE)),
            rpc_url=_require(parsed, "rpcUrl", cls.TYPE),
            network_id=int(network_id) if network_id is not None else None
        )


def chain_from_json(parsed: dict[str, Any]) -> Chain:
    """Load any registered chain variant from its config record.

    Raises:
        TypeMismatchError: If the type tag is not registered
    """
    chain_type = parsed.get("type")
    if (chain_cls := CHAIN_TYPES.get(chain_type)) is None:
        raise TypeMismatchError(f"Unknown chain type: {chain_type!r}")
    return chain_cls.from_json(parsed)
