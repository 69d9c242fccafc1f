import json
import logging
from pathlib import Path
from typing import Any

from eth_account import Account as EthAccount
from eth_account.signers.local import LocalAccount
from starknet_py.contract import Contract
from starknet_py.net.account.account import Account
from starknet_py.net.full_node_client import FullNodeClient
from starknet_py.net.models import StarknetChainId
from starknet_py.net.signer.stark_curve_signer import KeyPair
from web3 import AsyncWeb3, Web3
from web3.contract import AsyncContract
from web3.middleware import SignAndSendRawMiddlewareBuilder

from ..codec import strip_hex_prefix, with_hex_prefix

logger = logging.getLogger(__name__)


class ContractUtility:
    """
    Utility for EVM contract interaction and ABI loading.

    Can be used in two modes:
    1. Full mode: Initialize with RPC URL and secret for signing transactions
    2. Read-only mode: Initialize with RPC URL only for contract calls
    """

    def __init__(self, rpc_url: str, secret: str = "") -> None:
        """
        Initialize the ContractUtility.

        Args:
            rpc_url: RPC URL for the network (required)
            secret: Private key for signing transactions (optional - if not provided, read-only mode)
        """
        if not rpc_url:
            raise ValueError("RPC URL is required")

        self.rpc_url = rpc_url
        self.account: LocalAccount | None = None

        self.w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(self.rpc_url))

        if secret:
            self._add_signing_middleware(secret)

    def _add_signing_middleware(self, secret: str) -> None:
        """
        Add signing middleware to the existing AsyncWeb3 instance.

        Args:
            secret: Private key for signing transactions
        """
        if not secret:
            raise ValueError("Private key is required for signing transactions")

        account: LocalAccount = EthAccount.from_key(with_hex_prefix(secret))
        self.w3.middleware_onion.add(SignAndSendRawMiddlewareBuilder.build(account))
        self.w3.eth.default_account = account.address
        self.account = account

    def get_contract_abi(self, contract_name: str) -> list[dict[str, Any]]:
        """Fetches ABI of the given contract from the bundled abis folder.

        Args:
            contract_name: Name of the contract (without .json extension)

        Returns:
            List of ABI dictionaries for the contract

        Raises:
            FileNotFoundError: If the contract file doesn't exist
            json.JSONDecodeError: If the contract file is invalid JSON
        """
        contract_path: Path = (
            Path(__file__).parent.parent
            / "abis"
            / f"{contract_name}.json"
        ).resolve()

        with contract_path.open() as file:
            contract_data: dict[str, Any] = json.load(file)

        return contract_data["abi"]

    def get_contract(self, address: str, contract_name: str) -> AsyncContract:
        """Build a contract handle bound to this utility's web3 instance."""
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(address),
            abi=self.get_contract_abi(contract_name)
        )


class StarknetProvider:
    """Per-chain handle over a Starknet JSON-RPC node.

    Exposes the three capabilities contracts need: class lookup by address,
    confirmation waiting and account binding for signing.
    """

    def __init__(self, rpc_url: str, mainnet: bool = True) -> None:
        """
        Initialize the StarknetProvider.

        Args:
            rpc_url: Starknet JSON-RPC endpoint (required)
            mainnet: Selects the chain id used when signing
        """
        if not rpc_url:
            raise ValueError("RPC URL is required")

        self.rpc_url: str = rpc_url
        self.mainnet: bool = mainnet
        self.client: FullNodeClient = FullNodeClient(node_url=rpc_url)

    async def get_class_at(self, address: str) -> list[dict[str, Any]]:
        """Fetch the ABI of the class deployed at an address.

        Sierra classes carry their ABI as a JSON string, legacy classes as a list.
        """
        contract_class = await self.client.get_class_at(
            contract_address=with_hex_prefix(address)
        )
        abi = contract_class.abi
        if isinstance(abi, str):
            abi = json.loads(abi)
        return abi

    async def wait_for_transaction(self, tx_hash: int | str) -> Any:
        """Wait until a transaction is accepted and return its receipt."""
        return await self.client.wait_for_tx(tx_hash)

    def get_account(self, address: str, private_key: str) -> Account:
        """Bind a signing account to this provider's client.

        Args:
            address: Account contract address, 0x prefix optional
            private_key: Stark private key in hex, 0x prefix optional
        """
        key_pair = KeyPair.from_private_key(int(strip_hex_prefix(private_key), 16))
        return Account(
            address=with_hex_prefix(address),
            client=self.client,
            key_pair=key_pair,
            chain=StarknetChainId.MAINNET if self.mainnet else StarknetChainId.SEPOLIA
        )


async def resolve_contract(
    provider: StarknetProvider,
    address: str,
    account: Account | None = None
) -> Contract:
    """Fetch the live ABI at an address and wrap it in a contract handle.

    A fresh handle is built on every call so that an upgraded class at the
    same address is always picked up.

    Args:
        provider: Provider used for class lookup
        address: Contract address, 0x prefix optional
        account: Signing account; the handle is read-only when omitted

    Returns:
        Contract bound to the account or to the provider's client
    """
    abi = await provider.get_class_at(address)
    logger.debug(f"Resolved class at {with_hex_prefix(address)} ({len(abi)} ABI entries)")
    return Contract(
        address=with_hex_prefix(address),
        abi=abi,
        provider=account if account is not None else provider.client,
        cairo_version=1
    )
