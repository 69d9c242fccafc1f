#!/usr/bin/env python3
"""Price feed contract on EVM chains.

The update fee is paid in the chain's native token as the value of the
update transaction, so there is no approval step and no fee token list.
The sender is derived from the private key.
"""

import logging
from typing import Any

from eth_account import Account as EthAccount
from web3 import Web3
from web3.contract import AsyncContract
from web3.exceptions import ContractLogicError

from ..base import PriceFeedContract, register_contract
from ..chains import EvmChain
from ..codec import convert_price_tuple, to_fixed_hex, to_tx_hash, with_hex_prefix
from ..errors import FeedQueryFailedError, UnsupportedOperationError
from ..models import DataSource, FeeQuote, PriceFeed, TxResult
from ..update_protocol import FeeApprovedUpdate, execute_single_transaction
from ..utils.contract_utility import ContractUtility

logger = logging.getLogger(__name__)

ABI_NAME = "PythUpgradable"

# Selector of the PriceFeedNotFound() custom error
PRICE_FEED_NOT_FOUND_SELECTOR = "0x14aebe68"


def _to_data_source(source: tuple[int, bytes]) -> DataSource:
    chain_id, emitter_address = source
    return DataSource(emitter_chain=int(chain_id), emitter_address=to_fixed_hex(emitter_address))


def _wait_with(utility: ContractUtility):
    async def wait_for_transaction(tx_hash: str) -> Any:
        receipt = await utility.w3.eth.wait_for_transaction_receipt(tx_hash)
        if (status := receipt.get("status", 0)) != 1:
            raise RuntimeError(f"Transaction {tx_hash} reverted with status={status}")
        logger.debug(f"Transaction {tx_hash} confirmed in block {receipt.get('blockNumber')}")
        return receipt

    return wait_for_transaction


@register_contract
class EvmPriceFeedContract(PriceFeedContract):
    """Price feed contract deployed on an EVM chain."""

    TYPE = "EvmPriceFeedContract"
    CHAIN_CLASS = EvmChain

    __slots__ = ()

    def get_chain(self) -> EvmChain:
        return self.chain

    def get_contract_client(self, utility: ContractUtility | None = None) -> AsyncContract:
        """Build a fresh contract handle, signing through ``utility`` when given."""
        utility = utility or self.chain.get_contract_utility()
        return utility.get_contract(self.address, ABI_NAME)

    async def get_valid_time_period(self) -> int:
        contract = self.get_contract_client()
        return int(await contract.functions.getValidTimePeriod().call())

    async def get_data_sources(self) -> list[DataSource]:
        contract = self.get_contract_client()
        sources = await contract.functions.validDataSources().call()
        return [_to_data_source(source) for source in sources]

    async def get_governance_data_source(self) -> DataSource:
        contract = self.get_contract_client()
        return _to_data_source(await contract.functions.governanceDataSource().call())

    # Fees are paid in the native token.
    async def get_fee_token_addresses(self) -> list[str]:
        raise UnsupportedOperationError("get_fee_token_addresses")

    async def get_base_update_fee_in_token(self, token: str) -> FeeQuote:
        raise UnsupportedOperationError("get_base_update_fee_in_token")

    async def get_base_update_fee(self) -> FeeQuote:
        """Single update fee in wei of the native token."""
        contract = self.get_contract_client()
        fee = await contract.functions.singleUpdateFeeInWei().call()
        return FeeQuote(amount=str(fee))

    async def get_last_executed_governance_sequence(self) -> int:
        contract = self.get_contract_client()
        return int(await contract.functions.lastExecutedGovernanceSequence().call())

    async def get_price_feed(self, feed_id: str) -> PriceFeed | None:
        """Read the current and EMA price of a feed.

        Returns:
            The feed, or None when the contract reverts with PriceFeedNotFound

        Raises:
            FeedQueryFailedError: On any other contract revert
        """
        contract = self.get_contract_client()
        feed = Web3.to_bytes(hexstr=with_hex_prefix(feed_id))
        try:
            price = await contract.functions.getPriceUnsafe(feed).call()
            ema_price = await contract.functions.getEmaPriceUnsafe(feed).call()
        except ContractLogicError as e:
            if PRICE_FEED_NOT_FOUND_SELECTOR in str(e.data or e):
                logger.debug(f"Price feed {feed_id} not found on {self.get_id()}")
                return None
            raise FeedQueryFailedError(feed_id, e.data if e.data is not None else str(e)) from e

        logger.debug(f"getPriceUnsafe({feed_id}) returned {price}, ema {ema_price}")
        return PriceFeed(
            price=convert_price_tuple(price),
            ema_price=convert_price_tuple(ema_price)
        )

    async def execute_update_price_feed(self, private_key: str, vaas: list[bytes]) -> TxResult:
        """Submit price updates, paying the fee as transaction value.

        Raises:
            TransactionFailedError: Tagged "update"
        """
        utility = self.chain.get_contract_utility(private_key)
        contract = self.get_contract_client(utility)
        fee = await contract.functions.getUpdateFee(vaas).call()
        logger.info(f"Update fee for {self.get_id()}: {fee} wei for {len(vaas)} VAAs")

        async def submit_update() -> str:
            tx_hash = await contract.functions.updatePriceFeeds(vaas).transact({"value": fee})
            return to_tx_hash(tx_hash)

        protocol = FeeApprovedUpdate(_wait_with(utility))
        return await protocol.execute(submit_update)

    async def execute_update_price_feed_with_address(
        self,
        private_key: str,
        sender_address: str,
        vaa: bytes
    ) -> TxResult:
        self._check_sender(private_key, sender_address)
        return await self.execute_update_price_feed(private_key, [vaa])

    async def execute_governance_instruction(self, private_key: str, vaa: bytes) -> TxResult:
        utility = self.chain.get_contract_utility(private_key)
        contract = self.get_contract_client(utility)

        async def submit() -> str:
            tx_hash = await contract.functions.executeGovernanceInstruction(vaa).transact()
            return to_tx_hash(tx_hash)

        return await execute_single_transaction(submit, _wait_with(utility))

    async def execute_governance_instruction_with_address(
        self,
        private_key: str,
        sender_address: str,
        vaa: bytes
    ) -> TxResult:
        self._check_sender(private_key, sender_address)
        return await self.execute_governance_instruction(private_key, vaa)

    @staticmethod
    def _check_sender(private_key: str, sender_address: str) -> None:
        derived = EthAccount.from_key(with_hex_prefix(private_key)).address
        if derived != Web3.to_checksum_address(with_hex_prefix(sender_address)):
            raise ValueError(
                f"Sender address {sender_address} does not belong to the given private key"
            )
