#!/usr/bin/env python3
"""Price feed contract on Starknet.

Fees are paid in ERC20 fee tokens listed by the contract, so an update is
an approval on the fee token followed by the update call. Starknet
accounts are contracts, so signing always needs the account address as
well as the key.
"""

import logging
from typing import Any

from starknet_py.contract import Contract
from starknet_py.net.account.account import Account

from ..base import PriceFeedContract, register_contract
from ..chains import StarknetChain
from ..codec import (
    ByteBuffer,
    convert_price,
    decode_symbol,
    read_field,
    to_fixed_hex,
    to_tx_hash,
    unwrap_variant,
    with_hex_prefix,
)
from ..errors import (
    AccountAddressRequiredError,
    FeedQueryFailedError,
    NoFeeTokenConfiguredError,
    TokenResolutionFailedError,
    UnsupportedOperationError,
)
from ..models import DataSource, FeeQuote, PriceFeed, TxResult
from ..update_protocol import FeeApprovedUpdate, execute_single_transaction
from ..utils.contract_utility import StarknetProvider, resolve_contract

logger = logging.getLogger(__name__)


def _to_data_source(source: Any) -> DataSource:
    return DataSource(
        emitter_chain=int(read_field(source, "emitter_chain_id")),
        emitter_address=to_fixed_hex(int(read_field(source, "emitter_address")))
    )


@register_contract
class StarknetPriceFeedContract(PriceFeedContract):
    """Price feed contract deployed on a Starknet chain."""

    TYPE = "StarknetPriceFeedContract"
    CHAIN_CLASS = StarknetChain

    __slots__ = ()

    def get_chain(self) -> StarknetChain:
        return self.chain

    async def get_contract_client(
        self,
        provider: StarknetProvider | None = None,
        account: Account | None = None
    ) -> Contract:
        """Resolve a fresh contract handle, bound to ``account`` when given."""
        provider = provider or self.chain.get_provider()
        return await resolve_contract(provider, self.address, account)

    async def _get_token_client(
        self,
        provider: StarknetProvider,
        token: str,
        account: Account | None = None
    ) -> Contract:
        try:
            return await resolve_contract(provider, token, account)
        except Exception as e:
            logger.error(f"Fee token {token} could not be resolved: {e}")
            raise TokenResolutionFailedError(token, str(e)) from e

    # Not implemented in the Starknet contract.
    async def get_valid_time_period(self) -> int:
        raise UnsupportedOperationError("get_valid_time_period")

    async def get_data_sources(self) -> list[DataSource]:
        contract = await self.get_contract_client()
        (sources,) = await contract.functions["valid_data_sources"].call()
        return [_to_data_source(source) for source in sources]

    async def get_governance_data_source(self) -> DataSource:
        contract = await self.get_contract_client()
        (source,) = await contract.functions["governance_data_source"].call()
        return _to_data_source(source)

    async def _read_fee_tokens(self, contract: Contract) -> list[str]:
        (tokens,) = await contract.functions["fee_token_addresses"].call()
        return [to_fixed_hex(int(token)) for token in tokens]

    async def get_fee_token_addresses(self) -> list[str]:
        """Returns the list of accepted fee tokens.

        Returns:
            Hex encoded token addresses, 64 characters, without 0x prefix
        """
        contract = await self.get_contract_client()
        return await self._read_fee_tokens(contract)

    async def get_base_update_fee_in_token(self, token: str) -> FeeQuote:
        """Returns the single update fee and symbol of the specified token.

        Args:
            token: Hex encoded token address, 0x prefix optional

        Raises:
            TokenResolutionFailedError: If the token has no readable symbol
                or the contract does not accept it
        """
        token = with_hex_prefix(token)
        provider = self.chain.get_provider()

        token_contract = await self._get_token_client(provider, token)
        try:
            (symbol,) = await token_contract.functions["symbol"].call()
            denom = decode_symbol(symbol)
        except Exception as e:
            logger.error(f"Could not read symbol of fee token {token}: {e}")
            raise TokenResolutionFailedError(token, str(e)) from e

        contract = await self.get_contract_client(provider)
        try:
            (fee,) = await contract.functions["get_single_update_fee"].call(int(token, 16))
        except Exception as e:
            logger.error(f"Fee token {token} is not accepted by {self.get_id()}: {e}")
            raise TokenResolutionFailedError(token, str(e)) from e

        return FeeQuote(amount=str(int(fee)), denom=denom)

    async def get_last_executed_governance_sequence(self) -> int:
        contract = await self.get_contract_client()
        (sequence,) = await contract.functions["last_executed_governance_sequence"].call()
        return int(sequence)

    async def get_price_feed(self, feed_id: str) -> PriceFeed | None:
        """Read the current and EMA price of a feed.

        Returns:
            The feed, or None when the contract returns no result at all

        Raises:
            FeedQueryFailedError: If the contract answers with an Err payload
        """
        contract = await self.get_contract_client()
        (result,) = await contract.functions["query_price_feed_unsafe"].call(
            int(with_hex_prefix(feed_id), 16)
        )
        logger.debug(f"query_price_feed_unsafe({feed_id}) returned {result}")

        match unwrap_variant(result):
            case ("Ok", feed):
                return PriceFeed(
                    price=convert_price(read_field(feed, "price")),
                    ema_price=convert_price(read_field(feed, "ema_price"))
                )
            case ("Err", error):
                raise FeedQueryFailedError(feed_id, error)
            case _:
                return None

    async def execute_update_price_feed(self, private_key: str, vaas: list[bytes]) -> TxResult:
        # We need the account address to send transactions.
        raise AccountAddressRequiredError("execute_update_price_feed_with_address")

    async def execute_update_price_feed_with_address(
        self,
        private_key: str,
        sender_address: str,
        vaa: bytes
    ) -> TxResult:
        """Executes the update instructions contained in the VAA using the sender credentials.

        Approves the fee in the default fee token, then submits the update.

        Args:
            private_key: Private key of the sender in hex format
            sender_address: Address of the sender's account in hex format
            vaa: VAA containing price update messages to execute

        Raises:
            NoFeeTokenConfiguredError: If the contract lists no fee token
            TransactionFailedError: Tagged "approve" or "update"
        """
        provider = self.chain.get_provider()
        account = provider.get_account(sender_address, private_key)
        contract = await self.get_contract_client(provider, account)

        tokens = await self._read_fee_tokens(contract)
        if not tokens:
            raise NoFeeTokenConfiguredError(self.get_id())
        fee_token = with_hex_prefix(tokens[0])
        token_contract = await self._get_token_client(provider, fee_token, account)

        update_data = ByteBuffer.from_bytes(vaa).to_calldata()
        (fee_amount,) = await contract.functions["get_update_fee"].call(
            update_data, int(fee_token, 16)
        )
        logger.info(f"Update fee for {self.get_id()}: {fee_amount} of token {fee_token}")

        async def approve_fee() -> str:
            invoke = await token_contract.functions["approve"].invoke_v3(
                int(with_hex_prefix(self.address), 16), fee_amount, auto_estimate=True
            )
            return to_tx_hash(invoke.hash)

        async def submit_update() -> str:
            invoke = await contract.functions["update_price_feeds"].invoke_v3(
                update_data, auto_estimate=True
            )
            return to_tx_hash(invoke.hash)

        protocol = FeeApprovedUpdate(provider.wait_for_transaction)
        return await protocol.execute(submit_update, approve_fee=approve_fee)

    async def execute_governance_instruction(self, private_key: str, vaa: bytes) -> TxResult:
        # We need the account address to send transactions.
        raise AccountAddressRequiredError("execute_governance_instruction_with_address")

    async def execute_governance_instruction_with_address(
        self,
        private_key: str,
        sender_address: str,
        vaa: bytes
    ) -> TxResult:
        """Executes the governance instruction contained in the VAA using the sender credentials.

        Args:
            private_key: Private key of the sender in hex format
            sender_address: Address of the sender's account in hex format
            vaa: The VAA to execute
        """
        provider = self.chain.get_provider()
        account = provider.get_account(sender_address, private_key)
        contract = await self.get_contract_client(provider, account)
        instruction = ByteBuffer.from_bytes(vaa).to_calldata()

        async def submit() -> str:
            invoke = await contract.functions["execute_governance_instruction"].invoke_v3(
                instruction, auto_estimate=True
            )
            return to_tx_hash(invoke.hash)

        return await execute_single_transaction(submit, provider.wait_for_transaction)
