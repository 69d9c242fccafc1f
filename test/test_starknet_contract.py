#!/usr/bin/env python3
"""Unit tests for StarknetPriceFeedContract."""

from collections import defaultdict
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from starknet_py.net.full_node_client import FullNodeClient

from price_feed_manager.chains import EvmChain, StarknetChain
from price_feed_manager.codec import FIELD_PRIME, to_fixed_hex
from price_feed_manager.contracts.starknet import StarknetPriceFeedContract
from price_feed_manager.errors import (
    AccountAddressRequiredError,
    FeedQueryFailedError,
    NoFeeTokenConfiguredError,
    TokenResolutionFailedError,
    TransactionFailedError,
    TypeMismatchError,
    UnsupportedOperationError,
)
from price_feed_manager.models import DataSource, FeeQuote
from price_feed_manager.update_protocol import UpdateState
from price_feed_manager.utils.contract_utility import StarknetProvider

CONTRACT_ADDRESS = "0x062ab68d8e23a7aa0d5bf4d25380c2d54f2dd8f83012e047851c3706b53d64d1"
FEE_TOKEN = 0xABC
FEE_TOKEN_ADDRESS = "0x" + to_fixed_hex(FEE_TOKEN)
SENDER_KEY = "0123456789abcdef"
SENDER_ADDRESS = "0456"

# Signed price fields are declared as felts, the representation convert_price decodes.
PYTH_ABI = [
    {"type": "impl", "name": "PythImpl", "interface_name": "pyth::pyth::IPyth"},
    {
        "type": "struct",
        "name": "pyth::Price",
        "members": [
            {"name": "price", "type": "core::felt252"},
            {"name": "conf", "type": "core::integer::u64"},
            {"name": "expo", "type": "core::felt252"},
            {"name": "publish_time", "type": "core::integer::u64"}
        ]
    },
    {
        "type": "struct",
        "name": "pyth::PriceFeed",
        "members": [
            {"name": "id", "type": "core::integer::u256"},
            {"name": "price", "type": "pyth::Price"},
            {"name": "ema_price", "type": "pyth::Price"}
        ]
    },
    {
        "type": "enum",
        "name": "pyth::GetPriceUnsafeError",
        "variants": [
            {"name": "PriceFeedNotFound", "type": "()"},
            {"name": "ExpiredPrice", "type": "()"}
        ]
    },
    {
        "type": "enum",
        "name": "core::result::Result::<pyth::PriceFeed, pyth::GetPriceUnsafeError>",
        "variants": [
            {"name": "Ok", "type": "pyth::PriceFeed"},
            {"name": "Err", "type": "pyth::GetPriceUnsafeError"}
        ]
    },
    {
        "type": "interface",
        "name": "pyth::pyth::IPyth",
        "items": [
            {
                "type": "function",
                "name": "query_price_feed_unsafe",
                "inputs": [{"name": "price_id", "type": "core::integer::u256"}],
                "outputs": [
                    {"type": "core::result::Result::<pyth::PriceFeed, pyth::GetPriceUnsafeError>"}
                ],
                "state_mutability": "view"
            }
        ]
    }
]


def short_string(value: str) -> int:
    return int.from_bytes(value.encode(), "big")


def make_client():
    """Create a contract handle whose functions are configured per test."""
    client = MagicMock()
    client.functions = defaultdict(MagicMock)
    return client


def returns(client, name: str, *values):
    client.functions[name].call = AsyncMock(return_value=tuple(values))


def invokes(client, name: str, tx_hash: int):
    client.functions[name].invoke_v3 = AsyncMock(return_value=MagicMock(hash=tx_hash))


@pytest.fixture
def chain():
    return StarknetChain(id="starknet_sepolia", mainnet=False, rpc_url="https://starknet.test")


@pytest.fixture
def contract(chain):
    return StarknetPriceFeedContract(chain, CONTRACT_ADDRESS)


@pytest.fixture
def provider():
    """Create a mock StarknetProvider."""
    mock = MagicMock()
    mock.get_account = MagicMock(return_value=MagicMock(name="account"))
    mock.wait_for_transaction = AsyncMock(return_value={"status": "ACCEPTED_ON_L2"})
    return mock


@pytest.fixture
def pyth_client():
    return make_client()


@pytest.fixture
def token_client():
    client = make_client()
    returns(client, "symbol", short_string("STRK"))
    return client


@pytest.fixture
def resolver(provider, pyth_client, token_client):
    """Patch provider creation and contract resolution on the chain."""
    clients = {CONTRACT_ADDRESS: pyth_client, FEE_TOKEN_ADDRESS: token_client}

    async def resolve(_provider, address, account=None):
        if address not in clients:
            raise RuntimeError(f"Contract not found: {address}")
        return clients[address]

    resolve_mock = AsyncMock(side_effect=resolve)
    with patch.object(StarknetChain, "get_provider", return_value=provider), \
            patch("price_feed_manager.contracts.starknet.resolve_contract", resolve_mock):
        yield resolve_mock


class TestStarknetContractIdentity:
    """Tests for construction, identity and serialization."""

    def test_id_and_type(self, contract):
        """Test that the id concatenates chain id and address."""
        assert contract.get_id() == f"starknet_sepolia_{CONTRACT_ADDRESS}"
        assert contract.get_type() == "StarknetPriceFeedContract"
        assert contract.get_chain().get_id() == "starknet_sepolia"

    def test_json_round_trip(self, chain, contract):
        """Test that from_json(to_json()) keeps the contract identity."""
        record = contract.to_json()

        assert record == {
            "chain": "starknet_sepolia",
            "address": CONTRACT_ADDRESS,
            "type": "StarknetPriceFeedContract"
        }
        restored = StarknetPriceFeedContract.from_json(chain, record)
        assert restored.get_id() == contract.get_id()
        assert restored == contract

    def test_from_json_wrong_type(self, chain):
        """Test that a mismatched type tag is rejected."""
        with pytest.raises(TypeMismatchError, match="Invalid type"):
            StarknetPriceFeedContract.from_json(chain, {
                "type": "EvmPriceFeedContract",
                "address": CONTRACT_ADDRESS
            })

    def test_from_json_wrong_chain(self):
        """Test that a chain of another family is rejected."""
        evm_chain = EvmChain(id="ethereum", mainnet=True, rpc_url="https://eth.test")

        with pytest.raises(TypeMismatchError, match="Wrong chain type"):
            StarknetPriceFeedContract.from_json(evm_chain, {
                "type": "StarknetPriceFeedContract",
                "address": CONTRACT_ADDRESS
            })

    def test_immutable(self, contract):
        """Test that attributes cannot be reassigned."""
        with pytest.raises(AttributeError):
            contract.address = "0x1"


class TestStarknetContractReads:
    """Tests for read-only contract queries."""

    @pytest.mark.asyncio
    async def test_valid_time_period_unsupported(self, contract, resolver):
        """Test that the valid time period fails fast instead of defaulting."""
        with pytest.raises(UnsupportedOperationError):
            await contract.get_valid_time_period()
        resolver.assert_not_called()

    @pytest.mark.asyncio
    async def test_data_sources_fixed_width(self, contract, resolver, pyth_client):
        """Test that emitter addresses keep their leading zeros."""
        returns(pyth_client, "valid_data_sources", [
            {"emitter_chain_id": 26, "emitter_address": 0x1},
            {"emitter_chain_id": 1, "emitter_address": 0xF8CD23C2AB91237730770BBEA08D61005CDDA0984348F3F6EECB559638C0BBA0},
        ])

        sources = await contract.get_data_sources()

        assert sources[0] == DataSource(emitter_chain=26, emitter_address="0" * 63 + "1")
        assert sources[1].emitter_address == (
            "f8cd23c2ab91237730770bbea08d61005cdda0984348f3f6eecb559638c0bba0"
        )
        assert all(len(source.emitter_address) == 64 for source in sources)

    @pytest.mark.asyncio
    async def test_governance_data_source(self, contract, resolver, pyth_client):
        """Test reading the governance data source."""
        returns(pyth_client, "governance_data_source", {
            "emitter_chain_id": 1,
            "emitter_address": 0x5635979A221C34931E32620B9293A463065555EA71FE97CD6237ADE875B12E9E
        })

        source = await contract.get_governance_data_source()

        assert source.emitter_chain == 1
        assert source.emitter_address.startswith("5635979a")
        assert len(source.emitter_address) == 64

    @pytest.mark.asyncio
    async def test_last_executed_governance_sequence(self, contract, resolver, pyth_client):
        """Test reading the governance sequence."""
        returns(pyth_client, "last_executed_governance_sequence", 7)

        assert await contract.get_last_executed_governance_sequence() == 7

    @pytest.mark.asyncio
    async def test_fee_token_addresses(self, contract, resolver, pyth_client):
        """Test that fee tokens are returned in contract order without prefix."""
        returns(pyth_client, "fee_token_addresses", [FEE_TOKEN, 0x49D3])

        tokens = await contract.get_fee_token_addresses()

        assert tokens == [to_fixed_hex(FEE_TOKEN), to_fixed_hex(0x49D3)]

    @pytest.mark.asyncio
    async def test_base_update_fee_uses_first_token(self, contract, resolver, pyth_client):
        """Test that the base fee is quoted in the first fee token."""
        returns(pyth_client, "fee_token_addresses", [FEE_TOKEN])
        returns(pyth_client, "get_single_update_fee", 1000)

        fee = await contract.get_base_update_fee()

        assert fee == FeeQuote(amount="1000", denom="STRK")
        assert fee == await contract.get_base_update_fee_in_token(to_fixed_hex(FEE_TOKEN))
        pyth_client.functions["get_single_update_fee"].call.assert_called_with(FEE_TOKEN)

    @pytest.mark.asyncio
    async def test_base_update_fee_without_tokens(self, contract, resolver, pyth_client):
        """Test that an empty fee token list fails with NoFeeTokenConfiguredError."""
        returns(pyth_client, "fee_token_addresses", [])

        with pytest.raises(NoFeeTokenConfiguredError):
            await contract.get_base_update_fee()

    @pytest.mark.asyncio
    async def test_fee_in_unresolvable_token(self, contract, resolver, pyth_client):
        """Test that an address without a token class fails with TokenResolutionFailedError."""
        returns(pyth_client, "get_single_update_fee", 1000)

        with pytest.raises(TokenResolutionFailedError) as exc_info:
            await contract.get_base_update_fee_in_token("0xdead")

        assert exc_info.value.token == "0xdead"
        pyth_client.functions["get_single_update_fee"].call.assert_not_called()

    @pytest.mark.asyncio
    async def test_fee_in_token_without_symbol(self, contract, resolver, pyth_client, token_client):
        """Test that a token whose symbol cannot be read fails with TokenResolutionFailedError."""
        returns(pyth_client, "get_single_update_fee", 1000)
        token_client.functions["symbol"].call = AsyncMock(side_effect=RuntimeError("no entrypoint"))

        with pytest.raises(TokenResolutionFailedError, match="no entrypoint"):
            await contract.get_base_update_fee_in_token(FEE_TOKEN_ADDRESS)

    @pytest.mark.asyncio
    async def test_fee_in_unaccepted_token(self, contract, resolver, pyth_client):
        """Test that a token the contract rejects fails with TokenResolutionFailedError."""
        pyth_client.functions["get_single_update_fee"].call = AsyncMock(
            side_effect=RuntimeError("Contract error: unsupported token")
        )

        with pytest.raises(TokenResolutionFailedError, match="unsupported token") as exc_info:
            await contract.get_base_update_fee_in_token(FEE_TOKEN_ADDRESS)

        assert exc_info.value.token == FEE_TOKEN_ADDRESS

    @pytest.mark.asyncio
    async def test_price_feed_ok(self, contract, resolver, pyth_client):
        """Test decoding of a successful price query, including a negative exponent."""
        price = {"price": 6512345, "conf": 1200, "expo": FIELD_PRIME - 8, "publish_time": 1700000000}
        ema = {"price": 6500000, "conf": 1100, "expo": -8, "publish_time": 1700000000}
        returns(pyth_client, "query_price_feed_unsafe", {"Ok": {"id": 1, "price": price, "ema_price": ema}})

        feed = await contract.get_price_feed("0x01")

        assert feed.price.price == "6512345"
        assert feed.price.expo == "-8"
        assert feed.ema_price.expo == "-8"
        assert feed.ema_price.conf == "1100"
        assert feed.price.publish_time == "1700000000"
        pyth_client.functions["query_price_feed_unsafe"].call.assert_called_once_with(1)

    @pytest.mark.asyncio
    async def test_price_feed_error_payload(self, contract, resolver, pyth_client):
        """Test that an Err result raises FeedQueryFailedError carrying the payload."""
        payload = {"PriceFeedNotFound": ()}
        returns(pyth_client, "query_price_feed_unsafe", {"Err": payload})

        with pytest.raises(FeedQueryFailedError) as exc_info:
            await contract.get_price_feed("01")

        assert exc_info.value.payload is payload
        assert exc_info.value.feed_id == "01"

    @pytest.mark.asyncio
    async def test_price_feed_absent(self, contract, resolver, pyth_client):
        """Test that an empty result means the feed does not exist."""
        returns(pyth_client, "query_price_feed_unsafe", None)

        assert await contract.get_price_feed("01") is None


class TestStarknetPriceDecoding:
    """Tests for price queries decoded by starknet-py from raw call results."""

    @pytest.fixture
    def node_call(self):
        """Serve the price feed ABI and patch the raw node call."""
        call_contract = AsyncMock()
        with patch.object(StarknetProvider, "get_class_at", AsyncMock(return_value=PYTH_ABI)), \
                patch.object(FullNodeClient, "call_contract", call_contract):
            yield call_contract

    @pytest.mark.asyncio
    async def test_ok_result(self, contract, node_call):
        """Test that a decoded Ok result yields the price feed."""
        node_call.return_value = [
            0, 1, 0,
            6512345, 1200, FIELD_PRIME - 8, 1700000000,
            6500000, 1100, FIELD_PRIME - 8, 1699999999,
        ]

        feed = await contract.get_price_feed("01")

        assert feed is not None
        assert feed.price.price == "6512345"
        assert feed.price.expo == "-8"
        assert feed.ema_price.publish_time == "1699999999"
        assert node_call.call_args.kwargs["call"].calldata == [1, 0]

    @pytest.mark.asyncio
    async def test_err_result(self, contract, node_call):
        """Test that a decoded Err result raises with the contract's error variant."""
        node_call.return_value = [1, 0]

        with pytest.raises(FeedQueryFailedError, match="PriceFeedNotFound") as exc_info:
            await contract.get_price_feed("01")

        assert exc_info.value.payload.variant == "PriceFeedNotFound"

class TestStarknetContractWrites:
    """Tests for update and governance submission."""

    @pytest.mark.asyncio
    async def test_update_without_address(self, contract, resolver, provider):
        """Test that updates without an address fail before any network I/O."""
        with pytest.raises(AccountAddressRequiredError, match="execute_update_price_feed_with_address"):
            await contract.execute_update_price_feed(SENDER_KEY, [b"\x01"])

        resolver.assert_not_called()
        provider.get_account.assert_not_called()

    @pytest.mark.asyncio
    async def test_governance_without_address(self, contract, resolver, provider):
        """Test that governance without an address fails before any network I/O."""
        with pytest.raises(AccountAddressRequiredError):
            await contract.execute_governance_instruction(SENDER_KEY, b"\x01")

        resolver.assert_not_called()
        provider.get_account.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_approves_then_updates(self, contract, resolver, provider, pyth_client, token_client):
        """Test the approve-then-update sequence."""
        returns(pyth_client, "fee_token_addresses", [FEE_TOKEN])
        returns(pyth_client, "get_update_fee", 25)
        invokes(token_client, "approve", 0xA1)
        invokes(pyth_client, "update_price_feeds", 0xB2)
        vaa = bytes(range(40))

        result = await contract.execute_update_price_feed_with_address(SENDER_KEY, SENDER_ADDRESS, vaa)

        assert result.id == "0xb2"
        assert result.info == {"status": "ACCEPTED_ON_L2"}
        provider.get_account.assert_called_once_with(SENDER_ADDRESS, SENDER_KEY)
        account = provider.get_account.return_value
        assert resolver.call_args_list[0].args[2] is account
        assert resolver.call_args_list[1].args[2] is account

        expected_data = {"num_last_bytes": 9, "data": [int.from_bytes(vaa[:31], "big"), int.from_bytes(vaa[31:], "big")]}
        pyth_client.functions["get_update_fee"].call.assert_called_once_with(expected_data, FEE_TOKEN)
        token_client.functions["approve"].invoke_v3.assert_called_once_with(
            int(CONTRACT_ADDRESS, 16), 25, auto_estimate=True
        )
        pyth_client.functions["update_price_feeds"].invoke_v3.assert_called_once_with(
            expected_data, auto_estimate=True
        )
        assert [c.args[0] for c in provider.wait_for_transaction.call_args_list] == ["0xa1", "0xb2"]

    @pytest.mark.asyncio
    async def test_failed_approval_skips_update(self, contract, resolver, provider, pyth_client, token_client):
        """Test that an approval failing confirmation never submits the update."""
        returns(pyth_client, "fee_token_addresses", [FEE_TOKEN])
        returns(pyth_client, "get_update_fee", 25)
        invokes(token_client, "approve", 0xA1)
        invokes(pyth_client, "update_price_feeds", 0xB2)
        provider.wait_for_transaction = AsyncMock(side_effect=RuntimeError("REJECTED"))

        with pytest.raises(TransactionFailedError) as exc_info:
            await contract.execute_update_price_feed_with_address(SENDER_KEY, SENDER_ADDRESS, b"\x01")

        error = exc_info.value
        assert error.step == "approve"
        assert error.tx_id == "0xa1"
        assert error.submission.state is UpdateState.FAILED
        assert error.submission.approval_tx_id is None
        pyth_client.functions["update_price_feeds"].invoke_v3.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_update_after_approval(self, contract, resolver, provider, pyth_client, token_client):
        """Test that an update failing after approval reports the unconsumed approval."""
        returns(pyth_client, "fee_token_addresses", [FEE_TOKEN])
        returns(pyth_client, "get_update_fee", 25)
        invokes(token_client, "approve", 0xA1)
        invokes(pyth_client, "update_price_feeds", 0xB2)
        provider.wait_for_transaction = AsyncMock(side_effect=[{"status": "ok"}, RuntimeError("REVERTED")])

        with pytest.raises(TransactionFailedError) as exc_info:
            await contract.execute_update_price_feed_with_address(SENDER_KEY, SENDER_ADDRESS, b"\x01")

        submission = exc_info.value.submission
        assert exc_info.value.step == "update"
        assert submission.approval_tx_id == "0xa1"
        assert submission.update_tx_id == "0xb2"
        assert submission.fee_approved_but_unused

    @pytest.mark.asyncio
    async def test_update_without_fee_token(self, contract, resolver, pyth_client):
        """Test that an update with no fee token fails before submitting anything."""
        returns(pyth_client, "fee_token_addresses", [])

        with pytest.raises(NoFeeTokenConfiguredError):
            await contract.execute_update_price_feed_with_address(SENDER_KEY, SENDER_ADDRESS, b"\x01")

    @pytest.mark.asyncio
    async def test_governance_instruction(self, contract, resolver, provider, pyth_client):
        """Test that governance returns the hash of the submitted transaction."""
        invokes(pyth_client, "execute_governance_instruction", 0xDEAD)
        receipt = {"status": "ACCEPTED_ON_L2", "block_number": 12}
        provider.wait_for_transaction = AsyncMock(return_value=receipt)

        result = await contract.execute_governance_instruction_with_address(
            SENDER_KEY, SENDER_ADDRESS, b"\x01\x02"
        )

        assert result.id == "0xdead"
        assert result.info is receipt
        pyth_client.functions["execute_governance_instruction"].invoke_v3.assert_called_once_with(
            {"num_last_bytes": 2, "data": [0x0102]}, auto_estimate=True
        )
        provider.wait_for_transaction.assert_called_once_with("0xdead")

    @pytest.mark.asyncio
    async def test_governance_rejected(self, contract, resolver, provider, pyth_client):
        """Test that a rejected governance transaction raises TransactionFailedError."""
        invokes(pyth_client, "execute_governance_instruction", 0xDEAD)
        provider.wait_for_transaction = AsyncMock(side_effect=RuntimeError("REVERTED"))

        with pytest.raises(TransactionFailedError) as exc_info:
            await contract.execute_governance_instruction_with_address(SENDER_KEY, SENDER_ADDRESS, b"\x01")

        assert exc_info.value.step == "governance"
        assert exc_info.value.tx_id == "0xdead"
