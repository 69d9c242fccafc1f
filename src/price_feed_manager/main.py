#!/usr/bin/env python3
"""Command line entry point for the price feed manager.

Reads the target chain and contract from the environment and runs one
operation against it: inspect the contract, read a price, push an update
fetched from Hermes or execute a governance instruction.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Any

from .base import PriceFeedContract
from .codec import strip_hex_prefix
from .config import ManagerConfig
from .errors import PriceFeedContractError, UnsupportedOperationError

# Get logger for this module
logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def build_parser() -> argparse.ArgumentParser:
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Price Feed Manager - Inspect and update price feed contracts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  CHAIN_TYPE        - Chain family: starknet or evm (default: starknet)
  CHAIN_ID          - Identifier of the target chain
  RPC_URL           - RPC endpoint of the target chain
  MAINNET           - Whether the chain is a mainnet (default: true)
  NETWORK_ID        - EIP-155 chain id (evm only, optional)
  CONTRACT_ADDRESS  - Price feed contract address
  PRIVATE_KEY       - Signing key (required for update and governance)
  SENDER_ADDRESS    - Sending account address (required on starknet)
  HERMES_URL        - Hermes price service URL
  LOG_LEVEL         - Logging level (can be overridden with --log-level)
        """
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("info", help="Show fee, data source and governance state")

    price = commands.add_parser("price", help="Read the on-chain price of a feed")
    price.add_argument("feed_id", help="Hex feed identifier")

    update = commands.add_parser("update", help="Push the latest Hermes update for feeds")
    update.add_argument("feed_ids", nargs="+", help="Hex feed identifiers")

    governance = commands.add_parser("governance", help="Execute a governance VAA")
    governance.add_argument("vaa", help="Hex encoded governance VAA")
    return parser


async def _optional(label: str, operation) -> Any:
    try:
        return await operation
    except UnsupportedOperationError:
        logger.debug(f"{label} is not supported on this chain")
        return None


async def describe_contract(contract: PriceFeedContract) -> dict[str, Any]:
    """Collect the read-only state of a contract."""
    fee = await contract.get_base_update_fee()
    data_sources = await contract.get_data_sources()
    governance_source = await contract.get_governance_data_source()
    return {
        "id": contract.get_id(),
        "type": contract.get_type(),
        "validTimePeriod": await _optional(
            "get_valid_time_period", contract.get_valid_time_period()
        ),
        "feeTokens": await _optional(
            "get_fee_token_addresses", contract.get_fee_token_addresses()
        ),
        "baseUpdateFee": fee.to_dict(),
        "dataSources": [source.to_dict() for source in data_sources],
        "governanceDataSource": governance_source.to_dict(),
        "lastExecutedGovernanceSequence": await contract.get_last_executed_governance_sequence(),
    }


def _require_key(config: ManagerConfig) -> str:
    if not config.signer.can_sign:
        raise ValueError("PRIVATE_KEY is required for this command")
    return config.signer.private_key


async def run_command(args: argparse.Namespace, config: ManagerConfig) -> dict[str, Any]:
    """Run the selected command and return a JSON-serializable result."""
    contract = config.build_contract()
    logger.info(f"Using contract {contract.get_id()} ({contract.get_type()})")

    match args.command:
        case "info":
            return await describe_contract(contract)

        case "price":
            feed = await contract.get_price_feed(args.feed_id)
            return {"feedId": args.feed_id, "feed": feed.to_dict() if feed else None}

        case "update":
            private_key = _require_key(config)
            vaas = await config.hermes.build_client().get_price_update_data(args.feed_ids)
            if config.signer.sender_address:
                results = [
                    await contract.execute_update_price_feed_with_address(
                        private_key, config.signer.sender_address, vaa
                    )
                    for vaa in vaas
                ]
            else:
                results = [await contract.execute_update_price_feed(private_key, vaas)]
            return {"transactions": [result.id for result in results]}

        case "governance":
            private_key = _require_key(config)
            vaa = bytes.fromhex(strip_hex_prefix(args.vaa))
            if config.signer.sender_address:
                result = await contract.execute_governance_instruction_with_address(
                    private_key, config.signer.sender_address, vaa
                )
            else:
                result = await contract.execute_governance_instruction(private_key, vaa)
            return {"transaction": result.id}

        case _:
            raise ValueError(f"Unknown command: {args.command}")


async def main(argv: list[str] | None = None) -> None:
    """Main entry point for the price feed manager CLI.

    Raises:
        SystemExit: On configuration or runtime errors
    """
    args: argparse.Namespace = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    try:
        config: ManagerConfig = ManagerConfig.from_env()
        config.log_config()
        result = await run_command(args, config)
        print(json.dumps(result, indent=2))

    except ValueError as e:
        logger.error(f"Configuration Error: {e}")
        sys.exit(1)

    except PriceFeedContractError as e:
        logger.error(f"{type(e).__name__}: {e}")
        sys.exit(1)

    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
        sys.exit(0)

    except Exception as e:
        logger.error(f"Fatal Error: {e}", exc_info=True)
        sys.exit(1)


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
