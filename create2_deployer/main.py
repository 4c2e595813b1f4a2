#!/usr/bin/env python3
import argparse
import asyncio
import json
import logging
import re
import sys
from typing import List, Optional

from .core.client.chain_client import ChainClient
from .core.compiler import ForgeCompiler
from .core.deployer import Create2Deployer, DeploymentReport
from .utils.config_manager import ConfigManager, DeploySettings
from .utils.exceptions import Create2DeployError
from .utils.logging import setup_logging

LOG = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130

# Negative hex or exponent literals are not recognised as values by argparse
VALUE_LIKE_RE = re.compile(r"^-(0[xX][0-9a-fA-F_]*|[0-9][0-9_]*(\.[0-9]+)?([eE][0-9]+)?)$")


def build_parser() -> argparse.ArgumentParser:
    """Command-line parser; unrecognized flags are left for forge build"""
    parser = argparse.ArgumentParser(
        prog="create2-deploy",
        description="Deterministic contract deployment through a CREATE2 factory"
    )
    parser.add_argument("contract",
                       help="Contract to deploy, 'path/File.sol:Name' or 'Name'")
    parser.add_argument("--constructor-args", nargs="*", default=None, metavar="ARG",
                       help="Constructor arguments (arrays/tuples as '[a,b]' or '(a,b)')")
    parser.add_argument("--salt", default=None,
                       help="CREATE2 salt as hex or integer (default: zero)")
    parser.add_argument("--verify", action="store_true",
                       help="Verify the contract on the block explorer")
    parser.add_argument("--dry-run", action="store_true",
                       help="Compute the address without sending a transaction")

    # Boolean options default to None so environment and config layers apply
    chain = parser.add_argument_group("chain")
    chain.add_argument("--rpc-url", default=None, help="JSON-RPC endpoint (env ETH_RPC_URL)")
    chain.add_argument("--private-key", default=None, help="Deployer key (env PRIVATE_KEY)")
    chain.add_argument("--factory", default=None, help="CREATE2 factory address (env CREATE2_FACTORY)")
    chain.add_argument("--chain-id", type=int, default=None, help="Chain id (default: queried)")
    chain.add_argument("--gas-limit", type=int, default=None, help="Gas limit (default: estimated)")
    chain.add_argument("--gas-price", type=int, default=None,
                       help="Gas price in wei (max fee per gas for EIP-1559)")
    chain.add_argument("--priority-gas-price", type=int, default=None,
                       help="Max priority fee per gas in wei")
    chain.add_argument("--legacy", action="store_true", default=None,
                       help="Send a legacy (gasPrice) transaction")

    verify = parser.add_argument_group("verification")
    verify.add_argument("--etherscan-api-key", default=None,
                       help="Explorer API key (env ETHERSCAN_API_KEY)")
    verify.add_argument("--verifier-url", default=None, help="Explorer API URL")
    verify.add_argument("--verify-delay", type=float, default=None,
                       help="Seconds to wait before submitting verification")

    build = parser.add_argument_group("build")
    build.add_argument("--root", default=None, help="Project root (default: current directory)")
    build.add_argument("--skip-build", action="store_true", default=None,
                       help="Use existing artifacts without running forge build")

    parser.add_argument("--config", default=None, help="JSON file of option defaults")
    parser.add_argument("--log-level", default="INFO",
                       choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                       help="Logging level")
    parser.add_argument("--log-file", default=None,
                       help="Path to log file")
    return parser


def settings_from_args(
    args: argparse.Namespace,
    build_args: List[str],
    config_manager: Optional[ConfigManager] = None
) -> DeploySettings:
    """Classify parsed arguments into per-collaborator settings"""
    config_manager = config_manager or ConfigManager()
    cli_values = {
        "root": args.root,
        "skip_build": args.skip_build,
        "build_args": build_args or None,
        "rpc_url": args.rpc_url,
        "factory": args.factory,
        "private_key": args.private_key,
        "chain_id": args.chain_id,
        "gas_limit": args.gas_limit,
        "gas_price": args.gas_price,
        "priority_gas_price": args.priority_gas_price,
        "legacy": args.legacy,
        "etherscan_api_key": args.etherscan_api_key,
        "verifier_url": args.verifier_url,
        "verify_delay": args.verify_delay,
    }
    return config_manager.build_settings(
        args.contract,
        cli_values,
        constructor_args=args.constructor_args,
        salt=args.salt,
        verify=args.verify,
        dry_run=args.dry_run,
        config_file=args.config,
    )


async def deploy(settings: DeploySettings) -> DeploymentReport:
    """Wire the real collaborators and run one deployment"""
    compiler = ForgeCompiler(settings.build)
    # dry runs and skips never sign, so the key is optional here
    chain = ChainClient.connect(settings.query.rpc_url, settings.send.private_key)
    deployer = Create2Deployer(settings, compiler, chain)
    return await deployer.run()


def print_report(report: DeploymentReport) -> None:
    print(report.summary())
    if report.verification is not None:
        status = report.verification.value
        if report.verification_error:
            status = f"{status} ({report.verification_error})"
        print(f"Verification: {status}")
    LOG.debug(f"Report: {json.dumps(report.to_dict(), default=str)}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main execution flow"""
    parser = build_parser()
    args, build_args = parser.parse_known_args(argv)

    stray = [token for token in build_args if VALUE_LIKE_RE.match(token)]
    if stray:
        parser.error(
            f"{', '.join(stray)} looks like a constructor argument, not a forge build flag; "
            f"pass all constructor arguments as one value, e.g. --constructor-args=\"1 {stray[0]}\""
        )

    setup_logging(args.log_level, args.log_file)

    if build_args:
        LOG.info(f"Passing through to forge build: {' '.join(build_args)}")

    try:
        settings = settings_from_args(args, build_args)
        report = asyncio.run(deploy(settings))
    except KeyboardInterrupt:
        LOG.error("Interrupted")
        return EXIT_INTERRUPTED
    except Create2DeployError as e:
        LOG.error(f"{e.stage.capitalize()} failed: {e}")
        LOG.debug(f"Error details: {e.to_dict()}")
        return EXIT_FAILED

    print_report(report)
    return EXIT_OK


def run() -> None:
    """Console-script entry point"""
    sys.exit(main())


if __name__ == "__main__":
    run()
