"""Deploy the Puzzle contract.

Usage:
    python3 scripts/deploy.py [--state chain.json] [--base-uri URI]
    puzzlenft deploy ...

`main()` deploys and prints the contract address; `run_main()` wraps it into
an exit code (0 on success, 1 on any failure) for use as a script.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import List, Optional

from puzzlenft.chain.config import get_config, get_config_manager
from puzzlenft.chain.factory import ContractHandle, get_contract_factory
from puzzlenft.chain.network import get_chain, save_chain, use_chain
from puzzlenft.chain.observability import ChainLayer, configure_from_config, get_logger
from puzzlenft.chain.runtime import Chain

log = get_logger("deploy", ChainLayer.DEPLOY)


def main(chain: Optional[Chain] = None, base_uri: Optional[str] = None) -> ContractHandle:
    """Deploy Puzzle with the configured base URI and print its address."""
    if base_uri is None:
        base_uri = get_config().puzzle.base_uri.get()

    factory = get_contract_factory("Puzzle", chain)
    nft_contract = factory.deploy(base_uri)
    nft_contract.deployed()
    print("Contract deployed to:", nft_contract.address)
    return nft_contract


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="deploy", description="Deploy the Puzzle contract")
    parser.add_argument("--state", help="Chain state file to load from and save to")
    parser.add_argument("--base-uri", help="Token base URI (default: puzzle.base_uri)")
    return parser


def run_main(argv: Optional[List[str]] = None) -> int:
    args = _parser().parse_args(argv)
    get_config_manager().load_defaults()
    configure_from_config()
    try:
        if args.state:
            state = Path(args.state)
            chain = use_chain(Chain.load(state) if state.exists() else Chain())
        else:
            chain = get_chain()
        main(chain, args.base_uri)
        save_chain(args.state)
        return 0
    except Exception as error:
        log.error("deployment failed", error_code=type(error).__name__, exc_info=True)
        print(error)
        return 1
