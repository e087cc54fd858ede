#!/usr/bin/env python3
"""
Puzzle NFT CLI

Command-line access to the development chain and the Puzzle contract. The
chain is read from and written back to a JSON state file, so successive
invocations build on each other.

Usage:
    puzzlenft [--state FILE] [--format json|yaml|table|text] <command> ...

Commands:
    deploy      Deploy the Puzzle contract
    accounts    List development accounts
    puzzle      Puzzle operations (add, info, find, finish, price, activate, max-pieces)
    token       Token queries and transfers (uri, owner, balance, transfer)
    logs        Show contract event logs
    gas         Gas usage report
    config      Configuration management

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import argparse
import json
import re
import sys
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from puzzlenft import __version__
from puzzlenft.chain.config import ConfigError, get_config, get_config_manager
from puzzlenft.chain.factory import ContractHandle, get_contract_at, get_contract_factory
from puzzlenft.chain.gas import GasReporter
from puzzlenft.chain.hardening import ChainError, ValidationError
from puzzlenft.chain.observability import ChainLayer, configure_logging, get_logger
from puzzlenft.chain.runtime import Chain, Receipt, Signer

log = get_logger("cli", ChainLayer.CLI)

UNITS = {"wei": 0, "gwei": 9, "ether": 18, "eth": 18}
_AMOUNT_RE = re.compile(r"^\s*([0-9]+(?:\.[0-9]+)?)\s*([a-z]*)\s*$")


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TABLE = "table"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


def parse_amount(text: str) -> int:
    """Parse a wei amount: `1000`, `0x3e8`, `0.5ether`, `20 gwei`."""
    text = str(text).strip().lower()
    if text.startswith("0x"):
        return int(text, 16)
    match = _AMOUNT_RE.match(text)
    if not match:
        raise CLIError(f"Invalid amount: {text!r}")
    number, unit = match.groups()
    if unit not in ("", *UNITS):
        raise CLIError(f"Unknown unit {unit!r} (use wei, gwei or ether)")
    try:
        wei = Decimal(number) * (Decimal(10) ** UNITS.get(unit or "wei", 0))
    except InvalidOperation as e:
        raise CLIError(f"Invalid amount: {text!r}") from e
    if wei != wei.to_integral_value():
        raise CLIError(f"Amount {text!r} is not a whole number of wei")
    return int(wei)


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, default=str)
    elif fmt == OutputFormat.YAML:
        import yaml
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    elif fmt == OutputFormat.TABLE:
        return _format_table(data)
    elif isinstance(data, dict):
        return "\n".join(f"{k}: {v}" for k, v in data.items())
    return str(data)


def _format_table(data: Any) -> str:
    """Format data as ASCII table."""
    if isinstance(data, dict) and len(data) == 1:
        only = next(iter(data.values()))
        if isinstance(only, list):
            data = only
    if isinstance(data, list) and data and isinstance(data[0], dict):
        headers = list(data[0].keys())
        rows = [[str(row.get(h, ""))[:44] for h in headers] for row in data]
        widths = [max(len(h), max(len(r[i]) for r in rows)) for i, h in enumerate(headers)]

        lines = []
        lines.append(" | ".join(h.ljust(widths[i]) for i, h in enumerate(headers)))
        lines.append("-+-".join("-" * w for w in widths))
        for row in rows:
            lines.append(" | ".join(c.ljust(widths[i]) for i, c in enumerate(row)))
        return "\n".join(lines)
    elif isinstance(data, dict):
        return "\n".join(f"{k}: {v}" for k, v in data.items())
    return str(data)


class PuzzleCLI:
    """Main CLI application."""

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="puzzlenft",
            description="Puzzle NFT development chain CLI",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"puzzlenft {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=["json", "yaml", "table", "text"],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument(
            "--state", "-s",
            help="Chain state file (default: chain.state_file)",
        )
        self.parser.add_argument(
            "--config", "-c",
            help="Additional YAML configuration file",
        )
        self.parser.add_argument(
            "--quiet", "-q",
            action="store_true",
            help="Suppress error messages",
        )

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()
        self._chain: Optional[Chain] = None

    def _register_commands(self) -> None:
        """Register all command groups."""
        self._register_deploy_commands()
        self._register_puzzle_commands()
        self._register_token_commands()
        self._register_logs_commands()
        self._register_gas_commands()
        self._register_config_commands()

    @staticmethod
    def _add_tx_options(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--from", dest="sender", default="0", help="Signer index or address (default: 0)")
        parser.add_argument("--contract", help="Puzzle address (default: latest deployment)")

    def _register_deploy_commands(self) -> None:
        deploy = self.subparsers.add_parser("deploy", help="Deploy the Puzzle contract")
        deploy.add_argument("--base-uri", help="Token base URI (default: puzzle.base_uri)")
        deploy.add_argument("--from", dest="sender", default="0", help="Deployer signer index or address")

        self.subparsers.add_parser("accounts", help="List development accounts")

    def _register_puzzle_commands(self) -> None:
        """Register puzzle subcommands."""
        puzzle = self.subparsers.add_parser("puzzle", help="Puzzle operations")
        puzzle_sub = puzzle.add_subparsers(dest="subcommand")

        # puzzle add
        add = puzzle_sub.add_parser("add", help="Add a puzzle (owner only)")
        add.add_argument("uri", help="Puzzle URI")
        add.add_argument("total_pieces", type=int, help="Number of pieces")
        add.add_argument("price", help="Price per piece (wei, or e.g. 0.01ether)")
        self._add_tx_options(add)

        # puzzle info
        info = puzzle_sub.add_parser("info", help="Show a puzzle")
        info.add_argument("puzzle_id", type=int, help="Puzzle ID")
        info.add_argument("--contract", help="Puzzle address (default: latest deployment)")

        # puzzle find
        find = puzzle_sub.add_parser("find", help="Find (mint) pieces")
        find.add_argument("puzzle_id", type=int, help="Puzzle ID")
        find.add_argument("count", type=int, help="Number of pieces")
        find.add_argument("--value", help="Payment (default: price * count)")
        self._add_tx_options(find)

        # puzzle finish
        finish = puzzle_sub.add_parser("finish", help="Burn all pieces into the finished puzzle")
        finish.add_argument("puzzle_id", type=int, help="Puzzle ID")
        self._add_tx_options(finish)

        # puzzle price
        price = puzzle_sub.add_parser("price", help="Set the piece price (owner only)")
        price.add_argument("puzzle_id", type=int, help="Puzzle ID")
        price.add_argument("price", help="Price per piece")
        self._add_tx_options(price)

        # puzzle activate
        activate = puzzle_sub.add_parser("activate", help="Open or close the sale (owner only)")
        activate.add_argument("puzzle_id", type=int, help="Puzzle ID")
        activate.add_argument("--inactive", action="store_true", help="Close the sale instead")
        self._add_tx_options(activate)

        # puzzle max-pieces
        max_pieces = puzzle_sub.add_parser("max-pieces", help="Set the per-address piece cap (owner only)")
        max_pieces.add_argument("max_pieces", type=int, help="Pieces per address per puzzle")
        self._add_tx_options(max_pieces)

    def _register_token_commands(self) -> None:
        """Register token subcommands."""
        token = self.subparsers.add_parser("token", help="Token queries and transfers")
        token_sub = token.add_subparsers(dest="subcommand")

        uri = token_sub.add_parser("uri", help="Token URI")
        uri.add_argument("token_id", type=int, help="Token ID")
        uri.add_argument("--contract", help="Puzzle address")

        owner = token_sub.add_parser("owner", help="Token owner")
        owner.add_argument("token_id", type=int, help="Token ID")
        owner.add_argument("--contract", help="Puzzle address")

        balance = token_sub.add_parser("balance", help="Tokens held by an account")
        balance.add_argument("account", help="Signer index or address")
        balance.add_argument("--contract", help="Puzzle address")

        transfer = token_sub.add_parser("transfer", help="Safe-transfer a token")
        transfer.add_argument("to", help="Recipient signer index or address")
        transfer.add_argument("token_id", type=int, help="Token ID")
        self._add_tx_options(transfer)

    def _register_logs_commands(self) -> None:
        logs = self.subparsers.add_parser("logs", help="Show contract event logs")
        logs.add_argument("--event", "-e", help="Event name filter")
        logs.add_argument("--from-block", type=int, default=0, help="First block")
        logs.add_argument("--contract", help="Emitter address (default: all)")

    def _register_gas_commands(self) -> None:
        gas = self.subparsers.add_parser("gas", help="Gas usage")
        gas_sub = gas.add_subparsers(dest="subcommand")
        gas_sub.add_parser("report", help="Gas used per contract method")

    def _register_config_commands(self) -> None:
        """Register config subcommands."""
        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")

        # config get
        get = config_sub.add_parser("get", help="Get configuration value")
        get.add_argument("path", help="Config path (e.g., puzzle.max_pieces_per_owner)")

        # config show
        show = config_sub.add_parser("show", help="Show all configuration")
        show.add_argument("--include-secrets", action="store_true", help="Show secret values")

        # config validate
        config_sub.add_parser("validate", help="Validate configuration")

        # config schema
        config_sub.add_parser("schema", help="Export configuration schema")

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 0

        try:
            self._configure(parsed)
            fmt = OutputFormat(parsed.format)
            result = self._dispatch(parsed)

            if result is not None:
                print(format_output(result, fmt))

            return 0

        except CLIError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except (ChainError, ValidationError, ConfigError) as e:
            log.info("command failed", command=parsed.command, error=str(e))
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return 1

    def _configure(self, args: argparse.Namespace) -> None:
        mgr = get_config_manager()
        mgr.load_defaults()
        if args.config:
            mgr.load_from_file(args.config)
        obs = get_config().observability
        configure_logging(obs.log_level.get(), obs.log_format.get())

    def _dispatch(self, args: argparse.Namespace) -> Any:
        """Dispatch command to handler."""
        cmd = args.command
        subcmd = getattr(args, "subcommand", None)

        handler_name = f"_handle_{cmd}_{subcmd}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name.replace("-", "_"), None)

        if handler is None:
            raise CLIError(f"Unknown command: {cmd} {subcmd or ''}")

        return handler(args)

    # ------------------------------------------------------------------
    # Chain helpers
    # ------------------------------------------------------------------

    def _state_path(self) -> Optional[Path]:
        parsed_state = getattr(self, "_state_arg", None)
        state = parsed_state or get_config().chain.state_file.get()
        return Path(state) if state else None

    def _load_chain(self, args: argparse.Namespace) -> Chain:
        if self._chain is None:
            self._state_arg = args.state
            path = self._state_path()
            self._chain = Chain.load(path) if path and path.exists() else Chain()
        return self._chain

    def _save_chain(self) -> None:
        path = self._state_path()
        if path and self._chain is not None:
            self._chain.save(path)

    def _signer(self, chain: Chain, who: str) -> Signer:
        return chain.get_signer(int(who) if who.isdigit() else who)

    def _address(self, chain: Chain, who: str) -> str:
        return self._signer(chain, who).address if who.isdigit() else who.lower()

    def _puzzle(self, args: argparse.Namespace) -> ContractHandle:
        chain = self._load_chain(args)
        address = getattr(args, "contract", None) or chain.deployments.get("Puzzle")
        if not address:
            raise CLIError("No Puzzle deployment found; run `puzzlenft deploy` first")
        signer = self._signer(chain, getattr(args, "sender", "0"))
        return get_contract_at("Puzzle", address, chain, signer)

    def _transact(self, receipt: Receipt) -> Dict[str, Any]:
        self._save_chain()
        return receipt.to_dict()

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _handle_deploy(self, args: argparse.Namespace) -> Any:
        chain = self._load_chain(args)
        base_uri = args.base_uri if args.base_uri is not None else get_config().puzzle.base_uri.get()
        token = get_contract_factory("Puzzle", chain, self._signer(chain, args.sender)).deploy(base_uri)
        self._save_chain()
        return {"contract": "Puzzle", "address": token.address, "tx_hash": token.deploy_receipt.tx_hash}

    def _handle_accounts(self, args: argparse.Namespace) -> Any:
        chain = self._load_chain(args)
        return {
            "accounts": [
                {
                    "index": s.index,
                    "address": s.address,
                    "balance": str(chain.get_balance(s.address)),
                    "nonce": chain.get_nonce(s.address),
                }
                for s in chain.get_signers()
            ]
        }

    # Puzzle handlers
    def _handle_puzzle_add(self, args: argparse.Namespace) -> Any:
        token = self._puzzle(args)
        return self._transact(token.addPuzzle(args.uri, args.total_pieces, parse_amount(args.price)))

    def _handle_puzzle_info(self, args: argparse.Namespace) -> Any:
        token = self._puzzle(args)
        info = token.getPuzzle(args.puzzle_id)
        data = info._asdict()
        data["price"] = str(data["price"])
        data["puzzle_id"] = args.puzzle_id
        return data

    def _handle_puzzle_find(self, args: argparse.Namespace) -> Any:
        token = self._puzzle(args)
        if args.value is not None:
            value = parse_amount(args.value)
        else:
            value = token.getPuzzle(args.puzzle_id).price * args.count
        return self._transact(token.findPuzzlePieces(args.puzzle_id, args.count, value=value))

    def _handle_puzzle_finish(self, args: argparse.Namespace) -> Any:
        token = self._puzzle(args)
        return self._transact(token.finishPuzzle(args.puzzle_id))

    def _handle_puzzle_price(self, args: argparse.Namespace) -> Any:
        token = self._puzzle(args)
        return self._transact(token.setPuzzlePrice(args.puzzle_id, parse_amount(args.price)))

    def _handle_puzzle_activate(self, args: argparse.Namespace) -> Any:
        token = self._puzzle(args)
        return self._transact(token.activatePuzzle(args.puzzle_id, not args.inactive))

    def _handle_puzzle_max_pieces(self, args: argparse.Namespace) -> Any:
        token = self._puzzle(args)
        return self._transact(token.setMaxPiecesPerOwner(args.max_pieces))

    # Token handlers
    def _handle_token_uri(self, args: argparse.Namespace) -> Any:
        return {"token_id": args.token_id, "uri": self._puzzle(args).tokenURI(args.token_id)}

    def _handle_token_owner(self, args: argparse.Namespace) -> Any:
        return {"token_id": args.token_id, "owner": self._puzzle(args).ownerOf(args.token_id)}

    def _handle_token_balance(self, args: argparse.Namespace) -> Any:
        token = self._puzzle(args)
        account = self._address(token.chain, args.account)
        return {"account": account, "balance": token.balanceOf(account)}

    def _handle_token_transfer(self, args: argparse.Namespace) -> Any:
        token = self._puzzle(args)
        recipient = self._address(token.chain, args.to)
        transfer = token["safeTransferFrom(address,address,uint256)"]
        return self._transact(transfer(token.signer.address, recipient, args.token_id))

    # Log and gas handlers
    def _handle_logs(self, args: argparse.Namespace) -> Any:
        chain = self._load_chain(args)
        events = chain.get_logs(address=args.contract, event=args.event, from_block=args.from_block)
        return {
            "logs": [
                {
                    "block": e.block_number,
                    "event": e.event_type,
                    "args": ", ".join(str(a) for a in e.args),
                    "tx_hash": e.tx_hash,
                }
                for e in events
            ]
        }

    def _handle_gas_report(self, args: argparse.Namespace) -> Any:
        chain = self._load_chain(args)
        reporter = GasReporter()
        reporter.record_all(chain.receipts.values())
        return {"methods": reporter.rows()}

    # Config handlers
    def _handle_config_get(self, args: argparse.Namespace) -> Any:
        mgr = get_config_manager()
        return {"path": args.path, "value": mgr.get(args.path)}

    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        mgr = get_config_manager()
        return mgr.config.to_dict(include_secrets=args.include_secrets)

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        mgr = get_config_manager()
        errors = mgr.validate()
        if errors:
            raise CLIError("Invalid configuration:\n  " + "\n  ".join(errors))
        return {"valid": True, "errors": []}

    def _handle_config_schema(self, args: argparse.Namespace) -> Any:
        mgr = get_config_manager()
        return mgr.export_schema()


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    cli = PuzzleCLI()
    return cli.run(argv)


if __name__ == "__main__":
    sys.exit(main())
