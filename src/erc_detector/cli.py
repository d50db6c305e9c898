"""Command-line entry point.

Usage:
    erc-detector abi Token.json [--percent 80]
    erc-detector bytecode 0x6080... [--percent 80]
    erc-detector sigs --abi Token.json
    erc-detector sigs --bytecode runtime.hex --describe
    erc-detector proxy 0xabc... [--rpc-url URL]
    erc-detector address 0xabc... [--rpc-url URL] [--max-nodes 16]

Environment:
    RPC_URL, MAX_PROXY_NODES, PROBE_WORKERS, LOG_LEVEL (see config.py)
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys

from erc_detector.analysis.classifier import (
    get_erc_by_abi,
    get_erc_by_abi_percent,
    get_erc_by_bytecode,
    get_erc_by_bytecode_percent,
)
from erc_detector.analysis.proxy import ProxyFinding, get_proxy_address
from erc_detector.analysis.resolver import get_erc_by_node
from erc_detector.analysis.selectors import get_bytecode_sigs
from erc_detector.analysis.signatures import get_sigs
from erc_detector.chain.rpc import RPCError
from erc_detector.config import Config, ConfigError, load_config
from erc_detector.errors import InvalidInputError

EXIT_RPC_ERROR = 1
EXIT_INVALID_INPUT = 2


def _read_text(source: str) -> str:
    """Return the contents of source if it names a file ("-" is stdin), else source."""
    if source == "-":
        return sys.stdin.read()
    if os.path.isfile(source):
        with open(source, encoding="utf-8") as f:
            return f.read()
    return source


def _read_abi(source: str) -> object:
    try:
        return json.loads(_read_text(source))
    except ValueError as e:
        raise InvalidInputError(f"Cannot parse ABI from {source}: {e}") from e


def _render(result: object) -> str:
    if result is None:
        return "none"
    if isinstance(result, ProxyFinding):
        return json.dumps(result.to_dict())
    return str(result)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="erc-detector",
        description="Classify ERC token standards and proxy patterns",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    abi = sub.add_parser("abi", help="classify an ABI JSON file")
    abi.add_argument("source", help="ABI JSON file, or - for stdin")
    abi.add_argument("--percent", type=float, help="use percent scoring with this threshold")

    code = sub.add_parser("bytecode", help="classify runtime bytecode")
    code.add_argument("source", help="hex string or file holding it, or - for stdin")
    code.add_argument("--percent", type=float, help="use percent scoring with this threshold")

    sigs = sub.add_parser("sigs", help="list selectors of an ABI or bytecode")
    group = sigs.add_mutually_exclusive_group(required=True)
    group.add_argument("--abi", help="ABI JSON file")
    group.add_argument("--bytecode", help="hex string or file holding it")
    sigs.add_argument("--describe", action="store_true", help="name known selectors")

    for name, help_text in (
        ("proxy", "resolve the implementation behind a proxy"),
        ("address", "classify a deployed contract, following proxies"),
    ):
        node = sub.add_parser(name, help=help_text)
        node.add_argument("address")
        node.add_argument("--rpc-url", help="JSON-RPC endpoint (default: $RPC_URL)")
        if name == "address":
            node.add_argument("--max-nodes", type=int, help="max contracts to visit")

    return parser


def run(args: argparse.Namespace, config: Config) -> str:
    """Execute the parsed command and return what should be printed."""
    if args.command == "abi":
        abi = _read_abi(args.source)
        if args.percent is not None:
            return _render(get_erc_by_abi_percent(abi, args.percent))
        return _render(get_erc_by_abi(abi))

    if args.command == "bytecode":
        bytecode = _read_text(args.source).strip()
        if args.percent is not None:
            return _render(get_erc_by_bytecode_percent(bytecode, args.percent))
        return _render(get_erc_by_bytecode(bytecode))

    if args.command == "sigs":
        if args.abi:
            return "\n".join(sorted(get_sigs(_read_abi(args.abi))))
        found = get_bytecode_sigs(_read_text(args.bytecode).strip(), describe=args.describe)
        if isinstance(found, dict):
            return "\n".join(f"{sig} {name or '?'}" for sig, name in found.items())
        return "\n".join(sorted(found))

    rpc_url = args.rpc_url or config.rpc_url
    if args.command == "proxy":
        return _render(
            get_proxy_address(args.address, rpc_url, workers=config.probe_workers)
        )
    return _render(
        get_erc_by_node(
            args.address,
            rpc_url,
            max_nodes=args.max_nodes or config.max_proxy_nodes,
            workers=config.probe_workers,
        )
    )


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = load_config()
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_INVALID_INPUT

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        print(run(args, config))
    except InvalidInputError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_INVALID_INPUT
    except RPCError as e:
        print(f"RPC error: {e}", file=sys.stderr)
        return EXIT_RPC_ERROR
    return 0


if __name__ == "__main__":
    sys.exit(main())
