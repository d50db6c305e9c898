"""Chained resolution: classify a contract through its proxy links.

When a contract's own bytecode matches no standard, every proxy target it
points at is fetched, their targets in turn, and the concatenated bytecode
of all visited contracts is classified once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from erc_detector.analysis.classifier import get_erc_by_bytecode
from erc_detector.analysis.disassembler import normalize_bytecode
from erc_detector.analysis.proxy import DEFAULT_PROBE_WORKERS, get_proxy_addresses
from erc_detector.analysis.standards import StandardRegistry
from erc_detector.chain.rpc import RPCError, get_code

logger = logging.getLogger(__name__)

DEFAULT_MAX_NODES = 16


@dataclass(frozen=True, slots=True)
class ProxyLink:
    from_address: str
    to_address: str


@dataclass(frozen=True, slots=True)
class ChainResolution:
    address: str
    standard: str | None
    links: tuple[ProxyLink, ...]
    visited: tuple[str, ...]  # discovery order, root first
    truncated: bool = False  # max_nodes stopped discovery


def resolve_chain(
    address: str,
    rpc_url: str,
    bytecode: str,
    *,
    max_nodes: int = DEFAULT_MAX_NODES,
    registry: StandardRegistry | None = None,
    workers: int = DEFAULT_PROBE_WORKERS,
) -> ChainResolution:
    """Follow proxy links depth-first from address and classify the union.

    Each contract is visited at most once, so cycles terminate; max_nodes
    bounds the number of contracts fetched.
    """
    root = address.lower()
    codes: dict[str, str] = {root: normalize_bytecode(bytecode)}
    visited: list[str] = [root]
    links: list[ProxyLink] = []
    stack: list[str] = [root]
    truncated = False

    while stack:
        node = stack.pop()
        for target in get_proxy_addresses(node, rpc_url, codes[node], workers=workers):
            target = target.lower()
            links.append(ProxyLink(node, target))
            if target in codes:
                continue
            if len(visited) >= max_nodes:
                truncated = True
                logger.warning(
                    "Proxy chain from %s exceeds %d contracts; not following %s",
                    root,
                    max_nodes,
                    target,
                )
                continue
            try:
                code = normalize_bytecode(get_code(target, rpc_url))
            except RPCError as e:
                logger.warning("Failed to fetch bytecode for %s: %s", target, e)
                code = ""
            logger.debug("Following proxy link %s -> %s", node, target)
            codes[target] = code
            visited.append(target)
            stack.append(target)

    combined = "".join(codes[a] for a in visited)
    result = get_erc_by_bytecode(combined, registry)
    return ChainResolution(
        address=root,
        standard=result if isinstance(result, str) else None,
        links=tuple(links),
        visited=tuple(visited),
        truncated=truncated,
    )


def get_erc_by_node(
    address: str,
    rpc_url: str,
    bytecode: str | None = None,
    *,
    max_nodes: int = DEFAULT_MAX_NODES,
    registry: StandardRegistry | None = None,
    workers: int = DEFAULT_PROBE_WORKERS,
) -> str | None:
    """Standard label of the contract at address, looking through proxies.

    Raises RPCError if the contract's own bytecode cannot be fetched.
    """
    if bytecode is None:
        bytecode = get_code(address, rpc_url)

    result = get_erc_by_bytecode(bytecode, registry)
    if isinstance(result, str):
        return result

    resolution = resolve_chain(
        address,
        rpc_url,
        bytecode,
        max_nodes=max_nodes,
        registry=registry,
        workers=workers,
    )
    return resolution.standard
