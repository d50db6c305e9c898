"""Proxy detection: bytecode heuristics plus live storage/interface probes.

Bytecode-only outcomes, in priority order:
1. DELEGATECALL and a literal PUSH20 address → direct (or minimal, for the
   exact EIP-1167 clone template), target known
2. DELEGATECALL and an implementation() view in the dispatcher → target
   only resolvable against the live contract
3. DELEGATECALL otherwise → generic delegatecall proxy
4. no DELEGATECALL → not a proxy (None)
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from enum import Enum

from erc_detector.analysis.disassembler import Instruction, disassemble, normalize_bytecode
from erc_detector.analysis.opcodes import DELEGATECALL, PUSH20, PUSH32
from erc_detector.analysis.signatures import contains_all, get_sigs
from erc_detector.chain.rpc import RPCError, eth_call, get_code, get_storage_at

logger = logging.getLogger(__name__)

DEFAULT_PROBE_WORKERS = 8

# EIP-1967 implementation slot:
# keccak256("eip1967.proxy.implementation") - 1
EIP_1967_IMPL_SLOT = "0x360894a13ba1a3210667c828492db98dca3e2076cc3735a920a3ca505d382bbc"

# EIP-1967 admin slot:
# keccak256("eip1967.proxy.admin") - 1
EIP_1967_ADMIN_SLOT = "0xb53127684a568b3173ae13b9f8a6016e243e63b6e8ee1178d6a717850b5d6103"

# EIP-1967 beacon slot:
# keccak256("eip1967.proxy.beacon") - 1
EIP_1967_BEACON_SLOT = "0xa3f0ad74e5423aebfd80d3ef4346578335a9a72aeaee59ff6cb3582b35133d50"

# EIP-1822 (UUPS) logic slot:
# keccak256("PROXIABLE")
EIP_1822_SLOT = "0xc5f16f0fcc639fa48a6947836d9850f504798523bf8c9a3a87d5876cf622bcf7"

# OpenZeppelin (pre-EIP-1967) implementation slot:
# keccak256("org.zeppelinos.proxy.implementation")
OZ_IMPL_SLOT = "0x7050c9e0f4ca769c69bd3a8ef740bc37934f8e2c036e5a723fd8ee048ed3f8c3"

KNOWN_SLOTS: dict[str, str] = {
    EIP_1967_IMPL_SLOT: "eip1967.implementation",
    EIP_1967_ADMIN_SLOT: "eip1967.admin",
    EIP_1967_BEACON_SLOT: "eip1967.beacon",
    EIP_1822_SLOT: "eip1822.proxiable",
    OZ_IMPL_SLOT: "zeppelinos.implementation",
}

# Slots holding the implementation address directly, probed in this order
IMPLEMENTATION_SLOTS = (EIP_1967_IMPL_SLOT, OZ_IMPL_SLOT, EIP_1822_SLOT)

# Introspection getters returning the implementation address
IMPLEMENTATION_GETTERS: dict[str, str] = {
    "implementation()": "0x5c60da1b",
    "masterCopy()": "0xa619486e",  # Gnosis Safe
    "comptrollerImplementation()": "0xbb82aa5e",  # Compound
}

# Getters tried on an EIP-1967 beacon, in order
BEACON_GETTERS = ("0x5c60da1b", "0xda525716")  # implementation(), childImplementation()

# EIP-1167 minimal proxy: <prefix> <20-byte target> <suffix>
MINIMAL_PROXY_PREFIX = "363d3d373d3d3d363d73"
MINIMAL_PROXY_SUFFIX = "5af43d82803e903d91602b57fd5bf3"

IMPLEMENTATION_ABI = [
    {
        "type": "function",
        "name": "implementation",
        "inputs": [],
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
    }
]
_IMPLEMENTATION_SIGS = get_sigs(IMPLEMENTATION_ABI)

_ZERO_ADDRESS = "0" * 40
_MAX_ADDRESS = "f" * 40


class ProxyKind(str, Enum):
    MINIMAL = "minimal"
    DIRECT = "direct"
    IMPLEMENTATION = "implementation"
    DELEGATECALL = "delegatecall"


@dataclass(frozen=True, slots=True)
class ProxyFinding:
    kind: ProxyKind
    target: str | None = None  # known only for literal-target proxies
    slots: tuple[str, ...] = ()  # well-known proxy slots pushed by the code

    def to_dict(self) -> dict[str, object]:
        return {"kind": self.kind.value, "target": self.target, "slots": list(self.slots)}


class InvalidAddressError(ValueError):
    """Raised when a probe result does not decode to a usable address."""


def decode_address(value: object) -> str:
    """Decode an eth_call/eth_getStorageAt result into a 0x address.

    A 32-byte word yields its low 20 bytes. Empty, zero, all-ff and
    malformed values raise InvalidAddressError.
    """
    if not isinstance(value, str) or value in ("", "0x"):
        raise InvalidAddressError(f"Invalid address value: {value!r}")
    body = value.lower()
    if body.startswith("0x"):
        body = body[2:]
    if len(body) == 64:
        body = body[-40:]
    if len(body) != 40:
        raise InvalidAddressError(f"Invalid address value: {value!r}")
    try:
        int(body, 16)
    except ValueError as e:
        raise InvalidAddressError(f"Invalid address value: {value!r}") from e
    if body in (_ZERO_ADDRESS, _MAX_ADDRESS):
        raise InvalidAddressError("Empty address")
    return "0x" + body


def _is_plausible_address(operand: bytes) -> bool:
    return len(operand) == 20 and operand not in (b"\x00" * 20, b"\xff" * 20)


def _literal_target(instructions: list[Instruction]) -> str | None:
    for instr in instructions:
        if instr.opcode == PUSH20 and _is_plausible_address(instr.operand):
            return "0x" + instr.operand.hex()
    return None


def _known_slots(instructions: list[Instruction]) -> tuple[str, ...]:
    found: list[str] = []
    for instr in instructions:
        if instr.opcode == PUSH32:
            name = KNOWN_SLOTS.get("0x" + instr.operand.hex())
            if name and name not in found:
                found.append(name)
    return tuple(found)


def _has_delegatecall(instructions: list[Instruction]) -> bool:
    return any(instr.opcode == DELEGATECALL for instr in instructions)


def is_delegate_call(bytecode: str) -> bool:
    """Return True if the bytecode contains a DELEGATECALL opcode."""
    return _has_delegatecall(disassemble(bytecode))


def get_proxy_status(bytecode: str) -> ProxyFinding | None:
    """Classify the delegation pattern of bytecode without touching a node."""
    code = normalize_bytecode(bytecode)
    instructions = disassemble(code)
    if not _has_delegatecall(instructions):
        return None

    slots = _known_slots(instructions)
    target = _literal_target(instructions)
    if target is not None:
        if code.startswith(MINIMAL_PROXY_PREFIX) and code.endswith(MINIMAL_PROXY_SUFFIX):
            return ProxyFinding(ProxyKind.MINIMAL, target, slots)
        return ProxyFinding(ProxyKind.DIRECT, target, slots)

    if contains_all(_IMPLEMENTATION_SIGS, code):
        return ProxyFinding(ProxyKind.IMPLEMENTATION, None, slots)
    return ProxyFinding(ProxyKind.DELEGATECALL, None, slots)


def _read_slot(address: str, slot: str, rpc_url: str) -> str:
    return decode_address(get_storage_at(address, slot, rpc_url))


def _call_getter(address: str, selector: str, rpc_url: str) -> str:
    return decode_address(eth_call(address, selector, rpc_url))


def _beacon_implementation(address: str, rpc_url: str) -> str:
    beacon = _read_slot(address, EIP_1967_BEACON_SLOT, rpc_url)
    try:
        raw = eth_call(beacon, BEACON_GETTERS[0], rpc_url)
    except RPCError:
        raw = eth_call(beacon, BEACON_GETTERS[1], rpc_url)
    return decode_address(raw)


def _probes(address: str, rpc_url: str) -> list[tuple[str, Callable[[], str]]]:
    probes: list[tuple[str, Callable[[], str]]] = [
        (KNOWN_SLOTS[slot], functools.partial(_read_slot, address, slot, rpc_url))
        for slot in IMPLEMENTATION_SLOTS
    ]
    probes.extend(
        (name, functools.partial(_call_getter, address, selector, rpc_url))
        for name, selector in IMPLEMENTATION_GETTERS.items()
    )
    probes.append(("eip1967.beacon", functools.partial(_beacon_implementation, address, rpc_url)))
    return probes


def _race(probes: list[tuple[str, Callable[[], str]]], workers: int) -> str | None:
    """Run probes concurrently; the first valid address wins."""
    executor = ThreadPoolExecutor(max_workers=max(1, min(workers, len(probes))))
    try:
        futures = {executor.submit(fn): name for name, fn in probes}
        for future in as_completed(futures):
            try:
                address = future.result()
            except (RPCError, InvalidAddressError) as e:
                logger.debug("Proxy probe %s failed: %s", futures[future], e)
                continue
            logger.debug("Proxy probe %s resolved %s", futures[future], address)
            return address
        return None
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def _gather(probes: list[tuple[str, Callable[[], str]]], workers: int) -> list[str]:
    """Run probes concurrently and keep every distinct valid address."""
    found: list[str] = []
    with ThreadPoolExecutor(max_workers=max(1, min(workers, len(probes)))) as executor:
        futures = [(name, executor.submit(fn)) for name, fn in probes]
        for name, future in futures:
            try:
                address = future.result()
            except (RPCError, InvalidAddressError) as e:
                logger.debug("Proxy probe %s failed: %s", name, e)
                continue
            if address not in found:
                found.append(address)
    return found


def _fetch_code(address: str, rpc_url: str, bytecode: str | None) -> str | None:
    if bytecode is not None:
        return bytecode
    try:
        return get_code(address, rpc_url)
    except RPCError as e:
        logger.warning("Could not fetch bytecode for %s: %s", address, e)
        return None


def get_proxy_address(
    address: str,
    rpc_url: str,
    bytecode: str | None = None,
    *,
    workers: int = DEFAULT_PROBE_WORKERS,
) -> str | None:
    """Resolve the address a contract delegates to, or None.

    A literal PUSH20 target in the bytecode wins outright; otherwise known
    proxy storage slots and introspection getters are raced against the
    node and the first valid answer is returned. Probe failures never raise.
    """
    code = _fetch_code(address, rpc_url, bytecode)
    if code is None or not normalize_bytecode(code):
        return None

    finding = get_proxy_status(code)
    if finding is not None and finding.target is not None:
        return finding.target
    return _race(_probes(address, rpc_url), workers)


def get_proxy_addresses(
    address: str,
    rpc_url: str,
    bytecode: str | None = None,
    *,
    workers: int = DEFAULT_PROBE_WORKERS,
) -> list[str]:
    """Like get_proxy_address, but collect every distinct target found."""
    code = _fetch_code(address, rpc_url, bytecode)
    if code is None or not normalize_bytecode(code):
        return []

    finding = get_proxy_status(code)
    if finding is not None and finding.target is not None:
        return [finding.target]
    return _gather(_probes(address, rpc_url), workers)
