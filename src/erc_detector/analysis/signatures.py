"""ABI → selector set extraction and textual ABI/bytecode compatibility.

Selectors are lowercase hex with the 0x prefix and any leading zero nibbles
removed, so the same selector matches whether an encoder padded it or not.
Function selectors come from the first 4 bytes of keccak256(signature),
event topics from the full 32-byte hash.
"""

from __future__ import annotations

import json
from typing import Any

from eth_utils import event_abi_to_log_topic, function_abi_to_4byte_selector

from erc_detector.analysis.disassembler import normalize_bytecode
from erc_detector.errors import InvalidInputError


def normalize_selector(raw: bytes | str) -> str:
    """Canonical selector text: lowercase hex, no 0x, no leading zeros."""
    text = raw.hex() if isinstance(raw, bytes) else raw.lower()
    if text.startswith("0x"):
        text = text[2:]
    return text.lstrip("0") or "0"


def load_abi(abi: Any) -> list[Any]:
    """Coerce an ABI argument into its list of entries.

    Accepts a list, a JSON string, or a compiler artifact dict carrying an
    "abi" key. Raises InvalidInputError for anything else.
    """
    if isinstance(abi, (str, bytes)):
        try:
            abi = json.loads(abi)
        except ValueError as e:
            raise InvalidInputError(f"ABI is not valid JSON: {e}") from e
    if isinstance(abi, dict) and "abi" in abi:
        abi = abi["abi"]
    if not isinstance(abi, list):
        raise InvalidInputError(f"ABI must be a list, got {type(abi).__name__}")
    return abi


def _params_ok(params: Any) -> bool:
    # tuple types must carry well-formed components, at any depth
    if not isinstance(params, list):
        return False
    for p in params:
        if not isinstance(p, dict) or not isinstance(p.get("type"), str):
            return False
        if p["type"].startswith("tuple") and not _params_ok(p.get("components")):
            return False
    return True


def _checked_entry(entry: dict[str, Any]) -> dict[str, Any]:
    name = entry.get("name")
    if not isinstance(name, str) or not name:
        raise InvalidInputError(f"ABI {entry['type']} entry has no name")
    inputs = entry.get("inputs", [])
    if not _params_ok(inputs):
        raise InvalidInputError(f"ABI entry {name!r} has malformed inputs")
    return {**entry, "inputs": inputs}


def entry_selector(entry: Any) -> str | None:
    """Selector of a function or event entry, None for any other entry."""
    if not isinstance(entry, dict):
        return None
    kind = entry.get("type")
    if kind == "function":
        raw = function_abi_to_4byte_selector(_checked_entry(entry))
    elif kind == "event":
        raw = event_abi_to_log_topic(_checked_entry(entry))
    else:
        return None
    return normalize_selector(raw)


def get_sigs(abi: Any) -> frozenset[str]:
    """Return the selector set of every function and event in the ABI.

    Entries of other kinds (constructor, fallback, receive, error) and
    non-dict entries are skipped.
    """
    sigs: set[str] = set()
    for entry in load_abi(abi):
        selector = entry_selector(entry)
        if selector is not None:
            sigs.add(selector)
    return frozenset(sigs)


def text_signature(entry: dict[str, Any]) -> str:
    """Render name(type1,type2) for a function or event entry."""
    checked = _checked_entry(entry)
    types = ",".join(_param_type(p) for p in checked["inputs"])
    return f"{checked['name']}({types})"


def _param_type(param: dict[str, Any]) -> str:
    kind: str = param["type"]
    if kind.startswith("tuple"):
        inner = ",".join(_param_type(c) for c in param.get("components", []))
        return f"({inner}){kind[len('tuple'):]}"
    return kind


def contains_all(sigs: frozenset[str] | set[str], bytecode_hex: str) -> bool:
    """True iff every selector occurs somewhere in the bytecode text."""
    return all(sig in bytecode_hex for sig in sigs)


def is_abi(abi: Any, bytecode: str) -> bool:
    """Check whether bytecode could implement every function/event of the ABI.

    This is a substring test over the bytecode hex, not an opcode-level
    check: a selector that happens to appear inside unrelated push data or
    the metadata hash still counts as present.
    """
    return contains_all(get_sigs(abi), normalize_bytecode(bytecode))
