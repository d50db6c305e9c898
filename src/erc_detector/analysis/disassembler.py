"""EVM bytecode disassembler: hex string → list of Instruction."""

from __future__ import annotations

import string
from dataclasses import dataclass

from erc_detector.analysis.opcodes import lookup
from erc_detector.errors import InvalidInputError

_HEX_DIGITS = frozenset(string.hexdigits)


@dataclass(frozen=True, slots=True)
class Instruction:
    offset: int
    opcode: int
    name: str
    operand: bytes  # empty for non-PUSH instructions


def normalize_bytecode(bytecode_hex: str) -> str:
    """Return bytecode as lowercase hex without the 0x prefix.

    Raises InvalidInputError for non-string, non-hex or odd-length input.
    """
    if not isinstance(bytecode_hex, str):
        raise InvalidInputError(
            f"Bytecode must be a hex string, got {type(bytecode_hex).__name__}"
        )
    hex_str = bytecode_hex.strip()
    if hex_str.startswith(("0x", "0X")):
        hex_str = hex_str[2:]
    if not _HEX_DIGITS.issuperset(hex_str):
        raise InvalidInputError("Bytecode contains non-hex characters")
    if len(hex_str) % 2:
        raise InvalidInputError("Bytecode has an odd number of hex digits")
    return hex_str.lower()


def disassemble(bytecode_hex: str) -> list[Instruction]:
    """Disassemble EVM bytecode hex string into instructions.

    Handles 0x prefix, PUSH operand extraction, unknown opcodes,
    and truncated PUSH operands at end of bytecode.
    """
    hex_str = normalize_bytecode(bytecode_hex)
    if not hex_str:
        return []

    raw = bytes.fromhex(hex_str)
    instructions: list[Instruction] = []
    i = 0

    while i < len(raw):
        opcode = raw[i]
        name, operand_size = lookup(opcode)
        # PUSH operands may be cut short by the end of the code
        operand = raw[i + 1 : i + 1 + operand_size] if operand_size else b""
        instructions.append(Instruction(i, opcode, name, operand))
        i += 1 + operand_size

    return instructions
