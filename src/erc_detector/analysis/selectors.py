"""Selector candidates scanned out of disassembled bytecode.

Every full-width PUSH4 operand is taken as a function selector candidate and
every PUSH32 operand as an event topic candidate. Literals pushed outside the
dispatcher are picked up too, which keeps matching permissive.
"""

from __future__ import annotations

from erc_detector.analysis.disassembler import Instruction, disassemble
from erc_detector.analysis.standards import StandardRegistry, default_registry


def _push_operands(instructions: list[Instruction], name: str, width: int) -> set[str]:
    return {
        instr.operand.hex()
        for instr in instructions
        if instr.name == name and len(instr.operand) == width
    }


def extract_selectors(instructions: list[Instruction]) -> set[str]:
    """Extract 4-byte function selectors (PUSH4 operands) as hex."""
    return _push_operands(instructions, "PUSH4", 4)


def extract_topics(instructions: list[Instruction]) -> set[str]:
    """Extract 32-byte event topics (PUSH32 operands) as hex."""
    return _push_operands(instructions, "PUSH32", 32)


def get_bytecode_sigs(
    bytecode: str,
    *,
    describe: bool = False,
    registry: StandardRegistry | None = None,
) -> frozenset[str] | dict[str, str | None]:
    """Return the selectors and topics referenced by the bytecode.

    With describe=True, map each one to its text signature where a
    registered standard knows it, else None.
    """
    instructions = disassemble(bytecode)
    sigs = frozenset(extract_selectors(instructions) | extract_topics(instructions))
    if not describe:
        return sigs
    registry = registry or default_registry()
    return {sig: registry.describe(sig) for sig in sorted(sigs)}
