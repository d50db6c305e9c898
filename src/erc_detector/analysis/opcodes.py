"""EVM opcode table: int → (name, operand_size_in_bytes)."""

from __future__ import annotations

# Opcodes the classifier and proxy detector match on
PUSH4 = 0x63
PUSH20 = 0x73
PUSH32 = 0x7F
DELEGATECALL = 0xF4

# Contiguous runs of zero-operand opcodes, keyed by first opcode
_RUNS: dict[int, tuple[str, ...]] = {
    0x00: (
        "STOP", "ADD", "MUL", "SUB", "DIV", "SDIV", "MOD", "SMOD",
        "ADDMOD", "MULMOD", "EXP", "SIGNEXTEND",
    ),
    0x10: (
        "LT", "GT", "SLT", "SGT", "EQ", "ISZERO", "AND", "OR", "XOR",
        "NOT", "BYTE", "SHL", "SHR", "SAR",
    ),
    0x20: ("SHA3",),
    0x30: (
        "ADDRESS", "BALANCE", "ORIGIN", "CALLER", "CALLVALUE",
        "CALLDATALOAD", "CALLDATASIZE", "CALLDATACOPY", "CODESIZE",
        "CODECOPY", "GASPRICE", "EXTCODESIZE", "EXTCODECOPY",
        "RETURNDATASIZE", "RETURNDATACOPY", "EXTCODEHASH",
    ),
    0x40: (
        "BLOCKHASH", "COINBASE", "TIMESTAMP", "NUMBER", "PREVRANDAO",
        "GASLIMIT", "CHAINID", "SELFBALANCE", "BASEFEE", "BLOBHASH",
        "BLOBBASEFEE",
    ),
    0x50: (
        "POP", "MLOAD", "MSTORE", "MSTORE8", "SLOAD", "SSTORE", "JUMP",
        "JUMPI", "PC", "MSIZE", "GAS", "JUMPDEST", "TLOAD", "TSTORE",
        "MCOPY", "PUSH0",
    ),
    0xA0: ("LOG0", "LOG1", "LOG2", "LOG3", "LOG4"),
    0xF0: ("CREATE", "CALL", "CALLCODE", "RETURN", "DELEGATECALL", "CREATE2"),
    0xFA: ("STATICCALL",),
    0xFD: ("REVERT", "INVALID", "SELFDESTRUCT"),
}


def _build_table() -> dict[int, tuple[str, int]]:
    table: dict[int, tuple[str, int]] = {}
    for start, names in _RUNS.items():
        for i, name in enumerate(names):
            table[start + i] = (name, 0)
    for i in range(32):
        table[0x60 + i] = (f"PUSH{i + 1}", i + 1)
    for i in range(16):
        table[0x80 + i] = (f"DUP{i + 1}", 0)
        table[0x90 + i] = (f"SWAP{i + 1}", 0)
    return table


# (name, operand_size); operand_size is only non-zero for PUSH1..PUSH32
OPCODES: dict[int, tuple[str, int]] = _build_table()


def lookup(opcode: int) -> tuple[str, int]:
    """Return (name, operand_size) for an opcode, or ("UNKNOWN_XX", 0)."""
    if opcode in OPCODES:
        return OPCODES[opcode]
    return (f"UNKNOWN_{opcode:02X}", 0)
