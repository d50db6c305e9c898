"""Token standard classification of an ABI or of deployed bytecode.

Two scoring strategies are available:

- percent: share of a standard's full tier that is present; the best share
  wins, ties go to the standard with the larger full tier, and the winner
  must reach the threshold.
- min_max: only standards whose whole min tier is present qualify; among
  those, the most max-tier selectors present wins, ties going to the first
  qualifying standard in registry order.

For ABIs, "present" means the selector is in the ABI's selector set. For
bytecode it means the selector text occurs in the bytecode hex, the same
approximation is_abi uses.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from erc_detector.analysis.disassembler import normalize_bytecode
from erc_detector.analysis.proxy import ProxyFinding, get_proxy_status
from erc_detector.analysis.signatures import get_sigs
from erc_detector.analysis.standards import StandardRegistry, default_registry
from erc_detector.errors import InvalidInputError

Predicate = Callable[[str], bool]


class Strategy(str, Enum):
    MIN_MAX = "min_max"
    PERCENT = "percent"


@dataclass(frozen=True, slots=True)
class MatchScore:
    standard: str
    percent: float
    total_checks: int


@dataclass(frozen=True, slots=True)
class PointScore:
    standard: str
    points: int


def score_percent(present: Predicate, registry: StandardRegistry) -> list[MatchScore]:
    """Percent of each standard's full tier that is present, in registry order."""
    scores: list[MatchScore] = []
    for spec in registry:
        checks = len(spec.full)
        matched = sum(1 for sig in spec.full if present(sig))
        percent = 100 * matched / checks if checks else 0.0
        scores.append(MatchScore(spec.label, percent, checks))
    return scores


def score_points(present: Predicate, registry: StandardRegistry) -> list[PointScore]:
    """Max-tier points for each standard whose min tier is fully present."""
    return [
        PointScore(spec.label, sum(1 for sig in spec.max if present(sig)))
        for spec in registry
        if all(present(sig) for sig in spec.min)
    ]


def _best_by_percent(
    present: Predicate, registry: StandardRegistry, threshold: float
) -> str | None:
    ranked = sorted(
        score_percent(present, registry),
        key=lambda s: (-s.percent, -s.total_checks),
    )
    best = ranked[0]
    return best.standard if best.percent >= threshold else None


def _best_by_points(present: Predicate, registry: StandardRegistry) -> str | None:
    scores = score_points(present, registry)
    if not scores:
        return None
    # sorted() is stable: equal points keep registry order
    return sorted(scores, key=lambda s: -s.points)[0].standard


def _coerce_strategy(strategy: Strategy | str) -> Strategy:
    try:
        return Strategy(strategy)
    except ValueError as e:
        raise InvalidInputError(f"Unknown strategy: {strategy!r}") from e


def _abi_predicate(abi: Any) -> Predicate:
    return get_sigs(abi).__contains__


def _bytecode_predicate(code: str) -> Predicate:
    return lambda sig: sig in code


# --- ABI ---


def get_erc_by_abi(abi: Any, registry: StandardRegistry | None = None) -> str | None:
    """Standard label for an ABI using the min-gate + max-score strategy."""
    return _best_by_points(_abi_predicate(abi), registry or default_registry())


def get_erc_by_abi_percent(
    abi: Any, percent: float = 100, registry: StandardRegistry | None = None
) -> str | None:
    """Standard label for an ABI whose full-tier coverage reaches percent."""
    return _best_by_percent(_abi_predicate(abi), registry or default_registry(), percent)


def classify_abi(
    abi: Any,
    strategy: Strategy | str = Strategy.MIN_MAX,
    *,
    threshold: float = 100,
    registry: StandardRegistry | None = None,
) -> str | None:
    if _coerce_strategy(strategy) is Strategy.PERCENT:
        return get_erc_by_abi_percent(abi, threshold, registry)
    return get_erc_by_abi(abi, registry)


# --- Bytecode ---


def get_erc_by_bytecode(
    bytecode: str, registry: StandardRegistry | None = None
) -> str | ProxyFinding | None:
    """Standard label for bytecode (min-gate + max-score).

    Falls back to the proxy finding when no standard qualifies.
    """
    code = normalize_bytecode(bytecode)
    label = _best_by_points(_bytecode_predicate(code), registry or default_registry())
    if label is not None:
        return label
    return get_proxy_status(code)


def get_erc_by_bytecode_percent(
    bytecode: str, percent: float = 100, registry: StandardRegistry | None = None
) -> str | ProxyFinding | None:
    """Standard label for bytecode by full-tier coverage, else proxy finding."""
    code = normalize_bytecode(bytecode)
    label = _best_by_percent(
        _bytecode_predicate(code), registry or default_registry(), percent
    )
    if label is not None:
        return label
    return get_proxy_status(code)


def classify_bytecode(
    bytecode: str,
    strategy: Strategy | str = Strategy.MIN_MAX,
    *,
    threshold: float = 100,
    registry: StandardRegistry | None = None,
) -> str | ProxyFinding | None:
    if _coerce_strategy(strategy) is Strategy.PERCENT:
        return get_erc_by_bytecode_percent(bytecode, threshold, registry)
    return get_erc_by_bytecode(bytecode, registry)
