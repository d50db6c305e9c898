"""Reference token standards: three selector tiers per ERC.

Each standard carries
- min:  selectors a contract must expose to qualify at all
- full: the canonical standard surface (used by percent scoring)
- max:  full plus widely adopted optional extensions (used for points)

Tiers must nest (min ⊆ full ⊆ max); a registry refuses to build otherwise.
"""

from __future__ import annotations

import functools
import json
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from erc_detector.analysis.signatures import (
    entry_selector,
    get_sigs,
    normalize_selector,
    text_signature,
)
from erc_detector.errors import RegistryError

logger = logging.getLogger(__name__)

ABI_DIR = Path(__file__).resolve().parent.parent / "abis"

# Registry order decides min-gate ties: first qualifying standard wins
DEFAULT_STANDARDS = ("erc20", "erc721", "erc1155")


@dataclass(frozen=True, slots=True)
class StandardSpec:
    name: str
    min: frozenset[str]
    full: frozenset[str]
    max: frozenset[str]
    # selector → "name(types)" for every max-tier entry
    names: dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    @property
    def label(self) -> str:
        return self.name.upper()

    def validate(self) -> None:
        """Raise RegistryError unless min ⊆ full ⊆ max."""
        if not self.min:
            raise RegistryError(f"{self.label}: min tier is empty")
        missing = self.min - self.full
        if missing:
            raise RegistryError(
                f"{self.label}: min selectors missing from full tier: {sorted(missing)}"
            )
        missing = self.full - self.max
        if missing:
            raise RegistryError(
                f"{self.label}: full selectors missing from max tier: {sorted(missing)}"
            )

    @classmethod
    def from_abis(
        cls,
        name: str,
        min_abi: list[Any],
        full_abi: list[Any],
        max_abi: list[Any],
    ) -> StandardSpec:
        return cls(
            name=name,
            min=get_sigs(min_abi),
            full=get_sigs(full_abi),
            max=get_sigs(max_abi),
            names=_signature_names(max_abi),
        )


def _signature_names(abi: list[Any]) -> dict[str, str]:
    names: dict[str, str] = {}
    for entry in abi:
        selector = entry_selector(entry)
        if selector is not None:
            names[selector] = text_signature(entry)
    return names


@dataclass(frozen=True, slots=True)
class StandardRegistry:
    """Immutable, ordered set of standards handed to the classifiers."""

    standards: tuple[StandardSpec, ...]

    def __post_init__(self) -> None:
        if not self.standards:
            raise RegistryError("Registry needs at least one standard")
        seen: set[str] = set()
        for spec in self.standards:
            if spec.name in seen:
                raise RegistryError(f"Duplicate standard: {spec.label}")
            seen.add(spec.name)
            spec.validate()

    def __iter__(self) -> Iterator[StandardSpec]:
        return iter(self.standards)

    def __len__(self) -> int:
        return len(self.standards)

    def get(self, name: str) -> StandardSpec:
        for spec in self.standards:
            if spec.name == name.lower():
                return spec
        raise KeyError(name)

    def describe(self, selector: str) -> str | None:
        """Text signature for a selector known to any standard's max tier."""
        key = normalize_selector(selector)
        for spec in self.standards:
            if key in spec.names:
                return spec.names[key]
        return None


def _read_abi(path: Path) -> list[Any]:
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        raise RegistryError(f"Cannot load reference ABI {path.name}: {e}") from e


def load_registry(
    abi_dir: Path = ABI_DIR, names: tuple[str, ...] = DEFAULT_STANDARDS
) -> StandardRegistry:
    """Build a registry from <NAME>-min.json, <NAME>.json and <NAME>-max.json.

    Raises RegistryError if a file is missing or the tiers do not nest.
    """
    specs = []
    for name in names:
        stem = name.upper()
        specs.append(
            StandardSpec.from_abis(
                name,
                _read_abi(abi_dir / f"{stem}-min.json"),
                _read_abi(abi_dir / f"{stem}.json"),
                _read_abi(abi_dir / f"{stem}-max.json"),
            )
        )
    registry = StandardRegistry(tuple(specs))
    logger.debug(
        "Loaded %d reference standards from %s", len(registry), abi_dir
    )
    return registry


@functools.lru_cache(maxsize=1)
def default_registry() -> StandardRegistry:
    """The bundled ERC20/ERC721/ERC1155 registry, loaded once per process."""
    return load_registry()
