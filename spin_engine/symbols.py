"""
REELFORGE — Symbol Configuration

Symbols are a tagged variant: one `SymbolCategory` plus the payload that
category owns.

    normal   → `payouts`  (run length → multiplier of the base bet)
    wild     → `wild`     (substitution rule; default: every normal symbol)
    scatter  → `scatter`  (board-wide count → multiplier of the base bet)

The line evaluator branches on `category` directly; there is no symbol class
hierarchy.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from spin_engine.errors import ConfigError

SymbolId = str


class SymbolCategory(str, Enum):
    NORMAL  = "normal"
    WILD    = "wild"
    SCATTER = "scatter"


def _lookup_by_count(table: dict[int, float], count: int) -> float:
    """Exact key, else the largest key below `count`, else 0."""
    if count in table:
        return table[count]
    eligible = [k for k in table if k <= count]
    return table[max(eligible)] if eligible else 0.0


# ═══════════════════════════════════════════════════════════════
# Category payloads
# ═══════════════════════════════════════════════════════════════

class WildRule(BaseModel):
    """Which normal symbols a wild may stand in for."""
    model_config = ConfigDict(frozen=True)

    substitutes: Optional[list[SymbolId]] = None   # None = every normal symbol

    def allows(self, symbol_id: SymbolId) -> bool:
        return self.substitutes is None or symbol_id in self.substitutes


class ScatterPayout(BaseModel):
    """Board-wide scatter pay, keyed by scatter count."""
    model_config = ConfigDict(frozen=True)

    min_count: int = Field(3, ge=1)
    payout_by_count: dict[int, float] = Field(default_factory=dict)

    @field_validator("payout_by_count")
    @classmethod
    def _non_negative(cls, v: dict[int, float]) -> dict[int, float]:
        for count, pay in v.items():
            if count < 1 or pay < 0:
                raise ValueError(f"invalid scatter payout {count}: {pay}")
        return v

    def lookup(self, count: int) -> float:
        if count < self.min_count:
            return 0.0
        return _lookup_by_count(self.payout_by_count, count)


# ═══════════════════════════════════════════════════════════════
# Symbol definition
# ═══════════════════════════════════════════════════════════════

class SymbolDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: SymbolId
    name: str = ""
    category: SymbolCategory = SymbolCategory.NORMAL
    payouts: dict[int, float] = Field(default_factory=dict)
    wild: Optional[WildRule] = None
    scatter: Optional[ScatterPayout] = None
    weight: float = Field(1.0, ge=0)              # default appearance weight

    @field_validator("id")
    @classmethod
    def _strip_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("symbol id must not be empty")
        return v

    @field_validator("payouts")
    @classmethod
    def _valid_payouts(cls, v: dict[int, float]) -> dict[int, float]:
        for count, pay in v.items():
            if count < 1 or pay < 0:
                raise ValueError(f"invalid line payout {count}: {pay}")
        return v

    @model_validator(mode="after")
    def _payload_matches_category(self) -> "SymbolDefinition":
        if self.category is SymbolCategory.NORMAL:
            if self.wild is not None or self.scatter is not None:
                raise ValueError(f"{self.id}: normal symbols carry only line payouts")
        elif self.category is SymbolCategory.WILD:
            if self.scatter is not None or self.payouts:
                raise ValueError(f"{self.id}: wild symbols carry only a substitution rule")
        elif self.category is SymbolCategory.SCATTER:
            if self.wild is not None or self.payouts:
                raise ValueError(f"{self.id}: scatter symbols carry only a scatter payout")
        return self

    @property
    def is_wild(self) -> bool:
        return self.category is SymbolCategory.WILD

    @property
    def is_scatter(self) -> bool:
        return self.category is SymbolCategory.SCATTER

    @property
    def wild_rule(self) -> WildRule:
        return self.wild or WildRule()

    @property
    def min_payable_count(self) -> Optional[int]:
        paying = [k for k, v in self.payouts.items() if v > 0]
        return min(paying) if paying else None

    def line_payout(self, count: int) -> float:
        """Multiplier for a run of `count`; 0 below the minimum payable run."""
        minimum = self.min_payable_count
        if minimum is None or count < minimum:
            return 0.0
        return _lookup_by_count(self.payouts, count)


# ═══════════════════════════════════════════════════════════════
# Symbol table
# ═══════════════════════════════════════════════════════════════

class SymbolTable:
    """Validated, read-only view over a list of symbol definitions."""

    def __init__(self, symbols: list[SymbolDefinition]):
        if not symbols:
            raise ConfigError("Symbol table is empty")
        self._order: list[SymbolId] = []
        self._by_id: dict[SymbolId, SymbolDefinition] = {}
        for sym in symbols:
            if sym.id in self._by_id:
                raise ConfigError(f"Duplicate symbol id: {sym.id}")
            self._by_id[sym.id] = sym
            self._order.append(sym.id)

        self.wilds = frozenset(s for s in self._order if self._by_id[s].is_wild)
        self.scatters = frozenset(s for s in self._order if self._by_id[s].is_scatter)
        self.normals = frozenset(s for s in self._order
                                 if self._by_id[s].category is SymbolCategory.NORMAL)

        for wid in self.wilds:
            subs = self._by_id[wid].wild_rule.substitutes or []
            for target in subs:
                if target not in self.normals:
                    raise ConfigError(
                        f"Wild {wid} may only substitute normal symbols, got {target!r}")

    def __contains__(self, symbol_id: object) -> bool:
        return symbol_id in self._by_id

    def __iter__(self) -> Iterator[SymbolDefinition]:
        return (self._by_id[s] for s in self._order)

    def __len__(self) -> int:
        return len(self._order)

    @property
    def ids(self) -> list[SymbolId]:
        return list(self._order)

    def get(self, symbol_id: SymbolId) -> SymbolDefinition:
        try:
            return self._by_id[symbol_id]
        except KeyError:
            raise ConfigError(f"Unknown symbol: {symbol_id}") from None

    def scatter_payout_table(self) -> Optional[ScatterPayout]:
        """First scatter with a payout table (board-wide pays use one table)."""
        for sid in self._order:
            sym = self._by_id[sid]
            if sym.is_scatter and sym.scatter is not None:
                return sym.scatter
        return None


# ═══════════════════════════════════════════════════════════════
# Defaults
# ═══════════════════════════════════════════════════════════════

def default_symbols() -> list[SymbolDefinition]:
    """Demo symbol set: three highs, four lows, one wild, one scatter."""
    return [
        SymbolDefinition(id="H1", name="High 1", payouts={3: 1.0, 4: 4.0, 5: 20.0}, weight=5),
        SymbolDefinition(id="H2", name="High 2", payouts={3: 0.8, 4: 3.0, 5: 15.0}, weight=6),
        SymbolDefinition(id="H3", name="High 3", payouts={3: 0.6, 4: 2.0, 5: 10.0}, weight=8),
        SymbolDefinition(id="L1", name="Low 1", payouts={3: 0.2, 4: 0.6, 5: 2.0}, weight=15),
        SymbolDefinition(id="L2", name="Low 2", payouts={3: 0.2, 4: 0.6, 5: 2.0}, weight=15),
        SymbolDefinition(id="L3", name="Low 3", payouts={3: 0.1, 4: 0.3, 5: 1.0}, weight=20),
        SymbolDefinition(id="L4", name="Low 4", payouts={3: 0.1, 4: 0.3, 5: 1.0}, weight=20),
        SymbolDefinition(id="WILD", name="Wild", category=SymbolCategory.WILD, weight=3),
        SymbolDefinition(
            id="SCATTER", name="Scatter", category=SymbolCategory.SCATTER, weight=3,
            scatter=ScatterPayout(min_count=3, payout_by_count={3: 2.0, 4: 10.0, 5: 50.0}),
        ),
    ]
