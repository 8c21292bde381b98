"""
REELFORGE — Board Model & Generator

A board is a column-major grid: `reels[col][row]`. The generator draws every
cell independently from its reel's weight table, one `rng.random()` call per
cell, columns left to right, rows top to bottom. For a fixed seed the output
is bit-for-bit reproducible.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from spin_engine.errors import ConfigError
from spin_engine.rng import RandomSource
from spin_engine.symbols import SymbolId, SymbolTable


class BoardConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    cols: int = Field(5, ge=1)
    rows: int = Field(3, ge=1)

    @property
    def cells(self) -> int:
        return self.cols * self.rows


@dataclass(frozen=True)
class Board:
    """Immutable grid produced by one spin."""
    reels: tuple[tuple[SymbolId, ...], ...]

    @property
    def cols(self) -> int:
        return len(self.reels)

    @property
    def rows(self) -> int:
        return len(self.reels[0]) if self.reels else 0

    def cell(self, col: int, row: int) -> SymbolId:
        return self.reels[col][row]

    def count(self, symbol_ids: frozenset) -> int:
        return sum(1 for reel in self.reels for sid in reel if sid in symbol_ids)

    def to_dict(self) -> dict:
        return {
            "reels": [list(reel) for reel in self.reels],
            "cols": self.cols,
            "rows": self.rows,
        }

    @classmethod
    def from_rows(cls, rows: list[list[SymbolId]]) -> "Board":
        """Build from the row-major layout people usually type in tests."""
        return cls(reels=tuple(zip(*rows)))


class BoardGenerator:
    """Weighted per-reel board draw."""

    def __init__(self, board_config: BoardConfig, symbols: SymbolTable,
                 reel_weights: Optional[list[dict[SymbolId, float]]] = None):
        self.board_config = board_config
        self.symbols = symbols

        if reel_weights is None:
            base = {sym.id: sym.weight for sym in symbols}
            reel_weights = [base] * board_config.cols
        elif len(reel_weights) != board_config.cols:
            raise ConfigError(
                f"Expected {board_config.cols} reel weight tables, got {len(reel_weights)}")

        # Cumulative weights per reel for fast sampling
        self._reels: list[tuple[list[SymbolId], list[float], float]] = []
        for col, weights in enumerate(reel_weights):
            ids: list[SymbolId] = []
            cumulative: list[float] = []
            running = 0.0
            for sid, w in weights.items():
                if sid not in symbols:
                    raise ConfigError(f"Reel {col}: unknown symbol {sid!r}")
                if w < 0:
                    raise ConfigError(f"Reel {col}: negative weight for {sid}")
                if w == 0:
                    continue
                running += w
                ids.append(sid)
                cumulative.append(running)
            if running <= 0:
                raise ConfigError(f"Reel {col}: all symbol weights are zero")
            self._reels.append((ids, cumulative, running))

    def draw_cell(self, col: int, rng: RandomSource) -> SymbolId:
        ids, cumulative, total = self._reels[col]
        r = rng.random() * total
        for sid, cw in zip(ids, cumulative):
            if r < cw:
                return sid
        # random() < 1.0, but float rounding can land exactly on total
        return ids[-1]

    def generate(self, rng: RandomSource) -> Board:
        rows = range(self.board_config.rows)
        return Board(reels=tuple(
            tuple(self.draw_cell(col, rng) for _ in rows)
            for col in range(len(self._reels))
        ))

    def probability(self, col: int, symbol_ids: frozenset) -> float:
        """P(a cell on reel `col` holds one of `symbol_ids`)."""
        ids, cumulative, total = self._reels[col]
        hit = 0.0
        prev = 0.0
        for sid, cw in zip(ids, cumulative):
            if sid in symbol_ids:
                hit += cw - prev
            prev = cw
        return hit / total
