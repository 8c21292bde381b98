"""
REELFORGE — Line Evaluator

Scores a board against the payline ruleset.

Per payline (left to right from column 0):
  • anchor = symbol at column 0, or the first non-wild symbol if column 0 is wild
  • a run consumes cells equal to the anchor, or wilds allowed to substitute it
  • the run stops at the first non-matching cell; no gaps, no wraparound
  • scatter anchors and all-wild lines never form a line win
  • payout = paytable[anchor][run] × base bet; zero pays are not recorded

Scatters are counted board-wide and paid from the scatter table by count.
Total raw win = Σ line payouts + scatter payout.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from spin_engine.board import Board, BoardConfig
from spin_engine.errors import EvaluationError
from spin_engine.lines import LinesConfig, Position
from spin_engine.symbols import SymbolCategory, SymbolId, SymbolTable


@dataclass(frozen=True)
class WinningLine:
    line_index: int
    positions: tuple[Position, ...]       # matched prefix of the line
    symbol: SymbolId
    count: int
    payout: float
    has_wild: bool = False
    wild_positions: tuple[Position, ...] = ()

    def to_dict(self) -> dict:
        d = {
            "lineIndex": self.line_index,
            "positions": [list(p) for p in self.positions],
            "symbol": self.symbol,
            "count": self.count,
            "payout": self.payout,
            "hasWild": self.has_wild,
        }
        if self.wild_positions:
            d["wildPositions"] = [list(p) for p in self.wild_positions]
        return d


@dataclass(frozen=True)
class LineEvaluation:
    winning_lines: tuple[WinningLine, ...] = ()
    best_line: Optional[WinningLine] = None
    line_win: float = 0.0
    scatter_count: int = 0
    scatter_payout: float = 0.0
    raw_win: float = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "raw_win", self.line_win + self.scatter_payout)


def pick_best_line(lines) -> Optional[WinningLine]:
    """Strictly greatest payout; ties keep the lowest line index."""
    best = None
    for line in lines:
        if best is None or line.payout > best.payout or (
                line.payout == best.payout and line.line_index < best.line_index):
            best = line
    return best


class LineEvaluator:
    """Precomputes lookup tables once; `evaluate` runs per spin."""

    def __init__(self, board_config: BoardConfig, symbols: SymbolTable, lines: LinesConfig):
        lines.validate_against(board_config)
        self.board_config = board_config
        self.symbols = symbols
        self.lines = lines

        self._paths: list[tuple[Position, ...]] = [tuple(p.positions) for p in lines.patterns]
        self._category: dict[SymbolId, SymbolCategory] = {s.id: s.category for s in symbols}
        # wild id → set of symbols it may replace (None = any normal)
        self._wild_targets: dict[SymbolId, Optional[frozenset]] = {}
        for sym in symbols:
            if sym.is_wild:
                subs = sym.wild_rule.substitutes
                self._wild_targets[sym.id] = None if subs is None else frozenset(subs)
        # normal id → payout multiplier indexed by run length
        self._pay: dict[SymbolId, list[float]] = {
            sym.id: [sym.line_payout(n) for n in range(board_config.cols + 1)]
            for sym in symbols if sym.category is SymbolCategory.NORMAL
        }
        self._scatter_table = symbols.scatter_payout_table()

    def _check_geometry(self, board: Board) -> None:
        if board.cols != self.board_config.cols or board.rows != self.board_config.rows:
            raise EvaluationError(
                f"Board is {board.cols}x{board.rows}, ruleset expects "
                f"{self.board_config.cols}x{self.board_config.rows}")
        if any(len(reel) != self.board_config.rows for reel in board.reels):
            raise EvaluationError("Board reels have uneven heights")

    def _wild_allows(self, wild_id: SymbolId, anchor: SymbolId) -> bool:
        targets = self._wild_targets[wild_id]
        return targets is None or anchor in targets

    def evaluate_line(self, board: Board, line_index: int, base_bet: float) -> Optional[WinningLine]:
        path = self._paths[line_index]
        reels = board.reels
        cells = [reels[c][r] for c, r in path]

        anchor = None
        for sid in cells:
            cat = self._category.get(sid)
            if cat is SymbolCategory.WILD:
                continue
            if cat is SymbolCategory.NORMAL:
                anchor = sid
            elif cat is SymbolCategory.SCATTER:
                anchor = None
            else:
                raise EvaluationError(f"Unknown symbol on board: {sid!r}")
            break
        if anchor is None:
            return None

        count = 0
        wild_positions = []
        for i, sid in enumerate(cells):
            if sid == anchor:
                count += 1
            elif sid in self._wild_targets and self._wild_allows(sid, anchor):
                count += 1
                wild_positions.append(path[i])
            else:
                break

        multiplier = self._pay[anchor][count]
        if multiplier <= 0:
            return None
        return WinningLine(
            line_index=line_index,
            positions=path[:count],
            symbol=anchor,
            count=count,
            payout=multiplier * base_bet,
            has_wild=bool(wild_positions),
            wild_positions=tuple(wild_positions),
        )

    def count_scatters(self, board: Board) -> int:
        return board.count(self.symbols.scatters)

    def evaluate(self, board: Board, base_bet: float = 1.0) -> LineEvaluation:
        self._check_geometry(board)

        winning = []
        for idx in range(len(self._paths)):
            line = self.evaluate_line(board, idx, base_bet)
            if line is not None:
                winning.append(line)

        scatter_count = self.count_scatters(board)
        scatter_payout = 0.0
        if self._scatter_table is not None:
            scatter_payout = self._scatter_table.lookup(scatter_count) * base_bet

        return LineEvaluation(
            winning_lines=tuple(winning),
            best_line=pick_best_line(winning),
            line_win=sum(line.payout for line in winning),
            scatter_count=scatter_count,
            scatter_payout=scatter_payout,
        )
