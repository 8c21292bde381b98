"""
REELFORGE — Payline Configuration

Each payline is an ordered list of (col, row) coordinates, one per column,
walked left to right by the line evaluator.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from spin_engine.board import BoardConfig
from spin_engine.errors import ConfigError

Position = tuple[int, int]


class LinePattern(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    positions: list[Position]


class LinesConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    patterns: list[LinePattern] = Field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.patterns)

    def validate_against(self, board: BoardConfig) -> None:
        """Every line spans all columns in order and stays inside the board."""
        if not self.patterns:
            raise ConfigError("No paylines configured")
        for idx, pattern in enumerate(self.patterns):
            if len(pattern.positions) != board.cols:
                raise ConfigError(
                    f"Line {idx} has {len(pattern.positions)} positions, board has {board.cols} columns")
            for col_expected, (col, row) in enumerate(pattern.positions):
                if col != col_expected:
                    raise ConfigError(f"Line {idx}: position {col_expected} is on column {col}")
                if not 0 <= row < board.rows:
                    raise ConfigError(f"Line {idx}: row {row} outside 0..{board.rows - 1}")

    def with_count(self, count: int, board: BoardConfig) -> "LinesConfig":
        """Truncate to `count` lines, or pad with middle-row lines."""
        if count < 1:
            raise ConfigError("Line count must be at least 1")
        patterns = list(self.patterns[:count])
        middle = [(c, board.rows // 2) for c in range(board.cols)]
        for i in range(len(patterns), count):
            patterns.append(LinePattern(id=i, positions=list(middle)))
        return LinesConfig(patterns=patterns)


# Classic 20-line layout for 5×3, written as the row index per column.
_CLASSIC_5X3 = [
    [1, 1, 1, 1, 1],   # middle
    [0, 0, 0, 0, 0],   # top
    [2, 2, 2, 2, 2],   # bottom
    [0, 1, 2, 1, 0],   # V
    [2, 1, 0, 1, 2],   # inverted V
    [0, 0, 1, 0, 0],
    [2, 2, 1, 2, 2],
    [1, 0, 0, 0, 1],
    [1, 2, 2, 2, 1],
    [1, 0, 1, 0, 1],
    [1, 2, 1, 2, 1],
    [0, 1, 0, 1, 0],
    [2, 1, 2, 1, 2],
    [1, 0, 1, 2, 1],
    [1, 2, 1, 0, 1],
    [0, 0, 1, 2, 2],
    [2, 2, 1, 0, 0],
    [1, 1, 0, 1, 1],
    [1, 1, 2, 1, 1],
    [0, 2, 0, 2, 0],   # W
]


def _from_rows(rows_per_line: list[list[int]]) -> LinesConfig:
    return LinesConfig(patterns=[
        LinePattern(id=i, positions=[(col, row) for col, row in enumerate(rows)])
        for i, rows in enumerate(rows_per_line)
    ])


def default_lines(board: BoardConfig) -> LinesConfig:
    """20 classic lines on 5×3; straight rows plus zigzags elsewhere."""
    if board.cols == 5 and board.rows == 3:
        return _from_rows(_CLASSIC_5X3)

    mid = board.rows // 2
    rows_per_line = [[mid] * board.cols]
    rows_per_line += [[r] * board.cols for r in range(board.rows) if r != mid]
    if board.rows >= 2:
        rows_per_line.append([c % board.rows for c in range(board.cols)])
        rows_per_line.append([(board.rows - 1 - c) % board.rows for c in range(board.cols)])
    # dedupe, keep order
    seen = set()
    unique = []
    for rows in rows_per_line:
        key = tuple(rows)
        if key not in seen:
            seen.add(key)
            unique.append(rows)
    return _from_rows(unique)
