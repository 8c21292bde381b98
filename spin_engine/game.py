"""
REELFORGE — Game Ruleset

`GameConfig` is the single aggregate the engine boots from: board geometry,
symbol table, paylines, reel weights and free-spin rules. Field-level checks
are pydantic's; cross-field checks live in `validate_ruleset()` and raise
`ConfigError`.

Usage:
    from spin_engine.game import load_game_config
    game = load_game_config("games/demo.json")
    print(game.model_dump_json(indent=2))
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, Field, ValidationError

from spin_engine.board import BoardConfig, BoardGenerator
from spin_engine.errors import ConfigError
from spin_engine.free_spin import FreeSpinConfig
from spin_engine.lines import LinesConfig, default_lines
from spin_engine.symbols import SymbolDefinition, SymbolId, SymbolTable, default_symbols

logger = logging.getLogger("reelforge.game")


class GameConfig(BaseModel):
    name: str = "Untitled"
    board: BoardConfig = Field(default_factory=BoardConfig)
    symbols: list[SymbolDefinition] = Field(default_factory=default_symbols)
    lines: Optional[LinesConfig] = None               # None = default layout for the board
    line_count: Optional[int] = Field(None, ge=1)     # truncate / pad the line set
    reel_weights: Optional[list[dict[SymbolId, float]]] = None
    free_spins: FreeSpinConfig = Field(default_factory=FreeSpinConfig)

    def symbol_table(self) -> SymbolTable:
        return SymbolTable(self.symbols)

    def resolved_lines(self) -> LinesConfig:
        lines = self.lines if self.lines is not None else default_lines(self.board)
        if self.line_count is not None and self.line_count != lines.count:
            lines = lines.with_count(self.line_count, self.board)
        return lines

    def validate_ruleset(self) -> "GameConfig":
        """Cross-field checks. Raises ConfigError; returns self for chaining."""
        table = self.symbol_table()
        self.resolved_lines().validate_against(self.board)
        # Building the generator checks reel count, unknown ids and zero reels.
        BoardGenerator(self.board, table, self.reel_weights)

        if self.free_spins.enabled and not table.scatters:
            logger.warning(f"{self.name}: free spins enabled but no scatter symbol defined")
        return self


def load_game_config(source: Union[dict, str, Path]) -> GameConfig:
    """Load and validate a ruleset from a dict, a JSON string or a file path."""
    try:
        if isinstance(source, dict):
            game = GameConfig.model_validate(source)
        elif isinstance(source, str) and source.lstrip().startswith("{"):
            game = GameConfig.model_validate_json(source)
        else:
            path = Path(source)
            if not path.exists():
                raise ConfigError(f"Game config not found: {path}")
            game = GameConfig.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except ValidationError as e:
        logger.error(f"Rejected game config: {e.error_count()} validation error(s)")
        raise ConfigError(str(e)) from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Game config is not valid JSON: {e}") from e

    game.validate_ruleset()
    logger.info(f"Loaded game '{game.name}': {game.board.cols}x{game.board.rows}, "
                f"{len(game.symbols)} symbols, {game.resolved_lines().count} lines")
    return game


def default_game_config() -> GameConfig:
    """5×3, 20 lines, demo symbols, free spins on."""
    return GameConfig(name="Demo Reels")
