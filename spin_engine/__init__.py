"""
REELFORGE — Spin Evaluation Engine

Board draw + ruleset → scored outcome + free-spin transition, emitted as one
`SpinPacket`.

Usage:
    from spin_engine import SpinExecutor, default_game_config, make_rng
    executor = SpinExecutor(default_game_config(), rng=make_rng(42))
    packet = executor.spin(base_bet=1.0)
    print(packet.meta.win, packet.to_dict()["meta"]["outcomeId"])
"""

from spin_engine.board import Board, BoardConfig, BoardGenerator
from spin_engine.errors import ConfigError, EvaluationError, ReelForgeError
from spin_engine.evaluator import LineEvaluation, LineEvaluator, WinningLine
from spin_engine.executor import SpinExecutor
from spin_engine.free_spin import (
    FreeSpinConfig, FreeSpinMode, FreeSpinState, FreeSpinStateMachine, FreeSpinTransition,
)
from spin_engine.game import GameConfig, default_game_config, load_game_config
from spin_engine.lines import LinePattern, LinesConfig, default_lines
from spin_engine.rng import FastRNG, RandomSource, make_rng
from spin_engine.settlement import SettlementComposer, SettlementMeta, SpinPacket
from spin_engine.symbols import (
    ScatterPayout, SymbolCategory, SymbolDefinition, SymbolTable, WildRule, default_symbols,
)

__all__ = [
    "Board", "BoardConfig", "BoardGenerator",
    "ConfigError", "EvaluationError", "ReelForgeError",
    "LineEvaluation", "LineEvaluator", "WinningLine",
    "SpinExecutor",
    "FreeSpinConfig", "FreeSpinMode", "FreeSpinState", "FreeSpinStateMachine", "FreeSpinTransition",
    "GameConfig", "default_game_config", "load_game_config",
    "LinePattern", "LinesConfig", "default_lines",
    "FastRNG", "RandomSource", "make_rng",
    "SettlementComposer", "SettlementMeta", "SpinPacket",
    "ScatterPayout", "SymbolCategory", "SymbolDefinition", "SymbolTable", "WildRule", "default_symbols",
]
