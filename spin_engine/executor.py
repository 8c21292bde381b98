"""
REELFORGE — Spin Executor

One session = one executor. It owns the session's RNG stream and the
current `FreeSpinState`, and runs the per-spin pipeline in strict order:

    generate board → evaluate lines → advance free spins → compose packet

The ruleset is validated once, here; after construction `spin()` does not
raise for a valid game.
"""

from __future__ import annotations

import logging
from typing import Optional

from spin_engine.board import BoardGenerator
from spin_engine.errors import ConfigError
from spin_engine.evaluator import LineEvaluator
from spin_engine.free_spin import FreeSpinState, FreeSpinStateMachine
from spin_engine.game import GameConfig
from spin_engine.rng import RandomSource, make_rng
from spin_engine.settlement import SettlementComposer, SpinPacket

logger = logging.getLogger("reelforge.engine")


class SpinExecutor:

    def __init__(self, game: GameConfig, rng: Optional[RandomSource] = None,
                 visual: Optional[dict] = None, assets: Optional[dict] = None):
        game.validate_ruleset()
        self.game = game

        symbols = game.symbol_table()
        self.generator = BoardGenerator(game.board, symbols, game.reel_weights)
        self.evaluator = LineEvaluator(game.board, symbols, game.resolved_lines())
        self.machine = FreeSpinStateMachine(game.free_spins)
        self.composer = SettlementComposer(
            include_free_spin_state=game.free_spins.enabled, visual=visual, assets=assets)

        self.rng = rng if rng is not None else make_rng()
        self._state = self.machine.initial_state()
        logger.debug(f"Executor ready for '{game.name}' "
                     f"({self.evaluator.lines.count} lines, free spins "
                     f"{'on' if game.free_spins.enabled else 'off'})")

    @property
    def state(self) -> FreeSpinState:
        return self._state

    def reset(self) -> None:
        """Drop any bonus in progress; the RNG stream continues."""
        self._state = self.machine.initial_state()

    def spin(self, base_bet: float = 1.0) -> SpinPacket:
        if base_bet <= 0:
            raise ConfigError(f"base_bet must be positive, got {base_bet}")
        board = self.generator.generate(self.rng)
        evaluation = self.evaluator.evaluate(board, base_bet)
        transition = self.machine.advance(self._state, evaluation.scatter_count, evaluation.raw_win)
        packet = self.composer.compose(board, evaluation, transition)
        self._state = transition.state
        return packet
