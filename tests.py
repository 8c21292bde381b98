#!/usr/bin/env python3
"""
REELFORGE — Engine Unit & Integration Test Suite

Run: python tests.py
     python tests.py -v                # verbose
     python tests.py TestLineEvaluator # run specific class

Test categories:
  TestRNG                — splitmix stream, seed derivation
  TestBoardGenerator     — weighted draw, determinism, reel validation
  TestLineEvaluator      — anchors, wilds, scatters, pay lookup, best line
  TestFreeSpinMachine    — trigger / consume / retrigger / completion, invariants
  TestSettlement         — multiplier scaling, sum law, packet wire shape
  TestGameConfig         — ruleset validation and loading
  TestSpinExecutor       — full pipeline: determinism, laws, bonus flow
  TestRTPPreview         — scatter math, sampled line RTP, score histogram
  TestSettings           — env defaults, logging bootstrap
"""

import json
import logging
import re
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from spin_engine.board import Board, BoardConfig, BoardGenerator
from spin_engine.errors import ConfigError, EvaluationError, ReelForgeError
from spin_engine.evaluator import LineEvaluator, WinningLine, pick_best_line
from spin_engine.executor import SpinExecutor
from spin_engine.free_spin import (
    FreeSpinConfig, FreeSpinMode, FreeSpinState, FreeSpinStateMachine, FreeSpinTransition,
)
from spin_engine.game import GameConfig, default_game_config, load_game_config
from spin_engine.lines import LinePattern, LinesConfig, default_lines
from spin_engine.rng import FastRNG, derive_seed, make_rng
from spin_engine.rtp import (
    build_histogram, estimate_score_distribution, rtp_breakdown, scatter_count_distribution,
    scatter_rtp,
)
from spin_engine.settlement import SettlementComposer, outcome_id
from spin_engine.symbols import (
    ScatterPayout, SymbolCategory, SymbolDefinition, SymbolTable, WildRule, default_symbols,
)


# ── Fixtures ──

BOARD_3X1 = BoardConfig(cols=3, rows=1)
LINE_3X1 = LinesConfig(patterns=[LinePattern(id=0, positions=[(0, 0), (1, 0), (2, 0)])])


def _fruit_symbols(wild_subs=None):
    return [
        SymbolDefinition(id="CHERRY", payouts={3: 10}),
        SymbolDefinition(id="LEMON", payouts={3: 5, 4: 20}),
        SymbolDefinition(id="WILD", category=SymbolCategory.WILD,
                         wild=WildRule(substitutes=wild_subs) if wild_subs else None),
        SymbolDefinition(id="SCAT", category=SymbolCategory.SCATTER,
                         scatter=ScatterPayout(min_count=2, payout_by_count={2: 1, 3: 4})),
    ]


def _fruit_evaluator(wild_subs=None):
    return LineEvaluator(BOARD_3X1, SymbolTable(_fruit_symbols(wild_subs)), LINE_3X1)


def _row(*cells):
    return Board.from_rows([list(cells)])


def _scatter_heavy_game(**free_spin_overrides):
    """Default symbols on reels that are half scatter: bonus triggers almost every spin."""
    return GameConfig(
        name="Scatter Storm",
        reel_weights=[{"SCATTER": 1, "L1": 1}] * 5,
        free_spins=FreeSpinConfig(**free_spin_overrides),
    )


# ============================================================
# RNG
# ============================================================

class TestRNG(unittest.TestCase):
    """Splitmix64 stream used by every simulation run."""

    def test_random_in_unit_interval(self):
        """random() always lands in [0, 1)."""
        rng = FastRNG(12345)
        for _ in range(5000):
            x = rng.random()
            self.assertGreaterEqual(x, 0.0)
            self.assertLess(x, 1.0)

    def test_same_seed_same_stream(self):
        """Two generators with one seed produce identical draws."""
        a, b = make_rng(99), make_rng(99)
        self.assertEqual([a.random() for _ in range(50)], [b.random() for _ in range(50)])

    def test_state_round_trip(self):
        """getstate/setstate replays the stream."""
        rng = FastRNG(7)
        rng.random()
        saved = rng.getstate()
        first = [rng.random() for _ in range(5)]
        rng.setstate(saved)
        self.assertEqual([rng.random() for _ in range(5)], first)

    def test_derive_seed(self):
        """Child seeds are deterministic per label and distinct across labels."""
        self.assertEqual(derive_seed(42, "run-0"), derive_seed(42, "run-0"))
        self.assertNotEqual(derive_seed(42, "run-0"), derive_seed(42, "run-1"))

    def test_unseeded_rng_gets_seed(self):
        """make_rng() without a seed still records the seed it drew."""
        rng = make_rng()
        self.assertIsInstance(rng.seed, int)


# ============================================================
# Board Generator
# ============================================================

class TestBoardGenerator(unittest.TestCase):
    """Weighted per-reel board draw."""

    def setUp(self):
        self.table = SymbolTable(default_symbols())
        self.cfg = BoardConfig()

    def test_board_dimensions(self):
        """Generated board matches the configured geometry."""
        board = BoardGenerator(self.cfg, self.table).generate(make_rng(1))
        self.assertEqual(board.cols, 5)
        self.assertEqual(board.rows, 3)
        for reel in board.reels:
            for sid in reel:
                self.assertIn(sid, self.table)

    def test_deterministic_for_seed(self):
        """A fixed seed reproduces the same boards."""
        gen = BoardGenerator(self.cfg, self.table)
        r1, r2 = make_rng(2024), make_rng(2024)
        for _ in range(20):
            self.assertEqual(gen.generate(r1), gen.generate(r2))

    def test_single_symbol_reels(self):
        """A reel with one weighted symbol only ever shows that symbol."""
        gen = BoardGenerator(self.cfg, self.table, [{"H1": 1.0}] * 5)
        board = gen.generate(make_rng(3))
        self.assertEqual(board.count(frozenset({"H1"})), 15)

    def test_zero_weight_symbol_never_drawn(self):
        """Zero-weight entries are skipped."""
        gen = BoardGenerator(self.cfg, self.table, [{"H1": 1.0, "L1": 0.0}] * 5)
        rng = make_rng(4)
        for _ in range(50):
            self.assertEqual(gen.generate(rng).count(frozenset({"L1"})), 0)

    def test_all_zero_reel_rejected(self):
        """A reel whose weights sum to zero is a ConfigError."""
        weights = [{"H1": 1.0}] * 4 + [{"H1": 0.0, "L1": 0.0}]
        with self.assertRaises(ConfigError):
            BoardGenerator(self.cfg, self.table, weights)

    def test_negative_weight_rejected(self):
        """Negative weights are a ConfigError."""
        with self.assertRaises(ConfigError):
            BoardGenerator(self.cfg, self.table, [{"H1": 1.0, "L1": -1.0}] * 5)

    def test_unknown_symbol_rejected(self):
        """Reel weights may only name known symbols."""
        with self.assertRaises(ConfigError):
            BoardGenerator(self.cfg, self.table, [{"NOPE": 1.0}] * 5)

    def test_reel_count_must_match(self):
        """One weight table per column."""
        with self.assertRaises(ConfigError):
            BoardGenerator(self.cfg, self.table, [{"H1": 1.0}] * 3)

    def test_probability(self):
        """probability() reflects the reel's weight share."""
        gen = BoardGenerator(self.cfg, self.table, [{"H1": 1.0, "SCATTER": 3.0}] * 5)
        self.assertAlmostEqual(gen.probability(0, frozenset({"SCATTER"})), 0.75)

    def test_draw_cell_weight_bands(self):
        """draw_cell maps random() onto cumulative weight bands."""
        gen = BoardGenerator(self.cfg, self.table, [{"H1": 1.0, "SCATTER": 3.0}] * 5)

        class FixedRNG:
            def __init__(self, values):
                self.values = iter(values)

            def random(self):
                return next(self.values)

        draws = [gen.draw_cell(0, FixedRNG([v])) for v in (0.0, 0.2, 0.25, 0.9, 0.9999999)]
        self.assertEqual(draws, ["H1", "H1", "SCATTER", "SCATTER", "SCATTER"])

    def test_generate_draws_column_major(self):
        """generate() is draw_cell over columns, then rows, on one stream."""
        gen = BoardGenerator(self.cfg, self.table)
        board = gen.generate(make_rng(77))
        rng = make_rng(77)
        expected = tuple(tuple(gen.draw_cell(col, rng) for _ in range(3)) for col in range(5))
        self.assertEqual(board.reels, expected)

    def test_from_rows_transposes(self):
        """from_rows takes row-major input and stores columns."""
        board = Board.from_rows([["A", "B"], ["C", "D"]])
        self.assertEqual(board.reels, (("A", "C"), ("B", "D")))
        self.assertEqual(board.cell(1, 0), "B")


# ============================================================
# Line Evaluator
# ============================================================

class TestLineEvaluator(unittest.TestCase):
    """Per-line runs, wild substitution, board-wide scatters."""

    def test_three_cherries(self):
        """Three cherries on a 3-column line pay 10 at bet 1."""
        ev = _fruit_evaluator().evaluate(_row("CHERRY", "CHERRY", "CHERRY"), 1.0)
        self.assertEqual(len(ev.winning_lines), 1)
        line = ev.winning_lines[0]
        self.assertEqual(line.count, 3)
        self.assertEqual(line.payout, 10.0)
        self.assertFalse(line.has_wild)
        self.assertEqual(ev.raw_win, 10.0)

    def test_leading_wild_substitutes(self):
        """A wild in column 0 takes the first non-wild symbol as anchor."""
        ev = _fruit_evaluator().evaluate(_row("WILD", "CHERRY", "CHERRY"), 1.0)
        line = ev.winning_lines[0]
        self.assertEqual(line.symbol, "CHERRY")
        self.assertEqual(line.count, 3)
        self.assertEqual(line.payout, 10.0)
        self.assertTrue(line.has_wild)
        self.assertEqual(line.wild_positions, ((0, 0),))
        self.assertEqual(line.to_dict()["wildPositions"], [[0, 0]])

    def test_restricted_wild(self):
        """A wild that may not stand in for the anchor breaks the run."""
        ev = _fruit_evaluator(wild_subs=["LEMON"]).evaluate(_row("WILD", "CHERRY", "CHERRY"), 1.0)
        self.assertEqual(ev.winning_lines, ())
        ev = _fruit_evaluator(wild_subs=["LEMON"]).evaluate(_row("LEMON", "WILD", "LEMON"), 1.0)
        self.assertEqual(ev.winning_lines[0].payout, 5.0)

    def test_all_wild_line_pays_nothing(self):
        """A line made only of wilds has no anchor."""
        ev = _fruit_evaluator().evaluate(_row("WILD", "WILD", "WILD"), 1.0)
        self.assertEqual(ev.winning_lines, ())
        self.assertIsNone(ev.best_line)
        self.assertEqual(ev.raw_win, 0.0)

    def test_scatter_anchor_pays_no_line(self):
        """Scatters never form line wins."""
        ev = _fruit_evaluator().evaluate(_row("SCAT", "CHERRY", "CHERRY"), 1.0)
        self.assertEqual(ev.winning_lines, ())
        self.assertEqual(ev.scatter_count, 1)
        self.assertEqual(ev.scatter_payout, 0.0)

    def test_scatter_board_wide(self):
        """Scatter pay depends only on the count and scales with bet."""
        ev = _fruit_evaluator().evaluate(_row("SCAT", "LEMON", "SCAT"), 2.0)
        self.assertEqual(ev.scatter_count, 2)
        self.assertEqual(ev.scatter_payout, 2.0)
        self.assertEqual(ev.raw_win, 2.0)

    def test_short_run_not_recorded(self):
        """Runs below the minimum payable length are dropped."""
        ev = _fruit_evaluator().evaluate(_row("CHERRY", "CHERRY", "LEMON"), 1.0)
        self.assertEqual(ev.winning_lines, ())

    def test_run_stops_at_first_mismatch(self):
        """No gaps: a mismatch in column 1 ends the run."""
        ev = _fruit_evaluator().evaluate(_row("CHERRY", "LEMON", "CHERRY"), 1.0)
        self.assertEqual(ev.winning_lines, ())

    def test_long_run_pays_largest_key(self):
        """Runs beyond the table pay the largest key below them."""
        cfg = BoardConfig(cols=5, rows=1)
        evaluator = LineEvaluator(cfg, SymbolTable(_fruit_symbols()), default_lines(cfg))
        cherry = evaluator.evaluate(Board.from_rows([["CHERRY"] * 5]), 1.0)
        self.assertEqual(cherry.winning_lines[0].count, 5)
        self.assertEqual(cherry.winning_lines[0].payout, 10.0)
        lemon = evaluator.evaluate(Board.from_rows([["LEMON"] * 5]), 1.0)
        self.assertEqual(lemon.winning_lines[0].payout, 20.0)

    def test_bet_scaling(self):
        """Line payout is the multiplier times the base bet."""
        ev = _fruit_evaluator().evaluate(_row("CHERRY", "CHERRY", "CHERRY"), 0.5)
        self.assertEqual(ev.winning_lines[0].payout, 5.0)

    def test_matched_prefix_positions(self):
        """positions hold only the matched prefix of the line."""
        cfg = BoardConfig(cols=5, rows=1)
        evaluator = LineEvaluator(cfg, SymbolTable(_fruit_symbols()), default_lines(cfg))
        ev = evaluator.evaluate(Board.from_rows([["LEMON"] * 4 + ["CHERRY"]]), 1.0)
        self.assertEqual(ev.winning_lines[0].positions, ((0, 0), (1, 0), (2, 0), (3, 0)))

    def test_full_board_best_line(self):
        """On an all-H1 board every line wins; the best line is the lowest index."""
        table = SymbolTable(default_symbols())
        cfg = BoardConfig()
        evaluator = LineEvaluator(cfg, table, default_lines(cfg))
        ev = evaluator.evaluate(Board.from_rows([["H1"] * 5] * 3), 1.0)
        self.assertEqual(len(ev.winning_lines), 20)
        self.assertEqual(ev.best_line.line_index, 0)
        self.assertAlmostEqual(ev.line_win, 400.0)

    def test_pick_best_line_ties(self):
        """Strictly greatest payout wins; ties go to the lowest index."""
        lines = [
            WinningLine(line_index=3, positions=(), symbol="A", count=3, payout=5.0),
            WinningLine(line_index=1, positions=(), symbol="B", count=3, payout=5.0),
            WinningLine(line_index=2, positions=(), symbol="C", count=3, payout=2.0),
        ]
        self.assertEqual(pick_best_line(lines).line_index, 1)
        self.assertIsNone(pick_best_line([]))

    def test_dimension_mismatch(self):
        """A board that disagrees with the line geometry is an EvaluationError."""
        with self.assertRaises(EvaluationError):
            _fruit_evaluator().evaluate(_row("CHERRY", "CHERRY"), 1.0)

    def test_unknown_symbol_on_board(self):
        """Symbols outside the table are an EvaluationError."""
        with self.assertRaises(EvaluationError):
            _fruit_evaluator().evaluate(_row("PLUM", "CHERRY", "CHERRY"), 1.0)

    def test_no_lines_is_config_error(self):
        """An evaluator without paylines cannot be built."""
        with self.assertRaises(ConfigError):
            LineEvaluator(BOARD_3X1, SymbolTable(_fruit_symbols()), LinesConfig(patterns=[]))

    def test_errors_share_base(self):
        """Both error kinds are ReelForgeErrors."""
        self.assertTrue(issubclass(ConfigError, ReelForgeError))
        self.assertTrue(issubclass(EvaluationError, ReelForgeError))


# ============================================================
# Free Spin State Machine
# ============================================================

class TestFreeSpinMachine(unittest.TestCase):
    """Pure bonus-mode transitions."""

    def setUp(self):
        self.machine = FreeSpinStateMachine(FreeSpinConfig(trigger_count=3, base_spin_count=10))

    def _free(self, remaining, total=10, accumulated=0.0, multiplier=2.0):
        return FreeSpinState(mode=FreeSpinMode.FREE, remaining_spins=remaining, total_spins=total,
                             accumulated_win=accumulated, current_multiplier=multiplier,
                             trigger_count=3)

    def test_trigger_enters_free(self):
        """Three scatters on a base spin start ten free spins."""
        t = self.machine.advance(FreeSpinState.base(), 3, 0.0)
        self.assertTrue(t.triggered)
        self.assertEqual(t.state.mode, FreeSpinMode.FREE)
        self.assertEqual(t.state.remaining_spins, 10)
        self.assertEqual(t.state.total_spins, 10)
        self.assertEqual(t.state.accumulated_win, 0.0)
        self.assertEqual(t.state.current_multiplier, 2.0)
        self.assertEqual(t.state.trigger_count, 3)

    def test_trigger_spin_pays_base_multiplier(self):
        """The triggering spin itself is a base spin at ×1."""
        t = self.machine.advance(FreeSpinState.base(), 4, 7.0)
        self.assertEqual(t.phase, FreeSpinMode.BASE)
        self.assertEqual(t.multiplier, 1.0)
        self.assertEqual(t.spin_win, 7.0)

    def test_below_threshold_stays_base(self):
        """Two scatters do nothing."""
        t = self.machine.advance(FreeSpinState.base(), 2, 1.0)
        self.assertFalse(t.triggered)
        self.assertEqual(t.state, FreeSpinState.base())

    def test_disabled_never_triggers(self):
        """With free spins off, scatters never change mode."""
        machine = FreeSpinStateMachine(FreeSpinConfig(enabled=False))
        t = machine.advance(FreeSpinState.base(), 15, 0.0)
        self.assertFalse(t.triggered)
        self.assertEqual(t.state.mode, FreeSpinMode.BASE)

    def test_multiplier_disabled(self):
        """Without the multiplier feature the bonus runs at ×1."""
        machine = FreeSpinStateMachine(FreeSpinConfig(enable_multiplier=False, multiplier_value=5))
        t = machine.advance(FreeSpinState.base(), 3, 0.0)
        self.assertEqual(t.state.current_multiplier, 1.0)

    def test_consume_banks_multiplied_win(self):
        """Each free spin decrements remaining and banks win × multiplier."""
        t = self.machine.advance(self._free(5), 0, 3.0)
        self.assertEqual(t.phase, FreeSpinMode.FREE)
        self.assertEqual(t.multiplier, 2.0)
        self.assertEqual(t.spin_win, 6.0)
        self.assertEqual(t.state.remaining_spins, 4)
        self.assertEqual(t.state.accumulated_win, 6.0)
        self.assertFalse(t.bonus_completed)

    def test_retrigger_extends(self):
        """A retrigger adds spins to remaining and total; multiplier unchanged."""
        t = self.machine.advance(self._free(5), 3, 0.0)
        self.assertTrue(t.retriggered)
        self.assertEqual(t.state.remaining_spins, 9)
        self.assertEqual(t.state.total_spins, 15)
        self.assertEqual(t.state.current_multiplier, 2.0)

    def test_retrigger_disabled(self):
        """Without retrigger, scatters in free mode only consume a spin."""
        machine = FreeSpinStateMachine(FreeSpinConfig(enable_retrigger=False))
        t = machine.advance(self._free(5), 5, 0.0)
        self.assertFalse(t.retriggered)
        self.assertEqual(t.state.remaining_spins, 4)
        self.assertEqual(t.state.total_spins, 10)

    def test_retrigger_on_last_spin_keeps_bonus(self):
        """Retriggering on the final spin keeps the bonus running."""
        t = self.machine.advance(self._free(1), 3, 0.0)
        self.assertFalse(t.bonus_completed)
        self.assertEqual(t.state.mode, FreeSpinMode.FREE)
        self.assertEqual(t.state.remaining_spins, 5)

    def test_last_spin_returns_to_base(self):
        """remaining 1 with no retrigger → base, bank reported and dropped."""
        t = self.machine.advance(self._free(1, accumulated=5.0), 0, 1.0)
        self.assertTrue(t.bonus_completed)
        self.assertEqual(t.state.mode, FreeSpinMode.BASE)
        self.assertEqual(t.state.remaining_spins, 0)
        self.assertEqual(t.state.accumulated_win, 0.0)
        self.assertEqual(t.bonus_payout, 7.0)
        self.assertEqual(t.multiplier, 2.0)

    def test_invariants_over_random_walk(self):
        """remaining ≤ total always; base mode implies remaining == 0."""
        rng = FastRNG(31337)
        state = self.machine.initial_state()
        for _ in range(5000):
            scatters = int(rng.random() * 6)
            state = self.machine.advance(state, scatters, rng.random()).state
            self.assertLessEqual(state.remaining_spins, state.total_spins)
            if state.mode is FreeSpinMode.BASE:
                self.assertEqual(state.remaining_spins, 0)

    def test_input_state_untouched(self):
        """advance() never mutates the state it is given."""
        before = self._free(3)
        self.machine.advance(before, 3, 10.0)
        self.assertEqual(before, self._free(3))

    def test_retrigger_needs_spins(self):
        """Retrigger enabled with zero retrigger spins is rejected."""
        with self.assertRaises(ValueError):
            FreeSpinConfig(enable_retrigger=True, retrigger_spin_count=0)

    def test_state_wire_keys(self):
        """to_dict uses camelCase keys."""
        d = FreeSpinState.base().to_dict()
        self.assertEqual(set(d), {"mode", "remainingSpins", "totalSpins", "accumulatedWin",
                                  "currentMultiplier", "triggerCount"})
        self.assertEqual(d["mode"], "base")


# ============================================================
# Settlement Composer
# ============================================================

class TestSettlement(unittest.TestCase):
    """Multiplier scaling and the SpinPacket contract."""

    def setUp(self):
        cfg = BoardConfig()
        self.table = SymbolTable(default_symbols())
        self.evaluator = LineEvaluator(cfg, self.table, default_lines(cfg))
        self.board = Board.from_rows([["H1"] * 5] * 3)

    def test_multiplier_scales_lines(self):
        """Free-spin multiplier applies to each line, keeping the sum law exact."""
        evaluation = self.evaluator.evaluate(self.board, 1.0)
        transition = FreeSpinTransition(phase=FreeSpinMode.FREE, multiplier=2.0,
                                        state=FreeSpinState.base())
        meta = SettlementComposer().compose_meta(self.board, evaluation, transition)
        self.assertEqual(meta.multiplier, 2.0)
        self.assertEqual(meta.raw_win, evaluation.raw_win)
        for line in meta.winning_lines:
            self.assertEqual(line.payout, 40.0)
        self.assertEqual(meta.best_line.payout, 40.0)
        self.assertEqual(meta.win, sum(l.payout for l in meta.winning_lines) + meta.scatter_payout)
        self.assertAlmostEqual(meta.win, 800.0)

    def test_scatter_scaled(self):
        """Scatter pay is scaled by the multiplier too."""
        board = Board.from_rows([
            ["SCATTER", "L1", "SCATTER", "L2", "SCATTER"],
            ["L3", "L4", "L3", "L4", "L3"],
            ["H2", "H3", "L1", "H3", "H2"],
        ])
        evaluation = self.evaluator.evaluate(board, 1.0)
        self.assertEqual(evaluation.scatter_count, 3)
        transition = FreeSpinTransition(phase=FreeSpinMode.FREE, multiplier=3.0,
                                        state=FreeSpinState.base())
        meta = SettlementComposer().compose_meta(board, evaluation, transition)
        self.assertEqual(meta.scatter_payout, 6.0)
        self.assertEqual(meta.win, sum(l.payout for l in meta.winning_lines) + meta.scatter_payout)

    def test_outcome_id(self):
        """outcome_id is <phase>-<12 hex>, stable per (board, phase)."""
        base_id = outcome_id(self.board, FreeSpinMode.BASE)
        self.assertRegex(base_id, r"^base-[0-9a-f]{12}$")
        self.assertEqual(base_id, outcome_id(self.board, FreeSpinMode.BASE))
        free_id = outcome_id(self.board, FreeSpinMode.FREE)
        self.assertTrue(free_id.startswith("free-"))
        self.assertNotEqual(base_id[-12:], free_id[-12:])

    def test_packet_wire_shape(self):
        """SpinPacket.to_dict carries version 2 and camelCase sections."""
        evaluation = self.evaluator.evaluate(self.board, 1.0)
        transition = FreeSpinStateMachine(FreeSpinConfig()).advance(FreeSpinState.base(), 0, evaluation.raw_win)
        packet = SettlementComposer().compose(self.board, evaluation, transition)
        d = packet.to_dict()
        self.assertEqual(d["version"], "2")
        self.assertIn("visual", d)
        self.assertNotIn("assets", d)
        self.assertIn("freeSpinState", d)
        self.assertEqual(d["meta"]["bestLine"]["lineIndex"], 0)
        self.assertEqual(len(d["meta"]["winningLines"]), 20)
        json.dumps(d)

    def test_packet_without_free_spins(self):
        """freeSpinState is omitted when free spins are disabled; assets pass through."""
        evaluation = self.evaluator.evaluate(self.board, 1.0)
        transition = FreeSpinStateMachine(FreeSpinConfig(enabled=False)).advance(
            FreeSpinState.base(), 0, evaluation.raw_win)
        composer = SettlementComposer(include_free_spin_state=False, assets={"bg": "night.png"})
        d = composer.compose(self.board, evaluation, transition).to_dict()
        self.assertNotIn("freeSpinState", d)
        self.assertEqual(d["assets"], {"bg": "night.png"})

    def test_packets_do_not_share_visual(self):
        """Editing one packet's visual/assets leaves later packets untouched."""
        evaluation = self.evaluator.evaluate(self.board, 1.0)
        transition = FreeSpinStateMachine(FreeSpinConfig()).advance(FreeSpinState.base(), 0, evaluation.raw_win)
        composer = SettlementComposer(assets={"bg": "night.png"})
        first = composer.compose(self.board, evaluation, transition)
        first.visual["animation"] = "tampered"
        first.assets["bg"] = "day.png"
        second = composer.compose(self.board, evaluation, transition)
        self.assertNotEqual(second.visual["animation"], "tampered")
        self.assertEqual(second.assets["bg"], "night.png")
        self.assertEqual(composer.assets, {"bg": "night.png"})


# ============================================================
# Game Config
# ============================================================

class TestGameConfig(unittest.TestCase):
    """Ruleset aggregate: validation and loading."""

    def test_default_ruleset(self):
        """Demo ruleset: 5×3, 20 lines, nine symbols."""
        game = default_game_config().validate_ruleset()
        self.assertEqual(game.resolved_lines().count, 20)
        self.assertEqual(len(game.symbol_table()), 9)
        self.assertEqual(game.symbol_table().wilds, frozenset({"WILD"}))
        self.assertEqual(game.symbol_table().scatters, frozenset({"SCATTER"}))

    def test_line_count_pad_and_truncate(self):
        """line_count truncates or pads with middle-row lines."""
        padded = GameConfig(line_count=25).resolved_lines()
        self.assertEqual(padded.count, 25)
        self.assertEqual(padded.patterns[24].positions, [(c, 1) for c in range(5)])
        self.assertEqual(GameConfig(line_count=10).resolved_lines().count, 10)

    def test_default_lines_other_geometry(self):
        """Non-5×3 boards get straight rows plus zigzags."""
        cfg = BoardConfig(cols=4, rows=4)
        lines = default_lines(cfg)
        lines.validate_against(cfg)
        self.assertGreaterEqual(lines.count, 4)

    def test_empty_lines_rejected(self):
        """A ruleset without paylines is a ConfigError."""
        with self.assertRaises(ConfigError):
            GameConfig(lines=LinesConfig(patterns=[])).validate_ruleset()

    def test_out_of_bounds_line_rejected(self):
        """Line coordinates must stay inside the board."""
        bad = LinesConfig(patterns=[LinePattern(id=0, positions=[(0, 0), (1, 0), (2, 5), (3, 0), (4, 0)])])
        with self.assertRaises(ConfigError):
            GameConfig(lines=bad).validate_ruleset()

    def test_short_line_rejected(self):
        """Each line spans every column."""
        bad = LinesConfig(patterns=[LinePattern(id=0, positions=[(0, 0), (1, 0), (2, 0)])])
        with self.assertRaises(ConfigError):
            GameConfig(lines=bad).validate_ruleset()

    def test_zero_weight_reel_rejected(self):
        """All-zero reel weights fail validation."""
        with self.assertRaises(ConfigError):
            GameConfig(reel_weights=[{"H1": 0.0}] * 5).validate_ruleset()

    def test_wild_cannot_substitute_scatter(self):
        """Wild rules may only name normal symbols."""
        symbols = default_symbols()[:7] + [
            SymbolDefinition(id="WILD", category=SymbolCategory.WILD,
                             wild=WildRule(substitutes=["SCATTER"])),
            default_symbols()[8],
        ]
        with self.assertRaises(ConfigError):
            GameConfig(symbols=symbols).validate_ruleset()

    def test_duplicate_symbol_rejected(self):
        """Symbol ids are unique."""
        symbols = default_symbols() + [SymbolDefinition(id="H1", payouts={3: 1})]
        with self.assertRaises(ConfigError):
            GameConfig(symbols=symbols).validate_ruleset()

    def test_category_payload_mismatch(self):
        """A scatter carrying line payouts is rejected at parse time."""
        with self.assertRaises(ValueError):
            SymbolDefinition(id="S", category=SymbolCategory.SCATTER, payouts={3: 1})

    def test_unknown_symbol_lookup(self):
        """SymbolTable.get on an unknown id raises ConfigError."""
        with self.assertRaises(ConfigError):
            SymbolTable(default_symbols()).get("NOPE")

    def test_load_invalid_dict(self):
        """pydantic errors surface as ConfigError."""
        with self.assertRaises(ConfigError):
            load_game_config({"board": {"cols": 0, "rows": 3}})

    def test_load_json_round_trip(self):
        """A dumped ruleset loads back from a JSON string."""
        game = default_game_config()
        loaded = load_game_config(game.model_dump_json())
        self.assertEqual(loaded.name, game.name)
        self.assertEqual(loaded.symbol_table().ids, game.symbol_table().ids)
        self.assertEqual(loaded.symbol_table().get("H1").line_payout(5), 20.0)

    def test_load_from_file(self):
        """A JSON file path loads and validates."""
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "game.json"
            path.write_text(json.dumps({"name": "File Game", "line_count": 5}))
            game = load_game_config(path)
            self.assertEqual(game.name, "File Game")
            self.assertEqual(game.resolved_lines().count, 5)

    def test_load_missing_or_malformed_file(self):
        """Missing files and bad JSON are ConfigErrors."""
        with self.assertRaises(ConfigError):
            load_game_config("/nonexistent/game.json")
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "bad.json"
            path.write_text("{not json")
            with self.assertRaises(ConfigError):
                load_game_config(path)


# ============================================================
# Spin Executor
# ============================================================

class TestSpinExecutor(unittest.TestCase):
    """Full pipeline per spin."""

    def test_deterministic_packets(self):
        """Same seed → byte-identical packets."""
        a = SpinExecutor(default_game_config(), rng=make_rng(42))
        b = SpinExecutor(default_game_config(), rng=make_rng(42))
        for _ in range(300):
            self.assertEqual(json.dumps(a.spin().to_dict()), json.dumps(b.spin().to_dict()))

    def test_sum_and_best_line_laws(self):
        """win == Σ line payouts + scatter payout; best line is max, lowest index on ties."""
        ex = SpinExecutor(default_game_config(), rng=make_rng(7))
        for _ in range(2000):
            meta = ex.spin(1.0).meta
            self.assertEqual(meta.win, sum(l.payout for l in meta.winning_lines) + meta.scatter_payout)
            if meta.best_line is None:
                self.assertEqual(meta.winning_lines, ())
                continue
            self.assertIn(meta.best_line, meta.winning_lines)
            top = max(l.payout for l in meta.winning_lines)
            self.assertEqual(meta.best_line.payout, top)
            self.assertEqual(meta.best_line.line_index,
                             min(l.line_index for l in meta.winning_lines if l.payout == top))

    def test_state_invariants(self):
        """Free-spin invariants hold after every executed spin."""
        ex = SpinExecutor(_scatter_heavy_game(enable_retrigger=False, base_spin_count=3),
                          rng=make_rng(11))
        for _ in range(300):
            state = ex.spin().free_spin_state
            self.assertLessEqual(state.remaining_spins, state.total_spins)
            if state.mode is FreeSpinMode.BASE:
                self.assertEqual(state.remaining_spins, 0)

    def test_bonus_flow(self):
        """Trigger pays ×1, free spins pay the multiplier, completion banks the free wins."""
        ex = SpinExecutor(_scatter_heavy_game(enable_retrigger=False, base_spin_count=2),
                          rng=make_rng(5))
        packets = [ex.spin() for _ in range(200)]
        first = next(i for i, p in enumerate(packets) if p.meta.triggered_free_spin)
        trigger, free1, free2 = packets[first], packets[first + 1], packets[first + 2]

        self.assertEqual(trigger.meta.phase, FreeSpinMode.BASE)
        self.assertEqual(trigger.meta.multiplier, 1.0)
        self.assertEqual(free1.meta.phase, FreeSpinMode.FREE)
        self.assertEqual(free1.meta.multiplier, 2.0)
        self.assertFalse(free1.meta.bonus_completed)
        self.assertTrue(free2.meta.bonus_completed)
        self.assertAlmostEqual(free2.meta.bonus_payout, free1.meta.win + free2.meta.win)
        self.assertEqual(free2.free_spin_state.mode, FreeSpinMode.BASE)
        self.assertEqual(packets[first + 3].meta.phase, FreeSpinMode.BASE)

    def test_free_spin_state_omitted_when_disabled(self):
        """No freeSpinState in packets when the feature is off."""
        ex = SpinExecutor(GameConfig(free_spins=FreeSpinConfig(enabled=False)), rng=make_rng(1))
        packet = ex.spin()
        self.assertIsNone(packet.free_spin_state)
        self.assertNotIn("freeSpinState", packet.to_dict())
        self.assertIsNotNone(packet.meta)

    def test_reset(self):
        """reset() drops a bonus in progress."""
        ex = SpinExecutor(_scatter_heavy_game(), rng=make_rng(8))
        for _ in range(50):
            if ex.spin().meta.triggered_free_spin:
                break
        self.assertTrue(ex.state.in_free_spins)
        ex.reset()
        self.assertEqual(ex.state, FreeSpinState.base())

    def test_bad_bet(self):
        """Non-positive bets are rejected."""
        ex = SpinExecutor(default_game_config(), rng=make_rng(1))
        with self.assertRaises(ConfigError):
            ex.spin(0)

    def test_invalid_ruleset_rejected_at_construction(self):
        """The executor validates once, up front."""
        with self.assertRaises(ConfigError):
            SpinExecutor(GameConfig(lines=LinesConfig(patterns=[])))


# ============================================================
# RTP Preview
# ============================================================

class TestRTPPreview(unittest.TestCase):
    """Theoretical scatter RTP, sampled line RTP, score histogram."""

    def setUp(self):
        self.all_scatter = GameConfig(name="All Scatter", reel_weights=[{"SCATTER": 1.0}] * 5)

    def test_count_distribution_sums_to_one(self):
        """Poisson-binomial over 15 cells is a distribution."""
        dist = scatter_count_distribution(default_game_config())
        self.assertEqual(len(dist), 16)
        self.assertAlmostEqual(sum(dist), 1.0)

    def test_certain_scatters(self):
        """Every cell scatter → count 15 → largest table entry (50×)."""
        dist = scatter_count_distribution(self.all_scatter)
        self.assertAlmostEqual(dist[15], 1.0)
        self.assertAlmostEqual(scatter_rtp(self.all_scatter), 50.0)

    def test_breakdown(self):
        """Scatter-only boards have no line RTP."""
        breakdown = rtp_breakdown(self.all_scatter, samples=50, seed=1)
        self.assertEqual(breakdown.line_rtp, 0.0)
        self.assertAlmostEqual(breakdown.total_rtp, 50.0)
        self.assertIn("total_rtp_pct", breakdown.to_dict())

    def test_breakdown_deterministic(self):
        """Seeded line RTP estimates repeat."""
        game = default_game_config()
        self.assertEqual(rtp_breakdown(game, 300, seed=9).line_rtp,
                         rtp_breakdown(game, 300, seed=9).line_rtp)

    def test_score_distribution_constant(self):
        """A constant score collapses to a single bucket."""
        dist = estimate_score_distribution(self.all_scatter, samples=20, seed=3)
        self.assertEqual(dist.sample_size, 20)
        self.assertAlmostEqual(dist.min, 50.0)
        self.assertAlmostEqual(dist.max, 50.0)
        self.assertAlmostEqual(dist.std_dev, 0.0)
        self.assertEqual(len(dist.histogram), 1)
        self.assertEqual(dist.histogram[0].count, 20)

    def test_histogram_bins(self):
        """Ten equal-width bins, last bin closed."""
        buckets = build_histogram([float(i) for i in range(10)])
        self.assertEqual(len(buckets), 10)
        self.assertEqual(sum(b.count for b in buckets), 10)
        self.assertEqual(build_histogram([]), [])


# ============================================================
# Settings
# ============================================================

class TestSettings(unittest.TestCase):
    """Env-driven defaults and logging bootstrap."""

    def test_progress_interval_auto(self):
        """Auto cadence is ~1% of the run, floored."""
        from config.settings import EngineConfig
        with patch.object(EngineConfig, "PROGRESS_INTERVAL", 0):
            self.assertEqual(EngineConfig.progress_interval_for(1_000_000), 10_000)
            self.assertEqual(EngineConfig.progress_interval_for(10), EngineConfig.MIN_PROGRESS_INTERVAL)
        with patch.object(EngineConfig, "PROGRESS_INTERVAL", 250):
            self.assertEqual(EngineConfig.progress_interval_for(1_000_000), 250)

    def test_configure_logging(self):
        """configure_logging returns the package logger."""
        from config.settings import configure_logging
        logger = configure_logging("WARNING")
        self.assertEqual(logger.name, "reelforge")
        self.assertTrue(re.match(r"^reelforge", logging.getLogger("reelforge.sim").name))


# ============================================================
# Main
# ============================================================

if __name__ == "__main__":
    # Configure logging to suppress noise during tests
    logging.disable(logging.WARNING)

    unittest.main(verbosity=2)
