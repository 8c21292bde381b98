#!/usr/bin/env python3
"""
Tests for the simulation layer: simulator, statistics, export

Validates:
1.  Invalid SimulationConfig fails with ConfigError before any board is drawn
2.  Ledger is full-length, spin-ordered, free spins carry bet 0
3.  Fixed seed → identical ledgers
4.  Progress fires at the interval and once at the end
5.  Cancellation returns the partial ledger, marked incomplete, identical prefix
6.  Statistics on a hand-built ledger (RTP, Welford variance, streaks, profit)
7.  Empty ledger → zeros and the RTP sentinel, never NaN
8.  Caller-supplied buckets (linear / log / zero bucket)
9.  Detail / summary / combined CSV text
10. Parallel multi-seed runs match sequential runs
11. CLI rejects per-run outputs together with --seeds
"""

import csv
import io
import math
import sys
import unittest
from pathlib import Path
from unittest.mock import patch

PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from spin_engine.board import BoardGenerator
from spin_engine.errors import ConfigError
from spin_engine.free_spin import FreeSpinConfig, FreeSpinMode
from spin_engine.game import GameConfig, default_game_config

from analytics.export import (
    DETAIL_COLUMNS, combined_csv, detail_csv, detail_rows, summary_csv, summary_rows,
)
from analytics.simulator import (
    CancellationToken, RunningTotals, SimulationConfig, SimulationResult, Simulator,
    SpinResult, run_parallel, seeded_configs,
)
from analytics.statistics import (
    BucketSpec, compute_statistics, linear_edges, log_edges, volatility_tier,
)


def _bonus_game():
    """Half-scatter reels so free spins show up in short runs."""
    return GameConfig(
        name="Bonus Test",
        reel_weights=[{"SCATTER": 1, "L1": 2, "H1": 1}] * 5,
        free_spins=FreeSpinConfig(base_spin_count=3, enable_retrigger=False),
    )


def _ledger(rows, base_bet=1.0):
    """Build a SimulationResult from (bet, win, mode, triggered) tuples."""
    spins = [
        SpinResult(index=i + 1, bet=bet, win=win, mode=mode, triggered_free_spin=trig)
        for i, (bet, win, mode, trig) in enumerate(rows)
    ]
    return SimulationResult(spins=spins, requested_spins=len(spins), completed_spins=len(spins),
                            completed=True, seed=1, base_bet=base_bet, game_name="hand")


BASE, FREE = FreeSpinMode.BASE, FreeSpinMode.FREE
HAND_ROWS = [
    (1.0, 0.0, BASE, False),
    (1.0, 2.0, BASE, False),
    (1.0, 0.0, BASE, True),
    (1.0, 5.0, BASE, False),
    (0.0, 1.0, FREE, False),
]


# ============================================================
# Simulator
# ============================================================

class TestSimulator(unittest.TestCase):
    """Ledger, progress, cancellation."""

    def setUp(self):
        self.sim = Simulator(default_game_config())

    def test_zero_spins_rejected_before_draw(self):
        """spin_count 0 fails with ConfigError and never touches the generator."""
        with patch.object(BoardGenerator, "generate") as gen:
            with self.assertRaises(ConfigError):
                self.sim.run(SimulationConfig(spin_count=0, base_bet=1.0, seed=1))
            gen.assert_not_called()

    def test_bad_bet_and_interval_rejected(self):
        """Non-positive bet or progress interval are ConfigErrors."""
        with self.assertRaises(ConfigError):
            self.sim.run(SimulationConfig(spin_count=10, base_bet=0.0))
        with self.assertRaises(ConfigError):
            self.sim.run(SimulationConfig(spin_count=10, base_bet=-1.0))
        with self.assertRaises(ConfigError):
            self.sim.run(SimulationConfig(spin_count=10, progress_interval=0))

    def test_malformed_config_is_config_error(self):
        """Wrongly typed fields surface as ConfigError, not a pydantic error."""
        with self.assertRaises(ConfigError):
            SimulationConfig(spin_count=2.5)
        with self.assertRaises(ConfigError):
            SimulationConfig(spin_count=10, base_bet="x")
        with self.assertRaises(ConfigError):
            SimulationConfig()

    def test_ledger_shape(self):
        """One entry per spin, 1-based indices in order, net = win − bet."""
        result = self.sim.run(SimulationConfig(spin_count=500, base_bet=2.0, seed=3))
        self.assertTrue(result.completed)
        self.assertFalse(result.cancelled)
        self.assertEqual(result.completed_spins, 500)
        self.assertEqual(len(result.spins), 500)
        self.assertEqual([s.index for s in result.spins], list(range(1, 501)))
        for s in result.spins:
            self.assertAlmostEqual(s.net, s.win - s.bet)
        self.assertEqual(result.base_bet, 2.0)
        self.assertEqual(result.seed, 3)

    def test_free_spins_have_zero_bet(self):
        """Free-mode spins are recorded with bet 0; base spins pay the stake."""
        result = Simulator(_bonus_game()).run(SimulationConfig(spin_count=400, base_bet=1.5, seed=21))
        modes = {s.mode for s in result.spins}
        self.assertIn(FreeSpinMode.FREE, modes)
        for s in result.spins:
            self.assertEqual(s.bet, 0.0 if s.mode is FreeSpinMode.FREE else 1.5)

    def test_seed_recorded_when_random(self):
        """An unseeded run still reports the seed it used."""
        result = self.sim.run(SimulationConfig(spin_count=5))
        self.assertIsInstance(result.seed, int)

    def test_deterministic(self):
        """Same config + seed → identical ledgers."""
        cfg = SimulationConfig(spin_count=3000, base_bet=1.0, seed=7)
        a = Simulator(_bonus_game()).run(cfg)
        b = Simulator(_bonus_game()).run(cfg)
        self.assertEqual([s.to_dict() for s in a.spins], [s.to_dict() for s in b.spins])

    def test_progress_cadence(self):
        """Callbacks at every interval plus one final call."""
        calls = []
        self.sim.run(SimulationConfig(spin_count=1050, seed=1, progress_interval=100),
                     on_progress=lambda done, totals: calls.append((done, totals.spins)))
        self.assertEqual([c[0] for c in calls], [100, 200, 300, 400, 500, 600, 700, 800, 900, 1000, 1050])
        for done, spins in calls:
            self.assertEqual(done, spins)

    def test_progress_no_duplicate_final(self):
        """When the interval divides the run, the end is reported once."""
        calls = []
        self.sim.run(SimulationConfig(spin_count=1000, seed=1, progress_interval=100),
                     on_progress=lambda done, totals: calls.append(done))
        self.assertEqual(calls.count(1000), 1)
        self.assertEqual(len(calls), 10)

    def test_progress_totals_are_snapshots(self):
        """Totals passed to the callback don't change afterwards."""
        seen = []
        self.sim.run(SimulationConfig(spin_count=300, seed=2, progress_interval=100),
                     on_progress=lambda done, totals: seen.append(totals))
        self.assertEqual([t.spins for t in seen], [100, 200, 300])

    def test_cancel_returns_partial(self):
        """A cancel request stops after the current spin."""
        token = CancellationToken()

        def on_progress(done, totals):
            if done == 200:
                token.cancel()

        result = self.sim.run(SimulationConfig(spin_count=10_000, seed=9, progress_interval=100),
                              on_progress=on_progress, cancel=token)
        self.assertTrue(result.cancelled)
        self.assertFalse(result.completed)
        self.assertEqual(result.completed_spins, 200)
        self.assertEqual(len(result.spins), 200)
        self.assertEqual(result.requested_spins, 10_000)

    def test_cancel_does_not_alter_outcomes(self):
        """The partial ledger is a prefix of the uncancelled run."""
        token = CancellationToken()
        token.cancel()
        partial = self.sim.run(SimulationConfig(spin_count=100, seed=4), cancel=token)
        full = self.sim.run(SimulationConfig(spin_count=100, seed=4))
        self.assertEqual(partial.completed_spins, 1)
        self.assertEqual(partial.spins[0].to_dict(), full.spins[0].to_dict())

    def test_running_totals(self):
        """RunningTotals accumulate and keep the RTP sentinel when nothing is wagered."""
        totals = RunningTotals()
        self.assertEqual(totals.rtp, 0.0)
        for s in _ledger(HAND_ROWS).spins:
            totals.add(s)
        self.assertEqual(totals.spins, 5)
        self.assertAlmostEqual(totals.rtp, 2.0)
        self.assertEqual(totals.free_spins, 1)
        self.assertEqual(totals.bonus_triggers, 1)
        self.assertEqual(totals.max_win, 5.0)

    def test_result_summary_and_dict(self):
        """summary() and to_dict() describe the run."""
        result = self.sim.run(SimulationConfig(spin_count=50, seed=5))
        self.assertIn("50 / 50", result.summary())
        d = result.to_dict(include_spins=True)
        self.assertEqual(d["completed_spins"], 50)
        self.assertEqual(len(d["spins"]), 50)
        self.assertNotIn("spins", result.to_dict())


class TestParallelRuns(unittest.TestCase):
    """Independent seeds on worker processes."""

    def test_parallel_matches_sequential(self):
        """Worker results equal the same runs done in-process, in input order."""
        game = default_game_config()
        configs = [SimulationConfig(spin_count=200, seed=s) for s in (11, 12)]
        results = run_parallel(game, configs, max_workers=2)
        self.assertEqual([r.seed for r in results], [11, 12])
        local = Simulator(game).run(configs[1])
        self.assertEqual([s.to_dict() for s in results[1].spins], [s.to_dict() for s in local.spins])

    def test_parallel_validates_first(self):
        """Bad configs are rejected before any worker starts."""
        with self.assertRaises(ConfigError):
            run_parallel(default_game_config(), [SimulationConfig(spin_count=0)])

    def test_seeded_configs(self):
        """Child seeds are deterministic and distinct."""
        base = SimulationConfig(spin_count=10, seed=99)
        a = [c.seed for c in seeded_configs(base, 4)]
        b = [c.seed for c in seeded_configs(base, 4)]
        self.assertEqual(a, b)
        self.assertEqual(len(set(a)), 4)


# ============================================================
# Statistics
# ============================================================

class TestStatistics(unittest.TestCase):
    """Ledger reduction."""

    def test_hand_built_ledger(self):
        """Known ledger → known aggregates."""
        stats = compute_statistics(_ledger(HAND_ROWS))
        self.assertEqual(stats.total_spins, 5)
        self.assertAlmostEqual(stats.total_wagered, 4.0)
        self.assertAlmostEqual(stats.total_won, 8.0)
        self.assertAlmostEqual(stats.net, 4.0)
        self.assertAlmostEqual(stats.rtp, 2.0)
        self.assertEqual(stats.hit_count, 3)
        self.assertAlmostEqual(stats.hit_frequency, 0.6)
        self.assertAlmostEqual(stats.mean_win, 1.6)
        self.assertAlmostEqual(stats.variance, 3.44)
        self.assertAlmostEqual(stats.std_dev, math.sqrt(3.44))
        self.assertEqual(stats.max_win, 5.0)
        self.assertEqual(stats.min_win, 0.0)
        self.assertAlmostEqual(stats.avg_win_per_hit, 8.0 / 3)
        self.assertAlmostEqual(stats.max_cumulative_profit, 4.0)
        self.assertAlmostEqual(stats.min_cumulative_profit, -1.0)
        self.assertEqual(stats.base_spins, 4)
        self.assertEqual(stats.free_spins, 1)
        self.assertEqual(stats.bonus_triggers, 1)
        self.assertEqual(stats.max_win_streak, 2)
        self.assertEqual(stats.max_loss_streak, 1)
        lo, hi = stats.confidence_95
        self.assertLess(lo, stats.rtp)
        self.assertGreater(hi, stats.rtp)

    def test_empty_ledger(self):
        """Zero spins → zeros, RTP sentinel 0.0, no NaN."""
        stats = compute_statistics(_ledger([]))
        self.assertEqual(stats.total_spins, 0)
        self.assertEqual(stats.rtp, 0.0)
        self.assertEqual(stats.hit_frequency, 0.0)
        for value in stats.to_dict().values():
            if isinstance(value, float):
                self.assertFalse(math.isnan(value))

    def test_only_free_spins_rtp_sentinel(self):
        """Nothing wagered → RTP 0.0 even with wins."""
        stats = compute_statistics(_ledger([(0.0, 3.0, FREE, False)]))
        self.assertEqual(stats.rtp, 0.0)
        self.assertEqual(stats.total_won, 3.0)

    def test_idempotent(self):
        """Computing twice from one ledger gives identical results."""
        result = Simulator(_bonus_game()).run(SimulationConfig(spin_count=2000, seed=13))
        buckets = BucketSpec(edges=tuple(log_edges(0.1, 1000)))
        self.assertEqual(compute_statistics(result, buckets), compute_statistics(result, buckets))

    def test_rtp_matches_ledger(self):
        """RTP = total won / total wagered on a real run."""
        result = Simulator(_bonus_game()).run(SimulationConfig(spin_count=1500, seed=17))
        stats = compute_statistics(result)
        self.assertAlmostEqual(stats.total_won, sum(s.win for s in result.spins))
        self.assertAlmostEqual(stats.total_wagered, sum(s.bet for s in result.spins))
        self.assertAlmostEqual(stats.rtp, stats.total_won / stats.total_wagered)

    def test_prefix(self):
        """upto reduces only the first N spins."""
        result = _ledger(HAND_ROWS)
        stats = compute_statistics(result, upto=2)
        self.assertEqual(stats.total_spins, 2)
        self.assertAlmostEqual(stats.total_won, 2.0)
        self.assertEqual(compute_statistics(result, upto=0).total_spins, 0)

    def test_buckets(self):
        """Wins land in caller-defined buckets, zero wins apart."""
        stats = compute_statistics(_ledger(HAND_ROWS), BucketSpec(edges=(1, 2, 5)))
        self.assertEqual(stats.distribution.counts,
                         {"0x": 2, "<1x": 0, "1-2x": 1, "2-5x": 1, "5x+": 1})
        self.assertEqual(stats.distribution.total, 5)
        self.assertAlmostEqual(sum(stats.distribution.percentages().values()), 100.0)

    def test_buckets_scale_by_bet(self):
        """Bucketing uses multiples of the base bet."""
        rows = [(2.0, 4.0, BASE, False)]
        stats = compute_statistics(_ledger(rows, base_bet=2.0), BucketSpec(edges=(1, 2, 5)))
        self.assertEqual(stats.distribution.counts["2-5x"], 1)

    def test_empty_ledger_buckets(self):
        """Buckets on an empty ledger are all zero."""
        stats = compute_statistics(_ledger([]), BucketSpec(edges=(1, 2)))
        self.assertEqual(set(stats.distribution.counts.values()), {0})

    def test_edge_helpers(self):
        """linear_edges and log_edges produce the expected boundaries."""
        self.assertEqual(linear_edges(0, 10, 5), [0, 2, 4, 6, 8, 10])
        edges = log_edges(1, 1000)
        self.assertEqual(len(edges), 4)
        for got, want in zip(edges, [1, 10, 100, 1000]):
            self.assertAlmostEqual(got, want)
        self.assertEqual(len(log_edges(1, 100, per_decade=2)), 5)

    def test_wins_on_decimal_edges(self):
        """A win exactly on a decimal edge opens that edge's bucket."""
        edges = linear_edges(0, 1, 10)
        self.assertEqual(edges[3], 0.3)
        self.assertEqual(edges[7], 0.7)
        self.assertEqual(log_edges(0.1, 100), [0.1, 1.0, 10.0, 100.0])

        rows = [(1.0, 0.3, BASE, False), (1.0, 0.7, BASE, False)]
        stats = compute_statistics(_ledger(rows), BucketSpec(edges=tuple(edges)))
        self.assertEqual(stats.distribution.counts["0.3-0.4x"], 1)
        self.assertEqual(stats.distribution.counts["0.7-0.8x"], 1)
        self.assertEqual(stats.distribution.counts["0.2-0.3x"], 0)
        self.assertEqual(stats.distribution.counts["0.6-0.7x"], 0)

    def test_bad_buckets(self):
        """Unsorted or too-short edge lists are ConfigErrors."""
        with self.assertRaises(ConfigError):
            BucketSpec(edges=(5, 1))
        with self.assertRaises(ConfigError):
            BucketSpec(edges=(1,))
        with self.assertRaises(ConfigError):
            linear_edges(5, 1, 3)
        with self.assertRaises(ConfigError):
            log_edges(0, 10)

    def test_volatility_tiers(self):
        """Volatility index maps to the right tier."""
        tiers = [(3.0, "Low"), (7.5, "Medium"), (15.0, "High"), (25.0, "Very High")]
        for index, expected in tiers:
            self.assertEqual(volatility_tier(index), expected, f"σ={index}")


# ============================================================
# Export
# ============================================================

class TestExport(unittest.TestCase):
    """Row builders and CSV text."""

    def setUp(self):
        self.result = _ledger(HAND_ROWS)

    def test_detail_rows(self):
        """One row per spin with running profit."""
        rows = detail_rows(self.result)
        self.assertEqual(len(rows), 5)
        self.assertEqual(rows[0]["spin"], 1)
        self.assertEqual(rows[-1]["cumulative_profit"], "4")
        self.assertEqual(rows[-1]["mode"], "free")
        self.assertEqual(rows[2]["triggered"], 1)
        self.assertEqual(set(rows[0]), set(DETAIL_COLUMNS))

    def test_detail_csv(self):
        """CSV text parses back to the same rows."""
        parsed = list(csv.DictReader(io.StringIO(detail_csv(self.result))))
        self.assertEqual(len(parsed), 5)
        self.assertEqual(list(parsed[0].keys()), DETAIL_COLUMNS)
        self.assertEqual(parsed[3]["win"], "5")

    def test_summary_rows(self):
        """Summary carries the headline metrics and distribution rows."""
        stats = compute_statistics(self.result, BucketSpec(edges=(1, 2, 5)))
        rows = {r["metric"]: r["value"] for r in summary_rows(self.result, stats)}
        self.assertEqual(rows["Total Spins"], 5)
        self.assertEqual(rows["RTP %"], "200.0000")
        self.assertEqual(rows["Wins 0x"], 2)
        self.assertIn("Max Cumulative Profit", rows)

    def test_summary_csv_header(self):
        """Summary CSV starts with the metric/value header."""
        text = summary_csv(self.result)
        self.assertTrue(text.startswith("metric,value\n"))

    def test_combined(self):
        """Combined report holds both blocks."""
        text = combined_csv(self.result)
        self.assertIn("metric,value", text)
        self.assertIn(",".join(DETAIL_COLUMNS), text)
        self.assertLess(text.index("metric,value"), text.index(",".join(DETAIL_COLUMNS)))


# ============================================================
# CLI
# ============================================================

class TestCLI(unittest.TestCase):
    """Argument handling of the simulation CLI."""

    def test_seeds_reject_single_run_outputs(self):
        """--seeds with a per-run output flag exits with a usage error."""
        from analytics.cli import main
        for extra in (["--json", "out.json"], ["--detail-csv", "d.csv"],
                      ["--summary-csv", "s.csv"], ["--combined-csv", "c.csv"],
                      ["--buckets", "log"]):
            stderr = io.StringIO()
            with patch("sys.stderr", stderr), self.assertRaises(SystemExit) as ctx:
                main(["--seeds", "1", "2", "--spins", "10"] + extra)
            self.assertEqual(ctx.exception.code, 2)
            self.assertIn(extra[0], stderr.getvalue())

    def test_dump_config(self):
        """--dump-config prints the ruleset JSON and exits 0."""
        from analytics.cli import main
        stdout = io.StringIO()
        with patch("sys.stdout", stdout):
            self.assertEqual(main(["--dump-config"]), 0)
        self.assertIn('"name": "Demo Reels"', stdout.getvalue())


if __name__ == "__main__":
    import logging
    logging.disable(logging.WARNING)

    unittest.main(verbosity=2)
