"""
REELFORGE — Theoretical RTP & Score Distribution

Quick math previews for a ruleset, without running the full simulator:

  • scatter RTP: exact. Each cell holds a scatter with its own reel
    probability; the count distribution is a Poisson-binomial built by DP
    over the cells, then weighted by the scatter pay table.
  • line RTP: Monte Carlo estimate of the mean line win per unit bet.
  • score distribution: histogram of raw board scores over a sample.

Free-spin value is not included; run the simulator for the full figure.
All RTP values are fractions (0.96 = 96%).

Usage:
    from spin_engine.rtp import rtp_breakdown
    print(rtp_breakdown(game, samples=20_000, seed=7).summary())
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional

from spin_engine.board import BoardGenerator
from spin_engine.evaluator import LineEvaluator
from spin_engine.game import GameConfig
from spin_engine.rng import make_rng

HISTOGRAM_BINS = 10


# ═══════════════════════════════════════════════════════════════
# Scatter contribution (exact)
# ═══════════════════════════════════════════════════════════════

def scatter_count_distribution(game: GameConfig) -> list[float]:
    """P(scatter count == k) for k in 0..cells."""
    table = game.symbol_table()
    generator = BoardGenerator(game.board, table, game.reel_weights)

    dist = [1.0]
    for col in range(game.board.cols):
        p = generator.probability(col, table.scatters)
        for _ in range(game.board.rows):
            nxt = [0.0] * (len(dist) + 1)
            for k, pk in enumerate(dist):
                nxt[k] += pk * (1.0 - p)
                nxt[k + 1] += pk * p
            dist = nxt
    return dist


def scatter_rtp(game: GameConfig) -> float:
    scatter = game.symbol_table().scatter_payout_table()
    if scatter is None:
        return 0.0
    return sum(pk * scatter.lookup(k) for k, pk in enumerate(scatter_count_distribution(game)))


# ═══════════════════════════════════════════════════════════════
# Line contribution (sampled)
# ═══════════════════════════════════════════════════════════════

def _sample_scores(game: GameConfig, samples: int, seed: Optional[int]) -> tuple[list[float], list[float]]:
    """(line wins, raw wins) per sampled board at unit bet."""
    table = game.symbol_table()
    generator = BoardGenerator(game.board, table, game.reel_weights)
    evaluator = LineEvaluator(game.board, table, game.resolved_lines())
    rng = make_rng(seed)

    line_wins = [0.0] * samples
    raw_wins = [0.0] * samples
    for i in range(samples):
        evaluation = evaluator.evaluate(generator.generate(rng), 1.0)
        line_wins[i] = evaluation.line_win
        raw_wins[i] = evaluation.raw_win
    return line_wins, raw_wins


@dataclass
class RTPBreakdown:
    line_rtp: float
    scatter_rtp: float
    samples: int
    seed: Optional[int] = None

    @property
    def total_rtp(self) -> float:
        return self.line_rtp + self.scatter_rtp

    def summary(self) -> str:
        return "\n".join([
            f"  Line RTP:    {self.line_rtp*100:.2f}%  ({self.samples:,} boards)",
            f"  Scatter RTP: {self.scatter_rtp*100:.2f}%  (exact)",
            f"  Base RTP:    {self.total_rtp*100:.2f}%",
        ])

    def to_dict(self) -> dict:
        return {
            "line_rtp_pct": round(self.line_rtp * 100, 4),
            "scatter_rtp_pct": round(self.scatter_rtp * 100, 4),
            "total_rtp_pct": round(self.total_rtp * 100, 4),
            "samples": self.samples,
            "seed": self.seed,
        }


def rtp_breakdown(game: GameConfig, samples: int = 10_000, seed: Optional[int] = None) -> RTPBreakdown:
    game.validate_ruleset()
    line_rtp = 0.0
    if samples > 0:
        line_wins, _ = _sample_scores(game, samples, seed)
        line_rtp = math.fsum(line_wins) / samples
    return RTPBreakdown(line_rtp=line_rtp, scatter_rtp=scatter_rtp(game), samples=samples, seed=seed)


# ═══════════════════════════════════════════════════════════════
# Score distribution
# ═══════════════════════════════════════════════════════════════

@dataclass
class HistogramBucket:
    range_start: float
    range_end: float
    count: int
    percentage: float


@dataclass
class ScoreDistribution:
    min: float
    max: float
    avg: float
    std_dev: float
    sample_size: int
    histogram: list[HistogramBucket] = field(default_factory=list)


def build_histogram(scores: list[float], bins: int = HISTOGRAM_BINS) -> list[HistogramBucket]:
    """Equal-width bins over [min, max]; the last bin is closed."""
    if not scores:
        return []
    lo, hi = min(scores), max(scores)
    if hi == lo:
        return [HistogramBucket(lo, hi, len(scores), 100.0)]

    width = (hi - lo) / bins
    counts = [0] * bins
    for s in scores:
        idx = int((s - lo) / width)
        counts[min(idx, bins - 1)] += 1
    n = len(scores)
    return [
        HistogramBucket(lo + i * width, lo + (i + 1) * width, c, round(c / n * 100, 2))
        for i, c in enumerate(counts)
    ]


def estimate_score_distribution(game: GameConfig, samples: int = 1000,
                                seed: Optional[int] = None) -> ScoreDistribution:
    """Raw (unit-bet, pre-multiplier) board scores over `samples` draws."""
    game.validate_ruleset()
    if samples <= 0:
        return ScoreDistribution(0.0, 0.0, 0.0, 0.0, 0)

    _, scores = _sample_scores(game, samples, seed)
    avg = math.fsum(scores) / samples
    variance = math.fsum((s - avg) ** 2 for s in scores) / samples
    return ScoreDistribution(
        min=min(scores),
        max=max(scores),
        avg=avg,
        std_dev=math.sqrt(variance),
        sample_size=samples,
        histogram=build_histogram(scores),
    )
