"""
REELFORGE — Statistics Engine

Pure reduction of a simulation ledger into aggregate metrics. Nothing here
mutates the ledger; calling `compute_statistics` twice on the same result
gives identical output.

Empty ledgers (or an `upto` of 0) produce an all-zero `Statistics` with the
RTP sentinel 0.0, never NaN.

Bucket boundaries for the outcome distribution are supplied by the caller:

    buckets = BucketSpec(edges=log_edges(0.1, 1000, per_decade=2), zero_bucket=True)
    stats = compute_statistics(result, buckets=buckets)
    for label, count in stats.distribution.items():
        ...
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional

from spin_engine.errors import ConfigError
from spin_engine.free_spin import FreeSpinMode

from analytics.simulator import SimulationResult

Z_95 = 1.96


# ═══════════════════════════════════════════════════════════════
# Buckets
# ═══════════════════════════════════════════════════════════════

def linear_edges(start: float, stop: float, count: int) -> list[float]:
    """`count` equal-width buckets over [start, stop] → count + 1 edges."""
    if count < 1 or stop <= start:
        raise ConfigError(f"Invalid linear buckets: {start}..{stop} x{count}")
    span = stop - start
    # span * i / count keeps decimal edges such as 0.3 exact
    return [start + span * i / count for i in range(count)] + [stop]


def log_edges(start: float, stop: float, per_decade: int = 1) -> list[float]:
    """Logarithmic edges from `start` to at least `stop`, `per_decade` per ×10."""
    if start <= 0 or stop <= start or per_decade < 1:
        raise ConfigError(f"Invalid log buckets: {start}..{stop} /{per_decade}")
    steps = math.ceil(round(math.log10(stop / start) * per_decade, 9))
    # 12 significant digits drops float noise such as 10.000000000000002
    return [float(f"{start * 10 ** (i / per_decade):.12g}") for i in range(steps + 1)]


@dataclass(frozen=True)
class BucketSpec:
    """Half-open buckets [e_i, e_i+1); values past the last edge go to an overflow bucket."""
    edges: tuple[float, ...]
    zero_bucket: bool = True          # count win == 0 separately

    def __post_init__(self):
        edges = tuple(float(e) for e in self.edges)
        if len(edges) < 2:
            raise ConfigError("BucketSpec needs at least two edges")
        if any(b <= a for a, b in zip(edges, edges[1:])):
            raise ConfigError("BucketSpec edges must be strictly increasing")
        object.__setattr__(self, "edges", edges)

    def labels(self) -> list[str]:
        out = ["0x"] if self.zero_bucket else []
        if self.edges[0] > 0 or not self.zero_bucket:
            out.append(f"<{_fmt(self.edges[0])}x")
        out += [f"{_fmt(a)}-{_fmt(b)}x" for a, b in zip(self.edges, self.edges[1:])]
        out.append(f"{_fmt(self.edges[-1])}x+")
        return out

    def label_for(self, multiple: float) -> str:
        if self.zero_bucket and multiple == 0:
            return "0x"
        edges = self.edges
        if multiple < edges[0]:
            return f"<{_fmt(edges[0])}x"
        if multiple >= edges[-1]:
            return f"{_fmt(edges[-1])}x+"
        # linear scan; bucket counts are small
        for a, b in zip(edges, edges[1:]):
            if multiple < b:
                return f"{_fmt(a)}-{_fmt(b)}x"
        return f"{_fmt(edges[-1])}x+"


def _fmt(x: float) -> str:
    return f"{x:g}"


@dataclass(frozen=True)
class OutcomeDistribution:
    """Bucket label → spin count, in bucket order. Wins measured in multiples of the base bet."""
    spec: BucketSpec
    counts: dict = field(default_factory=dict)
    total: int = 0

    def percentages(self) -> dict:
        if self.total == 0:
            return {k: 0.0 for k in self.counts}
        return {k: round(v / self.total * 100, 4) for k, v in self.counts.items()}

    def items(self):
        return self.counts.items()


# ═══════════════════════════════════════════════════════════════
# Statistics
# ═══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Statistics:
    total_spins: int = 0
    total_wagered: float = 0.0
    total_won: float = 0.0
    net: float = 0.0
    rtp: float = 0.0                       # fraction; 0.0 when nothing was wagered
    hit_count: int = 0
    hit_frequency: float = 0.0
    mean_win: float = 0.0
    variance: float = 0.0                  # population
    std_dev: float = 0.0
    max_win: float = 0.0
    min_win: float = 0.0
    avg_win_per_hit: float = 0.0
    max_cumulative_profit: float = 0.0
    min_cumulative_profit: float = 0.0
    base_spins: int = 0
    free_spins: int = 0
    bonus_triggers: int = 0
    max_win_streak: int = 0
    max_loss_streak: int = 0
    confidence_95: tuple = (0.0, 0.0)      # RTP interval
    volatility_index: float = 0.0          # σ in base-bet units
    volatility: str = "Low"
    distribution: Optional[OutcomeDistribution] = None

    def summary(self) -> str:
        lo, hi = self.confidence_95
        return "\n".join([
            f"  Spins:        {self.total_spins:,} ({self.base_spins:,} base / {self.free_spins:,} free)",
            f"  RTP:          {self.rtp*100:.4f}%  (95% CI {lo*100:.3f}% – {hi*100:.3f}%)",
            f"  Hit Freq:     {self.hit_frequency*100:.2f}%",
            f"  Std Dev:      {self.std_dev:.4f}  → {self.volatility}",
            f"  Max Win:      {self.max_win:,.2f}",
            f"  Bonus Hits:   {self.bonus_triggers:,}",
            f"  Max Loss Streak: {self.max_loss_streak}",
            f"  Max Win Streak:  {self.max_win_streak}",
        ])

    def to_dict(self) -> dict:
        d = {
            "total_spins": self.total_spins,
            "total_wagered": round(self.total_wagered, 4),
            "total_won": round(self.total_won, 4),
            "net": round(self.net, 4),
            "rtp_pct": round(self.rtp * 100, 4),
            "hit_count": self.hit_count,
            "hit_frequency_pct": round(self.hit_frequency * 100, 4),
            "mean_win": round(self.mean_win, 6),
            "variance": round(self.variance, 6),
            "std_dev": round(self.std_dev, 6),
            "max_win": self.max_win,
            "min_win": self.min_win,
            "avg_win_per_hit": round(self.avg_win_per_hit, 6),
            "max_cumulative_profit": round(self.max_cumulative_profit, 4),
            "min_cumulative_profit": round(self.min_cumulative_profit, 4),
            "base_spins": self.base_spins,
            "free_spins": self.free_spins,
            "bonus_triggers": self.bonus_triggers,
            "streak_analysis": {
                "max_win_streak": self.max_win_streak,
                "max_loss_streak": self.max_loss_streak,
            },
            "confidence_95_pct": [round(x * 100, 4) for x in self.confidence_95],
            "volatility_index": round(self.volatility_index, 4),
            "volatility": self.volatility,
        }
        if self.distribution is not None:
            d["distribution"] = dict(self.distribution.counts)
        return d


def volatility_tier(index: float) -> str:
    if index < 5:
        return "Low"
    elif index < 10:
        return "Medium"
    elif index < 20:
        return "High"
    return "Very High"


def _empty_distribution(buckets: BucketSpec) -> OutcomeDistribution:
    return OutcomeDistribution(spec=buckets, counts={k: 0 for k in buckets.labels()}, total=0)


def compute_statistics(result: SimulationResult, buckets: Optional[BucketSpec] = None,
                       upto: Optional[int] = None) -> Statistics:
    """Reduce `result.spins[:upto]` (all spins when `upto` is None)."""
    spins = result.spins if upto is None else result.spins[:max(0, upto)]
    n = len(spins)
    if n == 0:
        return Statistics(distribution=_empty_distribution(buckets) if buckets else None)

    wagered = 0.0
    won = 0.0
    hits = 0
    free = 0
    triggers = 0
    max_win = -math.inf
    min_win = math.inf
    cumulative = 0.0
    max_cum = -math.inf
    min_cum = math.inf
    # Welford
    mean = 0.0
    m2 = 0.0
    # Streaks
    cur_win = cur_loss = max_win_streak = max_loss_streak = 0
    counts = {k: 0 for k in buckets.labels()} if buckets else None
    unit = result.base_bet if result.base_bet > 0 else 1.0

    for k, spin in enumerate(spins, start=1):
        w = spin.win
        wagered += spin.bet
        won += w
        cumulative += spin.net
        if cumulative > max_cum:
            max_cum = cumulative
        if cumulative < min_cum:
            min_cum = cumulative
        if w > max_win:
            max_win = w
        if w < min_win:
            min_win = w

        delta = w - mean
        mean += delta / k
        m2 += delta * (w - mean)

        if w > 0:
            hits += 1
            cur_win += 1
            cur_loss = 0
            if cur_win > max_win_streak:
                max_win_streak = cur_win
        else:
            cur_loss += 1
            cur_win = 0
            if cur_loss > max_loss_streak:
                max_loss_streak = cur_loss

        if spin.mode is FreeSpinMode.FREE:
            free += 1
        if spin.triggered_free_spin:
            triggers += 1
        if counts is not None:
            counts[buckets.label_for(w / unit)] += 1

    variance = m2 / n
    std_dev = math.sqrt(variance)
    rtp = won / wagered if wagered > 0 else 0.0
    if wagered > 0:
        half = Z_95 * std_dev * math.sqrt(n) / wagered
        ci = (rtp - half, rtp + half)
    else:
        ci = (0.0, 0.0)
    vol_index = std_dev / unit

    return Statistics(
        total_spins=n,
        total_wagered=wagered,
        total_won=won,
        net=won - wagered,
        rtp=rtp,
        hit_count=hits,
        hit_frequency=hits / n,
        mean_win=mean,
        variance=variance,
        std_dev=std_dev,
        max_win=max_win,
        min_win=min_win,
        avg_win_per_hit=won / hits if hits else 0.0,
        max_cumulative_profit=max_cum,
        min_cumulative_profit=min_cum,
        base_spins=n - free,
        free_spins=free,
        bonus_triggers=triggers,
        max_win_streak=max_win_streak,
        max_loss_streak=max_loss_streak,
        confidence_95=ci,
        volatility_index=vol_index,
        volatility=volatility_tier(vol_index),
        distribution=OutcomeDistribution(spec=buckets, counts=counts, total=n) if buckets else None,
    )
