"""
REELFORGE — Export Tables

Row builders and CSV text for simulation results. Everything is derived from
`SimulationResult` / `Statistics` alone; writing the text anywhere is the
caller's business.
"""

from __future__ import annotations

import csv
import io
from typing import Optional

from analytics.simulator import SimulationResult
from analytics.statistics import Statistics, compute_statistics

DETAIL_COLUMNS = [
    "spin", "bet", "win", "net", "cumulative_profit",
    "mode", "multiplier", "scatters", "triggered", "outcome_id",
]
SUMMARY_COLUMNS = ["metric", "value"]


def _num(value: float) -> str:
    """Integers print bare, everything else to 4 dp."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.4f}"


def detail_rows(result: SimulationResult) -> list[dict]:
    rows = []
    cumulative = 0.0
    for spin in result.spins:
        cumulative += spin.net
        rows.append({
            "spin": spin.index,
            "bet": _num(spin.bet),
            "win": _num(spin.win),
            "net": _num(spin.net),
            "cumulative_profit": _num(cumulative),
            "mode": spin.mode.value,
            "multiplier": _num(spin.multiplier),
            "scatters": spin.scatter_count,
            "triggered": int(spin.triggered_free_spin),
            "outcome_id": spin.outcome_id,
        })
    return rows


def summary_rows(result: SimulationResult, stats: Optional[Statistics] = None) -> list[dict]:
    stats = stats or compute_statistics(result)
    lo, hi = stats.confidence_95
    metrics = [
        ("Game", result.game_name),
        ("Seed", result.seed if result.seed is not None else ""),
        ("Requested Spins", result.requested_spins),
        ("Completed Spins", result.completed_spins),
        ("Completed", "yes" if result.completed else "no"),
        ("Base Bet", _num(result.base_bet)),
        ("Total Spins", stats.total_spins),
        ("Base Spins", stats.base_spins),
        ("Free Spins", stats.free_spins),
        ("Total Wagered", _num(stats.total_wagered)),
        ("Total Won", _num(stats.total_won)),
        ("Net", _num(stats.net)),
        ("RTP %", f"{stats.rtp*100:.4f}"),
        ("RTP 95% CI %", f"{lo*100:.4f} - {hi*100:.4f}"),
        ("Hit Count", stats.hit_count),
        ("Hit Frequency %", f"{stats.hit_frequency*100:.4f}"),
        ("Mean Win", _num(stats.mean_win)),
        ("Avg Win (per hit)", _num(stats.avg_win_per_hit)),
        ("Std Dev", _num(stats.std_dev)),
        ("Volatility", stats.volatility),
        ("Max Win", _num(stats.max_win)),
        ("Min Win", _num(stats.min_win)),
        ("Max Cumulative Profit", _num(stats.max_cumulative_profit)),
        ("Min Cumulative Profit", _num(stats.min_cumulative_profit)),
        ("Bonus Triggers", stats.bonus_triggers),
        ("Max Win Streak", stats.max_win_streak),
        ("Max Loss Streak", stats.max_loss_streak),
        ("Duration (s)", f"{result.duration_seconds:.3f}"),
    ]
    rows = [{"metric": name, "value": value} for name, value in metrics]
    if stats.distribution is not None:
        for label, count in stats.distribution.items():
            rows.append({"metric": f"Wins {label}", "value": count})
    return rows


def to_csv(rows: list[dict], columns: list[str]) -> str:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=columns, lineterminator="\n")
    writer.writeheader()
    writer.writerows(rows)
    return buf.getvalue()


def detail_csv(result: SimulationResult) -> str:
    return to_csv(detail_rows(result), DETAIL_COLUMNS)


def summary_csv(result: SimulationResult, stats: Optional[Statistics] = None) -> str:
    return to_csv(summary_rows(result, stats), SUMMARY_COLUMNS)


def combined_csv(result: SimulationResult, stats: Optional[Statistics] = None) -> str:
    """Summary block, blank line, then the per-spin detail block."""
    return summary_csv(result, stats) + "\n" + detail_csv(result)
