"""
REELFORGE — Simulation Analytics

Monte Carlo runs of the spin engine, ledger statistics and export tables.

Usage:
    from analytics import Simulator, SimulationConfig, compute_statistics
    result = Simulator(game).run(SimulationConfig(spin_count=100_000, seed=7))
    print(compute_statistics(result).summary())
"""

from analytics.simulator import (
    CancellationToken, RunningTotals, SimulationConfig, SimulationResult, Simulator,
    SpinResult, run_parallel, seeded_configs,
)
from analytics.statistics import (
    BucketSpec, OutcomeDistribution, Statistics, compute_statistics, linear_edges, log_edges,
)
from analytics.export import combined_csv, detail_csv, detail_rows, summary_csv, summary_rows
