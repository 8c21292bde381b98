#!/usr/bin/env python3
"""
REELFORGE — Simulation CLI

Usage:
    python -m analytics.cli --spins 1000000 --seed 42
    python -m analytics.cli --config games/demo.json --buckets log --summary-csv out/summary.csv
    python -m analytics.cli --seeds 1 2 3 4 --spins 250000
    python -m analytics.cli --dump-config
    python -m analytics.cli --rtp-preview 20000

Ctrl-C during a single run cancels it and reports the partial ledger.
"""

import argparse
import json
import sys
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TextColumn, TimeRemainingColumn
from rich.table import Table

from config.settings import EngineConfig, configure_logging
from spin_engine.errors import ReelForgeError
from spin_engine.game import default_game_config, load_game_config
from spin_engine.rtp import rtp_breakdown

from analytics.export import combined_csv, detail_csv, summary_csv
from analytics.simulator import (
    CancellationToken, SimulationConfig, Simulator, run_parallel,
)
from analytics.statistics import BucketSpec, compute_statistics, linear_edges, log_edges

console = Console()


def _buckets(kind):
    if kind == "linear":
        return BucketSpec(edges=tuple(linear_edges(0, 50, 10)))
    if kind == "log":
        return BucketSpec(edges=tuple(log_edges(0.1, 1000, per_decade=1)))
    return None


def _stats_table(stats, title="Results"):
    table = Table(title=title)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    lo, hi = stats.confidence_95
    table.add_row("Spins", f"{stats.total_spins:,} ({stats.free_spins:,} free)")
    table.add_row("Wagered", f"{stats.total_wagered:,.2f}")
    table.add_row("Won", f"{stats.total_won:,.2f}")
    table.add_row("RTP", f"{stats.rtp*100:.4f}%")
    table.add_row("RTP 95% CI", f"{lo*100:.3f}% – {hi*100:.3f}%")
    table.add_row("Hit Frequency", f"{stats.hit_frequency*100:.2f}%")
    table.add_row("Std Dev", f"{stats.std_dev:.4f}")
    table.add_row("Volatility", stats.volatility)
    table.add_row("Max Win", f"{stats.max_win:,.2f}")
    table.add_row("Bonus Triggers", f"{stats.bonus_triggers:,}")
    table.add_row("Max Loss Streak", str(stats.max_loss_streak))
    return table


def _distribution_table(dist):
    table = Table(title="Win Distribution (× bet)")
    table.add_column("Bucket", style="cyan")
    table.add_column("Spins", justify="right")
    table.add_column("%", justify="right")
    pct = dist.percentages()
    for label, count in dist.items():
        table.add_row(label, f"{count:,}", f"{pct[label]:.2f}")
    return table


def _write(path, text):
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(text, encoding="utf-8")
    console.print(f"  ✅ wrote {out} ({out.stat().st_size:,} bytes)")


def _run_single(sim, cfg):
    """Run on a worker thread so Ctrl-C can cancel cooperatively."""
    token = CancellationToken()
    with Progress(TextColumn("[cyan]{task.description}"), BarColumn(),
                  TextColumn("{task.completed:,}/{task.total:,}"), TimeRemainingColumn(),
                  console=console) as progress:
        task = progress.add_task("Simulating", total=cfg.spin_count)

        def on_progress(done, totals):
            progress.update(task, completed=done,
                            description=f"RTP {totals.rtp*100:.2f}%")

        with ThreadPoolExecutor(max_workers=1) as pool:
            future = pool.submit(sim.run, cfg, on_progress, token)
            while True:
                try:
                    return future.result(timeout=0.2)
                except FutureTimeout:
                    continue
                except KeyboardInterrupt:
                    console.print("[yellow]Cancelling…[/yellow]")
                    token.cancel()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Monte Carlo simulation for a line slot ruleset")
    parser.add_argument("--config", type=str, help="GameConfig JSON file (default: demo ruleset)")
    parser.add_argument("--spins", type=int, default=EngineConfig.SIMULATION_SPINS)
    parser.add_argument("--bet", type=float, default=EngineConfig.DEFAULT_BASE_BET)
    parser.add_argument("--seed", type=int, default=EngineConfig.DEFAULT_SEED)
    parser.add_argument("--seeds", type=int, nargs="+", help="Run one independent simulation per seed")
    parser.add_argument("--workers", type=int, default=EngineConfig.MAX_WORKERS)
    parser.add_argument("--progress-interval", type=int, default=None)
    parser.add_argument("--buckets", choices=["linear", "log"], default=None)
    parser.add_argument("--json", type=str, help="Write statistics JSON here")
    parser.add_argument("--detail-csv", type=str)
    parser.add_argument("--summary-csv", type=str)
    parser.add_argument("--combined-csv", type=str)
    parser.add_argument("--dump-config", action="store_true", help="Print the resolved ruleset and exit")
    parser.add_argument("--rtp-preview", type=int, metavar="BOARDS",
                        help="Print the theoretical base-game RTP breakdown and exit")
    parser.add_argument("--log-level", type=str, default=None)
    args = parser.parse_args(argv)

    if args.seeds:
        single_run_only = [flag for flag, value in (
            ("--json", args.json), ("--detail-csv", args.detail_csv),
            ("--summary-csv", args.summary_csv), ("--combined-csv", args.combined_csv),
            ("--buckets", args.buckets),
        ) if value]
        if single_run_only:
            parser.error(f"--seeds prints a comparison table only; drop {', '.join(single_run_only)}")

    configure_logging(args.log_level)

    try:
        game = load_game_config(args.config) if args.config else default_game_config().validate_ruleset()

        if args.dump_config:
            print(game.model_dump_json(indent=2))
            return 0

        if args.rtp_preview:
            breakdown = rtp_breakdown(game, samples=args.rtp_preview, seed=args.seed)
            console.print(Panel(breakdown.summary(), title=f"RTP preview — {game.name}",
                                border_style="cyan"))
            return 0

        buckets = _buckets(args.buckets)
        console.print(Panel(
            f"[bold]🎰 {game.name}[/bold]\n\n"
            f"Board: {game.board.cols}×{game.board.rows}  Lines: {game.resolved_lines().count}\n"
            f"Spins: {args.spins:,}  Bet: {args.bet}\n"
            f"Free spins: {'on' if game.free_spins.enabled else 'off'}",
            title="ReelForge Simulation", border_style="cyan",
        ))

        base = SimulationConfig(spin_count=args.spins, base_bet=args.bet, seed=args.seed,
                                progress_interval=args.progress_interval)

        if args.seeds:
            configs = [base.model_copy(update={"seed": s}) for s in args.seeds]
            results = run_parallel(game, configs, max_workers=args.workers)
            table = Table(title=f"{len(results)} independent runs")
            table.add_column("Seed", style="cyan")
            table.add_column("RTP", justify="right")
            table.add_column("Hit %", justify="right")
            table.add_column("σ", justify="right")
            table.add_column("Bonus", justify="right")
            for r in results:
                s = compute_statistics(r)
                table.add_row(str(r.seed), f"{s.rtp*100:.3f}%", f"{s.hit_frequency*100:.2f}",
                              f"{s.std_dev:.3f}", f"{s.bonus_triggers:,}")
            console.print(table)
            return 0

        result = _run_single(Simulator(game), base)
        stats = compute_statistics(result, buckets=buckets)

        if result.cancelled:
            console.print(f"[yellow]Cancelled after {result.completed_spins:,} spins "
                          f"(partial results below)[/yellow]")
        console.print(_stats_table(stats, title=f"{game.name} — seed {result.seed}"))
        if stats.distribution is not None:
            console.print(_distribution_table(stats.distribution))

        if args.json:
            _write(args.json, json.dumps({"run": result.to_dict(), "statistics": stats.to_dict()},
                                         indent=2))
        if args.detail_csv:
            _write(args.detail_csv, detail_csv(result))
        if args.summary_csv:
            _write(args.summary_csv, summary_csv(result, stats))
        if args.combined_csv:
            _write(args.combined_csv, combined_csv(result, stats))
        return 0

    except ReelForgeError as e:
        console.print(f"[bold red]❌ {e}[/bold red]")
        return 2


if __name__ == "__main__":
    sys.exit(main())
