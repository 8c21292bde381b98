"""
REELFORGE — Monte Carlo Simulator

Runs the spin pipeline N times for one session and records every spin in a
pre-sized, index-addressed ledger.

  • one run = one RNG stream + one FreeSpinState, never shared
  • free spins are ledger entries with bet = 0 and count toward spin_count
  • progress fires every `progress_interval` spins and once at the end
  • cancellation is polled after each spin; a cancelled run returns the
    partial ledger marked incomplete
  • independent seeds can run in worker processes via `run_parallel`

Usage:
    from analytics.simulator import Simulator, SimulationConfig
    sim = Simulator(default_game_config())
    result = sim.run(SimulationConfig(spin_count=100_000, base_bet=1.0, seed=42))
    print(result.summary())
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from typing import Callable, Optional

from pydantic import BaseModel, ValidationError

from config.settings import EngineConfig
from spin_engine.errors import ConfigError
from spin_engine.executor import SpinExecutor
from spin_engine.free_spin import FreeSpinMode
from spin_engine.game import GameConfig
from spin_engine.rng import derive_seed, make_rng, new_seed

logger = logging.getLogger("reelforge.sim")


# ═══════════════════════════════════════════════════════════════
# Inputs
# ═══════════════════════════════════════════════════════════════

class SimulationConfig(BaseModel):
    spin_count: int
    base_bet: float = 1.0
    seed: Optional[int] = None
    progress_interval: Optional[int] = None       # None = EngineConfig cadence

    def __init__(self, **data):
        try:
            super().__init__(**data)
        except ValidationError as e:
            raise ConfigError(f"Invalid simulation config: {e}") from e

    def check(self) -> "SimulationConfig":
        """Raise ConfigError for a run that must not start."""
        if self.spin_count <= 0:
            raise ConfigError(f"spin_count must be positive, got {self.spin_count}")
        if not self.base_bet > 0:
            raise ConfigError(f"base_bet must be positive, got {self.base_bet}")
        if self.progress_interval is not None and self.progress_interval <= 0:
            raise ConfigError(f"progress_interval must be positive, got {self.progress_interval}")
        return self


class CancellationToken:
    """Cooperative stop flag, safe to set from another thread."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


# ═══════════════════════════════════════════════════════════════
# Ledger
# ═══════════════════════════════════════════════════════════════

@dataclass
class SpinResult:
    """One ledger row."""
    index: int                         # 1-based spin number
    bet: float
    win: float
    mode: FreeSpinMode = FreeSpinMode.BASE
    multiplier: float = 1.0
    scatter_count: int = 0
    triggered_free_spin: bool = False
    outcome_id: str = ""
    net: float = field(init=False)

    def __post_init__(self):
        self.net = self.win - self.bet

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "bet": self.bet,
            "win": self.win,
            "net": self.net,
            "mode": self.mode.value,
            "multiplier": self.multiplier,
            "scatter_count": self.scatter_count,
            "triggered_free_spin": self.triggered_free_spin,
            "outcome_id": self.outcome_id,
        }


@dataclass
class RunningTotals:
    spins: int = 0
    wagered: float = 0.0
    won: float = 0.0
    hits: int = 0
    free_spins: int = 0
    bonus_triggers: int = 0
    max_win: float = 0.0

    @property
    def net(self) -> float:
        return self.won - self.wagered

    @property
    def rtp(self) -> float:
        return self.won / self.wagered if self.wagered > 0 else 0.0

    def add(self, spin: SpinResult) -> None:
        self.spins += 1
        self.wagered += spin.bet
        self.won += spin.win
        if spin.win > 0:
            self.hits += 1
            if spin.win > self.max_win:
                self.max_win = spin.win
        if spin.mode is FreeSpinMode.FREE:
            self.free_spins += 1
        if spin.triggered_free_spin:
            self.bonus_triggers += 1


ProgressCallback = Callable[[int, RunningTotals], None]


@dataclass
class SimulationResult:
    """Ledger + run metadata. `spins` is in spin order."""
    spins: list[SpinResult]
    requested_spins: int
    completed_spins: int
    completed: bool
    cancelled: bool = False
    duration_seconds: float = 0.0
    seed: Optional[int] = None
    base_bet: float = 1.0
    game_name: str = ""

    @property
    def spins_per_second(self) -> float:
        return self.completed_spins / self.duration_seconds if self.duration_seconds > 0 else 0.0

    def totals(self) -> RunningTotals:
        totals = RunningTotals()
        for spin in self.spins:
            totals.add(spin)
        return totals

    def summary(self) -> str:
        t = self.totals()
        status = "complete" if self.completed else "CANCELLED" if self.cancelled else "incomplete"
        return "\n".join([
            f"═══ Simulation: {self.game_name or 'game'} ═══",
            f"  Spins:     {self.completed_spins:,} / {self.requested_spins:,} ({status})",
            f"  Seed:      {self.seed}",
            f"  Wagered:   {t.wagered:,.2f}",
            f"  Won:       {t.won:,.2f}",
            f"  RTP:       {t.rtp*100:.4f}%",
            f"  Hit Freq:  {(t.hits / t.spins if t.spins else 0.0)*100:.2f}%",
            f"  Speed:     {self.spins_per_second:,.0f} spins/sec",
            f"  Duration:  {self.duration_seconds:.2f}s",
        ])

    def to_dict(self, include_spins: bool = False) -> dict:
        d = {
            "game": self.game_name,
            "requested_spins": self.requested_spins,
            "completed_spins": self.completed_spins,
            "completed": self.completed,
            "cancelled": self.cancelled,
            "duration_s": round(self.duration_seconds, 3),
            "seed": self.seed,
            "base_bet": self.base_bet,
        }
        if include_spins:
            d["spins"] = [s.to_dict() for s in self.spins]
        return d


# ═══════════════════════════════════════════════════════════════
# Simulator
# ═══════════════════════════════════════════════════════════════

class Simulator:

    def __init__(self, game: GameConfig):
        game.validate_ruleset()
        self.game = game

    def run(self, config: SimulationConfig, on_progress: Optional[ProgressCallback] = None,
            cancel: Optional[CancellationToken] = None) -> SimulationResult:
        try:
            config.check()
        except ConfigError as e:
            logger.error(f"Simulation rejected: {e}")
            raise

        n = config.spin_count
        bet = config.base_bet
        seed = config.seed if config.seed is not None else new_seed()
        interval = config.progress_interval or EngineConfig.progress_interval_for(n)

        executor = SpinExecutor(self.game, rng=make_rng(seed))
        ledger: list = [None] * n
        totals = RunningTotals()
        done = 0
        cancelled = False

        logger.info(f"Simulation start: '{self.game.name}' {n:,} spins, bet={bet}, seed={seed}")
        t0 = time.time()
        for i in range(n):
            paid = not executor.state.in_free_spins
            meta = executor.spin(bet).meta
            spin = SpinResult(
                index=i + 1,
                bet=bet if paid else 0.0,
                win=meta.win,
                mode=meta.phase,
                multiplier=meta.multiplier,
                scatter_count=meta.scatter_count,
                triggered_free_spin=meta.triggered_free_spin,
                outcome_id=meta.outcome_id,
            )
            ledger[i] = spin
            totals.add(spin)
            done = i + 1

            if on_progress is not None and done % interval == 0 and done < n:
                on_progress(done, replace(totals))
            if cancel is not None and cancel.cancelled and done < n:
                cancelled = True
                break
        duration = time.time() - t0

        if on_progress is not None:
            on_progress(done, replace(totals))

        if cancelled:
            ledger = ledger[:done]
            logger.warning(f"Simulation cancelled after {done:,}/{n:,} spins")
        else:
            logger.info(f"Simulation done: {done:,} spins in {duration:.2f}s, RTP={totals.rtp*100:.3f}%")

        return SimulationResult(
            spins=ledger,
            requested_spins=n,
            completed_spins=done,
            completed=not cancelled,
            cancelled=cancelled,
            duration_seconds=duration,
            seed=seed,
            base_bet=bet,
            game_name=self.game.name,
        )


# ═══════════════════════════════════════════════════════════════
# Multi-seed runs
# ═══════════════════════════════════════════════════════════════

def _run_one(game: GameConfig, config: SimulationConfig) -> SimulationResult:
    # Top-level so worker processes can pickle it.
    return Simulator(game).run(config)


def seeded_configs(base: SimulationConfig, runs: int) -> list[SimulationConfig]:
    """`runs` copies of `base`, each with a deterministic child seed."""
    root = base.seed if base.seed is not None else new_seed()
    return [base.model_copy(update={"seed": derive_seed(root, f"run-{i}")}) for i in range(runs)]


def run_parallel(game: GameConfig, configs: list[SimulationConfig],
                 max_workers: Optional[int] = None) -> list[SimulationResult]:
    """Independent runs in worker processes. Results keep the input order."""
    game.validate_ruleset()
    for cfg in configs:
        cfg.check()
    if not configs:
        return []

    workers = max(1, min(max_workers or EngineConfig.MAX_WORKERS, len(configs)))
    logger.info(f"Parallel simulation: {len(configs)} runs on {workers} workers")

    results: list = [None] * len(configs)
    with ProcessPoolExecutor(max_workers=workers) as pool:
        futures = {pool.submit(_run_one, game, cfg): idx for idx, cfg in enumerate(configs)}
        for future in as_completed(futures):
            idx = futures[future]
            results[idx] = future.result()
            logger.info(f"  ✓ run {idx + 1}/{len(configs)} seed={results[idx].seed}")
    return results
