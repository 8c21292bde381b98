"""
REELFORGE — Free Spin State Machine

Two modes, `base` and `free`. The machine is a pure function of
(state, scatter count, raw win): it never draws randomness and never mutates
the state it is given. The caller owns the state value and threads the
returned one into the next spin.

    base ──(scatters ≥ trigger, enabled)──▶ free
    free ──(scatters ≥ trigger, retrigger)─▶ free   (+retrigger spins)
    free ──(every spin)────────────────────▶ free   (remaining −1, win banked)
    free ──(remaining == 0)────────────────▶ base   (bank paid out, reset)

Multiplier timing: a spin's own win uses the multiplier active when the spin
started. The base spin that triggers the bonus pays ×1; the final free spin
still pays the bonus multiplier.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class FreeSpinMode(str, Enum):
    BASE = "base"
    FREE = "free"


class FreeSpinConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    trigger_count: int = Field(3, ge=1)           # scatters needed to enter / retrigger
    base_spin_count: int = Field(10, ge=1)
    enable_retrigger: bool = True
    retrigger_spin_count: int = Field(5, ge=0)
    enable_multiplier: bool = True
    multiplier_value: float = Field(2.0, gt=0)

    @model_validator(mode="after")
    def _retrigger_grants_spins(self) -> "FreeSpinConfig":
        if self.enable_retrigger and self.retrigger_spin_count == 0:
            raise ValueError("retrigger enabled but retrigger_spin_count is 0")
        return self

    @property
    def bonus_multiplier(self) -> float:
        return self.multiplier_value if self.enable_multiplier else 1.0


@dataclass(frozen=True)
class FreeSpinState:
    mode: FreeSpinMode = FreeSpinMode.BASE
    remaining_spins: int = 0
    total_spins: int = 0
    accumulated_win: float = 0.0
    current_multiplier: float = 1.0
    trigger_count: int = 0                        # scatters that started / last extended the bonus

    @classmethod
    def base(cls) -> "FreeSpinState":
        return cls()

    @property
    def in_free_spins(self) -> bool:
        return self.mode is FreeSpinMode.FREE

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "remainingSpins": self.remaining_spins,
            "totalSpins": self.total_spins,
            "accumulatedWin": self.accumulated_win,
            "currentMultiplier": self.current_multiplier,
            "triggerCount": self.trigger_count,
        }


@dataclass(frozen=True)
class FreeSpinTransition:
    """Everything one spin did to the bonus state."""
    phase: FreeSpinMode            # mode the spin was played in
    multiplier: float              # applied to this spin's own win
    state: FreeSpinState           # state for the next spin
    spin_win: float = 0.0          # raw win × multiplier
    triggered: bool = False
    retriggered: bool = False
    bonus_completed: bool = False
    bonus_payout: float = 0.0      # banked free-spin total, set on completion only


class FreeSpinStateMachine:

    def __init__(self, config: FreeSpinConfig):
        self.config = config

    def initial_state(self) -> FreeSpinState:
        return FreeSpinState.base()

    def _meets_trigger(self, scatter_count: int) -> bool:
        return scatter_count >= self.config.trigger_count

    def advance(self, state: FreeSpinState, scatter_count: int, raw_win: float) -> FreeSpinTransition:
        cfg = self.config

        if state.mode is FreeSpinMode.BASE:
            if cfg.enabled and self._meets_trigger(scatter_count):
                nxt = FreeSpinState(
                    mode=FreeSpinMode.FREE,
                    remaining_spins=cfg.base_spin_count,
                    total_spins=cfg.base_spin_count,
                    accumulated_win=0.0,
                    current_multiplier=cfg.bonus_multiplier,
                    trigger_count=scatter_count,
                )
                return FreeSpinTransition(
                    phase=FreeSpinMode.BASE, multiplier=1.0, state=nxt,
                    spin_win=raw_win, triggered=True,
                )
            return FreeSpinTransition(
                phase=FreeSpinMode.BASE, multiplier=1.0, state=state, spin_win=raw_win,
            )

        # Free mode: bank this spin, consume it, then check for retrigger.
        multiplier = state.current_multiplier
        spin_win = raw_win * multiplier
        accumulated = state.accumulated_win + spin_win
        remaining = state.remaining_spins - 1
        total = state.total_spins
        trigger_count = state.trigger_count

        retriggered = cfg.enable_retrigger and self._meets_trigger(scatter_count)
        if retriggered:
            remaining += cfg.retrigger_spin_count
            total += cfg.retrigger_spin_count
            trigger_count = scatter_count

        if remaining <= 0:
            return FreeSpinTransition(
                phase=FreeSpinMode.FREE, multiplier=multiplier, state=FreeSpinState.base(),
                spin_win=spin_win, bonus_completed=True, bonus_payout=accumulated,
            )

        nxt = replace(
            state,
            remaining_spins=remaining,
            total_spins=total,
            accumulated_win=accumulated,
            trigger_count=trigger_count,
        )
        return FreeSpinTransition(
            phase=FreeSpinMode.FREE, multiplier=multiplier, state=nxt,
            spin_win=spin_win, retriggered=retriggered,
        )
