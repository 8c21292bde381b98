"""
REELFORGE — Settlement Composer

Folds one spin's board, line evaluation and free-spin transition into the
`SpinPacket` contract shared by the live runtime and the simulator.

The spin multiplier is applied to every line payout and to the scatter
payout before they are summed, so

    meta.win == Σ meta.winning_lines[i].payout + meta.scatter_payout

holds exactly for every packet.
"""

from __future__ import annotations

import copy
import hashlib
from dataclasses import dataclass, field, replace
from typing import Any, Optional

from spin_engine.board import Board
from spin_engine.evaluator import LineEvaluation, WinningLine, pick_best_line
from spin_engine.free_spin import FreeSpinMode, FreeSpinState, FreeSpinTransition

PACKET_VERSION = "2"

# Renderer parameters; the engine passes them through untouched.
DEFAULT_VISUAL: dict[str, Any] = {
    "animation": {
        "spinSpeed": 20,
        "spinDuration": 2000,
        "reelStopDelay": 200,
        "easeStrength": 0.5,
        "bounceStrength": 0.3,
    },
    "layout": {
        "reelGap": 10,
        "symbolScale": 1,
        "boardScale": 1,
    },
}


def outcome_id(board: Board, phase: FreeSpinMode) -> str:
    """Traceability token: `<phase>-<12 hex>`. Not guaranteed unique."""
    payload = "|".join(",".join(reel) for reel in board.reels) + f"#{phase.value}"
    return f"{phase.value}-{hashlib.sha256(payload.encode()).hexdigest()[:12]}"


@dataclass(frozen=True)
class SettlementMeta:
    outcome_id: str
    phase: FreeSpinMode
    win: float
    multiplier: float
    winning_lines: tuple[WinningLine, ...] = ()
    best_line: Optional[WinningLine] = None
    scatter_count: int = 0
    triggered_free_spin: bool = False
    raw_win: float = 0.0                 # before the multiplier
    scatter_payout: float = 0.0          # after the multiplier
    retriggered: bool = False
    bonus_completed: bool = False
    bonus_payout: float = 0.0

    def to_dict(self) -> dict:
        d = {
            "outcomeId": self.outcome_id,
            "phase": self.phase.value,
            "win": self.win,
            "multiplier": self.multiplier,
            "winningLines": [line.to_dict() for line in self.winning_lines],
            "scatterCount": self.scatter_count,
            "triggeredFreeSpin": self.triggered_free_spin,
            "rawWin": self.raw_win,
            "scatterPayout": self.scatter_payout,
            "retriggered": self.retriggered,
            "bonusCompleted": self.bonus_completed,
            "bonusPayout": self.bonus_payout,
        }
        if self.best_line is not None:
            d["bestLine"] = self.best_line.to_dict()
        return d


@dataclass(frozen=True)
class SpinPacket:
    board: Board
    visual: dict = field(default_factory=dict)
    assets: Optional[dict] = None
    meta: Optional[SettlementMeta] = None
    free_spin_state: Optional[FreeSpinState] = None
    version: str = PACKET_VERSION

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "version": self.version,
            "board": self.board.to_dict(),
            "visual": self.visual,
        }
        if self.assets is not None:
            d["assets"] = self.assets
        if self.meta is not None:
            d["meta"] = self.meta.to_dict()
        if self.free_spin_state is not None:
            d["freeSpinState"] = self.free_spin_state.to_dict()
        return d


class SettlementComposer:
    """Stateless; one instance can serve any number of sessions.

    Each packet gets its own copy of `visual` and `assets`, so a consumer
    editing one packet never leaks into the next.
    """

    def __init__(self, include_free_spin_state: bool = True,
                 visual: Optional[dict] = None, assets: Optional[dict] = None):
        self.include_free_spin_state = include_free_spin_state
        self.visual = copy.deepcopy(DEFAULT_VISUAL) if visual is None else visual
        self.assets = assets

    def compose_meta(self, board: Board, evaluation: LineEvaluation,
                     transition: FreeSpinTransition) -> SettlementMeta:
        multiplier = transition.multiplier
        if multiplier == 1:
            lines = evaluation.winning_lines
            scatter_payout = evaluation.scatter_payout
        else:
            lines = tuple(replace(line, payout=line.payout * multiplier)
                          for line in evaluation.winning_lines)
            scatter_payout = evaluation.scatter_payout * multiplier

        return SettlementMeta(
            outcome_id=outcome_id(board, transition.phase),
            phase=transition.phase,
            win=sum(line.payout for line in lines) + scatter_payout,
            multiplier=multiplier,
            winning_lines=lines,
            best_line=pick_best_line(lines),
            scatter_count=evaluation.scatter_count,
            triggered_free_spin=transition.triggered,
            raw_win=evaluation.raw_win,
            scatter_payout=scatter_payout,
            retriggered=transition.retriggered,
            bonus_completed=transition.bonus_completed,
            bonus_payout=transition.bonus_payout,
        )

    def compose(self, board: Board, evaluation: LineEvaluation,
                transition: FreeSpinTransition) -> SpinPacket:
        return SpinPacket(
            board=board,
            visual=copy.deepcopy(self.visual),
            assets=copy.deepcopy(self.assets),
            meta=self.compose_meta(board, evaluation, transition),
            free_spin_state=transition.state if self.include_free_spin_state else None,
        )
