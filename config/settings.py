"""
ReelForge - Engine Settings & Logging Bootstrap

Process-level knobs read once from the environment (a local .env is loaded
first). Rulesets are not configured here; those are GameConfig JSON files.

    SIMULATION_SPINS    default spins per CLI run
    PROGRESS_INTERVAL   spins between progress callbacks (0 = auto)
    DEFAULT_BASE_BET    stake per paid spin
    DEFAULT_SEED        empty = fresh OS entropy per run
    MAX_WORKERS         process pool size for multi-seed runs
    LOG_LEVEL           root log level for configure_logging()
"""

import logging
import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _optional_int(raw: Optional[str]) -> Optional[int]:
    raw = (raw or "").strip()
    return int(raw) if raw else None


# ============================================================
# Simulation defaults
# ============================================================

class EngineConfig:
    SIMULATION_SPINS = int(os.getenv("SIMULATION_SPINS", "100000"))
    PROGRESS_INTERVAL = int(os.getenv("PROGRESS_INTERVAL", "0"))
    DEFAULT_BASE_BET = float(os.getenv("DEFAULT_BASE_BET", "1.0"))
    DEFAULT_SEED = _optional_int(os.getenv("DEFAULT_SEED"))
    MAX_WORKERS = int(os.getenv("MAX_WORKERS", str(min(4, os.cpu_count() or 1))))

    # Auto progress cadence: ~100 callbacks per run, never more often than this
    MIN_PROGRESS_INTERVAL = 1000

    @classmethod
    def progress_interval_for(cls, spin_count: int) -> int:
        if cls.PROGRESS_INTERVAL > 0:
            return cls.PROGRESS_INTERVAL
        return max(cls.MIN_PROGRESS_INTERVAL, spin_count // 100)


# ============================================================
# Logging
# ============================================================

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """Apply the standard format once, at process entry points only."""
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
    )
    return logging.getLogger("reelforge")
