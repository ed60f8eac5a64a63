"""
Timing Utilities for Latency Instrumentation

Logs how long each step of an analysis run takes, and a per-run breakdown.
"""

import logging
import time
from contextlib import contextmanager
from typing import Dict, Optional

logger = logging.getLogger(__name__)


def log_timing(run_label: str, action: str, duration_ms: Optional[float] = None):
    """Log a timing event in standard format."""
    if duration_ms is not None:
        logger.info("[TIMING] %s: %s — duration=%.0fms", run_label, action, duration_ms)
    else:
        logger.info("[TIMING] %s: %s", run_label, action)


class StepTimer:
    """
    Records the duration of each pipeline step of one run.

    Usage:
        timer = StepTimer(f"analysis {analysis_id}")
        with timer.step("competitor discovery"):
            await _run_discovery(db, analysis)
        timer.summary()

    A step that raises is still recorded, tagged as failed.
    """

    def __init__(self, run_label: str):
        self.run_label = run_label
        self.durations: Dict[str, float] = {}
        self.started = time.perf_counter()

    @contextmanager
    def step(self, step_name: str):
        start = time.perf_counter()
        outcome = "failed"
        try:
            yield
            outcome = "done"
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            self.durations[step_name] = elapsed_ms
            log_timing(self.run_label, f"{step_name} {outcome}", elapsed_ms)

    def slowest(self) -> Optional[str]:
        if not self.durations:
            return None
        return max(self.durations, key=self.durations.get)

    def summary(self) -> float:
        """Log total wall time with the slowest step; returns the total in ms."""
        total_ms = (time.perf_counter() - self.started) * 1000
        slowest = self.slowest()
        if slowest is None:
            log_timing(self.run_label, "TOTAL", total_ms)
        else:
            log_timing(
                self.run_label,
                f"TOTAL ({len(self.durations)} steps, slowest: {slowest} "
                f"{self.durations[slowest]:.0f}ms)",
                total_ms,
            )
        return total_ms
