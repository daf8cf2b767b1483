"""
Campaign Statistics

Tracks pass/divergence/error counts and per-backend timing for a campaign.
"""

import json
import logging
import threading
import time
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from rich.console import Console
from rich.table import Table

logger = logging.getLogger("zkfuzz.differential.stats")


class TimingStats:
    """Min/max/avg of elapsed milliseconds for one backend."""

    def __init__(self):
        self.count = 0
        self.total_ms = 0
        self.min_ms: Optional[int] = None
        self.max_ms: Optional[int] = None

    def add(self, elapsed_ms: int):
        self.count += 1
        self.total_ms += elapsed_ms
        self.min_ms = elapsed_ms if self.min_ms is None else min(self.min_ms, elapsed_ms)
        self.max_ms = elapsed_ms if self.max_ms is None else max(self.max_ms, elapsed_ms)

    @property
    def avg_ms(self) -> float:
        return self.total_ms / self.count if self.count else 0.0

    def as_dict(self) -> Dict:
        return {"count": self.count, "min_ms": self.min_ms, "max_ms": self.max_ms, "avg_ms": self.avg_ms}


class CampaignStats:
    """
    Statistics for one program within a campaign.

    Metrics tracked:
    - Variants planned, executed, skipped (resume)
    - Passes, divergences and precondition errors
    - Divergences by operator
    - Elapsed time per backend
    """

    def __init__(self, program_id: str, planned: int = 0):
        self.program_id = program_id
        self.planned = planned
        self.start_time = time.time()
        self.elapsed_time = 0.0

        self.executed = 0
        self.skipped = 0
        self.passed = 0
        self.divergences = 0
        self.errors = 0

        self._divergent: List[Tuple[int, str]] = []
        self.status_pairs = defaultdict(int)
        self.timing = {"a": TimingStats(), "b": TimingStats()}
        self._lock = threading.Lock()

    def record_comparison(self, index: int, operator: str, equal: bool, status_a: str, status_b: str,
                          elapsed_a_ms: int, elapsed_b_ms: int):
        with self._lock:
            self.executed += 1
            if equal:
                self.passed += 1
            else:
                self.divergences += 1
                self._divergent.append((index, operator))
            self.status_pairs[f"{status_a}/{status_b}"] += 1
            self.timing["a"].add(elapsed_a_ms)
            self.timing["b"].add(elapsed_b_ms)

    @property
    def divergent_ops(self) -> List[str]:
        """Divergent operators in plan order, whatever order the workers finished in."""
        with self._lock:
            return [op for _, op in sorted(self._divergent)]

    def record_error(self, operator: str, error: Exception):
        with self._lock:
            self.errors += 1
        logger.error(f"{self.program_id} {operator}: {error}")

    def record_skip(self, count: int = 1):
        with self._lock:
            self.skipped += count

    def update(self):
        self.elapsed_time = time.time() - self.start_time

    def get_stats(self) -> Dict:
        self.update()
        total = max(1, self.executed)
        return {
            "program": self.program_id,
            "elapsed_time": self.elapsed_time,
            "planned": self.planned,
            "executed": self.executed,
            "skipped": self.skipped,
            "passed": self.passed,
            "divergences": self.divergences,
            "errors": self.errors,
            "pass_rate": self.passed / total * 100,
            "divergent_ops": self.divergent_ops,
            "status_pairs": dict(self.status_pairs),
            "timing_a": self.timing["a"].as_dict(),
            "timing_b": self.timing["b"].as_dict(),
        }

    def save_to_file(self, filepath: str):
        stats = self.get_stats()
        stats["timestamp"] = datetime.now().isoformat()
        with open(filepath, "w") as f:
            json.dump(stats, f, indent=2)
        logger.debug(f"Saved stats to {filepath}")


def _fmt_ms(value) -> str:
    return "-" if value is None else f"{value}"


def print_summary(stats: List[CampaignStats], backend_a: str = "native", backend_b: str = "vm",
                  console: Optional[Console] = None):
    """Print a per-program campaign table plus totals."""
    console = console or Console()

    table = Table(title="Differential Campaign", show_lines=False)
    table.add_column("Program", style="cyan")
    table.add_column("Planned", justify="right")
    table.add_column("Run", justify="right")
    table.add_column("Passed", justify="right", style="green")
    table.add_column("Divergent", justify="right", style="red")
    table.add_column("Errors", justify="right", style="yellow")
    table.add_column(f"{backend_a} min/avg/max ms", justify="right")
    table.add_column(f"{backend_b} min/avg/max ms", justify="right")

    for s in stats:
        ta, tb = s.timing["a"], s.timing["b"]
        table.add_row(
            s.program_id,
            str(s.planned),
            str(s.executed),
            str(s.passed),
            str(s.divergences),
            str(s.errors),
            f"{_fmt_ms(ta.min_ms)}/{ta.avg_ms:.1f}/{_fmt_ms(ta.max_ms)}",
            f"{_fmt_ms(tb.min_ms)}/{tb.avg_ms:.1f}/{_fmt_ms(tb.max_ms)}",
        )
    console.print(table)

    executed = sum(s.executed for s in stats)
    divergences = sum(s.divergences for s in stats)
    elapsed = timedelta(seconds=int(max((s.elapsed_time for s in stats), default=0)))
    console.print(f"Total comparisons: {executed:,}  Divergences: {divergences}  Elapsed: {elapsed}")

    for s in stats:
        for op in s.divergent_ops:
            console.print(f"  [red]divergent[/red] {s.program_id} {op}")
