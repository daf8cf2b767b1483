"""
Differential execution: result model, oracle, artifact store and statistics.

The harness lives in zkfuzz.differential.harness and is imported explicitly;
runners depend on this package and the harness depends on runners.
"""

from .engine import Diff, ExecutionResult, Status, compare
from .stats import CampaignStats, print_summary
from .store import SUMMARY_COLUMNS, ArtifactRecord, ArtifactStore, Provenance, RunLog

__all__ = [
    "ArtifactRecord",
    "ArtifactStore",
    "CampaignStats",
    "Diff",
    "ExecutionResult",
    "Provenance",
    "RunLog",
    "Status",
    "SUMMARY_COLUMNS",
    "compare",
    "print_summary",
]
