from .engine import (
    STRATEGY_MAP,
    MutationEntry,
    MutationPlan,
    MutationStats,
    PlanCheckpoint,
    Strategy,
    calculate_size_stats,
    canonical_json,
    generate,
    load_manifest,
    register_strategy,
)
from . import strategies  # noqa: F401  registers the built-in strategies


def available_strategies():
    return list(STRATEGY_MAP)


__all__ = [
    "STRATEGY_MAP",
    "MutationEntry",
    "MutationPlan",
    "MutationStats",
    "PlanCheckpoint",
    "Strategy",
    "available_strategies",
    "calculate_size_stats",
    "canonical_json",
    "generate",
    "load_manifest",
    "register_strategy",
]
