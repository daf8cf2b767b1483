"""
Mutation Engine

Expands one seed input into an ordered, deterministic plan of input variants.
A plan is a pure function of (program, seed, strategy, strategy version,
parameters, rng seed); nothing here reads the clock or ambient entropy.
"""

from abc import ABC, abstractmethod
import copy
import hashlib
import json
import logging
import os
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple, Type

from zkfuzz.errors import InputDecodeError, MutationError
from zkfuzz.programs import load_program

logger = logging.getLogger("zkfuzz.mutators")

MANIFEST_NAME = "plan.json"
CHECKPOINT_NAME = "completed.log"

STRATEGY_MAP: Dict[str, Type["Strategy"]] = {}


def register_strategy(cls):
    STRATEGY_MAP[cls.name] = cls
    return cls


def canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class Strategy(ABC):
    """
    A named, versioned, stateless generator of input variants.

    Bump version whenever the generated sequence changes so that stored
    plans can no longer be resumed against it.
    """

    name = ""
    version = 1
    uses_rng = False

    def __init__(self, **params):
        self.params = params

    @abstractmethod
    def variants(self, seed: Dict[str, Any], rng_seed: Optional[int]) -> Iterator[Tuple[str, Dict[str, Any], Optional[int]]]:
        """Yield (operator_label, input_document, declared_size)."""
        pass


@dataclass(frozen=True)
class MutationEntry:
    index: int
    operator: str
    input: Dict[str, Any]
    declared_size: Optional[int] = None

    @property
    def input_file(self) -> str:
        return f"input_{self.index:04d}.json"


@dataclass
class MutationPlan:
    program_id: str
    strategy: str
    strategy_version: int
    base_seed: str
    rng_seed: Optional[int] = None
    params: Dict[str, Any] = field(default_factory=dict)
    entries: List[MutationEntry] = field(default_factory=list)

    def __len__(self):
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def header(self) -> Dict[str, Any]:
        return {
            "program": self.program_id,
            "strategy": self.strategy,
            "strategy_version": self.strategy_version,
            "base_seed": self.base_seed,
            "rng_seed": self.rng_seed,
            "params": self.params,
        }

    def to_json(self) -> str:
        """Canonical serialization, including every variant input."""
        doc = self.header()
        doc["entries"] = [
            {"index": e.index, "operator": e.operator, "declared_size": e.declared_size, "input": e.input}
            for e in self.entries
        ]
        return canonical_json(doc)

    @property
    def fingerprint(self) -> str:
        return hashlib.sha256(self.to_json().encode("utf-8")).hexdigest()

    def manifest(self) -> Dict[str, Any]:
        doc = self.header()
        doc["fingerprint"] = self.fingerprint
        doc["count"] = len(self.entries)
        doc["entries"] = [
            {
                "index": e.index,
                "mutation_op": e.operator,
                "declared_size": e.declared_size,
                "input_file": e.input_file,
            }
            for e in self.entries
        ]
        return doc

    def save_manifest(self, plan_dir: str) -> str:
        os.makedirs(plan_dir, exist_ok=True)
        path = os.path.join(plan_dir, MANIFEST_NAME)
        with open(path, "w") as f:
            json.dump(self.manifest(), f, indent=2)
        logger.debug(f"Saved {len(self)}-entry plan manifest to {path}")
        return path

    def write_input(self, plan_dir: str, entry: MutationEntry) -> str:
        path = os.path.join(plan_dir, entry.input_file)
        with open(path, "w") as f:
            json.dump(entry.input, f, ensure_ascii=False)
        return path


def load_manifest(plan_dir: str) -> Dict[str, Any]:
    path = os.path.join(plan_dir, MANIFEST_NAME)
    try:
        with open(path, "r") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise MutationError(f"Failed to load plan manifest {path}: {e}")


class PlanCheckpoint:
    """Append-only log of plan indices that finished, used to resume."""

    def __init__(self, plan_dir: str):
        self.path = os.path.join(plan_dir, CHECKPOINT_NAME)
        self._lock = threading.Lock()

    def completed(self) -> Set[int]:
        if not os.path.exists(self.path):
            return set()
        done = set()
        with open(self.path, "r") as f:
            for line in f:
                line = line.strip()
                if line.isdigit():
                    done.add(int(line))
        return done

    def mark(self, index: int) -> None:
        with self._lock:
            with open(self.path, "a") as f:
                f.write(f"{index}\n")
                f.flush()


def generate(program_id: str, seed_input: Dict[str, Any], strategy: Optional[str] = None,
             base_seed: str = "", rng_seed: Optional[int] = None, **params) -> MutationPlan:
    """
    Generate the mutation plan for one seed.

    Args:
        program_id: Program the variants are for
        seed_input: Parsed seed document
        strategy: Strategy name (default: the program's first strategy)
        base_seed: Reference to the seed (usually its path), recorded in the plan
        rng_seed: Explicit seed for strategies that draw pseudo-random content
        **params: Strategy parameters (e.g. sizes for length_bias)

    Returns:
        MutationPlan whose every entry is valid under the program's schema
    """
    program = load_program(program_id)
    name = strategy or program.strategies[0]
    if name not in program.strategies:
        raise MutationError(
            f"Strategy '{name}' does not apply to '{program_id}' "
            f"(available: {', '.join(program.strategies)})"
        )
    strategy_cls = STRATEGY_MAP[name]
    if rng_seed is not None and not strategy_cls.uses_rng:
        raise MutationError(f"Strategy '{name}' is deterministic and takes no rng seed")

    strat = strategy_cls(**params)
    plan = MutationPlan(
        program_id=program_id,
        strategy=name,
        strategy_version=strategy_cls.version,
        base_seed=base_seed,
        rng_seed=rng_seed,
        params=copy.deepcopy(params),
    )

    seen = set()
    for index, (operator, document, size) in enumerate(strat.variants(copy.deepcopy(seed_input), rng_seed)):
        if operator in seen:
            raise MutationError(f"Strategy '{name}' produced duplicate operator '{operator}'")
        seen.add(operator)
        try:
            program.validate_document(document)
        except InputDecodeError as e:
            raise MutationError(f"Strategy '{name}' produced an invalid variant '{operator}': {e}") from e
        plan.entries.append(MutationEntry(index, operator, document, size))

    logger.debug(f"Generated {len(plan)} variants for {program_id} with {name} v{strategy_cls.version}")
    return plan


@dataclass
class MutationStats:
    total_count: int
    min_size: Optional[int]
    max_size: Optional[int]
    strategy: str


def calculate_size_stats(plan: MutationPlan) -> MutationStats:
    """Size distribution of a plan's declared sizes."""
    sizes = [e.declared_size for e in plan.entries if e.declared_size is not None]
    return MutationStats(
        total_count=len(plan.entries),
        min_size=min(sizes) if sizes else None,
        max_size=max(sizes) if sizes else None,
        strategy=plan.strategy,
    )
