"""
Differential Harness

Runs one input on two backends, compares the results and records the outcome.
A campaign does this for every variant of every selected program's seed.
"""

import json
import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Tuple, Union

from zkfuzz.errors import (ArtifactWriteError, InputDecodeError, InputLoadError,
                           MutationError, PreconditionError, UnknownProgramError)
from zkfuzz.globals import shutdown_event
from zkfuzz.mutators import (STRATEGY_MAP, MutationEntry, MutationPlan, PlanCheckpoint,
                             generate, load_manifest)
from zkfuzz.programs import available_programs, load_program, seed_path
from zkfuzz.runners import Runner, load_runner, toolchain_version
from .engine import Diff, ExecutionResult, compare
from .stats import CampaignStats
from .store import ArtifactRecord, ArtifactStore, Provenance

logger = logging.getLogger("zkfuzz.differential.harness")


class ComparisonState(Enum):
    LOAD_INPUT = "load_input"
    RUN_BACKEND_A = "run_backend_a"
    RUN_BACKEND_B = "run_backend_b"
    COMPARE = "compare"
    RECORD = "record"
    GENERATE_REPRO = "generate_repro"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS = {
    ComparisonState.LOAD_INPUT: {ComparisonState.RUN_BACKEND_A},
    ComparisonState.RUN_BACKEND_A: {ComparisonState.RUN_BACKEND_B},
    ComparisonState.RUN_BACKEND_B: {ComparisonState.COMPARE},
    ComparisonState.COMPARE: {ComparisonState.RECORD},
    ComparisonState.RECORD: {ComparisonState.GENERATE_REPRO, ComparisonState.DONE},
    ComparisonState.GENERATE_REPRO: {ComparisonState.DONE},
    ComparisonState.DONE: set(),
    ComparisonState.FAILED: set(),
}


class Comparison:
    """Lifecycle of one comparison; records at most once, finishes at most once."""

    def __init__(self, program_id: str, input_path: str):
        self.program_id = program_id
        self.input_path = input_path
        self.state = ComparisonState.LOAD_INPUT
        self.recorded = False

    def advance(self, state: ComparisonState):
        if state is ComparisonState.FAILED and self.state is not ComparisonState.DONE:
            self.state = state
            return
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal comparison transition {self.state.value} -> {state.value}")
        self.state = state

    def mark_recorded(self):
        if self.recorded:
            raise RuntimeError(f"Comparison for {self.input_path} already recorded")
        self.recorded = True

    @property
    def finished(self) -> bool:
        return self.state in (ComparisonState.DONE, ComparisonState.FAILED)


@dataclass
class ComparisonOutcome:
    program_id: str
    input_path: str
    result_a: ExecutionResult
    result_b: ExecutionResult
    diff: Diff
    record: ArtifactRecord
    repro_path: Optional[str] = None

    @property
    def divergent(self) -> bool:
        return not self.diff.equal


@dataclass
class CampaignSummary:
    campaign_id: str
    campaign_dir: str
    programs: List[CampaignStats] = field(default_factory=list)
    cancelled: bool = False

    @property
    def executed(self) -> int:
        return sum(s.executed for s in self.programs)

    @property
    def passed(self) -> int:
        return sum(s.passed for s in self.programs)

    @property
    def divergences(self) -> int:
        return sum(s.divergences for s in self.programs)

    @property
    def errors(self) -> int:
        return sum(s.errors for s in self.programs)


def resolve_program_ids(program_ids: Union[str, List[str]]) -> List[str]:
    """'all', 'a,b' or a list of ids; unknown ids raise before anything runs."""
    if isinstance(program_ids, str):
        if program_ids.strip() == "all":
            return available_programs()
        program_ids = [p.strip() for p in program_ids.split(",") if p.strip()]
    ids = []
    for pid in program_ids:
        load_program(pid)
        if pid not in ids:
            ids.append(pid)
    if not ids:
        raise UnknownProgramError("", available_programs())
    return ids


class DifferentialHarness:
    """
    Harness for differential execution across two backends.

    Backend A fills the native_* summary columns and backend B the sp1_*
    columns.
    """

    def __init__(self, runner_a: Runner, runner_b: Runner, store: ArtifactStore,
                 timeout_ms: int = 10_000, parallel_backends: bool = True,
                 inputs_dir: Optional[str] = None):
        """
        Args:
            runner_a: Reference backend
            runner_b: Backend under test
            store: Open artifact store
            timeout_ms: Per-backend execution deadline
            parallel_backends: Run both backends of a comparison concurrently
            inputs_dir: Seed directory for campaigns (default: bundled seeds)
        """
        if timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {timeout_ms}")
        self.runner_a = runner_a
        self.runner_b = runner_b
        self.store = store
        self.timeout_ms = timeout_ms
        self.parallel_backends = parallel_backends
        self.inputs_dir = inputs_dir
        self._prepared = set()
        self._prepare_lock = threading.Lock()

        logger.debug(f"Harness: A={runner_a!r} B={runner_b!r} timeout={timeout_ms}ms "
                     f"parallel={parallel_backends}")

    @classmethod
    def from_config(cls, config, store: ArtifactStore) -> "DifferentialHarness":
        return cls(
            load_runner(config.backend_a, config),
            load_runner(config.backend_b, config),
            store,
            timeout_ms=int(config.timeout_ms),
            parallel_backends=bool(config.parallel_backends),
            inputs_dir=config.inputs_dir,
        )

    def _prepare(self, program_id: str):
        with self._prepare_lock:
            if program_id in self._prepared:
                return
            self.runner_a.prepare(program_id)
            self.runner_b.prepare(program_id)
            self._prepared.add(program_id)

    def _load_input(self, input_path: str) -> bytes:
        try:
            with open(input_path, "rb") as f:
                return f.read()
        except OSError as e:
            raise InputLoadError(f"Failed to read input {input_path}: {e}") from e

    def _run_backends(self, comparison: Comparison, raw: bytes) -> Tuple[ExecutionResult, ExecutionResult]:
        pid = comparison.program_id
        if self.parallel_backends:
            with ThreadPoolExecutor(max_workers=2, thread_name_prefix=f"backends-{pid}") as pool:
                future_a = pool.submit(self.runner_a.execute, pid, raw, self.timeout_ms)
                comparison.advance(ComparisonState.RUN_BACKEND_A)
                future_b = pool.submit(self.runner_b.execute, pid, raw, self.timeout_ms)
                comparison.advance(ComparisonState.RUN_BACKEND_B)
                return future_a.result(), future_b.result()

        comparison.advance(ComparisonState.RUN_BACKEND_A)
        result_a = self.runner_a.execute(pid, raw, self.timeout_ms)
        comparison.advance(ComparisonState.RUN_BACKEND_B)
        result_b = self.runner_b.execute(pid, raw, self.timeout_ms)
        return result_a, result_b

    def run_comparison(self, program_id: str, input_path: str,
                       provenance: Provenance = Provenance.HAND_WRITTEN, base_seed: str = "",
                       mutation_op: str = "", rng_seed: Optional[int] = None) -> ComparisonOutcome:
        """
        Run one input on both backends and record the diff.

        Raises:
            UnknownProgramError, InputLoadError, InputDecodeError, BuildError
            ArtifactWriteError if the outcome cannot be recorded
        """
        comparison = Comparison(program_id, input_path)
        try:
            program = load_program(program_id)
            raw = self._load_input(input_path)
            program.decode_input(raw)
            self._prepare(program_id)
            result_a, result_b = self._run_backends(comparison, raw)
        except PreconditionError:
            comparison.advance(ComparisonState.FAILED)
            raise

        comparison.advance(ComparisonState.COMPARE)
        diff = compare(result_a, result_b)

        comparison.advance(ComparisonState.RECORD)
        log = self.store.new_run_log(
            program_id, input_path, result_a, result_b, diff, provenance,
            base_seed, mutation_op, rng_seed,
            backend_a=self.runner_a.name, backend_b=self.runner_b.name,
            timeout_ms=self.timeout_ms, parallel_backends=self.parallel_backends
        )
        self.store.write_run_log(log)

        repro_path = None
        if not diff.equal:
            comparison.advance(ComparisonState.GENERATE_REPRO)
            repro_path = self.store.persist_divergence(log, input_path)

        record = self.store.summary_record(
            log, result_a, result_b, diff,
            repro_path=repro_path + os.sep if repro_path else "",
            zkvm_target=self.runner_b.target,
            backend_b_version=self.runner_b.version,
            toolchain_version=toolchain_version(),
        )
        comparison.mark_recorded()
        self.store.append(record)
        comparison.advance(ComparisonState.DONE)

        if diff.equal:
            logger.info(f"{program_id} {os.path.basename(input_path)}: "
                        f"{result_a.status}/{result_b.status} equal "
                        f"({result_a.elapsed_ms}ms / {result_b.elapsed_ms}ms)")
        else:
            logger.warning(f"{program_id} {os.path.basename(input_path)} diverged: {diff.reason}")

        return ComparisonOutcome(program_id, input_path, result_a, result_b, diff, record, repro_path)

    # -- campaigns ---------------------------------------------------------

    def _load_seed(self, program_id: str):
        path = seed_path(program_id, self.inputs_dir)
        try:
            with open(path, "r") as f:
                return path, json.load(f)
        except OSError as e:
            raise InputLoadError(f"Failed to read seed {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise InputDecodeError(f"Seed {path} is not valid JSON: {e}") from e

    def build_plan(self, program_id: str, rng_seed: Optional[int] = None,
                   plan_dir: Optional[str] = None) -> MutationPlan:
        """
        Generate a program's plan from its seed. With plan_dir holding a
        manifest, the plan is regenerated from the manifest's parameters and
        must match its fingerprint.
        """
        base_seed, seed = self._load_seed(program_id)
        if plan_dir and os.path.exists(os.path.join(plan_dir, "plan.json")):
            manifest = load_manifest(plan_dir)
            plan = generate(program_id, seed, manifest["strategy"], base_seed=manifest["base_seed"],
                            rng_seed=manifest.get("rng_seed"), **manifest.get("params", {}))
            if manifest.get("strategy_version") != plan.strategy_version:
                raise MutationError(
                    f"{program_id}: plan was written by {manifest['strategy']} "
                    f"v{manifest.get('strategy_version')}, current is v{plan.strategy_version}"
                )
            if manifest.get("fingerprint") != plan.fingerprint:
                raise MutationError(f"{program_id}: seed or strategy changed since {plan_dir} was written")
            return plan

        strategy = load_program(program_id).strategies[0]
        rng = rng_seed if STRATEGY_MAP[strategy].uses_rng else None
        return generate(program_id, seed, strategy, base_seed=base_seed, rng_seed=rng)

    def _run_variant(self, plan: MutationPlan, plan_dir: str, entry: MutationEntry,
                     stats: CampaignStats, checkpoint: PlanCheckpoint, cancel: threading.Event):
        if cancel.is_set() or shutdown_event.is_set():
            return None
        try:
            input_path = plan.write_input(plan_dir, entry)
        except OSError as e:
            raise ArtifactWriteError(f"Failed to write variant input: {e}") from e

        try:
            outcome = self.run_comparison(
                plan.program_id, input_path, Provenance.MUTATED,
                base_seed=plan.base_seed, mutation_op=entry.operator, rng_seed=plan.rng_seed
            )
        except PreconditionError as e:
            stats.record_error(entry.operator, e)
            return None

        stats.record_comparison(
            entry.index, entry.operator, outcome.diff.equal,
            str(outcome.result_a.status), str(outcome.result_b.status),
            outcome.result_a.elapsed_ms, outcome.result_b.elapsed_ms
        )
        checkpoint.mark(entry.index)
        logger.info(f"[{entry.index + 1}/{len(plan)}] {entry.operator}: "
                    f"{'equal' if outcome.diff.equal else 'DIVERGENT'}")
        return outcome

    def _run_program(self, plan: MutationPlan, campaign_dir: str, workers: int, cancel: threading.Event,
                     resume: bool) -> CampaignStats:
        program_id = plan.program_id
        plan_dir = os.path.join(campaign_dir, program_id)
        try:
            plan.save_manifest(plan_dir)
        except OSError as e:
            raise ArtifactWriteError(f"Failed to write plan manifest: {e}") from e

        checkpoint = PlanCheckpoint(plan_dir)
        done = checkpoint.completed() if resume else set()
        pending = [e for e in plan if e.index not in done]

        stats = CampaignStats(program_id, planned=len(plan))
        stats.record_skip(len(plan) - len(pending))
        logger.info(f"Fuzzing {program_id}: {len(pending)}/{len(plan)} variants "
                    f"({plan.strategy} v{plan.strategy_version})")

        if workers <= 1:
            for entry in pending:
                if cancel.is_set() or shutdown_event.is_set():
                    break
                self._run_variant(plan, plan_dir, entry, stats, checkpoint, cancel)
        else:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"campaign-{program_id}") as pool:
                futures = [
                    pool.submit(self._run_variant, plan, plan_dir, entry, stats, checkpoint, cancel)
                    for entry in pending
                ]
                try:
                    for future in futures:
                        future.result()
                except ArtifactWriteError:
                    cancel.set()
                    raise

        stats.update()
        try:
            stats.save_to_file(os.path.join(plan_dir, "stats.json"))
        except OSError as e:
            raise ArtifactWriteError(f"Failed to write campaign stats: {e}") from e
        return stats

    def run_campaign(self, program_ids: Union[str, List[str]], workers: int = 1,
                     cancel_event: Optional[threading.Event] = None, resume_dir: Optional[str] = None,
                     rng_seed: Optional[int] = None) -> CampaignSummary:
        """
        Fuzz every selected program from its seed.

        Args:
            program_ids: "all", "a,b" or a list of program ids
            workers: Variants executed concurrently per program
            cancel_event: Checked between variants (as is the global shutdown_event)
            resume_dir: Campaign directory of an interrupted run to continue
            rng_seed: Seed for strategies that draw pseudo-random content

        Returns:
            CampaignSummary with per-program statistics
        """
        ids = resolve_program_ids(program_ids)
        cancel = cancel_event or threading.Event()

        if resume_dir:
            campaign_dir = os.path.abspath(os.path.expanduser(resume_dir))
            if not os.path.isdir(campaign_dir):
                raise InputLoadError(f"Campaign directory not found: {campaign_dir}")
            campaign_id = os.path.basename(campaign_dir.rstrip(os.sep))
        else:
            campaign_id = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S") + "_fuzz"
            campaign_dir = self.store.mutations_dir(campaign_id)
            suffix = 1
            while os.path.exists(campaign_dir):
                suffix += 1
                campaign_dir = self.store.mutations_dir(f"{campaign_id}_{suffix}")
            campaign_id = os.path.basename(campaign_dir)

        logger.info(f"Campaign {campaign_id}: {', '.join(ids)} (workers={workers})")
        summary = CampaignSummary(campaign_id, campaign_dir)

        # Seeds, plans and backends are checked for every program before any
        # variant runs; a failure here stops the whole campaign.
        plans = []
        for pid in ids:
            plan_dir = os.path.join(campaign_dir, pid) if resume_dir else None
            plans.append(self.build_plan(pid, rng_seed, plan_dir))
            self._prepare(pid)

        for plan in plans:
            if cancel.is_set() or shutdown_event.is_set():
                break
            stats = self._run_program(plan, campaign_dir, max(1, workers), cancel, resume=bool(resume_dir))
            summary.programs.append(stats)

        summary.cancelled = cancel.is_set() or shutdown_event.is_set()
        if summary.cancelled:
            logger.warning(f"Campaign {campaign_id} cancelled; resume with --resume {campaign_dir}")
        logger.info(f"Campaign {campaign_id} done: {summary.executed} compared, "
                    f"{summary.divergences} divergent, {summary.errors} errors")
        return summary
