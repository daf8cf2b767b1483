"""
Differential Artifact Store

Append-only record of every comparison: a CSV summary row per run, a JSON
run log per run, and a self-contained repro directory per divergence.
"""

import csv
import json
import logging
import os
import shlex
import shutil
import sys
import threading
import uuid
from dataclasses import asdict, dataclass, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from zkfuzz import PACKAGE_ROOT
from zkfuzz.errors import ArtifactWriteError
from .engine import Diff, ExecutionResult

logger = logging.getLogger("zkfuzz.differential.store")

SCHEMA_VERSION = 1

SUMMARY_FILE = "summary.csv"
RUNS_DIR = "runs"
MUTATIONS_DIR = "mutations"

REPRO_TEMPLATE = """#!/usr/bin/env bash
# Reproduce a differential divergence
#   program: {program}
#   run:     {run_id}

set -e
cd "$(dirname "$0")"
export PYTHONPATH={package_root}"${{PYTHONPATH:+:$PYTHONPATH}}"

{python} -m zkfuzz run --program {program} --input input.json {options} "$@"
"""


class Provenance(Enum):
    HAND_WRITTEN = "hand_written"
    MUTATED = "mutated"
    EXTERNAL = "external"

    def __str__(self):
        return self.value


@dataclass
class ArtifactRecord:
    """One row of summary.csv. Field order is the column order."""
    run_id: str
    core: str
    input: str
    native_status: str
    sp1_status: str
    equal: str
    reason: str = ""
    elapsed_native_ms: str = ""
    elapsed_sp1_ms: str = ""
    timing_delta_ms: str = ""
    repro_path: str = ""
    generator: str = Provenance.HAND_WRITTEN.value
    base_seed: str = ""
    mutation_ops: str = ""
    rng_seed: str = ""
    zkvm_target: str = ""
    sp1_version: str = ""
    rustc_version: str = ""

    @property
    def is_divergence(self) -> bool:
        return self.equal == "false"

    def as_row(self) -> List[str]:
        return [getattr(self, name) for name in SUMMARY_COLUMNS]


SUMMARY_COLUMNS = tuple(f.name for f in fields(ArtifactRecord))


@dataclass
class RunLog:
    run_id: str
    timestamp: str
    program: str
    input_path: str
    provenance: str
    result_a: Dict[str, Any]
    result_b: Dict[str, Any]
    diff: Dict[str, Any]
    backend_a: str = "native"
    backend_b: str = "vm"
    base_seed: str = ""
    mutation_op: str = ""
    rng_seed: str = ""
    timeout_ms: int = 0
    parallel_backends: bool = True
    schema_version: int = SCHEMA_VERSION

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=2, ensure_ascii=False)

    def rerun_options(self) -> List[str]:
        """CLI flags that rerun this comparison with the same backends and deadline."""
        options = ["--backend-a", self.backend_a, "--backend-b", self.backend_b]
        if self.timeout_ms > 0:
            options += ["--timeout-ms", str(self.timeout_ms)]
        if not self.parallel_backends:
            options.append("--sequential")
        return options


def new_run_id(program_id: str, now: Optional[datetime] = None) -> str:
    """<UTC timestamp>_<program>_<8 hex chars>; unique per recording."""
    now = now or datetime.now(timezone.utc)
    return f"{now.strftime('%Y%m%d_%H%M%S')}_{program_id}_{uuid.uuid4().hex[:8]}"


def _bool_text(value: bool) -> str:
    return "true" if value else "false"


class ArtifactStore:
    """
    Single-writer artifact store rooted at one directory.

    Use as a context manager, or call open()/close() explicitly. Every write
    goes through one lock so concurrent comparisons never interleave rows.
    """

    def __init__(self, root: str, python: str = sys.executable):
        self.root = os.path.abspath(os.path.expanduser(root))
        self.summary_path = os.path.join(self.root, SUMMARY_FILE)
        self.runs_dir = os.path.join(self.root, RUNS_DIR)
        self.python = python
        self._lock = threading.Lock()
        self._file = None
        self._writer = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @property
    def is_open(self) -> bool:
        return self._file is not None

    def open(self) -> "ArtifactStore":
        if self.is_open:
            return self
        try:
            os.makedirs(self.runs_dir, exist_ok=True)
            needs_header = not os.path.exists(self.summary_path) or os.path.getsize(self.summary_path) == 0
            if not needs_header:
                self._check_header()
            self._file = open(self.summary_path, "a", newline="")
            self._writer = csv.writer(self._file)
            if needs_header:
                self._writer.writerow(SUMMARY_COLUMNS)
                self._file.flush()
        except OSError as e:
            raise ArtifactWriteError(f"Failed to open artifact store at {self.root}: {e}") from e
        logger.debug(f"Artifact store opened at {self.root}")
        return self

    def close(self):
        with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None
                self._writer = None

    def _check_header(self):
        with open(self.summary_path, "r", newline="") as f:
            header = next(csv.reader(f), [])
        # Older logs carry a prefix of the current columns.
        if tuple(header) != SUMMARY_COLUMNS[:len(header)] or not header:
            raise ArtifactWriteError(
                f"{self.summary_path} has an incompatible header: {','.join(header)}"
            )

    def mutations_dir(self, campaign_id: str) -> str:
        return os.path.join(self.root, MUTATIONS_DIR, campaign_id)

    def repro_dir(self, run_id: str) -> str:
        return os.path.join(self.root, run_id)

    def append(self, record: ArtifactRecord) -> None:
        if not self.is_open:
            raise ArtifactWriteError("Artifact store is not open")
        with self._lock:
            try:
                self._writer.writerow(record.as_row())
                self._file.flush()
            except OSError as e:
                raise ArtifactWriteError(f"Failed to append to {self.summary_path}: {e}") from e

    def write_run_log(self, log: RunLog) -> str:
        path = os.path.join(self.runs_dir, f"{log.run_id}.json")
        try:
            with open(path, "w") as f:
                f.write(log.to_json())
        except OSError as e:
            raise ArtifactWriteError(f"Failed to write run log {path}: {e}") from e
        return path

    def persist_divergence(self, log: RunLog, input_path: str) -> str:
        """
        Write the repro directory for a divergent run.

        Returns:
            Path of the repro directory
        """
        repro_dir = self.repro_dir(log.run_id)
        try:
            os.makedirs(repro_dir, exist_ok=True)
            shutil.copyfile(input_path, os.path.join(repro_dir, "input.json"))
            with open(os.path.join(repro_dir, "run_log.json"), "w") as f:
                f.write(log.to_json())
            script = os.path.join(repro_dir, "repro.sh")
            with open(script, "w") as f:
                f.write(REPRO_TEMPLATE.format(
                    program=shlex.quote(log.program),
                    run_id=log.run_id,
                    python=shlex.quote(self.python),
                    package_root=shlex.quote(PACKAGE_ROOT),
                    options=" ".join(shlex.quote(o) for o in log.rerun_options()),
                ))
            os.chmod(script, 0o755)
        except OSError as e:
            raise ArtifactWriteError(f"Failed to persist repro for {log.run_id}: {e}") from e
        logger.info(f"Repro folder: {repro_dir}")
        return repro_dir

    def new_run_log(self, program_id: str, input_path: str, result_a: ExecutionResult,
                    result_b: ExecutionResult, diff: Diff, provenance: Provenance = Provenance.HAND_WRITTEN,
                    base_seed: str = "", mutation_op: str = "", rng_seed: Optional[int] = None,
                    backend_a: str = "native", backend_b: str = "vm", timeout_ms: int = 0,
                    parallel_backends: bool = True) -> RunLog:
        """Build the run log for one comparison under a fresh run id."""
        return RunLog(
            run_id=new_run_id(program_id),
            timestamp=datetime.now(timezone.utc).isoformat(),
            program=program_id,
            input_path=input_path,
            provenance=str(provenance),
            result_a=result_a.to_document(),
            result_b=result_b.to_document(),
            diff=diff.to_document(),
            backend_a=backend_a,
            backend_b=backend_b,
            base_seed=base_seed,
            mutation_op=mutation_op,
            rng_seed="" if rng_seed is None else str(rng_seed),
            timeout_ms=timeout_ms,
            parallel_backends=parallel_backends,
        )

    def summary_record(self, log: RunLog, result_a: ExecutionResult, result_b: ExecutionResult,
                       diff: Diff, repro_path: str = "", zkvm_target: str = "",
                       backend_b_version: str = "", toolchain_version: str = "") -> ArtifactRecord:
        return ArtifactRecord(
            run_id=log.run_id,
            core=log.program,
            input=log.input_path,
            native_status=str(result_a.status),
            sp1_status=str(result_b.status),
            equal=_bool_text(diff.equal),
            reason=diff.reason or "",
            elapsed_native_ms=str(result_a.elapsed_ms),
            elapsed_sp1_ms=str(result_b.elapsed_ms),
            timing_delta_ms=str(diff.timing_delta_ms),
            repro_path=repro_path,
            generator=log.provenance,
            base_seed=log.base_seed,
            mutation_ops=log.mutation_op,
            rng_seed=log.rng_seed,
            zkvm_target=zkvm_target,
            sp1_version=backend_b_version,
            rustc_version=toolchain_version,
        )

    def read_records(self) -> List[ArtifactRecord]:
        """All summary rows, older rows padded with empty trailing columns."""
        if not os.path.exists(self.summary_path):
            return []
        records = []
        with open(self.summary_path, "r", newline="") as f:
            reader = csv.reader(f)
            next(reader, None)
            for row in reader:
                if not row:
                    continue
                row = list(row[:len(SUMMARY_COLUMNS)])
                row += [""] * (len(SUMMARY_COLUMNS) - len(row))
                records.append(ArtifactRecord(*row))
        return records
