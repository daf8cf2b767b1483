"""
Differential Execution Engine

Result model shared by every backend and the oracle that compares two results.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from zkfuzz.errors import ResultDocumentError

logger = logging.getLogger("zkfuzz.differential.engine")

Scalar = Union[bool, int, float, str, None]


class Status(Enum):
    """Terminal outcome of one backend execution"""
    OK = "OK"
    PANIC = "PANIC"
    TIMEOUT = "TIMEOUT"

    def __str__(self):
        return self.value


class ResultDocument(BaseModel):
    """Wire contract every backend adapter must honor."""
    model_config = ConfigDict(extra="forbid")

    status: Status
    elapsed_ms: int
    commits: List[Scalar] = []
    meta: Dict[str, Any] = {}


@dataclass(frozen=True)
class ExecutionResult:
    """Result of executing one (program, input) pair on one backend"""
    status: Status
    elapsed_ms: int
    commits: Tuple[Scalar, ...] = ()
    meta: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self):
        # Callers often hand in lists; keep the stream immutable.
        if not isinstance(self.commits, tuple):
            object.__setattr__(self, "commits", tuple(self.commits))

    @classmethod
    def ok(cls, commits, elapsed_ms: int, **meta) -> "ExecutionResult":
        return cls(Status.OK, elapsed_ms, tuple(commits), dict(meta))

    @classmethod
    def panic(cls, elapsed_ms: int, message: Optional[str] = None, **meta) -> "ExecutionResult":
        meta = dict(meta)
        meta["panic_msg"] = message or ""
        return cls(Status.PANIC, elapsed_ms, (), meta)

    @classmethod
    def timeout(cls, timeout_ms: int, **meta) -> "ExecutionResult":
        return cls(Status.TIMEOUT, timeout_ms, (), dict(meta))

    def to_document(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "elapsed_ms": self.elapsed_ms,
            "commits": list(self.commits),
            "meta": dict(self.meta),
        }

    @classmethod
    def from_document(cls, document: Union[Dict[str, Any], str, bytes]) -> "ExecutionResult":
        """Parse an execution result document (dict or JSON text)."""
        try:
            if isinstance(document, (str, bytes)):
                doc = ResultDocument.model_validate_json(document)
            else:
                doc = ResultDocument.model_validate(document)
        except ValidationError as e:
            raise ResultDocumentError(f"Invalid execution result document: {e}") from e
        if doc.elapsed_ms < 0:
            raise ResultDocumentError(f"elapsed_ms must be non-negative, got {doc.elapsed_ms}")
        return cls(doc.status, doc.elapsed_ms, tuple(doc.commits), dict(doc.meta))


@dataclass(frozen=True)
class Diff:
    """Outcome of comparing two execution results"""
    equal: bool
    reason: Optional[str]
    timing_delta_ms: int

    def to_document(self) -> Dict[str, Any]:
        return {
            "equal": self.equal,
            "reason": self.reason,
            "timing_delta_ms": self.timing_delta_ms,
        }


def type_class(value: Scalar) -> str:
    """Scalar type class used by the oracle. bool is not an int here."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float"
    if isinstance(value, str):
        return "str"
    return type(value).__name__


def compare(a: ExecutionResult, b: ExecutionResult) -> Diff:
    """
    Compare two execution results.

    Status first, then (only when both are OK) the commit streams element by
    element. Timing is attached but never decides equality.

    Args:
        a: Result from backend A
        b: Result from backend B

    Returns:
        Diff describing the first detected mismatch, if any
    """
    timing_delta = abs(a.elapsed_ms - b.elapsed_ms)

    if a.status != b.status:
        return Diff(False, f"status mismatch: {a.status} vs {b.status}", timing_delta)

    # PANIC/PANIC and TIMEOUT/TIMEOUT are equal whatever the message says.
    if a.status is not Status.OK:
        return Diff(True, None, timing_delta)

    if len(a.commits) != len(b.commits):
        return Diff(
            False,
            f"commit stream length mismatch: {len(a.commits)} vs {len(b.commits)}",
            timing_delta
        )

    for index, (va, vb) in enumerate(zip(a.commits, b.commits)):
        if type_class(va) != type_class(vb) or va != vb:
            return Diff(False, f"commit mismatch at index {index}: {va!r} vs {vb!r}", timing_delta)

    return Diff(True, None, timing_delta)
