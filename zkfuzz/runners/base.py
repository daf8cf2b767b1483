from abc import ABC, abstractmethod
import functools
import logging
import platform

from zkfuzz.differential.engine import ExecutionResult


@functools.lru_cache(maxsize=None)
def toolchain_version() -> str:
    """Version of the interpreter driving the harness."""
    return f"{platform.python_implementation()} {platform.python_version()}"


class Runner(ABC):
    """
    One execution backend.

    Every variant takes a program id and the raw input bytes and returns an
    ExecutionResult. Faults and timeouts inside the backend come back as
    statuses; precondition failures (unknown program, undecodable input,
    unloadable artifact) are raised.
    """

    name = ""
    target = ""

    def __init__(self, config=None):
        self.config = config
        self.logger = logging.getLogger(f"zkfuzz.runners.{self.name}")

    @property
    def version(self) -> str:
        return toolchain_version()

    def prepare(self, program_id: str) -> None:
        """Check that program_id can run on this backend before a campaign starts."""
        pass

    @abstractmethod
    def execute(self, program_id: str, input_bytes: bytes, timeout_ms: int) -> ExecutionResult:
        pass

    def __repr__(self):
        return f"{self.__class__.__name__}({self.target})"
