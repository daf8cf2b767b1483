"""
Native backend: runs the program in-process, raced against a deadline.
"""

import time

from zkfuzz.concurrency import DeadlineExpired, run_with_deadline
from zkfuzz.differential.engine import ExecutionResult
from zkfuzz.programs import load_program
from .base import Runner


class NativeRunner(Runner):
    name = "native"
    target = "native"

    def prepare(self, program_id: str) -> None:
        load_program(program_id)

    def execute(self, program_id: str, input_bytes: bytes, timeout_ms: int) -> ExecutionResult:
        program = load_program(program_id)
        inp = program.decode_input(input_bytes)

        start = time.perf_counter()
        try:
            commits = run_with_deadline(
                lambda token: program.execute(inp, token),
                timeout_ms / 1000.0,
                name=f"native-{program_id}"
            )
        except DeadlineExpired:
            self.logger.debug(f"{program_id} timed out after {timeout_ms}ms")
            return ExecutionResult.timeout(timeout_ms, runner=self.name)
        except Exception as e:
            elapsed_ms = int((time.perf_counter() - start) * 1000)
            self.logger.debug(f"{program_id} panicked: {e!r}")
            return ExecutionResult.panic(elapsed_ms, str(e), runner=self.name,
                                         panic_type=type(e).__name__)

        elapsed_ms = int((time.perf_counter() - start) * 1000)
        return ExecutionResult.ok(commits, elapsed_ms, runner=self.name)
