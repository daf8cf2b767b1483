"""
VM backend: runs the program inside an isolated interpreter process.

The guest gets the raw input on stdin and answers with packed public values on
stdout, which are decoded here into the commit stream using the program's
layout. The deadline is enforced on the process; on expiry the whole guest
process tree is killed.
"""

import functools
import os
import shutil
import struct
import subprocess
import sys
import time
from typing import List

import psutil

from zkfuzz import PACKAGE_ROOT
from zkfuzz.differential.engine import ExecutionResult
from zkfuzz.errors import BuildError, InputDecodeError
from zkfuzz.programs import load_program
from .base import Runner
from .guest import (EXIT_DECODE, EXIT_INTERPRETER_ERROR, EXIT_OK, EXIT_PANIC,
                    EXIT_UNAVAILABLE, GUEST_PROTOCOL_VERSION)


@functools.lru_cache(maxsize=None)
def _interpreter_version(python: str) -> str:
    if python == sys.executable:
        return sys.version.split()[0]
    try:
        out = subprocess.run(
            [python, "-c", "import sys; print(sys.version.split()[0])"],
            capture_output=True, text=True, timeout=10
        )
    except (OSError, subprocess.SubprocessError):
        return "unknown"
    if out.returncode != 0:
        return "unknown"
    return out.stdout.strip() or "unknown"


class VMRunner(Runner):
    name = "vm"
    target = "pyvm"

    def __init__(self, config=None):
        super().__init__(config)
        self.python = config.python_executable if config is not None else sys.executable

    @property
    def version(self) -> str:
        return f"pyvm-guest/{GUEST_PROTOCOL_VERSION} (python {_interpreter_version(self.python)})"

    def prepare(self, program_id: str) -> None:
        load_program(program_id)
        if not (os.path.exists(self.python) or shutil.which(self.python)):
            raise BuildError(f"Guest interpreter not found: {self.python}")

    def _guest_command(self, program_id: str) -> List[str]:
        return [self.python, "-m", "zkfuzz.runners.guest", program_id]

    def _guest_env(self) -> dict:
        env = os.environ.copy()
        paths = [PACKAGE_ROOT]
        if env.get("PYTHONPATH"):
            paths.append(env["PYTHONPATH"])
        env["PYTHONPATH"] = os.pathsep.join(paths)
        return env

    def _kill_tree(self, proc: subprocess.Popen) -> None:
        try:
            parent = psutil.Process(proc.pid)
            for child in parent.children(recursive=True):
                child.kill()
            parent.kill()
        except psutil.NoSuchProcess:
            pass
        # Reap and drain pipes; whatever the guest wrote is stale now.
        try:
            proc.communicate(timeout=5)
        except subprocess.TimeoutExpired:
            self.logger.warning(f"Guest pid {proc.pid} did not exit after kill")

    def execute(self, program_id: str, input_bytes: bytes, timeout_ms: int) -> ExecutionResult:
        program = load_program(program_id)

        start = time.perf_counter()
        try:
            proc = subprocess.Popen(
                self._guest_command(program_id),
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=self._guest_env()
            )
        except OSError as e:
            raise BuildError(f"Failed to start VM guest for '{program_id}': {e}") from e

        try:
            stdout, stderr = proc.communicate(input_bytes, timeout=timeout_ms / 1000.0)
        except subprocess.TimeoutExpired:
            self._kill_tree(proc)
            self.logger.debug(f"{program_id} timed out after {timeout_ms}ms, guest killed")
            return ExecutionResult.timeout(timeout_ms, runner=self.name, mode="execute")
        elapsed_ms = int((time.perf_counter() - start) * 1000)

        rc = proc.returncode
        message = stderr.decode("utf-8", errors="replace").strip()
        meta = {"runner": self.name, "mode": "execute", "exit_code": rc}

        if rc == EXIT_DECODE:
            raise InputDecodeError(f"VM guest rejected input for '{program_id}': {message}")
        if rc in (EXIT_UNAVAILABLE, EXIT_INTERPRETER_ERROR):
            raise BuildError(f"VM guest could not load '{program_id}': {message}")
        if rc == EXIT_PANIC:
            return ExecutionResult.panic(elapsed_ms, message.splitlines()[-1] if message else "", **meta)
        if rc != EXIT_OK:
            # Crash of the guest itself (signal or unexpected exit)
            self.logger.warning(f"VM guest for {program_id} exited with {rc}")
            return ExecutionResult.panic(elapsed_ms, message, **meta)

        meta["public_values_len"] = len(stdout)
        try:
            commits = program.unpack_public_values(stdout)
        except struct.error as e:
            return ExecutionResult.panic(elapsed_ms, None, decode_error=str(e), **meta)
        return ExecutionResult.ok(commits, elapsed_ms, **meta)
