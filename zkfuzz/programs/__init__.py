import importlib
import logging
import os
from typing import Dict, List

from zkfuzz.errors import UnknownProgramError
from .base import Program, ProgramPanic, ProgramInput

logger = logging.getLogger("zkfuzz.programs")

PROGRAM_MAP = {
    "fib": "fib",
    "panic_test": "panic_test",
    "timeout_test": "timeout_test",
    "io_echo": "io_echo",
    "arithmetic": "arithmetic",
    "simple_struct": "simple_struct",
}

SEEDS_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "inputs")

_loaded: Dict[str, Program] = {}


def available_programs() -> List[str]:
    return list(PROGRAM_MAP)


def load_program(program_id: str) -> Program:
    """Resolve a program identifier to its (cached) Program instance."""
    if program_id in _loaded:
        return _loaded[program_id]
    module_name = PROGRAM_MAP.get(program_id)
    if module_name is None:
        raise UnknownProgramError(program_id, available_programs())
    module = importlib.import_module(f"zkfuzz.programs.{module_name}")
    # Expect class name to be <CamelCase>Program (e.g. IoEchoProgram for io_echo)
    class_name = "".join(part.capitalize() for part in module_name.split("_")) + "Program"
    program = getattr(module, class_name)()
    logger.debug(f"Loaded program: {program_id} (module: {module_name}, class: {class_name})")
    _loaded[program_id] = program
    return program


def seed_path(program_id: str, inputs_dir: str = None) -> str:
    """Path of the hand-written seed input a campaign starts from."""
    program = load_program(program_id)
    return os.path.join(os.path.expanduser(inputs_dir or SEEDS_DIR), program.seed_file)


__all__ = [
    "Program",
    "ProgramInput",
    "ProgramPanic",
    "PROGRAM_MAP",
    "SEEDS_DIR",
    "available_programs",
    "load_program",
    "seed_path",
]
