"""
VM guest entry point.

    python -m zkfuzz.runners.guest <program>

Reads the raw input from stdin, runs the program and writes its commit stream
to stdout as packed little-endian public values.
"""

import sys

from zkfuzz.concurrency import CancellationToken
from zkfuzz.errors import InputDecodeError, UnknownProgramError
from zkfuzz.programs import load_program

EXIT_OK = 0
EXIT_DECODE = 65   # EX_DATAERR
EXIT_UNAVAILABLE = 70  # EX_SOFTWARE
EXIT_PANIC = 101
# Uncaught exception before main() runs, e.g. zkfuzz not importable
EXIT_INTERPRETER_ERROR = 1

GUEST_PROTOCOL_VERSION = "1"


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) != 1:
        sys.stderr.write("usage: python -m zkfuzz.runners.guest <program>\n")
        return EXIT_UNAVAILABLE

    try:
        program = load_program(argv[0])
    except UnknownProgramError as e:
        sys.stderr.write(f"{e}\n")
        return EXIT_UNAVAILABLE

    raw = sys.stdin.buffer.read()
    try:
        inp = program.decode_input(raw)
    except InputDecodeError as e:
        sys.stderr.write(f"{e}\n")
        return EXIT_DECODE

    try:
        public_values = program.pack_public_values(program.execute(inp, CancellationToken()))
    except Exception as e:
        sys.stderr.write(f"guest panicked: {e}\n")
        sys.stderr.flush()
        return EXIT_PANIC

    sys.stdout.buffer.write(public_values)
    sys.stdout.buffer.flush()
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
