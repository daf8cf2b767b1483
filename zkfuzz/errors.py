"""
zkfuzz error taxonomy.

Everything that happens inside a backend (panics, timeouts, mismatches) is
turned into data. Only the infrastructure failures below are raised.
"""


class ZkFuzzError(Exception):
    """Base class for all zkfuzz errors."""
    pass


class PreconditionError(ZkFuzzError):
    """A comparison cannot start: fatal to that comparison, not to the harness."""
    pass


class UnknownProgramError(PreconditionError):
    def __init__(self, program_id: str, available=None):
        self.program_id = program_id
        self.available = list(available or [])
        msg = f"Unknown program: '{program_id}'"
        if self.available:
            msg += f" (available: {', '.join(self.available)})"
        super().__init__(msg)


class InputLoadError(PreconditionError):
    """The input file could not be read."""
    pass


class InputDecodeError(PreconditionError):
    """The input does not deserialize under the program's schema."""
    pass


class BuildError(PreconditionError):
    """The backend could not load or start the program artifact."""
    pass


class ArtifactWriteError(ZkFuzzError):
    """Writing to the artifact store failed. Fatal to a campaign."""
    pass


class MutationError(ZkFuzzError):
    """A strategy produced an invalid plan."""
    pass


class ResultDocumentError(ZkFuzzError):
    """A backend emitted a malformed execution result document."""
    pass
