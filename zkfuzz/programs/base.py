from abc import ABC, abstractmethod
import logging
import struct
from typing import List, Sequence, Tuple, Type

from pydantic import BaseModel, ConfigDict, ValidationError

from zkfuzz.errors import InputDecodeError
from zkfuzz.concurrency import CancellationToken

U8_MAX = 0xFF
U32_MAX = 0xFFFFFFFF
U64_MAX = 0xFFFFFFFFFFFFFFFF

# Long-running loops poll their cancellation token once per this many steps.
CANCEL_CHECK_INTERVAL = 4096


class ProgramPanic(RuntimeError):
    """Raised by program code to abort execution (a panic)."""
    pass


class ProgramInput(BaseModel):
    # JSON integers only: "5" is not a u32, and true is not 1.
    model_config = ConfigDict(strict=True)


def encode_bool(value: bool) -> int:
    return 1 if value else 0


def encode_optional_byte(value) -> int:
    """0 for absent, 1 + value for present."""
    return 0 if value is None else 1 + value


class Program(ABC):
    """
    A unit of business logic runnable on every backend.

    Subclasses own the input schema, the logic and the commit encoding.
    commit_layout is a struct format (without byte order) describing how the
    commit stream is packed into public values by the VM guest.
    """

    name: str = ""
    description: str = ""
    input_model: Type[ProgramInput] = ProgramInput
    commit_layout: str = ""
    strategies: Tuple[str, ...] = ()
    seed_file: str = ""

    def __init__(self):
        self.logger = logging.getLogger(f"zkfuzz.programs.{self.name}")

    def decode_input(self, raw: bytes) -> ProgramInput:
        try:
            return self.input_model.model_validate_json(raw)
        except ValidationError as e:
            raise InputDecodeError(
                f"Failed to deserialize {self.input_model.__name__} for '{self.name}': {e}"
            ) from e

    def validate_document(self, document) -> ProgramInput:
        """Validate an already-parsed JSON value against the input schema."""
        try:
            return self.input_model.model_validate(document)
        except ValidationError as e:
            raise InputDecodeError(
                f"Invalid {self.input_model.__name__} for '{self.name}': {e}"
            ) from e

    @abstractmethod
    def run(self, inp: ProgramInput, token: CancellationToken):
        """Execute the business logic. May raise ProgramPanic."""
        pass

    @abstractmethod
    def encode_commits(self, output) -> List[int]:
        """Flatten the program output into its ordered scalar commit stream."""
        pass

    def execute(self, inp: ProgramInput, token: CancellationToken) -> List[int]:
        return self.encode_commits(self.run(inp, token))

    @property
    def public_values_size(self) -> int:
        return struct.calcsize("<" + self.commit_layout)

    def pack_public_values(self, commits: Sequence[int]) -> bytes:
        try:
            return struct.pack("<" + self.commit_layout, *commits)
        except struct.error as e:
            raise ProgramPanic(f"commit does not fit layout '{self.commit_layout}': {e}") from e

    def unpack_public_values(self, data: bytes) -> List[int]:
        return list(struct.unpack("<" + self.commit_layout, data))

    def __repr__(self):
        return f"Program({self.name})"
