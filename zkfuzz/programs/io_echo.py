from typing import Annotated, List, Optional

from pydantic import BaseModel, Field

from .base import Program, ProgramInput, U8_MAX, encode_optional_byte


class IoEchoInput(ProgramInput):
    data: List[Annotated[int, Field(ge=0, le=U8_MAX)]]


class IoEchoOutput(BaseModel):
    length: int
    first_byte: Optional[int] = None
    last_byte: Optional[int] = None


class IoEchoProgram(Program):
    """
    Reports the shape of a byte buffer without exposing addresses.

    Exercises allocation and indexing with guest-controlled sizes.
    """

    name = "io_echo"
    description = "Length, first and last byte of a buffer"
    input_model = IoEchoInput
    commit_layout = "III"
    strategies = ("length_bias",)
    seed_file = "io_echo_1kb.json"

    def run(self, inp: IoEchoInput, token) -> IoEchoOutput:
        data = inp.data
        return IoEchoOutput(
            length=len(data),
            first_byte=data[0] if data else None,
            last_byte=data[-1] if data else None,
        )

    def encode_commits(self, output: IoEchoOutput) -> List[int]:
        return [
            output.length,
            encode_optional_byte(output.first_byte),
            encode_optional_byte(output.last_byte),
        ]
