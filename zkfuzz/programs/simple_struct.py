from typing import Annotated, List

from pydantic import BaseModel, Field

from .base import Program, ProgramInput, U32_MAX, encode_bool


class SimpleStructInput(ProgramInput):
    field1: Annotated[int, Field(ge=0, le=U32_MAX)]
    field2: str
    field3: bool


class SimpleStructOutput(BaseModel):
    field1_echo: int
    field2_len: int    # UTF-8 byte length
    field2_chars: int  # code points
    field3_echo: bool


class SimpleStructProgram(Program):
    name = "simple_struct"
    description = "Struct echo with UTF-8 byte and char lengths"
    input_model = SimpleStructInput
    commit_layout = "IIII"
    strategies = ("string_variation",)
    seed_file = "simple_struct_normal.json"

    def run(self, inp: SimpleStructInput, token) -> SimpleStructOutput:
        return SimpleStructOutput(
            field1_echo=inp.field1,
            field2_len=len(inp.field2.encode("utf-8")),
            field2_chars=len(inp.field2),
            field3_echo=inp.field3,
        )

    def encode_commits(self, output: SimpleStructOutput) -> List[int]:
        return [
            output.field1_echo,
            output.field2_len,
            output.field2_chars,
            encode_bool(output.field3_echo),
        ]
