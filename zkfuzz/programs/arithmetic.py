from typing import Annotated, List

from pydantic import BaseModel, Field

from .base import Program, ProgramInput, ProgramPanic, U32_MAX, encode_bool

OPERATIONS = ("add", "sub", "mul", "div")


class ArithmeticInput(ProgramInput):
    a: Annotated[int, Field(ge=0, le=U32_MAX)]
    b: Annotated[int, Field(ge=0, le=U32_MAX)]
    # Free-form on purpose: an unknown operation panics at run time.
    operation: str


class ArithmeticOutput(BaseModel):
    result: int
    overflowed: bool


def _wrap(value: int):
    """Wrap to u32 and report whether the true value was out of range."""
    return value & U32_MAX, not (0 <= value <= U32_MAX)


class ArithmeticProgram(Program):
    """u32 arithmetic with wrapping overflow detection."""

    name = "arithmetic"
    description = "Wrapping u32 add/sub/mul/div"
    input_model = ArithmeticInput
    commit_layout = "II"
    strategies = ("boundary_values",)
    seed_file = "arithmetic_add_normal.json"

    def run(self, inp: ArithmeticInput, token) -> ArithmeticOutput:
        a, b = inp.a, inp.b
        if inp.operation == "add":
            result, overflowed = _wrap(a + b)
        elif inp.operation == "sub":
            result, overflowed = _wrap(a - b)
        elif inp.operation == "mul":
            result, overflowed = _wrap(a * b)
        elif inp.operation == "div":
            if b == 0:
                raise ProgramPanic("Division by zero")
            result, overflowed = a // b, False
        else:
            raise ProgramPanic(f"Unknown operation: {inp.operation}")
        return ArithmeticOutput(result=result, overflowed=overflowed)

    def encode_commits(self, output: ArithmeticOutput) -> List[int]:
        return [output.result, encode_bool(output.overflowed)]
