from typing import Annotated, List

from pydantic import BaseModel, Field

from .base import CANCEL_CHECK_INTERVAL, Program, ProgramInput, U32_MAX

FIB_MODULUS = 7919


class FibInput(ProgramInput):
    n: Annotated[int, Field(ge=0, le=U32_MAX)]


class FibOutput(BaseModel):
    n: int
    a: int  # F(n) mod FIB_MODULUS
    b: int  # F(n+1) mod FIB_MODULUS


class FibProgram(Program):
    name = "fib"
    description = "Fibonacci numbers modulo 7919"
    input_model = FibInput
    commit_layout = "III"
    strategies = ("fib_value",)
    seed_file = "fib_24.json"

    def run(self, inp: FibInput, token) -> FibOutput:
        a, b = 0, 1
        for i in range(inp.n):
            if i % CANCEL_CHECK_INTERVAL == 0:
                token.raise_if_cancelled()
            a, b = b, (a + b) % FIB_MODULUS
        return FibOutput(n=inp.n, a=a, b=b)

    def encode_commits(self, output: FibOutput) -> List[int]:
        return [output.n, output.a, output.b]
