"""
Built-in mutation strategies, one per program family.
"""

import random
from typing import Any, Dict, Iterator, List, Optional, Tuple

from zkfuzz.programs.arithmetic import OPERATIONS
from zkfuzz.programs.base import U32_MAX
from .engine import Strategy, register_strategy

Variant = Tuple[str, Dict[str, Any], Optional[int]]

KB = 1024
MB = 1024 * 1024
MAX_LENGTH = MB


def default_sizes() -> List[int]:
    """Powers of two up to 1 MiB plus the usual off-by-one neighbours."""
    sizes = {0}
    power = 1
    while power <= MAX_LENGTH:
        sizes.add(power)
        power *= 2
    sizes.update([127, 255, 1023, 4095, 65535])
    sizes.update([3, 7, 15, 31, 63])
    return sorted(sizes)


def size_label(size: int) -> str:
    if size and size % MB == 0:
        return f"{size // MB}mb"
    if size and size % KB == 0:
        return f"{size // KB}kb"
    return f"{size}b"


@register_strategy
class LengthBias(Strategy):
    """
    Biases a byte buffer towards boundary lengths.

    Content repeats the seed buffer, or the 0..255 ramp when the seed is
    empty. With an rng seed, content is drawn from a seeded PRNG instead.
    """

    name = "length_bias"
    uses_rng = True

    def __init__(self, sizes=None, **params):
        super().__init__(**params)
        if sizes is None:
            self.sizes = default_sizes()
        else:
            self.sizes = sorted(set(int(s) for s in sizes))
        if any(s < 0 for s in self.sizes):
            raise ValueError("sizes must be non-negative")

    def _content(self, pattern: List[int], size: int, rng: Optional[random.Random]) -> List[int]:
        if rng is not None:
            return list(rng.randbytes(size))
        if not pattern:
            return [i % 256 for i in range(size)]
        repeats = size // len(pattern) + 1
        return (pattern * repeats)[:size]

    def variants(self, seed, rng_seed) -> Iterator[Variant]:
        pattern = list(seed.get("data", []))
        rng = random.Random(rng_seed) if rng_seed is not None else None
        for size in self.sizes:
            doc = dict(seed)
            doc["data"] = self._content(pattern, size, rng)
            yield f"{self.name}:{size_label(size)}", doc, size


@register_strategy
class BoundaryValues(Strategy):
    """Every pair of u32 boundary values under every arithmetic operation."""

    name = "boundary_values"

    VALUES = (0, 1, U32_MAX // 2, U32_MAX - 1, U32_MAX)

    def __init__(self, operations=None, **params):
        super().__init__(**params)
        self.operations = tuple(operations or OPERATIONS)

    def variants(self, seed, rng_seed) -> Iterator[Variant]:
        for op in self.operations:
            for a in self.VALUES:
                for b in self.VALUES:
                    doc = dict(seed)
                    doc.update(a=a, b=b, operation=op)
                    yield f"{self.name}:{op}:{a}_{b}", doc, None


@register_strategy
class StringVariation(Strategy):
    name = "string_variation"

    FIELD1_CYCLE = (0, 1, 42, U32_MAX)
    FIELD3_CYCLE = (True, False)

    CASES = (
        ("empty", ""),
        ("single_char", "a"),
        ("short", "hello"),
        ("medium_100", "x" * 100),
        ("long_1000", "y" * 1000),
        ("very_long_10k", "z" * 10000),
        ("emoji", "🦀🔥✨"),
        ("unicode_mixed", "🦀 Rust zkVM"),
        ("newline", "line1\nline2"),
        ("tab", "col1\tcol2"),
    )

    def variants(self, seed, rng_seed) -> Iterator[Variant]:
        for idx, (desc, text) in enumerate(self.CASES):
            doc = dict(seed)
            doc.update(
                field1=self.FIELD1_CYCLE[idx % len(self.FIELD1_CYCLE)],
                field2=text,
                field3=self.FIELD3_CYCLE[idx % len(self.FIELD3_CYCLE)],
            )
            yield f"{self.name}:{desc}", doc, len(text.encode("utf-8"))


@register_strategy
class FibValue(Strategy):
    name = "fib_value"

    VALUES = (0, 1, 2, 5, 10, 20, 30, 40, 50, 100, 1000)

    def variants(self, seed, rng_seed) -> Iterator[Variant]:
        for n in self.VALUES:
            doc = dict(seed)
            doc["n"] = n
            yield f"{self.name}:n={n}", doc, None


@register_strategy
class BoolVariation(Strategy):
    name = "bool_variation"

    CASES = (
        ("no_panic", False, None),
        ("panic_simple", True, "Simple panic"),
        ("panic_with_long_message", True, "P" * 500),
        ("no_panic_alternate", False, None),
    )

    def variants(self, seed, rng_seed) -> Iterator[Variant]:
        for desc, should_panic, message in self.CASES:
            doc = dict(seed)
            doc["should_panic"] = should_panic
            if message is None:
                doc.pop("panic_msg", None)
            else:
                doc["panic_msg"] = message
            yield f"{self.name}:{desc}", doc, None


@register_strategy
class IterationVariation(Strategy):
    """Loop counts by powers of ten; 0 is the never-terminating case."""

    name = "iteration_variation"

    VALUES = (0, 1, 10, 100, 1000, 10_000, 100_000, 1_000_000, 10_000_000)

    def variants(self, seed, rng_seed) -> Iterator[Variant]:
        for iterations in self.VALUES:
            doc = dict(seed)
            doc["iterations"] = iterations
            yield f"{self.name}:{iterations}", doc, None
