"""
Tests for mutators/ - plan generation, strategies and plan persistence.
"""

import json
import os
import subprocess
import sys

import pytest

from zkfuzz import PACKAGE_ROOT
from zkfuzz.errors import MutationError
from zkfuzz.mutators import (STRATEGY_MAP, PlanCheckpoint, Strategy, available_strategies,
                             calculate_size_stats, generate, load_manifest)
from zkfuzz.mutators.strategies import default_sizes, size_label
from zkfuzz.programs import load_program, seed_path
from zkfuzz.programs.base import U32_MAX


def load_seed(program_id):
    with open(seed_path(program_id)) as f:
        return json.load(f)


class TestLengthBias:
    """Tests for the length_bias strategy (io_echo)."""

    def test_four_sizes(self):
        seed = load_seed("io_echo")
        assert len(seed["data"]) == 1024

        plan = generate("io_echo", seed, sizes=[1048576, 0, 1024, 1])

        assert len(plan) == 4
        sizes = [e.declared_size for e in plan]
        assert sizes == sorted(set(sizes))
        assert [e.operator for e in plan] == [
            "length_bias:0b", "length_bias:1b", "length_bias:1kb", "length_bias:1mb"
        ]
        for entry in plan:
            assert len(entry.input["data"]) == entry.declared_size

    def test_default_sizes(self):
        sizes = default_sizes()
        assert sizes == sorted(set(sizes))
        assert sizes[0] == 0 and sizes[-1] == 1048576
        for boundary in (3, 7, 63, 127, 255, 1023, 4095, 65535):
            assert boundary in sizes

    def test_labels_are_exact(self):
        assert size_label(0) == "0b"
        assert size_label(4095) == "4095b"
        assert size_label(4096) == "4kb"
        assert size_label(2 * 1048576) == "2mb"

    def test_content_repeats_seed(self):
        plan = generate("io_echo", {"data": [9, 8]}, sizes=[5])
        assert plan.entries[0].input["data"] == [9, 8, 9, 8, 9]

    def test_empty_seed_uses_ramp(self):
        plan = generate("io_echo", {"data": []}, sizes=[300])
        data = plan.entries[0].input["data"]
        assert data[:3] == [0, 1, 2]
        assert data[256] == 0

    def test_rng_content_is_reproducible(self):
        seed = {"data": []}
        a = generate("io_echo", seed, sizes=[64], rng_seed=7)
        b = generate("io_echo", seed, sizes=[64], rng_seed=7)
        c = generate("io_echo", seed, sizes=[64], rng_seed=8)
        assert a.entries[0].input == b.entries[0].input
        assert a.entries[0].input != c.entries[0].input
        assert a.rng_seed == 7

    def test_negative_size_rejected(self):
        with pytest.raises(ValueError):
            generate("io_echo", {"data": []}, sizes=[-1])


class TestDeterminism:
    @pytest.mark.parametrize("program_id", ["fib", "io_echo", "arithmetic", "simple_struct",
                                            "panic_test", "timeout_test"])
    def test_same_inputs_same_plan(self, program_id):
        seed = load_seed(program_id)
        first = generate(program_id, seed, base_seed="seed.json")
        second = generate(program_id, seed, base_seed="seed.json")
        assert first.to_json() == second.to_json()
        assert first.fingerprint == second.fingerprint

    @pytest.mark.parametrize("program_id,kwargs", [
        ("io_echo", {"sizes": [0, 3, 1024, 4095], "rng_seed": 7}),
        ("io_echo", {"sizes": [5, 300]}),
        ("simple_struct", {}),
        ("arithmetic", {}),
    ])
    def test_identical_across_processes(self, program_id, kwargs):
        seed = load_seed(program_id)
        here = generate(program_id, seed, base_seed="seed.json", **kwargs).to_json()

        script = (
            "import json, sys\n"
            "from zkfuzz.mutators import generate\n"
            "program_id, seed, kwargs = json.loads(sys.stdin.read())\n"
            "sys.stdout.write(generate(program_id, seed, base_seed='seed.json', **kwargs).to_json())\n"
        )
        env = dict(os.environ, PYTHONHASHSEED="12345", PYTHONPATH=PACKAGE_ROOT, PYTHONIOENCODING="utf-8")
        child = subprocess.run(
            [sys.executable, "-c", script], input=json.dumps([program_id, seed, kwargs]),
            env=env, capture_output=True, text=True, encoding="utf-8", timeout=120
        )
        assert child.returncode == 0, child.stderr
        assert child.stdout == here

    def test_seed_not_mutated(self):
        seed = load_seed("arithmetic")
        before = dict(seed)
        generate("arithmetic", seed)
        assert seed == before

    def test_fingerprint_changes_with_seed(self):
        assert generate("io_echo", {"data": [1]}).fingerprint != generate("io_echo", {"data": [2]}).fingerprint


class TestStrategies:
    def test_all_programs_have_registered_strategies(self):
        for pid in ("fib", "io_echo", "arithmetic", "simple_struct", "panic_test", "timeout_test"):
            for name in load_program(pid).strategies:
                assert name in available_strategies()

    def test_boundary_values(self):
        plan = generate("arithmetic", load_seed("arithmetic"))
        assert len(plan) == 4 * 25
        assert plan.entries[0].operator == "boundary_values:add:0_0"
        assert any(e.input == {"a": U32_MAX, "b": U32_MAX, "operation": "mul"} for e in plan)

    def test_string_variation(self):
        plan = generate("simple_struct", load_seed("simple_struct"))
        assert len(plan) == 10
        texts = [e.input["field2"] for e in plan]
        assert "" in texts and "🦀 Rust zkVM" in texts
        assert plan.entries[3].input["field1"] == U32_MAX
        assert plan.entries[1].input["field3"] is False
        emoji = next(e for e in plan if e.operator == "string_variation:emoji")
        assert emoji.declared_size == len("🦀🔥✨".encode("utf-8"))

    def test_fib_value(self):
        plan = generate("fib", {"n": 24})
        assert [e.input["n"] for e in plan] == [0, 1, 2, 5, 10, 20, 30, 40, 50, 100, 1000]

    def test_bool_variation(self):
        plan = generate("panic_test", load_seed("panic_test"))
        assert [e.input["should_panic"] for e in plan] == [False, True, True, False]
        assert len(plan.entries[2].input["panic_msg"]) == 500
        assert "panic_msg" not in plan.entries[0].input

    def test_iteration_variation_includes_infinite(self):
        plan = generate("timeout_test", load_seed("timeout_test"))
        assert plan.entries[0].input == {"iterations": 0}
        assert plan.entries[-1].input == {"iterations": 10_000_000}


class TestGenerateErrors:
    def test_strategy_not_for_program(self):
        with pytest.raises(MutationError, match="does not apply"):
            generate("fib", {"n": 1}, strategy="length_bias")

    def test_rng_seed_on_deterministic_strategy(self):
        with pytest.raises(MutationError, match="takes no rng seed"):
            generate("fib", {"n": 1}, rng_seed=3)

    def test_invalid_variant(self, monkeypatch):
        class Broken(Strategy):
            name = "broken"

            def variants(self, seed, rng_seed):
                yield "broken:string", {"n": "five"}, None

        program = load_program("fib")
        monkeypatch.setitem(STRATEGY_MAP, "broken", Broken)
        monkeypatch.setattr(program, "strategies", ("broken",))
        with pytest.raises(MutationError, match="invalid variant"):
            generate("fib", {"n": 1})

    def test_duplicate_operator(self, monkeypatch):
        class Twice(Strategy):
            name = "twice"

            def variants(self, seed, rng_seed):
                yield "twice:x", {"n": 1}, None
                yield "twice:x", {"n": 2}, None

        program = load_program("fib")
        monkeypatch.setitem(STRATEGY_MAP, "twice", Twice)
        monkeypatch.setattr(program, "strategies", ("twice",))
        with pytest.raises(MutationError, match="duplicate"):
            generate("fib", {"n": 1})


class TestPlanPersistence:
    def test_manifest_round_trip(self, tmp_path):
        plan = generate("io_echo", {"data": [1, 2]}, base_seed="io.json", sizes=[0, 8])
        plan.save_manifest(str(tmp_path))
        manifest = load_manifest(str(tmp_path))
        assert manifest["program"] == "io_echo"
        assert manifest["strategy"] == "length_bias"
        assert manifest["fingerprint"] == plan.fingerprint
        assert manifest["params"] == {"sizes": [0, 8]}
        assert [e["mutation_op"] for e in manifest["entries"]] == ["length_bias:0b", "length_bias:8b"]

    def test_write_input(self, tmp_path):
        plan = generate("fib", {"n": 24})
        path = plan.write_input(str(tmp_path), plan.entries[3])
        with open(path) as f:
            assert json.load(f) == {"n": 5}

    def test_missing_manifest(self, tmp_path):
        with pytest.raises(MutationError):
            load_manifest(str(tmp_path))

    def test_checkpoint(self, tmp_path):
        checkpoint = PlanCheckpoint(str(tmp_path))
        assert checkpoint.completed() == set()
        checkpoint.mark(0)
        checkpoint.mark(4)
        assert PlanCheckpoint(str(tmp_path)).completed() == {0, 4}


class TestSizeStats:
    def test_size_stats(self):
        stats = calculate_size_stats(generate("io_echo", {"data": []}, sizes=[3, 1024, 7]))
        assert stats.total_count == 3
        assert stats.min_size == 3
        assert stats.max_size == 1024
        assert stats.strategy == "length_bias"

    def test_no_declared_sizes(self):
        stats = calculate_size_stats(generate("fib", {"n": 1}))
        assert stats.total_count == 11
        assert stats.min_size is None and stats.max_size is None
