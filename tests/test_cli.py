"""
Tests for main.py - the zkfuzz command line.
"""

import json
import os

import pytest

from zkfuzz.main import EXIT_DIVERGENCE, EXIT_ERROR, EXIT_OK, build_parser, main


@pytest.fixture
def cli(tmp_path, artifacts_dir):
    """Run the CLI against a temporary config and artifacts directory."""
    config_path = str(tmp_path / "config.json")

    def _run(*args):
        argv = list(args) + ["--config", config_path, "--artifacts-dir", str(artifacts_dir),
                             "--no-log-file", "--quiet"]
        return main(argv)
    return _run


class TestParser:
    def test_subcommand_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_fuzz_defaults(self):
        args = build_parser().parse_args(["fuzz"])
        assert args.programs == "all"
        assert args.resume is None


class TestCommands:
    def test_programs(self, cli, capsys):
        assert cli("programs") == EXIT_OK
        out = capsys.readouterr().out
        assert "io_echo" in out and "length_bias" in out

    def test_run_equal(self, cli, seeds_dir, artifacts_dir):
        code = cli("run", "--program", "fib", "--input", str(seeds_dir / "fib_24.json"),
                   "--backend-b", "native")
        assert code == EXIT_OK
        assert (artifacts_dir / "summary.csv").exists()

    def test_run_native_vs_vm(self, cli, seeds_dir):
        assert cli("run", "--program", "panic_test", "--input", str(seeds_dir / "panic_yes.json")) == EXIT_OK

    def test_run_unknown_program(self, cli, seeds_dir):
        assert cli("run", "--program", "sha256", "--input", str(seeds_dir / "fib_24.json")) == EXIT_ERROR

    def test_run_missing_input(self, cli, tmp_path):
        assert cli("run", "--program", "fib", "--input", str(tmp_path / "missing.json")) == EXIT_ERROR

    def test_run_bad_backend(self, cli, seeds_dir):
        code = cli("run", "--program", "fib", "--input", str(seeds_dir / "fib_24.json"), "--backend-b", "sp1")
        assert code == EXIT_ERROR

    def test_plan(self, cli, tmp_path, capsys):
        out_dir = tmp_path / "plan"
        code = cli("plan", "--program", "io_echo", "--sizes", "0,1,1024,1048576", "--output", str(out_dir))
        assert code == EXIT_OK
        manifest = json.loads((out_dir / "plan.json").read_text())
        assert manifest["count"] == 4
        assert "length_bias:1mb" in capsys.readouterr().out

    def test_plan_bad_strategy(self, cli):
        assert cli("plan", "--program", "fib", "--strategy", "length_bias") == EXIT_ERROR

    def test_fuzz(self, cli, artifacts_dir):
        code = cli("fuzz", "--programs", "fib", "--backend-b", "native", "--workers", "2")
        assert code == EXIT_OK
        assert len(os.listdir(artifacts_dir / "mutations")) == 1

    def test_fuzz_unknown_program(self, cli):
        assert cli("fuzz", "--programs", "fib,nope") == EXIT_ERROR

    def test_divergence_exit_code(self, cli, seeds_dir, monkeypatch):
        from zkfuzz.differential.engine import ExecutionResult
        from zkfuzz.runners.native import NativeRunner

        calls = []
        original = NativeRunner.execute

        def flaky(self, program_id, input_bytes, timeout_ms):
            calls.append(program_id)
            if len(calls) == 2:
                return ExecutionResult.panic(1, "injected")
            return original(self, program_id, input_bytes, timeout_ms)

        monkeypatch.setattr(NativeRunner, "execute", flaky)
        code = cli("run", "--program", "fib", "--input", str(seeds_dir / "fib_24.json"),
                   "--backend-b", "native", "--sequential")
        assert code == EXIT_DIVERGENCE
