# zkfuzz/main.py
import argparse
import json
import os
import signal
import sys

from rich.console import Console
from rich.table import Table

from zkfuzz.config import ZkFuzzConfig, ZkFuzzConfigError
from zkfuzz.errors import InputDecodeError, InputLoadError, ZkFuzzError
from zkfuzz.globals import shutdown_event
from zkfuzz.logger import LOG_LEVELS, resolve_log_level, setup_zkfuzz_logger

EXIT_OK = 0
EXIT_DIVERGENCE = 1
EXIT_ERROR = 2

console = Console()


def signal_handler(sig, frame):
    """Handle SIGINT/SIGTERM: finish the current comparison, then stop."""
    console.print("\nReceived shutdown signal, stopping after the current comparison...")
    shutdown_event.set()


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", default=None,
                        help="Path to an alternate config file (default: ~/.zkfuzz/config.json).")
    common.add_argument("--artifacts-dir", default=None,
                        help="Directory for summary.csv, run logs and repro folders.")
    common.add_argument("--inputs-dir", default=None,
                        help="Directory holding the seed inputs (default: bundled seeds).")
    common.add_argument("--timeout-ms", type=int, default=None,
                        help="Per-backend execution deadline in milliseconds.")
    common.add_argument("--backend-a", default=None, help="Reference backend (default: native).")
    common.add_argument("--backend-b", default=None, help="Backend under test (default: vm).")
    common.add_argument("--sequential", action="store_true",
                        help="Run the two backends one after the other instead of concurrently.")
    common.add_argument("--log-level", default=None, choices=list(LOG_LEVELS),
                        help="Set the logging level.")
    common.add_argument("--quiet", action="store_true",
                        help="Minimize console output (overrides log-level to WARNING).")
    common.add_argument("--no-log-file", action="store_true", help="Do not write ~/.zkfuzz/zkfuzz.log")

    parser = argparse.ArgumentParser(
        prog="zkfuzz",
        description="zkfuzz: differential execution harness for native vs. VM program backends"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", parents=[common], help="Compare one input on both backends")
    run.add_argument("--program", required=True, help="Program identifier (see 'programs')")
    run.add_argument("--input", required=True, help="Path to the JSON input")

    fuzz = sub.add_parser("fuzz", parents=[common], help="Run a mutation campaign")
    fuzz.add_argument("--programs", default="all", help="'all' or a comma-separated list of programs")
    fuzz.add_argument("--workers", type=int, default=None, help="Variants executed concurrently")
    fuzz.add_argument("--resume", default=None, help="Campaign directory of an interrupted run")
    fuzz.add_argument("--rng-seed", type=int, default=None,
                      help="Seed for strategies that draw pseudo-random content")

    plan = sub.add_parser("plan", parents=[common], help="Show the mutation plan for a program")
    plan.add_argument("--program", required=True)
    plan.add_argument("--input", default=None, help="Seed input (default: the program's bundled seed)")
    plan.add_argument("--strategy", default=None)
    plan.add_argument("--rng-seed", type=int, default=None)
    plan.add_argument("--sizes", default=None, help="Comma-separated sizes for length_bias")
    plan.add_argument("--output", default=None, help="Directory to write plan.json to")

    sub.add_parser("programs", parents=[common], help="List the available programs")
    return parser


def load_config(args) -> ZkFuzzConfig:
    cfg = ZkFuzzConfig.load(args.config)
    if args.artifacts_dir:
        cfg.artifacts_dir = args.artifacts_dir
    if args.inputs_dir:
        cfg.inputs_dir = args.inputs_dir
    if args.timeout_ms:
        cfg.timeout_ms = args.timeout_ms
    if args.backend_a:
        cfg.backend_a = args.backend_a
    if args.backend_b:
        cfg.backend_b = args.backend_b
    if args.sequential:
        cfg.parallel_backends = False
    if args.log_level:
        cfg.log_level = args.log_level
    if args.no_log_file:
        cfg.log_to_file = False
    if getattr(args, "workers", None):
        cfg.workers = args.workers
    return cfg


def cmd_programs(args, cfg, logger) -> int:
    from zkfuzz.programs import available_programs, load_program

    table = Table(title="Programs")
    table.add_column("Program", style="cyan")
    table.add_column("Description")
    table.add_column("Strategies")
    table.add_column("Seed")
    for pid in available_programs():
        program = load_program(pid)
        table.add_row(pid, program.description, ", ".join(program.strategies), program.seed_file)
    console.print(table)
    return EXIT_OK


def _print_outcome(outcome, backend_a: str, backend_b: str):
    table = Table(title=f"{outcome.program_id}: {os.path.basename(outcome.input_path)}")
    table.add_column("Backend", style="cyan")
    table.add_column("Status")
    table.add_column("Elapsed ms", justify="right")
    table.add_column("Commits")
    for name, result in ((backend_a, outcome.result_a), (backend_b, outcome.result_b)):
        table.add_row(name, str(result.status), str(result.elapsed_ms),
                      ", ".join(str(c) for c in result.commits))
    console.print(table)
    if outcome.divergent:
        console.print(f"[bold red]DIVERGENCE[/bold red] {outcome.diff.reason}")
        console.print(f"Repro folder: {outcome.repro_path}")
    else:
        console.print(f"[green]equal[/green] (timing delta {outcome.diff.timing_delta_ms}ms)")


def cmd_run(args, cfg, logger) -> int:
    from zkfuzz.differential import ArtifactStore, Provenance
    from zkfuzz.differential.harness import DifferentialHarness

    with ArtifactStore(cfg.artifacts_path, python=cfg.python_executable) as store:
        harness = DifferentialHarness.from_config(cfg, store)
        outcome = harness.run_comparison(args.program, args.input, Provenance.HAND_WRITTEN)
    _print_outcome(outcome, cfg.backend_a, cfg.backend_b)
    return EXIT_DIVERGENCE if outcome.divergent else EXIT_OK


def cmd_fuzz(args, cfg, logger) -> int:
    from zkfuzz.differential import ArtifactStore, print_summary
    from zkfuzz.differential.harness import DifferentialHarness

    with ArtifactStore(cfg.artifacts_path, python=cfg.python_executable) as store:
        harness = DifferentialHarness.from_config(cfg, store)
        summary = harness.run_campaign(args.programs, workers=int(cfg.workers),
                                       resume_dir=args.resume, rng_seed=args.rng_seed)
    print_summary(summary.programs, cfg.backend_a, cfg.backend_b, console=console)
    console.print(f"Campaign directory: {summary.campaign_dir}")
    console.print(f"All results logged to {os.path.join(cfg.artifacts_path, 'summary.csv')}")
    return EXIT_DIVERGENCE if summary.divergences else EXIT_OK


def cmd_plan(args, cfg, logger) -> int:
    from zkfuzz.mutators import calculate_size_stats, generate
    from zkfuzz.programs import seed_path

    path = args.input or seed_path(args.program, cfg.inputs_dir)
    try:
        with open(path, "r") as f:
            seed = json.load(f)
    except OSError as e:
        raise InputLoadError(f"Failed to read seed {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise InputDecodeError(f"Seed {path} is not valid JSON: {e}") from e

    params = {}
    if args.sizes:
        params["sizes"] = [int(s) for s in args.sizes.split(",") if s.strip()]
    plan = generate(args.program, seed, args.strategy, base_seed=path, rng_seed=args.rng_seed, **params)

    table = Table(title=f"{plan.program_id}: {plan.strategy} v{plan.strategy_version}")
    table.add_column("#", justify="right")
    table.add_column("Operator", style="cyan")
    table.add_column("Declared size", justify="right")
    for entry in plan:
        table.add_row(str(entry.index), entry.operator,
                      "" if entry.declared_size is None else f"{entry.declared_size:,}")
    console.print(table)

    stats = calculate_size_stats(plan)
    console.print(f"{stats.total_count} variants, fingerprint {plan.fingerprint[:16]}")
    if stats.min_size is not None:
        console.print(f"Declared size range: {stats.min_size:,} .. {stats.max_size:,} bytes")
    if args.output:
        console.print(f"Manifest written to {plan.save_manifest(args.output)}")
    return EXIT_OK


COMMANDS = {
    "run": cmd_run,
    "fuzz": cmd_fuzz,
    "plan": cmd_plan,
    "programs": cmd_programs,
}


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        cfg = load_config(args)
    except ZkFuzzConfigError as e:
        console.print(f"[red]Config error:[/red] {e}")
        return EXIT_ERROR

    log_level = resolve_log_level(cfg.log_level, quiet=args.quiet)
    logger = setup_zkfuzz_logger(log_level, log_to_file=bool(cfg.log_to_file), log_file=cfg.log_file)
    logger.debug(f"Running '{args.command}' with config {cfg.as_dict()}")

    # Register signal handlers so campaigns stop between variants
    previous = {
        signal.SIGINT: signal.signal(signal.SIGINT, signal_handler),
        signal.SIGTERM: signal.signal(signal.SIGTERM, signal_handler),
    }

    try:
        return COMMANDS[args.command](args, cfg, logger)
    except ZkFuzzError as e:
        logger.error(str(e))
        console.print(f"[red]{type(e).__name__}:[/red] {e}")
        return EXIT_ERROR
    except ValueError as e:
        logger.error(str(e))
        return EXIT_ERROR
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


if __name__ == "__main__":
    sys.exit(main())
