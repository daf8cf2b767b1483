import importlib
import logging

from .base import Runner, toolchain_version

logger = logging.getLogger("zkfuzz.runners")

# backend name -> (module, class)
RUNNER_MAP = {
    "native": ("native", "NativeRunner"),
    "vm": ("vm", "VMRunner"),
}


def available_runners():
    return list(RUNNER_MAP)


def load_runner(runner_name: str, config=None) -> Runner:
    try:
        module_name, class_name = RUNNER_MAP[runner_name]
    except KeyError:
        raise ValueError(f"Invalid backend: {runner_name} (available: {', '.join(RUNNER_MAP)})")
    module = importlib.import_module(f"zkfuzz.runners.{module_name}")
    runner_class = getattr(module, class_name)
    logger.debug(f"Loaded runner: {runner_name} (module: {module_name}, class: {class_name})")
    return runner_class(config)


__all__ = ["Runner", "RUNNER_MAP", "available_runners", "load_runner", "toolchain_version"]
