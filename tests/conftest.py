"""
Pytest configuration and fixtures for zkfuzz tests.
"""

import json
import sys
from pathlib import Path

import pytest

# Add project root to path for all imports
project_root = str(Path(__file__).parent.parent)
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from zkfuzz.config import ZkFuzzConfig
from zkfuzz.differential import ArtifactStore, ExecutionResult
from zkfuzz.globals import shutdown_event
from zkfuzz.programs import SEEDS_DIR
from zkfuzz.runners import Runner, load_runner


class ScriptedRunner(Runner):
    """Backend double whose results come from a callable."""

    name = "scripted"
    target = "scripted"

    def __init__(self, respond=None, version="scripted/1"):
        super().__init__(None)
        self.respond = respond or (lambda program_id, raw: ExecutionResult.ok([1, 2, 3], 1))
        self._version = version
        self.calls = []

    @property
    def version(self):
        return self._version

    def execute(self, program_id, input_bytes, timeout_ms):
        self.calls.append((program_id, input_bytes, timeout_ms))
        return self.respond(program_id, input_bytes)


@pytest.fixture(autouse=True)
def reset_shutdown_event():
    shutdown_event.clear()
    yield
    shutdown_event.clear()


@pytest.fixture
def seeds_dir():
    return Path(SEEDS_DIR)


@pytest.fixture
def artifacts_dir(tmp_path):
    return tmp_path / "artifacts"


@pytest.fixture
def config(artifacts_dir):
    """Config pointed at a temporary artifacts directory."""
    return ZkFuzzConfig(
        artifacts_dir=str(artifacts_dir),
        timeout_ms=5000,
        log_to_file=False,
    )


@pytest.fixture
def store(artifacts_dir):
    with ArtifactStore(str(artifacts_dir)) as s:
        yield s


@pytest.fixture
def native_runner(config):
    return load_runner("native", config)


@pytest.fixture
def vm_runner(config):
    return load_runner("vm", config)


@pytest.fixture
def write_input(tmp_path):
    """Write a JSON document (or raw text) to a file and return its path."""
    def _write(document, name="input.json"):
        path = tmp_path / name
        if isinstance(document, (str, bytes)):
            path.write_bytes(document if isinstance(document, bytes) else document.encode("utf-8"))
        else:
            path.write_text(json.dumps(document))
        return str(path)
    return _write


@pytest.fixture
def scripted_runner():
    return ScriptedRunner
