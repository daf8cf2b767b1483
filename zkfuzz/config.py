# zkfuzz/config.py
import os
import json
import sys
from typing import Any, Dict, Optional

DEFAULT_TIMEOUT_MS = 10_000


class ZkFuzzConfigError(Exception):
    """Raised when the zkfuzz configuration cannot be loaded or saved."""
    pass


def _default_data() -> Dict[str, Any]:
    return {
        "artifacts_dir": "./artifacts",
        "inputs_dir": None,  # None = seeds shipped with zkfuzz
        "timeout_ms": DEFAULT_TIMEOUT_MS,
        "workers": 1,
        "parallel_backends": True,
        "backend_a": "native",
        "backend_b": "vm",
        "log_level": "INFO",
        "log_to_file": True,
        "log_file": "~/.zkfuzz/zkfuzz.log",
        "python": None,  # interpreter used for the VM guest; None = current
    }


class ZkFuzzConfig:
    def __init__(self, **kwargs):
        data = _default_data()
        unknown = set(kwargs) - set(data)
        if unknown:
            raise ZkFuzzConfigError(f"Unknown config keys: {', '.join(sorted(unknown))}")
        data.update(kwargs)
        self._data = data

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("__"):
            raise AttributeError(name)
        if name in self._data:
            return self._data[name]
        raise AttributeError(f"'ZkFuzzConfig' object has no attribute '{name}'")

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "_data":
            super().__setattr__(name, value)
        else:
            self._data[name] = value

    def as_dict(self) -> Dict[str, Any]:
        return dict(self._data)

    @property
    def python_executable(self) -> str:
        return self._data.get("python") or sys.executable

    @property
    def artifacts_path(self) -> str:
        return os.path.expanduser(self._data["artifacts_dir"])

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "ZkFuzzConfig":
        if config_path is None:
            config_path = os.path.join(_ensure_zkfuzz_dir(), "config.json")
        config_path = os.path.expanduser(config_path)
        if not os.path.exists(config_path):
            cfg = cls()
            cfg.save(config_path)
            return cfg

        try:
            with open(config_path, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ZkFuzzConfigError(f"Failed to load config from {config_path}: {e}")
        if not isinstance(data, dict):
            raise ZkFuzzConfigError(f"Config at {config_path} must be a JSON object")
        return cls(**data)

    def save(self, config_path: Optional[str] = None) -> None:
        if config_path is None:
            config_path = os.path.join(_ensure_zkfuzz_dir(), "config.json")
        config_path = os.path.expanduser(config_path)
        try:
            os.makedirs(os.path.dirname(config_path) or ".", exist_ok=True)
            with open(config_path, "w") as f:
                json.dump(self._data, f, indent=2)
        except OSError as e:
            raise ZkFuzzConfigError(f"Failed to save zkfuzz config: {e}")


def _ensure_zkfuzz_dir() -> str:
    """Ensure that ~/.zkfuzz/ exists. Return its path."""
    zkfuzz_dir = os.path.join(os.path.expanduser("~"), ".zkfuzz")
    os.makedirs(zkfuzz_dir, exist_ok=True)
    return zkfuzz_dir
