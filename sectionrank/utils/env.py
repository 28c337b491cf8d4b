from __future__ import annotations

import os
from pathlib import Path


def load_env(env_path: Path | str = ".env", *, override: bool = False) -> int:
    """Read KEY=VALUE lines from a .env file into ``os.environ``; returns how many were set."""
    path = Path(env_path)
    if not path.exists():
        return 0
    loaded = 0
    for line in path.read_text().splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if override or key not in os.environ:
            os.environ[key] = value
            loaded += 1
    return loaded


def env_bool(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.lower() in {"1", "true", "yes", "on"}


__all__ = ["env_bool", "load_env"]
