"""Run bookkeeping helpers: provenance records and timing."""

from __future__ import annotations

import dataclasses
import hashlib
import subprocess
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Union

import yaml

from cooccur_markov import __version__
from cooccur_markov.config import StudyConfig


def config_to_yaml(config: StudyConfig) -> str:
    """Serialize a StudyConfig back to YAML (section order preserved)."""
    return yaml.safe_dump(dataclasses.asdict(config), sort_keys=False)


def config_hash(config: StudyConfig) -> str:
    """SHA-256 of the serialized configuration, for tagging outputs."""
    return hashlib.sha256(config_to_yaml(config).encode('utf-8')).hexdigest()


def get_git_hash() -> str:
    """Return the current git commit hash, or 'unknown' if not in a repo."""
    try:
        result = subprocess.run(
            ['git', 'rev-parse', 'HEAD'],
            capture_output=True, text=True, timeout=5,
        )
        return result.stdout.strip() if result.returncode == 0 else 'unknown'
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return 'unknown'


def write_run_info(config: StudyConfig, directory: Union[str, Path]) -> Path:
    """Record the configuration and code version next to the landscapes."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / 'run_info.yaml'
    info = {
        'package_version': __version__,
        'git_commit': get_git_hash(),
        'config_sha256': config_hash(config),
        'config': dataclasses.asdict(config),
    }
    with open(path, 'w') as f:
        yaml.safe_dump(info, f, sort_keys=False)
    return path


@contextmanager
def timer(label: str = "") -> Generator[None, None, None]:
    """Simple context-manager timer. Prints elapsed time on exit."""
    start = time.perf_counter()
    yield
    elapsed = time.perf_counter() - start
    if label:
        print(f"[{label}] {elapsed:.3f}s")
    else:
        print(f"Elapsed: {elapsed:.3f}s")
