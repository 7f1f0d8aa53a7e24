"""Run provenance and timing helpers.

A results file is only useful if it can be traced back to the inputs
that produced it. provenance() collects hashes of the merged config and
every input file, the base seed and the source revision into one dict
that save_results() writes to the metadata sidecar.
"""

from __future__ import annotations

import hashlib
import subprocess
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Union

import yaml

from scr_design.config import RunConfig

_INPUT_FILES = ('state_space_file', 'trap_file', 'study_area_file')


def file_sha256(path: Union[str, Path]) -> str:
    """Hex SHA-256 of a file's bytes."""
    h = hashlib.sha256()
    with open(path, 'rb') as f:
        for block in iter(lambda: f.read(1 << 16), b''):
            h.update(block)
    return h.hexdigest()


def config_hash(config: Union[RunConfig, Dict]) -> str:
    """SHA-256 of the canonical (key-sorted) YAML dump of a config."""
    data = config.to_dict() if isinstance(config, RunConfig) else config
    text = yaml.safe_dump(data, sort_keys=True, default_flow_style=False)
    return hashlib.sha256(text.encode('utf-8')).hexdigest()


def get_git_hash(cwd: Optional[Union[str, Path]] = None) -> str:
    """Short commit hash of the checkout at cwd, 'unknown' outside git."""
    try:
        proc = subprocess.run(
            ['git', 'rev-parse', '--short', 'HEAD'],
            cwd=cwd, capture_output=True, text=True, timeout=5,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return 'unknown'
    return proc.stdout.strip() if proc.returncode == 0 else 'unknown'


def provenance(config: RunConfig) -> Dict[str, object]:
    """Metadata identifying one run: config hash, seed, input hashes, revision."""
    meta: Dict[str, object] = {
        'config_hash': config_hash(config),
        'seed': config.simulation.seed,
        'git_hash': get_git_hash(Path(__file__).resolve().parent),
        'started_utc': datetime.now(timezone.utc).isoformat(timespec='seconds'),
    }
    for name in _INPUT_FILES:
        path = getattr(config.spatial, name)
        if path is not None:
            meta[f'{name}_sha256'] = file_sha256(path)
    return meta


class Stopwatch:
    """Wall-clock timer usable as a context manager.

    with Stopwatch() as sw:
        table = driver.run()
    print(f"{sw.elapsed:.1f}s")
    """

    def __init__(self):
        self.start: Optional[float] = None
        self.elapsed = 0.0

    def __enter__(self) -> 'Stopwatch':
        self.start = time.perf_counter()
        return self

    def __exit__(self, *exc) -> None:
        self.elapsed = time.perf_counter() - self.start
