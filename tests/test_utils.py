"""Tests for scr_design.utils — provenance hashes and timing."""

import hashlib
import time

from scr_design.config import default_config
from scr_design.spatial import make_grid, save_points_csv
from scr_design.utils import Stopwatch, config_hash, file_sha256, provenance


class TestHashes:
    def test_file_sha256(self, tmp_path):
        path = tmp_path / 'blob.bin'
        data = bytes(range(256)) * 1000
        path.write_bytes(data)
        assert file_sha256(path) == hashlib.sha256(data).hexdigest()

    def test_config_hash_stable(self):
        assert config_hash(default_config()) == config_hash(default_config())

    def test_config_hash_accepts_dict(self):
        config = default_config()
        assert config_hash(config) == config_hash(config.to_dict())

    def test_config_hash_changes(self):
        a, b = default_config(), default_config()
        b.simulation.seed = 1
        assert config_hash(a) != config_hash(b)


class TestProvenance:
    def test_fields(self, tmp_path):
        traps = tmp_path / 'traps.csv'
        save_points_csv(make_grid(0, 2, 0, 2, 1.0), traps)
        config = default_config()
        config.simulation.seed = 13
        config.spatial.trap_file = str(traps)
        meta = provenance(config)
        assert meta['seed'] == 13
        assert meta['config_hash'] == config_hash(config)
        assert meta['trap_file_sha256'] == file_sha256(traps)
        assert 'state_space_file_sha256' not in meta
        assert isinstance(meta['git_hash'], str)


class TestStopwatch:
    def test_elapsed(self):
        with Stopwatch() as sw:
            time.sleep(0.01)
        assert sw.elapsed >= 0.01
