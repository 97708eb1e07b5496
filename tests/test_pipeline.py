"""Tests for cooccur_markov.pipeline — batch simulation and recovery.

Uses small studies (few species, few sites, few sweeps) so the whole
simulate → write → read → recover path runs in seconds.
"""

import logging

import numpy as np
import pytest

from cooccur_markov.config import (
    EstimationSection,
    LandscapeSection,
    OutputSection,
    SimulationSection,
    StudyConfig,
)
from cooccur_markov.landscape_io import read_landscape
from cooccur_markov.pipeline import (
    build_tasks,
    landscape_files,
    recover_all,
    run_replicate,
    simulate_all,
)


def _small_config(directory, workers=1, methods=None, pairs_file=None):
    return StudyConfig(
        simulation=SimulationSection(seed=3, n_gibbs=5, workers=workers),
        landscape=LandscapeSection(n_spp=4, n_sites=[20, 40], n_replicates=3),
        estimation=EstimationSection(
            methods=methods or ['correlation', 'GLM'],
            pairs_file=pairs_file,
        ),
        output=OutputSection(directory=str(directory)),
    )


# ── Task construction ─────────────────────────────────────────────────

class TestBuildTasks:
    def test_one_task_per_size_and_rep(self, tmp_path):
        tasks = build_tasks(_small_config(tmp_path))
        assert len(tasks) == 6
        assert [(t.n_sites, t.rep) for t in tasks] == [
            (20, 1), (20, 2), (20, 3), (40, 1), (40, 2), (40, 3),
        ]

    def test_seeds_unique_and_stable(self, tmp_path):
        a = build_tasks(_small_config(tmp_path))
        b = build_tasks(_small_config(tmp_path))
        assert len({t.seed for t in a}) == len(a)
        assert [t.seed for t in a] == [t.seed for t in b]

    def test_settings_propagate(self, tmp_path):
        task = build_tasks(_small_config(tmp_path))[0]
        assert task.n_spp == 4
        assert task.n_gibbs == 5
        assert task.mode == "presence-absence"
        assert task.directory == str(tmp_path)


# ── Simulation ────────────────────────────────────────────────────────

class TestSimulateAll:
    def test_writes_every_landscape(self, tmp_path):
        written = simulate_all(_small_config(tmp_path))
        assert len(written) == 6
        files = landscape_files(tmp_path)
        assert [f.name for f in files] == sorted(
            f"binary-{n}-{r}.npz" for n in (20, 40) for r in (1, 2, 3)
        )
        assert (tmp_path / "binary-20-1-truth.csv").exists()
        assert (tmp_path / "binary-40-3-pairs.txt").exists()

    def test_run_replicate_matches_task_seed(self, tmp_path):
        task = build_tasks(_small_config(tmp_path))[2]
        paths = run_replicate(task)
        landscape = read_landscape(paths['npz'])
        assert landscape.seed == task.seed
        assert landscape.n_sites == task.n_sites

    def test_deterministic(self, tmp_path):
        simulate_all(_small_config(tmp_path / "a"))
        simulate_all(_small_config(tmp_path / "b"))
        for fa, fb in zip(landscape_files(tmp_path / "a"),
                          landscape_files(tmp_path / "b")):
            np.testing.assert_array_equal(read_landscape(fa).observed,
                                          read_landscape(fb).observed)

    def test_parallel_matches_serial(self, tmp_path):
        simulate_all(_small_config(tmp_path / "serial"))
        simulate_all(_small_config(tmp_path / "pool", workers=2))
        serial = landscape_files(tmp_path / "serial")
        pooled = landscape_files(tmp_path / "pool")
        assert [f.name for f in serial] == [f.name for f in pooled]
        for fa, fb in zip(serial, pooled):
            np.testing.assert_array_equal(read_landscape(fa).observed,
                                          read_landscape(fb).observed)


# ── Recovery ──────────────────────────────────────────────────────────

class TestRecoverAll:
    def test_end_to_end(self, tmp_path):
        config = _small_config(tmp_path)
        simulate_all(config)
        table = recover_all(config, landscape_files(tmp_path))
        assert {'truth', 'n_sites', 'rep', 'sp1', 'sp2',
                'correlation', 'GLM'} <= set(table.columns)
        assert set(table['n_sites']) <= {20, 40}
        assert set(table['rep']) <= {1, 2, 3}
        assert table['GLM'].notna().all()

    def test_no_files(self, tmp_path):
        table = recover_all(_small_config(tmp_path), [])
        assert table.empty

    def test_missing_pairs_report_warns(self, tmp_path, caplog):
        config = _small_config(tmp_path, methods=['correlation', 'Pairs'],
                               pairs_file=str(tmp_path / "Pairs.txt"))
        simulate_all(config)
        with caplog.at_level(logging.WARNING, logger="cooccur_markov.pipeline"):
            table = recover_all(config, landscape_files(tmp_path)[:1])
        assert "not found" in caplog.text
        assert table['Pairs'].isna().all()

    def test_unknown_file_name_rejected(self, tmp_path):
        bogus = tmp_path / "landscape.npz"
        bogus.write_bytes(b"")
        with pytest.raises(ValueError):
            recover_all(_small_config(tmp_path), [bogus])
