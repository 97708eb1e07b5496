"""Batch simulation and recovery over every (n_sites, replicate) task.

Replicates are independent: each task gets its own seed from
rng.replicate_seeds() and shares no state with any other, so tasks can be
farmed out to a multiprocessing.Pool without changing results.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from multiprocessing import Pool
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pandas as pd

from cooccur_markov.config import StudyConfig
from cooccur_markov.evaluation import recover_landscape
from cooccur_markov.gibbs import simulate_landscape
from cooccur_markov.landscape_io import parse_stem, read_landscape, write_landscape
from cooccur_markov.pairs import read_pairs_lines
from cooccur_markov.rng import replicate_seeds

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReplicateTask:
    """Everything one worker needs to simulate and write one landscape."""
    n_spp: int
    n_sites: int
    rep: int
    seed: int
    n_gibbs: int
    mode: str
    p_neg: Optional[float]
    mean_alpha: Optional[float]
    n_env: int
    sd: float
    directory: str


def build_tasks(config: StudyConfig) -> List[ReplicateTask]:
    """One task per (n_sites, rep), seeds assigned in that order."""
    land = config.landscape
    sim = config.simulation
    combos = [(n, rep) for n in land.n_sites
              for rep in range(1, land.n_replicates + 1)]
    seeds = replicate_seeds(sim.seed, len(combos))
    return [
        ReplicateTask(
            n_spp=land.n_spp,
            n_sites=n,
            rep=rep,
            seed=seed,
            n_gibbs=sim.n_gibbs,
            mode=sim.mode,
            p_neg=land.p_neg,
            mean_alpha=land.mean_alpha,
            n_env=land.n_env,
            sd=land.sd,
            directory=config.output.directory,
        )
        for (n, rep), seed in zip(combos, seeds)
    ]


def run_replicate(task: ReplicateTask) -> Dict[str, Path]:
    """Simulate and write one landscape. Top-level so Pool can pickle it."""
    landscape = simulate_landscape(
        n_spp=task.n_spp,
        n_sites=task.n_sites,
        n_gibbs=task.n_gibbs,
        mode=task.mode,
        seed=task.seed,
        p_neg=task.p_neg,
        mean_alpha=task.mean_alpha,
        n_env=task.n_env,
        sd=task.sd,
    )
    return write_landscape(landscape, task.directory, task.rep)


def simulate_all(config: StudyConfig) -> List[Dict[str, Path]]:
    """Simulate every replicate landscape in the study.

    Runs serially when simulation.workers == 1, otherwise in a process
    pool. Output is identical either way.

    Returns:
        Written paths per task, in task order.
    """
    tasks = build_tasks(config)
    workers = config.simulation.workers
    logger.info("Simulating %d landscapes with %d worker(s)", len(tasks), workers)
    if workers == 1:
        return [run_replicate(task) for task in tasks]
    with Pool(processes=workers) as pool:
        return pool.map(run_replicate, tasks)


def recover_all(
    config: StudyConfig,
    paths: Sequence[Path],
) -> pd.DataFrame:
    """Run every configured estimator over saved landscapes.

    Args:
        config: Study configuration (estimation section is used).
        paths: .npz landscape files.

    Returns:
        Concatenated per-pair table from recover_landscape().
    """
    est = config.estimation
    pairs_lines = None
    if 'Pairs' in est.methods and est.pairs_file is not None:
        if Path(est.pairs_file).exists():
            pairs_lines = read_pairs_lines(est.pairs_file)
        else:
            logger.warning("Pairs output %s not found; Pairs column will be NaN",
                           est.pairs_file)

    tables = []
    for path in sorted(Path(p) for p in paths):
        _, _, rep = parse_stem(path)
        landscape = read_landscape(path)
        logger.info("Recovering interactions for %s", path.name)
        tables.append(recover_landscape(landscape, rep, est, pairs_lines))
    if not tables:
        return pd.DataFrame()
    return pd.concat(tables, ignore_index=True)


def landscape_files(directory: Path) -> List[Path]:
    """Saved landscape .npz files in a directory, sorted by name."""
    return sorted(Path(directory).glob('*.npz'))
