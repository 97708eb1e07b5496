"""Landscape persistence.

Each simulated landscape is written under one stem "{tag}-{n_sites}-{rep}"
(e.g. "binary-200-3"):

  {stem}.npz        observed matrix, truth, alpha, beta, env, alpha_env and
                    run metadata; read back by read_landscape()
  {stem}.csv        observed matrix, columns sp1 .. spN, one row per site
  {stem}-truth.csv  sp1, sp2, truth in row-major upper-triangle order
  {stem}-pairs.txt  input for the `pairs` permutation program: the
                    presence/absence matrix with empty sites and species
                    dropped, transposed to species × sites, whitespace
                    delimited
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, Tuple, Union

import numpy as np
import pandas as pd

from cooccur_markov.energy import SimulationMode
from cooccur_markov.types import (
    Coefficients,
    Environment,
    SimulatedLandscape,
    pair_labels,
    species_names,
)

_STEM_RE = re.compile(r'^(?P<tag>[A-Za-z_]+)-(?P<n_sites>\d+)-(?P<rep>\d+)$')


def landscape_stem(mode: SimulationMode, n_sites: int, rep: int) -> str:
    """File stem for one replicate landscape."""
    return f"{SimulationMode(mode).tag}-{n_sites}-{rep}"


def parse_stem(name: Union[str, Path]) -> Tuple[str, int, int]:
    """Split a landscape file name into (tag, n_sites, rep).

    Accepts a bare stem or any path whose stem is one.

    Raises:
        ValueError: if the name doesn't follow the stem convention.
    """
    stem = Path(name).name
    for suffix in ('.npz', '.csv'):
        if stem.endswith(suffix):
            stem = stem[:-len(suffix)]
    m = _STEM_RE.match(stem)
    if m is None:
        raise ValueError(f"Not a landscape file name: {name}")
    return m.group('tag'), int(m.group('n_sites')), int(m.group('rep'))


def pairs_view(matrix: np.ndarray) -> np.ndarray:
    """Drop all-zero rows and columns, then transpose.

    Args:
        matrix: (n_sites, n_spp) landscape.

    Returns:
        (n_nonempty_spp, n_nonempty_sites) array.
    """
    matrix = np.asarray(matrix)
    rows = np.any(matrix != 0, axis=1)
    cols = np.any(matrix != 0, axis=0)
    return matrix[rows][:, cols].T


def truth_table(coefficients: Coefficients) -> pd.DataFrame:
    """Ground-truth pairwise coefficients with 1-based species labels."""
    labels = pair_labels(coefficients.n_spp)
    return pd.DataFrame({
        'sp1': [a for a, _ in labels],
        'sp2': [b for _, b in labels],
        'truth': coefficients.upper,
    })


def write_landscape(
    landscape: SimulatedLandscape,
    directory: Union[str, Path],
    rep: int,
) -> Dict[str, Path]:
    """Write every file format for one landscape.

    Args:
        landscape: Simulated landscape.
        directory: Output directory (created if missing).
        rep: Replicate number used in the stem.

    Returns:
        Mapping of format name ('npz', 'csv', 'truth', 'pairs') to path.
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    stem = landscape_stem(landscape.mode, landscape.n_sites, rep)

    paths = {
        'npz': directory / f"{stem}.npz",
        'csv': directory / f"{stem}.csv",
        'truth': directory / f"{stem}-truth.csv",
        'pairs': directory / f"{stem}-pairs.txt",
    }

    np.savez_compressed(
        paths['npz'],
        observed=landscape.observed,
        truth=landscape.truth,
        alpha=landscape.coefficients.alpha,
        beta=landscape.coefficients.beta,
        env=landscape.environment.env,
        alpha_env=landscape.environment.alpha_env,
        mode=np.array(landscape.mode.value),
        n_gibbs=np.array(landscape.n_gibbs),
        seed=np.array(-1 if landscape.seed is None else landscape.seed),
    )

    pd.DataFrame(
        landscape.observed, columns=species_names(landscape.n_spp)
    ).to_csv(paths['csv'], index=False)

    truth_table(landscape.coefficients).to_csv(paths['truth'], index=False)

    np.savetxt(paths['pairs'], pairs_view(landscape.presence()),
               fmt='%d', delimiter=' ')

    return paths


def read_landscape(path: Union[str, Path]) -> SimulatedLandscape:
    """Load a landscape written by write_landscape() from its .npz file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Landscape file not found: {path}")
    with np.load(path) as data:
        seed = int(data['seed'])
        return SimulatedLandscape(
            observed=data['observed'].astype(np.int64),
            coefficients=Coefficients(data['alpha'], data['beta']),
            environment=Environment(data['env'], data['alpha_env']),
            mode=SimulationMode(str(data['mode'])),
            n_gibbs=int(data['n_gibbs']),
            seed=None if seed < 0 else seed,
        )
