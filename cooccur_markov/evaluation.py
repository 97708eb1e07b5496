"""Estimator recovery of known interactions.

recover_landscape() fits every requested estimator to one landscape and
returns one row per pair of variable species:

    truth, n_sites, rep, sp1, sp2, <one column per method>

performance() scores each method by the proportion of variance in the
true coefficients explained by a no-intercept linear rescaling of its
estimates, relative to a null that sets every interaction to zero:

    R² = 1 - mean((truth - b·estimate)²) / mean(truth²)

with b fitted by least squares across all landscape sizes, then R²
reported separately for each number of sites.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from cooccur_markov.coefficients import upper_triangle
from cooccur_markov.config import EstimationSection
from cooccur_markov.estimators import ESTIMATORS, drop_constant_species
from cooccur_markov.landscape_io import landscape_stem
from cooccur_markov.pairs import order_pairs, parse_pairs_output
from cooccur_markov.types import SimulatedLandscape

logger = logging.getLogger(__name__)

ID_COLUMNS = ['truth', 'n_sites', 'rep', 'sp1', 'sp2']


def _pairs_matrix(presence: np.ndarray, pairs_lines: Sequence[str],
                  stem: str) -> np.ndarray:
    """Z-scores as a full (n_spp, n_spp) matrix, NaN where unreported.

    `pairs` numbers species by their row in the stripped input, i.e. among
    species present at least once.
    """
    n_spp = presence.shape[1]
    nonempty = np.flatnonzero(presence.sum(axis=0) > 0)
    out = np.full((n_spp, n_spp), np.nan)
    if len(nonempty) < 2:
        return out

    results = parse_pairs_output(pairs_lines, stem)
    ordered = order_pairs(results, len(nonempty))
    z = np.full((len(nonempty), len(nonempty)), np.nan)
    iu = np.triu_indices(len(nonempty), k=1)
    z[iu] = ordered['z'].to_numpy(dtype=np.float64)
    z.T[iu] = z[iu]
    out[np.ix_(nonempty, nonempty)] = z
    return out


def recover_landscape(
    landscape: SimulatedLandscape,
    rep: int,
    estimation: Optional[EstimationSection] = None,
    pairs_lines: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """Fit every configured estimator to one landscape.

    Abundance landscapes are binarized first. Constant species are
    dropped, together with every pair they belong to.

    Args:
        landscape: Simulated landscape with its truth.
        rep: Replicate number (reported, and used to find the Pairs block).
        estimation: Estimator settings; defaults when None.
        pairs_lines: Lines of the `pairs` report. Without it the Pairs
            column is all NaN.

    Returns:
        DataFrame with ID_COLUMNS followed by one column per method.
    """
    if estimation is None:
        estimation = EstimationSection()

    presence = landscape.presence()
    x, kept, truth = drop_constant_species(presence, landscape.truth)
    rows, cols = np.triu_indices(len(kept), k=1)

    table = pd.DataFrame({
        'truth': truth,
        'n_sites': landscape.n_sites,
        'rep': rep,
        'sp1': kept[rows] + 1,
        'sp2': kept[cols] + 1,
    })
    if len(kept) < 2:
        logger.info("Landscape %d-%d has fewer than two variable species",
                    landscape.n_sites, rep)
        for method in estimation.methods:
            table[method] = pd.Series(dtype=np.float64)
        return table

    for method in estimation.methods:
        if method == 'Pairs':
            if pairs_lines is None:
                table[method] = np.nan
                continue
            stem = landscape_stem(landscape.mode, landscape.n_sites, rep)
            try:
                full = _pairs_matrix(presence, pairs_lines, stem)
            except KeyError:
                logger.warning("No Pairs results for %s; Pairs column will be NaN",
                               stem)
                table[method] = np.nan
                continue
            table[method] = upper_triangle(full[np.ix_(kept, kept)])
        else:
            estimate = ESTIMATORS[method](x, estimation)
            table[method] = upper_triangle(estimate)
    return table


def _method_columns(table: pd.DataFrame) -> List[str]:
    return [c for c in table.columns if c not in ID_COLUMNS]


def _residuals(truth: np.ndarray, estimate: np.ndarray) -> np.ndarray:
    """Residuals of truth ~ estimate + 0; NaN where the estimate is NaN."""
    ok = np.isfinite(estimate)
    resid = np.full_like(truth, np.nan, dtype=np.float64)
    denom = np.sum(estimate[ok] ** 2)
    slope = np.sum(truth[ok] * estimate[ok]) / denom if denom > 0 else 0.0
    resid[ok] = truth[ok] - slope * estimate[ok]
    return resid


def _r_squared(truth: np.ndarray, resid: np.ndarray) -> float:
    ok = np.isfinite(resid)
    if not np.any(ok):
        return np.nan
    total = np.mean(truth[ok] ** 2)
    if total == 0:
        return np.nan
    return float(1.0 - np.mean(resid[ok] ** 2) / total)


def performance(table: pd.DataFrame) -> pd.DataFrame:
    """R² of each method for each landscape size.

    Returns:
        DataFrame indexed by n_sites, one column per method, columns
        sorted by mean R² (best first).
    """
    truth = table['truth'].to_numpy(dtype=np.float64)
    sizes = np.sort(table['n_sites'].unique())
    results = {}
    for method in _method_columns(table):
        resid = _residuals(truth, table[method].to_numpy(dtype=np.float64))
        results[method] = [
            _r_squared(truth[table['n_sites'].to_numpy() == n],
                       resid[table['n_sites'].to_numpy() == n])
            for n in sizes
        ]
    out = pd.DataFrame(results, index=pd.Index(sizes, name='n_sites'))
    order = out.mean(axis=0).sort_values(ascending=False).index
    return out[order]


def overall_performance(table: pd.DataFrame) -> pd.Series:
    """R² of each method across all landscape sizes, best first."""
    truth = table['truth'].to_numpy(dtype=np.float64)
    scores = {
        method: _r_squared(
            truth, _residuals(truth, table[method].to_numpy(dtype=np.float64))
        )
        for method in _method_columns(table)
    }
    return pd.Series(scores, name='R2').sort_values(ascending=False)
