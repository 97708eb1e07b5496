"""Core data types for cooccur-markov.

  - Coefficients: ground-truth intercepts and symmetric pairwise matrix
  - Environment: site covariates and their per-species weights
  - SimulatedLandscape: one Gibbs-sampled site × species matrix plus truth

Pairwise quantities are always flattened in row-major upper-triangle
order, i.e. (0,1), (0,2), ..., (0,n-1), (1,2), ... , which is the order
np.triu_indices(n, k=1) produces. Estimates are compared against truth
index-for-index in this order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from cooccur_markov.energy import SimulationMode


def n_pairs(n_spp: int) -> int:
    """Number of unordered species pairs."""
    return n_spp * (n_spp - 1) // 2


def pair_labels(n_spp: int) -> List[Tuple[int, int]]:
    """1-based (sp1, sp2) labels in row-major upper-triangle order."""
    rows, cols = np.triu_indices(n_spp, k=1)
    return [(int(i) + 1, int(j) + 1) for i, j in zip(rows, cols)]


def species_names(n_spp: int) -> List[str]:
    """Column names used for landscape matrices: sp1 .. spN."""
    return [f"sp{i + 1}" for i in range(n_spp)]


@dataclass(frozen=True)
class Coefficients:
    """Ground-truth Markov network parameters.

    alpha: (n_spp,) intercepts (log-odds or log-rate scale).
    beta:  (n_spp, n_spp) symmetric pairwise strengths, zero diagonal.
    """
    alpha: np.ndarray
    beta: np.ndarray

    def __post_init__(self):
        alpha = np.array(self.alpha, dtype=np.float64)
        beta = np.array(self.beta, dtype=np.float64)
        if alpha.ndim != 1:
            raise ValueError(f"alpha must be 1-D, got shape {alpha.shape}")
        if beta.shape != (alpha.size, alpha.size):
            raise ValueError(
                f"beta must have shape ({alpha.size}, {alpha.size}), "
                f"got {beta.shape}"
            )
        if not np.array_equal(beta, beta.T):
            raise ValueError("beta must be symmetric")
        if np.any(np.diag(beta) != 0):
            raise ValueError("beta must have a zero diagonal")
        alpha.setflags(write=False)
        beta.setflags(write=False)
        object.__setattr__(self, 'alpha', alpha)
        object.__setattr__(self, 'beta', beta)

    @property
    def n_spp(self) -> int:
        return self.alpha.size

    @property
    def upper(self) -> np.ndarray:
        """Independent pairwise coefficients, row-major upper triangle."""
        return self.beta[np.triu_indices(self.n_spp, k=1)]

    def pair_labels(self) -> List[Tuple[int, int]]:
        return pair_labels(self.n_spp)


@dataclass(frozen=True)
class Environment:
    """Environmental covariates.

    env:       (n_sites, n_env) covariate values, N(0, sd).
    alpha_env: (n_env, n_spp) per-species covariate weights, N(0, 1).

    n_env == 0 gives empty arrays and a homogeneous landscape.
    """
    env: np.ndarray
    alpha_env: np.ndarray

    @property
    def n_sites(self) -> int:
        return self.env.shape[0]

    @property
    def n_env(self) -> int:
        return self.env.shape[1]

    def site_intercepts(self, alpha: np.ndarray) -> np.ndarray:
        """Per-site intercepts alpha_i + env[site] · alpha_env[:, i].

        Returns:
            (n_sites, n_spp) float64 array.
        """
        alpha = np.asarray(alpha, dtype=np.float64)
        return alpha[np.newaxis, :] + self.env @ self.alpha_env

    @classmethod
    def homogeneous(cls, n_sites: int, n_spp: int) -> 'Environment':
        """Environment with no covariates."""
        return cls(np.zeros((n_sites, 0)), np.zeros((0, n_spp)))


@dataclass
class SimulatedLandscape:
    """One simulated landscape and the truth it was generated from."""
    observed: np.ndarray            # (n_sites, n_spp) int64
    coefficients: Coefficients
    environment: Environment
    mode: SimulationMode
    n_gibbs: int
    seed: Optional[int] = None

    @property
    def n_sites(self) -> int:
        return self.observed.shape[0]

    @property
    def n_spp(self) -> int:
        return self.observed.shape[1]

    @property
    def truth(self) -> np.ndarray:
        """Ground-truth pairwise coefficients, row-major upper triangle."""
        return self.coefficients.upper

    def presence(self) -> np.ndarray:
        """Presence/absence view (observed > 0) as 0/1 integers."""
        return (self.observed > 0).astype(np.int64)

    def constant_species(self) -> np.ndarray:
        """Indices of species that are always present or always absent."""
        pres = self.presence()
        col_sum = pres.sum(axis=0)
        return np.flatnonzero((col_sum == 0) | (col_sum == self.n_sites))
