"""Ground-truth parameter draws.

  - Intercepts:   alpha_i ~ Normal(mean_alpha, 1)
  - Interactions: |beta_ij| ~ Exponential(rate 1), sign -1 w.p. p_neg
  - Environment:  env ~ Normal(0, sd) per site, alpha_env ~ Normal(0, 1)

Pairwise draws fill the upper triangle in row-major order and are
mirrored, so beta is symmetric with a zero diagonal by construction.
"""

from __future__ import annotations

import math

import numpy as np

from cooccur_markov.config import InvalidConfigurationError
from cooccur_markov.types import Coefficients, Environment, n_pairs


def upper_triangle(matrix: np.ndarray) -> np.ndarray:
    """Row-major strict upper triangle of a square matrix."""
    matrix = np.asarray(matrix)
    return matrix[np.triu_indices(matrix.shape[0], k=1)]


def symmetric_from_upper(upper: np.ndarray, n_spp: int) -> np.ndarray:
    """Rebuild a symmetric zero-diagonal matrix from its upper triangle.

    Args:
        upper: n_spp*(n_spp-1)/2 values in row-major upper-triangle order.
        n_spp: Matrix dimension.

    Returns:
        (n_spp, n_spp) float64 array.
    """
    upper = np.asarray(upper, dtype=np.float64)
    if upper.size != n_pairs(n_spp):
        raise ValueError(
            f"Expected {n_pairs(n_spp)} upper-triangle values for "
            f"{n_spp} species, got {upper.size}"
        )
    out = np.zeros((n_spp, n_spp))
    out[np.triu_indices(n_spp, k=1)] = upper
    return out + out.T


def validate_coefficient_parameters(n_spp: int, p_neg: float,
                                    mean_alpha: float) -> None:
    if n_spp < 2:
        raise InvalidConfigurationError(
            f"n_spp must be >= 2 to have any species pairs, got {n_spp}"
        )
    if not (0.0 <= p_neg <= 1.0):
        raise InvalidConfigurationError(f"p_neg must be in [0, 1], got {p_neg}")
    if not math.isfinite(mean_alpha):
        raise InvalidConfigurationError(
            f"mean_alpha must be finite, got {mean_alpha}"
        )


def sample_coefficients(
    n_spp: int,
    p_neg: float,
    mean_alpha: float,
    rng: np.random.Generator,
) -> Coefficients:
    """Draw one ground-truth parameter set.

    Args:
        n_spp: Number of species (>= 2).
        p_neg: Probability that a pairwise coefficient is negative.
        mean_alpha: Mean of the intercept distribution.
        rng: Random generator (the run's 'coefficients' stream).

    Returns:
        Coefficients with symmetric, zero-diagonal beta.

    Raises:
        InvalidConfigurationError: on invalid arguments; nothing is drawn.
    """
    validate_coefficient_parameters(n_spp, p_neg, mean_alpha)

    alpha = rng.normal(loc=mean_alpha, scale=1.0, size=n_spp)

    k = n_pairs(n_spp)
    magnitude = rng.exponential(scale=1.0, size=k)
    sign = np.where(rng.random(k) < p_neg, -1.0, 1.0)

    return Coefficients(alpha, symmetric_from_upper(sign * magnitude, n_spp))


def sample_environment(
    n_sites: int,
    n_spp: int,
    n_env: int,
    sd: float,
    rng: np.random.Generator,
) -> Environment:
    """Draw environmental covariates and their species weights.

    sd = 0 or n_env = 0 yields a homogeneous environment (all site
    intercepts equal alpha).
    """
    if n_env < 0:
        raise InvalidConfigurationError(f"n_env must be >= 0, got {n_env}")
    if not (sd >= 0.0):
        raise InvalidConfigurationError(f"sd must be >= 0, got {sd}")
    if n_sites < 1:
        raise InvalidConfigurationError(f"n_sites must be >= 1, got {n_sites}")

    env = rng.normal(loc=0.0, scale=sd, size=(n_sites, n_env))
    alpha_env = rng.normal(loc=0.0, scale=1.0, size=(n_env, n_spp))
    return Environment(env, alpha_env)
