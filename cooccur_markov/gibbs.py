"""Gibbs-sampling landscape simulator.

A landscape is an (n_sites, n_spp) matrix x. Sites are independent draws
from the Markov network; species within a site interact through beta.

Algorithm (systematic scan):
  1. Initialise every cell from its intercept-only conditional, i.e. the
     mode's sampler applied to alpha_i(site) with all interactions off.
  2. Repeat n_gibbs times: for j = 0 .. n_spp-1, redraw column j at every
     site from its full conditional

        eta[s] = x[s, :] · beta[:, j] + alpha_j + env[s, :] · alpha_env[:, j]

     Species < j have already been updated in this sweep; species > j
     still hold their values from the previous sweep.

Species must be visited sequentially, but each column update is a single
vectorised matrix-vector product over all sites. No Metropolis step is
needed because every draw is from an exact full conditional.

Mixing is not diagnosed: n_gibbs is an externally chosen sweep count.
The state buffer is owned by the caller and mutated in place, and the
whole simulation is a pure function of (seed, configuration).
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple, Union

import numpy as np

from cooccur_markov.coefficients import (
    sample_coefficients,
    sample_environment,
    validate_coefficient_parameters,
)
from cooccur_markov.config import InvalidConfigurationError
from cooccur_markov.energy import SimulationMode
from cooccur_markov.rng import create_run_streams
from cooccur_markov.types import Coefficients, Environment, SimulatedLandscape

logger = logging.getLogger(__name__)


def initial_state(
    site_alpha: np.ndarray,
    mode: SimulationMode,
    rng: np.random.Generator,
) -> np.ndarray:
    """Draw a starting state from the intercept-only conditionals.

    Args:
        site_alpha: (n_sites, n_spp) per-site intercepts.
        mode: Simulation mode (link + sampler).
        rng: Random generator.

    Returns:
        (n_sites, n_spp) int64 state matrix.
    """
    return mode.sample(site_alpha, rng)


def gibbs_sweep(
    x: np.ndarray,
    beta: np.ndarray,
    site_alpha: np.ndarray,
    mode: SimulationMode,
    rng: np.random.Generator,
) -> None:
    """One systematic-scan sweep over all species, updating x in place.

    Args:
        x: (n_sites, n_spp) int64 state, modified in place.
        beta: (n_spp, n_spp) symmetric, zero-diagonal interactions.
        site_alpha: (n_sites, n_spp) per-site intercepts.
        mode: Simulation mode (link + sampler).
        rng: Random generator.
    """
    for j in range(x.shape[1]):
        # beta[j, j] == 0, so x[:, j] drops out of its own conditional
        eta = x @ beta[:, j] + site_alpha[:, j]
        x[:, j] = mode.sample(eta, rng)


def run_gibbs(
    coefficients: Coefficients,
    environment: Environment,
    n_gibbs: int,
    mode: SimulationMode,
    rng: np.random.Generator,
) -> np.ndarray:
    """Run the chain from its heuristic start for n_gibbs sweeps.

    Args:
        coefficients: Ground-truth parameters.
        environment: Site covariates; its n_sites sets the landscape size.
        n_gibbs: Number of full sweeps (>= 1).
        mode: Simulation mode.
        rng: Random generator (the run's 'gibbs' stream).

    Returns:
        (n_sites, n_spp) int64 final state.
    """
    if n_gibbs < 1:
        raise InvalidConfigurationError(f"n_gibbs must be >= 1, got {n_gibbs}")

    site_alpha = environment.site_intercepts(coefficients.alpha)
    beta = coefficients.beta
    x = initial_state(site_alpha, mode, rng)
    for _ in range(n_gibbs):
        gibbs_sweep(x, beta, site_alpha, mode, rng)
    return x


def _validate_run(n_spp: int, n_sites: int, n_gibbs: int, seed: int,
                  n_env: int, sd: float) -> None:
    if n_spp < 2:
        raise InvalidConfigurationError(f"n_spp must be >= 2, got {n_spp}")
    if n_sites < 1:
        raise InvalidConfigurationError(f"n_sites must be >= 1, got {n_sites}")
    if n_gibbs < 1:
        raise InvalidConfigurationError(f"n_gibbs must be >= 1, got {n_gibbs}")
    if seed < 0:
        raise InvalidConfigurationError(f"seed must be non-negative, got {seed}")
    if n_env < 0:
        raise InvalidConfigurationError(f"n_env must be >= 0, got {n_env}")
    if not (sd >= 0.0):
        raise InvalidConfigurationError(f"sd must be >= 0, got {sd}")


def simulate_landscape(
    n_spp: int,
    n_sites: int,
    n_gibbs: int,
    mode: Union[SimulationMode, str],
    seed: int,
    p_neg: Optional[float] = None,
    mean_alpha: Optional[float] = None,
    n_env: int = 0,
    sd: float = 0.0,
    coefficients: Optional[Coefficients] = None,
) -> SimulatedLandscape:
    """Simulate one landscape from freshly drawn (or supplied) truth.

    Every argument is validated before any random draw. The run uses its
    own RNG streams derived from seed, so identical arguments give
    bit-identical landscapes regardless of what other runs are doing.

    Args:
        n_spp: Number of species (>= 2).
        n_sites: Number of sites (>= 1).
        n_gibbs: Number of Gibbs sweeps (>= 1).
        mode: SimulationMode or its value ('presence-absence', 'abundance').
        seed: Non-negative run seed.
        p_neg: P(negative interaction); mode default when None.
        mean_alpha: Mean intercept; mode default when None.
        n_env: Number of environmental covariates.
        sd: Standard deviation of the covariates.
        coefficients: Use these instead of sampling new ones (e.g. to fix
            beta at zero or at an extreme value).

    Returns:
        SimulatedLandscape.

    Raises:
        InvalidConfigurationError: on any invalid argument.
    """
    try:
        mode = SimulationMode(mode)
    except ValueError:
        raise InvalidConfigurationError(f"Unknown simulation mode: {mode!r}") from None
    if p_neg is None:
        p_neg = mode.default_p_neg
    if mean_alpha is None:
        mean_alpha = mode.default_mean_alpha

    _validate_run(n_spp, n_sites, n_gibbs, seed, n_env, sd)
    validate_coefficient_parameters(n_spp, p_neg, mean_alpha)
    if coefficients is not None:
        if coefficients.n_spp != n_spp:
            raise InvalidConfigurationError(
                f"coefficients describe {coefficients.n_spp} species, "
                f"expected {n_spp}"
            )
        if not (np.all(np.isfinite(coefficients.alpha))
                and np.all(np.isfinite(coefficients.beta))):
            raise InvalidConfigurationError("coefficients must be finite")

    streams = create_run_streams(seed)
    if coefficients is None:
        coefficients = sample_coefficients(
            n_spp, p_neg, mean_alpha, streams['coefficients']
        )
    environment = sample_environment(
        n_sites, n_spp, n_env, sd, streams['environment']
    )

    observed = run_gibbs(coefficients, environment, n_gibbs, mode,
                         streams['gibbs'])

    landscape = SimulatedLandscape(
        observed=observed,
        coefficients=coefficients,
        environment=environment,
        mode=mode,
        n_gibbs=n_gibbs,
        seed=seed,
    )
    n_constant = len(landscape.constant_species())
    logger.debug(
        "Simulated %s landscape: %d sites x %d species, %d sweeps, "
        "seed %d, %d constant species",
        mode.value, n_sites, n_spp, n_gibbs, seed, n_constant,
    )
    return landscape


def sampled_moments(
    alpha: np.ndarray,
    beta: np.ndarray,
    n_samples: int,
    n_gibbs: int,
    rng: np.random.Generator,
) -> Tuple[np.ndarray, np.ndarray]:
    """Monte Carlo (E[y], E[y yᵀ]) for a presence-absence model.

    Runs n_samples independent chains (one per "site") for n_gibbs sweeps
    and averages their final states. Usable in place of exact enumeration
    in energy.log_likelihood_gradient() when n_spp is too large.
    """
    coefficients = Coefficients(alpha, beta)
    environment = Environment.homogeneous(n_samples, coefficients.n_spp)
    x = run_gibbs(coefficients, environment, n_gibbs,
                  SimulationMode.PRESENCE_ABSENCE, rng).astype(np.float64)
    return x.mean(axis=0), (x.T @ x) / n_samples
