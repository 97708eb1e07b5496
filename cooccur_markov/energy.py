"""Pairwise Markov network energy, link functions and likelihood.

The model over a species vector y (length n_spp) is the exponential family

    P(y) ∝ exp(-E(y)),   E(y) = -Σ_i alpha_i y_i - Σ_{i<j} beta_ij y_i y_j

with beta symmetric and zero on the diagonal. The full conditional of
species i given all others has natural parameter

    eta_i = alpha_i + Σ_{j≠i} beta_ij y_j

which is all the Gibbs sampler needs: the partition function never enters
conditional sampling. It is only required for the exact likelihood, where
it is computed by enumerating the 2^n binary states.

Two simulation modes pair a link with a sampling distribution:

  presence-absence: p    = logistic(eta)        y ~ Bernoulli(p)
  abundance:        rate = log(1 + exp(eta))    y ~ Poisson(rate)

Saturation: eta is clamped before the link, to ±LOGIT_BOUND for
probabilities and ±RATE_ARG_BOUND for rates. At those bounds the logistic
is within 1e-15 of 0/1 and the Poisson rate stays representable, so
extreme coefficients give saturated, finite, reproducible draws instead
of NaN/Inf.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Tuple

import numpy as np
from scipy.special import expit, logsumexp

from cooccur_markov.config import MAX_EXACT_SPECIES


# ═══════════════════════════════════════════════════════════════════════
# SATURATION BOUNDS
# ═══════════════════════════════════════════════════════════════════════

LOGIT_BOUND = 35.0         # logistic(±35) is 1 - 6.3e-16 / 6.3e-16
RATE_ARG_BOUND = 1.0e6     # softplus(1e6) = 1e6, a safe Poisson rate


def logistic(eta: np.ndarray) -> np.ndarray:
    """Saturating logistic link. NaN-free for any non-NaN input."""
    return expit(np.clip(eta, -LOGIT_BOUND, LOGIT_BOUND))


def softplus(eta: np.ndarray) -> np.ndarray:
    """Saturating softplus link log(1 + exp(eta))."""
    return np.logaddexp(0.0, np.clip(eta, -RATE_ARG_BOUND, RATE_ARG_BOUND))


# ═══════════════════════════════════════════════════════════════════════
# SIMULATION MODES
# ═══════════════════════════════════════════════════════════════════════

class SimulationMode(str, Enum):
    """Closed set of simulation modes.

    Each member pairs a link function with its sampling distribution and
    carries the default coefficient priors used when the configuration
    leaves p_neg / mean_alpha unset.
    """
    PRESENCE_ABSENCE = "presence-absence"
    ABUNDANCE = "abundance"

    @property
    def tag(self) -> str:
        """Short name used in landscape file stems."""
        return _MODE_TAGS[self]

    @property
    def default_p_neg(self) -> float:
        return _MODE_DEFAULTS[self][0]

    @property
    def default_mean_alpha(self) -> float:
        return _MODE_DEFAULTS[self][1]

    def link(self, eta: np.ndarray) -> np.ndarray:
        """Map conditional natural parameters to P(present) or a rate."""
        if self is SimulationMode.PRESENCE_ABSENCE:
            return logistic(eta)
        return softplus(eta)

    def sample(self, eta: np.ndarray, rng: np.random.Generator) -> np.ndarray:
        """Draw one value per element of eta from its full conditional.

        Returns:
            int64 array shaped like eta: 0/1 or non-negative counts.
        """
        mean = self.link(eta)
        if self is SimulationMode.PRESENCE_ABSENCE:
            return rng.binomial(1, mean).astype(np.int64)
        return rng.poisson(mean).astype(np.int64)

    @classmethod
    def from_tag(cls, tag: str) -> 'SimulationMode':
        for mode, mode_tag in _MODE_TAGS.items():
            if mode_tag == tag:
                return mode
        return cls(tag)


_MODE_TAGS = {
    SimulationMode.PRESENCE_ABSENCE: "binary",
    SimulationMode.ABUNDANCE: "abundance",
}

# (p_neg, mean_alpha)
_MODE_DEFAULTS = {
    SimulationMode.PRESENCE_ABSENCE: (0.25, 0.0),
    SimulationMode.ABUNDANCE: (0.75, 2.0),
}


# ═══════════════════════════════════════════════════════════════════════
# ENERGY & CONDITIONALS
# ═══════════════════════════════════════════════════════════════════════

def energy(y: np.ndarray, alpha: np.ndarray, beta: np.ndarray) -> np.ndarray:
    """Energy of one state vector or of each row of a state matrix.

    E(y) = -Σ_i alpha_i y_i - Σ_{i<j} beta_ij y_i y_j

    Args:
        y: (n_spp,) or (n_states, n_spp).
        alpha: (n_spp,) intercepts.
        beta: (n_spp, n_spp) symmetric, zero diagonal.

    Returns:
        Scalar or (n_states,) energies.
    """
    y = np.asarray(y, dtype=np.float64)
    linear = y @ alpha
    # y·beta·y counts every pair twice
    pairwise = 0.5 * np.sum((y @ beta) * y, axis=-1)
    return -(linear + pairwise)


def conditional_logits(x: np.ndarray, alpha: np.ndarray,
                       beta: np.ndarray) -> np.ndarray:
    """Full-conditional natural parameters for every species.

    eta[s, i] = alpha_i + Σ_{j≠i} beta_ij x[s, j]

    The zero diagonal of beta excludes each species' own value.

    Args:
        x: (n_sites, n_spp) current state.
        alpha: (n_spp,) or (n_sites, n_spp) site-specific intercepts.
        beta: (n_spp, n_spp).

    Returns:
        (n_sites, n_spp) float64 array.
    """
    return alpha + np.asarray(x, dtype=np.float64) @ beta


# ═══════════════════════════════════════════════════════════════════════
# EXACT INFERENCE (presence-absence only)
# ═══════════════════════════════════════════════════════════════════════

def all_states(n_spp: int) -> np.ndarray:
    """Every binary state vector, one per row.

    Returns:
        (2**n_spp, n_spp) uint8 array; row k is the binary expansion of k.
    """
    if n_spp > MAX_EXACT_SPECIES:
        raise ValueError(
            f"Exact enumeration supports at most {MAX_EXACT_SPECIES} species, "
            f"got {n_spp}"
        )
    codes = np.arange(2 ** n_spp, dtype=np.uint32)[:, np.newaxis]
    bits = np.arange(n_spp, dtype=np.uint32)[np.newaxis, :]
    return ((codes >> bits) & 1).astype(np.uint8)


def _state_log_weights(states: np.ndarray, alpha: np.ndarray,
                       beta: np.ndarray) -> np.ndarray:
    return -energy(states, alpha, beta)


def log_partition(alpha: np.ndarray, beta: np.ndarray) -> float:
    """log Z = log Σ_y exp(-E(y)) over all binary states."""
    states = all_states(len(alpha))
    return float(logsumexp(_state_log_weights(states, alpha, beta)))


def partition_and_moments(
    alpha: np.ndarray,
    beta: np.ndarray,
) -> Tuple[float, np.ndarray, np.ndarray]:
    """log Z and the exact moments from a single pass over the states.

    Returns:
        (log Z, E[y], E[y yᵀ]) with shapes (), (n_spp,) and (n_spp, n_spp).
    """
    states = all_states(len(alpha)).astype(np.float64)
    logw = _state_log_weights(states, alpha, beta)
    log_z = logsumexp(logw)
    p = np.exp(logw - log_z)
    ey = p @ states
    eyy = (states * p[:, np.newaxis]).T @ states
    return float(log_z), ey, eyy


def model_moments(alpha: np.ndarray,
                  beta: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Exact first and second moments under the model.

    Returns:
        (E[y], E[y yᵀ]) with shapes (n_spp,) and (n_spp, n_spp). The
        diagonal of the second moment equals E[y].
    """
    _, ey, eyy = partition_and_moments(alpha, beta)
    return ey, eyy


def sufficient_statistics(x: np.ndarray) -> Tuple[np.ndarray, np.ndarray, int]:
    """Column sums, cross-products and row count of a site × species matrix."""
    x = np.asarray(x, dtype=np.float64)
    return x.sum(axis=0), x.T @ x, x.shape[0]


def log_likelihood(x: np.ndarray, alpha: np.ndarray, beta: np.ndarray) -> float:
    """Exact log-likelihood of a presence/absence matrix.

    log L = Σ_s -E(y_s) - N log Z
    """
    s1, s2, n = sufficient_statistics(x)
    iu = np.triu_indices(len(alpha), k=1)
    return float(alpha @ s1 + np.sum(beta[iu] * s2[iu])
                 - n * log_partition(alpha, beta))


def log_likelihood_gradient(
    x: np.ndarray,
    alpha: np.ndarray,
    beta: np.ndarray,
    moments: Optional[Tuple[np.ndarray, np.ndarray]] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Gradient of the log-likelihood with respect to (alpha, beta).

    d/d alpha_i = Σ_s y_si      - N E[y_i]
    d/d beta_ij = Σ_s y_si y_sj - N E[y_i y_j]      (i ≠ j)

    Args:
        x: (n_sites, n_spp) observations.
        alpha, beta: current parameters.
        moments: Optional (E[y], E[y yᵀ]); exact enumeration when None.
            Pass gibbs.sampled_moments() for models too large to enumerate.

    Returns:
        (d_alpha, d_beta); d_beta is symmetric with a zero diagonal.
    """
    s1, s2, n = sufficient_statistics(x)
    if moments is None:
        moments = model_moments(alpha, beta)
    ey, eyy = moments
    d_alpha = s1 - n * ey
    d_beta = s2 - n * eyy
    np.fill_diagonal(d_beta, 0.0)
    return d_alpha, d_beta


def log_likelihood_and_gradient(
    x: np.ndarray,
    alpha: np.ndarray,
    beta: np.ndarray,
) -> Tuple[float, Tuple[np.ndarray, np.ndarray]]:
    """Exact log-likelihood and its gradient from one enumeration.

    Same values as log_likelihood() and log_likelihood_gradient(), but the
    2^n states are weighted once for both.

    Returns:
        (log L, (d_alpha, d_beta)).
    """
    s1, s2, n = sufficient_statistics(x)
    log_z, ey, eyy = partition_and_moments(alpha, beta)
    iu = np.triu_indices(len(alpha), k=1)
    ll = float(alpha @ s1 + np.sum(beta[iu] * s2[iu]) - n * log_z)
    return ll, log_likelihood_gradient(x, alpha, beta, moments=(ey, eyy))
