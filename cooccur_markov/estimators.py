"""Pairwise interaction estimators fitted to presence/absence matrices.

Every estimator returns a symmetric (n_spp, n_spp) matrix whose upper
triangle, flattened row-major, lines up with the ground-truth vector:

  correlation          Pearson correlation
  partial correlation  Schäfer–Strimmer shrinkage correlation, inverted
                       to partial correlations
  GLM                  per-species penalized logistic regressions
                       (Cauchy prior on slopes), averaged across the two
                       directions of each pair
  Markov network       MAP estimate of the pairwise Markov network using
                       the exact likelihood and logistic priors

Species that never vary carry no information about interactions and are
removed first with drop_constant_species().
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

import numpy as np
from scipy.optimize import minimize
from scipy.special import expit

from cooccur_markov.coefficients import symmetric_from_upper, upper_triangle
from cooccur_markov.config import EstimationSection
from cooccur_markov.energy import log_likelihood_and_gradient

logger = logging.getLogger(__name__)

GLM_INTERCEPT_SCALE = 10.0


def drop_constant_species(
    x: np.ndarray,
    truth: Optional[np.ndarray] = None,
) -> Tuple[np.ndarray, np.ndarray, Optional[np.ndarray]]:
    """Remove species that are always present or always absent.

    Args:
        x: (n_sites, n_spp) presence/absence matrix.
        truth: Optional row-major upper-triangle truth vector for all
            n_spp species.

    Returns:
        (x_variable, kept_indices, truth restricted to pairs of kept
        species or None).
    """
    x = np.asarray(x)
    variable = x.var(axis=0) > 0
    kept = np.flatnonzero(variable)
    if truth is not None:
        pair_is_variable = np.outer(variable, variable)
        truth = np.asarray(truth)[upper_triangle(pair_is_variable)]
    return x[:, kept], kept, truth


# ═══════════════════════════════════════════════════════════════════════
# MARGINAL & PARTIAL CORRELATIONS
# ═══════════════════════════════════════════════════════════════════════

def correlation(x: np.ndarray) -> np.ndarray:
    """Pearson correlation between species columns."""
    return np.corrcoef(np.asarray(x, dtype=np.float64), rowvar=False)


def shrinkage_intensity(x: np.ndarray) -> float:
    """Analytic shrinkage intensity of the correlation matrix towards I.

    lambda = Σ_{i≠j} Var(r_ij) / Σ_{i≠j} r_ij², clipped to [0, 1]
    (Schäfer & Strimmer 2005).
    """
    x = np.asarray(x, dtype=np.float64)
    n = x.shape[0]
    xs = (x - x.mean(axis=0)) / x.std(axis=0, ddof=1)
    w = xs[:, :, np.newaxis] * xs[:, np.newaxis, :]
    w_bar = w.mean(axis=0)
    r = n / (n - 1.0) * w_bar
    var_r = n / (n - 1.0) ** 3 * np.sum((w - w_bar) ** 2, axis=0)

    off = ~np.eye(x.shape[1], dtype=bool)
    denom = np.sum(r[off] ** 2)
    if denom == 0:
        return 1.0
    return float(np.clip(np.sum(var_r[off]) / denom, 0.0, 1.0))


def cor2pcor(r: np.ndarray) -> np.ndarray:
    """Partial correlations from a correlation matrix."""
    precision = np.linalg.pinv(r)
    d = np.sqrt(np.diag(precision))
    pcor = -precision / np.outer(d, d)
    np.fill_diagonal(pcor, 1.0)
    return pcor


def partial_correlation(x: np.ndarray) -> np.ndarray:
    """Shrinkage estimate of the partial correlation matrix."""
    lam = shrinkage_intensity(x)
    r = correlation(x)
    r_shrink = (1.0 - lam) * r
    np.fill_diagonal(r_shrink, 1.0)
    return cor2pcor(r_shrink)


# ═══════════════════════════════════════════════════════════════════════
# GLM (penalized logistic regression)
# ═══════════════════════════════════════════════════════════════════════

def _logistic_regression(X: np.ndarray, y: np.ndarray,
                         prior_scale: float) -> np.ndarray:
    """MAP logistic regression with Cauchy priors; returns slopes only.

    The intercept gets a Cauchy(0, GLM_INTERCEPT_SCALE) prior, slopes a
    Cauchy(0, prior_scale) prior.
    """
    n, k = X.shape
    design = np.column_stack([np.ones(n), X])
    scales = np.full(k + 1, prior_scale)
    scales[0] = GLM_INTERCEPT_SCALE

    def objective(b):
        eta = design @ b
        nll = np.sum(np.logaddexp(0.0, eta) - y * eta)
        penalty = np.sum(np.log1p((b / scales) ** 2))
        grad = design.T @ (expit(eta) - y) + 2.0 * b / (scales ** 2 + b ** 2)
        return nll + penalty, grad

    res = minimize(objective, np.zeros(k + 1), jac=True, method='L-BFGS-B')
    if not res.success:
        logger.warning("GLM fit did not converge: %s", res.message)
    return res.x[1:]


def glm_coefficients(x: np.ndarray, prior_scale: float = 2.5) -> np.ndarray:
    """Symmetrized matrix of per-species logistic regression slopes.

    Row i holds the slopes from regressing species i on all others; the
    result is (C + Cᵀ) / 2. Species without variation keep zero rows.
    """
    x = np.asarray(x, dtype=np.float64)
    n_spp = x.shape[1]
    coef = np.zeros((n_spp, n_spp))
    for i in range(n_spp):
        if x[:, i].var() > 0:
            others = np.arange(n_spp) != i
            coef[i, others] = _logistic_regression(x[:, others], x[:, i],
                                                   prior_scale)
    return (coef + coef.T) / 2.0


# ═══════════════════════════════════════════════════════════════════════
# MARKOV NETWORK
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class MarkovNetworkFit:
    """MAP Markov network parameters."""
    alpha: np.ndarray
    beta: np.ndarray
    log_posterior: float
    n_iter: int
    converged: bool


def _logistic_log_prior(theta: np.ndarray, scale: float) -> Tuple[float, np.ndarray]:
    """Log density and gradient of independent Logistic(0, scale) priors."""
    z = np.abs(theta) / scale
    logp = np.sum(-z - 2.0 * np.log1p(np.exp(-z)) - np.log(scale))
    grad = -np.tanh(theta / (2.0 * scale)) / scale
    return float(logp), grad


def fit_markov_network(
    x: np.ndarray,
    prior_scale: float = 2.0,
    maxit: int = 200,
) -> MarkovNetworkFit:
    """Maximum a posteriori pairwise Markov network.

    Maximises the exact log-likelihood (partition function by enumeration)
    plus Logistic(0, prior_scale) log-priors on every intercept and
    interaction, with L-BFGS-B and the analytic gradient.

    Args:
        x: (n_sites, n_spp) presence/absence matrix, n_spp <= 20.
        prior_scale: Scale of the logistic priors.
        maxit: Maximum optimizer iterations.

    Returns:
        MarkovNetworkFit.
    """
    x = np.asarray(x, dtype=np.float64)
    n_spp = x.shape[1]
    iu = np.triu_indices(n_spp, k=1)

    def unpack(theta):
        return theta[:n_spp], symmetric_from_upper(theta[n_spp:], n_spp)

    def objective(theta):
        alpha, beta = unpack(theta)
        ll, (d_alpha, d_beta) = log_likelihood_and_gradient(x, alpha, beta)
        lp, lp_grad = _logistic_log_prior(theta, prior_scale)
        grad = np.concatenate([d_alpha, d_beta[iu]]) + lp_grad
        return -(ll + lp), -grad

    theta0 = np.zeros(n_spp + len(iu[0]))
    res = minimize(objective, theta0, jac=True, method='L-BFGS-B',
                   options={'maxiter': maxit})
    if not res.success:
        logger.debug("Markov network fit stopped early: %s", res.message)

    alpha, beta = unpack(res.x)
    return MarkovNetworkFit(
        alpha=alpha,
        beta=beta,
        log_posterior=float(-res.fun),
        n_iter=int(res.nit),
        converged=bool(res.success),
    )


# ═══════════════════════════════════════════════════════════════════════
# REGISTRY
# ═══════════════════════════════════════════════════════════════════════

ESTIMATORS: Dict[str, Callable[[np.ndarray, EstimationSection], np.ndarray]] = {
    'partial correlation': lambda x, est: partial_correlation(x),
    'correlation': lambda x, est: correlation(x),
    'Markov network': lambda x, est: fit_markov_network(
        x, prior_scale=est.markov_prior_scale, maxit=est.markov_maxit
    ).beta,
    'GLM': lambda x, est: glm_coefficients(x, prior_scale=est.glm_prior_scale),
}
