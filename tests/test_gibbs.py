"""Tests for cooccur_markov.gibbs — the Gibbs landscape simulator.

Covers:
  - Shape, range and determinism invariants
  - Eager rejection of invalid configurations
  - Reduction to independent draws when all interactions are zero
  - Saturation for extreme coefficients
  - Strong positive interactions producing positive association
  - Sampling-based moments agreeing with exact enumeration
"""

import numpy as np
import pytest

from cooccur_markov.config import InvalidConfigurationError
from cooccur_markov.energy import SimulationMode, model_moments
from cooccur_markov.gibbs import (
    gibbs_sweep,
    initial_state,
    run_gibbs,
    sampled_moments,
    simulate_landscape,
)
from cooccur_markov.types import Coefficients, Environment


PA = SimulationMode.PRESENCE_ABSENCE
AB = SimulationMode.ABUNDANCE


def _zero_model(alpha):
    alpha = np.asarray(alpha, dtype=float)
    return Coefficients(alpha, np.zeros((alpha.size, alpha.size)))


# ── Invariants ────────────────────────────────────────────────────────

class TestInvariants:
    @pytest.mark.parametrize("mode", ["presence-absence", "abundance"])
    def test_shapes(self, mode):
        ls = simulate_landscape(n_spp=6, n_sites=40, n_gibbs=5, mode=mode, seed=1)
        assert ls.observed.shape == (40, 6)
        assert ls.truth.shape == (15,)
        assert ls.n_sites == 40 and ls.n_spp == 6

    def test_presence_absence_range(self):
        ls = simulate_landscape(8, 200, 20, PA, seed=2)
        assert ls.observed.dtype == np.int64
        assert set(np.unique(ls.observed)) <= {0, 1}

    def test_abundance_range(self):
        ls = simulate_landscape(8, 200, 20, AB, seed=2)
        assert ls.observed.dtype == np.int64
        assert np.all(ls.observed >= 0)

    def test_truth_symmetric(self):
        ls = simulate_landscape(10, 10, 1, PA, seed=3)
        beta = ls.coefficients.beta
        np.testing.assert_array_equal(beta, beta.T)
        np.testing.assert_array_equal(np.diag(beta), 0.0)

    @pytest.mark.parametrize("mode", [PA, AB])
    def test_deterministic_given_seed(self, mode):
        kwargs = dict(n_spp=7, n_sites=60, n_gibbs=15, mode=mode, seed=99,
                      n_env=2, sd=1.0)
        a = simulate_landscape(**kwargs)
        b = simulate_landscape(**kwargs)
        np.testing.assert_array_equal(a.observed, b.observed)
        np.testing.assert_array_equal(a.truth, b.truth)
        np.testing.assert_array_equal(a.environment.env, b.environment.env)

    def test_different_seeds_differ(self):
        a = simulate_landscape(7, 60, 15, PA, seed=1)
        b = simulate_landscape(7, 60, 15, PA, seed=2)
        assert not np.array_equal(a.truth, b.truth)

    def test_mode_defaults_applied(self):
        ls = simulate_landscape(200, 1, 1, AB, seed=5)
        # default p_neg for abundance is 0.75
        assert np.mean(ls.truth < 0) > 0.7
        assert ls.mode is AB
        assert ls.seed == 5

    def test_explicit_priors_override_defaults(self):
        ls = simulate_landscape(30, 1, 1, PA, seed=5, p_neg=1.0)
        assert np.all(ls.truth < 0)

    def test_degenerate_species_allowed(self):
        ls = simulate_landscape(
            2, 100, 5, PA, seed=4,
            coefficients=_zero_model([-1000.0, 0.0]),
        )
        assert np.all(ls.observed[:, 0] == 0)
        np.testing.assert_array_equal(ls.constant_species(), [0])


# ── Configuration errors ──────────────────────────────────────────────

class TestInvalidConfiguration:
    @pytest.mark.parametrize("kwargs", [
        dict(n_spp=1),
        dict(n_sites=0),
        dict(n_gibbs=0),
        dict(seed=-3),
        dict(p_neg=1.5),
        dict(p_neg=-0.5),
        dict(n_env=-1),
        dict(sd=-1.0),
        dict(mode="presence"),
    ])
    def test_rejected(self, kwargs):
        args = dict(n_spp=4, n_sites=10, n_gibbs=2, mode=PA, seed=0)
        args.update(kwargs)
        with pytest.raises(InvalidConfigurationError):
            simulate_landscape(**args)

    def test_coefficient_size_mismatch(self):
        with pytest.raises(InvalidConfigurationError):
            simulate_landscape(4, 10, 2, PA, seed=0,
                               coefficients=_zero_model([0.0, 0.0, 0.0]))

    def test_non_finite_coefficients(self):
        with pytest.raises(InvalidConfigurationError):
            simulate_landscape(2, 10, 2, PA, seed=0,
                               coefficients=_zero_model([np.inf, 0.0]))

    def test_run_gibbs_requires_a_sweep(self):
        with pytest.raises(InvalidConfigurationError):
            run_gibbs(_zero_model([0.0, 0.0]), Environment.homogeneous(5, 2),
                      0, PA, np.random.default_rng(0))


# ── Sweep mechanics ───────────────────────────────────────────────────

class TestSweep:
    def test_initial_state_uses_intercepts_only(self):
        rng = np.random.default_rng(0)
        site_alpha = np.tile([1000.0, -1000.0], (50, 1))
        x = initial_state(site_alpha, PA, rng)
        np.testing.assert_array_equal(x[:, 0], 1)
        np.testing.assert_array_equal(x[:, 1], 0)

    def test_sweep_updates_in_place_sequentially(self):
        """Species 1 sees species 0's value from the same sweep."""
        rng = np.random.default_rng(0)
        # species 0 forced present; species 1 present iff species 0 present
        beta = np.array([[0.0, 2000.0], [2000.0, 0.0]])
        site_alpha = np.tile([1000.0, -1000.0], (30, 1))
        x = np.zeros((30, 2), dtype=np.int64)
        gibbs_sweep(x, beta, site_alpha, PA, rng)
        np.testing.assert_array_equal(x[:, 0], 1)
        np.testing.assert_array_equal(x[:, 1], 1)

    def test_environment_shifts_sites(self):
        env = Environment(
            env=np.array([[1.0]] * 20 + [[-1.0]] * 20),
            alpha_env=np.array([[1000.0, 0.0]]),
        )
        x = run_gibbs(_zero_model([0.0, 0.0]), env, 3, PA,
                      np.random.default_rng(1))
        np.testing.assert_array_equal(x[:20, 0], 1)
        np.testing.assert_array_equal(x[20:, 0], 0)


# ── Statistical behaviour ─────────────────────────────────────────────

class TestNoInteractionReduction:
    def test_zero_model_is_fair_coin(self):
        """n_spp=3, alpha=0, beta=0, one sweep: every cell ~ Bernoulli(0.5)."""
        ls = simulate_landscape(3, 10_000, 1, PA, seed=123,
                                coefficients=_zero_model([0.0, 0.0, 0.0]))
        means = ls.observed.mean(axis=0)
        np.testing.assert_allclose(means, 0.5, atol=0.05)

    def test_columns_independent(self):
        alpha = [0.5, -0.5, 1.0, 0.0]
        ls = simulate_landscape(4, 5000, 10, PA, seed=7,
                                coefficients=_zero_model(alpha))
        r = np.corrcoef(ls.observed, rowvar=False)
        off = r[~np.eye(4, dtype=bool)]
        assert np.all(np.abs(off) < 0.06)
        p = 1 / (1 + np.exp(-np.array(alpha)))
        np.testing.assert_allclose(ls.observed.mean(axis=0), p, atol=0.03)

    def test_abundance_means_follow_softplus(self):
        alpha = np.array([2.0, 0.0, -1.0])
        ls = simulate_landscape(3, 8000, 5, AB, seed=8,
                                coefficients=_zero_model(alpha))
        rate = np.log1p(np.exp(alpha))
        np.testing.assert_allclose(ls.observed.mean(axis=0), rate, rtol=0.05, atol=0.02)


class TestSaturation:
    def test_huge_intercept_presence(self):
        ls = simulate_landscape(3, 500, 10, PA, seed=1,
                                coefficients=_zero_model([1000.0, 0.0, 0.0]))
        assert np.all(ls.observed[:, 0] == 1)

    def test_huge_interactions_stay_finite(self):
        beta = np.array([[0.0, 1e6], [1e6, 0.0]])
        coefs = Coefficients(np.array([0.0, 0.0]), beta)
        for mode in (PA, AB):
            ls = simulate_landscape(2, 200, 5, mode, seed=2, coefficients=coefs)
            assert np.all(ls.observed >= 0)
            assert np.all(ls.observed < np.iinfo(np.int64).max)

    def test_huge_intercept_abundance_is_finite(self):
        ls = simulate_landscape(2, 100, 3, AB, seed=1,
                                coefficients=_zero_model([1000.0, 0.0]))
        assert abs(ls.observed[:, 0].mean() - 1000.0) < 20.0


class TestPositiveAssociation:
    def test_strong_positive_interaction_correlates(self):
        coefs = Coefficients(
            np.array([-2.5, -2.5]),
            np.array([[0.0, 5.0], [5.0, 0.0]]),
        )
        ls = simulate_landscape(2, 2000, 200, PA, seed=11, coefficients=coefs)
        r = np.corrcoef(ls.observed, rowvar=False)[0, 1]
        assert r > 0.5

    def test_strong_negative_interaction_anticorrelates(self):
        coefs = Coefficients(
            np.array([0.0, 0.0]),
            np.array([[0.0, -5.0], [-5.0, 0.0]]),
        )
        ls = simulate_landscape(2, 2000, 200, PA, seed=12, coefficients=coefs)
        r = np.corrcoef(ls.observed, rowvar=False)[0, 1]
        assert r < -0.3


class TestSampledMoments:
    def test_agrees_with_exact(self):
        alpha = np.array([0.2, -0.4, 0.6])
        beta = np.array([
            [0.0, 1.0, -0.5],
            [1.0, 0.0, 0.3],
            [-0.5, 0.3, 0.0],
        ])
        ey, eyy = model_moments(alpha, beta)
        sy, syy = sampled_moments(alpha, beta, n_samples=20_000, n_gibbs=30,
                                  rng=np.random.default_rng(5))
        np.testing.assert_allclose(sy, ey, atol=0.02)
        np.testing.assert_allclose(syy, eyy, atol=0.02)
