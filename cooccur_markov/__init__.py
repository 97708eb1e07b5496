"""cooccur-markov: recovering species interactions from co-occurrence data.

Simulation and recovery study for pairwise Markov networks:
  - Ground-truth intercepts and pairwise interactions drawn at random
  - Landscapes simulated by systematic-scan Gibbs sampling, in
    presence-absence (logistic/Bernoulli) or abundance (softplus/Poisson) mode
  - Correlation, partial correlation, GLM, Markov network and `pairs`
    null-model estimates compared against the known truth
"""

__version__ = "0.1.0"
