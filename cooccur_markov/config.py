"""Configuration system for cooccur-markov.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → command-line overrides

Sections map 1:1 to YAML top-level keys:
  simulation  — seed, simulation mode, Gibbs sweeps, worker processes
  landscape   — species count, site counts, replicates, environment,
                coefficient priors
  estimation  — which estimators to fit and their prior settings
  output      — where landscapes and results are written
"""

from __future__ import annotations

import dataclasses
import math
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml


class InvalidConfigurationError(ValueError):
    """Raised before any sampling when a run configuration is invalid."""


VALID_MODES = ("presence-absence", "abundance")

VALID_METHODS = (
    "correlation",
    "partial correlation",
    "GLM",
    "Markov network",
    "Pairs",
)

# Largest species count whose 2^n binary states can be enumerated for the
# exact Markov network likelihood.
MAX_EXACT_SPECIES = 20


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationSection:
    """Top-level simulation control."""
    seed: int = 42
    mode: str = "presence-absence"   # 'presence-absence' or 'abundance'
    n_gibbs: int = 1000              # Full systematic-scan sweeps per landscape
    workers: int = 1                 # Worker processes across replicates (1 = serial)


@dataclass
class LandscapeSection:
    """Landscape size, replication and ground-truth priors.

    p_neg and mean_alpha default to None, meaning "use the default of the
    simulation mode" (see energy.SimulationMode).
    """
    n_spp: int = 20
    n_sites: List[int] = field(default_factory=lambda: [25, 200, 1600])
    n_replicates: int = 50
    n_env: int = 0                   # Environmental covariates per site
    sd: float = 0.0                  # Std dev of environmental covariates
    p_neg: Optional[float] = None    # P(pairwise coefficient < 0)
    mean_alpha: Optional[float] = None


@dataclass
class EstimationSection:
    """Estimators fitted to each simulated landscape."""
    methods: List[str] = field(default_factory=lambda: list(VALID_METHODS))
    markov_prior_scale: float = 2.0  # Logistic prior scale (Markov network)
    markov_maxit: int = 200          # L-BFGS-B iterations (Markov network)
    glm_prior_scale: float = 2.5     # Cauchy prior scale (GLM slopes)
    pairs_file: Optional[str] = None # Batch output of the `pairs` program


@dataclass
class OutputSection:
    """Output control."""
    directory: str = "fakedata"


@dataclass
class StudyConfig:
    """Complete study configuration.

    Load from YAML via `load_config()`. Sections map 1:1 to YAML top-level keys.
    """
    simulation: SimulationSection = field(default_factory=SimulationSection)
    landscape: LandscapeSection = field(default_factory=LandscapeSection)
    estimation: EstimationSection = field(default_factory=EstimationSection)
    output: OutputSection = field(default_factory=OutputSection)


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values are replaced
    - Keys in override but not base are added

    Args:
        base: Base dictionary (modified in place).
        override: Override dictionary.

    Returns:
        The merged base dictionary.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _dict_to_section(section_cls, data: Dict) -> Any:
    """Convert a dict to a dataclass, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return section_cls(**filtered)


def _yaml_to_config(data: Dict) -> StudyConfig:
    """Convert a merged YAML dict to a StudyConfig."""
    sections = {}
    section_map = {
        'simulation': SimulationSection,
        'landscape': LandscapeSection,
        'estimation': EstimationSection,
        'output': OutputSection,
    }
    for key, cls in section_map.items():
        if key in data and isinstance(data[key], dict):
            sections[key] = _dict_to_section(cls, data[key])
        else:
            sections[key] = cls()

    # A single site count is accepted as shorthand for a one-element list
    n_sites = sections['landscape'].n_sites
    if isinstance(n_sites, int):
        sections['landscape'].n_sites = [n_sites]

    return StudyConfig(**sections)


def validate_config(config: StudyConfig) -> None:
    """Validate configuration constraints.

    Raises InvalidConfigurationError on failure. Nothing is sampled before
    this passes, so an invalid configuration never produces a partial
    landscape.
    """
    sim = config.simulation
    if sim.mode not in VALID_MODES:
        raise InvalidConfigurationError(
            f"simulation.mode must be one of {VALID_MODES}, got '{sim.mode}'"
        )
    if sim.seed < 0:
        raise InvalidConfigurationError("simulation.seed must be non-negative")
    if sim.n_gibbs < 1:
        raise InvalidConfigurationError(
            f"simulation.n_gibbs must be >= 1, got {sim.n_gibbs}"
        )
    if sim.workers < 1:
        raise InvalidConfigurationError(
            f"simulation.workers must be >= 1, got {sim.workers}"
        )

    land = config.landscape
    if land.n_spp < 2:
        raise InvalidConfigurationError(
            f"landscape.n_spp must be >= 2, got {land.n_spp}"
        )
    if len(land.n_sites) == 0:
        raise InvalidConfigurationError("landscape.n_sites must not be empty")
    for n in land.n_sites:
        if n < 1:
            raise InvalidConfigurationError(
                f"landscape.n_sites entries must be >= 1, got {n}"
            )
    if land.n_replicates < 1:
        raise InvalidConfigurationError(
            f"landscape.n_replicates must be >= 1, got {land.n_replicates}"
        )
    if land.n_env < 0:
        raise InvalidConfigurationError(
            f"landscape.n_env must be >= 0, got {land.n_env}"
        )
    if not (land.sd >= 0):
        raise InvalidConfigurationError(
            f"landscape.sd must be >= 0, got {land.sd}"
        )
    if land.p_neg is not None and not (0.0 <= land.p_neg <= 1.0):
        raise InvalidConfigurationError(
            f"landscape.p_neg must be in [0, 1], got {land.p_neg}"
        )
    if land.mean_alpha is not None and not math.isfinite(land.mean_alpha):
        raise InvalidConfigurationError("landscape.mean_alpha must be finite")

    est = config.estimation
    unknown = [m for m in est.methods if m not in VALID_METHODS]
    if unknown:
        raise InvalidConfigurationError(
            f"estimation.methods contains unknown methods {unknown}; "
            f"valid: {VALID_METHODS}"
        )
    if est.markov_prior_scale <= 0 or est.glm_prior_scale <= 0:
        raise InvalidConfigurationError("estimation prior scales must be positive")
    if est.markov_maxit < 1:
        raise InvalidConfigurationError("estimation.markov_maxit must be >= 1")

    if "Markov network" in est.methods and land.n_spp > MAX_EXACT_SPECIES:
        warnings.warn(
            f"landscape.n_spp={land.n_spp} exceeds {MAX_EXACT_SPECIES}; the "
            f"exact Markov network likelihood will fail at recovery time.",
            UserWarning,
            stacklevel=2,
        )
    if "Pairs" in est.methods and est.pairs_file is not None:
        if not Path(est.pairs_file).exists():
            warnings.warn(
                f"estimation.pairs_file '{est.pairs_file}' does not exist. "
                f"Pairs results will be missing at recovery time.",
                UserWarning,
                stacklevel=2,
            )


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict] = None,
) -> StudyConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → overrides.
    Each layer overrides only the fields it specifies.

    Args:
        base_path: Path to base configuration YAML.
        scenario_path: Optional scenario override YAML.
        overrides: Optional dict of overrides (e.g. from the command line).

    Returns:
        Validated StudyConfig.

    Raises:
        FileNotFoundError: If base_path doesn't exist.
        InvalidConfigurationError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if not scenario_path.exists():
            raise FileNotFoundError(f"Scenario file not found: {scenario_path}")
        with open(scenario_path) as f:
            scenario = yaml.safe_load(f) or {}
        deep_merge(config_dict, scenario)

    if overrides is not None:
        deep_merge(config_dict, overrides)

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config


def default_config() -> StudyConfig:
    """Return a StudyConfig with all default values."""
    config = StudyConfig()
    validate_config(config)
    return config
