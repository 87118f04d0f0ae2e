"""
Configuration for Monte Carlo calibration studies.

"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Tuple

from .estimation.prior_fitter import DEFAULT_MAX_ITER, FIT_METHODS, MLE
from .exceptions import InvalidInput
from .inference.hypothesis_tester import DIRECTIONS, GREATER

DEFAULT_SAMPLE_SIZES = (30, 100, 300, 1000, 3000, 10000)
DEFAULT_COVERAGE_LEVELS = (0.5, 0.6, 0.7, 0.8, 0.9, 0.95)
DEFAULT_Q_CUTOFFS = (0.01, 0.02, 0.05, 0.1, 0.2)
BACKENDS = ('process', 'thread')


@dataclass(frozen=True)
class SimulationConfig:
    """
    Settings shared by every replication of a simulation study.

    Parameters
    ----------
    method : str, optional (default='mle')
        Prior fitting method, 'mle' or 'moments'
    credible_level : float, optional (default=0.95)
        Level of the credible intervals used for the primary coverage metric
    coverage_levels : tuple of float
        Levels at which interval coverage is measured
    fdr_level : float, optional (default=0.05)
        Target FDR for hypothesis testing
    q_cutoffs : tuple of float
        q-value cutoffs at which the empirical FDR is measured
    threshold : float, optional
        Rate tested against. If None, the reference prior mean is used.
    direction : str, optional (default='greater')
        'greater' or 'less'
    n_replications : int, optional (default=50)
        Replications per configuration
    sample_sizes : tuple of int
        Entity counts for the sample-size study
    random_seed : int, optional (default=42)
        Global seed; each replication derives its own stream from it
    max_iter : int, optional (default=500)
        Iteration cap of the prior optimizer
    n_jobs : int, optional (default=1)
        Worker count. 1 runs replications in-process.
    backend : str, optional (default='process')
        'process' or 'thread' pool when n_jobs > 1
    """

    method: str = MLE
    credible_level: float = 0.95
    coverage_levels: Tuple[float, ...] = DEFAULT_COVERAGE_LEVELS
    fdr_level: float = 0.05
    q_cutoffs: Tuple[float, ...] = DEFAULT_Q_CUTOFFS
    threshold: Optional[float] = None
    direction: str = GREATER
    n_replications: int = 50
    sample_sizes: Tuple[int, ...] = DEFAULT_SAMPLE_SIZES
    random_seed: int = 42
    max_iter: int = DEFAULT_MAX_ITER
    n_jobs: int = 1
    backend: str = 'process'

    def __post_init__(self):
        if self.method not in FIT_METHODS:
            raise InvalidInput(
                f"method must be one of {FIT_METHODS}, got {self.method!r}"
            )
        if self.direction not in DIRECTIONS:
            raise InvalidInput(
                f"direction must be one of {DIRECTIONS}, got {self.direction!r}"
            )
        if self.backend not in BACKENDS:
            raise InvalidInput(
                f"backend must be one of {BACKENDS}, got {self.backend!r}"
            )

        _check_fraction(self.credible_level, 'credible_level')
        _check_fraction(self.fdr_level, 'fdr_level')
        if self.threshold is not None:
            _check_fraction(self.threshold, 'threshold')

        coverage_levels = tuple(sorted(set(self.coverage_levels) | {self.credible_level}))
        for level in coverage_levels:
            _check_fraction(level, 'coverage level')
        q_cutoffs = tuple(sorted(set(self.q_cutoffs) | {self.fdr_level}))
        for cutoff in q_cutoffs:
            _check_fraction(cutoff, 'q cutoff')
        object.__setattr__(self, 'coverage_levels', coverage_levels)
        object.__setattr__(self, 'q_cutoffs', q_cutoffs)

        sample_sizes = tuple(int(size) for size in self.sample_sizes)
        if len(sample_sizes) == 0 or min(sample_sizes) < 2:
            raise InvalidInput(
                f"sample_sizes must be non-empty and >= 2, got {self.sample_sizes}"
            )
        if len(set(sample_sizes)) != len(sample_sizes):
            raise InvalidInput(
                f"sample_sizes must not repeat, got {self.sample_sizes}"
            )
        object.__setattr__(self, 'sample_sizes', sample_sizes)

        if self.n_replications < 1:
            raise InvalidInput(
                f"n_replications must be >= 1, got {self.n_replications}"
            )
        if self.max_iter < 1:
            raise InvalidInput(f"max_iter must be >= 1, got {self.max_iter}")
        if self.n_jobs < 1:
            raise InvalidInput(f"n_jobs must be >= 1, got {self.n_jobs}")
        if self.random_seed < 0:
            raise InvalidInput(
                f"random_seed must be non-negative, got {self.random_seed}"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Plain-dict copy, for recording alongside results."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SimulationConfig':
        """Build a config from a dict, ignoring unknown keys."""
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in data.items() if k in known})


def _check_fraction(value: float, name: str) -> None:
    if not 0 < value < 1:
        raise InvalidInput(f"{name} must be in (0, 1), got {value}")
