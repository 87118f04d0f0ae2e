"""
ebshrink: Empirical Bayes Shrinkage for Success/Trial Data

Fit a shared beta prior to many (successes, trials) observations, shrink each
entity's raw rate toward it with credible intervals, test entities against a
threshold with false discovery rate control, and check the calibration of the
whole procedure by Monte Carlo simulation.
"""

from .version import __version__, __author__, __description__
from .exceptions import (
    DegenerateInput,
    EBShrinkError,
    EmptyDataset,
    InvalidInput,
    NumericalDivergence,
)
from .observations import Observation, observations_from_frame, observations_from_mapping
from .estimation import (
    Prior,
    PosteriorEstimate,
    estimate_posterior,
    estimate_posteriors,
    fit_prior,
    method_of_moments,
)
from .inference import HypothesisResult, probability_greater, rank_hypotheses
from .config import SimulationConfig
from .simulation import SimulationHarness, SimulationResult
from .pipeline import Pipeline

__all__ = [
    'Pipeline',
    'Observation',
    'observations_from_frame',
    'observations_from_mapping',
    'Prior',
    'PosteriorEstimate',
    'HypothesisResult',
    'fit_prior',
    'method_of_moments',
    'estimate_posterior',
    'estimate_posteriors',
    'rank_hypotheses',
    'probability_greater',
    'SimulationConfig',
    'SimulationHarness',
    'SimulationResult',
    'EBShrinkError',
    'InvalidInput',
    'EmptyDataset',
    'DegenerateInput',
    'NumericalDivergence',
    '__version__',
    '__author__',
    '__description__',
]
