"""
Per-Entity Posterior Estimates

Conjugate beta-binomial update of the shared prior with each entity's counts,
giving a shrunken point estimate (posterior mean) and an equal-tailed
credible interval.

"""

from dataclasses import dataclass
from typing import Hashable, List, Sequence

import numpy as np
import pandas as pd
from scipy.stats import beta as beta_dist

from ..exceptions import InvalidInput
from ..observations import Observation, ObservationInput, as_arrays, coerce_observations
from .prior_fitter import Prior

DEFAULT_LEVEL = 0.95


@dataclass(frozen=True)
class PosteriorEstimate:
    """
    Beta(alpha1, beta1) posterior of one entity's success rate.

    Attributes
    ----------
    entity_id : hashable
        Identifier of the entity
    successes : int
        Observed successes
    trials : int
        Observed trials
    alpha1 : float
        alpha_0 + successes
    beta1 : float
        beta_0 + trials - successes
    estimate : float
        Posterior mean alpha1 / (alpha1 + beta1)
    low : float
        Lower bound of the equal-tailed credible interval
    high : float
        Upper bound of the equal-tailed credible interval
    level : float
        Credible level of [low, high]
    """

    entity_id: Hashable
    successes: int
    trials: int
    alpha1: float
    beta1: float
    estimate: float
    low: float
    high: float
    level: float

    @property
    def raw_rate(self) -> float:
        return self.successes / self.trials

    @property
    def width(self) -> float:
        """Width of the credible interval."""
        return self.high - self.low


def _check_level(level: float) -> float:
    if not 0 < level < 1:
        raise InvalidInput(f"Credible level must be in (0, 1), got {level}")
    return float(level)


def credible_interval(
    alpha1: np.ndarray,
    beta1: np.ndarray,
    level: float = DEFAULT_LEVEL
):
    """
    Equal-tailed credible interval of Beta(alpha1, beta1).

    Returns the (1 - level)/2 and 1 - (1 - level)/2 quantiles. This is not
    the highest-density interval; the two differ for skewed posteriors.

    Parameters
    ----------
    alpha1, beta1 : float or np.ndarray
        Posterior shape parameters
    level : float, optional (default=0.95)
        Credible level in (0, 1)

    Returns
    -------
    low, high : float or np.ndarray
    """
    level = _check_level(level)
    tail = (1 - level) / 2
    low = beta_dist.ppf(tail, alpha1, beta1)
    high = beta_dist.ppf(1 - tail, alpha1, beta1)
    return low, high


def estimate_posteriors(
    prior: Prior,
    observations: ObservationInput,
    level: float = DEFAULT_LEVEL
) -> List[PosteriorEstimate]:
    """
    Posterior estimates for many entities at once.

    Parameters
    ----------
    prior : Prior
        Fitted prior Beta(alpha_0, beta_0)
    observations : sequence of Observation, mapping or DataFrame
        Counts per entity
    level : float, optional (default=0.95)
        Credible level in (0, 1)

    Returns
    -------
    estimates : List[PosteriorEstimate]
        In the same order as ``observations``

    Raises
    ------
    InvalidInput
        If level is outside (0, 1) or counts are malformed
    EmptyDataset
        If no observations are supplied
    """
    level = _check_level(level)
    observations = coerce_observations(observations)
    successes, trials = as_arrays(observations)

    alpha1 = prior.alpha + successes
    beta1 = prior.beta + trials - successes
    estimate = alpha1 / (alpha1 + beta1)
    low, high = credible_interval(alpha1, beta1, level)

    # Quantile round-off on extremely skewed posteriors
    low = np.minimum(low, estimate)
    high = np.maximum(high, estimate)

    return [
        PosteriorEstimate(
            entity_id=obs.entity_id,
            successes=obs.successes,
            trials=obs.trials,
            alpha1=float(alpha1[i]),
            beta1=float(beta1[i]),
            estimate=float(estimate[i]),
            low=float(low[i]),
            high=float(high[i]),
            level=level
        )
        for i, obs in enumerate(observations)
    ]


def estimate_posterior(
    prior: Prior,
    observation: Observation,
    level: float = DEFAULT_LEVEL
) -> PosteriorEstimate:
    """
    Posterior estimate for a single entity.

    Examples
    --------
    >>> prior = Prior(81, 219)
    >>> est = estimate_posterior(prior, Observation('A', 30, 100))
    >>> est.alpha1, est.beta1, round(est.estimate, 4)
    (111.0, 289.0, 0.2775)
    """
    if not isinstance(observation, Observation):
        raise InvalidInput(f"Expected an Observation, got {observation!r}")
    return estimate_posteriors(prior, [observation], level)[0]


def posteriors_to_frame(estimates: Sequence[PosteriorEstimate]) -> pd.DataFrame:
    """
    Tabulate posterior estimates.

    Returns
    -------
    df : pd.DataFrame
        Columns: entity_id, successes, trials, raw_rate, alpha1, beta1,
        estimate, low, high, level
    """
    columns = ['entity_id', 'successes', 'trials', 'raw_rate', 'alpha1',
               'beta1', 'estimate', 'low', 'high', 'level']
    rows = [
        {
            'entity_id': est.entity_id,
            'successes': est.successes,
            'trials': est.trials,
            'raw_rate': est.raw_rate,
            'alpha1': est.alpha1,
            'beta1': est.beta1,
            'estimate': est.estimate,
            'low': est.low,
            'high': est.high,
            'level': est.level,
        }
        for est in estimates
    ]
    return pd.DataFrame(rows, columns=columns)
