"""
Posterior Hypothesis Testing with False Discovery Rate Control

Each entity's posterior error probability (PEP) is the posterior probability
that its true rate lies on the null side of a threshold. Ranking entities by
PEP and averaging the PEPs of everything ranked at or above an entity gives
its q-value: the expected false-discovery proportion if that entity and all
stronger ones were declared discoveries.

"""

from dataclasses import dataclass
from typing import Hashable, List, Sequence

import numpy as np
import pandas as pd
from scipy.stats import beta as beta_dist

from ..estimation.posterior import PosteriorEstimate
from ..exceptions import EmptyDataset, InvalidInput

GREATER = 'greater'
LESS = 'less'
DIRECTIONS = (GREATER, LESS)

DEFAULT_FDR_LEVEL = 0.05


@dataclass(frozen=True)
class HypothesisResult:
    """
    Outcome of testing one entity against the threshold.

    Attributes
    ----------
    entity_id : hashable
        Identifier of the entity
    null_probability : float
        Posterior probability that the true rate is on the null side
    rank : int
        1 = strongest evidence for the alternative
    q_value : float
        Minimum FDR at which this entity would be called a discovery
    estimate : float
        Posterior mean of the entity
    discovery : bool
        True if q_value < the target FDR level
    """

    entity_id: Hashable
    null_probability: float
    rank: int
    q_value: float
    estimate: float
    discovery: bool


def _check_direction(direction: str) -> None:
    if direction not in DIRECTIONS:
        raise InvalidInput(
            f"direction must be one of {DIRECTIONS}, got {direction!r}"
        )


def _check_unit_interval(value: float, name: str) -> None:
    if not 0 < value < 1:
        raise InvalidInput(f"{name} must be in (0, 1), got {value}")


def posterior_error_probability(
    alpha1,
    beta1,
    threshold: float,
    direction: str = GREATER
):
    """
    Posterior probability of the null hypothesis.

    For direction='greater' (alternative: rate >= threshold) this is the
    Beta(alpha1, beta1) CDF at the threshold; for direction='less' it is the
    survival function.

    Parameters
    ----------
    alpha1, beta1 : float or np.ndarray
        Posterior shape parameters
    threshold : float
        Rate in (0, 1) separating null from alternative
    direction : str, optional (default='greater')
        'greater' or 'less'

    Returns
    -------
    pep : float or np.ndarray
    """
    _check_direction(direction)
    _check_unit_interval(threshold, 'threshold')

    if direction == GREATER:
        return beta_dist.cdf(threshold, alpha1, beta1)
    return beta_dist.sf(threshold, alpha1, beta1)


def compute_q_values(null_probabilities) -> np.ndarray:
    """
    q-values from posterior error probabilities.

    Sorts ascending (stable), takes the cumulative mean, then applies the
    step-up correction: a running minimum from the worst rank inward, so
    q-values never decrease as rank loosens.

    Parameters
    ----------
    null_probabilities : array-like, shape (n,)
        PEP per entity

    Returns
    -------
    q_values : np.ndarray, shape (n,)
        In the caller's order (not sorted)
    """
    pep = np.asarray(null_probabilities, dtype=np.float64)
    if pep.ndim != 1:
        raise InvalidInput(f"Expected a 1-d array of PEPs, got shape {pep.shape}")
    if len(pep) == 0:
        return pep.copy()
    if np.any(np.isnan(pep)) or np.any((pep < 0) | (pep > 1)):
        raise InvalidInput("Posterior error probabilities must lie in [0, 1]")

    order = np.argsort(pep, kind='mergesort')
    sorted_pep = pep[order]
    raw_q = np.cumsum(sorted_pep) / np.arange(1, len(pep) + 1)
    sorted_q = np.minimum.accumulate(raw_q[::-1])[::-1]

    q_values = np.empty_like(sorted_q)
    q_values[order] = sorted_q
    return q_values


def rank_hypotheses(
    estimates: Sequence[PosteriorEstimate],
    threshold: float,
    direction: str = GREATER,
    fdr_level: float = DEFAULT_FDR_LEVEL
) -> List[HypothesisResult]:
    """
    Rank entities by posterior evidence and assign q-values.

    Parameters
    ----------
    estimates : sequence of PosteriorEstimate
        Posteriors of the entities under test
    threshold : float
        Rate in (0, 1). With direction='greater' an entity is interesting if
        its true rate is >= threshold; with 'less' if it is <= threshold.
    direction : str, optional (default='greater')
        'greater' or 'less'
    fdr_level : float, optional (default=0.05)
        Target FDR; entities with q_value < fdr_level are flagged as
        discoveries

    Returns
    -------
    results : List[HypothesisResult]
        Sorted by rank (strongest evidence first)

    Raises
    ------
    EmptyDataset
        If no estimates are supplied
    InvalidInput
        For a threshold or fdr_level outside (0, 1) or an unknown direction

    Notes
    -----
    When the posterior model is correctly specified, selecting every entity
    with q_value below F keeps the expected false-discovery proportion at or
    below F. This holds on average over repeated sampling, not for every
    dataset.
    """
    _check_direction(direction)
    _check_unit_interval(threshold, 'threshold')
    _check_unit_interval(fdr_level, 'fdr_level')

    estimates = list(estimates)
    if len(estimates) == 0:
        raise EmptyDataset("No posterior estimates to test")

    alpha1 = np.array([est.alpha1 for est in estimates])
    beta1 = np.array([est.beta1 for est in estimates])
    pep = posterior_error_probability(alpha1, beta1, threshold, direction)
    q_values = compute_q_values(pep)

    order = np.argsort(pep, kind='mergesort')
    results = []
    for rank, i in enumerate(order, start=1):
        results.append(HypothesisResult(
            entity_id=estimates[i].entity_id,
            null_probability=float(pep[i]),
            rank=rank,
            q_value=float(q_values[i]),
            estimate=estimates[i].estimate,
            discovery=bool(q_values[i] < fdr_level)
        ))

    return results


def select_discoveries(
    results: Sequence[HypothesisResult],
    fdr_level: float = DEFAULT_FDR_LEVEL
) -> List[HypothesisResult]:
    """Results with q_value < fdr_level, in rank order."""
    _check_unit_interval(fdr_level, 'fdr_level')
    return sorted(
        (res for res in results if res.q_value < fdr_level),
        key=lambda res: res.rank
    )


def results_to_frame(results: Sequence[HypothesisResult]) -> pd.DataFrame:
    """
    Tabulate hypothesis results.

    Returns
    -------
    df : pd.DataFrame
        Columns: entity_id, rank, estimate, null_probability, q_value,
        discovery
    """
    columns = ['entity_id', 'rank', 'estimate', 'null_probability',
               'q_value', 'discovery']
    rows = [
        {
            'entity_id': res.entity_id,
            'rank': res.rank,
            'estimate': res.estimate,
            'null_probability': res.null_probability,
            'q_value': res.q_value,
            'discovery': res.discovery,
        }
        for res in results
    ]
    return pd.DataFrame(rows, columns=columns)
