"""
Pairwise comparison of beta posteriors (Bayesian A/B testing).

"""

from typing import Sequence

import numpy as np
import pandas as pd
from scipy.integrate import quad
from scipy.stats import beta as beta_dist
from scipy.stats import norm

from ..estimation.posterior import PosteriorEstimate
from ..exceptions import InvalidInput

COMPARISON_METHODS = ('integrate', 'normal')

# Integration window in posterior quantiles of the first entity
_TAIL = 1e-12


def _beta_moments(alpha: float, beta: float):
    total = alpha + beta
    mean = alpha / total
    var = alpha * beta / (total ** 2 * (total + 1))
    return mean, var


def probability_greater(
    a: PosteriorEstimate,
    b: PosteriorEstimate,
    method: str = 'integrate'
) -> float:
    """
    Posterior probability that entity a's true rate exceeds entity b's.

    Parameters
    ----------
    a, b : PosteriorEstimate
        Independent beta posteriors
    method : str, optional (default='integrate')
        'integrate' evaluates int f_a(x) F_b(x) dx numerically;
        'normal' approximates both posteriors by normals, which is accurate
        once both have tens of successes and failures

    Returns
    -------
    probability : float
        P(p_a > p_b) in [0, 1]

    Examples
    --------
    >>> p = probability_greater(est_aaron, est_ruth)
    >>> 0 <= p <= 1
    True
    """
    if method not in COMPARISON_METHODS:
        raise InvalidInput(
            f"method must be one of {COMPARISON_METHODS}, got {method!r}"
        )

    if method == 'normal':
        mean_a, var_a = _beta_moments(a.alpha1, a.beta1)
        mean_b, var_b = _beta_moments(b.alpha1, b.beta1)
        return float(norm.cdf((mean_a - mean_b) / np.sqrt(var_a + var_b)))

    lower = beta_dist.ppf(_TAIL, a.alpha1, a.beta1)
    upper = beta_dist.ppf(1 - _TAIL, a.alpha1, a.beta1)

    def integrand(x):
        return beta_dist.pdf(x, a.alpha1, a.beta1) * \
            beta_dist.cdf(x, b.alpha1, b.beta1)

    value, _ = quad(integrand, lower, upper, limit=200)
    return float(np.clip(value, 0.0, 1.0))


def compare_entities(
    estimates: Sequence[PosteriorEstimate],
    reference: PosteriorEstimate,
    method: str = 'integrate'
) -> pd.DataFrame:
    """
    Compare every estimate against one reference entity.

    Returns
    -------
    df : pd.DataFrame
        Columns: entity_id, estimate, reference_id, probability_greater
        (P(entity rate > reference rate)), sorted by probability_greater
        descending
    """
    rows = [
        {
            'entity_id': est.entity_id,
            'estimate': est.estimate,
            'reference_id': reference.entity_id,
            'probability_greater': probability_greater(est, reference, method),
        }
        for est in estimates
    ]
    df = pd.DataFrame(
        rows,
        columns=['entity_id', 'estimate', 'reference_id', 'probability_greater']
    )
    return df.sort_values(
        'probability_greater', ascending=False, kind='mergesort'
    ).reset_index(drop=True)
