"""Hypothesis testing and posterior comparison"""

from .hypothesis_tester import (
    DIRECTIONS,
    GREATER,
    LESS,
    HypothesisResult,
    compute_q_values,
    posterior_error_probability,
    rank_hypotheses,
    results_to_frame,
    select_discoveries,
)
from .comparison import compare_entities, probability_greater

__all__ = [
    'DIRECTIONS',
    'GREATER',
    'LESS',
    'HypothesisResult',
    'compute_q_values',
    'posterior_error_probability',
    'rank_hypotheses',
    'results_to_frame',
    'select_discoveries',
    'compare_entities',
    'probability_greater',
]
