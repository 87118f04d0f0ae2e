"""Prior fitting and posterior estimation"""

from .prior_fitter import (
    FIT_METHODS,
    MLE,
    MOMENTS,
    MOMENTS_FALLBACK,
    Prior,
    beta_binomial_loglik,
    fit_prior,
    method_of_moments,
)
from .posterior import (
    PosteriorEstimate,
    credible_interval,
    estimate_posterior,
    estimate_posteriors,
    posteriors_to_frame,
)

__all__ = [
    'FIT_METHODS',
    'MLE',
    'MOMENTS',
    'MOMENTS_FALLBACK',
    'Prior',
    'beta_binomial_loglik',
    'fit_prior',
    'method_of_moments',
    'PosteriorEstimate',
    'credible_interval',
    'estimate_posterior',
    'estimate_posteriors',
    'posteriors_to_frame',
]
