"""
Beta Prior Estimation from Success/Trial Data

This module fits the shared Beta(alpha_0, beta_0) prior of the beta-binomial
model by maximum likelihood, seeded with (and falling back to) the closed-form
method-of-moments estimate.

"""

import warnings
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from scipy.optimize import minimize
from scipy.special import betaln, digamma
from scipy.stats import betabinom

from ..exceptions import DegenerateInput, InvalidInput, NumericalDivergence
from ..observations import ObservationInput, as_arrays, coerce_observations

MLE = 'mle'
MOMENTS = 'moments'
MOMENTS_FALLBACK = 'moments_fallback'
FIT_METHODS = (MLE, MOMENTS)

DEFAULT_MAX_ITER = 500

# Search box on (log alpha, log beta); a solution on its edge means the
# likelihood has no interior maximum.
_LOG_BOUNDS = (np.log(1e-6), np.log(1e7))
_BOUND_TOL = 1e-6
_VARIANCE_TOL = 1e-12


@dataclass(frozen=True)
class Prior:
    """
    Beta(alpha, beta) prior shared by all entities.

    Parameters
    ----------
    alpha : float
        First shape parameter, > 0
    beta : float
        Second shape parameter, > 0
    method : str, optional (default='mle')
        How the prior was obtained: 'mle', 'moments' or 'moments_fallback'
    n_iterations : int, optional
        Optimizer iterations (maximum likelihood only)
    log_likelihood : float, optional
        Beta-binomial log-likelihood at the estimate

    Raises
    ------
    InvalidInput
        If alpha or beta is not a positive finite number
    """

    alpha: float
    beta: float
    method: str = MLE
    n_iterations: Optional[int] = None
    log_likelihood: Optional[float] = None

    def __post_init__(self):
        for name in ('alpha', 'beta'):
            value = getattr(self, name)
            try:
                value = float(value)
            except (TypeError, ValueError):
                raise InvalidInput(
                    f"Prior {name} must be a number, got {value!r}"
                ) from None
            if not np.isfinite(value) or value <= 0:
                raise InvalidInput(
                    f"Prior {name} must be positive and finite, got {value}"
                )
            object.__setattr__(self, name, value)

    @property
    def mean(self) -> float:
        """Prior mean alpha / (alpha + beta)."""
        return self.alpha / (self.alpha + self.beta)

    @property
    def concentration(self) -> float:
        """Pseudo-count alpha + beta."""
        return self.alpha + self.beta

    @property
    def variance(self) -> float:
        """Variance of the Beta(alpha, beta) distribution."""
        total = self.concentration
        return self.alpha * self.beta / (total ** 2 * (total + 1))

    def as_tuple(self) -> Tuple[float, float]:
        """Return (alpha, beta)."""
        return self.alpha, self.beta


def _prepare_counts(
    observations: ObservationInput,
    min_trials: Optional[int]
) -> Tuple[np.ndarray, np.ndarray]:
    """Validate observations and return (successes, trials) arrays."""
    successes, trials = as_arrays(coerce_observations(observations))

    if min_trials is not None:
        if min_trials < 1:
            raise InvalidInput(f"min_trials must be >= 1, got {min_trials}")
        keep = trials >= min_trials
        if not keep.any():
            raise DegenerateInput(
                f"No observations with trials >= {min_trials} to fit the prior"
            )
        successes, trials = successes[keep], trials[keep]

    return successes, trials


def _rate_moments(
    successes: np.ndarray,
    trials: np.ndarray
) -> Tuple[float, float]:
    """
    Mean and sample variance of observed rates.

    Raises DegenerateInput when the rates cannot identify a beta prior.
    """
    rates = successes / trials

    if np.all((rates == 0) | (rates == 1)):
        raise DegenerateInput(
            f"All {len(rates)} observed rates sit at the 0/1 boundary; "
            "the beta-binomial likelihood is unbounded"
        )
    if len(rates) < 2:
        raise DegenerateInput(
            "A single observation has zero rate variance; at least two "
            "are needed to fit a prior"
        )

    mu = float(np.mean(rates))
    var = float(np.var(rates, ddof=1))

    if var <= _VARIANCE_TOL:
        raise DegenerateInput(
            f"Observed rates have zero variance (all equal to {mu:.6g}); "
            "the prior concentration is unbounded"
        )

    return mu, var


def _moment_estimates(mu: float, var: float) -> Tuple[float, float]:
    """Match Beta mean and variance: var = mu(1-mu) / (alpha + beta + 1)."""
    common = mu * (1 - mu) / var - 1
    return mu * common, (1 - mu) * common


def _is_valid(alpha: float, beta: float) -> bool:
    return bool(
        np.isfinite(alpha) and np.isfinite(beta) and alpha > 0 and beta > 0
    )


def _loglik(
    alpha: float,
    beta: float,
    successes: np.ndarray,
    trials: np.ndarray
) -> float:
    return float(np.sum(betabinom.logpmf(successes, trials, alpha, beta)))


def _negative_loglik(
    log_params: np.ndarray,
    successes: np.ndarray,
    trials: np.ndarray
) -> Tuple[float, np.ndarray]:
    """
    Mean negative log-likelihood and its gradient in (log alpha, log beta).

    Binomial coefficients are dropped since they do not depend on the prior.
    """
    alpha, beta = np.exp(log_params)
    failures = trials - successes
    n_obs = len(successes)

    loglik = np.sum(betaln(successes + alpha, failures + beta)) - \
        n_obs * betaln(alpha, beta)

    psi_total = digamma(trials + alpha + beta)
    psi_prior = digamma(alpha + beta)
    grad_alpha = np.sum(digamma(successes + alpha) - psi_total) - \
        n_obs * (digamma(alpha) - psi_prior)
    grad_beta = np.sum(digamma(failures + beta) - psi_total) - \
        n_obs * (digamma(beta) - psi_prior)

    grad = np.array([alpha * grad_alpha, beta * grad_beta])
    return -loglik / n_obs, -grad / n_obs


def _maximize_likelihood(
    successes: np.ndarray,
    trials: np.ndarray,
    x0: np.ndarray,
    max_iter: int
) -> Prior:
    """Run bounded L-BFGS-B on the beta-binomial likelihood."""
    x0 = np.clip(x0, _LOG_BOUNDS[0] + 1.0, _LOG_BOUNDS[1] - 1.0)

    result = minimize(
        _negative_loglik,
        x0,
        args=(successes, trials),
        jac=True,
        method='L-BFGS-B',
        bounds=[_LOG_BOUNDS, _LOG_BOUNDS],
        options={'maxiter': max_iter}
    )
    n_iterations = int(result.nit)

    if not result.success:
        raise NumericalDivergence(
            f"L-BFGS-B stopped after {n_iterations} iterations "
            f"(max_iter={max_iter}): {result.message}",
            n_iterations=n_iterations
        )
    if not np.all(np.isfinite(result.x)):
        raise NumericalDivergence(
            f"L-BFGS-B returned a non-finite solution {result.x}",
            n_iterations=n_iterations
        )

    at_bound = (np.abs(result.x - _LOG_BOUNDS[0]) < _BOUND_TOL) | \
        (np.abs(result.x - _LOG_BOUNDS[1]) < _BOUND_TOL)
    alpha, beta = np.exp(result.x)
    if at_bound.any():
        raise NumericalDivergence(
            f"Likelihood maximum ran to the search bound "
            f"(alpha={alpha:.4g}, beta={beta:.4g}); the data carry no "
            "interior maximum",
            n_iterations=n_iterations
        )

    return Prior(
        alpha,
        beta,
        method=MLE,
        n_iterations=n_iterations,
        log_likelihood=_loglik(alpha, beta, successes, trials)
    )


def method_of_moments(
    observations: ObservationInput,
    min_trials: Optional[int] = None
) -> Prior:
    """
    Closed-form prior from the mean and variance of observed rates.

    Parameters
    ----------
    observations : sequence of Observation, mapping or DataFrame
        Success/trial counts, one per entity
    min_trials : int, optional
        Only observations with at least this many trials are used

    Returns
    -------
    prior : Prior
        Estimate with method='moments'

    Raises
    ------
    EmptyDataset
        If no observations are supplied
    DegenerateInput
        If the rates have zero variance, sit on the 0/1 boundary, or are
        more dispersed than any beta distribution allows
    """
    successes, trials = _prepare_counts(observations, min_trials)
    mu, var = _rate_moments(successes, trials)
    alpha, beta = _moment_estimates(mu, var)

    if not _is_valid(alpha, beta):
        raise DegenerateInput(
            f"Rate variance {var:.4g} is at least mu(1-mu)={mu * (1 - mu):.4g}; "
            "no beta distribution matches these moments"
        )

    return Prior(alpha, beta, method=MOMENTS)


def fit_prior(
    observations: ObservationInput,
    method: str = MLE,
    max_iter: int = DEFAULT_MAX_ITER,
    min_trials: Optional[int] = None
) -> Prior:
    """
    Estimate the Beta(alpha_0, beta_0) prior shared by all entities.

    Maximizes sum_i log P(k_i | n_i, alpha, beta) under the beta-binomial
    distribution, starting from the method-of-moments estimate. If the
    optimizer fails to converge within ``max_iter`` iterations the
    method-of-moments estimate is returned instead (with a UserWarning),
    provided it is valid.

    Parameters
    ----------
    observations : sequence of Observation, mapping or DataFrame
        Success/trial counts, one per entity. Every entry needs trials >= 1.
    method : str, optional (default='mle')
        'mle' for maximum likelihood or 'moments' for method of moments
    max_iter : int, optional (default=500)
        Hard iteration cap of the optimizer
    min_trials : int, optional
        Fit on observations with at least this many trials only

    Returns
    -------
    prior : Prior
        Fitted prior. ``prior.method`` records whether it came from
        maximum likelihood, method of moments, or the fallback path.

    Raises
    ------
    InvalidInput
        For an unknown method, non-positive max_iter or malformed counts
    EmptyDataset
        If no observations are supplied
    DegenerateInput
        If the data cannot identify a prior
    NumericalDivergence
        If the optimizer diverges and the method-of-moments estimate is
        not usable either

    Examples
    --------
    >>> prior = fit_prior({'a': (30, 100), 'b': (3, 10), 'c': (50, 120)})
    >>> prior.alpha > 0 and prior.beta > 0
    True
    """
    if method not in FIT_METHODS:
        raise InvalidInput(
            f"method must be one of {FIT_METHODS}, got {method!r}"
        )
    if max_iter < 1:
        raise InvalidInput(f"max_iter must be >= 1, got {max_iter}")

    successes, trials = _prepare_counts(observations, min_trials)
    mu, var = _rate_moments(successes, trials)
    mom_alpha, mom_beta = _moment_estimates(mu, var)
    mom_ok = _is_valid(mom_alpha, mom_beta)

    if method == MOMENTS:
        if not mom_ok:
            raise DegenerateInput(
                f"Rate variance {var:.4g} is at least "
                f"mu(1-mu)={mu * (1 - mu):.4g}; no beta distribution matches "
                "these moments"
            )
        return Prior(mom_alpha, mom_beta, method=MOMENTS)

    if mom_ok:
        x0 = np.log([mom_alpha, mom_beta])
    else:
        # Weak seed centred on the observed mean
        x0 = np.log([2.0 * mu, 2.0 * (1 - mu)])

    try:
        return _maximize_likelihood(successes, trials, x0, max_iter)
    except NumericalDivergence as exc:
        if not mom_ok:
            raise
        warnings.warn(
            "Maximum likelihood fit did not converge; using the "
            "method-of-moments estimate instead",
            UserWarning
        )
        return Prior(
            mom_alpha,
            mom_beta,
            method=MOMENTS_FALLBACK,
            n_iterations=exc.n_iterations,
            log_likelihood=_loglik(mom_alpha, mom_beta, successes, trials)
        )


def beta_binomial_loglik(
    alpha: float,
    beta: float,
    observations: ObservationInput
) -> float:
    """
    Beta-binomial log-likelihood of the observations under Beta(alpha, beta).

    Includes the binomial coefficients, so values are comparable with other
    discrete models of the same counts.
    """
    if not _is_valid(alpha, beta):
        raise InvalidInput(
            f"alpha and beta must be positive and finite, got ({alpha}, {beta})"
        )
    successes, trials = as_arrays(coerce_observations(observations))
    return _loglik(alpha, beta, successes, trials)
