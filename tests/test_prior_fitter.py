"""
Unit Tests for Beta Prior Estimation
====================================

Test suite for the prior fitter including:
- Hyperparameter recovery on large synthetic datasets
- Method of moments and maximum likelihood agreement
- Degenerate inputs and the fallback path
- Input validation
"""

import warnings

import numpy as np
import pandas as pd
import pytest

from ebshrink import (
    DegenerateInput,
    EmptyDataset,
    InvalidInput,
    NumericalDivergence,
    Observation,
    Prior,
    fit_prior,
    method_of_moments,
)
from ebshrink.estimation import beta_binomial_loglik
from ebshrink.estimation.prior_fitter import MLE, MOMENTS, MOMENTS_FALLBACK


# ============================================================================
# Test Fixtures
# ============================================================================

def simulate_counts(alpha, beta, trials, seed):
    """Draw successes for the given trials from Beta(alpha, beta) rates."""
    rng = np.random.default_rng(seed)
    rates = rng.beta(alpha, beta, size=len(trials))
    successes = rng.binomial(trials, rates)
    return [
        Observation(i, int(k), int(n))
        for i, (k, n) in enumerate(zip(successes, trials))
    ]


@pytest.fixture
def large_dataset():
    """20,000 entities from Beta(81, 219) with 300-1000 trials each."""
    rng = np.random.default_rng(2024)
    trials = rng.integers(300, 1000, size=20000)
    return simulate_counts(81, 219, trials, seed=7)


@pytest.fixture
def small_trials_dataset():
    """200 entities from Beta(3, 7) with only 5-50 trials each."""
    rng = np.random.default_rng(11)
    trials = rng.integers(5, 50, size=200)
    return simulate_counts(3, 7, trials, seed=12)


# ============================================================================
# Test 1: Prior Object
# ============================================================================

def test_prior_properties():
    """Test derived quantities of a Prior."""
    prior = Prior(81, 219)

    assert prior.alpha == 81.0
    assert isinstance(prior.alpha, float)
    assert prior.mean == pytest.approx(0.27)
    assert prior.concentration == pytest.approx(300.0)
    assert prior.variance == pytest.approx(0.27 * 0.73 / 301)
    assert prior.as_tuple() == (81.0, 219.0)


@pytest.mark.parametrize("alpha, beta", [(0, 1), (1, -2), (np.inf, 1), (np.nan, 1)])
def test_prior_rejects_invalid_parameters(alpha, beta):
    """Test that non-positive or non-finite parameters are rejected."""
    with pytest.raises(InvalidInput):
        Prior(alpha, beta)


# ============================================================================
# Test 2: Hyperparameter Recovery
# ============================================================================

def test_mle_recovers_reference_prior(large_dataset):
    """Test that maximum likelihood recovers Beta(81, 219) within 5%."""
    prior = fit_prior(large_dataset)

    assert prior.method == MLE
    assert prior.alpha == pytest.approx(81, rel=0.05)
    assert prior.beta == pytest.approx(219, rel=0.05)
    assert prior.n_iterations is not None
    assert np.isfinite(prior.log_likelihood)


def test_moments_close_to_reference_prior(large_dataset):
    """Test that the moments estimate absorbs binomial noise into its variance."""
    prior = fit_prior(large_dataset, method=MOMENTS)

    assert prior.method == MOMENTS
    assert prior.mean == pytest.approx(0.27, abs=0.005)

    # var(k/n) = mu(1-mu) / (c+1) * (1 + c * E[1/n])
    mu, c = 0.27, 300
    mean_inverse_trials = np.mean([1.0 / obs.trials for obs in large_dataset])
    observed_var = mu * (1 - mu) / (c + 1) * (1 + c * mean_inverse_trials)
    expected = mu * (1 - mu) / observed_var - 1

    assert prior.concentration == pytest.approx(expected, rel=0.05)
    assert prior.concentration < fit_prior(large_dataset).concentration


def test_mle_likelihood_at_least_moments(small_trials_dataset):
    """Test that the MLE is no worse than the moments estimate in likelihood."""
    mle = fit_prior(small_trials_dataset)
    mom = method_of_moments(small_trials_dataset)

    ll_mle = beta_binomial_loglik(mle.alpha, mle.beta, small_trials_dataset)
    ll_mom = beta_binomial_loglik(mom.alpha, mom.beta, small_trials_dataset)

    assert ll_mle >= ll_mom - 1e-6
    assert mle.log_likelihood == pytest.approx(ll_mle)


def test_fit_accepts_mapping_and_dataframe():
    """Test that mapping and DataFrame inputs give the same prior."""
    counts = {
        'a': (30, 100), 'b': (3, 10), 'c': (50, 120), 'd': (12, 60),
        'e': (80, 200), 'f': (7, 40), 'g': (22, 70), 'h': (41, 90),
    }
    df = pd.DataFrame(
        [(k, n) for k, n in counts.values()],
        columns=['successes', 'trials'],
        index=list(counts)
    )

    from_mapping = fit_prior(counts, method=MOMENTS)
    from_frame = fit_prior(df, method=MOMENTS)

    assert from_mapping.alpha == pytest.approx(from_frame.alpha)
    assert from_mapping.beta == pytest.approx(from_frame.beta)


# ============================================================================
# Test 3: Degenerate Inputs and Fallback
# ============================================================================

def test_all_zero_rates_is_degenerate():
    """Test that rates all at 0 cannot identify a prior."""
    data = [Observation(i, 0, 10 + i) for i in range(20)]

    with pytest.raises(DegenerateInput):
        fit_prior(data)
    with pytest.raises(DegenerateInput):
        method_of_moments(data)


def test_boundary_mixture_is_degenerate():
    """Test that rates only at 0 and 1 are degenerate."""
    data = [Observation(i, (i % 2) * 5, 5) for i in range(10)]

    with pytest.raises(DegenerateInput):
        fit_prior(data)


def test_single_observation_is_degenerate():
    """Test that one observation cannot identify a prior."""
    with pytest.raises(DegenerateInput):
        fit_prior([Observation('only', 3, 10)])


def test_identical_rates_are_degenerate():
    """Test that zero rate variance raises DegenerateInput."""
    data = [Observation(i, 5 * (i + 1), 10 * (i + 1)) for i in range(5)]

    with pytest.raises(DegenerateInput):
        fit_prior(data)


def test_overdispersed_moments_are_degenerate():
    """Test that moments no beta distribution can match are rejected."""
    data = [Observation('a', 0, 10), Observation('b', 10, 10), Observation('c', 5, 10)]

    with pytest.raises(DegenerateInput):
        method_of_moments(data)


def test_divergence_falls_back_to_moments(small_trials_dataset):
    """Test that an optimizer hitting its cap returns the moments estimate."""
    mom = method_of_moments(small_trials_dataset)

    with pytest.warns(UserWarning, match="method-of-moments"):
        prior = fit_prior(small_trials_dataset, max_iter=1)

    assert prior.method == MOMENTS_FALLBACK
    assert prior.alpha == pytest.approx(mom.alpha)
    assert prior.beta == pytest.approx(mom.beta)


def test_divergence_without_valid_moments_raises():
    """Test that divergence propagates when the moments cannot be used."""
    data = [Observation('a', 0, 10), Observation('b', 10, 10), Observation('c', 5, 10)]

    with warnings.catch_warnings():
        warnings.simplefilter("error", UserWarning)
        with pytest.raises(NumericalDivergence) as excinfo:
            fit_prior(data, max_iter=1)

    assert excinfo.value.n_iterations <= 1


def test_fallback_warning_text_is_constant(small_trials_dataset):
    """Test that repeated fallbacks emit the same warning message."""
    with warnings.catch_warnings(record=True) as w:
        warnings.simplefilter("always")
        fit_prior(small_trials_dataset, max_iter=1)
        fit_prior(small_trials_dataset[:100], max_iter=1)

    messages = {
        str(item.message) for item in w if issubclass(item.category, UserWarning)
    }
    assert len(messages) == 1


# ============================================================================
# Test 4: Input Validation
# ============================================================================

def test_empty_input_raises():
    """Test that no observations raises EmptyDataset."""
    with pytest.raises(EmptyDataset):
        fit_prior([])
    with pytest.raises(EmptyDataset):
        fit_prior({})


def test_unknown_method_raises(small_trials_dataset):
    """Test that an unknown fitting method is rejected."""
    with pytest.raises(InvalidInput):
        fit_prior(small_trials_dataset, method='bayes')


def test_invalid_max_iter_raises(small_trials_dataset):
    """Test that a non-positive iteration cap is rejected."""
    with pytest.raises(InvalidInput):
        fit_prior(small_trials_dataset, max_iter=0)


def test_min_trials_filters_fit(small_trials_dataset):
    """Test that min_trials restricts the entities used for fitting."""
    noisy = small_trials_dataset + [
        Observation(f'tiny_{i}', 0, 1) for i in range(50)
    ]

    filtered = fit_prior(noisy, method=MOMENTS, min_trials=5)
    clean = fit_prior(small_trials_dataset, method=MOMENTS)

    assert filtered.alpha == pytest.approx(clean.alpha)
    assert filtered.beta == pytest.approx(clean.beta)


def test_min_trials_excluding_everything_raises(small_trials_dataset):
    """Test that filtering out every entity raises DegenerateInput."""
    with pytest.raises(DegenerateInput):
        fit_prior(small_trials_dataset, min_trials=10_000)
    with pytest.raises(InvalidInput):
        fit_prior(small_trials_dataset, min_trials=0)


# ============================================================================
# Run Tests
# ============================================================================

if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
