"""
Synthetic Replications for Calibration Studies

This module draws synthetic success/trial datasets from a known Beta prior and
runs the estimation pipeline on each one. Every replication owns a random
stream derived from the global seed and its own key, so a replication
produces the same data whichever worker runs it and in whatever order.

"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from ..config import SimulationConfig
from ..estimation.posterior import credible_interval, estimate_posteriors
from ..estimation.prior_fitter import MOMENTS_FALLBACK, fit_prior
from ..exceptions import DegenerateInput, NumericalDivergence
from ..inference.hypothesis_tester import GREATER, rank_hypotheses
from ..observations import Observation


@dataclass(frozen=True)
class Replication:
    """
    One synthetic dataset with its hidden ground truth.

    Attributes
    ----------
    index : int
        Replication index within its configuration
    size : int
        Number of entities
    trials : np.ndarray, shape (size,)
        Trial counts
    true_rates : np.ndarray, shape (size,)
        Success probabilities drawn from the reference prior (hidden from
        the estimation functions)
    successes : np.ndarray, shape (size,)
        Binomial(trials, true_rates) draws
    """

    index: int
    size: int
    trials: np.ndarray
    true_rates: np.ndarray
    successes: np.ndarray

    def observations(self) -> List[Observation]:
        """Observations visible to the estimation pipeline (entity ids 0..size-1)."""
        return [
            Observation(i, int(k), int(n))
            for i, (k, n) in enumerate(zip(self.successes, self.trials))
        ]


@dataclass(frozen=True)
class ReplicationTask:
    """Picklable unit of work handed to a worker."""

    key: Tuple[int, ...]
    index: int
    size: Optional[int]
    trials: np.ndarray
    prior_alpha: float
    prior_beta: float
    threshold: float
    config: SimulationConfig


@dataclass
class ReplicationRecord:
    """
    Per-entity outcomes of one replication.

    Failed replications carry ``failed=True``, the failure reason, and no
    per-entity arrays.
    """

    key: Tuple[int, ...]
    index: int
    size: int
    failed: bool = False
    failure_reason: Optional[str] = None
    alpha0: float = np.nan
    beta0: float = np.nan
    prior_method: Optional[str] = None
    true_rates: Optional[np.ndarray] = None
    estimates: Optional[np.ndarray] = None
    raw_rates: Optional[np.ndarray] = None
    covered: Dict[float, np.ndarray] = field(default_factory=dict)
    q_values: Optional[np.ndarray] = None
    is_null: Optional[np.ndarray] = None

    @property
    def fallback(self) -> bool:
        return self.prior_method == MOMENTS_FALLBACK


def replication_rng(seed: int, key: Tuple[int, ...]) -> np.random.Generator:
    """Independent generator for the replication identified by ``key``."""
    return np.random.Generator(
        np.random.PCG64(np.random.SeedSequence(seed, spawn_key=key))
    )


def generate_replication(
    template_trials: np.ndarray,
    prior_alpha: float,
    prior_beta: float,
    rng: np.random.Generator,
    size: Optional[int] = None,
    index: int = 0
) -> Replication:
    """
    Draw one synthetic dataset.

    Parameters
    ----------
    template_trials : np.ndarray
        Trial counts to simulate with
    prior_alpha, prior_beta : float
        Reference prior the true rates are drawn from
    rng : np.random.Generator
        Random stream owned by this replication
    size : int, optional
        If given, first resample ``size`` trial counts from the template with
        replacement; otherwise use the template as is
    index : int, optional (default=0)
        Replication index recorded on the result

    Returns
    -------
    replication : Replication
    """
    if size is None:
        trials = np.array(template_trials, dtype=np.int64)
    else:
        trials = rng.choice(template_trials, size=size, replace=True).astype(np.int64)

    true_rates = rng.beta(prior_alpha, prior_beta, size=len(trials))
    successes = rng.binomial(trials, true_rates)

    return Replication(
        index=index,
        size=len(trials),
        trials=trials,
        true_rates=true_rates,
        successes=successes
    )


def run_replication(task: ReplicationTask) -> ReplicationRecord:
    """
    Generate one replication and run fit -> posterior -> test on it.

    A DegenerateInput or NumericalDivergence from the prior fit marks the
    replication as failed. Any other error is re-raised with the
    replication key attached.
    """
    config = task.config
    rng = replication_rng(config.random_seed, task.key)
    replication = generate_replication(
        task.trials,
        task.prior_alpha,
        task.prior_beta,
        rng,
        size=task.size,
        index=task.index
    )

    try:
        return _evaluate(task, replication)
    except (DegenerateInput, NumericalDivergence) as exc:
        return ReplicationRecord(
            key=task.key,
            index=task.index,
            size=replication.size,
            failed=True,
            failure_reason=f"{type(exc).__name__}: {exc}"
        )
    except Exception as exc:
        raise RuntimeError(
            f"Replication {task.key} raised {type(exc).__name__}: {exc}"
        ) from exc


def _evaluate(task: ReplicationTask, replication: Replication) -> ReplicationRecord:
    config = task.config
    observations = replication.observations()

    prior = fit_prior(observations, method=config.method, max_iter=config.max_iter)

    estimates = estimate_posteriors(prior, observations, level=config.credible_level)
    alpha1 = np.array([est.alpha1 for est in estimates])
    beta1 = np.array([est.beta1 for est in estimates])
    point = np.array([est.estimate for est in estimates])
    true_rates = replication.true_rates

    covered = {}
    for level in config.coverage_levels:
        if level == config.credible_level:
            low = np.array([est.low for est in estimates])
            high = np.array([est.high for est in estimates])
        else:
            low, high = credible_interval(alpha1, beta1, level)
        covered[level] = (true_rates >= low) & (true_rates <= high)

    results = rank_hypotheses(
        estimates,
        threshold=task.threshold,
        direction=config.direction,
        fdr_level=config.fdr_level
    )
    q_values = np.empty(replication.size)
    for res in results:
        q_values[res.entity_id] = res.q_value

    if config.direction == GREATER:
        is_null = true_rates < task.threshold
    else:
        is_null = true_rates > task.threshold

    return ReplicationRecord(
        key=task.key,
        index=task.index,
        size=replication.size,
        alpha0=prior.alpha,
        beta0=prior.beta,
        prior_method=prior.method,
        true_rates=true_rates,
        estimates=point,
        raw_rates=replication.successes / replication.trials,
        covered=covered,
        q_values=q_values,
        is_null=is_null
    )
