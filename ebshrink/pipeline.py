"""ebshrink Pipeline - Main User Interface"""

import pickle
import warnings
from typing import Dict, Hashable, List, Optional

import pandas as pd

from .estimation.posterior import (
    DEFAULT_LEVEL,
    PosteriorEstimate,
    estimate_posteriors,
    posteriors_to_frame,
)
from .estimation.prior_fitter import DEFAULT_MAX_ITER, FIT_METHODS, MLE, fit_prior
from .exceptions import InvalidInput
from .inference.comparison import compare_entities, probability_greater
from .inference.hypothesis_tester import (
    DEFAULT_FDR_LEVEL,
    GREATER,
    rank_hypotheses,
    results_to_frame,
)
from .observations import ObservationInput, coerce_observations, observations_from_frame

MIN_RECOMMENDED_ENTITIES = 10


class Pipeline:
    """
    End-to-end empirical Bayes pipeline for success/trial data.

    Fits a shared beta prior to all entities, shrinks each entity's raw rate
    toward it, and tests entities against a threshold with FDR control.

    Parameters
    ----------
    method : str, default='mle'
        Prior fitting method: 'mle' (maximum likelihood, seeded with and
        falling back to method of moments) or 'moments'.

    credible_level : float, default=0.95
        Level of the equal-tailed credible intervals.

    max_iter : int, default=500
        Iteration cap of the prior optimizer.

    min_trials : int, optional
        Fit the prior on entities with at least this many trials only. The
        prior is still applied to every entity.

    Examples
    --------
    >>> from ebshrink import Pipeline
    >>>
    >>> batting = {
    ...     'hank_aaron': (3771, 12364),
    ...     'eddie_mathews': (2315, 8537),
    ...     ...
    ... }
    >>>
    >>> pipeline = Pipeline()
    >>> pipeline.fit(batting)
    >>> pipeline.estimates().head()
    >>>
    >>> # Who bats above .300, at 5% FDR?
    >>> pipeline.test(threshold=0.300, fdr_level=0.05)
    """

    def __init__(
        self,
        method: str = MLE,
        credible_level: float = DEFAULT_LEVEL,
        max_iter: int = DEFAULT_MAX_ITER,
        min_trials: Optional[int] = None
    ):
        if method not in FIT_METHODS:
            raise InvalidInput(
                f"method must be one of {FIT_METHODS}, got {method!r}"
            )
        if not 0 < credible_level < 1:
            raise InvalidInput(
                f"credible_level must be in (0, 1), got {credible_level}"
            )

        self.method = method
        self.credible_level = credible_level
        self.max_iter = max_iter
        self.min_trials = min_trials

        # Will be initialized during fit()
        self.prior_ = None
        self.observations_ = None
        self.estimates_ = None
        self.entity_index_ = None

    def fit(
        self,
        data: ObservationInput,
        successes_col: str = 'successes',
        trials_col: str = 'trials',
        id_col: Optional[str] = None,
        verbose: bool = True
    ) -> 'Pipeline':
        """
        Fit the prior and compute posterior estimates for every entity.

        Parameters
        ----------
        data : mapping, DataFrame or sequence of Observation
            ``{entity_id: (successes, trials)}``, a DataFrame with count
            columns, or Observation objects. Every entity needs trials >= 1.

        successes_col, trials_col, id_col : str
            Column names when ``data`` is a DataFrame. If id_col is None the
            index identifies entities.

        verbose : bool, default=True
            If True, print progress.

        Returns
        -------
        self : Pipeline
            Fitted pipeline.
        """
        if isinstance(data, pd.DataFrame):
            observations = observations_from_frame(
                data, successes_col, trials_col, id_col
            )
        else:
            observations = data
        observations = coerce_observations(observations)
        self._validate_observations(observations)

        if verbose:
            print(f"\n{'='*70}")
            print(f"ebshrink Pipeline: Fitting on {len(observations)} entities")
            print(f"{'='*70}\n")

        if verbose:
            print(f"[Step 1/2] Fitting beta prior ({self.method})...")
        self.prior_ = fit_prior(
            observations,
            method=self.method,
            max_iter=self.max_iter,
            min_trials=self.min_trials
        )
        if verbose:
            print(f"  ✓ Prior fitted: alpha_0={self.prior_.alpha:.3f}, "
                  f"beta_0={self.prior_.beta:.3f} "
                  f"(mean {self.prior_.mean:.4f}, method {self.prior_.method})")

        if verbose:
            print(f"\n[Step 2/2] Computing posterior estimates "
                  f"({self.credible_level:.0%} intervals)...")
        self.observations_ = observations
        self.estimates_ = estimate_posteriors(
            self.prior_, observations, level=self.credible_level
        )
        self.entity_index_ = {
            est.entity_id: i for i, est in enumerate(self.estimates_)
        }
        if verbose:
            print(f"  ✓ {len(self.estimates_)} posterior estimates computed")

            print(f"\n{'='*70}")
            print("✓ ebshrink Pipeline fitted successfully!")
            print(f"{'='*70}\n")

        return self

    def estimates(self, level: Optional[float] = None) -> pd.DataFrame:
        """
        Posterior estimates as a DataFrame.

        Parameters
        ----------
        level : float, optional
            Credible level. Defaults to the pipeline's credible_level.

        Returns
        -------
        estimates : pd.DataFrame
            Columns: entity_id, successes, trials, raw_rate, alpha1, beta1,
            estimate, low, high, level
        """
        self._check_fitted()
        if level is None or level == self.credible_level:
            return posteriors_to_frame(self.estimates_)
        return posteriors_to_frame(
            estimate_posteriors(self.prior_, self.observations_, level=level)
        )

    def posterior(self, entity_id: Hashable) -> PosteriorEstimate:
        """Posterior estimate of a single entity."""
        self._check_fitted()
        if entity_id not in self.entity_index_:
            raise KeyError(f"Unknown entity: {entity_id!r}")
        return self.estimates_[self.entity_index_[entity_id]]

    def test(
        self,
        threshold: float,
        direction: str = GREATER,
        fdr_level: float = DEFAULT_FDR_LEVEL
    ) -> pd.DataFrame:
        """
        Test every entity against a threshold rate with FDR control.

        Parameters
        ----------
        threshold : float
            Rate in (0, 1)
        direction : str, default='greater'
            'greater': interesting entities have true rate >= threshold.
            'less': interesting entities have true rate <= threshold.
        fdr_level : float, default=0.05
            Target false discovery rate

        Returns
        -------
        results : pd.DataFrame
            Columns: entity_id, rank, estimate, null_probability, q_value,
            discovery; sorted by rank
        """
        self._check_fitted()
        results = rank_hypotheses(
            self.estimates_,
            threshold=threshold,
            direction=direction,
            fdr_level=fdr_level
        )
        return results_to_frame(results)

    def compare(
        self,
        entity_a: Hashable,
        entity_b: Optional[Hashable] = None,
        method: str = 'integrate'
    ):
        """
        Posterior comparison of entities.

        With two entity ids, returns P(rate_a > rate_b). With one, returns a
        DataFrame comparing every entity against ``entity_a``.
        """
        if entity_b is not None:
            return probability_greater(
                self.posterior(entity_a), self.posterior(entity_b), method
            )
        return compare_entities(
            self.estimates_, self.posterior(entity_a), method
        )

    def get_prior(self) -> Dict[str, float]:
        """Fitted prior as a dict (alpha, beta, mean, concentration, method)."""
        self._check_fitted()
        return {
            'alpha': self.prior_.alpha,
            'beta': self.prior_.beta,
            'mean': self.prior_.mean,
            'concentration': self.prior_.concentration,
            'method': self.prior_.method,
        }

    def save(self, filepath: str):
        """Save fitted pipeline to disk."""
        with open(filepath, 'wb') as f:
            pickle.dump(self, f)
        print(f"✓ Pipeline saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> 'Pipeline':
        """Load fitted pipeline from disk."""
        with open(filepath, 'rb') as f:
            pipeline = pickle.load(f)
        print(f"✓ Pipeline loaded from {filepath}")
        return pipeline

    # ---- Private methods ----

    def _check_fitted(self):
        if self.prior_ is None:
            raise RuntimeError("Pipeline not fitted. Call .fit() first.")

    def _validate_observations(self, observations: List):
        """Validate entity identifiers and warn about small datasets."""
        ids = [obs.entity_id for obs in observations]
        if len(set(ids)) != len(ids):
            raise InvalidInput("Entity identifiers must be unique")

        if len(observations) < MIN_RECOMMENDED_ENTITIES:
            warnings.warn(
                f"Only {len(observations)} entities provided. "
                f"Recommend at least {MIN_RECOMMENDED_ENTITIES} for a stable "
                "prior estimate."
            )
