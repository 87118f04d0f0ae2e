"""
Monte Carlo Harness for Empirical Bayes Calibration

This module validates the estimation pipeline (prior fit, posterior
estimates, FDR-controlled tests) against synthetic data drawn from a known
prior: it checks that hyperparameters are recovered, that credible intervals
reach their nominal coverage, and that q-value cutoffs hold the false
discovery rate.

"""

from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from ..config import SimulationConfig
from ..estimation.prior_fitter import Prior
from ..exceptions import EmptyDataset, InvalidInput
from .metrics import SimulationResult, aggregate
from .replication import ReplicationRecord, ReplicationTask, run_replication


class SimulationHarness:
    """
    Repeatedly simulate, fit and score the beta-binomial pipeline.

    Parameters
    ----------
    trials : array-like of int
        Template of trial counts, e.g. taken from a real dataset. All >= 1.
    prior : Prior or tuple of float
        Reference prior (alpha_0, beta_0) the true rates are drawn from
    config : SimulationConfig, optional
        Study settings. Defaults to ``SimulationConfig()``.
    verbose : bool, optional (default=True)
        If True, print progress

    Attributes
    ----------
    trials_ : np.ndarray
        Validated trial template
    prior_ : Prior
        Reference prior
    threshold_ : float
        Rate tested against (config.threshold or the prior mean)

    Examples
    --------
    >>> harness = SimulationHarness(trials, Prior(81, 219))
    >>> result = harness.replicate(n_replications=50)
    >>> result.summary()[['mse', 'coverage', 'fdp']]
    >>>
    >>> by_size = harness.vary_sample_size([30, 300, 3000])
    >>> by_size.summary()['failure_rate']
    """

    def __init__(
        self,
        trials: Union[Sequence[int], np.ndarray, pd.Series],
        prior: Union[Prior, Tuple[float, float]],
        config: Optional[SimulationConfig] = None,
        verbose: bool = True
    ):
        """Initialize simulation harness."""
        self.config = config if config is not None else SimulationConfig()
        self.verbose = verbose

        if not isinstance(prior, Prior):
            try:
                alpha, beta = prior
            except (TypeError, ValueError):
                raise InvalidInput(
                    f"prior must be a Prior or an (alpha, beta) pair, got {prior!r}"
                ) from None
            prior = Prior(alpha, beta)
        self.prior_ = prior

        trials = np.asarray(trials)
        if trials.ndim != 1:
            raise InvalidInput(
                f"trials must be one-dimensional, got shape {trials.shape}"
            )
        if len(trials) == 0:
            raise EmptyDataset("Trial template is empty")
        if not np.all(np.equal(np.mod(trials, 1), 0)):
            raise InvalidInput("trials must contain integer counts")
        if trials.min() < 1:
            raise InvalidInput(
                f"All trial counts must be >= 1, got minimum {trials.min()}"
            )
        self.trials_ = trials.astype(np.int64)

        if self.config.threshold is not None:
            self.threshold_ = self.config.threshold
        else:
            self.threshold_ = self.prior_.mean

    def replicate(self, n_replications: Optional[int] = None) -> SimulationResult:
        """
        Run independent replications on the full trial template.

        Parameters
        ----------
        n_replications : int, optional
            Defaults to config.n_replications

        Returns
        -------
        result : SimulationResult
            Aggregated calibration metrics; ``size`` equals the template length
        """
        n_replications = self._resolve_replications(n_replications)

        if self.verbose:
            self._print_header(
                f"REPLICATE: {n_replications} replications × "
                f"{len(self.trials_)} entities"
            )

        tasks = [
            self._task(key=(i,), index=i, size=None)
            for i in range(n_replications)
        ]
        return self._run(tasks)

    def vary_sample_size(
        self,
        sizes: Optional[Sequence[int]] = None,
        n_replications: Optional[int] = None
    ) -> SimulationResult:
        """
        Repeat the study at several numbers of entities.

        Each replication resamples ``size`` trial counts (with replacement)
        from the template before drawing rates and successes.

        Parameters
        ----------
        sizes : sequence of int, optional
            Defaults to config.sample_sizes
        n_replications : int, optional
            Replications per size. Defaults to config.n_replications

        Returns
        -------
        result : SimulationResult
            Metrics grouped by size
        """
        if sizes is None:
            sizes = self.config.sample_sizes
        sizes = [int(size) for size in sizes]
        if len(sizes) == 0 or min(sizes) < 2:
            raise InvalidInput(f"sizes must be non-empty and >= 2, got {sizes}")
        if len(set(sizes)) != len(sizes):
            raise InvalidInput(f"sizes must not repeat, got {sizes}")
        n_replications = self._resolve_replications(n_replications)

        if self.verbose:
            self._print_header(
                f"VARY SAMPLE SIZE: {len(sizes)} sizes × "
                f"{n_replications} replications"
            )
            print(f"Sizes: {sizes}")

        tasks = [
            self._task(key=(size, i), index=i, size=size)
            for size in sizes
            for i in range(n_replications)
        ]
        return self._run(tasks)

    # ---- Private methods ----

    def _resolve_replications(self, n_replications: Optional[int]) -> int:
        if n_replications is None:
            return self.config.n_replications
        if n_replications < 1:
            raise InvalidInput(
                f"n_replications must be >= 1, got {n_replications}"
            )
        return int(n_replications)

    def _task(
        self,
        key: Tuple[int, ...],
        index: int,
        size: Optional[int]
    ) -> ReplicationTask:
        return ReplicationTask(
            key=key,
            index=index,
            size=size,
            trials=self.trials_,
            prior_alpha=self.prior_.alpha,
            prior_beta=self.prior_.beta,
            threshold=self.threshold_,
            config=self.config
        )

    def _run(self, tasks: List[ReplicationTask]) -> SimulationResult:
        """Execute tasks serially or on a worker pool, then aggregate."""
        config = self.config

        if self.verbose:
            print(f"Reference prior: alpha_0={self.prior_.alpha:.3f}, "
                  f"beta_0={self.prior_.beta:.3f} (mean {self.prior_.mean:.4f})")
            print(f"Fitting method: {config.method}")
            print(f"Threshold: {self.threshold_:.4f} ({config.direction})")
            print(f"Workers: {config.n_jobs}"
                  + (f" ({config.backend})" if config.n_jobs > 1 else ""))
            print(f"Seed: {config.random_seed}")

        if config.n_jobs == 1:
            records = []
            for i, task in enumerate(tasks):
                records.append(run_replication(task))
                if self.verbose and (i + 1) % 10 == 0:
                    print(f"  Completed replication {i + 1}/{len(tasks)}...")
        else:
            executor_cls = (
                ProcessPoolExecutor if config.backend == 'process'
                else ThreadPoolExecutor
            )
            chunksize = max(1, len(tasks) // (4 * config.n_jobs))
            with executor_cls(max_workers=config.n_jobs) as executor:
                records = list(executor.map(run_replication, tasks, chunksize=chunksize))

        result = aggregate(
            records,
            config,
            reference_prior=self.prior_.as_tuple(),
            threshold=self.threshold_
        )

        if self.verbose:
            self._print_report(records, result)

        return result

    @staticmethod
    def _print_header(title: str) -> None:
        print(f"\n{'=' * 70}")
        print(title)
        print(f"{'=' * 70}")

    def _print_report(
        self,
        records: List[ReplicationRecord],
        result: SimulationResult
    ) -> None:
        n_failed = sum(record.failed for record in records)
        print(f"\n✓ {len(records)} replications completed "
              f"({n_failed} failed, excluded from aggregates)")

        summary = result.summary()
        for size, row in summary.iterrows():
            print(f"\n  Size {size}:")
            print(f"    Failure rate:  {row['failure_rate']:.1%}")
            if row['n_failed'] == row['n_replications']:
                print("    No successful replications")
                continue
            print(f"    alpha_0:       {row['alpha0_mean']:.3f} "
                  f"(sd {row['alpha0_sd']:.3f})")
            print(f"    beta_0:        {row['beta0_mean']:.3f} "
                  f"(sd {row['beta0_sd']:.3f})")
            print(f"    Bias:          {row['bias']:+.2e}")
            print(f"    MSE:           {row['mse']:.3e} "
                  f"(raw {row['raw_mse']:.3e})")
            print(f"    Coverage:      {row['coverage']:.3f} "
                  f"(target {self.config.credible_level:.3f})")
            print(f"    FDP at q<{self.config.fdr_level}: {row['fdp']:.3f}")
