"""
Calibration metrics aggregated over replications.

Per-entity records are reduced to one row per replication, then grouped by
sample size. Failed replications stay in the per-replication table (with
missing metrics) so the failure rate can be reported, but are excluded from
every other aggregate.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.metrics import mean_squared_error

from ..config import SimulationConfig
from .replication import ReplicationRecord


def false_discovery_proportion(
    q_values: np.ndarray,
    is_null: np.ndarray,
    cutoff: float
) -> Tuple[float, int, float]:
    """
    Empirical FDP, number selected and true-positive rate at a q cutoff.

    Selecting nothing gives an FDP of 0. The true-positive rate is NaN when
    no entity is truly non-null.
    """
    selected = q_values < cutoff
    n_selected = int(selected.sum())
    n_false = int((selected & is_null).sum())
    n_alternative = int((~is_null).sum())

    fdp = n_false / n_selected if n_selected > 0 else 0.0
    if n_alternative > 0:
        tpr = (n_selected - n_false) / n_alternative
    else:
        tpr = np.nan
    return fdp, n_selected, tpr


def summarize_replication(
    record: ReplicationRecord,
    config: SimulationConfig
) -> Tuple[Dict[str, Any], List[Dict[str, Any]], List[Dict[str, Any]]]:
    """
    Reduce one replication to summary rows.

    Returns
    -------
    row : dict
        Per-replication metrics
    coverage_rows : list of dict
        Coverage per credible level (empty if the replication failed)
    fdr_rows : list of dict
        FDP, selections and power per q cutoff (empty if failed)
    """
    row = {
        'size': record.size,
        'replication': record.index,
        'failed': record.failed,
        'failure_reason': record.failure_reason,
        'prior_method': record.prior_method,
        'fallback': record.fallback,
        'alpha0': record.alpha0,
        'beta0': record.beta0,
        'bias': np.nan,
        'mse': np.nan,
        'raw_mse': np.nan,
        'coverage': np.nan,
        'fdp': np.nan,
        'n_discoveries': np.nan,
    }
    if record.failed:
        return row, [], []

    row['bias'] = float(np.mean(record.estimates - record.true_rates))
    row['mse'] = mean_squared_error(record.true_rates, record.estimates)
    row['raw_mse'] = mean_squared_error(record.true_rates, record.raw_rates)
    row['coverage'] = float(np.mean(record.covered[config.credible_level]))

    coverage_rows = [
        {
            'size': record.size,
            'replication': record.index,
            'level': level,
            'coverage': float(np.mean(covered)),
        }
        for level, covered in sorted(record.covered.items())
    ]

    fdr_rows = []
    for cutoff in config.q_cutoffs:
        fdp, n_selected, tpr = false_discovery_proportion(
            record.q_values, record.is_null, cutoff
        )
        fdr_rows.append({
            'size': record.size,
            'replication': record.index,
            'q_cutoff': cutoff,
            'fdp': fdp,
            'n_selected': n_selected,
            'tpr': tpr,
        })
        if cutoff == config.fdr_level:
            row['fdp'] = fdp
            row['n_discoveries'] = n_selected

    return row, coverage_rows, fdr_rows


@dataclass
class SimulationResult:
    """
    Aggregated output of a simulation study.

    Attributes
    ----------
    replications : pd.DataFrame
        One row per replication: size, replication, failed, failure_reason,
        prior_method, fallback, alpha0, beta0, bias (mean estimate minus true
        rate), mse, raw_mse, coverage (at the primary credible level), fdp
        and n_discoveries (at the target FDR)
    coverage : pd.DataFrame
        Mean interval coverage per (size, level) over successful replications
    fdr : pd.DataFrame
        Mean FDP, selections and true-positive rate per (size, q_cutoff)
    reference_prior : tuple of float
        (alpha, beta) the data were simulated from
    threshold : float
        Rate tested against
    config : dict
        SimulationConfig used
    """

    replications: pd.DataFrame
    coverage: pd.DataFrame
    fdr: pd.DataFrame
    reference_prior: Tuple[float, float]
    threshold: float
    config: Dict[str, Any] = field(default_factory=dict)

    def hyperparameters(self) -> pd.DataFrame:
        """Fitted (alpha0, beta0) of every successful replication."""
        ok = self.replications[~self.replications['failed']]
        return ok[['size', 'replication', 'prior_method', 'alpha0', 'beta0']] \
            .reset_index(drop=True)

    def failure_rate(self) -> pd.Series:
        """Fraction of failed replications per size."""
        return self.replications.groupby('size')['failed'].mean() \
            .rename('failure_rate')

    def summary(self) -> pd.DataFrame:
        """
        One row per sample size.

        Columns: n_replications, n_failed, failure_rate, fallback_rate,
        alpha0_mean, alpha0_sd, beta0_mean, beta0_sd, bias, mse, raw_mse,
        coverage, fdp, n_discoveries.
        """
        df = self.replications
        summary = df.groupby('size').agg(
            n_replications=('replication', 'count'),
            n_failed=('failed', 'sum'),
            failure_rate=('failed', 'mean'),
            fallback_rate=('fallback', 'mean'),
            alpha0_mean=('alpha0', 'mean'),
            alpha0_sd=('alpha0', 'std'),
            beta0_mean=('beta0', 'mean'),
            beta0_sd=('beta0', 'std'),
            bias=('bias', 'mean'),
            mse=('mse', 'mean'),
            raw_mse=('raw_mse', 'mean'),
            coverage=('coverage', 'mean'),
            fdp=('fdp', 'mean'),
            n_discoveries=('n_discoveries', 'mean'),
        )
        summary['n_failed'] = summary['n_failed'].astype(int)
        return summary


def aggregate(
    records: Sequence[ReplicationRecord],
    config: SimulationConfig,
    reference_prior: Tuple[float, float],
    threshold: float
) -> SimulationResult:
    """
    Reduce replication records to a SimulationResult.

    Records are ordered by key first, so the output does not depend on the
    order in which workers finished.
    """
    rows, coverage_rows, fdr_rows = [], [], []
    for record in sorted(records, key=lambda r: r.key):
        row, cov, fdr = summarize_replication(record, config)
        rows.append(row)
        coverage_rows.extend(cov)
        fdr_rows.extend(fdr)

    replications = pd.DataFrame(rows, columns=[
        'size', 'replication', 'failed', 'failure_reason', 'prior_method',
        'fallback', 'alpha0', 'beta0', 'bias', 'mse', 'raw_mse', 'coverage',
        'fdp', 'n_discoveries',
    ])
    replications['failed'] = replications['failed'].astype(bool)
    replications['fallback'] = replications['fallback'].astype(bool)

    coverage_long = pd.DataFrame(
        coverage_rows, columns=['size', 'replication', 'level', 'coverage']
    ).astype({'size': int, 'replication': int, 'level': float, 'coverage': float})
    coverage = coverage_long.groupby(['size', 'level'], as_index=False).agg(
        coverage=('coverage', 'mean'),
        coverage_sd=('coverage', 'std'),
        n_replications=('replication', 'count'),
    )

    fdr_long = pd.DataFrame(
        fdr_rows,
        columns=['size', 'replication', 'q_cutoff', 'fdp', 'n_selected', 'tpr']
    ).astype({'size': int, 'replication': int, 'q_cutoff': float,
              'fdp': float, 'n_selected': int, 'tpr': float})
    fdr = fdr_long.groupby(['size', 'q_cutoff'], as_index=False).agg(
        mean_fdp=('fdp', 'mean'),
        mean_selected=('n_selected', 'mean'),
        mean_tpr=('tpr', 'mean'),
        n_replications=('replication', 'count'),
    )

    return SimulationResult(
        replications=replications,
        coverage=coverage,
        fdr=fdr,
        reference_prior=tuple(reference_prior),
        threshold=threshold,
        config=config.to_dict()
    )
