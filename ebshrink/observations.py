"""
Success/trial observations and input coercion.

An observation is one entity's count of successes out of a number of trials
(hits out of at-bats, conversions out of visits, ...). All estimation
functions accept either a sequence of :class:`Observation`, a mapping
``entity_id -> (successes, trials)`` or a DataFrame with count columns.
"""

from collections import abc
from dataclasses import dataclass
from typing import Any, Hashable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .exceptions import EmptyDataset, InvalidInput


@dataclass(frozen=True)
class Observation:
    """
    Successes out of trials for a single entity.

    Parameters
    ----------
    entity_id : hashable
        Identifier of the entity (player, store, variant, ...)
    successes : int
        Number of successes, 0 <= successes <= trials
    trials : int
        Number of trials, >= 1

    Raises
    ------
    InvalidInput
        If the counts are not integers or violate the bounds above.

    Examples
    --------
    >>> obs = Observation('hank_aaron', successes=3771, trials=12364)
    >>> round(obs.raw_rate, 3)
    0.305
    """

    entity_id: Hashable
    successes: int
    trials: int

    def __post_init__(self):
        successes = _as_count(self.successes, 'successes', self.entity_id)
        trials = _as_count(self.trials, 'trials', self.entity_id)

        if trials < 1:
            raise InvalidInput(
                f"Entity {self.entity_id!r}: trials must be >= 1, got {trials}"
            )
        if not 0 <= successes <= trials:
            raise InvalidInput(
                f"Entity {self.entity_id!r}: successes must be in "
                f"[0, trials={trials}], got {successes}"
            )

        object.__setattr__(self, 'successes', successes)
        object.__setattr__(self, 'trials', trials)

    @property
    def raw_rate(self) -> float:
        """Observed success rate successes / trials."""
        return self.successes / self.trials


ObservationInput = Union[
    Sequence[Observation],
    Mapping[Hashable, Tuple[int, int]],
    pd.DataFrame,
]


def _as_count(value: Any, name: str, entity_id: Hashable) -> int:
    """Convert an integral count to int, rejecting bools and fractions."""
    if isinstance(value, (bool, np.bool_)):
        raise InvalidInput(
            f"Entity {entity_id!r}: {name} must be an integer, got {value!r}"
        )
    if isinstance(value, (int, np.integer)):
        return int(value)
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return int(value)
    raise InvalidInput(
        f"Entity {entity_id!r}: {name} must be an integer, got {value!r}"
    )


def observations_from_mapping(
    data: Mapping[Hashable, Tuple[int, int]]
) -> List[Observation]:
    """
    Build observations from ``{entity_id: (successes, trials)}``.

    Parameters
    ----------
    data : Mapping
        Entity identifier mapped to a (successes, trials) pair

    Returns
    -------
    observations : List[Observation]
        One observation per entry, in mapping order
    """
    observations = []
    for entity_id, counts in data.items():
        try:
            successes, trials = counts
        except (TypeError, ValueError):
            raise InvalidInput(
                f"Entity {entity_id!r}: expected a (successes, trials) pair, "
                f"got {counts!r}"
            ) from None
        observations.append(Observation(entity_id, successes, trials))
    return observations


def observations_from_frame(
    df: pd.DataFrame,
    successes_col: str = 'successes',
    trials_col: str = 'trials',
    id_col: Optional[str] = None
) -> List[Observation]:
    """
    Build observations from a DataFrame of counts.

    Parameters
    ----------
    df : pd.DataFrame
        One row per entity
    successes_col : str, optional (default='successes')
        Column holding success counts
    trials_col : str, optional (default='trials')
        Column holding trial counts
    id_col : str, optional
        Column holding entity identifiers. If None, the index is used.

    Returns
    -------
    observations : List[Observation]
    """
    for col in (successes_col, trials_col):
        if col not in df.columns:
            raise InvalidInput(f"DataFrame is missing column '{col}'")
    if id_col is not None and id_col not in df.columns:
        raise InvalidInput(f"DataFrame is missing id column '{id_col}'")

    ids = df[id_col].tolist() if id_col is not None else df.index.tolist()
    return [
        Observation(entity_id, successes, trials)
        for entity_id, successes, trials in zip(
            ids, df[successes_col].tolist(), df[trials_col].tolist()
        )
    ]


def coerce_observations(data: ObservationInput) -> List[Observation]:
    """
    Normalize any supported input into a non-empty list of observations.

    Raises
    ------
    EmptyDataset
        If no observations are supplied
    InvalidInput
        If an element is not an Observation or has malformed counts
    """
    if isinstance(data, pd.DataFrame):
        observations = observations_from_frame(data)
    elif isinstance(data, abc.Mapping):
        observations = observations_from_mapping(data)
    else:
        observations = list(data)
        for i, obs in enumerate(observations):
            if not isinstance(obs, Observation):
                raise InvalidInput(
                    f"Element {i} is not an Observation: {obs!r}"
                )

    if len(observations) == 0:
        raise EmptyDataset("No observations supplied")

    return observations


def as_arrays(
    observations: Sequence[Observation]
) -> Tuple[np.ndarray, np.ndarray]:
    """Return (successes, trials) as float arrays."""
    successes = np.fromiter(
        (obs.successes for obs in observations), dtype=np.float64,
        count=len(observations)
    )
    trials = np.fromiter(
        (obs.trials for obs in observations), dtype=np.float64,
        count=len(observations)
    )
    return successes, trials
