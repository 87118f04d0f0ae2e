"""Monte Carlo calibration of the estimation pipeline"""

from .harness import SimulationHarness
from .metrics import SimulationResult, aggregate, false_discovery_proportion
from .replication import (
    Replication,
    ReplicationRecord,
    ReplicationTask,
    generate_replication,
    replication_rng,
    run_replication,
)

__all__ = [
    'SimulationHarness',
    'SimulationResult',
    'aggregate',
    'false_discovery_proportion',
    'Replication',
    'ReplicationRecord',
    'ReplicationTask',
    'generate_replication',
    'replication_rng',
    'run_replication',
]
